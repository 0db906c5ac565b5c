#!/usr/bin/env python
"""
Panoptisana developer CLI - exercise the sync engine from a terminal.

Usage:
    panoptisana verify            # Check the API key against /users/me
    panoptisana poll              # Run one poll and list tasks
    panoptisana inbox             # Show recent activity on your tasks
    panoptisana poll --demo       # Same, against the static demo workspace

The key comes from --key or PANOPTISANA_API_KEY. Settings (filters, pins,
current user) are read from the local store but never written back.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from panoptisana.asana_client import AsanaClient
from panoptisana.backend import build_backend
from panoptisana.config import AppConfig
from panoptisana.filters import apply_item_filters, filter_and_sort_tasks
from panoptisana.formatters import format_due_date, format_relative_time
from panoptisana.logging_utils import configure_safe_logging
from panoptisana.models import ItemType, SortBy
from panoptisana.poller import PollOrchestrator
from panoptisana.service import AsanaService
from panoptisana.store import (
    API_KEY_KEY,
    SETTINGS_KEY,
    AppStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
)

logger = logging.getLogger(__name__)


def _load_config(args) -> AppConfig:
    config = AppConfig.from_env()
    if args.demo:
        config.demo = True
    if args.key:
        config.api_key = args.key
    return config


def _build_store(config: AppConfig) -> AppStore:
    """Session store seeded from the persisted settings; writes stay in memory."""
    persisted = JsonFileKeyValueStore(config.store_path)
    kv = InMemoryKeyValueStore({SETTINGS_KEY: persisted.get(SETTINGS_KEY) or {}})
    store = AppStore(kv)
    store.set_api_key(config.api_key or persisted.get(API_KEY_KEY))
    store.set_settings(api_key_verified=bool(config.demo or store.get_api_key()))
    return store


def cmd_verify(args) -> int:
    """Verify the API key (blocking client)."""
    config = _load_config(args)
    if config.demo:
        print("Demo mode: no key needed.")
        return 0

    store = _build_store(config)
    client = AsanaClient(store.get_api_key)
    try:
        result = client.verify_api_key_sync()
    finally:
        client.session.close()

    if not result.valid:
        print(f"Invalid key: {result.error}")
        return 1
    print(f"OK: {result.user.name} ({result.user.gid})")
    return 0


async def _run_poll(args) -> int:
    config = _load_config(args)
    store = _build_store(config)
    backend = build_backend(config, store.get_api_key)
    orchestrator = PollOrchestrator(backend, store)
    try:
        packet = await orchestrator.refresh()
    finally:
        await backend.close()

    if packet is None:
        print("Nothing polled (no verified key or no workspace).")
        return 1
    if packet.error:
        print(f"Poll failed: {packet.error}")
        return 1

    settings = store.get_settings()
    tasks = filter_and_sort_tasks(
        apply_item_filters(packet.tasks, ItemType.TASK, settings),
        search_query=args.search,
        sort_by=args.sort,
        pinned_gids=settings.pinned_task_gids,
    )

    print(f"\n{'Task':<55} {'Assignee':<18} {'Due':<10}")
    print("-" * 85)
    for task in tasks[: args.limit]:
        due = format_due_date(task.due_on)
        due_text = (due.text + (" !" if due.is_overdue else "")) if due else ""
        assignee = task.assignee.name if task.assignee and task.assignee.name else ""
        print(f"{task.name[:54]:<55} {assignee[:17]:<18} {due_text:<10}")
    print(
        f"\n{len(tasks)} shown / {packet.unfiltered_task_count} fetched, "
        f"{packet.unfiltered_project_count} projects"
        + (" (new inbox activity)" if packet.has_new_inbox_activity else "")
    )
    return 0


async def _run_inbox(args) -> int:
    config = _load_config(args)
    store = _build_store(config)
    backend = build_backend(config, store.get_api_key)
    orchestrator = PollOrchestrator(backend, store)
    service = AsanaService(backend, store, orchestrator)
    try:
        packet = await service.refresh()
        if packet is None or packet.error:
            print(f"Poll failed: {packet.error if packet else 'nothing polled'}")
            return 1
        notifications = await service.get_inbox_notifications(limit=args.limit)
    finally:
        await backend.close()

    if not notifications:
        print("Inbox is empty.")
        return 0
    for n in notifications:
        who = n.created_by.name if n.created_by and n.created_by.name else "Someone"
        print(f"[{format_relative_time(n.created_at):>9}] {who} on \"{n.task_name}\": {n.text[:80]}")
    return 0


def cmd_poll(args) -> int:
    """Run one poll and print the filtered task list."""
    return asyncio.run(_run_poll(args))


def cmd_inbox(args) -> int:
    """Poll, then print inbox notifications."""
    return asyncio.run(_run_inbox(args))


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Panoptisana CLI - Asana sync engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  panoptisana verify --key 1/1234:abcd       # Check a key
  panoptisana poll --sort due                # Tasks by due date
  panoptisana poll --demo -s roadmap         # Search the demo workspace
  panoptisana inbox -l 10                    # Activity on 10 most recent tasks
        """,
    )
    parser.add_argument("--demo", action="store_true", help="Use the static demo workspace")
    parser.add_argument("--key", help="Asana personal access token")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command")

    p_verify = subparsers.add_parser("verify", help="Verify the API key")
    p_verify.set_defaults(func=cmd_verify)

    p_poll = subparsers.add_parser("poll", help="Run one poll and list tasks")
    p_poll.add_argument("-s", "--search", help="Search query")
    p_poll.add_argument("--sort", choices=[s.value for s in SortBy], default=SortBy.MODIFIED.value)
    p_poll.add_argument("-l", "--limit", type=int, default=50, help="Max rows")
    p_poll.set_defaults(func=cmd_poll)

    p_inbox = subparsers.add_parser("inbox", help="Show inbox notifications")
    p_inbox.add_argument("-l", "--limit", type=int, default=None, help="Tasks to scan")
    p_inbox.set_defaults(func=cmd_inbox)

    args = parser.parse_args(argv)
    configure_safe_logging(logging.DEBUG if args.verbose else logging.WARNING)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
