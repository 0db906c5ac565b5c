"""
Fan-out and reconciliation of task fetches.

Chooses a fetch plan from the user-selection settings, runs it, and merges
the results into one deduplicated task set.

The search endpoint's assignee filter over-returns: it also matches tasks
where the user is only a collaborator or follower. Results are therefore
post-filtered to exact assignee matches in SINGLE and MULTI modes.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from panoptisana.backend import AsanaBackend
from panoptisana.config import Settings
from panoptisana.models import AsanaTask

logger = logging.getLogger(__name__)


class UserSelectionMode(str, Enum):
    SINGLE = "single"  # show-only-my-tasks
    MULTI = "multi"    # explicit selected users
    ALL = "all"        # no assignee filter


@dataclass
class FetchResult:
    tasks: List[AsanaTask]
    unfiltered_count: int  # server-side size before the assignee post-filter
    mode: UserSelectionMode


def resolve_selection_mode(settings: Settings) -> UserSelectionMode:
    if settings.show_only_my_tasks and settings.current_user_id:
        return UserSelectionMode.SINGLE
    if settings.selected_user_ids:
        return UserSelectionMode.MULTI
    return UserSelectionMode.ALL


def merge_user_tasks(
    per_user_tasks: Sequence[List[AsanaTask]],
    selected_user_ids: Sequence[str],
) -> FetchResult:
    """
    Merge per-user fetches in one pass.

    Keeps the first occurrence of each gid, and only tasks whose assignee
    is one of the selected users. The unfiltered count is the deduplicated
    merged size, not the sum of raw per-user sizes.
    """
    selected = set(selected_user_ids)
    seen_gids = set()
    tasks: List[AsanaTask] = []
    merged_count = 0

    for user_tasks in per_user_tasks:
        for task in user_tasks:
            if task.gid in seen_gids:
                continue
            seen_gids.add(task.gid)
            # Counted before the assignee filter: collaborator tasks are part of the unfiltered total
            merged_count += 1
            if task.assignee_gid in selected:
                tasks.append(task)

    return FetchResult(tasks=tasks, unfiltered_count=merged_count, mode=UserSelectionMode.MULTI)


async def fetch_tasks_for_selection(
    backend: AsanaBackend,
    workspace_gid: str,
    settings: Settings,
    mode: Optional[UserSelectionMode] = None,
) -> FetchResult:
    """Run the fetch plan for the current user selection."""
    mode = mode or resolve_selection_mode(settings)
    max_pages = settings.max_search_pages

    if mode is UserSelectionMode.SINGLE:
        user_id = settings.current_user_id
        raw = await backend.get_tasks(workspace_gid, assignee_gid=user_id, max_pages=max_pages)
        tasks = [t for t in raw if t.assignee_gid == user_id]
        if len(tasks) != len(raw):
            logger.debug(f"Dropped {len(raw) - len(tasks)} collaborator-only tasks for {user_id}")
        return FetchResult(tasks=tasks, unfiltered_count=len(raw), mode=mode)

    if mode is UserSelectionMode.MULTI:
        user_ids = list(settings.selected_user_ids)
        per_user = await asyncio.gather(
            *[backend.get_tasks(workspace_gid, assignee_gid=uid, max_pages=max_pages) for uid in user_ids]
        )
        result = merge_user_tasks(per_user, user_ids)
        logger.info(
            f"Fetched tasks for {len(user_ids)} users: {result.unfiltered_count} merged, "
            f"{len(result.tasks)} directly assigned"
        )
        return result

    raw = await backend.get_tasks(workspace_gid, max_pages=max_pages)
    return FetchResult(tasks=raw, unfiltered_count=len(raw), mode=UserSelectionMode.ALL)
