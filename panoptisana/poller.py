"""
Poll orchestrator.

Runs one full sync pass (workspace → users → tasks → projects → inbox
signal → cache) on a timer and on demand, and publishes the outcome on
two event channels.

State transitions:
- IDLE → POLLING → IDLE on success (or on a silent abort, e.g. no workspace)
- IDLE → POLLING → ERROR on any failure; the next poll starts from ERROR
"""

import asyncio
import logging
from enum import Enum
from typing import List, Optional

from panoptisana.backend import AsanaBackend
from panoptisana.config import DEFAULT_POLL_INTERVAL_MINUTES
from panoptisana.events import EventChannel
from panoptisana.inbox import has_new_inbox_activity
from panoptisana.models import AsanaProject, AsanaTask, PollResultPacket
from panoptisana.reconciliation import fetch_tasks_for_selection
from panoptisana.store import AppStore

logger = logging.getLogger(__name__)


class PollState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    ERROR = "error"


class PollOrchestrator:
    """Owns the poll timer, the session-scoped user flag and the task snapshot.

    At most one poll runs at a time: timer ticks and refresh() calls that
    arrive mid-poll await the poll already in flight instead of starting
    another.
    """

    def __init__(self, backend: AsanaBackend, store: AppStore):
        self.backend = backend
        self.store = store

        self.state = PollState.IDLE
        # Users are fetched once per orchestrator, not whenever the cache is empty
        self.users_fetched_this_session = False
        self.interval_minutes: float = DEFAULT_POLL_INTERVAL_MINUTES

        self.poll_started: EventChannel[None] = EventChannel("poll_started")
        self.poll_completed: EventChannel[PollResultPacket] = EventChannel("poll_completed")

        # Last good snapshot, replaced by reference
        self.tasks: List[AsanaTask] = []
        self.projects: List[AsanaProject] = []
        self.last_result: Optional[PollResultPacket] = None

        self._timer_task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None

    # ==================== LIFECYCLE ====================

    @property
    def is_polling_scheduled(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def start_polling(self, interval_minutes: Optional[float] = None) -> None:
        """Poll now, then every interval. Replaces any running timer."""
        self.stop_polling()
        if interval_minutes is not None:
            self.interval_minutes = interval_minutes
        logger.info(f"Starting polling every {self.interval_minutes} min")
        self._timer_task = asyncio.ensure_future(self._run_timer(self.interval_minutes * 60))

    def stop_polling(self) -> None:
        """Cancel the timer. A poll already in flight still completes."""
        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None

    def restart_polling(self, interval_minutes: Optional[float] = None) -> None:
        self.start_polling(interval_minutes)

    def invalidate_users(self) -> None:
        """Make the next poll re-fetch users and the membership map."""
        self.users_fetched_this_session = False

    async def refresh(self) -> Optional[PollResultPacket]:
        """Poll on demand. Joins the in-flight poll if there is one."""
        return await self._poll_once()

    async def shutdown(self) -> None:
        self.stop_polling()
        if self._inflight is not None and not self._inflight.done():
            await asyncio.gather(self._inflight, return_exceptions=True)

    async def _run_timer(self, interval_seconds: float) -> None:
        while True:
            await self._poll_once()
            await asyncio.sleep(interval_seconds)

    async def _poll_once(self) -> Optional[PollResultPacket]:
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._poll())
        # Shielded so that cancelling a waiter (e.g. the timer) leaves the poll running
        return await asyncio.shield(self._inflight)

    # ==================== POLL ROUTINE ====================

    async def _poll(self) -> Optional[PollResultPacket]:
        settings = self.store.get_settings()
        if not settings.api_key_verified:
            logger.debug("Skipping poll: API key not verified")
            return None

        self.state = PollState.POLLING
        await self.poll_started.emit(None)

        try:
            workspaces = await self.backend.get_workspaces()
            if not workspaces:
                logger.info("No workspaces for this API key; skipping poll")
                self.state = PollState.IDLE
                return None
            workspace_gid = workspaces[0].gid

            if not self.users_fetched_this_session:
                users, membership_map = await asyncio.gather(
                    self.backend.get_users(workspace_gid),
                    self.backend.get_user_membership_map(workspace_gid),
                )
                self.store.set_cached_users(users)
                self.store.set_user_membership_map(membership_map)
                self.users_fetched_this_session = True
                logger.info(f"Cached {len(users)} users, {len(membership_map)} memberships")

            fetched = await fetch_tasks_for_selection(self.backend, workspace_gid, settings)
            projects = await self.backend.get_projects(workspace_gid)

            has_new_activity = has_new_inbox_activity(
                fetched.tasks,
                settings.current_user_id,
                self.store.get_last_inbox_opened_at(),
            )

            # Only a fully successful poll replaces the cache
            self.store.set_cached_tasks(fetched.tasks)
            self.store.set_cached_projects(projects)
            self.tasks = fetched.tasks
            self.projects = projects

            packet = PollResultPacket(
                tasks=fetched.tasks,
                projects=projects,
                unfiltered_task_count=fetched.unfiltered_count,
                unfiltered_project_count=len(projects),
                workspace_gid=workspace_gid,
                has_new_inbox_activity=has_new_activity,
            )
            self.state = PollState.IDLE
            logger.info(
                f"Poll complete ({fetched.mode.value}): {len(fetched.tasks)} tasks "
                f"({fetched.unfiltered_count} unfiltered), {len(projects)} projects"
            )
        except Exception as e:
            logger.error(f"Poll failed: {e}", exc_info=True)
            self.state = PollState.ERROR
            packet = PollResultPacket(error=str(e))

        self.last_result = packet
        await self.poll_completed.emit(packet)
        return packet
