"""
Presentation-facing service.

Every request from the UI layer goes through AsanaService. Read paths for
detail panes degrade to empty results (logged) so a flaky request never
breaks rendering; get_task_detail is the one fetch that propagates.
"""

import logging
from datetime import datetime
from typing import Awaitable, List, Optional, TypeVar, Union

from panoptisana.backend import AsanaBackend
from panoptisana.config import Settings
from panoptisana.formatters import replace_mentions_with_links
from panoptisana.inbox import fetch_inbox_notifications
from panoptisana.models import (
    AsanaAttachment,
    AsanaComment,
    AsanaDependency,
    AsanaField,
    AsanaProject,
    AsanaSection,
    AsanaSubtask,
    AsanaTask,
    AsanaUser,
    CompleteTaskResult,
    InboxNotification,
    ItemType,
    PollResultPacket,
    TaskDetail,
    VerifyApiKeyResult,
)
from panoptisana.poller import PollOrchestrator
from panoptisana.store import AppStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Settings the UI may not write directly
PROTECTED_SETTINGS = {"api_key_verified"}


class AsanaService:
    def __init__(self, backend: AsanaBackend, store: AppStore, orchestrator: PollOrchestrator):
        self.backend = backend
        self.store = store
        self.orchestrator = orchestrator

    async def _safe_list(self, label: str, call: Awaitable[List[T]]) -> List[T]:
        try:
            return await call
        except Exception as e:
            logger.error(f"Failed to fetch {label}: {e}")
            return []

    # ==================== LIFECYCLE ====================

    def start(self) -> bool:
        """Start polling if a verified key is already stored."""
        settings = self.store.get_settings()
        if not settings.api_key_verified:
            return False
        self.orchestrator.start_polling(settings.poll_interval_minutes)
        return True

    async def refresh(self) -> Optional[PollResultPacket]:
        return await self.orchestrator.refresh()

    # ==================== SETTINGS ====================

    def get_settings(self) -> Settings:
        return self.store.get_settings()

    def update_settings(self, **updates) -> Settings:
        """Persist UI-editable settings; a new poll interval restarts the timer."""
        for key in PROTECTED_SETTINGS.intersection(updates):
            logger.warning(f"Ignoring attempt to set protected setting '{key}'")
            updates.pop(key)
        settings = self.store.set_settings(**updates)
        if "poll_interval_minutes" in updates and self.orchestrator.is_polling_scheduled:
            self.orchestrator.restart_polling(settings.poll_interval_minutes)
        return settings

    def exclude_item(self, item_type: Union[ItemType, str], name: str) -> Settings:
        """Hide an item by adding its name as an exclusion pattern."""
        settings = self.store.get_settings()
        if ItemType(item_type) is ItemType.TASK:
            return self.store.set_settings(excluded_task_patterns=settings.excluded_task_patterns + [name])
        return self.store.set_settings(excluded_project_patterns=settings.excluded_project_patterns + [name])

    # ==================== API KEY ====================

    async def verify_api_key(self, key: str) -> VerifyApiKeyResult:
        """
        Verify a key before keeping it.

        The candidate key is stored only for the duration of the check; on
        failure the previous key (or none) is restored.
        """
        if not key or not key.strip():
            return VerifyApiKeyResult(valid=False, error="Invalid key")

        previous_key = self.store.get_api_key()
        self.store.set_api_key(key.strip())

        try:
            result = await self.backend.verify_api_key()
        except Exception as e:
            result = VerifyApiKeyResult(valid=False, error=str(e) or type(e).__name__)
        if not result.valid:
            self.store.set_api_key(previous_key)
            self.store.set_settings(api_key_verified=False)
            logger.warning(f"API key verification failed: {result.error}")
            return result

        settings = self.store.set_settings(api_key_verified=True)

        try:
            workspaces = await self.backend.get_workspaces()
            if workspaces:
                self.store.set_cached_users(await self.backend.get_users(workspaces[0].gid))
        except Exception as e:
            logger.error(f"Failed to fetch users after key verify: {e}")

        self.orchestrator.invalidate_users()
        self.orchestrator.start_polling(settings.poll_interval_minutes)
        return result

    def remove_api_key(self) -> None:
        self.orchestrator.stop_polling()
        self.store.set_api_key(None)
        self.store.set_settings(api_key_verified=False)
        self.store.clear_caches()
        self.orchestrator.invalidate_users()
        logger.info("API key removed; caches cleared")

    # ==================== CACHED DATA ====================

    def get_cached_tasks(self) -> List[AsanaTask]:
        return self.store.get_cached_tasks()

    def get_cached_projects(self) -> List[AsanaProject]:
        return self.store.get_cached_projects()

    def get_cached_users(self) -> List[AsanaUser]:
        return self.store.get_cached_users()

    # ==================== DETAIL FETCHES ====================

    async def get_task_comments(self, task_gid: str) -> List[AsanaComment]:
        return await self._safe_list("comments", self.backend.get_task_comments(task_gid))

    async def get_project_sections(self, project_gid: str) -> List[AsanaSection]:
        return await self._safe_list("sections", self.backend.get_project_sections(project_gid))

    async def get_project_fields(self, project_gid: str) -> List[AsanaField]:
        return await self._safe_list("fields", self.backend.get_project_fields(project_gid))

    async def get_subtasks(self, task_gid: str) -> List[AsanaSubtask]:
        return await self._safe_list("subtasks", self.backend.get_subtasks(task_gid))

    async def get_task_attachments(self, task_gid: str) -> List[AsanaAttachment]:
        return await self._safe_list("attachments", self.backend.get_task_attachments(task_gid))

    async def get_task_dependencies(self, task_gid: str) -> List[AsanaDependency]:
        return await self._safe_list("dependencies", self.backend.get_task_dependencies(task_gid))

    async def get_task_dependents(self, task_gid: str) -> List[AsanaDependency]:
        return await self._safe_list("dependents", self.backend.get_task_dependents(task_gid))

    async def get_task_detail(self, task_gid: str) -> TaskDetail:
        # Propagates: the detail pane shows a hard failure state
        return await self.backend.get_task_detail(task_gid)

    # ==================== WRITES ====================

    async def complete_task(self, task_gid: str) -> CompleteTaskResult:
        if not task_gid:
            return CompleteTaskResult(success=False, error="Missing task gid")
        try:
            await self.backend.complete_task(task_gid)
            return CompleteTaskResult(success=True)
        except Exception as e:
            logger.error(f"Failed to complete task {task_gid}: {e}")
            return CompleteTaskResult(success=False, error=str(e))

    async def add_comment(self, task_gid: str, text: str) -> AsanaComment:
        """Post a comment, turning @Name mentions into profile links first."""
        workspace_gid = None
        if self.orchestrator.last_result is not None:
            workspace_gid = self.orchestrator.last_result.workspace_gid
        body = replace_mentions_with_links(
            text,
            self.store.get_cached_users(),
            workspace_gid=workspace_gid,
            membership_map=self.store.get_user_membership_map(),
        )
        return await self.backend.add_comment(task_gid, body)

    # ==================== INBOX ====================

    async def get_inbox_notifications(self, limit: Optional[int] = None) -> List[InboxNotification]:
        settings = self.store.get_settings()
        notifications = await fetch_inbox_notifications(
            self.backend,
            self.store.get_cached_tasks(),
            settings.current_user_id,
            limit or settings.inbox_limit,
        )
        archived = set(self.store.get_archived_notification_gids())
        return [n for n in notifications if n.story_gid not in archived]

    def mark_inbox_opened(self, when: Optional[datetime] = None) -> datetime:
        return self.store.set_last_inbox_opened_at(when)

    def archive_notification(self, story_gid: str) -> None:
        self.store.archive_notification(story_gid)

    def get_seen_timestamps(self) -> dict:
        return self.store.get_seen_timestamps()

    def set_seen_timestamp(self, task_gid: str, timestamp: str) -> None:
        self.store.set_seen_timestamp(task_gid, timestamp)
