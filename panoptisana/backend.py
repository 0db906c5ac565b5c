"""Data source protocol shared by the live client and the demo client.

The poller, inbox aggregator and service depend on this, not on any
specific implementation. The implementation is chosen once, in
build_backend().
"""

import logging
from typing import Callable, Dict, List, Optional, Protocol

from panoptisana.config import AppConfig
from panoptisana.models import (
    AsanaAttachment,
    AsanaComment,
    AsanaDependency,
    AsanaField,
    AsanaProject,
    AsanaSection,
    AsanaStory,
    AsanaSubtask,
    AsanaTask,
    AsanaUser,
    AsanaWorkspace,
    TaskDetail,
    VerifyApiKeyResult,
)

logger = logging.getLogger(__name__)


class AsanaBackend(Protocol):
    """Capabilities the sync engine needs from a data source."""

    async def verify_api_key(self) -> VerifyApiKeyResult:
        ...

    async def get_workspaces(self) -> List[AsanaWorkspace]:
        ...

    async def get_users(self, workspace_gid: str) -> List[AsanaUser]:
        ...

    async def get_user_membership_map(self, workspace_gid: str) -> Dict[str, str]:
        """User gid -> workspace membership gid."""
        ...

    async def get_tasks(
        self,
        workspace_gid: str,
        assignee_gid: Optional[str] = None,
        max_pages: Optional[int] = None,
    ) -> List[AsanaTask]:
        """Incomplete tasks, optionally filtered by assignee (server-side, loosely)."""
        ...

    async def get_projects(self, workspace_gid: str) -> List[AsanaProject]:
        ...

    async def complete_task(self, task_gid: str) -> dict:
        ...

    async def add_comment(self, task_gid: str, text: str) -> AsanaComment:
        ...

    async def get_task_comments(self, task_gid: str) -> List[AsanaComment]:
        ...

    async def get_task_stories(self, task_gid: str) -> List[AsanaStory]:
        ...

    async def get_task_detail(self, task_gid: str) -> TaskDetail:
        ...

    async def get_subtasks(self, task_gid: str) -> List[AsanaSubtask]:
        ...

    async def get_task_attachments(self, task_gid: str) -> List[AsanaAttachment]:
        ...

    async def get_task_dependencies(self, task_gid: str) -> List[AsanaDependency]:
        ...

    async def get_task_dependents(self, task_gid: str) -> List[AsanaDependency]:
        ...

    async def get_project_sections(self, project_gid: str) -> List[AsanaSection]:
        ...

    async def get_project_fields(self, project_gid: str) -> List[AsanaField]:
        ...

    async def close(self) -> None:
        ...


def build_backend(config: AppConfig, get_api_key: Callable[[], Optional[str]]) -> AsanaBackend:
    """Pick the data source for this process: demo data or the live API."""
    if config.demo:
        from panoptisana.demo_client import DemoAsanaClient

        logger.info("Demo mode: serving static Asana data")
        return DemoAsanaClient()

    from panoptisana.asana_client import AsanaClient

    return AsanaClient(get_api_key, max_search_pages=config.max_search_pages)
