"""
Demo data source.

Drop-in replacement for AsanaClient that serves the static demo workspace
with zero network traffic. Writes are accepted and remembered for the life
of the instance only.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from panoptisana.demo_data import (
    DEMO_CURRENT_USER,
    DEMO_WORKSPACE,
    get_demo_membership_map,
    get_demo_projects,
    get_demo_tasks,
    get_demo_users,
)
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
    UserRef,
    VerifyApiKeyResult,
)

logger = logging.getLogger(__name__)

_REVIEWER = UserRef(gid="2000000000000002", name="Jordan Lee")


class DemoAsanaClient:
    """Static in-memory implementation of the AsanaBackend protocol."""

    def __init__(self):
        self.completed_task_gids: set = set()
        self.posted_comments: Dict[str, List[AsanaComment]] = {}
        self._next_comment = 1

    def _task(self, task_gid: str) -> Optional[AsanaTask]:
        return next((t for t in get_demo_tasks() if t.gid == task_gid), None)

    async def verify_api_key(self) -> VerifyApiKeyResult:
        return VerifyApiKeyResult(valid=True, user=DEMO_CURRENT_USER)

    async def get_workspaces(self) -> List[AsanaWorkspace]:
        return [DEMO_WORKSPACE]

    async def get_users(self, workspace_gid: str) -> List[AsanaUser]:
        return get_demo_users()

    async def get_user_membership_map(self, workspace_gid: str) -> Dict[str, str]:
        return get_demo_membership_map()

    async def get_tasks(
        self,
        workspace_gid: str,
        assignee_gid: Optional[str] = None,
        max_pages: Optional[int] = None,
    ) -> List[AsanaTask]:
        tasks = [t for t in get_demo_tasks() if t.gid not in self.completed_task_gids]
        if assignee_gid:
            tasks = [t for t in tasks if t.assignee_gid == assignee_gid]
        return tasks

    async def get_projects(self, workspace_gid: str) -> List[AsanaProject]:
        return get_demo_projects()

    async def complete_task(self, task_gid: str) -> dict:
        self.completed_task_gids.add(task_gid)
        return {"data": {"gid": task_gid, "completed": True}}

    async def add_comment(self, task_gid: str, text: str) -> AsanaComment:
        comment = AsanaComment(
            gid=f"91000000000{self._next_comment:05d}",
            text=text,
            created_at=datetime.now(timezone.utc),
            created_by=UserRef(gid=DEMO_CURRENT_USER.gid, name=DEMO_CURRENT_USER.name),
        )
        self._next_comment += 1
        self.posted_comments.setdefault(task_gid, []).append(comment)
        return comment

    async def get_task_comments(self, task_gid: str) -> List[AsanaComment]:
        now = datetime.now(timezone.utc)
        comments = [
            AsanaComment(
                gid="9000000000000001",
                text="I pushed an update to the staging branch. Can you take a look when you get a chance?",
                created_at=now - timedelta(days=1),
                created_by=_REVIEWER,
            ),
            AsanaComment(
                gid="9000000000000002",
                text="Looks good to me. One small suggestion: let's add a loading state for the empty case.",
                created_at=now - timedelta(hours=1),
                created_by=UserRef(gid=DEMO_CURRENT_USER.gid, name=DEMO_CURRENT_USER.name),
            ),
        ]
        return comments + self.posted_comments.get(task_gid, [])

    async def get_task_stories(self, task_gid: str) -> List[AsanaStory]:
        task = self._task(task_gid)
        if task is None:
            return []
        modified = task.modified_at or datetime.now(timezone.utc)
        # Story gids are derived from the task gid so they stay unique per task
        base = task_gid[-3:]
        return [
            AsanaStory(
                gid=f"8000000000001{base}",
                text=f"{_REVIEWER.name} moved this task to {task.memberships[0].section.name}"
                if task.memberships and task.memberships[0].section
                else "",
                created_at=modified - timedelta(hours=3),
                created_by=_REVIEWER,
                type="system",
                resource_subtype="section_changed",
            ),
            AsanaStory(
                gid=f"8000000000002{base}",
                text="Any blockers on this one?",
                created_at=modified - timedelta(minutes=20),
                created_by=_REVIEWER,
                type="comment",
                resource_subtype="comment_added",
                num_likes=1,
            ),
        ]

    async def get_task_detail(self, task_gid: str) -> TaskDetail:
        task = self._task(task_gid)
        if task is None:
            raise KeyError(f"Unknown demo task {task_gid}")
        notes = f"Context and acceptance criteria for \"{task.name}\"."
        return TaskDetail(**task.model_dump(), notes=notes, html_notes=f"<body>{notes}</body>")

    async def get_subtasks(self, task_gid: str) -> List[AsanaSubtask]:
        return [
            AsanaSubtask(gid=t.gid, name=t.name, assignee=t.assignee, due_on=t.due_on)
            for t in get_demo_tasks()
            if t.parent and t.parent.gid == task_gid
        ]

    async def get_task_attachments(self, task_gid: str) -> List[AsanaAttachment]:
        return []

    async def get_task_dependencies(self, task_gid: str) -> List[AsanaDependency]:
        return []

    async def get_task_dependents(self, task_gid: str) -> List[AsanaDependency]:
        return []

    async def get_project_sections(self, project_gid: str) -> List[AsanaSection]:
        sections: Dict[str, AsanaSection] = {}
        for task in get_demo_tasks():
            for m in task.memberships:
                if m.project and m.project.gid == project_gid and m.section:
                    sections.setdefault(m.section.name, AsanaSection(gid=m.section.gid, name=m.section.name))
        return list(sections.values())

    async def get_project_fields(self, project_gid: str) -> List[AsanaField]:
        return [
            AsanaField(gid="6000000000000001", name="Priority", type="enum"),
            AsanaField(gid="6000000000000002", name="Estimate", type="number"),
        ]

    async def close(self) -> None:
        logger.debug("Demo client closed")
