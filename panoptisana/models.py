"""
Asana domain models.

Pydantic models for the objects the sync engine fetches, caches and hands
to the presentation layer. Wire models ignore unknown fields so that extra
opt_fields never break parsing.
"""

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class AsanaModel(BaseModel):
    """Base for everything parsed from an API response."""

    model_config = ConfigDict(extra="ignore")


# ── References ──────────────────────────────────────────────────────────────


class GidRef(AsanaModel):
    gid: str


class UserRef(AsanaModel):
    gid: Optional[str] = None
    name: Optional[str] = None


class ProjectRef(AsanaModel):
    gid: str
    name: str = ""


class SectionRef(AsanaModel):
    gid: str
    name: str = ""


class TaskRef(AsanaModel):
    gid: str
    name: str = ""


class TaskMembership(AsanaModel):
    project: Optional[GidRef] = None
    section: Optional[SectionRef] = None


class ProjectStatus(AsanaModel):
    title: str = ""
    color: Optional[str] = None


# ── Core resources ──────────────────────────────────────────────────────────


class AsanaWorkspace(AsanaModel):
    gid: str
    name: Optional[str] = None


class AsanaUser(AsanaModel):
    gid: str
    name: str = ""
    email: Optional[str] = None
    photo: Optional[Dict[str, Optional[str]]] = None


class AsanaTask(AsanaModel):
    """Incomplete task as returned by the search endpoint."""

    gid: str
    name: str = ""
    completed: bool = False
    assignee: Optional[UserRef] = None
    projects: List[ProjectRef] = Field(default_factory=list)
    memberships: List[TaskMembership] = Field(default_factory=list)
    parent: Optional[TaskRef] = None
    due_on: Optional[date] = None
    due_at: Optional[datetime] = None
    created_at: Optional[datetime] = None    # immutable, safe as a pagination cursor
    modified_at: Optional[datetime] = None   # mutable, drives inbox activity
    num_subtasks: int = 0

    @property
    def assignee_gid(self) -> Optional[str]:
        return self.assignee.gid if self.assignee else None


class AsanaProject(AsanaModel):
    gid: str
    name: str = ""
    archived: bool = False
    color: Optional[str] = None
    modified_at: Optional[datetime] = None
    owner: Optional[UserRef] = None
    members: List[GidRef] = Field(default_factory=list)
    current_status: Optional[ProjectStatus] = None

    @property
    def member_gids(self) -> List[str]:
        return [m.gid for m in self.members]


class TaskDetail(AsanaTask):
    notes: str = ""
    html_notes: str = ""


class AsanaSubtask(AsanaModel):
    gid: str
    name: str = ""
    completed: bool = False
    assignee: Optional[UserRef] = None
    due_on: Optional[date] = None


class AsanaDependency(AsanaModel):
    gid: str
    name: str = ""
    completed: bool = False
    assignee: Optional[UserRef] = None


class AsanaAttachment(AsanaModel):
    gid: str
    name: str = ""
    download_url: Optional[str] = None
    view_url: Optional[str] = None
    permanent_url: Optional[str] = None
    host: Optional[str] = None
    resource_subtype: Optional[str] = None
    size: Optional[int] = None
    created_at: Optional[datetime] = None


class AsanaSection(AsanaModel):
    gid: str
    name: str = ""


class AsanaField(AsanaModel):
    gid: str
    name: str = ""
    type: Optional[str] = None


class AsanaStory(AsanaModel):
    """Activity feed entry on a task. Comments are stories with type='comment'."""

    gid: str
    text: str = ""
    html_text: Optional[str] = None
    created_at: Optional[datetime] = None
    created_by: Optional[UserRef] = None
    type: Optional[str] = None
    resource_subtype: Optional[str] = None
    sticker_name: Optional[str] = None
    num_likes: Optional[int] = None


class AsanaComment(AsanaModel):
    gid: str
    text: str = ""
    html_text: Optional[str] = None
    created_at: Optional[datetime] = None
    created_by: Optional[UserRef] = None
    type: str = "comment"


# ── Derived / transient ─────────────────────────────────────────────────────


class InboxNotification(BaseModel):
    """One story on one of the user's recently active tasks."""

    story_gid: str
    task_gid: str
    task_name: str = ""
    text: str = ""
    created_at: Optional[datetime] = None
    created_by: Optional[UserRef] = None
    resource_subtype: Optional[str] = None
    sticker_name: Optional[str] = None
    num_likes: Optional[int] = None


class CommentSegment(BaseModel):
    """Parsed piece of comment text. Recomputed on every render."""

    type: Literal["text", "profile", "url"]
    value: str
    user_name: Optional[str] = None
    url: Optional[str] = None


class ProjectMembership(BaseModel):
    """A task's project joined with the section it sits in."""

    project_gid: str
    project_name: str = ""
    section_gid: Optional[str] = None
    section_name: Optional[str] = None


class PollResultPacket(BaseModel):
    """Unit of communication from the poller to the presentation layer.

    A failed poll carries only `error`; the previous cache stays valid.
    """

    tasks: Optional[List[AsanaTask]] = None
    projects: Optional[List[AsanaProject]] = None
    unfiltered_task_count: Optional[int] = None
    unfiltered_project_count: Optional[int] = None
    workspace_gid: Optional[str] = None
    has_new_inbox_activity: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class VerifyApiKeyResult(BaseModel):
    valid: bool
    user: Optional[AsanaUser] = None
    error: Optional[str] = None


class CompleteTaskResult(BaseModel):
    success: bool
    error: Optional[str] = None


class ItemType(str, Enum):
    """Which filter lists apply to an item."""

    TASK = "task"
    PROJECT = "project"


class SortBy(str, Enum):
    MODIFIED = "modified"
    DUE = "due"
    NAME = "name"
    ASSIGNEE = "assignee"
    CREATED = "created"
