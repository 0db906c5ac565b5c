"""
Filter and sort utilities.

Pure functions over already-fetched collections; no I/O. The poller caches
unfiltered data and the presentation layer runs these on every keystroke.
"""

import locale
from datetime import datetime, time, timezone
from typing import List, Optional, Sequence, TypeVar, Union

from panoptisana.config import Settings
from panoptisana.models import AsanaProject, AsanaTask, ItemType, SortBy

T = TypeVar("T")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)
# Missing due dates sort after every real one
_NO_DUE_DATE = datetime(9999, 12, 31, tzinfo=timezone.utc)


def _aware(value: Optional[datetime], default: datetime = _EPOCH) -> datetime:
    if value is None:
        return default
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _locale_key(text: Optional[str]) -> str:
    return locale.strxfrm((text or "").casefold())


def _due_key(task: AsanaTask) -> datetime:
    if task.due_on is not None:
        return datetime.combine(task.due_on, time.min, tzinfo=timezone.utc)
    return _aware(task.due_at, _NO_DUE_DATE)


def apply_pinned_partition(items: Sequence[T], pinned_gids: Optional[Sequence[str]] = None) -> List[T]:
    """Float pinned items to the top. Both groups keep their relative order."""
    if not pinned_gids:
        return list(items)
    pin_set = set(pinned_gids)
    pinned = [item for item in items if item.gid in pin_set]
    unpinned = [item for item in items if item.gid not in pin_set]
    return pinned + unpinned


def apply_item_filters(items: Sequence[T], item_type: Union[ItemType, str], settings: Settings) -> List[T]:
    """
    Apply inclusion then exclusion rules.

    Inclusion (when any patterns are set): the lowercased name must contain
    at least one pattern. Exclusion: drop listed gids and names containing
    any excluded pattern. Empty patterns are ignored.
    """
    if ItemType(item_type) is ItemType.TASK:
        excluded_gids = settings.excluded_task_gids
        exclude_patterns = settings.excluded_task_patterns
        include_patterns = settings.included_task_patterns
    else:
        excluded_gids = settings.excluded_project_gids
        exclude_patterns = settings.excluded_project_patterns
        include_patterns = settings.included_project_patterns

    excluded = set(excluded_gids)
    include = [p.lower() for p in include_patterns if p]
    exclude = [p.lower() for p in exclude_patterns if p]

    result = []
    for item in items:
        name = (item.name or "").lower()
        if include and not any(p in name for p in include):
            continue
        if item.gid in excluded:
            continue
        if any(p in name for p in exclude):
            continue
        result.append(item)
    return result


def sort_tasks(tasks: Sequence[AsanaTask], sort_by: Union[SortBy, str, None]) -> List[AsanaTask]:
    result = list(tasks)
    if not sort_by:
        return result
    sort_by = SortBy(sort_by)

    if sort_by is SortBy.MODIFIED:
        result.sort(key=lambda t: _aware(t.modified_at), reverse=True)
    elif sort_by is SortBy.DUE:
        result.sort(key=_due_key)
    elif sort_by is SortBy.NAME:
        result.sort(key=lambda t: _locale_key(t.name))
    elif sort_by is SortBy.ASSIGNEE:
        # No assignee sorts as "" i.e. first
        result.sort(key=lambda t: _locale_key(t.assignee.name if t.assignee else ""))
    elif sort_by is SortBy.CREATED:
        result.sort(key=lambda t: _aware(t.created_at), reverse=True)
    return result


def filter_and_sort_tasks(
    tasks: Sequence[AsanaTask],
    search_query: Optional[str] = None,
    sort_by: Union[SortBy, str, None] = None,
    selected_project_gid: Optional[str] = None,
    pinned_gids: Optional[Sequence[str]] = None,
) -> List[AsanaTask]:
    """Project filter, then search (name/assignee/project names), sort, pin."""
    result = list(tasks)

    if selected_project_gid:
        result = [t for t in result if any(p.gid == selected_project_gid for p in t.projects)]

    if search_query:
        q = search_query.lower()

        def matches(t: AsanaTask) -> bool:
            assignee = (t.assignee.name if t.assignee else None) or ""
            project_names = " ".join(p.name.lower() for p in t.projects)
            return q in (t.name or "").lower() or q in assignee.lower() or q in project_names

        result = [t for t in result if matches(t)]

    return apply_pinned_partition(sort_tasks(result, sort_by), pinned_gids)


def filter_and_sort_projects(
    projects: Sequence[AsanaProject],
    search_query: Optional[str] = None,
    my_projects_only: bool = False,
    current_user_id: Optional[str] = None,
    pinned_gids: Optional[Sequence[str]] = None,
) -> List[AsanaProject]:
    """Membership filter, then search (name/owner), sorted by name, pin."""
    result = list(projects)

    if my_projects_only and current_user_id:
        result = [p for p in result if current_user_id in p.member_gids]

    if search_query:
        q = search_query.lower()
        result = [
            p
            for p in result
            if q in (p.name or "").lower() or q in ((p.owner.name if p.owner else None) or "").lower()
        ]

    result.sort(key=lambda p: _locale_key(p.name))
    return apply_pinned_partition(result, pinned_gids)
