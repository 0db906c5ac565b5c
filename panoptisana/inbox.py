"""
Inbox aggregation.

Builds a merged, newest-first notification list from the activity feeds
of the user's most recently modified tasks. Layered on top of the already
polled task list; never part of the poll cycle itself.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

from panoptisana.backend import AsanaBackend
from panoptisana.config import INBOX_CONCURRENCY
from panoptisana.models import AsanaTask, InboxNotification

logger = logging.getLogger(__name__)

EXCLUDED_STORY_SUBTYPES = {"marked_complete"}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _aware(value: Optional[datetime]) -> datetime:
    if value is None:
        return _EPOCH
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def inbox_candidates(tasks: List[AsanaTask], current_user_id: Optional[str]) -> List[AsanaTask]:
    """The current user's tasks when one is configured, else every task."""
    if current_user_id:
        return [t for t in tasks if t.assignee_gid == current_user_id]
    return list(tasks)


def has_new_inbox_activity(
    tasks: List[AsanaTask],
    current_user_id: Optional[str],
    last_opened: Optional[datetime],
) -> bool:
    """True if any candidate task was modified after the inbox was last opened.

    Pure in-memory check; a missing last_opened means "never opened".
    """
    threshold = _aware(last_opened)
    return any(
        t.modified_at is not None and _aware(t.modified_at) > threshold
        for t in inbox_candidates(tasks, current_user_id)
    )


async def fetch_inbox_notifications(
    backend: AsanaBackend,
    tasks: List[AsanaTask],
    current_user_id: Optional[str],
    limit: int,
    concurrency: int = INBOX_CONCURRENCY,
) -> List[InboxNotification]:
    """
    Fetch stories for the top `limit` most recently modified candidate tasks.

    Args:
        backend: Data source providing get_task_stories()
        tasks: Already-polled task list
        current_user_id: Restrict candidates to this assignee, if set
        limit: Max number of tasks whose feeds are fetched
        concurrency: Max in-flight story fetches

    Returns:
        Notifications from all candidate tasks, newest first. A task whose
        feed fails to load contributes nothing.
    """
    candidates = sorted(
        inbox_candidates(tasks, current_user_id),
        key=lambda t: _aware(t.modified_at),
        reverse=True,
    )[:limit]

    if not candidates:
        return []

    semaphore = asyncio.Semaphore(concurrency)

    async def fetch_one(task: AsanaTask) -> List[InboxNotification]:
        async with semaphore:
            try:
                stories = await backend.get_task_stories(task.gid)
            except Exception as e:
                logger.warning(f"Failed to fetch stories for task {task.gid}: {e}")
                return []
        return [
            InboxNotification(
                story_gid=s.gid,
                task_gid=task.gid,
                task_name=task.name,
                text=s.text or "",
                created_at=s.created_at,
                created_by=s.created_by,
                resource_subtype=s.resource_subtype,
                sticker_name=s.sticker_name,
                num_likes=s.num_likes,
            )
            for s in stories
            if s.resource_subtype not in EXCLUDED_STORY_SUBTYPES
        ]

    results = await asyncio.gather(*[fetch_one(t) for t in candidates])

    notifications = [n for batch in results for n in batch]
    notifications.sort(key=lambda n: _aware(n.created_at), reverse=True)
    logger.info(f"Inbox: {len(notifications)} notifications from {len(candidates)} tasks")
    return notifications
