"""
Formatting and identity resolution for display strings.

Comment text from Asana embeds profile links whose trailing id is usually a
workspace *membership* gid rather than a user gid. parse_comment_segments()
turns such text into display segments with resolved names;
replace_mentions_with_links() performs the inverse when composing a comment.
"""

import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, NamedTuple, Optional, Union

from panoptisana.models import AsanaTask, AsanaUser, CommentSegment, ProjectMembership

logger = logging.getLogger(__name__)

PROFILE_URL_TEMPLATE = "https://app.asana.com/1/{workspace_gid}/profile/{profile_gid}"
URL_DISPLAY_LIMIT = 50

HTML_MENTION_RE = re.compile(r'<a[^>]+data-asana-gid="(\d+)"[^>]*>([^<]+)</a>')

# Profile links take precedence over the generic URL alternative
_SEGMENT_RE = re.compile(
    r"(?P<profile>https://app\.asana\.com/\d+/\d+/profile/(?P<gid>\d+))|(?P<url>https?://[^\s<]+)"
)


class DueDateLabel(NamedTuple):
    text: str
    is_overdue: bool


def extract_users_from_html(html_text: Optional[str]) -> Dict[str, str]:
    """gid -> name from <a data-asana-gid="...">@Name</a> mention markup."""
    found: Dict[str, str] = {}
    if not html_text:
        return found
    for gid, raw_name in HTML_MENTION_RE.findall(html_text):
        name = raw_name.lstrip("@").strip()
        if name:
            found[gid] = name
    return found


def _resolve_profile_name(
    profile_gid: str,
    user_names: Dict[str, str],
    membership_names: Dict[str, str],
    html_names: Dict[str, str],
) -> Optional[str]:
    # 1. user gid, 2. membership gid, 3. mention markup
    return user_names.get(profile_gid) or membership_names.get(profile_gid) or html_names.get(profile_gid)


def parse_comment_segments(
    text: Optional[str],
    users: List[AsanaUser],
    html_text: Optional[str] = None,
    membership_map: Optional[Dict[str, str]] = None,
) -> List[CommentSegment]:
    """
    Split comment text into text, profile and url segments.

    Args:
        text: Plain comment text
        users: Cached workspace users
        html_text: Rich-text variant; its mention markup fills in names for
            users missing from the cache (never overrides it)
        membership_map: user gid -> membership gid

    Returns:
        Ordered segments; empty for empty text. Unresolvable profiles
        display as "Profile" with user_name None.
    """
    if not text:
        return []

    user_names = {u.gid: u.name for u in users if u.name}
    html_names = extract_users_from_html(html_text)

    known_names = dict(html_names)
    known_names.update(user_names)
    membership_names: Dict[str, str] = {}
    for user_gid, membership_gid in (membership_map or {}).items():
        name = known_names.get(user_gid)
        if name:
            membership_names[membership_gid] = name

    segments: List[CommentSegment] = []
    cursor = 0
    for match in _SEGMENT_RE.finditer(text):
        if match.start() > cursor:
            segments.append(CommentSegment(type="text", value=text[cursor:match.start()]))
        cursor = match.end()

        if match.group("profile"):
            name = _resolve_profile_name(match.group("gid"), user_names, membership_names, html_names)
            segments.append(
                CommentSegment(
                    type="profile",
                    value=name or "Profile",
                    user_name=name,
                    url=match.group("profile"),
                )
            )
        else:
            url = match.group("url")
            display = url[:URL_DISPLAY_LIMIT] + "..." if len(url) > URL_DISPLAY_LIMIT else url
            segments.append(CommentSegment(type="url", value=display, url=url))

    if cursor < len(text):
        segments.append(CommentSegment(type="text", value=text[cursor:]))

    return segments


def replace_mentions_with_links(
    text: str,
    users: List[AsanaUser],
    workspace_gid: Optional[str] = None,
    membership_map: Optional[Dict[str, str]] = None,
) -> str:
    """Replace @Name mentions with Asana profile links.

    Longest names are matched first so "@Alice Smith" never links to a
    user named "Alice". Unknown mentions are left as typed.
    """
    if not text or not users:
        return text

    membership_map = membership_map or {}
    workspace = workspace_gid or "0"
    result = text
    for user in sorted((u for u in users if u.name), key=lambda u: len(u.name), reverse=True):
        pattern = re.compile("@" + re.escape(user.name) + r"(?!\w)", re.IGNORECASE)
        link = PROFILE_URL_TEMPLATE.format(
            workspace_gid=workspace,
            profile_gid=membership_map.get(user.gid) or user.gid,
        )
        result = pattern.sub(lambda _m: link, result)
    return result


def build_project_memberships(task: AsanaTask) -> List[ProjectMembership]:
    """Join task.projects with the section each project's membership points at."""
    sections = {}
    for m in task.memberships:
        if m.project and m.section:
            sections[m.project.gid] = m.section

    result = []
    for project in task.projects:
        section = sections.get(project.gid)
        result.append(
            ProjectMembership(
                project_gid=project.gid,
                project_name=project.name,
                section_gid=section.gid if section else None,
                section_name=section.name if section else None,
            )
        )
    return result


def _short_date(d: date) -> str:
    return f"{d:%b} {d.day}"


def format_due_date(
    due_on: Union[date, str, None],
    now: Optional[datetime] = None,
) -> Optional[DueDateLabel]:
    """"Today", "Tomorrow" or "Jan 15", plus whether the date is past."""
    if not due_on:
        return None
    if isinstance(due_on, str):
        try:
            due = date.fromisoformat(due_on[:10])
        except ValueError:
            logger.debug(f"Unparseable due date: {due_on}")
            return None
    elif isinstance(due_on, datetime):
        due = due_on.astimezone().date() if due_on.tzinfo else due_on.date()
    else:
        due = due_on

    today = (now or datetime.now()).date()
    if due == today:
        text = "Today"
    elif due == today + timedelta(days=1):
        text = "Tomorrow"
    else:
        text = _short_date(due)
    return DueDateLabel(text=text, is_overdue=due < today)


def format_relative_time(
    timestamp: Union[datetime, str, None],
    now: Optional[datetime] = None,
) -> str:
    """"just now", "5m ago", "2h ago", "3d ago", else a short date."""
    if not timestamp:
        return ""
    if isinstance(timestamp, str):
        try:
            timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        except ValueError:
            return ""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    seconds = (now - timestamp).total_seconds()
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return _short_date(timestamp.date())
