"""
Static demo workspace for screenshots and offline development.

Activated with PANOPTISANA_DEMO=1. Timestamps and due dates are computed
relative to "now" on every call so the data never goes stale.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

from panoptisana.models import AsanaProject, AsanaTask, AsanaUser, AsanaWorkspace

DEMO_WORKSPACE = AsanaWorkspace(gid="1000000000000001", name="Acme Corp")

DEMO_CURRENT_USER = AsanaUser(
    gid="2000000000000001", name="Alex Morgan", email="alex.morgan@acme.co"
)

_USERS = [
    ("2000000000000001", "Alex Morgan"),
    ("2000000000000002", "Jordan Lee"),
    ("2000000000000003", "Sam Rivera"),
    ("2000000000000004", "Casey Chen"),
    ("2000000000000005", "Taylor Kim"),
    ("2000000000000006", "Morgan Patel"),
    ("2000000000000007", "Riley Brooks"),
    ("2000000000000008", "Quinn Foster"),
]

# gid, name, color, modified days ago, owner gid, member gids, status (title, color)
_PROJECTS = [
    ("3000000000000001", "Product Roadmap", "dark-blue", 0, "2000000000000001", ("01", "02", "03"), ("On track", "green")),
    ("3000000000000002", "Engineering Sprint 24", "dark-green", 1, "2000000000000002", ("01", "02", "04", "05"), ("At risk", "yellow")),
    ("3000000000000003", "Design System", "dark-purple", 2, "2000000000000003", ("01", "03", "07"), ("On track", "green")),
    ("3000000000000004", "Customer Feedback Tracker", "dark-orange", 3, "2000000000000006", ("06", "08"), None),
    ("3000000000000005", "Q1 Marketing Campaign", "dark-pink", 1, "2000000000000008", ("01", "06", "08"), ("On track", "green")),
    ("3000000000000006", "Infrastructure & DevOps", "dark-teal", 5, "2000000000000004", ("02", "04"), ("Off track", "red")),
    ("3000000000000007", "Onboarding Revamp", "light-green", 0, "2000000000000001", ("01", "03", "05"), None),
    ("3000000000000008", "API v2 Migration", "dark-red", 7, "2000000000000005", ("02", "04", "05"), ("At risk", "yellow")),
    ("3000000000000009", "Mobile App Refresh", "light-blue", 2, "2000000000000007", ("01", "03", "07"), ("On track", "green")),
    ("3000000000000010", "Security Audit 2025", "dark-warm-gray", 10, "2000000000000004", ("04", "05"), None),
]

# gid suffix, name, assignee suffix, [(project suffix, section)], due offset, created ago, modified ago, subtasks, parent suffix
_TASKS = [
    ("01", "Define Q2 product priorities", "01", [("01", "Planning")], 3, 14, 0, 4, None),
    ("02", "Competitive analysis: pricing tier comparison", "06", [("01", "Research")], 7, 10, 2, 0, None),
    ("03", "Write RFC for notification system redesign", "01", [("01", "In Progress")], -2, 21, 1, 2, None),
    ("04", "Fix timezone display in notification emails", "02", [("02", "In Progress")], 1, 5, 0, 0, None),
    ("05", "Upgrade database connection pooling", "04", [("02", "To Do")], 5, 3, 1, 3, None),
    ("06", "Review PR #847: Rate limiter middleware", "01", [("02", "In Review")], 0, 2, 0, 0, None),
    ("07", "Add retry logic to webhook delivery", "05", [("02", "In Progress")], 2, 7, 0, 1, None),
    ("08", "Update color token palette for dark mode", "03", [("03", "Components")], 4, 6, 1, 0, None),
    ("09", "Create accessible tooltip component", "07", [("03", "Components")], 6, 4, 2, 2, None),
    ("10", "Audit button variants for WCAG compliance", "01", [("03", "Backlog")], None, 12, 5, 0, None),
    ("11", "Triage feedback from enterprise pilot", "06", [("04", "Inbox")], 1, 2, 0, 0, None),
    ("12", "Synthesize NPS survey results", "08", [("04", "Analysis")], -1, 8, 3, 0, None),
    ("13", "Draft launch blog post", "08", [("05", "Content")], 5, 4, 1, 0, None),
    ("14", "Create social media asset kit", "03", [("05", "Creative")], 8, 3, 0, 5, None),
    ("15", "Coordinate product hunt launch sequence", "01", [("05", "Planning")], 14, 1, 0, 3, None),
    ("16", "Migrate CI pipeline to GitHub Actions", "04", [("06", "In Progress")], -3, 15, 0, 2, None),
    ("17", "Set up staging environment auto-deploy", "02", [("06", "To Do")], 10, 6, 4, 0, None),
    ("18", "Map current onboarding funnel drop-offs", "01", [("07", "Research")], 2, 5, 0, 0, None),
    ("19", "Prototype interactive walkthrough", "03", [("07", "Design")], 9, 3, 1, 0, None),
    ("20", "Document breaking changes for v1 deprecation", "05", [("08", "Documentation")], -5, 20, 2, 0, None),
    ("21", "Build versioned endpoint router", "04", [("08", "In Progress")], 4, 9, 0, 4, None),
    ("22", "Implement pull-to-refresh on dashboard", "07", [("09", "Development")], 3, 7, 1, 0, None),
    ("23", "Optimize image loading for slow connections", "01", [("09", "Performance")], 7, 4, 2, 1, None),
    ("24", "Run dependency vulnerability scan", "04", [("10", "Automated Checks")], 1, 3, 0, 0, None),
    ("25", "Review API authentication flow for token leaks", "05", [("10", "Manual Review")], 6, 8, 3, 0, None),
    ("26", "Write unit tests for rate limiter", "01", [("02", "In Progress")], 2, 3, 0, 0, "07"),
    ("27", "Update dark mode token values for buttons", "03", [("03", "Components"), ("09", "Development")], 4, 2, 0, 0, "08"),
]


def _user_gid(suffix: str) -> str:
    return "20000000000000" + suffix


def _project_gid(suffix: str) -> str:
    return "30000000000000" + suffix


def _task_gid(suffix: str) -> str:
    return "40000000000000" + suffix


def _days_ago(days: int, now: datetime) -> str:
    return (now - timedelta(days=days)).isoformat()


def _due(days: Optional[int], today: date) -> Optional[str]:
    return (today + timedelta(days=days)).isoformat() if days is not None else None


def _user_names() -> Dict[str, str]:
    return dict(_USERS)


def get_demo_users() -> List[AsanaUser]:
    return [
        AsanaUser(gid=gid, name=name, email=name.lower().replace(" ", ".") + "@acme.co")
        for gid, name in _USERS
    ]


def get_demo_membership_map() -> Dict[str, str]:
    """Demo membership gids mirror user gids with a 7 prefix."""
    return {gid: "7" + gid[1:] for gid, _ in _USERS}


def get_demo_projects(now: Optional[datetime] = None) -> List[AsanaProject]:
    now = now or datetime.now(timezone.utc)
    names = _user_names()
    projects = []
    for gid, name, color, modified, owner, members, status in _PROJECTS:
        projects.append(
            AsanaProject.model_validate(
                {
                    "gid": gid,
                    "name": name,
                    "archived": False,
                    "color": color,
                    "modified_at": _days_ago(modified, now),
                    "owner": {"gid": owner, "name": names[owner]},
                    "members": [{"gid": _user_gid(m)} for m in members],
                    "current_status": {"title": status[0], "color": status[1]} if status else None,
                }
            )
        )
    return projects


def get_demo_tasks(now: Optional[datetime] = None) -> List[AsanaTask]:
    now = now or datetime.now(timezone.utc)
    today = now.date()
    names = _user_names()
    project_names = {gid: name for gid, name, *_ in _PROJECTS}
    task_names = {_task_gid(row[0]): row[1] for row in _TASKS}

    tasks = []
    section_counter = 0
    for suffix, name, assignee, placements, due, created, modified, subtasks, parent in _TASKS:
        memberships = []
        for project_suffix, section_name in placements:
            section_counter += 1
            memberships.append(
                {
                    "project": {"gid": _project_gid(project_suffix)},
                    "section": {"gid": f"5000000000000{section_counter:03d}", "name": section_name},
                }
            )
        assignee_gid = _user_gid(assignee)
        tasks.append(
            AsanaTask.model_validate(
                {
                    "gid": _task_gid(suffix),
                    "name": name,
                    "completed": False,
                    "assignee": {"gid": assignee_gid, "name": names[assignee_gid]},
                    "projects": [
                        {"gid": _project_gid(p), "name": project_names[_project_gid(p)]}
                        for p, _ in placements
                    ],
                    "memberships": memberships,
                    "parent": (
                        {"gid": _task_gid(parent), "name": task_names[_task_gid(parent)]}
                        if parent
                        else None
                    ),
                    "due_on": _due(due, today),
                    "created_at": _days_ago(created, now),
                    "modified_at": _days_ago(modified, now),
                    "num_subtasks": subtasks,
                }
            )
        )
    return tasks
