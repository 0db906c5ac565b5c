"""
Filter & Sort Tests

Inclusion/exclusion rules, sort orders, and the pinned partition.
Run with: pytest tests/test_filters.py -v
"""

from datetime import date, datetime, timezone

import pytest

from panoptisana.config import Settings
from panoptisana.filters import (
    apply_item_filters,
    apply_pinned_partition,
    filter_and_sort_projects,
    filter_and_sort_tasks,
    sort_tasks,
)
from panoptisana.models import AsanaProject, AsanaTask, GidRef, ItemType, ProjectRef, SortBy, UserRef


def task(gid, name="", **kwargs):
    return AsanaTask(gid=gid, name=name or f"Task {gid}", **kwargs)


def ts(day):
    return datetime(2026, 2, day, tzinfo=timezone.utc)


NAMED_TASKS = [
    task("1", "Fix login bug"),
    task("2", "Design homepage"),
    task("3", "Write tests"),
    task("4", "Update README"),
]


class TestApplyItemFilters:
    def test_inclusion_patterns(self):
        settings = Settings(included_task_patterns=["bug", "test"])
        result = apply_item_filters(NAMED_TASKS, ItemType.TASK, settings)
        assert [t.name for t in result] == ["Fix login bug", "Write tests"]

    def test_inclusion_is_case_insensitive(self):
        settings = Settings(included_task_patterns=["README"])
        result = apply_item_filters(NAMED_TASKS, "task", settings)
        assert [t.gid for t in result] == ["4"]

    def test_exclusion_by_gid_and_pattern(self):
        settings = Settings(excluded_task_gids=["1"], excluded_task_patterns=["homepage"])
        result = apply_item_filters(NAMED_TASKS, ItemType.TASK, settings)
        assert [t.gid for t in result] == ["3", "4"]

    def test_inclusion_applied_before_exclusion(self):
        settings = Settings(included_task_patterns=["bug", "test"], excluded_task_patterns=["login"])
        result = apply_item_filters(NAMED_TASKS, ItemType.TASK, settings)
        assert [t.gid for t in result] == ["3"]

    def test_empty_patterns_ignored(self):
        settings = Settings(included_task_patterns=[""], excluded_task_patterns=[""])
        assert len(apply_item_filters(NAMED_TASKS, ItemType.TASK, settings)) == 4

    def test_project_lists_used_for_projects(self):
        projects = [AsanaProject(gid="p1", name="Backend"), AsanaProject(gid="p2", name="Archive 2024")]
        settings = Settings(excluded_project_patterns=["archive"], excluded_task_patterns=["backend"])
        result = apply_item_filters(projects, ItemType.PROJECT, settings)
        assert [p.gid for p in result] == ["p1"]

    def test_input_not_mutated(self):
        items = list(NAMED_TASKS)
        apply_item_filters(items, ItemType.TASK, Settings(excluded_task_gids=["1"]))
        assert items == NAMED_TASKS


class TestPinnedPartition:
    def test_stable_partition(self):
        items = [task("C"), task("A"), task("D"), task("B")]
        result = apply_pinned_partition(items, ["A", "B"])
        assert [t.gid for t in result] == ["A", "B", "C", "D"]

    def test_pin_order_follows_input_not_pin_list(self):
        items = [task("B"), task("A")]
        assert [t.gid for t in apply_pinned_partition(items, ["A", "B"])] == ["B", "A"]

    def test_no_pins(self):
        items = [task("1"), task("2")]
        assert apply_pinned_partition(items, None) == items


class TestSortTasks:
    def test_modified_newest_first(self):
        tasks = [task("old", modified_at=ts(1)), task("new", modified_at=ts(9)), task("none")]
        assert [t.gid for t in sort_tasks(tasks, SortBy.MODIFIED)] == ["new", "old", "none"]

    def test_created_newest_first(self):
        tasks = [task("a", created_at=ts(2)), task("b", created_at=ts(5))]
        assert [t.gid for t in sort_tasks(tasks, "created")] == ["b", "a"]

    def test_due_ascending_missing_last(self):
        tasks = [
            task("none"),
            task("late", due_on=date(2026, 3, 1)),
            task("early", due_on=date(2026, 2, 1)),
            task("timed", due_at=datetime(2026, 2, 15, 9, 0, tzinfo=timezone.utc)),
        ]
        assert [t.gid for t in sort_tasks(tasks, SortBy.DUE)] == ["early", "timed", "late", "none"]

    def test_name_case_insensitive(self):
        tasks = [task("1", "banana"), task("2", "Apple"), task("3", "cherry")]
        assert [t.name for t in sort_tasks(tasks, SortBy.NAME)] == ["Apple", "banana", "cherry"]

    def test_assignee_unassigned_first(self):
        tasks = [
            task("z", assignee=UserRef(gid="u2", name="Zoe")),
            task("u"),
            task("a", assignee=UserRef(gid="u1", name="Adam")),
        ]
        assert [t.gid for t in sort_tasks(tasks, SortBy.ASSIGNEE)] == ["u", "a", "z"]

    def test_no_sort_keeps_order(self):
        tasks = [task("2"), task("1")]
        assert [t.gid for t in sort_tasks(tasks, None)] == ["2", "1"]

    def test_unknown_sort_rejected(self):
        with pytest.raises(ValueError):
            sort_tasks([task("1")], "priority")


class TestFilterAndSortTasks:
    @pytest.fixture
    def tasks(self):
        return [
            task("1", "Fix login bug", projects=[ProjectRef(gid="p1", name="Backend")], modified_at=ts(3)),
            task("2", "Design homepage", projects=[ProjectRef(gid="p2", name="Website")], modified_at=ts(5)),
            task(
                "3",
                "Write tests",
                projects=[ProjectRef(gid="p1", name="Backend")],
                assignee=UserRef(gid="u1", name="Alice Smith"),
                modified_at=ts(1),
            ),
        ]

    def test_project_filter(self, tasks):
        result = filter_and_sort_tasks(tasks, selected_project_gid="p1")
        assert [t.gid for t in result] == ["1", "3"]

    def test_search_matches_assignee_and_project(self, tasks):
        assert [t.gid for t in filter_and_sort_tasks(tasks, search_query="alice")] == ["3"]
        assert [t.gid for t in filter_and_sort_tasks(tasks, search_query="website")] == ["2"]

    def test_sort_then_pin(self, tasks):
        result = filter_and_sort_tasks(tasks, sort_by=SortBy.MODIFIED, pinned_gids=["3"])
        assert [t.gid for t in result] == ["3", "2", "1"]


class TestFilterAndSortProjects:
    @pytest.fixture
    def projects(self):
        return [
            AsanaProject(gid="p1", name="website", members=[GidRef(gid="u1")]),
            AsanaProject(gid="p2", name="Backend", owner=UserRef(gid="u2", name="Bob Jones")),
            AsanaProject(gid="p3", name="Mobile", members=[GidRef(gid="u1"), GidRef(gid="u2")]),
        ]

    def test_sorted_by_name(self, projects):
        assert [p.name for p in filter_and_sort_projects(projects)] == ["Backend", "Mobile", "website"]

    def test_my_projects_only(self, projects):
        result = filter_and_sort_projects(projects, my_projects_only=True, current_user_id="u1")
        assert [p.gid for p in result] == ["p3", "p1"]

    def test_my_projects_only_needs_current_user(self, projects):
        assert len(filter_and_sort_projects(projects, my_projects_only=True)) == 3

    def test_search_matches_owner(self, projects):
        assert [p.gid for p in filter_and_sort_projects(projects, search_query="bob")] == ["p2"]

    def test_pinned_float_to_top(self, projects):
        result = filter_and_sort_projects(projects, pinned_gids=["p1"])
        assert [p.gid for p in result] == ["p1", "p2", "p3"]
