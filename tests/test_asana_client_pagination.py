"""
Asana Client Pagination and Endpoint Tests

Cursor pagination, the created_at fallback used by task search, and the
story field-set downgrade.
Run with: pytest tests/test_asana_client_pagination.py -v
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock, patch

import pytest

from panoptisana.asana_client import AsanaClient, StoryFieldSet
from panoptisana.errors import PaginationExhaustedWarning, RateLimitError

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_mock_response(status, json_data=None, headers=None, text=""):
    mock = AsyncMock()
    mock.status = status
    mock.headers = headers or {}
    mock.json = AsyncMock(return_value=json_data if json_data is not None else {})
    mock.text = AsyncMock(return_value=text)
    return mock


def make_mock_session(responses, calls):
    queue = list(responses)

    @asynccontextmanager
    async def mock_request(method, url, params=None, json=None, headers=None):
        calls.append({"method": method, "url": url, "params": dict(params or {}), "json": json})
        yield queue.pop(0)

    session = Mock()
    session.request = mock_request
    session.closed = False
    return session


def make_items(start, count, with_created=True):
    """Task dicts with strictly increasing created_at."""
    items = []
    for i in range(start, start + count):
        item = {"gid": str(i), "name": f"Task {i}"}
        if with_created:
            item["created_at"] = (BASE_TIME + timedelta(minutes=i)).isoformat().replace("+00:00", "Z")
        items.append(item)
    return items


def page(items, offset=None):
    return make_mock_response(
        200, json_data={"data": items, "next_page": {"offset": offset} if offset else None}
    )


@pytest.fixture
def client():
    return AsanaClient(lambda: "test_key")


class TestStandardPagination:
    """_fetch_all follows next_page.offset."""

    @pytest.mark.asyncio
    async def test_follows_cursor_until_absent(self, client):
        calls = []
        responses = [page(make_items(0, 2), offset="abc"), page(make_items(2, 1))]
        with patch.object(client, "_get_session", return_value=make_mock_session(responses, calls)):
            items = await client._fetch_all("/workspaces/1/users", params={"opt_fields": "name"})

        assert [i["gid"] for i in items] == ["0", "1", "2"]
        assert len(calls) == 2
        assert calls[0]["params"] == {"opt_fields": "name", "limit": 100}
        assert calls[1]["params"]["offset"] == "abc"


class TestSearchPagination:
    """_fetch_all_search: cursor, created_at.after fallback, dedup, page cap."""

    @pytest.mark.asyncio
    async def test_full_page_without_cursor_uses_created_at(self, client):
        first = make_items(0, 100)
        calls = []
        responses = [page(first), page(make_items(100, 5))]
        with patch.object(client, "_get_session", return_value=make_mock_session(responses, calls)):
            items = await client._fetch_all_search("/workspaces/1/tasks/search")

        assert len(items) == 105
        assert calls[1]["params"]["created_at.after"] == first[-1]["created_at"]
        assert "offset" not in calls[1]["params"]

    @pytest.mark.asyncio
    async def test_partial_page_stops(self, client):
        calls = []
        with patch.object(client, "_get_session", return_value=make_mock_session([page(make_items(0, 99))], calls)):
            items = await client._fetch_all_search("/workspaces/1/tasks/search")

        assert len(items) == 99
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_cursor_preferred_over_created_at(self, client):
        calls = []
        responses = [page(make_items(0, 100), offset="next"), page(make_items(100, 3))]
        with patch.object(client, "_get_session", return_value=make_mock_session(responses, calls)):
            await client._fetch_all_search("/workspaces/1/tasks/search")

        assert calls[1]["params"]["offset"] == "next"
        assert "created_at.after" not in calls[1]["params"]

    @pytest.mark.asyncio
    async def test_mixed_strategies_never_duplicate(self, client):
        """Cursor, then fallback, with overlapping items across pages."""
        calls = []
        responses = [
            page(make_items(0, 100), offset="p2"),
            page(make_items(90, 100)),           # overlaps 90..99, no cursor
            page(make_items(185, 10)),           # overlaps 185..189, partial
        ]
        with patch.object(client, "_get_session", return_value=make_mock_session(responses, calls)):
            items = await client._fetch_all_search("/workspaces/1/tasks/search")

        gids = [i["gid"] for i in items]
        assert len(gids) == len(set(gids))
        assert len(gids) == 195
        assert calls[2]["params"]["created_at.after"] == make_items(189, 1)[0]["created_at"]

    @pytest.mark.asyncio
    async def test_full_page_missing_created_at_stops(self, client, caplog):
        calls = []
        items_ = make_items(0, 100, with_created=False)
        with patch.object(client, "_get_session", return_value=make_mock_session([page(items_)], calls)):
            items = await client._fetch_all_search("/workspaces/1/tasks/search")

        assert len(items) == 100
        assert len(calls) == 1
        assert "without created_at" in caplog.text

    @pytest.mark.asyncio
    async def test_page_cap_warns_and_keeps_partial_data(self, client):
        calls = []
        responses = [page(make_items(i * 100, 100), offset=f"o{i}") for i in range(3)]
        with patch.object(client, "_get_session", return_value=make_mock_session(responses, calls)):
            with pytest.warns(PaginationExhaustedWarning):
                items = await client._fetch_all_search("/workspaces/1/tasks/search", max_pages=2)

        assert len(calls) == 2
        assert len(items) == 200

    @pytest.mark.asyncio
    async def test_out_of_order_page_is_logged_not_aborted(self, client, caplog):
        calls = []
        responses = [page(make_items(50, 100), offset="o1"), page(make_items(0, 10))]
        with patch.object(client, "_get_session", return_value=make_mock_session(responses, calls)):
            items = await client._fetch_all_search("/workspaces/1/tasks/search")

        assert len(items) == 110
        assert "went backwards in created_at" in caplog.text


class TestTaskEndpoints:
    """Endpoint wiring and model parsing."""

    @pytest.mark.asyncio
    async def test_get_tasks_search_params(self, client):
        calls = []
        data = [{"gid": "1", "name": "Fix login bug", "assignee": {"gid": "u1", "name": "Alice"}}]
        with patch.object(client, "_get_session", return_value=make_mock_session([page(data)], calls)):
            tasks = await client.get_tasks("ws1", assignee_gid="u1")

        assert calls[0]["url"].endswith("/workspaces/ws1/tasks/search")
        params = calls[0]["params"]
        assert params["assignee"] == "u1"
        assert params["completed"] == "false"
        assert params["sort_by"] == "created_at"
        assert params["sort_ascending"] == "true"
        assert "memberships.section.name" in params["opt_fields"]
        assert tasks[0].assignee_gid == "u1"

    @pytest.mark.asyncio
    async def test_get_tasks_without_assignee(self, client):
        calls = []
        with patch.object(client, "_get_session", return_value=make_mock_session([page([])], calls)):
            await client.get_tasks("ws1")

        assert "assignee" not in calls[0]["params"]

    @pytest.mark.asyncio
    async def test_get_projects_excludes_archived(self, client):
        calls = []
        data = [{"gid": "p1", "name": "Backend", "members": [{"gid": "u1"}]}]
        with patch.object(client, "_get_session", return_value=make_mock_session([page(data)], calls)):
            projects = await client.get_projects("ws1")

        assert calls[0]["params"]["archived"] == "false"
        assert projects[0].member_gids == ["u1"]

    @pytest.mark.asyncio
    async def test_membership_map(self, client):
        calls = []
        data = [
            {"gid": "112345", "user": {"gid": "12345"}},
            {"gid": "167890", "user": {"gid": "67890"}},
            {"gid": "199999", "user": None},
        ]
        with patch.object(client, "_get_session", return_value=make_mock_session([page(data)], calls)):
            mapping = await client.get_user_membership_map("ws1")

        assert mapping == {"12345": "112345", "67890": "167890"}
        assert calls[0]["params"]["opt_fields"] == "user.gid"

    @pytest.mark.asyncio
    async def test_complete_task_puts_completed_true(self, client):
        calls = []
        responses = [make_mock_response(200, json_data={"data": {"gid": "t1", "completed": True}})]
        with patch.object(client, "_get_session", return_value=make_mock_session(responses, calls)):
            await client.complete_task("t1")

        assert calls[0]["method"] == "PUT"
        assert calls[0]["json"] == {"data": {"completed": True}}

    @pytest.mark.asyncio
    async def test_add_comment_posts_text(self, client):
        calls = []
        responses = [make_mock_response(200, json_data={"data": {"gid": "s1", "text": "hi"}})]
        with patch.object(client, "_get_session", return_value=make_mock_session(responses, calls)):
            comment = await client.add_comment("t1", "hi")

        assert calls[0]["method"] == "POST"
        assert calls[0]["url"].endswith("/tasks/t1/stories")
        assert calls[0]["json"] == {"data": {"text": "hi"}}
        assert comment.gid == "s1"

    @pytest.mark.asyncio
    async def test_get_task_comments_filters_system_stories(self, client):
        calls = []
        data = [
            {"gid": "s1", "type": "comment", "text": "Looks good"},
            {"gid": "s2", "type": "system", "text": "changed the due date"},
        ]
        with patch.object(client, "_get_session", return_value=make_mock_session([page(data)], calls)):
            comments = await client.get_task_comments("t1")

        assert [c.gid for c in comments] == ["s1"]

    @pytest.mark.asyncio
    async def test_project_fields_from_first_task(self, client):
        calls = []
        data = [{"gid": "t1", "custom_fields": [{"gid": "f1", "name": "Priority", "type": "enum"}]}]
        with patch.object(client, "_get_session", return_value=make_mock_session([page(data)], calls)):
            fields = await client.get_project_fields("p1")

        assert calls[0]["params"]["project"] == "p1"
        assert calls[0]["params"]["limit"] == 1
        assert fields[0].name == "Priority"

    @pytest.mark.asyncio
    async def test_project_fields_empty_project(self, client):
        calls = []
        with patch.object(client, "_get_session", return_value=make_mock_session([page([])], calls)):
            assert await client.get_project_fields("p1") == []


class TestStoryFieldDowngrade:
    """EXTENDED → BASE happens once per client."""

    @pytest.mark.asyncio
    async def test_downgrades_once_on_http_error(self, client):
        calls = []
        responses = [
            make_mock_response(400, text="invalid field sticker_name"),
            page([{"gid": "s1", "text": "hi", "resource_subtype": "comment_added"}]),
            page([{"gid": "s2", "text": "again"}]),
        ]
        with patch.object(client, "_get_session", return_value=make_mock_session(responses, calls)):
            first = await client.get_task_stories("t1")
            second = await client.get_task_stories("t2")

        assert client.story_field_set is StoryFieldSet.BASE
        assert calls[0]["params"]["opt_fields"] == StoryFieldSet.EXTENDED.value
        assert calls[1]["params"]["opt_fields"] == StoryFieldSet.BASE.value
        assert calls[2]["params"]["opt_fields"] == StoryFieldSet.BASE.value
        assert first[0].gid == "s1"
        assert second[0].gid == "s2"

    @pytest.mark.asyncio
    async def test_rate_limit_does_not_downgrade(self, client):
        calls = []
        responses = [make_mock_response(429) for _ in range(3)]
        with patch.object(client, "_get_session", return_value=make_mock_session(responses, calls)):
            with patch("panoptisana.asana_client.asyncio.sleep", new_callable=AsyncMock):
                with pytest.raises(RateLimitError):
                    await client.get_task_stories("t1")

        assert client.story_field_set is StoryFieldSet.EXTENDED
