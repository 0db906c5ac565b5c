"""
Asana API client.

Talks to the Asana REST API: one authenticated request at a time with
429 backoff, cursor pagination, and a fallback pagination for the task
search endpoint (which does not reliably return a cursor).

Supports both sync and async modes:
- Async: Uses aiohttp (poll loop, inbox, detail fetches)
- Sync: Uses requests.Session (CLI key verification, simple scripts)
"""

import asyncio
import logging
import time
import warnings
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

import aiohttp
import requests

from panoptisana.config import (
    BASE_URL,
    DEFAULT_MAX_SEARCH_PAGES,
    DEFAULT_RETRY_AFTER_SECONDS,
    MAX_ATTEMPTS,
    MAX_RETRY_AFTER_SECONDS,
    PAGE_LIMIT,
)
from panoptisana.errors import (
    AsanaAPIError,
    AuthError,
    HttpError,
    PaginationExhaustedWarning,
    RateLimitError,
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
    VerifyApiKeyResult,
)

logger = logging.getLogger(__name__)

TASK_FIELDS = (
    "name,assignee.name,assignee.gid,completed,due_on,due_at,modified_at,created_at,"
    "num_subtasks,parent.name,parent.gid,projects.name,projects.gid,"
    "memberships.project.gid,memberships.section.gid,memberships.section.name"
)
TASK_DETAIL_FIELDS = "notes,html_notes," + TASK_FIELDS
PROJECT_FIELDS = (
    "name,archived,color,modified_at,owner.name,members.gid,"
    "current_status.title,current_status.color"
)
USER_FIELDS = "name,email,photo.image_60x60"
SUBTASK_FIELDS = "name,completed,assignee.name,assignee.gid,due_on"
DEPENDENCY_FIELDS = "name,completed,assignee.name,assignee.gid"
ATTACHMENT_FIELDS = "name,download_url,view_url,permanent_url,host,resource_subtype,size,created_at"
COMMENT_FIELDS = "text,html_text,created_by.name,created_at,type"


class StoryFieldSet(str, Enum):
    """opt_fields for story fetches.

    Some story subtypes reject the extended fields. The client starts on
    EXTENDED and moves to BASE once, for the rest of its lifetime.
    """

    EXTENDED = "text,html_text,created_by.name,created_by.gid,created_at,type,resource_subtype,sticker_name,num_likes"
    BASE = "text,html_text,created_by.name,created_by.gid,created_at,type,resource_subtype"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an Asana ISO-8601 timestamp ('...Z' included)."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class AsanaClient:
    """Client for the Asana REST API."""

    BASE_URL = BASE_URL

    # HTTP timeout: (connect_timeout, read_timeout) in seconds
    DEFAULT_TIMEOUT = (10, 30)

    MAX_ATTEMPTS = MAX_ATTEMPTS
    PAGE_LIMIT = PAGE_LIMIT

    def __init__(
        self,
        get_api_key: Callable[[], Optional[str]],
        max_search_pages: int = DEFAULT_MAX_SEARCH_PAGES,
        timeout: tuple = None,
        max_attempts: int = None,
    ):
        # Key lookup is deferred to request time; the caller owns storage
        self._get_api_key = get_api_key
        self.max_search_pages = max_search_pages
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.max_attempts = max_attempts if max_attempts is not None else self.MAX_ATTEMPTS
        self.story_field_set = StoryFieldSet.EXTENDED

        self._session: Optional[aiohttp.ClientSession] = None
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    async def __aenter__(self) -> "AsanaClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        self.session.close()

    # ==================== HTTP ====================

    def _get_session(self) -> aiohttp.ClientSession:
        """Shared aiohttp session, created lazily inside the running loop."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(
                connect=self.timeout[0],
                sock_read=self.timeout[1],
                total=self.timeout[0] + self.timeout[1],
            )
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"Accept": "application/json"},
            )
        return self._session

    def _auth_headers(self) -> Dict[str, str]:
        api_key = self._get_api_key()
        if not api_key:
            raise AuthError()
        return {"Authorization": f"Bearer {api_key}"}

    @staticmethod
    def _parse_retry_after(header_value: Optional[str]) -> float:
        """
        Seconds to wait before retrying a 429.

        The header can be an integer number of seconds or an HTTP-date.
        Missing or unparseable values fall back to 30s; everything is
        capped at 120s.
        """
        if not header_value:
            return DEFAULT_RETRY_AFTER_SECONDS
        try:
            seconds = float(int(header_value.strip()))
        except ValueError:
            try:
                retry_at = parsedate_to_datetime(header_value)
                if retry_at.tzinfo is None:
                    retry_at = retry_at.replace(tzinfo=timezone.utc)
                seconds = (retry_at - datetime.now(timezone.utc)).total_seconds()
            except (ValueError, TypeError):
                return DEFAULT_RETRY_AFTER_SECONDS
        return max(0.0, min(seconds, MAX_RETRY_AFTER_SECONDS))

    @staticmethod
    def _raise_for_status(status: int, body: str, endpoint: str) -> None:
        if 200 <= status < 300:
            return
        logger.error(f"Asana API error {status} on {endpoint}: {body[:500]}")
        if status == 401:
            raise AuthError(f"Asana rejected the API key: {body}", status=status, body=body)
        raise HttpError(status, body)

    async def _fetch(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[dict] = None,
        json_data: Optional[dict] = None,
    ) -> dict:
        """
        Make one authenticated request, retrying only on 429.

        Args:
            endpoint: API path below the base URL
            method: HTTP method
            params: Query parameters
            json_data: JSON body for PUT/POST

        Returns:
            Parsed JSON envelope ({"data": ..., "next_page": ...})

        Raises:
            AuthError: no key configured, or 401
            RateLimitError: still 429 after MAX_ATTEMPTS attempts
            HttpError: any other non-2xx status
        """
        headers = self._auth_headers()
        url = f"{self.BASE_URL}{endpoint}"
        session = self._get_session()

        for attempt in range(1, self.max_attempts + 1):
            async with session.request(
                method, url, params=params, json=json_data, headers=headers
            ) as response:
                if response.status != 429:
                    if 200 <= response.status < 300:
                        return await response.json(content_type=None)
                    body = await response.text()
                    self._raise_for_status(response.status, body, endpoint)
                retry_after = response.headers.get("Retry-After")
                body = await response.text()

            if attempt >= self.max_attempts:
                logger.error(
                    f"Rate limited (429) on {endpoint}, giving up after {attempt} attempts"
                )
                raise RateLimitError(body, retry_after=self._parse_retry_after(retry_after))

            delay = self._parse_retry_after(retry_after)
            logger.warning(
                f"Rate limited (429) on {endpoint}, waiting {delay:.0f}s "
                f"(retry-after={retry_after}, attempt {attempt}/{self.max_attempts})"
            )
            await asyncio.sleep(delay)

        raise RuntimeError("Unexpected retry loop exit")

    def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> dict:
        """Blocking twin of _fetch with the same 429 policy."""
        headers = self._auth_headers()
        url = f"{self.BASE_URL}{endpoint}"

        for attempt in range(1, self.max_attempts + 1):
            response = self.session.request(
                method, url, params=params, json=json, headers=headers, timeout=self.timeout
            )
            if response.status_code != 429:
                self._raise_for_status(response.status_code, response.text, endpoint)
                return response.json()

            retry_after = response.headers.get("Retry-After")
            if attempt >= self.max_attempts:
                logger.error(
                    f"Rate limited (429) on {endpoint}, giving up after {attempt} attempts"
                )
                raise RateLimitError(response.text, retry_after=self._parse_retry_after(retry_after))

            delay = self._parse_retry_after(retry_after)
            logger.warning(
                f"Rate limited (429) on {endpoint}, waiting {delay:.0f}s "
                f"(retry-after={retry_after}, attempt {attempt}/{self.max_attempts})"
            )
            time.sleep(delay)

        raise RuntimeError("Unexpected retry loop exit")

    # ==================== PAGINATION ====================

    async def _fetch_all(self, endpoint: str, params: Optional[dict] = None) -> List[dict]:
        """Follow next_page.offset until the server stops returning one."""
        base_params = dict(params or {})
        base_params["limit"] = self.PAGE_LIMIT
        items: List[dict] = []
        offset = None

        while True:
            page_params = dict(base_params)
            if offset:
                page_params["offset"] = offset
            result = await self._fetch(endpoint, params=page_params)
            items.extend(result.get("data") or [])
            offset = (result.get("next_page") or {}).get("offset")
            if not offset:
                break

        return items

    async def _fetch_all_search(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        max_pages: Optional[int] = None,
    ) -> List[dict]:
        """
        Paginate the task search endpoint.

        Search does not reliably return next_page. Per page:
        1. next_page.offset present: use it
        2. else a full page: ask for created_at.after=<last item's created_at>
        3. else a partial page: done

        Results can repeat across pages, so items are deduplicated by gid.
        The caller must request ascending created_at order; that ordering is
        what makes step 2 lossless.
        """
        max_pages = max_pages or self.max_search_pages
        base_params = dict(params or {})
        base_params["limit"] = self.PAGE_LIMIT

        items: List[dict] = []
        seen_gids = set()
        offset = None
        after = None
        last_created = None
        pages_fetched = 0

        for _ in range(max_pages):
            page_params = dict(base_params)
            if offset:
                page_params["offset"] = offset
            elif after:
                page_params["created_at.after"] = after

            result = await self._fetch(endpoint, params=page_params)
            page_data = result.get("data") or []
            pages_fetched += 1

            self._warn_if_out_of_order(page_data, last_created, endpoint)

            for item in page_data:
                gid = item.get("gid")
                if gid not in seen_gids:
                    seen_gids.add(gid)
                    items.append(item)

            if page_data:
                last_created = page_data[-1].get("created_at") or last_created

            next_offset = (result.get("next_page") or {}).get("offset")
            if next_offset:
                offset, after = next_offset, None
            elif len(page_data) >= self.PAGE_LIMIT:
                last_item_created = page_data[-1].get("created_at")
                if not last_item_created:
                    logger.warning(f"Full page without created_at on {endpoint}; stopping pagination")
                    break
                offset, after = None, last_item_created
            else:
                break
        else:
            logger.warning(
                f"Search on {endpoint} hit the {max_pages}-page cap; "
                f"keeping {len(items)} tasks (results may be incomplete)"
            )
            warnings.warn(
                f"search pagination stopped at {max_pages} pages",
                PaginationExhaustedWarning,
                stacklevel=2,
            )

        logger.info(f"Search fetched {len(items)} tasks across {pages_fetched} page(s)")
        return items

    @staticmethod
    def _warn_if_out_of_order(page_data: List[dict], last_created: Optional[str], endpoint: str) -> None:
        if not page_data or not last_created:
            return
        first = parse_timestamp(page_data[0].get("created_at"))
        previous = parse_timestamp(last_created)
        if first and previous and first < previous:
            logger.warning(
                f"Search page on {endpoint} went backwards in created_at "
                f"({page_data[0].get('created_at')} < {last_created}); fallback paging may skip tasks"
            )

    # ==================== API METHODS ====================

    async def verify_api_key(self) -> VerifyApiKeyResult:
        try:
            result = await self._fetch("/users/me")
            return VerifyApiKeyResult(valid=True, user=AsanaUser.model_validate(result["data"]))
        except (AsanaAPIError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"API key verification failed: {e!r}")
            return VerifyApiKeyResult(valid=False, error=str(e) or type(e).__name__)

    def verify_api_key_sync(self) -> VerifyApiKeyResult:
        try:
            result = self._request_with_retry("GET", "/users/me")
            return VerifyApiKeyResult(valid=True, user=AsanaUser.model_validate(result["data"]))
        except (AsanaAPIError, requests.RequestException) as e:
            logger.warning(f"API key verification failed: {e!r}")
            return VerifyApiKeyResult(valid=False, error=str(e) or type(e).__name__)

    async def get_workspaces(self) -> List[AsanaWorkspace]:
        result = await self._fetch("/workspaces", params={"limit": self.PAGE_LIMIT})
        return [AsanaWorkspace.model_validate(w) for w in result.get("data") or []]

    async def get_users(self, workspace_gid: str) -> List[AsanaUser]:
        raw = await self._fetch_all(
            f"/workspaces/{workspace_gid}/users", params={"opt_fields": USER_FIELDS}
        )
        return [AsanaUser.model_validate(u) for u in raw]

    async def get_user_membership_map(self, workspace_gid: str) -> Dict[str, str]:
        """
        Map user gid -> workspace membership gid.

        Profile links in comment text carry the membership gid:
        https://app.asana.com/1/{workspace_gid}/profile/{membership_gid}
        """
        memberships = await self._fetch_all(
            f"/workspaces/{workspace_gid}/workspace_memberships",
            params={"opt_fields": "user.gid"},
        )
        mapping = {}
        for m in memberships:
            user_gid = (m.get("user") or {}).get("gid")
            if user_gid:
                mapping[user_gid] = m["gid"]
        return mapping

    async def get_tasks(
        self,
        workspace_gid: str,
        assignee_gid: Optional[str] = None,
        max_pages: Optional[int] = None,
    ) -> List[AsanaTask]:
        """Incomplete tasks in the workspace, optionally for one assignee.

        Sorted by created_at ascending for stable fallback paging (created_at
        is immutable, unlike modified_at). Display order is applied later.
        """
        params = {
            "completed": "false",
            "opt_fields": TASK_FIELDS,
            "sort_by": "created_at",
            "sort_ascending": "true",
        }
        if assignee_gid:
            params["assignee"] = assignee_gid
        raw = await self._fetch_all_search(
            f"/workspaces/{workspace_gid}/tasks/search", params=params, max_pages=max_pages
        )
        return [AsanaTask.model_validate(t) for t in raw]

    async def get_projects(self, workspace_gid: str) -> List[AsanaProject]:
        raw = await self._fetch_all(
            f"/workspaces/{workspace_gid}/projects",
            params={"archived": "false", "opt_fields": PROJECT_FIELDS},
        )
        return [AsanaProject.model_validate(p) for p in raw]

    async def complete_task(self, task_gid: str) -> dict:
        return await self._fetch(
            f"/tasks/{task_gid}", method="PUT", json_data={"data": {"completed": True}}
        )

    async def add_comment(self, task_gid: str, text: str) -> AsanaComment:
        result = await self._fetch(
            f"/tasks/{task_gid}/stories", method="POST", json_data={"data": {"text": text}}
        )
        return AsanaComment.model_validate(result["data"])

    async def get_project_sections(self, project_gid: str) -> List[AsanaSection]:
        raw = await self._fetch_all(f"/projects/{project_gid}/sections", params={"opt_fields": "name"})
        return [AsanaSection.model_validate(s) for s in raw]

    async def get_project_fields(self, project_gid: str) -> List[AsanaField]:
        """Custom fields of a project, read off its first task."""
        result = await self._fetch(
            "/tasks",
            params={
                "project": project_gid,
                "opt_fields": "custom_fields.name,custom_fields.type",
                "limit": 1,
            },
        )
        data = result.get("data")
        task = data[0] if isinstance(data, list) and data else None
        if not task or not task.get("custom_fields"):
            return []
        return [AsanaField.model_validate(cf) for cf in task["custom_fields"]]

    async def get_task_detail(self, task_gid: str) -> TaskDetail:
        result = await self._fetch(f"/tasks/{task_gid}", params={"opt_fields": TASK_DETAIL_FIELDS})
        return TaskDetail.model_validate(result["data"])

    async def get_subtasks(self, task_gid: str) -> List[AsanaSubtask]:
        raw = await self._fetch_all(f"/tasks/{task_gid}/subtasks", params={"opt_fields": SUBTASK_FIELDS})
        return [AsanaSubtask.model_validate(s) for s in raw]

    async def get_task_attachments(self, task_gid: str) -> List[AsanaAttachment]:
        raw = await self._fetch_all(
            f"/tasks/{task_gid}/attachments", params={"opt_fields": ATTACHMENT_FIELDS}
        )
        return [AsanaAttachment.model_validate(a) for a in raw]

    async def get_task_dependencies(self, task_gid: str) -> List[AsanaDependency]:
        raw = await self._fetch_all(
            f"/tasks/{task_gid}/dependencies", params={"opt_fields": DEPENDENCY_FIELDS}
        )
        return [AsanaDependency.model_validate(d) for d in raw]

    async def get_task_dependents(self, task_gid: str) -> List[AsanaDependency]:
        raw = await self._fetch_all(
            f"/tasks/{task_gid}/dependents", params={"opt_fields": DEPENDENCY_FIELDS}
        )
        return [AsanaDependency.model_validate(d) for d in raw]

    async def get_task_comments(self, task_gid: str) -> List[AsanaComment]:
        stories = await self._fetch_all(
            f"/tasks/{task_gid}/stories", params={"opt_fields": COMMENT_FIELDS}
        )
        # Only comments, not system stories
        return [AsanaComment.model_validate(s) for s in stories if s.get("type") == "comment"]

    async def get_task_stories(self, task_gid: str) -> List[AsanaStory]:
        """Full activity feed of a task.

        A failed EXTENDED request downgrades this client to BASE fields for
        good and is retried once with BASE. Rate limiting is not a field
        problem and propagates unchanged.
        """
        endpoint = f"/tasks/{task_gid}/stories"
        try:
            raw = await self._fetch_all(endpoint, params={"opt_fields": self.story_field_set.value})
        except RateLimitError:
            raise
        except HttpError:
            if self.story_field_set is not StoryFieldSet.EXTENDED:
                raise
            logger.warning("Extended story fields failed, falling back to base fields for this session")
            self.story_field_set = StoryFieldSet.BASE
            raw = await self._fetch_all(endpoint, params={"opt_fields": self.story_field_set.value})
        return [AsanaStory.model_validate(s) for s in raw]

