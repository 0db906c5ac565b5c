"""
Local persistent store.

KeyValueStore is the seam: opaque get/set of JSON-compatible values keyed
by name. AppStore layers typed accessors on top so the rest of the engine
never touches raw keys.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError

from panoptisana.config import Settings
from panoptisana.models import AsanaProject, AsanaTask, AsanaUser

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"
API_KEY_KEY = "api_key"
CACHED_TASKS_KEY = "cached_tasks"
CACHED_PROJECTS_KEY = "cached_projects"
CACHED_USERS_KEY = "cached_users"
MEMBERSHIP_MAP_KEY = "user_membership_map"
SEEN_TIMESTAMPS_KEY = "seen_timestamps"
LAST_INBOX_OPENED_KEY = "last_inbox_opened_at"
ARCHIVED_NOTIFICATIONS_KEY = "archived_notification_gids"


class KeyValueStore(Protocol):
    """Protocol for durable key-value backends."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class InMemoryKeyValueStore:
    """Dict-backed store for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value


class JsonFileKeyValueStore:
    """Single JSON file on disk, rewritten atomically on every set."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._data = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text("utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read store at {self.path}, starting empty: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, ensure_ascii=False), "utf-8")
        os.replace(tmp, self.path)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._write()


class AppStore:
    """Typed accessors over a KeyValueStore."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    # ── Settings ──

    def get_settings(self) -> Settings:
        raw = self.kv.get(SETTINGS_KEY) or {}
        try:
            return Settings.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Stored settings are invalid, using defaults: {e}")
            return Settings()

    def set_settings(self, **updates: Any) -> Settings:
        """Merge updates into the stored settings and return the result."""
        merged = self.get_settings().model_dump(mode="json")
        merged.update(updates)
        settings = Settings.model_validate(merged)
        self.kv.set(SETTINGS_KEY, settings.model_dump(mode="json"))
        return settings

    def get_api_key(self) -> Optional[str]:
        return self.kv.get(API_KEY_KEY)

    def set_api_key(self, api_key: Optional[str]) -> None:
        self.kv.set(API_KEY_KEY, api_key)

    # ── Cached collections ──

    def get_cached_tasks(self) -> List[AsanaTask]:
        return [AsanaTask.model_validate(t) for t in self.kv.get(CACHED_TASKS_KEY) or []]

    def set_cached_tasks(self, tasks: List[AsanaTask]) -> None:
        self.kv.set(CACHED_TASKS_KEY, [t.model_dump(mode="json") for t in tasks])

    def get_cached_projects(self) -> List[AsanaProject]:
        return [AsanaProject.model_validate(p) for p in self.kv.get(CACHED_PROJECTS_KEY) or []]

    def set_cached_projects(self, projects: List[AsanaProject]) -> None:
        self.kv.set(CACHED_PROJECTS_KEY, [p.model_dump(mode="json") for p in projects])

    def get_cached_users(self) -> List[AsanaUser]:
        return [AsanaUser.model_validate(u) for u in self.kv.get(CACHED_USERS_KEY) or []]

    def set_cached_users(self, users: List[AsanaUser]) -> None:
        self.kv.set(CACHED_USERS_KEY, [u.model_dump(mode="json") for u in users])

    def get_user_membership_map(self) -> Dict[str, str]:
        return dict(self.kv.get(MEMBERSHIP_MAP_KEY) or {})

    def set_user_membership_map(self, mapping: Dict[str, str]) -> None:
        self.kv.set(MEMBERSHIP_MAP_KEY, dict(mapping))

    # ── Inbox / read state ──

    def get_seen_timestamps(self) -> Dict[str, str]:
        return dict(self.kv.get(SEEN_TIMESTAMPS_KEY) or {})

    def set_seen_timestamp(self, task_gid: str, timestamp: str) -> None:
        seen = self.get_seen_timestamps()
        seen[task_gid] = timestamp
        self.kv.set(SEEN_TIMESTAMPS_KEY, seen)

    def get_last_inbox_opened_at(self) -> Optional[datetime]:
        raw = self.kv.get(LAST_INBOX_OPENED_KEY)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            logger.warning(f"Ignoring malformed {LAST_INBOX_OPENED_KEY}: {raw}")
            return None

    def set_last_inbox_opened_at(self, when: Optional[datetime] = None) -> datetime:
        when = when or datetime.now(timezone.utc)
        self.kv.set(LAST_INBOX_OPENED_KEY, when.isoformat())
        return when

    def get_archived_notification_gids(self) -> List[str]:
        return list(self.kv.get(ARCHIVED_NOTIFICATIONS_KEY) or [])

    def archive_notification(self, story_gid: str) -> None:
        archived = self.get_archived_notification_gids()
        if story_gid not in archived:
            archived.append(story_gid)
            self.kv.set(ARCHIVED_NOTIFICATIONS_KEY, archived)

    def clear_caches(self) -> None:
        self.set_cached_tasks([])
        self.set_cached_projects([])
        self.set_cached_users([])
        self.set_user_membership_map({})
