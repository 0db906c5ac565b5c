"""
Configuration for the Asana sync engine.

Two layers:
- AppConfig: process-level knobs read from the environment (.env supported)
- Settings: user-facing preferences persisted in the store
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env file if present
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

logger = logging.getLogger(__name__)

BASE_URL = "https://app.asana.com/api/1.0"

# Three attempts total for a rate-limited request: two waits, then surface
MAX_ATTEMPTS = 3
DEFAULT_RETRY_AFTER_SECONDS = 30
MAX_RETRY_AFTER_SECONDS = 120

PAGE_LIMIT = 100
DEFAULT_MAX_SEARCH_PAGES = 20  # safety cap: ~2,000 tasks
INBOX_CONCURRENCY = 5
DEFAULT_INBOX_LIMIT = 30
DEFAULT_POLL_INTERVAL_MINUTES = 5

DEFAULT_STORE_PATH = Path.home() / ".panoptisana" / "store.json"


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, lo: int, hi: int) -> int:
    """Read a clamped integer knob, falling back to the default on junk."""
    val = os.getenv(name)
    if val is None:
        return default
    try:
        return max(lo, min(hi, int(val)))
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {val}")
        return default


class AppConfig(BaseModel):
    """Process-level configuration."""

    api_key: Optional[str] = None
    demo: bool = False
    store_path: Path = DEFAULT_STORE_PATH
    max_search_pages: int = DEFAULT_MAX_SEARCH_PAGES

    @classmethod
    def from_env(cls) -> "AppConfig":
        store_path = os.getenv("PANOPTISANA_STORE_PATH")
        return cls(
            api_key=os.getenv("PANOPTISANA_API_KEY") or None,
            demo=_env_bool("PANOPTISANA_DEMO"),
            store_path=Path(store_path).expanduser() if store_path else DEFAULT_STORE_PATH,
            max_search_pages=_env_int("PANOPTISANA_MAX_SEARCH_PAGES", DEFAULT_MAX_SEARCH_PAGES, 1, 200),
        )


class Settings(BaseModel):
    """User preferences persisted in the store.

    The fan-out and filter components read these but never write them.
    """

    poll_interval_minutes: int = Field(default=DEFAULT_POLL_INTERVAL_MINUTES, ge=1)
    api_key_verified: bool = False

    # User selection
    show_only_my_tasks: bool = False
    current_user_id: Optional[str] = None
    selected_user_ids: List[str] = Field(default_factory=list)

    # Exclusion / inclusion
    excluded_task_gids: List[str] = Field(default_factory=list)
    excluded_task_patterns: List[str] = Field(default_factory=list)
    excluded_project_gids: List[str] = Field(default_factory=list)
    excluded_project_patterns: List[str] = Field(default_factory=list)
    included_task_patterns: List[str] = Field(default_factory=list)
    included_project_patterns: List[str] = Field(default_factory=list)

    # Pins
    pinned_task_gids: List[str] = Field(default_factory=list)
    pinned_project_gids: List[str] = Field(default_factory=list)

    max_search_pages: int = Field(default=DEFAULT_MAX_SEARCH_PAGES, ge=1)
    inbox_limit: int = Field(default=DEFAULT_INBOX_LIMIT, ge=1)
