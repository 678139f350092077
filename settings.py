"""Runtime settings – config/settings.yaml overlaid with environment variables.

Environment variables (all optional):
  DATABASE_URL        – full SQLAlchemy URL (wins over SQLITE_PATH)
  SQLITE_PATH         – SQLite file when DATABASE_URL is unset (default: hn_reader.db)
  HN_API_BASE         – remote API root
  HN_TIMEOUT          – per-request timeout in seconds
  SYNC_FEED           – story list to pull: top, new, best, ask, show or job
  SYNC_STORY_LIMIT    – stories per sync batch
  SYNC_COMMENT_LIMIT  – first-level comments fetched per story
  SYNC_WORKERS        – parallel item fetches (1 = sequential)
  SYNC_INTERVAL_MINUTES – period for ``main.py --schedule``
  LOG_LEVEL
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

log = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent
CONFIG_PATH = PROJECT_ROOT / "config" / "settings.yaml"

HN_API_BASE = "https://hacker-news.firebaseio.com/v0"


@dataclass(frozen=True)
class SyncSettings:
    api_base: str = HN_API_BASE
    timeout: float = 10.0
    feed: str = "top"
    story_limit: int = 50
    comment_limit: int = 20
    fetch_workers: int = 1
    interval_minutes: int = 15


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///hn_reader.db"
    log_level: str = "INFO"
    sync: SyncSettings = field(default_factory=SyncSettings)


def _get_database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    db_path = os.getenv("SQLITE_PATH", "hn_reader.db")
    return f"sqlite:///{db_path}"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        log.debug("No config file at %s – using defaults", path)
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _env_override(current: Any, key: str, cast: type) -> Any:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return current
    try:
        return cast(raw)
    except ValueError:
        log.warning("Ignoring invalid %s=%r", key, raw)
        return current


def load_settings(path: Path | None = None) -> Settings:
    """Read the YAML file, then let environment variables win."""
    load_dotenv(PROJECT_ROOT / ".env")
    data = _load_yaml(path or CONFIG_PATH)
    sync_cfg = data.get("sync", {}) or {}
    defaults = SyncSettings()

    sync = SyncSettings(
        api_base=_env_override(sync_cfg.get("api_base", defaults.api_base), "HN_API_BASE", str),
        timeout=_env_override(float(sync_cfg.get("timeout", defaults.timeout)), "HN_TIMEOUT", float),
        feed=_env_override(str(sync_cfg.get("feed", defaults.feed)), "SYNC_FEED", str).lower(),
        story_limit=_env_override(
            int(sync_cfg.get("story_limit", defaults.story_limit)), "SYNC_STORY_LIMIT", int
        ),
        comment_limit=_env_override(
            int(sync_cfg.get("comment_limit", defaults.comment_limit)), "SYNC_COMMENT_LIMIT", int
        ),
        fetch_workers=max(
            1,
            _env_override(
                int(sync_cfg.get("fetch_workers", defaults.fetch_workers)), "SYNC_WORKERS", int
            ),
        ),
        interval_minutes=_env_override(
            int(sync_cfg.get("interval_minutes", defaults.interval_minutes)),
            "SYNC_INTERVAL_MINUTES",
            int,
        ),
    )
    return Settings(
        database_url=_get_database_url(),
        log_level=os.getenv("LOG_LEVEL", data.get("log_level", "INFO")).upper(),
        sync=sync,
    )
