"""Sync engine – pull top stories and their first-level comments into the store.

Per-item problems (item missing, wrong type, invalid fields, a store error on
one row) are logged and skipped; the batch always runs to the end.  Only a
store that cannot be reached before the batch starts aborts the run.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Sequence

from sqlalchemy.exc import SQLAlchemyError

from ingest.hn import FEEDS, HNClient
from process.classify import classify
from process.errors import SyncError, SyncInProgressError
from settings import SyncSettings
from storage.db import Store
from storage.models import RemoteItem, from_unix

log = logging.getLogger(__name__)

STORY_KINDS = ("story", "job")
DEFAULT_STORY_LIMIT = 50
DEFAULT_COMMENT_LIMIT = 20


@dataclass
class SyncResult:
    synced_count: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"syncedCount": self.synced_count, "message": self.message}


def story_values(item: RemoteItem) -> dict[str, Any]:
    """Map a remote story/job item to store columns.  Raises ValueError if invalid."""
    if not item.by:
        raise ValueError("missing author")
    if not item.time:
        raise ValueError("missing time")
    return {
        "id": item.id,
        "title": item.title or "",
        "url": item.url or None,
        "text": item.text or None,
        "author": item.by,
        "score": max(item.score or 0, 0),
        "descendant_count": max(item.descendants or 0, 0),
        "occurred_at": from_unix(item.time),
        "story_type": classify(item),
    }


def comment_values(item: RemoteItem, story_id: int) -> dict[str, Any]:
    """Map a remote comment to store columns.  Raises ValueError if invalid.

    The API reports the story itself as a top-level comment's parent; that
    becomes ``parent_id = None``.
    """
    if item.deleted:
        raise ValueError("deleted")
    if not item.by:
        raise ValueError("missing author")
    if not item.time:
        raise ValueError("missing time")
    parent_id = item.parent if item.parent not in (None, story_id) else None
    return {
        "id": item.id,
        "story_id": story_id,
        "parent_id": parent_id,
        "author": item.by,
        "text": item.text or "",
        "occurred_at": from_unix(item.time),
    }


class SyncEngine:
    """Runs one bounded sync batch at a time against an injected store and client."""

    def __init__(
        self,
        store: Store,
        client: HNClient,
        story_limit: int = DEFAULT_STORY_LIMIT,
        comment_limit: int = DEFAULT_COMMENT_LIMIT,
        fetch_workers: int = 1,
        feed: str = "top",
    ) -> None:
        self.store = store
        self.client = client
        self.story_limit = story_limit
        self.comment_limit = comment_limit
        if feed not in FEEDS:
            raise ValueError(f"Unknown feed {feed!r}; expected one of {sorted(FEEDS)}")
        self.fetch_workers = max(1, fetch_workers)
        self.feed = feed
        self._guard = threading.Lock()

    @classmethod
    def from_settings(cls, sync_cfg: SyncSettings, store: Store) -> "SyncEngine":
        client = HNClient(base_url=sync_cfg.api_base, timeout=sync_cfg.timeout)
        return cls(
            store,
            client,
            story_limit=sync_cfg.story_limit,
            comment_limit=sync_cfg.comment_limit,
            fetch_workers=sync_cfg.fetch_workers,
            feed=sync_cfg.feed,
        )

    @property
    def running(self) -> bool:
        return self._guard.locked()

    def sync(self) -> SyncResult:
        """Sync the stories on the configured feed.

        Raises SyncInProgressError if another sync is running.
        """
        if not self._guard.acquire(blocking=False):
            raise SyncInProgressError("A sync is already running")
        try:
            return self._run()
        finally:
            self._guard.release()

    # ── internals ────────────────────────────────────────────────────

    def _run(self) -> SyncResult:
        try:
            self.store.ping()
        except SQLAlchemyError as exc:
            raise SyncError("Store is unreachable") from exc

        log.info(
            "Starting Hacker News sync (feed=%s, limit=%d stories)", self.feed, self.story_limit
        )
        top_ids = self._story_ids()[: self.story_limit]
        if not top_ids:
            log.warning("No story ids received – nothing to sync")

        synced = 0
        comments_added = 0
        failed: list[int] = []

        pool_cm = (
            ThreadPoolExecutor(max_workers=self.fetch_workers, thread_name_prefix="hn-fetch")
            if self.fetch_workers > 1
            else nullcontext(None)
        )
        with pool_cm as pool:
            for item in self._fetch_many(pool, top_ids):
                if item is None or item.type not in STORY_KINDS:
                    continue
                if not self._sync_story(item):
                    failed.append(item.id)
                    continue
                synced += 1
                comments_added += self._sync_comments(pool, item)

        if failed:
            log.warning("%d stories not synced: %s", len(failed), failed)
        message = f"Successfully synced {synced} stories and their comments"
        log.info("%s (%d new comments)", message, comments_added)
        return SyncResult(synced_count=synced, message=message)

    def _story_ids(self) -> list[int]:
        if self.feed == "top":
            return self.client.fetch_top_ids()
        return self.client.fetch_ids(self.feed)

    def _fetch_many(
        self, pool: ThreadPoolExecutor | None, ids: Sequence[int]
    ) -> Iterable[RemoteItem | None]:
        """Fetch items, yielding results in the order of *ids*."""
        if pool is None:
            return (self.client.fetch_item(item_id) for item_id in ids)
        return pool.map(self.client.fetch_item, ids)

    def _sync_story(self, item: RemoteItem) -> bool:
        try:
            values = story_values(item)
        except ValueError as exc:
            log.warning("Invalid story data for item %d: %s", item.id, exc)
            return False
        try:
            self.store.upsert_story(values)
        except SQLAlchemyError:
            log.exception("Failed to sync story %d", item.id)
            return False
        return True

    def _sync_comments(self, pool: ThreadPoolExecutor | None, story: RemoteItem) -> int:
        kid_ids = story.kids[: self.comment_limit]
        added = 0
        for item in self._comment_items(pool, kid_ids):
            try:
                values = comment_values(item, story.id)
            except ValueError as exc:
                log.debug("Skipping comment %d on story %d: %s", item.id, story.id, exc)
                continue
            try:
                if self.store.insert_comment_if_absent(values):
                    added += 1
            except SQLAlchemyError:
                log.exception("Failed to sync comment %d", item.id)
        return added

    def _comment_items(
        self, pool: ThreadPoolExecutor | None, ids: Sequence[int]
    ) -> Iterator[RemoteItem]:
        for item in self._fetch_many(pool, ids):
            if item is not None and item.type == "comment":
                yield item
