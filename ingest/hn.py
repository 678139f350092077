"""Hacker News API client – item and story-list lookups.

Every call is independent: no retries, no caching.  Anything that goes wrong
(timeout, connection error, non-2xx, bad JSON, unexpected shape) is logged and
reported as ``None`` / ``[]``; the caller decides whether that matters.
"""

from __future__ import annotations

import logging

import requests

from ingest.http import build_session, fetch
from settings import HN_API_BASE
from storage.models import RemoteItem

log = logging.getLogger(__name__)

# feed name → endpoint
FEEDS = {
    "top": "topstories",
    "new": "newstories",
    "best": "beststories",
    "ask": "askstories",
    "show": "showstories",
    "job": "jobstories",
}


class HNClient:
    """Read-only client for ``{base}/item/{id}.json`` and the story-id lists."""

    def __init__(
        self,
        base_url: str = HN_API_BASE,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or build_session()

    def close(self) -> None:
        self._session.close()

    def _get_json(self, path: str):
        url = f"{self.base_url}/{path}.json"
        try:
            resp = fetch(self._session, url, timeout=self.timeout)
        except requests.Timeout:
            log.warning("Timed out after %ss fetching %s", self.timeout, url)
            return None
        except requests.RequestException as exc:
            log.warning("Request failed for %s: %s", url, exc)
            return None
        if not resp.ok:
            return None
        try:
            return resp.json()
        except ValueError:
            log.warning("Malformed JSON from %s", url)
            return None

    def fetch_item(self, item_id: int) -> RemoteItem | None:
        payload = self._get_json(f"item/{item_id}")
        if payload is None:
            log.debug("Item %d not available", item_id)
            return None
        try:
            return RemoteItem.from_payload(payload)
        except (TypeError, ValueError) as exc:
            log.warning("Unusable payload for item %d: %s", item_id, exc)
            return None

    def fetch_ids(self, feed: str = "top") -> list[int]:
        """Ordered story ids for *feed* (see FEEDS).  Empty list on failure."""
        endpoint = FEEDS.get(feed)
        if endpoint is None:
            raise ValueError(f"Unknown feed {feed!r}; expected one of {sorted(FEEDS)}")
        payload = self._get_json(endpoint)
        if not isinstance(payload, list):
            if payload is not None:
                log.warning("Expected a list from %s, got %s", endpoint, type(payload).__name__)
            return []
        ids: list[int] = []
        for raw in payload:
            try:
                ids.append(int(raw))
            except (TypeError, ValueError):
                log.debug("Dropping non-integer id %r from %s", raw, endpoint)
        return ids

    def fetch_top_ids(self) -> list[int]:
        return self.fetch_ids("top")
