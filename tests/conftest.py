import datetime as dt
import threading
from typing import Any

import pytest

from storage.db import Store
from storage.models import RemoteItem


class FakeClient:
    """Stands in for HNClient: serves canned payloads, records what was asked for."""

    def __init__(self, top_ids, items: dict[int, dict[str, Any]], feeds=None):
        self.top_ids = list(top_ids)
        self.items = items
        self.feeds: dict[str, list[int]] = feeds or {}
        self.fetched: list[int] = []

    def fetch_top_ids(self):
        return list(self.top_ids)

    def fetch_ids(self, feed):
        return list(self.feeds.get(feed, []))

    def fetch_item(self, item_id):
        self.fetched.append(item_id)
        payload = self.items.get(item_id)
        if payload is None:
            return None
        try:
            return RemoteItem.from_payload(payload)
        except (TypeError, ValueError):
            return None


class BlockingClient(FakeClient):
    """Holds every top-ids call open until ``release`` is set."""

    def __init__(self, top_ids, items):
        super().__init__(top_ids, items)
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch_top_ids(self):
        self.entered.set()
        assert self.release.wait(timeout=5), "blocked sync was never released"
        return super().fetch_top_ids()


@pytest.fixture
def store(tmp_path):
    s = Store(f"sqlite:///{tmp_path / 'hn.sqlite3'}").init()
    yield s
    s.dispose()


def add_story(store: Store, story_id: int, **overrides) -> None:
    values = {
        "id": story_id,
        "title": f"Story {story_id}",
        "url": f"https://example.com/{story_id}",
        "text": None,
        "author": "alice",
        "score": 10,
        "descendant_count": 0,
        "occurred_at": dt.datetime(2024, 1, 1) + dt.timedelta(minutes=story_id),
        "story_type": "story",
    }
    values.update(overrides)
    store.upsert_story(values)


def add_comment(store: Store, comment_id: int, story_id: int, **overrides) -> None:
    values = {
        "id": comment_id,
        "story_id": story_id,
        "parent_id": None,
        "author": "bob",
        "text": f"Comment {comment_id}",
        "occurred_at": dt.datetime(2024, 1, 2) + dt.timedelta(minutes=comment_id),
    }
    values.update(overrides)
    store.insert_comment_if_absent(values)
