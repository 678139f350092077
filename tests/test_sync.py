import copy
import threading

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from conftest import BlockingClient, FakeClient
from process.errors import SyncError, SyncInProgressError
from process.sync import SyncEngine, story_values
from storage.models import RemoteItem

ITEMS = {
    1: {
        "id": 1,
        "type": "story",
        "title": "Test Story",
        "url": "https://example.com",
        "by": "testuser",
        "score": 100,
        "descendants": 5,
        "time": 1640995200,
        "kids": [10, 11],
    },
    2: {
        "id": 2,
        "type": "story",
        "title": "Ask HN: What is your favorite programming language?",
        "text": "Just curious about everyone's preferences.",
        "by": "askuser",
        "score": 50,
        "descendants": 10,
        "time": 1640998800,
        "kids": [20],
    },
    3: {
        "id": 3,
        "type": "job",
        "title": "Software Engineer at Tech Company",
        "url": "https://jobs.example.com",
        "by": "recruiter",
        "score": 1,
        "time": 1641002400,
    },
    10: {
        "id": 10,
        "type": "comment",
        "text": "Great article! Thanks for sharing.",
        "by": "commenter",
        "time": 1640999400,
        "parent": 1,
    },
    11: {
        "id": 11,
        "type": "comment",
        "text": "I agree with the previous comment.",
        "by": "replier",
        "time": 1641000000,
        "parent": 10,
    },
    20: {
        "id": 20,
        "type": "comment",
        "text": "Python, obviously.",
        "by": "pythonista",
        "time": 1641000600,
        "parent": 2,
    },
}


def _engine(store, top_ids=(1, 2, 3), items=None, **kwargs):
    client = FakeClient(top_ids, copy.deepcopy(items or ITEMS))
    return SyncEngine(store, client, **kwargs), client


def test_sync_stores_stories_and_comments(store):
    engine, _ = _engine(store)
    result = engine.sync()

    assert result.synced_count == 3
    assert result.message == "Successfully synced 3 stories and their comments"
    assert result.to_dict() == {"syncedCount": 3, "message": result.message}

    ask = store.get_story_by_id(2)
    assert ask.story_type == "ask"
    assert ask.url is None
    assert ask.text.startswith("Just curious")
    assert store.get_story_by_id(3).story_type == "job"
    assert store.get_story_by_id(3).descendant_count == 0

    top_level = store.get_comment_by_id(10)
    assert top_level.story_id == 1
    assert top_level.parent_id is None
    assert store.get_comment_by_id(11).parent_id == 10
    assert [c.id for c in store.get_comments_by_story(1)] == [10, 11]


def test_absent_item_is_skipped(store):
    items = {k: v for k, v in ITEMS.items() if k != 2}
    engine, _ = _engine(store, items=items)

    result = engine.sync()

    assert result.synced_count == 2
    assert not store.story_exists(2)
    assert store.story_exists(1) and store.story_exists(3)


def test_non_story_kinds_from_top_ids_are_skipped(store):
    items = copy.deepcopy(ITEMS)
    items[4] = {"id": 4, "type": "poll", "title": "Poll", "by": "p", "time": 1641000000}
    engine, _ = _engine(store, top_ids=(10, 4, 1), items=items)

    assert engine.sync().synced_count == 1
    assert not store.story_exists(10)
    assert not store.story_exists(4)


def test_invalid_story_counts_as_not_synced(store):
    items = copy.deepcopy(ITEMS)
    del items[1]["by"]
    engine, _ = _engine(store, items=items)

    assert engine.sync().synced_count == 2
    assert not store.story_exists(1)
    # comments of a story that was not stored are not fetched
    assert store.get_comment_by_id(10) is None


def test_batch_and_comment_limits(store):
    engine, client = _engine(store, top_ids=(1, 2, 3), story_limit=2, comment_limit=1)

    assert engine.sync().synced_count == 2
    assert not store.story_exists(3)
    assert store.get_comment_by_id(10) is not None
    assert store.get_comment_by_id(11) is None
    assert 11 not in client.fetched


def test_resync_is_idempotent_for_comments(store):
    engine, client = _engine(store)
    engine.sync()

    client.items[10]["text"] = "Edited on the remote side"
    engine.sync()

    assert store.count_comments(1) == 2
    assert store.get_comment_by_id(10).text == "Great article! Thanks for sharing."


def test_resync_updates_story_in_place(store):
    engine, client = _engine(store)
    engine.sync()
    before = store.get_story_by_id(1)

    client.items[1]["score"] = 250
    client.items[1]["title"] = "Show HN: Test Story v2"
    client.items[1]["time"] = 1700000000
    engine.sync()
    after = store.get_story_by_id(1)

    assert after.id == before.id
    assert after.score == 250
    assert after.story_type == "show"
    assert after.first_seen_at == before.first_seen_at
    assert after.occurred_at == before.occurred_at
    assert after.last_synced_at >= before.last_synced_at


def test_store_error_on_one_story_does_not_abort_batch(store, monkeypatch):
    real_upsert = store.upsert_story

    def flaky_upsert(values):
        if values["id"] == 2:
            raise SQLAlchemyError("constraint violated")
        return real_upsert(values)

    monkeypatch.setattr(store, "upsert_story", flaky_upsert)
    engine, _ = _engine(store)

    assert engine.sync().synced_count == 2
    assert store.story_exists(1) and store.story_exists(3)
    assert not store.story_exists(2)


def test_unreachable_top_ids_reports_zero(store):
    engine, _ = _engine(store, top_ids=())
    result = engine.sync()
    assert result.synced_count == 0
    assert result.message == "Successfully synced 0 stories and their comments"


def test_unreachable_store_raises(store, monkeypatch):
    def broken_ping():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(store, "ping", broken_ping)
    engine, client = _engine(store)

    with pytest.raises(SyncError):
        engine.sync()
    assert client.fetched == []


def test_overlapping_sync_is_rejected(store):
    client = BlockingClient((1, 2, 3), copy.deepcopy(ITEMS))
    engine = SyncEngine(store, client)
    results = []
    worker = threading.Thread(target=lambda: results.append(engine.sync()))
    worker.start()
    try:
        assert client.entered.wait(timeout=5)
        assert engine.running
        with pytest.raises(SyncInProgressError):
            engine.sync()
    finally:
        client.release.set()
        worker.join(timeout=5)

    assert [r.synced_count for r in results] == [3]
    assert not engine.running
    assert engine.sync().synced_count == 3


def test_parallel_fetch_gives_same_result(store):
    engine, _ = _engine(store, fetch_workers=4)
    assert engine.sync().synced_count == 3
    assert store.get_comment_by_id(11).parent_id == 10
    assert store.get_comment_by_id(20).story_id == 2


def test_story_values_defaults_missing_fields():
    values = story_values(RemoteItem(id=7, type="story", by="x", time=1640995200))
    assert values["title"] == ""
    assert values["url"] is None and values["text"] is None
    assert values["score"] == 0 and values["descendant_count"] == 0
    assert values["story_type"] == "story"


def test_malformed_item_between_valid_ones_is_skipped(store):
    items = copy.deepcopy(ITEMS)
    items[2]["title"] = 12345
    engine, _ = _engine(store, items=items)

    result = engine.sync()

    assert result.synced_count == 2
    assert store.story_exists(1) and store.story_exists(3)
    assert not store.story_exists(2)


def test_non_string_text_fields_are_rejected():
    for key in ("by", "title", "url", "text"):
        payload = {**ITEMS[1], key: ["not", "a", "string"]}
        with pytest.raises(TypeError):
            RemoteItem.from_payload(payload)


def test_out_of_range_time_counts_as_not_synced(store):
    items = copy.deepcopy(ITEMS)
    items[1]["time"] = 10**20
    engine, _ = _engine(store, items=items)

    assert engine.sync().synced_count == 2
    assert not store.story_exists(1)
    with pytest.raises(ValueError):
        story_values(RemoteItem(id=9, type="story", by="x", time=10**20))


def test_reply_to_unfetched_parent_is_stored(store):
    items = copy.deepcopy(ITEMS)
    items[1]["kids"] = [11, 10]
    items[11]["parent"] = 99
    engine, _ = _engine(store, top_ids=(1,), items=items)

    assert engine.sync().synced_count == 1
    assert store.get_comment_by_id(11).parent_id == 99
    assert store.get_comment_by_id(10).parent_id is None
    assert store.count_comments(1) == 2


def test_configured_feed_is_used_instead_of_top(store):
    client = FakeClient((1,), copy.deepcopy(ITEMS), feeds={"ask": [2]})
    engine = SyncEngine(store, client, feed="ask")

    assert engine.sync().synced_count == 1
    assert store.story_exists(2)
    assert not store.story_exists(1)


def test_unknown_feed_is_rejected(store):
    with pytest.raises(ValueError):
        SyncEngine(store, FakeClient((), {}), feed="frontpage")
