"""SQLAlchemy models and shared data classes for hn_reader."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Text,
)
from sqlalchemy.orm import DeclarativeBase

STORY_TYPES = ("story", "job", "ask", "show", "poll")


def utcnow() -> dt.datetime:
    """Naive UTC timestamp (SQLite drops tzinfo anyway)."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def from_unix(seconds: int) -> dt.datetime:
    """UTC datetime for a unix timestamp.  Raises ValueError if out of range."""
    try:
        stamp = dt.datetime.fromtimestamp(seconds, tz=dt.timezone.utc)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"timestamp out of range: {seconds!r}") from exc
    return stamp.replace(tzinfo=None)


# ── ORM base ────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass


class StoryRow(Base):
    """Persisted story, keyed by the remote item id."""

    __tablename__ = "stories"

    id = Column(Integer, primary_key=True, autoincrement=False)
    title = Column(Text, nullable=False)
    url = Column(Text, nullable=True)
    text = Column(Text, nullable=True)
    author = Column(Text, nullable=False)
    score = Column(Integer, nullable=False, default=0)
    descendant_count = Column(Integer, nullable=False, default=0)
    occurred_at = Column(DateTime, nullable=False)
    story_type = Column(
        Enum(*STORY_TYPES, name="story_type"), nullable=False, default="story"
    )
    first_seen_at = Column(DateTime, nullable=False, default=utcnow)
    last_synced_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("score >= 0", name="ck_stories_score"),
        CheckConstraint("descendant_count >= 0", name="ck_stories_descendants"),
        Index("idx_stories_type", "story_type"),
        Index("idx_stories_last_synced", "last_synced_at"),
        Index("idx_stories_score", "score"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "text": self.text,
            "author": self.author,
            "score": self.score,
            "descendant_count": self.descendant_count,
            "occurred_at": _iso(self.occurred_at),
            "story_type": self.story_type,
            "first_seen_at": _iso(self.first_seen_at),
            "last_synced_at": _iso(self.last_synced_at),
        }

    def __repr__(self) -> str:
        return f"<StoryRow id={self.id} title={self.title!r:.40}>"


class CommentRow(Base):
    """Persisted comment.  Inserted once, never updated."""

    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, autoincrement=False)
    story_id = Column(Integer, ForeignKey("stories.id"), nullable=False)
    # None = top level.  Not a foreign key: the parent may never have been fetched.
    parent_id = Column(Integer, nullable=True)
    author = Column(Text, nullable=False)
    text = Column(Text, nullable=False, default="")
    occurred_at = Column(DateTime, nullable=False)
    first_seen_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_comments_story_time", "story_id", "occurred_at"),
        Index("idx_comments_parent", "parent_id"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "story_id": self.story_id,
            "parent_id": self.parent_id,
            "author": self.author,
            "text": self.text,
            "occurred_at": _iso(self.occurred_at),
            "first_seen_at": _iso(self.first_seen_at),
        }

    def __repr__(self) -> str:
        return f"<CommentRow id={self.id} story_id={self.story_id}>"


def _iso(value: dt.datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# ── Plain data class for items coming off the wire ───────────────────
@dataclass
class RemoteItem:
    """One item from the remote API.  Only ``id`` and ``type`` are guaranteed."""

    id: int
    type: str
    by: Optional[str] = None
    time: Optional[int] = None  # unix seconds
    title: Optional[str] = None
    url: Optional[str] = None
    text: Optional[str] = None
    score: Optional[int] = None
    descendants: Optional[int] = None
    parent: Optional[int] = None
    deleted: bool = False
    dead: bool = False
    kids: list[int] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RemoteItem":
        """Build from decoded JSON.  Raises ValueError/TypeError on bad shape."""
        if not isinstance(payload, dict):
            raise TypeError(f"expected JSON object, got {type(payload).__name__}")
        if "id" not in payload:
            raise ValueError("item payload has no id")

        def _opt_int(key: str) -> Optional[int]:
            raw = payload.get(key)
            return int(raw) if raw is not None else None

        def _opt_str(key: str) -> Optional[str]:
            raw = payload.get(key)
            if raw is not None and not isinstance(raw, str):
                raise TypeError(f"{key} must be a string, got {type(raw).__name__}")
            return raw

        kids = payload.get("kids") or []
        if not isinstance(kids, list):
            raise TypeError("kids must be a list")

        return cls(
            id=int(payload["id"]),
            type=str(payload.get("type") or ""),
            by=_opt_str("by"),
            time=_opt_int("time"),
            title=_opt_str("title"),
            url=_opt_str("url"),
            text=_opt_str("text"),
            score=_opt_int("score"),
            descendants=_opt_int("descendants"),
            parent=_opt_int("parent"),
            deleted=bool(payload.get("deleted", False)),
            dead=bool(payload.get("dead", False)),
            kids=[int(k) for k in kids],
        )
