"""Database helpers – SQLite by default, Postgres via DATABASE_URL."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Generator

from sqlalchemy import Text, create_engine, event, func, or_, select, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from storage.models import Base, CommentRow, StoryRow, utcnow

log = logging.getLogger(__name__)

# Fields a re-sync is allowed to overwrite.
_STORY_MUTABLE = (
    "title",
    "url",
    "text",
    "author",
    "score",
    "descendant_count",
    "story_type",
)

# ── Filter / ordering vocabulary ─────────────────────────────────────

ORDER_RECENT = "recent"  # last_synced_at desc
ORDER_SCORE = "score"  # score desc
ORDER_RELEVANCE = "relevance"  # score desc, occurred_at desc

_STORY_ORDERS = {
    ORDER_RECENT: (StoryRow.last_synced_at.desc(), StoryRow.id.desc()),
    ORDER_SCORE: (StoryRow.score.desc(), StoryRow.id.desc()),
    ORDER_RELEVANCE: (
        StoryRow.score.desc(),
        StoryRow.occurred_at.desc(),
        StoryRow.id.desc(),
    ),
}


@dataclass(frozen=True)
class StoryFilter:
    """Row filter for story queries.  ``None`` fields impose no condition."""

    story_type: str | None = None
    search: str | None = None


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


def _search_condition(term: str, dialect: str):
    columns = (StoryRow.title, StoryRow.text, StoryRow.author)
    if dialect == "sqlite":
        # SQLite's lower() only folds ASCII; casefold() is registered on connect.
        folded = term.casefold()
        return or_(
            *(func.casefold(col, type_=Text).contains(folded, autoescape=True) for col in columns)
        )
    pattern = f"%{_escape_like(term)}%"
    return or_(*(col.ilike(pattern, escape="\\") for col in columns))


def _story_conditions(flt: StoryFilter | None, dialect: str) -> list:
    if flt is None:
        return []
    conditions = []
    if flt.story_type is not None:
        conditions.append(StoryRow.story_type == flt.story_type)
    if flt.search:
        conditions.append(_search_condition(flt.search, dialect))
    return conditions


def _configure_sqlite(dbapi_conn, _record) -> None:
    dbapi_conn.create_function("casefold", 1, _casefold, deterministic=True)
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ── Store handle ─────────────────────────────────────────────────────


class Store:
    """Engine + session factory for one database.

    Pass an instance to whatever needs persistence; nothing in the project
    keeps a module-level connection.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        kwargs: dict[str, Any] = {"echo": echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        self._engine = create_engine(url, **kwargs)
        if url.startswith("sqlite"):
            event.listen(self._engine, "connect", _configure_sqlite)
        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=self._engine, expire_on_commit=False
        )

    def init(self) -> "Store":
        """Create tables (idempotent)."""
        Base.metadata.create_all(self._engine)
        log.info("Database initialised (%s)", self.url.split("///")[0] + "///…")
        return self

    def dispose(self) -> None:
        self._engine.dispose()

    def ping(self) -> None:
        """Raise if the database cannot be reached."""
        with self._engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Provide a transactional session scope."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ── Stories ──────────────────────────────────────────────────────

    def get_story_by_id(self, story_id: int) -> StoryRow | None:
        with self.session() as session:
            return session.get(StoryRow, story_id)

    def story_exists(self, story_id: int) -> bool:
        with self.session() as session:
            found = session.scalar(select(StoryRow.id).where(StoryRow.id == story_id))
        return found is not None

    def upsert_story(self, values: dict[str, Any]) -> tuple[StoryRow, bool]:
        """Insert or overwrite a story.  Returns ``(row, created)``.

        ``id``, ``first_seen_at`` and ``occurred_at`` are never changed on an
        existing row.
        """
        now = utcnow()
        with self.session() as session:
            row = session.get(StoryRow, values["id"])
            if row is None:
                row = StoryRow(
                    id=values["id"],
                    occurred_at=values["occurred_at"],
                    first_seen_at=now,
                    last_synced_at=now,
                    **{key: values[key] for key in _STORY_MUTABLE},
                )
                session.add(row)
                created = True
            else:
                for key in _STORY_MUTABLE:
                    setattr(row, key, values[key])
                row.last_synced_at = now
                created = False
        log.debug("%s story %d", "Inserted" if created else "Updated", values["id"])
        return row, created

    def query_stories(
        self,
        flt: StoryFilter | None = None,
        order: str = ORDER_RECENT,
        limit: int = 30,
        offset: int = 0,
    ) -> list[StoryRow]:
        stmt = select(StoryRow)
        for cond in _story_conditions(flt, self._engine.dialect.name):
            stmt = stmt.where(cond)
        stmt = stmt.order_by(*_STORY_ORDERS[order]).limit(limit).offset(offset)
        with self.session() as session:
            return list(session.scalars(stmt))

    def count_stories(self, flt: StoryFilter | None = None) -> int:
        stmt = select(func.count()).select_from(StoryRow)
        for cond in _story_conditions(flt, self._engine.dialect.name):
            stmt = stmt.where(cond)
        with self.session() as session:
            return int(session.scalar(stmt) or 0)

    # ── Comments ─────────────────────────────────────────────────────

    def get_comment_by_id(self, comment_id: int) -> CommentRow | None:
        with self.session() as session:
            return session.get(CommentRow, comment_id)

    def insert_comment_if_absent(self, values: dict[str, Any]) -> bool:
        """Insert a comment unless its id is already stored.  True if inserted."""
        with self.session() as session:
            if session.get(CommentRow, values["id"]) is not None:
                log.debug("Comment %d already stored – skipping", values["id"])
                return False
            session.add(CommentRow(first_seen_at=utcnow(), **values))
        return True

    def get_comments_by_story(
        self,
        story_id: int,
        order: str = "oldest",
        limit: int | None = None,
        offset: int = 0,
    ) -> list[CommentRow]:
        """Comments for one story, oldest first unless *order* is "newest"."""
        if order == "newest":
            ordering = (CommentRow.occurred_at.desc(), CommentRow.id.desc())
        else:
            ordering = (CommentRow.occurred_at.asc(), CommentRow.id.asc())
        stmt = (
            select(CommentRow)
            .where(CommentRow.story_id == story_id)
            .order_by(*ordering)
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.session() as session:
            return list(session.scalars(stmt))

    def count_comments(self, story_id: int) -> int:
        stmt = select(func.count()).select_from(CommentRow).where(CommentRow.story_id == story_id)
        with self.session() as session:
            return int(session.scalar(stmt) or 0)
