"""Read side – category listings, search, single-story lookups.

All functions take the store explicitly and never write.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from storage.db import ORDER_RECENT, ORDER_RELEVANCE, ORDER_SCORE, Store, StoryFilter
from storage.models import CommentRow, StoryRow

CATEGORIES = ("top", "new", "best", "ask", "show", "job")

# category → (story_type filter, ordering)
_CATEGORY_PLAN: dict[str | None, tuple[str | None, str]] = {
    None: (None, ORDER_RECENT),
    "top": (None, ORDER_SCORE),
    "best": (None, ORDER_SCORE),
    "new": (None, ORDER_RECENT),
    "ask": ("ask", ORDER_RECENT),
    "show": ("show", ORDER_RECENT),
    "job": ("job", ORDER_RECENT),
}

STORY_LIMIT_MAX = 100
STORY_LIMIT_DEFAULT = 30
COMMENT_LIMIT_MAX = 500
COMMENT_LIMIT_DEFAULT = 100


@dataclass
class StoryPage:
    stories: list[StoryRow]
    total: int
    has_more: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "stories": [s.to_dict() for s in self.stories],
            "total": self.total,
            "hasMore": self.has_more,
        }


@dataclass
class StoryWithComments:
    story: StoryRow
    comments: list[CommentRow]
    total_comments: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "story": self.story.to_dict(),
            "comments": [c.to_dict() for c in self.comments],
            "totalComments": self.total_comments,
        }


def _check_page(limit: int, offset: int, max_limit: int) -> None:
    if not 1 <= limit <= max_limit:
        raise ValueError(f"limit must be between 1 and {max_limit}, got {limit}")
    if offset < 0:
        raise ValueError(f"offset must be >= 0, got {offset}")


def _page(store: Store, flt: StoryFilter, order: str, limit: int, offset: int) -> StoryPage:
    total = store.count_stories(flt)
    stories = store.query_stories(flt, order, limit, offset) if offset < total else []
    return StoryPage(stories=stories, total=total, has_more=offset + limit < total)


def list_stories(
    store: Store,
    category: str | None = None,
    limit: int = STORY_LIMIT_DEFAULT,
    offset: int = 0,
) -> StoryPage:
    """One page of stories for a feed category.

    ask/show/job filter on story type; top/new/best only change the ordering.
    """
    if category not in _CATEGORY_PLAN:
        raise ValueError(f"Unknown category {category!r}; expected one of {CATEGORIES}")
    _check_page(limit, offset, STORY_LIMIT_MAX)
    story_type, order = _CATEGORY_PLAN[category]
    return _page(store, StoryFilter(story_type=story_type), order, limit, offset)


def search_stories(
    store: Store,
    query: str,
    limit: int = STORY_LIMIT_DEFAULT,
    offset: int = 0,
) -> StoryPage:
    """Case-insensitive substring search over title, text and author.

    An empty query matches every story.
    """
    _check_page(limit, offset, STORY_LIMIT_MAX)
    return _page(store, StoryFilter(search=query or None), ORDER_RELEVANCE, limit, offset)


def get_story(store: Store, story_id: int) -> StoryRow | None:
    return store.get_story_by_id(story_id)


def get_comments(
    store: Store,
    story_id: int,
    limit: int = COMMENT_LIMIT_DEFAULT,
    offset: int = 0,
) -> list[CommentRow]:
    """Comments for a story, oldest first."""
    _check_page(limit, offset, COMMENT_LIMIT_MAX)
    return store.get_comments_by_story(story_id, "oldest", limit, offset)


def get_story_with_comments(store: Store, story_id: int) -> StoryWithComments | None:
    story = store.get_story_by_id(story_id)
    if story is None:
        return None
    comments = store.get_comments_by_story(story_id, "oldest")
    return StoryWithComments(story=story, comments=comments, total_comments=len(comments))
