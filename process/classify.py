"""Story-type classification of remote items.

Rules, first match wins:
  native type "job"  → job
  native type "poll" → poll
  title "ask hn…"    → ask
  title "show hn…"   → show
  anything else      → story
"""

from __future__ import annotations

from storage.models import RemoteItem

_TITLE_PREFIXES = (
    ("ask hn", "ask"),
    ("show hn", "show"),
)


def classify(item: RemoteItem) -> str:
    """Return the local story type for *item*.  Never raises."""
    if item.type == "job":
        return "job"
    if item.type == "poll":
        return "poll"

    title = item.title.lower() if isinstance(item.title, str) else ""
    for prefix, story_type in _TITLE_PREFIXES:
        if title.startswith(prefix):
            return story_type
    return "story"
