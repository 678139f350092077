"""FastAPI web server – REST API over the story store.

Run:
    python -m web.app                 # or
    uvicorn web.app:app --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request

from process import query
from process.comment_tree import build_tree, flatten, visual_depth
from process.errors import SyncError, SyncInProgressError
from process.sync import SyncEngine
from settings import load_settings
from storage.db import Store

log = logging.getLogger(__name__)

Category = Literal["top", "new", "best", "ask", "show", "job"]


# ── App ──────────────────────────────────────────────────────────────


def create_app(store: Store | None = None, engine: SyncEngine | None = None) -> FastAPI:
    """Build the app.  Missing collaborators are created from settings at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.store is None
        if owned:
            app.state.store = Store(load_settings().database_url).init()
        if app.state.engine is None:
            app.state.engine = SyncEngine.from_settings(load_settings().sync, app.state.store)
        yield
        if owned:
            app.state.store.dispose()

    app = FastAPI(title="HN Reader", version="1.0.0", lifespan=lifespan)
    app.state.store = store
    app.state.engine = engine
    _register_routes(app)
    return app


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_engine(request: Request) -> SyncEngine:
    return request.app.state.engine


def _register_routes(app: FastAPI) -> None:
    # ── API: health ──────────────────────────────────────────────────

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    # ── API: story listings ──────────────────────────────────────────

    @app.get("/api/stories")
    def list_stories(
        category: Optional[Category] = Query(None, alias="type"),
        limit: int = Query(query.STORY_LIMIT_DEFAULT, ge=1, le=query.STORY_LIMIT_MAX),
        offset: int = Query(0, ge=0),
        store: Store = Depends(get_store),
    ):
        """Stories for a feed category (all stories when no type is given)."""
        return query.list_stories(store, category, limit, offset).to_dict()

    @app.get("/api/stories/search")
    def search_stories(
        q: str = Query(..., min_length=1),
        limit: int = Query(query.STORY_LIMIT_DEFAULT, ge=1, le=query.STORY_LIMIT_MAX),
        offset: int = Query(0, ge=0),
        store: Store = Depends(get_store),
    ):
        page = query.search_stories(store, q, limit, offset)
        return {"query": q, **page.to_dict()}

    # ── API: one story ───────────────────────────────────────────────

    @app.get("/api/stories/{story_id}")
    def get_story(story_id: int, store: Store = Depends(get_store)):
        story = query.get_story(store, story_id)
        if story is None:
            raise HTTPException(status_code=404, detail=f"No story {story_id}")
        return story.to_dict()

    @app.get("/api/stories/{story_id}/comments")
    def get_comments(
        story_id: int,
        limit: int = Query(query.COMMENT_LIMIT_DEFAULT, ge=1, le=query.COMMENT_LIMIT_MAX),
        offset: int = Query(0, ge=0),
        store: Store = Depends(get_store),
    ):
        comments = query.get_comments(store, story_id, limit, offset)
        return {"comments": [c.to_dict() for c in comments]}

    @app.get("/api/stories/{story_id}/full")
    def get_story_with_comments(story_id: int, store: Store = Depends(get_store)):
        """Story, its flat comment list, the nested tree and its display order."""
        result = query.get_story_with_comments(store, story_id)
        if result is None:
            raise HTTPException(status_code=404, detail=f"No story {story_id}")
        tree = build_tree(result.comments)
        thread = [
            {"id": node.comment.id, "depth": node.depth, "visual_depth": visual_depth(node.depth)}
            for node in flatten(tree)
        ]
        return {
            **result.to_dict(),
            "tree": [node.to_dict() for node in tree],
            "thread": thread,
        }

    # ── API: sync ────────────────────────────────────────────────────

    @app.post("/api/sync")
    def run_sync(engine: SyncEngine = Depends(get_engine)):
        try:
            result = engine.sync()
        except SyncInProgressError:
            raise HTTPException(status_code=409, detail="A sync is already running")
        except SyncError:
            log.exception("Sync failed")
            raise HTTPException(status_code=503, detail="Sync failed")
        return result.to_dict()


app = create_app()


# ── Run directly ─────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web.app:app", host="0.0.0.0", port=8000, reload=True)
