#!/usr/bin/env python3
"""hn_reader – Hacker News mirror: sync job and API server.

Usage:
    python main.py              # sync once (default)
    python main.py --schedule   # sync every sync.interval_minutes
    python main.py --serve      # run the REST API (uvicorn)
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# ── Ensure project root is on sys.path ───────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from process.errors import SyncError
from process.sync import SyncEngine, SyncResult
from settings import Settings, load_settings
from storage.db import Store

log = logging.getLogger("hn_reader")


# ── Logging setup ────────────────────────────────────────────────────


def _setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


# ── Main pipeline ────────────────────────────────────────────────────


def run_sync(settings: Settings, engine: SyncEngine | None = None) -> SyncResult:
    """Run one sync batch.  Raises SyncError if the store is unreachable."""
    log.info("=== hn_reader sync starting ===")
    if engine is None:
        store = Store(settings.database_url).init()
        engine = SyncEngine.from_settings(settings.sync, store)
    result = engine.sync()
    log.info("=== hn_reader sync finished: %s ===", result.message)
    return result


# ── Scheduler ────────────────────────────────────────────────────────


def run_scheduled(settings: Settings) -> None:
    """Run the sync every ``sync.interval_minutes`` until interrupted."""
    try:
        from apscheduler.schedulers.blocking import BlockingScheduler
        from apscheduler.triggers.interval import IntervalTrigger
    except ImportError:
        log.error("apscheduler is required for --schedule mode.  pip install apscheduler")
        sys.exit(1)

    store = Store(settings.database_url).init()
    engine = SyncEngine.from_settings(settings.sync, store)

    def _job() -> None:
        try:
            run_sync(settings, engine)
        except SyncError:
            log.exception("Scheduled sync failed")

    minutes = settings.sync.interval_minutes
    scheduler = BlockingScheduler()
    scheduler.add_job(
        _job,
        IntervalTrigger(minutes=minutes),
        id="hn_sync",
        name="Hacker News sync",
        max_instances=1,
        coalesce=True,
    )
    log.info("Scheduler started – syncing every %d minutes", minutes)
    _job()
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        log.info("Scheduler stopped")
    finally:
        store.dispose()


# ── CLI ──────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Hacker News reader – sync and API")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--schedule",
        action="store_true",
        help="Sync repeatedly every sync.interval_minutes instead of once",
    )
    mode.add_argument("--serve", action="store_true", help="Run the REST API server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)

    settings = load_settings()
    _setup_logging(settings.log_level)

    if args.serve:
        import uvicorn

        uvicorn.run("web.app:app", host=args.host, port=args.port)
        return 0
    if args.schedule:
        run_scheduled(settings)
        return 0

    try:
        result = run_sync(settings)
    except SyncError:
        log.exception("Sync failed")
        return 1
    print(result.message)
    return 0


if __name__ == "__main__":
    sys.exit(main())
