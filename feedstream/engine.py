"""Refresh and read operations over one feedstream database."""

from __future__ import annotations

import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

from . import config, dates, db, ingest, pagination, utils
from .errors import StorageError, ValidationError
from .models import FeedPage, FeedSource, IngestStats
from .retention import RetentionSweeper

logger = logging.getLogger(__name__)


class FeedEngine:
    """Entry point for the handlers: refreshes a user's feeds and serves pages.

    One engine owns one retention clock, so share a single instance per
    process.
    """

    def __init__(self, db_path: Optional[str] = None,
                 fetch_workers: int = config.FETCH_WORKERS,
                 window_days: int = config.WINDOW_DAYS,
                 display_tz: Optional[str] = None,
                 sweeper: Optional[RetentionSweeper] = None,
                 clock: Callable[[], datetime] = utils.utcnow):
        self.db_path = db_path
        self.fetch_workers = max(1, fetch_workers)
        self.window_days = window_days
        self.zone = dates.resolve_tz(config.DISPLAY_TZ if display_tz is None else display_tz)
        self.clock = clock
        self.sweeper = sweeper or RetentionSweeper(clock=clock)
        self.last_refresh: Dict[str, Any] = {"last_run_utc": None, "last_error": None,
                                             "examined": 0, "new_or_updated": 0}

    @contextmanager
    def _storage(self, action: str) -> Iterator[sqlite3.Connection]:
        conn = None
        try:
            conn = db.connect(self.db_path)
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"{action} failed: {exc}") from exc
        finally:
            if conn is not None:
                conn.close()

    def refresh_feeds(self, user_id: int) -> IngestStats:
        """Fetch and ingest every feed of the user.

        Feeds are processed in parallel; a feed that fails is logged and
        contributes nothing. Raises StorageError if the feed list can't be read.
        """
        started = self.clock()
        try:
            with self._storage("listing feeds") as conn:
                self.sweeper.maybe_sweep(conn)
                feeds = db.list_feeds(conn, user_id)
        except StorageError as exc:
            self.last_refresh = {"last_run_utc": started.isoformat(), "last_error": str(exc),
                                 "examined": 0, "new_or_updated": 0}
            raise

        logger.info("Refreshing %d feeds for user %d", len(feeds), user_id)
        total = IngestStats()
        if feeds:
            with ThreadPoolExecutor(max_workers=min(self.fetch_workers, len(feeds))) as pool:
                futures = {pool.submit(ingest.refresh_source, feed, self.db_path): feed for feed in feeds}
                for future in as_completed(futures):
                    feed = futures[future]
                    try:
                        total += future.result()
                    except Exception:
                        logger.exception("Refresh of feed %s (%s) failed", feed.name, feed.url)

        logger.info("Feed refresh complete: processed %d items, %d new/updated",
                    total.examined, total.new_or_updated)
        self.last_refresh = {"last_run_utc": started.isoformat(), "last_error": None,
                             "examined": total.examined, "new_or_updated": total.new_or_updated}
        return total

    def get_page(self, user_id: int, days_offset: int = 0) -> FeedPage:
        with self._storage("reading feed page") as conn:
            return pagination.get_page(conn, user_id, days_offset, now=self.clock(),
                                       zone=self.zone, window_days=self.window_days)

    def view(self, user_id: int, days_offset: int = 0) -> FeedPage:
        """Page for the reading view; the first page refreshes the feeds before reading."""
        if days_offset == 0:
            try:
                self.refresh_feeds(user_id)
            except StorageError as exc:
                logger.error("Refresh before page view failed for user %d: %s", user_id, exc)
        return self.get_page(user_id, days_offset)

    # -----------------------------
    # Feed sources
    # -----------------------------

    def list_feeds(self, user_id: int) -> List[FeedSource]:
        with self._storage("listing feeds") as conn:
            return db.list_feeds(conn, user_id)

    def add_feed(self, user_id: int, name: str, url: str) -> FeedSource:
        name, url = (name or "").strip(), (url or "").strip()
        if not name:
            raise ValidationError("feed name is empty")
        if not url:
            raise ValidationError("feed URL is empty")
        with self._storage("creating feed") as conn:
            return db.create_feed(conn, user_id, name, url)

    def update_feed(self, user_id: int, feed_id: int, name: str, url: str) -> None:
        name, url = (name or "").strip(), (url or "").strip()
        if not name or not url:
            raise ValidationError("feed name and URL are required")
        with self._storage("updating feed") as conn:
            db.update_feed(conn, feed_id, user_id, name, url)

    def remove_feed(self, user_id: int, feed_id: int) -> None:
        with self._storage("deleting feed") as conn:
            db.delete_feed(conn, feed_id, user_id)

    def sweep_now(self) -> Optional[int]:
        with self._storage("retention sweep") as conn:
            return self.sweeper.sweep_now(conn)
