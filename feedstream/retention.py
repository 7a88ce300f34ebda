"""Deletion of entries past the retention horizon."""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from . import config, db, utils

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Deletes old entries at most once per interval.

    The lock only guards the last-sweep timestamp; the delete itself runs
    after it is released. The timestamp is kept in memory, so a restarted
    process sweeps on its first refresh.
    """

    def __init__(self, horizon_days: int = config.RETENTION_DAYS,
                 interval_hours: int = config.SWEEP_INTERVAL_HOURS,
                 clock: Callable[[], datetime] = utils.utcnow):
        self.horizon = timedelta(days=horizon_days)
        self.interval = timedelta(hours=interval_hours)
        self._clock = clock
        self._lock = threading.Lock()
        self._last_sweep: Optional[datetime] = None

    @property
    def last_sweep(self) -> Optional[datetime]:
        with self._lock:
            return self._last_sweep

    def _claim(self, force: bool = False) -> Optional[datetime]:
        with self._lock:
            now = self._clock()
            if not force and self._last_sweep is not None and now - self._last_sweep < self.interval:
                return None
            self._last_sweep = now
            return now

    def maybe_sweep(self, conn: sqlite3.Connection) -> Optional[int]:
        """Sweep if the interval has passed. Returns rows deleted, or None if skipped or failed."""
        now = self._claim()
        if now is None:
            return None
        return self._sweep(conn, now)

    def sweep_now(self, conn: sqlite3.Connection) -> Optional[int]:
        return self._sweep(conn, self._claim(force=True))

    def _sweep(self, conn: sqlite3.Connection, now: datetime) -> Optional[int]:
        cutoff = now - self.horizon
        try:
            deleted = db.delete_entries_older_than(conn, cutoff)
            conn.commit()
        except sqlite3.Error as exc:
            logger.warning("Retention sweep failed: %s", exc)
            return None
        if deleted:
            logger.info("Cleaned up %d entries published before %s", deleted, cutoff.date().isoformat())
        return deleted
