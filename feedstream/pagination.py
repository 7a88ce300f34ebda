"""Windowed, day-grouped reading view over a user's entries.

A page covers a fixed window of publish times ending `days_offset` days before
now. Callers page backwards by requesting `next_offset` until `has_more` is
false.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Dict, List, Optional

from . import config, dates, db, utils
from .models import DateBucket, FeedEntry, FeedPage

logger = logging.getLogger(__name__)

# Windows reaching past the datetime range are cut off here.
EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def days_before(moment: datetime, days: int) -> datetime:
    try:
        return moment - timedelta(days=days)
    except OverflowError:
        return EARLIEST


def group_by_day(entries: List[FeedEntry], today: date, zone: tzinfo) -> List[DateBucket]:
    """Bucket entries by their local calendar day, most recent day first.

    Entries keep their incoming order inside a bucket and have published_at
    converted to `zone`.
    """
    buckets: Dict[date, DateBucket] = {}
    for entry in entries:
        entry.published_at = dates.to_zone(entry.published_at, zone)
        day = entry.published_at.date()
        if day not in buckets:
            buckets[day] = DateBucket(day=day, label=dates.day_label(day, today))
        buckets[day].entries.append(entry)
    return [buckets[day] for day in sorted(buckets, reverse=True)]


def get_page(conn: sqlite3.Connection, user_id: int, days_offset: int = 0,
             now: Optional[datetime] = None, zone: Optional[tzinfo] = None,
             window_days: int = config.WINDOW_DAYS) -> FeedPage:
    if isinstance(days_offset, bool) or not isinstance(days_offset, int) or days_offset < 0:
        raise ValueError(f"days_offset must be a non-negative integer, got {days_offset!r}")

    now = now or utils.utcnow()
    zone = zone or dates.resolve_tz(config.DISPLAY_TZ)
    window_end = days_before(now, days_offset)
    window_start = days_before(window_end, window_days)

    entries = db.entries_in_window(conn, user_id, window_start, window_end)
    has_more = db.has_entries_before(conn, user_id, window_start)
    feed_names = sorted({e.feed_name for e in entries})
    buckets = group_by_day(entries, dates.local_day(now, zone), zone)

    # Viewing any page clears the "new" marker on all of the user's entries.
    try:
        db.mark_all_seen(conn, user_id)
        conn.commit()
    except sqlite3.Error as exc:
        logger.warning("Failed to mark entries as seen for user %d: %s", user_id, exc)

    return FeedPage(
        buckets=buckets,
        has_more=has_more,
        feed_names=feed_names,
        next_offset=days_offset + window_days,
        window_start=window_start,
        window_end=window_end,
    )
