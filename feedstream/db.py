"""Database schema and functions.

Write helpers leave committing to the caller, so a batch of entries from one
feed goes out in a single transaction.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import List, Optional

from . import config, utils
from .errors import FeedAlreadyExistsError, FeedNotFoundError
from .models import EntryCandidate, FeedEntry, FeedSource

DB_PATH = config.DB_PATH

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS feeds (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  user_id INTEGER NOT NULL,
  name TEXT NOT NULL,
  url TEXT NOT NULL,
  created_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_feeds_user_url ON feeds(user_id, url);

CREATE TABLE IF NOT EXISTS feed_entries (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  feed_id INTEGER NOT NULL,
  title TEXT NOT NULL,
  description TEXT NOT NULL DEFAULT '',
  link TEXT NOT NULL,
  published_at TEXT NOT NULL,
  is_new INTEGER NOT NULL DEFAULT 1,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  UNIQUE (feed_id, link),
  FOREIGN KEY (feed_id) REFERENCES feeds(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_entries_feed ON feed_entries(feed_id);
CREATE INDEX IF NOT EXISTS idx_entries_published ON feed_entries(published_at DESC);
"""


def connect(path: Optional[str] = None) -> sqlite3.Connection:
    conn = sqlite3.connect(path or DB_PATH, check_same_thread=False, timeout=30.0)
    conn.row_factory = sqlite3.Row
    # Ensure WAL mode is enabled for better concurrency
    conn.execute("PRAGMA journal_mode=WAL")
    # SQLite only enforces ON DELETE CASCADE with this set, per connection
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db(path: Optional[str] = None) -> None:
    conn = connect(path)
    try:
        conn.executescript(SCHEMA_SQL)
        conn.commit()
    finally:
        conn.close()


# -----------------------------
# Feed sources
# -----------------------------

def _row_to_feed(row: sqlite3.Row) -> FeedSource:
    return FeedSource(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        url=row["url"],
        created_at=utils.from_db_timestamp(row["created_at"]),
    )


def feed_exists_by_url(conn: sqlite3.Connection, user_id: int, url: str) -> bool:
    row = conn.execute(
        "SELECT EXISTS(SELECT 1 FROM feeds WHERE user_id = ? AND url = ?)",
        (user_id, url),
    ).fetchone()
    return bool(row[0])


def create_feed(conn: sqlite3.Connection, user_id: int, name: str, url: str) -> FeedSource:
    if feed_exists_by_url(conn, user_id, url):
        raise FeedAlreadyExistsError(url)
    created_at = utils.utcnow()
    try:
        cur = conn.execute(
            "INSERT INTO feeds(user_id, name, url, created_at) VALUES(?,?,?,?)",
            (user_id, name, url, utils.to_db_timestamp(created_at)),
        )
    except sqlite3.IntegrityError as exc:
        # another writer added the same URL after the check above
        raise FeedAlreadyExistsError(url) from exc
    return FeedSource(id=cur.lastrowid, user_id=user_id, name=name, url=url, created_at=created_at)


def get_feed(conn: sqlite3.Connection, feed_id: int, user_id: int) -> FeedSource:
    row = conn.execute(
        "SELECT * FROM feeds WHERE id = ? AND user_id = ?", (feed_id, user_id)
    ).fetchone()
    if row is None:
        raise FeedNotFoundError(feed_id)
    return _row_to_feed(row)


def list_feeds(conn: sqlite3.Connection, user_id: int) -> List[FeedSource]:
    rows = conn.execute(
        "SELECT * FROM feeds WHERE user_id = ? ORDER BY name", (user_id,)
    ).fetchall()
    return [_row_to_feed(r) for r in rows]


def update_feed(conn: sqlite3.Connection, feed_id: int, user_id: int, name: str, url: str) -> None:
    try:
        cur = conn.execute(
            "UPDATE feeds SET name = ?, url = ? WHERE id = ? AND user_id = ?",
            (name, url, feed_id, user_id),
        )
    except sqlite3.IntegrityError as exc:
        raise FeedAlreadyExistsError(url) from exc
    if cur.rowcount == 0:
        raise FeedNotFoundError(feed_id)


def delete_feed(conn: sqlite3.Connection, feed_id: int, user_id: int) -> None:
    """Delete a feed; its entries go with it through the foreign key cascade."""
    cur = conn.execute("DELETE FROM feeds WHERE id = ? AND user_id = ?", (feed_id, user_id))
    if cur.rowcount == 0:
        raise FeedNotFoundError(feed_id)


# -----------------------------
# Feed entries
# -----------------------------

UPSERT_ENTRY_SQL = """
INSERT INTO feed_entries(feed_id, title, description, link, published_at, is_new, created_at, updated_at)
VALUES(?,?,?,?,?,1,?,?)
ON CONFLICT(feed_id, link) DO UPDATE SET
  title = excluded.title,
  description = excluded.description,
  published_at = excluded.published_at,
  is_new = 1,
  updated_at = excluded.updated_at
WHERE feed_entries.title != excluded.title
   OR feed_entries.description != excluded.description
"""


def upsert_entry(conn: sqlite3.Connection, entry: EntryCandidate) -> bool:
    """Insert or refresh one entry keyed by (feed_id, link).

    An existing row is only rewritten when its title or description changed;
    otherwise the statement is a no-op. Returns True when a row was written.
    """
    stamp = utils.to_db_timestamp(utils.utcnow())
    cur = conn.execute(
        UPSERT_ENTRY_SQL,
        (
            entry.feed_id,
            entry.title,
            entry.description,
            entry.link,
            utils.to_db_timestamp(entry.published_at),
            stamp,
            stamp,
        ),
    )
    return cur.rowcount > 0


def _row_to_entry(row: sqlite3.Row) -> FeedEntry:
    return FeedEntry(
        id=row["id"],
        feed_id=row["feed_id"],
        feed_name=row["feed_name"],
        title=row["title"],
        description=row["description"],
        link=row["link"],
        published_at=utils.from_db_timestamp(row["published_at"]),
        is_new=bool(row["is_new"]),
    )


def entries_in_window(conn: sqlite3.Connection, user_id: int,
                      start: datetime, end: datetime) -> List[FeedEntry]:
    """A user's entries published within [start, end], newest first."""
    rows = conn.execute(
        """
        SELECT e.id, e.feed_id, f.name AS feed_name, e.title, e.description,
               e.link, e.published_at, e.is_new
        FROM feed_entries e
        JOIN feeds f ON f.id = e.feed_id
        WHERE f.user_id = ?
          AND e.published_at >= ?
          AND e.published_at <= ?
        ORDER BY e.published_at DESC, e.id DESC
        """,
        (user_id, utils.to_db_timestamp(start), utils.to_db_timestamp(end)),
    ).fetchall()
    return [_row_to_entry(r) for r in rows]


def has_entries_before(conn: sqlite3.Connection, user_id: int, cutoff: datetime) -> bool:
    """Whether the user has any entry older than cutoff. Stops at the first hit."""
    row = conn.execute(
        """
        SELECT EXISTS(
          SELECT 1 FROM feed_entries e
          JOIN feeds f ON f.id = e.feed_id
          WHERE f.user_id = ? AND e.published_at < ?
          LIMIT 1
        )
        """,
        (user_id, utils.to_db_timestamp(cutoff)),
    ).fetchone()
    return bool(row[0])


def mark_all_seen(conn: sqlite3.Connection, user_id: int) -> int:
    return conn.execute(
        """
        UPDATE feed_entries SET is_new = 0
        WHERE is_new = 1
          AND feed_id IN (SELECT id FROM feeds WHERE user_id = ?)
        """,
        (user_id,),
    ).rowcount


def delete_entries_older_than(conn: sqlite3.Connection, cutoff: datetime) -> int:
    """Delete every user's entries published before cutoff. Returns the row count."""
    return conn.execute(
        "DELETE FROM feed_entries WHERE published_at < ?",
        (utils.to_db_timestamp(cutoff),),
    ).rowcount
