"""Tests for database operations."""

import os
import tempfile
import time
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from feedstream import db
from feedstream.errors import FeedAlreadyExistsError, FeedNotFoundError
from feedstream.models import EntryCandidate

NOW = datetime(2026, 1, 20, 12, 0, tzinfo=timezone.utc)


def remove_db_files(path):
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(path + suffix)
        except OSError:
            pass


class DatabaseTestCase(unittest.TestCase):
    """Temporary database with one feed for user 1."""

    def setUp(self):
        self.temp_db = tempfile.NamedTemporaryFile(delete=False, suffix='.db')
        self.temp_db.close()

        # Override DB_PATH for testing
        self.original_db_path = db.DB_PATH
        db.DB_PATH = self.temp_db.name
        db.init_db()

        self.conn = db.connect()
        self.feed = db.create_feed(self.conn, 1, "Test Feed", "https://example.com/feed")
        self.conn.commit()

    def tearDown(self):
        self.conn.close()
        db.DB_PATH = self.original_db_path
        remove_db_files(self.temp_db.name)

    def candidate(self, link="https://example.com/a/1", title="Title", description="Body",
                  published_at=NOW, feed_id=None):
        return EntryCandidate(
            title=title,
            description=description,
            link=link,
            feed_id=feed_id or self.feed.id,
            published_at=published_at,
        )

    def fetch_entry(self, link="https://example.com/a/1"):
        return self.conn.execute(
            "SELECT * FROM feed_entries WHERE link = ?", (link,)
        ).fetchone()

    def count_entries(self):
        return self.conn.execute("SELECT COUNT(*) FROM feed_entries").fetchone()[0]


class TestFeeds(DatabaseTestCase):

    def test_create_and_list(self):
        db.create_feed(self.conn, 1, "Another Feed", "https://example.com/other")
        feeds = db.list_feeds(self.conn, 1)
        self.assertEqual([f.name for f in feeds], ["Another Feed", "Test Feed"])
        self.assertEqual(db.get_feed(self.conn, self.feed.id, 1).url, "https://example.com/feed")

    def test_same_url_twice_for_one_user_is_rejected(self):
        with self.assertRaises(FeedAlreadyExistsError):
            db.create_feed(self.conn, 1, "Dup", "https://example.com/feed")

    def test_duplicate_url_rejected_by_constraint(self):
        # a concurrent writer can pass the existence check before the insert lands
        with patch('feedstream.db.feed_exists_by_url', return_value=False):
            with self.assertRaises(FeedAlreadyExistsError):
                db.create_feed(self.conn, 1, "Dup", "https://example.com/feed")
        self.assertEqual(len(db.list_feeds(self.conn, 1)), 1)

    def test_update_to_taken_url_is_rejected(self):
        other = db.create_feed(self.conn, 1, "Other", "https://example.com/other")
        with self.assertRaises(FeedAlreadyExistsError):
            db.update_feed(self.conn, other.id, 1, "Other", "https://example.com/feed")
        self.assertEqual(db.get_feed(self.conn, other.id, 1).url, "https://example.com/other")

    def test_same_url_for_another_user_is_allowed(self):
        other = db.create_feed(self.conn, 2, "Test Feed", "https://example.com/feed")
        self.assertNotEqual(other.id, self.feed.id)
        self.assertEqual(len(db.list_feeds(self.conn, 2)), 1)

    def test_feeds_are_scoped_to_their_user(self):
        with self.assertRaises(FeedNotFoundError):
            db.get_feed(self.conn, self.feed.id, 2)
        with self.assertRaises(FeedNotFoundError):
            db.delete_feed(self.conn, self.feed.id, 2)
        with self.assertRaises(FeedNotFoundError):
            db.update_feed(self.conn, self.feed.id, 2, "x", "https://x")

    def test_update_feed(self):
        db.update_feed(self.conn, self.feed.id, 1, "Renamed", "https://example.com/new")
        feed = db.get_feed(self.conn, self.feed.id, 1)
        self.assertEqual((feed.name, feed.url), ("Renamed", "https://example.com/new"))

    def test_delete_cascades_to_entries(self):
        db.upsert_entry(self.conn, self.candidate())
        db.upsert_entry(self.conn, self.candidate(link="https://example.com/a/2"))
        self.assertEqual(self.count_entries(), 2)

        db.delete_feed(self.conn, self.feed.id, 1)
        self.conn.commit()
        self.assertEqual(self.count_entries(), 0)


class TestUpsertEntry(DatabaseTestCase):

    def test_insert_marks_new(self):
        self.assertTrue(db.upsert_entry(self.conn, self.candidate()))
        row = self.fetch_entry()
        self.assertEqual(row["title"], "Title")
        self.assertEqual(row["is_new"], 1)

    def test_identical_upsert_is_noop(self):
        db.upsert_entry(self.conn, self.candidate())
        self.conn.execute("UPDATE feed_entries SET is_new = 0")
        before = self.fetch_entry()

        time.sleep(0.01)
        written = db.upsert_entry(self.conn, self.candidate(published_at=NOW + timedelta(minutes=5)))

        self.assertFalse(written)
        after = self.fetch_entry()
        self.assertEqual(after["updated_at"], before["updated_at"])
        self.assertEqual(after["published_at"], before["published_at"])
        self.assertEqual(after["is_new"], 0)
        self.assertEqual(self.count_entries(), 1)

    def test_changed_title_updates_and_marks_new(self):
        db.upsert_entry(self.conn, self.candidate())
        self.conn.execute("UPDATE feed_entries SET is_new = 0")
        before = self.fetch_entry()

        time.sleep(0.01)
        later = NOW + timedelta(hours=1)
        written = db.upsert_entry(self.conn, self.candidate(title="Corrected Title", published_at=later))

        self.assertTrue(written)
        after = self.fetch_entry()
        self.assertEqual(after["title"], "Corrected Title")
        self.assertEqual(after["is_new"], 1)
        self.assertEqual(after["published_at"], "2026-01-20T13:00:00.000000+00:00")
        self.assertGreater(after["updated_at"], before["updated_at"])
        self.assertEqual(after["id"], before["id"])

    def test_changed_description_updates(self):
        db.upsert_entry(self.conn, self.candidate())
        self.assertTrue(db.upsert_entry(self.conn, self.candidate(description="New body")))
        self.assertEqual(self.fetch_entry()["description"], "New body")

    def test_same_link_in_two_feeds(self):
        other = db.create_feed(self.conn, 1, "Other Feed", "https://example.com/other")
        self.assertTrue(db.upsert_entry(self.conn, self.candidate()))
        self.assertTrue(db.upsert_entry(self.conn, self.candidate(feed_id=other.id)))
        self.assertEqual(self.count_entries(), 2)


class TestEntryQueries(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        for days in (0, 10, 30, 100):
            db.upsert_entry(self.conn, self.candidate(
                link=f"https://example.com/a/{days}",
                title=f"{days} days old",
                published_at=NOW - timedelta(days=days),
            ))
        other = db.create_feed(self.conn, 2, "Someone Else", "https://example.com/feed")
        db.upsert_entry(self.conn, self.candidate(link="https://example.com/b/1", feed_id=other.id,
                                                  published_at=NOW - timedelta(days=200)))
        self.conn.commit()

    def test_window_is_inclusive_and_newest_first(self):
        entries = db.entries_in_window(self.conn, 1, NOW - timedelta(days=30), NOW)
        self.assertEqual([e.title for e in entries], ["0 days old", "10 days old", "30 days old"])
        self.assertEqual(entries[0].feed_name, "Test Feed")
        self.assertEqual(entries[0].published_at, NOW)
        self.assertTrue(entries[0].is_new)

    def test_has_entries_before(self):
        self.assertTrue(db.has_entries_before(self.conn, 1, NOW - timedelta(days=60)))
        self.assertFalse(db.has_entries_before(self.conn, 1, NOW - timedelta(days=100)))
        # user 2's old entry is not user 1's business
        self.assertFalse(db.has_entries_before(self.conn, 1, NOW - timedelta(days=150)))
        self.assertTrue(db.has_entries_before(self.conn, 2, NOW - timedelta(days=150)))

    def test_mark_all_seen_only_touches_user(self):
        marked = db.mark_all_seen(self.conn, 1)
        self.assertEqual(marked, 4)
        rows = self.conn.execute(
            "SELECT f.user_id, e.is_new FROM feed_entries e JOIN feeds f ON f.id = e.feed_id"
        ).fetchall()
        self.assertTrue(all(r["is_new"] == 0 for r in rows if r["user_id"] == 1))
        self.assertTrue(all(r["is_new"] == 1 for r in rows if r["user_id"] == 2))

    def test_delete_entries_older_than(self):
        deleted = db.delete_entries_older_than(self.conn, NOW - timedelta(days=90))
        self.assertEqual(deleted, 2)
        self.assertEqual(self.count_entries(), 3)


if __name__ == "__main__":
    unittest.main()
