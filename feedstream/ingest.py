"""Feed fetching and entry ingestion."""

from __future__ import annotations

import http.client
import logging
import sqlite3
import time
import urllib.error
import urllib.request
from datetime import datetime
from typing import Any, List, Optional, Tuple

import feedparser

from . import config, dates, db, utils
from .errors import FetchError, ValidationError
from .models import EntryCandidate, FeedSource, IngestStats, RawItem

logger = logging.getLogger(__name__)

USER_AGENT = "feedstream/0.1 (RSS reader)"
READ_CHUNK_BYTES = 64 * 1024

# Entry fields holding the publish date, by preference
PUBLISHED_KEYS = ("published", "updated", "created")


def read_body(response: Any, deadline: float) -> bytes:
    """Read a response in chunks, giving up once `deadline` (monotonic) passes.

    The socket timeout bounds each read, not the whole body.
    """
    chunks = []
    while True:
        if time.monotonic() > deadline:
            raise TimeoutError("feed download exceeded the fetch timeout")
        chunk = response.read(READ_CHUNK_BYTES)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


def fetch_feed_with_timeout(url: str, timeout: Optional[float] = None) -> Tuple[Any, Optional[int], Optional[str]]:
    """
    Fetch and parse a feed with a timeout and one retry.
    Returns: (parsed_feed, http_status, error_message)

    Only retries on transient errors (5xx, network failures).
    Client errors (4xx) are returned straight away.
    """
    timeout = config.FETCH_TIMEOUT if timeout is None else timeout

    for attempt in range(2):
        try:
            req = urllib.request.Request(
                url,
                headers={
                    "User-Agent": USER_AGENT,
                    "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml, */*",
                },
            )
            deadline = time.monotonic() + timeout
            with urllib.request.urlopen(req, timeout=timeout) as response:
                http_status = response.getcode()
                return feedparser.parse(read_body(response, deadline)), http_status, None
        except urllib.error.HTTPError as e:
            http_status = e.code
            if 400 <= http_status < 500:
                if http_status == 404:
                    return None, http_status, "HTTP 404: Not Found (feed may have moved)"
                if http_status == 429:
                    return None, http_status, "HTTP 429: Rate Limited (too many requests)"
                return None, http_status, f"HTTP {http_status}: {e.reason}"
            if attempt == 0 and 500 <= http_status < 600:
                time.sleep(1)
                continue
            return None, http_status, f"HTTP {http_status}: {e.reason}"
        except urllib.error.URLError as e:
            if attempt == 0:
                time.sleep(1)
                continue
            return None, None, f"Network error: {e.reason}"
        except (OSError, ValueError, http.client.HTTPException) as e:
            # socket timeouts surface as OSError, bad URLs as ValueError
            return None, None, f"{type(e).__name__}: {e}"

    return None, None, "Failed after retry"


def raw_published(entry: Any) -> str:
    for key in PUBLISHED_KEYS:
        value = entry.get(key)
        if value:
            return value
    return ""


def parse_items(parsed: Any) -> List[RawItem]:
    items = []
    for e in parsed.entries:
        items.append(RawItem(
            title=utils.normalize_ws(e.get("title", "") or ""),
            description=e.get("description", "") or e.get("summary", "") or "",
            link=(e.get("link", "") or "").strip(),
            published_raw=raw_published(e),
        ))
    return items


def fetch_items(url: str) -> List[RawItem]:
    """Fetch a feed URL and return its items. Raises FetchError."""
    parsed, http_status, error = fetch_feed_with_timeout(url)
    if error:
        raise FetchError(url, error, http_status)

    if getattr(parsed, "bozo", 0):
        if not parsed.entries:
            raise FetchError(url, f"malformed feed: {parsed.get('bozo_exception')}", http_status)
        logger.warning("Feed %s parsed with warnings: %s", url, parsed.get("bozo_exception"))

    return parse_items(parsed)


def build_candidate(feed_id: int, item: RawItem, now: Optional[datetime] = None) -> EntryCandidate:
    return EntryCandidate(
        title=item.title,
        description=utils.sanitize_description(item.description),
        link=item.link,
        feed_id=feed_id,
        published_at=dates.normalize_published(item.published_raw, now=now),
    )


def ingest_items(conn: sqlite3.Connection, feed: FeedSource, items: List[RawItem]) -> IngestStats:
    """Write a feed's items, skipping the ones that fail. Commits once at the end."""
    stats = IngestStats()
    for item in items:
        stats.examined += 1
        try:
            candidate = build_candidate(feed.id, item)
            candidate.validate()
        except ValidationError as exc:
            logger.info("Skipping invalid entry %r from %s: %s", item.title, feed.name, exc)
            continue

        try:
            written = db.upsert_entry(conn, candidate)
        except sqlite3.Error as exc:
            logger.error("Error storing entry %r from %s: %s", item.title, feed.name, exc)
            continue
        if written:
            stats.new_or_updated += 1

    conn.commit()
    return stats


def refresh_source(feed: FeedSource, db_path: Optional[str] = None) -> IngestStats:
    """Fetch one feed and ingest it on a connection of its own.

    A feed that cannot be fetched is logged and counts as zero items.
    """
    logger.info("Processing feed: %s (%s)", feed.name, feed.url)
    try:
        items = fetch_items(feed.url)
    except FetchError as exc:
        logger.warning("Error fetching feed %s: %s", feed.name, exc)
        return IngestStats()

    logger.debug("Feed %s has %d items", feed.name, len(items))
    conn = db.connect(db_path)
    try:
        return ingest_items(conn, feed, items)
    finally:
        conn.close()
