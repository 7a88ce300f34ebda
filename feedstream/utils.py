"""Utility functions."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

from bs4 import BeautifulSoup

MAX_DESCRIPTION_CHARS = 1000
TRUNCATION_MARKER = "..."


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_ws(s: str) -> str:
    return re.sub(r"\s+", " ", s).strip()


def strip_markup(html: str) -> str:
    return BeautifulSoup(html, "html.parser").get_text(separator=" ")


def sanitize_description(raw: Optional[str], limit: int = MAX_DESCRIPTION_CHARS) -> str:
    """Plain-text form of an item description: no tags, single spaces, at most `limit` chars.

    A description cut at `limit` gets TRUNCATION_MARKER appended.
    """
    if not raw:
        return ""
    text = normalize_ws(strip_markup(raw))
    if len(text) > limit:
        text = text[:limit] + TRUNCATION_MARKER
    return text


def to_db_timestamp(dt: datetime) -> str:
    """Fixed-width UTC ISO string, so string comparison in SQL matches time order."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_timestamp(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
