"""Record types shared by storage, ingestion and the reading view."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from .errors import ValidationError


@dataclass
class FeedSource:
    id: int
    user_id: int
    name: str
    url: str
    created_at: Optional[datetime] = None


@dataclass
class FeedEntry:
    id: int
    feed_id: int
    feed_name: str
    title: str
    description: str
    link: str
    published_at: datetime
    is_new: bool

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "feed_id": self.feed_id,
            "feed_name": self.feed_name,
            "title": self.title,
            "description": self.description,
            "link": self.link,
            "published_at": self.published_at.isoformat(),
            "is_new": self.is_new,
        }


@dataclass
class RawItem:
    """One item as the feed parser handed it over, before normalization."""

    title: str
    description: str
    link: str
    published_raw: str


@dataclass
class EntryCandidate:
    """A normalized item ready to be written."""

    title: str
    description: str
    link: str
    feed_id: int
    published_at: datetime

    def validate(self) -> None:
        if not self.title:
            raise ValidationError("entry title is empty")
        if not self.link:
            raise ValidationError("entry link is empty")
        if not isinstance(self.feed_id, int) or self.feed_id <= 0:
            raise ValidationError(f"invalid feed id: {self.feed_id!r}")


@dataclass
class IngestStats:
    examined: int = 0
    new_or_updated: int = 0

    def __add__(self, other: "IngestStats") -> "IngestStats":
        return IngestStats(self.examined + other.examined,
                           self.new_or_updated + other.new_or_updated)


@dataclass
class DateBucket:
    day: date
    label: str
    entries: List[FeedEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "date": self.day.isoformat(),
            "label": self.label,
            "items": [e.to_dict() for e in self.entries],
        }


@dataclass
class FeedPage:
    buckets: List[DateBucket]
    has_more: bool
    feed_names: List[str]
    next_offset: int
    window_start: datetime
    window_end: datetime

    def to_dict(self) -> dict:
        return {
            "groups": [b.to_dict() for b in self.buckets],
            "has_more": self.has_more,
            "feed_names": self.feed_names,
            "next_offset": self.next_offset,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
        }
