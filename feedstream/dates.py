"""Publish-date normalization and day labels for the reading view.

Feeds in the wild use a zoo of timestamp layouts. normalize_published tries
DATE_LAYOUTS in order and keeps the first that parses, so the order decides
what ambiguous input means: a date-time layout has to come before the bare
date it starts with, and day-first slash dates win over month-first ones.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timezone, tzinfo
from typing import Optional, Tuple

from dateutil import tz

from . import utils

logger = logging.getLogger(__name__)

# Unparseable dates sort to the far past instead of posing as fresh items.
SENTINEL_DATE = datetime(1990, 1, 1, tzinfo=timezone.utc)

# Layouts ending in ZONE carry a trailing zone abbreviation ("GMT", "PST").
# %z accepts "Z", "+hhmm" and "+hh:mm", and %d/%m accept one or two digits,
# so a single entry covers several wire forms. Naive layouts are read as UTC.
ZONE = "%Z"

DATE_LAYOUTS: Tuple[str, ...] = (
    "%a, %d %b %Y %H:%M:%S %z",      # RFC 1123 numeric zone
    "%a, %d %b %Y %H:%M:%S %Z",      # RFC 1123
    "%d %b %y %H:%M %z",             # RFC 822 numeric zone
    "%d %b %y %H:%M %Z",             # RFC 822
    "%Y-%m-%dT%H:%M:%S%z",           # RFC 3339
    "%Y-%m-%dT%H:%M:%S.%f%z",        # RFC 3339 with fraction
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M:%S",
    "%d %b %Y %H:%M:%S %z",
    "%d %b %Y %H:%M:%S",
    "%d %b %Y %H:%M:%S %Z",
    "%B %d, %Y %H:%M:%S",
    "%B %d, %Y, %H:%M:%S",
    "%b %d, %Y %H:%M:%S",
    "%b %d, %Y, %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
)

# RFC 822 zone names; any other abbreviation is taken as offset zero.
ZONE_OFFSETS = {
    "UT": 0, "UTC": 0, "GMT": 0, "Z": 0,
    "EST": -5, "EDT": -4,
    "CST": -6, "CDT": -5,
    "MST": -7, "MDT": -6,
    "PST": -8, "PDT": -7,
}

_ZONE_SUFFIX = re.compile(r"^(?P<rest>.*\S)\s+(?P<zone>[A-Z]{1,5})$")
_LONG_FRACTION = re.compile(r"(\.\d{6})\d+")


def _zone_for(abbr: str) -> Optional[tzinfo]:
    if abbr in ZONE_OFFSETS:
        return tz.tzoffset(abbr, ZONE_OFFSETS[abbr] * 3600)
    if len(abbr) >= 3:
        return tz.tzoffset(abbr, 0)
    return None


def parse_layout(value: str, layout: str) -> datetime:
    """Parse `value` with one layout. Raises ValueError when it does not fit."""
    if layout.endswith(" " + ZONE):
        m = _ZONE_SUFFIX.match(value)
        if not m:
            raise ValueError(f"no zone abbreviation in {value!r}")
        zone = _zone_for(m.group("zone"))
        if zone is None:
            raise ValueError(f"unknown zone {m.group('zone')!r}")
        dt = datetime.strptime(m.group("rest"), layout[: -len(ZONE) - 1])
        return dt.replace(tzinfo=zone)
    dt = datetime.strptime(value, layout)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def normalize_published(raw: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Resolve a raw feed timestamp to an aware UTC datetime. Never raises.

    Empty input means "just published" and yields the current time. Input no
    layout understands yields SENTINEL_DATE.
    """
    value = (raw or "").strip()
    if not value:
        logger.debug("Empty publish date, using current time")
        return (now or utils.utcnow()).astimezone(timezone.utc)

    value = _LONG_FRACTION.sub(r"\1", value)
    for layout in DATE_LAYOUTS:
        try:
            return parse_layout(value, layout).astimezone(timezone.utc)
        except ValueError:
            continue
        except OverflowError:
            # parsed, but the UTC shift leaves the datetime range
            break

    logger.warning("Could not parse date %r with any known layout, using %s",
                   raw, SENTINEL_DATE.isoformat())
    return SENTINEL_DATE


def resolve_tz(name: Optional[str] = None) -> tzinfo:
    """Viewer time zone by IANA name; empty or unknown names give the system zone."""
    if name:
        zone = tz.gettz(name)
        if zone is not None:
            return zone
        logger.warning("Unknown time zone %r, falling back to local time", name)
    return tz.tzlocal()


def to_zone(dt: datetime, zone: tzinfo) -> datetime:
    """`dt` in the viewer's zone; stays in UTC at the ends of the datetime range."""
    try:
        return dt.astimezone(zone)
    except (OverflowError, OSError):
        return dt


def local_day(dt: datetime, zone: tzinfo) -> date:
    return to_zone(dt, zone).date()


def day_label(day: date, today: date) -> str:
    days_ago = (today - day).days
    if days_ago == 0:
        return "Today"
    if days_ago == 1:
        return "Yesterday"
    if 1 < days_ago < 7:
        return day.strftime("%A")
    if day.year == today.year:
        return f"{day:%B} {day.day}"
    return f"{day:%B} {day.day}, {day.year}"
