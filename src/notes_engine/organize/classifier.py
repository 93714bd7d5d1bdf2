"""Bucket classification for the sidebar.

Buckets are plain string keys so they can be used directly as dictionary
keys and compared against literals:

    Pinned, Today, Yesterday, Previous7Days, Previous30Days,
    Month-YYYY-MM, Year-YYYY

Day differences are counted between calendar dates in the timezone of
``now``, so 23:59 yesterday and 00:01 today land in different buckets.
"""

import datetime
from enum import Enum
from typing import AbstractSet, Optional, Tuple

from notes_engine.models.schema import Note
from notes_engine.organize.pins import effective_pinned

MONTH_PREFIX = "Month-"
YEAR_PREFIX = "Year-"

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
)


class Bucket(str, Enum):
    """Fixed buckets, in display order."""

    PINNED = "Pinned"
    TODAY = "Today"
    YESTERDAY = "Yesterday"
    PREVIOUS_7_DAYS = "Previous7Days"
    PREVIOUS_30_DAYS = "Previous30Days"

    def __str__(self) -> str:
        return self.value


FIXED_BUCKET_ORDER = tuple(b.value for b in Bucket)

FIXED_LABELS = {
    Bucket.PINNED.value: "Pinned",
    Bucket.TODAY.value: "Today",
    Bucket.YESTERDAY.value: "Yesterday",
    Bucket.PREVIOUS_7_DAYS.value: "Previous 7 Days",
    Bucket.PREVIOUS_30_DAYS.value: "Previous 30 Days",
}


def month_bucket(year: int, month: int) -> str:
    return f"{MONTH_PREFIX}{year:04d}-{month:02d}"


def year_bucket(year: int) -> str:
    return f"{YEAR_PREFIX}{year:04d}"


def parse_month_bucket(key: str) -> Optional[Tuple[int, int]]:
    """Return ``(year, month)`` for a month bucket key, else None."""
    if not key.startswith(MONTH_PREFIX):
        return None
    year, month = key[len(MONTH_PREFIX):].split("-")
    return int(year), int(month)


def parse_year_bucket(key: str) -> Optional[int]:
    """Return the year of a year bucket key, else None."""
    if not key.startswith(YEAR_PREFIX):
        return None
    return int(key[len(YEAR_PREFIX):])


def bucket_label(key: str) -> str:
    """Human-readable heading for a bucket key."""
    if key in FIXED_LABELS:
        return FIXED_LABELS[key]
    month = parse_month_bucket(key)
    if month is not None:
        return MONTH_NAMES[month[1] - 1]
    year = parse_year_bucket(key)
    if year is not None:
        return str(year)
    return key


def effective_timestamp(note: Note) -> datetime.datetime:
    """``updated_at`` if set, else ``creation_time``."""
    return note.effective_timestamp


def _local_date(value: datetime.datetime, now: datetime.datetime) -> datetime.date:
    """Calendar date of ``value`` as seen from ``now``'s timezone."""
    if now.tzinfo is None:
        if value.tzinfo is not None:
            value = value.astimezone().replace(tzinfo=None)
        return value.date()
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(now.tzinfo).date()


def days_since(timestamp: datetime.datetime, now: datetime.datetime) -> int:
    """Whole calendar days from ``timestamp``'s date to ``now``'s date."""
    return (_local_date(now, now) - _local_date(timestamp, now)).days


def category_by_date(timestamp: datetime.datetime, now: datetime.datetime) -> str:
    """Temporal bucket for a timestamp, ignoring pins."""
    days = days_since(timestamp, now)
    if days == 0:
        return Bucket.TODAY.value
    if days == 1:
        return Bucket.YESTERDAY.value
    if 2 <= days <= 7:
        return Bucket.PREVIOUS_7_DAYS.value
    if 8 <= days <= 30:
        return Bucket.PREVIOUS_30_DAYS.value
    local = _local_date(timestamp, now)
    if local.year == _local_date(now, now).year:
        return month_bucket(local.year, local.month)
    return year_bucket(local.year)


def classify(
    note: Note,
    now: datetime.datetime,
    user_pinned: AbstractSet[str] = frozenset(),
    user_unpinned_public: AbstractSet[str] = frozenset(),
) -> str:
    """Assign ``note`` to exactly one bucket.

    Effectively pinned notes always go to ``Pinned``, whatever their age.
    """
    if effective_pinned(note, user_pinned, user_unpinned_public):
        return Bucket.PINNED.value
    return category_by_date(note.effective_timestamp, now)
