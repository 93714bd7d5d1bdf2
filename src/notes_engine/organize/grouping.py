"""Grouping and ordering of notes into display buckets."""

import datetime
import sys
from typing import AbstractSet, Dict, Iterable, List, Optional

from notes_engine.models.schema import Note
from notes_engine.organize.classifier import (
    FIXED_BUCKET_ORDER,
    Bucket,
    classify,
    parse_month_bucket,
    parse_year_bucket,
)

# Notes without a pin order sort after every note that has one
MISSING_PIN_ORDER = sys.maxsize

GroupedNotes = Dict[str, List[Note]]


def _timestamp_key(note: Note) -> float:
    return note.effective_timestamp.timestamp()


def _pinned_sort_key(note: Note):
    order = note.pin_order if note.pin_order is not None else MISSING_PIN_ORDER
    return (order, -_timestamp_key(note), note.slug)


def _recent_first_key(note: Note):
    return (-_timestamp_key(note), note.slug)


def visible_notes(notes: Iterable[Note], session_id: Optional[str]) -> List[Note]:
    """Public notes plus the notes owned by ``session_id``, unique by slug.

    The first occurrence of a slug wins, so callers can pass public and
    session results concatenated.
    """
    seen = set()
    result = []
    for note in notes:
        if note.slug in seen or not note.is_visible_to(session_id):
            continue
        seen.add(note.slug)
        result.append(note)
    return result


def bucket_order(keys: Iterable[str]) -> List[str]:
    """Order bucket keys for display.

    Fixed buckets first, then months (newest first), then years (newest first).
    Unknown keys are dropped.
    """
    keys = set(keys)
    fixed = [k for k in FIXED_BUCKET_ORDER if k in keys]
    months = sorted(
        (k for k in keys if parse_month_bucket(k) is not None),
        key=parse_month_bucket,
        reverse=True,
    )
    years = sorted(
        (k for k in keys if parse_year_bucket(k) is not None),
        key=parse_year_bucket,
        reverse=True,
    )
    return fixed + months + years


def group(
    notes: Iterable[Note],
    user_pinned: AbstractSet[str],
    user_unpinned_public: AbstractSet[str],
    now: datetime.datetime,
) -> GroupedNotes:
    """Partition notes into buckets, sorted, in display order.

    Args:
        notes: The notes to organize (already filtered for visibility).
        user_pinned: Slugs the visitor pinned locally.
        user_unpinned_public: Admin-pinned slugs the visitor hid.
        now: Reference time; its timezone defines calendar days.

    Returns:
        An insertion-ordered mapping of bucket key to notes. Empty buckets
        are omitted.
    """
    buckets: Dict[str, List[Note]] = {}
    for note in notes:
        key = classify(note, now, user_pinned, user_unpinned_public)
        buckets.setdefault(key, []).append(note)

    grouped: GroupedNotes = {}
    for key in bucket_order(buckets):
        sort_key = _pinned_sort_key if key == Bucket.PINNED.value else _recent_first_key
        grouped[key] = sorted(buckets[key], key=sort_key)
    return grouped


def flatten(grouped: GroupedNotes) -> List[Note]:
    """Concatenate buckets in display order; the sequence j/k navigation walks."""
    ordered: List[Note] = []
    for key in bucket_order(grouped):
        ordered.extend(grouped[key])
    return ordered
