"""Data models for the notes engine."""

import datetime
import os
import re
import threading
from datetime import timezone
from typing import Any, Dict, FrozenSet, Optional

from pydantic import BaseModel, Field, field_validator

# Slugs are routing keys: no whitespace and no path separators
SAFE_SLUG_PATTERN = re.compile(r"^[^\s/\\?#]+$")

# Fields a note's owning session may edit through the debounced update call
EDITABLE_FIELDS: FrozenSet[str] = frozenset({"title", "emoji", "content"})

# Fields an administrator may change on any note (re-slugging is a separate call)
ADMIN_FIELDS: FrozenSet[str] = frozenset(
    {"title", "content", "emoji", "public", "category", "pinned", "pin_order"}
)


def validate_slug(value: str, field_name: str = "Slug") -> str:
    """Validate that a value can be used as a note slug.

    Args:
        value: The slug to validate
        field_name: Name of the field for error messages

    Returns:
        The validated value (unchanged)

    Raises:
        ValueError: If the slug is empty or contains unsafe characters
    """
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    if ".." in value:
        raise ValueError(f"{field_name} cannot contain '..'")
    if not SAFE_SLUG_PATTERN.match(value):
        raise ValueError(
            f"{field_name} cannot contain whitespace, path separators, '?' or '#'"
        )
    return value


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def local_now() -> datetime.datetime:
    """Get the current time in the machine's local timezone (aware)."""
    return datetime.datetime.now().astimezone()


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite drops timezone information, so values read back from the store
    are naive UTC and pass through here.
    """
    if dt_value is None:
        return None
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


# Thread-safe counter for uniqueness (seeded from PID for cross-process safety)
_id_lock = threading.Lock()
_last_timestamp = 0
_counter = (os.getpid() * 7) % 1_000_000


def generate_id() -> str:
    """Generate a store id: a UTC timestamp plus a uniqueness counter.

    Returns:
        A string "YYYYMMDDTHHMMSSsssssscccccc": date, 'T', time, 6-digit
        microseconds and a 6-digit counter for same-microsecond calls.
    """
    global _last_timestamp, _counter

    with _id_lock:
        now = utc_now()
        current_timestamp = int(now.timestamp() * 1_000_000)

        if current_timestamp == _last_timestamp:
            _counter += 1
        else:
            _last_timestamp = current_timestamp
            _counter = (os.getpid() * 7) % 1_000_000

        _counter %= 1_000_000

        date_time = now.strftime("%Y%m%dT%H%M%S")
        return f"{date_time}{now.microsecond:06d}{_counter:06d}"


class Note(BaseModel):
    """A note as returned by the store.

    ``public`` notes are visible to everyone; private notes belong to the
    session in ``session_id``. ``pinned`` is an administrator pin shown to all
    visitors and ``pin_order`` orders those pins (lower first).
    """

    id: str = Field(default_factory=generate_id, description="Store-assigned ID")
    slug: str = Field(..., description="Unique routing key")
    title: Optional[str] = Field(default=None, description="Title of the note")
    content: Optional[str] = Field(default=None, description="Markdown content")
    emoji: Optional[str] = Field(default=None, description="Short glyph shown beside the title")
    public: bool = Field(default=False, description="Visible to every visitor")
    session_id: Optional[str] = Field(
        default=None, description="Owning session for private notes"
    )
    category: Optional[str] = Field(
        default=None, description="Legacy bucket hint set by an administrator"
    )
    pinned: Optional[bool] = Field(
        default=None, description="Pinned by an administrator for all visitors"
    )
    pin_order: Optional[int] = Field(
        default=None, description="Relative order among admin pins (lower = earlier)"
    )
    updated_at: Optional[datetime.datetime] = Field(
        default=None, description="Last content mutation (UTC)"
    )
    creation_time: datetime.datetime = Field(
        default_factory=utc_now, description="When the store created the note (UTC)"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        return validate_slug(v)

    @field_validator("updated_at", "creation_time")
    @classmethod
    def validate_timestamps(cls, v: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
        """Store all timestamps timezone-aware."""
        return ensure_timezone_aware(v)

    @property
    def effective_timestamp(self) -> datetime.datetime:
        """Last edit time, falling back to creation time."""
        return self.updated_at if self.updated_at is not None else self.creation_time

    @property
    def is_admin_pinned(self) -> bool:
        return self.pinned is True

    def is_visible_to(self, session_id: Optional[str]) -> bool:
        """Public notes are visible to all; private ones only to their session."""
        if self.public:
            return True
        return bool(session_id) and self.session_id == session_id

    def with_updates(self, updates: Dict[str, Any]) -> "Note":
        """Return a validated copy of this note with ``updates`` applied."""
        return Note.model_validate({**self.model_dump(), **updates})


class NoteCreate(BaseModel):
    """Input for creating a note (store-assigned fields excluded)."""

    slug: str
    title: Optional[str] = None
    content: Optional[str] = None
    emoji: Optional[str] = None
    public: bool = False
    session_id: Optional[str] = None
    category: Optional[str] = None
    pinned: Optional[bool] = None
    pin_order: Optional[int] = None

    model_config = {"extra": "forbid"}

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        return validate_slug(v)


class PinOrder(BaseModel):
    """One entry of an administrator pin reordering."""

    slug: str
    pin_order: int

    model_config = {"frozen": True}
