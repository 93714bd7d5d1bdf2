"""Configuration module for the notes engine."""

import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notes_engine import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the local storage file
_USER_ENV = Path.home() / ".notes_engine" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _split_csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class NotesConfig(BaseModel):
    """Configuration for the notes engine."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTES_ENGINE_BASE_DIR", "."))
    )
    # Reference store database
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTES_ENGINE_DATABASE_PATH", "data/db/notes.db")
        )
    )
    # Durable client-local storage (session id, pin overrides)
    local_storage_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTES_ENGINE_LOCAL_STORAGE", "data/local_storage.json")
        )
    )
    # Debounce window for batching edits, in milliseconds
    debounce_ms: int = Field(
        default_factory=lambda: int(os.getenv("NOTES_ENGINE_DEBOUNCE_MS", "500"))
    )
    # When True, closing an open note flushes unsent edits instead of dropping them
    flush_on_close: bool = Field(
        default_factory=lambda: os.getenv("NOTES_ENGINE_FLUSH_ON_CLOSE", "false").lower()
        in ("true", "1", "yes")
    )
    # Shared secret for the admin surface. None disables admin login.
    admin_password: Optional[str] = Field(
        default_factory=lambda: os.getenv("NOTES_ENGINE_ADMIN_PASSWORD") or None
    )
    # Slugs pinned for a visitor the first time their pin set is created
    default_pinned_slugs: List[str] = Field(
        default_factory=lambda: _split_csv(
            os.getenv("NOTES_ENGINE_DEFAULT_PINNED", "about-me,quick-links")
        )
    )
    # Selection used when nothing else is left to select (e.g. after a delete)
    fallback_slug: str = Field(
        default_factory=lambda: os.getenv("NOTES_ENGINE_FALLBACK_SLUG", "about-me")
    )
    default_emoji: str = Field(default="👋🏼")
    admin_default_emoji: str = Field(default="📝")
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTES_ENGINE_LOG_DIR"))
            if os.getenv("NOTES_ENGINE_LOG_DIR")
            else None
        )
    )
    # Where metrics are saved on exit. Defaults to metrics.json in the log directory.
    metrics_file: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTES_ENGINE_METRICS_FILE"))
            if os.getenv("NOTES_ENGINE_METRICS_FILE")
            else None
        )
    )
    version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate(self) -> "NotesConfig":
        """Reject settings the engine cannot run with."""
        if self.debounce_ms < 0:
            raise ValueError("debounce_ms must be >= 0")
        if not self.fallback_slug.strip():
            raise ValueError("fallback_slug cannot be empty")
        if self.admin_password is not None and len(self.admin_password) < 8:
            logger.warning(
                "Admin password is shorter than 8 characters; the admin screen "
                "is only as strong as this shared secret."
            )
        return self

    @property
    def debounce_seconds(self) -> float:
        """Debounce window in seconds, as expected by threading.Timer."""
        return self.debounce_ms / 1000.0

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def get_local_storage_path(self) -> Path:
        """Get the absolute path of the local storage file."""
        return self.get_absolute_path(self.local_storage_path)


# Create a global config instance
config = NotesConfig()
