"""Durable client-local storage.

A small string key/value store persisted as a JSON object on disk, the
client-side counterpart of the note store. It holds the session identity
and the visitor's pin overrides.
"""

import json
import logging
import threading
import uuid
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from notes_engine.exceptions import ErrorCode, StorageError
from notes_engine.models.schema import Note
from notes_engine.organize.pins import PinOverrides

logger = logging.getLogger(__name__)

SESSION_ID_KEY = "session_id"
PINNED_NOTES_KEY = "pinnedNotes"
UNPINNED_PUBLIC_NOTES_KEY = "unpinnedPublicNotes"


class LocalStorage:
    """String key/value storage backed by a JSON file.

    Every write rewrites the file atomically (temp file + rename). With
    ``path=None`` the storage lives in memory only.
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._items: Dict[str, str] = self._read()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def _read(self) -> Dict[str, str]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(
                "Failed to read local storage",
                path=str(self._path),
                code=ErrorCode.LOCAL_STORAGE_READ_FAILED,
                original_error=e,
            )
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed local storage file {self._path}")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, key: str) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temp_file = self._path.with_suffix(".tmp")
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(self._items, f, indent=2, ensure_ascii=False)
            temp_file.replace(self._path)
        except OSError as e:
            raise StorageError(
                "Failed to write local storage",
                key=key,
                path=str(self._path),
                code=ErrorCode.LOCAL_STORAGE_WRITE_FAILED,
                original_error=e,
            )

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value
            self._write(key)

    def remove_item(self, key: str) -> None:
        with self._lock:
            if self._items.pop(key, None) is not None:
                self._write(key)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._items)


def load_or_create_session_id(storage: LocalStorage) -> str:
    """Return the stored session id, generating and persisting one on first use."""
    session_id = storage.get_item(SESSION_ID_KEY)
    if not session_id:
        session_id = str(uuid.uuid4())
        storage.set_item(SESSION_ID_KEY, session_id)
        logger.info("Generated new session identity")
    return session_id


def _load_slug_list(storage: LocalStorage, key: str) -> Optional[List[str]]:
    raw = storage.get_item(key)
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Discarding unreadable '{key}' entry in local storage")
        return []
    if not isinstance(value, list):
        return []
    return [slug for slug in value if isinstance(slug, str)]


class PinOverrideStore:
    """Loads and saves ``PinOverrides`` in local storage.

    Slug arrays are JSON-encoded under ``pinnedNotes`` and
    ``unpinnedPublicNotes``.
    """

    def __init__(self, storage: LocalStorage, default_pinned_slugs: Iterable[str] = ()):
        self.storage = storage
        self.default_pinned_slugs = list(default_pinned_slugs)

    def load(self, notes: Iterable[Note], session_id: Optional[str]) -> PinOverrides:
        """Read overrides, pruning slugs that no longer match a note.

        The pruned arrays are written back. When the visitor has no pin set
        yet, it starts with the default slugs plus every note the session owns.
        """
        notes = list(notes)
        stored_pinned = _load_slug_list(self.storage, PINNED_NOTES_KEY)
        stored_unpinned = _load_slug_list(self.storage, UNPINNED_PUBLIC_NOTES_KEY)

        if stored_pinned is None:
            defaults = set(self.default_pinned_slugs)
            pinned = [
                note.slug
                for note in notes
                if note.slug in defaults or (session_id and note.session_id == session_id)
            ]
        else:
            pinned = stored_pinned
        overrides = PinOverrides.of(pinned, stored_unpinned or ()).pruned(
            {note.slug for note in notes}
        )

        if stored_pinned is None or overrides.user_pinned != frozenset(stored_pinned):
            self.storage.set_item(PINNED_NOTES_KEY, json.dumps(sorted(overrides.user_pinned)))
        if stored_unpinned is not None and overrides.user_unpinned_public != frozenset(
            stored_unpinned
        ):
            self.storage.set_item(
                UNPINNED_PUBLIC_NOTES_KEY, json.dumps(sorted(overrides.user_unpinned_public))
            )

        return overrides

    def save(self, overrides: PinOverrides) -> None:
        """Persist both sets (sorted, for stable files)."""
        self.storage.set_item(PINNED_NOTES_KEY, json.dumps(sorted(overrides.user_pinned)))
        self.storage.set_item(
            UNPINNED_PUBLIC_NOTES_KEY, json.dumps(sorted(overrides.user_unpinned_public))
        )
