"""Live view of the notes visible to one session."""

import logging
import threading
from typing import Callable, Dict, List, Optional

from notes_engine.exceptions import NotesError
from notes_engine.models.schema import Note
from notes_engine.organize.grouping import visible_notes
from notes_engine.storage.note_store import NoteStore, StoreChange

logger = logging.getLogger(__name__)

NotesListener = Callable[[List[Note]], None]


class LiveNoteCollection:
    """Public notes plus the session's private notes, kept current by store pushes.

    The collection re-queries the store whenever it is told something
    changed and hands the new list to its listeners. Consumers must not
    assume the list is fresh: it can change between any two interactions.
    """

    def __init__(self, store: NoteStore, session_id: Optional[str]):
        self.store = store
        self._session_id = session_id
        self._notes: List[Note] = []
        self._by_slug: Dict[str, Note] = {}
        self._listeners: List[NotesListener] = []
        self._lock = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def notes(self) -> List[Note]:
        with self._lock:
            return list(self._notes)

    @property
    def is_live(self) -> bool:
        return self._unsubscribe is not None

    def find(self, slug: Optional[str]) -> Optional[Note]:
        if slug is None:
            return None
        with self._lock:
            return self._by_slug.get(slug)

    def add_listener(self, listener: NotesListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def start(self) -> "LiveNoteCollection":
        """Subscribe to store changes and load the initial list."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_store_change)
        self.refresh()
        return self

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def set_session_id(self, session_id: Optional[str]) -> None:
        self._session_id = session_id
        self.refresh()

    def refresh(self) -> List[Note]:
        """Re-query the store and notify listeners.

        Raises:
            RemoteCallError: If the store cannot be queried.
        """
        public = self.store.list_public_notes()
        own = self.store.list_by_session(self._session_id) if self._session_id else []
        notes = visible_notes(public + own, self._session_id)
        with self._lock:
            self._notes = notes
            self._by_slug = {note.slug: note for note in notes}
            listeners = list(self._listeners)
        logger.debug(f"Live collection refreshed: {len(notes)} notes")
        for listener in listeners:
            listener(list(notes))
        return notes

    def _on_store_change(self, change: StoreChange) -> None:
        try:
            self.refresh()
        except NotesError as e:
            # Keep the last good view; the next push will try again
            logger.warning(f"Failed to refresh after {change.operation}: {e}")
