"""Visitor-facing note actions: create, pin and delete."""

import logging
import threading
import uuid
from typing import Iterable, Optional

from notes_engine.config import config
from notes_engine.exceptions import ErrorCode, NotesError, ValidationError
from notes_engine.models.schema import Note, NoteCreate
from notes_engine.organize.pins import PinOverrides
from notes_engine.storage.local_storage import PinOverrideStore
from notes_engine.storage.note_store import NoteStore
from notes_engine.services.notifications import NotificationCenter

logger = logging.getLogger(__name__)


def new_note_slug() -> str:
    return f"new-note-{uuid.uuid4()}"


class NoteService:
    """Owns the visitor's pin overrides and performs note mutations.

    Pin overrides are computed with the pure functions of
    ``notes_engine.organize.pins`` and persisted through ``PinOverrideStore``
    right after every change.
    """

    def __init__(
        self,
        store: NoteStore,
        pin_store: PinOverrideStore,
        session_id: Optional[str],
        notifier: Optional[NotificationCenter] = None,
    ):
        self.store = store
        self.pin_store = pin_store
        self.session_id = session_id
        self.notifier = notifier or NotificationCenter()
        self._overrides = PinOverrides()
        self._lock = threading.Lock()

    @property
    def overrides(self) -> PinOverrides:
        with self._lock:
            return self._overrides

    def reload_overrides(self, notes: Iterable[Note]) -> PinOverrides:
        """Load overrides from local storage, pruned against ``notes``."""
        overrides = self.pin_store.load(notes, self.session_id)
        with self._lock:
            self._overrides = overrides
        return overrides

    def is_pinned(self, note: Note) -> bool:
        return self.overrides.is_pinned(note)

    def toggle_pin(self, note: Note) -> bool:
        """Flip the visitor's pin state for ``note`` and persist it.

        Returns:
            The new effective pin state.
        """
        with self._lock:
            self._overrides = self._overrides.toggle(note)
            overrides = self._overrides
        self.pin_store.save(overrides)
        pinned = overrides.is_pinned(note)
        logger.info(f"{'Pinned' if pinned else 'Unpinned'} {note.slug}")
        return pinned

    def create_private_note(self) -> Note:
        """Create an empty private note for this session and pin it.

        Raises:
            ValidationError: If the session identity is not known yet.
            DuplicateSlugError: If the generated slug collides.
            RemoteCallError: If the store call fails.
        """
        if not self.session_id:
            raise ValidationError(
                "Cannot create a private note without a session",
                field="session_id",
            )
        note = self.store.create(
            NoteCreate(
                slug=new_note_slug(),
                title="",
                content="",
                public=False,
                session_id=self.session_id,
                category="today",
                emoji=config.default_emoji,
            )
        )
        with self._lock:
            self._overrides = self._overrides.with_pinned(note.slug)
            overrides = self._overrides
        self.pin_store.save(overrides)
        self.notifier.success("Private note created")
        return note

    def delete_note(self, note: Note) -> None:
        """Delete one of the session's private notes.

        Raises:
            ValidationError: For public notes, which only an admin may delete.
            UnauthorizedError: If the store rejects the session.
            RemoteCallError: If the store call fails.
        """
        if note.public:
            raise ValidationError(
                "Public notes can't be deleted",
                field="public",
                value=note.slug,
                code=ErrorCode.NOTE_NOT_DELETABLE,
            )
        if not self.session_id:
            raise ValidationError("Cannot delete without a session", field="session_id")
        self.store.delete(note.slug, self.session_id)

    def try_delete_note(self, note: Note) -> bool:
        """``delete_note`` with failures turned into notifications."""
        try:
            self.delete_note(note)
        except ValidationError as e:
            self.notifier.error(f"Oops! {e.message}", e.code)
            return False
        except NotesError as e:
            self.notifier.failure(e, "Couldn't delete note")
            return False
        return True
