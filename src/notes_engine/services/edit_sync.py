"""Debounced synchronization of edits to an open note."""

import logging
import threading
from typing import Any, Callable, Dict, Optional, Protocol, Set

from notes_engine.config import config
from notes_engine.exceptions import ErrorCode, NotesError, ValidationError
from notes_engine.models.schema import EDITABLE_FIELDS, Note
from notes_engine.services.notifications import NotificationCenter

logger = logging.getLogger(__name__)


class SupportsUpdate(Protocol):
    def update(self, slug: str, session_id: str, fields: Dict[str, Any]) -> None:
        ...


TimerFactory = Callable[..., Any]


class EditSyncQueue:
    """Coalesces rapid local edits into one store update per debounce window.

    Edits are applied to the local copy of the note immediately and merged
    into a pending accumulator. Every edit restarts the debounce timer; when
    it expires, one ``store.update`` carries the union of the pending fields.
    Failures are reported but never roll back the local copy. Fields from a
    failed flush ride along, with their current local values, on the next one.
    """

    def __init__(
        self,
        note: Note,
        store: SupportsUpdate,
        session_id: Optional[str],
        notifier: Optional[NotificationCenter] = None,
        debounce: Optional[float] = None,
        timer_factory: TimerFactory = threading.Timer,
        on_local_change: Optional[Callable[[Note], None]] = None,
        flush_on_close: Optional[bool] = None,
    ):
        """Bind the queue to one open note.

        Args:
            note: The note being edited.
            store: Anything with ``update(slug, session_id, fields)``.
            session_id: Owning session; flushes wait until it is known.
            notifier: Receives failure notifications.
            debounce: Window in seconds. Defaults to ``config.debounce_seconds``.
            timer_factory: ``threading.Timer``-compatible factory.
            on_local_change: Called with the updated note after each edit.
            flush_on_close: Default for ``close()``. Defaults to
                ``config.flush_on_close``.
        """
        self._note = note
        self._store = store
        self._session_id = session_id
        self._notifier = notifier or NotificationCenter()
        self.debounce = config.debounce_seconds if debounce is None else debounce
        self._timer_factory = timer_factory
        self._on_local_change = on_local_change
        self._flush_on_close = (
            config.flush_on_close if flush_on_close is None else flush_on_close
        )

        self._pending: Dict[str, Any] = {}
        self._failed_fields: Set[str] = set()
        self._timer: Optional[Any] = None
        self._generation = 0
        self._closed = False
        self._lock = threading.Lock()
        # Serializes store calls so windows flush in expiry order
        self._flush_lock = threading.Lock()

    @property
    def note(self) -> Note:
        """The locally displayed note, including unsynced edits."""
        with self._lock:
            return self._note

    @property
    def pending(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._pending)

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return bool(self._pending)

    @property
    def is_scheduled(self) -> bool:
        with self._lock:
            return self._timer is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def set_session_id(self, session_id: Optional[str]) -> None:
        """Provide the session identity once it is known."""
        self._session_id = session_id

    def apply_edit(self, updates: Optional[Dict[str, Any]] = None, **fields: Any) -> Note:
        """Apply an edit locally and schedule its synchronization.

        Args:
            updates: Field values to change.
            **fields: Same, as keyword arguments.

        Returns:
            The updated local note.

        Raises:
            ValidationError: For fields other than title, emoji and content,
                or once the queue is closed.
        """
        changes = {**(updates or {}), **fields}
        if self._closed:
            raise ValidationError(
                "Note editor is closed", field="note", code=ErrorCode.EDITOR_CLOSED
            )
        unknown = sorted(set(changes) - EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Field cannot be edited: {unknown[0]}",
                field=unknown[0],
                code=ErrorCode.INVALID_FIELD,
            )
        if not changes:
            return self.note

        with self._lock:
            self._note = self._note.with_updates(changes)
            self._pending.update(changes)
            note = self._note

        if self._on_local_change is not None:
            self._on_local_change(note)
        self.schedule()
        return note

    def schedule(self) -> None:
        """Start the debounce window, replacing any running timer."""
        with self._lock:
            if self._closed:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._timer = self._timer_factory(
                self.debounce, self._on_timer, args=(self._generation,)
            )
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        """Cancel the pending timer without flushing."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1

    def flush_now(self) -> bool:
        """Cancel the timer and flush immediately.

        Returns:
            True if an update was sent successfully.
        """
        self.cancel()
        return self._flush()

    def close(self, flush: Optional[bool] = None) -> None:
        """Tear down the queue when the note is closed.

        The timer is always cancelled so no late write targets a note that
        is no longer displayed. Pending edits are flushed only when ``flush``
        (or the configured default) is true; otherwise they are dropped.
        """
        if self._closed:
            return
        should_flush = self._flush_on_close if flush is None else flush
        self.cancel()
        if should_flush:
            self._flush()
        else:
            with self._lock:
                dropped = sorted(self._pending)
            if dropped:
                logger.info(
                    f"Closing {self._note.slug} with unsaved fields: {', '.join(dropped)}"
                )
        self._closed = True

    def _on_timer(self, generation: int) -> None:
        """Called by the timer thread."""
        with self._lock:
            if generation != self._generation:
                return  # superseded or cancelled
            self._timer = None
        try:
            self._flush()
        except Exception:
            logger.exception(f"Unexpected error flushing edits for {self._note.slug}")

    def _flush(self) -> bool:
        with self._flush_lock:
            with self._lock:
                if not self._pending and not self._failed_fields:
                    return False
                if not self._session_id:
                    logger.debug(f"Holding edits for {self._note.slug}: no session yet")
                    return False
                fields = {name: getattr(self._note, name) for name in self._failed_fields}
                fields.update(self._pending)
                # Cleared before the call so a failure never replays a stale payload
                self._pending = {}
                self._failed_fields = set()
                slug = self._note.slug
                session_id = self._session_id

            try:
                self._store.update(slug, session_id, fields)
            except NotesError as e:
                with self._lock:
                    self._failed_fields.update(fields)
                logger.warning(f"Failed to sync {slug} ({', '.join(sorted(fields))}): {e}")
                self._notifier.failure(e, "Couldn't save note")
                return False

            logger.debug(f"Synced {slug}: {', '.join(sorted(fields))}")
            return True
