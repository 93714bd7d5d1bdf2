"""Reference note store.

Implements the remote store boundary the engine consumes: queries, session
scoped mutations, admin mutations and a push subscription that fires after
every committed change. The engine treats these calls as opaque remote
procedure calls that may fail; this implementation backs them with SQLite.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from notes_engine.config import config
from notes_engine.exceptions import (
    DuplicateSlugError,
    NoteNotFoundError,
    RemoteCallError,
    UnauthorizedError,
    ValidationError,
    ErrorCode,
)
from notes_engine.models.db_models import DBNote, get_session_factory, init_db
from notes_engine.models.schema import (
    ADMIN_FIELDS,
    EDITABLE_FIELDS,
    Note,
    NoteCreate,
    PinOrder,
    ensure_timezone_aware,
    generate_id,
    utc_now,
    validate_slug,
)
from notes_engine.observability import traced

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreChange:
    """Describes one committed mutation, delivered to subscribers.

    Attributes:
        operation: Name of the store call (``create``, ``update``, ...).
        slugs: Slugs touched by the mutation.
    """

    operation: str
    slugs: Tuple[str, ...]


StoreListener = Callable[[StoreChange], None]

# Reorder input may be PinOrder models or plain (slug, pin_order) pairs
PinOrderInput = Union[PinOrder, Tuple[str, int]]


def _to_note(db_note: DBNote) -> Note:
    return Note(
        id=db_note.id,
        slug=db_note.slug,
        title=db_note.title,
        content=db_note.content,
        emoji=db_note.emoji,
        public=db_note.public,
        session_id=db_note.session_id,
        category=db_note.category,
        pinned=db_note.pinned,
        pin_order=db_note.pin_order,
        updated_at=ensure_timezone_aware(db_note.updated_at),
        creation_time=ensure_timezone_aware(db_note.creation_time),
    )


def _check_fields(fields: Dict[str, Any], allowed: Iterable[str]) -> None:
    allowed = set(allowed)
    unknown = sorted(set(fields) - allowed)
    if unknown:
        raise ValidationError(
            f"Fields cannot be updated: {', '.join(unknown)}",
            field=unknown[0],
            code=ErrorCode.INVALID_FIELD,
        )


class NoteStore:
    """Note store with a change subscription.

    Session-scoped calls (``update``, ``delete``) only succeed for a private
    note whose ``session_id`` matches the caller; public notes ignore
    ``session_id`` and are writable only through the admin calls.
    """

    def __init__(self, engine: Optional[Engine] = None, db_url: Optional[str] = None):
        """Initialize the store.

        Args:
            engine: Pre-configured SQLAlchemy engine. Created with
                ``init_db(db_url)`` when omitted.
            db_url: Database URL used only when ``engine`` is None.
        """
        self.engine = engine if engine is not None else init_db(db_url)
        self.session_factory = get_session_factory(self.engine)
        self._listeners: List[StoreListener] = []
        self._listeners_lock = threading.Lock()

    # =========================================================================
    # Subscription
    # =========================================================================

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register ``listener`` for change pushes.

        Returns:
            A callable that removes the subscription.
        """
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, operation: str, *slugs: str) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        change = StoreChange(operation=operation, slugs=tuple(slugs))
        for listener in listeners:
            try:
                listener(change)
            except Exception:
                # The mutation is already committed; a broken subscriber must not undo it
                logger.exception(f"Store listener failed for {operation}")

    # =========================================================================
    # Queries
    # =========================================================================

    def _query(self, operation: str, statement) -> List[Note]:
        try:
            with self.session_factory() as session:
                return [_to_note(row) for row in session.scalars(statement).all()]
        except SQLAlchemyError as e:
            raise RemoteCallError(
                f"Failed to {operation}", operation=operation, original_error=e
            )

    @traced("list_public_notes")
    def list_public_notes(self) -> List[Note]:
        """Get every public note."""
        return self._query(
            "list_public_notes", select(DBNote).where(DBNote.public.is_(True))
        )

    @traced("list_by_session")
    def list_by_session(self, session_id: str) -> List[Note]:
        """Get every note owned by ``session_id``."""
        if not session_id:
            return []
        return self._query(
            "list_by_session", select(DBNote).where(DBNote.session_id == session_id)
        )

    @traced("list_all")
    def list_all(self) -> List[Note]:
        """Get every note (admin view)."""
        return self._query("list_all", select(DBNote))

    @traced("get_by_slug")
    def get_by_slug(self, slug: str, session_id: Optional[str] = None) -> Optional[Note]:
        """Get a note by slug.

        Private notes are returned only to their owning session; for anyone
        else they are reported as missing rather than forbidden.
        """
        notes = self._query("get_by_slug", select(DBNote).where(DBNote.slug == slug))
        if not notes:
            return None
        note = notes[0]
        if note.public:
            return note
        if note.session_id and session_id and note.session_id == session_id:
            return note
        return None

    # =========================================================================
    # Mutations
    # =========================================================================

    def _insert(self, operation: str, data: NoteCreate, **defaults: Any) -> Note:
        values = data.model_dump()
        for key, value in defaults.items():
            if values.get(key) is None:
                values[key] = value
        now = utc_now()
        db_note = DBNote(id=generate_id(), creation_time=now, updated_at=now, **values)
        try:
            with self.session_factory() as session:
                existing = session.scalar(select(DBNote.id).where(DBNote.slug == data.slug))
                if existing is not None:
                    raise DuplicateSlugError(data.slug)
                session.add(db_note)
                session.commit()
                note = _to_note(db_note)
        except IntegrityError:
            raise DuplicateSlugError(data.slug)
        except SQLAlchemyError as e:
            raise RemoteCallError(
                f"Failed to {operation} note", operation=operation,
                slug=data.slug, original_error=e,
            )
        logger.info(f"Created note {note.slug} (public={note.public})")
        self._publish(operation, note.slug)
        return note

    @traced("create")
    def create(self, data: NoteCreate) -> Note:
        """Create a note on behalf of a visitor.

        Missing title/content default to empty strings and ``category`` to
        ``"today"``. Administrator-only fields are ignored.

        Raises:
            DuplicateSlugError: If the slug is already taken.
        """
        data = data.model_copy(update={"pinned": None, "pin_order": None})
        return self._insert(
            "create", data, title="", content="",
            emoji=config.default_emoji, category="today",
        )

    @traced("admin_create")
    def admin_create(self, data: NoteCreate) -> Note:
        """Create a note as an administrator (any initial field values).

        Raises:
            DuplicateSlugError: If the slug is already taken.
        """
        return self._insert(
            "admin_create", data, content="", emoji=config.admin_default_emoji
        )

    def _patch(
        self,
        operation: str,
        slug: str,
        fields: Dict[str, Any],
        session_id: Optional[str] = None,
        admin: bool = False,
        touch: bool = True,
    ) -> None:
        try:
            with self.session_factory() as session:
                db_note = session.scalar(select(DBNote).where(DBNote.slug == slug))
                if db_note is None:
                    if admin:
                        raise NoteNotFoundError(slug)
                    raise UnauthorizedError(slug=slug, operation=operation)
                if not admin and (db_note.public or db_note.session_id != session_id):
                    raise UnauthorizedError(slug=slug, operation=operation)
                if not fields:
                    return
                for key, value in fields.items():
                    setattr(db_note, key, value)
                if touch:
                    db_note.updated_at = utc_now()
                session.commit()
        except SQLAlchemyError as e:
            raise RemoteCallError(
                f"Failed to {operation} note", operation=operation,
                slug=slug, original_error=e,
            )
        self._publish(operation, slug)

    @traced("update")
    def update(self, slug: str, session_id: str, fields: Dict[str, Any]) -> None:
        """Update title/emoji/content of a private note owned by ``session_id``.

        ``None`` values are treated as "not provided". An empty update is a
        no-op that still checks ownership.

        Raises:
            UnauthorizedError: If the note is missing, public or owned by
                another session.
        """
        fields = {k: v for k, v in fields.items() if v is not None}
        _check_fields(fields, EDITABLE_FIELDS)
        self._patch("update", slug, fields, session_id=session_id)

    @traced("admin_update")
    def admin_update(self, slug: str, fields: Dict[str, Any]) -> None:
        """Update any field of any note except its slug.

        Raises:
            NoteNotFoundError: If no note has ``slug``.
        """
        fields = {k: v for k, v in fields.items() if v is not None}
        _check_fields(fields, ADMIN_FIELDS)
        self._patch("admin_update", slug, fields, admin=True)

    @traced("admin_update_slug")
    def admin_update_slug(self, old_slug: str, new_slug: str) -> None:
        """Re-slug a note.

        Raises:
            DuplicateSlugError: If ``new_slug`` is taken.
            NoteNotFoundError: If no note has ``old_slug``.
        """
        try:
            validate_slug(new_slug)
        except ValueError as e:
            raise ValidationError(str(e), field="slug", value=new_slug, code=ErrorCode.INVALID_SLUG)
        try:
            with self.session_factory() as session:
                taken = session.scalar(select(DBNote.id).where(DBNote.slug == new_slug))
                if taken is not None:
                    raise DuplicateSlugError(new_slug)
                db_note = session.scalar(select(DBNote).where(DBNote.slug == old_slug))
                if db_note is None:
                    raise NoteNotFoundError(old_slug)
                db_note.slug = new_slug
                session.commit()
        except IntegrityError:
            raise DuplicateSlugError(new_slug)
        except SQLAlchemyError as e:
            raise RemoteCallError(
                "Failed to change slug", operation="admin_update_slug",
                slug=old_slug, original_error=e,
            )
        logger.info(f"Re-slugged note {old_slug} -> {new_slug}")
        self._publish("admin_update_slug", old_slug, new_slug)

    def _remove(self, operation: str, slug: str, session_id: Optional[str], admin: bool) -> None:
        try:
            with self.session_factory() as session:
                db_note = session.scalar(select(DBNote).where(DBNote.slug == slug))
                if db_note is None:
                    if admin:
                        raise NoteNotFoundError(slug)
                    raise UnauthorizedError(slug=slug, operation=operation)
                if not admin and (db_note.public or db_note.session_id != session_id):
                    raise UnauthorizedError(slug=slug, operation=operation)
                session.delete(db_note)
                session.commit()
        except SQLAlchemyError as e:
            raise RemoteCallError(
                "Failed to delete note", operation=operation, slug=slug, original_error=e
            )
        logger.info(f"Deleted note {slug}")
        self._publish(operation, slug)

    @traced("delete")
    def delete(self, slug: str, session_id: str) -> None:
        """Delete a private note owned by ``session_id``.

        Raises:
            UnauthorizedError: If the note is missing, public or not owned.
        """
        self._remove("delete", slug, session_id, admin=False)

    @traced("admin_delete")
    def admin_delete(self, slug: str) -> None:
        """Delete any note.

        Raises:
            NoteNotFoundError: If no note has ``slug``.
        """
        self._remove("admin_delete", slug, None, admin=True)

    @traced("admin_reorder_pins")
    def admin_reorder_pins(self, orders: Sequence[PinOrderInput]) -> int:
        """Assign ``pin_order`` values in one transaction.

        Slugs that no longer exist are skipped. ``updated_at`` is not touched
        so reordering never moves a note between time buckets.

        Returns:
            Number of notes updated.
        """
        entries = [
            o if isinstance(o, PinOrder) else PinOrder(slug=o[0], pin_order=o[1])
            for o in orders
        ]
        touched: List[str] = []
        try:
            with self.session_factory() as session:
                for entry in entries:
                    db_note = session.scalar(select(DBNote).where(DBNote.slug == entry.slug))
                    if db_note is None:
                        logger.debug(f"Skipping reorder of missing note {entry.slug}")
                        continue
                    db_note.pin_order = entry.pin_order
                    touched.append(entry.slug)
                session.commit()
        except SQLAlchemyError as e:
            raise RemoteCallError(
                "Failed to reorder pins", operation="admin_reorder_pins", original_error=e
            )
        if touched:
            self._publish("admin_reorder_pins", *touched)
        return len(touched)
