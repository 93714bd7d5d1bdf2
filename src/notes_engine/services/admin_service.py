"""Administrator operations: curate public notes and their pin order."""

import hmac
import logging
from typing import Any, List, Optional

from notes_engine.config import config
from notes_engine.exceptions import (
    ErrorCode,
    NoteNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from notes_engine.models.schema import Note, NoteCreate, PinOrder, validate_slug
from notes_engine.services.confirmation import DeleteConfirmation
from notes_engine.services.navigation import Direction
from notes_engine.services.notifications import NotificationCenter
from notes_engine.storage.note_store import NoteStore

logger = logging.getLogger(__name__)

# pin_order assigned to the first pinned note is BASE_PIN_ORDER + 1
BASE_PIN_ORDER = -1


def _not_pinnable(slug: str) -> ValidationError:
    return ValidationError(
        "Only public notes can be pinned for everyone",
        field="pinned",
        value=slug,
        code=ErrorCode.NOTE_NOT_PINNABLE,
    )


def _pinned_sort_key(note: Note):
    order = note.pin_order if note.pin_order is not None else float("inf")
    return (order, -note.creation_time.timestamp() if note.creation_time else 0.0, note.slug)


class AdminService:
    """Admin screen backend guarded by a shared secret.

    Every operation raises ``UnauthorizedError`` until ``login`` succeeds.
    """

    def __init__(
        self,
        store: NoteStore,
        notifier: Optional[NotificationCenter] = None,
        password: Optional[str] = None,
    ):
        self.store = store
        self.notifier = notifier or NotificationCenter()
        self._password = password if password is not None else config.admin_password
        self._logged_in = False
        self.confirmation = DeleteConfirmation()

    @property
    def logged_in(self) -> bool:
        return self._logged_in

    def login(self, secret: str) -> bool:
        """Check ``secret`` against the configured admin password.

        Raises:
            UnauthorizedError: If no admin password is configured.
        """
        if not self._password:
            raise UnauthorizedError(
                "Admin login is disabled", operation="login", code=ErrorCode.ADMIN_DISABLED
            )
        self._logged_in = hmac.compare_digest(
            secret.encode("utf-8"), self._password.encode("utf-8")
        )
        if not self._logged_in:
            logger.warning("Rejected admin login attempt")
        return self._logged_in

    def logout(self) -> None:
        self._logged_in = False
        self.confirmation.disarm()

    def _require_login(self, operation: str) -> None:
        if not self._logged_in:
            raise UnauthorizedError(
                "Admin login required",
                operation=operation,
                code=ErrorCode.ADMIN_LOGIN_REQUIRED,
            )

    def _find(self, slug: str) -> Note:
        for note in self.store.list_all():
            if note.slug == slug:
                return note
        raise NoteNotFoundError(slug)

    # Queries

    def list_notes(self) -> List[Note]:
        """Pinned notes in pin order, then the rest newest first."""
        self._require_login("list_notes")
        return self.pinned_notes() + self.unpinned_notes()

    def pinned_notes(self) -> List[Note]:
        self._require_login("pinned_notes")
        return sorted(
            (n for n in self.store.list_all() if n.is_admin_pinned), key=_pinned_sort_key
        )

    def unpinned_notes(self) -> List[Note]:
        self._require_login("unpinned_notes")
        return sorted(
            (n for n in self.store.list_all() if not n.is_admin_pinned),
            key=lambda n: (-n.effective_timestamp.timestamp(), n.slug),
        )

    def next_pin_order(self) -> int:
        orders = [
            n.pin_order
            for n in self.store.list_all()
            if n.is_admin_pinned and n.pin_order is not None
        ]
        return max(orders, default=BASE_PIN_ORDER) + 1

    # Mutations

    def create_note(
        self,
        slug: str,
        title: str,
        content: str = "",
        emoji: Optional[str] = None,
        public: bool = True,
        category: str = "today",
        pinned: bool = False,
    ) -> Note:
        """Create a note with any initial values.

        Raises:
            ValidationError: If slug or title is missing.
            DuplicateSlugError: If the slug is taken.
        """
        self._require_login("create_note")
        if not slug or not slug.strip():
            raise ValidationError("Slug is required", field="slug", code=ErrorCode.INVALID_SLUG)
        if not title or not title.strip():
            raise ValidationError("Title is required", field="title")
        try:
            validate_slug(slug)
        except ValueError as e:
            raise ValidationError(str(e), field="slug", value=slug, code=ErrorCode.INVALID_SLUG)
        if pinned and not public:
            raise _not_pinnable(slug)

        note = self.store.admin_create(
            NoteCreate(
                slug=slug,
                title=title,
                content=content,
                emoji=emoji,
                public=public,
                category=category,
                pinned=pinned,
                pin_order=self.next_pin_order() if pinned else None,
            )
        )
        self.notifier.success("Note created")
        return note

    def update_note(self, slug: str, **fields: Any) -> None:
        """Change any field except the slug (see ``rename``)."""
        self._require_login("update_note")
        if fields.get("public") is False:
            fields["pinned"] = False
        elif fields.get("pinned") and not fields.get("public", self._find(slug).public):
            raise _not_pinnable(slug)
        self.store.admin_update(slug, fields)
        self.notifier.success("Note updated")

    def rename(self, old_slug: str, new_slug: str) -> None:
        self._require_login("rename")
        self.store.admin_update_slug(old_slug, new_slug)
        self.notifier.success("Slug updated")

    def toggle_pinned(self, slug: str) -> bool:
        """Pin or unpin a note for everyone.

        Newly pinned notes go to the end of the pinned list.

        Returns:
            The new pinned state.
        """
        self._require_login("toggle_pinned")
        note = self._find(slug)
        if note.is_admin_pinned:
            self.store.admin_update(slug, {"pinned": False})
            pinned = False
        elif not note.public:
            raise _not_pinnable(slug)
        else:
            self.store.admin_update(slug, {"pinned": True, "pin_order": self.next_pin_order()})
            pinned = True
        self.notifier.success("Note pinned" if pinned else "Note unpinned")
        return pinned

    def move(self, slug: str, direction: Direction) -> bool:
        """Swap a pinned note with its neighbour and renumber the pinned list.

        Returns:
            False if the note is not pinned or already at that end.
        """
        self._require_login("move")
        pinned = self.pinned_notes()
        slugs = [n.slug for n in pinned]
        if slug not in slugs:
            return False
        index = slugs.index(slug)
        target = index - 1 if direction is Direction.UP else index + 1
        if target < 0 or target >= len(slugs):
            return False
        slugs[index], slugs[target] = slugs[target], slugs[index]
        self.store.admin_reorder_pins(
            [PinOrder(slug=s, pin_order=i) for i, s in enumerate(slugs)]
        )
        return True

    def move_up(self, slug: str) -> bool:
        return self.move(slug, Direction.UP)

    def move_down(self, slug: str) -> bool:
        return self.move(slug, Direction.DOWN)

    def delete_note(self, slug: str, confirmed: bool = False) -> bool:
        """Delete on the second request for the same slug.

        ``confirmed`` skips the arming step for callers that already asked.

        Returns:
            True if the note was deleted.
        """
        self._require_login("delete_note")
        if confirmed:
            self.confirmation.disarm()
        elif not self.confirmation.request(slug):
            self.notifier.info("Click delete again to confirm")
            return False
        self.store.admin_delete(slug)
        self.notifier.success("Note deleted")
        return True
