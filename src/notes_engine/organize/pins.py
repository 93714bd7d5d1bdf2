"""Pin resolution.

A note's effective pin state reconciles three sources, most specific first:

1. the visitor explicitly hid an administrator pin (``user_unpinned_public``),
2. the administrator pinned the note for everyone (``note.pinned``),
3. the visitor pinned the note locally (``user_pinned``).

Everything here is pure; persisting overrides is the caller's job
(see ``notes_engine.storage.local_storage.PinOverrideStore``).
"""

from dataclasses import dataclass, field
from typing import AbstractSet, FrozenSet, Iterable

from notes_engine.models.schema import Note


def hides_admin_pin(note: Note) -> bool:
    """Whether unpinning ``note`` must be recorded as a hidden admin pin."""
    return note.public and note.pinned is True


def effective_pinned(
    note: Note,
    user_pinned: AbstractSet[str],
    user_unpinned_public: AbstractSet[str],
) -> bool:
    """Resolve whether ``note`` shows as pinned for this visitor."""
    if hides_admin_pin(note) and note.slug in user_unpinned_public:
        return False
    if note.pinned is True:
        return True
    return note.slug in user_pinned


@dataclass(frozen=True)
class PinOverrides:
    """The visitor's local pin overrides.

    Attributes:
        user_pinned: Slugs the visitor pinned themselves.
        user_unpinned_public: Slugs of admin-pinned public notes the visitor hid.
    """

    user_pinned: FrozenSet[str] = field(default_factory=frozenset)
    user_unpinned_public: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, user_pinned: Iterable[str] = (), user_unpinned_public: Iterable[str] = ()) -> "PinOverrides":
        return cls(frozenset(user_pinned), frozenset(user_unpinned_public))

    def is_pinned(self, note: Note) -> bool:
        return effective_pinned(note, self.user_pinned, self.user_unpinned_public)

    def toggle(self, note: Note) -> "PinOverrides":
        """Flip the effective pin state of ``note``.

        Exactly one of the two sets changes: hiding or restoring an admin pin
        goes through ``user_unpinned_public``, every other pin action through
        ``user_pinned``.
        """
        pinning = not self.is_pinned(note)
        slug = note.slug
        if hides_admin_pin(note):
            if pinning:
                return PinOverrides(self.user_pinned, self.user_unpinned_public - {slug})
            return PinOverrides(self.user_pinned, self.user_unpinned_public | {slug})
        if pinning:
            return PinOverrides(self.user_pinned | {slug}, self.user_unpinned_public)
        return PinOverrides(self.user_pinned - {slug}, self.user_unpinned_public)

    def with_pinned(self, slug: str) -> "PinOverrides":
        """Add ``slug`` to the visitor's own pins (used for freshly created notes)."""
        return PinOverrides(self.user_pinned | {slug}, self.user_unpinned_public)

    def pruned(self, existing_slugs: AbstractSet[str]) -> "PinOverrides":
        """Drop slugs that no longer refer to a note."""
        return PinOverrides(
            self.user_pinned & frozenset(existing_slugs),
            self.user_unpinned_public & frozenset(existing_slugs),
        )


def toggle_pin(note: Note, overrides: PinOverrides) -> PinOverrides:
    """Functional form of ``PinOverrides.toggle``."""
    return overrides.toggle(note)
