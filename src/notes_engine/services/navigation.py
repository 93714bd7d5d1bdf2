"""Search and keyboard navigation over the organized note list.

The state is an immutable ``NavigationState``; the module-level functions
are pure transitions over it. ``NavigationController`` wires those
transitions to a live note collection, pin overrides and key events.
"""

import dataclasses
import datetime
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from notes_engine.config import config
from notes_engine.exceptions import NotesError, ValidationError
from notes_engine.models.schema import Note, local_now
from notes_engine.organize.grouping import GroupedNotes, flatten, group
from notes_engine.services.live_notes import LiveNoteCollection
from notes_engine.services.note_service import NoteService
from notes_engine.services.notifications import NotificationCenter

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"


class SearchMode(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"


class FocusTarget(str, Enum):
    """Where keyboard focus was when a key was pressed."""

    BODY = "body"
    SEARCH_INPUT = "search_input"
    INPUT = "input"
    TEXTAREA = "textarea"
    SELECT = "select"
    CONTENT_EDITABLE = "content_editable"

    @property
    def is_typing(self) -> bool:
        return self is not FocusTarget.BODY


@dataclass(frozen=True)
class KeyEvent:
    key: str
    target: FocusTarget = FocusTarget.BODY
    ctrl: bool = False
    meta: bool = False
    alt: bool = False

    @property
    def has_modifier(self) -> bool:
        return self.ctrl or self.meta or self.alt


@dataclass(frozen=True)
class NavigationState:
    """Search query, results, highlight and selection.

    ``results`` is None while idle and a (possibly empty) tuple while
    searching.
    """

    query: str = ""
    results: Optional[Tuple[Note, ...]] = None
    highlighted_index: int = 0
    selected_slug: Optional[str] = None
    search_focused: bool = False
    armed_delete_slug: Optional[str] = None

    @property
    def mode(self) -> SearchMode:
        return SearchMode.IDLE if self.results is None else SearchMode.SEARCHING

    @property
    def has_results(self) -> bool:
        return bool(self.results)


SelectionFallback = Callable[[Direction, Sequence[Note]], Optional[str]]


def default_fallback(direction: Direction, ordered: Sequence[Note]) -> Optional[str]:
    """Where to go when the selection is not in the list: first or last note."""
    if not ordered:
        return None
    return ordered[0].slug if direction is Direction.DOWN else ordered[-1].slug


def search_notes(notes: Sequence[Note], query: str, session_id: Optional[str]) -> List[Note]:
    """Case-insensitive substring match on title and content.

    Only public notes and the session's own notes can match.
    """
    needle = query.strip().lower()
    if not needle:
        return []
    return [
        note
        for note in notes
        if note.is_visible_to(session_id)
        and (needle in (note.title or "").lower() or needle in (note.content or "").lower())
    ]


def clear_search(state: NavigationState) -> NavigationState:
    return dataclasses.replace(state, query="", results=None, highlighted_index=0)


def set_query(
    state: NavigationState,
    query: str,
    notes: Sequence[Note],
    session_id: Optional[str],
) -> NavigationState:
    """Update the query; a blank query returns to idle."""
    if not query.strip():
        return clear_search(state)
    results = tuple(search_notes(notes, query, session_id))
    return dataclasses.replace(state, query=query, results=results, highlighted_index=0)


def refresh_results(
    state: NavigationState,
    notes: Sequence[Note],
    session_id: Optional[str],
) -> NavigationState:
    """Re-run the current query against a changed collection."""
    if state.mode is SearchMode.IDLE:
        return state
    results = tuple(search_notes(notes, state.query, session_id))
    index = min(state.highlighted_index, max(len(results) - 1, 0))
    return dataclasses.replace(state, results=results, highlighted_index=index)


def move_highlight(state: NavigationState, direction: Direction) -> NavigationState:
    """Move the highlight through the results, wrapping at both ends."""
    if not state.results:
        return state
    step = 1 if direction is Direction.DOWN else -1
    index = (state.highlighted_index + step) % len(state.results)
    return dataclasses.replace(state, highlighted_index=index)


def navigate_sequential(
    state: NavigationState,
    ordered: Sequence[Note],
    direction: Direction,
    fallback: SelectionFallback = default_fallback,
) -> NavigationState:
    """Select the next or previous note in display order, wrapping.

    Only applies while idle. When the current selection is not in
    ``ordered``, ``fallback`` picks the target.
    """
    if state.mode is SearchMode.SEARCHING or not ordered:
        return state
    slugs = [note.slug for note in ordered]
    if state.selected_slug in slugs:
        step = 1 if direction is Direction.DOWN else -1
        target: Optional[str] = slugs[(slugs.index(state.selected_slug) + step) % len(slugs)]
    else:
        target = fallback(direction, ordered)
    if target is None:
        return state
    return dataclasses.replace(state, selected_slug=target)


def confirm_highlighted(state: NavigationState) -> NavigationState:
    """Select the highlighted result and leave search."""
    if not state.results:
        return state
    note = state.results[state.highlighted_index]
    return clear_search(dataclasses.replace(state, selected_slug=note.slug, search_focused=False))


def escape(state: NavigationState, focused: bool) -> NavigationState:
    """Two-stage escape: first drop focus, then clear the query."""
    if focused:
        return dataclasses.replace(state, search_focused=False)
    if state.query:
        return clear_search(state)
    return state


def highlighted_note(state: NavigationState, notes: Sequence[Note]) -> Optional[Note]:
    """The highlighted search result, else the selected note."""
    if state.results:
        return state.results[state.highlighted_index]
    for note in notes:
        if note.slug == state.selected_slug:
            return note
    return None


def arm_or_confirm_delete(state: NavigationState, slug: str) -> Tuple[NavigationState, bool]:
    """First request for ``slug`` arms; a second one confirms.

    Returns:
        The new state and whether the deletion should proceed.
    """
    if state.armed_delete_slug != slug:
        return dataclasses.replace(state, armed_delete_slug=slug), False
    return dataclasses.replace(state, armed_delete_slug=None), True


def next_selection_after_delete(ordered: Sequence[Note], slug: str) -> Optional[str]:
    """The previous note in display order, or the second one if ``slug`` was first."""
    slugs = [note.slug for note in ordered]
    if slug not in slugs:
        return None
    index = slugs.index(slug)
    if index == 0:
        return slugs[1] if len(slugs) > 1 else None
    return slugs[index - 1]


@dataclass
class ShellCallbacks:
    """Hooks into the embedding shell; all optional."""

    on_select: Optional[Callable[[Optional[str]], None]] = None
    on_focus_search: Optional[Callable[[], None]] = None
    on_theme_change: Optional[Callable[[str], None]] = None
    on_command_palette: Optional[Callable[[bool], None]] = None


class NavigationController:
    """Keyboard-driven navigation over a live note collection.

    Store pushes can arrive on other threads (a debounced edit flush runs on
    its timer thread), so every read-modify-write of the controller state
    happens under one re-entrant lock.
    """

    def __init__(
        self,
        collection: LiveNoteCollection,
        note_service: NoteService,
        notifier: Optional[NotificationCenter] = None,
        clock: Callable[[], datetime.datetime] = local_now,
        callbacks: Optional[ShellCallbacks] = None,
        fallback: SelectionFallback = default_fallback,
        fallback_slug: Optional[str] = None,
        selected_slug: Optional[str] = None,
    ):
        self.collection = collection
        self.note_service = note_service
        self.notifier = notifier or note_service.notifier
        self.clock = clock
        self.callbacks = callbacks or ShellCallbacks()
        self.fallback = fallback
        self.fallback_slug = fallback_slug or config.fallback_slug
        self.theme = "light"
        self.palette_open = False

        self._lock = threading.RLock()
        self._state = NavigationState(selected_slug=selected_slug)
        self._grouped: GroupedNotes = {}
        self._ordered: List[Note] = []
        self._remove_listener = collection.add_listener(self._on_notes_changed)
        self._rebuild(collection.notes)

    @property
    def state(self) -> NavigationState:
        with self._lock:
            return self._state

    @property
    def grouped(self) -> GroupedNotes:
        with self._lock:
            return self._grouped

    @property
    def ordered(self) -> List[Note]:
        with self._lock:
            return list(self._ordered)

    @property
    def selected_note(self) -> Optional[Note]:
        return self.collection.find(self.state.selected_slug)

    @property
    def highlighted(self) -> Optional[Note]:
        return highlighted_note(self.state, self.collection.notes)

    @property
    def session_id(self) -> Optional[str]:
        return self.collection.session_id

    def close(self) -> None:
        self._remove_listener()

    def _rebuild(self, notes: List[Note]) -> None:
        with self._lock:
            overrides = self.note_service.reload_overrides(notes)
            self._grouped = group(
                notes, overrides.user_pinned, overrides.user_unpinned_public, self.clock()
            )
            self._ordered = flatten(self._grouped)
            self._state = refresh_results(self._state, notes, self.session_id)

    def _on_notes_changed(self, notes: List[Note]) -> None:
        try:
            self._rebuild(notes)
        except NotesError as e:
            logger.warning(f"Failed to reorganize notes: {e}")

    def regroup(self) -> GroupedNotes:
        """Recompute buckets, e.g. after the day rolled over."""
        with self._lock:
            self._rebuild(self.collection.notes)
            return self._grouped

    def _set_state(self, state: NavigationState) -> None:
        previous = self._state.selected_slug
        self._state = state
        if state.selected_slug != previous and self.callbacks.on_select is not None:
            self.callbacks.on_select(state.selected_slug)

    def _transition(self, step: Callable[[NavigationState], NavigationState]) -> NavigationState:
        with self._lock:
            self._set_state(step(self._state))
            return self._state

    # Transitions

    def select(self, slug: Optional[str]) -> None:
        self._transition(lambda state: dataclasses.replace(state, selected_slug=slug))

    def set_query(self, query: str) -> NavigationState:
        return self._transition(
            lambda state: set_query(state, query, self.collection.notes, self.session_id)
        )

    def clear_search(self) -> None:
        self._transition(clear_search)

    def move_highlight(self, direction: Direction) -> None:
        self._transition(lambda state: move_highlight(state, direction))

    def navigate(self, direction: Direction) -> None:
        self._transition(
            lambda state: navigate_sequential(state, self._ordered, direction, self.fallback)
        )

    def confirm_highlighted(self) -> None:
        self._transition(confirm_highlighted)

    def escape(self, focused: bool) -> None:
        self._transition(lambda state: escape(state, focused))

    def focus_search(self) -> None:
        self._transition(lambda state: dataclasses.replace(state, search_focused=True))
        if self.callbacks.on_focus_search is not None:
            self.callbacks.on_focus_search()

    def toggle_theme(self) -> str:
        self.theme = "dark" if self.theme == "light" else "light"
        if self.callbacks.on_theme_change is not None:
            self.callbacks.on_theme_change(self.theme)
        return self.theme

    def toggle_palette(self) -> bool:
        self.palette_open = not self.palette_open
        if self.callbacks.on_command_palette is not None:
            self.callbacks.on_command_palette(self.palette_open)
        return self.palette_open

    # Actions

    def toggle_pin(self, note: Optional[Note] = None) -> Optional[bool]:
        """Toggle the pin of ``note`` (default: the highlighted note).

        A private note pinned by the administrator stays pinned whatever the
        visitor does; that case is reported instead of a pin change.
        """
        with self._lock:
            target = note or self.highlighted
            if target is None:
                return None
            was_pinned = self.note_service.is_pinned(target)
            pinned = self.note_service.toggle_pin(target)
            self._rebuild(self.collection.notes)
            self._set_state(
                clear_search(dataclasses.replace(self._state, selected_slug=target.slug))
            )
        if pinned == was_pinned:
            self.notifier.info("This note is pinned for everyone")
        else:
            self.notifier.success("Note pinned" if pinned else "Note unpinned")
        return pinned

    def request_delete(self, note: Optional[Note] = None, confirmed: bool = False) -> bool:
        """Delete ``note`` (default: the highlighted note) on the second request.

        ``confirmed`` skips the arming step for callers that already asked.

        Returns:
            True if the note was deleted.
        """
        with self._lock:
            target = note or self.highlighted
            if target is None:
                return False
            if target.public:
                self._state = dataclasses.replace(self._state, armed_delete_slug=None)
                self.notifier.error("Oops! You can't delete public notes")
                return False

            if confirmed:
                self._state = dataclasses.replace(self._state, armed_delete_slug=None)
            else:
                state, proceed = arm_or_confirm_delete(self._state, target.slug)
                self._state = state
                if not proceed:
                    self.notifier.info("Press d again to delete")
                    return False

            next_slug = next_selection_after_delete(self._ordered, target.slug)
            if not self.note_service.try_delete_note(target):
                return False
            self._set_state(
                clear_search(
                    dataclasses.replace(
                        self._state, selected_slug=next_slug or self.fallback_slug
                    )
                )
            )
        self.notifier.success("Note deleted")
        return True

    def create_note(self) -> Optional[Note]:
        try:
            note = self.note_service.create_private_note()
        except ValidationError as e:
            self.notifier.error(e.message, e.code)
            return None
        except NotesError as e:
            self.notifier.failure(e, "Couldn't create note")
            return None
        with self._lock:
            self._rebuild(self.collection.notes)
            self._set_state(
                clear_search(dataclasses.replace(self._state, selected_slug=note.slug))
            )
        return note

    # Keyboard

    def handle_key(self, event: KeyEvent) -> bool:
        """Dispatch a key press.

        Returns:
            True if the key was consumed.
        """
        if (event.ctrl or event.meta) and event.key.lower() == "k":
            self.toggle_palette()
            return True

        if event.target.is_typing:
            return self._handle_typing_key(event)

        if event.has_modifier:
            return False

        key = event.key
        if key == "Enter" and self.state.has_results:
            self.confirm_highlighted()
            return True
        if key == "Escape":
            self.escape(focused=False)
            return True
        if key in ("j", "ArrowDown", "k", "ArrowUp"):
            direction = Direction.DOWN if key in ("j", "ArrowDown") else Direction.UP
            if self.state.has_results:
                self.move_highlight(direction)
            else:
                self.navigate(direction)
            return True
        if key == "p":
            self.toggle_pin()
            return True
        if key == "d":
            self.request_delete()
            return True
        if key == "/":
            self.focus_search()
            return True
        if key == "t":
            self.toggle_theme()
            return True
        if key == "n":
            self.create_note()
            return True
        return False

    def _handle_typing_key(self, event: KeyEvent) -> bool:
        if event.key == "Escape":
            self.escape(focused=True)
        elif event.key == "Enter" and self.state.has_results:
            self.confirm_highlighted()
        elif event.target is FocusTarget.SEARCH_INPUT and event.key in ("ArrowDown", "ArrowUp"):
            self.move_highlight(Direction.DOWN if event.key == "ArrowDown" else Direction.UP)
        # Every other key belongs to the field being typed in
        return True
