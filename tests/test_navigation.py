"""Tests for search and keyboard navigation."""

import threading

import pytest

from notes_engine.models.schema import NoteCreate
from notes_engine.services.edit_sync import EditSyncQueue
from notes_engine.services.navigation import (
    Direction,
    FocusTarget,
    KeyEvent,
    NavigationController,
    NavigationState,
    SearchMode,
    ShellCallbacks,
    arm_or_confirm_delete,
    clear_search,
    confirm_highlighted,
    default_fallback,
    escape,
    highlighted_note,
    move_highlight,
    navigate_sequential,
    next_selection_after_delete,
    refresh_results,
    search_notes,
    set_query,
)
from notes_engine.services.notifications import NotificationLevel
from tests.fakes import OTHER_SESSION_ID, SESSION_ID


@pytest.fixture
def notes(make_note):
    return [
        make_note("groceries", title="Groceries", content="Milk and eggs", session_id=SESSION_ID),
        make_note("about-me", title="About me", content="I like milk", public=True),
        make_note("secret", title="Milk plans", session_id=OTHER_SESSION_ID),
        make_note("reading", title="Reading list", public=True),
    ]


class TestSearch:
    def test_case_insensitive_title_and_content(self, notes):
        results = search_notes(notes, "  MILK ", SESSION_ID)
        assert [n.slug for n in results] == ["groceries", "about-me"]

    def test_never_matches_foreign_private_notes(self, notes):
        assert "secret" not in [n.slug for n in search_notes(notes, "plans", SESSION_ID)]
        assert search_notes(notes, "plans", None) == []

    def test_blank_query_is_idle(self, notes):
        state = set_query(NavigationState(), "milk", notes, SESSION_ID)
        assert state.mode is SearchMode.SEARCHING
        state = set_query(state, "   ", notes, SESSION_ID)
        assert state.mode is SearchMode.IDLE
        assert state.query == ""
        assert state.highlighted_index == 0

    def test_no_match_is_searching_with_empty_results(self, notes):
        state = set_query(NavigationState(), "zzz", notes, SESSION_ID)
        assert state.mode is SearchMode.SEARCHING
        assert state.results == ()

    def test_new_query_resets_highlight(self, notes):
        state = set_query(NavigationState(), "milk", notes, SESSION_ID)
        state = move_highlight(state, Direction.DOWN)
        state = set_query(state, "mil", notes, SESSION_ID)
        assert state.highlighted_index == 0


class TestHighlight:
    def test_wraps_both_ways(self, notes):
        state = set_query(NavigationState(), "milk", notes, SESSION_ID)
        assert move_highlight(state, Direction.UP).highlighted_index == 1
        down = move_highlight(move_highlight(state, Direction.DOWN), Direction.DOWN)
        assert down.highlighted_index == 0

    def test_noop_without_results(self):
        state = NavigationState()
        assert move_highlight(state, Direction.DOWN) is state

    def test_confirm_selects_and_clears(self, notes):
        state = set_query(NavigationState(search_focused=True), "milk", notes, SESSION_ID)
        state = move_highlight(state, Direction.DOWN)
        state = confirm_highlighted(state)
        assert state.selected_slug == "about-me"
        assert state.mode is SearchMode.IDLE
        assert not state.search_focused

    def test_highlighted_note_prefers_results(self, notes):
        state = NavigationState(selected_slug="reading")
        assert highlighted_note(state, notes).slug == "reading"
        state = set_query(state, "eggs", notes, SESSION_ID)
        assert highlighted_note(state, notes).slug == "groceries"

    def test_refresh_clamps_highlight(self, notes):
        state = set_query(NavigationState(), "milk", notes, SESSION_ID)
        state = move_highlight(state, Direction.DOWN)
        state = refresh_results(state, notes[:1], SESSION_ID)
        assert state.highlighted_index == 0
        assert [n.slug for n in state.results] == ["groceries"]


class TestSequential:
    def test_wraps(self, notes):
        state = NavigationState(selected_slug="reading")
        assert navigate_sequential(state, notes, Direction.DOWN).selected_slug == "groceries"
        state = NavigationState(selected_slug="groceries")
        assert navigate_sequential(state, notes, Direction.UP).selected_slug == "reading"

    def test_ignored_while_searching(self, notes):
        state = set_query(NavigationState(selected_slug="groceries"), "milk", notes, SESSION_ID)
        assert navigate_sequential(state, notes, Direction.DOWN) is state

    def test_missing_selection_uses_fallback(self, notes):
        state = NavigationState(selected_slug="deleted")
        assert navigate_sequential(state, notes, Direction.DOWN).selected_slug == "groceries"
        assert navigate_sequential(state, notes, Direction.UP).selected_slug == "reading"
        custom = navigate_sequential(state, notes, Direction.DOWN, lambda d, o: "about-me")
        assert custom.selected_slug == "about-me"

    def test_empty_list(self):
        assert default_fallback(Direction.DOWN, []) is None
        state = NavigationState(selected_slug="x")
        assert navigate_sequential(state, [], Direction.DOWN) is state


class TestEscapeAndDelete:
    def test_two_stage_escape(self, notes):
        state = set_query(NavigationState(search_focused=True), "milk", notes, SESSION_ID)
        state = escape(state, focused=True)
        assert not state.search_focused
        assert state.query == "milk"
        state = escape(state, focused=False)
        assert state.mode is SearchMode.IDLE
        assert escape(state, focused=False) == state

    def test_scenario_arm_confirm_and_switch(self):
        state, proceed = arm_or_confirm_delete(NavigationState(), "x")
        assert not proceed and state.armed_delete_slug == "x"
        state, proceed = arm_or_confirm_delete(state, "y")
        assert not proceed and state.armed_delete_slug == "y"
        state, proceed = arm_or_confirm_delete(state, "y")
        assert proceed and state.armed_delete_slug is None

    def test_next_selection_after_delete(self, notes):
        assert next_selection_after_delete(notes, "about-me") == "groceries"
        assert next_selection_after_delete(notes, "groceries") == "about-me"
        assert next_selection_after_delete(notes[:1], "groceries") is None
        assert next_selection_after_delete(notes, "unknown") is None

    def test_clear_search_keeps_selection(self):
        state = clear_search(NavigationState(query="x", results=(), selected_slug="a"))
        assert state.selected_slug == "a"
        assert state.results is None


def _create(store, slug, **fields):
    fields.setdefault("session_id", SESSION_ID)
    return store.create(NoteCreate(slug=slug, **fields))


class TestController:
    def test_regroups_on_store_push(self, controller, store):
        assert controller.grouped == {}
        _create(store, "first", title="First")
        assert [n.slug for n in controller.ordered] == ["first"]

    def test_search_rerun_on_collection_change(self, controller, store):
        _create(store, "a", title="milk run")
        controller.set_query("milk")
        assert [n.slug for n in controller.state.results] == ["a"]
        _create(store, "b", title="more milk")
        assert {n.slug for n in controller.state.results} == {"a", "b"}

    def test_scenario_delete_confirmation(self, controller, store, notifier):
        _create(store, "x")
        _create(store, "y")

        assert not controller.request_delete(controller.collection.find("x"))
        assert store.get_by_slug("x", SESSION_ID) is not None
        assert notifier.last.level is NotificationLevel.INFO

        assert not controller.request_delete(controller.collection.find("y"))
        assert controller.state.armed_delete_slug == "y"
        assert store.get_by_slug("x", SESSION_ID) is not None

        assert controller.request_delete(controller.collection.find("y"))
        assert store.get_by_slug("y", SESSION_ID) is None
        assert notifier.last.message == "Note deleted"
        assert controller.state.selected_slug == "x"

    def test_delete_last_note_falls_back(self, controller, store):
        _create(store, "only")
        note = controller.collection.find("only")
        controller.request_delete(note)
        controller.request_delete(note)
        assert controller.state.selected_slug == "about-me"

    def test_public_notes_cannot_be_deleted(self, controller, store, notifier):
        store.admin_create(NoteCreate(slug="pub", title="Pub", public=True))
        assert not controller.request_delete(controller.collection.find("pub"))
        assert not controller.request_delete(controller.collection.find("pub"))
        assert store.get_by_slug("pub") is not None
        assert notifier.last.level is NotificationLevel.ERROR
        assert "public" in notifier.last.message

    def test_deletion_mid_navigation(self, controller, store):
        _create(store, "a")
        _create(store, "b")
        controller.select("a")
        store.delete("a", SESSION_ID)  # from another tab
        assert controller.selected_note is None
        controller.navigate(Direction.DOWN)
        assert controller.state.selected_slug == "b"

    def test_toggle_pin_notifies_and_selects(self, controller, store, notifier, storage):
        _create(store, "mine", title="mine")
        controller.set_query("mine")
        assert controller.toggle_pin() is True
        assert notifier.last.message == "Note pinned"
        assert controller.state.selected_slug == "mine"
        assert controller.state.mode is SearchMode.IDLE
        assert list(controller.grouped) == ["Pinned"]
        assert '"mine"' in storage.get_item("pinnedNotes")

        assert controller.toggle_pin() is False
        assert notifier.last.message == "Note unpinned"

    def test_create_note_selects_and_pins(self, controller, notifier):
        note = controller.create_note()
        assert note.slug.startswith("new-note-")
        assert controller.state.selected_slug == note.slug
        assert notifier.last.message == "Private note created"
        assert [n.slug for n in controller.grouped["Pinned"]] == [note.slug]

    def test_confirmed_delete_skips_arming(self, controller, store, notifier):
        _create(store, "x")
        assert controller.request_delete(controller.collection.find("x"), confirmed=True)
        assert store.get_by_slug("x", SESSION_ID) is None
        assert [n.message for n in notifier.history] == ["Note deleted"]

    def test_admin_pinned_private_note_reports_no_change(self, controller, store, notifier):
        store.admin_create(
            NoteCreate(
                slug="forced", title="Forced", session_id=SESSION_ID,
                public=False, pinned=True, pin_order=0,
            )
        )
        assert controller.toggle_pin(controller.collection.find("forced")) is True
        assert notifier.last.message == "This note is pinned for everyone"

    def test_select_callback(self, collection, note_service, notifier, store):
        selected = []
        nav = NavigationController(
            collection, note_service, notifier,
            callbacks=ShellCallbacks(on_select=selected.append),
        )
        _create(store, "a")
        nav.select("a")
        nav.select("a")
        assert selected == ["a"]
        nav.close()


class TestControllerThreads:
    def test_push_waits_for_transition_in_progress(self, controller, store):
        pusher = threading.Thread(target=_create, args=(store, "late"), kwargs={"title": "late"})
        with controller._lock:
            pusher.start()
            pusher.join(0.2)
            assert pusher.is_alive()
            controller.set_query("late")
        pusher.join(5)
        assert not pusher.is_alive()
        assert controller.state.query == "late"
        assert [n.slug for n in controller.state.results] == ["late"]
        assert [n.slug for n in controller.ordered] == ["late"]

    def test_timer_flush_during_search(self, controller, store):
        note = _create(store, "list", title="milk")
        refreshed = threading.Event()
        threads = []

        def on_notes(notes):
            threads.append(threading.current_thread())
            refreshed.set()

        remove = controller.collection.add_listener(on_notes)
        queue = EditSyncQueue(note, store, SESSION_ID, debounce=0.01)
        queue.apply_edit(title="milk and eggs")
        controller.set_query("milk")
        assert refreshed.wait(5)
        remove()
        queue.close()

        assert threads[0] is not threading.main_thread()
        assert controller.state.query == "milk"
        assert [n.title for n in controller.state.results] == ["milk and eggs"]


class TestKeys:
    def test_typing_context_consumes_shortcuts(self, controller, store):
        _create(store, "a")
        consumed = controller.handle_key(KeyEvent("n", target=FocusTarget.TEXTAREA))
        assert consumed
        assert len(controller.collection.notes) == 1

    def test_escape_then_escape(self, controller, store):
        _create(store, "a", title="alpha")
        controller.focus_search()
        controller.set_query("alpha")
        controller.handle_key(KeyEvent("Escape", target=FocusTarget.SEARCH_INPUT))
        assert not controller.state.search_focused
        assert controller.state.query == "alpha"
        controller.handle_key(KeyEvent("Escape"))
        assert controller.state.mode is SearchMode.IDLE

    def test_enter_in_search_input_confirms(self, controller, store):
        _create(store, "a", title="alpha")
        controller.set_query("alp")
        controller.handle_key(KeyEvent("Enter", target=FocusTarget.SEARCH_INPUT))
        assert controller.state.selected_slug == "a"

    def test_palette_works_while_typing(self, controller):
        assert controller.handle_key(KeyEvent("k", target=FocusTarget.INPUT, meta=True))
        assert controller.palette_open
        assert controller.handle_key(KeyEvent("K", ctrl=True))
        assert not controller.palette_open

    def test_modified_keys_ignored(self, controller):
        assert not controller.handle_key(KeyEvent("t", alt=True))
        assert controller.theme == "light"

    def test_single_key_shortcuts(self, controller, store):
        _create(store, "a")
        _create(store, "b")
        first, second = controller.ordered
        controller.handle_key(KeyEvent("j"))
        assert controller.state.selected_slug == first.slug
        controller.handle_key(KeyEvent("ArrowDown"))
        assert controller.state.selected_slug == second.slug
        controller.handle_key(KeyEvent("k"))
        assert controller.state.selected_slug == first.slug

        controller.handle_key(KeyEvent("t"))
        assert controller.theme == "dark"
        controller.handle_key(KeyEvent("/"))
        assert controller.state.search_focused

    def test_j_moves_highlight_when_searching(self, controller, store):
        _create(store, "a", title="milk")
        _create(store, "b", title="milk too")
        controller.set_query("milk")
        controller.handle_key(KeyEvent("j"))
        assert controller.state.highlighted_index == 1

    def test_d_twice_deletes_highlighted(self, controller, store):
        _create(store, "a")
        controller.select("a")
        controller.handle_key(KeyEvent("d"))
        controller.handle_key(KeyEvent("d"))
        assert store.get_by_slug("a", SESSION_ID) is None

    def test_n_creates_note(self, controller):
        controller.handle_key(KeyEvent("n"))
        assert controller.state.selected_slug.startswith("new-note-")
