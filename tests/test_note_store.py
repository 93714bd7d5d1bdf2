"""Tests for the SQLite-backed note store."""

import pytest

from notes_engine.exceptions import (
    DuplicateSlugError,
    ErrorCode,
    NoteNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from notes_engine.models.schema import NoteCreate, PinOrder
from tests.fakes import OTHER_SESSION_ID, SESSION_ID


def private(slug, session_id=SESSION_ID, **fields):
    return NoteCreate(slug=slug, session_id=session_id, public=False, **fields)


class TestCreate:
    def test_create_defaults(self, store):
        note = store.create(private("new-note-1"))
        assert note.title == ""
        assert note.content == ""
        assert note.emoji == "👋🏼"
        assert note.category == "today"
        assert note.updated_at == note.creation_time

    def test_create_ignores_admin_fields(self, store):
        note = store.create(private("sneaky", pinned=True, pin_order=0))
        assert note.pinned is None
        assert note.pin_order is None

    def test_duplicate_slug(self, store):
        store.create(private("dup"))
        with pytest.raises(DuplicateSlugError) as exc_info:
            store.create(private("dup", session_id=OTHER_SESSION_ID))
        assert exc_info.value.code == ErrorCode.NOTE_ALREADY_EXISTS

    def test_admin_create_defaults(self, store):
        note = store.admin_create(NoteCreate(slug="about-me", title="About", public=True))
        assert note.emoji == "📝"
        assert note.content == ""


class TestQueries:
    def test_lists(self, store):
        store.admin_create(NoteCreate(slug="pub", title="Pub", public=True))
        store.create(private("mine"))
        store.create(private("theirs", session_id=OTHER_SESSION_ID))

        assert [n.slug for n in store.list_public_notes()] == ["pub"]
        assert [n.slug for n in store.list_by_session(SESSION_ID)] == ["mine"]
        assert store.list_by_session("") == []
        assert len(store.list_all()) == 3

    def test_get_by_slug_hides_private_notes(self, store):
        store.create(private("mine"))
        assert store.get_by_slug("mine", SESSION_ID).slug == "mine"
        assert store.get_by_slug("mine", OTHER_SESSION_ID) is None
        assert store.get_by_slug("mine") is None
        assert store.get_by_slug("missing") is None


class TestUpdate:
    def test_owner_can_update(self, store):
        created = store.create(private("mine"))
        store.update("mine", SESSION_ID, {"title": "Groceries", "content": None})
        note = store.get_by_slug("mine", SESSION_ID)
        assert note.title == "Groceries"
        assert note.content == ""
        assert note.updated_at >= created.updated_at

    def test_other_session_unauthorized(self, store):
        store.create(private("mine"))
        with pytest.raises(UnauthorizedError):
            store.update("mine", OTHER_SESSION_ID, {"title": "x"})

    def test_public_note_unauthorized(self, store):
        store.admin_create(NoteCreate(slug="pub", title="Pub", public=True))
        with pytest.raises(UnauthorizedError):
            store.update("pub", SESSION_ID, {"title": "x"})

    def test_missing_note_unauthorized(self, store):
        with pytest.raises(UnauthorizedError):
            store.update("missing", SESSION_ID, {"title": "x"})

    def test_non_editable_field(self, store):
        store.create(private("mine"))
        with pytest.raises(ValidationError):
            store.update("mine", SESSION_ID, {"public": True})

    def test_admin_update(self, store):
        store.create(private("mine"))
        store.admin_update("mine", {"public": True, "pinned": True, "pin_order": 3})
        note = store.get_by_slug("mine")
        assert note.public and note.pinned and note.pin_order == 3

    def test_admin_update_missing(self, store):
        with pytest.raises(NoteNotFoundError):
            store.admin_update("missing", {"title": "x"})


class TestSlugAndOrder:
    def test_rename(self, store):
        store.admin_create(NoteCreate(slug="old", title="Old", public=True))
        before = store.get_by_slug("old")
        store.admin_update_slug("old", "new")
        after = store.get_by_slug("new")
        assert store.get_by_slug("old") is None
        assert after.updated_at == before.updated_at

    def test_rename_to_taken_slug(self, store):
        store.admin_create(NoteCreate(slug="a", title="A", public=True))
        store.admin_create(NoteCreate(slug="b", title="B", public=True))
        with pytest.raises(DuplicateSlugError):
            store.admin_update_slug("a", "b")

    def test_rename_invalid_slug(self, store):
        store.admin_create(NoteCreate(slug="a", title="A", public=True))
        with pytest.raises(ValidationError):
            store.admin_update_slug("a", "has space")

    def test_reorder_skips_missing(self, store):
        store.admin_create(NoteCreate(slug="a", title="A", public=True, pinned=True))
        count = store.admin_reorder_pins([PinOrder(slug="a", pin_order=7), ("gone", 1)])
        assert count == 1
        assert store.get_by_slug("a").pin_order == 7


class TestDelete:
    def test_owner_delete(self, store):
        store.create(private("mine"))
        store.delete("mine", SESSION_ID)
        assert store.list_by_session(SESSION_ID) == []

    def test_cannot_delete_public(self, store):
        store.admin_create(NoteCreate(slug="pub", title="Pub", public=True))
        with pytest.raises(UnauthorizedError):
            store.delete("pub", SESSION_ID)

    def test_admin_delete(self, store):
        store.admin_create(NoteCreate(slug="pub", title="Pub", public=True))
        store.admin_delete("pub")
        with pytest.raises(NoteNotFoundError):
            store.admin_delete("pub")


class TestSubscription:
    def test_mutations_are_pushed(self, store):
        changes = []
        unsubscribe = store.subscribe(changes.append)
        store.create(private("mine"))
        store.update("mine", SESSION_ID, {"title": "t"})
        store.delete("mine", SESSION_ID)
        assert [c.operation for c in changes] == ["create", "update", "delete"]
        assert changes[0].slugs == ("mine",)

        unsubscribe()
        store.create(private("other"))
        assert len(changes) == 3

    def test_failing_listener_does_not_undo_mutation(self, store):
        def broken(change):
            raise RuntimeError("boom")

        store.subscribe(broken)
        store.create(private("mine"))
        assert store.get_by_slug("mine", SESSION_ID) is not None
