"""Common test fixtures for the notes engine."""

import datetime

import pytest

from notes_engine.config import config
from notes_engine.models.db_models import init_db
from notes_engine.models.schema import Note
from notes_engine.services.live_notes import LiveNoteCollection
from notes_engine.services.navigation import NavigationController
from notes_engine.services.note_service import NoteService
from notes_engine.services.notifications import NotificationCenter
from notes_engine.storage.local_storage import LocalStorage, PinOverrideStore
from notes_engine.storage.note_store import NoteStore
from tests.fakes import SESSION_ID, FixedClock

# Saturday noon, UTC
NOW = datetime.datetime(2024, 6, 15, 12, 0, tzinfo=datetime.timezone.utc)


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    monkeypatch.setattr(config, "base_dir", tmp_path)
    monkeypatch.setattr(config, "database_path", tmp_path / "db" / "notes.db")
    monkeypatch.setattr(config, "local_storage_path", tmp_path / "local_storage.json")
    monkeypatch.setattr(config, "log_dir", tmp_path / "logs")
    monkeypatch.setattr(config, "metrics_file", None)
    monkeypatch.setattr(config, "debounce_ms", 500)
    monkeypatch.setattr(config, "flush_on_close", False)
    monkeypatch.setattr(config, "admin_password", "correct-horse-battery")
    monkeypatch.setattr(config, "default_pinned_slugs", ["about-me", "quick-links"])
    monkeypatch.setattr(config, "fallback_slug", "about-me")
    yield config


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def make_note():
    """Factory for in-memory notes with sensible defaults."""

    def _make(slug, **fields):
        fields.setdefault("title", slug.replace("-", " ").title())
        fields.setdefault("content", "")
        fields.setdefault("creation_time", NOW - datetime.timedelta(days=400))
        return Note(slug=slug, **fields)

    return _make


@pytest.fixture
def store(test_config):
    """A note store over a fresh in-memory database."""
    return NoteStore(engine=init_db("sqlite://"))


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(tmp_path / "local_storage.json")


@pytest.fixture
def notifier():
    return NotificationCenter()


@pytest.fixture
def pin_store(storage, test_config):
    return PinOverrideStore(storage, test_config.default_pinned_slugs)


@pytest.fixture
def collection(store):
    live = LiveNoteCollection(store, SESSION_ID).start()
    yield live
    live.stop()


@pytest.fixture
def note_service(store, pin_store, notifier):
    return NoteService(store, pin_store, SESSION_ID, notifier)


@pytest.fixture
def controller(collection, note_service, notifier):
    nav = NavigationController(collection, note_service, notifier)
    yield nav
    nav.close()
