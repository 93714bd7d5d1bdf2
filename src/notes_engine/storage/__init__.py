"""Storage layer for the notes engine."""

from notes_engine.storage.local_storage import LocalStorage, PinOverrideStore
from notes_engine.storage.note_store import NoteStore, StoreChange

__all__ = [
    "LocalStorage",
    "NoteStore",
    "PinOverrideStore",
    "StoreChange",
]
