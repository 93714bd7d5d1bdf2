#!/usr/bin/env python
"""Command line entry point for the notes engine."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from notes_engine import __version__
from notes_engine.config import config
from notes_engine.exceptions import NotesError
from notes_engine.models.db_models import init_db
from notes_engine.observability import DEFAULT_LOG_DIR, configure_logging, metrics
from notes_engine.organize.classifier import bucket_label
from notes_engine.services.admin_service import AdminService
from notes_engine.services.edit_sync import EditSyncQueue
from notes_engine.services.live_notes import LiveNoteCollection
from notes_engine.services.navigation import Direction, NavigationController, search_notes
from notes_engine.services.note_service import NoteService
from notes_engine.services.notifications import (
    Notification,
    NotificationCenter,
    NotificationLevel,
)
from notes_engine.storage.local_storage import (
    LocalStorage,
    PinOverrideStore,
    load_or_create_session_id,
)
from notes_engine.storage.note_store import NoteStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="notes-engine", description="Organize, search and edit notes"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("NOTES_ENGINE_DATABASE_PATH"),
    )
    parser.add_argument(
        "--storage-path",
        help="Local storage file (session id and pin overrides)",
        type=str,
        default=os.environ.get("NOTES_ENGINE_LOCAL_STORAGE"),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("NOTES_ENGINE_LOG_LEVEL", "WARNING"),
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list", help="Show notes grouped by bucket")

    search = commands.add_parser("search", help="Search titles and content")
    search.add_argument("query")

    commands.add_parser("new", help="Create a private note")

    edit = commands.add_parser("edit", help="Edit one of your notes")
    edit.add_argument("slug")
    edit.add_argument("--title")
    edit.add_argument("--emoji")
    edit.add_argument("--content")

    pin = commands.add_parser("pin", help="Toggle a note's pin")
    pin.add_argument("slug")

    delete = commands.add_parser("delete", help="Delete one of your notes")
    delete.add_argument("slug")
    delete.add_argument("--yes", action="store_true", help="Skip the confirmation step")

    admin = commands.add_parser("admin", help="Administrator commands")
    admin.add_argument(
        "--password",
        default=os.environ.get("NOTES_ENGINE_ADMIN_PASSWORD"),
        help="Admin password (default: NOTES_ENGINE_ADMIN_PASSWORD)",
    )
    admin_commands = admin.add_subparsers(dest="admin_command", required=True)

    admin_commands.add_parser("list", help="List all notes, pinned first")

    create = admin_commands.add_parser("create", help="Create a note")
    create.add_argument("slug")
    create.add_argument("title")
    create.add_argument("--content", default="")
    create.add_argument("--emoji")
    create.add_argument("--category", default="today")
    create.add_argument("--private", action="store_true")
    create.add_argument("--pinned", action="store_true")

    update = admin_commands.add_parser("update", help="Update a note")
    update.add_argument("slug")
    update.add_argument("--title")
    update.add_argument("--content")
    update.add_argument("--emoji")
    update.add_argument("--category")
    update.add_argument("--public", choices=["yes", "no"])

    admin_pin = admin_commands.add_parser("pin", help="Toggle a note's pin for everyone")
    admin_pin.add_argument("slug")

    move = admin_commands.add_parser("move", help="Move a pinned note")
    move.add_argument("slug")
    move.add_argument("direction", choices=[d.value for d in Direction])

    rename = admin_commands.add_parser("rename", help="Change a note's slug")
    rename.add_argument("old_slug")
    rename.add_argument("new_slug")

    admin_delete = admin_commands.add_parser("delete", help="Delete any note")
    admin_delete.add_argument("slug")
    admin_delete.add_argument("--yes", action="store_true")

    return parser


def update_config(args) -> None:
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.storage_path:
        config.local_storage_path = Path(args.storage_path)


def _save_metrics_on_exit():
    """Save metrics to disk on exit."""
    try:
        if metrics.save_metrics():
            logger.info("Metrics saved to disk on exit")
    except Exception as e:
        logger.warning(f"Failed to save metrics on exit: {e}")


def _print_notification(notification: Notification) -> None:
    stream = sys.stderr if notification.level is NotificationLevel.ERROR else sys.stdout
    print(notification.message, file=stream)


def _format_note(note, pinned: bool = False) -> str:
    marker = "*" if pinned else " "
    visibility = "public" if note.public else "private"
    return f" {marker} {note.emoji or ' '} {note.slug}  {note.title or '(untitled)'}  [{visibility}]"


class App:
    """Wires the store, local storage and services for one CLI invocation."""

    def __init__(self, store: NoteStore, storage: LocalStorage):
        self.store = store
        self.storage = storage
        self.notifier = NotificationCenter()
        self.notifier.add_listener(_print_notification)
        self.session_id = load_or_create_session_id(storage)
        self.collection = LiveNoteCollection(store, self.session_id).start()
        self.note_service = NoteService(
            store,
            PinOverrideStore(storage, config.default_pinned_slugs),
            self.session_id,
            self.notifier,
        )
        self.controller = NavigationController(
            self.collection, self.note_service, self.notifier
        )

    def close(self) -> None:
        self.controller.close()
        self.collection.stop()

    def find(self, slug: str):
        note = self.collection.find(slug)
        if note is None:
            print(f"No such note: {slug}", file=sys.stderr)
        return note

    def cmd_list(self, args) -> int:
        overrides = self.note_service.overrides
        for key, notes in self.controller.grouped.items():
            print(bucket_label(key))
            for note in notes:
                print(_format_note(note, overrides.is_pinned(note)))
        return 0

    def cmd_search(self, args) -> int:
        results = search_notes(self.collection.notes, args.query, self.session_id)
        for note in results:
            print(_format_note(note, self.note_service.is_pinned(note)))
        if not results:
            print("No results")
        return 0

    def cmd_new(self, args) -> int:
        note = self.controller.create_note()
        if note is None:
            return 1
        print(note.slug)
        return 0

    def cmd_edit(self, args) -> int:
        note = self.find(args.slug)
        if note is None:
            return 1
        fields = {
            name: getattr(args, name)
            for name in ("title", "emoji", "content")
            if getattr(args, name) is not None
        }
        if not fields:
            print("Nothing to change", file=sys.stderr)
            return 1
        queue = EditSyncQueue(note, self.store, self.session_id, self.notifier)
        queue.apply_edit(fields)
        ok = queue.flush_now()
        queue.close(flush=False)
        return 0 if ok else 1

    def cmd_pin(self, args) -> int:
        note = self.find(args.slug)
        if note is None:
            return 1
        self.controller.toggle_pin(note)
        return 0

    def cmd_delete(self, args) -> int:
        note = self.find(args.slug)
        if note is None:
            return 1
        if not args.yes and not note.public:
            print(f"Re-run with --yes to delete {note.slug}", file=sys.stderr)
            return 1
        return 0 if self.controller.request_delete(note, confirmed=True) else 1

    def cmd_admin(self, args) -> int:
        admin = AdminService(self.store, self.notifier)
        if not admin.login(args.password or ""):
            print("Invalid admin password", file=sys.stderr)
            return 1
        command = args.admin_command
        if command == "list":
            for note in admin.list_notes():
                order = f" #{note.pin_order}" if note.is_admin_pinned else ""
                print(_format_note(note, note.is_admin_pinned) + order)
        elif command == "create":
            admin.create_note(
                args.slug, args.title, content=args.content, emoji=args.emoji,
                public=not args.private, category=args.category, pinned=args.pinned,
            )
        elif command == "update":
            fields = {
                name: getattr(args, name)
                for name in ("title", "content", "emoji", "category")
                if getattr(args, name) is not None
            }
            if args.public is not None:
                fields["public"] = args.public == "yes"
            admin.update_note(args.slug, **fields)
        elif command == "pin":
            admin.toggle_pinned(args.slug)
        elif command == "move":
            if not admin.move(args.slug, Direction(args.direction)):
                print(f"Cannot move {args.slug} {args.direction}", file=sys.stderr)
                return 1
        elif command == "rename":
            admin.rename(args.old_slug, args.new_slug)
        elif command == "delete":
            if not args.yes:
                print(f"Re-run with --yes to delete {args.slug}", file=sys.stderr)
                return 1
            admin.delete_note(args.slug, confirmed=True)
        return 0

    def run(self, args) -> int:
        handler = getattr(self, f"cmd_{args.command}")
        return handler(args)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the notes engine CLI."""
    args = build_parser().parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.WARNING)
    log_dir = config.log_dir or DEFAULT_LOG_DIR
    try:
        configure_logging(log_dir=log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logger.warning(f"Failed to configure file logging: {e}")

    metrics.set_metrics_file(config.metrics_file or Path(log_dir) / "metrics.json")
    atexit.register(_save_metrics_on_exit)

    try:
        engine = init_db()
        app = App(
            NoteStore(engine=engine),
            LocalStorage(config.get_local_storage_path()),
        )
    except NotesError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except SQLAlchemyError as e:
        logger.error(f"Failed to initialize database: {e}")
        return 1

    try:
        return app.run(args)
    except NotesError as e:
        logger.debug(f"Command {args.command} failed: {e}")
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        app.close()


if __name__ == "__main__":
    sys.exit(main())
