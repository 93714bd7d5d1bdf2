"""Transient user notifications.

The engine never renders anything; it emits short messages ("Note pinned",
"Click delete again to confirm") and lets the shell decide how to show them.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, List, Optional

from notes_engine.exceptions import ErrorCode, NotesError, UnauthorizedError

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    """Severity of a notification."""

    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """A message for the visitor."""

    level: NotificationLevel
    message: str
    code: Optional[ErrorCode] = None


NotificationListener = Callable[[Notification], None]


class NotificationCenter:
    """Collects notifications and forwards them to listeners.

    Thread-safe: the edit sync queue reports failures from timer threads.
    """

    def __init__(self, history_size: int = 100):
        self._history: Deque[Notification] = deque(maxlen=history_size)
        self._listeners: List[NotificationListener] = []
        self._lock = threading.Lock()

    def add_listener(self, listener: NotificationListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def notify(self, notification: Notification) -> None:
        with self._lock:
            self._history.append(notification)
            listeners = list(self._listeners)
        log = logger.warning if notification.level is NotificationLevel.ERROR else logger.debug
        log(f"Notify [{notification.level.value}] {notification.message}")
        for listener in listeners:
            listener(notification)

    def info(self, message: str) -> None:
        self.notify(Notification(NotificationLevel.INFO, message))

    def success(self, message: str) -> None:
        self.notify(Notification(NotificationLevel.SUCCESS, message))

    def error(self, message: str, code: Optional[ErrorCode] = None) -> None:
        self.notify(Notification(NotificationLevel.ERROR, message, code))

    def failure(self, error: NotesError, action: str) -> None:
        """Report a failed store call.

        Authorization failures get their own wording so a stale or foreign
        session is distinguishable from a network problem.
        """
        if isinstance(error, UnauthorizedError):
            self.error(f"{action}: this note belongs to another session", error.code)
        else:
            self.error(f"{action}: {error.message}", error.code)

    @property
    def history(self) -> List[Notification]:
        with self._lock:
            return list(self._history)

    @property
    def last(self) -> Optional[Notification]:
        with self._lock:
            return self._history[-1] if self._history else None

    def clear(self) -> None:
        with self._lock:
            self._history.clear()
