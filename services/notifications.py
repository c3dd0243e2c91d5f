"""User-facing notifications ("toasts") raised by the feed.

The renderer drains :class:`NotificationCenter`; the core only appends.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationCenter:
    """Bounded FIFO of notifications (oldest dropped beyond ``MAX_PENDING``)."""

    MAX_PENDING = 100

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: deque[Notification] = deque(maxlen=self.MAX_PENDING)

    def notify(self, level: NotificationLevel, message: str) -> Notification:
        note = Notification(level=level, message=message)
        with self._lock:
            self._pending.append(note)
        logger.info("Notification [%s]: %s", level.value, message)
        return note

    def error(self, message: str) -> Notification:
        return self.notify(NotificationLevel.ERROR, message)

    def pending(self) -> list[Notification]:
        with self._lock:
            return list(self._pending)

    def drain(self) -> list[Notification]:
        with self._lock:
            notes = list(self._pending)
            self._pending.clear()
            return notes
