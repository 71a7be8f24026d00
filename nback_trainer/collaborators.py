from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

from .nback_core import SessionSummary

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"


class Announcer(Protocol):
    """Speaks or otherwise plays one audio symbol. Fire-and-forget."""

    def announce(self, symbol: str) -> None: ...


class Notifier(Protocol):
    def notify(self, kind: NotificationKind, message: str) -> None: ...


class SessionStore(Protocol):
    def load_sessions(self) -> list[SessionSummary]:
        """Chronological list; empty for a missing or corrupt store."""
        ...

    def append_session(self, summary: SessionSummary) -> bool:
        """Returns False if the write failed."""
        ...


class NullAnnouncer:
    def announce(self, symbol: str) -> None:
        pass


class NullNotifier:
    def notify(self, kind: NotificationKind, message: str) -> None:
        pass


def safe_announce(announcer: Announcer, symbol: str) -> None:
    try:
        announcer.announce(symbol)
    except Exception:
        logger.warning("announcer failed for %r; continuing", symbol, exc_info=True)


def safe_notify(notifier: Notifier, kind: NotificationKind, message: str) -> None:
    try:
        notifier.notify(kind, message)
    except Exception:
        logger.warning("notifier failed for %s %r; continuing", kind.value, message, exc_info=True)
