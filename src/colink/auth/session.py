"""Session objects and session-change notifications.

A :class:`Session` is resolved once per request from the bearer token and
passed explicitly to whatever needs the caller's identity. Components that
must react to sign-in or sign-out subscribe to :class:`SessionEvents`.
"""

from __future__ import annotations

import enum
import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()


class Role(str, enum.Enum):
    """Account role."""

    STUDENT = "student"
    PROFESSOR = "professor"


@dataclass(frozen=True)
class Session:
    """Authenticated caller identity."""

    user_id: int
    email: str
    role: Role
    display_name: str

    @property
    def is_student(self) -> bool:
        return self.role is Role.STUDENT

    @property
    def is_professor(self) -> bool:
        return self.role is Role.PROFESSOR


class SessionEventType(str, enum.Enum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"


@dataclass(frozen=True)
class SessionEvent:
    type: SessionEventType
    user_id: int


SessionListener = Callable[[SessionEvent], Awaitable[None]]


class SessionEvents:
    """Subscribe/unsubscribe registry for session changes."""

    def __init__(self) -> None:
        self._listeners: dict[int, SessionListener] = {}
        self._ids = itertools.count(1)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: SessionListener) -> int:
        """Register a listener. Returns the handle to pass to unsubscribe()."""
        handle = next(self._ids)
        self._listeners[handle] = listener
        return handle

    def unsubscribe(self, handle: int) -> bool:
        """Remove a listener. Returns False if the handle is unknown."""
        return self._listeners.pop(handle, None) is not None

    async def emit(self, event: SessionEvent) -> None:
        """Deliver an event to every listener. A failing listener does not stop the others."""
        for handle, listener in list(self._listeners.items()):
            try:
                await listener(event)
            except Exception:
                logger.warning("session_listener_failed", handle=handle, event=event.type.value, exc_info=True)


# Global singleton
session_events = SessionEvents()
