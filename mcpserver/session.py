"""Client sessions, session hooks and notification delivery."""

from __future__ import annotations

import asyncio
import queue
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Protocol, runtime_checkable

from .errors import (
    NotificationChannelBlockedError,
    NotificationNotInitializedError,
    SessionExistsError,
    SessionNotFoundError,
    SessionNotInitializedError,
)
from .types import LoggingLevel, Notification, ServerTool

ErrorHook = Callable[[Any, str, Any, BaseException], None]
SessionHook = Callable[["ClientSession"], None]

_BLOCKED = (queue.Full, asyncio.QueueFull)


class NotificationChannel(Protocol):
    """Anything that accepts notifications without waiting, such as a bounded queue."""

    def put_nowait(self, item: Notification) -> None: ...


@runtime_checkable
class ClientSession(Protocol):
    """An active client connection the server can notify."""

    @property
    def session_id(self) -> str: ...

    @property
    def notification_channel(self) -> NotificationChannel: ...

    @property
    def initialized(self) -> bool: ...

    def initialize(self) -> None:
        """Mark the session as ready to receive notifications."""


@runtime_checkable
class SessionWithLogging(ClientSession, Protocol):
    """A session that keeps its own minimum log level."""

    log_level: LoggingLevel


@runtime_checkable
class SessionWithTools(ClientSession, Protocol):
    """A session that carries tools of its own, keyed by tool name."""

    session_tools: dict[str, ServerTool] | None


@dataclass
class Hooks:
    """Callbacks run on errors and on session registration changes."""

    error_hooks: list[ErrorHook] = field(default_factory=list)
    register_session_hooks: list[SessionHook] = field(default_factory=list)
    unregister_session_hooks: list[SessionHook] = field(default_factory=list)

    def add_on_error(self, hook: ErrorHook) -> None:
        self.error_hooks.append(hook)

    def add_on_register_session(self, hook: SessionHook) -> None:
        self.register_session_hooks.append(hook)

    def add_on_unregister_session(self, hook: SessionHook) -> None:
        self.unregister_session_hooks.append(hook)

    def on_error(self, request_id: Any, method: str, message: Any, error: BaseException) -> None:
        """Report an error to every error hook."""
        for hook in self.error_hooks:
            hook(request_id, method, message, error)

    def register_session(self, session: ClientSession) -> None:
        for hook in self.register_session_hooks:
            hook(session)

    def unregister_session(self, session: ClientSession) -> None:
        for hook in self.unregister_session_hooks:
            hook(session)


_current_session: ContextVar[ClientSession | None] = ContextVar("current_session", default=None)


def current_session() -> ClientSession | None:
    """The session the current request is being handled for, if any."""
    return _current_session.get()


@contextmanager
def session_context(session: ClientSession | None) -> Iterator[ClientSession | None]:
    """Make ``session`` the current session for the duration of the block."""
    token = _current_session.set(session)
    try:
        yield session
    finally:
        _current_session.reset(token)


class SessionRegistry:
    """Registered client sessions and the delivery of notifications to them."""

    def __init__(self, hooks: Hooks | None = None) -> None:
        self.hooks = hooks
        self._sessions: dict[str, ClientSession] = {}
        self._lock = threading.Lock()

    def register_session(self, session: ClientSession) -> None:
        """Add a session; raises SessionExistsError if its id is taken."""
        with self._lock:
            if session.session_id in self._sessions:
                raise SessionExistsError()
            self._sessions[session.session_id] = session
        if self.hooks is not None:
            self.hooks.register_session(session)

    def unregister_session(self, session_id: str) -> None:
        """Remove a session; unknown ids are ignored."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None and self.hooks is not None:
            self.hooks.unregister_session(session)

    def get_session(self, session_id: str) -> ClientSession:
        """The session with this id; raises SessionNotFoundError if there is none."""
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError()
        return session

    def sessions(self) -> list[ClientSession]:
        """A snapshot of the registered sessions in registration order."""
        with self._lock:
            return list(self._sessions.values())

    def send_notification_to_all_clients(self, method: str, params: dict[str, Any] | None) -> None:
        """Notify every initialized session; blocked channels are reported to the error hooks."""
        notification = Notification(method=method, params=params)
        for session in self.sessions():
            if session.initialized and not _deliver(session, notification):
                self._report_blocked(session.session_id, method)

    def send_notification_to_client(self, method: str, params: dict[str, Any] | None) -> None:
        """Notify the current session."""
        session = current_session()
        if session is None or not session.initialized:
            raise NotificationNotInitializedError()
        self._send(session, session.session_id, method, params)

    def send_notification_to_specific_client(
        self, session_id: str, method: str, params: dict[str, Any] | None
    ) -> None:
        """Notify the registered session with this id."""
        session = self.get_session(session_id)
        if not session.initialized:
            raise SessionNotInitializedError()
        self._send(session, session_id, method, params)

    def _send(
        self, session: ClientSession, session_id: str, method: str, params: dict[str, Any] | None
    ) -> None:
        if not _deliver(session, Notification(method=method, params=params)):
            self._report_blocked(session_id, method)
            raise NotificationChannelBlockedError()

    def _report_blocked(self, session_id: str, method: str) -> None:
        if self.hooks is None or not self.hooks.error_hooks:
            return
        self.hooks.on_error(
            None,
            "notification",
            {"method": method, "sessionID": session_id},
            NotificationChannelBlockedError(f"notification channel blocked for session {session_id}"),
        )


def _deliver(session: ClientSession, notification: Notification) -> bool:
    try:
        session.notification_channel.put_nowait(notification)
    except _BLOCKED:
        return False
    return True