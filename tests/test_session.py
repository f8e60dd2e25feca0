import asyncio
import queue
from dataclasses import dataclass, field
from typing import Any

import pytest

from mcpserver.errors import (
    NotificationChannelBlockedError,
    NotificationNotInitializedError,
    SessionExistsError,
    SessionNotFoundError,
    SessionNotInitializedError,
)
from mcpserver.session import (
    ClientSession,
    Hooks,
    SessionRegistry,
    SessionWithLogging,
    SessionWithTools,
    current_session,
    session_context,
)
from mcpserver.types import LoggingLevel, ServerTool, Tool


@dataclass
class FakeSession:
    session_id: str
    notification_channel: Any = field(default_factory=lambda: queue.Queue(maxsize=10))
    initialized: bool = False

    def initialize(self) -> None:
        self.initialized = True


@dataclass
class ToolsSession(FakeSession):
    session_tools: dict | None = None


@dataclass
class LoggingSession(FakeSession):
    log_level: LoggingLevel = LoggingLevel.ERROR


def drain(channel):
    items = []
    while True:
        try:
            items.append(channel.get_nowait())
        except queue.Empty:
            return items


def test_protocol_membership():
    plain = FakeSession("a")
    tools = ToolsSession("b", session_tools={"t": ServerTool(Tool("t"))})
    logging_session = LoggingSession("c")
    registry = SessionRegistry(None)
    for session in (plain, tools, logging_session):
        registry.register_session(session)

    assert sorted(s.session_id for s in registry.sessions()) == ["a", "b", "c"]

    fetched_plain = registry.get_session("a")
    fetched_tools = registry.get_session("b")
    fetched_logging = registry.get_session("c")
    assert fetched_plain is plain
    assert fetched_tools is tools
    assert fetched_logging is logging_session

    assert isinstance(fetched_plain, ClientSession)
    assert not isinstance(fetched_plain, SessionWithTools)
    assert not isinstance(fetched_plain, SessionWithLogging)
    assert isinstance(fetched_tools, SessionWithTools)
    assert isinstance(fetched_logging, SessionWithLogging)


def test_session_context_sets_and_restores():
    assert current_session() is None
    outer = FakeSession("outer")
    inner = FakeSession("inner")
    with session_context(outer):
        assert current_session() is outer
        with session_context(inner):
            assert current_session() is inner
        assert current_session() is outer
    assert current_session() is None


def test_register_duplicate_raises():
    registry = SessionRegistry(None)
    registry.register_session(FakeSession("dup"))
    with pytest.raises(SessionExistsError):
        registry.register_session(FakeSession("dup"))


def test_session_hooks_called():
    registered, unregistered = [], []
    hooks = Hooks()
    hooks.add_on_register_session(registered.append)
    hooks.add_on_unregister_session(unregistered.append)
    registry = SessionRegistry(hooks)
    session = FakeSession("test-session-id")
    registry.register_session(session)
    assert [s.session_id for s in registered] == ["test-session-id"]
    registry.unregister_session("test-session-id")
    assert [s.session_id for s in unregistered] == ["test-session-id"]


def test_nil_hooks_register_unregister():
    registry = SessionRegistry(None)
    session = FakeSession("test-session-id")
    registry.register_session(session)
    assert registry.sessions() == [session]
    registry.unregister_session("test-session-id")
    assert registry.sessions() == []


def test_unregister_unknown_does_not_call_hooks():
    unregistered = []
    hooks = Hooks()
    hooks.add_on_unregister_session(unregistered.append)
    registry = SessionRegistry(hooks)
    registry.unregister_session("missing")
    assert unregistered == []


def test_get_session():
    registry = SessionRegistry(None)
    session = FakeSession("s1")
    registry.register_session(session)
    assert registry.get_session("s1") is session
    with pytest.raises(SessionNotFoundError):
        registry.get_session("missing")


def test_hooks_on_error_calls_all():
    seen = []
    hooks = Hooks()
    hooks.add_on_error(lambda rid, method, message, err: seen.append(("a", method, str(err))))
    hooks.add_on_error(lambda rid, method, message, err: seen.append(("b", method, str(err))))
    hooks.on_error(1, "tools/call", None, ValueError("boom"))
    assert seen == [("a", "tools/call", "boom"), ("b", "tools/call", "boom")]


def test_send_to_client_without_session():
    registry = SessionRegistry(None)
    with pytest.raises(NotificationNotInitializedError):
        registry.send_notification_to_client("method", None)


def test_send_to_client_uninitialized_session():
    registry = SessionRegistry(None)
    session = FakeSession("test")
    with session_context(session):
        with pytest.raises(NotificationNotInitializedError):
            registry.send_notification_to_client("method", None)
        assert current_session() is session


def test_send_to_client_active_session():
    registry = SessionRegistry(None)
    session = FakeSession("test", initialized=True)
    with session_context(session):
        for _ in range(10):
            registry.send_notification_to_client("method", None)
    received = drain(session.notification_channel)
    assert [n.method for n in received] == ["method"] * 10


def test_send_to_client_blocked_channel():
    registry = SessionRegistry(None)
    session = FakeSession("test", notification_channel=queue.Queue(maxsize=1), initialized=True)
    with session_context(session):
        registry.send_notification_to_client("method", None)
        with pytest.raises(NotificationChannelBlockedError):
            registry.send_notification_to_client("method", None)


def test_send_to_all_clients():
    registry = SessionRegistry(None)
    active = [FakeSession(f"test{i}", initialized=True) for i in range(5)]
    inactive = [FakeSession(f"test{i + 5}") for i in range(5)]
    for session in active + inactive:
        registry.register_session(session)
    for i in range(10):
        registry.send_notification_to_all_clients("method", {"count": i})
    for session in active:
        received = drain(session.notification_channel)
        assert [n.method for n in received] == ["method"] * 10
        assert [n.params["count"] for n in received] == list(range(10))
    for session in inactive:
        assert drain(session.notification_channel) == []


def test_send_to_specific_client():
    registry = SessionRegistry(None)
    session1 = FakeSession("session-1")
    session1.initialize()
    session2 = FakeSession("session-2")
    session2.initialize()
    session3 = FakeSession("session-3")
    for session in (session1, session2, session3):
        registry.register_session(session)

    registry.send_notification_to_specific_client("session-1", "test-method", {"data": "test-data"})
    received = drain(session1.notification_channel)
    assert len(received) == 1
    assert received[0].method == "test-method"
    assert received[0].params["data"] == "test-data"
    assert drain(session2.notification_channel) == []

    with pytest.raises(SessionNotFoundError) as not_found:
        registry.send_notification_to_specific_client("non-existent", "test-method", None)
    assert "not found" in str(not_found.value)

    with pytest.raises(SessionNotInitializedError) as uninit:
        registry.send_notification_to_specific_client("session-3", "test-method", None)
    assert "not properly initialized" in str(uninit.value)


def test_notification_channel_blocked_reports_to_hooks():
    captured = []
    hooks = Hooks()
    hooks.add_on_error(lambda rid, method, message, err: captured.append((method, message, err)))
    registry = SessionRegistry(hooks)
    session = FakeSession("blocked-session", notification_channel=queue.Queue(maxsize=1))
    session.initialize()
    registry.register_session(session)

    registry.send_notification_to_specific_client("blocked-session", "first-message", None)
    with pytest.raises(NotificationChannelBlockedError):
        registry.send_notification_to_specific_client("blocked-session", "blocked-message", None)

    assert len(captured) == 1
    method, message, err = captured[0]
    assert method == "notification"
    assert message == {"method": "blocked-message", "sessionID": "blocked-session"}
    assert isinstance(err, NotificationChannelBlockedError)

    captured.clear()
    registry.send_notification_to_all_clients("broadcast-message", None)
    assert len(captured) == 1
    assert captured[0][1] == {"method": "broadcast-message", "sessionID": "blocked-session"}
    assert isinstance(captured[0][2], NotificationChannelBlockedError)


def test_broadcast_to_blocked_channel_without_hooks_is_silent():
    registry = SessionRegistry(None)
    session = FakeSession("s", notification_channel=queue.Queue(maxsize=1), initialized=True)
    registry.register_session(session)
    registry.send_notification_to_all_clients("one", None)
    registry.send_notification_to_all_clients("two", None)
    assert [n.method for n in drain(session.notification_channel)] == ["one"]


def test_asyncio_queue_channel_blocks():
    registry = SessionRegistry(None)
    channel = asyncio.Queue(maxsize=1)
    session = FakeSession("aio", notification_channel=channel, initialized=True)
    registry.register_session(session)
    registry.send_notification_to_specific_client("aio", "first", None)
    with pytest.raises(NotificationChannelBlockedError):
        registry.send_notification_to_specific_client("aio", "second", None)
    assert channel.get_nowait().method == "first"