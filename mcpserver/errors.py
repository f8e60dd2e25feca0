"""Exceptions raised by the server and its helpers."""

from __future__ import annotations

from typing import Any

from .types import JSONRPCError


class MCPError(Exception):
    """Base class of every error raised by this package."""

    default_message = "MCP error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class RequestError(MCPError):
    """A failed request that can be reported to the client as a JSON-RPC error."""

    def __init__(self, request_id: Any, code: int, error: BaseException | str) -> None:
        super().__init__(f"request error: {error}")
        self.request_id = request_id
        self.code = code
        self.error = error
        if isinstance(error, BaseException):
            self.__cause__ = error

    def to_jsonrpc_error(self) -> JSONRPCError:
        """Build the JSON-RPC error message for this failure."""
        return JSONRPCError(id=self.request_id, code=self.code, message=str(self.error))


class UnparsableMessageError(MCPError):
    """A request whose parameters could not be decoded."""

    def __init__(self, method: str, message: str | bytes, error: BaseException | str) -> None:
        super().__init__(f"unparsable {method} request: {error}")
        self.method = method
        self.message = message
        self.error = error
        if isinstance(error, BaseException):
            self.__cause__ = error


class UnsupportedError(MCPError):
    default_message = "not supported"


class ToolNotFoundError(MCPError):
    default_message = "tool not found"


class PromptNotFoundError(MCPError):
    default_message = "prompt not found"


class ResourceNotFoundError(MCPError):
    default_message = "resource not found"


class SessionExistsError(MCPError):
    default_message = "session already exists"


class SessionNotFoundError(MCPError):
    default_message = "session not found"


class SessionNotInitializedError(MCPError):
    default_message = "session not properly initialized"


class SessionDoesNotSupportLoggingError(MCPError):
    default_message = "session does not support setting logging level"


class SessionDoesNotSupportToolsError(MCPError):
    default_message = "session does not support per-session tools"


class NotificationNotInitializedError(MCPError):
    default_message = "notification not initialized"


class NotificationChannelBlockedError(MCPError):
    default_message = "notification channel blocked"