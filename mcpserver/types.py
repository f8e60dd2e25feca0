"""Protocol data types and their JSON shapes."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum, IntEnum
from typing import Any, Callable

from .uritemplate import URITemplate

JSONRPC_VERSION = "2.0"
LATEST_PROTOCOL_VERSION = "2025-03-26"

METHOD_NOTIFICATION_RESOURCES_LIST_CHANGED = "notifications/resources/list_changed"
METHOD_NOTIFICATION_PROMPTS_LIST_CHANGED = "notifications/prompts/list_changed"
METHOD_NOTIFICATION_TOOLS_LIST_CHANGED = "notifications/tools/list_changed"


class ErrorCode(IntEnum):
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    RESOURCE_NOT_FOUND = -32002


class LoggingLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    ALERT = "alert"
    EMERGENCY = "emergency"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _to_json(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return _fields(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, URITemplate):
        return str(value)
    if isinstance(value, dict):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    return value


def _fields(obj: Any, skip: tuple[str, ...] = ()) -> dict[str, Any]:
    """Serialise dataclass fields with camelCase keys, omitting empty scalars."""
    out: dict[str, Any] = {}
    for f in fields(obj):
        if f.name in skip:
            continue
        value = getattr(obj, f.name)
        if value is None or value is False or (isinstance(value, str) and value == ""):
            continue
        out[_camel(f.name)] = _to_json(value)
    return out


def _default_input_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


@dataclass
class Tool:
    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=_default_input_schema)
    annotations: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return _fields(self)


@dataclass
class Resource:
    uri: str
    name: str
    description: str = ""
    mime_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _fields(self)


@dataclass
class ResourceTemplate:
    uri_template: URITemplate
    name: str
    description: str = ""
    mime_type: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.uri_template, str):
            self.uri_template = URITemplate(self.uri_template)

    def to_dict(self) -> dict[str, Any]:
        return _fields(self)


@dataclass
class PromptArgument:
    name: str
    description: str = ""
    required: bool = False


@dataclass
class Prompt:
    name: str
    description: str = ""
    arguments: list[PromptArgument] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _fields(self, skip=() if self.arguments else ("arguments",))


@dataclass
class TextContent:
    text: str
    type: str = "text"


@dataclass
class PromptMessage:
    role: str
    content: Any


@dataclass
class GetPromptResult:
    messages: list[PromptMessage] = field(default_factory=list)
    description: str = ""


@dataclass
class CallToolResult:
    content: list[Any] = field(default_factory=list)
    is_error: bool = False


@dataclass
class TextResourceContents:
    uri: str
    text: str
    mime_type: str = ""


@dataclass
class ReadResourceResult:
    contents: list[Any] = field(default_factory=list)


@dataclass
class EmptyResult:
    pass


@dataclass
class CallToolRequest:
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class GetPromptRequest:
    name: str
    arguments: dict[str, str] = field(default_factory=dict)


@dataclass
class ReadResourceRequest:
    uri: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ServerTool:
    tool: Tool
    handler: Callable[..., Any] | None = None


@dataclass
class ResourceCapabilities:
    subscribe: bool = False
    list_changed: bool = False


@dataclass
class PromptCapabilities:
    list_changed: bool = False


@dataclass
class ToolCapabilities:
    list_changed: bool = False


@dataclass
class ServerCapabilities:
    resources: ResourceCapabilities | None = None
    prompts: PromptCapabilities | None = None
    tools: ToolCapabilities | None = None
    logging: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key in ("resources", "prompts", "tools"):
            capability = getattr(self, key)
            if capability is not None:
                out[key] = _fields(capability)
        if self.logging:
            out["logging"] = {}
        return out


@dataclass
class Implementation:
    name: str
    version: str


@dataclass
class InitializeResult:
    protocol_version: str
    server_info: Implementation
    capabilities: ServerCapabilities
    instructions: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _fields(self)


@dataclass
class ListResourcesResult:
    resources: list[Resource] = field(default_factory=list)
    next_cursor: str = ""


@dataclass
class ListResourceTemplatesResult:
    resource_templates: list[ResourceTemplate] = field(default_factory=list)
    next_cursor: str = ""


@dataclass
class ListPromptsResult:
    prompts: list[Prompt] = field(default_factory=list)
    next_cursor: str = ""


@dataclass
class ListToolsResult:
    tools: list[Tool] = field(default_factory=list)
    next_cursor: str = ""


@dataclass
class Notification:
    method: str
    params: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": self.method}
        if self.params:
            out["params"] = _to_json(self.params)
        return out


@dataclass
class JSONRPCResponse:
    id: Any
    result: Any

    def to_dict(self) -> dict[str, Any]:
        return {"jsonrpc": JSONRPC_VERSION, "id": self.id, "result": _to_json(self.result)}


@dataclass
class JSONRPCError:
    id: Any
    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": int(self.code), "message": self.message}
        if self.data is not None:
            error["data"] = _to_json(self.data)
        return {"jsonrpc": JSONRPC_VERSION, "id": self.id, "error": error}