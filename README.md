# mcpserver

The core of a Model Context Protocol (MCP) server. You register tools, prompts,
resources and resource templates on an `MCPServer`. Its methods answer the
protocol's requests (`initialize`, `ping`, `set_level`, the list methods,
`read_resource`, `get_prompt`, `call_tool`) with result objects. Failures are
raised as a `RequestError` that carries a JSON-RPC error code. The server also
keeps a registry of client sessions and sends them notifications when its lists
change.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `mcpserver.server`: `MCPServer`, `recovery_middleware`, `create_response`,
  `create_error_response`.
- `mcpserver.types`: the protocol data classes (`Tool`, `Prompt`, `Resource`,
  `ResourceTemplate`, the request and result classes, the capability classes,
  `Notification`, `JSONRPCResponse`, `JSONRPCError`) and the enums `ErrorCode`
  and `LoggingLevel`. Classes with a `to_dict()` method give their JSON shape
  with camelCase keys.
- `mcpserver.errors`: `MCPError` and its subclasses, including `RequestError`
  and `UnparsableMessageError`.
- `mcpserver.session`: the `ClientSession`, `SessionWithTools` and
  `SessionWithLogging` protocols, `Hooks`, `SessionRegistry`,
  `current_session()` and `session_context()`.
- `mcpserver.uritemplate`: `URITemplate`, an RFC 6570 template that tests and
  decomposes URIs.
- `mcpserver.pagination`: `paginate`, `encode_cursor`, `decode_cursor`.

## Registering tools

```python
from mcpserver.server import MCPServer
from mcpserver.types import CallToolRequest, CallToolResult, TextContent, Tool, ToolCapabilities

server = MCPServer("demo-server", "1.0.0", tool_capabilities=ToolCapabilities(list_changed=True))

def echo(request: CallToolRequest) -> CallToolResult:
    return CallToolResult(content=[TextContent(text=str(request.arguments))])

server.add_tool(Tool(name="echo", description="Echo the arguments"), echo)

result = server.call_tool(1, CallToolRequest(name="echo", arguments={"x": 1}))
listing = server.list_tools(2, "")
print(listing.to_dict() if hasattr(listing, "to_dict") else listing.tools)
```

Adding a tool declares the tools capability if it is not declared yet, with
`list_changed` set to true. Other tool methods: `add_tools`, `set_tools`
(replaces all tools) and `delete_tools`.

An unknown tool raises `RequestError` with `ErrorCode.INVALID_PARAMS`. An
exception from a handler becomes a `RequestError` with
`ErrorCode.INTERNAL_ERROR` whose message is the exception's text. With
`recovery=True`, that message reads
`panic recovered in <tool> tool handler: <reason>`.

`tool_middlewares` (or `add_tool_middleware`) wraps handlers. The first
middleware is the outermost. `tool_filters` (or `add_tool_filter`) are applied
in order to the tool list before paging.

Turn a failure into a response with `error.to_jsonrpc_error().to_dict()`. Turn
a result into one with `create_response(request_id, result).to_dict()`.

## Prompts and resources

```python
from mcpserver.types import (
    GetPromptResult, Prompt, PromptArgument, PromptMessage, Resource,
    ResourceTemplate, TextContent, TextResourceContents,
)

server.add_prompt(
    Prompt(name="greet", arguments=[PromptArgument(name="who")]),
    lambda req: GetPromptResult(messages=[
        PromptMessage(role="assistant",
                      content=TextContent(text="Hello " + req.arguments.get("who", "")))
    ]),
)

server.add_resource(
    Resource(uri="resource://readme", name="Readme"),
    lambda req: [TextResourceContents(uri=req.uri, mime_type="text/plain", text="hi")],
)

server.add_resource_template(
    ResourceTemplate(uri_template="test://{a}/items{/b*}", name="Items"),
    lambda req: [TextResourceContents(uri=req.uri, text=repr(req.arguments))],
)
```

`read_resource` first looks up the URI among the resources. If none is found,
it uses the first template that matches the URI. The template's variables are
passed to the handler in `request.arguments`, each as a list of strings. For
`test://x/items/a/b`, that gives `{"a": ["x"], "b": ["a", "b"]}`. A URI that
nothing matches raises `RequestError` with `ErrorCode.RESOURCE_NOT_FOUND`.

A method whose capability is not declared raises `RequestError` with
`ErrorCode.METHOD_NOT_FOUND`. The capabilities are resources, prompts, tools
and logging. `set_level` needs `logging=True`.

## Pagination

Construct the server with `pagination_limit=N` to get the list methods
(`list_tools`, `list_prompts`, `list_resources`, `list_resource_templates`) in
pages of at most `N` items, sorted by name. When a page is full, it carries a
`next_cursor`, the base64 of its last name. Pass that cursor back to get the
following page. A malformed cursor raises `RequestError` with
`ErrorCode.INVALID_PARAMS`.

## Sessions and notifications

A session is any object with these members:

- `session_id`;
- `initialized`;
- an `initialize()` method;
- a `notification_channel` with `put_nowait`, such as a bounded `queue.Queue`.

Add a `session_tools` dict to make it a `SessionWithTools`. Add a `log_level`
to make it a `SessionWithLogging`.

```python
import queue
from dataclasses import dataclass, field

from mcpserver.session import Hooks, session_context

@dataclass
class Session:
    session_id: str
    notification_channel: queue.Queue = field(default_factory=lambda: queue.Queue(maxsize=10))
    initialized: bool = False
    session_tools: dict | None = None

    def initialize(self) -> None:
        self.initialized = True

hooks = Hooks()
hooks.add_on_error(lambda request_id, method, message, error: print(method, message, error))
server = MCPServer("demo-server", "1.0.0", hooks=hooks)

session = Session("session-1")
server.register_session(session)
with session_context(session):
    server.initialize(1)          # marks the session initialized
    server.send_notification_to_client("custom/event", {"n": 1})
```

Notifications go only to initialized sessions. Register and remove sessions
with `register_session` and `unregister_session`. Registering an id twice
raises `SessionExistsError`. Send with:

- `send_notification_to_all_clients`;
- `send_notification_to_client`, for the current session;
- `send_notification_to_specific_client`.

A full queue is reported to the error hooks and, for single-client sends,
raised as `NotificationChannelBlockedError`.

`add_session_tool`, `add_session_tools` and `delete_session_tools` change one
session's own tools. They notify that session when it is initialized and tools
`list_changed` is on. A session's tools override global tools of the same name
in `list_tools` and `call_tool`.

## What this package does not do

It does not read or write the wire. There is no JSON-RPC message parser or
method dispatcher, and no stdio, HTTP or other transport. The caller decodes
requests, calls the matching `MCPServer` method, and serialises the returned
result or `RequestError` with `to_dict()`. `Hooks` covers only errors and
session registration. There are no before- or after-request hooks.