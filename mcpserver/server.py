"""The MCP server: registries of resources, prompts and tools and their request handlers."""

from __future__ import annotations

import copy
import dataclasses
import threading
from typing import Any, Callable, Iterable, Sequence

from .errors import (
    MCPError,
    PromptNotFoundError,
    RequestError,
    ResourceNotFoundError,
    SessionDoesNotSupportLoggingError,
    SessionDoesNotSupportToolsError,
    SessionNotInitializedError,
    ToolNotFoundError,
    UnsupportedError,
)
from .pagination import paginate
from .session import (
    ClientSession,
    Hooks,
    SessionRegistry,
    SessionWithLogging,
    SessionWithTools,
    current_session,
)
from .types import (
    LATEST_PROTOCOL_VERSION,
    METHOD_NOTIFICATION_PROMPTS_LIST_CHANGED,
    METHOD_NOTIFICATION_RESOURCES_LIST_CHANGED,
    METHOD_NOTIFICATION_TOOLS_LIST_CHANGED,
    CallToolRequest,
    CallToolResult,
    EmptyResult,
    ErrorCode,
    GetPromptRequest,
    GetPromptResult,
    Implementation,
    InitializeResult,
    JSONRPCError,
    JSONRPCResponse,
    ListPromptsResult,
    ListResourcesResult,
    ListResourceTemplatesResult,
    ListToolsResult,
    LoggingLevel,
    Notification,
    Prompt,
    PromptCapabilities,
    ReadResourceRequest,
    ReadResourceResult,
    Resource,
    ResourceCapabilities,
    ResourceTemplate,
    ServerCapabilities,
    ServerTool,
    Tool,
    ToolCapabilities,
)

ResourceHandler = Callable[[ReadResourceRequest], list]
PromptHandler = Callable[[GetPromptRequest], GetPromptResult]
ToolHandler = Callable[[CallToolRequest], CallToolResult]
ToolMiddleware = Callable[[ToolHandler], ToolHandler]
ToolFilter = Callable[[list], list]
NotificationHandler = Callable[[Notification], None]


def recovery_middleware(handler: ToolHandler) -> ToolHandler:
    """Wrap a tool handler so that any exception it raises names the tool it came from."""

    def recovering(request: CallToolRequest) -> CallToolResult:
        try:
            return handler(request)
        except Exception as exc:
            raise MCPError(f"panic recovered in {request.name} tool handler: {exc}") from exc

    return recovering


def create_response(request_id: Any, result: Any) -> JSONRPCResponse:
    """A successful JSON-RPC response."""
    return JSONRPCResponse(id=request_id, result=result)


def create_error_response(request_id: Any, code: int, message: str) -> JSONRPCError:
    """A JSON-RPC error response."""
    return JSONRPCError(id=request_id, code=code, message=message)


class MCPServer(SessionRegistry):
    """A Model Context Protocol server serving resources, prompts and tools."""

    def __init__(
        self,
        name: str,
        version: str,
        *,
        instructions: str = "",
        pagination_limit: int | None = None,
        resource_capabilities: ResourceCapabilities | None = None,
        prompt_capabilities: PromptCapabilities | None = None,
        tool_capabilities: ToolCapabilities | None = None,
        logging: bool = False,
        hooks: Hooks | None = None,
        recovery: bool = False,
        tool_middlewares: Iterable[ToolMiddleware] = (),
        tool_filters: Iterable[ToolFilter] = (),
    ) -> None:
        super().__init__(hooks)
        self.name = name
        self.version = version
        self.instructions = instructions
        self.pagination_limit = pagination_limit
        self._state_lock = threading.RLock()
        self._capabilities = ServerCapabilities(
            resources=copy.copy(resource_capabilities),
            prompts=copy.copy(prompt_capabilities),
            tools=copy.copy(tool_capabilities),
            logging=bool(logging),
        )
        self._resources: dict[str, tuple[Resource, ResourceHandler]] = {}
        self._resource_templates: dict[str, tuple[ResourceTemplate, ResourceHandler]] = {}
        self._prompts: dict[str, tuple[Prompt, PromptHandler]] = {}
        self._tools: dict[str, ServerTool] = {}
        self._middlewares: list[ToolMiddleware] = [recovery_middleware] if recovery else []
        self._middlewares.extend(tool_middlewares)
        self._tool_filters: list[ToolFilter] = list(tool_filters)
        self._notification_handlers: dict[str, NotificationHandler] = {}

    @property
    def capabilities(self) -> ServerCapabilities:
        """A snapshot of the capabilities the server currently declares."""
        with self._state_lock:
            return copy.deepcopy(self._capabilities)

    # Registration -----------------------------------------------------------

    def _ensure_resource_capabilities(self) -> bool:
        with self._state_lock:
            if self._capabilities.resources is None:
                self._capabilities.resources = ResourceCapabilities()
            return self._capabilities.resources.list_changed

    def _ensure_tool_capabilities(self) -> None:
        with self._state_lock:
            if self._capabilities.tools is None:
                self._capabilities.tools = ToolCapabilities(list_changed=True)

    def _tools_list_changed(self) -> bool:
        with self._state_lock:
            tools = self._capabilities.tools
            return tools is not None and tools.list_changed

    def add_resource(self, resource: Resource, handler: ResourceHandler) -> None:
        """Register a resource and the handler that reads it."""
        list_changed = self._ensure_resource_capabilities()
        with self._state_lock:
            self._resources[resource.uri] = (resource, handler)
        if list_changed:
            self.send_notification_to_all_clients(METHOD_NOTIFICATION_RESOURCES_LIST_CHANGED, None)

    def remove_resource(self, uri: str) -> None:
        """Remove a resource; unknown URIs are ignored."""
        with self._state_lock:
            existed = self._resources.pop(uri, None) is not None
            resources = self._capabilities.resources
            list_changed = resources is not None and resources.list_changed
        if existed and list_changed:
            self.send_notification_to_all_clients(METHOD_NOTIFICATION_RESOURCES_LIST_CHANGED, None)

    def add_resource_template(self, template: ResourceTemplate, handler: ResourceHandler) -> None:
        """Register a resource template and the handler for URIs that match it."""
        list_changed = self._ensure_resource_capabilities()
        with self._state_lock:
            self._resource_templates[template.uri_template.raw] = (template, handler)
        if list_changed:
            self.send_notification_to_all_clients(METHOD_NOTIFICATION_RESOURCES_LIST_CHANGED, None)

    def add_prompt(self, prompt: Prompt, handler: PromptHandler) -> None:
        """Register a prompt and its handler."""
        with self._state_lock:
            if self._capabilities.prompts is None:
                self._capabilities.prompts = PromptCapabilities()
            list_changed = self._capabilities.prompts.list_changed
            self._prompts[prompt.name] = (prompt, handler)
        if list_changed:
            self.send_notification_to_all_clients(METHOD_NOTIFICATION_PROMPTS_LIST_CHANGED, None)

    def add_tool(self, tool: Tool, handler: ToolHandler | None) -> None:
        """Register a tool and its handler."""
        self.add_tools(ServerTool(tool=tool, handler=handler))

    def add_tools(self, *tools: ServerTool) -> None:
        """Register several tools at once."""
        self._ensure_tool_capabilities()
        with self._state_lock:
            self._tools.update((entry.tool.name, entry) for entry in tools)
        if self._tools_list_changed():
            self.send_notification_to_all_clients(METHOD_NOTIFICATION_TOOLS_LIST_CHANGED, None)

    def set_tools(self, *tools: ServerTool) -> None:
        """Replace every registered tool with these."""
        with self._state_lock:
            self._tools = {}
        self.add_tools(*tools)

    def delete_tools(self, *names: str) -> None:
        """Remove tools by name; unknown names are ignored."""
        with self._state_lock:
            removed = [name for name in names if self._tools.pop(name, None) is not None]
        if removed and self._tools_list_changed():
            self.send_notification_to_all_clients(METHOD_NOTIFICATION_TOOLS_LIST_CHANGED, None)

    def add_tool_middleware(self, middleware: ToolMiddleware) -> None:
        """Append a middleware to the tool handler chain."""
        with self._state_lock:
            self._middlewares.append(middleware)

    def add_tool_filter(self, tool_filter: ToolFilter) -> None:
        """Append a filter applied to tool listings."""
        with self._state_lock:
            self._tool_filters.append(tool_filter)

    def add_notification_handler(self, method: str, handler: NotificationHandler) -> None:
        """Register the handler for incoming notifications of a method."""
        with self._state_lock:
            self._notification_handlers[method] = handler

    # Session tools ----------------------------------------------------------

    def _tool_session(self, session_id: str) -> SessionWithTools:
        session = self.get_session(session_id)
        if not isinstance(session, SessionWithTools):
            raise SessionDoesNotSupportToolsError()
        return session

    def _notify_session_tools_changed(self, session: ClientSession, session_id: str, action: str) -> None:
        if not (session.initialized and self._tools_list_changed()):
            return
        try:
            self.send_notification_to_specific_client(
                session_id, METHOD_NOTIFICATION_TOOLS_LIST_CHANGED, None
            )
        except MCPError as exc:
            if self.hooks is None or not self.hooks.error_hooks:
                return
            error = type(exc)(f"failed to send notification after {action} tools: {exc}")
            error.__cause__ = exc
            self.hooks.on_error(
                None,
                "notification",
                {"method": METHOD_NOTIFICATION_TOOLS_LIST_CHANGED, "sessionID": session_id},
                error,
            )

    def add_session_tool(self, session_id: str, tool: Tool, handler: ToolHandler | None) -> None:
        """Add a tool visible only to one session."""
        self.add_session_tools(session_id, ServerTool(tool=tool, handler=handler))

    def add_session_tools(self, session_id: str, *tools: ServerTool) -> None:
        """Add tools visible only to one session."""
        session = self._tool_session(session_id)
        self._ensure_tool_capabilities()
        updated = dict(session.session_tools or {})
        updated.update((entry.tool.name, entry) for entry in tools)
        session.session_tools = updated
        self._notify_session_tools_changed(session, session_id, "adding")

    def delete_session_tools(self, session_id: str, *names: str) -> None:
        """Remove tools from one session."""
        session = self._tool_session(session_id)
        existing = session.session_tools
        if existing is None:
            return
        updated = {name: entry for name, entry in existing.items() if name not in names}
        session.session_tools = updated
        self._notify_session_tools_changed(session, session_id, "deleting")

    # Request handlers -------------------------------------------------------

    def _require(self, request_id: Any, capability: str) -> None:
        with self._state_lock:
            enabled = getattr(self._capabilities, capability)
        if not enabled:
            raise RequestError(
                request_id,
                ErrorCode.METHOD_NOT_FOUND,
                UnsupportedError(f"{capability} {UnsupportedError.default_message}"),
            )

    def _page(self, request_id: Any, items: Sequence[Any], cursor: str | None) -> tuple[list, str]:
        try:
            return paginate(items, cursor, self.pagination_limit)
        except ValueError as exc:
            raise RequestError(request_id, ErrorCode.INVALID_PARAMS, exc) from exc

    def initialize(self, request_id: Any) -> InitializeResult:
        """Answer an initialize request and mark the current session initialized."""
        result = InitializeResult(
            protocol_version=LATEST_PROTOCOL_VERSION,
            server_info=Implementation(name=self.name, version=self.version),
            capabilities=self.capabilities,
            instructions=self.instructions,
        )
        session = current_session()
        if session is not None:
            session.initialize()
        return result

    def ping(self, request_id: Any) -> EmptyResult:
        return EmptyResult()

    def set_level(self, request_id: Any, level: LoggingLevel | str) -> EmptyResult:
        """Set the minimum log level of the current session."""
        self._require(request_id, "logging")
        session = current_session()
        if session is None or not session.initialized:
            raise RequestError(request_id, ErrorCode.INTERNAL_ERROR, SessionNotInitializedError())
        if not isinstance(session, SessionWithLogging):
            raise RequestError(
                request_id, ErrorCode.INTERNAL_ERROR, SessionDoesNotSupportLoggingError()
            )
        try:
            parsed = LoggingLevel(level)
        except ValueError as exc:
            raise RequestError(
                request_id, ErrorCode.INVALID_PARAMS, MCPError(f"invalid logging level '{level}'")
            ) from exc
        session.log_level = parsed
        return EmptyResult()

    def list_resources(self, request_id: Any, cursor: str | None) -> ListResourcesResult:
        self._require(request_id, "resources")
        with self._state_lock:
            resources = sorted((entry for entry, _ in self._resources.values()), key=lambda r: r.name)
        page, next_cursor = self._page(request_id, resources, cursor)
        return ListResourcesResult(resources=page, next_cursor=next_cursor)

    def list_resource_templates(self, request_id: Any, cursor: str | None) -> ListResourceTemplatesResult:
        self._require(request_id, "resources")
        with self._state_lock:
            templates = sorted(
                (entry for entry, _ in self._resource_templates.values()), key=lambda t: t.name
            )
        page, next_cursor = self._page(request_id, templates, cursor)
        return ListResourceTemplatesResult(resource_templates=page, next_cursor=next_cursor)

    def read_resource(self, request_id: Any, request: ReadResourceRequest) -> ReadResourceResult:
        """Read a resource directly or through the first template that matches its URI."""
        self._require(request_id, "resources")
        handler: ResourceHandler | None = None
        with self._state_lock:
            direct = self._resources.get(request.uri)
            if direct is not None:
                handler = direct[1]
            else:
                for template, template_handler in self._resource_templates.values():
                    variables = template.uri_template.match(request.uri)
                    if variables is not None:
                        handler = template_handler
                        request = dataclasses.replace(request, arguments=dict(variables))
                        break
        if handler is None:
            raise RequestError(
                request_id,
                ErrorCode.RESOURCE_NOT_FOUND,
                ResourceNotFoundError(
                    f"handler not found for resource URI '{request.uri}': "
                    f"{ResourceNotFoundError.default_message}"
                ),
            )
        try:
            contents = handler(request)
        except RequestError:
            raise
        except Exception as exc:
            raise RequestError(request_id, ErrorCode.INTERNAL_ERROR, exc) from exc
        return ReadResourceResult(contents=list(contents))

    def list_prompts(self, request_id: Any, cursor: str | None) -> ListPromptsResult:
        self._require(request_id, "prompts")
        with self._state_lock:
            prompts = sorted((entry for entry, _ in self._prompts.values()), key=lambda p: p.name)
        page, next_cursor = self._page(request_id, prompts, cursor)
        return ListPromptsResult(prompts=page, next_cursor=next_cursor)

    def get_prompt(self, request_id: Any, request: GetPromptRequest) -> GetPromptResult:
        self._require(request_id, "prompts")
        with self._state_lock:
            entry = self._prompts.get(request.name)
        if entry is None:
            raise RequestError(
                request_id,
                ErrorCode.INVALID_PARAMS,
                PromptNotFoundError(
                    f"prompt '{request.name}' not found: {PromptNotFoundError.default_message}"
                ),
            )
        try:
            return entry[1](request)
        except RequestError:
            raise
        except Exception as exc:
            raise RequestError(request_id, ErrorCode.INTERNAL_ERROR, exc) from exc

    def list_tools(self, request_id: Any, cursor: str | None) -> ListToolsResult:
        """List global tools merged with the current session's own, filtered and paged."""
        self._require(request_id, "tools")
        with self._state_lock:
            tools = [self._tools[name].tool for name in sorted(self._tools)]
            filters = list(self._tool_filters)
        session = current_session()
        if isinstance(session, SessionWithTools):
            session_tools = session.session_tools
            if session_tools is not None:
                merged = {tool.name: tool for tool in tools}
                merged.update((name, entry.tool) for name, entry in session_tools.items())
                tools = sorted(merged.values(), key=lambda tool: tool.name)
        for tool_filter in filters:
            tools = list(tool_filter(tools) or [])
        page, next_cursor = self._page(request_id, tools, cursor)
        return ListToolsResult(tools=page, next_cursor=next_cursor)

    def call_tool(self, request_id: Any, request: CallToolRequest) -> CallToolResult:
        """Run a tool, preferring the current session's tool of that name."""
        self._require(request_id, "tools")
        entry: ServerTool | None = None
        session = current_session()
        if isinstance(session, SessionWithTools) and session.session_tools is not None:
            entry = session.session_tools.get(request.name)
        with self._state_lock:
            if entry is None:
                entry = self._tools.get(request.name)
            middlewares = list(self._middlewares)
        if entry is None:
            raise RequestError(
                request_id,
                ErrorCode.INVALID_PARAMS,
                ToolNotFoundError(
                    f"tool '{request.name}' not found: {ToolNotFoundError.default_message}"
                ),
            )
        handler = entry.handler
        for middleware in reversed(middlewares):
            handler = middleware(handler)
        try:
            return handler(request)
        except RequestError:
            raise
        except Exception as exc:
            raise RequestError(request_id, ErrorCode.INTERNAL_ERROR, exc) from exc

    def handle_notification(self, notification: Notification) -> None:
        """Pass an incoming notification to its handler, if one is registered."""
        with self._state_lock:
            handler = self._notification_handlers.get(notification.method)
        if handler is not None:
            handler(notification)
        return None