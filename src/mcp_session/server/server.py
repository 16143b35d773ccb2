"""ToolServer - tool registry and request dispatch.

No I/O, no lifecycle, no transport knowledge. The ServerRunner owns the
handshake and the transports own the wire.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import pydantic_core
from pydantic import BaseModel, ValidationError

from mcp_session.server.context import RequestContext
from mcp_session.server.func_metadata import FuncMetadata, func_metadata
from mcp_session.shared.exceptions import McpError
from mcp_session.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    CallToolRequestParams,
    CallToolResult,
    ErrorData,
    ImageContent,
    JSONRPCErrorResponse,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    JSONRPCResultResponse,
    ListToolsResult,
    ServerCapabilities,
    TextContent,
    Tool,
)

logger = logging.getLogger(__name__)

RequestHandler = Callable[[RequestContext, JSONRPCRequest], Awaitable[Any]]
NotificationHandler = Callable[[RequestContext, JSONRPCNotification], Awaitable[None]]
AnyFunction = Callable[..., Any]


@dataclass
class RegisteredTool:
    """A tool descriptor bound to its handler and argument model."""

    descriptor: Tool
    fn: AnyFunction
    metadata: FuncMetadata

    @property
    def name(self) -> str:
        return self.descriptor.name

    async def run(self, arguments: dict[str, Any], ctx: RequestContext) -> Any:
        kwargs = self.metadata.validate_arguments(arguments)
        if self.metadata.context_kwarg is not None:
            kwargs[self.metadata.context_kwarg] = ctx
        result = self.fn(**kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result


def _convert_to_result(result: Any) -> CallToolResult:
    if isinstance(result, CallToolResult):
        return result
    if isinstance(result, TextContent | ImageContent):
        return CallToolResult(content=[result])
    if isinstance(result, list) and result and all(isinstance(item, TextContent | ImageContent) for item in result):
        return CallToolResult(content=list(result))
    if result is None:
        return CallToolResult(content=[])
    if isinstance(result, str):
        return CallToolResult(content=[TextContent(text=result)])
    text = pydantic_core.to_json(result, fallback=str, indent=2).decode()
    return CallToolResult(content=[TextContent(text=text)])


class ToolServer:
    """Closed registry of named tools plus method dispatch.

    Usage:
        server = ToolServer("databricks", "1.0.0")

        @server.tool("list_clusters", "List all Databricks clusters")
        async def list_clusters() -> dict:
            return {"clusters": [...]}

    Handler parameters become the tool's ``inputSchema``; arguments are
    validated against them before the handler runs. A parameter annotated with
    ``RequestContext`` receives the request context instead.
    """

    def __init__(self, name: str, version: str = "0.1.0", *, instructions: str | None = None) -> None:
        self.name = name
        self.version = version
        self.instructions = instructions
        self._tools: dict[str, RegisteredTool] = {}
        self._request_handlers: dict[str, RequestHandler] = {
            "tools/list": self._handle_list_tools,
            "tools/call": self._handle_call_tool,
        }
        self._notification_handlers: dict[str, NotificationHandler] = {}

    # --- Tool registry ---

    def add_tool(
        self,
        fn: AnyFunction,
        name: str | None = None,
        description: str | None = None,
        *,
        title: str | None = None,
    ) -> RegisteredTool:
        tool_name = name or fn.__name__
        if tool_name in self._tools:
            raise ValueError(f"Tool already registered: {tool_name}")

        metadata = func_metadata(fn, context_type=RequestContext)
        descriptor = Tool(
            name=tool_name,
            description=description or inspect.getdoc(fn),
            title=title,
            input_schema=metadata.input_schema(),
        )
        registered = RegisteredTool(descriptor=descriptor, fn=fn, metadata=metadata)
        self._tools[tool_name] = registered
        return registered

    def tool(
        self,
        name: str | None = None,
        description: str | None = None,
        *,
        title: str | None = None,
    ) -> Callable[[AnyFunction], AnyFunction]:
        """Decorator to register a tool."""
        if callable(name):
            raise TypeError("The @tool decorator was used incorrectly. Use @tool() instead of @tool")

        def decorator(fn: AnyFunction) -> AnyFunction:
            self.add_tool(fn, name=name, description=description, title=title)
            return fn

        return decorator

    def get_tool(self, name: str) -> RegisteredTool | None:
        return self._tools.get(name)

    def list_tools(self) -> list[Tool]:
        return [registered.descriptor for registered in self._tools.values()]

    # --- Generic handlers ---

    def request_handler(self, method: str) -> Callable[[RequestHandler], RequestHandler]:
        """Decorator to register a request handler for a given method."""

        def decorator(fn: RequestHandler) -> RequestHandler:
            self._request_handlers[method] = fn
            return fn

        return decorator

    def notification_handler(self, method: str) -> Callable[[NotificationHandler], NotificationHandler]:
        """Decorator to register a notification handler for a given method."""

        def decorator(fn: NotificationHandler) -> NotificationHandler:
            self._notification_handlers[method] = fn
            return fn

        return decorator

    # --- Dispatch ---

    async def dispatch_request(self, ctx: RequestContext, request: JSONRPCRequest) -> JSONRPCResponse:
        """Dispatch a request to the appropriate handler."""
        handler = self._request_handlers.get(request.method)
        if not handler:
            return JSONRPCErrorResponse(
                id=request.id,
                error=ErrorData(code=METHOD_NOT_FOUND, message=f"Method not found: {request.method}"),
            )
        try:
            result = await handler(ctx, request)
        except McpError as exc:
            return JSONRPCErrorResponse(id=request.id, error=exc.error)
        except ValidationError as exc:
            return JSONRPCErrorResponse(
                id=request.id,
                error=ErrorData(code=INVALID_PARAMS, message=f"Invalid params for {request.method}: {exc}"),
            )
        except Exception:
            logger.exception("Handler error for %s", request.method)
            return JSONRPCErrorResponse(
                id=request.id,
                error=ErrorData(code=INTERNAL_ERROR, message="Internal error"),
            )

        if isinstance(result, BaseModel):
            result_data = result.model_dump(by_alias=True, mode="json", exclude_none=True)
        elif isinstance(result, dict):
            result_data = result
        else:
            result_data = {}
        return JSONRPCResultResponse(id=request.id, result=result_data)

    async def dispatch_notification(self, ctx: RequestContext, notification: JSONRPCNotification) -> None:
        """Dispatch a notification to the appropriate handler."""
        handler = self._notification_handlers.get(notification.method)
        if handler is None:
            logger.debug("Ignoring notification %s", notification.method)
            return
        try:
            await handler(ctx, notification)
        except Exception:
            logger.exception("Notification handler error for %s", notification.method)

    def get_capabilities(self) -> ServerCapabilities:
        return ServerCapabilities(tools={"listChanged": False})

    # --- Built-in tool methods ---

    async def _handle_list_tools(self, ctx: RequestContext, request: JSONRPCRequest) -> ListToolsResult:
        return ListToolsResult(tools=self.list_tools())

    async def _handle_call_tool(self, ctx: RequestContext, request: JSONRPCRequest) -> CallToolResult:
        params = CallToolRequestParams.model_validate(request.params or {})
        registered = self._tools.get(params.name)
        if registered is None:
            raise McpError(ErrorData(code=INVALID_PARAMS, message=f"Tool {params.name} not found"))

        try:
            result = await registered.run(params.arguments or {}, ctx)
        except ValidationError as exc:
            raise McpError(
                ErrorData(code=INVALID_PARAMS, message=f"Invalid arguments for tool {params.name}: {exc}")
            ) from exc
        except McpError:
            raise
        except Exception as exc:
            logger.warning("Tool %s failed: %s", params.name, exc)
            return CallToolResult.error(f"Error executing tool {params.name}: {exc}")

        return _convert_to_result(result)
