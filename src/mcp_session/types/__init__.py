"""Pydantic models for the JSON-RPC envelopes and MCP payloads."""

from mcp_session.types.base import (
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    ClientCapabilities,
    EmptyResult,
    Implementation,
    MCPModel,
    Result,
    ServerCapabilities,
)
from mcp_session.types.content import ContentBlock, ImageContent, TextContent
from mcp_session.types.initialize import InitializeRequestParams, InitializeResult
from mcp_session.types.json_rpc import (
    CONNECTION_CLOSED,
    HTTP_ERROR,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    JSONRPC_VERSION,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    REQUEST_TIMEOUT,
    SESSION_EXPIRED,
    ErrorData,
    JSONRPCErrorResponse,
    JSONRPCMessage,
    JSONRPCMessageAdapter,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    JSONRPCResultResponse,
    RequestId,
)
from mcp_session.types.tools import CallToolRequestParams, CallToolResult, JsonSchema, ListToolsResult, Tool

__all__ = [
    "CONNECTION_CLOSED",
    "HTTP_ERROR",
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "JSONRPC_VERSION",
    "LATEST_PROTOCOL_VERSION",
    "METHOD_NOT_FOUND",
    "PARSE_ERROR",
    "REQUEST_TIMEOUT",
    "SESSION_EXPIRED",
    "SUPPORTED_PROTOCOL_VERSIONS",
    "CallToolRequestParams",
    "CallToolResult",
    "ClientCapabilities",
    "ContentBlock",
    "EmptyResult",
    "ErrorData",
    "ImageContent",
    "Implementation",
    "InitializeRequestParams",
    "InitializeResult",
    "JSONRPCErrorResponse",
    "JSONRPCMessage",
    "JSONRPCMessageAdapter",
    "JSONRPCNotification",
    "JSONRPCRequest",
    "JSONRPCResponse",
    "JSONRPCResultResponse",
    "JsonSchema",
    "ListToolsResult",
    "MCPModel",
    "RequestId",
    "Result",
    "ServerCapabilities",
    "TextContent",
    "Tool",
]
