"""MCP session and transport layer: a tool-calling client and a matching server."""

__version__ = "0.1.0"

from mcp_session.client import DatabricksTools, McpClient, MockClient, SessionState  # noqa: E402
from mcp_session.shared.exceptions import (  # noqa: E402
    CatalogFetchError,
    ConnectError,
    ConnectionLostError,
    McpError,
    SendError,
    SessionInitError,
    SessionNotActiveError,
)
from mcp_session.types import CallToolResult, TextContent, Tool  # noqa: E402

__all__ = [
    "CallToolResult",
    "CatalogFetchError",
    "ConnectError",
    "ConnectionLostError",
    "DatabricksTools",
    "McpClient",
    "McpError",
    "MockClient",
    "SendError",
    "SessionInitError",
    "SessionNotActiveError",
    "SessionState",
    "TextContent",
    "Tool",
    "__version__",
]
