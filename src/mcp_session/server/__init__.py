from mcp_session.server.context import RequestContext, SessionInfo
from mcp_session.server.mock_tools import create_mock_server
from mcp_session.server.runner import RunningServer, ServerRunner
from mcp_session.server.server import RegisteredTool, ToolServer
from mcp_session.server.starlette import create_starlette_app
from mcp_session.server.stdio import run_stdio
from mcp_session.server.streamable_http import StreamableHTTPHandler

__all__ = [
    "RegisteredTool",
    "RequestContext",
    "RunningServer",
    "ServerRunner",
    "SessionInfo",
    "StreamableHTTPHandler",
    "ToolServer",
    "create_mock_server",
    "create_starlette_app",
    "run_stdio",
]
