from mcp_session.client.channel import RpcChannel
from mcp_session.client.client import McpClient
from mcp_session.client.mock import MockClient
from mcp_session.client.session import SessionManager, SessionState
from mcp_session.client.wrappers import DatabricksTools

__all__ = [
    "DatabricksTools",
    "McpClient",
    "MockClient",
    "RpcChannel",
    "SessionManager",
    "SessionState",
]
