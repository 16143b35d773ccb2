from mcp_session.client.transports.base import Transport
from mcp_session.client.transports.http import HttpPostTransport
from mcp_session.client.transports.memory import InMemoryTransport
from mcp_session.client.transports.stdio import StdioServerParameters, StdioTransport
from mcp_session.client.transports.streamable_http import ReconnectionOptions, StreamableHTTPTransport

__all__ = [
    "HttpPostTransport",
    "InMemoryTransport",
    "ReconnectionOptions",
    "StdioServerParameters",
    "StdioTransport",
    "StreamableHTTPTransport",
    "Transport",
]
