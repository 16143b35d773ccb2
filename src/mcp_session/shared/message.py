"""Message wrapper with transport metadata.

The session id travels out of band (an HTTP header for the HTTP transports), so
it rides next to the JSON-RPC envelope instead of inside it.
"""

from dataclasses import dataclass

from mcp_session.types import JSONRPCMessage

MCP_SESSION_ID_HEADER = "mcp-session-id"
MCP_PROTOCOL_VERSION_HEADER = "mcp-protocol-version"


@dataclass(frozen=True)
class MessageMetadata:
    """Out-of-band data attached to a message.

    Outbound: the session id and protocol version to stamp on the request.
    Inbound: the session id the transport saw on the response, if any.
    """

    session_id: str | None = None
    protocol_version: str | None = None
    http_status: int | None = None


@dataclass
class SessionMessage:
    """A JSON-RPC message together with its transport metadata."""

    message: JSONRPCMessage
    metadata: MessageMetadata | None = None

    @property
    def session_id(self) -> str | None:
        return self.metadata.session_id if self.metadata else None
