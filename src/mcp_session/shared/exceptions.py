from mcp_session.types import CONNECTION_CLOSED, INTERNAL_ERROR, INVALID_REQUEST, ErrorData


class McpError(Exception):
    """Exception raised when an MCP protocol error is received from a peer or synthesized locally.

    Attributes:
        error: The ErrorData describing the failure (code, message, optional data)
    """

    error: ErrorData

    def __init__(self, error: ErrorData):
        super().__init__(error.message)
        self.error = error

    @classmethod
    def from_message(cls, message: str, code: int = INTERNAL_ERROR) -> "McpError":
        return cls(ErrorData(code=code, message=message))


class ConnectError(McpError):
    """The underlying connection could not be opened (DNS, refused, timeout).

    Fatal to the connect attempt and never retried internally.
    """

    def __init__(self, message: str, code: int = CONNECTION_CLOSED):
        super().__init__(ErrorData(code=code, message=message))


class SessionInitError(ConnectError):
    """The initialize handshake reached the server but produced no valid session id.

    Raised for a missing session header, a non-success HTTP status and a
    malformed response body alike.
    """


class SendError(McpError):
    """A single message could not be transmitted."""

    def __init__(self, message: str, code: int = CONNECTION_CLOSED):
        super().__init__(ErrorData(code=code, message=message))


class CatalogFetchError(McpError):
    """tools/list failed after a successful handshake. The session stays usable."""


class SessionNotActiveError(McpError):
    """A non-initialize RPC was attempted while no session is active."""

    def __init__(self, message: str = "MCP client not connected"):
        super().__init__(ErrorData(code=INVALID_REQUEST, message=message))


class ConnectionLostError(McpError):
    """The transport died while a request was pending; no further correlation is possible."""

    def __init__(self, message: str = "Connection closed"):
        super().__init__(ErrorData(code=CONNECTION_CLOSED, message=message))
