"""Client-side session lifecycle: handshake, state machine, teardown."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import ValidationError

from mcp_session import __version__
from mcp_session.client.channel import RpcChannel
from mcp_session.shared.exceptions import (
    ConnectError,
    ConnectionLostError,
    McpError,
    SendError,
    SessionInitError,
    SessionNotActiveError,
)
from mcp_session.shared.message import MessageMetadata, SessionMessage
from mcp_session.types import (
    LATEST_PROTOCOL_VERSION,
    ClientCapabilities,
    Implementation,
    InitializeRequestParams,
    InitializeResult,
    JSONRPCErrorResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_NAME = "mcp-session-client"
DEFAULT_INIT_TIMEOUT = 30.0
DEFAULT_SHUTDOWN_TIMEOUT = 5.0


class SessionState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


class SessionManager:
    """One logical MCP session on one channel.

    ``UNINITIALIZED -> INITIALIZING -> ACTIVE -> SHUTTING_DOWN -> CLOSED``,
    with ``INITIALIZING -> CLOSED`` on a failed handshake and
    ``ACTIVE -> CLOSED`` when the connection is lost. A closed manager is
    never reused; reconnecting builds a new one.
    """

    def __init__(
        self,
        channel: RpcChannel,
        *,
        client_info: Implementation | None = None,
        protocol_version: str = LATEST_PROTOCOL_VERSION,
        capabilities: ClientCapabilities | None = None,
        init_timeout: float | None = DEFAULT_INIT_TIMEOUT,
        shutdown_timeout: float | None = DEFAULT_SHUTDOWN_TIMEOUT,
    ) -> None:
        self._channel = channel
        self._client_info = client_info or Implementation(name=DEFAULT_CLIENT_NAME, version=__version__)
        self._requested_version = protocol_version
        self._capabilities = capabilities or ClientCapabilities(tools={})
        self._init_timeout = init_timeout
        self._shutdown_timeout = shutdown_timeout

        self._state = SessionState.UNINITIALIZED
        self._session_id: str | None = None
        self._protocol_version: str | None = None
        self._initialize_result: InitializeResult | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def protocol_version(self) -> str | None:
        return self._protocol_version

    @property
    def initialize_result(self) -> InitializeResult | None:
        return self._initialize_result

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    async def initialize(self) -> InitializeResult:
        """Perform the handshake.

        Raises SessionInitError when the server answered but no valid session
        resulted, ConnectError when the request never got an answer.
        """
        if self._state is not SessionState.UNINITIALIZED:
            raise SessionInitError(f"Cannot initialize a session in state {self._state.value}")
        self._state = SessionState.INITIALIZING

        params = InitializeRequestParams(
            protocol_version=self._requested_version,
            client_info=self._client_info,
            client_capabilities=self._capabilities,
        )
        try:
            response = await self._channel.send_request("initialize", params.dump(), timeout=self._init_timeout)
            result = self._validate_initialize_response(response)
        except SessionInitError:
            self._state = SessionState.CLOSED
            raise
        except (SendError, ConnectionLostError) as exc:
            self._state = SessionState.CLOSED
            raise ConnectError(f"Failed to initialize session: {exc}") from exc
        except McpError as exc:
            self._state = SessionState.CLOSED
            raise ConnectError(f"Failed to initialize session: {exc}", code=exc.error.code) from exc

        if self._state is not SessionState.INITIALIZING:
            raise ConnectError("Connection lost during initialize")
        self._session_id = response.session_id
        self._protocol_version = result.protocol_version or self._requested_version
        self._initialize_result = result
        self._state = SessionState.ACTIVE
        logger.info(f"MCP session initialized with ID: {self._session_id}")

        try:
            await self._channel.send_notification("notifications/initialized", metadata=self.request_metadata())
        except McpError as exc:
            logger.warning(f"Failed to send initialized notification: {exc}")
        return result

    def _validate_initialize_response(self, response: SessionMessage) -> InitializeResult:
        message = response.message
        if isinstance(message, JSONRPCErrorResponse):
            raise SessionInitError(f"Initialize rejected: {message.error.message}", code=message.error.code)

        if not response.session_id:
            raise SessionInitError("No session ID received from server")

        try:
            return InitializeResult.model_validate(message.result)  # type: ignore[union-attr]
        except ValidationError as exc:
            raise SessionInitError(f"Malformed initialize result: {exc}") from exc

    def request_metadata(self) -> MessageMetadata:
        """Metadata to stamp on every post-handshake message."""
        if self._state is not SessionState.ACTIVE:
            raise SessionNotActiveError()
        return MessageMetadata(session_id=self._session_id, protocol_version=self._protocol_version)

    async def send_request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> SessionMessage:
        """Send a request within this session. Raises SessionNotActiveError without a round trip."""
        metadata = self.request_metadata()
        return await self._channel.send_request(method, params, metadata=metadata, timeout=timeout)

    async def shutdown(self) -> None:
        """Best-effort teardown. Never raises; always ends CLOSED."""
        if self._state is not SessionState.ACTIVE:
            self._state = SessionState.CLOSED
            return

        metadata = self.request_metadata()
        self._state = SessionState.SHUTTING_DOWN
        try:
            response = await self._channel.send_request(
                "shutdown", {}, metadata=metadata, timeout=self._shutdown_timeout
            )
            if isinstance(response.message, JSONRPCErrorResponse):
                logger.warning(f"Error during MCP shutdown: {response.message.error.message}")
        except McpError as exc:
            logger.warning(f"Error during MCP shutdown: {exc}")

        if self._session_id:
            await self._channel.transport.terminate_session(self._session_id)
        self._state = SessionState.CLOSED
        logger.debug(f"Session {self._session_id} closed")

    def mark_lost(self, reason: str) -> None:
        """The connection died underneath an active session."""
        if self._state is SessionState.CLOSED:
            return
        if self._state is SessionState.ACTIVE:
            logger.warning(f"MCP session {self._session_id} lost: {reason}")
        self._state = SessionState.CLOSED
