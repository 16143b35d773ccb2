"""ServerRunner and RunningServer.

The runner bridges the ToolServer (pure dispatch) with transports. It manages
the lifespan, answers the protocol machinery (initialize, ping, shutdown)
itself, and hands everything else to the server.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

from pydantic import ValidationError

from mcp_session.server.context import RequestContext, ResponseSink, SessionInfo
from mcp_session.server.server import ToolServer
from mcp_session.types import (
    INVALID_PARAMS,
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    EmptyResult,
    ErrorData,
    Implementation,
    InitializeRequestParams,
    InitializeResult,
    JSONRPCErrorResponse,
    JSONRPCMessage,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResultResponse,
)

logger = logging.getLogger(__name__)

INITIALIZE = "initialize"
INITIALIZED_NOTIFICATION = "notifications/initialized"
PING = "ping"
SHUTDOWN = "shutdown"

Lifespan = Callable[[ToolServer], AbstractAsyncContextManager[Any]]


@asynccontextmanager
async def _default_lifespan(server: ToolServer) -> AsyncIterator[dict[str, Any]]:
    yield {}


def negotiate_protocol_version(requested: str) -> str:
    """Echo the client's version when supported, otherwise offer the latest."""
    return requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION


class ServerRunner:
    """Manages lifecycle and produces a RunningServer.

    Usage:
        runner = ServerRunner(server, lifespan=my_lifespan)
        async with runner.run() as running:
            # Use running.handle_message() with your transport
            ...
    """

    def __init__(self, server: ToolServer, *, lifespan: Lifespan | None = None) -> None:
        self.server = server
        self._lifespan = lifespan or _default_lifespan

    @asynccontextmanager
    async def run(self) -> AsyncIterator[RunningServer]:
        """Enter server lifespan once, yield a running server."""
        async with self._lifespan(self.server) as server_state:
            yield RunningServer(self.server, server_state)


class RunningServer:
    """A server with active lifespan, ready to handle messages.

    Handles the init handshake internally; the ToolServer never sees
    'initialize' as a request.
    """

    def __init__(self, server: ToolServer, server_state: Any) -> None:
        self._server = server
        self._server_state = server_state

    async def handle_message(
        self,
        sink: ResponseSink,
        message: JSONRPCMessage,
        *,
        session: SessionInfo | None = None,
        session_id: str | None = None,
    ) -> SessionInfo | None:
        """Dispatch a single message. Returns SessionInfo if this was a successful init handshake.

        ``session_id`` lets the transport choose the id of a session created
        by ``initialize`` (HTTP must put it in a header before the handshake
        completes).
        """
        if isinstance(message, JSONRPCRequest):
            if message.method == INITIALIZE:
                return await self._handle_initialize(sink, message, session_id)

            if message.method == PING:
                await sink.send_result(JSONRPCResultResponse(id=message.id, result={}))
                return None

            if message.method == SHUTDOWN:
                logger.info("Shutdown requested for session %s", session.session_id if session else None)
                await sink.send_result(JSONRPCResultResponse(id=message.id, result=EmptyResult().dump()))
                return None

            ctx = RequestContext(session=session, request_id=message.id, _sink=sink)
            response = await self._server.dispatch_request(ctx, message)
            await sink.send_result(response)
            return None

        if isinstance(message, JSONRPCNotification):
            if message.method == INITIALIZED_NOTIFICATION:
                return None
            ctx = RequestContext(session=session, request_id="notification", _sink=sink)
            await self._server.dispatch_notification(ctx, message)
            return None

        # This server never issues requests, so any response is stray.
        logger.debug("Ignoring unexpected response from client: %s", message)
        return None

    async def _handle_initialize(
        self,
        sink: ResponseSink,
        request: JSONRPCRequest,
        session_id: str | None,
    ) -> SessionInfo | None:
        try:
            params = InitializeRequestParams.model_validate(request.params or {})
        except ValidationError as exc:
            await sink.send_result(
                JSONRPCErrorResponse(
                    id=request.id,
                    error=ErrorData(code=INVALID_PARAMS, message=f"Invalid initialize params: {exc}"),
                )
            )
            return None

        protocol_version = negotiate_protocol_version(params.protocol_version)
        result = InitializeResult(
            protocol_version=protocol_version,
            server_info=Implementation(name=self._server.name, version=self._server.version),
            server_capabilities=self._server.get_capabilities(),
            instructions=self._server.instructions,
        )
        await sink.send_result(JSONRPCResultResponse(id=request.id, result=result.dump()))

        info = SessionInfo(
            client_info=params.client_info,
            client_capabilities=params.client_capabilities,
            protocol_version=protocol_version,
            **({"session_id": session_id} if session_id else {}),
        )
        logger.info("Initialized session %s for %s", info.session_id, params.client_info.name)
        return info

    @property
    def server(self) -> ToolServer:
        return self._server

    @property
    def server_state(self) -> Any:
        return self._server_state
