"""StreamableHTTPHandler - Framework-agnostic HTTP transport logic.

Manages sessions, creates sinks, spawns handler tasks, decides SSE vs JSON
response format, and owns each session's GET push stream. No Starlette
dependency; the adapter in ``mcp_session.server.starlette`` maps the result
types below onto HTTP responses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import anyio
from anyio.abc import TaskGroup
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from mcp_session.server.context import ChannelSink, NoOpSink, SessionInfo, SinkEvent
from mcp_session.server.runner import INITIALIZE, SHUTDOWN, RunningServer
from mcp_session.types import (
    CONNECTION_CLOSED,
    INTERNAL_ERROR,
    INVALID_REQUEST,
    ErrorData,
    JSONRPCErrorResponse,
    JSONRPCMessage,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
)

logger = logging.getLogger(__name__)

PUSH_BUFFER_SIZE = 64


# --- Result types ---


@dataclass
class AcceptedResponse:
    """Notification or client response. Ack with 202 and no body."""


@dataclass
class JSONResult:
    """Handler completed without intermediate messages. Return as JSON."""

    body: JSONRPCResponse
    session_id: str | None


@dataclass
class SSEStream:
    """Handler is streaming. First event already available."""

    first_event: SinkEvent
    event_stream: MemoryObjectReceiveStream[SinkEvent]
    session_id: str


@dataclass
class ErrorResult:
    """Rejected at the transport level (bad or unknown session)."""

    status_code: int
    body: JSONRPCErrorResponse


@dataclass
class PushStream:
    """Long-lived stream of server-initiated notifications for one session."""

    session_id: str
    event_stream: MemoryObjectReceiveStream[SinkEvent]


PostResult = AcceptedResponse | JSONResult | SSEStream | ErrorResult
GetResult = PushStream | ErrorResult


def _error(status_code: int, code: int, message: str, request_id: Any = None) -> ErrorResult:
    return ErrorResult(
        status_code=status_code,
        body=JSONRPCErrorResponse(id=request_id, error=ErrorData(code=code, message=message)),
    )


# --- HTTP Session ---


@dataclass
class HTTPSession:
    """Transport-level session state. Managed by StreamableHTTPHandler."""

    session_id: str = field(default_factory=lambda: uuid4().hex)
    session_info: SessionInfo | None = None
    push_writer: MemoryObjectSendStream[SinkEvent] | None = None

    def close_push(self) -> None:
        if self.push_writer is not None:
            self.push_writer.close()
            self.push_writer = None


# --- Handler ---


class StreamableHTTPHandler:
    """Framework-agnostic StreamableHTTP logic.

    Testable without any HTTP framework: call handle_post() with a session id
    and a JSONRPCMessage.
    """

    def __init__(self, running: RunningServer, tg: TaskGroup) -> None:
        self._running = running
        self._tg = tg
        self._sessions: dict[str, HTTPSession] = {}

    @property
    def session_ids(self) -> list[str]:
        return list(self._sessions)

    def get_session(self, session_id: str) -> HTTPSession | None:
        return self._sessions.get(session_id)

    async def handle_post(self, session_id: str | None, message: JSONRPCMessage) -> PostResult:
        """Handle a POST request. Returns a PostResult telling the framework what to respond with."""
        if isinstance(message, JSONRPCRequest) and message.method == INITIALIZE:
            return await self._handle_initialize(message)

        request_id = message.id if isinstance(message, JSONRPCRequest) else None
        if not session_id:
            return _error(400, CONNECTION_CLOSED, "Bad Request: No valid session ID provided", request_id)
        session = self._sessions.get(session_id)
        if session is None:
            return _error(404, INVALID_REQUEST, "Session not found", request_id)

        if isinstance(message, JSONRPCNotification):
            self._tg.start_soon(self._run_notification, message, session)
            return AcceptedResponse()
        if not isinstance(message, JSONRPCRequest):
            # A response to a server-initiated request; nothing is waiting on it
            return AcceptedResponse()

        send, recv = anyio.create_memory_object_stream[SinkEvent](16)
        self._tg.start_soon(self._run_handler, ChannelSink(send), message, session)
        return await self._first_response(recv, message, session.session_id)

    async def handle_get(self, session_id: str | None) -> GetResult:
        """Open the push channel for a session, replacing any previous one."""
        if not session_id:
            return _error(400, CONNECTION_CLOSED, "Bad Request: No valid session ID provided")
        session = self._sessions.get(session_id)
        if session is None:
            return _error(404, INVALID_REQUEST, "Session not found")

        session.close_push()
        send, recv = anyio.create_memory_object_stream[SinkEvent](PUSH_BUFFER_SIZE)
        session.push_writer = send
        logger.debug("Opened push channel for session %s", session_id)
        return PushStream(session_id=session_id, event_stream=recv)

    async def handle_delete(self, session_id: str) -> bool:
        """Handle a DELETE request (session termination)."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close_push()
        logger.info("Terminated session %s", session_id)
        return True

    def notify(self, session_id: str, method: str, params: dict[str, Any] | None = None) -> bool:
        """Push an unsolicited notification to a session's GET stream.

        Returns False when the session is unknown, has no push channel open,
        or the client is not keeping up.
        """
        session = self._sessions.get(session_id)
        if session is None or session.push_writer is None:
            return False
        try:
            session.push_writer.send_nowait(SinkEvent(message=JSONRPCNotification(method=method, params=params)))
        except anyio.WouldBlock:
            logger.warning("Push channel for session %s is full; dropping %s", session_id, method)
            return False
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            session.push_writer = None
            return False
        return True

    def close(self) -> None:
        """End every push stream; called when the app shuts down."""
        for session in self._sessions.values():
            session.close_push()
        self._sessions.clear()

    async def _handle_initialize(self, request: JSONRPCRequest) -> PostResult:
        session = HTTPSession()
        self._sessions[session.session_id] = session

        send, recv = anyio.create_memory_object_stream[SinkEvent](16)
        self._tg.start_soon(self._run_handler, ChannelSink(send), request, session)
        result = await self._first_response(recv, request, session.session_id)

        if isinstance(result, JSONResult) and isinstance(result.body, JSONRPCErrorResponse):
            # Failed handshake: no session was created
            self._sessions.pop(session.session_id, None)
            result.session_id = None
        return result

    async def _first_response(
        self,
        recv: MemoryObjectReceiveStream[SinkEvent],
        request: JSONRPCRequest,
        session_id: str,
    ) -> PostResult:
        # Read first event to decide response format
        try:
            first = await recv.receive()
        except anyio.EndOfStream:
            return JSONResult(
                body=JSONRPCErrorResponse(id=request.id, error=ErrorData(code=INTERNAL_ERROR, message="Internal error")),
                session_id=session_id,
            )

        if first.is_final:
            async with recv:
                pass
            return JSONResult(body=first.message, session_id=session_id)  # type: ignore[arg-type]

        return SSEStream(first_event=first, event_stream=recv, session_id=session_id)

    async def _run_notification(self, message: JSONRPCNotification, session: HTTPSession) -> None:
        try:
            await self._running.handle_message(NoOpSink(), message, session=session.session_info)
        except Exception:
            logger.exception("Notification handler error")

    async def _run_handler(self, sink: ChannelSink, message: JSONRPCRequest, session: HTTPSession) -> None:
        """Run the handler and close the sink when done."""
        try:
            result = await self._running.handle_message(
                sink,
                message,
                session=session.session_info,
                session_id=session.session_id,
            )
            if isinstance(result, SessionInfo):
                session.session_info = result
        except Exception:
            logger.exception("Handler error")
        finally:
            await sink.close()

        if message.method == SHUTDOWN:
            # The client will not use this session again
            self._sessions.pop(session.session_id, None)
            session.close_push()
