"""Per-request plumbing between the runner and the transports.

A transport hands the runner one sink per incoming message. Everything the
request produces (progress notifications, then exactly one response) goes
through that sink; the transport decides how to frame it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import uuid4

import anyio
from anyio.streams.memory import MemoryObjectSendStream

from mcp_session.types import (
    ClientCapabilities,
    Implementation,
    JSONRPCMessage,
    JSONRPCNotification,
    JSONRPCResponse,
    RequestId,
)

PROGRESS_NOTIFICATION = "notifications/progress"


@dataclass(frozen=True)
class SessionInfo:
    """What the initialize handshake agreed on. The transport keys its session map by ``session_id``."""

    client_info: Implementation
    client_capabilities: ClientCapabilities
    protocol_version: str
    session_id: str = field(default_factory=lambda: uuid4().hex)


@dataclass
class SinkEvent:
    message: JSONRPCMessage
    # Sequence number within the response; becomes the SSE ``id:`` line.
    event_id: str | None = None
    is_final: bool = False


class ResponseSink(Protocol):
    async def send_intermediate(self, message: JSONRPCMessage) -> None: ...

    async def send_result(self, response: JSONRPCResponse) -> None: ...

    async def close(self) -> None: ...


class ChannelSink:
    """Writes a request's output to a memory stream and closes it after the response.

    Anything sent after the response is dropped.
    """

    def __init__(self, send_stream: MemoryObjectSendStream[SinkEvent]) -> None:
        self._send = send_stream
        self._sequence = 0
        self._done = False

    async def _emit(self, message: JSONRPCMessage, *, final: bool) -> None:
        if self._done:
            return
        self._sequence += 1
        await self._send.send(SinkEvent(message=message, event_id=str(self._sequence), is_final=final))

    async def send_intermediate(self, message: JSONRPCMessage) -> None:
        await self._emit(message, final=False)

    async def send_result(self, response: JSONRPCResponse) -> None:
        await self._emit(response, final=True)
        await self.close()

    async def close(self) -> None:
        if self._done:
            return
        self._done = True
        with anyio.CancelScope(shield=True):
            await self._send.aclose()


class NoOpSink:
    """For notifications: the server never answers them."""

    async def send_intermediate(self, message: JSONRPCMessage) -> None:
        pass

    async def send_result(self, response: JSONRPCResponse) -> None:
        pass

    async def close(self) -> None:
        pass


@dataclass
class RequestContext:
    """Injected into tool handlers that declare a parameter of this type."""

    session: SessionInfo | None
    request_id: RequestId
    _sink: ResponseSink

    async def send_notification(self, method: str, params: dict[str, Any] | None = None) -> None:
        # Over HTTP, the first notification switches the response to SSE.
        await self._sink.send_intermediate(JSONRPCNotification(method=method, params=params))

    async def report_progress(self, progress: float, total: float | None = None, message: str | None = None) -> None:
        params: dict[str, Any] = {"progressToken": self.request_id, "progress": progress}
        if total is not None:
            params["total"] = total
        if message is not None:
            params["message"] = message
        await self.send_notification(PROGRESS_NOTIFICATION, params)
