"""Transport contract for MCP clients.

A transport moves raw JSON-RPC envelopes and nothing else. It never interprets
results; the session id it learns from the wire is handed upward as message
metadata, and the session layer decides what to do with it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import anyio
from anyio.abc import TaskGroup
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from mcp_session.shared.message import SessionMessage

logger = logging.getLogger(__name__)

InboundStream = MemoryObjectReceiveStream[SessionMessage | Exception]
InboundWriter = MemoryObjectSendStream[SessionMessage | Exception]

DEFAULT_CONNECT_TIMEOUT = 30.0


class Transport(ABC):
    """Bidirectional channel for JSON-RPC messages.

    Lifecycle: ``open()`` once, ``send()`` any number of times, ``close()``
    (idempotent). The stream returned by ``open()`` delivers every inbound
    message, responses and push notifications alike, and an ``Exception`` item
    for messages that could not be parsed. When that stream ends, the
    transport is dead.
    """

    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT

    def __init__(self) -> None:
        self._inbound_writer: InboundWriter | None = None
        self._inbound: InboundStream | None = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._inbound_writer is not None and not self._closed

    def _create_inbound(self) -> InboundStream:
        # Unbounded so a POST exchange can hand its response over without
        # waiting on the receive loop.
        self._inbound_writer, self._inbound = anyio.create_memory_object_stream[SessionMessage | Exception](
            max_buffer_size=float("inf")
        )
        self._closed = False
        return self._inbound

    async def _deliver(self, item: SessionMessage | Exception) -> None:
        if self._inbound_writer is None:
            return
        try:
            await self._inbound_writer.send(item)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            logger.debug("Dropping inbound message; transport already closed")

    @abstractmethod
    async def open(self, task_group: TaskGroup) -> InboundStream:
        """Establish the connection and return the inbound message stream.

        Background work (push channels, pipe readers) is started in
        ``task_group``. Raises ConnectError on failure.
        """

    @abstractmethod
    async def send(self, message: SessionMessage) -> None:
        """Transmit one request or notification. Raises SendError on failure."""

    async def terminate_session(self, session_id: str) -> None:
        """Explicitly tear down server-side session state, where the variant supports it."""

    async def close(self) -> None:
        """Release the connection. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        if self._inbound_writer is not None:
            self._inbound_writer.close()
