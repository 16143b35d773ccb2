"""In-memory transport for talking to a ToolServer without network overhead."""

from __future__ import annotations

import logging
from uuid import uuid4

import anyio
from anyio.abc import TaskGroup, TaskStatus

from mcp_session.client.transports.base import InboundStream, Transport
from mcp_session.server.context import ChannelSink, NoOpSink, SessionInfo, SinkEvent
from mcp_session.server.runner import Lifespan, RunningServer, ServerRunner
from mcp_session.server.server import ToolServer
from mcp_session.shared.exceptions import SendError
from mcp_session.shared.message import MessageMetadata, SessionMessage
from mcp_session.types import JSONRPCNotification, JSONRPCRequest

logger = logging.getLogger(__name__)


class InMemoryTransport(Transport):
    """Runs the server's lifespan in the client's task group and dispatches to it directly.

    Each request is handled in the caller's task, so concurrent calls stay
    concurrent. The session id is chosen when the transport opens and stamped
    on every inbound message, as an HTTP server would put it in a header.
    """

    def __init__(self, server: ToolServer, *, lifespan: Lifespan | None = None) -> None:
        super().__init__()
        self._runner = ServerRunner(server, lifespan=lifespan)
        self._running: RunningServer | None = None
        self._session: SessionInfo | None = None
        self._session_id: str | None = None
        self._stopped = anyio.Event()

    async def open(self, task_group: TaskGroup) -> InboundStream:
        inbound = self._create_inbound()
        self._stopped = anyio.Event()
        self._session_id = uuid4().hex
        await task_group.start(self._serve)
        return inbound

    async def _serve(self, *, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED) -> None:
        async with self._runner.run() as running:
            self._running = running
            task_status.started()
            try:
                await self._stopped.wait()
            finally:
                self._running = None

    async def send(self, message: SessionMessage) -> None:
        running = self._running
        if not self.is_open or running is None:
            raise SendError("Transport is not open")

        root = message.message
        if isinstance(root, JSONRPCNotification):
            await running.handle_message(NoOpSink(), root, session=self._session)
            return
        if not isinstance(root, JSONRPCRequest):
            return

        metadata = MessageMetadata(session_id=self._session_id)
        send, recv = anyio.create_memory_object_stream[SinkEvent](16)
        sink = ChannelSink(send)

        async def run_handler() -> None:
            try:
                result = await running.handle_message(sink, root, session=self._session, session_id=self._session_id)
                if isinstance(result, SessionInfo):
                    self._session = result
            finally:
                await sink.close()

        async with anyio.create_task_group() as tg:
            tg.start_soon(run_handler)
            async with recv:
                async for event in recv:
                    await self._deliver(SessionMessage(event.message, metadata))

    async def terminate_session(self, session_id: str) -> None:
        if session_id == self._session_id:
            self._session = None

    async def close(self) -> None:
        if self._closed:
            return
        await super().close()
        self._stopped.set()
        logger.debug("Closed in-memory transport")
