"""Run a ToolServer over stdin/stdout (newline-delimited JSON-RPC)."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from typing import TextIO

import anyio
from pydantic import ValidationError

from mcp_session.server.context import ChannelSink, NoOpSink, SessionInfo, SinkEvent
from mcp_session.server.runner import SHUTDOWN, Lifespan, RunningServer, ServerRunner
from mcp_session.server.server import ToolServer
from mcp_session.types import (
    PARSE_ERROR,
    ErrorData,
    JSONRPCErrorResponse,
    JSONRPCMessage,
    JSONRPCMessageAdapter,
    JSONRPCNotification,
    JSONRPCRequest,
)

logger = logging.getLogger(__name__)


async def run_stdio(
    server: ToolServer,
    *,
    lifespan: Lifespan | None = None,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> None:
    """Serve one session over stdin/stdout until stdin closes or the client sends shutdown.

    Logging must go to stderr; anything else written to stdout corrupts the stream.
    """
    reader = anyio.wrap_file(stdin or sys.stdin)
    out = stdout or sys.stdout
    runner = ServerRunner(server, lifespan=lifespan)
    session: SessionInfo | None = None

    def write(message: JSONRPCMessage) -> None:
        out.write(message.model_dump_json(by_alias=True, exclude_none=True) + "\n")
        out.flush()

    async with runner.run() as running:
        async for raw_line in reader:
            line = raw_line.strip()
            if not line:
                continue
            try:
                message = JSONRPCMessageAdapter.validate_json(line)
            except ValidationError as exc:
                logger.warning("Discarding malformed message: %s", exc)
                write(JSONRPCErrorResponse(error=ErrorData(code=PARSE_ERROR, message=f"Parse error: {exc}")))
                continue

            if isinstance(message, JSONRPCNotification):
                await running.handle_message(NoOpSink(), message, session=session)
                continue
            if not isinstance(message, JSONRPCRequest):
                continue

            result = await _handle_request(running, message, session, write)
            if isinstance(result, SessionInfo):
                session = result
            if message.method == SHUTDOWN:
                logger.info("Shutdown requested; leaving stdio loop")
                break


async def _handle_request(
    running: RunningServer,
    request: JSONRPCRequest,
    session: SessionInfo | None,
    write: Callable[[JSONRPCMessage], None],
) -> SessionInfo | None:
    send, recv = anyio.create_memory_object_stream[SinkEvent](16)
    sink = ChannelSink(send)
    result: SessionInfo | None = None

    async def run_handler() -> None:
        nonlocal result
        try:
            result = await running.handle_message(sink, request, session=session)
        finally:
            await sink.close()

    # Drain while the handler runs so intermediate notifications go out as they happen
    async with anyio.create_task_group() as tg:
        tg.start_soon(run_handler)
        async with recv:
            async for event in recv:
                write(event.message)
    return result
