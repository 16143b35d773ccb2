"""Starlette Adapter - Thin wrapper around StreamableHTTPHandler.

This is the only file with a Starlette dependency. It converts HTTP
requests/responses to and from the framework-agnostic StreamableHTTPHandler.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import anyio
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from mcp_session.server.runner import Lifespan, ServerRunner
from mcp_session.server.server import ToolServer
from mcp_session.server.context import SinkEvent
from mcp_session.server.streamable_http import (
    AcceptedResponse,
    ErrorResult,
    JSONResult,
    PushStream,
    SSEStream,
    StreamableHTTPHandler,
)
from mcp_session.shared.message import MCP_SESSION_ID_HEADER
from mcp_session.types import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    PARSE_ERROR,
    ErrorData,
    JSONRPCErrorResponse,
    JSONRPCMessageAdapter,
)

logger = logging.getLogger(__name__)

SSE_HEADERS = {"Cache-Control": "no-cache, no-transform", "Connection": "keep-alive"}


def _format_sse_event(event: SinkEvent) -> str:
    """Format a single SSE event."""
    lines: list[str] = []
    if event.event_id is not None:
        lines.append(f"id: {event.event_id}")
    lines.append("event: message")
    lines.append(f"data: {event.message.model_dump_json(by_alias=True, exclude_none=True)}")
    lines.append("")
    lines.append("")
    return "\n".join(lines)


def _error_response(status_code: int, code: int, message: str) -> JSONResponse:
    body = JSONRPCErrorResponse(error=ErrorData(code=code, message=message))
    return JSONResponse(content=body.dump(), status_code=status_code)


def create_starlette_app(
    server: ToolServer,
    *,
    lifespan: Lifespan | None = None,
    path: str = "/mcp",
    cors_origins: Sequence[str] = ("*",),
    json_response: bool = False,
) -> Starlette:
    """Create a Starlette ASGI app serving ``server`` over StreamableHTTP.

    Routes ``POST/GET/DELETE {path}`` plus ``GET /health``.

    Args:
        json_response: Never upgrade POST responses to SSE; intermediate
            notifications are dropped and only the final response is sent.

    Usage:
        app = create_starlette_app(create_mock_server())
        uvicorn.run(app, host="0.0.0.0", port=4000)
    """

    @asynccontextmanager
    async def app_lifespan(app: Starlette) -> AsyncIterator[None]:
        runner = ServerRunner(server, lifespan=lifespan)
        async with runner.run() as running:
            async with anyio.create_task_group() as tg:
                handler = StreamableHTTPHandler(running, tg)
                app.state.handler = handler
                logger.info("MCP server %s ready at %s", server.name, path)
                try:
                    yield
                finally:
                    handler.close()
                    tg.cancel_scope.cancel()

    async def handle_post(request: Request) -> Response:
        handler: StreamableHTTPHandler = request.app.state.handler
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)

        try:
            body = await request.json()
        except json.JSONDecodeError as exc:
            return _error_response(400, PARSE_ERROR, f"Parse error: {exc}")
        try:
            message = JSONRPCMessageAdapter.validate_python(body)
        except ValidationError as exc:
            return _error_response(400, INVALID_REQUEST, f"Invalid Request: {exc}")

        result = await handler.handle_post(session_id=session_id, message=message)

        match result:
            case AcceptedResponse():
                return Response(status_code=202)

            case ErrorResult(status_code=status_code, body=error_body):
                return JSONResponse(content=error_body.dump(), status_code=status_code)

            case JSONResult(body=response_body, session_id=sid):
                headers = {MCP_SESSION_ID_HEADER: sid} if sid else None
                return JSONResponse(content=response_body.dump(), headers=headers)

            case SSEStream(first_event=first, event_stream=stream, session_id=sid):
                if json_response:
                    async with stream:
                        async for event in stream:
                            if event.is_final:
                                headers = {MCP_SESSION_ID_HEADER: sid}
                                return JSONResponse(content=event.message.dump(), headers=headers)
                    return _error_response(500, INTERNAL_ERROR, "Handler ended without a response")

                async def generate() -> AsyncIterator[str]:
                    yield _format_sse_event(first)
                    async with stream:
                        async for event in stream:
                            yield _format_sse_event(event)

                return StreamingResponse(
                    generate(),
                    media_type="text/event-stream",
                    headers={MCP_SESSION_ID_HEADER: sid, **SSE_HEADERS},
                )

        return Response(status_code=500)  # unreachable but satisfies type checker

    async def handle_get(request: Request) -> Response:
        handler: StreamableHTTPHandler = request.app.state.handler
        result = await handler.handle_get(request.headers.get(MCP_SESSION_ID_HEADER))

        if isinstance(result, ErrorResult):
            return JSONResponse(content=result.body.dump(), status_code=result.status_code)

        async def generate(push: PushStream) -> AsyncIterator[str]:
            # Comment line flushes the headers before the first notification
            yield ":\n\n"
            async with push.event_stream:
                async for event in push.event_stream:
                    yield _format_sse_event(event)

        return StreamingResponse(
            generate(result),
            media_type="text/event-stream",
            headers={MCP_SESSION_ID_HEADER: result.session_id, **SSE_HEADERS},
        )

    async def handle_delete(request: Request) -> Response:
        handler: StreamableHTTPHandler = request.app.state.handler
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)
        if not session_id:
            return Response(status_code=400)
        deleted = await handler.handle_delete(session_id)
        return Response(status_code=200 if deleted else 404)

    async def health(request: Request) -> Response:
        return JSONResponse({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})

    return Starlette(
        lifespan=app_lifespan,
        routes=[
            Route(path, handle_post, methods=["POST"]),
            Route(path, handle_get, methods=["GET"]),
            Route(path, handle_delete, methods=["DELETE"]),
            Route("/health", health, methods=["GET"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=list(cors_origins),
                allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
                allow_headers=["*"],
                expose_headers=[MCP_SESSION_ID_HEADER],
            )
        ],
    )
