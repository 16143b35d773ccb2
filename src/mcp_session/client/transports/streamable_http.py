"""
StreamableHTTP Client Transport Module

POST per message with either a JSON or an SSE response body, plus a long-lived
GET push channel for server-initiated notifications. The push channel is
reopened with backoff when the server drops it; the session id, not the
connection, is the unit of continuity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

import anyio
import httpx
from anyio.abc import TaskGroup
from httpx_sse import EventSource, ServerSentEvent, aconnect_sse

from mcp_session.client.transports.base import DEFAULT_CONNECT_TIMEOUT, InboundStream
from mcp_session.client.transports.http import CONTENT_TYPE, JSON, SSE, HttpPostTransport, _seconds
from mcp_session.shared._httpx_utils import DEFAULT_TIMEOUT, McpHttpClientFactory, create_mcp_http_client
from mcp_session.shared.message import MessageMetadata, SessionMessage
from mcp_session.types import (
    HTTP_ERROR,
    JSONRPCErrorResponse,
    JSONRPCMessageAdapter,
    JSONRPCNotification,
    JSONRPCResultResponse,
    RequestId,
)

logger = logging.getLogger(__name__)

INITIALIZED_NOTIFICATION = "notifications/initialized"


@dataclass
class ReconnectionOptions:
    """Backoff for reopening the GET push channel.

    Attributes:
        initial_reconnection_delay: Initial backoff time in seconds. Default is 1.0.
        max_reconnection_delay: Maximum backoff time in seconds. Default is 30.0.
        reconnection_delay_grow_factor: Factor by which delay increases. Default is 1.5.
        max_retries: Consecutive failed attempts before giving up. Default is 2.
    """

    initial_reconnection_delay: float = 1.0
    max_reconnection_delay: float = 30.0
    reconnection_delay_grow_factor: float = 1.5
    max_retries: int = 2

    def __post_init__(self) -> None:
        if self.initial_reconnection_delay > self.max_reconnection_delay:
            raise ValueError("initial_reconnection_delay cannot exceed max_reconnection_delay")

    def delay(self, attempt: int) -> float:
        delay = self.initial_reconnection_delay * (self.reconnection_delay_grow_factor**attempt)
        return min(delay, self.max_reconnection_delay)


class StreamableHTTPTransport(HttpPostTransport):
    """StreamableHTTP client transport implementation."""

    accept = f"{JSON}, {SSE}"

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float | timedelta = DEFAULT_TIMEOUT,
        connect_timeout: float | timedelta = DEFAULT_CONNECT_TIMEOUT,
        sse_read_timeout: float | timedelta = 60 * 5,
        auth: httpx.Auth | None = None,
        http_client: httpx.AsyncClient | None = None,
        httpx_client_factory: McpHttpClientFactory = create_mcp_http_client,
        reconnection_options: ReconnectionOptions | None = None,
        push_channel: bool = True,
    ) -> None:
        """
        Args:
            sse_read_timeout: How long to wait for the next SSE event before
                treating the stream as stalled.
            reconnection_options: Backoff for reopening the push channel.
            push_channel: Open the GET push channel once the session is
                initialized. Servers that do not offer one answer 405.

        The remaining arguments are those of HttpPostTransport.
        """
        super().__init__(
            url,
            headers=headers,
            timeout=timeout,
            connect_timeout=connect_timeout,
            auth=auth,
            http_client=http_client,
            httpx_client_factory=httpx_client_factory,
        )
        self.sse_read_timeout = _seconds(sse_read_timeout)
        self.reconnection_options = reconnection_options or ReconnectionOptions()
        self.push_channel = push_channel
        self._task_group: TaskGroup | None = None
        self._push_scope: anyio.CancelScope | None = None

    async def open(self, task_group: TaskGroup) -> InboundStream:
        self._task_group = task_group
        return await super().open(task_group)

    async def send(self, message: SessionMessage) -> None:
        await super().send(message)

        root = message.message
        if isinstance(root, JSONRPCNotification) and root.method == INITIALIZED_NOTIFICATION and message.session_id:
            self._start_push_channel(message.metadata)

    def _start_push_channel(self, metadata: MessageMetadata | None) -> None:
        if not self.push_channel or self._task_group is None or self._push_scope is not None:
            return
        self._push_scope = anyio.CancelScope()
        self._task_group.start_soon(self._run_push_channel, metadata, self._push_scope)

    async def _handle_success(self, request_id: RequestId, response: httpx.Response, metadata: MessageMetadata) -> None:
        content_type = response.headers.get(CONTENT_TYPE, "").lower()
        if content_type.startswith(JSON):
            await self._handle_json_response(request_id, response, metadata)
        elif content_type.startswith(SSE):
            await self._handle_sse_response(request_id, response, metadata)
        else:
            logger.error(f"Unexpected content type: {content_type}")
            await self._deliver_error(request_id, HTTP_ERROR, f"Unexpected content type: {content_type}", metadata)

    async def _handle_sse_response(
        self,
        request_id: RequestId,
        response: httpx.Response,
        metadata: MessageMetadata,
    ) -> None:
        """Forward SSE events until the response for ``request_id`` arrives."""
        event_source = EventSource(response)
        async for sse in event_source.aiter_sse():
            is_complete = await self._handle_sse_event(sse, metadata)
            if is_complete:
                await response.aclose()
                return

        # The stream ended before the response: the caller would wait forever
        await self._deliver_error(request_id, HTTP_ERROR, "SSE stream ended without a response", metadata)

    async def _handle_sse_event(self, sse: ServerSentEvent, metadata: MessageMetadata | None = None) -> bool:
        """Forward one SSE event. Returns True when it carried a response or error."""
        if sse.event != "message" or not sse.data.strip():
            # Priming or keep-alive event
            return False

        try:
            message = JSONRPCMessageAdapter.validate_json(sse.data)
        except ValueError as exc:
            logger.warning(f"Error parsing SSE message: {exc}")
            await self._deliver(exc)
            return False

        logger.debug(f"SSE message: {message}")
        await self._deliver(SessionMessage(message, metadata))
        return isinstance(message, JSONRPCResultResponse | JSONRPCErrorResponse)

    async def _run_push_channel(self, metadata: MessageMetadata | None, scope: anyio.CancelScope) -> None:
        """Hold the GET stream open, reopening it when the server closes it."""
        options = self.reconnection_options
        failures = 0
        with scope:
            while not self._closed and self._client is not None:
                try:
                    async with aconnect_sse(
                        self._client,
                        "GET",
                        self.url,
                        headers=self._request_headers(metadata),
                        timeout=httpx.Timeout(self.timeout, read=self.sse_read_timeout),
                    ) as event_source:
                        status = event_source.response.status_code
                        if status == 405:
                            logger.debug("Server does not offer a push channel")
                            return
                        if status == 404:
                            logger.info("Push channel rejected: session no longer exists on the server")
                            return
                        event_source.response.raise_for_status()
                        logger.debug("GET SSE connection established")
                        failures = 0

                        async for sse in event_source.aiter_sse():
                            await self._handle_sse_event(sse, metadata)
                    logger.debug("Push channel closed by server")
                except httpx.HTTPError as exc:
                    failures += 1
                    logger.debug(f"GET stream error (non-fatal): {exc}")

                if failures > options.max_retries:
                    logger.warning(f"Giving up on the push channel after {failures} failed attempts")
                    return

                delay = options.delay(failures)
                logger.debug(f"Reopening push channel in {delay:.1f}s")
                await anyio.sleep(delay)

    async def terminate_session(self, session_id: str) -> None:
        """Terminate the session by sending a DELETE request. Never raises."""
        if self._client is None:
            return
        try:
            headers = self._request_headers(MessageMetadata(session_id=session_id))
            response = await self._client.delete(self.url, headers=headers)
            if response.status_code == 405:
                logger.debug("Server does not allow session termination")
            elif response.status_code == 404:
                logger.debug("Session already gone on the server")
            elif not response.is_success:
                logger.warning(f"Session termination failed: {response.status_code}")
        except httpx.HTTPError as exc:
            logger.warning(f"Session termination failed: {exc}")

    async def close(self) -> None:
        if self._closed:
            return
        if self._push_scope is not None:
            self._push_scope.cancel()
            self._push_scope = None
        await super().close()


