"""Plain request/response HTTP transport.

Every message is its own short-lived POST exchange; the JSON-RPC reply comes
back as the response body. There is no persistent connection and no push
channel, so ``close()`` has nothing to release beyond the local inbound stream.
"""

from __future__ import annotations

import logging
from datetime import timedelta

import httpx
from anyio.abc import TaskGroup

from mcp_session.client.transports.base import DEFAULT_CONNECT_TIMEOUT, InboundStream, Transport
from mcp_session.shared._httpx_utils import DEFAULT_TIMEOUT, McpHttpClientFactory, create_mcp_http_client
from mcp_session.shared.exceptions import SendError
from mcp_session.shared.message import (
    MCP_PROTOCOL_VERSION_HEADER,
    MCP_SESSION_ID_HEADER,
    MessageMetadata,
    SessionMessage,
)
from mcp_session.types import (
    HTTP_ERROR,
    PARSE_ERROR,
    REQUEST_TIMEOUT,
    SESSION_EXPIRED,
    ErrorData,
    JSONRPCErrorResponse,
    JSONRPCMessageAdapter,
    JSONRPCRequest,
    RequestId,
)

logger = logging.getLogger(__name__)

CONTENT_TYPE = "content-type"
ACCEPT = "accept"

JSON = "application/json"
SSE = "text/event-stream"


def _seconds(value: float | timedelta) -> float:
    return value.total_seconds() if isinstance(value, timedelta) else value


class HttpPostTransport(Transport):
    """JSON-over-POST client transport."""

    accept = JSON

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float | timedelta = DEFAULT_TIMEOUT,
        connect_timeout: float | timedelta = DEFAULT_CONNECT_TIMEOUT,
        auth: httpx.Auth | None = None,
        http_client: httpx.AsyncClient | None = None,
        httpx_client_factory: McpHttpClientFactory = create_mcp_http_client,
    ) -> None:
        """
        Args:
            url: The MCP endpoint, e.g. ``http://localhost:4000/mcp``.
            headers: Extra headers sent with every request (e.g. Authorization).
            timeout: Per-exchange HTTP timeout.
            connect_timeout: Bound on establishing the TCP/TLS connection.
            auth: Optional httpx auth flow.
            http_client: A pre-configured client. Its lifecycle stays with the
                caller; the transport never closes it.
            httpx_client_factory: Used to build an owned client when
                ``http_client`` is not given.
        """
        super().__init__()
        self.url = url
        self.headers = headers or {}
        self.timeout = _seconds(timeout)
        self.connect_timeout = _seconds(connect_timeout)
        self.auth = auth
        self._http_client = http_client
        self._httpx_client_factory = httpx_client_factory
        self._client: httpx.AsyncClient | None = None
        self._owns_client = False

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise SendError("Transport is not open")
        return self._client

    async def open(self, task_group: TaskGroup) -> InboundStream:
        inbound = self._create_inbound()
        if self._http_client is not None:
            self._client = self._http_client
            self._owns_client = False
        else:
            self._client = self._httpx_client_factory(
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                auth=self.auth,
            )
            self._owns_client = True
        logger.debug(f"Opened HTTP transport to {self.url}")
        return inbound

    def _request_headers(self, metadata: MessageMetadata | None) -> dict[str, str]:
        headers = {ACCEPT: self.accept, CONTENT_TYPE: JSON, **self.headers}
        if metadata is not None:
            if metadata.session_id:
                headers[MCP_SESSION_ID_HEADER] = metadata.session_id
            if metadata.protocol_version:
                headers[MCP_PROTOCOL_VERSION_HEADER] = metadata.protocol_version
        return headers

    async def send(self, message: SessionMessage) -> None:
        if not self.is_open:
            raise SendError("Transport is not open")

        root = message.message
        method = getattr(root, "method", "response")
        logger.debug(f"Sending client message: {root}")

        try:
            async with self.client.stream(
                "POST",
                self.url,
                json=root.dump(),
                headers=self._request_headers(message.metadata),
            ) as response:
                await self._handle_post_response(message, response)
        except httpx.TimeoutException as exc:
            raise SendError(f"Timed out sending {method} to {self.url}: {exc!r}", code=REQUEST_TIMEOUT) from exc
        except httpx.HTTPError as exc:
            raise SendError(f"Failed to send {method} to {self.url}: {exc}") from exc

    async def _handle_post_response(self, message: SessionMessage, response: httpx.Response) -> None:
        request = message.message if isinstance(message.message, JSONRPCRequest) else None
        metadata = MessageMetadata(
            session_id=response.headers.get(MCP_SESSION_ID_HEADER),
            http_status=response.status_code,
        )

        if response.status_code == 202:
            logger.debug("Received 202 Accepted")
            return

        # The server MUST NOT send a response to notifications.
        if request is None:
            if not response.is_success:
                logger.warning(f"Notification rejected by server: {response.status_code} {response.reason_phrase}")
            return

        if response.status_code == 404 and message.session_id:
            await self._deliver_error(request.id, SESSION_EXPIRED, "Session terminated", metadata)
            return

        if not response.is_success:
            await self._handle_error_status(request.id, response, metadata)
            return

        await self._handle_success(request.id, response, metadata)

    async def _handle_success(self, request_id: RequestId, response: httpx.Response, metadata: MessageMetadata) -> None:
        await self._handle_json_response(request_id, response, metadata)

    async def _handle_json_response(
        self,
        request_id: RequestId,
        response: httpx.Response,
        metadata: MessageMetadata,
    ) -> None:
        content = await response.aread()
        try:
            message = JSONRPCMessageAdapter.validate_json(content)
        except ValueError as exc:
            logger.warning(f"Malformed JSON-RPC response to request {request_id}: {exc}")
            await self._deliver_error(request_id, PARSE_ERROR, f"Malformed response: {exc}", metadata)
            return
        await self._deliver(SessionMessage(message, metadata))

    async def _handle_error_status(
        self,
        request_id: RequestId,
        response: httpx.Response,
        metadata: MessageMetadata,
    ) -> None:
        content = await response.aread()
        try:
            message = JSONRPCMessageAdapter.validate_json(content)
        except ValueError:
            message = None

        if isinstance(message, JSONRPCErrorResponse):
            # Errors for rejected requests often carry id null; restore correlation
            message.id = request_id
            await self._deliver(SessionMessage(message, metadata))
            return

        await self._deliver_error(
            request_id,
            HTTP_ERROR,
            f"HTTP {response.status_code} {response.reason_phrase}",
            metadata,
        )

    async def _deliver_error(
        self,
        request_id: RequestId,
        code: int,
        text: str,
        metadata: MessageMetadata | None = None,
    ) -> None:
        error = JSONRPCErrorResponse(id=request_id, error=ErrorData(code=code, message=text))
        await self._deliver(SessionMessage(error, metadata))

    async def close(self) -> None:
        if self._closed:
            return
        await super().close()
        client, self._client = self._client, None
        if client is not None and self._owns_client:
            await client.aclose()
        logger.debug(f"Closed HTTP transport to {self.url}")
