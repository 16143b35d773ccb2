"""Request/response correlation over a Transport.

The channel owns the receive loop for one connection: it drains the
transport's inbound stream, routes responses to their waiting callers by id,
and hands notifications to an optional callback. When the inbound stream
ends, every pending request fails with ConnectionLostError.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import anyio

from mcp_session.client.transports.base import InboundStream, Transport
from mcp_session.shared.exceptions import ConnectionLostError, McpError
from mcp_session.shared.message import MessageMetadata, SessionMessage
from mcp_session.shared.pending import PendingRequests
from mcp_session.types import (
    REQUEST_TIMEOUT,
    ErrorData,
    JSONRPCErrorResponse,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResultResponse,
)

logger = logging.getLogger(__name__)

NotificationHandler = Callable[[JSONRPCNotification], Awaitable[None]]
LostCallback = Callable[[str], None]


class RpcChannel:
    """Correlates requests and responses for a single transport connection."""

    def __init__(
        self,
        transport: Transport,
        inbound: InboundStream,
        *,
        notification_handler: NotificationHandler | None = None,
        on_lost: LostCallback | None = None,
    ) -> None:
        self._transport = transport
        self._inbound = inbound
        self._notification_handler = notification_handler
        self._on_lost = on_lost
        self._pending = PendingRequests()
        self._closing = False

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def closed(self) -> bool:
        return self._pending.closed

    async def run(self) -> None:
        """Receive loop. Returns when the transport's inbound stream ends."""
        reason = "Connection closed"
        try:
            async with self._inbound:
                async for item in self._inbound:
                    await self._handle_incoming(item)
        except anyio.ClosedResourceError:
            pass
        except Exception as exc:
            logger.exception("Receive loop failed")
            reason = f"Receive loop failed: {exc}"
        finally:
            self._pending.close(reason)
            if not self._closing:
                logger.warning(f"Transport closed unexpectedly: {reason}")
                if self._on_lost is not None:
                    self._on_lost(reason)

    async def _handle_incoming(self, item: SessionMessage | Exception) -> None:
        if isinstance(item, Exception):
            # Unparsable inbound data cannot be correlated to any request
            logger.warning(f"Discarding unreadable message from transport: {item}")
            return

        message = item.message
        if isinstance(message, JSONRPCResultResponse | JSONRPCErrorResponse):
            if message.id is None:
                logger.warning(f"Received error without request id: {message.error.message}")  # type: ignore[union-attr]
            elif not self._pending.handle_response(item):
                logger.warning(f"Discarding response for unknown request id {message.id}")
            return

        if isinstance(message, JSONRPCNotification):
            logger.debug(f"Received notification {message.method}")
            if self._notification_handler is not None:
                try:
                    await self._notification_handler(message)
                except Exception:
                    logger.exception(f"Notification handler failed for {message.method}")
            return

        logger.debug(f"Ignoring server-initiated request {message.method}")

    async def send_request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        metadata: MessageMetadata | None = None,
        timeout: float | None = None,
    ) -> SessionMessage:
        """Send a request and wait for its response, within ``timeout`` seconds.

        Returns the response envelope (result or error) with its transport
        metadata. Raises McpError(REQUEST_TIMEOUT) on expiry, SendError when
        the transport could not transmit, ConnectionLostError when the
        transport died first.
        """
        request_id = self._pending.new_request(method)
        request = JSONRPCRequest(id=request_id, method=method, params=params)
        try:
            with anyio.fail_after(timeout):
                await self._transport.send(SessionMessage(request, metadata))
                return await self._pending.receive_response(request_id)
        except TimeoutError:
            raise McpError(
                ErrorData(
                    code=REQUEST_TIMEOUT,
                    message=f"Timed out while waiting for response to {method}. Waited {timeout} seconds.",
                )
            )
        finally:
            self._pending.close_request(request_id)

    async def send_notification(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        metadata: MessageMetadata | None = None,
    ) -> None:
        if self._pending.closed:
            raise ConnectionLostError()
        await self._transport.send(SessionMessage(JSONRPCNotification(method=method, params=params), metadata))

    def close(self) -> None:
        """Mark the coming end of the inbound stream as intentional."""
        self._closing = True
