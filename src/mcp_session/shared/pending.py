"""Pending request table: correlates responses to in-flight requests by id."""

import logging
from dataclasses import dataclass

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from mcp_session.shared.exceptions import ConnectionLostError, McpError
from mcp_session.shared.message import SessionMessage
from mcp_session.types import INVALID_PARAMS, ErrorData, RequestId

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """One request awaiting its response."""

    id: RequestId
    method: str
    sent_at: float
    send_stream: MemoryObjectSendStream[SessionMessage]
    receive_stream: MemoryObjectReceiveStream[SessionMessage]


class PendingRequests:
    """Map of request id to the caller waiting on it.

    Every mutation happens in a synchronous section (no await between lookup
    and update), so concurrent callers on the same event loop cannot interleave
    inside one. Each entry gets a one-slot memory stream; a matching response is
    delivered with ``send_nowait`` and the waiting caller picks it up.
    """

    def __init__(self, first_id: int = 1) -> None:
        self._next_id = first_id
        self._requests: dict[RequestId, PendingRequest] = {}
        self._closed = False
        self._close_reason = "Connection closed"

    def __len__(self) -> int:
        return len(self._requests)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._requests

    @property
    def closed(self) -> bool:
        return self._closed

    def new_request(self, method: str) -> RequestId:
        """Allocate a fresh id and register the waiting slot for it."""
        if self._closed:
            raise ConnectionLostError(self._close_reason)

        request_id = self._next_id
        self._next_id = request_id + 1

        send_stream, receive_stream = anyio.create_memory_object_stream[SessionMessage](1)
        self._requests[request_id] = PendingRequest(
            id=request_id,
            method=method,
            sent_at=anyio.current_time(),
            send_stream=send_stream,
            receive_stream=receive_stream,
        )
        return request_id

    async def receive_response(self, request_id: RequestId) -> SessionMessage:
        """Wait for the response to ``request_id``. The caller owns the deadline."""
        pending = self._requests.get(request_id)
        if pending is None:
            raise McpError(ErrorData(code=INVALID_PARAMS, message=f"Unknown request {request_id}"))

        try:
            return await pending.receive_stream.receive()
        except (anyio.EndOfStream, anyio.ClosedResourceError):
            raise ConnectionLostError(self._close_reason)

    def handle_response(self, response: SessionMessage) -> bool:
        """Route a response to its waiting caller. Returns False for unknown ids."""
        message = response.message
        request_id = getattr(message, "id", None)
        pending = self._requests.get(request_id) if request_id is not None else None
        if pending is None:
            return False

        try:
            pending.send_stream.send_nowait(response)
        except anyio.WouldBlock:
            logger.warning(f"Dropping duplicate response for request {request_id}")
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            # The caller gave up (timeout) between lookup and delivery
            return False
        return True

    def close_request(self, request_id: RequestId) -> bool:
        """Forget ``request_id``. Returns True if it was still pending."""
        pending = self._requests.pop(request_id, None)
        if pending is None:
            return False
        pending.send_stream.close()
        pending.receive_stream.close()
        return True

    def close(self, reason: str = "Connection closed") -> None:
        """Fail every pending request with CONNECTION_CLOSED and refuse new ones.

        A response that already arrived stays deliverable; waiters with nothing
        buffered see the end of their stream and raise ConnectionLostError.
        """
        self._closed = True
        self._close_reason = reason
        for pending in self._requests.values():
            pending.send_stream.close()
        if self._requests:
            logger.debug(f"Failed {len(self._requests)} pending request(s): {reason}")
