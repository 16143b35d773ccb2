"""Tests for McpClient over a scripted in-process transport."""

from __future__ import annotations

import anyio
import pytest

from mcp_session.client.client import McpClient
from mcp_session.client.session import SessionState
from mcp_session.shared.exceptions import (
    CatalogFetchError,
    ConnectError,
    ConnectionLostError,
    SessionInitError,
    SessionNotActiveError,
)
from mcp_session.types import (
    CONNECTION_CLOSED,
    SESSION_EXPIRED,
    ErrorData,
    JSONRPCErrorResponse,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResultResponse,
)
from tests.test_helpers import ECHO_TOOL, ScriptedTransport, text_result, wait_until

pytestmark = pytest.mark.anyio


def _client(transport: ScriptedTransport, **kwargs) -> McpClient:
    kwargs.setdefault("reconnect_delay", 0)
    return McpClient(transport, **kwargs)


async def test_connect_performs_handshake_and_loads_catalog():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        assert not client.connected
        await client.connect()

        assert client.connected
        assert client.state is SessionState.ACTIVE
        assert client.session_id == "session-1"
        assert client.server_info is not None and client.server_info.name == "scripted"
        assert [tool.name for tool in client.list_tools()] == ["echo"]
        assert transport.methods()[:3] == ["initialize", "notifications/initialized", "tools/list"]

        init = transport.requests[0]
        assert init.id == 1
        assert init.params is not None
        assert set(init.params) >= {"protocolVersion", "clientInfo", "clientCapabilities"}
        # The handshake carries no session id; everything after it does
        assert transport.sent[0].session_id is None
        assert all(message.session_id == "session-1" for message in transport.sent[1:])


async def test_connect_twice_initializes_once():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        await client.connect()
        await client.connect()
        assert transport.methods().count("initialize") == 1
        assert transport.open_count == 1


async def test_concurrent_connects_initialize_once():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        async with anyio.create_task_group() as tg:
            tg.start_soon(client.connect)
            tg.start_soon(client.connect)
        assert transport.methods().count("initialize") == 1
        assert client.connected


async def test_missing_session_id_fails_handshake():
    transport = ScriptedTransport(session_ids=[None])
    async with _client(transport) as client:
        with pytest.raises(SessionInitError, match="No session ID"):
            await client.connect()
        assert not client.connected
        assert client.session_id is None
        assert client.state is SessionState.CLOSED
        assert client.list_tools() == ()


async def test_initialize_error_reply_fails_handshake():
    transport = ScriptedTransport()
    transport.responder = lambda request: (
        JSONRPCErrorResponse(id=request.id, error=ErrorData(code=-32603, message="boom"))
        if request.method == "initialize"
        else None
    )
    async with _client(transport) as client:
        with pytest.raises(SessionInitError, match="boom"):
            await client.connect()
        assert not client.connected


async def test_malformed_initialize_result_fails_handshake():
    transport = ScriptedTransport()
    transport.responder = lambda request: (
        JSONRPCResultResponse(id=request.id, result={"unexpected": True}) if request.method == "initialize" else None
    )
    async with _client(transport) as client:
        with pytest.raises(SessionInitError, match="Malformed initialize result"):
            await client.connect()


async def test_transport_open_failure_is_connect_error_not_init_error():
    transport = ScriptedTransport()
    transport.fail_open = ConnectError("Connection refused")
    async with _client(transport) as client:
        with pytest.raises(ConnectError) as exc_info:
            await client.connect()
        assert not isinstance(exc_info.value, SessionInitError)
        assert not client.connected


async def test_initialize_timeout_is_connect_error():
    transport = ScriptedTransport()
    transport.responder = lambda request: ScriptedTransport.hold if request.method == "initialize" else None
    async with _client(transport, connect_timeout=0.1) as client:
        with pytest.raises(ConnectError, match="Timed out"):
            await client.connect()
        assert not client.connected


async def test_call_before_connect_sends_nothing():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        with pytest.raises(SessionNotActiveError, match="not connected"):
            await client.call_tool("echo", {"message": "hi"})
        assert transport.sent == []


async def test_call_tool_returns_result():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        await client.connect()
        result = await client.call_tool("echo", {"message": "hello"})
        assert not result.is_error
        assert result.text == "hello"

        call = transport.requests[-1]
        assert call.method == "tools/call"
        assert call.params == {"name": "echo", "arguments": {"message": "hello"}}


async def test_unserializable_arguments_are_error_result():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        await client.connect()
        sent_before = len(transport.sent)

        result = await client.call_tool("echo", {"message": "hi", "extra": object()})
        assert result.is_error
        assert result.text.startswith("Error calling tool echo: Arguments are not JSON-serializable")
        assert len(transport.sent) == sent_before
        assert client.connected


async def test_missing_required_argument_is_checked_locally():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        await client.connect()
        sent_before = len(transport.sent)

        result = await client.call_tool("echo", {})

        assert result.is_error
        assert result.text == "Error calling tool echo: Missing required argument(s): message"
        assert len(transport.sent) == sent_before


async def test_local_validation_can_be_disabled():
    transport = ScriptedTransport()
    async with _client(transport, validate_arguments=False) as client:
        await client.connect()
        result = await client.call_tool("echo", {})
        assert not result.is_error
        assert transport.requests[-1].method == "tools/call"


async def test_uncatalogued_tool_is_sent_to_server():
    transport = ScriptedTransport()
    transport.responder = lambda request: (
        JSONRPCErrorResponse(id=request.id, error=ErrorData(code=-32602, message="Tool nonexistent_tool not found"))
        if request.method == "tools/call"
        else None
    )
    async with _client(transport) as client:
        await client.connect()
        result = await client.call_tool("nonexistent_tool", {})
        assert result.is_error
        assert result.text == "Error calling tool nonexistent_tool: Tool nonexistent_tool not found"
        assert client.connected


async def test_error_result_from_tool_is_returned_as_is():
    transport = ScriptedTransport()
    transport.responder = lambda request: (
        JSONRPCResultResponse(
            id=request.id, result={"content": [{"type": "text", "text": "no such cluster"}], "isError": True}
        )
        if request.method == "tools/call"
        else None
    )
    async with _client(transport) as client:
        await client.connect()
        result = await client.call_tool("echo", {"message": "x"})
        assert result.is_error
        assert result.text == "no such cluster"


async def test_malformed_call_result_is_error_result():
    transport = ScriptedTransport()
    transport.responder = lambda request: (
        JSONRPCResultResponse(id=request.id, result={"content": "not-a-list"}) if request.method == "tools/call" else None
    )
    async with _client(transport) as client:
        await client.connect()
        result = await client.call_tool("echo", {"message": "x"})
        assert result.is_error
        assert result.text.startswith("Error calling tool echo: Malformed result")


async def test_call_timeout_is_error_result_and_session_survives():
    transport = ScriptedTransport()
    transport.responder = lambda request: ScriptedTransport.hold if request.method == "tools/call" else None
    async with _client(transport) as client:
        await client.connect()
        result = await client.call_tool("echo", {"message": "slow"}, timeout=0.05)

        assert result.is_error
        assert "Timed out while waiting for response to tools/call" in result.text
        assert client.connected

        # A late reply for the abandoned request is discarded
        await transport.answer_held(transport.held[0])
        transport.responder = None
        follow_up = await client.call_tool("echo", {"message": "next"})
        assert follow_up.text == "next"


async def test_out_of_order_responses_are_correlated_by_id():
    transport = ScriptedTransport()
    transport.responder = lambda request: ScriptedTransport.hold if request.method == "tools/call" else None
    results: dict[str, str] = {}

    async with _client(transport) as client:
        await client.connect()

        async def call(message: str) -> None:
            result = await client.call_tool("echo", {"message": message})
            results[message] = result.text

        async with anyio.create_task_group() as tg:
            tg.start_soon(call, "first")
            await wait_until(lambda: len(transport.held) == 1)
            tg.start_soon(call, "second")
            await wait_until(lambda: len(transport.held) == 2)

            first, second = transport.held
            assert first.id != second.id
            await transport.answer_held(second)
            await transport.answer_held(first)

    assert results == {"first": "first", "second": "second"}


async def test_response_with_unknown_id_is_ignored():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        await client.connect()
        await transport.push(JSONRPCResultResponse(id=999, result=text_result("stray")))
        result = await client.call_tool("echo", {"message": "ok"})
        assert result.text == "ok"
        assert client.connected


async def test_connection_lost_fails_pending_call():
    transport = ScriptedTransport()
    transport.responder = lambda request: ScriptedTransport.hold if request.method == "tools/call" else None
    async with _client(transport) as client:
        await client.connect()

        async def drop_later() -> None:
            await wait_until(lambda: len(transport.held) == 1)
            transport.drop()

        async with anyio.create_task_group() as tg:
            tg.start_soon(drop_later)
            with pytest.raises(ConnectionLostError) as exc_info:
                await client.call_tool("echo", {"message": "pending"})

        assert exc_info.value.error.code == CONNECTION_CLOSED
        await wait_until(lambda: not client.connected)
        assert client.state is SessionState.CLOSED

        with pytest.raises(SessionNotActiveError):
            await client.call_tool("echo", {"message": "after"})


async def test_reconnect_after_loss_gets_new_session():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        await client.connect()
        assert client.session_id == "session-1"

        transport.drop()
        await wait_until(lambda: not client.connected)

        await client.reconnect()
        assert client.connected
        assert client.session_id == "session-2"
        result = await client.call_tool("echo", {"message": "again"})
        assert result.text == "again"
        assert transport.sent[-1].session_id == "session-2"


async def test_connect_after_loss_replaces_session():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        await client.connect()
        transport.drop()
        await wait_until(lambda: not client.connected)

        await client.connect()
        assert client.session_id == "session-2"


async def test_reconnect_gives_up_after_attempts():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        await client.connect()
        transport.fail_open = ConnectError("Connection refused")

        with pytest.raises(ConnectError, match="refused"):
            await client.reconnect(attempts=3, backoff_factor=1.0)
        assert transport.open_count == 4
        assert not client.connected


async def test_reconnect_rejects_zero_attempts():
    async with _client(ScriptedTransport()) as client:
        with pytest.raises(ValueError):
            await client.reconnect(attempts=0)


async def test_disconnect_sends_shutdown_and_terminates():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        await client.connect()
        await client.disconnect()

        assert not client.connected
        assert client.session_id is None
        assert client.list_tools() == ()
        assert transport.methods()[-1] == "shutdown"
        assert transport.terminated == ["session-1"]


async def test_disconnect_is_idempotent():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        await client.disconnect()
        await client.connect()
        await client.disconnect()
        await client.disconnect()
        assert transport.methods().count("shutdown") == 1


async def test_disconnect_tolerates_shutdown_failure():
    transport = ScriptedTransport()
    transport.responder = lambda request: (
        JSONRPCErrorResponse(id=request.id, error=ErrorData(code=-32601, message="Method not found: shutdown"))
        if request.method == "shutdown"
        else None
    )
    async with _client(transport) as client:
        await client.connect()
        await client.disconnect()
        assert not client.connected
        assert client.state is SessionState.CLOSED


async def test_disconnect_with_unanswered_shutdown_is_bounded():
    transport = ScriptedTransport()
    transport.responder = lambda request: ScriptedTransport.hold if request.method == "shutdown" else None
    async with _client(transport, shutdown_timeout=0.05) as client:
        await client.connect()
        with anyio.fail_after(2):
            await client.disconnect()
        assert not client.connected


async def test_exit_disconnects():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        await client.connect()
    assert transport.methods()[-1] == "shutdown"
    assert not client.connected


async def test_connect_outside_context_manager_fails():
    client = _client(ScriptedTransport())
    with pytest.raises(RuntimeError, match="async context manager"):
        await client.connect()


async def test_degraded_connect_when_catalog_fails():
    transport = ScriptedTransport()
    transport.responder = lambda request: (
        JSONRPCErrorResponse(id=request.id, error=ErrorData(code=-32603, message="catalog down"))
        if request.method == "tools/list"
        else None
    )
    async with _client(transport) as client:
        await client.connect()

        assert client.connected
        assert client.list_tools() == ()
        assert isinstance(client.catalog_error, CatalogFetchError)
        assert "catalog down" in str(client.catalog_error)

        # Calls are still allowed; nothing is validated locally without a catalog
        result = await client.call_tool("echo", {})
        assert not result.is_error


async def test_catalog_follows_pagination():
    second_tool = {**ECHO_TOOL, "name": "echo2"}
    transport = ScriptedTransport()

    def responder(request: JSONRPCRequest):
        if request.method != "tools/list":
            return None
        if (request.params or {}).get("cursor") == "page-2":
            return JSONRPCResultResponse(id=request.id, result={"tools": [second_tool]})
        return JSONRPCResultResponse(id=request.id, result={"tools": [ECHO_TOOL], "nextCursor": "page-2"})

    transport.responder = responder
    async with _client(transport) as client:
        await client.connect()
        assert [tool.name for tool in client.list_tools()] == ["echo", "echo2"]


async def test_catalog_is_a_snapshot_until_refreshed():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        await client.connect()
        snapshot = client.list_tools()
        assert isinstance(snapshot, tuple)

        transport.tools = [ECHO_TOOL, {**ECHO_TOOL, "name": "added"}]
        assert client.list_tools() == snapshot

        refreshed = await client.refresh_tools()
        assert [tool.name for tool in refreshed] == ["echo", "added"]
        assert client.get_tool("added") is not None
        assert [tool.name for tool in snapshot] == ["echo"]


async def test_refresh_failure_keeps_previous_catalog():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        await client.connect()
        transport.responder = lambda request: (
            JSONRPCErrorResponse(id=request.id, error=ErrorData(code=-32603, message="down"))
            if request.method == "tools/list"
            else None
        )
        with pytest.raises(CatalogFetchError):
            await client.refresh_tools()
        assert [tool.name for tool in client.list_tools()] == ["echo"]


async def test_session_id_does_not_change_within_a_session():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        await client.connect()
        # Later messages reporting another id do not rebind the session
        transport.session_id = "imposter"
        await client.call_tool("echo", {"message": "x"})
        assert client.session_id == "session-1"
        assert transport.sent[-1].session_id == "session-1"


async def test_session_expired_reply_marks_session_lost():
    transport = ScriptedTransport()
    transport.responder = lambda request: (
        JSONRPCErrorResponse(id=request.id, error=ErrorData(code=SESSION_EXPIRED, message="Session terminated"))
        if request.method == "tools/call"
        else None
    )
    async with _client(transport) as client:
        await client.connect()
        result = await client.call_tool("echo", {"message": "x"})
        assert result.is_error
        assert result.text == "Error calling tool echo: Session terminated"
        assert not client.connected


async def test_health_check():
    transport = ScriptedTransport()
    async with _client(transport) as client:
        assert await client.health_check() is False
        await client.connect()
        assert await client.health_check() is True

        transport.responder = lambda request: ScriptedTransport.hold if request.method == "tools/list" else None
        client.health_timeout = 0.05
        assert await client.health_check() is False


async def test_notifications_reach_handler():
    received: list[JSONRPCNotification] = []

    async def on_notification(notification: JSONRPCNotification) -> None:
        received.append(notification)

    transport = ScriptedTransport()
    async with _client(transport, notification_handler=on_notification) as client:
        await client.connect()
        await transport.push(JSONRPCNotification(method="notifications/message", params={"data": "hi"}))
        await wait_until(lambda: len(received) == 1)
    assert received[0].method == "notifications/message"


async def test_failing_notification_handler_does_not_break_session():
    async def on_notification(notification: JSONRPCNotification) -> None:
        raise RuntimeError("handler bug")

    transport = ScriptedTransport()
    async with _client(transport, notification_handler=on_notification) as client:
        await client.connect()
        await transport.push(JSONRPCNotification(method="notifications/message"))
        result = await client.call_tool("echo", {"message": "still here"})
        assert result.text == "still here"
