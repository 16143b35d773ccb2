"""Envelope parsing and the MCP payload models."""

import pytest
from pydantic import ValidationError

from mcp_session.types import (
    CallToolResult,
    ClientCapabilities,
    Implementation,
    InitializeRequestParams,
    InitializeResult,
    JSONRPCErrorResponse,
    JSONRPCMessageAdapter,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResultResponse,
    TextContent,
    Tool,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ({"jsonrpc": "2.0", "id": 1, "method": "tools/list"}, JSONRPCRequest),
        ({"jsonrpc": "2.0", "method": "notifications/initialized"}, JSONRPCNotification),
        ({"jsonrpc": "2.0", "id": 1, "result": {}}, JSONRPCResultResponse),
        ({"jsonrpc": "2.0", "id": None, "error": {"code": -32000, "message": "x"}}, JSONRPCErrorResponse),
        ({"jsonrpc": "2.0", "id": "abc", "error": {"code": -32000, "message": "x"}}, JSONRPCErrorResponse),
    ],
)
def test_adapter_picks_envelope_type(raw, expected):
    assert type(JSONRPCMessageAdapter.validate_python(raw)) is expected


def test_adapter_rejects_garbage():
    with pytest.raises(ValidationError):
        JSONRPCMessageAdapter.validate_json("not json")
    with pytest.raises(ValidationError):
        JSONRPCMessageAdapter.validate_python({"jsonrpc": "2.0", "id": 1})


def test_request_id_is_not_coerced():
    request = JSONRPCMessageAdapter.validate_python({"jsonrpc": "2.0", "id": "1", "method": "ping"})
    assert request.id == "1"  # type: ignore[union-attr]


def test_initialize_params_wire_shape():
    params = InitializeRequestParams(
        protocol_version="2025-06-18",
        client_info=Implementation(name="x", version="1.0.0"),
        client_capabilities=ClientCapabilities(tools={}),
    )
    assert params.dump() == {
        "protocolVersion": "2025-06-18",
        "clientInfo": {"name": "x", "version": "1.0.0"},
        "clientCapabilities": {"tools": {}},
    }


def test_initialize_params_accept_legacy_capabilities_key():
    params = InitializeRequestParams.model_validate(
        {"protocolVersion": "2024-11-05", "clientInfo": {"name": "x", "version": "1"}, "capabilities": {"tools": {}}}
    )
    assert params.client_capabilities.tools == {}


def test_minimal_initialize_result():
    result = InitializeResult.model_validate({"protocolVersion": "2025-06-18"})
    assert result.server_info is None
    assert result.protocol_version == "2025-06-18"


def test_call_tool_result_error_envelope():
    result = CallToolResult.error("Error calling tool x: boom")
    assert result.dump() == {"content": [{"type": "text", "text": "Error calling tool x: boom"}], "isError": True}


def test_call_tool_result_text_joins_text_items():
    result = CallToolResult.model_validate(
        {
            "content": [
                {"type": "text", "text": "a"},
                {"type": "image", "data": "aGk=", "mimeType": "image/png"},
                {"type": "text", "text": "b"},
            ]
        }
    )
    assert result.text == "a\nb"
    assert result.is_error is None


def test_tool_missing_arguments():
    tool = Tool.model_validate(
        {"name": "q", "inputSchema": {"type": "object", "properties": {}, "required": ["query", "warehouse_id"]}}
    )
    assert tool.missing_arguments({"query": "SELECT 1"}) == ["warehouse_id"]
    assert Tool(name="free").missing_arguments({}) == []


def test_unknown_fields_are_kept():
    content = TextContent.model_validate({"type": "text", "text": "x", "annotations": {"audience": ["user"]}})
    assert content.dump()["annotations"] == {"audience": ["user"]}
