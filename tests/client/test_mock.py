import json

import pytest

from mcp_session.client import DatabricksTools, MockClient
from mcp_session.shared.mock_payloads import MOCK_TOOL_NAMES

pytestmark = pytest.mark.anyio


async def test_catalog_only_when_connected():
    async with MockClient() as client:
        assert client.list_tools() == ()
        await client.connect()
        assert client.connected
        assert [tool.name for tool in client.list_tools()] == list(MOCK_TOOL_NAMES)
        assert client.list_tools()[0].description == "Mock implementation of databricks_query"
    assert not client.connected


async def test_canned_payloads():
    async with MockClient() as client:
        await client.connect()
        result = await client.call_tool("list_clusters")
        clusters = json.loads(result.text)["clusters"]
        assert [c["state"] for c in clusters] == ["RUNNING", "TERMINATED"]

        tools = DatabricksTools(client)
        status = await tools.check_job_status("1", "2")
        assert status.text == "[MOCK DATA] Job 1 (Run 2) is currently in state: RUNNING."


async def test_unknown_tool():
    client = MockClient()
    await client.connect()
    result = await client.call_tool("nonexistent_tool", {})
    assert result.is_error
    assert result.text == "Error calling tool nonexistent_tool: Tool nonexistent_tool not found"


async def test_health_and_reconnect():
    client = MockClient()
    assert await client.health_check() is True
    await client.reconnect()
    assert client.connected
    assert client.session_id == "mock-session"
    await client.disconnect()
    assert client.session_id is None
