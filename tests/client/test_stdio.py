"""Stdio transport against a real subprocess running the mock server."""

import os
import sys
import textwrap
from pathlib import Path

import pytest

import mcp_session
from mcp_session.client import McpClient
from mcp_session.client.transports import StdioServerParameters, StdioTransport
from mcp_session.shared.exceptions import ConnectError, ConnectionLostError

pytestmark = pytest.mark.anyio

SRC_DIR = str(Path(mcp_session.__file__).resolve().parent.parent)


def _server_params(*extra_args: str) -> StdioServerParameters:
    return StdioServerParameters(
        command=sys.executable,
        args=["-m", "mcp_session", *extra_args],
        env={"PYTHONPATH": SRC_DIR, "MCP_SERVER_LOG_LEVEL": "WARNING"},
    )


async def test_stdio_round_trip(tmp_path: Path):
    with open(tmp_path / "stderr.log", "w") as errlog:
        transport = StdioTransport(_server_params("serve", "--stdio"), errlog=errlog)
        async with McpClient(transport) as client:
            await client.connect()
            assert client.session_id == f"stdio-{transport.process.pid}"  # type: ignore[union-attr]
            assert len(client.list_tools()) == 13

            result = await client.call_tool("check_databricks_job_status", {"job_id": "1", "run_id": "2"})
            assert result.text == "[MOCK DATA] Job 1 (Run 2) is currently in state: RUNNING."

            missing = await client.call_tool("nonexistent_tool", {})
            assert missing.is_error
        assert transport.process is None


async def test_missing_executable_is_connect_error():
    transport = StdioTransport(StdioServerParameters(command="definitely-not-a-real-command-xyz"))
    async with McpClient(transport) as client:
        with pytest.raises(ConnectError, match="Failed to start"):
            await client.connect()
        assert not client.connected


def test_default_environment_is_filtered(monkeypatch: pytest.MonkeyPatch):
    from mcp_session.client.transports.stdio import get_default_environment

    monkeypatch.setenv("PATH", os.environ.get("PATH", "/usr/bin"))
    monkeypatch.setenv("SECRET_TOKEN", "do-not-leak")
    env = get_default_environment()
    assert "PATH" in env
    assert "SECRET_TOKEN" not in env


GARBLED_SERVER = textwrap.dedent(
    """
    import json
    import sys

    while True:
        line = sys.stdin.readline()
        if not line:
            break
        message = json.loads(line)
        if "id" not in message:
            continue
        if message["method"] == "initialize":
            result = {"protocolVersion": message["params"]["protocolVersion"], "capabilities": {"tools": {}}}
        elif message["method"] == "tools/list":
            result = {"tools": []}
        elif message["method"] == "tools/call":
            sys.stdout.buffer.write(b"\\xff\\xfe garbage\\n")
            sys.stdout.buffer.flush()
            continue
        else:
            result = {}
        sys.stdout.write(json.dumps({"jsonrpc": "2.0", "id": message["id"], "result": result}) + "\\n")
        sys.stdout.flush()
    """
)


async def test_undecodable_output_loses_the_connection(tmp_path: Path):
    script = tmp_path / "garbled_server.py"
    script.write_text(GARBLED_SERVER)
    transport = StdioTransport(StdioServerParameters(command=sys.executable, args=[str(script)]))

    async with McpClient(transport) as client:
        await client.connect()
        first_session = client.session_id

        with pytest.raises(ConnectionLostError):
            await client.call_tool("anything", {})
        assert not client.connected

        await client.connect()
        assert client.connected
        assert client.session_id != first_session
