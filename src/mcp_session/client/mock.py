"""Offline stand-in for McpClient.

Answers every Databricks tool with the same canned payloads as the mock
server, without any transport. Useful when no server is reachable and for
exercising callers of the client API.
"""

from __future__ import annotations

import logging
from typing import Any

from mcp_session.shared.mock_payloads import MOCK_TOOL_NAMES, mock_payload
from mcp_session.types import CallToolResult, TextContent, Tool

logger = logging.getLogger(__name__)


class MockClient:
    """Same surface as McpClient for the calls applications make; always healthy."""

    def __init__(self) -> None:
        self._connected = False
        self._tools = tuple(Tool(name=name, description=f"Mock implementation of {name}") for name in MOCK_TOOL_NAMES)

    async def __aenter__(self) -> MockClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def session_id(self) -> str | None:
        return "mock-session" if self._connected else None

    async def connect(self) -> None:
        logger.info("Using mock MCP client (mock data only)")
        self._connected = True

    async def disconnect(self) -> None:
        if self._connected:
            logger.info("Mock MCP client disconnected")
        self._connected = False

    async def reconnect(self, attempts: int = 1, **_: Any) -> None:
        await self.disconnect()
        await self.connect()

    def list_tools(self) -> tuple[Tool, ...]:
        return self._tools if self._connected else ()

    async def refresh_tools(self) -> tuple[Tool, ...]:
        return self.list_tools()

    async def health_check(self) -> bool:
        return True

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> CallToolResult:
        try:
            text = mock_payload(name, arguments)
        except KeyError:
            return CallToolResult.error(f"Error calling tool {name}: Tool {name} not found")
        except TypeError as exc:
            return CallToolResult.error(f"Error calling tool {name}: {exc}")
        return CallToolResult(content=[TextContent(text=text)])
