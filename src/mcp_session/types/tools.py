"""MCP Tools Types - Types for tool listing and invocation."""

from typing import Annotated, Any, Literal

from pydantic import Field

from mcp_session.types.base import MCPModel, Result
from mcp_session.types.content import ContentBlock, TextContent


class JsonSchema(MCPModel):
    """A JSON Schema object describing accepted tool arguments."""

    type: Literal["object"] = "object"
    properties: dict[str, Any] | None = None
    required: list[str] | None = None


class Tool(MCPModel):
    """Definition of a tool the server provides."""

    name: str
    description: str | None = None
    input_schema: Annotated[JsonSchema, Field(alias="inputSchema")] = Field(default_factory=JsonSchema)
    title: str | None = None

    def missing_arguments(self, arguments: dict[str, Any]) -> list[str]:
        """Return the required argument names absent from ``arguments``."""
        return [name for name in self.input_schema.required or [] if name not in arguments]


class ListToolsResult(Result):
    """Server's response to a tools/list request."""

    tools: list[Tool]
    next_cursor: Annotated[str | None, Field(alias="nextCursor")] = None


class CallToolRequestParams(MCPModel):
    """Parameters for tools/call request."""

    name: str
    arguments: dict[str, Any] | None = None


class CallToolResult(Result):
    """Server's response to a tools/call request.

    ``is_error`` left as ``None`` means success. A result with ``is_error=True``
    is an ordinary failure to inspect, never a transport fault.
    """

    content: list[ContentBlock] = Field(default_factory=list)
    is_error: Annotated[bool | None, Field(alias="isError")] = None

    @classmethod
    def error(cls, text: str) -> "CallToolResult":
        return cls(content=[TextContent(text=text)], is_error=True)

    @property
    def text(self) -> str:
        """All textual content items joined by newlines."""
        return "\n".join(item.text for item in self.content if isinstance(item, TextContent))
