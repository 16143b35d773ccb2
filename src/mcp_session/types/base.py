"""MCP Base Types - Core type definitions shared by every protocol message."""

from typing import Annotated, Any, Final

from pydantic import BaseModel, ConfigDict, Field

LATEST_PROTOCOL_VERSION: Final[str] = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS: Final[tuple[str, ...]] = ("2024-11-05", "2025-03-26", LATEST_PROTOCOL_VERSION)


class MCPModel(BaseModel):
    """Base class for all MCP domain types. Allows extra fields for forward compatibility."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        """Serialize to the wire shape (camelCase aliases, no null fields)."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class Implementation(MCPModel):
    """Describes the name and version of an MCP implementation."""

    name: str
    version: str
    title: str | None = None


class ClientCapabilities(MCPModel):
    """Capabilities that a client may support."""

    experimental: dict[str, Any] | None = None
    tools: dict[str, Any] | None = None


class ServerCapabilities(MCPModel):
    """Capabilities that a server may support."""

    experimental: dict[str, Any] | None = None
    logging: dict[str, Any] | None = None
    tools: dict[str, Any] | None = None


class Result(MCPModel):
    """Base class for MCP results with _meta support."""

    meta: Annotated[dict[str, Any] | None, Field(alias="_meta")] = None


class EmptyResult(Result):
    """A response that indicates success but carries no data."""
