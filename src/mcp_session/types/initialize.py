"""MCP Initialize Types - Types for the initialize/shutdown handshake."""

from typing import Annotated

from pydantic import AliasChoices, Field

from mcp_session.types.base import (
    ClientCapabilities,
    Implementation,
    MCPModel,
    Result,
    ServerCapabilities,
)


class InitializeRequestParams(MCPModel):
    """Parameters for the initialize request."""

    protocol_version: Annotated[str, Field(alias="protocolVersion")]
    client_info: Annotated[Implementation, Field(alias="clientInfo")]
    # Older clients send the capability set as ``capabilities``.
    client_capabilities: Annotated[
        ClientCapabilities,
        Field(
            alias="clientCapabilities",
            validation_alias=AliasChoices("clientCapabilities", "client_capabilities", "capabilities"),
        ),
    ] = Field(default_factory=ClientCapabilities)


class InitializeResult(Result):
    """Server's response to an initialize request.

    Only ``protocolVersion`` is required; servers in the wild omit the rest.
    """

    protocol_version: Annotated[str, Field(alias="protocolVersion")]
    server_info: Annotated[Implementation | None, Field(alias="serverInfo")] = None
    server_capabilities: Annotated[
        ServerCapabilities | None,
        Field(
            alias="serverCapabilities",
            validation_alias=AliasChoices("serverCapabilities", "server_capabilities", "capabilities"),
        ),
    ] = None
    instructions: str | None = None
