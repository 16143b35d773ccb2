"""Settings for the client and the bundled server.

All settings can be configured via environment variables or a ``.env`` file.
Client settings use the prefix ``MCP_CLIENT_`` (e.g. ``MCP_CLIENT_SERVER_URL``),
server settings ``MCP_SERVER_`` (e.g. ``MCP_SERVER_PORT=4000``).
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from mcp_session import __version__
from mcp_session.types import LATEST_PROTOCOL_VERSION

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ClientSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MCP_CLIENT_",
        env_file=".env",
        extra="ignore",
    )

    server_url: str = "http://localhost:4000/mcp"
    token: str | None = None
    """Sent as a bearer token in the Authorization header."""

    transport: Literal["streamable-http", "http", "stdio"] = "streamable-http"

    connect_timeout: float = Field(default=30.0, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)
    shutdown_timeout: float = Field(default=5.0, gt=0)
    health_timeout: float = Field(default=5.0, gt=0)
    reconnect_delay: float = Field(default=1.0, ge=0)

    protocol_version: str = LATEST_PROTOCOL_VERSION
    client_name: str = "mcp-session-client"
    client_version: str = __version__

    # stdio transport
    stdio_command: str | None = None
    stdio_args: list[str] = Field(default_factory=list)

    log_level: LogLevel = "INFO"


class ServerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MCP_SERVER_",
        env_file=".env",
        extra="ignore",
    )

    host: str = "127.0.0.1"
    port: int = 4000
    path: str = "/mcp"
    log_level: LogLevel = "INFO"
    json_response: bool = False
    """Answer POSTs with plain JSON even when a tool emits progress notifications."""

    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
