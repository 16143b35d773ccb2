"""Command line entry point: ``mcp-session``."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

import anyio
import click
import uvicorn

from mcp_session.client.client import McpClient
from mcp_session.config import ClientSettings, ServerSettings
from mcp_session.server.mock_tools import create_mock_server
from mcp_session.server.starlette import create_starlette_app
from mcp_session.server.stdio import run_stdio
from mcp_session.shared.exceptions import McpError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def configure_logging(level: str) -> None:
    # stderr: the stdio transport owns stdout
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def _parse_arguments(pairs: tuple[str, ...]) -> dict[str, Any]:
    """Parse ``key=value`` pairs; values that are valid JSON are decoded."""
    arguments: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="--arg")
        try:
            arguments[key] = json.loads(raw)
        except json.JSONDecodeError:
            arguments[key] = raw
    return arguments


def _client_settings(url: str | None, token: str | None) -> ClientSettings:
    overrides: dict[str, Any] = {}
    if url:
        overrides["server_url"] = url
    if token:
        overrides["token"] = token
    return ClientSettings(**overrides)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log at DEBUG level")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """MCP session client and mock Databricks tool server."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@main.command()
@click.option("--host", default=None, help="Interface to bind (default from MCP_SERVER_HOST)")
@click.option("--port", default=None, type=int, help="Port to listen on (default from MCP_SERVER_PORT)")
@click.option("--stdio", "use_stdio", is_flag=True, help="Serve over stdin/stdout instead of HTTP")
@click.option("--json-response", is_flag=True, help="Never stream POST responses as SSE")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, use_stdio: bool, json_response: bool) -> None:
    """Serve the mock Databricks tool set."""
    settings = ServerSettings()
    configure_logging("DEBUG" if ctx.obj["verbose"] else settings.log_level)
    server = create_mock_server()

    if use_stdio:
        anyio.run(run_stdio, server)
        return

    app = create_starlette_app(
        server,
        path=settings.path,
        cors_origins=settings.cors_origins,
        json_response=settings.json_response or json_response,
    )
    uvicorn.run(app, host=host or settings.host, port=port or settings.port, log_level=settings.log_level.lower())


@main.command()
@click.argument("url", required=False)
@click.option("--token", default=None, help="Bearer token")
@click.pass_context
def tools(ctx: click.Context, url: str | None, token: str | None) -> None:
    """Connect and print the tool catalog."""
    settings = _client_settings(url, token)
    configure_logging("DEBUG" if ctx.obj["verbose"] else settings.log_level)

    async def run() -> int:
        async with McpClient.from_settings(settings) as client:
            await client.connect()
            if client.catalog_error is not None:
                click.echo(f"Failed to fetch tools: {client.catalog_error}", err=True)
                return 1
            for tool in client.list_tools():
                click.echo(f"{tool.name}: {tool.description or ''}")
            return 0

    sys.exit(_run(run))


@main.command()
@click.argument("url")
@click.argument("tool")
@click.option("-a", "--arg", "args", multiple=True, help="Tool argument as key=value (repeatable)")
@click.option("--token", default=None, help="Bearer token")
@click.option("--timeout", default=None, type=float, help="Call timeout in seconds")
@click.pass_context
def call(
    ctx: click.Context,
    url: str,
    tool: str,
    args: tuple[str, ...],
    token: str | None,
    timeout: float | None,
) -> None:
    """Call TOOL and print its text content."""
    settings = _client_settings(url, token)
    configure_logging("DEBUG" if ctx.obj["verbose"] else settings.log_level)
    arguments = _parse_arguments(args)

    async def run() -> int:
        async with McpClient.from_settings(settings) as client:
            await client.connect()
            result = await client.call_tool(tool, arguments, timeout=timeout)
            if result.is_error:
                click.echo(f"Tool error: {result.text}", err=True)
                return 1
            click.echo(result.text)
            return 0

    sys.exit(_run(run))


@main.command()
@click.argument("url", required=False)
@click.option("--token", default=None, help="Bearer token")
@click.pass_context
def health(ctx: click.Context, url: str | None, token: str | None) -> None:
    """Exit 0 when the server answers a tools/list round trip."""
    settings = _client_settings(url, token)
    configure_logging("DEBUG" if ctx.obj["verbose"] else settings.log_level)

    async def run() -> int:
        async with McpClient.from_settings(settings) as client:
            await client.connect()
            healthy = await client.health_check()
            click.echo("healthy" if healthy else "unhealthy")
            return 0 if healthy else 1

    sys.exit(_run(run))


def _run(fn: Any) -> int:
    try:
        return anyio.run(fn)
    except McpError as exc:
        click.echo(f"Connection error: {exc}", err=True)
        return 1


if __name__ == "__main__":
    main()
