"""Utilities for creating standardized httpx AsyncClient instances."""

from typing import Any, Protocol

import httpx

__all__ = ["DEFAULT_TIMEOUT", "McpHttpClientFactory", "create_mcp_http_client"]

DEFAULT_TIMEOUT = 30.0


class McpHttpClientFactory(Protocol):
    def __call__(self, **kwargs: Any) -> httpx.AsyncClient: ...


def create_mcp_http_client(**kwargs: Any) -> httpx.AsyncClient:
    """Create an httpx AsyncClient with the defaults every MCP transport expects.

    - follow_redirects=True
    - a 30 second timeout covering connect, read and write unless overridden

    Any keyword accepted by ``httpx.AsyncClient`` (headers, auth, verify,
    transport, base_url...) is passed through and wins over the defaults.

    Examples:
        async with create_mcp_http_client(headers={"Authorization": "Bearer t"}) as client:
            response = await client.post(url, json=payload)

        # Point a transport at an in-process ASGI app
        async with create_mcp_http_client(transport=httpx.ASGITransport(app)) as client:
            ...
    """
    default_kwargs: dict[str, Any] = {
        "follow_redirects": True,
        "timeout": httpx.Timeout(DEFAULT_TIMEOUT),
    }
    default_kwargs.update(kwargs)
    return httpx.AsyncClient(**default_kwargs)
