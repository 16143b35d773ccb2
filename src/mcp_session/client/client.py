"""High-level MCP client: one session at a time over a pluggable transport."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import TracebackType
from typing import TYPE_CHECKING, Any

import anyio
from anyio.abc import TaskGroup
from pydantic import ValidationError

from mcp_session.client.channel import NotificationHandler, RpcChannel
from mcp_session.client.session import (
    DEFAULT_SHUTDOWN_TIMEOUT,
    SessionManager,
    SessionState,
)
from mcp_session.client.transports import (
    HttpPostTransport,
    InMemoryTransport,
    StdioServerParameters,
    StdioTransport,
    StreamableHTTPTransport,
    Transport,
)
from mcp_session.server.server import ToolServer
from mcp_session.shared.exceptions import (
    CatalogFetchError,
    ConnectError,
    ConnectionLostError,
    McpError,
    SessionNotActiveError,
)
from mcp_session.types import (
    LATEST_PROTOCOL_VERSION,
    SESSION_EXPIRED,
    CallToolRequestParams,
    CallToolResult,
    Implementation,
    InitializeResult,
    JSONRPCErrorResponse,
    ListToolsResult,
    Tool,
)

if TYPE_CHECKING:
    from mcp_session.config import ClientSettings

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_HEALTH_TIMEOUT = 5.0
DEFAULT_RECONNECT_DELAY = 1.0

# Type alias for all accepted target types
ClientTarget = ToolServer | Transport | str


def _infer_transport(target: ClientTarget) -> Transport:
    """Infer the appropriate transport from the target type.

    - ToolServer instance: InMemoryTransport
    - Transport instance: used directly
    - str (URL): StreamableHTTPTransport
    """
    if isinstance(target, Transport):
        return target
    if isinstance(target, ToolServer):
        return InMemoryTransport(target)
    return StreamableHTTPTransport(target)


@dataclass
class _Connection:
    """Everything owned by one connect() call. Dropped wholesale on disconnect."""

    transport: Transport
    channel: RpcChannel
    session: SessionManager
    scope: anyio.CancelScope


class McpClient:
    """A client holding at most one MCP session.

    The client is an async context manager: entering it starts the task group
    that hosts each connection's receive loop, leaving it disconnects.

    Examples:
        ```python
        async with McpClient("http://localhost:4000/mcp") as client:
            await client.connect()
            for tool in client.list_tools():
                print(tool.name)
            result = await client.call_tool("list_clusters")
            print(result.text)

        # In-memory, for tests
        async with McpClient(create_mock_server()) as client:
            await client.connect()
        ```

    ``call_tool`` reports failures as ``CallToolResult(isError=True)``;
    it raises only when no session is active or the connection dies while
    the call is pending.
    """

    def __init__(
        self,
        target: ClientTarget,
        *,
        client_info: Implementation | None = None,
        protocol_version: str = LATEST_PROTOCOL_VERSION,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        health_timeout: float = DEFAULT_HEALTH_TIMEOUT,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        notification_handler: NotificationHandler | None = None,
        validate_arguments: bool = True,
    ) -> None:
        """
        Args:
            target: Where to connect. A URL string uses StreamableHTTP; a
                ToolServer is served in-process; any Transport is used as is.
            client_info: Name and version sent in the handshake.
            protocol_version: Version requested in the handshake.
            connect_timeout: Bound on opening the transport and on the handshake.
            request_timeout: Default deadline for each tool call and catalog fetch.
            shutdown_timeout: Bound on the shutdown request during disconnect.
            health_timeout: Deadline for health_check().
            reconnect_delay: Pause between disconnect and connect in reconnect().
            notification_handler: Receives server push notifications.
            validate_arguments: Check required arguments of catalogued tools
                locally before sending a call.
        """
        self._transport = _infer_transport(target)
        self._client_info = client_info
        self._protocol_version = protocol_version
        self.connect_timeout = connect_timeout
        self.request_timeout = request_timeout
        self.shutdown_timeout = shutdown_timeout
        self.health_timeout = health_timeout
        self.reconnect_delay = reconnect_delay
        self._notification_handler = notification_handler
        self._validate_arguments = validate_arguments

        self._task_group: TaskGroup | None = None
        self._lock = anyio.Lock()
        self._connection: _Connection | None = None
        self._session: SessionManager | None = None
        self._tools: tuple[Tool, ...] = ()
        self._catalog_error: CatalogFetchError | None = None

    @classmethod
    def from_settings(cls, settings: ClientSettings, **kwargs: Any) -> McpClient:
        """Build a client and its transport from ClientSettings."""
        headers = {"Authorization": f"Bearer {settings.token}"} if settings.token else None
        transport: Transport
        match settings.transport:
            case "stdio":
                if not settings.stdio_command:
                    raise ValueError("stdio transport requires stdio_command")
                transport = StdioTransport(
                    StdioServerParameters(command=settings.stdio_command, args=settings.stdio_args)
                )
            case "http":
                transport = HttpPostTransport(
                    settings.server_url,
                    headers=headers,
                    timeout=settings.request_timeout,
                    connect_timeout=settings.connect_timeout,
                )
            case _:
                transport = StreamableHTTPTransport(
                    settings.server_url,
                    headers=headers,
                    timeout=settings.request_timeout,
                    connect_timeout=settings.connect_timeout,
                )
        transport.connect_timeout = settings.connect_timeout

        options: dict[str, Any] = {
            "client_info": Implementation(name=settings.client_name, version=settings.client_version),
            "protocol_version": settings.protocol_version,
            "connect_timeout": settings.connect_timeout,
            "request_timeout": settings.request_timeout,
            "shutdown_timeout": settings.shutdown_timeout,
            "health_timeout": settings.health_timeout,
            "reconnect_delay": settings.reconnect_delay,
        }
        options.update(kwargs)
        return cls(transport, **options)

    async def __aenter__(self) -> McpClient:
        if self._task_group is not None:
            raise RuntimeError("McpClient is already entered; cannot reenter")
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        self._task_group = task_group
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        try:
            with anyio.CancelScope(shield=True):
                await self.disconnect()
        finally:
            task_group, self._task_group = self._task_group, None
            if task_group is not None:
                task_group.cancel_scope.cancel()
                # The body's exception propagates on its own; handing it to the
                # task group would re-raise it wrapped in an ExceptionGroup.
                await task_group.__aexit__(None, None, None)
        return None

    # --- Status ---

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def connected(self) -> bool:
        return self._connection is not None and self._connection.session.is_active

    @property
    def state(self) -> SessionState:
        return self._session.state if self._session is not None else SessionState.UNINITIALIZED

    @property
    def session_id(self) -> str | None:
        return self._connection.session.session_id if self._connection is not None else None

    @property
    def initialize_result(self) -> InitializeResult | None:
        return self._connection.session.initialize_result if self._connection is not None else None

    @property
    def server_info(self) -> Implementation | None:
        result = self.initialize_result
        return result.server_info if result is not None else None

    @property
    def catalog_error(self) -> CatalogFetchError | None:
        """Why the catalog is empty after a degraded connect, if it is."""
        return self._catalog_error

    # --- Lifecycle ---

    async def connect(self) -> None:
        """Open the transport, perform the handshake and load the tool catalog.

        A no-op when a session is already active. Raises ConnectError (or its
        SessionInitError subclass) with all local state released. A failed
        catalog fetch does not fail the connect; see ``catalog_error``.
        """
        if self._task_group is None:
            raise RuntimeError("McpClient must be used within an async context manager")

        async with self._lock:
            if self.connected:
                logger.debug("connect() called while a session is active; ignoring")
                return
            if self._connection is not None:
                # A lost connection still holds resources
                await self._teardown(self._connection)

            logger.info("Connecting to MCP server...")
            conn = await self._open_connection(self._task_group)
            self._connection = conn
            self._session = conn.session
            await self._load_catalog(conn.session)
            logger.info(f"Connected to MCP server with {len(self._tools)} tool(s)")

    async def _open_connection(self, task_group: TaskGroup) -> _Connection:
        transport = self._transport
        try:
            with anyio.fail_after(self.connect_timeout):
                inbound = await transport.open(task_group)
        except TimeoutError as exc:
            await transport.close()
            raise ConnectError(f"Timed out opening transport after {self.connect_timeout}s") from exc
        except ConnectError:
            await transport.close()
            raise

        session: SessionManager | None = None

        def on_lost(reason: str) -> None:
            if session is not None:
                session.mark_lost(reason)

        channel = RpcChannel(
            transport,
            inbound,
            notification_handler=self._notification_handler,
            on_lost=on_lost,
        )
        session = SessionManager(
            channel,
            client_info=self._client_info,
            protocol_version=self._protocol_version,
            init_timeout=self.connect_timeout,
            shutdown_timeout=self.shutdown_timeout,
        )
        scope = anyio.CancelScope()
        task_group.start_soon(self._run_channel, channel, scope)

        try:
            await session.initialize()
        except BaseException:
            self._session = session
            channel.close()
            with anyio.CancelScope(shield=True):
                await transport.close()
            scope.cancel()
            raise
        return _Connection(transport=transport, channel=channel, session=session, scope=scope)

    @staticmethod
    async def _run_channel(channel: RpcChannel, scope: anyio.CancelScope) -> None:
        with scope:
            await channel.run()

    async def disconnect(self) -> None:
        """Shut the session down and release the transport.

        Idempotent and never raises; remote failures are logged.
        """
        async with self._lock:
            conn, self._connection = self._connection, None
            self._tools = ()
            self._catalog_error = None
            if conn is None:
                return
            await self._teardown(conn)
            logger.info("Disconnected from MCP server")

    async def _teardown(self, conn: _Connection) -> None:
        if self._connection is conn:
            self._connection = None
        try:
            conn.channel.close()
            await conn.session.shutdown()
            await conn.transport.close()
        except Exception as exc:
            logger.warning(f"Error while disconnecting: {exc}")
        finally:
            conn.scope.cancel()

    async def reconnect(
        self,
        attempts: int = 1,
        *,
        backoff_factor: float = 2.0,
        max_delay: float = 30.0,
    ) -> None:
        """Disconnect, wait, connect again.

        Retries up to ``attempts`` times, multiplying the delay by
        ``backoff_factor`` (capped at ``max_delay``) between attempts. The
        last ConnectError propagates and leaves the client disconnected.
        """
        if attempts < 1:
            raise ValueError("attempts must be at least 1")

        logger.info("Attempting to reconnect to MCP server...")
        try:
            await self.disconnect()
        except Exception as exc:
            logger.debug(f"Ignoring error from disconnect during reconnect: {exc}")

        delay = self.reconnect_delay
        last_error: ConnectError | None = None
        for attempt in range(1, attempts + 1):
            await anyio.sleep(delay)
            try:
                await self.connect()
                return
            except ConnectError as exc:
                last_error = exc
                logger.warning(f"Reconnect attempt {attempt}/{attempts} failed: {exc}")
                delay = min(delay * backoff_factor, max_delay)

        assert last_error is not None
        raise last_error

    # --- Catalog ---

    async def _fetch_tools(self, session: SessionManager) -> list[Tool]:
        tools: list[Tool] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"cursor": cursor} if cursor else {}
            try:
                response = await session.send_request("tools/list", params, timeout=self.request_timeout)
            except McpError as exc:
                raise CatalogFetchError(exc.error) from exc

            message = response.message
            if isinstance(message, JSONRPCErrorResponse):
                self._check_session_expired(session, message)
                raise CatalogFetchError(message.error)
            try:
                result = ListToolsResult.model_validate(message.result)  # type: ignore[union-attr]
            except ValidationError as exc:
                raise CatalogFetchError.from_message(f"Malformed tools/list result: {exc}") from exc

            tools.extend(result.tools)
            if not result.next_cursor:
                return tools
            cursor = result.next_cursor

    async def _load_catalog(self, session: SessionManager) -> None:
        try:
            self._tools = tuple(await self._fetch_tools(session))
            self._catalog_error = None
        except CatalogFetchError as exc:
            logger.warning(f"Connected, but failed to fetch the tool catalog: {exc}")
            self._tools = ()
            self._catalog_error = exc

    def list_tools(self) -> tuple[Tool, ...]:
        """The catalog cached at connect time. Never goes to the network."""
        return self._tools

    @property
    def tools(self) -> tuple[Tool, ...]:
        return self._tools

    def get_tool(self, name: str) -> Tool | None:
        return next((tool for tool in self._tools if tool.name == name), None)

    async def refresh_tools(self) -> tuple[Tool, ...]:
        """Refetch the catalog. On failure the previous catalog is kept and CatalogFetchError raised."""
        session = self._require_session()
        self._tools = tuple(await self._fetch_tools(session))
        self._catalog_error = None
        return self._tools

    # --- Calls ---

    def _require_session(self) -> SessionManager:
        if self._connection is None or not self._connection.session.is_active:
            raise SessionNotActiveError()
        return self._connection.session

    def _check_session_expired(self, session: SessionManager, message: JSONRPCErrorResponse) -> None:
        if message.error.code == SESSION_EXPIRED:
            session.mark_lost("Session expired on the server")

    @staticmethod
    def _call_error(name: str, reason: str) -> CallToolResult:
        return CallToolResult.error(f"Error calling tool {name}: {reason}")

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> CallToolResult:
        """Invoke a tool.

        Returns the server's result as is, including ``isError`` results
        produced by the tool. Protocol failures (timeout, error reply,
        malformed result, send failure) come back as an error result
        ``Error calling tool <name>: <reason>``.

        Raises:
            SessionNotActiveError: No active session; nothing was sent.
            ConnectionLostError: The transport died while the call was pending.
        """
        session = self._require_session()
        arguments = dict(arguments or {})

        if self._validate_arguments:
            tool = self.get_tool(name)
            if tool is not None:
                missing = tool.missing_arguments(arguments)
                if missing:
                    return self._call_error(name, f"Missing required argument(s): {', '.join(missing)}")

        try:
            params = CallToolRequestParams(name=name, arguments=arguments).dump()
        except ValueError as exc:
            # ValidationError and PydanticSerializationError are both ValueErrors
            return self._call_error(name, f"Arguments are not JSON-serializable: {exc}")

        logger.debug(f"Calling tool {name}")
        try:
            response = await session.send_request(
                "tools/call",
                params,
                timeout=timeout if timeout is not None else self.request_timeout,
            )
        except (ConnectionLostError, SessionNotActiveError):
            raise
        except McpError as exc:
            return self._call_error(name, exc.error.message)

        message = response.message
        if isinstance(message, JSONRPCErrorResponse):
            self._check_session_expired(session, message)
            return self._call_error(name, message.error.message)
        try:
            return CallToolResult.model_validate(message.result)  # type: ignore[union-attr]
        except ValidationError as exc:
            return self._call_error(name, f"Malformed result: {exc}")

    async def health_check(self) -> bool:
        """Round-trip a tools/list. False on any failure; never raises."""
        conn = self._connection
        if conn is None or not conn.session.is_active:
            return False
        try:
            response = await conn.session.send_request("tools/list", {}, timeout=self.health_timeout)
        except McpError as exc:
            logger.debug(f"Health check failed: {exc}")
            return False
        if isinstance(response.message, JSONRPCErrorResponse):
            self._check_session_expired(conn.session, response.message)
            logger.debug(f"Health check failed: {response.message.error.message}")
            return False
        return True

