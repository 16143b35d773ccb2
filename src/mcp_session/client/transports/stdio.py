import logging
import os
import sys
from pathlib import Path
from typing import Literal, TextIO

import anyio
import anyio.lowlevel
from anyio.abc import Process, TaskGroup
from anyio.streams.text import TextReceiveStream
from pydantic import BaseModel, Field

from mcp_session.client.transports.base import InboundStream, Transport
from mcp_session.shared.exceptions import ConnectError, SendError
from mcp_session.shared.message import MessageMetadata, SessionMessage
from mcp_session.types import JSONRPCMessageAdapter

logger = logging.getLogger(__name__)

# Environment variables to inherit by default
DEFAULT_INHERITED_ENV_VARS = (
    [
        "APPDATA",
        "HOMEDRIVE",
        "HOMEPATH",
        "LOCALAPPDATA",
        "PATH",
        "PATHEXT",
        "SYSTEMROOT",
        "TEMP",
        "USERNAME",
        "USERPROFILE",
    ]
    if sys.platform == "win32"
    else ["HOME", "LOGNAME", "PATH", "SHELL", "TERM", "USER"]
)

# Timeout for process termination before falling back to force kill
PROCESS_TERMINATION_TIMEOUT = 2.0


def get_default_environment() -> dict[str, str]:
    """Returns the subset of the current environment deemed safe to inherit."""
    env: dict[str, str] = {}

    for key in DEFAULT_INHERITED_ENV_VARS:
        value = os.environ.get(key)
        if value is None:
            continue
        if value.startswith("()"):
            # Skip functions, which are a security risk
            continue
        env[key] = value

    return env


class StdioServerParameters(BaseModel):
    command: str
    """The executable to run to start the server."""

    args: list[str] = Field(default_factory=list)
    """Command line arguments to pass to the executable."""

    env: dict[str, str] | None = None
    """
    Extra environment for the spawned process, layered over
    get_default_environment().
    """

    cwd: str | Path | None = None
    """The working directory to use when spawning the process."""

    encoding: str = "utf-8"
    """The text encoding used on the pipes."""

    encoding_error_handler: Literal["strict", "ignore", "replace"] = "strict"


class StdioTransport(Transport):
    """Client transport that spawns the server and talks newline-delimited JSON over its pipes.

    A pipe carries exactly one session, so the transport stamps every inbound
    message with a session id scoped to the process. The process exiting ends
    the inbound stream.
    """

    def __init__(self, server: StdioServerParameters, errlog: TextIO = sys.stderr) -> None:
        super().__init__()
        self.server = server
        self.errlog = errlog
        self._process: Process | None = None
        self._session_id: str | None = None

    @property
    def process(self) -> Process | None:
        return self._process

    async def open(self, task_group: TaskGroup) -> InboundStream:
        inbound = self._create_inbound()
        env = {**get_default_environment(), **(self.server.env or {})}
        try:
            with anyio.fail_after(self.connect_timeout):
                self._process = await anyio.open_process(
                    [self.server.command, *self.server.args],
                    env=env,
                    stderr=self.errlog,
                    cwd=self.server.cwd,
                    start_new_session=True,
                )
        except (OSError, TimeoutError) as exc:
            await super().close()
            raise ConnectError(f"Failed to start {self.server.command}: {exc}") from exc

        self._session_id = f"stdio-{self._process.pid}"
        logger.debug(f"Started stdio server {self.server.command} (pid {self._process.pid})")
        task_group.start_soon(self._stdout_reader, self._process)
        return inbound

    async def _stdout_reader(self, process: Process) -> None:
        assert process.stdout, "Opened process is missing stdout"
        metadata = MessageMetadata(session_id=self._session_id)
        writer = self._inbound_writer

        try:
            buffer = ""
            async for chunk in TextReceiveStream(
                process.stdout,
                encoding=self.server.encoding,
                errors=self.server.encoding_error_handler,
            ):
                lines = (buffer + chunk).split("\n")
                buffer = lines.pop()

                for line in lines:
                    if not line.strip():
                        continue
                    try:
                        message = JSONRPCMessageAdapter.validate_json(line)
                    except ValueError as exc:
                        logger.exception("Failed to parse JSONRPC message from server")
                        await self._deliver(exc)
                        continue
                    await self._deliver(SessionMessage(message, metadata))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            await anyio.lowlevel.checkpoint()
        except UnicodeDecodeError:
            # Framing is lost once the byte stream is not valid text; treat it as transport death.
            logger.exception(f"stdio server {self.server.command} wrote undecodable output")
        finally:
            logger.debug("stdio server closed its stdout")
            if writer is not None:
                writer.close()

    async def send(self, message: SessionMessage) -> None:
        process = self._process
        if not self.is_open or process is None or process.stdin is None:
            raise SendError("Transport is not open")

        line = message.message.model_dump_json(by_alias=True, exclude_none=True) + "\n"
        try:
            await process.stdin.send(line.encode(self.server.encoding, errors=self.server.encoding_error_handler))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError, OSError) as exc:
            raise SendError(f"Failed to write to {self.server.command}: {exc}") from exc

    async def close(self) -> None:
        if self._closed:
            return
        await super().close()
        process, self._process = self._process, None
        if process is None:
            return

        # Close stdin, give the server a moment to exit, then escalate.
        if process.stdin:
            try:
                await process.stdin.aclose()
            except (anyio.ClosedResourceError, anyio.BrokenResourceError, OSError):
                pass

        try:
            with anyio.fail_after(PROCESS_TERMINATION_TIMEOUT):
                await process.wait()
        except TimeoutError:
            await _terminate_process(process)
        except ProcessLookupError:
            pass
        logger.debug(f"stdio server {self.server.command} exited with {process.returncode}")


async def _terminate_process(process: Process) -> None:
    try:
        process.terminate()
        with anyio.fail_after(PROCESS_TERMINATION_TIMEOUT):
            await process.wait()
    except ProcessLookupError:
        return
    except TimeoutError:
        logger.warning(f"Process {process.pid} ignored SIGTERM; killing it")
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()
