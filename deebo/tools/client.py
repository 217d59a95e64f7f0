"""Stdio MCP client for one external tool server."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.types import Implementation

from .. import __version__
from .registry import ResolvedTool

logger = logging.getLogger(__name__)


class ToolConnectionError(Exception):
    """A tool server could not be launched or failed its handshake."""


@runtime_checkable
class ToolClient(Protocol):
    """What the agents need from a connected tool."""

    name: str

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        ...

    async def close(self) -> None:
        ...


class McpToolClient:
    """
    Connected MCP session over a child process's stdio.

    The transport and session contexts are owned by a background runner task
    so they are entered and exited in the same task, whichever task calls
    close().

    Usage:
        client = McpToolClient("mother", resolved_tool, log_dir)
        await client.connect()
        result = await client.call_tool("git_status", {"repo_path": repo})
        await client.close()
    """

    def __init__(
        self,
        agent_name: str,
        tool: ResolvedTool,
        log_dir: Path | None = None,
        handshake_timeout: float = 30.0,
    ):
        self.agent_name = agent_name
        self.tool = tool
        self.name = tool.name
        self.log_dir = Path(log_dir) if log_dir else None
        self.handshake_timeout = handshake_timeout
        self._session: ClientSession | None = None
        self._runner: asyncio.Task | None = None
        self._ready: asyncio.Future | None = None
        self._closing = asyncio.Event()

    @property
    def connected(self) -> bool:
        return self._session is not None

    def _server_parameters(self) -> StdioServerParameters:
        env = dict(os.environ)
        env.update(self.tool.env)
        return StdioServerParameters(
            command=self.tool.command,
            args=list(self.tool.args),
            env=env,
        )

    def _open_errlog(self):
        # Server stderr must never reach our own streams (scenario verdicts use them)
        if self.log_dir is None:
            return open(os.devnull, "w", encoding="utf-8")
        self.log_dir.mkdir(parents=True, exist_ok=True)
        return open(
            self.log_dir / f"mcp_{self.agent_name}_{self.name}_stderr.log",
            "a",
            encoding="utf-8",
        )

    async def _run(self) -> None:
        errlog = self._open_errlog()
        try:
            async with stdio_client(self._server_parameters(), errlog=errlog) as (read, write):
                async with ClientSession(
                    read,
                    write,
                    client_info=Implementation(name=self.agent_name, version=__version__),
                ) as session:
                    await session.initialize()
                    self._session = session
                    if not self._ready.done():
                        self._ready.set_result(None)
                    logger.info(f"[{self.agent_name}] Connected to tool '{self.name}'")
                    await self._closing.wait()
        except Exception as e:
            if not self._ready.done():
                self._ready.set_exception(e)
            else:
                logger.error(f"[{self.agent_name}] Tool '{self.name}' transport failed: {e}")
        finally:
            self._session = None
            errlog.close()

    async def connect(self) -> McpToolClient:
        """
        Launch the server and complete the MCP initialize handshake.

        Raises:
            ToolConnectionError: On launch failure, handshake failure or timeout
        """
        loop = asyncio.get_running_loop()
        self._ready = loop.create_future()
        self._runner = asyncio.create_task(self._run())

        logger.debug(
            f"[{self.agent_name}] Launching '{self.name}': "
            f"{self.tool.command} {' '.join(self.tool.args)}"
        )
        try:
            await asyncio.wait_for(asyncio.shield(self._ready), self.handshake_timeout)
        except asyncio.TimeoutError:
            await self.close()
            raise ToolConnectionError(
                f"Handshake with tool '{self.name}' timed out after "
                f"{self.handshake_timeout}s"
            ) from None
        except asyncio.CancelledError:
            await self.close()
            raise
        except Exception as e:
            await self.close()
            raise ToolConnectionError(
                f"Failed to connect to tool '{self.name}': {e}"
            ) from e
        return self

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Invoke a tool and return the CallToolResult as plain JSON data."""
        if self._session is None:
            raise ToolConnectionError(f"Tool '{self.name}' is not connected")
        result = await self._session.call_tool(tool_name, arguments)
        return result.model_dump(mode="json", exclude_none=True)

    async def close(self) -> None:
        """Shut down the session and the server process."""
        self._closing.set()
        runner, self._runner = self._runner, None
        if runner is None or runner.done():
            return
        try:
            await asyncio.wait_for(runner, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.agent_name}] Tool '{self.name}' did not shut down, cancelling")
            runner.cancel()
            try:
                await runner
            except asyncio.CancelledError:
                pass
