"""Connection pool that collapses concurrent connection attempts per key."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from .client import McpToolClient, ToolClient
from .registry import FILESYSTEM_TOOL, GIT_TOOL, ResolvedTool, ToolRegistry

logger = logging.getLogger(__name__)

Connector = Callable[[str, ResolvedTool], Awaitable[ToolClient]]


@dataclass(frozen=True)
class ConnectionKey:
    """Identity of a pooled connection."""

    agent_name: str
    tool_name: str
    session_id: str


class ToolConnectionManager:
    """
    Pool of tool connections keyed by (agent, tool, session).

    The first caller for a key creates a connection task and stores it before
    yielding to the event loop; every later caller for the same key awaits the
    same task. A failed attempt evicts its key so the next call retries.

    Usage:
        manager = ToolConnectionManager(registry, memory_root)
        git, fs = await manager.connect_required_tools("mother", session_id, repo)
        ...
        await manager.release_session(session_id)
    """

    def __init__(
        self,
        registry: ToolRegistry,
        memory_root: Path,
        connector: Connector | None = None,
        log_dir: Path | None = None,
        handshake_timeout: float = 30.0,
    ):
        self.registry = registry
        self.memory_root = Path(memory_root)
        self.log_dir = log_dir
        self.handshake_timeout = handshake_timeout
        self._connector = connector or self._connect_mcp
        self._connections: dict[ConnectionKey, asyncio.Task] = {}

    async def _connect_mcp(self, agent_name: str, tool: ResolvedTool) -> ToolClient:
        client = McpToolClient(
            agent_name,
            tool,
            log_dir=self.log_dir,
            handshake_timeout=self.handshake_timeout,
        )
        return await client.connect()

    def _evict_on_failure(self, key: ConnectionKey, task: asyncio.Task) -> None:
        failed = task.cancelled() or task.exception() is not None
        if failed and self._connections.get(key) is task:
            del self._connections[key]
            logger.debug(f"Evicted failed connection {key}")

    def pending_count(self) -> int:
        return len(self._connections)

    async def acquire(
        self,
        agent_name: str,
        tool_name: str,
        session_id: str,
        repo_path: str,
    ) -> ToolClient:
        """
        Get the connection for a key, creating it at most once.

        Args:
            agent_name: Name the client announces to the server
            tool_name: Registered tool name or alias
            session_id: Owning session
            repo_path: Repository substituted into the launch command

        Returns:
            Connected tool client shared by all callers with the same key

        Raises:
            ToolConfigurationError: If the tool cannot be resolved
            ToolConnectionError: If the connection attempt fails
        """
        canonical = self.registry.canonical_name(tool_name) or tool_name
        key = ConnectionKey(agent_name, canonical, session_id)

        task = self._connections.get(key)
        if task is None:
            # Resolution may raise; nothing is stored in that case
            tool = self.registry.resolve(canonical, repo_path, self.memory_root)
            task = asyncio.ensure_future(self._connector(agent_name, tool))
            self._connections[key] = task
            task.add_done_callback(lambda t, k=key: self._evict_on_failure(k, t))
            logger.info(f"Connecting {agent_name} to {canonical} for session {session_id}")

        # A cancelled caller must not cancel the shared attempt
        return await asyncio.shield(task)

    async def connect_required_tools(
        self,
        agent_name: str,
        session_id: str,
        repo_path: str,
    ) -> tuple[ToolClient, ToolClient]:
        """Connect the version-control and filesystem tools concurrently."""
        git_client, fs_client = await asyncio.gather(
            self.acquire(agent_name, GIT_TOOL, session_id, repo_path),
            self.acquire(agent_name, FILESYSTEM_TOOL, session_id, repo_path),
        )
        return git_client, fs_client

    async def release_session(self, session_id: str) -> None:
        """Close and evict every connection opened for a session."""
        keys = [key for key in self._connections if key.session_id == session_id]
        tasks = [self._connections.pop(key) for key in keys]

        for key, task in zip(keys, tasks):
            if not task.done():
                task.cancel()
                continue
            if task.cancelled() or task.exception() is not None:
                continue
            try:
                await task.result().close()
            except Exception as e:
                logger.warning(f"Error closing connection {key}: {e}")

        if keys:
            logger.info(f"Released {len(keys)} tool connection(s) for session {session_id}")

    async def close_all(self) -> None:
        for session_id in {key.session_id for key in self._connections}:
            await self.release_session(session_id)
