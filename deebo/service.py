"""Session-control operations: start, check, cancel."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import TYPE_CHECKING

from .orchestration.models import AgentType, DebugParams, SessionResponse, SessionStatus

if TYPE_CHECKING:
    from .audit import AuditLogger
    from .config.loader import ProfileConfig
    from .orchestration.coordinator import AgentCoordinator

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return f"session-{int(time.time())}-{uuid.uuid4().hex[:6]}"


class DebugService:
    """
    Externally visible debugging sessions.

    Every operation returns a SessionResponse envelope; failures are
    reported through the envelope, never raised.

    Usage:
        async with create_service(profile) as service:
            started = await service.start_session(params)
            final = await service.wait_for_session(started.session_id)
    """

    def __init__(
        self,
        profile: ProfileConfig,
        coordinator: AgentCoordinator,
        audit: AuditLogger | None = None,
    ):
        self.profile = profile
        self.coordinator = coordinator
        self.sessions = coordinator.sessions
        self.audit = audit

    async def __aenter__(self) -> DebugService:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def start_session(self, params: DebugParams) -> SessionResponse:
        """Create a session and start its mother agent in the background."""
        session_id = new_session_id()
        session = self.sessions.create(session_id)
        try:
            self.coordinator.spawn_mother(session, params)
        except Exception as e:
            logger.error(f"Failed to start session {session_id}: {e}", exc_info=True)
            session.transition(SessionStatus.ERROR, error=str(e))
            return SessionResponse(
                session_id=session_id,
                status=SessionStatus.ERROR,
                message=f"Failed to start debug session: {e}",
            )

        logger.info(f"Started debug session {session_id} for {params.repo_path}")
        return SessionResponse(
            session_id=session_id,
            status=session.status,
            message="Debug session started",
        )

    def check_status(self, session_id: str) -> SessionResponse:
        session = self.sessions.get(session_id)
        if session is None:
            return SessionResponse(
                session_id=session_id,
                status=SessionStatus.ERROR,
                message="Session not found",
            )

        agents = self.coordinator.get_session_agents(session_id)
        scenarios = [a for a in agents if a.type is AgentType.SCENARIO]
        running = sum(1 for a in scenarios if not a.status.is_terminal)

        if session.status is SessionStatus.ERROR:
            message = f"Debug session failed: {session.error}"
        elif session.status is SessionStatus.COMPLETE:
            message = "Debug session complete"
        elif session.status is SessionStatus.CANCELLED:
            message = "Debug session cancelled"
        else:
            message = (
                f"Debug session {session.status.value}: "
                f"{len(scenarios)} scenario(s) spawned, {running} running"
            )

        return SessionResponse(
            session_id=session_id,
            status=session.status,
            message=message,
            result=session.final_result if session.status is SessionStatus.COMPLETE else None,
        )

    async def cancel_session(self, session_id: str) -> SessionResponse:
        return await self.coordinator.cancel_session(session_id)

    async def wait_for_session(self, session_id: str, timeout: float | None = None) -> SessionResponse:
        """Wait until the session's mother agent finishes, then report status."""
        mother = self.coordinator.get_mother(session_id)
        if mother is not None and not mother.handle.done():
            await asyncio.wait({mother.handle}, timeout=timeout)
        return self.check_status(session_id)

    async def cleanup_session(self, session_id: str) -> bool:
        return await self.coordinator.cleanup_session(session_id)

    async def close(self) -> None:
        """Cancel live sessions and release every tool connection."""
        for session in self.sessions.list():
            if not session.status.is_terminal:
                await self.coordinator.cancel_session(session.id)
        await self.coordinator.tools.close_all()
