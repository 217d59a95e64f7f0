"""Agent lifecycle tracking and session cancellation."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Callable, Protocol

from .models import (
    AgentRecord,
    AgentStatus,
    AgentType,
    DebugParams,
    ScenarioVerdict,
    Session,
    SessionResponse,
    SessionStatus,
)
from .scenario import ScenarioProcess
from .session_manager import SessionManager

if TYPE_CHECKING:
    from ..tools.connection import ToolConnectionManager

logger = logging.getLogger(__name__)


class MotherRunner(Protocol):
    async def run(self) -> str:
        ...


MotherFactory = Callable[["AgentCoordinator", Session, DebugParams], MotherRunner]


class AgentCoordinator:
    """
    Tracks every agent spawned for every session.

    Owns the mother task, the scenario process handles and the per-session
    scenario ordinal. All bookkeeping happens on the event loop without
    awaits between allocation and registration.

    Usage:
        coordinator = AgentCoordinator(sessions, tool_manager, mother_factory)
        session = sessions.create(session_id)
        coordinator.spawn_mother(session, params)
        ...
        await coordinator.cancel_session(session_id)
    """

    def __init__(
        self,
        sessions: SessionManager,
        tools: ToolConnectionManager,
        mother_factory: MotherFactory,
        scenario_command: list[str] | None = None,
        scenario_env: dict[str, str] | None = None,
        terminate_grace: float = 2.0,
    ):
        self.sessions = sessions
        self.tools = tools
        self.mother_factory = mother_factory
        self.scenario_command = scenario_command
        self.scenario_env = scenario_env or {}
        self.terminate_grace = terminate_grace
        self._agents: dict[str, dict[str, AgentRecord]] = defaultdict(dict)
        self._ordinals: dict[str, int] = defaultdict(int)

    def _next_scenario_id(self, session_id: str) -> str:
        ordinal = self._ordinals[session_id]
        self._ordinals[session_id] = ordinal + 1
        return f"{session_id}-{ordinal}"

    def get_session_agents(self, session_id: str) -> list[AgentRecord]:
        return list(self._agents.get(session_id, {}).values())

    def get_mother(self, session_id: str) -> AgentRecord | None:
        for record in self.get_session_agents(session_id):
            if record.type is AgentType.MOTHER:
                return record
        return None

    # =========================================================================
    # Mother
    # =========================================================================

    def spawn_mother(self, session: Session, params: DebugParams) -> AgentRecord:
        """
        Start the mother agent for a session.

        Raises:
            ValueError: If the session already has a mother agent or has
                already finished
        """
        if self.get_mother(session.id) is not None:
            raise ValueError(f"Session {session.id} already has a mother agent")
        if session.status.is_terminal:
            raise ValueError(f"Session {session.id} is already {session.status.value}")

        record = AgentRecord(id=f"mother-{session.id}", type=AgentType.MOTHER, session_id=session.id)
        self._agents[session.id][record.id] = record
        session.transition(SessionStatus.RUNNING)
        record.handle = asyncio.create_task(
            self._run_mother(record, session, params),
            name=record.id,
        )
        logger.info(f"Spawned mother agent for session {session.id}")
        return record

    async def _run_mother(self, record: AgentRecord, session: Session, params: DebugParams) -> str | None:
        record.set_status(AgentStatus.RUNNING)
        try:
            mother = self.mother_factory(self, session, params)
            result = await mother.run()
        except asyncio.CancelledError:
            record.set_status(AgentStatus.CANCELLED)
            session.transition(SessionStatus.CANCELLED)
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"Mother agent for session {session.id} failed: {message}", exc_info=True)
            record.set_status(AgentStatus.ERROR)
            session.transition(SessionStatus.ERROR, error=message)
            return None
        else:
            record.set_status(AgentStatus.COMPLETE)
            session.transition(SessionStatus.COMPLETE, result=result)
            return result
        finally:
            await self._terminate_scenarios(session.id)
            await self.tools.release_session(session.id)

    # =========================================================================
    # Scenarios
    # =========================================================================

    async def spawn_scenario(self, session: Session, hypothesis: str, params: DebugParams) -> AgentRecord:
        """
        Start one scenario process for a hypothesis.

        The id is allocated before the first await, so identical hypotheses
        spawned concurrently still get distinct ids and distinct runs. A spawn
        failure yields an error record whose handle resolves to a failed
        verdict.
        """
        scenario_id = self._next_scenario_id(session.id)
        process = ScenarioProcess(
            scenario_id,
            session.id,
            hypothesis,
            params,
            command=self.scenario_command,
            env=self.scenario_env,
            terminate_grace=self.terminate_grace,
        )
        record = AgentRecord(
            id=scenario_id,
            type=AgentType.SCENARIO,
            session_id=session.id,
            hypothesis=hypothesis,
            handle=process,
        )
        self._agents[session.id][scenario_id] = record

        try:
            await process.start()
        except OSError as e:
            logger.error(f"Failed to spawn scenario {scenario_id}: {e}")
            record.handle = ScenarioProcess.failed(scenario_id, session.id, hypothesis, str(e))
            record.set_status(AgentStatus.ERROR)
            session.add_log(f"scenario {scenario_id} failed to spawn: {e}")
            return record

        # Cancellation may have arrived while the process was starting
        if session.status is SessionStatus.CANCELLED:
            await process.terminate()
        else:
            record.set_status(AgentStatus.RUNNING)
        session.add_log(f"scenario {scenario_id} spawned: {hypothesis[:80]}")
        return record

    async def await_scenarios(self, records: list[AgentRecord]) -> list[ScenarioVerdict]:
        """Join a round of scenarios. A failing scenario never raises out of the join."""
        outcomes = await asyncio.gather(
            *(record.handle.result() for record in records),
            return_exceptions=True,
        )

        verdicts = []
        for record, outcome in zip(records, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Scenario {record.id} result failed: {outcome}")
                outcome = ScenarioVerdict(id=record.id, success=False, error=str(outcome))
            record.set_status(AgentStatus.COMPLETE if outcome.success else AgentStatus.ERROR)
            verdicts.append(outcome)
        return verdicts

    async def _terminate_scenarios(self, session_id: str) -> None:
        live = [
            record.handle
            for record in self.get_session_agents(session_id)
            if record.type is AgentType.SCENARIO and record.handle is not None and record.handle.running
        ]
        if live:
            await asyncio.gather(*(process.terminate() for process in live), return_exceptions=True)

    # =========================================================================
    # Cancellation and cleanup
    # =========================================================================

    async def cancel_session(self, session_id: str) -> SessionResponse:
        """
        Cancel a session and everything running on its behalf.

        Idempotent: a session already in a terminal state is left untouched
        and its recorded status and result are returned.
        """
        session = self.sessions.get(session_id)
        if session is None:
            return SessionResponse(
                session_id=session_id,
                status=SessionStatus.ERROR,
                message="Session not found",
            )

        if session.status.is_terminal:
            return SessionResponse(
                session_id=session_id,
                status=session.status,
                message="Session already finished",
                result=session.final_result,
            )

        session.transition(SessionStatus.CANCELLED)
        records = self.get_session_agents(session_id)
        for record in records:
            record.set_status(AgentStatus.CANCELLED)

        await self._terminate_scenarios(session_id)

        mother = self.get_mother(session_id)
        if mother is not None and not mother.handle.done():
            mother.handle.cancel()
            done, _ = await asyncio.wait({mother.handle}, timeout=self.terminate_grace + 5)
            if not done:
                logger.warning(f"Mother agent for session {session_id} did not stop in time")

        await self.tools.release_session(session_id)
        logger.info(f"Cancelled session {session_id} ({len(records)} agent(s))")
        return SessionResponse(
            session_id=session_id,
            status=SessionStatus.CANCELLED,
            message="Debug session cancelled successfully",
        )

    async def cleanup_session(self, session_id: str) -> bool:
        """Destroy a session and its agent records, cancelling first if live."""
        session = self.sessions.get(session_id)
        if session is None:
            return False
        if not session.status.is_terminal:
            await self.cancel_session(session_id)
        self._agents.pop(session_id, None)
        self._ordinals.pop(session_id, None)
        self.sessions.remove(session_id)
        return True
