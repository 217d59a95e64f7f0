"""
Coordinator Tests

Tests for session lifecycle, scenario id allocation and cancellation.
"""

import asyncio
import sys
from pathlib import Path

from deebo.config.loader import ToolSpecConfig
from deebo.orchestration.coordinator import AgentCoordinator
from deebo.orchestration.models import AgentStatus, AgentType, DebugParams, SessionStatus
from deebo.orchestration.session_manager import SessionManager
from deebo.tools.connection import ToolConnectionManager
from deebo.tools.registry import ToolRegistry

PARAMS = DebugParams(error="TypeError: x is undefined", repo_path="/repo")

SLEEP_SCENARIO = [sys.executable, "-c", "import time; time.sleep(60)"]
ECHO_SCENARIO = [
    sys.executable,
    "-c",
    "import json, sys; a = sys.argv[1:]; print(json.dumps({'success': True, 'id': a[a.index('--id') + 1]}))",
]


class FakeClient:
    name = "fake"

    async def call_tool(self, tool_name, arguments):
        return {"content": []}

    async def close(self):
        pass


async def fake_connector(agent_name, tool):
    return FakeClient()


def make_tools() -> ToolConnectionManager:
    registry = ToolRegistry.from_config({
        "git-mcp": ToolSpecConfig(command="{pythonPath}"),
        "desktop-commander": ToolSpecConfig(command="{pythonPath}"),
    })
    return ToolConnectionManager(registry, Path("/tmp/deebo-test/memory-bank"), connector=fake_connector)


class RoundMother:
    """Spawns a fixed set of hypotheses once, then answers with a solution."""

    def __init__(self, coordinator, session, params, hypotheses):
        self.coordinator = coordinator
        self.session = session
        self.params = params
        self.hypotheses = hypotheses

    async def run(self) -> str:
        await self.coordinator.tools.connect_required_tools("mother", self.session.id, self.params.repo_path)
        records = await asyncio.gather(*(
            self.coordinator.spawn_scenario(self.session, h, self.params) for h in self.hypotheses
        ))
        verdicts = await self.coordinator.await_scenarios(records)
        return f"<solution>{len(verdicts)} scenario(s) ran</solution>"


def make_coordinator(hypotheses, scenario_command) -> AgentCoordinator:
    return AgentCoordinator(
        SessionManager(),
        make_tools(),
        lambda coordinator, session, params: RoundMother(coordinator, session, params, hypotheses),
        scenario_command=scenario_command,
        terminate_grace=1.0,
    )


async def wait_until(predicate, timeout: float = 10.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.05)


def test_session_manager():
    """Test create/get/remove without implicit creation."""
    print("=" * 60)
    print("TEST 1: SessionManager")
    print("=" * 60)

    sessions = SessionManager()
    session = sessions.create("session-1")
    assert sessions.get("session-1") is session
    assert sessions.get("session-2") is None
    assert sessions.list() == [session]

    try:
        sessions.create("session-1")
    except ValueError as e:
        print(f"\nDuplicate rejected: {e}")
    else:
        raise AssertionError("Duplicate session id should raise")

    assert session.transition(SessionStatus.RUNNING)
    assert session.transition(SessionStatus.ERROR, error="boom")
    assert not session.transition(SessionStatus.RUNNING)
    assert session.status is SessionStatus.ERROR
    assert sessions.remove("session-1") is session
    print("[PASS] Sessions are one-directional and explicit")


def test_unique_scenario_ids():
    """Test identical hypotheses in one round get distinct ids and runs."""
    print("\n" + "=" * 60)
    print("TEST 2: Unique scenario ids")
    print("=" * 60)

    coordinator = make_coordinator(["A", "A"], ECHO_SCENARIO)

    async def run():
        session = coordinator.sessions.create("s")
        coordinator.spawn_mother(session, PARAMS)
        await coordinator.get_mother("s").handle
        return session

    session = asyncio.run(run())
    scenarios = [a for a in coordinator.get_session_agents("s") if a.type is AgentType.SCENARIO]
    print(f"\nScenario ids: {[a.id for a in scenarios]}")
    assert [a.id for a in scenarios] == ["s-0", "s-1"]
    assert all(a.hypothesis == "A" for a in scenarios)
    assert all(a.status is AgentStatus.COMPLETE for a in scenarios)
    assert session.status is SessionStatus.COMPLETE
    assert session.final_result == "<solution>2 scenario(s) ran</solution>"
    print("[PASS] Two runs for two identical hypotheses")


def test_cancel_mid_flight():
    """Test cancelling a session with two running scenarios."""
    print("\n" + "=" * 60)
    print("TEST 3: Cancel mid-flight")
    print("=" * 60)

    coordinator = make_coordinator(["slow one", "slow two"], SLEEP_SCENARIO)

    async def run():
        session = coordinator.sessions.create("s")
        coordinator.spawn_mother(session, PARAMS)

        def two_running():
            return sum(
                1 for a in coordinator.get_session_agents("s")
                if a.type is AgentType.SCENARIO and a.status is AgentStatus.RUNNING
            ) == 2

        await wait_until(two_running)
        processes = [a.handle for a in coordinator.get_session_agents("s") if a.type is AgentType.SCENARIO]

        first = await coordinator.cancel_session("s")
        second = await coordinator.cancel_session("s")
        return session, processes, first, second

    session, processes, first, second = asyncio.run(run())
    print(f"\nFirst cancel: {first.status.value} - {first.message}")
    print(f"Second cancel: {second.status.value} - {second.message}")

    assert session.status is SessionStatus.CANCELLED
    records = coordinator.get_session_agents("s")
    assert all(a.status is AgentStatus.CANCELLED for a in records), [a.status for a in records]
    assert not any(p.running for p in processes)
    assert first.status is SessionStatus.CANCELLED and first.result is None
    assert second.status is first.status and second.result == first.result
    assert second.message == "Session already finished"
    assert coordinator.tools.pending_count() == 0
    print("[PASS] Session and both scenarios cancelled; second cancel is a no-op")


def test_cancel_finished_session():
    """Test cancel on a completed session returns the recorded result."""
    print("\n" + "=" * 60)
    print("TEST 4: Cancel after completion")
    print("=" * 60)

    coordinator = make_coordinator([], ECHO_SCENARIO)

    async def run():
        session = coordinator.sessions.create("s")
        coordinator.spawn_mother(session, PARAMS)
        await coordinator.get_mother("s").handle
        return await coordinator.cancel_session("s"), await coordinator.cancel_session("s")

    first, second = asyncio.run(run())
    print(f"\nCancel: {first.status.value} result={first.result}")
    assert first.status is SessionStatus.COMPLETE
    assert first.result == "<solution>0 scenario(s) ran</solution>"
    assert (second.status, second.result) == (first.status, first.result)

    missing = asyncio.run(coordinator.cancel_session("nope"))
    assert missing.status is SessionStatus.ERROR and missing.result is None
    print("[PASS] Cancel is idempotent and reports unknown sessions")


def test_cleanup_session():
    """Test explicit cleanup removes the session and its records."""
    print("\n" + "=" * 60)
    print("TEST 5: Cleanup")
    print("=" * 60)

    coordinator = make_coordinator(["slow"], SLEEP_SCENARIO)

    async def run():
        session = coordinator.sessions.create("s")
        coordinator.spawn_mother(session, PARAMS)
        await wait_until(lambda: any(
            a.type is AgentType.SCENARIO and a.status is AgentStatus.RUNNING
            for a in coordinator.get_session_agents("s")
        ))
        return await coordinator.cleanup_session("s")

    assert asyncio.run(run()) is True
    assert coordinator.sessions.get("s") is None
    assert coordinator.get_session_agents("s") == []
    print("[PASS] Session destroyed after cancellation")


def test_spawn_mother_on_finished_session():
    """Test a finished session cannot get a new mother agent."""
    print("\n" + "=" * 60)
    print("TEST 6: Spawn on a finished session")
    print("=" * 60)

    coordinator = make_coordinator([], ECHO_SCENARIO)

    async def run():
        session = coordinator.sessions.create("s")
        session.transition(SessionStatus.CANCELLED)
        try:
            coordinator.spawn_mother(session, PARAMS)
        except ValueError as e:
            print(f"\nRejected: {e}")
        else:
            raise AssertionError("spawn_mother on a cancelled session should raise")
        return session

    session = asyncio.run(run())
    assert session.status is SessionStatus.CANCELLED
    assert coordinator.get_mother("s") is None
    assert coordinator.get_session_agents("s") == []
    print("[PASS] No task started for a terminal session")


def main():
    """Run all tests."""
    print("\n" + "=" * 60)
    print("COORDINATOR TESTS")
    print("=" * 60)

    test_session_manager()
    test_unique_scenario_ids()
    test_cancel_mid_flight()
    test_cancel_finished_session()
    test_cleanup_session()
    test_spawn_mother_on_finished_session()

    print("\n" + "=" * 60)
    print("ALL TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    main()
