"""
Scenario Process Tests

Tests for the parent side of the scenario protocol, using small Python
scripts as stand-in scenario agents.
"""

import asyncio
import sys

from deebo.orchestration.models import DebugParams
from deebo.orchestration.scenario import (
    UNPARSEABLE_OUTPUT,
    ScenarioProcess,
    build_argv,
    classify_outcome,
)

PARAMS = DebugParams(
    error="TypeError: x is undefined",
    repo_path="/repo",
    context="after upgrade",
    language="typescript",
    file_path="src/parser.ts",
)

SUCCESS_SCRIPT = """
import json, sys
args = sys.argv[1:]
hypothesis = args[args.index("--hypothesis") + 1]
print(json.dumps({"success": True, "hypothesis": hypothesis, "fix": "add null check"}))
"""

INVALID_STDOUT_SCRIPT = "print('this is not json')"

NON_OBJECT_SCRIPT = "print('[1, 2, 3]')"

FAILURE_SCRIPT = """
import json, sys
sys.stderr.write(json.dumps({"success": False, "error": "could not reproduce"}))
sys.exit(1)
"""

CRASH_SCRIPT = "raise SystemExit('boom')"

SLEEP_SCRIPT = "import time; time.sleep(60)"


def script(source: str) -> list[str]:
    return [sys.executable, "-c", source]


async def run_scenario(source: str, scenario_id: str = "s-0", hypothesis: str = "null pointer in parser"):
    process = ScenarioProcess(scenario_id, "s", hypothesis, PARAMS, command=script(source))
    await process.start()
    return await process.result()


def test_argv_contract():
    """Test the ordered flag contract."""
    print("=" * 60)
    print("TEST 1: Argv contract")
    print("=" * 60)

    argv = build_argv(["agent"], "s-3", "s", "h", PARAMS)
    print(f"\nargv: {argv}")
    assert argv == [
        "agent",
        "--id", "s-3",
        "--session", "s",
        "--error", PARAMS.error,
        "--context", PARAMS.context,
        "--hypothesis", "h",
        "--language", PARAMS.language,
        "--file", PARAMS.file_path,
        "--repo", PARAMS.repo_path,
    ]
    print("[PASS] Flags in order")


def test_classify_outcomes():
    """Test the four outcome classes without spawning processes."""
    print("\n" + "=" * 60)
    print("TEST 2: Outcome classification")
    print("=" * 60)

    ok = classify_outcome("a", 0, '{"success": true, "fix": "x"}', "")
    assert ok.success and ok.to_dict() == {"id": "a", "success": True, "fix": "x"}

    failed = classify_outcome("a", 1, "", '{"error": "nope"}')
    assert not failed.success and failed.error == "nope" and failed.reason is None

    garbled = classify_outcome("a", 0, "not json", "")
    assert not garbled.success and garbled.reason == UNPARSEABLE_OUTPUT

    garbled_err = classify_outcome("a", 2, "", "Traceback ...")
    assert not garbled_err.success and garbled_err.reason == UNPARSEABLE_OUTPUT

    killed = classify_outcome("a", -9, '{"success": true}', "")
    assert not killed.success and killed.reason == UNPARSEABLE_OUTPUT

    terminated = classify_outcome("a", 0, '{"success": true}', "", terminated=True)
    assert not terminated.success and terminated.reason == UNPARSEABLE_OUTPUT

    print("\n[PASS] All outcomes classified")


def test_success_verdict():
    """Test exit 0 with a JSON object on stdout."""
    print("\n" + "=" * 60)
    print("TEST 3: Success verdict")
    print("=" * 60)

    verdict = asyncio.run(run_scenario(SUCCESS_SCRIPT))
    print(f"\nVerdict: {verdict.to_dict()}")
    assert verdict.success
    assert verdict.payload["fix"] == "add null check"
    assert verdict.payload["hypothesis"] == "null pointer in parser"
    assert '"fix": "add null check"' in verdict.transcript_text()
    print("[PASS] Success verdict parsed")


def test_failure_verdicts():
    """Test structured failure, crashes and unparseable output."""
    print("\n" + "=" * 60)
    print("TEST 4: Failure verdicts")
    print("=" * 60)

    async def run():
        return await asyncio.gather(
            run_scenario(FAILURE_SCRIPT, "s-0"),
            run_scenario(CRASH_SCRIPT, "s-1"),
            run_scenario(INVALID_STDOUT_SCRIPT, "s-2"),
            run_scenario(NON_OBJECT_SCRIPT, "s-3"),
        )

    structured, crashed, invalid, non_object = asyncio.run(run())
    for verdict in (structured, crashed, invalid, non_object):
        print(f"  {verdict.id}: {verdict.to_dict()}")

    assert not structured.success and structured.error == "could not reproduce"
    assert structured.reason is None
    assert not crashed.success and crashed.reason == UNPARSEABLE_OUTPUT
    assert not invalid.success and invalid.reason == UNPARSEABLE_OUTPUT
    assert not non_object.success and non_object.reason == UNPARSEABLE_OUTPUT
    print("\n[PASS] Failures normalized into verdicts")


def test_terminate():
    """Test coordinator-initiated termination resolves as a failed verdict."""
    print("\n" + "=" * 60)
    print("TEST 5: Termination")
    print("=" * 60)

    async def run():
        process = ScenarioProcess("s-0", "s", "slow", PARAMS, command=script(SLEEP_SCRIPT), terminate_grace=1.0)
        await process.start()
        assert process.running
        await process.terminate()
        verdict = await asyncio.wait_for(process.result(), timeout=5)
        return process, verdict

    process, verdict = asyncio.run(run())
    print(f"\nVerdict: {verdict.to_dict()}")
    assert not process.running
    assert not verdict.success
    assert verdict.reason == UNPARSEABLE_OUTPUT
    print("[PASS] Terminated scenario resolved as failed")


def test_spawn_failure():
    """Test a missing executable surfaces as OSError on start."""
    print("\n" + "=" * 60)
    print("TEST 6: Spawn failure")
    print("=" * 60)

    async def run():
        process = ScenarioProcess("s-0", "s", "h", PARAMS, command=["/nonexistent/deebo-scenario"])
        try:
            await process.start()
        except OSError as e:
            print(f"\nSpawn failed: {e}")
            return ScenarioProcess.failed("s-0", "s", "h", str(e))
        raise AssertionError("start() should fail for a missing executable")

    handle = asyncio.run(run())
    verdict = asyncio.run(handle.result())
    assert not verdict.success and verdict.reason == "spawn_failed"
    print("[PASS] Spawn failure produces a failed handle")


def main():
    """Run all tests."""
    print("\n" + "=" * 60)
    print("SCENARIO PROCESS TESTS")
    print("=" * 60)

    test_argv_contract()
    test_classify_outcomes()
    test_success_verdict()
    test_failure_verdicts()
    test_terminate()
    test_spawn_failure()

    print("\n" + "=" * 60)
    print("ALL TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    main()
