"""Parent side of the scenario process protocol.

A scenario is a child process invoked with a fixed argv contract:

    <command> --id ID --session SID --error TEXT --context TEXT
              --hypothesis TEXT --language LANG --file PATH --repo PATH

On success it writes exactly one JSON object to stdout and exits 0; on
failure it writes exactly one JSON object to stderr. Any other outcome is
a failed hypothesis with reason "unparseable_output".
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Any

from .models import DebugParams, ScenarioVerdict

logger = logging.getLogger(__name__)

UNPARSEABLE_OUTPUT = "unparseable_output"
SPAWN_FAILED = "spawn_failed"

DEFAULT_SCENARIO_COMMAND = [sys.executable, "-m", "deebo.scenario_agent"]


def build_argv(
    command: list[str],
    scenario_id: str,
    session_id: str,
    hypothesis: str,
    params: DebugParams,
) -> list[str]:
    return [
        *command,
        "--id", scenario_id,
        "--session", session_id,
        "--error", params.error,
        "--context", params.context,
        "--hypothesis", hypothesis,
        "--language", params.language,
        "--file", params.file_path,
        "--repo", params.repo_path,
    ]


def _parse_object(stream: str) -> dict[str, Any] | None:
    try:
        value = json.loads(stream)
    except (json.JSONDecodeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def classify_outcome(
    scenario_id: str,
    returncode: int | None,
    stdout: str,
    stderr: str,
    terminated: bool = False,
) -> ScenarioVerdict:
    """
    Map a finished process onto a verdict.

    Args:
        scenario_id: Agent id of the scenario
        returncode: Process exit status (negative when killed by a signal)
        stdout: Decoded standard output
        stderr: Decoded standard error
        terminated: True if the coordinator terminated the process

    Returns:
        ScenarioVerdict; this function never raises
    """
    if terminated or returncode is None or returncode < 0:
        cause = "terminated by coordinator" if terminated else f"killed by signal {-(returncode or 0)}"
        return ScenarioVerdict(
            id=scenario_id,
            success=False,
            raw=stdout or stderr,
            error=f"Scenario {cause}",
            reason=UNPARSEABLE_OUTPUT,
        )

    if returncode == 0:
        payload = _parse_object(stdout)
        if payload is None:
            return ScenarioVerdict(
                id=scenario_id,
                success=False,
                raw=stdout,
                error="Scenario exited 0 without a JSON object on stdout",
                reason=UNPARSEABLE_OUTPUT,
            )
        payload.pop("id", None)
        payload.pop("success", None)
        return ScenarioVerdict(id=scenario_id, success=True, payload=payload, raw=stdout)

    payload = _parse_object(stderr)
    if payload is None:
        return ScenarioVerdict(
            id=scenario_id,
            success=False,
            raw=stderr,
            error=f"Scenario exited {returncode}: {stderr.strip()[-500:] or 'no output'}",
            reason=UNPARSEABLE_OUTPUT,
        )
    payload.pop("id", None)
    payload.pop("success", None)
    return ScenarioVerdict(
        id=scenario_id,
        success=False,
        payload=payload,
        raw=stderr,
        error=str(payload.get("error", f"Scenario exited {returncode}")),
    )


class ScenarioProcess:
    """
    Handle for one running scenario process.

    Usage:
        process = ScenarioProcess(scenario_id, session_id, hypothesis, params)
        await process.start()
        verdict = await process.result()
    """

    def __init__(
        self,
        scenario_id: str,
        session_id: str,
        hypothesis: str,
        params: DebugParams,
        command: list[str] | None = None,
        env: dict[str, str] | None = None,
        terminate_grace: float = 2.0,
    ):
        self.id = scenario_id
        self.session_id = session_id
        self.hypothesis = hypothesis
        self.params = params
        self.command = list(command or DEFAULT_SCENARIO_COMMAND)
        self.env = env
        self.terminate_grace = terminate_grace
        self._process: asyncio.subprocess.Process | None = None
        self._collector: asyncio.Task | None = None
        self._verdict: ScenarioVerdict | None = None
        self._terminated = False

    @classmethod
    def failed(cls, scenario_id: str, session_id: str, hypothesis: str, error: str) -> ScenarioProcess:
        """A handle that is already resolved to a spawn failure."""
        handle = cls(scenario_id, session_id, hypothesis, DebugParams(error="", repo_path=""))
        handle._verdict = ScenarioVerdict(
            id=scenario_id, success=False, error=error, reason=SPAWN_FAILED
        )
        return handle

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self) -> None:
        """
        Launch the process.

        Raises:
            OSError: If the executable cannot be spawned
        """
        argv = build_argv(self.command, self.id, self.session_id, self.hypothesis, self.params)
        env = dict(os.environ)
        if self.env:
            env.update(self.env)

        self._process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
        self._collector = asyncio.create_task(self._collect())
        logger.info(f"Spawned scenario {self.id} (pid {self._process.pid})")

    async def _collect(self) -> ScenarioVerdict:
        process = self._process
        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
            raise

        verdict = classify_outcome(
            self.id,
            process.returncode,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
            terminated=self._terminated,
        )
        self._verdict = verdict
        logger.info(
            f"Scenario {self.id} finished: "
            f"{'success' if verdict.success else verdict.reason or 'failure'}"
        )
        return verdict

    async def result(self) -> ScenarioVerdict:
        """Wait for the verdict. Process faults become failed verdicts."""
        if self._verdict is not None:
            return self._verdict
        if self._collector is None:
            raise RuntimeError(f"Scenario {self.id} was never started")
        try:
            return await asyncio.shield(self._collector)
        except asyncio.CancelledError:
            if self._collector.cancelled():
                return self._terminated_verdict()
            raise
        except Exception as e:
            logger.error(f"Scenario {self.id} collector failed: {e}")
            return ScenarioVerdict(id=self.id, success=False, error=str(e), reason=UNPARSEABLE_OUTPUT)

    def _terminated_verdict(self) -> ScenarioVerdict:
        return ScenarioVerdict(
            id=self.id,
            success=False,
            error="Scenario terminated by coordinator",
            reason=UNPARSEABLE_OUTPUT,
        )

    async def terminate(self) -> None:
        """Send an immediate terminate signal; kill after the grace period."""
        process = self._process
        if process is None or process.returncode is not None:
            return
        self._terminated = True
        logger.info(f"Terminating scenario {self.id} (pid {process.pid})")
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), self.terminate_grace)
        except asyncio.TimeoutError:
            logger.warning(f"Scenario {self.id} ignored terminate, killing")
            try:
                process.kill()
            except ProcessLookupError:
                pass
