"""
Mother Agent: runs the OODA investigation loop for one session.

Observe: send the full transcript to the model.
Orient: parse tool calls and run them against the pooled tool clients.
Decide: collect the hypotheses proposed in the turn.
Act: fan out one scenario per hypothesis and fold the round back in.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import TYPE_CHECKING, Awaitable, Callable

from mcp.shared.exceptions import McpError

from ..llm.protocols import Message
from ..memory import MemoryBank, get_project_id
from ..tools.client import ToolConnectionError
from ..tools.registry import ToolConfigurationError
from .models import AgentRecord, OodaPhase, SessionStatus
from .parsing import ToolCall, ToolCallParseError, extract_hypotheses, has_solution, parse_tool_calls

if TYPE_CHECKING:
    from ..audit import AgentLog
    from ..config.loader import LLMConfig, MotherAgentConfig
    from ..llm.protocols import LLMProvider
    from ..tools.client import ToolClient
    from .coordinator import AgentCoordinator
    from .models import DebugParams, Session

logger = logging.getLogger(__name__)

ClientSource = Callable[[str], Awaitable["ToolClient"]]

MOTHER_AGENT_NAME = "mother"

MOTHER_SYSTEM_PROMPT = """You are the mother agent in an OODA loop debugging investigation.

You have access to these tools:

git-mcp:
- git_status: Show working tree status
- git_diff_unstaged: Show changes in working directory not yet staged
- git_diff_staged: Show changes that are staged for commit
- git_diff: Compare current state with a branch or commit
- git_log: Show recent commit history
- git_show: Show contents of a specific commit
- git_create_branch: Create a new branch
- git_checkout: Switch to a different branch

desktop-commander (also reachable as filesystem-mcp):
- read_file: Read file contents
- read_multiple_files: Read multiple files at once
- list_directory: List contents of a directory
- search_files: Recursively search files by name
- search_code: Search file contents
- get_file_info: Get file metadata
- execute_command: Run a shell command

Use tools by wrapping requests in XML tags like:
<use_mcp_tool>
  <server_name>git-mcp</server_name>
  <tool_name>git_status</tool_name>
  <arguments>
    {
      "repo_path": "/path/to/repo"
    }
  </arguments>
</use_mcp_tool>

If any tool call in a turn is malformed, none of that turn's calls are run.

Propose hypotheses about the root cause as <hypothesis>...</hypothesis>. Each
hypothesis is investigated by its own scenario agent and all of their reports
come back to you in one message.

When you are confident in the root cause and the fix, answer with
<solution>...</solution>."""

NUDGE = (
    "Continue the investigation: call a tool, propose hypotheses, "
    "or give your <solution>."
)


class InvestigationTimeoutError(Exception):
    """The investigation exceeded its wall-clock ceiling."""


class MalformedResponseError(Exception):
    """The model kept producing unusable output after its retry round."""


def format_tool_result(call: ToolCall, result: dict) -> str:
    return f"Result of {call.server_name}/{call.tool_name}:\n{json.dumps(result)}"


def tool_error(message: str) -> dict:
    return {"isError": True, "content": [{"type": "text", "text": message}]}


async def execute_tool_calls(connect: ClientSource, calls: list[ToolCall]) -> str:
    """
    Run parsed tool calls in order and format their results as one turn.

    Clients come from `connect`, so any registered tool can be called, not
    only the ones connected up front. A tool's own failure (error result, MCP
    protocol error, or a server that cannot be started) is part of the
    returned text, never raised.
    """
    outputs = []
    for call in calls:
        try:
            client = await connect(call.server_name)
        except (ToolConfigurationError, ToolConnectionError) as e:
            outputs.append(format_tool_result(call, tool_error(str(e))))
            continue
        try:
            result = await client.call_tool(call.tool_name, call.arguments)
        except McpError as e:
            result = tool_error(str(e))
        outputs.append(format_tool_result(call, result))
    return "\n\n".join(outputs)


class MotherAgent:
    """
    Supervising agent for one debugging session.

    The transcript is append-only for the whole investigation; every model
    call sees every prior turn.

    Usage:
        mother = MotherAgent(session, params, llm, coordinator, config)
        solution = await mother.run()
    """

    def __init__(
        self,
        session: Session,
        params: DebugParams,
        llm: LLMProvider,
        coordinator: AgentCoordinator,
        config: MotherAgentConfig,
        llm_config: LLMConfig | None = None,
        memory: MemoryBank | None = None,
        log: AgentLog | None = None,
    ):
        self.session = session
        self.params = params
        self.llm = llm
        self.coordinator = coordinator
        self.config = config
        self.temperature = llm_config.temperature if llm_config else 0.7
        self.max_tokens = llm_config.max_tokens if llm_config else None
        self.memory = memory
        self.log = log
        self.project_id = get_project_id(params.repo_path)

        self.messages: list[Message] = []
        self.phase = OodaPhase.OBSERVE
        self.scenarios_run = 0
        self.iterations = 0

    def _audit(self, level: str, message: str, **data) -> None:
        if self.log is not None:
            self.log.log(level, message, data or None)
        else:
            logger.log(logging.ERROR if level == "error" else logging.INFO, message)

    def _enter_phase(self, phase: OodaPhase) -> None:
        self.phase = phase
        self._audit("info", f"OODA: {phase.value}", iteration=self.iterations)

    def _initial_messages(self) -> list[Message]:
        p = self.params
        observation = "\n".join([
            f"Error: {p.error}",
            f"Context: {p.context}",
            f"Language: {p.language}",
            f"File: {p.file_path}",
            f"Repo: {p.repo_path}",
            f"Session: {self.session.id}",
            f"Project: {self.project_id}",
        ])
        if self.memory is not None and self.memory.enabled:
            observation += (
                f"\n\nPrevious debugging attempts and context are available in the "
                f"memory bank at {self.memory.path} if needed."
            )
        return [Message.system(MOTHER_SYSTEM_PROMPT), Message.user(observation)]

    async def run(self) -> str:
        """
        Run the investigation to completion.

        Returns:
            The final assistant turn, which contains the <solution> marker

        Raises:
            InvestigationTimeoutError: If the runtime ceiling is exceeded
            MalformedResponseError: If the model keeps returning empty turns
            ToolConnectionError: If the required tools cannot be connected
        """
        started = time.monotonic()
        self._audit("info", "Investigation started", error=self.params.error, repo=self.params.repo_path)

        try:
            async with self.llm:
                result = await asyncio.wait_for(
                    self._investigate(),
                    timeout=self.config.max_runtime_seconds,
                )
        except asyncio.TimeoutError:
            error = InvestigationTimeoutError(
                f"Investigation exceeded maximum runtime of {self.config.max_runtime_seconds}s"
            )
            self._record_failure(error, started)
            raise error from None
        except asyncio.CancelledError:
            self._audit("warn", "Investigation cancelled", scenarios_run=self.scenarios_run)
            raise
        except Exception as e:
            self._record_failure(e, started)
            raise

        duration = time.monotonic() - started
        self._audit(
            "info",
            "Solution found",
            scenarios_run=self.scenarios_run,
            duration_seconds=round(duration, 1),
        )
        if self.memory is not None:
            self.memory.record_session(
                self.session.id,
                self.params.error,
                result,
                self.scenarios_run,
                duration,
            )
        return result

    def _record_failure(self, error: Exception, started: float) -> None:
        duration = time.monotonic() - started
        self._audit(
            "error",
            f"Failed: {error}",
            scenarios_run=self.scenarios_run,
            duration_seconds=round(duration, 1),
        )
        if self.memory is not None:
            self.memory.record_session(
                self.session.id,
                self.params.error,
                f"Failed: {error}",
                self.scenarios_run,
                duration,
            )

    async def _connect_tools(self) -> None:
        await self.coordinator.tools.connect_required_tools(
            MOTHER_AGENT_NAME,
            self.session.id,
            self.params.repo_path,
        )

    async def _client_for(self, server_name: str) -> ToolClient:
        return await self.coordinator.tools.acquire(
            MOTHER_AGENT_NAME,
            server_name,
            self.session.id,
            self.params.repo_path,
        )

    async def _complete(self) -> str:
        """One model turn; empty completions get a bounded retry."""
        empty_turns = 0
        while True:
            response = await self.llm.complete_messages(
                self.messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            if response.strip():
                return response
            empty_turns += 1
            if empty_turns > self.config.max_empty_retries:
                raise MalformedResponseError(
                    f"Model returned an empty response {empty_turns} times in a row"
                )
            self._audit("warn", "Empty model response, retrying")

    async def _investigate(self) -> str:
        self._enter_phase(OodaPhase.OBSERVE)
        await self._connect_tools()
        self.messages = self._initial_messages()

        while True:
            if self.session.status is SessionStatus.CANCELLED:
                raise asyncio.CancelledError()

            self.iterations += 1
            self._enter_phase(OodaPhase.OBSERVE)
            response = await self._complete()
            self.messages.append(Message.assistant(response))

            if has_solution(response):
                return response

            self._enter_phase(OodaPhase.ORIENT)
            try:
                calls = parse_tool_calls(response, self.coordinator.tools.registry)
            except ToolCallParseError as e:
                self._audit("warn", f"Rejected tool calls: {e}")
                self.messages.append(Message.user(
                    f"One of your tool calls was malformed and none were run. Error: {e}"
                ))
                await asyncio.sleep(self.config.iteration_delay_seconds)
                continue

            if calls:
                self._audit("info", f"Running {len(calls)} tool call(s)",
                            calls=[f"{c.server_name}/{c.tool_name}" for c in calls])
                self.messages.append(Message.user(await execute_tool_calls(self._client_for, calls)))

            self._enter_phase(OodaPhase.DECIDE)
            hypotheses = extract_hypotheses(response)

            if hypotheses:
                self._enter_phase(OodaPhase.ACT)
                if self.memory is not None:
                    self.memory.record_active_context(response)
                self.messages.append(Message.user(await self._run_scenarios(hypotheses)))

            if not calls and not hypotheses:
                self.messages.append(Message.user(NUDGE))

            await asyncio.sleep(self.config.iteration_delay_seconds)

    async def _run_scenarios(self, hypotheses: list[str]) -> str:
        """Spawn one scenario per hypothesis and wait for the whole round."""
        self._audit("info", f"Spawning {len(hypotheses)} scenario(s)", hypotheses=hypotheses)

        records: list[AgentRecord] = await asyncio.gather(*(
            self.coordinator.spawn_scenario(self.session, hypothesis, self.params)
            for hypothesis in hypotheses
        ))
        self.scenarios_run += len(records)

        verdicts = await self.coordinator.await_scenarios(records)
        for verdict in verdicts:
            self._audit(
                "info" if verdict.success else "warn",
                f"Scenario {verdict.id} {'succeeded' if verdict.success else 'failed'}",
                reason=verdict.reason,
            )
        return "\n".join(verdict.transcript_text() for verdict in verdicts)
