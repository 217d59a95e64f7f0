"""
Scenario agent: investigates one hypothesis in its own process.

Invoked by the coordinator as

    python -m deebo.scenario_agent --id ID --session SID --error TEXT
        --context TEXT --hypothesis TEXT --language LANG --file PATH --repo PATH

Writes exactly one JSON object: to stdout on success (exit 0), to stderr on
failure (exit 1). Logging goes to the audit log and a debug log file.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from . import settings
from .audit import AuditLogger
from .config import ProfileConfig, create_llm_provider, create_tool_manager, load_config
from .llm.protocols import Message
from .memory import get_project_id
from .orchestration.mother_agent import execute_tool_calls
from .orchestration.parsing import ToolCallParseError, extract_report, has_report, parse_tool_calls
from .tools.connection import Connector

logger = logging.getLogger(__name__)

SCENARIO_SYSTEM_PROMPT = """You are a scenario agent investigating one hypothesis about a bug.

Hypothesis: {hypothesis}

You can use the same tools as the mother agent (git-mcp and desktop-commander)
with the same <use_mcp_tool> block format. Work in a scratch branch if you
change code, and never push.

Gather evidence for or against the hypothesis. When you are done, answer with
<report>...</report> stating whether the hypothesis is confirmed, the evidence,
and a proposed fix if you found one."""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Investigate a single debugging hypothesis")
    parser.add_argument("--id", required=True)
    parser.add_argument("--session", required=True)
    parser.add_argument("--error", required=True)
    parser.add_argument("--context", default="")
    parser.add_argument("--hypothesis", required=True)
    parser.add_argument("--language", default="typescript")
    parser.add_argument("--file", default="")
    parser.add_argument("--repo", required=True)
    return parser.parse_args(argv)


async def investigate(
    args: argparse.Namespace,
    profile: ProfileConfig,
    connector: Connector | None = None,
) -> dict:
    """
    Run the bounded investigation of one hypothesis.

    Returns:
        The success verdict

    Raises:
        Exception: Any failure; the caller turns it into a failure verdict
    """
    agent_name = f"scenario-{args.id}"
    config = profile.scenario_agent

    log = AuditLogger(profile.memory_root).for_agent(get_project_id(args.repo), args.session, agent_name)
    log.info("Scenario started", hypothesis=args.hypothesis)

    tools = create_tool_manager(profile, connector=connector)

    async def connect(server_name: str):
        return await tools.acquire(agent_name, server_name, args.session, args.repo)

    try:
        await tools.connect_required_tools(agent_name, args.session, args.repo)

        messages = [
            Message.system(SCENARIO_SYSTEM_PROMPT.format(hypothesis=args.hypothesis)),
            Message.user("\n".join([
                f"Error: {args.error}",
                f"Context: {args.context}",
                f"Language: {args.language}",
                f"File: {args.file}",
                f"Repo: {args.repo}",
            ])),
        ]

        async with create_llm_provider(profile.scenario) as llm:
            for turn in range(1, config.max_turns + 1):
                response = await llm.complete_messages(
                    messages,
                    temperature=profile.scenario.temperature,
                    max_tokens=profile.scenario.max_tokens,
                )
                messages.append(Message.assistant(response))

                if has_report(response):
                    log.info("Report produced", turns=turn)
                    return {
                        "success": True,
                        "id": args.id,
                        "hypothesis": args.hypothesis,
                        "report": extract_report(response),
                        "turns": turn,
                    }

                try:
                    calls = parse_tool_calls(response, tools.registry)
                except ToolCallParseError as e:
                    log.warn(f"Rejected tool calls: {e}")
                    messages.append(Message.user(
                        f"One of your tool calls was malformed and none were run. Error: {e}"
                    ))
                    continue

                if calls:
                    messages.append(Message.user(await execute_tool_calls(connect, calls)))
                else:
                    messages.append(Message.user(
                        "Continue: call a tool or give your <report>."
                    ))

        raise RuntimeError(f"No report after {config.max_turns} turns")
    finally:
        await tools.release_session(args.session)


async def run(args: argparse.Namespace, connector: Connector | None = None) -> dict:
    profile = load_config()
    limit = profile.scenario_agent.max_runtime_seconds
    try:
        return await asyncio.wait_for(investigate(args, profile, connector), timeout=limit)
    except asyncio.TimeoutError:
        raise TimeoutError(f"Scenario exceeded maximum runtime of {limit}s") from None


def main(argv: list[str] | None = None, connector: Connector | None = None) -> int:
    args = parse_args(argv)
    root = os.environ.get("DEEBO_ROOT") or settings.DEEBO_ROOT
    settings.configure_logging(filename=Path(root) / "logs" / "scenario-debug.log")

    try:
        verdict = asyncio.run(run(args, connector))
    except Exception as e:
        logger.error(f"Scenario {args.id} failed: {e}", exc_info=True)
        sys.stderr.write(json.dumps({
            "success": False,
            "id": args.id,
            "hypothesis": args.hypothesis,
            "error": str(e) or type(e).__name__,
        }) + "\n")
        sys.stderr.flush()
        return 1

    sys.stdout.write(json.dumps(verdict) + "\n")
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
