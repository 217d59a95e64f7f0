"""Parsing of the tagged blocks agents write into their turns.

Tool invocation:

    <use_mcp_tool>
      <server_name>git-mcp</server_name>
      <tool_name>git_status</tool_name>
      <arguments>{"repo_path": "/path/to/repo"}</arguments>
    </use_mcp_tool>

Hypotheses are <hypothesis>...</hypothesis>, the mother's terminal marker is
<solution>...</solution>, and a scenario's terminal marker is
<report>...</report>.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..tools.registry import ToolRegistry

TOOL_OPEN = "<use_mcp_tool>"
TOOL_CLOSE = "</use_mcp_tool>"


class ToolCallParseError(Exception):
    """A tool invocation block in a model turn is malformed."""


@dataclass
class ToolCall:
    """A parsed, validated tool invocation."""

    server_name: str
    tool_name: str
    arguments: dict[str, Any] = field(default_factory=dict)


def _tag(block: str, name: str) -> str:
    match = re.search(rf"<{name}>(.*?)</{name}>", block, re.DOTALL)
    if match is None:
        raise ToolCallParseError(f"Missing <{name}> in tool call")
    value = match.group(1).strip()
    if not value:
        raise ToolCallParseError(f"Empty <{name}> in tool call")
    return value


def parse_tool_calls(text: str, registry: ToolRegistry | None = None) -> list[ToolCall]:
    """
    Extract every tool invocation from a model turn.

    Parsing is all-or-nothing: if any block is malformed, no call is
    returned.

    Args:
        text: Assistant turn
        registry: When given, server names must be registered tools or
            aliases and are mapped to their canonical name

    Returns:
        Tool calls in order of appearance

    Raises:
        ToolCallParseError: On a missing part, invalid or non-object JSON
            arguments, an unknown server or an unterminated block
    """
    calls = []
    position = 0
    while True:
        start = text.find(TOOL_OPEN, position)
        if start == -1:
            break
        end = text.find(TOOL_CLOSE, start)
        if end == -1:
            raise ToolCallParseError(f"Unterminated {TOOL_OPEN} block")
        block = text[start + len(TOOL_OPEN):end]
        position = end + len(TOOL_CLOSE)

        server_name = _tag(block, "server_name")
        tool_name = _tag(block, "tool_name")
        raw_arguments = _tag(block, "arguments")

        try:
            arguments = json.loads(raw_arguments)
        except json.JSONDecodeError as e:
            raise ToolCallParseError(
                f"Invalid JSON arguments for {server_name}/{tool_name}: {e}"
            ) from e
        if not isinstance(arguments, dict):
            raise ToolCallParseError(
                f"Arguments for {server_name}/{tool_name} must be a JSON object"
            )

        if registry is not None:
            canonical = registry.canonical_name(server_name)
            if canonical is None:
                raise ToolCallParseError(f"Unknown server: {server_name}")
            server_name = canonical

        calls.append(ToolCall(server_name, tool_name, arguments))
    return calls


def extract_hypotheses(text: str) -> list[str]:
    """All hypothesis texts in order; duplicates are kept."""
    hypotheses = []
    for part in text.split("<hypothesis>")[1:]:
        hypothesis = part.split("</hypothesis>")[0].strip()
        if hypothesis:
            hypotheses.append(hypothesis)
    return hypotheses


def has_solution(text: str) -> bool:
    return "<solution>" in text


def extract_solution(text: str) -> str:
    match = re.search(r"<solution>(.*?)(?:</solution>|$)", text, re.DOTALL)
    return match.group(1).strip() if match else ""


def has_report(text: str) -> bool:
    return "<report>" in text


def extract_report(text: str) -> str:
    match = re.search(r"<report>(.*?)(?:</report>|$)", text, re.DOTALL)
    return match.group(1).strip() if match else ""
