"""Closed registry of external tool servers.

Each registered tool maps a name to a launch template. Resolution is an
explicit two-step: substitute placeholders, probe whether the primary
executable is available, then select primary or fallback. Callers receive a
single ResolvedTool and never branch on which variant was chosen.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from ..memory import get_project_id

if TYPE_CHECKING:
    from ..config.loader import ToolSpecConfig

logger = logging.getLogger(__name__)

GIT_TOOL = "git-mcp"
FILESYSTEM_TOOL = "desktop-commander"
REQUIRED_TOOLS = (GIT_TOOL, FILESYSTEM_TOOL)

RUNTIME_PLACEHOLDERS = {"repoPath", "memoryPath", "memoryRoot"}
EXECUTABLE_PLACEHOLDERS = {
    "npxPath": ("DEEBO_NPX_PATH", "npx"),
    "uvxPath": ("DEEBO_UVX_PATH", "uvx"),
    "pythonPath": (None, None),
}
KNOWN_PLACEHOLDERS = RUNTIME_PLACEHOLDERS | set(EXECUTABLE_PLACEHOLDERS)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class ToolConfigurationError(Exception):
    """The registry is invalid or a tool has no runnable variant."""


@dataclass(frozen=True)
class LaunchTemplate:
    """Command and argument templates before substitution."""

    command: str
    args: tuple[str, ...] = ()
    env: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class ToolSpec:
    """Typed descriptor for one registered tool."""

    name: str
    primary: LaunchTemplate
    fallback: LaunchTemplate | None = None
    aliases: tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolvedTool:
    """A launchable tool: placeholders substituted, variant selected."""

    name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    used_fallback: bool = False


def resolve_executables(
    overrides: dict[str, str] | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> dict[str, str]:
    """
    Resolve auxiliary launcher paths.

    Order: explicit override, then environment variable, then PATH lookup.
    Unresolvable launchers map to an empty string.
    """
    overrides = overrides or {}
    resolved = {}
    for name, (env_var, binary) in EXECUTABLE_PLACEHOLDERS.items():
        if overrides.get(name):
            resolved[name] = overrides[name]
        elif name == "pythonPath":
            resolved[name] = sys.executable
        elif env_var and os.environ.get(env_var):
            resolved[name] = os.environ[env_var]
        else:
            resolved[name] = (which(binary) if binary else None) or ""
    return resolved


def substitute(template: str, values: dict[str, str]) -> str:
    """Replace {name} placeholders; unknown names are left as-is."""
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)


class ToolRegistry:
    """
    Tool name -> ToolSpec, validated once at construction.

    Usage:
        registry = ToolRegistry.from_config(profile.tools, profile.executables)
        tool = registry.resolve("git-mcp", repo_path, memory_root)
    """

    def __init__(
        self,
        specs: dict[str, ToolSpec],
        executables: dict[str, str] | None = None,
        which: Callable[[str], str | None] = shutil.which,
        required: tuple[str, ...] = REQUIRED_TOOLS,
    ):
        self._specs = dict(specs)
        self._which = which
        self.executables = resolve_executables(executables, which)
        self._aliases: dict[str, str] = {}
        self._validate(required)

    @classmethod
    def from_config(
        cls,
        tools: dict[str, ToolSpecConfig],
        executables: dict[str, str] | None = None,
        **kwargs,
    ) -> ToolRegistry:
        specs = {}
        for name, cfg in tools.items():
            fallback = None
            if cfg.fallback is not None:
                fallback = LaunchTemplate(
                    command=cfg.fallback.command,
                    args=tuple(cfg.fallback.args),
                    env=tuple(cfg.fallback.env.items()),
                )
            specs[name] = ToolSpec(
                name=name,
                primary=LaunchTemplate(
                    command=cfg.command,
                    args=tuple(cfg.args),
                    env=tuple(cfg.env.items()),
                ),
                fallback=fallback,
                aliases=tuple(cfg.aliases),
            )
        return cls(specs, executables, **kwargs)

    def _validate(self, required: tuple[str, ...]) -> None:
        missing = [name for name in required if name not in self._specs]
        if missing:
            raise ToolConfigurationError(
                f"Missing required tools in registry: {', '.join(missing)}"
            )

        for name, spec in self._specs.items():
            for template in filter(None, (spec.primary, spec.fallback)):
                if not template.command.strip():
                    raise ToolConfigurationError(f"Tool '{name}' has an empty command")
                for text in (template.command, *template.args, *(v for _, v in template.env)):
                    for placeholder in _PLACEHOLDER.findall(text):
                        if placeholder not in KNOWN_PLACEHOLDERS:
                            raise ToolConfigurationError(
                                f"Tool '{name}' uses unknown placeholder "
                                f"'{{{placeholder}}}'"
                            )

            for alias in spec.aliases:
                owner = self._aliases.get(alias)
                if alias in self._specs or (owner and owner != name):
                    raise ToolConfigurationError(f"Tool alias '{alias}' is ambiguous")
                self._aliases[alias] = name

    @property
    def names(self) -> list[str]:
        return list(self._specs)

    def canonical_name(self, name: str) -> str | None:
        """Map a tool name or alias to its registered name."""
        name = name.strip()
        if name in self._specs:
            return name
        return self._aliases.get(name)

    def get(self, name: str) -> ToolSpec:
        canonical = self.canonical_name(name)
        if canonical is None:
            raise ToolConfigurationError(f"Unknown tool: {name}")
        return self._specs[canonical]

    def is_available(self, command: str) -> bool:
        """Probe whether a resolved command can be launched."""
        if not command:
            return False
        path = Path(command)
        if path.is_absolute() or os.sep in command:
            return path.is_file() and os.access(path, os.X_OK)
        return self._which(command) is not None

    def resolve(self, name: str, repo_path: str, memory_root: Path) -> ResolvedTool:
        """
        Produce the launch configuration for a tool.

        Args:
            name: Registered tool name or alias
            repo_path: Repository under investigation
            memory_root: Root directory of all memory banks

        Returns:
            ResolvedTool with placeholders substituted

        Raises:
            ToolConfigurationError: If the tool is unknown or neither the
                primary nor the fallback executable is available
        """
        spec = self.get(name)
        memory_root = Path(memory_root)
        values = {
            "repoPath": str(repo_path),
            "memoryPath": str(memory_root / get_project_id(repo_path)),
            "memoryRoot": str(memory_root),
            **self.executables,
        }

        candidates = [(spec.primary, False)]
        if spec.fallback is not None:
            candidates.append((spec.fallback, True))

        for template, is_fallback in candidates:
            command = substitute(template.command, values)
            if not self.is_available(command):
                logger.info(
                    f"Tool '{spec.name}': "
                    f"{'fallback' if is_fallback else 'primary'} command "
                    f"'{command or template.command}' not available"
                )
                continue
            if is_fallback:
                logger.info(f"Using fallback launch configuration for '{spec.name}'")
            return ResolvedTool(
                name=spec.name,
                command=command,
                args=[substitute(arg, values) for arg in template.args],
                env={key: substitute(value, values) for key, value in template.env},
                used_fallback=is_fallback,
            )

        raise ToolConfigurationError(
            f"No runnable launch configuration for tool '{spec.name}'"
        )
