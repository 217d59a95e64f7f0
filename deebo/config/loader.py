"""Configuration loader with Pydantic validation and env var expansion."""

import logging
import os
import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field

from .. import settings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "profiles.yaml"


class LLMConfig(BaseModel):
    """Configuration for an agent's LLM backend."""

    backend: Literal["openrouter", "anthropic", "mock"] = "openrouter"
    model: str | None = None
    api_key: str | None = None
    base_url: str | None = None
    temperature: float = 0.7
    max_tokens: int = 4096
    responses: list[str] = []  # Scripted turns for the mock backend


class ToolFallbackConfig(BaseModel):
    """Alternative launch command used when the primary executable is missing."""

    command: str
    args: list[str] = []
    env: dict[str, str] = {}


class ToolSpecConfig(BaseModel):
    """Registry entry for one external tool server."""

    command: str
    args: list[str] = []
    env: dict[str, str] = {}
    aliases: list[str] = []
    fallback: ToolFallbackConfig | None = None


class MotherAgentConfig(BaseModel):
    """Configuration for the mother agent's OODA loop."""

    max_runtime_seconds: float = 15 * 60
    iteration_delay_seconds: float = 1.0
    max_empty_retries: int = 1  # Retry rounds granted for an empty completion


class ScenarioAgentConfig(BaseModel):
    """Configuration for scenario processes (both sides of the protocol)."""

    command: list[str] | None = None  # Defaults to [python, -m, deebo.scenario_agent]
    max_runtime_seconds: float = 5 * 60
    max_turns: int = 20
    terminate_grace_seconds: float = 2.0


class MemoryBankConfig(BaseModel):
    """Durable investigation memory."""

    enabled: bool = False


class ToolConnectionConfig(BaseModel):
    """Tool connection pool settings."""

    handshake_timeout_seconds: float = 30.0


class ProfileConfig(BaseModel):
    """Configuration profile containing everything a session needs."""

    name: str = "default"
    config_path: str | None = None
    root: Path = Field(default_factory=lambda: Path(settings.DEEBO_ROOT))
    mother: LLMConfig = LLMConfig()
    scenario: LLMConfig = LLMConfig()
    mother_agent: MotherAgentConfig = MotherAgentConfig()
    scenario_agent: ScenarioAgentConfig = ScenarioAgentConfig()
    memory_bank: MemoryBankConfig = MemoryBankConfig()
    connections: ToolConnectionConfig = ToolConnectionConfig()
    executables: dict[str, str] = {}
    tools: dict[str, ToolSpecConfig] = {}

    @property
    def memory_root(self) -> Path:
        """Directory holding one memory bank per project."""
        return self.root / "memory-bank"


class ConfigFile(BaseModel):
    """Root configuration file structure."""

    profiles: dict[str, ProfileConfig]


_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def expand_env_vars(value: str) -> str | None:
    """Expand ${VAR} and ${VAR:-default} references in a string.

    Unknown variables without a default are left untouched, except when the
    whole value is a single reference: then the value becomes None so the
    model default applies.

    Args:
        value: String potentially containing env var references

    Returns:
        String with env vars expanded
    """
    if not isinstance(value, str):
        return value

    whole = _ENV_PATTERN.fullmatch(value)
    if whole and whole.group(1) not in os.environ and whole.group(2) is None:
        return None

    def replacer(match):
        var_name, default = match.group(1), match.group(2)
        if var_name in os.environ:
            return os.environ[var_name]
        return default if default is not None else match.group(0)

    return _ENV_PATTERN.sub(replacer, value)


def expand_env_vars_recursive(data):
    """Recursively expand env vars in nested dict/list structures.

    None values produced by unresolved references are dropped from dicts.
    """
    if isinstance(data, dict):
        expanded = {k: expand_env_vars_recursive(v) for k, v in data.items()}
        return {k: v for k, v in expanded.items() if v is not None}
    elif isinstance(data, list):
        return [expand_env_vars_recursive(item) for item in data]
    elif isinstance(data, str):
        return expand_env_vars(data)
    else:
        return data


def load_config_from_yaml(config_path: Path, profile_name: str) -> ProfileConfig:
    """Load a profile from a YAML file.

    Args:
        config_path: Path to config YAML file
        profile_name: Name of profile to load

    Returns:
        ProfileConfig for the requested profile

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValidationError: If config is invalid
        KeyError: If profile doesn't exist
    """
    with open(config_path) as f:
        raw_data = yaml.safe_load(f) or {}

    expanded_data = expand_env_vars_recursive(raw_data)
    config_file = ConfigFile(**expanded_data)

    if profile_name not in config_file.profiles:
        available = ", ".join(config_file.profiles.keys())
        raise KeyError(
            f"Profile '{profile_name}' not found. " f"Available profiles: {available}"
        )

    profile = config_file.profiles[profile_name]
    profile.name = profile_name
    profile.config_path = str(config_path)
    return profile


def load_config_from_env() -> ProfileConfig:
    """Build a profile from environment variables (fallback mode).

    The tool registry comes from the bundled default profile so that the
    required tools are always declared.
    """
    tools = {}
    if DEFAULT_CONFIG_PATH.exists():
        with open(DEFAULT_CONFIG_PATH) as f:
            raw = yaml.safe_load(f) or {}
        raw_tools = raw.get("profiles", {}).get("default", {}).get("tools", {})
        tools = {
            name: ToolSpecConfig(**spec)
            for name, spec in expand_env_vars_recursive(raw_tools).items()
        }

    def agent_llm(model: str | None) -> LLMConfig:
        if settings.ANTHROPIC_API_KEY and not settings.OPENROUTER_API_KEY:
            return LLMConfig(
                backend="anthropic",
                model=model or settings.ANTHROPIC_DEFAULT_MODEL,
                api_key=settings.ANTHROPIC_API_KEY,
            )
        return LLMConfig(
            backend="openrouter",
            model=model or settings.OPENROUTER_DEFAULT_MODEL,
            api_key=settings.OPENROUTER_API_KEY,
            base_url=settings.OPENROUTER_BASE_URL,
        )

    return ProfileConfig(
        name="env",
        root=Path(settings.DEEBO_ROOT),
        mother=agent_llm(settings.MOTHER_MODEL),
        scenario=agent_llm(settings.SCENARIO_MODEL),
        memory_bank=MemoryBankConfig(enabled=settings.USE_MEMORY_BANK),
        tools=tools,
    )


def load_config(
    profile: str | None = None,
    config_path: Path | str | None = None,
) -> ProfileConfig:
    """Load configuration from a YAML file or environment variables.

    Args:
        profile: Profile name to load. If None, uses DEEBO_PROFILE env var
                or "default".
        config_path: Path to config file. If None, uses DEEBO_CONFIG or the
                    bundled deebo/config/profiles.yaml.

    Returns:
        ProfileConfig with all agent, tool and memory settings

    Raises:
        ValidationError: If configuration is invalid
        KeyError: If requested profile doesn't exist
    """
    if profile is None:
        profile = os.environ.get("DEEBO_PROFILE", settings.DEEBO_PROFILE)

    if config_path is None:
        config_path = os.environ.get("DEEBO_CONFIG") or DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if config_path.exists():
        try:
            return load_config_from_yaml(config_path, profile)
        except KeyError:
            raise
        except Exception as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")
            logger.warning("Falling back to environment variables...")
            return load_config_from_env()
    else:
        logger.warning(f"Config file {config_path} not found, using environment variables")
        return load_config_from_env()
