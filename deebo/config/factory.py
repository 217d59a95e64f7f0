"""Factory functions to create runtime components from configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..audit import AuditLogger
    from ..llm.protocols import LLMProvider
    from ..memory import MemoryBank
    from ..orchestration.coordinator import AgentCoordinator, MotherFactory
    from ..service import DebugService
    from ..tools.connection import Connector, ToolConnectionManager
    from ..tools.registry import ToolRegistry
    from .loader import LLMConfig, ProfileConfig


class MockLLMProvider:
    """Mock LLM provider for testing.

    Replays scripted responses in order and keeps repeating the last one.
    Every transcript it is called with is recorded in `calls`.
    """

    def __init__(self, responses: list[str] | None = None):
        self.responses = list(responses or ["<solution>[Mock response]</solution>"])
        self.calls: list[list] = []

    async def complete_messages(
        self,
        messages: list,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str:
        """Return the next scripted completion for messages."""
        index = min(len(self.calls), len(self.responses) - 1)
        self.calls.append(list(messages))
        return self.responses[index]

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


def create_llm_provider(config: LLMConfig) -> LLMProvider:
    """Create an LLM backend from configuration.

    Args:
        config: Agent LLM configuration

    Returns:
        LLMProvider instance (OpenRouterAdapter, AnthropicAdapter, or Mock)

    Raises:
        ValueError: If backend type is not supported
    """
    if config.backend == "openrouter":
        from ..llm import OpenRouterAdapter

        if not config.api_key:
            raise ValueError("OpenRouter backend requires api_key")

        return OpenRouterAdapter(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
        )

    elif config.backend == "anthropic":
        from ..llm import AnthropicAdapter

        if not config.api_key:
            raise ValueError("Anthropic backend requires api_key")

        return AnthropicAdapter(
            api_key=config.api_key,
            model=config.model,
            max_tokens=config.max_tokens,
        )

    elif config.backend == "mock":
        return MockLLMProvider(config.responses)

    else:
        raise ValueError(f"Unsupported LLM backend: {config.backend}")


def create_tool_registry(profile: ProfileConfig) -> ToolRegistry:
    """Build and validate the closed tool registry of a profile.

    Raises:
        ToolConfigurationError: If the registry is invalid
    """
    from ..tools.registry import ToolRegistry

    return ToolRegistry.from_config(profile.tools, profile.executables)


def create_tool_manager(
    profile: ProfileConfig,
    registry: ToolRegistry | None = None,
    connector: Connector | None = None,
) -> ToolConnectionManager:
    """Create the tool connection pool for a profile.

    Tool server stderr is captured under <root>/logs.
    """
    from ..tools.connection import ToolConnectionManager

    return ToolConnectionManager(
        registry or create_tool_registry(profile),
        profile.memory_root,
        connector=connector,
        log_dir=profile.root / "logs",
        handshake_timeout=profile.connections.handshake_timeout_seconds,
    )


def create_memory_bank(profile: ProfileConfig, repo_path: str) -> MemoryBank:
    from ..memory import MemoryBank, get_project_id

    return MemoryBank(
        profile.memory_root,
        get_project_id(repo_path),
        enabled=profile.memory_bank.enabled,
    )


def scenario_environment(profile: ProfileConfig) -> dict[str, str]:
    """Environment that lets a scenario process load the same profile."""
    env = {"DEEBO_ROOT": str(profile.root)}
    if profile.config_path:
        env["DEEBO_PROFILE"] = profile.name
        env["DEEBO_CONFIG"] = profile.config_path
    return env


def create_mother_factory(
    profile: ProfileConfig,
    audit: AuditLogger | None = None,
) -> MotherFactory:
    """Create the callable the coordinator uses to build a session's mother agent."""
    from ..memory import get_project_id
    from ..orchestration.mother_agent import MOTHER_AGENT_NAME, MotherAgent

    def factory(coordinator, session, params):
        log = None
        if audit is not None:
            log = audit.for_agent(get_project_id(params.repo_path), session.id, MOTHER_AGENT_NAME)
        return MotherAgent(
            session=session,
            params=params,
            llm=create_llm_provider(profile.mother),
            coordinator=coordinator,
            config=profile.mother_agent,
            llm_config=profile.mother,
            memory=create_memory_bank(profile, params.repo_path),
            log=log,
        )

    return factory


def create_coordinator(
    profile: ProfileConfig,
    tools: ToolConnectionManager,
    mother_factory: MotherFactory | None = None,
    audit: AuditLogger | None = None,
) -> AgentCoordinator:
    """Create an AgentCoordinator with its own SessionManager."""
    from ..orchestration.coordinator import AgentCoordinator
    from ..orchestration.session_manager import SessionManager

    return AgentCoordinator(
        SessionManager(),
        tools,
        mother_factory or create_mother_factory(profile, audit),
        scenario_command=profile.scenario_agent.command,
        scenario_env=scenario_environment(profile),
        terminate_grace=profile.scenario_agent.terminate_grace_seconds,
    )


def create_service(
    profile: ProfileConfig,
    connector: Connector | None = None,
    mother_factory: MotherFactory | None = None,
) -> DebugService:
    """Create a complete DebugService from a profile.

    This is the main factory function: it validates the tool registry and
    wires the pool, coordinator and audit log together.

    Args:
        profile: Profile configuration
        connector: Optional replacement for the MCP connector
        mother_factory: Optional replacement for the mother agent

    Returns:
        DebugService instance

    Raises:
        ToolConfigurationError: If the tool registry is invalid
    """
    from ..audit import AuditLogger
    from ..service import DebugService

    audit = AuditLogger(profile.memory_root)
    tools = create_tool_manager(profile, connector=connector)
    coordinator = create_coordinator(profile, tools, mother_factory, audit)
    return DebugService(profile, coordinator, audit)
