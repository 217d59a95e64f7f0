"""Configuration system for agent backends, tools and limits."""

from .loader import (
    load_config,
    load_config_from_yaml,
    load_config_from_env,
    ProfileConfig,
    LLMConfig,
    ToolSpecConfig,
    ToolFallbackConfig,
    MotherAgentConfig,
    ScenarioAgentConfig,
    MemoryBankConfig,
    ToolConnectionConfig,
)
from .factory import (
    MockLLMProvider,
    create_llm_provider,
    create_tool_registry,
    create_tool_manager,
    create_memory_bank,
    create_mother_factory,
    create_coordinator,
    create_service,
)

__all__ = [
    # Loader
    "load_config",
    "load_config_from_yaml",
    "load_config_from_env",
    "ProfileConfig",
    "LLMConfig",
    "ToolSpecConfig",
    "ToolFallbackConfig",
    "MotherAgentConfig",
    "ScenarioAgentConfig",
    "MemoryBankConfig",
    "ToolConnectionConfig",
    # Factory
    "MockLLMProvider",
    "create_llm_provider",
    "create_tool_registry",
    "create_tool_manager",
    "create_memory_bank",
    "create_mother_factory",
    "create_coordinator",
    "create_service",
]
