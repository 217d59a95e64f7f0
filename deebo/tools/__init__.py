"""External tool servers: registry, MCP client and connection pool."""

from .registry import (
    FILESYSTEM_TOOL,
    GIT_TOOL,
    REQUIRED_TOOLS,
    ResolvedTool,
    ToolConfigurationError,
    ToolRegistry,
    ToolSpec,
)
from .client import McpToolClient, ToolClient, ToolConnectionError
from .connection import ConnectionKey, ToolConnectionManager

__all__ = [
    # Registry
    "ToolRegistry",
    "ToolSpec",
    "ResolvedTool",
    "ToolConfigurationError",
    "GIT_TOOL",
    "FILESYSTEM_TOOL",
    "REQUIRED_TOOLS",
    # Client
    "ToolClient",
    "McpToolClient",
    "ToolConnectionError",
    # Pool
    "ToolConnectionManager",
    "ConnectionKey",
]
