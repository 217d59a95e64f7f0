"""Session orchestration: mother agent, scenarios, coordinator."""

from .models import (
    AgentRecord,
    AgentStatus,
    AgentType,
    DebugParams,
    OodaPhase,
    ScenarioVerdict,
    Session,
    SessionResponse,
    SessionStatus,
)
from .parsing import (
    ToolCall,
    ToolCallParseError,
    extract_hypotheses,
    extract_report,
    extract_solution,
    has_report,
    has_solution,
    parse_tool_calls,
)
from .session_manager import SessionManager
from .scenario import ScenarioProcess, classify_outcome
from .coordinator import AgentCoordinator
from .mother_agent import (
    InvestigationTimeoutError,
    MalformedResponseError,
    MotherAgent,
    execute_tool_calls,
)

__all__ = [
    # Models
    "Session",
    "SessionStatus",
    "SessionResponse",
    "AgentRecord",
    "AgentStatus",
    "AgentType",
    "OodaPhase",
    "DebugParams",
    "ScenarioVerdict",
    # Parsing
    "ToolCall",
    "ToolCallParseError",
    "parse_tool_calls",
    "extract_hypotheses",
    "has_solution",
    "extract_solution",
    "has_report",
    "extract_report",
    # Lifecycle
    "SessionManager",
    "ScenarioProcess",
    "classify_outcome",
    "AgentCoordinator",
    # Mother agent
    "MotherAgent",
    "InvestigationTimeoutError",
    "MalformedResponseError",
    "execute_tool_calls",
]
