"""Data models for debugging sessions and their agents."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    """Lifecycle status of a debugging session."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETE, SessionStatus.ERROR, SessionStatus.CANCELLED)


class AgentStatus(str, Enum):
    """Lifecycle status of a single agent."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (AgentStatus.COMPLETE, AgentStatus.ERROR, AgentStatus.CANCELLED)


class AgentType(str, Enum):
    MOTHER = "mother"
    SCENARIO = "scenario"


class OodaPhase(str, Enum):
    """Phase of the mother agent's investigation loop."""

    OBSERVE = "observe"
    ORIENT = "orient"
    DECIDE = "decide"
    ACT = "act"


@dataclass
class DebugParams:
    """What a session is asked to investigate."""

    error: str
    repo_path: str
    context: str = ""
    language: str = "typescript"
    file_path: str = ""


@dataclass
class Session:
    """A debugging session; owned by the SessionManager."""

    id: str
    status: SessionStatus = SessionStatus.PENDING
    logs: list[str] = field(default_factory=list)
    final_result: str | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def add_log(self, message: str) -> None:
        self.logs.append(f"{datetime.now().isoformat()} {message}")

    def transition(
        self,
        status: SessionStatus,
        result: str | None = None,
        error: str | None = None,
    ) -> bool:
        """
        Move toward a new status.

        Terminal sessions never transition again; the attempt is logged and
        refused.

        Returns:
            True if the transition happened
        """
        if self.status.is_terminal:
            logger.warning(
                f"Session {self.id}: refused transition {self.status.value} -> {status.value}"
            )
            return False
        self.status = status
        if result is not None:
            self.final_result = result
        if error is not None:
            self.error = error
        self.add_log(f"status -> {status.value}")
        return True


@dataclass
class AgentRecord:
    """An agent spawned for a session (one mother, any number of scenarios)."""

    id: str
    type: AgentType
    session_id: str
    status: AgentStatus = AgentStatus.PENDING
    hypothesis: str | None = None
    handle: Any = None  # asyncio.Task for the mother, ScenarioProcess for scenarios
    started_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)

    def set_status(self, status: AgentStatus) -> bool:
        if self.status.is_terminal:
            return False
        self.status = status
        self.last_activity = datetime.now()
        return True


@dataclass
class ScenarioVerdict:
    """Normalized outcome of one scenario process."""

    id: str
    success: bool
    payload: dict[str, Any] = field(default_factory=dict)
    raw: str = ""  # Stream text the verdict was parsed from
    error: str | None = None
    reason: str | None = None  # e.g. "unparseable_output", "spawn_failed"

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.payload)
        data["id"] = self.id
        data["success"] = self.success
        if not self.success:
            if self.error is not None:
                data.setdefault("error", self.error)
            if self.reason is not None:
                data.setdefault("reason", self.reason)
        return data

    def transcript_text(self) -> str:
        """Text fed back to the mother agent for this scenario."""
        if self.success and self.raw:
            return self.raw.strip()
        return json.dumps(self.to_dict())


class SessionResponse(BaseModel):
    """Envelope returned by every session-control operation."""

    session_id: str
    status: SessionStatus
    message: str
    result: str | None = None
    timestamp: datetime = Field(default_factory=datetime.now)

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)
