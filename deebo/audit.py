"""Per-session, per-agent audit log sink.

Every agent of a session gets its own append-only JSONL file:

    <memory_root>/<project_id>/sessions/<session_id>/logs/<agent>.log

Each line is {"timestamp", "agent", "level", "message", "data"}. Records are
mirrored to stdlib logging so the console shows the same stream.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class AgentLog:
    """Audit stream bound to one (session, agent) pair."""

    def __init__(self, path: Path, session_id: str, agent: str):
        self.path = path
        self.session_id = session_id
        self.agent = agent

    def log(self, level: str, message: str, data: dict[str, Any] | None = None) -> None:
        entry = {
            "timestamp": datetime.now().isoformat(),
            "agent": self.agent,
            "level": level,
            "message": message,
            "data": data,
        }

        logger.log(
            _LEVELS.get(level, logging.INFO),
            f"[{self.session_id}/{self.agent}] {message}",
        )

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            logger.warning(f"Failed to write audit log {self.path}: {e}")

    def debug(self, message: str, **data: Any) -> None:
        self.log("debug", message, data or None)

    def info(self, message: str, **data: Any) -> None:
        self.log("info", message, data or None)

    def warn(self, message: str, **data: Any) -> None:
        self.log("warn", message, data or None)

    def error(self, message: str, **data: Any) -> None:
        self.log("error", message, data or None)


class AuditLogger:
    """Factory for agent log streams under one memory root."""

    def __init__(self, memory_root: Path):
        self.memory_root = Path(memory_root)

    def log_path(self, project_id: str, session_id: str, agent: str) -> Path:
        return (
            self.memory_root / project_id / "sessions" / session_id / "logs" / f"{agent}.log"
        )

    def for_agent(self, project_id: str, session_id: str, agent: str) -> AgentLog:
        return AgentLog(self.log_path(project_id, session_id, agent), session_id, agent)

    def read(self, project_id: str, session_id: str, agent: str) -> list[dict]:
        """Read back an agent's records in write order."""
        path = self.log_path(project_id, session_id, agent)
        if not path.exists():
            return []
        with open(path, encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
