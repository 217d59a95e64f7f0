"""Durable investigation memory kept per project."""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

ACTIVE_CONTEXT = "activeContext"
PROGRESS = "progress"


def get_project_id(repo_path: str | Path) -> str:
    """Stable short identifier for a repository path."""
    return hashlib.sha256(str(repo_path).encode("utf-8")).hexdigest()[:12]


class MemoryBank:
    """
    Append-only markdown notes for one project.

    Layout: <memory_root>/<project_id>/{activeContext,progress}.md

    Writes never raise: a failed write is logged and reported through the
    return value, since memory is not part of the investigation's control flow.
    """

    def __init__(self, memory_root: Path, project_id: str, enabled: bool = True):
        self.memory_root = Path(memory_root)
        self.project_id = project_id
        self.enabled = enabled

    @property
    def path(self) -> Path:
        return self.memory_root / self.project_id

    def append(self, name: str, content: str) -> bool:
        """
        Append content to a memory file.

        Args:
            name: File stem (activeContext or progress)
            content: Markdown text to append

        Returns:
            True if written, False if disabled or the write failed
        """
        if not self.enabled:
            return False

        target = self.path / f"{name}.md"
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "a", encoding="utf-8") as f:
                f.write(content if content.endswith("\n") else content + "\n")
            return True
        except OSError as e:
            logger.error(f"Failed to update memory bank {target}: {e}")
            return False

    def record_active_context(self, text: str) -> bool:
        return self.append(ACTIVE_CONTEXT, text)

    def record_session(
        self,
        session_id: str,
        error: str,
        outcome: str,
        scenarios_run: int,
        duration_seconds: float,
    ) -> bool:
        """Append a structured session record to progress.md."""
        record = "\n".join([
            "",
            f"## Debug Session {session_id} - {datetime.now().isoformat()}",
            f"Error: {error}" if error else "",
            outcome,
            f"Scenarios Run: {scenarios_run}",
            f"Duration: {round(duration_seconds)}s",
        ])
        return self.append(PROGRESS, record)

    def read(self, name: str) -> str:
        target = self.path / f"{name}.md"
        if not target.exists():
            return ""
        return target.read_text(encoding="utf-8")
