"""In-memory session table."""

from __future__ import annotations

import logging

from .models import Session

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns Session objects; lookups never create sessions implicitly."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}

    def create(self, session_id: str) -> Session:
        if session_id in self._sessions:
            raise ValueError(f"Session already exists: {session_id}")
        session = Session(id=session_id)
        session.add_log("session created")
        self._sessions[session_id] = session
        logger.info(f"Created session {session_id}")
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def list(self) -> list[Session]:
        return list(self._sessions.values())

    def remove(self, session_id: str) -> Session | None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.info(f"Removed session {session_id}")
        return session
