"""Deebo: autonomous debugging with a mother agent and scenario agents."""

__version__ = "1.0.0"

from .orchestration.models import DebugParams, SessionResponse, SessionStatus
from .service import DebugService

__all__ = [
    "__version__",
    "DebugParams",
    "DebugService",
    "SessionResponse",
    "SessionStatus",
]
