"""Durable memory bank shared across debugging sessions."""

from .bank import ACTIVE_CONTEXT, PROGRESS, MemoryBank, get_project_id

__all__ = [
    "MemoryBank",
    "get_project_id",
    "ACTIVE_CONTEXT",
    "PROGRESS",
]
