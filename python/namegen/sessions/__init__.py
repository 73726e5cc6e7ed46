"""Generation sessions and their storage."""

from namegen.sessions.models import (
    GenerationSession,
    ModelMetrics,
    ModelRunStatus,
    SessionStatus,
    StatusSnapshot,
)
from namegen.sessions.store import InMemorySessionStore, SessionStore

__all__ = [
    "GenerationSession",
    "InMemorySessionStore",
    "ModelMetrics",
    "ModelRunStatus",
    "SessionStatus",
    "SessionStore",
    "StatusSnapshot",
]
