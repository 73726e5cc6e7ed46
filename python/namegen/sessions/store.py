"""Session persistence collaborator and its in-memory reference implementation."""

import copy
import logging
from threading import Lock
from typing import Callable, Dict, List, Optional, Protocol, runtime_checkable

from namegen.sessions.models import GenerationSession, SessionStatus

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionStore(Protocol):
    """Key-value storage for sessions, keyed by session id."""

    def create(self, session: GenerationSession) -> None: ...

    def get(self, session_id: str) -> Optional[GenerationSession]: ...

    def save(self, session: GenerationSession) -> None: ...

    def delete(self, session_id: str) -> bool: ...

    def list(
        self,
        user_id: Optional[str] = None,
        status: Optional[SessionStatus] = None,
    ) -> List[GenerationSession]: ...


class InMemorySessionStore:
    """Thread-safe dict-backed store; reads and writes copy the session."""

    def __init__(self):
        self._sessions: Dict[str, GenerationSession] = {}
        self._lock = Lock()
        self._on_delete: List[Callable[[GenerationSession], None]] = []

    def on_delete(self, hook: Callable[[GenerationSession], None]) -> None:
        """Register a cleanup hook for artifacts derived from a session."""
        self._on_delete.append(hook)

    def create(self, session: GenerationSession) -> None:
        with self._lock:
            if session.session_id in self._sessions:
                raise ValueError(f"Session {session.session_id} already exists")
            self._sessions[session.session_id] = copy.deepcopy(session)

    def get(self, session_id: str) -> Optional[GenerationSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            return copy.deepcopy(session) if session is not None else None

    def save(self, session: GenerationSession) -> None:
        with self._lock:
            self._sessions[session.session_id] = copy.deepcopy(session)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        for hook in self._on_delete:
            try:
                hook(session)
            except Exception as e:
                logger.error("Session delete hook failed for %s: %s", session_id, e)
        return True

    def list(
        self,
        user_id: Optional[str] = None,
        status: Optional[SessionStatus] = None,
    ) -> List[GenerationSession]:
        with self._lock:
            sessions = [copy.deepcopy(s) for s in self._sessions.values()]
        return [
            s for s in sessions
            if (user_id is None or s.user_id == user_id) and (status is None or s.status == status)
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
