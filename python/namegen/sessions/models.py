"""
Generation session data model and lifecycle.

Session status only moves forward:

    pending -> running -> completed | partial | failed
    running -> cancelled
    pending -> failed            (nothing dispatchable)

Per-model state lives beside it; a model's result is accepted only while the
model is still pending or running, so late arrivals after cancellation or
timeout are dropped.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from namegen.exceptions import InvalidStateTransitionError, ValidationError
from namegen.llm.prompts import GenerationMode


class SessionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"
    NOT_FOUND = "not_found"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class ModelRunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNAVAILABLE = "unavailable"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self not in (ModelRunStatus.PENDING, ModelRunStatus.RUNNING)


TERMINAL_STATUSES = frozenset({
    SessionStatus.COMPLETED,
    SessionStatus.PARTIAL,
    SessionStatus.FAILED,
    SessionStatus.CANCELLED,
})

ALLOWED_TRANSITIONS: Dict[SessionStatus, frozenset] = {
    SessionStatus.PENDING: frozenset({SessionStatus.RUNNING, SessionStatus.FAILED}),
    SessionStatus.RUNNING: frozenset({
        SessionStatus.COMPLETED,
        SessionStatus.PARTIAL,
        SessionStatus.FAILED,
        SessionStatus.CANCELLED,
    }),
}


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass
class ModelMetrics:
    """Measured cost of one model's run within a session."""
    execution_ms: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    cost_cents: int = 0
    names_generated: int = 0
    cached: bool = False
    error_kind: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["total_tokens"] = self.total_tokens
        return data


@dataclass
class StatusSnapshot:
    """Point-in-time view of a session, safe to hand to callers."""
    session_id: str
    status: SessionStatus
    results: Dict[str, Optional[List[str]]] = field(default_factory=dict)
    model_status: Dict[str, str] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    total_names_generated: int = 0
    total_cost_cents: int = 0
    total_tokens: int = 0
    per_model_metrics: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    error_message: Optional[str] = None

    @classmethod
    def not_found(cls, session_id: str) -> "StatusSnapshot":
        return cls(session_id=session_id, status=SessionStatus.NOT_FOUND, error_message="Session not found")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "results": self.results,
            "model_status": self.model_status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "total_names_generated": self.total_names_generated,
            "total_cost_cents": self.total_cost_cents,
            "total_tokens": self.total_tokens,
            "per_model_metrics": self.per_model_metrics,
            "error_message": self.error_message,
        }


def normalize_models(models: List[str]) -> List[str]:
    """Preserve order, drop blanks and duplicates."""
    seen = set()
    ordered = []
    for model_id in models or []:
        model_id = (model_id or "").strip()
        if model_id and model_id not in seen:
            seen.add(model_id)
            ordered.append(model_id)
    return ordered


@dataclass
class GenerationSession:
    """One user request fanned out to one or more models."""
    user_id: str
    prompt: str
    requested_models: List[str]
    mode: GenerationMode = GenerationMode.CREATIVE
    deep_thinking: bool = False
    parameters: Dict[str, Any] = field(default_factory=dict)
    project_id: Optional[str] = None
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: SessionStatus = SessionStatus.PENDING
    model_status: Dict[str, ModelRunStatus] = field(default_factory=dict)
    results: Dict[str, List[str]] = field(default_factory=dict)
    metrics: Dict[str, ModelMetrics] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    def __post_init__(self):
        self.requested_models = normalize_models(self.requested_models)
        if not self.requested_models:
            raise ValidationError("At least one model must be requested")
        if isinstance(self.mode, str) and not isinstance(self.mode, GenerationMode):
            self.mode = GenerationMode(self.mode)
        for model_id in self.requested_models:
            self.model_status.setdefault(model_id, ModelRunStatus.PENDING)

    # --- Session lifecycle ---

    def transition(self, target: SessionStatus) -> None:
        if target not in ALLOWED_TRANSITIONS.get(self.status, frozenset()):
            raise InvalidStateTransitionError(self.status.value, target.value)
        self.status = target
        if target == SessionStatus.RUNNING:
            self.started_at = utcnow()
        elif target.is_terminal:
            self.completed_at = utcnow()

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None:
            return None
        end = self.completed_at or utcnow()
        return round((end - self.started_at).total_seconds(), 3)

    def fail(self, reason: str) -> None:
        self.error_message = reason
        self.transition(SessionStatus.FAILED)

    def cancel(self) -> bool:
        """Cancel a running session; in-flight models are marked cancelled."""
        if self.status != SessionStatus.RUNNING:
            return False
        for model_id, state in self.model_status.items():
            if not state.is_terminal:
                self.model_status[model_id] = ModelRunStatus.CANCELLED
        self.transition(SessionStatus.CANCELLED)
        return True

    def finalize(self) -> SessionStatus:
        """Settle a running session from whatever completed."""
        if self.status != SessionStatus.RUNNING:
            return self.status
        for model_id, state in self.model_status.items():
            if not state.is_terminal:
                self.model_status[model_id] = ModelRunStatus.ABANDONED

        usable = [m for m, names in self.results.items() if names]
        if not usable:
            self.error_message = self.error_message or "No model produced any names"
            target = SessionStatus.FAILED
        elif all(m in self.results for m in self.requested_models):
            target = SessionStatus.COMPLETED
        else:
            target = SessionStatus.PARTIAL
        self.transition(target)
        return target

    # --- Per-model state ---

    def mark_model(self, model_id: str, state: ModelRunStatus) -> bool:
        current = self.model_status.get(model_id)
        if current is None or current.is_terminal:
            return False
        self.model_status[model_id] = state
        return True

    def record_result(self, model_id: str, names: List[str], metrics: Optional[ModelMetrics] = None) -> bool:
        """Store a model's names; returns False when the result arrived too late."""
        if self.is_terminal or not self.mark_model(model_id, ModelRunStatus.COMPLETED):
            return False
        self.results[model_id] = list(names)
        metrics = metrics or ModelMetrics()
        metrics.names_generated = len(names)
        self.metrics[model_id] = metrics
        return True

    def record_failure(self, model_id: str, error_kind: str, metrics: Optional[ModelMetrics] = None) -> bool:
        if self.is_terminal or not self.mark_model(model_id, ModelRunStatus.FAILED):
            return False
        metrics = metrics or ModelMetrics()
        metrics.error_kind = error_kind
        self.metrics[model_id] = metrics
        return True

    def models_in(self, *states: ModelRunStatus) -> List[str]:
        return [m for m in self.requested_models if self.model_status.get(m) in states]

    # --- Derived totals ---

    def _completed_metrics(self) -> List[ModelMetrics]:
        return [
            self.metrics[m] for m in self.requested_models
            if self.model_status.get(m) == ModelRunStatus.COMPLETED and m in self.metrics
        ]

    @property
    def total_names_generated(self) -> int:
        return sum(m.names_generated for m in self._completed_metrics())

    @property
    def total_cost_cents(self) -> int:
        return sum(m.cost_cents for m in self._completed_metrics())

    @property
    def total_tokens(self) -> int:
        return sum(m.total_tokens for m in self._completed_metrics())

    def snapshot(self) -> StatusSnapshot:
        return StatusSnapshot(
            session_id=self.session_id,
            status=self.status,
            results={m: (list(self.results[m]) if m in self.results else None) for m in self.requested_models},
            model_status={m: self.model_status[m].value for m in self.requested_models},
            started_at=self.started_at,
            completed_at=self.completed_at,
            duration_seconds=self.duration_seconds,
            total_names_generated=self.total_names_generated,
            total_cost_cents=self.total_cost_cents,
            total_tokens=self.total_tokens,
            per_model_metrics={m: metrics.to_dict() for m, metrics in self.metrics.items()},
            error_message=self.error_message,
        )
