"""Append-only usage ledger fed by finished model calls."""

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

PERIODS: Dict[str, timedelta] = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
}


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class UsageRecord:
    """One model call attributed to a session and user."""
    session_id: str
    user_id: str
    model_id: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    latency_ms: float
    success: bool
    error_kind: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class UsageLedger:
    """Thread-safe in-memory usage log. Records are never modified once appended."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._records: List[UsageRecord] = []
        self._lock = Lock()
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def append(self, record: UsageRecord) -> None:
        with self._lock:
            self._records.append(record)
        logger.debug(
            "Recorded usage: model=%s tokens=%d cost=%.6f success=%s",
            record.model_id, record.total_tokens, record.cost_usd, record.success,
        )

    def records(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        user_id: Optional[str] = None,
        model_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> List[UsageRecord]:
        with self._lock:
            snapshot = list(self._records)
        return [
            r for r in snapshot
            if (since is None or r.timestamp >= since)
            and (until is None or r.timestamp < until)
            and (user_id is None or r.user_id == user_id)
            and (model_id is None or r.model_id == model_id)
            and (session_id is None or r.session_id == session_id)
        ]

    def total_cost(self, since: Optional[datetime] = None, until: Optional[datetime] = None) -> float:
        return round(sum(r.cost_usd for r in self.records(since=since, until=until)), 6)

    def stats(self, period: str = "day", user_id: Optional[str] = None) -> Dict[str, Any]:
        """Aggregate requests, tokens, cost and latency over a trailing period."""
        if period not in PERIODS:
            raise ValueError(f"Unknown period: {period}")
        entries = self.records(since=self.now() - PERIODS[period], user_id=user_id)

        successes = sum(1 for r in entries if r.success)
        by_model: Dict[str, Dict[str, Any]] = defaultdict(
            lambda: {"requests": 0, "successes": 0, "tokens": 0, "cost": 0.0}
        )
        for r in entries:
            bucket = by_model[r.model_id]
            bucket["requests"] += 1
            bucket["successes"] += int(r.success)
            bucket["tokens"] += r.total_tokens
            bucket["cost"] = round(bucket["cost"] + r.cost_usd, 6)

        latencies = [r.latency_ms for r in entries if r.success]
        return {
            "period": period,
            "requests": len(entries),
            "successes": successes,
            "failures": len(entries) - successes,
            "success_rate": round(successes / len(entries) * 100, 2) if entries else 0.0,
            "total_tokens": sum(r.total_tokens for r in entries),
            "total_cost": round(sum(r.cost_usd for r in entries), 6),
            "avg_latency_ms": round(sum(latencies) / len(latencies), 2) if latencies else 0.0,
            "by_model": dict(by_model),
        }

    def cost_trends(self, days: int = 7) -> List[Dict[str, Any]]:
        """Daily tokens/cost/requests for the last ``days`` days, oldest first."""
        now = self.now()
        trend: List[Dict[str, Any]] = []
        for i in range(days - 1, -1, -1):
            day = (now - timedelta(days=i)).date()
            day_start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
            entries = self.records(since=day_start, until=day_start + timedelta(days=1))
            trend.append({
                "date": day.isoformat(),
                "requests": len(entries),
                "tokens": sum(r.total_tokens for r in entries),
                "cost": round(sum(r.cost_usd for r in entries), 6),
            })
        return trend

    def top_spenders(self, since: Optional[datetime] = None, limit: int = 10) -> List[Dict[str, Any]]:
        totals: Dict[str, Dict[str, Any]] = defaultdict(lambda: {"requests": 0, "tokens": 0, "cost": 0.0})
        for r in self.records(since=since):
            entry = totals[r.user_id]
            entry["requests"] += 1
            entry["tokens"] += r.total_tokens
            entry["cost"] = round(entry["cost"] + r.cost_usd, 6)
        ranked = sorted(totals.items(), key=lambda kv: kv[1]["cost"], reverse=True)
        return [{"user_id": user_id, **data} for user_id, data in ranked[:limit]]

    def cleanup(self, retention_days: int = 90) -> int:
        """Drop records older than the retention window; returns how many went."""
        cutoff = self.now() - timedelta(days=retention_days)
        with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if r.timestamp >= cutoff]
            removed = before - len(self._records)
        if removed:
            logger.info("Cleaned up %d usage records older than %d days", removed, retention_days)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
