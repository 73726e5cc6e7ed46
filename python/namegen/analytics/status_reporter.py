"""Status and metrics reporting over session history and the usage ledger.

Read-only: nothing here feeds back into coordination decisions. Results are
cached with short TTLs so dashboards stay cheap.
"""

import logging
import math
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from namegen.cache.store import CacheStore
from namegen.config.settings import Settings, get_settings
from namegen.cost.usage import UsageLedger
from namegen.llm.registry import ModelRegistry
from namegen.logging_utils import track_performance
from namegen.notifications.notification_service import NotificationService, Severity
from namegen.sessions.models import TERMINAL_STATUSES, GenerationSession, SessionStatus
from namegen.sessions.store import SessionStore

logger = logging.getLogger(__name__)

CACHE_PREFIX = "status_reporter:"

ALERT_THRESHOLDS = {
    "error_rate": 10.0,       # percent of sessions failing in the last hour
    "response_time": 30.0,    # average session duration, seconds
    "cost_per_hour": 5.0,     # USD spent in the last hour
}

SUCCESS_WINDOWS: Dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
}

_SUCCESSFUL = (SessionStatus.COMPLETED, SessionStatus.PARTIAL)


def _percentile(sorted_values: List[float], pct: float) -> float:
    if not sorted_values:
        return 0.0
    index = max(0, math.ceil(pct / 100 * len(sorted_values)) - 1)
    return sorted_values[index]


def _day_start(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


class StatusReporter:
    """Derives operational metrics; never mutates sessions or the ledger."""

    def __init__(
        self,
        store: SessionStore,
        ledger: UsageLedger,
        registry: ModelRegistry,
        cache: Optional[CacheStore] = None,
        settings_provider: Callable[[], Settings] = get_settings,
        notifications: Optional[NotificationService] = None,
        budget_tracker=None,
    ):
        self.store = store
        self.ledger = ledger
        self.registry = registry
        self.cache = cache or CacheStore()
        self._settings_provider = settings_provider
        self.notifications = notifications
        self.budget_tracker = budget_tracker
        self._published: Set[Tuple[str, str]] = set()

    def _now(self) -> datetime:
        return self.ledger.now()

    def _cached(self, name: str, ttl: int, factory: Callable[[], Any]) -> Any:
        return self.cache.remember(f"{CACHE_PREFIX}{name}", ttl, factory)

    def invalidate(self) -> int:
        return self.cache.delete_prefix(CACHE_PREFIX)

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def current_stats(self) -> Dict[str, Any]:
        ttl = self._settings_provider().reporter_snapshot_ttl_seconds
        return self._cached("current_stats", ttl, self._compute_current_stats)

    def _compute_current_stats(self) -> Dict[str, Any]:
        sessions = self.store.list()
        today = _day_start(self._now())
        todays = [s for s in sessions if s.created_at >= today]
        by_status = Counter(s.status.value for s in sessions)
        return {
            "sessions_by_status": {status.value: by_status.get(status.value, 0)
                                   for status in SessionStatus if status != SessionStatus.NOT_FOUND},
            "active_sessions": by_status.get(SessionStatus.RUNNING.value, 0),
            "sessions_today": len(todays),
            "completed_today": sum(1 for s in todays if s.status in _SUCCESSFUL),
            "failed_today": sum(1 for s in todays if s.status == SessionStatus.FAILED),
            "names_generated_today": sum(s.total_names_generated for s in todays),
        }

    def success_rates(self) -> Dict[str, Dict[str, Any]]:
        ttl = self._settings_provider().reporter_error_rate_ttl_seconds
        return self._cached("success_rates", ttl, self._compute_success_rates)

    def _compute_success_rates(self) -> Dict[str, Dict[str, Any]]:
        now = self._now()
        finished = [s for s in self.store.list() if s.status in TERMINAL_STATUSES and s.status != SessionStatus.CANCELLED]
        rates = {}
        for label, span in SUCCESS_WINDOWS.items():
            window = [s for s in finished if s.created_at >= now - span]
            succeeded = sum(1 for s in window if s.status in _SUCCESSFUL)
            total = len(window)
            rates[label] = {
                "total": total,
                "succeeded": succeeded,
                "failed": total - succeeded,
                "rate": round(succeeded / total * 100, 2) if total else 100.0,
            }
        return rates

    def response_times(self) -> Dict[str, Any]:
        ttl = self._settings_provider().reporter_error_rate_ttl_seconds
        return self._cached("response_times", ttl, self._compute_response_times)

    def _compute_response_times(self) -> Dict[str, Any]:
        since = self._now() - timedelta(hours=24)
        durations = sorted(
            s.duration_seconds for s in self.store.list()
            if s.status in TERMINAL_STATUSES and s.completed_at and s.completed_at >= since
            and s.duration_seconds is not None
        )
        if not durations:
            return {"count": 0, "avg": 0.0, "min": 0.0, "max": 0.0, "p50": 0.0, "p95": 0.0}
        return {
            "count": len(durations),
            "avg": round(sum(durations) / len(durations), 3),
            "min": durations[0],
            "max": durations[-1],
            "p50": _percentile(durations, 50),
            "p95": _percentile(durations, 95),
        }

    def model_health(self) -> Dict[str, Dict[str, Any]]:
        ttl = self._settings_provider().reporter_model_health_ttl_seconds
        return self._cached("model_health", ttl, self._compute_model_health)

    def _compute_model_health(self) -> Dict[str, Dict[str, Any]]:
        settings = self._settings_provider()
        since = self._now() - timedelta(minutes=settings.health_window_minutes)
        health = {}
        for descriptor in self.registry.all():
            records = self.ledger.records(since=since, model_id=descriptor.model_id)
            attempts = len(records)
            successes = sum(1 for r in records if r.success)
            latencies = [r.latency_ms for r in records if r.success]
            if attempts == 0:
                state = "idle"
                rate = None
            else:
                rate = successes / attempts
                if rate >= settings.health_healthy_threshold:
                    state = "healthy"
                elif rate >= settings.health_degraded_threshold:
                    state = "degraded"
                else:
                    state = "unhealthy"
            health[descriptor.model_id] = {
                "health": state,
                "availability": self.registry.status(descriptor.model_id).value,
                "attempts": attempts,
                "successes": successes,
                "success_rate": round(rate * 100, 2) if rate is not None else None,
                "avg_latency_ms": round(sum(latencies) / len(latencies), 2) if latencies else None,
            }
        return health

    def cost_analysis(self) -> Dict[str, Any]:
        now = self._now()
        today = _day_start(now)
        month = today.replace(day=1)
        today_records = self.ledger.records(since=today)
        by_model: Dict[str, float] = defaultdict(float)
        for r in today_records:
            by_model[r.model_id] = round(by_model[r.model_id] + r.cost_usd, 6)
        return {
            "today": {
                "total_cost": self.ledger.total_cost(since=today),
                "requests": len(today_records),
                "by_model": dict(by_model),
            },
            "month": {"total_cost": self.ledger.total_cost(since=month)},
            "last_hour": {"total_cost": self.ledger.total_cost(since=now - timedelta(hours=1))},
        }

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def active_alerts(self) -> List[Dict[str, Any]]:
        alerts = []

        hour = self.success_rates()["1h"]
        error_rate = round(hour["failed"] / hour["total"] * 100, 2) if hour["total"] else 0.0
        if error_rate > ALERT_THRESHOLDS["error_rate"]:
            alerts.append({
                "type": "error_rate",
                "severity": "high",
                "message": f"High error rate: {error_rate}% in the last hour",
                "threshold": ALERT_THRESHOLDS["error_rate"],
                "current_value": error_rate,
            })

        times = self.response_times()
        if times["count"] and times["avg"] > ALERT_THRESHOLDS["response_time"]:
            alerts.append({
                "type": "response_time",
                "severity": "medium",
                "message": f"High average response time: {times['avg']:.1f}s",
                "threshold": ALERT_THRESHOLDS["response_time"],
                "current_value": times["avg"],
            })

        hourly_cost = self.cost_analysis()["last_hour"]["total_cost"]
        if hourly_cost > ALERT_THRESHOLDS["cost_per_hour"]:
            alerts.append({
                "type": "cost",
                "severity": "medium",
                "message": f"High cost rate: ${hourly_cost:.2f} per hour",
                "threshold": ALERT_THRESHOLDS["cost_per_hour"],
                "current_value": hourly_cost,
            })
        return alerts

    async def publish_alerts(self) -> int:
        """Forward active alerts to notifications, once per alert type per hour."""
        if self.notifications is None:
            return 0
        hour_key = self._now().strftime("%Y-%m-%dT%H")
        sent = 0
        for alert in self.active_alerts():
            key = (alert["type"], hour_key)
            if key in self._published:
                continue
            self._published.add(key)
            severity = Severity.ERROR if alert["severity"] == "high" else Severity.WARNING
            await self.notifications.notify(
                title=f"Generation monitoring alert: {alert['type']}",
                body=alert["message"],
                severity=severity,
                source="status_reporter",
                metadata=alert,
            )
            sent += 1
        return sent

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    @track_performance
    def dashboard(self) -> Dict[str, Any]:
        data = {
            "current_stats": self.current_stats(),
            "success_rates": self.success_rates(),
            "response_times": self.response_times(),
            "model_health": self.model_health(),
            "cost_analysis": self.cost_analysis(),
            "alerts": self.active_alerts(),
            "generated_at": self._now().isoformat(),
        }
        if self.budget_tracker is not None:
            budget = self.budget_tracker.check_budget()
            data["budget"] = {
                "daily": budget["daily"].to_dict(),
                "monthly": budget["monthly"].to_dict(),
                "alert_threshold": budget["alert_threshold"],
            }
        return data

    @track_performance(operation="status_report")
    def generate_report(self, days: int = 7) -> Dict[str, Any]:
        now = self._now()
        start = _day_start(now) - timedelta(days=days - 1)
        sessions = [s for s in self.store.list() if s.created_at >= start]
        records = self.ledger.records(since=start)

        durations = [s.duration_seconds for s in sessions if s.status in TERMINAL_STATUSES and s.duration_seconds is not None]
        return {
            "period": {"start": start.date().isoformat(), "end": now.date().isoformat(), "days": days},
            "summary": {
                "total_generations": len(sessions),
                "successful_generations": sum(1 for s in sessions if s.status in _SUCCESSFUL),
                "failed_generations": sum(1 for s in sessions if s.status == SessionStatus.FAILED),
                "cancelled_generations": sum(1 for s in sessions if s.status == SessionStatus.CANCELLED),
                "total_names_generated": sum(s.total_names_generated for s in sessions),
                "unique_users": len({s.user_id for s in sessions}),
                "average_duration_seconds": round(sum(durations) / len(durations), 3) if durations else 0.0,
                "total_cost": round(sum(r.cost_usd for r in records), 6),
            },
            "daily_breakdown": self._daily_breakdown(sessions, start, days),
            "model_usage": self._model_usage(records),
            "cost_trend": self.ledger.cost_trends(days=days),
        }

    @staticmethod
    def _daily_breakdown(sessions: List[GenerationSession], start: datetime, days: int) -> List[Dict[str, Any]]:
        breakdown = []
        for offset in range(days):
            day_start = start + timedelta(days=offset)
            day_end = day_start + timedelta(days=1)
            day = [s for s in sessions if day_start <= s.created_at < day_end]
            breakdown.append({
                "date": day_start.date().isoformat(),
                "sessions": len(day),
                "completed": sum(1 for s in day if s.status == SessionStatus.COMPLETED),
                "partial": sum(1 for s in day if s.status == SessionStatus.PARTIAL),
                "failed": sum(1 for s in day if s.status == SessionStatus.FAILED),
                "cancelled": sum(1 for s in day if s.status == SessionStatus.CANCELLED),
                "names_generated": sum(s.total_names_generated for s in day),
            })
        return breakdown

    @staticmethod
    def _model_usage(records) -> Dict[str, Dict[str, Any]]:
        usage: Dict[str, Dict[str, Any]] = defaultdict(
            lambda: {"requests": 0, "successes": 0, "tokens": 0, "cost": 0.0, "latency_total": 0.0}
        )
        for r in records:
            entry = usage[r.model_id]
            entry["requests"] += 1
            entry["successes"] += int(r.success)
            entry["tokens"] += r.total_tokens
            entry["cost"] = round(entry["cost"] + r.cost_usd, 6)
            entry["latency_total"] += r.latency_ms
        report = {}
        for model_id, entry in usage.items():
            latency_total = entry.pop("latency_total")
            entry["success_rate"] = round(entry["successes"] / entry["requests"] * 100, 2)
            entry["avg_latency_ms"] = round(latency_total / entry["requests"], 2)
            report[model_id] = entry
        return report
