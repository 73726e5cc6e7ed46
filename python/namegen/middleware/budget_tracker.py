"""System-wide spend tracking over daily and monthly windows."""

import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Set, Tuple

from namegen.config.settings import Settings, get_settings
from namegen.cost.usage import UsageLedger
from namegen.notifications.notification_service import NotificationService, Severity

logger = logging.getLogger(__name__)


@dataclass
class BudgetStatus:
    budget: float
    spent: float
    remaining: float
    percentage: float
    exceeded: bool
    alert_needed: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BudgetTracker:
    """
    Reads spend from the usage ledger and compares it with configured limits.

    Crossing the alert threshold emits one notification per window period
    (per day, per month); it never rejects anything by itself.
    """

    def __init__(
        self,
        ledger: UsageLedger,
        settings_provider: Callable[[], Settings] = get_settings,
        notifications: Optional[NotificationService] = None,
    ):
        self._lock = threading.Lock()
        self.ledger = ledger
        self._settings_provider = settings_provider
        self.notifications = notifications
        self._alerted: Set[Tuple[str, str]] = set()

    def _window_starts(self) -> Dict[str, Tuple[datetime, str]]:
        now = self.ledger.now().astimezone(timezone.utc)
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        month_start = day_start.replace(day=1)
        return {
            "daily": (day_start, day_start.date().isoformat()),
            "monthly": (month_start, month_start.strftime("%Y-%m")),
        }

    def check_budget(self) -> Dict[str, Any]:
        settings = self._settings_provider()
        threshold = settings.alert_threshold_percentage
        limits = {"daily": settings.daily_budget_limit, "monthly": settings.monthly_budget_limit}

        result: Dict[str, Any] = {}
        for window, (start, _) in self._window_starts().items():
            budget = limits[window]
            spent = self.ledger.total_cost(since=start)
            percentage = round(spent / budget * 100, 2) if budget > 0 else 100.0
            result[window] = BudgetStatus(
                budget=budget,
                spent=spent,
                remaining=round(max(0.0, budget - spent), 6),
                percentage=percentage,
                exceeded=spent >= budget,
                alert_needed=percentage >= threshold,
            )
        result["alert_threshold"] = threshold
        return result

    def exceeded_window(self, status: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """First exhausted spend window, daily before monthly."""
        status = status or self.check_budget()
        for window in ("daily", "monthly"):
            if status[window].exceeded:
                return window
        return None

    async def check_alerts(self) -> int:
        """Emit threshold alerts not yet sent for the current periods; returns how many went out."""
        status = self.check_budget()
        periods = self._window_starts()
        sent = 0
        for window in ("daily", "monthly"):
            window_status: BudgetStatus = status[window]
            if not window_status.alert_needed:
                continue
            period_key = (window, periods[window][1])
            with self._lock:
                if period_key in self._alerted:
                    continue
                self._alerted.add(period_key)

            severity = Severity.CRITICAL if window_status.exceeded else Severity.WARNING
            logger.warning(
                "%s budget at %.1f%% ($%.2f of $%.2f)",
                window.capitalize(), window_status.percentage, window_status.spent, window_status.budget,
                extra={"window": window, "percentage": window_status.percentage},
            )
            if self.notifications is not None:
                await self.notifications.notify(
                    title=f"{window.capitalize()} AI budget alert",
                    body=(
                        f"{window.capitalize()} spend is ${window_status.spent:.2f} "
                        f"({window_status.percentage:.1f}% of ${window_status.budget:.2f})."
                    ),
                    severity=severity,
                    source="budget_tracker",
                    metadata={"window": window, **window_status.to_dict()},
                )
            sent += 1
        return sent

    def get_dashboard(self) -> Dict[str, Any]:
        status = self.check_budget()
        return {
            "daily": status["daily"].to_dict(),
            "monthly": status["monthly"].to_dict(),
            "exceeded_window": self.exceeded_window(status),
            "alert_threshold": status["alert_threshold"],
            "top_spenders": self.ledger.top_spenders(since=self._window_starts()["monthly"][0], limit=5),
            "trend": self.ledger.cost_trends(days=7),
        }
