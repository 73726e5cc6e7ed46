"""Admission gate: budget first, then per-user rate limits."""

import logging
from typing import Any, Dict

from namegen.exceptions import BudgetExceededError, RateLimitedError
from namegen.middleware.budget_tracker import BudgetTracker
from namegen.middleware.rate_limiter import WINDOWS, UsageRateLimiter

logger = logging.getLogger(__name__)


class AdmissionGate:
    """Decides whether a user may start a new generation session.

    Counting is advisory: concurrent admissions may overshoot a budget
    slightly because spend is only known after calls finish.
    """

    def __init__(self, rate_limiter: UsageRateLimiter, budget_tracker: BudgetTracker):
        self.rate_limiter = rate_limiter
        self.budget_tracker = budget_tracker

    async def admit(self, user_id: str, action: str = "generation") -> Dict[str, Any]:
        """
        Consume one generation slot for ``user_id``.

        Raises:
            BudgetExceededError: a system spend window is exhausted
            RateLimitedError: the user's hourly or daily window is exhausted

        Returns:
            Usage per window as seen before this admission
        """
        budget = self.budget_tracker.check_budget()
        exhausted = self.budget_tracker.exceeded_window(budget)
        if exhausted is not None:
            status = budget[exhausted]
            logger.warning(
                "Generation rejected: %s budget exhausted", exhausted,
                extra={"user_id": user_id, "spent": status.spent, "budget": status.budget},
            )
            raise BudgetExceededError(
                f"{exhausted.capitalize()} budget of ${status.budget:.2f} exhausted",
                window=exhausted,
                budget=status.to_dict(),
            )

        allowed, usage = await self.rate_limiter.try_acquire(user_id, action)
        if not allowed:
            window = next(w for w in WINDOWS if usage[w].exceeded)
            limits = {w: u.to_dict() for w, u in usage.items()}
            retry_after = await self.rate_limiter.retry_after(window, user_id, action)
            raise RateLimitedError(
                f"{window.capitalize()} generation limit of {usage[window].limit} reached",
                window=window,
                retry_after=retry_after,
                limits=limits,
                user_message=(
                    f"You have reached your {window} limit of {usage[window].limit} generations. "
                    f"Try again in {retry_after} seconds."
                ),
            )

        await self.budget_tracker.check_alerts()
        return {w: u.to_dict() for w, u in usage.items()}
