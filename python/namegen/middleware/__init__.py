"""Rate and budget gate."""

from namegen.middleware.admission import AdmissionGate
from namegen.middleware.budget_tracker import BudgetStatus, BudgetTracker
from namegen.middleware.rate_limiter import UsageRateLimiter, WindowUsage

__all__ = ["AdmissionGate", "BudgetStatus", "BudgetTracker", "UsageRateLimiter", "WindowUsage"]
