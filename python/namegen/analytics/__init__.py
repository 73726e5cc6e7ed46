from namegen.analytics.status_reporter import ALERT_THRESHOLDS, StatusReporter

__all__ = ["ALERT_THRESHOLDS", "StatusReporter"]
