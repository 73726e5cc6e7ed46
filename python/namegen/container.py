"""Dependency injection container for the coordinator.

Lightweight wiring of services at application startup.
Uses lazy initialization: services are created on first access.
"""

import logging
from typing import Any, Dict, Optional

from namegen.config.settings import get_settings, reload_settings

logger = logging.getLogger(__name__)


class NamegenContainer:
    """Central service container."""

    def __init__(self, redis_client=None) -> None:
        self._redis_client = redis_client
        self._registry = None
        self._cache = None
        self._response_cache = None
        self._gateway = None
        self._session_store = None
        self._usage_ledger = None
        self._estimator = None
        self._notification_service = None
        self._rate_limiter = None
        self._budget_tracker = None
        self._admission_gate = None
        self._coordinator = None
        self._status_reporter = None

    @property
    def settings(self):
        return get_settings()

    @property
    def registry(self):
        if self._registry is None:
            from namegen.llm.registry import ModelRegistry
            self._registry = ModelRegistry(settings_provider=get_settings)
        return self._registry

    @property
    def cache(self):
        if self._cache is None:
            from namegen.cache.store import CacheStore
            self._cache = CacheStore()
        return self._cache

    @property
    def response_cache(self):
        if self._response_cache is None:
            from namegen.cache.store import ResponseCache
            settings = self.settings
            self._response_cache = ResponseCache(
                self.cache,
                ttl_seconds=settings.response_cache_ttl_seconds,
                enabled=settings.enable_caching,
            )
        return self._response_cache

    @property
    def gateway(self):
        if self._gateway is None:
            from namegen.llm.gateway import GenerationGateway
            self._gateway = GenerationGateway(
                self.registry,
                settings_provider=get_settings,
                response_cache=self.response_cache,
            )
        return self._gateway

    @property
    def session_store(self):
        if self._session_store is None:
            from namegen.sessions.store import InMemorySessionStore
            self._session_store = InMemorySessionStore()
        return self._session_store

    @property
    def usage_ledger(self):
        if self._usage_ledger is None:
            from namegen.cost.usage import UsageLedger
            self._usage_ledger = UsageLedger()
        return self._usage_ledger

    @property
    def estimator(self):
        if self._estimator is None:
            from namegen.cost.estimator import CostEstimator
            self._estimator = CostEstimator(registry=self.registry)
        return self._estimator

    @property
    def notification_service(self):
        if self._notification_service is None:
            from namegen.notifications.notification_service import NotificationService
            self._notification_service = NotificationService()
        return self._notification_service

    @property
    def rate_limiter(self):
        if self._rate_limiter is None:
            from namegen.middleware.rate_limiter import UsageRateLimiter
            self._rate_limiter = UsageRateLimiter(settings_provider=get_settings, redis_client=self._redis_client)
        return self._rate_limiter

    @property
    def budget_tracker(self):
        if self._budget_tracker is None:
            from namegen.middleware.budget_tracker import BudgetTracker
            self._budget_tracker = BudgetTracker(
                self.usage_ledger,
                settings_provider=get_settings,
                notifications=self.notification_service,
            )
        return self._budget_tracker

    @property
    def admission_gate(self):
        if self._admission_gate is None:
            from namegen.middleware.admission import AdmissionGate
            self._admission_gate = AdmissionGate(self.rate_limiter, self.budget_tracker)
        return self._admission_gate

    @property
    def coordinator(self):
        if self._coordinator is None:
            from namegen.orchestration.coordinator import GenerationCoordinator
            self._coordinator = GenerationCoordinator(
                registry=self.registry,
                gateway=self.gateway,
                store=self.session_store,
                gate=self.admission_gate,
                ledger=self.usage_ledger,
                estimator=self.estimator,
                settings_provider=get_settings,
            )
        return self._coordinator

    @property
    def status_reporter(self):
        if self._status_reporter is None:
            from namegen.analytics.status_reporter import StatusReporter
            self._status_reporter = StatusReporter(
                self.session_store,
                self.usage_ledger,
                self.registry,
                cache=self.cache,
                settings_provider=get_settings,
                notifications=self.notification_service,
                budget_tracker=self.budget_tracker,
            )
            self.session_store.on_delete(lambda session: self._status_reporter.invalidate())
        return self._status_reporter

    def reload(self) -> Dict[str, Any]:
        """Re-read settings and drop derived caches."""
        settings = reload_settings()
        self.registry.reload()
        if self._response_cache is not None:
            self._response_cache.ttl_seconds = settings.response_cache_ttl_seconds
            self._response_cache.enabled = settings.enable_caching
        if self._status_reporter is not None:
            self._status_reporter.invalidate()
        removed = self.prune_usage()
        logger.info("Container configuration reloaded")
        return {
            "dispatch_mode": settings.dispatch_mode,
            "maintenance_mode": settings.maintenance_mode,
            "available_models": self.registry.available_models(),
            "usage_records_pruned": removed,
        }

    def prune_usage(self) -> int:
        """Apply the usage retention window to the ledger."""
        return self.usage_ledger.cleanup(self.settings.usage_retention_days)

    async def shutdown(self) -> None:
        """Stop in-flight sessions before the container is dropped."""
        if self._coordinator is not None:
            await self._coordinator.shutdown()

    def status(self) -> Dict[str, Any]:
        """Which services have been initialized."""
        return {
            "registry": self._registry is not None,
            "gateway": self._gateway is not None,
            "session_store": self._session_store is not None,
            "usage_ledger": self._usage_ledger is not None,
            "rate_limiter": self._rate_limiter is not None,
            "budget_tracker": self._budget_tracker is not None,
            "coordinator": self._coordinator is not None,
            "status_reporter": self._status_reporter is not None,
            "notification_service": self._notification_service is not None,
        }


_container: Optional[NamegenContainer] = None


def get_container() -> NamegenContainer:
    global _container
    if _container is None:
        _container = NamegenContainer()
    return _container


def shutdown_container() -> None:
    global _container
    _container = None
