"""Shared fixtures: test settings and a coordinator wired to a scripted gateway."""

from types import SimpleNamespace

import pytest

from namegen.config.settings import Settings
from namegen.cost.usage import UsageLedger
from namegen.exceptions import ProviderError
from namegen.llm.gateway import ModelOutcome
from namegen.llm.providers.base import ProviderType
from namegen.llm.registry import ModelDescriptor, ModelRegistry
from namegen.middleware.admission import AdmissionGate
from namegen.middleware.budget_tracker import BudgetTracker
from namegen.middleware.rate_limiter import UsageRateLimiter
from namegen.notifications.notification_service import NotificationService
from namegen.orchestration.coordinator import GenerationCoordinator
from namegen.sessions.store import InMemorySessionStore

MAINTENANCE_MODEL = ModelDescriptor(
    model_id="model-in-maintenance",
    provider=ProviderType.OPENAI,
    display_name="Maintenance Model",
    upstream_model="gpt-4",
    cost_per_1k_input=0.01,
    cost_per_1k_output=0.01,
    maintenance=True,
)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        environment="test",
        openai_api_key="sk-test",
        anthropic_api_key="sk-ant-test",
        google_api_key="google-test",
        xai_api_key="xai-test",
        registry_ttl_seconds=0,
        poll_interval_seconds=0.01,
        session_timeout_seconds=5.0,
        retry_backoff_min_seconds=0,
        retry_backoff_max_seconds=0,
    )


class ScriptedGateway:
    """Stands in for GenerationGateway; each model follows a script.

    A script is a list of names, an exception instance to raise, or an async
    callable producing the names.
    """

    def __init__(self, scripts):
        self.scripts = scripts
        self.calls = []
        self.prompts = {}

    async def generate(self, model_id, prompt, parameters=None):
        self.calls.append(model_id)
        self.prompts[model_id] = prompt
        script = self.scripts[model_id]
        if isinstance(script, BaseException):
            raise script
        if callable(script):
            names = await script()
        else:
            names = script
        return ModelOutcome(model_id=model_id, names=list(names), input_tokens=100, output_tokens=50, latency_ms=1.0)


@pytest.fixture
def harness(settings):
    """Build a coordinator around scripted model behaviour.

    ``harness(scripts, **setting_overrides)`` returns a namespace with the
    coordinator and every collaborator it was built from.
    """

    def _build(scripts=None, **overrides):
        active = settings.model_copy(update=overrides)
        provider = lambda: active  # noqa: E731
        registry = ModelRegistry(settings_provider=provider)
        registry.register(MAINTENANCE_MODEL)
        ledger = UsageLedger()
        notifications = NotificationService()
        rate_limiter = UsageRateLimiter(settings_provider=provider)
        budget_tracker = BudgetTracker(ledger, settings_provider=provider, notifications=notifications)
        gate = AdmissionGate(rate_limiter, budget_tracker)
        store = InMemorySessionStore()
        gateway = ScriptedGateway(scripts or {})
        coordinator = GenerationCoordinator(
            registry=registry,
            gateway=gateway,
            store=store,
            gate=gate,
            ledger=ledger,
            settings_provider=provider,
        )
        return SimpleNamespace(
            settings=active,
            registry=registry,
            ledger=ledger,
            notifications=notifications,
            rate_limiter=rate_limiter,
            budget_tracker=budget_tracker,
            gate=gate,
            store=store,
            gateway=gateway,
            coordinator=coordinator,
        )

    return _build


@pytest.fixture
def provider_failure():
    return ProviderError("claude-3.5-sonnet failed", model_id="claude-3.5-sonnet",
                         upstream_message="overloaded_error: upstream exploded", status_code=529)
