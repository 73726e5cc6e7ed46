"""Tests for the model registry (namegen/llm/registry.py)."""

import pytest

from namegen.exceptions import NoModelsAvailableError, ValidationError
from namegen.llm.providers.base import ProviderType
from namegen.llm.registry import DEFAULT_MODELS, ModelDescriptor, ModelRegistry, ModelStatus, validate_descriptor


@pytest.fixture
def make_registry(settings):
    def _make(**overrides):
        active = settings.model_copy(update=overrides)
        return ModelRegistry(settings_provider=lambda: active)
    return _make


def test_default_roster(make_registry):
    registry = make_registry()
    assert [d.model_id for d in registry.all()] == [d.model_id for d in DEFAULT_MODELS]
    assert registry.get("claude-3.5-sonnet").upstream_model == "claude-3-5-sonnet-20241022"
    assert "gpt-4" in registry
    assert "gpt-5" not in registry


def test_all_models_available_with_credentials(make_registry):
    registry = make_registry()
    assert registry.available_models() == [d.model_id for d in DEFAULT_MODELS]
    assert registry.status("gpt-4") == ModelStatus.AVAILABLE


def test_unknown_model_is_not_found(make_registry):
    assert make_registry().status("gpt-5") == ModelStatus.NOT_FOUND


def test_missing_api_key(make_registry):
    registry = make_registry(google_api_key=None)
    assert registry.status("gemini-1.5-pro") == ModelStatus.MISSING_API_KEY
    assert "gemini-1.5-pro" not in registry.available_models()


def test_maintenance_mode_takes_everything_offline(make_registry):
    registry = make_registry(maintenance_mode=True)
    assert registry.available_models() == []
    assert registry.status("gpt-4") == ModelStatus.MAINTENANCE


def test_default_model_resolution(make_registry):
    assert make_registry().default_model() == "gpt-4"
    assert make_registry(default_model="gpt-9").default_model() == "gpt-3.5-turbo"
    assert make_registry(openai_api_key=None).default_model() == "claude-3.5-sonnet"


def test_default_model_requires_an_available_model(make_registry):
    with pytest.raises(NoModelsAvailableError):
        make_registry(maintenance_mode=True).default_model()


def test_maintenance_beats_disabled_and_missing_key(make_registry):
    registry = make_registry(openai_api_key=None)
    registry.update("gpt-4", enabled=False, maintenance=True)
    assert registry.status("gpt-4") == ModelStatus.MAINTENANCE


def test_toggle_disables_and_reenables(make_registry):
    registry = make_registry()
    registry.toggle("grok-beta", False)
    assert registry.status("grok-beta") == ModelStatus.DISABLED
    registry.toggle("grok-beta", True)
    assert registry.is_available("grok-beta")


def test_update_validates(make_registry):
    registry = make_registry()
    with pytest.raises(ValidationError):
        registry.update("gpt-4", temperature=5.0)
    with pytest.raises(ValidationError):
        registry.update("gpt-4", colour="blue")
    with pytest.raises(ValidationError):
        registry.update("gpt-5", enabled=False)
    assert registry.get("gpt-4").temperature == 0.7


def test_status_is_cached_until_reload(settings):
    active = {"settings": settings.model_copy(update={"registry_ttl_seconds": 300})}
    registry = ModelRegistry(settings_provider=lambda: active["settings"])
    assert registry.is_available("gpt-4")

    active["settings"] = active["settings"].model_copy(update={"maintenance_mode": True})
    assert registry.is_available("gpt-4")

    registry.reload()
    assert registry.status("gpt-4") == ModelStatus.MAINTENANCE


def test_register_rejects_invalid_descriptor(make_registry):
    registry = make_registry()
    bad = ModelDescriptor(
        model_id="cheap", provider=ProviderType.OPENAI, display_name="", upstream_model="x", cost_per_1k_input=-1,
    )
    with pytest.raises(ValidationError):
        registry.register(bad)
    assert "cheap" not in registry


def test_validate_descriptor_messages():
    errors = validate_descriptor({"provider": "acme", "max_tokens": 0, "temperature": 3})
    assert "Model name is required" in errors
    assert "Unknown provider: acme" in errors
    assert "Model ID is required" in errors
    assert "Max tokens must be a positive integer" in errors
    assert "Temperature must be between 0 and 2" in errors
    assert validate_descriptor(DEFAULT_MODELS[0].to_dict()) == []


def test_capabilities(make_registry):
    registry = make_registry(xai_api_key=None)
    grok = registry.capabilities("grok-beta")
    assert grok["status"] == "missing_api_key"
    assert grok["is_available"] is False
    assert grok["provider"] == "xai"
    assert registry.capabilities("gpt-5") == {"model_id": "gpt-5", "status": "not_found", "is_available": False}
    assert set(registry.capabilities()) == {d.model_id for d in DEFAULT_MODELS}


def test_configuration_health(make_registry):
    registry = make_registry(anthropic_api_key=None)
    health = registry.configuration_health()
    assert health["status"] == "degraded"
    assert "Missing API key for claude-3.5-sonnet" in health["issues"]
    assert health["api_keys"]["anthropic"] is False
    assert health["models"]["gpt-4"]["status"] == "healthy"
