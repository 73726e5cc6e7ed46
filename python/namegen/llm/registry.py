"""
Model registry.

Typed descriptors for every model the coordinator can dispatch to, with
availability derived from the descriptor flags, provider credentials and the
system-wide maintenance switch. Status evaluations are cached for
``registry_ttl_seconds``; ``reload()`` is the explicit refresh.
"""

import logging
import time
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from namegen.config.settings import Settings, get_settings
from namegen.exceptions import NoModelsAvailableError, ValidationError
from namegen.llm.providers.base import ProviderType

logger = logging.getLogger(__name__)


class ModelStatus(str, Enum):
    AVAILABLE = "available"
    DISABLED = "disabled"
    MISSING_API_KEY = "missing_api_key"
    MAINTENANCE = "maintenance"
    NOT_FOUND = "not_found"


@dataclass
class ModelDescriptor:
    """Static configuration for one dispatchable model."""
    model_id: str
    provider: ProviderType
    display_name: str
    upstream_model: str
    max_tokens: int = 1000
    supports_streaming: bool = False
    supports_functions: bool = False
    cost_per_1k_input: float = 0.0
    cost_per_1k_output: float = 0.0
    enabled: bool = True
    maintenance: bool = False
    timeout_seconds: Optional[float] = None
    temperature: float = 0.8
    capabilities: List[str] = field(default_factory=list)
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["provider"] = self.provider.value
        return data


DEFAULT_MODELS: Tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        model_id="gpt-4",
        provider=ProviderType.OPENAI,
        display_name="GPT-4",
        upstream_model="gpt-4",
        max_tokens=8192,
        supports_functions=True,
        cost_per_1k_input=0.03,
        cost_per_1k_output=0.06,
        temperature=0.7,
        capabilities=["text_generation", "creative_writing"],
        description="Most capable GPT model for high-quality name generation",
    ),
    ModelDescriptor(
        model_id="gpt-3.5-turbo",
        provider=ProviderType.OPENAI,
        display_name="GPT-3.5 Turbo",
        upstream_model="gpt-3.5-turbo",
        max_tokens=4096,
        supports_functions=True,
        cost_per_1k_input=0.001,
        cost_per_1k_output=0.002,
        temperature=0.8,
        capabilities=["text_generation", "fast_generation"],
        description="Fast and cost-effective model for name generation",
    ),
    ModelDescriptor(
        model_id="claude-3.5-sonnet",
        provider=ProviderType.ANTHROPIC,
        display_name="Claude 3.5 Sonnet",
        upstream_model="claude-3-5-sonnet-20241022",
        max_tokens=200000,
        supports_streaming=True,
        cost_per_1k_input=0.008,
        cost_per_1k_output=0.024,
        temperature=0.7,
        capabilities=["text_generation", "nuanced_context"],
        description="Context-aware model for thoughtful name suggestions",
    ),
    ModelDescriptor(
        model_id="gemini-1.5-pro",
        provider=ProviderType.GOOGLE,
        display_name="Gemini 1.5 Pro",
        upstream_model="gemini-1.5-pro",
        max_tokens=1048576,
        supports_streaming=True,
        cost_per_1k_input=0.000125,
        cost_per_1k_output=0.000375,
        temperature=0.8,
        capabilities=["text_generation", "analysis"],
        description="Long-context model for analytical naming",
    ),
    ModelDescriptor(
        model_id="grok-beta",
        provider=ProviderType.XAI,
        display_name="Grok Beta",
        upstream_model="grok-beta",
        max_tokens=131072,
        supports_streaming=True,
        cost_per_1k_input=0.005,
        cost_per_1k_output=0.015,
        temperature=0.9,
        capabilities=["text_generation", "creative_writing"],
        description="Cutting-edge model for bold, unconventional names",
    ),
)


def validate_descriptor(config: Dict[str, Any]) -> List[str]:
    """Return human-readable problems with a raw model configuration."""
    errors: List[str] = []

    if not config.get("display_name") and not config.get("name"):
        errors.append("Model name is required")
    if not config.get("provider"):
        errors.append("Provider is required")
    elif str(getattr(config["provider"], "value", config["provider"])) not in {p.value for p in ProviderType}:
        errors.append(f"Unknown provider: {config['provider']}")
    if not config.get("model_id"):
        errors.append("Model ID is required")

    max_tokens = config.get("max_tokens")
    if max_tokens is not None and (not isinstance(max_tokens, int) or isinstance(max_tokens, bool) or max_tokens < 1):
        errors.append("Max tokens must be a positive integer")

    temperature = config.get("temperature")
    if temperature is not None and (not _is_number(temperature) or not 0 <= temperature <= 2):
        errors.append("Temperature must be between 0 and 2")

    for key in ("cost_per_1k_input", "cost_per_1k_output"):
        value = config.get(key)
        if value is not None and (not _is_number(value) or value < 0):
            errors.append("Cost per 1k tokens must be a non-negative number")
            break

    return errors


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ModelRegistry:
    """
    Thread-safe registry of model descriptors.

    ``settings_provider`` is called on every uncached evaluation so a settings
    reload (maintenance switch, credentials) is observed without a restart.
    """

    def __init__(
        self,
        descriptors: Optional[Iterable[ModelDescriptor]] = None,
        settings_provider: Callable[[], Settings] = get_settings,
    ):
        self._settings_provider = settings_provider
        self._lock = Lock()
        self._descriptors: Dict[str, ModelDescriptor] = {}
        self._status_cache: Dict[str, Tuple[ModelStatus, float]] = {}
        for descriptor in (DEFAULT_MODELS if descriptors is None else descriptors):
            self._descriptors[descriptor.model_id] = replace(descriptor)

    @property
    def settings(self) -> Settings:
        return self._settings_provider()

    # --- Descriptors ---

    def register(self, descriptor: ModelDescriptor) -> None:
        errors = validate_descriptor(descriptor.to_dict())
        if errors:
            raise ValidationError(f"Invalid model configuration: {'; '.join(errors)}", details={"errors": errors})
        with self._lock:
            self._descriptors[descriptor.model_id] = descriptor
            self._status_cache.pop(descriptor.model_id, None)
        logger.info("Registered model %s (%s)", descriptor.model_id, descriptor.provider.value)

    def get(self, model_id: str) -> Optional[ModelDescriptor]:
        with self._lock:
            return self._descriptors.get(model_id)

    def all(self) -> List[ModelDescriptor]:
        with self._lock:
            return list(self._descriptors.values())

    def __contains__(self, model_id: str) -> bool:
        with self._lock:
            return model_id in self._descriptors

    def update(self, model_id: str, **changes: Any) -> ModelDescriptor:
        """Apply field changes to a descriptor after validating the result."""
        with self._lock:
            current = self._descriptors.get(model_id)
            if current is None:
                raise ValidationError(f"Unknown model: {model_id}", details={"model_id": model_id})
            unknown = set(changes) - set(current.__dataclass_fields__)
            if unknown:
                raise ValidationError(f"Unknown model fields: {sorted(unknown)}")
            updated = replace(current, **changes)
            errors = validate_descriptor(updated.to_dict())
            if errors:
                raise ValidationError(f"Invalid model configuration: {'; '.join(errors)}", details={"errors": errors})
            self._descriptors[model_id] = updated
            self._status_cache.pop(model_id, None)
        logger.info("Model configuration updated", extra={"model_id": model_id, "changes": sorted(changes)})
        return updated

    def toggle(self, model_id: str, enabled: bool) -> ModelDescriptor:
        return self.update(model_id, enabled=enabled)

    def reload(self, descriptors: Optional[Iterable[ModelDescriptor]] = None) -> None:
        """Drop cached statuses and optionally replace the whole roster."""
        with self._lock:
            if descriptors is not None:
                self._descriptors = {d.model_id: d for d in descriptors}
            self._status_cache.clear()
        logger.info("Model registry reloaded (%d models)", len(self._descriptors))

    # --- Availability ---

    def status(self, model_id: str) -> ModelStatus:
        now = time.monotonic()
        with self._lock:
            cached = self._status_cache.get(model_id)
            if cached and cached[1] > now:
                return cached[0]
            descriptor = self._descriptors.get(model_id)

        settings = self.settings
        result = self._evaluate(descriptor, settings)
        ttl = settings.registry_ttl_seconds
        if ttl > 0 and descriptor is not None:
            with self._lock:
                self._status_cache[model_id] = (result, now + ttl)
        return result

    @staticmethod
    def _evaluate(descriptor: Optional[ModelDescriptor], settings: Settings) -> ModelStatus:
        if descriptor is None:
            return ModelStatus.NOT_FOUND
        if settings.maintenance_mode or descriptor.maintenance:
            return ModelStatus.MAINTENANCE
        if not descriptor.enabled:
            return ModelStatus.DISABLED
        if not settings.api_key_for(descriptor.provider.value):
            return ModelStatus.MISSING_API_KEY
        return ModelStatus.AVAILABLE

    def is_available(self, model_id: str) -> bool:
        return self.status(model_id) == ModelStatus.AVAILABLE

    def available_models(self) -> List[str]:
        return [d.model_id for d in self.all() if self.is_available(d.model_id)]

    def default_model(self) -> str:
        """Model for requests that name none: default, then fallback, then the first available."""
        settings = self.settings
        for model_id in (settings.default_model, settings.fallback_model):
            if model_id and self.is_available(model_id):
                return model_id
        available = self.available_models()
        if available:
            logger.warning(
                "Default and fallback models unavailable, using %s", available[0],
                extra={"default_model": settings.default_model, "fallback_model": settings.fallback_model},
            )
            return available[0]
        raise NoModelsAvailableError("No AI models are currently available")

    def capabilities(self, model_id: Optional[str] = None) -> Dict[str, Any]:
        """Descriptor plus live status for one model, or for every model."""
        if model_id is None:
            return {d.model_id: self._describe(d) for d in self.all()}
        descriptor = self.get(model_id)
        if descriptor is None:
            return {"model_id": model_id, "status": ModelStatus.NOT_FOUND.value, "is_available": False}
        return self._describe(descriptor)

    def _describe(self, descriptor: ModelDescriptor) -> Dict[str, Any]:
        status = self.status(descriptor.model_id)
        return {
            **descriptor.to_dict(),
            "status": status.value,
            "is_available": status == ModelStatus.AVAILABLE,
        }

    def configuration_health(self) -> Dict[str, Any]:
        settings = self.settings
        health: Dict[str, Any] = {"status": "healthy", "issues": [], "models": {}, "api_keys": {}}

        for descriptor in self.all():
            key_present = bool(settings.api_key_for(descriptor.provider.value))
            if not key_present:
                model_status = "error"
                health["issues"].append(f"Missing API key for {descriptor.model_id}")
                health["status"] = "degraded"
            elif descriptor.maintenance or settings.maintenance_mode:
                model_status = "maintenance"
            elif descriptor.enabled:
                model_status = "healthy"
            else:
                model_status = "disabled"
            health["models"][descriptor.model_id] = {
                "enabled": descriptor.enabled,
                "api_key_present": key_present,
                "status": model_status,
            }

        for provider in ProviderType:
            health["api_keys"][provider.value] = bool(settings.api_key_for(provider.value))
        if settings.maintenance_mode:
            health["issues"].append("System is in maintenance mode")
        return health
