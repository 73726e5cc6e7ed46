"""
Unified error system for the name generation coordinator.

One hierarchy rooted at NamegenException with:
- Consistent error context and metadata (ErrorContext)
- Generation failure kinds recorded per model (unavailable, provider_error, timeout)
- Admission-time refusals (rate limit, budget, no models available)
- Session state machine errors
- Helpers to turn arbitrary exceptions into an ErrorContext
"""

import logging
import traceback
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# ============================================================================
# Enums
# ============================================================================

class ErrorSeverity(Enum):
    """Error severity levels."""
    CRITICAL = "critical"      # System failure, immediate attention required
    ERROR = "error"            # Operation failure, user impacted
    WARNING = "warning"        # Degraded operation, user should be aware
    INFO = "info"              # Informational, no action needed


class ErrorCategory(Enum):
    """Error categories for classification and routing."""
    VALIDATION = "validation"           # Input validation failure
    LLM_SERVICE = "llm_service"         # Provider error
    RATE_LIMIT = "rate_limit"           # Per-user limit exceeded
    BUDGET = "budget"                   # System spend limit exceeded
    TIMEOUT = "timeout"                 # Operation timeout
    NOT_FOUND = "not_found"             # Unknown identifier
    STATE = "state"                     # Illegal lifecycle transition
    CONFIGURATION = "configuration"     # Bad or missing configuration
    INTERNAL = "internal"               # Internal system error


class GenerationErrorKind(str, Enum):
    """Per-model failure kinds recorded into a session."""
    UNAVAILABLE = "unavailable"
    PROVIDER_ERROR = "provider_error"
    TIMEOUT = "timeout"


# ============================================================================
# Error context
# ============================================================================

@dataclass
class ErrorContext:
    """Rich error context with metadata."""
    error_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.INTERNAL
    message: str = ""
    user_message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None
    is_recoverable: bool = True
    http_status: int = 500
    recovery_suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (excludes stack trace)."""
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "user_message": self.user_message,
            "details": self.details,
            "is_recoverable": self.is_recoverable,
            "http_status": self.http_status,
            "recovery_suggestions": self.recovery_suggestions,
        }

    def to_api_response(self) -> Dict[str, Any]:
        """Convert to API response format (safe for HTTP).

        Operator-only fields are dropped: the internal message and any
        detail key starting with an underscore.
        """
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "category": self.category.value,
            "message": self.user_message,
            "details": {k: v for k, v in self.details.items() if not k.startswith("_")},
            "is_recoverable": self.is_recoverable,
            "recovery_suggestions": self.recovery_suggestions,
        }


# ============================================================================
# Base exception
# ============================================================================

class NamegenException(Exception):
    """Base exception for all coordinator errors with rich context."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        is_recoverable: bool = True,
        http_status: int = 500,
        user_message: Optional[str] = None,
        recovery_suggestions: Optional[List[str]] = None,
    ):
        self.message = message
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.is_recoverable = is_recoverable
        self.http_status = http_status
        self.user_message = user_message or message
        self.recovery_suggestions = recovery_suggestions or _get_recovery_suggestions(category)
        self.context = ErrorContext(
            severity=severity,
            category=category,
            message=message,
            user_message=self.user_message,
            details=self.details,
            stack_trace=traceback.format_exc(),
            is_recoverable=is_recoverable,
            http_status=http_status,
            recovery_suggestions=self.recovery_suggestions,
        )
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.context.error_id}] {self.category.value}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return self.context.to_dict()

    def to_api_response(self) -> Dict[str, Any]:
        return self.context.to_api_response()


# ============================================================================
# Validation & configuration errors
# ============================================================================

class ValidationError(NamegenException):
    """Input validation failed."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        kwargs.setdefault("http_status", 422)
        kwargs.setdefault("is_recoverable", False)
        super().__init__(message, **kwargs)


class ConfigurationError(NamegenException):
    """Configuration is missing or invalid."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        kwargs.setdefault("http_status", 500)
        kwargs.setdefault("is_recoverable", False)
        super().__init__(message, **kwargs)


# ============================================================================
# Generation errors (recorded per model, never escape the coordinator)
# ============================================================================

class GenerationError(NamegenException):
    """Base for failures of a single model call."""

    kind: GenerationErrorKind = GenerationErrorKind.PROVIDER_ERROR

    def __init__(self, message: str, model_id: Optional[str] = None, **kwargs):
        self.model_id = model_id
        details = kwargs.pop("details", None) or {}
        if model_id:
            details.setdefault("model_id", model_id)
        details.setdefault("kind", self.kind.value)
        kwargs.setdefault("category", ErrorCategory.LLM_SERVICE)
        kwargs.setdefault("http_status", 502)
        kwargs.setdefault("user_message", "The AI service is temporarily unavailable.")
        super().__init__(message, details=details, **kwargs)


class ModelUnavailableError(GenerationError):
    """Model disabled, missing a credential, or in maintenance."""

    kind = GenerationErrorKind.UNAVAILABLE

    def __init__(self, message: str, model_id: Optional[str] = None, reason: str = "unavailable", **kwargs):
        self.reason = reason
        details = kwargs.pop("details", None) or {}
        details.setdefault("reason", reason)
        kwargs.setdefault("http_status", 503)
        kwargs.setdefault("user_message", f"Model {model_id} is currently unavailable." if model_id else None)
        super().__init__(message, model_id=model_id, details=details, **kwargs)


class ProviderError(GenerationError):
    """Upstream provider call failed after dispatch.

    The raw upstream message is kept under ``details["_upstream"]`` for
    operators and is stripped from API responses.
    """

    kind = GenerationErrorKind.PROVIDER_ERROR

    def __init__(
        self,
        message: str,
        model_id: Optional[str] = None,
        upstream_message: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        self.upstream_message = upstream_message
        self.status_code = status_code
        details = kwargs.pop("details", None) or {}
        if upstream_message is not None:
            details["_upstream"] = upstream_message
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, model_id=model_id, details=details, **kwargs)


class GenerationTimeoutError(GenerationError):
    """A model call (or the whole fan-in) exceeded its time budget."""

    kind = GenerationErrorKind.TIMEOUT

    def __init__(self, message: str, model_id: Optional[str] = None, timeout_seconds: Optional[float] = None, **kwargs):
        self.timeout_seconds = timeout_seconds
        details = kwargs.pop("details", None) or {}
        if timeout_seconds is not None:
            details["timeout_seconds"] = timeout_seconds
        kwargs.setdefault("category", ErrorCategory.TIMEOUT)
        kwargs.setdefault("http_status", 504)
        kwargs.setdefault("user_message", "The request took too long. Please try again.")
        super().__init__(message, model_id=model_id, details=details, **kwargs)


# ============================================================================
# Admission errors (raised before any session exists)
# ============================================================================

class AdmissionError(NamegenException):
    """Base for refusals to start a session."""
    pass


class RateLimitedError(AdmissionError):
    """A per-user request window is exhausted."""
    def __init__(self, message: str, window: str = "hourly", retry_after: int = 3600,
                 limits: Optional[Dict[str, Any]] = None, **kwargs):
        self.window = window
        self.retry_after = retry_after
        self.limits = limits or {}
        kwargs.setdefault("category", ErrorCategory.RATE_LIMIT)
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        kwargs.setdefault("http_status", 429)
        kwargs.setdefault("details", {"window": window, "retry_after": retry_after, "limits": self.limits})
        super().__init__(message, **kwargs)


class BudgetExceededError(AdmissionError):
    """A system-wide spend window is exhausted."""
    def __init__(self, message: str, window: str = "daily", budget: Optional[Dict[str, Any]] = None, **kwargs):
        self.window = window
        self.budget = budget or {}
        kwargs.setdefault("category", ErrorCategory.BUDGET)
        kwargs.setdefault("severity", ErrorSeverity.ERROR)
        kwargs.setdefault("http_status", 429)
        kwargs.setdefault("user_message", "Generation is paused because the service budget has been reached.")
        kwargs.setdefault("details", {"window": window})
        super().__init__(message, **kwargs)


class NoModelsAvailableError(AdmissionError):
    """Every requested model was filtered out at dispatch time."""
    def __init__(self, message: str = "No models available", session_id: Optional[str] = None, **kwargs):
        self.session_id = session_id
        kwargs.setdefault("category", ErrorCategory.LLM_SERVICE)
        kwargs.setdefault("http_status", 503)
        if session_id:
            kwargs.setdefault("details", {"session_id": session_id})
        super().__init__(message, **kwargs)


# ============================================================================
# Session errors
# ============================================================================

class InvalidStateTransitionError(NamegenException):
    """Attempted a transition the session state machine does not allow."""
    def __init__(self, current: str, target: str, **kwargs):
        self.current = current
        self.target = target
        kwargs.setdefault("category", ErrorCategory.STATE)
        kwargs.setdefault("http_status", 409)
        kwargs.setdefault("is_recoverable", False)
        super().__init__(f"Cannot transition session from {current} to {target}", **kwargs)


# ============================================================================
# Utility functions
# ============================================================================

def create_error_context(error: Exception) -> ErrorContext:
    """Create an ErrorContext from any exception."""
    if isinstance(error, NamegenException):
        return error.context

    category = _categorize_error(error)
    return ErrorContext(
        severity=ErrorSeverity.ERROR,
        category=category,
        message=str(error),
        user_message=_generate_user_message(category),
        stack_trace=traceback.format_exc(),
        http_status=_determine_http_status(category),
        recovery_suggestions=_get_recovery_suggestions(category),
    )


def _categorize_error(error: Exception) -> ErrorCategory:
    """Auto-categorize exception."""
    error_type = type(error).__name__.lower()

    if "validation" in error_type or "value" in error_type:
        return ErrorCategory.VALIDATION
    elif "timeout" in error_type:
        return ErrorCategory.TIMEOUT
    elif "rate" in error_type or "limit" in error_type:
        return ErrorCategory.RATE_LIMIT
    elif "key" in error_type or "lookup" in error_type:
        return ErrorCategory.NOT_FOUND
    else:
        return ErrorCategory.INTERNAL


def _determine_http_status(category: ErrorCategory) -> int:
    mapping = {
        ErrorCategory.VALIDATION: 422,
        ErrorCategory.TIMEOUT: 504,
        ErrorCategory.RATE_LIMIT: 429,
        ErrorCategory.BUDGET: 429,
        ErrorCategory.NOT_FOUND: 404,
        ErrorCategory.STATE: 409,
        ErrorCategory.LLM_SERVICE: 502,
    }
    return mapping.get(category, 500)


def _generate_user_message(category: ErrorCategory) -> str:
    messages = {
        ErrorCategory.VALIDATION: "Your input is invalid. Please check and try again.",
        ErrorCategory.TIMEOUT: "The request took too long. Please try again.",
        ErrorCategory.RATE_LIMIT: "Too many requests. Please wait and try again.",
        ErrorCategory.BUDGET: "Generation is paused because the service budget has been reached.",
        ErrorCategory.NOT_FOUND: "The requested item was not found.",
        ErrorCategory.LLM_SERVICE: "The AI service is temporarily unavailable.",
    }
    return messages.get(category, "An error occurred. Please try again.")


def _get_recovery_suggestions(category: ErrorCategory) -> List[str]:
    suggestions = {
        ErrorCategory.VALIDATION: [
            "Check your input format",
            "Review error details",
        ],
        ErrorCategory.TIMEOUT: [
            "Try again",
            "Request fewer models",
        ],
        ErrorCategory.RATE_LIMIT: [
            "Wait and try again",
            "Reduce request frequency",
        ],
        ErrorCategory.BUDGET: [
            "Try again later",
            "Contact an administrator",
        ],
        ErrorCategory.LLM_SERVICE: [
            "Try a different model",
            "Try again in a moment",
        ],
    }
    return suggestions.get(category, ["Please try again"])
