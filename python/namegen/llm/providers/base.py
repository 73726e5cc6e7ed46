"""
Base Provider Abstraction for Multi-Provider Name Generation
Defines the interface that all name providers must implement
"""

import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from namegen.exceptions import ConfigurationError, GenerationTimeoutError, ProviderError

logger = logging.getLogger(__name__)


class ProviderType(Enum):
    """Supported provider families"""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    XAI = "xai"


@dataclass
class GenerationRequest:
    """Standardized name generation request"""
    model_id: str
    prompt: str
    upstream_model: str
    temperature: float = 0.8
    max_tokens: int = 1000
    system_prompt: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationResponse:
    """Standardized name generation response"""
    names: List[str]
    model_id: str
    provider: str
    input_tokens: int
    output_tokens: int
    latency_ms: float
    raw_text: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, Any]:
        return {
            "names": list(self.names),
            "model_id": self.model_id,
            "provider": self.provider,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "latency_ms": self.latency_ms,
            "timestamp": self.timestamp.isoformat(),
        }


_LIST_MARKER = re.compile(r"^\s*(?:\d+\s*[.):\-]|[-*•>#]+)\s*")
_WRAPPING = "\"'`*_“”‘’"


def parse_names(text: str, limit: int = 10) -> List[str]:
    """
    Extract candidate names from a model's free-text reply.

    One candidate per line; list numbering, bullets, markdown emphasis and
    surrounding quotes are stripped, anything after " - " or ": " is treated
    as a description and dropped, and lines ending in a colon are skipped.
    Duplicates (case-insensitive) are skipped and at most ``limit`` names are
    returned, in the order produced.
    """
    names: List[str] = []
    seen = set()
    for line in text.splitlines():
        line = line.strip()
        # Preamble such as "Here are some names:"
        if line.endswith(":"):
            continue
        candidate = _LIST_MARKER.sub("", line, count=1)
        for separator in (" - ", " – ", " — ", ": "):
            if separator in candidate:
                candidate = candidate.split(separator, 1)[0]
        candidate = candidate.strip().strip(_WRAPPING).strip()
        if not candidate or len(candidate) > 80:
            continue
        key = candidate.lower()
        if key in seen:
            continue
        seen.add(key)
        names.append(candidate)
        if len(names) >= limit:
            break
    return names


def is_transient(exc: BaseException) -> bool:
    """Connection trouble, 429 and 5xx are worth another attempt."""
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return True
    if isinstance(exc, ProviderError) and exc.status_code is not None:
        return exc.status_code == 429 or exc.status_code >= 500
    return False


class RetryPolicy:
    """Bounded attempts with exponential backoff for provider calls."""

    def __init__(self, attempts: int = 3, min_wait: float = 1.0, max_wait: float = 10.0, multiplier: float = 1.0):
        self.attempts = attempts
        self.min_wait = min_wait
        self.max_wait = max_wait
        self.multiplier = multiplier

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            attempts=settings.retry_attempts,
            min_wait=settings.retry_backoff_min_seconds,
            max_wait=settings.retry_backoff_max_seconds,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.multiplier, min=self.min_wait, max=self.max_wait),
            retry=retry_if_exception(is_transient),
            before_sleep=self._log_retry,
            reraise=True,
        )

    @staticmethod
    def _log_retry(retry_state) -> None:
        logger.warning(
            "Retrying provider call (attempt %s): %s",
            retry_state.attempt_number,
            retry_state.outcome.exception() if retry_state.outcome else None,
        )

    async def call(self, fn, *args, **kwargs):
        async for attempt in self._retrying():
            with attempt:
                return await fn(*args, **kwargs)


class NameProvider(ABC):
    """
    Abstract base class for name providers
    All providers must implement this interface
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "",
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_names: int = 10,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.transport = transport
        self.max_names = max_names
        self.provider_type = self._get_provider_type()

    @abstractmethod
    def _get_provider_type(self) -> ProviderType:
        """Return the provider type"""

    @abstractmethod
    async def _complete(self, client: httpx.AsyncClient, request: GenerationRequest) -> Tuple[str, int, int]:
        """
        Issue one upstream call.

        Returns:
            (reply text, input tokens, output tokens); token counts may be 0
            when the vendor does not report usage.

        Raises:
            ProviderError: non-success response (status code attached)
            httpx.TransportError: connection-level failure
        """

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """
        Generate candidate names for a request

        Raises:
            ProviderError: upstream failure after retries, or an unusable reply
            GenerationTimeoutError: upstream timed out after retries
        """
        self.validate_config()
        start = time.perf_counter()

        async def _attempt() -> Tuple[str, int, int]:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                return await self._complete(client, request)

        try:
            text, input_tokens, output_tokens = await self.retry_policy.call(_attempt)
        except httpx.TimeoutException as e:
            raise GenerationTimeoutError(
                f"{self.provider_type.value} timed out",
                model_id=request.model_id,
                timeout_seconds=self.timeout,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(
                f"{self.provider_type.value} request failed",
                model_id=request.model_id,
                upstream_message=str(e),
            ) from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ProviderError(
                f"{self.provider_type.value} returned an unexpected payload",
                model_id=request.model_id,
                upstream_message=repr(e),
            ) from e

        names = parse_names(text, self.max_names)
        if not names:
            raise ProviderError(
                f"{self.provider_type.value} returned no usable names",
                model_id=request.model_id,
                upstream_message=text[:500],
            )

        # Usage not reported by the vendor: fall back to the heuristic
        if not input_tokens:
            input_tokens = _approx_tokens(request.prompt)
        if not output_tokens:
            output_tokens = _approx_tokens(text)

        return GenerationResponse(
            names=names,
            model_id=request.model_id,
            provider=self.provider_type.value,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=(time.perf_counter() - start) * 1000,
            raw_text=text,
        )

    def _raise_for_status(self, response: httpx.Response, request: GenerationRequest) -> None:
        if response.status_code == 200:
            return
        raise ProviderError(
            f"{self.provider_type.value} API error: {response.status_code}",
            model_id=request.model_id,
            upstream_message=response.text[:500],
            status_code=response.status_code,
        )

    def validate_config(self) -> bool:
        """
        Validate provider configuration

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if self.requires_api_key() and not self.api_key:
            raise ConfigurationError(f"{self.provider_type.value} requires an API key")
        return True

    def requires_api_key(self) -> bool:
        return True

    def get_provider_info(self) -> Dict[str, Any]:
        return {
            "type": self.provider_type.value,
            "name": self.__class__.__name__,
            "base_url": self.base_url,
            "requires_api_key": self.requires_api_key(),
            "timeout": self.timeout,
        }


def _approx_tokens(text: str) -> int:
    from namegen.cost.estimator import estimate_tokens

    return estimate_tokens(text)
