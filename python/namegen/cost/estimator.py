"""
Cost & usage estimation.

Pure functions over a per-model rate table (USD per 1k tokens, input and
output priced separately). No network or storage access.
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

from namegen.exceptions import ValidationError
from namegen.llm.registry import DEFAULT_MODELS

logger = logging.getLogger(__name__)

# Output is assumed to be about half the prompt size when estimating ahead of a call
OUTPUT_TO_INPUT_RATIO = 0.5
CHARS_PER_TOKEN = 4

DEFAULT_RATES: Dict[str, Tuple[float, float]] = {
    d.model_id: (d.cost_per_1k_input, d.cost_per_1k_output) for d in DEFAULT_MODELS
}


@dataclass(frozen=True)
class CostEstimate:
    model_id: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    input_cost: float
    output_cost: float
    total_cost: float
    input_rate_per_1k: float
    output_rate_per_1k: float
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _check_tokens(input_tokens: int, output_tokens: int) -> None:
    if input_tokens < 0 or output_tokens < 0:
        raise ValidationError(
            "Token counts must be non-negative",
            details={"input_tokens": input_tokens, "output_tokens": output_tokens},
        )


class CostEstimator:
    """Prices token usage from a rate table or from a model registry."""

    def __init__(self, rates: Optional[Dict[str, Tuple[float, float]]] = None, registry=None):
        self._rates = dict(DEFAULT_RATES if rates is None else rates)
        self._registry = registry

    def rates_for(self, model_id: str) -> Optional[Tuple[float, float]]:
        if self._registry is not None:
            descriptor = self._registry.get(model_id)
            if descriptor is not None:
                return descriptor.cost_per_1k_input, descriptor.cost_per_1k_output
        return self._rates.get(model_id)

    def cost(self, model_id: str, input_tokens: int, output_tokens: int) -> float:
        """USD cost rounded to 6 decimal places; unknown models cost 0."""
        _check_tokens(input_tokens, output_tokens)
        rates = self.rates_for(model_id)
        if rates is None:
            logger.warning("Unknown model for cost calculation: %s", model_id)
            return 0.0
        input_rate, output_rate = rates
        return round((input_tokens / 1000) * input_rate + (output_tokens / 1000) * output_rate, 6)

    def cost_cents(self, model_id: str, input_tokens: int, output_tokens: int) -> int:
        """Whole cents, rounded up so any spend counts."""
        usd = self.cost(model_id, input_tokens, output_tokens)
        # Round before ceil so float noise (0.07 * 100 = 7.000000000000001) does not add a cent
        return int(math.ceil(round(usd * 100, 6)))

    def estimate(self, model_id: str, expected_input_tokens: int) -> CostEstimate:
        _check_tokens(expected_input_tokens, 0)
        rates = self.rates_for(model_id)
        if rates is None:
            return CostEstimate(
                model_id=model_id, input_tokens=0, output_tokens=0, total_tokens=0,
                input_cost=0.0, output_cost=0.0, total_cost=0.0,
                input_rate_per_1k=0.0, output_rate_per_1k=0.0, error="unknown model",
            )

        input_rate, output_rate = rates
        output_tokens = int(expected_input_tokens * OUTPUT_TO_INPUT_RATIO)
        input_cost = round((expected_input_tokens / 1000) * input_rate, 6)
        output_cost = round((output_tokens / 1000) * output_rate, 6)
        return CostEstimate(
            model_id=model_id,
            input_tokens=expected_input_tokens,
            output_tokens=output_tokens,
            total_tokens=expected_input_tokens + output_tokens,
            input_cost=input_cost,
            output_cost=output_cost,
            total_cost=round(input_cost + output_cost, 6),
            input_rate_per_1k=input_rate,
            output_rate_per_1k=output_rate,
        )


_default_estimator = CostEstimator()


def cost(model_id: str, input_tokens: int, output_tokens: int) -> float:
    return _default_estimator.cost(model_id, input_tokens, output_tokens)


def cost_cents(model_id: str, input_tokens: int, output_tokens: int) -> int:
    return _default_estimator.cost_cents(model_id, input_tokens, output_tokens)


def estimate(model_id: str, expected_input_tokens: int) -> CostEstimate:
    return _default_estimator.estimate(model_id, expected_input_tokens)


def estimate_tokens(text: str) -> int:
    """Rough token count (about four characters per token)."""
    if not text:
        return 0
    return max(1, math.ceil(len(text) / CHARS_PER_TOKEN))
