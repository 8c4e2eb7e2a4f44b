"""
Pricing calculations and rate management.

Costs are derived from fixed per-million-token rates, with distinct rates for
input and output tokens. The same rates must be used for the pre-flight
estimate and the post-call actual.
"""

from dataclasses import dataclass
from decimal import Decimal

from .token_counter import TokenUsage, estimate_tokens

_MILLION = Decimal("1000000")


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for the analysis model."""
    input_cost_per_million: Decimal
    output_cost_per_million: Decimal

    def __post_init__(self):
        if self.input_cost_per_million < 0:
            raise ValueError("input_cost_per_million cannot be negative")
        if self.output_cost_per_million < 0:
            raise ValueError("output_cost_per_million cannot be negative")

    @classmethod
    def from_floats(cls, input_rate: float, output_rate: float) -> "ModelPricing":
        return cls(
            input_cost_per_million=Decimal(str(input_rate)),
            output_cost_per_million=Decimal(str(output_rate)),
        )


# $3 input / $15 output per million tokens
DEFAULT_PRICING = ModelPricing(
    input_cost_per_million=Decimal("3.00"),
    output_cost_per_million=Decimal("15.00"),
)

DEFAULT_OUTPUT_TOKEN_BUDGET = 2000


@dataclass(frozen=True)
class CostBreakdown:
    """Token counts and their cost in USD.

    Used both as the pre-flight estimate and as the actual cost of a call.
    """
    input_tokens: int
    output_tokens: int
    input_cost: float
    output_cost: float
    total_cost: float

    @classmethod
    def zero(cls) -> "CostBreakdown":
        return cls(0, 0, 0.0, 0.0, 0.0)


def calculate_cost(usage: TokenUsage, pricing: ModelPricing = DEFAULT_PRICING) -> CostBreakdown:
    """Calculate the cost of a model call from its token usage.

    No rounding is applied: per-request costs are fractions of a cent and
    the ledger accumulates them exactly.

    Args:
        usage: Token usage data
        pricing: Rates to apply

    Returns:
        CostBreakdown with input, output and total cost
    """
    input_cost = (Decimal(usage.input_tokens) / _MILLION) * pricing.input_cost_per_million
    output_cost = (Decimal(usage.output_tokens) / _MILLION) * pricing.output_cost_per_million
    return CostBreakdown(
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        input_cost=float(input_cost),
        output_cost=float(output_cost),
        total_cost=float(input_cost + output_cost),
    )


def estimate_cost(
    input_chars: int,
    prior_messages_length: int,
    output_token_budget: int = DEFAULT_OUTPUT_TOKEN_BUDGET,
    pricing: ModelPricing = DEFAULT_PRICING,
) -> CostBreakdown:
    """Estimate the cost of a request before calling the model.

    The estimate is conservative: it assumes the full output budget is used.

    Args:
        input_chars: Length of the query text
        prior_messages_length: Length of the serialized prior conversation
        output_token_budget: Fixed output-token budget per request
        pricing: Rates to apply

    Returns:
        CostBreakdown for the estimated usage

    Raises:
        ValueError: If any length or budget is negative
    """
    if input_chars < 0 or prior_messages_length < 0:
        raise ValueError("character counts cannot be negative")
    if output_token_budget < 0:
        raise ValueError("output_token_budget cannot be negative")

    usage = TokenUsage(
        input_tokens=estimate_tokens(input_chars + prior_messages_length),
        output_tokens=output_token_budget,
    )
    return calculate_cost(usage, pricing)
