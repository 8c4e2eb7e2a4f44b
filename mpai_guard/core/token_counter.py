"""
Token counting and usage tracking.

Exact counts come from the model response; estimates use the
one-token-per-four-characters approximation.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class TokenUsage:
    """Token usage reported for one model call."""
    input_tokens: int
    output_tokens: int

    def __post_init__(self):
        if self.input_tokens < 0:
            raise ValueError("input_tokens cannot be negative")
        if self.output_tokens < 0:
            raise ValueError("output_tokens cannot be negative")

    @property
    def total_tokens(self) -> int:
        """Total tokens used (input + output)."""
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict:
        return {"inputTokens": self.input_tokens, "outputTokens": self.output_tokens}


def estimate_tokens(char_count: int) -> int:
    """Estimate tokens from a character count, rounding halves up."""
    if char_count <= 0:
        return 0
    tokens = Decimal(char_count) / Decimal(CHARS_PER_TOKEN)
    return int(tokens.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
