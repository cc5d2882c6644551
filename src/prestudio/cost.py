"""Token estimation and pricing."""

import math
from dataclasses import dataclass
from typing import Optional

# Pricing per 1 million tokens (USD)
PRICE_PER_1M_INPUT = 0.30
PRICE_PER_1M_OUTPUT = 2.50

# Calibration value; only monotonicity and determinism matter
CHARS_PER_TOKEN = 4

NOT_APPLICABLE = "N/A"


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by a generation call."""

    prompt_tokens: int = 0
    candidates_tokens: int = 0

    @property
    def cost(self) -> float:
        return calculate_cost(self.prompt_tokens, self.candidates_tokens)


@dataclass(frozen=True)
class CostEstimate:
    """A-priori cost of a billable action."""

    input_tokens: int
    output_tokens: int
    total_cost: float


def estimate_tokens(text: Optional[str]) -> int:
    """Approximate the token count of a piece of text.

    Args:
        text: Raw text. Empty or missing text estimates to zero.

    Returns:
        ceil(len(text) / CHARS_PER_TOKEN).
    """
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def calculate_cost(input_tokens: int, output_tokens: int) -> float:
    """Convert token counts to USD. No rounding is applied."""
    input_cost = (input_tokens / 1_000_000) * PRICE_PER_1M_INPUT
    output_cost = (output_tokens / 1_000_000) * PRICE_PER_1M_OUTPUT
    return input_cost + output_cost


def estimate_cost(input_text: Optional[str], output_tokens: int) -> CostEstimate:
    """Build the estimate shown before a billable action runs."""
    input_tokens = estimate_tokens(input_text)
    return CostEstimate(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_cost=calculate_cost(input_tokens, output_tokens),
    )


def format_currency(amount: float) -> str:
    """Render an amount in USD.

    Sub-cent amounts keep six fractional digits so they do not show as $0.00.
    """
    sign = "-" if amount < 0 else ""
    value = abs(amount)
    if 0 < value < 0.01:
        return f"{sign}${value:.6f}"
    return f"{sign}${value:,.2f}"


def percent_delta(estimated: float, actual: float) -> str:
    """Signed percentage difference between estimate and actual cost."""
    if estimated == 0:
        return NOT_APPLICABLE
    diff = (actual - estimated) / estimated * 100
    sign = "-" if diff < 0 else "+"
    return f"{sign}{abs(diff):.2f}%"
