"""
Model price table and cost estimation.

Prices are USD per million tokens. An unknown provider/model pair has no
price: its cost is None, never zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from analytic_assistant.usage.tokens import TokenUsage

_MILLION = Decimal("1000000")
_COST_QUANTUM = Decimal("0.000001")


@dataclass(frozen=True)
class ModelPricing:
    input_per_million: Decimal
    output_per_million: Decimal


def _price(input_per_million: str, output_per_million: str) -> ModelPricing:
    return ModelPricing(Decimal(input_per_million), Decimal(output_per_million))


@dataclass(frozen=True)
class PricingTable:
    prices: dict[str, dict[str, ModelPricing]]

    def get_pricing(self, provider: str, model: str) -> ModelPricing | None:
        return self.prices.get(provider, {}).get(model)

    def estimate_cost(self, provider: str, model: str, usage: TokenUsage) -> float | None:
        """Cost in USD rounded to six decimals, or None when the pair is not priced."""
        pricing = self.get_pricing(provider, model)
        if pricing is None:
            return None
        cost = (
            Decimal(usage.prompt_tokens) / _MILLION * pricing.input_per_million
            + Decimal(usage.completion_tokens) / _MILLION * pricing.output_per_million
        )
        return float(cost.quantize(_COST_QUANTUM, rounding=ROUND_HALF_UP))


DEFAULT_PRICING = PricingTable({
    "anthropic": {
        "claude-sonnet-4-5-20250929": _price("3.00", "15.00"),
        "claude-sonnet-4-20250514": _price("3.00", "15.00"),
        "claude-opus-4-1-20250805": _price("15.00", "75.00"),
        "claude-3-7-sonnet-20250219": _price("3.00", "15.00"),
        "claude-haiku-4-5-20251001": _price("1.00", "5.00"),
        "claude-3-5-haiku-20241022": _price("0.80", "4.00"),
    },
    "openai": {
        "gpt-4o": _price("2.50", "10.00"),
        "gpt-4o-mini": _price("0.15", "0.60"),
        "gpt-4.1": _price("2.00", "8.00"),
        "gpt-4.1-mini": _price("0.40", "1.60"),
        "o3-mini": _price("1.10", "4.40"),
    },
    "google": {
        "gemini-2.5-pro": _price("1.25", "10.00"),
        "gemini-2.5-flash": _price("0.30", "2.50"),
        "gemini-2.0-flash": _price("0.10", "0.40"),
        "gemini-1.5-flash": _price("0.075", "0.30"),
    },
    "openrouter": {
        "google/gemini-flash-1.5": _price("0.075", "0.30"),
    },
    "deepseek": {
        "deepseek-chat": _price("0.27", "1.10"),
        "deepseek-reasoner": _price("0.55", "2.19"),
    },
})
