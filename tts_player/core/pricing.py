"""
Pricing calculations for speech generation.

Pay-per-use cost estimates keyed by model and character count.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_UP
from typing import Dict


@dataclass(frozen=True)
class ModelPricing:
    """Per-character pricing for a specific model."""
    cost_per_1m_chars: Decimal  # Cost per 1M input characters


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for supported models."""
    prices: Dict[str, ModelPricing]
    fallback_model: str

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a model, using the fallback model when unknown.

        Args:
            model: Model identifier

        Returns:
            ModelPricing for the model
        """
        return self.prices.get(model, self.prices[self.fallback_model])


# Unknown models are priced like the HD model so estimates never undershoot.
PRICING_TABLE = PricingTable(
    prices={
        "tts-1": ModelPricing(cost_per_1m_chars=Decimal("15.00")),
        "tts-1-hd": ModelPricing(cost_per_1m_chars=Decimal("30.00")),
    },
    fallback_model="tts-1-hd",
)


def count_characters(text: str) -> int:
    """Number of characters billed for a text."""
    return len(text)


def estimate_cost(model: str, character_count: int) -> float:
    """Estimate cost for a number of characters with conservative rounding.

    Args:
        model: Model identifier
        character_count: Characters sent to the provider

    Returns:
        Estimated cost rounded UP to 4 decimal places

    Raises:
        ValueError: If character_count is negative
    """
    if character_count < 0:
        raise ValueError("character_count cannot be negative")

    pricing = PRICING_TABLE.get_pricing(model)
    cost = (Decimal(character_count) / Decimal("1000000")) * pricing.cost_per_1m_chars
    return float(cost.quantize(Decimal("0.0001"), rounding=ROUND_UP))
