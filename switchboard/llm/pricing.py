"""
Cost Calculator — prices token usage in USD.

Lookup order: embedding pricing, then model pricing from the catalog,
then DEFAULT_PRICING. Unknown models are still billed at the default
rate (and a warning is logged) so usage is never silently free.

Usage:
    result = compute_cost("gpt-4o", prompt_tokens=1200, completion_tokens=300)
    result.total_cost           # → 0.006
    format_cost(result.total_cost)   # → "$0.0060"
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

from switchboard.config.settings import Settings, get_settings
from switchboard.exceptions import PricingNotFound
from switchboard.llm.catalog import PricingEntry
from switchboard.llm.resolver import CatalogSource, current_snapshot

logger = logging.getLogger(__name__)

TOKENS_PER_MILLION = 1_000_000
COST_DECIMALS = 8

DEFAULT_PRICING = PricingEntry(
    input=1.0,
    cached_input=0.5,
    output=5.0,
    updated_at="2025-03-21",
)


@dataclass(frozen=True)
class CostResult:
    input_cost: float
    output_cost: float
    total_cost: float
    pricing: PricingEntry
    used_default_pricing: bool = False

    def to_dict(self) -> dict:
        return {
            "input": self.input_cost,
            "output": self.output_cost,
            "total": self.total_cost,
            "pricing": self.pricing.to_dict(),
        }


def get_model_pricing(model: str, catalog: Optional[CatalogSource] = None) -> PricingEntry:
    """
    Pricing for a model or embedding model.

    Raises:
        PricingNotFound: Neither table lists the model.
    """
    snapshot = current_snapshot(catalog)
    pricing = snapshot.embedding_pricing_for(model) or snapshot.model_pricing(model)
    if pricing is None:
        raise PricingNotFound(f"No pricing for model: {model}", model=model)
    return pricing


def compute_cost(
    model: str,
    prompt_tokens: int = 0,
    completion_tokens: int = 0,
    use_cached_input: bool = False,
    input_multiplier: float = 1.0,
    output_multiplier: float = 1.0,
    catalog: Optional[CatalogSource] = None,
) -> CostResult:
    """
    Price one call.

    Args:
        model: Model id (case-insensitive).
        prompt_tokens / completion_tokens: Token counts.
        use_cached_input: Bill input at the cached rate when the model
                          has one.
        input_multiplier / output_multiplier: Applied after pricing,
                          e.g. cost_multiplier(settings).

    Each of input, output and total is rounded to 8 decimals on its own.
    """
    used_default = False
    try:
        pricing = get_model_pricing(model, catalog)
    except PricingNotFound:
        logger.warning(
            "pricing_not_found_using_default",
            extra={"model": model, "pricing_updated_at": DEFAULT_PRICING.updated_at},
        )
        pricing = DEFAULT_PRICING
        used_default = True

    if use_cached_input and pricing.cached_input:
        input_rate = pricing.cached_input
    else:
        input_rate = pricing.input

    input_cost = prompt_tokens * (input_rate / TOKENS_PER_MILLION) * input_multiplier
    output_cost = completion_tokens * (pricing.output / TOKENS_PER_MILLION) * output_multiplier

    return CostResult(
        input_cost=round(input_cost, COST_DECIMALS),
        output_cost=round(output_cost, COST_DECIMALS),
        total_cost=round(input_cost + output_cost, COST_DECIMALS),
        pricing=pricing,
        used_default_pricing=used_default,
    )


def cost_multiplier(settings: Optional[Settings] = None) -> float:
    """COST_MULTIPLIER in production, 1 everywhere else."""
    settings = settings or get_settings()
    return settings.cost_multiplier if settings.is_production else 1.0


def format_cost(cost: Optional[float]) -> str:
    """
    Render a USD amount with precision that scales with its size.

        format_cost(12.5)      → "$12.50"
        format_cost(0.0421)    → "$0.042"
        format_cost(0.0042)    → "$0.0042"
        format_cost(0.000042)  → "$0.00004200"
    """
    if cost is None:
        return "—"
    if cost >= 1:
        return f"${cost:.2f}"
    if cost >= 0.01:
        return f"${cost:.3f}"
    if cost >= 0.001:
        return f"${cost:.4f}"
    if cost > 0:
        places = max(4, abs(math.floor(math.log10(cost))) + 3)
        return f"${cost:.{places}f}"
    return "$0"
