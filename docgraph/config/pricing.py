"""
Model pricing for usage telemetry.

Estimated USD per 1M tokens. Unknown models are costed at 0.0 and flagged
with pricing_found=False so the collector can warn about them.
"""

from __future__ import annotations

from dataclasses import dataclass

PRICING_VERSION = "2026-10-estimate-v1"


@dataclass(frozen=True)
class ModelPrice:
    """Input/output price per 1M tokens. Embedding models have no output price."""

    input_per_million: float
    output_per_million: float = 0.0


LLM_PRICING: dict[str, ModelPrice] = {
    "gpt-4o": ModelPrice(input_per_million=2.5, output_per_million=10.0),
    "gpt-4o-mini": ModelPrice(input_per_million=0.15, output_per_million=0.6),
    "gpt-4.1": ModelPrice(input_per_million=2.0, output_per_million=8.0),
    "gpt-4.1-mini": ModelPrice(input_per_million=0.4, output_per_million=1.6),
    "gpt-5-mini": ModelPrice(input_per_million=0.25, output_per_million=2.0),
}

EMBEDDING_PRICING: dict[str, ModelPrice] = {
    "text-embedding-3-large": ModelPrice(input_per_million=0.13),
    "text-embedding-3-small": ModelPrice(input_per_million=0.02),
    "text-embedding-ada-002": ModelPrice(input_per_million=0.10),
}


def _estimate(table: dict[str, ModelPrice], model: str, input_tokens: int, output_tokens: int) -> tuple[float, bool]:
    price = table.get(model)
    if price is None:
        return 0.0, False
    cost = (
        input_tokens * price.input_per_million + output_tokens * price.output_per_million
    ) / 1_000_000.0
    return cost, True


def estimate_llm_cost_usd(model: str, *, input_tokens: int, output_tokens: int) -> tuple[float, bool]:
    """
    Estimate chat completion cost.

    Returns:
        (cost_usd, priced) where priced=False means the model was unknown.
    """
    return _estimate(LLM_PRICING, model, input_tokens, output_tokens)


def estimate_embedding_cost_usd(model: str, *, input_tokens: int) -> tuple[float, bool]:
    """Estimate embedding cost. Same return shape as estimate_llm_cost_usd."""
    return _estimate(EMBEDDING_PRICING, model, input_tokens, 0)
