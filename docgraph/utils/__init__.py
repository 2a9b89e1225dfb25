"""
Utility Functions

Modules:
    text: Entity-name and relationship-type normalization
    rate_limit: Graph write rate limiters
    similarity: Cosine similarity helpers
    cost_telemetry: Request-scoped usage accounting
    token_count: Token estimation for telemetry
"""

from docgraph.utils.cost_telemetry import (
    CostCollector,
    current_stage,
    record_usage,
    telemetry_collector,
    telemetry_stage,
    timed_stage,
)
from docgraph.utils.rate_limit import (
    FixedIntervalRateLimiter,
    NoopRateLimiter,
    RateLimiter,
    TokenBucketRateLimiter,
)
from docgraph.utils.similarity import cosine_similarities, cosine_similarity
from docgraph.utils.text import (
    count_whole_word,
    edge_id,
    normalize_entity_name,
    normalize_relationship_type,
    vertex_id,
)

__all__ = [
    "CostCollector",
    "current_stage",
    "record_usage",
    "telemetry_collector",
    "telemetry_stage",
    "timed_stage",
    "RateLimiter",
    "NoopRateLimiter",
    "FixedIntervalRateLimiter",
    "TokenBucketRateLimiter",
    "cosine_similarity",
    "cosine_similarities",
    "count_whole_word",
    "edge_id",
    "normalize_entity_name",
    "normalize_relationship_type",
    "vertex_id",
]
