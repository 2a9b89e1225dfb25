"""
Entity Resolution

Modules:
    entity_resolver: EntityResolver (cross-document matching and discovery)
"""

from docgraph.ingestion.resolution.entity_resolver import (
    DISCOVERY_SOURCE,
    RESOLUTION_SOURCE,
    EntityResolver,
    embedding_text,
)

__all__ = ["DISCOVERY_SOURCE", "RESOLUTION_SOURCE", "EntityResolver", "embedding_text"]
