"""
Collaborator Interfaces

Abstract contracts for the external services used by the pipelines.
"""

from docgraph.services.base import (
    BoundaryDetector,
    ContentExtractor,
    DocumentStore,
    EntityExtractor,
    EntityIndex,
    GraphStore,
    OntologyValidator,
    PIIRedactor,
    SearchIndex,
    SecurityTrimmer,
    WriteOutcome,
)

__all__ = [
    "BoundaryDetector",
    "ContentExtractor",
    "DocumentStore",
    "EntityExtractor",
    "EntityIndex",
    "GraphStore",
    "OntologyValidator",
    "PIIRedactor",
    "SearchIndex",
    "SecurityTrimmer",
    "WriteOutcome",
]
