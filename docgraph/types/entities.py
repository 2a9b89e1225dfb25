"""
Entity Types

Extracted entities and relationships, plus their persisted graph projection.

Extraction Models (used during ingestion):
    - ExtractedEntity: Entity produced by extraction, annotated by validation and resolution
    - ExtractedRelationship: Directed relationship between two entity names
    - ResolutionAction: How an entity was matched against known entities

Storage Models:
    - GraphVertex: Deduplicated entity vertex with cumulative mention count
    - GraphEdge: Relationship edge tagged with its source document
    - IndexedEntity: Entity-index record used for similarity resolution
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ResolutionAction(str, Enum):
    """Outcome of resolving an extracted entity against known entities."""

    CREATED = "created"
    EXACT_MATCH = "exact_match"
    MERGED = "merged"
    LINKED_SAME_AS = "linked_same_as"
    LINKED_SIMILAR = "linked_similar"
    DEDUPLICATED_IN_DOCUMENT = "deduplicated_in_document"
    FALLBACK = "fallback"


class ExtractedEntity(BaseModel):
    """
    An entity extracted from a document.

    Resolution fills action/resolved_to/similarity. Validation fills
    validation_warnings/validation_passed and may lower confidence.
    """

    name: str = Field(..., description="Entity name as it appears in the text")
    type: str = Field(default="Unknown", description="Entity type label")
    description: str = Field(default="", description="Free-text description")
    confidence: float = Field(default=0.8, ge=0.0, le=1.0, description="Extraction confidence")
    source_document_id: str | None = Field(default=None, description="Originating document")
    source: str | None = Field(default=None, description="Extraction source, e.g. visual_extraction")

    # Resolution
    action: ResolutionAction | None = None
    resolved_to: str | None = None
    similarity: float | None = None

    # Validation
    validation_warnings: list[str] = Field(default_factory=list)
    validation_passed: bool = True
    original_confidence: float | None = None

    model_config = ConfigDict(use_enum_values=True)


class ExtractedRelationship(BaseModel):
    """A directed relationship between two entity names."""

    from_entity: str = Field(..., alias="from", description="Source entity name")
    to_entity: str = Field(..., alias="to", description="Target entity name")
    type: str = Field(default="RELATED_TO", description="Relationship type")
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    source_document_id: str | None = None
    evidence: str | None = None

    validation_warnings: list[str] = Field(default_factory=list)
    validation_passed: bool = True
    original_confidence: float | None = None

    model_config = ConfigDict(populate_by_name=True)


# -----------------------------------------------------------------------------
# Storage Models
# -----------------------------------------------------------------------------


class GraphVertex(BaseModel):
    """
    A persisted entity vertex.

    Vertices are shared across documents and are never deleted when a single
    contributing document is reprocessed.
    """

    id: str
    name: str
    type: str = "Unknown"
    description: str = ""
    confidence: float = 0.8
    mention_count: int = 0
    source_document_ids: list[str] = Field(default_factory=list)
    status: str | None = None
    access_restriction: dict[str, Any] | None = None


class GraphEdge(BaseModel):
    """A persisted relationship edge, deletable by source document."""

    id: str
    from_entity: str = Field(..., alias="from")
    to_entity: str = Field(..., alias="to")
    type: str
    confidence: float = 0.8
    source_document_id: str
    evidence: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class IndexedEntity(BaseModel):
    """
    A canonical entity held by the entity index.

    Attributes:
        combined_vector: Embedding of "name: description" used for matching
        similarity: Filled by similarity searches, None otherwise
    """

    id: str
    name: str
    normalized_name: str
    type: str = "Unknown"
    description: str = ""
    confidence: float = 0.8
    aliases: list[str] = Field(default_factory=list)
    source_document_ids: list[str] = Field(default_factory=list)
    combined_vector: list[float] = Field(default_factory=list)
    mention_count: int = 1
    similarity: float | None = None
