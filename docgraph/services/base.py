"""
Abstract Collaborator Interfaces

The ingestion and retrieval pipelines talk to every external service through
these contracts. Any implementation may be injected; in-process reference
implementations live in docgraph.storage, docgraph.security,
docgraph.redaction and docgraph.ingestion.

Collaborators:
    ContentExtractor: blob -> text, sections, tables, figures
    EntityExtractor: chunks -> entities and relationships
    BoundaryDetector: text -> topic-coherent chunks
    OntologyValidator: optional extraction validation
    SearchIndex: hybrid vector + keyword search over chunks
    GraphStore: entity vertices and relationship edges
    EntityIndex: canonical entities with embeddings, used for resolution
    DocumentStore: document records and status updates
    SecurityTrimmer: permission filters and post-query trimming
    PIIRedactor: answer and citation redaction
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from docgraph.types import (
        BoundarySplit,
        Chunk,
        Document,
        EntityTrimResult,
        ExtractedContent,
        ExtractedEntity,
        ExtractedRelationship,
        ExtractionResult,
        GraphContext,
        GraphEdge,
        GraphVertex,
        IndexedEntity,
        MentionUpdateResult,
        RedactionResult,
        SearchResult,
        TrimResult,
        UserContext,
        ValidationResult,
    )

WriteOutcome = Literal["added", "updated", "skipped"]


# -----------------------------------------------------------------------------
# Ingestion Collaborators
# -----------------------------------------------------------------------------


class ContentExtractor(ABC):
    """Turns a source blob into structured text."""

    @abstractmethod
    async def extract(self, blob_ref: str, *, mime_type: str | None = None) -> "ExtractedContent":
        """Extract content, sections, tables and figures from a blob."""
        ...


class EntityExtractor(ABC):
    """Extracts entities and relationships from chunk text."""

    @abstractmethod
    async def extract(
        self,
        chunks: list["Chunk"],
        document_id: str,
        title: str | None = None,
    ) -> "ExtractionResult":
        ...


class BoundaryDetector(ABC):
    """Splits text at topic boundaries."""

    @abstractmethod
    async def split(
        self,
        text: str,
        *,
        threshold: float = 95,
        buffer_size: int = 1,
    ) -> "BoundarySplit":
        """
        Split text into topic-coherent chunks.

        Args:
            text: Plain-text body
            threshold: Percentile of neighbour distances that marks a boundary
            buffer_size: Neighbouring sentences folded into each comparison unit

        Raises:
            Any exception; callers fall back to fixed-size chunking.
        """
        ...


class OntologyValidator(ABC):
    """Optional validation of extracted entities and relationships."""

    @abstractmethod
    async def validate(
        self,
        entities: list["ExtractedEntity"],
        relationships: list["ExtractedRelationship"],
        *,
        apply_penalties: bool = True,
    ) -> "ValidationResult":
        ...


# -----------------------------------------------------------------------------
# Storage Collaborators
# -----------------------------------------------------------------------------


class SearchIndex(ABC):
    """Hybrid (vector + keyword) search index over chunks."""

    @abstractmethod
    async def search(
        self,
        query: str,
        vector: list[float],
        *,
        top: int = 10,
        semantic: bool = True,
        filter: str | None = None,
    ) -> list["SearchResult"]:
        """Return up to `top` hits matching `filter`, best first."""
        ...

    @abstractmethod
    async def index_documents(self, chunks: list["Chunk"]) -> int:
        """Index chunks. Returns the number indexed."""
        ...

    @abstractmethod
    async def delete_by_document_id(self, document_id: str) -> int:
        """Delete all chunks of a document. Returns the number deleted."""
        ...


class GraphStore(ABC):
    """
    Entity/relationship graph.

    Vertex and edge writes are upserts; the store decides whether a write
    adds, updates or skips.
    """

    @abstractmethod
    async def upsert_vertex(self, vertex: "GraphVertex") -> WriteOutcome:
        ...

    @abstractmethod
    async def upsert_edge(self, edge: "GraphEdge") -> WriteOutcome:
        ...

    @abstractmethod
    async def delete_edges_by_document(self, document_id: str) -> int:
        """Delete edges whose source_document_id matches. Vertices are untouched."""
        ...

    @abstractmethod
    async def find_related(self, entity_names: list[str], depth: int = 2) -> "GraphContext":
        """Entities and relationships within `depth` hops of the named entities."""
        ...

    @abstractmethod
    async def batch_update_mention_counts(self, counts: dict[str, int]) -> "MentionUpdateResult":
        """Add counts (entity name -> mentions) to the vertices' mention_count."""
        ...


class EntityIndex(ABC):
    """Canonical entities with embeddings, queried during resolution."""

    @abstractmethod
    async def search_similar(
        self,
        vector: list[float],
        *,
        top: int = 10,
        exclude_document_id: str | None = None,
        entity_type: str | None = None,
    ) -> list["IndexedEntity"]:
        """Nearest entities by combined vector, with `similarity` filled in."""
        ...

    @abstractmethod
    async def get_by_name(self, normalized_name: str) -> "IndexedEntity | None":
        ...

    @abstractmethod
    async def upsert(self, entity: "IndexedEntity") -> None:
        ...

    @abstractmethod
    async def entities_for_document(self, document_id: str) -> list["IndexedEntity"]:
        """Entities whose source_document_ids include `document_id`."""
        ...


class DocumentStore(ABC):
    """Document records."""

    @abstractmethod
    async def get(self, document_id: str) -> "Document | None":
        ...

    @abstractmethod
    async def put(self, document: "Document") -> None:
        ...

    @abstractmethod
    async def update_status(self, document_id: str, fields: dict[str, Any]) -> None:
        """
        Merge `fields` into the document record.

        Keys are Document field names, plus "{status}_at" timestamp keys
        which land in stage_timestamps.
        """
        ...


# -----------------------------------------------------------------------------
# Query-time Collaborators
# -----------------------------------------------------------------------------


class SecurityTrimmer(ABC):
    """Permission filtering for search results and graph context."""

    @property
    @abstractmethod
    def enabled(self) -> bool:
        ...

    @abstractmethod
    def build_filter(self, user: "UserContext | None") -> str | None:
        """Search filter expression scoped to `user`, or None for no restriction."""
        ...

    @abstractmethod
    def filter_results(self, results: list["SearchResult"], user: "UserContext | None") -> "TrimResult":
        ...

    @abstractmethod
    def filter_entities(self, entities: list["GraphVertex"], user: "UserContext | None") -> "EntityTrimResult":
        ...

    @abstractmethod
    def filter_relationships(
        self,
        relationships: list["GraphEdge"],
        allowed_entities: set[str],
    ) -> list["GraphEdge"]:
        """Keep relationships whose both endpoints are in `allowed_entities` (by vertex id)."""
        ...


class PIIRedactor(ABC):
    """Detects and redacts personally identifiable information."""

    @property
    @abstractmethod
    def enabled(self) -> bool:
        ...

    @abstractmethod
    async def redact(self, text: str) -> "RedactionResult":
        ...
