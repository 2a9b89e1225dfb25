"""
Result Types

Stage outcomes and API results for ingestion and retrieval.

Ingestion Outcomes:
    - ResolutionResult: Per-entity resolution with action counts
    - DiscoveryResult: Cross-document links (empty with error on failure)
    - UpsertStats: Graph write counts
    - MentionStats: Mention tracking counts
    - ExtractionResult: Entities and relationships from entity extraction
    - ValidationResult: Output of the optional ontology validator
    - IngestResult: Summary of one processed document

Retrieval Models:
    - UserContext: Identity used for security trimming
    - SearchResult: One hybrid-search hit
    - TrimResult / EntityTrimResult: Security trimming outcomes
    - GraphContext: Entities and relationships around the search hits
    - Citation, QueryMetadata, QueryResponse: Non-streaming answer
    - StreamEvent: One streaming protocol event

Redaction Models:
    - PIIDetection, RedactionResult

Cost Telemetry Models:
    - CostUsageRecord, StageCostBreakdown, CostBreakdown, CostDebugReport
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from docgraph.types.entities import (
    ExtractedEntity,
    ExtractedRelationship,
    GraphEdge,
    GraphVertex,
)

# -----------------------------------------------------------------------------
# Ingestion Outcomes
# -----------------------------------------------------------------------------


class ResolutionResult(BaseModel):
    """
    Result of EntityResolver.resolve.

    Every input entity appears in `resolved`, in input order, annotated with
    action/resolved_to/similarity. When `fallback_reason` is set the resolver
    failed and every entity carries action "fallback".
    """

    resolved: list[ExtractedEntity] = Field(default_factory=list)
    created: int = 0
    merged: int = 0
    linked_same_as: int = 0
    linked_similar: int = 0
    exact_match: int = 0
    fallback_reason: str | None = None

    @property
    def linked(self) -> int:
        return self.linked_same_as + self.linked_similar


class DiscoveredLink(BaseModel):
    """A proposed edge between entities of two different documents."""

    entity1_id: str
    entity1_name: str
    entity2_id: str
    entity2_name: str
    similarity: float
    relationship_type: Literal["SAME_AS", "SIMILAR_TO"]


class DiscoveryResult(BaseModel):
    """Cross-document discovery outcome. On failure: no links and `error` set."""

    links: list[DiscoveredLink] = Field(default_factory=list)
    entities_analyzed: int = 0
    error: str | None = None


class UpsertStats(BaseModel):
    """Counts from a batch of graph writes."""

    added: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0


class MentionUpdateResult(BaseModel):
    """Counts returned by GraphStore.batch_update_mention_counts."""

    updated: int = 0
    skipped: int = 0
    not_found: int = 0
    errors: int = 0


class MentionStats(BaseModel):
    """Result of GraphUpdater.track_mentions."""

    unique_entities_mentioned: int = 0
    total_mentions: int = 0
    mention_counts: dict[str, int] = Field(default_factory=dict)
    update_result: MentionUpdateResult = Field(default_factory=MentionUpdateResult)


class ValidationResult(BaseModel):
    """Output of an ontology validator."""

    entities: list[ExtractedEntity] = Field(default_factory=list)
    relationships: list[ExtractedRelationship] = Field(default_factory=list)
    summary: dict[str, Any] = Field(default_factory=dict)


class ExtractionResult(BaseModel):
    """Entities and relationships extracted from a document's chunks."""

    entities: list[ExtractedEntity] = Field(default_factory=list)
    relationships: list[ExtractedRelationship] = Field(default_factory=list)


class ProcessingStats(BaseModel):
    """Statistics recorded on a completed document."""

    page_count: int = 0
    chunks_created: int = 0
    chunks_indexed: int = 0
    chunking_method: str | None = None
    entities_extracted: int = 0
    entities_resolved: int = 0
    entities_merged: int = 0
    entities_linked: int = 0
    cross_document_links: int = 0
    relationships_extracted: int = 0
    processing_time_ms: int = 0
    model_id: str | None = None
    unique_entities_mentioned: int = 0
    total_entity_mentions: int = 0
    validation_summary: dict[str, Any] | None = None


class IngestResult(BaseModel):
    """
    Result from document ingestion.

    Attributes:
        document_id: Processed document
        success: Always True when returned (failures raise)
        stats: Processing statistics
    """

    document_id: str
    success: bool = True
    stats: ProcessingStats = Field(default_factory=ProcessingStats)


# -----------------------------------------------------------------------------
# Retrieval Models
# -----------------------------------------------------------------------------


class UserContext(BaseModel):
    """The requesting user, as seen by security trimming."""

    id: str | None = None
    email: str | None = None
    roles: list[str] = Field(default_factory=list)
    groups: list[str] = Field(default_factory=list)
    department: str | None = None


class SearchResult(BaseModel):
    """
    One hit from the hybrid search index.

    Mirrors the indexed chunk, plus the search score and the security
    metadata inherited from its document.
    """

    id: str
    document_id: str
    content: str
    chunk_type: str = "content"
    title: str | None = None
    source_file: str | None = None
    section_title: str | None = None
    page_number: int | None = None
    entities: list[str] = Field(default_factory=list)
    score: float = 0.0

    classification: str | None = None
    allowed_groups: list[str] = Field(default_factory=list)
    department: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class TrimResult(BaseModel):
    """Search results left after security trimming."""

    filtered: list[SearchResult] = Field(default_factory=list)
    denied_count: int = 0


class EntityTrimResult(BaseModel):
    """Graph entities left after security trimming."""

    filtered: list[GraphVertex] = Field(default_factory=list)
    denied_count: int = 0


class GraphContext(BaseModel):
    """Entities and relationships reachable from the entities in the search hits."""

    entities: list[GraphVertex] = Field(default_factory=list)
    relationships: list[GraphEdge] = Field(default_factory=list)


class Citation(BaseModel):
    """A pointer from an answer back to the passage that supports it."""

    chunk_id: str
    document_id: str
    document_name: str
    content: str
    page_number: int | None = None
    section_title: str | None = None
    score: float = 0.0


class SecurityTrimmingSummary(BaseModel):
    enabled: bool = True
    search_results_denied: int = 0
    entities_denied: int = 0
    relationships_filtered: int = 0


class PIIRedactionSummary(BaseModel):
    enabled: bool = True
    detections_in_answer: int = 0
    detections_in_citations: int = 0


class QueryMetadata(BaseModel):
    """Metrics attached to a QueryResponse."""

    vector_search_executed: bool = False
    graph_traversal_executed: bool = False
    documents_searched: int = 0
    documents_accessible: int = 0
    entities_found: int = 0
    relationships_found: int = 0
    security_trimming: SecurityTrimmingSummary = Field(default_factory=SecurityTrimmingSummary)
    pii_redaction: PIIRedactionSummary = Field(default_factory=PIIRedactionSummary)
    timing: dict[str, int] = Field(default_factory=dict)
    timestamp: str | None = None
    error: bool = False


class QueryResponse(BaseModel):
    """
    Non-streaming answer.

    Attributes:
        answer: Synthesized (redacted) answer text
        citations: Redacted source passages
        response_time_ms: End-to-end latency
        metadata: Counts, trimming and redaction summaries
    """

    answer: str
    citations: list[Citation] = Field(default_factory=list)
    response_time_ms: int = 0
    metadata: QueryMetadata = Field(default_factory=QueryMetadata)


StreamEventName = Literal["thinking", "metadata", "content", "content_replace", "error", "done"]


class StreamEvent(BaseModel):
    """One event of the streaming protocol."""

    event: StreamEventName
    data: dict[str, Any] = Field(default_factory=dict)


# -----------------------------------------------------------------------------
# Redaction Models
# -----------------------------------------------------------------------------


class PIIDetection(BaseModel):
    """A detected PII span. `original` is only filled in audit mode."""

    type: str
    category: str
    severity: str
    position: int
    length: int
    original: str | None = None


class RedactionResult(BaseModel):
    redacted_text: str
    detections: list[PIIDetection] = Field(default_factory=list)
    redaction_applied: bool = False


# -----------------------------------------------------------------------------
# Cost Telemetry Models
# -----------------------------------------------------------------------------


class CostUsageRecord(BaseModel):
    """Usage and estimated cost of one provider call."""

    provider: str
    model: str
    operation: str
    stage: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0
    latency_ms: int = 0
    estimated: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class StageCostBreakdown(BaseModel):
    """Aggregated usage for one telemetry stage."""

    stage: str
    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0
    total_latency_ms: int = 0


class CostBreakdown(BaseModel):
    total_calls: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0
    total_estimated_cost_usd: float = 0.0
    total_latency_ms: int = 0
    by_stage: list[StageCostBreakdown] = Field(default_factory=list)


class CostDebugReport(BaseModel):
    enabled: bool = False
    pricing_version: str | None = None
    breakdown: CostBreakdown = Field(default_factory=CostBreakdown)
    warnings: list[str] = Field(default_factory=list)
