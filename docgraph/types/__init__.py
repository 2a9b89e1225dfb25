"""
Type Definitions

Pydantic models shared across ingestion and retrieval.

Modules:
    documents: Document, DocumentStatus, ExtractedContent
    chunks: Chunk, ChunkType, ChunkSet
    entities: ExtractedEntity, ExtractedRelationship, graph and index records
    results: Stage outcomes, query responses, stream events
    options: Per-call option structs
"""

from docgraph.types.chunks import BoundarySplit, Chunk, ChunkSet, ChunkType
from docgraph.types.documents import (
    PROCESSING_STAGES,
    ContentMetadata,
    Document,
    DocumentStatus,
    ExtractedContent,
    Figure,
    Section,
    Table,
    TableCell,
)
from docgraph.types.entities import (
    ExtractedEntity,
    ExtractedRelationship,
    GraphEdge,
    GraphVertex,
    IndexedEntity,
    ResolutionAction,
)
from docgraph.types.options import (
    ChunkingOptions,
    ChunkingStrategy,
    IngestOptions,
    QueryOptions,
    ResolveOptions,
)
from docgraph.types.results import (
    Citation,
    CostBreakdown,
    CostDebugReport,
    CostUsageRecord,
    DiscoveredLink,
    DiscoveryResult,
    EntityTrimResult,
    ExtractionResult,
    GraphContext,
    IngestResult,
    MentionStats,
    MentionUpdateResult,
    PIIDetection,
    PIIRedactionSummary,
    ProcessingStats,
    QueryMetadata,
    QueryResponse,
    RedactionResult,
    ResolutionResult,
    SearchResult,
    SecurityTrimmingSummary,
    StageCostBreakdown,
    StreamEvent,
    TrimResult,
    UpsertStats,
    UserContext,
    ValidationResult,
)

__all__ = [
    # Documents
    "Document",
    "DocumentStatus",
    "PROCESSING_STAGES",
    "ExtractedContent",
    "ContentMetadata",
    "Section",
    "Table",
    "TableCell",
    "Figure",
    # Chunks
    "Chunk",
    "BoundarySplit",
    "ChunkSet",
    "ChunkType",
    # Entities
    "ExtractedEntity",
    "ExtractedRelationship",
    "GraphVertex",
    "GraphEdge",
    "IndexedEntity",
    "ResolutionAction",
    # Options
    "ChunkingOptions",
    "ChunkingStrategy",
    "IngestOptions",
    "QueryOptions",
    "ResolveOptions",
    # Results
    "ResolutionResult",
    "DiscoveredLink",
    "DiscoveryResult",
    "UpsertStats",
    "MentionStats",
    "MentionUpdateResult",
    "ValidationResult",
    "ProcessingStats",
    "IngestResult",
    "UserContext",
    "SearchResult",
    "TrimResult",
    "EntityTrimResult",
    "ExtractionResult",
    "GraphContext",
    "Citation",
    "SecurityTrimmingSummary",
    "PIIRedactionSummary",
    "QueryMetadata",
    "QueryResponse",
    "StreamEvent",
    "PIIDetection",
    "RedactionResult",
    "CostUsageRecord",
    "StageCostBreakdown",
    "CostBreakdown",
    "CostDebugReport",
]
