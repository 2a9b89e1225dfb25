"""
Per-call Option Structs

Every recognized option of each pipeline call, with its default.
DocGraphConfig builds these from configuration via its *_options() helpers.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from docgraph.types.results import UserContext


class ChunkingStrategy(str, Enum):
    FIXED = "fixed"
    SEMANTIC = "semantic"
    AUTO = "auto"


class ChunkingOptions(BaseModel):
    """Options for Chunker.chunk."""

    strategy: ChunkingStrategy = ChunkingStrategy.SEMANTIC
    chunk_size: int = Field(default=500, description="Words per fixed-size window")
    chunk_overlap: int = Field(default=50, description="Words shared by consecutive windows")
    semantic_max_chars: int = Field(
        default=200_000, description="Above this body length semantic chunking is skipped (0 = no limit)"
    )
    semantic_max_pages: int = Field(
        default=50, description="Above this page count semantic chunking is skipped (0 = no limit)"
    )
    semantic_threshold: float = Field(default=95, description="Breakpoint distance percentile")
    semantic_buffer_size: int = Field(default=1, description="Neighbour sentences per embedding")
    min_section_chars: int = Field(default=50, description="Sections at or below this length are skipped")
    title: str | None = None
    filename: str | None = None

    model_config = ConfigDict(use_enum_values=True)


class ResolveOptions(BaseModel):
    """Options for EntityResolver.resolve."""

    exclude_same_document: bool = Field(
        default=False, description="Ignore index entries already sourced from this document"
    )
    strict_type_matching: bool = Field(
        default=False, description="Only match candidates of the same entity type"
    )
    max_candidates: int = Field(default=10, description="Candidates scored per entity")


class IngestOptions(BaseModel):
    """Options for IngestionPipeline.process_document."""

    mime_type: str | None = None
    filename: str | None = None
    title: str | None = None
    chunking: ChunkingOptions = Field(default_factory=ChunkingOptions)
    resolve: ResolveOptions = Field(default_factory=ResolveOptions)
    cross_document_min_similarity: float = 0.75


class QueryOptions(BaseModel):
    """Options for RetrievalPipeline.process_query and its streaming variant."""

    user: UserContext | None = None
    filter: str | None = Field(default=None, description="Caller-supplied search filter expression")
    top_k: int = Field(default=10, ge=1)
    graph_depth: int = Field(default=2, ge=0)
    include_graph_context: bool = True
