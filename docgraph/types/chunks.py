"""
Chunk Types

Chunks are the retrievable units written to the search index.

Chunk ids follow "{document_id}_{kind}_{index}":
    - "{doc}_chunk_{i}"   body text windows
    - "{doc}_section_{i}" one per structural section
    - "{doc}_table_{i}"   one per extracted table
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChunkType(str, Enum):
    """Chunk families emitted by the chunker."""

    CONTENT = "content"
    SECTION = "section"
    TABLE = "table"


class Chunk(BaseModel):
    """
    A retrievable unit of document text.

    Created once per ingestion run. The embedding stage of the same run adds
    content_vector and entities; nothing else changes afterwards.
    """

    id: str
    document_id: str
    chunk_index: int
    content: str
    chunk_type: ChunkType = ChunkType.CONTENT
    title: str | None = None
    source_file: str | None = None
    section_title: str | None = None
    page_number: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    # Added by the embedding stage
    content_vector: list[float] | None = None
    entities: list[str] = Field(default_factory=list)

    model_config = ConfigDict(use_enum_values=True)


class ChunkSet(BaseModel):
    """
    Output of Chunker.chunk.

    Attributes:
        chunks: Body, section and table chunks in index order
        method: Chunking method used for the body chunks
        fallback_reason: Why fixed chunking replaced a semantic request (None otherwise)
    """

    chunks: list[Chunk] = Field(default_factory=list)
    method: str = "fixed"
    fallback_reason: str | None = None

    @property
    def fell_back(self) -> bool:
        return self.fallback_reason is not None

    def of_type(self, chunk_type: ChunkType) -> list[Chunk]:
        """Return chunks of one family."""
        return [c for c in self.chunks if c.chunk_type == chunk_type.value]

    def __len__(self) -> int:
        return len(self.chunks)


class BoundarySplit(BaseModel):
    """
    Output of a BoundaryDetector.

    Attributes:
        chunks: Text of each topic-coherent chunk, in document order
        method: "semantic" or "single_chunk"
        chunk_methods: Per-chunk label: "semantic", "semantic_merged",
            "semantic_split" or "single_chunk"
    """

    chunks: list[str] = Field(default_factory=list)
    method: str = "semantic"
    chunk_methods: list[str] = Field(default_factory=list)
