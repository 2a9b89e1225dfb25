"""
Document Types

Documents move through the ingestion state machine and carry the content
returned by the extraction collaborator.

Storage Models:
    - Document: Persisted document record with status tracking
    - DocumentStatus: Ingestion state machine states

Extraction Models:
    - ExtractedContent: Text, sections, tables and figures from extraction
    - Section, Table, TableCell, Figure: Structural elements
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DocumentStatus(str, Enum):
    """
    Ingestion states, in processing order.

    FAILED is terminal and reachable from any other state.
    """

    PENDING = "pending"
    EXTRACTING_CONTENT = "extracting_content"
    EXTRACTING_VISUALS = "extracting_visuals"
    CHUNKING = "chunking"
    EXTRACTING_ENTITIES = "extracting_entities"
    VALIDATING_EXTRACTION = "validating_extraction"
    RESOLVING_ENTITIES = "resolving_entities"
    GENERATING_EMBEDDINGS = "generating_embeddings"
    INDEXING_SEARCH = "indexing_search"
    UPDATING_GRAPH = "updating_graph"
    TRACKING_MENTIONS = "tracking_mentions"
    DISCOVERING_CROSS_DOCUMENT_LINKS = "discovering_cross_document_links"
    COMPLETED = "completed"
    FAILED = "failed"


# Stages run by IngestionPipeline.process_document, in order.
PROCESSING_STAGES: tuple[DocumentStatus, ...] = (
    DocumentStatus.EXTRACTING_CONTENT,
    DocumentStatus.EXTRACTING_VISUALS,
    DocumentStatus.CHUNKING,
    DocumentStatus.EXTRACTING_ENTITIES,
    DocumentStatus.VALIDATING_EXTRACTION,
    DocumentStatus.RESOLVING_ENTITIES,
    DocumentStatus.GENERATING_EMBEDDINGS,
    DocumentStatus.INDEXING_SEARCH,
    DocumentStatus.UPDATING_GRAPH,
    DocumentStatus.TRACKING_MENTIONS,
    DocumentStatus.DISCOVERING_CROSS_DOCUMENT_LINKS,
)


class Document(BaseModel):
    """
    A document tracked by the ingestion pipeline.

    Attributes:
        id: Document identifier
        blob_ref: Reference to the source blob (URL or local path)
        mime_type: MIME type passed to the extraction collaborator
        status: Current ingestion state
        stage_timestamps: "{status}_at" -> ISO-8601 timestamp per stage
        classification / allowed_groups / department: Security metadata
    """

    id: str
    blob_ref: str
    mime_type: str | None = None
    filename: str | None = None
    title: str | None = None
    status: DocumentStatus = Field(default=DocumentStatus.PENDING, validate_default=True)
    processing_stage: str | None = None
    stage_timestamps: dict[str, str] = Field(default_factory=dict)
    processing_completed_at: str | None = None
    processing_error: str | None = None
    entities: list[dict[str, Any]] = Field(default_factory=list)
    relationships: list[dict[str, Any]] = Field(default_factory=list)
    processing_results: dict[str, Any] = Field(default_factory=dict)

    classification: str | None = None
    allowed_groups: list[str] = Field(default_factory=list)
    department: str | None = None

    model_config = ConfigDict(use_enum_values=True)

    @property
    def display_name(self) -> str:
        """Title, filename, or id, whichever is set first."""
        return self.title or self.filename or self.id


# -----------------------------------------------------------------------------
# Extraction Models
# -----------------------------------------------------------------------------


class Section(BaseModel):
    """A structural section (heading plus paragraphs) of a document."""

    title: str = Field(..., description="Section heading text")
    content: list[str] = Field(default_factory=list, description="Paragraphs in the section")
    level: int = Field(default=1, description="Heading level (1 = top level)")
    page_number: int | None = Field(default=None, description="Page where the section starts")


class TableCell(BaseModel):
    """One cell of an extracted table."""

    row_index: int
    column_index: int
    content: str = ""


class Table(BaseModel):
    """A table returned by the extraction collaborator."""

    table_index: int = Field(..., description="Ordinal of the table in the document")
    row_count: int = Field(default=0, description="Number of rows")
    column_count: int = Field(default=0, description="Number of columns")
    cells: list[TableCell] = Field(default_factory=list, description="Table cells")
    page_number: int | None = Field(default=None, description="Page of the table")


class Figure(BaseModel):
    """A figure (diagram, chart, picture) found during extraction."""

    id: str
    caption: str | None = None
    page_number: int | None = None


class ContentMetadata(BaseModel):
    """Extraction metadata."""

    page_count: int = 0
    model_id: str | None = None


class ExtractedContent(BaseModel):
    """
    Result of content extraction for one document.

    Attributes:
        content: Plain-text body of the document
        sections: Structural sections with their paragraphs
        tables: Extracted tables
        figures: Figures that may carry visual information
        metadata: Page count and extraction model id
    """

    content: str = ""
    sections: list[Section] = Field(default_factory=list)
    tables: list[Table] = Field(default_factory=list)
    figures: list[Figure] = Field(default_factory=list)
    metadata: ContentMetadata = Field(default_factory=ContentMetadata)
