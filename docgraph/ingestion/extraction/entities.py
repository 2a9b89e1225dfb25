"""
LLM Entity Extraction

Extracts business entities and relationships from chunks with structured
output, one LLM call per chunk, bounded by a semaphore.

A chunk whose extraction fails contributes nothing; the rest of the
document is still extracted. Entities are deduplicated by name (first
occurrence wins).

Example:
    >>> extractor = LLMEntityExtractor(llm, concurrency=10)
    >>> result = await extractor.extract(chunks, "doc-1", "Onboarding Policy")
    >>> len(result.entities), len(result.relationships)
"""

from __future__ import annotations

import asyncio
import logging
import time

from pydantic import BaseModel, Field

from docgraph.providers.base import LLMProvider
from docgraph.services.base import EntityExtractor
from docgraph.types import Chunk, ExtractedEntity, ExtractedRelationship, ExtractionResult

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Structured Output Schema
# -----------------------------------------------------------------------------


class _EntityOut(BaseModel):
    name: str = Field(..., description="Entity name exactly as written in the text")
    type: str = Field(..., description="One of the listed entity types")
    description: str = Field(default="", description="What the entity is, in one sentence")
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class _RelationshipOut(BaseModel):
    source: str = Field(..., description="Name of the source entity")
    target: str = Field(..., description="Name of the target entity")
    type: str = Field(..., description="Relationship type in UPPER_SNAKE_CASE")
    evidence: str = Field(default="", description="Short quote supporting the relationship")
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class _ChunkExtraction(BaseModel):
    entities: list[_EntityOut] = Field(default_factory=list)
    relationships: list[_RelationshipOut] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Prompts
# -----------------------------------------------------------------------------

_EXTRACTION_SYSTEM_PROMPT = """\
You are building a knowledge graph of business processes from company documents.

## Entity Types
- **Process**: A named business process or procedure (Employee Onboarding)
- **Task**: A concrete step performed within a process (Submit Expense Report)
- **Role**: A job role or team responsible for work (HR Manager, Finance Team)
- **System**: Software or tool used in the work (SAP, Jira, Workday)
- **Document**: A form, policy or report (Travel Policy, W-4 Form)
- **Decision**: A decision point or approval gate (Manager Approval)
- **Organization**: A department, company or external body
- **Concept**: A business term or metric (Cost Center, SLA)

## Relationship Types
MANAGES, REPORTS_TO, PERFORMS, USES, REQUIRES, CONTAINS, PART_OF,
FOLLOWED_BY, PRECEDES, TRIGGERS, PRODUCES, INPUTS, RELATED_TO

## Rules
- Extract only entities that are named or clearly identifiable in the text
- Use clean names without parenthetical notes
- Relationship source and target MUST be names from your entity list
- Lower the confidence when the text is ambiguous"""

_EXTRACTION_USER_TEMPLATE = """\
DOCUMENT: {title}
SECTION: {section}

TEXT:
{content}

Extract the entities and the relationships between them."""


class LLMEntityExtractor(EntityExtractor):
    """
    Per-chunk structured-output extraction.

    Args:
        llm: LLM provider with generate_structured
        concurrency: Max concurrent chunk extractions
    """

    def __init__(self, llm: LLMProvider, *, concurrency: int = 10) -> None:
        self._llm = llm
        self._concurrency = max(1, concurrency)

    async def extract(
        self,
        chunks: list[Chunk],
        document_id: str,
        title: str | None = None,
    ) -> ExtractionResult:
        if not chunks:
            return ExtractionResult()

        start = time.perf_counter_ns()
        semaphore = asyncio.Semaphore(self._concurrency)

        async def extract_one(chunk: Chunk) -> _ChunkExtraction:
            async with semaphore:
                try:
                    return await self._extract_chunk(chunk, title)
                except Exception as e:
                    logger.warning(f"Entity extraction failed for chunk {chunk.id}: {e}")
                    return _ChunkExtraction()

        results = await asyncio.gather(*(extract_one(c) for c in chunks))

        entities: dict[str, ExtractedEntity] = {}
        relationships: list[ExtractedRelationship] = []
        for result in results:
            for e in result.entities:
                name = e.name.strip()
                if not name or name in entities:
                    continue
                entities[name] = ExtractedEntity(
                    name=name,
                    type=e.type or "Unknown",
                    description=e.description,
                    confidence=e.confidence,
                    source_document_id=document_id,
                )
            for r in result.relationships:
                if not r.source.strip() or not r.target.strip():
                    continue
                relationships.append(
                    ExtractedRelationship(
                        from_entity=r.source.strip(),
                        to_entity=r.target.strip(),
                        type=r.type,
                        confidence=r.confidence,
                        source_document_id=document_id,
                        evidence=r.evidence or None,
                    )
                )

        elapsed_ms = (time.perf_counter_ns() - start) // 1_000_000
        logger.info(
            f"Extracted {len(entities)} entities, {len(relationships)} relationships "
            f"from {len(chunks)} chunks of {document_id} in {elapsed_ms}ms"
        )
        return ExtractionResult(entities=list(entities.values()), relationships=relationships)

    async def _extract_chunk(self, chunk: Chunk, title: str | None) -> _ChunkExtraction:
        prompt = _EXTRACTION_USER_TEMPLATE.format(
            title=title or chunk.title or "(untitled)",
            section=chunk.section_title or "(none)",
            content=chunk.content,
        )
        return await self._llm.generate_structured(
            prompt,
            _ChunkExtraction,
            system=_EXTRACTION_SYSTEM_PROMPT,
        )
