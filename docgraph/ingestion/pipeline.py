"""
Document Ingestion Pipeline

Runs one document through the ingestion state machine:

    pending -> extracting_content -> extracting_visuals -> chunking
    -> extracting_entities -> validating_extraction -> resolving_entities
    -> generating_embeddings -> indexing_search -> updating_graph
    -> tracking_mentions -> discovering_cross_document_links -> completed

Each transition is persisted (status, processing_stage, "{status}_at")
before the stage's work starts. Any exception not handled inside a stage
marks the document failed and is re-raised; retries are the caller's job.

Stage-local fallbacks (logged, never fatal):
    - semantic chunking   -> fixed-size chunking
    - figure extraction   -> figure skipped
    - entity resolution   -> every entity "fallback"
    - single graph write  -> write skipped
    - cross-doc discovery -> no links

Example:
    >>> pipeline = IngestionPipeline(
    ...     documents, extractor, entity_extractor, llm, embeddings,
    ...     search, graph, entity_index, boundary_detector=detector,
    ... )
    >>> result = await pipeline.process_document("doc-1", "./policy.md")
    >>> result.stats.chunks_created
"""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from docgraph.config import DocGraphConfig
from docgraph.errors import DocumentNotFoundError
from docgraph.ingestion.chunking.chunker import Chunker
from docgraph.ingestion.graph_updater import GraphUpdater
from docgraph.ingestion.resolution.entity_resolver import EntityResolver
from docgraph.providers.base import EmbeddingProvider, LLMProvider
from docgraph.services.base import (
    BoundaryDetector,
    ContentExtractor,
    DocumentStore,
    EntityExtractor,
    EntityIndex,
    GraphStore,
    OntologyValidator,
    SearchIndex,
)
from docgraph.types import (
    Chunk,
    DocumentStatus,
    ExtractedContent,
    ExtractedEntity,
    ExtractedRelationship,
    IngestOptions,
    IngestResult,
    ProcessingStats,
)
from docgraph.utils.cost_telemetry import telemetry_stage
from docgraph.utils.rate_limit import FixedIntervalRateLimiter, RateLimiter

logger = logging.getLogger(__name__)

VISUAL_EXTRACTION_PROMPT = (
    "Identify the process flow elements in this diagram. "
    "Extract 'Roles' (swimlanes), 'Tasks' (rectangles), 'Decisions' (diamonds). "
    "Return a JSON with 'entities' and 'relationships'."
)
VISUAL_SOURCE = "visual_extraction"

_IMAGE_BLOB = re.compile(r"\.(jpg|jpeg|png)$", re.IGNORECASE)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class IngestionPipeline:
    """
    Per-document ingestion orchestrator.

    Collaborators are injected; nothing is looked up globally. A new rate
    limiter is made for every run (from `rate_limiter_factory`), so graph
    write throttling holds per document run.
    """

    def __init__(
        self,
        documents: DocumentStore,
        extractor: ContentExtractor,
        entity_extractor: EntityExtractor,
        llm: LLMProvider,
        embeddings: EmbeddingProvider,
        search: SearchIndex,
        graph: GraphStore,
        entity_index: EntityIndex,
        *,
        boundary_detector: BoundaryDetector | None = None,
        validator: OntologyValidator | None = None,
        config: DocGraphConfig | None = None,
        rate_limiter_factory: Callable[[], RateLimiter] | None = None,
    ) -> None:
        self.documents = documents
        self.extractor = extractor
        self.entity_extractor = entity_extractor
        self.llm = llm
        self.embeddings = embeddings
        self.search = search
        self.graph = graph
        self.validator = validator
        self.config = config or DocGraphConfig()

        self.chunker = Chunker(boundary_detector)
        self.resolver = EntityResolver(entity_index, graph, embeddings, self.config)

        interval_s = self.config.graph_write_interval_ms / 1000
        self._rate_limiter_factory = rate_limiter_factory or (
            lambda: FixedIntervalRateLimiter(interval_s)
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def process_document(
        self,
        document_id: str,
        blob_ref: str,
        options: IngestOptions | None = None,
    ) -> IngestResult:
        """
        Run the full pipeline for one document.

        Raises:
            Exception: Whatever a stage raised; the document is marked failed first
        """
        options = options or self.config.ingest_options()
        try:
            return await self._run(document_id, blob_ref, options)
        except Exception as e:
            await self._update_status(
                document_id, DocumentStatus.FAILED, {"processing_error": str(e)}
            )
            logger.exception(f"Processing failed for {document_id}: {e}")
            raise

    async def reprocess_document(self, document_id: str) -> IngestResult:
        """
        Re-run ingestion for a stored document.

        Removes the document's search entries and graph edges first. Vertices
        are kept since other documents may reference them.

        Raises:
            DocumentNotFoundError: If the document store has no such document
        """
        logger.info(f"Reprocessing {document_id}")
        deleted_chunks = await self.search.delete_by_document_id(document_id)
        deleted_edges = await GraphUpdater(self.graph).delete_document_edges(document_id)
        logger.info(f"Cleared {deleted_chunks} chunks and {deleted_edges} edges for {document_id}")

        document = await self.documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)

        options = self.config.ingest_options(
            mime_type=document.mime_type,
            filename=document.filename,
            title=document.title,
        )
        await self._update_status(document_id, DocumentStatus.PENDING, {"processing_error": None})
        return await self.process_document(document_id, document.blob_ref, options)

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    async def _run(
        self,
        document_id: str,
        blob_ref: str,
        options: IngestOptions,
    ) -> IngestResult:
        start = time.perf_counter_ns()
        updater = GraphUpdater(self.graph, self._rate_limiter_factory())
        chunking = options.chunking.model_copy(
            update={
                "title": options.chunking.title or options.title,
                "filename": options.chunking.filename or options.filename,
            }
        )

        await self._update_status(document_id, DocumentStatus.EXTRACTING_CONTENT)
        with telemetry_stage("extracting_content"):
            content = await self.extractor.extract(blob_ref, mime_type=options.mime_type)

        await self._update_status(document_id, DocumentStatus.EXTRACTING_VISUALS)
        with telemetry_stage("extracting_visuals"):
            visual_entities, visual_relationships = await self._extract_visuals(
                content, document_id, blob_ref
            )

        await self._update_status(document_id, DocumentStatus.CHUNKING)
        with telemetry_stage("chunking"):
            chunk_set = await self.chunker.chunk(document_id, content, chunking)
        chunks = chunk_set.chunks

        await self._update_status(document_id, DocumentStatus.EXTRACTING_ENTITIES)
        with telemetry_stage("extracting_entities"):
            extraction = await self.entity_extractor.extract(
                chunks, document_id, options.title or options.filename
            )
        entities = [*extraction.entities, *visual_entities]
        relationships = [*extraction.relationships, *visual_relationships]

        await self._update_status(document_id, DocumentStatus.VALIDATING_EXTRACTION)
        validation_summary: dict[str, Any] | None = None
        if self.validator is not None:
            with telemetry_stage("validating_extraction"):
                validation = await self.validator.validate(
                    entities, relationships, apply_penalties=True
                )
            entities = validation.entities
            relationships = validation.relationships
            validation_summary = validation.summary
            logger.info(f"Validation for {document_id}: {validation_summary}")

        await self._update_status(document_id, DocumentStatus.RESOLVING_ENTITIES)
        with telemetry_stage("resolving_entities"):
            resolution = await self.resolver.resolve(entities, document_id, options.resolve)
        resolved = resolution.resolved

        await self._update_status(document_id, DocumentStatus.GENERATING_EMBEDDINGS)
        with telemetry_stage("generating_embeddings"):
            chunks = await self._embed_chunks(chunks, resolved)

        await self._update_status(document_id, DocumentStatus.INDEXING_SEARCH)
        with telemetry_stage("indexing_search"):
            indexed = await self.search.index_documents(chunks)

        await self._update_status(document_id, DocumentStatus.UPDATING_GRAPH)
        with telemetry_stage("updating_graph"):
            await updater.upsert_entities(resolved, document_id)
            await updater.upsert_relationships(relationships, document_id)

        await self._update_status(document_id, DocumentStatus.TRACKING_MENTIONS)
        with telemetry_stage("tracking_mentions"):
            mentions = await updater.track_mentions(chunks, resolved, document_id)

        await self._update_status(document_id, DocumentStatus.DISCOVERING_CROSS_DOCUMENT_LINKS)
        with telemetry_stage("discovering_cross_document_links"):
            discovery = await self.resolver.discover_cross_document_relationships(
                document_id, options.cross_document_min_similarity
            )
            if discovery.links:
                await updater.add_discovered_links(discovery.links)

        stats = ProcessingStats(
            page_count=content.metadata.page_count,
            chunks_created=len(chunks),
            chunks_indexed=indexed,
            chunking_method=chunk_set.method,
            entities_extracted=len(entities),
            entities_resolved=len(resolved),
            entities_merged=resolution.merged,
            entities_linked=resolution.linked,
            cross_document_links=len(discovery.links),
            relationships_extracted=len(relationships),
            processing_time_ms=(time.perf_counter_ns() - start) // 1_000_000,
            model_id=content.metadata.model_id,
            unique_entities_mentioned=mentions.unique_entities_mentioned,
            total_entity_mentions=mentions.total_mentions,
            validation_summary=validation_summary,
        )

        await self._update_status(
            document_id,
            DocumentStatus.COMPLETED,
            {
                "entities": self._serialize_entities(resolved, document_id),
                "relationships": self._serialize_relationships(relationships, document_id),
                "processing_results": {
                    "extracted_text": content.content[: self.config.extracted_text_preview_chars],
                    "tables": [t.model_dump() for t in content.tables],
                    "hierarchy": [s.model_dump() for s in content.sections],
                    "metadata": stats.model_dump(),
                },
            },
        )
        logger.info(
            f"Processed {document_id} in {stats.processing_time_ms}ms: "
            f"{stats.chunks_created} chunks, {stats.entities_resolved} entities, "
            f"{stats.relationships_extracted} relationships, "
            f"{stats.cross_document_links} cross-document links"
        )
        return IngestResult(document_id=document_id, success=True, stats=stats)

    async def _extract_visuals(
        self,
        content: ExtractedContent,
        document_id: str,
        blob_ref: str,
    ) -> tuple[list[ExtractedEntity], list[ExtractedRelationship]]:
        """
        Ask the vision model about each figure of an image document.

        Only directly addressable images (.jpg/.jpeg/.png blobs) are sent;
        figures embedded in other formats are skipped.
        """
        entities: list[ExtractedEntity] = []
        relationships: list[ExtractedRelationship] = []
        if not content.figures or not _IMAGE_BLOB.search(blob_ref):
            if content.figures:
                logger.debug(
                    f"Skipping {len(content.figures)} embedded figures for {document_id}"
                )
            return entities, relationships

        for figure in content.figures:
            try:
                raw = await self.llm.describe_image(
                    VISUAL_EXTRACTION_PROMPT, blob_ref, json_output=True
                )
                data = json.loads(raw)
                for item in data.get("entities") or []:
                    entities.append(
                        ExtractedEntity.model_validate(
                            {
                                **item,
                                "source": VISUAL_SOURCE,
                                "source_document_id": document_id,
                            }
                        )
                    )
                for item in data.get("relationships") or []:
                    source = item.get("from") or item.get("source")
                    target = item.get("to") or item.get("target")
                    if not source or not target:
                        continue
                    relationships.append(
                        ExtractedRelationship(
                            from_entity=source,
                            to_entity=target,
                            type=item.get("type") or "RELATED_TO",
                            confidence=item.get("confidence", 0.8),
                            source_document_id=document_id,
                        )
                    )
            except Exception as e:
                logger.warning(f"Visual extraction failed for figure {figure.id} of {document_id}: {e}")

        logger.info(
            f"Visual extraction for {document_id}: {len(entities)} entities, "
            f"{len(relationships)} relationships"
        )
        return entities, relationships

    async def _embed_chunks(
        self,
        chunks: list[Chunk],
        entities: list[ExtractedEntity],
    ) -> list[Chunk]:
        """Embed chunks in batches and tag each with the entity names it contains."""
        names = list(dict.fromkeys(e.name for e in entities if e.name))
        lowered = [(name, name.lower()) for name in names]
        batch_size = max(1, self.config.embedding_batch_size)

        embedded: list[Chunk] = []
        for i in range(0, len(chunks), batch_size):
            batch = chunks[i : i + batch_size]
            vectors = await self.embeddings.embed([c.content for c in batch])
            if len(vectors) != len(batch):
                raise ValueError(f"Expected {len(batch)} chunk embeddings, got {len(vectors)}")
            for chunk, vector in zip(batch, vectors):
                text = chunk.content.lower()
                embedded.append(
                    chunk.model_copy(
                        update={
                            "content_vector": vector,
                            "entities": [name for name, low in lowered if low in text],
                        }
                    )
                )
        return embedded

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        fields: dict[str, Any] | None = None,
    ) -> None:
        now = _now()
        update: dict[str, Any] = {
            "status": status.value,
            "processing_stage": status.value,
            f"{status.value}_at": now,
            **(fields or {}),
        }
        if status == DocumentStatus.COMPLETED:
            update["processing_completed_at"] = now
        await self.documents.update_status(document_id, update)

    @staticmethod
    def _serialize_entities(entities: list[ExtractedEntity], document_id: str) -> list[dict[str, Any]]:
        return [
            {
                "id": f"{document_id}_entity_{i}",
                "name": e.name,
                "type": e.type,
                "description": e.description,
                "confidence": e.confidence,
                "source_document_id": document_id,
                "source": e.source,
                "resolved_to": e.resolved_to,
                "resolution_action": e.action,
                "similarity": e.similarity,
                "validation_warnings": list(e.validation_warnings),
                "validation_passed": e.validation_passed,
            }
            for i, e in enumerate(entities)
        ]

    @staticmethod
    def _serialize_relationships(
        relationships: list[ExtractedRelationship],
        document_id: str,
    ) -> list[dict[str, Any]]:
        return [
            {
                "id": f"{document_id}_rel_{i}",
                "from": r.from_entity,
                "to": r.to_entity,
                "type": r.type,
                "confidence": r.confidence,
                "source_document_id": document_id,
                "evidence": r.evidence,
                "validation_warnings": list(r.validation_warnings),
                "validation_passed": r.validation_passed,
                "original_confidence": r.original_confidence,
            }
            for i, r in enumerate(relationships)
        ]
