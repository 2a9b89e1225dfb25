"""
Cross-Document Entity Resolution

Matches each extracted entity against the entity index and records how it
was resolved.

Thresholds (cosine similarity of "name: description" embeddings):
    >= 0.98  exact_match      reuse the indexed entity
    >= 0.92  merged           fold into the indexed entity
    >= 0.85  linked_same_as   new index entry + SAME_AS edge
    >= 0.75  linked_similar   new index entry + SIMILAR_TO edge
    else     created          new index entry

Names repeated within one document resolve once; later repeats are marked
deduplicated_in_document. If resolution fails, every entity comes back with
action "fallback" so ingestion continues with unresolved entities.

Example:
    >>> resolver = EntityResolver(entity_index, graph, embeddings, config)
    >>> result = await resolver.resolve(entities, "doc-1", ResolveOptions())
    >>> result.created, result.merged, result.fallback_reason
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass

from docgraph.config import DocGraphConfig
from docgraph.providers.base import EmbeddingProvider
from docgraph.services.base import EntityIndex, GraphStore
from docgraph.types import (
    DiscoveredLink,
    DiscoveryResult,
    ExtractedEntity,
    GraphEdge,
    IndexedEntity,
    ResolutionAction,
    ResolutionResult,
    ResolveOptions,
)
from docgraph.utils.similarity import cosine_similarity
from docgraph.utils.text import edge_id, normalize_entity_name

logger = logging.getLogger(__name__)

RESOLUTION_SOURCE = "entity_resolution"
DISCOVERY_SOURCE = "cross_document_discovery"


@dataclass
class _Resolution:
    action: ResolutionAction
    resolved_to: str
    similarity: float


def embedding_text(entity: ExtractedEntity, min_description_length: int = 10) -> str:
    """
    Text embedded for matching.

    "{name}: {description}" when the description is meaningful, else the name.
    """
    description = (entity.description or "").strip()
    if len(description) >= min_description_length:
        return f"{entity.name}: {description}"
    return entity.name


class EntityResolver:
    """
    Resolves extracted entities against previously indexed ones.

    Args:
        entity_index: Canonical entities with combined vectors
        graph: Graph store for SAME_AS / SIMILAR_TO link edges
        embeddings: Embedding provider for entity texts
        config: Thresholds and batch size (defaults if None)
    """

    def __init__(
        self,
        entity_index: EntityIndex,
        graph: GraphStore,
        embeddings: EmbeddingProvider,
        config: DocGraphConfig | None = None,
    ) -> None:
        self._index = entity_index
        self._graph = graph
        self._embeddings = embeddings
        self._config = config or DocGraphConfig()

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    async def resolve(
        self,
        entities: list[ExtractedEntity],
        document_id: str,
        options: ResolveOptions | None = None,
    ) -> ResolutionResult:
        """
        Resolve a document's entities.

        Never raises: on failure the result carries `fallback_reason` and
        every entity with action "fallback".
        """
        options = options or ResolveOptions()
        start = time.perf_counter_ns()
        try:
            result = await self._resolve(entities, document_id, options)
        except Exception as e:
            logger.warning(
                f"Entity resolution failed for {document_id}, "
                f"continuing with {len(entities)} unresolved entities: {e}"
            )
            return self._fallback(entities, str(e))

        elapsed_ms = (time.perf_counter_ns() - start) // 1_000_000
        logger.info(
            f"Resolved {len(entities)} entities for {document_id} in {elapsed_ms}ms: "
            f"created={result.created} exact={result.exact_match} merged={result.merged} "
            f"same_as={result.linked_same_as} similar={result.linked_similar}"
        )
        return result

    async def _resolve(
        self,
        entities: list[ExtractedEntity],
        document_id: str,
        options: ResolveOptions,
    ) -> ResolutionResult:
        result = ResolutionResult()
        seen: dict[str, _Resolution] = {}

        # Embed first occurrences only, in batches
        firsts: dict[str, ExtractedEntity] = {}
        for entity in entities:
            firsts.setdefault(normalize_entity_name(entity.name), entity)
        vectors = await self._embed_all(list(firsts.values()))

        for entity in entities:
            key = normalize_entity_name(entity.name)
            if key in seen:
                result.resolved.append(
                    self._annotate(
                        entity,
                        ResolutionAction.DEDUPLICATED_IN_DOCUMENT,
                        seen[key].resolved_to,
                        1.0,
                    )
                )
                continue

            resolution = await self._resolve_one(entity, vectors[key], document_id, options)
            seen[key] = resolution
            result.resolved.append(
                self._annotate(entity, resolution.action, resolution.resolved_to, resolution.similarity)
            )

            if resolution.action == ResolutionAction.CREATED:
                result.created += 1
            elif resolution.action == ResolutionAction.EXACT_MATCH:
                result.exact_match += 1
            elif resolution.action == ResolutionAction.MERGED:
                result.merged += 1
            elif resolution.action == ResolutionAction.LINKED_SAME_AS:
                result.linked_same_as += 1
            elif resolution.action == ResolutionAction.LINKED_SIMILAR:
                result.linked_similar += 1

        return result

    async def _embed_all(self, entities: list[ExtractedEntity]) -> dict[str, list[float]]:
        texts = [
            embedding_text(e, self._config.resolution_min_description_length) for e in entities
        ]
        vectors: list[list[float]] = []
        batch_size = max(1, self._config.embedding_batch_size)
        for i in range(0, len(texts), batch_size):
            vectors.extend(await self._embeddings.embed(texts[i : i + batch_size]))
        if len(vectors) != len(entities):
            raise ValueError(f"Expected {len(entities)} entity embeddings, got {len(vectors)}")
        return {normalize_entity_name(e.name): v for e, v in zip(entities, vectors)}

    async def _resolve_one(
        self,
        entity: ExtractedEntity,
        vector: list[float],
        document_id: str,
        options: ResolveOptions,
    ) -> _Resolution:
        cfg = self._config
        candidates = await self._index.search_similar(
            vector,
            top=options.max_candidates,
            exclude_document_id=document_id if options.exclude_same_document else None,
            entity_type=entity.type if options.strict_type_matching else None,
        )

        best: IndexedEntity | None = None
        best_similarity = 0.0
        for candidate in candidates[: options.max_candidates]:
            similarity = cosine_similarity(vector, candidate.combined_vector)
            if best is None or similarity > best_similarity:
                best, best_similarity = candidate, similarity

        if best is not None and best_similarity >= cfg.resolution_exact_threshold:
            return _Resolution(ResolutionAction.EXACT_MATCH, best.name, best_similarity)

        if best is not None and best_similarity >= cfg.resolution_high_threshold:
            await self._merge(best, entity, document_id)
            return _Resolution(ResolutionAction.MERGED, best.name, best_similarity)

        created = await self._create(entity, vector, document_id)

        if best is not None and best_similarity >= cfg.resolution_medium_threshold:
            await self._link(created, best, "SAME_AS", best_similarity)
            return _Resolution(ResolutionAction.LINKED_SAME_AS, created.name, best_similarity)

        if best is not None and best_similarity >= cfg.resolution_low_threshold:
            await self._link(created, best, "SIMILAR_TO", best_similarity)
            return _Resolution(ResolutionAction.LINKED_SIMILAR, created.name, best_similarity)

        return _Resolution(ResolutionAction.CREATED, created.name, best_similarity)

    async def _create(
        self,
        entity: ExtractedEntity,
        vector: list[float],
        document_id: str,
    ) -> IndexedEntity:
        indexed = IndexedEntity(
            id=str(uuid.uuid4()),
            name=entity.name,
            normalized_name=normalize_entity_name(entity.name),
            type=entity.type or "Unknown",
            description=entity.description or "",
            confidence=entity.confidence,
            source_document_ids=[document_id],
            combined_vector=vector,
        )
        await self._index.upsert(indexed)
        logger.debug(f"Created index entity '{entity.name}' ({indexed.id}) for {document_id}")
        return indexed

    async def _merge(
        self,
        canonical: IndexedEntity,
        entity: ExtractedEntity,
        document_id: str,
    ) -> IndexedEntity:
        """Fold `entity` into the canonical entry; the canonical name and vector win."""
        description = canonical.description
        if entity.description and len(entity.description) > len(description or ""):
            description = entity.description

        aliases = list(canonical.aliases)
        if entity.name != canonical.name and entity.name not in aliases:
            aliases.append(entity.name)

        source_docs = list(canonical.source_document_ids)
        if document_id not in source_docs:
            source_docs.append(document_id)

        merged = canonical.model_copy(
            update={
                "description": description,
                "aliases": aliases,
                "source_document_ids": source_docs,
                "confidence": (canonical.confidence + entity.confidence) / 2,
                "mention_count": canonical.mention_count + 1,
                "similarity": None,
            }
        )
        await self._index.upsert(merged)
        logger.debug(f"Merged '{entity.name}' into '{canonical.name}' ({len(aliases)} aliases)")
        return merged

    async def _link(
        self,
        new: IndexedEntity,
        existing: IndexedEntity,
        edge_type: str,
        similarity: float,
    ) -> None:
        """Write a link edge; a failed write is logged and skipped."""
        edge = GraphEdge(
            id=edge_id(new.name, edge_type, existing.name, RESOLUTION_SOURCE),
            from_entity=new.name,
            to_entity=existing.name,
            type=edge_type,
            confidence=min(1.0, similarity),
            source_document_id=RESOLUTION_SOURCE,
            evidence=f"Embedding similarity: {similarity:.4f}",
        )
        try:
            await self._graph.upsert_edge(edge)
        except Exception as e:
            logger.warning(
                f"Failed to create {edge_type} edge '{new.name}' -> '{existing.name}': {e}"
            )

    @staticmethod
    def _annotate(
        entity: ExtractedEntity,
        action: ResolutionAction,
        resolved_to: str,
        similarity: float,
    ) -> ExtractedEntity:
        return entity.model_copy(
            update={"action": action.value, "resolved_to": resolved_to, "similarity": similarity}
        )

    @staticmethod
    def _fallback(entities: list[ExtractedEntity], reason: str) -> ResolutionResult:
        return ResolutionResult(
            resolved=[
                EntityResolver._annotate(e, ResolutionAction.FALLBACK, e.name, 1.0)
                for e in entities
            ],
            created=len(entities),
            fallback_reason=reason,
        )

    # -------------------------------------------------------------------------
    # Cross-document discovery
    # -------------------------------------------------------------------------

    async def discover_cross_document_relationships(
        self,
        document_id: str,
        min_similarity: float = 0.75,
    ) -> DiscoveryResult:
        """
        Propose links between this document's entities and similar entities
        from other documents.

        Never raises: on failure the result is empty with `error` set.
        """
        try:
            entities = await self._index.entities_for_document(document_id)
            links: list[DiscoveredLink] = []
            seen: set[tuple[str, str]] = set()

            for entity in entities:
                if not entity.combined_vector:
                    continue
                candidates = await self._index.search_similar(
                    entity.combined_vector,
                    top=self._config.resolution_max_candidates,
                    exclude_document_id=document_id,
                )
                for candidate in candidates:
                    if not candidate.combined_vector or (entity.id, candidate.id) in seen:
                        continue
                    similarity = cosine_similarity(entity.combined_vector, candidate.combined_vector)
                    if similarity < min_similarity:
                        continue
                    seen.add((entity.id, candidate.id))
                    links.append(
                        DiscoveredLink(
                            entity1_id=entity.id,
                            entity1_name=entity.name,
                            entity2_id=candidate.id,
                            entity2_name=candidate.name,
                            similarity=similarity,
                            relationship_type=(
                                "SAME_AS"
                                if similarity >= self._config.resolution_medium_threshold
                                else "SIMILAR_TO"
                            ),
                        )
                    )
        except Exception as e:
            logger.warning(f"Cross-document discovery failed for {document_id}: {e}")
            return DiscoveryResult(error=str(e))

        logger.info(
            f"Cross-document discovery for {document_id}: "
            f"{len(entities)} entities analyzed, {len(links)} links"
        )
        return DiscoveryResult(links=links, entities_analyzed=len(entities))
