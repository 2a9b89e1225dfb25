"""
Graph Updater

Writes resolved entities and relationships to the graph store, one write at
a time behind a RateLimiter, and tracks entity mention counts.

Invariants:
    - A failed vertex/edge write is logged, counted and skipped.
    - delete_document_edges removes only edges whose source_document_id
      matches; vertices are shared across documents and are never deleted.

Example:
    >>> updater = GraphUpdater(graph, FixedIntervalRateLimiter(0.1))
    >>> stats = await updater.upsert_entities(entities, "doc-1")
    >>> stats.added, stats.updated, stats.failed
"""

from __future__ import annotations

import logging
import time

from docgraph.ingestion.resolution.entity_resolver import DISCOVERY_SOURCE
from docgraph.services.base import GraphStore, WriteOutcome
from docgraph.types import (
    Chunk,
    DiscoveredLink,
    ExtractedEntity,
    ExtractedRelationship,
    GraphEdge,
    GraphVertex,
    MentionStats,
    MentionUpdateResult,
    UpsertStats,
)
from docgraph.utils.rate_limit import FixedIntervalRateLimiter, RateLimiter
from docgraph.utils.text import (
    count_whole_word,
    edge_id,
    normalize_relationship_type,
    vertex_id,
)

logger = logging.getLogger(__name__)


def _count(stats: UpsertStats, outcome: WriteOutcome) -> None:
    if outcome == "added":
        stats.added += 1
    elif outcome == "updated":
        stats.updated += 1
    else:
        stats.skipped += 1


class GraphUpdater:
    """
    Throttled, failure-tolerant graph writes for one ingestion run.

    Args:
        graph: Graph store
        rate_limiter: Awaited before every write (default: 100ms fixed interval)
    """

    def __init__(self, graph: GraphStore, rate_limiter: RateLimiter | None = None) -> None:
        self._graph = graph
        self._rate_limiter = rate_limiter or FixedIntervalRateLimiter(0.1)

    async def upsert_entities(
        self,
        entities: list[ExtractedEntity],
        document_id: str,
    ) -> UpsertStats:
        """Write one vertex per entity."""
        start = time.perf_counter_ns()
        stats = UpsertStats()

        for entity in entities:
            vertex = GraphVertex(
                id=vertex_id(entity.name),
                name=entity.name,
                type=entity.type or "Unknown",
                description=entity.description or "",
                confidence=entity.confidence,
                source_document_ids=[document_id],
            )
            await self._rate_limiter.acquire()
            try:
                _count(stats, await self._graph.upsert_vertex(vertex))
            except Exception as e:
                stats.failed += 1
                logger.warning(f"Failed to upsert entity '{entity.name}' for {document_id}: {e}")

        elapsed_ms = (time.perf_counter_ns() - start) // 1_000_000
        logger.info(
            f"Entities for {document_id}: added={stats.added} updated={stats.updated} "
            f"skipped={stats.skipped} failed={stats.failed} ({elapsed_ms}ms)"
        )
        return stats

    async def upsert_relationships(
        self,
        relationships: list[ExtractedRelationship],
        document_id: str,
    ) -> UpsertStats:
        """Write one edge per relationship, with a normalized edge type."""
        start = time.perf_counter_ns()
        stats = UpsertStats()

        for rel in relationships:
            edge_type = normalize_relationship_type(rel.type)
            edge = GraphEdge(
                id=edge_id(rel.from_entity, edge_type, rel.to_entity, document_id),
                from_entity=rel.from_entity,
                to_entity=rel.to_entity,
                type=edge_type,
                confidence=rel.confidence,
                source_document_id=document_id,
                evidence=rel.evidence,
            )
            await self._rate_limiter.acquire()
            try:
                _count(stats, await self._graph.upsert_edge(edge))
            except Exception as e:
                stats.failed += 1
                logger.warning(
                    f"Failed to upsert relationship '{rel.from_entity}' -[{edge_type}]-> "
                    f"'{rel.to_entity}' for {document_id}: {e}"
                )

        elapsed_ms = (time.perf_counter_ns() - start) // 1_000_000
        logger.info(
            f"Relationships for {document_id}: added={stats.added} updated={stats.updated} "
            f"failed={stats.failed} ({elapsed_ms}ms)"
        )
        return stats

    async def add_discovered_links(self, links: list[DiscoveredLink]) -> UpsertStats:
        """Write cross-document SAME_AS / SIMILAR_TO edges."""
        stats = UpsertStats()
        for link in links:
            edge = GraphEdge(
                id=edge_id(link.entity1_name, link.relationship_type, link.entity2_name, DISCOVERY_SOURCE),
                from_entity=link.entity1_name,
                to_entity=link.entity2_name,
                type=link.relationship_type,
                confidence=min(1.0, link.similarity),
                source_document_id=DISCOVERY_SOURCE,
                evidence=f"Embedding similarity: {link.similarity:.4f}",
            )
            await self._rate_limiter.acquire()
            try:
                _count(stats, await self._graph.upsert_edge(edge))
            except Exception as e:
                stats.failed += 1
                logger.warning(
                    f"Failed to add discovered link '{link.entity1_name}' -> "
                    f"'{link.entity2_name}': {e}"
                )
        return stats

    async def track_mentions(
        self,
        chunks: list[Chunk],
        entities: list[ExtractedEntity],
        document_id: str,
    ) -> MentionStats:
        """
        Count whole-word, case-insensitive mentions of each entity across all
        chunks and add them to the vertices' mention counts.

        "Risk" in "Risk assessment risks were high" counts once.
        """
        counts: dict[str, int] = {}
        names = list(dict.fromkeys(e.name for e in entities if e.name))
        for chunk in chunks:
            for name in names:
                found = count_whole_word(chunk.content or "", name)
                if found:
                    counts[name] = counts.get(name, 0) + found

        update_result = MentionUpdateResult()
        if counts:
            update_result = await self._graph.batch_update_mention_counts(counts)

        total = sum(counts.values())
        logger.info(
            f"Mentions for {document_id}: {len(counts)} entities, {total} mentions "
            f"(updated={update_result.updated} not_found={update_result.not_found})"
        )
        return MentionStats(
            unique_entities_mentioned=len(counts),
            total_mentions=total,
            mention_counts=counts,
            update_result=update_result,
        )

    async def delete_document_edges(self, document_id: str) -> int:
        """Delete edges written for `document_id`. Vertices are kept."""
        deleted = await self._graph.delete_edges_by_document(document_id)
        logger.info(f"Deleted {deleted} edges for {document_id}")
        return deleted
