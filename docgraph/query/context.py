"""
Retrieval Context

The retrieval half of a query, shared by the blocking and streaming
pipelines:

    1. Embed the query
    2. Combine the caller's filter with the user's security filter
    3. Hybrid search
    4. Post-query security trimming (search over-fetches so denied results
       are backfilled up to top_k)
    5. Graph traversal from the entities tagged on the surviving chunks
    6. Entity and relationship trimming

A graph traversal failure is logged and the query continues without graph
context. Everything else propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from docgraph.providers.base import EmbeddingProvider
from docgraph.services.base import GraphStore, SearchIndex, SecurityTrimmer
from docgraph.types import Citation, GraphContext, QueryOptions, SearchResult
from docgraph.utils.cost_telemetry import timed_stage
from docgraph.utils.text import vertex_id

logger = logging.getLogger(__name__)


@dataclass
class RetrievedContext:
    """Everything retrieval produced for one query."""

    raw_results: list[SearchResult] = field(default_factory=list)
    results: list[SearchResult] = field(default_factory=list)
    results_denied: int = 0
    graph: GraphContext | None = None
    entities_denied: int = 0
    relationships_filtered: int = 0

    @property
    def has_context(self) -> bool:
        return bool(self.results) or bool(self.graph and self.graph.entities)

    @property
    def entities_found(self) -> int:
        return len(self.graph.entities) if self.graph else 0

    @property
    def relationships_found(self) -> int:
        return len(self.graph.relationships) if self.graph else 0


def combine_filters(caller: str | None, security: str | None) -> str | None:
    """AND two filter expressions; either may be absent."""
    if caller and security:
        return f"({caller}) and ({security})"
    return caller or security or None


def extract_entity_names(results: list[SearchResult]) -> list[str]:
    """Distinct entity names tagged on the results, in first-seen order."""
    return list(dict.fromkeys(name for r in results for name in r.entities if name))


def build_citations(results: list[SearchResult]) -> list[Citation]:
    return [
        Citation(
            chunk_id=r.id,
            document_id=r.document_id,
            document_name=r.title or r.source_file or r.document_id,
            content=r.content,
            page_number=r.page_number,
            section_title=r.section_title,
            score=r.score,
        )
        for r in results
    ]


class ContextRetriever:
    """
    Security-aware hybrid + graph retrieval.

    Args:
        embeddings: Query embedding provider
        search: Hybrid search index
        graph: Graph store for related entities
        security: Pre-query filter and post-query trimming
        overfetch_factor: Search requests top_k times this many results
    """

    def __init__(
        self,
        embeddings: EmbeddingProvider,
        search: SearchIndex,
        graph: GraphStore,
        security: SecurityTrimmer,
        overfetch_factor: int = 3,
    ) -> None:
        self.embeddings = embeddings
        self.search = search
        self.graph = graph
        self.security = security
        self.overfetch_factor = max(1, overfetch_factor)

    async def retrieve(
        self,
        query: str,
        options: QueryOptions,
        timing: dict[str, int],
    ) -> RetrievedContext:
        context = RetrievedContext()

        with timed_stage("query_embedding", timing):
            vector = await self.embeddings.embed_single(query)

        search_filter = combine_filters(options.filter, self.security.build_filter(options.user))

        with timed_stage("search", timing):
            context.raw_results = await self.search.search(
                query,
                vector,
                top=options.top_k * self.overfetch_factor,
                semantic=True,
                filter=search_filter,
            )

        trimmed = self.security.filter_results(context.raw_results, options.user)
        context.results = trimmed.filtered[: options.top_k]
        context.results_denied = trimmed.denied_count

        names = extract_entity_names(context.results)
        if names and options.include_graph_context:
            with timed_stage("graph_traversal", timing):
                await self._graph_context(names, options, context)

        logger.info(
            f"Retrieved {len(context.results)}/{len(context.raw_results)} results, "
            f"{context.entities_found} entities, {context.relationships_found} relationships"
        )
        return context

    async def _graph_context(
        self,
        names: list[str],
        options: QueryOptions,
        context: RetrievedContext,
    ) -> None:
        try:
            raw = await self.graph.find_related(names, options.graph_depth)
        except Exception as e:
            logger.warning(f"Graph traversal failed, continuing without graph context: {e}")
            return

        entity_trim = self.security.filter_entities(raw.entities, options.user)
        allowed = {vertex_id(e.name) for e in entity_trim.filtered} | {e.id for e in entity_trim.filtered}
        relationships = self.security.filter_relationships(raw.relationships, allowed)

        context.graph = GraphContext(entities=entity_trim.filtered, relationships=relationships)
        context.entities_denied = entity_trim.denied_count
        context.relationships_filtered = len(raw.relationships) - len(relationships)
