"""
Retrieval Pipeline

Answers a question from the knowledge base:
    1. Retrieval: embedding, security-filtered hybrid search, trimming, graph context
    2. Synthesis: grounded prompt -> LLM (temperature 0.1, 2048 tokens)
    3. Redaction: answer and each citation, concurrently

With no accessible search results and no graph entities the fixed
NO_CONTEXT_RESPONSE is returned without an LLM call.

Example:
    >>> pipeline = RetrievalPipeline(llm, embeddings, search, graph, security, redactor)
    >>> response = await pipeline.process_query_with_fallback(
    ...     "Who approves travel expenses?", QueryOptions(user=user)
    ... )
    >>> response.answer, len(response.citations)
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone

from docgraph.config import DocGraphConfig
from docgraph.providers.base import EmbeddingProvider, LLMProvider
from docgraph.query.context import ContextRetriever, build_citations
from docgraph.query.prompts import (
    NO_CONTEXT_RESPONSE,
    QUERY_ERROR_RESPONSE,
    QUERY_SYNTHESIS_SYSTEM_PROMPT,
    build_query_prompt,
)
from docgraph.services.base import GraphStore, PIIRedactor, SearchIndex, SecurityTrimmer
from docgraph.types import (
    Citation,
    PIIRedactionSummary,
    QueryMetadata,
    QueryOptions,
    QueryResponse,
    SecurityTrimmingSummary,
)
from docgraph.utils.cost_telemetry import timed_stage

logger = logging.getLogger(__name__)


class RetrievalPipeline:
    """
    Non-streaming question answering.

    Collaborators are injected; one instance can serve concurrent queries.
    """

    def __init__(
        self,
        llm: LLMProvider,
        embeddings: EmbeddingProvider,
        search: SearchIndex,
        graph: GraphStore,
        security: SecurityTrimmer,
        redactor: PIIRedactor,
        config: DocGraphConfig | None = None,
    ) -> None:
        """
        Initialize pipeline with providers and collaborators.

        Args:
            llm: LLM provider for synthesis
            embeddings: Embedding provider for the query vector
            search: Hybrid search index
            graph: Graph store for related entities
            security: Security trimmer
            redactor: PII redactor for the answer and citations
            config: Generation settings (defaults if None)
        """
        self.llm = llm
        self.security = security
        self.redactor = redactor
        self.config = config or DocGraphConfig()
        self.retriever = ContextRetriever(
            embeddings,
            search,
            graph,
            security,
            overfetch_factor=self.config.query_search_overfetch_factor,
        )

    async def process_query(self, query: str, options: QueryOptions | None = None) -> QueryResponse:
        options = options or self.config.query_options()
        start = time.perf_counter_ns()
        timing: dict[str, int] = {}

        context = await self.retriever.retrieve(query, options, timing)

        security_summary = SecurityTrimmingSummary(
            enabled=self.security.enabled,
            search_results_denied=context.results_denied,
            entities_denied=context.entities_denied,
            relationships_filtered=context.relationships_filtered,
        )
        metadata = QueryMetadata(
            vector_search_executed=True,
            graph_traversal_executed=context.graph is not None,
            documents_searched=len(context.raw_results),
            documents_accessible=len(context.results),
            entities_found=context.entities_found,
            relationships_found=context.relationships_found,
            security_trimming=security_summary,
            pii_redaction=PIIRedactionSummary(enabled=self.redactor.enabled),
            timing=dict(timing),
        )

        if not context.has_context:
            logger.info("No accessible context for query; returning fixed response")
            metadata.timing = dict(timing)
            metadata.timestamp = datetime.now(timezone.utc).isoformat()
            return QueryResponse(
                answer=NO_CONTEXT_RESPONSE,
                citations=[],
                response_time_ms=(time.perf_counter_ns() - start) // 1_000_000,
                metadata=metadata,
            )

        with timed_stage("synthesis", timing):
            raw_answer = await self.llm.generate(
                build_query_prompt(query, context.results, context.graph),
                system=QUERY_SYNTHESIS_SYSTEM_PROMPT,
                temperature=self.config.query_temperature,
                max_tokens=self.config.query_max_tokens,
            )

        citations = build_citations(context.results)
        with timed_stage("redaction", timing):
            answer, citations, in_answer, in_citations = await self._redact(raw_answer, citations)

        metadata.pii_redaction.detections_in_answer = in_answer
        metadata.pii_redaction.detections_in_citations = in_citations
        metadata.timing = dict(timing)
        metadata.timestamp = datetime.now(timezone.utc).isoformat()

        response_time_ms = (time.perf_counter_ns() - start) // 1_000_000
        logger.info(
            f"Answered query in {response_time_ms}ms: {len(citations)} citations, "
            f"{metadata.entities_found} entities, timing={timing}"
        )
        return QueryResponse(
            answer=answer,
            citations=citations,
            response_time_ms=response_time_ms,
            metadata=metadata,
        )

    async def process_query_with_fallback(
        self,
        query: str,
        options: QueryOptions | None = None,
    ) -> QueryResponse:
        """process_query that turns any failure into a generic error response."""
        start = time.perf_counter_ns()
        try:
            return await self.process_query(query, options)
        except Exception as e:
            logger.exception(f"Query failed: {e}")
            return QueryResponse(
                answer=QUERY_ERROR_RESPONSE,
                citations=[],
                response_time_ms=(time.perf_counter_ns() - start) // 1_000_000,
                metadata=QueryMetadata(
                    error=True,
                    timestamp=datetime.now(timezone.utc).isoformat(),
                ),
            )

    async def _redact(
        self,
        answer: str,
        citations: list[Citation],
    ) -> tuple[str, list[Citation], int, int]:
        answer_result, *citation_results = await asyncio.gather(
            self.redactor.redact(answer),
            *(self.redactor.redact(c.content) for c in citations),
        )
        redacted = [
            c.model_copy(update={"content": r.redacted_text})
            for c, r in zip(citations, citation_results)
        ]
        return (
            answer_result.redacted_text,
            redacted,
            len(answer_result.detections),
            sum(len(r.detections) for r in citation_results),
        )
