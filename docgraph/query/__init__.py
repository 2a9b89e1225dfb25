"""
Retrieval and Answer Synthesis

Security-aware hybrid retrieval over the search index and entity graph,
with grounded LLM synthesis and PII redaction of everything returned.

Modules:
    context: Shared retrieval (search, trimming, graph context)
    prompts: System prompt, fixed responses, grounded prompt builder
    pipeline: RetrievalPipeline (single response)
    streaming: StreamingRetrievalPipeline, QueryStream, format_sse

Example:
    >>> from docgraph.query import RetrievalPipeline
    >>> pipeline = RetrievalPipeline(llm, embeddings, search, graph, security, redactor)
    >>> response = await pipeline.process_query("Who approves purchase orders?")
"""

from docgraph.query.context import ContextRetriever, RetrievedContext
from docgraph.query.pipeline import RetrievalPipeline
from docgraph.query.prompts import (
    NO_CONTEXT_RESPONSE,
    QUERY_ERROR_RESPONSE,
    QUERY_SYNTHESIS_SYSTEM_PROMPT,
    build_query_prompt,
)
from docgraph.query.streaming import QueryStream, StreamingRetrievalPipeline, format_sse

__all__ = [
    "RetrievalPipeline",
    "StreamingRetrievalPipeline",
    "QueryStream",
    "format_sse",
    "ContextRetriever",
    "RetrievedContext",
    "NO_CONTEXT_RESPONSE",
    "QUERY_ERROR_RESPONSE",
    "QUERY_SYNTHESIS_SYSTEM_PROMPT",
    "build_query_prompt",
]
