"""
DocGraph - Document Knowledge Graph

Ingests documents into a hybrid search index and an entity graph, then
answers questions with security trimming and PII redaction.

Example:
    >>> from docgraph import DocGraph
    >>> async with DocGraph("./my_kb") as dg:
    ...     await dg.ingest_file("handbook.md", classification="internal")
    ...     response = await dg.ask("What is the expense approval limit?")
    >>> print(response.answer)

Main Classes:
    DocGraph: Primary entry point for all operations
    DocGraphConfig: Configuration management
    IngestionPipeline / RetrievalPipeline / StreamingRetrievalPipeline:
        Pipelines for callers that bring their own storage
"""

__version__ = "0.1.0"


# Public API - lazy imports to avoid loading provider dependencies
def __getattr__(name: str):
    """Lazy import public API components."""

    if name == "DocGraph":
        from docgraph.api.knowledge_base import DocGraph
        return DocGraph

    if name == "DocGraphConfig":
        from docgraph.config.settings import DocGraphConfig
        return DocGraphConfig

    if name == "IngestionPipeline":
        from docgraph.ingestion.pipeline import IngestionPipeline
        return IngestionPipeline

    if name in ("RetrievalPipeline", "StreamingRetrievalPipeline"):
        from docgraph import query
        return getattr(query, name)

    if name in ("Document", "QueryOptions", "QueryResponse", "UserContext", "IngestResult"):
        from docgraph import types
        return getattr(types, name)

    raise AttributeError(f"module 'docgraph' has no attribute {name!r}")


__all__ = [
    "DocGraph",
    "DocGraphConfig",
    "IngestionPipeline",
    "RetrievalPipeline",
    "StreamingRetrievalPipeline",
    "Document",
    "QueryOptions",
    "QueryResponse",
    "UserContext",
    "IngestResult",
    "__version__",
]
