"""
Ingestion Pipeline

Per-document state machine that turns a source blob into indexed chunks,
graph vertices and edges, and cross-document links.

Stages:
    Content - Extract text, sections, tables and figures; vision model on images
    Chunking - Body (semantic or fixed), section and table chunks
    Entities - Per-chunk LLM extraction, optional validation
    Resolution - Match against the entity index (exact / merge / link / create)
    Indexing - Embed chunks, tag entity names, write to the search index
    Graph - Throttled vertex/edge upserts, mention counts, discovered links

Modules:
    pipeline: IngestionPipeline orchestrator
    chunking/: Fixed-size and embedding-boundary chunking
    extraction/: Markdown content extraction and LLM entity extraction
    resolution/: Entity resolution and cross-document discovery
    graph_updater: Rate-limited graph writes and mention tracking
"""

from docgraph.ingestion.graph_updater import GraphUpdater
from docgraph.ingestion.pipeline import IngestionPipeline
from docgraph.ingestion.resolution import EntityResolver

__all__ = ["GraphUpdater", "IngestionPipeline", "EntityResolver"]
