"""
Chunking

Modules:
    chunker: Chunker (body, section and table chunks) and fixed-size splitting
    semantic: EmbeddingBoundaryDetector for topic-based splitting
"""

from docgraph.ingestion.chunking.chunker import Chunker, format_table, split_fixed
from docgraph.ingestion.chunking.semantic import EmbeddingBoundaryDetector, split_sentences

__all__ = [
    "Chunker",
    "EmbeddingBoundaryDetector",
    "format_table",
    "split_fixed",
    "split_sentences",
]
