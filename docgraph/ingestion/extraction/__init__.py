"""
Extraction

Modules:
    markdown: MarkdownContentExtractor for local markdown, text and image files
    entities: LLMEntityExtractor (structured-output entity/relationship extraction)
"""

from docgraph.ingestion.extraction.entities import LLMEntityExtractor
from docgraph.ingestion.extraction.markdown import MarkdownContentExtractor, parse_markdown

__all__ = ["LLMEntityExtractor", "MarkdownContentExtractor", "parse_markdown"]
