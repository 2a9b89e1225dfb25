"""
Public API

Modules:
    knowledge_base: DocGraph (local knowledge base + pipelines)
"""

from docgraph.api.knowledge_base import DocGraph

__all__ = ["DocGraph"]
