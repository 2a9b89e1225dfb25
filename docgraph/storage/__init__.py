"""
Storage

Reference implementations of the storage collaborators.

Modules:
    memory: In-memory document store, search index, graph store, entity index
    local: LocalKnowledgeBase (JSON snapshot of the in-memory stores)
"""

from docgraph.storage.local import LocalKnowledgeBase
from docgraph.storage.memory import (
    FilterSyntaxError,
    InMemoryDocumentStore,
    InMemoryEntityIndex,
    InMemoryGraphStore,
    InMemorySearchIndex,
    compile_filter,
)

__all__ = [
    "LocalKnowledgeBase",
    "InMemoryDocumentStore",
    "InMemorySearchIndex",
    "InMemoryGraphStore",
    "InMemoryEntityIndex",
    "FilterSyntaxError",
    "compile_filter",
]
