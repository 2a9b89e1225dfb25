"""
Local Knowledge Base

Directory-backed bundle of the in-memory stores, persisted as one JSON
snapshot.

Directory structure:
    kb_path/
    ├── snapshot.json     documents, chunks, graph, entity index
    ├── metadata.json     schema version, created_at, embedding dimensions
    └── .kb.lock          filelock guarding snapshot writes

Example:
    >>> async with LocalKnowledgeBase("./kb") as kb:
    ...     await kb.documents.put(document)
    ...     await kb.save()
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from filelock import FileLock

from docgraph.config import DocGraphConfig
from docgraph.storage.memory import (
    InMemoryDocumentStore,
    InMemoryEntityIndex,
    InMemoryGraphStore,
    InMemorySearchIndex,
)

logger = logging.getLogger(__name__)


class LocalKnowledgeBase:
    """
    In-memory stores loaded from and saved to a directory.

    Thread safety:
        - save() holds the file lock while writing the snapshot
        - Reads take the lock too, so a half-written snapshot is never loaded
    """

    SCHEMA_VERSION = "1.0.0"
    SNAPSHOT_FILE = "snapshot.json"
    METADATA_FILE = "metadata.json"

    def __init__(self, kb_path: Path | str, config: DocGraphConfig | None = None) -> None:
        self._kb_path = Path(kb_path)
        self.config = config or DocGraphConfig()
        self._lock = FileLock(str(self._kb_path / ".kb.lock"), timeout=30)

        self.documents = InMemoryDocumentStore()
        self.search = InMemorySearchIndex(self.documents)
        self.graph = InMemoryGraphStore()
        self.entity_index = InMemoryEntityIndex()
        self._initialized = False

    @property
    def kb_path(self) -> Path:
        return self._kb_path

    @property
    def snapshot_path(self) -> Path:
        return self._kb_path / self.SNAPSHOT_FILE

    async def initialize(self) -> None:
        """Create the directory if needed and load an existing snapshot."""
        if self._initialized:
            return
        await asyncio.to_thread(self._load)
        self._initialized = True

    async def close(self) -> None:
        self._initialized = False

    async def __aenter__(self) -> "LocalKnowledgeBase":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        # Persist whatever completed, including a failed document's status
        await self.save()
        await self.close()

    async def save(self) -> None:
        """Write the snapshot atomically under the file lock."""
        await asyncio.to_thread(self._save)

    # -------------------------------------------------------------------------
    # Sync internals (run in a worker thread)
    # -------------------------------------------------------------------------

    def _load(self) -> None:
        self._kb_path.mkdir(parents=True, exist_ok=True)
        with self._lock:
            self._write_metadata_if_missing()
            if not self.snapshot_path.exists():
                logger.info(f"Created knowledge base at {self._kb_path}")
                return
            data = json.loads(self.snapshot_path.read_text(encoding="utf-8"))

        self.documents.load(data.get("documents", []))
        self.search.load(data.get("chunks", []))
        self.graph.load(data.get("graph", {}))
        self.entity_index.load(data.get("entities", []))
        logger.info(
            f"Loaded knowledge base {self._kb_path}: "
            f"{len(data.get('documents', []))} documents, {len(self.search)} chunks, "
            f"{len(self.graph.vertices)} vertices, {len(self.graph.edges)} edges"
        )

    def _save(self) -> None:
        data = {
            "schema_version": self.SCHEMA_VERSION,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "documents": self.documents.dump(),
            "chunks": self.search.dump(),
            "graph": self.graph.dump(),
            "entities": self.entity_index.dump(),
        }
        self._kb_path.mkdir(parents=True, exist_ok=True)
        tmp_path = self.snapshot_path.with_suffix(".json.tmp")
        with self._lock:
            tmp_path.write_text(json.dumps(data), encoding="utf-8")
            tmp_path.replace(self.snapshot_path)
        logger.debug(f"Saved knowledge base snapshot to {self.snapshot_path}")

    def _write_metadata_if_missing(self) -> None:
        meta_path = self._kb_path / self.METADATA_FILE
        if not meta_path.exists():
            metadata = {
                "schema_version": self.SCHEMA_VERSION,
                "created_at": datetime.now(timezone.utc).isoformat(),
                "embedding_dimensions": self.config.embedding_dimensions,
            }
            meta_path.write_text(json.dumps(metadata, indent=2))

    def stats(self) -> dict[str, Any]:
        """Counts per store and documents per status."""
        by_status: dict[str, int] = {}
        for document in self.documents.list_documents():
            by_status[document.status] = by_status.get(document.status, 0) + 1
        return {
            "documents": len(self.documents.list_documents()),
            "documents_by_status": by_status,
            "chunks": len(self.search),
            "vertices": len(self.graph.vertices),
            "edges": len(self.graph.edges),
            "indexed_entities": len(self.entity_index),
        }
