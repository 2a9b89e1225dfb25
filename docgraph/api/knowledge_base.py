"""
DocGraph - Primary Entry Point

Wires a LocalKnowledgeBase, the configured providers and the ingestion and
retrieval pipelines behind one object.

Example:
    >>> async with DocGraph("./kb") as dg:
    ...     result = await dg.ingest_file("policies/travel.md", classification="internal")
    ...     response = await dg.ask("Who approves travel over $5,000?")
    >>> print(response.answer)
"""

from __future__ import annotations

import mimetypes
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

from docgraph.errors import ConfigurationError
from docgraph.utils.cost_telemetry import CostCollector, telemetry_collector

if TYPE_CHECKING:
    from docgraph.config import DocGraphConfig
    from docgraph.ingestion.pipeline import IngestionPipeline
    from docgraph.providers.base import EmbeddingProvider, LLMProvider
    from docgraph.query import QueryStream, RetrievalPipeline, StreamingRetrievalPipeline
    from docgraph.storage.local import LocalKnowledgeBase
    from docgraph.types import IngestResult, QueryOptions, QueryResponse


class DocGraph:
    """
    A local document knowledge base.

    Args:
        path: Knowledge base directory
        config: Optional configuration; defaults (plus environment) if None
        create: Create the directory if missing
        llm / embeddings: Inject providers instead of building them from config
    """

    def __init__(
        self,
        path: str | Path,
        config: "DocGraphConfig | None" = None,
        create: bool = True,
        *,
        llm: "LLMProvider | None" = None,
        embeddings: "EmbeddingProvider | None" = None,
    ) -> None:
        self._path = Path(path).resolve()
        self._create = create

        if config is None:
            from docgraph.config import DocGraphConfig
            config = DocGraphConfig()
        self._config = config

        self._kb: "LocalKnowledgeBase | None" = None
        self._llm = llm
        self._embeddings = embeddings
        self._ingestion: "IngestionPipeline | None" = None
        self._retrieval: "RetrievalPipeline | None" = None
        self._streaming: "StreamingRetrievalPipeline | None" = None
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        if not self._create and not self._path.exists():
            raise FileNotFoundError(f"Knowledge base not found: {self._path}")

        from docgraph.ingestion.chunking import EmbeddingBoundaryDetector
        from docgraph.ingestion.extraction import LLMEntityExtractor, MarkdownContentExtractor
        from docgraph.ingestion.pipeline import IngestionPipeline
        from docgraph.query import RetrievalPipeline, StreamingRetrievalPipeline
        from docgraph.redaction import RegexPIIRedactor
        from docgraph.security import RoleBasedSecurityTrimmer
        from docgraph.storage.local import LocalKnowledgeBase

        self._kb = LocalKnowledgeBase(self._path, self._config)
        await self._kb.initialize()

        llm = self._llm or self._create_llm_provider()
        embeddings = self._embeddings or self._create_embedding_provider()
        self._llm, self._embeddings = llm, embeddings

        self._ingestion = IngestionPipeline(
            self._kb.documents,
            MarkdownContentExtractor(),
            LLMEntityExtractor(llm, concurrency=self._config.extraction_concurrency),
            llm,
            embeddings,
            self._kb.search,
            self._kb.graph,
            self._kb.entity_index,
            boundary_detector=EmbeddingBoundaryDetector(
                embeddings, batch_size=self._config.embedding_batch_size
            ),
            config=self._config,
        )

        security = RoleBasedSecurityTrimmer(enabled=self._config.security_trimming_enabled)
        redactor = RegexPIIRedactor(
            enabled=self._config.pii_redaction_enabled,
            min_severity=self._config.pii_redaction_min_severity,
        )
        query_args = (llm, embeddings, self._kb.search, self._kb.graph, security, redactor)
        self._retrieval = RetrievalPipeline(*query_args, config=self._config)
        self._streaming = StreamingRetrievalPipeline(*query_args, config=self._config)
        self._initialized = True

    def _create_llm_provider(self) -> "LLMProvider":
        provider = self._config.llm_provider.lower()
        if provider == "openai":
            from docgraph.providers.llm.openai import OpenAILLMProvider
            return OpenAILLMProvider(
                api_key=self._config.openai_api_key,
                model=self._config.llm_model,
                vision_model=self._config.llm_vision_model,
            )
        raise ConfigurationError(f"Unknown LLM provider: {provider}")

    def _create_embedding_provider(self) -> "EmbeddingProvider":
        provider = self._config.embedding_provider.lower()
        if provider == "openai":
            from docgraph.providers.embedding.openai import OpenAIEmbeddingProvider
            return OpenAIEmbeddingProvider(
                api_key=self._config.openai_api_key,
                model=self._config.embedding_model,
                dimensions=self._config.embedding_dimensions,
            )
        raise ConfigurationError(f"Unknown embedding provider: {provider}")

    # === Lifecycle ===

    async def __aenter__(self) -> "DocGraph":
        await self._ensure_initialized()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Save the snapshot and release the pipelines."""
        if self._kb is not None:
            await self._kb.save()
            await self._kb.close()
            self._kb = None
        self._ingestion = None
        self._retrieval = None
        self._streaming = None
        self._initialized = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def config(self) -> "DocGraphConfig":
        return self._config

    def cost_collector(self) -> CostCollector:
        """A fresh collector using the configured warning threshold."""
        return CostCollector(warn_threshold_usd=self._config.cost_debug_warn_threshold_usd)

    # === Ingestion ===

    async def ingest_file(
        self,
        path: str | Path,
        *,
        document_id: str | None = None,
        title: str | None = None,
        classification: str | None = None,
        allowed_groups: list[str] | None = None,
        department: str | None = None,
        collector: CostCollector | None = None,
        **options: Any,
    ) -> "IngestResult":
        """
        Register a local file as a document and run it through ingestion.

        Extra keyword arguments become IngestOptions overrides (for example
        chunking={"strategy": "fixed"}). Provider usage is recorded into
        `collector` when one is given.
        """
        await self._ensure_initialized()
        assert self._kb is not None and self._ingestion is not None
        from docgraph.types import Document

        path = Path(path).resolve()
        document_id = document_id or str(uuid.uuid4())
        mime_type = mimetypes.guess_type(path.name)[0]
        document = Document(
            id=document_id,
            blob_ref=str(path),
            mime_type=mime_type,
            filename=path.name,
            title=title or path.stem,
            classification=classification,
            allowed_groups=allowed_groups or [],
            department=department,
        )
        await self._kb.documents.put(document)

        ingest_options = self._config.ingest_options(
            mime_type=mime_type,
            filename=document.filename,
            title=document.title,
            **options,
        )
        try:
            with telemetry_collector(collector):
                return await self._ingestion.process_document(
                    document_id, document.blob_ref, ingest_options
                )
        finally:
            await self._kb.save()

    async def reprocess(self, document_id: str) -> "IngestResult":
        await self._ensure_initialized()
        assert self._kb is not None and self._ingestion is not None
        try:
            return await self._ingestion.reprocess_document(document_id)
        finally:
            await self._kb.save()

    # === Query ===

    async def ask(
        self,
        question: str,
        options: "QueryOptions | None" = None,
        *,
        collector: CostCollector | None = None,
    ) -> "QueryResponse":
        """Answer a question; failures become a generic error response."""
        await self._ensure_initialized()
        assert self._retrieval is not None
        with telemetry_collector(collector):
            return await self._retrieval.process_query_with_fallback(question, options)

    async def stream(self, question: str, options: "QueryOptions | None" = None) -> "QueryStream":
        await self._ensure_initialized()
        assert self._streaming is not None
        return self._streaming.stream_query(question, options)

    async def stats(self) -> dict[str, Any]:
        await self._ensure_initialized()
        assert self._kb is not None
        return self._kb.stats()
