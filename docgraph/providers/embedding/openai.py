"""
OpenAI embeddings through LangChain's OpenAIEmbeddings.

Chunk, entity and query vectors all come from here. Every call records an
estimated CostUsageRecord under the current telemetry stage; token counts
are computed locally with tiktoken since the embeddings endpoint response
is not surfaced by LangChain.

text-embedding-3 models accept a reduced `dimensions`; older models are
fixed-size and ignore the setting.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from docgraph.config.pricing import estimate_embedding_cost_usd
from docgraph.providers.base import EmbeddingProvider
from docgraph.types.results import CostUsageRecord
from docgraph.utils.cost_telemetry import current_stage, record_usage
from docgraph.utils.token_count import count_text_tokens

if TYPE_CHECKING:
    from langchain_openai import OpenAIEmbeddings


NATIVE_DIMENSIONS = {
    "text-embedding-3-large": 3072,
    "text-embedding-3-small": 1536,
    "text-embedding-ada-002": 1536,
}

DEFAULT_MODEL = "text-embedding-3-large"


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    EmbeddingProvider backed by OpenAI.

    Args:
        api_key: OpenAI API key; falls back to OPENAI_API_KEY when None
        model: Embedding model name
        dimensions: Requested vector size. Only honoured by text-embedding-3
            models and only when smaller than the native size.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        dimensions: int | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        native = NATIVE_DIMENSIONS.get(model, 3072)
        self._reduced = (
            dimensions is not None
            and model.startswith("text-embedding-3")
            and 0 < dimensions < native
        )
        self._dimensions = dimensions if self._reduced else native
        self._client: OpenAIEmbeddings | None = None

    def _get_client(self) -> "OpenAIEmbeddings":
        if self._client is None:
            try:
                from langchain_openai import OpenAIEmbeddings
            except ImportError as e:
                raise ImportError(
                    "OpenAI embeddings need 'langchain-openai'. Install with: pip install langchain-openai"
                ) from e

            kwargs: dict = {"model": self._model}
            if self._reduced:
                kwargs["dimensions"] = self._dimensions
            if self._api_key:
                from pydantic import SecretStr

                kwargs["api_key"] = SecretStr(self._api_key)
            self._client = OpenAIEmbeddings(**kwargs)
        return self._client

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model_name(self) -> str:
        return self._model

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        start = time.perf_counter_ns()
        vectors = await asyncio.to_thread(self._get_client().embed_documents, texts)
        self._record("embed", texts, start)
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        start = time.perf_counter_ns()
        vector = await asyncio.to_thread(self._get_client().embed_query, text)
        self._record("embed_single", [text], start)
        return vector

    def _record(self, operation: str, texts: list[str], start_ns: int) -> None:
        input_tokens = sum(count_text_tokens(text, self._model) for text in texts)
        cost, pricing_found = estimate_embedding_cost_usd(self._model, input_tokens=input_tokens)
        record_usage(
            CostUsageRecord(
                provider="openai",
                model=self._model,
                operation=operation,
                stage=current_stage(),
                input_tokens=input_tokens,
                total_tokens=input_tokens,
                estimated_cost_usd=cost,
                latency_ms=int((time.perf_counter_ns() - start_ns) // 1_000_000),
                estimated=True,
                metadata={"texts": len(texts), "pricing_found": pricing_found},
            )
        )
