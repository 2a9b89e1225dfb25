"""Tests for the OpenAI embedding provider with the LangChain client stubbed."""

from unittest.mock import MagicMock

import pytest

from docgraph.providers.embedding import OpenAIEmbeddingProvider
from docgraph.utils.cost_telemetry import CostCollector, telemetry_collector, telemetry_stage


@pytest.fixture
def client_class(monkeypatch) -> MagicMock:
    client = MagicMock()
    client.embed_documents.side_effect = lambda texts: [[0.1, 0.2] for _ in texts]
    client.embed_query.return_value = [0.3, 0.4]
    client_class = MagicMock(return_value=client)
    monkeypatch.setattr("langchain_openai.OpenAIEmbeddings", client_class)
    return client_class


class TestDimensions:
    """Reduced dimensions apply only to text-embedding-3 models."""

    def test_reduced_for_v3_model(self, client_class) -> None:
        provider = OpenAIEmbeddingProvider(model="text-embedding-3-large", dimensions=1024)
        provider._get_client()

        assert provider.dimensions == 1024
        assert client_class.call_args.kwargs == {"model": "text-embedding-3-large", "dimensions": 1024}

    def test_native_size_not_sent(self, client_class) -> None:
        provider = OpenAIEmbeddingProvider(model="text-embedding-3-large", dimensions=3072)
        provider._get_client()

        assert provider.dimensions == 3072
        assert "dimensions" not in client_class.call_args.kwargs

    def test_ignored_for_fixed_size_model(self, client_class) -> None:
        provider = OpenAIEmbeddingProvider(model="text-embedding-ada-002", dimensions=256)
        provider._get_client()

        assert provider.dimensions == 1536
        assert "dimensions" not in client_class.call_args.kwargs


class TestEmbed:
    """Test embedding calls and usage records."""

    @pytest.mark.asyncio
    async def test_embed_records_usage_under_stage(self, client_class, monkeypatch) -> None:
        monkeypatch.setattr(
            "docgraph.providers.embedding.openai.count_text_tokens", lambda text, model: len(text.split())
        )
        provider = OpenAIEmbeddingProvider(model="text-embedding-3-small")
        collector = CostCollector()

        with telemetry_collector(collector), telemetry_stage("generating_embeddings"):
            vectors = await provider.embed(["first chunk", "second chunk"])
            single = await provider.embed_single("a question")

        assert vectors == [[0.1, 0.2], [0.1, 0.2]]
        assert single == [0.3, 0.4]
        embed, embed_single = collector.records
        assert embed.operation == "embed"
        assert embed.stage == "generating_embeddings"
        assert embed.metadata["texts"] == 2
        assert embed.input_tokens == 4
        assert embed_single.operation == "embed_single"

    @pytest.mark.asyncio
    async def test_empty_input_skips_client(self, client_class) -> None:
        assert await OpenAIEmbeddingProvider().embed([]) == []
        client_class.assert_not_called()
