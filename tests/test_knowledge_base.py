"""Tests for the DocGraph facade with injected providers."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from docgraph import DocGraph, DocGraphConfig
from docgraph.errors import ConfigurationError, ExtractionError
from docgraph.ingestion.extraction.entities import _ChunkExtraction
from docgraph.types import CostUsageRecord, QueryOptions, UserContext
from docgraph.utils.cost_telemetry import current_stage, record_usage

POLICY = """\
# Travel

Managers approve travel expenses.
"""


def _embed(texts: list[str]) -> list[list[float]]:
    record_usage(
        CostUsageRecord(
            provider="test",
            model="test-embedding",
            operation="embed",
            stage=current_stage(),
            total_tokens=len(texts),
        )
    )
    return [[1.0, 0.0] if "manager" in t.lower() else [0.0, 1.0] for t in texts]


@pytest.fixture(autouse=True)
def _env(monkeypatch) -> None:
    monkeypatch.delenv("ENABLE_PII_REDACTION", raising=False)


@pytest.fixture
def config() -> DocGraphConfig:
    return DocGraphConfig(graph_write_interval_ms=0)


@pytest.fixture
def mock_llm() -> MagicMock:
    llm = MagicMock()
    llm.generate_structured = AsyncMock(
        return_value=_ChunkExtraction.model_validate(
            {
                "entities": [{"name": "Managers", "type": "Role"}],
                "relationships": [{"source": "Managers", "target": "Travel Expense", "type": "approves"}],
            }
        )
    )
    llm.generate = AsyncMock(return_value="Managers approve travel expenses.")
    return llm


@pytest.fixture
def mock_embeddings() -> MagicMock:
    embeddings = MagicMock()
    embeddings.embed = AsyncMock(side_effect=_embed)
    embeddings.embed_single = AsyncMock(return_value=[1.0, 0.0])
    return embeddings


@pytest.fixture
def policy_file(tmp_path):
    path = tmp_path / "docs" / "travel-policy.md"
    path.parent.mkdir()
    path.write_text(POLICY, encoding="utf-8")
    return path


class TestDocGraph:
    """Test ingestion and questions through the facade."""

    @pytest.mark.asyncio
    async def test_ingest_then_ask(self, tmp_path, config, mock_llm, mock_embeddings, policy_file) -> None:
        async with DocGraph(tmp_path / "kb", config, llm=mock_llm, embeddings=mock_embeddings) as dg:
            result = await dg.ingest_file(
                policy_file,
                document_id="travel",
                classification="internal",
                chunking={"strategy": "fixed"},
            )
            assert result.success is True
            assert result.stats.entities_resolved == 1

            response = await dg.ask("Who approves travel?", QueryOptions(user=UserContext(roles=["Reader"])))
            assert response.answer == "Managers approve travel expenses."
            assert response.citations[0].document_name == "travel-policy"
            assert response.metadata.entities_found == 1

            stats = await dg.stats()
            assert stats["documents_by_status"] == {"completed": 1}

        snapshot = json.loads((tmp_path / "kb" / "snapshot.json").read_text())
        (document,) = snapshot["documents"]
        assert document["filename"] == "travel-policy.md"
        assert document["blob_ref"] == str(policy_file.resolve())

    @pytest.mark.asyncio
    async def test_reopen_existing(self, tmp_path, config, mock_llm, mock_embeddings, policy_file) -> None:
        async with DocGraph(tmp_path / "kb", config, llm=mock_llm, embeddings=mock_embeddings) as dg:
            await dg.ingest_file(policy_file, document_id="travel", chunking={"strategy": "fixed"})

        reopened = DocGraph(tmp_path / "kb", config, create=False, llm=mock_llm, embeddings=mock_embeddings)
        stats = await reopened.stats()
        assert (stats["documents"], stats["chunks"]) == (1, 1)

        result = await reopened.reprocess("travel")
        assert result.success is True
        assert (await reopened.stats())["edges"] == 1
        await reopened.close()

    @pytest.mark.asyncio
    async def test_missing_kb_without_create(self, tmp_path, config, mock_llm, mock_embeddings) -> None:
        dg = DocGraph(tmp_path / "nope", config, create=False, llm=mock_llm, embeddings=mock_embeddings)
        with pytest.raises(FileNotFoundError):
            await dg.stats()

    @pytest.mark.asyncio
    async def test_unknown_provider(self, tmp_path) -> None:
        dg = DocGraph(tmp_path / "kb", DocGraphConfig(llm_provider="acme"))
        with pytest.raises(ConfigurationError, match="Unknown LLM provider"):
            await dg.stats()

    @pytest.mark.asyncio
    async def test_failed_ingest_is_persisted(self, tmp_path, config, mock_llm, mock_embeddings) -> None:
        dg = DocGraph(tmp_path / "kb", config, llm=mock_llm, embeddings=mock_embeddings)
        with pytest.raises(ExtractionError):
            await dg.ingest_file(tmp_path / "missing.md", document_id="missing")
        await dg.close()

        snapshot = json.loads((tmp_path / "kb" / "snapshot.json").read_text())
        (document,) = snapshot["documents"]
        assert document["status"] == "failed"
        assert "File not found" in document["processing_error"]

    @pytest.mark.asyncio
    async def test_costs_collected_per_stage(self, tmp_path, mock_llm, mock_embeddings, policy_file) -> None:
        config = DocGraphConfig(graph_write_interval_ms=0, cost_debug_warn_threshold_usd=1.5)
        async with DocGraph(tmp_path / "kb", config, llm=mock_llm, embeddings=mock_embeddings) as dg:
            collector = dg.cost_collector()
            await dg.ingest_file(policy_file, chunking={"strategy": "fixed"}, collector=collector)

        stages = {s.stage for s in collector.summary().breakdown.by_stage}
        assert {"resolving_entities", "generating_embeddings"} <= stages
