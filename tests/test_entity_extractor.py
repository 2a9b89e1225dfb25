"""Tests for structured-output entity extraction."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from docgraph.ingestion.extraction import LLMEntityExtractor
from docgraph.ingestion.extraction.entities import _ChunkExtraction
from docgraph.types import Chunk


def _chunk(index: int, content: str, section: str | None = None) -> Chunk:
    return Chunk(
        id=f"doc-1_chunk_{index}",
        document_id="doc-1",
        chunk_index=index,
        content=content,
        section_title=section,
    )


def _extraction(entities=(), relationships=()) -> _ChunkExtraction:
    return _ChunkExtraction.model_validate(
        {"entities": list(entities), "relationships": list(relationships)}
    )


@pytest.fixture
def mock_llm() -> MagicMock:
    llm = MagicMock()
    llm.generate_structured = AsyncMock()
    return llm


class TestLLMEntityExtractor:
    """Test per-chunk extraction and merging."""

    @pytest.mark.asyncio
    async def test_merges_chunks_and_dedupes_names(self, mock_llm: MagicMock) -> None:
        mock_llm.generate_structured.side_effect = [
            _extraction(
                entities=[
                    {"name": "Finance Team", "type": "Role", "description": "Approves spend"},
                    {"name": "SAP", "type": "System"},
                ],
                relationships=[
                    {"source": "Finance Team", "target": "SAP", "type": "USES", "evidence": "uses SAP"}
                ],
            ),
            _extraction(
                entities=[{"name": " Finance Team ", "type": "Organization", "confidence": 0.4}],
            ),
        ]
        result = await LLMEntityExtractor(mock_llm).extract(
            [_chunk(0, "Finance uses SAP."), _chunk(1, "Finance Team again.")], "doc-1", "Policy"
        )

        assert [e.name for e in result.entities] == ["Finance Team", "SAP"]
        finance = result.entities[0]
        assert finance.type == "Role"
        assert finance.description == "Approves spend"
        assert finance.source_document_id == "doc-1"

        (rel,) = result.relationships
        assert (rel.from_entity, rel.to_entity, rel.type) == ("Finance Team", "SAP", "USES")
        assert rel.evidence == "uses SAP"
        assert rel.source_document_id == "doc-1"

    @pytest.mark.asyncio
    async def test_failed_chunk_contributes_nothing(self, mock_llm: MagicMock) -> None:
        mock_llm.generate_structured.side_effect = [
            RuntimeError("invalid JSON"),
            _extraction(entities=[{"name": "Payroll", "type": "Process"}]),
        ]
        result = await LLMEntityExtractor(mock_llm).extract(
            [_chunk(0, "a"), _chunk(1, "b")], "doc-1"
        )
        assert [e.name for e in result.entities] == ["Payroll"]

    @pytest.mark.asyncio
    async def test_blank_names_dropped(self, mock_llm: MagicMock) -> None:
        mock_llm.generate_structured.return_value = _extraction(
            entities=[{"name": "  ", "type": "Role"}],
            relationships=[{"source": "", "target": "SAP", "type": "USES"}],
        )
        result = await LLMEntityExtractor(mock_llm).extract([_chunk(0, "text")], "doc-1")
        assert result.entities == []
        assert result.relationships == []

    @pytest.mark.asyncio
    async def test_no_chunks_no_calls(self, mock_llm: MagicMock) -> None:
        result = await LLMEntityExtractor(mock_llm).extract([], "doc-1")
        assert result.entities == []
        mock_llm.generate_structured.assert_not_called()

    @pytest.mark.asyncio
    async def test_prompt_carries_title_and_section(self, mock_llm: MagicMock) -> None:
        mock_llm.generate_structured.return_value = _extraction()
        await LLMEntityExtractor(mock_llm).extract(
            [_chunk(0, "Submit receipts monthly.", section="Receipts")], "doc-1", "Travel Policy"
        )

        prompt = mock_llm.generate_structured.await_args.args[0]
        assert "DOCUMENT: Travel Policy" in prompt
        assert "SECTION: Receipts" in prompt
        assert "Submit receipts monthly." in prompt
        assert mock_llm.generate_structured.await_args.args[1] is _ChunkExtraction

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, mock_llm: MagicMock) -> None:
        active = 0
        peak = 0

        async def slow(*args, **kwargs):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return _extraction()

        mock_llm.generate_structured.side_effect = slow
        await LLMEntityExtractor(mock_llm, concurrency=2).extract(
            [_chunk(i, "text") for i in range(6)], "doc-1"
        )
        assert peak == 2
