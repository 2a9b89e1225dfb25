"""Tests for the document chunker and fixed-size splitting."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from docgraph.ingestion.chunking import Chunker, format_table, split_fixed
from docgraph.types import (
    BoundarySplit,
    ChunkingOptions,
    ContentMetadata,
    ExtractedContent,
    Section,
    Table,
    TableCell,
)


def _words(n: int) -> str:
    return " ".join(f"w{i}" for i in range(n))


@pytest.fixture
def detector() -> MagicMock:
    detector = MagicMock()
    detector.split = AsyncMock(
        return_value=BoundarySplit(
            chunks=["first topic", "second topic"],
            method="semantic",
            chunk_methods=["semantic", "semantic_merged"],
        )
    )
    return detector


class TestSplitFixed:
    """Test word-window splitting."""

    def test_windows_overlap(self) -> None:
        windows = split_fixed(_words(10), chunk_size=4, overlap=1)
        assert windows == ["w0 w1 w2 w3", "w3 w4 w5 w6", "w6 w7 w8 w9"]

    def test_short_text_is_one_window(self) -> None:
        assert split_fixed("a b c", chunk_size=500, overlap=50) == ["a b c"]

    def test_empty_text(self) -> None:
        assert split_fixed("", chunk_size=10, overlap=2) == []

    def test_overlap_not_smaller_than_size_still_progresses(self) -> None:
        """Every window starts at least one word after the previous one."""
        windows = split_fixed(_words(5), chunk_size=2, overlap=5)
        assert windows == ["w0 w1", "w1 w2", "w2 w3", "w3 w4"]

    def test_covers_every_word(self) -> None:
        text = _words(1234)
        windows = split_fixed(text, chunk_size=500, overlap=50)
        covered = {w for window in windows for w in window.split()}
        assert covered == set(text.split())

    @pytest.mark.parametrize("size, overlap", [(0, 0), (-1, 0), (10, -1)])
    def test_invalid_arguments(self, size: int, overlap: int) -> None:
        with pytest.raises(ValueError):
            split_fixed("a b c", chunk_size=size, overlap=overlap)


class TestFormatTable:
    """Test markdown rendering of tables."""

    def test_header_separator(self) -> None:
        table = Table(
            table_index=0,
            row_count=2,
            column_count=2,
            cells=[
                TableCell(row_index=0, column_index=0, content="Role"),
                TableCell(row_index=0, column_index=1, content="Limit"),
                TableCell(row_index=1, column_index=0, content="Manager"),
                TableCell(row_index=1, column_index=1, content="$5,000"),
            ],
        )
        assert format_table(table) == "| Role | Limit |\n| --- | --- |\n| Manager | $5,000 |"

    def test_infers_dimensions_and_fills_gaps(self) -> None:
        table = Table(
            table_index=0,
            cells=[
                TableCell(row_index=0, column_index=0, content="A"),
                TableCell(row_index=1, column_index=1, content="multi\n line"),
            ],
        )
        assert format_table(table).splitlines()[-1] == "|  | multi line |"

    def test_empty_table(self) -> None:
        assert format_table(Table(table_index=0)) == ""


class TestChunker:
    """Test chunk families and strategy selection."""

    @pytest.mark.asyncio
    async def test_fixed_strategy(self, detector: MagicMock) -> None:
        content = ExtractedContent(content=_words(10))
        result = await Chunker(detector).chunk(
            "doc", content, ChunkingOptions(strategy="fixed", chunk_size=4, chunk_overlap=0)
        )

        assert result.method == "fixed"
        assert result.fallback_reason is None
        assert [c.id for c in result.chunks] == ["doc_chunk_0", "doc_chunk_1", "doc_chunk_2"]
        assert all(c.metadata["chunking_method"] == "fixed" for c in result.chunks)
        assert result.chunks[0].metadata["total_chunks"] == 3
        detector.split.assert_not_called()

    @pytest.mark.asyncio
    async def test_semantic_strategy_uses_detector(self, detector: MagicMock) -> None:
        content = ExtractedContent(content="Some text about things.")
        result = await Chunker(detector).chunk(
            "doc", content, ChunkingOptions(strategy="semantic", semantic_threshold=90)
        )

        assert result.method == "semantic"
        assert [c.content for c in result.chunks] == ["first topic", "second topic"]
        assert [c.metadata["chunking_method"] for c in result.chunks] == ["semantic", "semantic_merged"]
        assert detector.split.await_args.kwargs["threshold"] == 90

    @pytest.mark.asyncio
    async def test_large_document_skips_semantic(self, detector: MagicMock) -> None:
        content = ExtractedContent(content=_words(100), metadata=ContentMetadata(page_count=80))
        result = await Chunker(detector).chunk("doc", content, ChunkingOptions(strategy="auto"))

        assert result.method == "fixed_large_doc"
        assert result.fell_back
        assert "semantic limits" in result.fallback_reason
        detector.split.assert_not_called()

    @pytest.mark.asyncio
    async def test_char_ceiling(self, detector: MagicMock) -> None:
        content = ExtractedContent(content=_words(100))
        result = await Chunker(detector).chunk(
            "doc", content, ChunkingOptions(strategy="semantic", semantic_max_chars=50)
        )
        assert result.method == "fixed_large_doc"

    @pytest.mark.asyncio
    async def test_detector_failure_falls_back(self, detector: MagicMock) -> None:
        detector.split.side_effect = RuntimeError("embedding service down")
        content = ExtractedContent(content=_words(20))
        result = await Chunker(detector).chunk("doc", content, ChunkingOptions(strategy="semantic"))

        assert result.method == "fixed_fallback"
        assert result.fallback_reason == "embedding service down"
        assert result.chunks[0].metadata["chunking_method"] == "fixed_fallback"

    @pytest.mark.asyncio
    async def test_no_detector_falls_back(self) -> None:
        content = ExtractedContent(content=_words(20))
        result = await Chunker().chunk("doc", content, ChunkingOptions(strategy="semantic"))
        assert result.method == "fixed_fallback"

    @pytest.mark.asyncio
    async def test_sections_and_tables(self) -> None:
        long_paragraph = "The approval workflow has several steps for every invoice. " * 2
        content = ExtractedContent(
            content="",
            sections=[
                Section(title="Approvals", content=[long_paragraph], level=2, page_number=3),
                Section(title="Tiny", content=["too short"]),
            ],
            tables=[
                Table(table_index=4, cells=[TableCell(row_index=0, column_index=0, content="x")]),
                Table(table_index=5),
            ],
        )
        result = await Chunker().chunk(
            "doc", content, ChunkingOptions(strategy="fixed", filename="policy.md")
        )

        assert [c.id for c in result.chunks] == ["doc_section_0", "doc_table_4"]
        section, table = result.chunks
        assert section.chunk_type == "section"
        assert section.section_title == "Approvals"
        assert section.page_number == 3
        assert section.title == "policy.md"
        assert section.metadata["section_level"] == 2
        assert table.chunk_type == "table"
        assert table.page_number == 1
        assert [c.chunk_index for c in result.chunks] == [0, 1]

    @pytest.mark.asyncio
    async def test_empty_body(self, detector: MagicMock) -> None:
        result = await Chunker(detector).chunk("doc", ExtractedContent(content="   "))
        assert result.chunks == []
        assert result.method == "fixed"
