"""
Document Chunker

Turns ExtractedContent into retrievable chunks.

Chunk families (all in one ChunkSet):
    - content: body text windows, fixed-size or semantic
    - section: one per structural section with enough text
    - table:   one per non-empty table, rendered as a markdown grid

Strategy selection for the body:
    fixed            -> word windows, method "fixed"
    semantic / auto  -> BoundaryDetector, unless the document is over the
                        char/page ceiling ("fixed_large_doc") or the detector
                        raises ("fixed_fallback")
"""

from __future__ import annotations

import logging
import time

from docgraph.services.base import BoundaryDetector
from docgraph.types import (
    Chunk,
    ChunkingOptions,
    ChunkingStrategy,
    ChunkSet,
    ChunkType,
    ExtractedContent,
    Table,
)

logger = logging.getLogger(__name__)


def split_fixed(text: str, chunk_size: int = 500, overlap: int = 50) -> list[str]:
    """
    Split text into overlapping word windows.

    Each window holds up to `chunk_size` words; the next window starts
    `overlap` words before the previous one ended, but always at least one
    word later, so the loop terminates for any overlap. Splitting stops after
    the window that reaches the last word.

    Raises:
        ValueError: If chunk_size <= 0 or overlap < 0
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be > 0, got {chunk_size}")
    if overlap < 0:
        raise ValueError(f"chunk_overlap must be >= 0, got {overlap}")

    words = text.split()
    windows: list[str] = []
    start = 0
    while start < len(words):
        end = min(start + chunk_size, len(words))
        windows.append(" ".join(words[start:end]))
        if end == len(words):
            break
        start = max(end - overlap, start + 1)
    return windows


def format_table(table: Table) -> str:
    """
    Render a table as a markdown grid.

    The first row is treated as the header. Returns "" for a table without
    cells.
    """
    if not table.cells:
        return ""

    rows = table.row_count or max(c.row_index for c in table.cells) + 1
    cols = table.column_count or max(c.column_index for c in table.cells) + 1
    grid = [["" for _ in range(cols)] for _ in range(rows)]
    for cell in table.cells:
        if cell.row_index < rows and cell.column_index < cols:
            grid[cell.row_index][cell.column_index] = " ".join(cell.content.split())

    lines = []
    for i, row in enumerate(grid):
        lines.append("| " + " | ".join(row) + " |")
        if i == 0:
            lines.append("| " + " | ".join("---" for _ in row) + " |")
    return "\n".join(lines)


class Chunker:
    """
    Splits extracted content into body, section and table chunks.

    Args:
        boundary_detector: Used for the semantic and auto strategies. Without
            one, those strategies fall back to fixed chunking.
    """

    def __init__(self, boundary_detector: BoundaryDetector | None = None) -> None:
        self._boundary_detector = boundary_detector

    async def chunk(
        self,
        document_id: str,
        content: ExtractedContent,
        options: ChunkingOptions | None = None,
    ) -> ChunkSet:
        options = options or ChunkingOptions()
        start = time.perf_counter_ns()

        bodies, body_methods, method, fallback_reason = await self._split_body(
            document_id, content, options
        )

        title = options.title or options.filename
        chunks: list[Chunk] = [
            Chunk(
                id=f"{document_id}_chunk_{i}",
                document_id=document_id,
                chunk_index=i,
                content=text,
                chunk_type=ChunkType.CONTENT,
                title=title,
                source_file=options.filename,
                metadata={"total_chunks": len(bodies), "chunking_method": body_methods[i]},
            )
            for i, text in enumerate(bodies)
        ]

        for i, section in enumerate(content.sections):
            text = "\n\n".join(section.content)
            if len(text) <= options.min_section_chars:
                continue
            chunks.append(
                Chunk(
                    id=f"{document_id}_section_{i}",
                    document_id=document_id,
                    chunk_index=len(chunks),
                    content=text,
                    chunk_type=ChunkType.SECTION,
                    title=title,
                    source_file=options.filename,
                    section_title=section.title,
                    page_number=section.page_number,
                    metadata={"section_level": section.level},
                )
            )

        for table in content.tables:
            text = format_table(table)
            if not text:
                continue
            chunks.append(
                Chunk(
                    id=f"{document_id}_table_{table.table_index}",
                    document_id=document_id,
                    chunk_index=len(chunks),
                    content=text,
                    chunk_type=ChunkType.TABLE,
                    title=title,
                    source_file=options.filename,
                    page_number=table.page_number or 1,
                    metadata={"row_count": table.row_count, "column_count": table.column_count},
                )
            )

        elapsed_ms = (time.perf_counter_ns() - start) // 1_000_000
        logger.info(
            f"Chunked {document_id}: {len(bodies)} body ({method}), "
            f"{len(chunks) - len(bodies)} section/table chunks in {elapsed_ms}ms"
        )
        return ChunkSet(chunks=chunks, method=method, fallback_reason=fallback_reason)

    async def _split_body(
        self,
        document_id: str,
        content: ExtractedContent,
        options: ChunkingOptions,
    ) -> tuple[list[str], list[str], str, str | None]:
        """Returns (texts, per-chunk methods, method, fallback_reason)."""
        text = content.content
        if not text or not text.strip():
            return [], [], "fixed", None

        def fixed() -> list[str]:
            return split_fixed(text, options.chunk_size, options.chunk_overlap)

        strategy = ChunkingStrategy(options.strategy)
        if strategy == ChunkingStrategy.FIXED:
            bodies = fixed()
            return bodies, ["fixed"] * len(bodies), "fixed", None

        page_count = content.metadata.page_count
        too_long = options.semantic_max_chars > 0 and len(text) > options.semantic_max_chars
        too_many_pages = options.semantic_max_pages > 0 and page_count > options.semantic_max_pages
        if too_long or too_many_pages:
            reason = (
                f"document exceeds semantic limits ({len(text)} chars, {page_count} pages; "
                f"max {options.semantic_max_chars} chars, {options.semantic_max_pages} pages)"
            )
            logger.warning(f"Skipping semantic chunking for {document_id}: {reason}")
            bodies = fixed()
            return bodies, ["fixed_large_doc"] * len(bodies), "fixed_large_doc", reason

        try:
            if self._boundary_detector is None:
                raise RuntimeError("no boundary detector configured")
            split = await self._boundary_detector.split(
                text,
                threshold=options.semantic_threshold,
                buffer_size=options.semantic_buffer_size,
            )
        except Exception as e:
            logger.warning(f"Semantic chunking failed for {document_id}, using fixed-size: {e}")
            bodies = fixed()
            return bodies, ["fixed_fallback"] * len(bodies), "fixed_fallback", str(e)

        methods = split.chunk_methods or [split.method] * len(split.chunks)
        return list(split.chunks), list(methods), split.method, None
