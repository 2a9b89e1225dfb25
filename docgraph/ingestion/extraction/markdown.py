"""
Markdown Content Extractor

Local ContentExtractor for .md / .txt files and standalone images.

Parsing:
    1. Headers (# .. ######) open sections; a header stack tracks levels
    2. Pipe tables become Table objects and are removed from the body text
    3. Image links ![caption](src) become figures
    4. Paragraphs (blank-line separated) become section content

Image files (.png, .jpg, .jpeg) produce no text and a single figure, so the
ingestion pipeline can run visual extraction on them.

Example:
    >>> extractor = MarkdownContentExtractor()
    >>> content = await extractor.extract("./docs/onboarding.md")
    >>> [s.title for s in content.sections]
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from urllib.parse import unquote, urlparse

from docgraph.errors import ExtractionError
from docgraph.services.base import ContentExtractor
from docgraph.types import (
    ContentMetadata,
    ExtractedContent,
    Figure,
    Section,
    Table,
    TableCell,
)

_HEADER_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_TABLE_ROW_PATTERN = re.compile(r"^\s*\|.*\|\s*$")
_TABLE_SEPARATOR_PATTERN = re.compile(r"^\s*\|?\s*:?-{3,}:?\s*(\|\s*:?-{3,}:?\s*)*\|?\s*$")
_IMAGE_PATTERN = re.compile(r"!\[([^\]]*)\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")
_CODE_FENCE = "```"

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg")
MODEL_ID = "markdown-v1"


def _local_path(blob_ref: str) -> Path:
    if blob_ref.startswith("file://"):
        return Path(unquote(urlparse(blob_ref).path))
    return Path(blob_ref)


def _split_row(line: str) -> list[str]:
    cells = line.strip().strip("|").split("|")
    return [c.strip() for c in cells]


def _paragraphs(lines: list[str]) -> list[str]:
    text = "\n".join(lines)
    return [p.strip() for p in re.split(r"\n\s*\n", text) if p.strip()]


def parse_markdown(text: str, *, base_dir: Path | None = None) -> ExtractedContent:
    """
    Parse markdown text into sections, tables and figures.

    Args:
        text: Markdown source
        base_dir: Directory that relative image links resolve against

    Returns:
        ExtractedContent; `content` is the text with pipe tables removed
    """
    sections: list[Section] = []
    tables: list[Table] = []
    figures: list[Figure] = []
    body_lines: list[str] = []

    current_title: str | None = None
    current_level = 1
    current_lines: list[str] = []

    def flush_section() -> None:
        paragraphs = _paragraphs(current_lines)
        if current_title is not None or paragraphs:
            sections.append(
                Section(
                    title=current_title or "Introduction",
                    content=paragraphs,
                    level=current_level if current_title is not None else 0,
                    page_number=1,
                )
            )

    lines = text.splitlines()
    in_code = False
    i = 0
    while i < len(lines):
        line = lines[i]

        if line.strip().startswith(_CODE_FENCE):
            in_code = not in_code
        if in_code or line.strip().startswith(_CODE_FENCE):
            current_lines.append(line)
            body_lines.append(line)
            i += 1
            continue

        header = _HEADER_PATTERN.match(line)
        if header:
            flush_section()
            current_title = header.group(2).strip()
            current_level = len(header.group(1))
            current_lines = []
            body_lines.append(current_title)
            i += 1
            continue

        if _TABLE_ROW_PATTERN.match(line):
            rows: list[list[str]] = []
            while i < len(lines) and _TABLE_ROW_PATTERN.match(lines[i]):
                if not _TABLE_SEPARATOR_PATTERN.match(lines[i]):
                    rows.append(_split_row(lines[i]))
                i += 1
            column_count = max((len(r) for r in rows), default=0)
            tables.append(
                Table(
                    table_index=len(tables),
                    row_count=len(rows),
                    column_count=column_count,
                    cells=[
                        TableCell(row_index=r, column_index=c, content=value)
                        for r, row in enumerate(rows)
                        for c, value in enumerate(row)
                    ],
                    page_number=1,
                )
            )
            continue

        for match in _IMAGE_PATTERN.finditer(line):
            src = match.group(2)
            if base_dir is not None and not urlparse(src).scheme:
                src = str((base_dir / src).resolve())
            figures.append(Figure(id=src, caption=match.group(1) or None, page_number=1))
        line = _IMAGE_PATTERN.sub(lambda m: m.group(1), line)

        current_lines.append(line)
        body_lines.append(line)
        i += 1

    flush_section()

    content = re.sub(r"\n{3,}", "\n\n", "\n".join(body_lines)).strip()
    page_count = text.count("\f") + 1 if text.strip() else 0
    return ExtractedContent(
        content=content,
        sections=[s for s in sections if s.content or s.level > 0],
        tables=tables,
        figures=figures,
        metadata=ContentMetadata(page_count=page_count, model_id=MODEL_ID),
    )


class MarkdownContentExtractor(ContentExtractor):
    """ContentExtractor for local markdown, plain-text and image files."""

    async def extract(self, blob_ref: str, *, mime_type: str | None = None) -> ExtractedContent:
        path = _local_path(blob_ref)
        if path.suffix.lower() in IMAGE_SUFFIXES or (mime_type or "").startswith("image/"):
            if not path.exists() and not blob_ref.startswith(("http://", "https://")):
                raise ExtractionError(f"Image not found: {blob_ref}")
            return ExtractedContent(
                figures=[Figure(id=blob_ref, caption=path.stem, page_number=1)],
                metadata=ContentMetadata(page_count=1, model_id=MODEL_ID),
            )

        if not path.exists():
            raise ExtractionError(f"File not found: {blob_ref}")
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ExtractionError(f"Could not read {blob_ref}: {e}") from e

        return parse_markdown(text, base_dir=path.parent)
