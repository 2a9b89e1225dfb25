"""
Semantic Boundary Detection

Embedding-based topic segmentation, used by the Chunker for the semantic
strategy.

Algorithm:
    1. Split text into sentences (abbreviations protected)
    2. Embed each sentence with `buffer_size` neighbours on each side, in batches
    3. Cosine distance between adjacent sentence groups
    4. Breakpoints where distance is strictly above the N-th percentile
    5. Merge chunks under min_chunk_words, split chunks over max_chunk_words

Example:
    >>> detector = EmbeddingBoundaryDetector(embeddings)
    >>> split = await detector.split(text, threshold=95)
    >>> split.chunks, split.chunk_methods
"""

from __future__ import annotations

import logging
import math
import re
import time
from dataclasses import dataclass

from docgraph.providers.base import EmbeddingProvider
from docgraph.services.base import BoundaryDetector
from docgraph.types import BoundarySplit
from docgraph.utils.similarity import cosine_similarity

logger = logging.getLogger(__name__)

_ABBREVIATIONS = (
    "Mr", "Mrs", "Ms", "Dr", "Prof", "Sr", "Jr",
    "vs", "etc", "Inc", "Ltd", "Corp",
    "St", "Ave", "Blvd", "Rd", "Dept", "Fig", "No",
)
_ABBREVIATION_PATTERN = re.compile(
    r"\b(?:" + "|".join(_ABBREVIATIONS) + r")\.|\be\.g\.|\bi\.e\.",
    re.IGNORECASE,
)
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+(?=[A-Z])|\n\s*\n")
_PLACEHOLDER = re.compile(r"\x00(\d+)\x00")

SPLIT_OVERLAP_WORDS = 30


@dataclass
class _Span:
    """Chunk text with its chunking label."""

    text: str
    method: str

    @property
    def words(self) -> int:
        return len(self.text.split())


def split_sentences(text: str) -> list[str]:
    """
    Split text into sentences.

    Breaks after . ! ? followed by whitespace and a capital letter, and at
    blank lines. Common abbreviations (Dr., Inc., e.g.) never end a sentence.
    """
    if not text or not text.strip():
        return []

    protected: list[str] = []

    def _protect(match: re.Match[str]) -> str:
        protected.append(match.group(0))
        return f"\x00{len(protected) - 1}\x00"

    guarded = _ABBREVIATION_PATTERN.sub(_protect, text.strip())
    sentences = []
    for part in _SENTENCE_BREAK.split(guarded):
        restored = _PLACEHOLDER.sub(lambda m: protected[int(m.group(1))], part)
        restored = " ".join(restored.split())
        if restored:
            sentences.append(restored)
    return sentences


def find_breakpoints(distances: list[float], percentile: float) -> list[int]:
    """
    Indices whose distance is strictly above the percentile value.

    The percentile value is the element at floor(p/100 * (n-1)) of the
    sorted distances, so at the top percentile nothing qualifies unless
    there are ties below the maximum.
    """
    if not distances:
        return []
    ordered = sorted(distances)
    index = math.floor((percentile / 100) * (len(ordered) - 1))
    index = min(max(index, 0), len(ordered) - 1)
    threshold = ordered[index]
    return [i for i, distance in enumerate(distances) if distance > threshold]


class EmbeddingBoundaryDetector(BoundaryDetector):
    """
    Topic-boundary detector over sentence embeddings.

    Args:
        embeddings: Embedding provider for sentence groups
        batch_size: Sentence groups per embedding request
        min_chunk_words: Chunks below this are merged forward
        max_chunk_words: Chunks above this are split by words
        min_sentences: Fewer sentences than this gives one chunk
    """

    def __init__(
        self,
        embeddings: EmbeddingProvider,
        *,
        batch_size: int = 16,
        min_chunk_words: int = 50,
        max_chunk_words: int = 800,
        min_sentences: int = 3,
    ) -> None:
        self._embeddings = embeddings
        self._batch_size = max(1, batch_size)
        self._min_chunk_words = min_chunk_words
        self._max_chunk_words = max_chunk_words
        self._min_sentences = min_sentences

    async def split(
        self,
        text: str,
        *,
        threshold: float = 95,
        buffer_size: int = 1,
    ) -> BoundarySplit:
        start = time.perf_counter_ns()
        sentences = split_sentences(text)

        if len(sentences) < self._min_sentences:
            return BoundarySplit(
                chunks=[text.strip()],
                method="single_chunk",
                chunk_methods=["single_chunk"],
            )

        distances = await self._distances(sentences, buffer_size)
        breakpoints = find_breakpoints(distances, threshold)

        spans: list[_Span] = []
        begin = 0
        for end in [*breakpoints, len(sentences) - 1]:
            group = sentences[begin : end + 1]
            if group:
                spans.append(_Span(" ".join(group).strip(), "semantic"))
            begin = end + 1

        spans = self._post_process(spans)
        elapsed_ms = (time.perf_counter_ns() - start) // 1_000_000
        logger.info(
            f"Semantic split: {len(sentences)} sentences, {len(breakpoints)} breakpoints, "
            f"{len(spans)} chunks in {elapsed_ms}ms"
        )
        return BoundarySplit(
            chunks=[s.text for s in spans],
            method="semantic",
            chunk_methods=[s.method for s in spans],
        )

    async def _distances(self, sentences: list[str], buffer_size: int) -> list[float]:
        """Distances between adjacent buffered sentence groups, embedded in batches."""
        buffer = max(0, buffer_size)
        distances: list[float] = []
        previous: list[float] | None = None

        for batch_start in range(0, len(sentences), self._batch_size):
            batch = [
                " ".join(sentences[max(0, i - buffer) : min(len(sentences), i + buffer + 1)])
                for i in range(batch_start, min(len(sentences), batch_start + self._batch_size))
            ]
            vectors = await self._embeddings.embed(batch)
            if len(vectors) != len(batch):
                raise ValueError(
                    f"Embedding batch size mismatch: expected {len(batch)}, got {len(vectors)}"
                )
            for vector in vectors:
                if previous is not None:
                    distances.append(1 - cosine_similarity(previous, vector))
                previous = vector

        return distances

    def _post_process(self, spans: list[_Span]) -> list[_Span]:
        """Merge undersized spans forward; split oversized spans by words."""
        processed: list[_Span] = []
        pending: _Span | None = None

        for span in spans:
            if pending is not None:
                if pending.words < self._min_chunk_words:
                    pending = _Span(f"{pending.text} {span.text}", "semantic_merged")
                    continue
                processed.extend(self._bounded(pending))
                pending = None

            if span.words < self._min_chunk_words:
                pending = span
            else:
                processed.extend(self._bounded(span))

        if pending is not None:
            processed.extend(self._bounded(pending))
        return processed

    def _bounded(self, span: _Span) -> list[_Span]:
        if span.words > self._max_chunk_words:
            return self._split_large(span)
        return [span]

    def _split_large(self, span: _Span) -> list[_Span]:
        words = span.text.split()
        parts: list[_Span] = []
        start = 0
        while start < len(words):
            end = min(start + self._max_chunk_words, len(words))
            parts.append(_Span(" ".join(words[start:end]), "semantic_split"))
            if end == len(words):
                break
            start = max(end - SPLIT_OVERLAP_WORDS, start + 1)
        return parts
