"""
Token counting for usage telemetry.

Providers fall back to these counts when a response carries no usage
metadata. tiktoken is used when installed, else ~4 characters per token.
"""

from __future__ import annotations

from collections.abc import Iterable
from functools import lru_cache
from typing import Any


@lru_cache(maxsize=16)
def _encoding_for(model: str) -> Any | None:
    try:
        import tiktoken
    except ImportError:
        return None

    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        return tiktoken.get_encoding("cl100k_base")


def count_text_tokens(text: str, model: str) -> int:
    """Estimate tokens for plain text."""
    if not text:
        return 0
    encoding = _encoding_for(model)
    if encoding is not None:
        return len(encoding.encode(text))
    return max(1, (len(text) + 3) // 4)


def count_chat_tokens(messages: Iterable[str], model: str) -> int:
    """Estimate tokens for chat input, adding 4 tokens of framing per message."""
    total = 0
    for message in messages:
        total += count_text_tokens(message, model) + 4
    return total


def count_words(text: str) -> int:
    """Whitespace word count, the chunker's approximate token unit."""
    return len(text.split())
