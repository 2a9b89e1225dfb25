"""
Text Processing Utilities

Functions for name normalization, relationship types and graph ids.
"""

from __future__ import annotations

import re

# Free-form relationship phrasings mapped to canonical graph edge labels
RELATIONSHIP_SYNONYMS: dict[str, str] = {
    "manages": "MANAGES",
    "supervises": "MANAGES",
    "reports_to": "REPORTS_TO",
    "performs": "PERFORMS",
    "executes": "PERFORMS",
    "uses": "USES",
    "requires": "REQUIRES",
    "contains": "CONTAINS",
    "includes": "CONTAINS",
    "has": "CONTAINS",
    "part_of": "PART_OF",
    "belongs_to": "PART_OF",
    "member_of": "PART_OF",
    "followed_by": "FOLLOWED_BY",
    "after": "FOLLOWED_BY",
    "precedes": "PRECEDES",
    "before": "PRECEDES",
    "triggers": "TRIGGERS",
    "causes": "TRIGGERS",
    "produces": "PRODUCES",
    "creates": "PRODUCES",
    "inputs": "INPUTS",
    "receives": "INPUTS",
}

_QUOTES = re.compile("[\u2018\u2019\u201a\u201b`\u00b4]")
_DOUBLE_QUOTES = re.compile("[\u201c\u201d\u201e\u201f]")
_DASHES = re.compile("[\u2010-\u2015\u2212]")
_WHITESPACE = re.compile(r"\s+")


def normalize_entity_name(name: str) -> str:
    """
    Normalize an entity name for exact comparison.

    Lowercases, trims, collapses whitespace, and folds typographic quotes
    and dashes to their ASCII forms.
    """
    if not name:
        return ""
    text = _QUOTES.sub("'", name)
    text = _DOUBLE_QUOTES.sub('"', text)
    text = _DASHES.sub("-", text)
    return _WHITESPACE.sub(" ", text.strip().lower())


def normalize_relationship_type(description: str | None) -> str:
    """
    Normalize a relationship type to an UPPER_SNAKE_CASE edge label.

    Known synonyms map to their canonical label ("supervises" -> "MANAGES").

    Args:
        description: e.g., "belongs to"

    Returns:
        Normalized type e.g., "PART_OF"; "RELATED_TO" for empty input
    """
    if not description or not description.strip():
        return "RELATED_TO"
    key = _WHITESPACE.sub("_", description.strip().lower())
    if key in RELATIONSHIP_SYNONYMS:
        return RELATIONSHIP_SYNONYMS[key]
    return _WHITESPACE.sub("_", description.strip()).upper()


def count_whole_word(text: str, term: str) -> int:
    """Count case-insensitive, word-bounded occurrences of term in text."""
    if not term or not text:
        return 0
    pattern = re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE)
    return len(pattern.findall(text))


def vertex_id(name: str) -> str:
    """Graph vertex id for an entity name (its normalized form)."""
    return normalize_entity_name(name)


def edge_id(from_name: str, edge_type: str, to_name: str, source_document_id: str) -> str:
    """
    Graph edge id.

    One edge per (from, type, to, source document), so reprocessing a
    document overwrites its own edges and never another document's.
    """
    return f"{vertex_id(from_name)}|{edge_type}|{vertex_id(to_name)}|{source_document_id}"
