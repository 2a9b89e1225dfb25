"""
DocGraphConfig - Configuration Management

Sensible defaults with full override capability.

Example:
    >>> # Use defaults (reads from environment)
    >>> config = DocGraphConfig()

    >>> # Explicit configuration
    >>> config = DocGraphConfig(chunking_strategy="fixed", chunk_size=300)

    >>> # From config file
    >>> config = DocGraphConfig.from_file("./docgraph.toml")

    >>> # Per-call option structs built from the configuration
    >>> options = config.query_options(top_k=5)

Environment Variables:
    DOCGRAPH_LLM_MODEL - Chat model for synthesis and extraction
    DOCGRAPH_VISION_MODEL - Chat model used for figure extraction
    DOCGRAPH_EMBEDDING_MODEL - Embedding model
    DOCGRAPH_CHUNKING_STRATEGY - fixed | semantic | auto
    DOCGRAPH_SEMANTIC_MAX_CHARS - Body length ceiling for semantic chunking
    DOCGRAPH_SEMANTIC_MAX_PAGES - Page ceiling for semantic chunking
    DOCGRAPH_GRAPH_WRITE_INTERVAL_MS - Delay between graph writes
    DOCGRAPH_EXTRACTION_CONCURRENCY - Max concurrent extraction LLM calls
    ENABLE_PII_REDACTION - "false" disables PII redaction
    OPENAI_API_KEY - OpenAI API key (standard name)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, cast

from docgraph.types.options import (
    ChunkingOptions,
    IngestOptions,
    QueryOptions,
    ResolveOptions,
)

# TOML support: tomllib is built-in for Python 3.11+, use tomli for 3.10
try:
    import tomllib

    def _load_toml(path: Path) -> dict[str, Any]:
        with open(path, "rb") as f:
            return cast(dict[str, Any], tomllib.load(f))

except ImportError:
    import tomli

    def _load_toml(path: Path) -> dict[str, Any]:
        with open(path, "rb") as f:
            return cast(dict[str, Any], tomli.load(f))


# TOML section -> attribute prefix
_SECTION_PREFIXES: dict[str, str] = {
    "llm": "llm_",
    "embedding": "embedding_",
    "api_keys": "",
    "ingestion": "",
    "resolution": "resolution_",
    "query": "query_",
    "redaction": "pii_redaction_",
    "security": "security_trimming_",
    "cost_telemetry": "cost_debug_",
}


class DocGraphConfig:
    """Configuration for docgraph."""

    # === LLM Configuration ===

    llm_provider: str = "openai"
    """LLM provider name"""

    llm_model: str = "gpt-4o"
    """Model for answer synthesis and entity extraction"""

    llm_vision_model: str = "gpt-4o"
    """Vision-capable model for figure extraction"""

    # === Embedding Configuration ===

    embedding_provider: str = "openai"
    """Embedding provider name"""

    embedding_model: str = "text-embedding-3-large"
    """Embedding model name"""

    embedding_dimensions: int = 3072
    """Embedding vector dimensions (provider-dependent)"""

    # === API Keys ===

    openai_api_key: str | None = None

    # === Ingestion Configuration ===

    chunking_strategy: str = "semantic"
    """Default chunking strategy: "fixed", "semantic", "auto" """

    chunk_size: int = 500
    """Words per fixed-size chunk"""

    chunk_overlap: int = 50
    """Words shared by consecutive fixed-size chunks"""

    semantic_max_chars: int = 200_000
    """Body length above which semantic chunking is skipped (0 = no limit)"""

    semantic_max_pages: int = 50
    """Page count above which semantic chunking is skipped (0 = no limit)"""

    semantic_threshold: float = 95
    """Percentile of sentence distances that marks a topic boundary"""

    semantic_buffer_size: int = 1
    """Neighbouring sentences folded into each sentence embedding"""

    min_section_chars: int = 50
    """Sections whose text is at or below this length get no section chunk"""

    embedding_batch_size: int = 16
    """Chunks per embedding request"""

    graph_write_interval_ms: int = 100
    """Minimum delay between consecutive graph writes"""

    extraction_concurrency: int = 10
    """Max concurrent entity-extraction LLM calls"""

    extracted_text_preview_chars: int = 5000
    """Characters of extracted text stored on the completed document"""

    # === Resolution Configuration ===

    resolution_exact_threshold: float = 0.98
    """Similarity at or above which an entity is an exact match"""

    resolution_high_threshold: float = 0.92
    """Similarity at or above which an entity is merged into the canonical one"""

    resolution_medium_threshold: float = 0.85
    """Similarity at or above which a SAME_AS link is created"""

    resolution_low_threshold: float = 0.75
    """Similarity at or above which a SIMILAR_TO link is created"""

    resolution_max_candidates: int = 10
    """Entity-index candidates scored per entity"""

    resolution_min_description_length: int = 10
    """Descriptions shorter than this are left out of the entity embedding text"""

    resolution_cross_document_min_similarity: float = 0.75
    """Minimum similarity for cross-document link discovery"""

    # === Query Configuration ===

    query_top_k: int = 10
    """Search results requested per query"""

    query_search_overfetch_factor: int = 3
    """Search fetches top_k times this many results before security trimming"""

    query_graph_depth: int = 2
    """Graph traversal depth for context expansion"""

    query_include_graph_context: bool = True
    """Expand search hits with graph context"""

    query_temperature: float = 0.1
    """Sampling temperature for answer synthesis"""

    query_max_tokens: int = 2048
    """Maximum tokens in a synthesized answer"""

    # === Redaction / Security ===

    pii_redaction_enabled: bool = True
    """Redact PII from answers and citations"""

    pii_redaction_min_severity: str = "low"
    """Lowest PII severity that is redacted: low, medium, high, critical"""

    security_trimming_enabled: bool = True
    """Apply security trimming to search results and graph context"""

    # === Cost Telemetry Configuration ===

    cost_debug_warn_threshold_usd: float | None = None
    """Optional warning threshold for per-run estimated cost"""

    def __init__(self, **kwargs: Any) -> None:
        """
        Initialize configuration.

        Args:
            **kwargs: Override any configuration option

        Raises:
            ValueError: On an unknown configuration option
        """
        self._load_from_env()

        for key, value in kwargs.items():
            if hasattr(self, key) and not key.startswith("_"):
                setattr(self, key, value)
            else:
                raise ValueError(f"Unknown configuration option: {key}")

    def _load_from_env(self) -> None:
        """Load configuration from environment variables."""
        self.openai_api_key = os.getenv("OPENAI_API_KEY")

        if model := os.getenv("DOCGRAPH_LLM_MODEL"):
            self.llm_model = model
        if model := os.getenv("DOCGRAPH_VISION_MODEL"):
            self.llm_vision_model = model
        if model := os.getenv("DOCGRAPH_EMBEDDING_MODEL"):
            self.embedding_model = model
        if strategy := os.getenv("DOCGRAPH_CHUNKING_STRATEGY"):
            self.chunking_strategy = strategy
        if max_chars := os.getenv("DOCGRAPH_SEMANTIC_MAX_CHARS"):
            self.semantic_max_chars = int(max_chars)
        if max_pages := os.getenv("DOCGRAPH_SEMANTIC_MAX_PAGES"):
            self.semantic_max_pages = int(max_pages)
        if interval := os.getenv("DOCGRAPH_GRAPH_WRITE_INTERVAL_MS"):
            self.graph_write_interval_ms = int(interval)
        if concurrency := os.getenv("DOCGRAPH_EXTRACTION_CONCURRENCY"):
            self.extraction_concurrency = int(concurrency)
        if os.getenv("ENABLE_PII_REDACTION", "").lower() == "false":
            self.pii_redaction_enabled = False

    @classmethod
    def from_file(cls, path: str | Path) -> "DocGraphConfig":
        """
        Load configuration from a TOML file.

        Sections are flattened into attribute names with a per-section prefix.

        Example TOML:
            [llm]
            model = "gpt-4o-mini"

            [ingestion]
            chunking_strategy = "fixed"
            chunk_size = 400

            [query]
            top_k = 5

            [redaction]
            enabled = false

            [api_keys]
            openai = "sk-..."

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: On an unknown option
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        data = _load_toml(path)
        flat_config: dict[str, Any] = {}

        for section, prefix in _SECTION_PREFIXES.items():
            for key, value in data.get(section, {}).items():
                if section == "api_keys":
                    flat_config[f"{key}_api_key"] = value
                else:
                    flat_config[f"{prefix}{key}"] = value

        # Flat top-level keys are accepted as-is
        for key, value in data.items():
            if key not in _SECTION_PREFIXES and not isinstance(value, dict):
                flat_config[key] = value

        return cls(**flat_config)

    @classmethod
    def from_env(cls) -> "DocGraphConfig":
        """Load configuration from environment variables only."""
        return cls()

    def to_file(self, path: str | Path) -> None:
        """
        Save configuration to a TOML file.

        API keys are never written.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        sections: dict[str, dict[str, str | int | float | bool | None]] = {}
        for section, prefix in _SECTION_PREFIXES.items():
            if section == "api_keys":
                continue
            sections[section] = {}

        for key in self._option_names():
            if key.endswith("_api_key"):
                continue
            for section, prefix in _SECTION_PREFIXES.items():
                if prefix and key.startswith(prefix):
                    sections[section][key[len(prefix):]] = getattr(self, key)
                    break
            else:
                sections["ingestion"][key] = getattr(self, key)

        lines = ["# docgraph configuration", ""]
        for section_name, values in sections.items():
            if not values:
                continue
            lines.append(f"[{section_name}]")
            for key, value in values.items():
                if isinstance(value, str):
                    lines.append(f'{key} = "{value}"')
                elif isinstance(value, bool):
                    lines.append(f"{key} = {str(value).lower()}")
                elif isinstance(value, (int, float)):
                    lines.append(f"{key} = {value}")
            lines.append("")

        lines.extend(["# API keys are read from the environment (OPENAI_API_KEY).", ""])
        path.write_text("\n".join(lines))

    def with_overrides(self, **kwargs: Any) -> "DocGraphConfig":
        """Return new config with specified overrides."""
        new_config = DocGraphConfig.__new__(DocGraphConfig)
        for key in self._option_names():
            setattr(new_config, key, getattr(self, key))
        for key, value in kwargs.items():
            if key not in self._option_names():
                raise ValueError(f"Unknown configuration option: {key}")
            setattr(new_config, key, value)
        return new_config

    def _option_names(self) -> list[str]:
        return [
            key
            for key in dir(type(self))
            if not key.startswith("_") and not callable(getattr(type(self), key))
        ]

    # -------------------------------------------------------------------------
    # Per-call option structs
    # -------------------------------------------------------------------------

    def chunking_options(self, **overrides: Any) -> ChunkingOptions:
        values: dict[str, Any] = {
            "strategy": self.chunking_strategy,
            "chunk_size": self.chunk_size,
            "chunk_overlap": self.chunk_overlap,
            "semantic_max_chars": self.semantic_max_chars,
            "semantic_max_pages": self.semantic_max_pages,
            "semantic_threshold": self.semantic_threshold,
            "semantic_buffer_size": self.semantic_buffer_size,
            "min_section_chars": self.min_section_chars,
        }
        values.update(overrides)
        return ChunkingOptions(**values)

    def resolve_options(self, **overrides: Any) -> ResolveOptions:
        values: dict[str, Any] = {"max_candidates": self.resolution_max_candidates}
        values.update(overrides)
        return ResolveOptions(**values)

    def ingest_options(self, **overrides: Any) -> IngestOptions:
        """Build IngestOptions; `chunking` and `resolve` accept dicts of overrides."""
        chunking = overrides.pop("chunking", {})
        resolve = overrides.pop("resolve", {})
        values: dict[str, Any] = {
            "chunking": self.chunking_options(
                title=overrides.get("title"),
                filename=overrides.get("filename"),
                **chunking,
            ),
            "resolve": self.resolve_options(**resolve),
            "cross_document_min_similarity": self.resolution_cross_document_min_similarity,
        }
        values.update(overrides)
        return IngestOptions(**values)

    def query_options(self, **overrides: Any) -> QueryOptions:
        values: dict[str, Any] = {
            "top_k": self.query_top_k,
            "graph_depth": self.query_graph_depth,
            "include_graph_context": self.query_include_graph_context,
        }
        values.update(overrides)
        return QueryOptions(**values)
