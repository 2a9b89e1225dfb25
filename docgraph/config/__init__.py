"""
Configuration System

Configuration Priority (highest to lowest):
    1. Programmatic (passed to DocGraphConfig())
    2. Environment variables (DOCGRAPH_* prefix, OPENAI_API_KEY, ENABLE_PII_REDACTION)
    3. Built-in defaults

Modules:
    settings: DocGraphConfig class
    pricing: Model prices for usage telemetry
"""

from docgraph.config.settings import DocGraphConfig

__all__ = ["DocGraphConfig"]
