"""Embedding provider implementations."""

from docgraph.providers.embedding.openai import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
