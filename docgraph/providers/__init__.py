"""
LLM and Embedding Providers

Provider-agnostic interfaces for LLM and embedding operations.

Modules:
    base: Abstract provider interfaces
    llm/: LLM provider implementations
    embedding/: Embedding provider implementations

Supported Providers:
    - OpenAI chat models (gpt-4o, gpt-4o-mini) via LangChain, including vision
    - OpenAI embeddings (text-embedding-3-large/small) via LangChain

Example:
    >>> from docgraph.providers import LLMProvider, EmbeddingProvider
    >>> from docgraph.providers.llm import OpenAILLMProvider
    >>> from docgraph.providers.embedding import OpenAIEmbeddingProvider
"""

from docgraph.providers.base import EmbeddingProvider, LLMProvider

__all__ = ["LLMProvider", "EmbeddingProvider"]
