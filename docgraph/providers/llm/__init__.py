"""LLM provider implementations."""

from docgraph.providers.llm.openai import OpenAILLMProvider

__all__ = ["OpenAILLMProvider"]
