"""
OpenAI LLM Provider (LangChain-based)

Implements LLMProvider using LangChain's ChatOpenAI.

Supports:
    - Text generation (generate)
    - Structured output with Pydantic schemas (generate_structured)
    - Streaming responses (stream)
    - Image description for figure extraction (describe_image)

Example:
    >>> provider = OpenAILLMProvider(model="gpt-4o")
    >>> answer = await provider.generate("Summarize the onboarding policy.")

    >>> raw = await provider.describe_image(
    ...     "Extract the process steps as JSON.", "https://host/flow.png"
    ... )
"""

from __future__ import annotations

import base64
import mimetypes
import time
from collections.abc import AsyncIterator
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from docgraph.config.pricing import estimate_llm_cost_usd
from docgraph.providers.base import LLMProvider
from docgraph.types.results import CostUsageRecord
from docgraph.utils.cost_telemetry import current_stage, record_usage
from docgraph.utils.token_count import count_chat_tokens, count_text_tokens

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage
    from langchain_openai import ChatOpenAI
    from pydantic import BaseModel

T = TypeVar("T", bound="BaseModel")


def _as_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _extract_token_usage(response: Any) -> tuple[int | None, int | None, int | None]:
    """
    Extract token usage from LangChain response metadata.

    Returns:
        (input_tokens, output_tokens, total_tokens)
    """
    if response is None:
        return None, None, None

    usage = getattr(response, "usage_metadata", None)
    if isinstance(usage, dict):
        input_tokens = _as_int(usage.get("input_tokens") or usage.get("prompt_tokens"))
        output_tokens = _as_int(usage.get("output_tokens") or usage.get("completion_tokens"))
        total_tokens = _as_int(usage.get("total_tokens"))
        if any(v is not None for v in (input_tokens, output_tokens, total_tokens)):
            return input_tokens, output_tokens, total_tokens

    response_metadata = getattr(response, "response_metadata", None)
    if isinstance(response_metadata, dict):
        token_usage = response_metadata.get("token_usage") or response_metadata.get("usage")
        if isinstance(token_usage, dict):
            return (
                _as_int(token_usage.get("input_tokens") or token_usage.get("prompt_tokens")),
                _as_int(token_usage.get("output_tokens") or token_usage.get("completion_tokens")),
                _as_int(token_usage.get("total_tokens")),
            )

    return None, None, None


def _get_chat_openai(
    api_key: str | None = None,
    model: str = "gpt-4o",
    temperature: float = 0.0,
) -> "ChatOpenAI":
    """
    Get a ChatOpenAI instance.

    Uses lazy import to avoid requiring langchain-openai unless actually used.

    Raises:
        ImportError: If langchain-openai package is not installed
    """
    try:
        from langchain_openai import ChatOpenAI
    except ImportError:
        raise ImportError(
            "OpenAI provider requires the 'langchain-openai' package. "
            "Install with: pip install langchain-openai"
        )

    kwargs: dict[str, Any] = {"model": model, "temperature": temperature}
    if api_key:
        kwargs["api_key"] = api_key

    return ChatOpenAI(**kwargs)


def _image_url(image_ref: str) -> str:
    """Pass URLs through; inline local files as base64 data URLs."""
    if image_ref.startswith(("http://", "https://", "data:")):
        return image_ref
    path = Path(image_ref)
    mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def _messages(prompt: str, system: str | None) -> list["BaseMessage"]:
    from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

    messages: list[BaseMessage] = []
    if system:
        messages.append(SystemMessage(content=system))
    messages.append(HumanMessage(content=prompt))
    return messages


class OpenAILLMProvider(LLMProvider):
    """
    OpenAI LLM provider implementation using LangChain.

    Args:
        api_key: OpenAI API key. If None, uses OPENAI_API_KEY environment variable.
        model: Model to use (default: "gpt-4o")
        vision_model: Model for describe_image (default: same as model)
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o",
        vision_model: str | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._vision_model = vision_model or model

    @property
    def model_name(self) -> str:
        """Current model name."""
        return self._model

    def _record(
        self,
        *,
        model: str,
        operation: str,
        start_ns: int,
        response: Any,
        prompt_texts: list[str],
        output_text: str,
        metadata: dict[str, Any],
    ) -> None:
        """Record a usage entry, estimating tokens when the response has none."""
        input_tokens, output_tokens, total_tokens = _extract_token_usage(response)
        estimated = False

        if input_tokens is None:
            input_tokens = count_chat_tokens(prompt_texts, model)
            estimated = True
        if output_tokens is None:
            output_tokens = count_text_tokens(output_text, model)
            estimated = True
        if total_tokens is None:
            total_tokens = input_tokens + output_tokens

        estimated_cost, pricing_found = estimate_llm_cost_usd(
            model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
        record_usage(
            CostUsageRecord(
                provider="openai",
                model=model,
                operation=operation,
                stage=current_stage(),
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=total_tokens,
                estimated_cost_usd=estimated_cost,
                latency_ms=int((time.perf_counter_ns() - start_ns) // 1_000_000),
                estimated=estimated,
                metadata={**metadata, "pricing_found": pricing_found},
            )
        )

    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> str:
        """
        Generate a text completion.

        Args:
            prompt: User prompt/question
            system: Optional system message for context
            temperature: Sampling temperature (0.0 = deterministic)
            max_tokens: Maximum tokens in response

        Returns:
            Generated text response
        """
        start = time.perf_counter_ns()
        client = _get_chat_openai(
            api_key=self._api_key, model=self._model, temperature=temperature
        ).bind(max_tokens=max_tokens)

        response = await client.ainvoke(_messages(prompt, system))
        output_text = str(response.content)

        self._record(
            model=self._model,
            operation="generate",
            start_ns=start,
            response=response,
            prompt_texts=[t for t in (system, prompt) if t],
            output_text=output_text,
            metadata={"temperature": temperature, "max_tokens": max_tokens},
        )
        return output_text

    async def generate_structured(
        self,
        prompt: str,
        schema: type[T],
        *,
        system: str | None = None,
    ) -> T:
        """
        Generate a structured response matching a Pydantic schema.

        Uses LangChain's with_structured_output at temperature 0.
        """
        start = time.perf_counter_ns()
        client = _get_chat_openai(api_key=self._api_key, model=self._model, temperature=0.0)
        messages = _messages(prompt, system)

        raw_response: Any = None
        try:
            # include_raw exposes usage metadata
            structured_client = client.with_structured_output(schema, include_raw=True)
            result_obj = await structured_client.ainvoke(messages)
            if isinstance(result_obj, dict) and "parsed" in result_obj:
                result = result_obj["parsed"]
                raw_response = result_obj.get("raw")
            else:
                result = result_obj
        except TypeError:
            structured_client = client.with_structured_output(schema)
            result = await structured_client.ainvoke(messages)

        output_text = (
            result.model_dump_json() if hasattr(result, "model_dump_json") else str(result)
        )
        self._record(
            model=self._model,
            operation="generate_structured",
            start_ns=start,
            response=raw_response,
            prompt_texts=[t for t in (system, prompt) if t],
            output_text=output_text,
            metadata={"schema": getattr(schema, "__name__", str(schema))},
        )
        return result  # type: ignore[return-value]

    async def stream(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> AsyncIterator[str]:
        """
        Stream a text completion chunk by chunk.

        Yields:
            Text chunks as they're generated
        """
        start = time.perf_counter_ns()
        client = _get_chat_openai(
            api_key=self._api_key, model=self._model, temperature=temperature
        ).bind(max_tokens=max_tokens)

        parts: list[str] = []
        async for chunk in client.astream(_messages(prompt, system)):
            if chunk.content:
                text = str(chunk.content)
                parts.append(text)
                yield text

        self._record(
            model=self._model,
            operation="stream",
            start_ns=start,
            response=None,
            prompt_texts=[t for t in (system, prompt) if t],
            output_text="".join(parts),
            metadata={"temperature": temperature, "max_tokens": max_tokens},
        )

    async def describe_image(
        self,
        prompt: str,
        image_ref: str,
        *,
        json_output: bool = True,
    ) -> str:
        """
        Send an image plus instruction to the vision model.

        Args:
            prompt: Instruction for the model
            image_ref: http(s) URL, data URL, or local file path
            json_output: Request a JSON object response

        Returns:
            Raw model output
        """
        from langchain_core.messages import HumanMessage

        start = time.perf_counter_ns()
        client: Any = _get_chat_openai(
            api_key=self._api_key, model=self._vision_model, temperature=0.0
        )
        if json_output:
            client = client.bind(response_format={"type": "json_object"})

        message = HumanMessage(
            content=[
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": _image_url(image_ref)}},
            ]
        )
        response = await client.ainvoke([message])
        output_text = str(response.content)

        self._record(
            model=self._vision_model,
            operation="describe_image",
            start_ns=start,
            response=response,
            prompt_texts=[prompt],
            output_text=output_text,
            metadata={"json_output": json_output},
        )
        return output_text

    def with_model(self, model: str) -> "OpenAILLMProvider":
        """Return a new provider instance with a different model."""
        return OpenAILLMProvider(
            api_key=self._api_key, model=model, vision_model=self._vision_model
        )
