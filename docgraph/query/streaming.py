"""
Streaming Retrieval Pipeline

Same retrieval as RetrievalPipeline, with the synthesis step streamed as
events:

    thinking   {"content": "Searching knowledge base..."}
    thinking   {"content": "Analyzing graph relationships..."}
    metadata   {"citations", "documents_searched", "documents_accessible", "entities_found"}
    thinking   {"content": "Synthesizing answer..."}
    content    {"text": <delta>}             (repeated)
    content_replace {"text": <redacted>}     (only if the full answer had PII)
    metadata   {"response_time_ms"}
    done       {}

Failures emit a single `error` event and end the stream. Cancelling (via
QueryStream.cancel() or by cancelling the consuming task) aborts the
in-flight call and suppresses every later event, including `error`.

Example:
    >>> stream = pipeline.stream_query("Who signs off on new vendors?", options)
    >>> async for event in stream:
    ...     response.write(format_sse(event))
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Literal

from docgraph.config import DocGraphConfig
from docgraph.providers.base import EmbeddingProvider, LLMProvider
from docgraph.query.context import ContextRetriever, build_citations
from docgraph.query.prompts import (
    NO_CONTEXT_RESPONSE,
    QUERY_SYNTHESIS_SYSTEM_PROMPT,
    build_query_prompt,
)
from docgraph.services.base import GraphStore, PIIRedactor, SearchIndex, SecurityTrimmer
from docgraph.types import QueryOptions, StreamEvent
from docgraph.types.results import StreamEventName
from docgraph.utils.cost_telemetry import timed_stage

logger = logging.getLogger(__name__)

StreamOutcome = Literal["running", "completed", "stopped", "error"]
Emit = Callable[[StreamEventName, dict[str, Any]], None]


def format_sse(event: StreamEvent) -> str:
    """Render an event as a Server-Sent Events frame."""
    return f"event: {event.event}\ndata: {json.dumps(event.data)}\n\n"


class QueryStream:
    """
    Async iterator of StreamEvents produced by a background task.

    The producer starts on first iteration. Iterating after cancel() ends
    immediately.
    """

    def __init__(self, producer: Callable[[Emit], Awaitable[None]]) -> None:
        self._producer = producer
        self._queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False
        self._outcome: StreamOutcome = "running"

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def outcome(self) -> StreamOutcome:
        return self._outcome

    def cancel(self) -> None:
        """Stop the stream; no further events are delivered."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._outcome == "running":
            self._outcome = "stopped"
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._queue.put_nowait(None)

    def __aiter__(self) -> QueryStream:
        return self

    async def __anext__(self) -> StreamEvent:
        if self._cancelled:
            raise StopAsyncIteration
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())
        try:
            event = await self._queue.get()
        except asyncio.CancelledError:
            self.cancel()
            raise
        if event is None or self._cancelled:
            raise StopAsyncIteration
        return event

    async def aclose(self) -> None:
        """Cancel and wait for the producer to finish."""
        self.cancel()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def sse(self) -> AsyncIterator[str]:
        """Iterate the stream as SSE frames."""
        async for event in self:
            yield format_sse(event)

    def _emit(self, event: StreamEventName, data: dict[str, Any]) -> None:
        if not self._cancelled:
            self._queue.put_nowait(StreamEvent(event=event, data=data))

    async def _run(self) -> None:
        try:
            await self._producer(self._emit)
            if not self._cancelled:
                self._outcome = "completed"
        except asyncio.CancelledError:
            self._outcome = "stopped"
            raise
        except Exception as e:
            if self._cancelled:
                return
            logger.exception(f"Streaming query failed: {e}")
            self._outcome = "error"
            self._emit("error", {"message": str(e) or "Streaming query failed"})
        finally:
            self._queue.put_nowait(None)


class StreamingRetrievalPipeline:
    """Retrieval with streamed synthesis."""

    def __init__(
        self,
        llm: LLMProvider,
        embeddings: EmbeddingProvider,
        search: SearchIndex,
        graph: GraphStore,
        security: SecurityTrimmer,
        redactor: PIIRedactor,
        config: DocGraphConfig | None = None,
    ) -> None:
        self.llm = llm
        self.redactor = redactor
        self.config = config or DocGraphConfig()
        self.retriever = ContextRetriever(
            embeddings,
            search,
            graph,
            security,
            overfetch_factor=self.config.query_search_overfetch_factor,
        )

    def stream_query(self, query: str, options: QueryOptions | None = None) -> QueryStream:
        options = options or self.config.query_options()

        async def produce(emit: Emit) -> None:
            await self._produce(query, options, emit)

        return QueryStream(produce)

    async def _produce(self, query: str, options: QueryOptions, emit: Emit) -> None:
        start = time.perf_counter_ns()
        timing: dict[str, int] = {}

        emit("thinking", {"content": "Searching knowledge base..."})
        emit("thinking", {"content": "Analyzing graph relationships..."})
        context = await self.retriever.retrieve(query, options, timing)

        citations = build_citations(context.results)
        redacted = await asyncio.gather(*(self.redactor.redact(c.content) for c in citations))
        citations = [
            c.model_copy(update={"content": r.redacted_text}) for c, r in zip(citations, redacted)
        ]

        emit(
            "metadata",
            {
                "citations": [c.model_dump(mode="json") for c in citations],
                "documents_searched": len(context.raw_results),
                "documents_accessible": len(context.results),
                "entities_found": context.entities_found,
            },
        )

        if not context.has_context:
            emit("content", {"text": NO_CONTEXT_RESPONSE})
            emit("metadata", {"response_time_ms": (time.perf_counter_ns() - start) // 1_000_000})
            emit("done", {})
            return

        emit("thinking", {"content": "Synthesizing answer..."})

        parts: list[str] = []
        with timed_stage("synthesis", timing):
            async for delta in self.llm.stream(
                build_query_prompt(query, context.results, context.graph),
                system=QUERY_SYNTHESIS_SYSTEM_PROMPT,
                temperature=self.config.query_temperature,
                max_tokens=self.config.query_max_tokens,
            ):
                if delta:
                    parts.append(delta)
                    emit("content", {"text": delta})

        result = await self.redactor.redact("".join(parts))
        if result.detections:
            emit("content_replace", {"text": result.redacted_text})

        response_time_ms = (time.perf_counter_ns() - start) // 1_000_000
        logger.info(f"Streamed answer in {response_time_ms}ms, timing={timing}")
        emit("metadata", {"response_time_ms": response_time_ms})
        emit("done", {})
