"""
Request-scoped usage telemetry.

A CostCollector attached through contextvars receives one CostUsageRecord per
provider call. Providers read the active collector and pipeline stage, so
pipelines only label stages:

    >>> collector = CostCollector()
    >>> with telemetry_collector(collector):
    ...     with timed_stage("synthesis", timing):
    ...         answer = await llm.generate(prompt)
    >>> collector.summary().breakdown.total_tokens

Records stay in process; nothing is exported.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from docgraph.config.pricing import PRICING_VERSION
from docgraph.types.results import (
    CostBreakdown,
    CostDebugReport,
    CostUsageRecord,
    StageCostBreakdown,
)

_COLLECTOR: ContextVar[CostCollector | None] = ContextVar("docgraph_cost_collector", default=None)
_STAGE: ContextVar[str] = ContextVar("docgraph_cost_stage", default="unknown")


class CostCollector:
    """Accumulates provider usage records for one ingestion run or query."""

    def __init__(self, *, warn_threshold_usd: float | None = None) -> None:
        self._records: list[CostUsageRecord] = []
        self._warn_threshold_usd = warn_threshold_usd

    @property
    def records(self) -> list[CostUsageRecord]:
        return list(self._records)

    def add(self, record: CostUsageRecord) -> None:
        self._records.append(record)

    def summary(self) -> CostDebugReport:
        """Aggregate records into totals and a per-stage breakdown (costliest first)."""
        by_stage: dict[str, StageCostBreakdown] = {}
        breakdown = CostBreakdown(total_calls=len(self._records))
        unpriced_models: set[tuple[str, str]] = set()

        for record in self._records:
            breakdown.total_input_tokens += record.input_tokens
            breakdown.total_output_tokens += record.output_tokens
            breakdown.total_tokens += record.total_tokens
            breakdown.total_estimated_cost_usd += record.estimated_cost_usd
            breakdown.total_latency_ms += record.latency_ms

            stage = by_stage.setdefault(record.stage, StageCostBreakdown(stage=record.stage))
            stage.calls += 1
            stage.input_tokens += record.input_tokens
            stage.output_tokens += record.output_tokens
            stage.total_tokens += record.total_tokens
            stage.estimated_cost_usd += record.estimated_cost_usd
            stage.total_latency_ms += record.latency_ms

            if record.metadata.get("pricing_found") is False:
                unpriced_models.add((record.model, record.stage))

        warnings = [
            f"No pricing for model '{model}' in stage '{stage}'; cost counted as 0.0."
            for model, stage in sorted(unpriced_models)
        ]
        total_cost = breakdown.total_estimated_cost_usd
        if self._warn_threshold_usd is not None and total_cost >= self._warn_threshold_usd:
            warnings.append(
                f"Estimated cost ${total_cost:.6f} exceeded threshold "
                f"${self._warn_threshold_usd:.6f}."
            )

        breakdown.by_stage = sorted(
            by_stage.values(), key=lambda s: s.estimated_cost_usd, reverse=True
        )
        return CostDebugReport(
            enabled=True,
            pricing_version=PRICING_VERSION,
            breakdown=breakdown,
            warnings=warnings,
        )


@contextmanager
def telemetry_collector(collector: CostCollector | None) -> Iterator[None]:
    """Set the active collector for provider instrumentation."""
    token = _COLLECTOR.set(collector)
    try:
        yield
    finally:
        _COLLECTOR.reset(token)


@contextmanager
def telemetry_stage(stage: str) -> Iterator[None]:
    """Label provider calls made inside the block with a pipeline stage."""
    token = _STAGE.set(stage)
    try:
        yield
    finally:
        _STAGE.reset(token)


@contextmanager
def timed_stage(stage: str, timing: dict[str, int]) -> Iterator[None]:
    """telemetry_stage that also stores the block's elapsed ms in timing[stage]."""
    start = time.perf_counter_ns()
    with telemetry_stage(stage):
        try:
            yield
        finally:
            timing[stage] = (time.perf_counter_ns() - start) // 1_000_000


def current_stage() -> str:
    return _STAGE.get()


def record_usage(record: CostUsageRecord) -> None:
    """Add record to the active collector, if any."""
    collector = _COLLECTOR.get()
    if collector is not None:
        collector.add(record)
