"""Tests for request-scoped usage telemetry and pricing."""

import pytest

from docgraph.config.pricing import estimate_embedding_cost_usd, estimate_llm_cost_usd
from docgraph.types import CostUsageRecord
from docgraph.utils.cost_telemetry import (
    CostCollector,
    current_stage,
    record_usage,
    telemetry_collector,
    telemetry_stage,
    timed_stage,
)


def _record(stage: str, cost: float, tokens: int = 100, **kwargs) -> CostUsageRecord:
    return CostUsageRecord(
        provider="openai",
        model=kwargs.pop("model", "gpt-4o"),
        operation=kwargs.pop("operation", "generate"),
        stage=stage,
        input_tokens=tokens,
        output_tokens=0,
        total_tokens=tokens,
        estimated_cost_usd=cost,
        latency_ms=5,
        **kwargs,
    )


def test_cost_collector_aggregates_by_stage() -> None:
    """Collector should aggregate totals and order stages by cost."""
    collector = CostCollector()
    collector.add(_record("entity_extraction", 0.001, tokens=100))
    collector.add(_record("embedding", 0.0001, tokens=50, operation="embed"))
    collector.add(_record("entity_extraction", 0.002, tokens=30))

    report = collector.summary()
    assert report.enabled is True
    assert report.breakdown.total_calls == 3
    assert report.breakdown.total_tokens == 180
    assert [s.stage for s in report.breakdown.by_stage] == ["entity_extraction", "embedding"]
    assert report.breakdown.by_stage[0].calls == 2
    assert report.warnings == []


def test_cost_collector_warns_on_threshold() -> None:
    """Collector should include warning when threshold is exceeded."""
    collector = CostCollector(warn_threshold_usd=0.0005)
    collector.add(_record("synthesis", 0.001))

    report = collector.summary()
    assert any("exceeded threshold" in w for w in report.warnings)


def test_cost_collector_warns_on_unpriced_model() -> None:
    collector = CostCollector()
    collector.add(_record("synthesis", 0.0, model="mystery-model", metadata={"pricing_found": False}))

    report = collector.summary()
    assert report.warnings == ["No pricing for model 'mystery-model' in stage 'synthesis'; cost counted as 0.0."]


def test_record_usage_without_collector_is_dropped() -> None:
    record_usage(_record("synthesis", 0.1))


def test_record_usage_reaches_active_collector() -> None:
    collector = CostCollector()
    with telemetry_collector(collector):
        record_usage(_record("synthesis", 0.1))
    record_usage(_record("synthesis", 0.1))
    assert len(collector.records) == 1


def test_stage_labels_nest_and_reset() -> None:
    assert current_stage() == "unknown"
    with telemetry_stage("chunking"):
        assert current_stage() == "chunking"
        with telemetry_stage("embedding"):
            assert current_stage() == "embedding"
        assert current_stage() == "chunking"
    assert current_stage() == "unknown"


def test_timed_stage_records_elapsed_even_on_error() -> None:
    timing: dict[str, int] = {}
    with pytest.raises(RuntimeError):
        with timed_stage("search", timing):
            raise RuntimeError("boom")
    assert "search" in timing
    assert timing["search"] >= 0


class TestPricing:
    """Test price estimation."""

    def test_known_llm_model(self) -> None:
        cost, priced = estimate_llm_cost_usd("gpt-4o", input_tokens=1_000_000, output_tokens=1_000_000)
        assert priced is True
        assert cost == pytest.approx(12.5)

    def test_known_embedding_model(self) -> None:
        cost, priced = estimate_embedding_cost_usd("text-embedding-3-small", input_tokens=500_000)
        assert priced is True
        assert cost == pytest.approx(0.01)

    def test_unknown_model(self) -> None:
        assert estimate_llm_cost_usd("unknown", input_tokens=10, output_tokens=10) == (0.0, False)
