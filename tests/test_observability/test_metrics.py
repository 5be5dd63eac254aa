"""Tests for Prometheus metrics helpers."""

from prometheus_client import REGISTRY

from src.observability.metrics import get_metrics


def _value(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricsCollector:
    def test_singleton(self):
        assert get_metrics() is get_metrics()

    def test_provider_attempt(self):
        metrics = get_metrics()
        before = _value(
            "dark_gravity_provider_attempts_total", provider="Mistral", outcome="quota_exceeded"
        )

        metrics.record_provider_attempt("Mistral", "quota_exceeded", latency=0.3)

        after = _value(
            "dark_gravity_provider_attempts_total", provider="Mistral", outcome="quota_exceeded"
        )
        assert after == before + 1

    def test_repair_ignores_zero_counts(self):
        metrics = get_metrics()
        before = _value("dark_gravity_repair_records_total", action="zero_check")

        metrics.record_repair("zero_check", 0)

        assert _value("dark_gravity_repair_records_total", action="zero_check") == before

    def test_fetch_count(self):
        metrics = get_metrics()
        before = _value("dark_gravity_stories_fetched_total", source="youtube")

        metrics.record_fetch("youtube", 2, latency=1.2)

        assert _value("dark_gravity_stories_fetched_total", source="youtube") == before + 2
