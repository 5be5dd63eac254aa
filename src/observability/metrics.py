"""
Prometheus metrics for monitoring the story pipeline.

Defines and exposes metrics for:
- Connector fetch volume, latency and errors
- Ingestion outcomes (new, skipped, healed, republished)
- AI provider attempts by outcome, latency and mock fallbacks
- Analysis event handling and repair sweeps
- Redis Streams queue depth, reclaims and dead letters

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

# AI providers are slow; stretch the upper buckets to the attempt timeout
PROVIDER_LATENCY_BUCKETS = (0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the dark-gravity pipeline.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_fetch("reddit", count=2, latency=0.4)
        metrics.record_provider_attempt("Gemini", "success", latency=1.8)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Connectors
        self.stories_fetched = Counter(
            "dark_gravity_stories_fetched_total",
            "Raw stories returned by source connectors",
            ["source"],
        )

        self.connector_errors = Counter(
            "dark_gravity_connector_errors_total",
            "Connector fetch failures swallowed into empty results",
            ["source", "error_type"],
        )

        self.fetch_latency = Histogram(
            "dark_gravity_fetch_latency_seconds",
            "Time to fetch one query from a source",
            ["source"],
            buckets=LATENCY_BUCKETS,
        )

        # Ingestion
        self.stories_ingested = Counter(
            "dark_gravity_stories_ingested_total",
            "Ingestion outcomes per raw story",
            ["outcome"],  # new, skipped, healed, republished
        )

        self.events_published = Counter(
            "dark_gravity_events_published_total",
            "story_fetched events published",
            ["status"],  # success, error
        )

        # Providers
        self.provider_attempts = Counter(
            "dark_gravity_provider_attempts_total",
            "AI provider attempts by outcome",
            ["provider", "outcome"],  # success, quota_exceeded, failed
        )

        self.provider_latency = Histogram(
            "dark_gravity_provider_latency_seconds",
            "Latency of a single provider attempt",
            ["provider"],
            buckets=PROVIDER_LATENCY_BUCKETS,
        )

        self.analysis_fallbacks = Counter(
            "dark_gravity_analysis_fallbacks_total",
            "Analyses that fell back to the mock placeholder",
        )

        # Event handling
        self.events_handled = Counter(
            "dark_gravity_events_handled_total",
            "story_fetched events handled by the analysis worker",
            ["outcome"],  # analyzed, skipped, missing, error
        )

        # Repair
        self.repair_records = Counter(
            "dark_gravity_repair_records_total",
            "Records touched by repair sweeps",
            ["action"],  # rescored, reanalyzed, unchanged
        )

        # Queue metrics
        self.queue_depth = Gauge(
            "dark_gravity_queue_depth",
            "Number of messages in Redis stream",
            ["stream"],
        )

        self.pending_reclaimed = Counter(
            "dark_gravity_queue_pending_reclaimed_total",
            "Total messages reclaimed from pending state",
            ["queue"],
        )

        self.dlq_max_retries = Counter(
            "dark_gravity_queue_dlq_max_retries_total",
            "Total messages moved to DLQ due to max retries exceeded",
            ["queue"],
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_fetch(
        self,
        source: str,
        count: int,
        latency: float | None = None,
    ) -> None:
        """Record stories returned by one connector query."""
        self.stories_fetched.labels(source=source).inc(count)
        if latency is not None:
            self.fetch_latency.labels(source=source).observe(latency)

    def record_connector_error(self, source: str, error_type: str) -> None:
        self.connector_errors.labels(source=source, error_type=error_type).inc()

    def record_ingestion(self, outcome: str, count: int = 1) -> None:
        self.stories_ingested.labels(outcome=outcome).inc(count)

    def record_event_published(self, success: bool) -> None:
        self.events_published.labels(status="success" if success else "error").inc()

    def record_provider_attempt(
        self,
        provider: str,
        outcome: str,
        latency: float | None = None,
    ) -> None:
        """
        Record one provider attempt.

        Args:
            provider: Provider name (Gemini, DeepSeek, ...)
            outcome: success, quota_exceeded or failed
            latency: Attempt latency in seconds
        """
        self.provider_attempts.labels(provider=provider, outcome=outcome).inc()
        if latency is not None:
            self.provider_latency.labels(provider=provider).observe(latency)

    def record_fallback(self) -> None:
        self.analysis_fallbacks.inc()

    def record_event_handled(self, outcome: str) -> None:
        self.events_handled.labels(outcome=outcome).inc()

    def record_repair(self, action: str, count: int = 1) -> None:
        if count > 0:
            self.repair_records.labels(action=action).inc(count)

    def set_queue_depth(self, stream: str, depth: int) -> None:
        self.queue_depth.labels(stream=stream).set(depth)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
