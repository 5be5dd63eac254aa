"""Sequential provider failover for story analysis.

The chain walks its providers in fixed priority order, one attempt each, and
returns the first successful analysis. When every provider fails (or none is
configured) it returns the mock placeholder, so callers always get a
non-empty analysis and never see an exception for provider trouble.

Each attempt is bounded by ``provider_timeout``. With
``circuit_breaker_enabled`` a per-provider circuit breaker also guards each
attempt; an open breaker turns the attempt into an immediate FAILED result
without changing the order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import httpx

from src.analysis.circuit_breaker import ProviderCircuitBreaker
from src.analysis.config import AnalysisConfig
from src.analysis.constants import MOCK_ANALYSIS_TEXT
from src.analysis.providers import BaseProvider, build_providers
from src.analysis.schemas import AnalysisResult, ProviderOutcome, ProviderResult
from src.analysis.score_parser import parse_score
from src.observability.metrics import get_metrics
from src.observability.tracing import get_tracer, traced

if TYPE_CHECKING:
    from src.ingestion.schemas import Story

logger = logging.getLogger(__name__)


class ProviderChain:
    """Priority-ordered failover over AI providers.

    Args:
        providers: Providers in the order they are tried.
        config: Analysis configuration (timeouts, breaker tuning).
        http_client: Shared HTTP client, closed by close() when owned.
        owns_http_client: Whether close() should close http_client.
    """

    def __init__(
        self,
        providers: Sequence[BaseProvider],
        config: AnalysisConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        owns_http_client: bool = False,
    ) -> None:
        self._config = config or AnalysisConfig()
        self._providers = list(providers)
        self._http_client = http_client
        self._owns_http_client = owns_http_client
        self._breakers: list[ProviderCircuitBreaker | None] = [
            ProviderCircuitBreaker(
                failure_threshold=self._config.circuit_failure_threshold,
                recovery_timeout=self._config.circuit_recovery_timeout,
                name=provider.name,
            )
            if self._config.circuit_breaker_enabled
            else None
            for provider in self._providers
        ]
        self._tracer = get_tracer(__name__)
        self._metrics = get_metrics()
        self._stats: dict[str, Any] = {
            "analyses": 0,
            "fallbacks": 0,
            "providers": {
                provider.name: {outcome.value: 0 for outcome in ProviderOutcome}
                for provider in self._providers
            },
        }

    @classmethod
    def from_config(
        cls,
        config: AnalysisConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> ProviderChain:
        """Build a chain from whichever provider credentials are configured."""
        owns_client = http_client is None
        client = http_client or httpx.AsyncClient(timeout=config.provider_timeout)
        providers = build_providers(config, client)
        logger.info(
            "Provider chain configured: %s",
            ", ".join(p.name for p in providers) or "(none, mock fallback only)",
        )
        return cls(
            providers,
            config,
            http_client=client,
            owns_http_client=owns_client,
        )

    @property
    def provider_names(self) -> list[str]:
        return [provider.name for provider in self._providers]

    @property
    def max_analysis_seconds(self) -> float:
        """Upper bound on one analyze() call: every provider timing out."""
        return self._config.provider_timeout * len(self._providers)

    async def analyze(self, story: Story) -> AnalysisResult:
        """Analyze a story with the first provider that succeeds.

        Args:
            story: Story whose title and body are analyzed.

        Returns:
            AnalysisResult with non-empty analysis text and its parsed score.
        """
        self._stats["analyses"] += 1
        attempts: list[ProviderResult] = []

        for provider, breaker in zip(self._providers, self._breakers):
            result = await self._attempt(provider, breaker, story)
            attempts.append(result)
            if result.ok:
                return AnalysisResult(
                    analysis=result.text,
                    score=parse_score(result.text),
                    provider=provider.name,
                    attempts=attempts,
                )

        self._stats["fallbacks"] += 1
        self._metrics.record_fallback()
        logger.warning(
            "All %d providers failed for story %s, using mock analysis",
            len(self._providers),
            story.id,
        )
        return AnalysisResult(
            analysis=MOCK_ANALYSIS_TEXT,
            score=parse_score(MOCK_ANALYSIS_TEXT),
            provider=None,
            attempts=attempts,
        )

    async def _attempt(
        self,
        provider: BaseProvider,
        breaker: ProviderCircuitBreaker | None,
        story: Story,
    ) -> ProviderResult:
        """Run one bounded attempt and record its outcome."""
        if breaker is not None and not breaker.allow_request():
            result = ProviderResult.failed(
                provider.name, f"{provider.name} Error: circuit open"
            )
            self._record(result, latency=None)
            return result

        start = time.perf_counter()
        with traced(
            self._tracer,
            "analysis.provider_attempt",
            {"provider": provider.name, "story.id": story.id},
        ) as span:
            try:
                result = await asyncio.wait_for(
                    provider.analyze(story),
                    timeout=self._config.provider_timeout,
                )
            except asyncio.TimeoutError:
                result = ProviderResult.failed(
                    provider.name,
                    f"{provider.name} Exception: timed out after "
                    f"{self._config.provider_timeout:g}s",
                )
            except Exception as e:
                logger.exception("Provider %s raised unexpectedly", provider.name)
                result = ProviderResult.failed(
                    provider.name, f"{provider.name} Exception: {e}"
                )

            if result.ok and not result.text.strip():
                result = ProviderResult.failed(
                    provider.name, f"{provider.name} Error: empty response"
                )
            span.set_attribute("outcome", result.outcome.value)

        latency = time.perf_counter() - start
        result = result.model_copy(update={"latency_ms": latency * 1000})
        if breaker is not None:
            breaker.record(result.ok)
        self._record(result, latency=latency)
        return result

    def _record(self, result: ProviderResult, latency: float | None) -> None:
        provider_stats = self._stats["providers"].setdefault(
            result.provider, {outcome.value: 0 for outcome in ProviderOutcome}
        )
        provider_stats[result.outcome.value] += 1
        self._metrics.record_provider_attempt(
            result.provider, result.outcome.value, latency
        )

        if result.outcome == ProviderOutcome.SUCCESS:
            logger.info(
                "Provider %s succeeded in %.0fms", result.provider, result.latency_ms
            )
        elif result.outcome == ProviderOutcome.QUOTA_EXCEEDED:
            logger.warning(
                "Provider %s quota exceeded, trying next: %s",
                result.provider,
                result.message,
            )
        else:
            logger.warning(
                "Provider %s failed, trying next: %s", result.provider, result.message
            )

    def get_stats(self) -> dict[str, Any]:
        """Get attempt counters per provider plus analysis/fallback totals."""
        return {
            "analyses": self._stats["analyses"],
            "fallbacks": self._stats["fallbacks"],
            "providers": {
                name: dict(counts) for name, counts in self._stats["providers"].items()
            },
        }

    async def close(self) -> None:
        """Release provider SDK clients and the owned HTTP client."""
        for provider in self._providers:
            await provider.close()
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None
