"""
Base connector interface and shared functionality for story sources.

Each source connector implements _fetch_raw() (yield raw platform items for
one query) and _transform() (turn one item into a RawStory). The base class
provides:
- Rate limiting
- Error containment: fetch() never raises, a failed query yields []
- Per-run statistics and metrics
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from src.ingestion.schemas import Platform, RawStory
from src.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class RateLimiter:
    """
    Simple token bucket rate limiter.

    Allows `rate` requests per minute with burst capacity.
    """

    rate: int  # requests per minute
    _tokens: float = field(init=False)
    _last_update: float = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        self._tokens = float(self.rate)
        self._last_update = time.monotonic()

    async def acquire(self) -> None:
        """Wait until a token is available, then consume it."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_update
            self._last_update = now

            self._tokens = min(
                float(self.rate),
                self._tokens + elapsed * (self.rate / 60.0),
            )

            if self._tokens < 1:
                wait_time = (1 - self._tokens) * 60.0 / self.rate
                logger.debug(f"Rate limited, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
                self._tokens = 0
            else:
                self._tokens -= 1


@dataclass
class ConnectorStats:
    """Statistics for one fetch() call."""

    stories_fetched: int = 0
    stories_filtered: int = 0
    errors: int = 0
    start_time: float = field(default_factory=time.monotonic)

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.start_time


class BaseConnector(ABC):
    """
    Abstract base class for story sources.

    Subclasses must implement:
        - platform: Platform enum value
        - _fetch_raw(query): Async generator yielding raw platform items
        - _transform(raw): Convert one raw item to RawStory (None to drop it)

    Subclasses MUST call `await self._rate_limiter.acquire()` before each
    outbound request inside _fetch_raw().
    """

    def __init__(self, rate_limit: int = 60):
        """
        Initialize connector with rate limiting.

        Args:
            rate_limit: Maximum requests per minute
        """
        self._rate_limiter = RateLimiter(rate=rate_limit)
        self._stats = ConnectorStats()

    @property
    @abstractmethod
    def platform(self) -> Platform:
        """Return the platform this connector reads."""
        ...

    @property
    def name(self) -> str:
        return f"{self.platform.value}_connector"

    @abstractmethod
    def _fetch_raw(self, query: str) -> AsyncIterator[dict[str, Any]]:
        """Yield raw items for a query (subreddit name, search phrase, ...)."""
        ...

    @abstractmethod
    def _transform(self, raw: dict[str, Any]) -> RawStory | None:
        """
        Transform one raw item to a RawStory.

        Return None for items that should be dropped (stickied, removed, ...).
        """
        ...

    async def fetch(self, query: str) -> list[RawStory]:
        """
        Fetch and normalize candidate stories for a query.

        Network and platform errors are logged and swallowed: a failed query
        returns an empty list. Items that fail to transform are skipped
        individually.

        Args:
            query: Source-specific query

        Returns:
            Normalized stories, possibly empty
        """
        self._stats = ConnectorStats()
        metrics = get_metrics()
        stories: list[RawStory] = []

        logger.info(f"Starting fetch for {self.name}: {query}")

        try:
            async for raw in self._fetch_raw(query):
                try:
                    story = self._transform(raw)
                except Exception as e:
                    self._stats.errors += 1
                    logger.warning(
                        f"Error transforming item in {self.name}: {e}",
                        exc_info=True,
                    )
                    continue

                if story is None:
                    self._stats.stories_filtered += 1
                    continue

                self._stats.stories_fetched += 1
                stories.append(story)

        except Exception as e:
            self._stats.errors += 1
            metrics.record_connector_error(self.platform.value, type(e).__name__)
            logger.error(f"Error in {self.name} fetch for {query!r}: {e}")
            return []

        finally:
            logger.info(
                f"{self.name} completed for {query!r}: "
                f"fetched={self._stats.stories_fetched}, "
                f"filtered={self._stats.stories_filtered}, "
                f"errors={self._stats.errors}, "
                f"elapsed={self._stats.elapsed_seconds:.2f}s"
            )

        metrics.record_fetch(
            self.platform.value,
            len(stories),
            latency=self._stats.elapsed_seconds,
        )
        return stories

    @property
    def stats(self) -> ConnectorStats:
        """Statistics of the last fetch() call."""
        return self._stats

    async def health_check(self) -> bool:
        """
        Check if the connector can reach its platform.

        Override in subclasses for platform-specific health checks.
        """
        return True

    async def close(self) -> None:
        """Release connector resources."""
