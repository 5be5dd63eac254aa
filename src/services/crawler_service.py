"""
Crawler service - one crawl = optional repair sweep, then every source.

For each configured source the crawler asks its connector for every query
(subreddits for Reddit, search phrases for YouTube) and hands the results
to the StoryProcessor. Connectors never raise, so one failing source only
yields fewer stories; store errors stop the crawl.

Runs once (CLI, cron) or as a polling loop.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import structlog

from src.config.settings import Settings, get_settings
from src.ingestion.base_adapter import BaseConnector
from src.ingestion.mock_adapter import MockConnector
from src.ingestion.reddit_adapter import RedditConnector
from src.ingestion.youtube_adapter import YouTubeConnector
from src.services.repair_service import RepairService
from src.services.story_processor import AnalysisMode, StoryProcessor

logger = structlog.get_logger(__name__)


@dataclass
class SourcePlan:
    """A connector and the queries to run against it each crawl."""

    connector: BaseConnector
    queries: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.connector.platform.value


def create_sources(settings: Settings | None = None, use_mock: bool = False) -> list[SourcePlan]:
    """Build the source plan from settings (or a mock plan)."""
    settings = settings or get_settings()

    if use_mock:
        return [SourcePlan(MockConnector(), list(settings.reddit_subreddits))]

    return [
        SourcePlan(RedditConnector(), list(settings.reddit_subreddits)),
        SourcePlan(YouTubeConnector(), list(settings.youtube_queries)),
    ]


class CrawlerService:
    """
    Orchestrates crawling of all sources into the StoryProcessor.

    Usage:
        crawler = CrawlerService(processor, sources, repair=repair_service)
        results = await crawler.run_once()
    """

    def __init__(
        self,
        processor: StoryProcessor,
        sources: list[SourcePlan],
        repair: RepairService | None = None,
        poll_interval_seconds: int | None = None,
    ):
        """
        Args:
            processor: Ingestion processor
            sources: Connectors and their queries
            repair: Repair sweep to run before each crawl (None to skip)
            poll_interval_seconds: Delay between crawls in start()
        """
        self._processor = processor
        self._sources = sources
        self._repair = repair
        self._poll_interval = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else get_settings().poll_interval_seconds
        )
        self._running = False
        self._stop_event = asyncio.Event()
        self._last_results: dict[str, int] = {}

        logger.info(
            "Crawler initialized",
            sources={plan.name: len(plan.queries) for plan in sources},
            repair_enabled=repair is not None,
            mode=processor.mode.value,
        )

    async def run_once(self) -> dict[str, int]:
        """
        Run one crawl.

        Returns:
            Mapping of source name to number of new stories stored
        """
        start_time = time.monotonic()

        if self._repair is not None:
            # story_fetched events own the skeletons in EVENT mode
            await self._repair.repair(
                skip_unanalyzed=self._processor.mode == AnalysisMode.EVENT
            )

        results: dict[str, int] = {}
        for plan in self._sources:
            new_stories = 0
            for query in plan.queries:
                stories = await plan.connector.fetch(query)
                if not stories:
                    logger.info("No stories returned", source=plan.name, query=query)
                    continue
                stats = await self._processor.process_and_save(stories)
                new_stories += stats.new
            results[plan.name] = new_stories

        self._last_results = results
        logger.info(
            "Crawl completed",
            new_stories=results,
            elapsed_seconds=round(time.monotonic() - start_time, 2),
        )
        return results

    async def start(self) -> None:
        """Crawl repeatedly until stop() is called."""
        self._running = True
        self._stop_event.clear()
        logger.info("Starting crawler loop", poll_interval=self._poll_interval)

        try:
            while self._running:
                try:
                    await self.run_once()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error("Crawl failed", error=str(e), error_type=type(e).__name__)
                if self._running:
                    await self._wait_for_next_crawl()
        except asyncio.CancelledError:
            logger.info("Crawler cancelled")
        finally:
            self._running = False

    async def _wait_for_next_crawl(self) -> None:
        """Sleep for the poll interval, returning early when stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval)
        except asyncio.TimeoutError:
            pass

    async def stop(self) -> None:
        logger.info("Stopping crawler")
        self._running = False
        self._stop_event.set()

    async def close(self) -> None:
        for plan in self._sources:
            await plan.connector.close()

    @property
    def is_running(self) -> bool:
        return self._running

    async def health_check(self) -> dict[str, Any]:
        """Check reachability of each source."""
        sources = {}
        for plan in self._sources:
            try:
                sources[plan.name] = await plan.connector.health_check()
            except Exception:
                sources[plan.name] = False
        return {
            "running": self._running,
            "sources": sources,
            "last_results": dict(self._last_results),
        }
