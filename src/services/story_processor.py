"""
Story processor - idempotent ingestion of connector output.

For every raw story the processor consults the store by external_id:

- unknown story: store an unanalyzed skeleton, then either publish a
  story_fetched event (EVENT mode) or analyze it right away (INLINE mode)
- known story with a valid analysis: skip, nothing is written
- known story with an invalid analysis (empty, mock, error text): heal it by
  running the provider chain and overwriting analysis and score in place.
  In EVENT mode a skeleton that was never analyzed is re-published instead,
  once it is older than the republish window, which recovers events lost
  between insert and publish without flooding the stream with duplicates
  of events still queued.

Each story is persisted as soon as it is handled, so an interrupted batch
keeps the work already done and re-running the batch is safe.
"""

import time
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass, field
from enum import Enum

import structlog

from src.analysis.chain import ProviderChain
from src.config.settings import get_settings
from src.ingestion.queue import StoryFetchedQueue
from src.ingestion.schemas import RawStory, Story
from src.observability.metrics import get_metrics
from src.observability.tracing import get_tracer, traced
from src.storage.base import StoryStore

logger = structlog.get_logger(__name__)


class AnalysisMode(str, Enum):
    """How newly stored stories get analyzed."""

    EVENT = "event"
    INLINE = "inline"


@dataclass
class ProcessingStats:
    """Outcome counts for one process_and_save() call."""

    received: int = 0
    new: int = 0
    skipped: int = 0
    healed: int = 0
    republished: int = 0
    awaiting_event: int = 0
    publish_errors: int = 0
    start_time: float = field(default_factory=time.monotonic)

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.start_time

    def as_dict(self) -> dict[str, int]:
        return {
            "received": self.received,
            "new": self.new,
            "skipped": self.skipped,
            "healed": self.healed,
            "republished": self.republished,
            "awaiting_event": self.awaiting_event,
            "publish_errors": self.publish_errors,
        }


class StoryProcessor:
    """
    Deduplicates and persists raw stories, then routes them to analysis.

    Usage:
        processor = StoryProcessor(repository, chain, publisher=queue)
        stats = await processor.process_and_save(stories)
    """

    def __init__(
        self,
        store: StoryStore,
        chain: ProviderChain,
        publisher: StoryFetchedQueue | None = None,
        mode: AnalysisMode = AnalysisMode.EVENT,
        republish_after_seconds: float | None = None,
    ):
        """
        Args:
            store: Story persistence
            chain: Provider chain for inline analysis and healing
            publisher: story_fetched publisher, required in EVENT mode
            mode: EVENT or INLINE
            republish_after_seconds: Minimum skeleton age before its event
                is published again (default: EVENT_REPUBLISH_AFTER_SECONDS)
        """
        if mode == AnalysisMode.EVENT and publisher is None:
            raise ValueError("EVENT mode requires an event publisher")

        self._store = store
        self._chain = chain
        self._publisher = publisher
        self._mode = mode
        self._republish_after = timedelta(
            seconds=republish_after_seconds
            if republish_after_seconds is not None
            else get_settings().event_republish_after_seconds
        )
        self._metrics = get_metrics()
        self._tracer = get_tracer(__name__)

    @property
    def mode(self) -> AnalysisMode:
        return self._mode

    async def process_and_save(self, items: Sequence[RawStory]) -> ProcessingStats:
        """
        Ingest a batch of raw stories, one at a time.

        Store errors propagate; everything handled before the error is
        already persisted.

        Args:
            items: Connector output, possibly containing known stories

        Returns:
            ProcessingStats for the batch
        """
        stats = ProcessingStats(received=len(items))

        for raw in items:
            with traced(
                self._tracer,
                "ingestion.process_story",
                {"story.external_id": raw.external_id, "mode": self._mode.value},
            ):
                await self._process_one(raw, stats)

        logger.info(
            "Batch processed",
            mode=self._mode.value,
            elapsed_seconds=round(stats.elapsed_seconds, 2),
            **stats.as_dict(),
        )
        return stats

    async def _process_one(self, raw: RawStory, stats: ProcessingStats) -> None:
        existing = await self._store.get_by_external_id(raw.external_id)

        if existing is None:
            await self._ingest_new(raw, stats)
            return

        if not existing.has_invalid_analysis:
            stats.skipped += 1
            self._metrics.record_ingestion("skipped")
            logger.debug("Story already analyzed", external_id=raw.external_id)
            return

        if self._mode == AnalysisMode.EVENT and not existing.ai_analysis.strip():
            age = datetime.now(timezone.utc) - existing.fetched_at
            if age < self._republish_after:
                stats.awaiting_event += 1
                logger.debug("Skeleton awaiting its event", story_id=existing.id)
                return
            if await self._publish(existing, stats):
                stats.republished += 1
                self._metrics.record_ingestion("republished")
            return

        logger.info(
            "Healing invalid analysis",
            external_id=raw.external_id,
            story_id=existing.id,
        )
        await self._analyze_and_save(existing)
        stats.healed += 1
        self._metrics.record_ingestion("healed")

    async def _ingest_new(self, raw: RawStory, stats: ProcessingStats) -> None:
        story = Story.from_raw(raw)

        if not await self._store.insert(story):
            # Another crawler stored the same external_id first
            stats.skipped += 1
            self._metrics.record_ingestion("skipped")
            logger.info("Story inserted concurrently", external_id=raw.external_id)
            return

        stats.new += 1
        self._metrics.record_ingestion("new")
        logger.info(
            "New story stored",
            story_id=story.id,
            external_id=story.external_id,
            source=raw.source.value,
            title=story.title[:80],
        )

        if self._mode == AnalysisMode.EVENT:
            await self._publish(story, stats)
        else:
            await self._analyze_and_save(story)

    async def _publish(self, story: Story, stats: ProcessingStats) -> bool:
        try:
            await self._publisher.publish(story.to_event())
            self._metrics.record_event_published(True)
            return True
        except Exception as e:
            # Skeleton stays empty and is re-published on the next crawl
            stats.publish_errors += 1
            self._metrics.record_event_published(False)
            logger.warning(
                "Failed to publish story_fetched",
                story_id=story.id,
                error=str(e),
            )
            return False

    async def _analyze_and_save(self, story: Story) -> None:
        read_analysis = story.ai_analysis
        result = await self._chain.analyze(story)
        story.apply_analysis(result.analysis, result.score)
        if not await self._store.save(story, expected_analysis=read_analysis):
            logger.info("Story analyzed concurrently, result dropped", story_id=story.id)
            return
        logger.info(
            "Story analyzed",
            story_id=story.id,
            provider=result.provider or "mock",
            scary_score=result.score,
        )
