"""
Analysis worker - analyzes stories announced by story_fetched events.

Events are delivered at least once, so the handler is idempotent: a story
that already carries a valid analysis is left alone, and a story that no
longer exists is ignored. Any other failure is logged and re-raised; the
worker then re-queues the event to run again after the retry interval, and
it is dead-lettered once the retry budget is spent.
"""

import asyncio
from enum import Enum
from typing import Any

import structlog

from src.analysis.chain import ProviderChain
from src.analysis.config import AnalysisConfig
from src.ingestion.queue import StoryFetchedJob, StoryFetchedQueue
from src.ingestion.schemas import StoryFetchedEvent
from src.observability.logging import bind_context, clear_context
from src.observability.metrics import get_metrics
from src.observability.tracing import get_tracer, traced
from src.storage.base import StoryStore
from src.storage.database import Database
from src.storage.repository import StoryRepository

logger = structlog.get_logger(__name__)


class HandleOutcome(str, Enum):
    ANALYZED = "analyzed"
    SKIPPED = "skipped"
    MISSING = "missing"


class StoryFetchedConsumer:
    """
    Idempotent handler for one story_fetched event.

    Usage:
        consumer = StoryFetchedConsumer(repository, chain)
        await consumer.handle(event)
    """

    def __init__(self, store: StoryStore, chain: ProviderChain):
        self._store = store
        self._chain = chain

    async def handle(self, event: StoryFetchedEvent) -> HandleOutcome:
        """
        Analyze the event's story unless it is gone or already analyzed.

        Raises:
            Whatever the store raises; the error is logged first so the
            delivery attempt is visible before redelivery.
        """
        try:
            story = await self._store.get_by_id(event.story_id)
            if story is None:
                logger.warning("Story not found for event", story_id=event.story_id)
                return HandleOutcome.MISSING

            if not story.has_invalid_analysis:
                logger.info("Story already analyzed", story_id=story.id)
                return HandleOutcome.SKIPPED

            read_analysis = story.ai_analysis
            result = await self._chain.analyze(story)
            story.apply_analysis(result.analysis, result.score)
            written = await self._store.save(story, expected_analysis=read_analysis)

        except Exception as e:
            logger.error(
                "Failed to handle story_fetched",
                story_id=event.story_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        if not written:
            logger.info("Story analyzed concurrently, result dropped", story_id=story.id)
            return HandleOutcome.SKIPPED

        logger.info(
            "Story analyzed",
            story_id=story.id,
            provider=result.provider or "mock",
            scary_score=result.score,
            attempts=len(result.attempts),
        )
        return HandleOutcome.ANALYZED


class AnalysisWorker:
    """
    Consumes the story_fetched stream and runs StoryFetchedConsumer per event.

    Successful events are acknowledged. Failed events are handed back to the
    queue for a delayed retry.

    Usage:
        worker = AnalysisWorker()
        await worker.start()  # Runs until stopped
    """

    def __init__(
        self,
        queue: StoryFetchedQueue | None = None,
        database: Database | None = None,
        chain: ProviderChain | None = None,
        consumer: StoryFetchedConsumer | None = None,
        batch_size: int = 10,
    ):
        """
        Args:
            queue: story_fetched queue (or create from settings)
            database: Database connection (or create from settings)
            chain: Provider chain (or build from AnalysisConfig)
            consumer: Pre-built handler (mainly for tests)
            batch_size: Messages read per XREADGROUP call
        """
        self._queue = queue or StoryFetchedQueue()
        self._database = database
        self._chain = chain
        self._consumer = consumer
        self._batch_size = batch_size
        self._owns_database = database is None and consumer is None
        self._owns_chain = chain is None and consumer is None

        self._running = False
        self._stop_event = asyncio.Event()
        self._metrics = get_metrics()
        self._tracer = get_tracer(__name__)
        self._stats: dict[str, int] = {
            outcome.value: 0 for outcome in HandleOutcome
        } | {"errors": 0}

        logger.info("AnalysisWorker initialized", batch_size=batch_size)

    async def start(self) -> None:
        """Connect dependencies and process events until stop() is called."""
        self._running = True
        self._stop_event.clear()
        logger.info("Starting analysis worker")

        await self._queue.connect()
        if self._consumer is None:
            if self._database is None:
                self._database = Database()
            if self._owns_database:
                await self._database.connect()
            if self._chain is None:
                self._chain = ProviderChain.from_config(AnalysisConfig())
            self._consumer = StoryFetchedConsumer(
                StoryRepository(self._database), self._chain
            )
        if self._chain is not None:
            self._check_claim_timeout(self._chain)

        try:
            await self._process_loop()
        except asyncio.CancelledError:
            logger.info("Analysis worker cancelled")
        finally:
            await self._cleanup()

    async def stop(self) -> None:
        """Stop the worker after the current event."""
        logger.info("Stopping analysis worker")
        self._running = False
        self._stop_event.set()

    def _check_claim_timeout(self, chain: ProviderChain) -> None:
        claim_seconds = self._queue.queue_config.idle_timeout_ms / 1000
        if claim_seconds <= chain.max_analysis_seconds:
            logger.warning(
                "Claim idle timeout below worst-case analysis time, "
                "slow events may be handled twice",
                claim_idle_seconds=claim_seconds,
                max_analysis_seconds=chain.max_analysis_seconds,
            )

    async def _cleanup(self) -> None:
        await self._queue.close()
        if self._owns_chain and self._chain is not None:
            await self._chain.close()
        if self._owns_database and self._database is not None:
            await self._database.close()
        logger.info("Analysis worker cleaned up", **self._stats)

    async def _process_loop(self) -> None:
        async for job in self._queue.consume(
            count=self._batch_size, stop=self._stop_event
        ):
            if not self._running:
                break
            await self.handle_job(job)

    async def handle_job(self, job: StoryFetchedJob) -> bool:
        """
        Handle one delivered event.

        Returns:
            True if the message was acknowledged
        """
        bind_context(
            story_id=job.event.story_id,
            message_id=job.message_id,
            retry_count=job.retry_count,
        )
        try:
            with traced(
                self._tracer,
                "analysis.handle_event",
                {"story.id": job.event.story_id, "retry_count": job.retry_count},
                parent_context=job.trace_context,
            ):
                outcome = await self._consumer.handle(job.event)
        except Exception as e:
            self._stats["errors"] += 1
            self._metrics.record_event_handled("error")
            try:
                requeued = await self._queue.retry(
                    job.message_id, job.retry_count, error=f"{type(e).__name__}: {e}"
                )
            except Exception as retry_error:
                # Still pending: reclaimed once the claim idle timeout passes
                logger.error("Failed to re-queue event", error=str(retry_error))
                return False
            logger.warning("Event failed", requeued=requeued)
            return False
        finally:
            clear_context()

        await self._queue.ack(job.message_id)
        self._stats[outcome.value] += 1
        self._metrics.record_event_handled(outcome.value)
        return True

    @property
    def is_running(self) -> bool:
        return self._running

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)

    async def health_check(self) -> dict[str, Any]:
        """Check health of the worker's dependencies."""
        queue_healthy = await self._queue.health_check()
        pending = None
        if queue_healthy:
            pending = await self._queue.get_pending_count()
            self._metrics.set_queue_depth(self._queue.stream_config.stream_name, pending)
        db_healthy = (
            await self._database.health_check() if self._database is not None else None
        )
        return {
            "running": self._running,
            "queue_healthy": queue_healthy,
            "pending_events": pending,
            "database_healthy": db_healthy,
            "stats": self.get_stats(),
        }
