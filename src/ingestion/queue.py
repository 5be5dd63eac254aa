"""
Redis Streams queue for story_fetched events.

The crawler publishes one event per newly stored story; analysis workers
consume them through a consumer group. Failed events are re-queued to run
again after the retry interval, then dead-lettered once the retry budget is
spent.
"""

import logging
import time
from dataclasses import dataclass, field

from opentelemetry.context import Context

from src.config.settings import get_settings
from src.ingestion.schemas import StoryFetchedEvent
from src.observability.tracing import extract_trace_context, inject_trace_context
from src.queues import BaseRedisQueue, QueueConfig, StreamConfig

logger = logging.getLogger(__name__)


@dataclass
class StoryFetchedJob:
    """A story_fetched event as delivered to a worker."""

    event: StoryFetchedEvent
    message_id: str
    retry_count: int = 0
    trace_context: Context | None = field(default=None, repr=False)


class StoryFetchedQueue(BaseRedisQueue[StoryFetchedJob]):
    """
    Publish and consume story_fetched events.

    Usage:
        async with StoryFetchedQueue() as queue:
            await queue.publish(story.to_event())

            async for job in queue.consume():
                await consumer.handle(job.event)
                await queue.ack(job.message_id)
    """

    def __init__(
        self,
        redis_url: str | None = None,
        stream_name: str | None = None,
        consumer_group: str | None = None,
        queue_config: QueueConfig | None = None,
    ):
        settings = get_settings()
        self._stream_name = stream_name or settings.story_stream_name
        self._consumer_group = consumer_group or settings.story_consumer_group
        self._max_stream_length = settings.redis_max_stream_length

        super().__init__(
            redis_url=redis_url or str(settings.redis_url),
            queue_config=queue_config
            or QueueConfig(
                idle_timeout_ms=int(settings.event_claim_idle_seconds * 1000),
                retry_delay_seconds=settings.event_retry_interval_seconds,
                max_delivery_attempts=settings.event_max_delivery_attempts,
            ),
        )

    def _get_stream_config(self) -> StreamConfig:
        return StreamConfig(
            stream_name=self._stream_name,
            consumer_group=self._consumer_group,
            dlq_stream_name=f"{self._stream_name}:dlq",
            max_stream_length=self._max_stream_length,
        )

    def _get_consumer_prefix(self) -> str:
        return "analysis_worker"

    def _parse_job(self, message_id: str, fields: dict[str, str]) -> StoryFetchedJob:
        return StoryFetchedJob(
            event=StoryFetchedEvent.from_fields(fields),
            message_id=message_id,
            trace_context=extract_trace_context(fields),
        )

    def _set_job_retry_count(self, job: StoryFetchedJob, retry_count: int) -> None:
        job.retry_count = retry_count

    async def publish(self, event: StoryFetchedEvent) -> str:
        """
        Publish a story_fetched event.

        Args:
            event: Event for a newly stored story

        Returns:
            Redis message ID
        """
        fields = {
            **event.to_fields(),
            "story_id": event.story_id,
            "published_at": str(time.time()),
            **inject_trace_context(),
        }
        message_id = await self._add(fields)
        logger.debug(f"Published story_fetched for story_id={event.story_id}")
        return message_id
