"""
Abstract base class for Redis Streams queues with at-least-once delivery.

Messages stay pending until acknowledged. A consumer that fails a message
calls retry(): the message is re-added with its retry count and a
not-before time ``retry_delay_seconds`` ahead, and the failed copy is
acknowledged. Once the retry budget is spent the message goes to the dead
letter stream instead.

Messages whose consumer crashed stay pending; after ``idle_timeout_ms`` they
are reclaimed with XAUTOCLAIM (Redis 6.2+) by another consumer. The idle
timeout is kept well above the handling time of one message, so a message
that is still being worked on is never claimed twice.
"""

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from types import TracebackType
from typing import Generic, TypeVar

import redis.asyncio as redis

from src.observability.metrics import get_metrics
from src.queues.backoff import ExponentialBackoff
from src.queues.config import QueueConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class StreamConfig:
    """
    Configuration for a Redis Stream.

    Attributes:
        stream_name: Name of the Redis stream
        consumer_group: Name of the consumer group
        dlq_stream_name: Name of the dead letter queue stream
        max_stream_length: Maximum stream length before trimming
    """

    stream_name: str
    consumer_group: str
    dlq_stream_name: str
    max_stream_length: int = 50_000


class BaseRedisQueue(ABC, Generic[T]):
    """
    Redis Streams queue with consumer groups, pending reclaim and DLQ.

    Subclasses implement:
        - _parse_job(): Convert Redis message fields to job type T
        - _set_job_retry_count(): Record how many deliveries preceded this one
        - _get_stream_config(): Stream and group names
        - _get_consumer_prefix(): Prefix for the generated consumer name

    Usage:
        async with MyQueue(redis_url) as queue:
            async for job in queue.consume():
                await handle(job)
                await queue.ack(job.message_id)
    """

    def __init__(
        self,
        redis_url: str,
        queue_config: QueueConfig | None = None,
    ):
        self._redis_url = redis_url
        self._queue_config = queue_config or QueueConfig()

        self._redis: redis.Redis | None = None
        self._consumer_name: str | None = None
        self._stream_config: StreamConfig | None = None

    @abstractmethod
    def _parse_job(self, message_id: str, fields: dict[str, str]) -> T: ...

    @abstractmethod
    def _set_job_retry_count(self, job: T, retry_count: int) -> None: ...

    @abstractmethod
    def _get_stream_config(self) -> StreamConfig: ...

    @abstractmethod
    def _get_consumer_prefix(self) -> str: ...

    async def connect(self) -> None:
        """Establish Redis connection and ensure stream/group exist."""
        self._redis = redis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._stream_config = self._get_stream_config()
        self._consumer_name = f"{self._get_consumer_prefix()}_{uuid.uuid4().hex[:8]}"

        try:
            await self._redis.xgroup_create(
                name=self._stream_config.stream_name,
                groupname=self._stream_config.consumer_group,
                id="0",
                mkstream=True,
            )
            logger.info(
                f"Created consumer group '{self._stream_config.consumer_group}' "
                f"for stream '{self._stream_config.stream_name}'"
            )
        except redis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

        logger.info(
            f"Connected to Redis, consumer={self._consumer_name}, "
            f"stream={self._stream_config.stream_name}"
        )

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis connection closed")

    async def __aenter__(self) -> "BaseRedisQueue[T]":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def redis(self) -> redis.Redis:
        """Get Redis client, raising if not connected."""
        if self._redis is None:
            raise RuntimeError("Not connected to Redis. Call connect() first.")
        return self._redis

    @property
    def queue_config(self) -> QueueConfig:
        return self._queue_config

    @property
    def stream_config(self) -> StreamConfig:
        """Get stream configuration, raising if not connected."""
        if self._stream_config is None:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._stream_config

    async def _add(self, fields: dict[str, str]) -> str:
        """XADD to the main stream with approximate trimming."""
        message_id = await self.redis.xadd(
            name=self.stream_config.stream_name,
            fields=fields,
            maxlen=self.stream_config.max_stream_length,
            approximate=True,
        )
        return str(message_id)

    async def consume(
        self,
        count: int = 10,
        block_ms: int = 5000,
        stop: asyncio.Event | None = None,
    ) -> AsyncIterator[T]:
        """
        Consume messages from the queue.

        Each iteration first reclaims orphaned pending messages, then reads
        new ones. Redis errors are retried with exponential backoff.

        Args:
            count: Maximum number of messages to fetch per iteration
            block_ms: How long to block waiting for new messages (milliseconds)
            stop: When set, consumption ends after the current read, even if
                the stream stays idle

        Yields:
            Job objects of type T with message_id for acknowledgment
        """
        if self._consumer_name is None:
            raise RuntimeError("Not connected. Call connect() first.")

        backoff = ExponentialBackoff(
            base_delay=self._queue_config.backoff_base_delay,
            max_delay=self._queue_config.backoff_max_delay,
        )

        while stop is None or not stop.is_set():
            try:
                async for job in self._reclaim_pending(count):
                    yield job

                messages = await self.redis.xreadgroup(
                    groupname=self.stream_config.consumer_group,
                    consumername=self._consumer_name,
                    streams={self.stream_config.stream_name: ">"},
                    count=count,
                    block=min(block_ms, self._queue_config.idle_timeout_ms),
                )
                backoff.reset()

                if not messages:
                    continue

                for _stream, msg_list in messages:
                    for msg_id, fields in msg_list:
                        try:
                            job = self._parse_job(msg_id, fields)
                        except Exception as e:
                            logger.error(f"Failed to parse message {msg_id}: {e}")
                            await self._move_to_dlq(msg_id, fields, str(e))
                            await self.ack(msg_id)
                            continue
                        self._set_job_retry_count(job, _prior_retries(fields))
                        await self._wait_until_due(fields, stop)
                        yield job

            except asyncio.CancelledError:
                logger.info("Consumer cancelled, stopping gracefully")
                break
            except redis.RedisError as e:
                delay = backoff.next_delay()
                logger.error(
                    f"Error consuming messages: {e}, retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

    async def _reclaim_pending(self, count: int) -> AsyncIterator[T]:
        """
        Reclaim messages pending longer than idle_timeout_ms.

        Messages past max_delivery_attempts go to the DLQ; the rest are
        yielded again with their retry count set.
        """
        metrics = get_metrics()

        try:
            # [next_start_id, [(msg_id, fields), ...], [deleted_ids]]
            result = await self.redis.xautoclaim(
                name=self.stream_config.stream_name,
                groupname=self.stream_config.consumer_group,
                consumername=self._consumer_name,
                min_idle_time=self._queue_config.idle_timeout_ms,
                start_id="0-0",
                count=count,
            )
        except redis.ResponseError as e:
            if "unknown command" in str(e).lower():
                logger.warning(
                    "XAUTOCLAIM not available (requires Redis 6.2+), "
                    "skipping pending reclaim"
                )
            else:
                logger.error(f"Error reclaiming pending messages: {e}")
            return

        if not result or not result[1]:
            return

        claimed = [(msg_id, fields) for msg_id, fields in result[1] if fields]
        if not claimed:
            return

        logger.info(
            f"Reclaimed {len(claimed)} pending messages "
            f"from {self.stream_config.stream_name}"
        )
        delivery_counts = await self._get_delivery_counts(
            [msg_id for msg_id, _ in claimed]
        )

        for msg_id, fields in claimed:
            # Retries spent by earlier copies plus deliveries of this one
            delivery_count = _prior_retries(fields) + delivery_counts.get(msg_id, 1)

            if delivery_count > self._queue_config.max_delivery_attempts:
                logger.warning(
                    f"Message {msg_id} exceeded max delivery attempts "
                    f"({delivery_count}/{self._queue_config.max_delivery_attempts}), "
                    f"moving to DLQ"
                )
                await self._move_to_dlq(msg_id, fields, "max_retries_exceeded")
                await self.ack(msg_id)
                metrics.dlq_max_retries.labels(
                    queue=self.stream_config.stream_name
                ).inc()
                continue

            try:
                job = self._parse_job(msg_id, fields)
            except Exception as e:
                logger.error(f"Failed to parse reclaimed message {msg_id}: {e}")
                await self._move_to_dlq(msg_id, fields, str(e))
                await self.ack(msg_id)
                continue

            # The current delivery does not count as a retry
            self._set_job_retry_count(job, delivery_count - 1)
            metrics.pending_reclaimed.labels(
                queue=self.stream_config.stream_name
            ).inc()
            yield job

    async def _get_delivery_counts(self, message_ids: list[str]) -> dict[str, int]:
        """Delivery counts per message id, from XPENDING."""
        if not message_ids:
            return {}

        try:
            pending_info = await self.redis.xpending_range(
                name=self.stream_config.stream_name,
                groupname=self.stream_config.consumer_group,
                min="-",
                max="+",
                count=len(message_ids) * 2,
            )
        except redis.RedisError as e:
            logger.error(f"Error getting delivery counts: {e}")
            return {msg_id: 1 for msg_id in message_ids}

        wanted = set(message_ids)
        return {
            info["message_id"]: info["times_delivered"]
            for info in pending_info
            if info["message_id"] in wanted
        }

    async def ack(self, message_id: str) -> None:
        """Acknowledge successful processing of a message."""
        await self.redis.xack(
            self.stream_config.stream_name,
            self.stream_config.consumer_group,
            message_id,
        )
        logger.debug(f"Acknowledged message {message_id}")

    async def nack(self, message_id: str, error: str | None = None) -> None:
        """Move a message to the dead letter queue and acknowledge it."""
        messages = await self.redis.xrange(
            self.stream_config.stream_name,
            min=message_id,
            max=message_id,
        )
        if messages:
            _, fields = messages[0]
            await self._move_to_dlq(message_id, fields, error)

        await self.ack(message_id)

    async def retry(
        self,
        message_id: str,
        retry_count: int,
        error: str | None = None,
    ) -> bool:
        """
        Schedule a failed message for another delivery.

        The message is re-added with its retry count and a not-before time
        retry_delay_seconds ahead, then the failed copy is acknowledged.
        Once max_delivery_attempts is reached it is dead-lettered instead.

        Args:
            message_id: Message that failed
            retry_count: Retries that preceded this delivery
            error: Failure description, kept in the DLQ entry

        Returns:
            True if the message was re-queued, False if dead-lettered or gone
        """
        messages = await self.redis.xrange(
            self.stream_config.stream_name,
            min=message_id,
            max=message_id,
        )
        if not messages:
            await self.ack(message_id)
            return False

        _, fields = messages[0]
        next_retry = retry_count + 1
        if next_retry >= self._queue_config.max_delivery_attempts:
            logger.warning(
                f"Message {message_id} failed {next_retry} times, moving to DLQ"
            )
            await self._move_to_dlq(message_id, fields, error or "max_retries_exceeded")
            await self.ack(message_id)
            get_metrics().dlq_max_retries.labels(
                queue=self.stream_config.stream_name
            ).inc()
            return False

        retry_fields = {
            **fields,
            "retry_count": str(next_retry),
            "not_before": str(time.time() + self._queue_config.retry_delay_seconds),
        }
        if error:
            retry_fields["last_error"] = error[:500]
        new_id = await self._add(retry_fields)
        await self.ack(message_id)
        logger.info(
            f"Message {message_id} re-queued as {new_id} "
            f"(retry {next_retry}/{self._queue_config.max_retries})"
        )
        return True

    async def _wait_until_due(
        self, fields: dict[str, str], stop: asyncio.Event | None
    ) -> None:
        """Hold a re-queued message until its not-before time."""
        try:
            not_before = float(fields.get("not_before", 0))
        except ValueError:
            return
        delay = min(
            not_before - time.time(), self._queue_config.retry_delay_seconds
        )
        if delay <= 0:
            return
        if stop is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _move_to_dlq(
        self,
        original_id: str,
        fields: dict[str, str],
        error: str | None,
    ) -> None:
        dlq_fields = {
            **fields,
            "original_id": original_id,
            "error": error or "unknown",
            "failed_at": str(time.time()),
        }
        await self.redis.xadd(
            self.stream_config.dlq_stream_name,
            dlq_fields,
            maxlen=10_000,
        )
        logger.warning(f"Moved message {original_id} to DLQ: {error}")

    async def get_pending_count(self) -> int:
        """Count of delivered but unacknowledged messages."""
        info = await self.redis.xpending(
            self.stream_config.stream_name,
            self.stream_config.consumer_group,
        )
        return info["pending"] if info else 0

    async def get_stream_length(self) -> int:
        return await self.redis.xlen(self.stream_config.stream_name)

    async def health_check(self) -> bool:
        """Check if Redis connection is healthy."""
        try:
            await self.redis.ping()
            return True
        except (redis.RedisError, RuntimeError):
            return False


def _prior_retries(fields: dict[str, str]) -> int:
    """Retries already spent by earlier copies of a re-queued message."""
    try:
        return max(int(fields.get("retry_count", 0)), 0)
    except ValueError:
        return 0
