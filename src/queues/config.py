"""
Queue configuration for Redis Streams redelivery behavior.
"""

from dataclasses import dataclass


@dataclass
class QueueConfig:
    """
    Redelivery settings for a Redis Streams queue.

    Attributes:
        idle_timeout_ms: How long a delivered, unacknowledged message waits
            before another consumer may claim it. Only orphans of crashed
            consumers get that old, so it must exceed the worst-case
            handling time of one message.
        retry_delay_seconds: Delay before a message that failed is delivered
            again (see BaseRedisQueue.retry()).
        max_delivery_attempts: Deliveries (first attempt plus retries)
            before the message is moved to the dead letter queue.
        backoff_base_delay: First delay after a Redis error in consume().
        backoff_max_delay: Cap on the consume() error backoff.
    """

    idle_timeout_ms: int = 300_000
    retry_delay_seconds: float = 5.0
    max_delivery_attempts: int = 4
    backoff_base_delay: float = 1.0
    backoff_max_delay: float = 60.0

    @property
    def max_retries(self) -> int:
        return self.max_delivery_attempts - 1
