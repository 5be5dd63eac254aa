"""
Redis Streams queue abstractions with at-least-once delivery.

Classes:
    BaseRedisQueue: Abstract base class for Redis Streams queues
    StreamConfig: Stream, group and DLQ names
    QueueConfig: Redelivery interval and attempt limit
    ExponentialBackoff: Delay calculator for retry loops
"""

from src.queues.backoff import ExponentialBackoff
from src.queues.base import BaseRedisQueue, StreamConfig
from src.queues.config import QueueConfig

__all__ = ["BaseRedisQueue", "ExponentialBackoff", "StreamConfig", "QueueConfig"]
