"""Tests for the story_fetched queue."""

import json
from unittest.mock import AsyncMock

import pytest

from src.ingestion.queue import StoryFetchedQueue
from src.ingestion.schemas import StoryFetchedEvent
from src.queues import QueueConfig


@pytest.fixture
def queue() -> StoryFetchedQueue:
    q = StoryFetchedQueue(
        redis_url="redis://localhost:6379/1",
        stream_name="story_fetched_test",
        consumer_group="analysis_test",
    )
    q._redis = AsyncMock()
    q._redis.xadd.return_value = "1700000000000-0"
    q._consumer_name = "analysis_worker_test"
    q._stream_config = q._get_stream_config()
    return q


@pytest.fixture
def event() -> StoryFetchedEvent:
    return StoryFetchedEvent(
        story_id="2b1f6c1e-0000-4000-8000-000000000001",
        title="The Hollow",
        body_text="It knocked three times.",
        url="https://reddit.com/r/nosleep/comments/abc/",
    )


class TestStoryFetchedQueue:
    def test_stream_config(self, queue):
        config = queue.stream_config
        assert config.stream_name == "story_fetched_test"
        assert config.consumer_group == "analysis_test"
        assert config.dlq_stream_name == "story_fetched_test:dlq"

    def test_default_retry_policy(self):
        q = StoryFetchedQueue(redis_url="redis://localhost:6379/1")

        assert q.queue_config == QueueConfig(
            idle_timeout_ms=300_000,
            retry_delay_seconds=5.0,
            max_delivery_attempts=4,
        )
        assert q.queue_config.max_retries == 3

    @pytest.mark.asyncio
    async def test_publish(self, queue, event):
        message_id = await queue.publish(event)

        assert message_id == "1700000000000-0"
        kwargs = queue._redis.xadd.call_args.kwargs
        assert kwargs["name"] == "story_fetched_test"
        assert kwargs["approximate"] is True
        fields = kwargs["fields"]
        assert fields["story_id"] == event.story_id
        assert json.loads(fields["data"])["title"] == "The Hollow"

    def test_parse_job(self, queue, event):
        fields = {**event.to_fields(), "story_id": event.story_id}

        job = queue._parse_job("1-0", fields)

        assert job.event == event
        assert job.message_id == "1-0"
        assert job.retry_count == 0
        assert job.trace_context is None

    def test_parse_job_with_traceparent(self, queue, event):
        fields = {
            **event.to_fields(),
            "traceparent": "00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01",
        }

        job = queue._parse_job("1-0", fields)

        assert job.trace_context is not None

    @pytest.mark.asyncio
    async def test_unparseable_message_dead_lettered(self, queue, event):
        queue._redis.xautoclaim.return_value = ["0-0", [], []]
        queue._redis.xreadgroup.side_effect = [
            [("story_fetched_test", [("9-0", {"data": "{broken"})])],
            [("story_fetched_test", [("10-0", event.to_fields())])],
        ]

        jobs = []
        async for job in queue.consume(count=1, block_ms=10):
            jobs.append(job)
            break

        assert [j.message_id for j in jobs] == ["10-0"]
        dlq_call = queue._redis.xadd.call_args_list[0]
        assert dlq_call.args[0] == "story_fetched_test:dlq"
        assert dlq_call.args[1]["original_id"] == "9-0"
        queue._redis.xack.assert_awaited_once_with(
            "story_fetched_test", "analysis_test", "9-0"
        )

    def test_parse_requeued_job(self, queue, event):
        fields = {
            **event.to_fields(),
            "retry_count": "2",
            "not_before": "0",
            "last_error": "OSError: db down",
        }

        job = queue._parse_job("5-0", fields)

        assert job.event == event
