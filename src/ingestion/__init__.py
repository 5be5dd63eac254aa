"""Story ingestion - source connectors, schemas, and the story_fetched queue."""

from src.ingestion.schemas import (
    Platform,
    RawStory,
    Story,
    StoryFetchedEvent,
)

__all__ = [
    "Platform",
    "RawStory",
    "Story",
    "StoryFetchedEvent",
]
