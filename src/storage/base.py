"""
Story store interface.

Services depend on this interface rather than on PostgreSQL directly, so the
ingestion, repair and event paths can run against any backend that keeps
external_id unique.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

from src.ingestion.schemas import Story


class StoryStore(ABC):
    """Persistence operations used by the story services."""

    @abstractmethod
    async def get_by_external_id(self, external_id: str) -> Story | None:
        """Look up a story by its source id."""
        ...

    @abstractmethod
    async def get_by_id(self, story_id: str) -> Story | None:
        ...

    @abstractmethod
    async def insert(self, story: Story) -> bool:
        """
        Insert a new story.

        Returns:
            False if a story with the same external_id already exists
            (nothing is written in that case).
        """
        ...

    @abstractmethod
    async def save(self, story: Story, expected_analysis: str | None = None) -> bool:
        """
        Persist the analysis fields of an existing story.

        When expected_analysis is given the write only happens if the stored
        analysis text still equals it, so a result written by another worker
        in the meantime is never overwritten.

        Returns:
            True if the story was written
        """
        ...

    @abstractmethod
    async def save_all(
        self,
        stories: Sequence[Story],
        expected: Mapping[str, str] | None = None,
    ) -> int:
        """
        Persist several stories in one unit of work.

        Args:
            stories: Stories whose analysis fields are written
            expected: Optional story id -> analysis text read before the
                change; stories whose stored text differs are left alone

        Returns:
            Number of stories written
        """
        ...

    @abstractmethod
    async def list_all(self) -> list[Story]:
        ...
