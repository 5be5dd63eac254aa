"""
Story schemas for the dark-gravity pipeline.

RawStory is what every source connector returns. Story is the persisted
entity: its source fields are immutable once fetched, while ai_analysis and
scary_score are filled in (and repaired) by the analysis side.
StoryFetchedEvent is the only wire schema, published when a new story has
been stored and needs analysis.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.analysis.validation import is_invalid_analysis, is_mock_analysis


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def _new_story_id() -> str:
    return str(uuid.uuid4())


class Platform(str, Enum):
    """Supported story sources."""

    REDDIT = "reddit"
    YOUTUBE = "youtube"
    MOCK = "mock"


class RawStory(BaseModel):
    """Normalized connector output, before persistence."""

    external_id: str = Field(
        ...,
        min_length=1,
        description="Source id: Reddit post id or yt_{videoId}",
        examples=["1a2b3c", "yt_dQw4w9WgXcQ"],
    )
    source: Platform
    title: str
    author: str = ""
    url: str = ""
    body_text: str = ""
    upvotes: int = Field(default=0, description="Reddit ups or YouTube views")

    @field_validator("title", "author")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        return v.strip()


class Story(BaseModel):
    """
    Persisted story.

    An empty ai_analysis means "not analyzed yet". scary_score stays None
    until an analysis yields a parseable 0-10 score.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=_new_story_id)
    external_id: str = Field(..., min_length=1)
    title: str
    author: str = ""
    url: str = ""
    body_text: str = ""
    ai_analysis: str = ""
    scary_score: float | None = Field(default=None, ge=0.0, le=10.0)
    upvotes: int = 0
    fetched_at: datetime = Field(default_factory=_utc_now)

    @classmethod
    def from_raw(cls, raw: RawStory) -> "Story":
        """Build an unanalyzed skeleton from connector output."""
        return cls(
            external_id=raw.external_id,
            title=raw.title,
            author=raw.author,
            url=raw.url,
            body_text=raw.body_text,
            upvotes=raw.upvotes,
        )

    @property
    def has_invalid_analysis(self) -> bool:
        return is_invalid_analysis(self.ai_analysis)

    @property
    def is_analysis_pending(self) -> bool:
        """
        Whether the story still needs analysis work.

        True for invalid analyses, and for real analyses whose score could
        not be parsed.
        """
        if self.has_invalid_analysis:
            return True
        return self.scary_score is None and not is_mock_analysis(self.ai_analysis)

    def apply_analysis(self, analysis: str, score: float | None) -> None:
        """Overwrite analysis text and score together."""
        self.ai_analysis = analysis
        self.scary_score = score

    def to_event(self) -> "StoryFetchedEvent":
        return StoryFetchedEvent(
            story_id=self.id,
            title=self.title,
            body_text=self.body_text,
            url=self.url,
        )


class StoryFetchedEvent(BaseModel):
    """Published after a new story skeleton has been stored."""

    story_id: str
    title: str
    body_text: str = ""
    url: str = ""

    def to_fields(self) -> dict[str, Any]:
        """Redis stream fields for XADD."""
        return {"data": self.model_dump_json()}

    @classmethod
    def from_fields(cls, fields: dict[str, str]) -> "StoryFetchedEvent":
        return cls.model_validate_json(fields["data"])
