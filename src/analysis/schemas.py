"""Data models for provider attempts and chain results.

A provider attempt ends in exactly one of three outcomes. SUCCESS carries the
analysis text; QUOTA_EXCEEDED and FAILED carry a diagnostic message. The
quota/failure split only affects logging and metrics: the chain moves on to
the next provider either way.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class ProviderOutcome(str, Enum):
    """Result tag of a single provider attempt."""

    SUCCESS = "success"
    QUOTA_EXCEEDED = "quota_exceeded"
    FAILED = "failed"


class ProviderResult(BaseModel):
    """Outcome of one provider attempt."""

    provider: str
    outcome: ProviderOutcome
    text: str = Field(default="", description="Analysis text on success")
    message: str = Field(default="", description="Diagnostic on failure")
    latency_ms: float = 0.0

    @classmethod
    def success(cls, provider: str, text: str) -> "ProviderResult":
        return cls(provider=provider, outcome=ProviderOutcome.SUCCESS, text=text)

    @classmethod
    def quota_exceeded(cls, provider: str, message: str) -> "ProviderResult":
        return cls(
            provider=provider,
            outcome=ProviderOutcome.QUOTA_EXCEEDED,
            message=message,
        )

    @classmethod
    def failed(cls, provider: str, message: str) -> "ProviderResult":
        return cls(provider=provider, outcome=ProviderOutcome.FAILED, message=message)

    @property
    def ok(self) -> bool:
        return self.outcome == ProviderOutcome.SUCCESS


class AnalysisResult(BaseModel):
    """Final output of the provider chain.

    ``analysis`` is never empty. ``provider`` is None when every provider
    failed and the mock fallback was used.
    """

    analysis: str = Field(min_length=1)
    score: float | None = Field(default=None, ge=0.0, le=10.0)
    provider: str | None = None
    attempts: list[ProviderResult] = Field(default_factory=list)
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_fallback(self) -> bool:
        """Whether the mock fallback produced this result."""
        return self.provider is None
