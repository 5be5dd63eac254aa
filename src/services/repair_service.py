"""
Repair sweep - fixes stored analyses offline.

Walks every stored story once:

- invalid analysis (empty, mock placeholder, leaked error text): run the
  provider chain again and overwrite analysis and score
- valid analysis: re-derive the score from the stored text, which picks up
  score parser improvements without spending provider calls

All changed stories are written together at the end, in one transaction.
Each write is conditional on the analysis text the sweep read, so a result
the analysis worker stored while the sweep was running is kept.

The sweep is idempotent: a second run right after the first only re-tries
stories that are still invalid.
"""

import asyncio
import time
from dataclasses import dataclass, field

import structlog

from src.analysis.chain import ProviderChain
from src.analysis.config import AnalysisConfig
from src.analysis.score_parser import parse_score
from src.ingestion.schemas import Story
from src.observability.metrics import get_metrics
from src.storage.base import StoryStore

logger = structlog.get_logger(__name__)


@dataclass
class RepairStats:
    """Outcome counts for one repair() call."""

    scanned: int = 0
    rescored: int = 0
    reanalyzed: int = 0
    still_mock: int = 0
    unchanged: int = 0
    deferred: int = 0
    unscored: int = 0
    saved: int = 0
    superseded: int = 0
    start_time: float = field(default_factory=time.monotonic)

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.start_time

    def as_dict(self) -> dict[str, int]:
        return {
            "scanned": self.scanned,
            "rescored": self.rescored,
            "reanalyzed": self.reanalyzed,
            "still_mock": self.still_mock,
            "unchanged": self.unchanged,
            "deferred": self.deferred,
            "unscored": self.unscored,
            "saved": self.saved,
            "superseded": self.superseded,
        }


class RepairService:
    """
    Re-scores and re-analyzes stored stories.

    Usage:
        repair = RepairService(repository, chain)
        stats = await repair.repair()
    """

    def __init__(
        self,
        store: StoryStore,
        chain: ProviderChain,
        delay_seconds: float | None = None,
    ):
        """
        Args:
            store: Story persistence
            chain: Provider chain used for re-analysis
            delay_seconds: Pause between chain invocations
                (default: ANALYSIS_REPAIR_DELAY_SECONDS)
        """
        self._store = store
        self._chain = chain
        self._delay_seconds = (
            delay_seconds
            if delay_seconds is not None
            else AnalysisConfig().repair_delay_seconds
        )
        self._metrics = get_metrics()

    async def repair(self, skip_unanalyzed: bool = False) -> RepairStats:
        """
        Run one sweep over all stored stories.

        Args:
            skip_unanalyzed: Leave never-analyzed skeletons alone. Set when a
                story_fetched event already owns their analysis.

        Returns:
            RepairStats for the sweep
        """
        stats = RepairStats()
        stories = await self._store.list_all()
        changed: list[Story] = []
        read_analysis: dict[str, str] = {}

        logger.info(
            "Starting repair sweep",
            stories=len(stories),
            skip_unanalyzed=skip_unanalyzed,
        )

        for story in stories:
            stats.scanned += 1
            read_analysis[story.id] = story.ai_analysis

            if skip_unanalyzed and not story.ai_analysis.strip():
                stats.deferred += 1
                continue

            if story.has_invalid_analysis:
                if stats.reanalyzed and self._delay_seconds > 0:
                    await asyncio.sleep(self._delay_seconds)
                if await self._reanalyze(story, stats):
                    changed.append(story)
                continue

            score = parse_score(story.ai_analysis)
            if score != story.scary_score:
                logger.info(
                    "Correcting stale score",
                    story_id=story.id,
                    old_score=story.scary_score,
                    new_score=score,
                )
                story.scary_score = score
                stats.rescored += 1
                changed.append(story)
            else:
                stats.unchanged += 1

            if story.is_analysis_pending:
                stats.unscored += 1
                logger.warning(
                    "Analysis has no parseable score",
                    story_id=story.id,
                    analysis=story.ai_analysis[:80],
                )

        if changed:
            stats.saved = await self._store.save_all(
                changed,
                expected={story.id: read_analysis[story.id] for story in changed},
            )
            stats.superseded = len(changed) - stats.saved

        self._metrics.record_repair("rescored", stats.rescored)
        self._metrics.record_repair("reanalyzed", stats.reanalyzed)
        self._metrics.record_repair("unchanged", stats.unchanged)
        self._metrics.record_repair("deferred", stats.deferred)
        self._metrics.record_repair("unscored", stats.unscored)
        self._metrics.record_repair("superseded", stats.superseded)

        logger.info(
            "Repair sweep completed",
            elapsed_seconds=round(stats.elapsed_seconds, 2),
            **stats.as_dict(),
        )
        return stats

    async def _reanalyze(self, story: Story, stats: RepairStats) -> bool:
        """Re-run the chain for one story. Returns True if it changed."""
        stats.reanalyzed += 1
        result = await self._chain.analyze(story)

        if result.is_fallback:
            stats.still_mock += 1
            logger.warning("Providers still unavailable", story_id=story.id)

        if result.analysis == story.ai_analysis and result.score == story.scary_score:
            return False

        story.apply_analysis(result.analysis, result.score)
        logger.info(
            "Story re-analyzed",
            story_id=story.id,
            provider=result.provider or "mock",
            scary_score=result.score,
        )
        return True
