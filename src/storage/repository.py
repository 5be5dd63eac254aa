"""
Story repository backed by PostgreSQL.

external_id carries a UNIQUE constraint, so concurrent crawlers cannot store
the same source item twice: a losing insert is reported as "not inserted"
and callers treat it like an existing story.
"""

import logging
from collections.abc import Mapping, Sequence

import asyncpg

from src.ingestion.schemas import Story
from src.storage.base import StoryStore
from src.storage.database import Database

logger = logging.getLogger(__name__)

_STORY_COLUMNS = """
    id, external_id, title, author, url, body_text,
    ai_analysis, scary_score, upvotes, fetched_at
"""


class StoryRepository(StoryStore):
    """
    Repository for story storage and retrieval.

    Tables:
        - stories: one row per source item, analysis fields updated in place
    """

    def __init__(self, database: Database):
        """
        Args:
            database: Connected Database instance
        """
        self._db = database

    async def create_tables(self) -> None:
        """Create the stories table and indexes if they don't exist."""
        create_sql = """
        CREATE TABLE IF NOT EXISTS stories (
            id TEXT PRIMARY KEY,
            external_id TEXT NOT NULL,
            title TEXT NOT NULL,
            author TEXT NOT NULL DEFAULT '',
            url TEXT NOT NULL DEFAULT '',
            body_text TEXT NOT NULL DEFAULT '',
            ai_analysis TEXT NOT NULL DEFAULT '',
            scary_score DOUBLE PRECISION
                CHECK (scary_score IS NULL OR (scary_score >= 0 AND scary_score <= 10)),
            upvotes BIGINT NOT NULL DEFAULT 0,
            fetched_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_stories_external_id UNIQUE (external_id)
        );

        CREATE INDEX IF NOT EXISTS idx_stories_fetched_at
            ON stories(fetched_at DESC);
        CREATE INDEX IF NOT EXISTS idx_stories_scary_score
            ON stories(scary_score DESC NULLS LAST);
        """
        await self._db.execute(create_sql)
        logger.info("Story tables created/verified")

    async def get_by_external_id(self, external_id: str) -> Story | None:
        row = await self._db.fetchrow(
            f"SELECT {_STORY_COLUMNS} FROM stories WHERE external_id = $1",
            external_id,
        )
        return self._row_to_story(row) if row else None

    async def get_by_id(self, story_id: str) -> Story | None:
        row = await self._db.fetchrow(
            f"SELECT {_STORY_COLUMNS} FROM stories WHERE id = $1",
            story_id,
        )
        return self._row_to_story(row) if row else None

    async def insert(self, story: Story) -> bool:
        """
        Insert a story unless its external_id is already stored.

        Returns:
            True if inserted, False if the external_id already existed
        """
        sql = f"""
        INSERT INTO stories ({_STORY_COLUMNS})
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
        ON CONFLICT (external_id) DO NOTHING
        RETURNING id
        """
        inserted_id = await self._db.fetchval(
            sql,
            story.id,
            story.external_id,
            story.title,
            story.author,
            story.url,
            story.body_text,
            story.ai_analysis,
            story.scary_score,
            story.upvotes,
            story.fetched_at,
        )
        if inserted_id is None:
            logger.debug(f"Story {story.external_id} already stored, insert skipped")
            return False
        return True

    _UPDATE_ANALYSIS_SQL = """
    UPDATE stories
    SET ai_analysis = $2, scary_score = $3, updated_at = NOW()
    WHERE id = $1
    """

    # Optimistic write: only if nobody replaced the analysis since it was read
    _UPDATE_ANALYSIS_IF_UNCHANGED_SQL = """
    UPDATE stories
    SET ai_analysis = $2, scary_score = $3, updated_at = NOW()
    WHERE id = $1 AND ai_analysis = $4
    """

    async def save(self, story: Story, expected_analysis: str | None = None) -> bool:
        """Write analysis text and score of an existing story."""
        if expected_analysis is None:
            status = await self._db.execute(
                self._UPDATE_ANALYSIS_SQL,
                story.id,
                story.ai_analysis,
                story.scary_score,
            )
        else:
            status = await self._db.execute(
                self._UPDATE_ANALYSIS_IF_UNCHANGED_SQL,
                story.id,
                story.ai_analysis,
                story.scary_score,
                expected_analysis,
            )

        written = _rows_affected(status) > 0
        if not written:
            logger.info(f"Story {story.id} changed concurrently, write skipped")
        return written

    async def save_all(
        self,
        stories: Sequence[Story],
        expected: Mapping[str, str] | None = None,
    ) -> int:
        """
        Write analysis fields of several stories in one transaction.

        Returns:
            Number of stories written
        """
        if not stories:
            return 0

        async with self._db.transaction() as conn:
            if expected is None:
                await conn.executemany(
                    self._UPDATE_ANALYSIS_SQL,
                    [(s.id, s.ai_analysis, s.scary_score) for s in stories],
                )
                written = len(stories)
            else:
                written = 0
                for s in stories:
                    status = await conn.execute(
                        self._UPDATE_ANALYSIS_IF_UNCHANGED_SQL,
                        s.id,
                        s.ai_analysis,
                        s.scary_score,
                        expected[s.id],
                    )
                    written += _rows_affected(status)

        if written < len(stories):
            logger.info(
                f"{len(stories) - written} stories changed concurrently, left as stored"
            )
        logger.info(f"Saved analysis for {written} stories")
        return written

    async def list_all(self) -> list[Story]:
        rows = await self._db.fetch(
            f"SELECT {_STORY_COLUMNS} FROM stories ORDER BY fetched_at"
        )
        return [self._row_to_story(row) for row in rows]

    async def count(self) -> int:
        return await self._db.fetchval("SELECT COUNT(*) FROM stories")

    def _row_to_story(self, row: asyncpg.Record) -> Story:
        """Convert database row to Story."""
        return Story(
            id=row["id"],
            external_id=row["external_id"],
            title=row["title"],
            author=row["author"],
            url=row["url"],
            body_text=row["body_text"],
            ai_analysis=row["ai_analysis"],
            scary_score=row["scary_score"],
            upvotes=row["upvotes"],
            fetched_at=row["fetched_at"],
        )


def _rows_affected(status: str) -> int:
    """Row count from an asyncpg command status such as ``"UPDATE 1"``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0
