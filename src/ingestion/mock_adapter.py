"""
Mock connector for testing and development.

Generates synthetic horror stories shaped like Reddit posts so the crawl,
ingestion and analysis paths can run without network access. External ids
are derived from the query and a stable counter, so repeated crawls with the
same connector instance produce new stories while a fresh instance replays
the same ids (handy for exercising dedup).
"""

import random
from collections.abc import AsyncIterator
from typing import Any

from src.ingestion.base_adapter import BaseConnector
from src.ingestion.schemas import Platform, RawStory

TITLE_TEMPLATES = [
    "I work the night shift at a {place}. Something {verb} me last night.",
    "My {relative} left a voicemail. {relative_cap} died three years ago.",
    "There is a door in my {place} that wasn't there yesterday",
    "Never answer the phone when the caller ID shows your own {thing}",
    "The {thing} in the attic started {verb_ing} again",
]

BODY_TEMPLATES = [
    "It started on a Tuesday. The lights in the {place} flickered twice and "
    "then I heard it, a slow scraping from behind the wall.",
    "I'm only posting this because I need someone to know what happened. "
    "The {thing} was exactly where I left it, but it was facing me now.",
    "The first rule they gave me was simple: never look at the {place} "
    "windows after 3 AM. I broke that rule on my second night.",
]

PLACES = ["gas station", "hospital", "basement", "lighthouse", "motel"]
THINGS = ["doll", "mirror", "music box", "number", "name"]
RELATIVES = ["grandmother", "brother", "aunt", "father"]
VERBS = ["followed", "watched", "called", "recognized"]
VERBS_ING = ["knocking", "singing", "breathing", "whispering"]
AUTHORS = ["throwaway_nightshift", "lantern_keeper", "quiet_hollow", "u_nobody_home"]


class MockConnector(BaseConnector):
    """Connector that fabricates stories instead of calling a platform."""

    def __init__(
        self,
        stories_per_fetch: int = 3,
        include_stickied: bool = True,
        seed: int | None = None,
        rate_limit: int = 600,
    ):
        """
        Initialize mock connector.

        Args:
            stories_per_fetch: Stories generated per fetch()
            include_stickied: Emit one stickied post per fetch (always dropped)
            seed: Random seed for reproducible content
            rate_limit: Rate limit (kept for parity with real connectors)
        """
        super().__init__(rate_limit=rate_limit)
        self._stories_per_fetch = stories_per_fetch
        self._include_stickied = include_stickied
        self._random = random.Random(seed)
        self._counter = 0

    @property
    def platform(self) -> Platform:
        return Platform.MOCK

    async def _fetch_raw(self, query: str) -> AsyncIterator[dict[str, Any]]:
        if self._include_stickied:
            yield {
                "id": f"mock_{query}_rules",
                "title": f"r/{query} posting rules",
                "selftext": "Read the rules before posting.",
                "author": "AutoModerator",
                "ups": 1,
                "stickied": True,
            }

        for _ in range(self._stories_per_fetch):
            self._counter += 1
            relative = self._random.choice(RELATIVES)
            words = {
                "place": self._random.choice(PLACES),
                "thing": self._random.choice(THINGS),
                "relative": relative,
                "relative_cap": relative.capitalize(),
                "verb": self._random.choice(VERBS),
                "verb_ing": self._random.choice(VERBS_ING),
            }
            yield {
                "id": f"mock_{query}_{self._counter}",
                "title": self._random.choice(TITLE_TEMPLATES).format(**words),
                "selftext": self._random.choice(BODY_TEMPLATES).format(**words),
                "author": self._random.choice(AUTHORS),
                "ups": self._random.randint(10, 25_000),
                "stickied": False,
            }

    def _transform(self, raw: dict[str, Any]) -> RawStory | None:
        if raw.get("stickied"):
            return None

        return RawStory(
            external_id=raw["id"],
            source=Platform.MOCK,
            title=raw["title"],
            author=raw["author"],
            url=f"https://example.invalid/stories/{raw['id']}",
            body_text=raw["selftext"],
            upvotes=raw["ups"],
        )
