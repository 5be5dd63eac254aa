"""
Reddit connector for horror story subreddits.

Reads the public JSON listing (no OAuth) of a subreddit's top posts:

    GET https://www.reddit.com/r/{subreddit}/top.json?limit=N&t=day

Stickied (moderator) posts and removed posts are dropped. The post's
selftext is the story body; its upvote count is the popularity signal.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from src.config.settings import get_settings
from src.ingestion.base_adapter import BaseConnector
from src.ingestion.schemas import Platform, RawStory

logger = logging.getLogger(__name__)

REDDIT_BASE_URL = "https://www.reddit.com"


class RedditConnector(BaseConnector):
    """
    Fetches top posts of a subreddit.

    The query passed to fetch() is the subreddit name without the ``r/``
    prefix, e.g. ``"nosleep"``.
    """

    def __init__(
        self,
        user_agent: str | None = None,
        posts_per_subreddit: int | None = None,
        time_window: str | None = None,
        rate_limit: int | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize Reddit connector.

        Args:
            user_agent: User agent string (Reddit rejects generic agents)
            posts_per_subreddit: Posts requested per listing
            time_window: Listing window (hour, day, week, ...)
            rate_limit: Requests per minute
            http_client: Optional shared client (created per fetch otherwise)
        """
        settings = get_settings()
        super().__init__(rate_limit=rate_limit or settings.reddit_rate_limit)

        self._user_agent = user_agent or settings.reddit_user_agent
        self._posts_per_subreddit = (
            posts_per_subreddit or settings.reddit_posts_per_subreddit
        )
        self._time_window = time_window or settings.reddit_time_window
        self._http_client = http_client

    @property
    def platform(self) -> Platform:
        return Platform.REDDIT

    def _listing_url(self, subreddit: str) -> str:
        return f"{REDDIT_BASE_URL}/r/{subreddit}/top.json"

    async def _get_listing(
        self, client: httpx.AsyncClient, subreddit: str
    ) -> dict[str, Any]:
        await self._rate_limiter.acquire()
        response = await client.get(
            self._listing_url(subreddit),
            params={"limit": self._posts_per_subreddit, "t": self._time_window},
            headers={"User-Agent": self._user_agent},
        )
        if response.status_code == 429:
            logger.warning(f"Reddit rate limit hit for r/{subreddit}")
        response.raise_for_status()
        return response.json()

    async def _fetch_raw(self, query: str) -> AsyncIterator[dict[str, Any]]:
        subreddit = query.removeprefix("r/")

        if self._http_client is not None:
            data = await self._get_listing(self._http_client, subreddit)
        else:
            async with httpx.AsyncClient(timeout=30.0) as client:
                data = await self._get_listing(client, subreddit)

        posts = data.get("data", {}).get("children", [])
        logger.debug(f"Fetched {len(posts)} posts from r/{subreddit}")
        for post in posts:
            yield post.get("data", {})

    def _transform(self, raw: dict[str, Any]) -> RawStory | None:
        """Transform a Reddit post to RawStory."""
        if raw.get("stickied"):
            return None
        if raw.get("removed_by_category"):
            return None

        post_id = raw.get("id")
        title = raw.get("title", "")
        if not post_id or not title:
            return None

        permalink = raw.get("permalink", "")
        return RawStory(
            external_id=post_id,
            source=Platform.REDDIT,
            title=title,
            author=raw.get("author") or "unknown",
            url=f"https://reddit.com{permalink}" if permalink else "",
            body_text=raw.get("selftext", ""),
            upvotes=raw.get("ups", 0),
        )

    async def health_check(self) -> bool:
        """Check that the public listing API answers."""
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(
                    self._listing_url("nosleep"),
                    params={"limit": 1},
                    headers={"User-Agent": self._user_agent},
                )
                return response.is_success
        except httpx.HTTPError:
            return False
