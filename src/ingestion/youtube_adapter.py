"""
YouTube connector for narrated horror story channels.

Searches YouTube with yt-dlp (``ytsearchN:<query>``), then loads full video
info for each hit. The story body is the English caption track when one
exists (manual captions preferred over automatic ones), else the video
description, else a fixed placeholder.

yt-dlp is synchronous, so every extract_info call runs in a worker thread.
Caption files are downloaded with httpx in json3 format.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
import yt_dlp
from yt_dlp.utils import DownloadError

from src.config.settings import get_settings
from src.ingestion.base_adapter import BaseConnector
from src.ingestion.schemas import Platform, RawStory

logger = logging.getLogger(__name__)

NO_CONTENT_PLACEHOLDER = "No content available."

YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

_YDL_BASE_OPTS: dict[str, Any] = {
    "quiet": True,
    "no_warnings": True,
    "skip_download": True,
    "socket_timeout": 30,
}


def _english_track_url(info: dict[str, Any]) -> str | None:
    """Pick the json3 URL of the best English caption track, if any."""
    for key in ("subtitles", "automatic_captions"):
        tracks = info.get(key) or {}
        languages = sorted(
            (lang for lang in tracks if lang == "en" or lang.startswith("en-")),
            key=lambda lang: lang != "en",
        )
        for lang in languages:
            for fmt in tracks[lang]:
                if fmt.get("ext") == "json3" and fmt.get("url"):
                    return fmt["url"]
    return None


def join_caption_events(payload: dict[str, Any]) -> str:
    """Flatten a json3 caption document into one line of text."""
    parts: list[str] = []
    for event in payload.get("events", []):
        text = "".join(seg.get("utf8", "") for seg in event.get("segs") or [])
        text = text.replace("\n", " ").strip()
        if text:
            parts.append(text)
    return " ".join(parts)


class YouTubeConnector(BaseConnector):
    """
    Fetches videos matching a search query.

    The query passed to fetch() is a free-text search, e.g.
    ``"MrBallen horror stories"``.
    """

    def __init__(
        self,
        videos_per_query: int | None = None,
        rate_limit: int | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize YouTube connector.

        Args:
            videos_per_query: Search results to keep per query
            rate_limit: Video lookups per minute
            http_client: Optional client for caption downloads
        """
        settings = get_settings()
        super().__init__(rate_limit=rate_limit or settings.youtube_rate_limit)
        self._videos_per_query = videos_per_query or settings.youtube_videos_per_query
        self._http_client = http_client

    @property
    def platform(self) -> Platform:
        return Platform.YOUTUBE

    def _search(self, query: str) -> list[dict[str, Any]]:
        opts = {**_YDL_BASE_OPTS, "extract_flat": True}
        with yt_dlp.YoutubeDL(opts) as ydl:
            results = ydl.extract_info(
                f"ytsearch{self._videos_per_query}:{query}", download=False
            )
        entries = (results or {}).get("entries") or []
        return [entry for entry in entries if entry and entry.get("id")]

    def _video_info(self, video_id: str) -> dict[str, Any]:
        with yt_dlp.YoutubeDL(dict(_YDL_BASE_OPTS)) as ydl:
            return ydl.extract_info(
                YOUTUBE_WATCH_URL.format(video_id=video_id), download=False
            )

    async def _fetch_transcript(self, info: dict[str, Any]) -> str | None:
        track_url = _english_track_url(info)
        if track_url is None:
            return None

        try:
            if self._http_client is not None:
                response = await self._http_client.get(track_url)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.get(track_url)
            response.raise_for_status()
            return join_caption_events(response.json()) or None
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Caption download failed for {info.get('id')}: {e}")
            return None

    async def _fetch_raw(self, query: str) -> AsyncIterator[dict[str, Any]]:
        await self._rate_limiter.acquire()
        entries = await asyncio.to_thread(self._search, query)
        logger.debug(f"YouTube search {query!r} returned {len(entries)} videos")

        for entry in entries[: self._videos_per_query]:
            await self._rate_limiter.acquire()
            try:
                info = await asyncio.to_thread(self._video_info, entry["id"])
            except DownloadError as e:
                logger.warning(f"Skipping video {entry['id']}: {e}")
                continue

            yield {"info": info, "transcript": await self._fetch_transcript(info)}

    def _transform(self, raw: dict[str, Any]) -> RawStory | None:
        """Transform video info (plus transcript) to RawStory."""
        info = raw["info"]
        video_id = info.get("id")
        if not video_id:
            return None

        body = raw.get("transcript") or info.get("description") or ""
        if not body.strip():
            body = NO_CONTENT_PLACEHOLDER

        return RawStory(
            external_id=f"yt_{video_id}",
            source=Platform.YOUTUBE,
            title=info.get("title") or "",
            author=info.get("channel") or info.get("uploader") or "unknown",
            url=info.get("webpage_url") or YOUTUBE_WATCH_URL.format(video_id=video_id),
            body_text=body,
            upvotes=info.get("view_count") or 0,
        )
