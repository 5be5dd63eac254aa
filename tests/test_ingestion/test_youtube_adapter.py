"""Tests for the YouTube connector."""

from unittest.mock import MagicMock, patch

import httpx
import pytest
import respx
from yt_dlp.utils import DownloadError

from src.ingestion.schemas import Platform
from src.ingestion.youtube_adapter import (
    NO_CONTENT_PLACEHOLDER,
    YouTubeConnector,
    _english_track_url,
    join_caption_events,
)

CAPTION_URL = "https://www.youtube.com/api/timedtext?v=vid1&fmt=json3"


def _info(video_id: str = "vid1", **overrides) -> dict:
    info = {
        "id": video_id,
        "title": "3 True Scary Lighthouse Stories",
        "channel": "Mr. Nightmare",
        "uploader": "MrNightmare",
        "description": "Stories submitted by viewers.",
        "webpage_url": f"https://www.youtube.com/watch?v={video_id}",
        "view_count": 120_000,
        "subtitles": {},
        "automatic_captions": {},
    }
    info.update(overrides)
    return info


@pytest.fixture
def connector() -> YouTubeConnector:
    return YouTubeConnector(videos_per_query=2, rate_limit=600)


class TestCaptionHelpers:
    def test_prefers_manual_english(self):
        info = _info(
            subtitles={"en": [{"ext": "vtt", "url": "x"}, {"ext": "json3", "url": "manual"}]},
            automatic_captions={"en": [{"ext": "json3", "url": "auto"}]},
        )
        assert _english_track_url(info) == "manual"

    def test_falls_back_to_regional_auto_captions(self):
        info = _info(
            automatic_captions={
                "de": [{"ext": "json3", "url": "german"}],
                "en-US": [{"ext": "json3", "url": "auto-us"}],
            }
        )
        assert _english_track_url(info) == "auto-us"

    def test_no_english_track(self):
        assert _english_track_url(_info(subtitles={"fr": [{"ext": "json3", "url": "f"}]})) is None

    def test_join_caption_events(self):
        payload = {
            "events": [
                {"segs": [{"utf8": "The door "}, {"utf8": "opened."}]},
                {"tStartMs": 100},
                {"segs": [{"utf8": "\n"}]},
                {"segs": [{"utf8": "Nobody\nwas there."}]},
            ]
        }
        assert join_caption_events(payload) == "The door opened. Nobody was there."


class TestTransform:
    def test_transcript_is_body(self, connector):
        story = connector._transform({"info": _info(), "transcript": "Full transcript"})

        assert story.external_id == "yt_vid1"
        assert story.source == Platform.YOUTUBE
        assert story.body_text == "Full transcript"
        assert story.author == "Mr. Nightmare"
        assert story.upvotes == 120_000
        assert story.url == "https://www.youtube.com/watch?v=vid1"

    def test_description_fallback(self, connector):
        story = connector._transform({"info": _info(), "transcript": None})
        assert story.body_text == "Stories submitted by viewers."

    def test_placeholder_when_no_text(self, connector):
        story = connector._transform(
            {"info": _info(description=""), "transcript": None}
        )
        assert story.body_text == NO_CONTENT_PLACEHOLDER

    def test_author_and_views_defaults(self, connector):
        story = connector._transform(
            {"info": _info(channel=None, uploader=None, view_count=None), "transcript": None}
        )
        assert story.author == "unknown"
        assert story.upvotes == 0


class TestFetch:
    @pytest.mark.asyncio
    async def test_fetch_uses_search_and_video_info(self, connector):
        ydl = MagicMock()
        ydl.__enter__.return_value = ydl

        def extract_info(url, download):
            if url.startswith("ytsearch"):
                return {"entries": [{"id": "vid1"}, {"id": None}, {"id": "vid2"}]}
            return _info(url.rsplit("=", 1)[1])

        ydl.extract_info.side_effect = extract_info

        with patch("src.ingestion.youtube_adapter.yt_dlp.YoutubeDL", return_value=ydl):
            stories = await connector.fetch("MrBallen horror stories")

        assert [s.external_id for s in stories] == ["yt_vid1", "yt_vid2"]
        first_call = ydl.extract_info.call_args_list[0]
        assert first_call.args[0] == "ytsearch2:MrBallen horror stories"

    @pytest.mark.asyncio
    async def test_unavailable_video_skipped(self, connector):
        def video_info(video_id):
            if video_id == "private":
                raise DownloadError("Private video")
            return _info(video_id)

        with (
            patch.object(connector, "_search", return_value=[{"id": "private"}, {"id": "ok"}]),
            patch.object(connector, "_video_info", side_effect=video_info),
        ):
            stories = await connector.fetch("Mr. Nightmare")

        assert [s.external_id for s in stories] == ["yt_ok"]

    @pytest.mark.asyncio
    async def test_search_failure_returns_empty(self, connector):
        with patch.object(connector, "_search", side_effect=DownloadError("blocked")):
            assert await connector.fetch("Lazy Masquerade") == []

    @respx.mock
    @pytest.mark.asyncio
    async def test_transcript_downloaded(self, connector):
        respx.get(CAPTION_URL).mock(
            return_value=httpx.Response(
                200, json={"events": [{"segs": [{"utf8": "It whispered my name."}]}]}
            )
        )
        info = _info(subtitles={"en": [{"ext": "json3", "url": CAPTION_URL}]})

        with (
            patch.object(connector, "_search", return_value=[{"id": "vid1"}]),
            patch.object(connector, "_video_info", return_value=info),
        ):
            stories = await connector.fetch("Darkness Prevails")

        assert stories[0].body_text == "It whispered my name."

    @respx.mock
    @pytest.mark.asyncio
    async def test_transcript_failure_uses_description(self, connector):
        respx.get(CAPTION_URL).mock(return_value=httpx.Response(404))
        info = _info(subtitles={"en": [{"ext": "json3", "url": CAPTION_URL}]})

        with (
            patch.object(connector, "_search", return_value=[{"id": "vid1"}]),
            patch.object(connector, "_video_info", return_value=info),
        ):
            stories = await connector.fetch("Darkness Prevails")

        assert stories[0].body_text == "Stories submitted by viewers."
