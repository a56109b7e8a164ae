"""
YouTube Data API v3 video lister.

Resolves a channel reference to a channel id, walks the channel's uploads
playlist, and enriches each page with duration and statistics from a
batched ``videos().list`` call.

Quota Usage:
------------
- channels().list: 1 unit
- search().list (only for /c/ custom URLs): 100 units
- playlistItems().list: 1 unit per 50 videos
- videos().list: 1 unit per 50 videos

The google client is synchronous, so every request runs in a worker thread.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import isodate
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from tubeindex.core.config import settings
from tubeindex.core.exceptions import ConfigurationError, InvalidChannelReference, ProviderError
from tubeindex.schemas.youtube import VideoListing
from tubeindex.services.sources.urls import ChannelReference, parse_channel_reference


logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50


def parse_duration_seconds(iso_duration: Optional[str]) -> Optional[int]:
    """
    Convert an ISO 8601 duration to seconds.

    Example:
        >>> parse_duration_seconds("PT15M33S")
        933
    """
    if not iso_duration:
        return None
    try:
        return int(isodate.parse_duration(iso_duration).total_seconds())
    except (isodate.ISO8601Error, ValueError) as e:
        logger.warning(f"Failed to parse duration {iso_duration}: {e}")
        return None


def parse_published_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def best_thumbnail(snippet: Dict[str, Any]) -> Optional[str]:
    thumbnails = snippet.get("thumbnails", {})
    for size in ("maxres", "high", "medium", "default"):
        url = thumbnails.get(size, {}).get("url")
        if url:
            return url
    return None


def _optional_int(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


class YouTubeApiVideoLister:
    """
    Lists channel uploads through the YouTube Data API.

    Example:
        >>> lister = YouTubeApiVideoLister(api_key="...")
        >>> videos = await lister.list_channel_videos("https://www.youtube.com/@Fireship", 10)
    """

    def __init__(self, api_key: Optional[str] = None, client: Any = None):
        """
        Args:
            api_key: YouTube Data API key. If None, uses settings.YOUTUBE_API_KEY
            client: Prebuilt API client (tests)

        Raises:
            ConfigurationError: If no API key is provided or found in settings
        """
        self.api_key = api_key or settings.YOUTUBE_API_KEY
        if client is None and not self.api_key:
            raise ConfigurationError(
                "YouTube API key is required. Set YOUTUBE_API_KEY in environment variables."
            )

        self._youtube = client or build(
            "youtube",
            "v3",
            developerKey=self.api_key,
            cache_discovery=False,
        )

    async def list_channel_videos(
        self, channel_url: str, max_count: Optional[int] = None
    ) -> List[VideoListing]:
        reference = parse_channel_reference(channel_url)
        channel_id = await self._call(self._resolve_channel_id, reference)
        videos = await self._call(self._list_uploads, channel_id, max_count)
        logger.info(f"Fetched {len(videos)} videos from channel {channel_id}")
        return videos

    async def _call(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except HttpError as e:
            status = e.resp.status
            if status == 403:
                raise ProviderError("youtube", "YouTube API quota exceeded", status) from e
            logger.error(f"YouTube API error: {e}")
            raise ProviderError("youtube", str(e), status) from e

    # ========================================
    # Channel Resolution
    # ========================================

    def _resolve_channel_id(self, reference: ChannelReference) -> str:
        if reference.kind == "channel":
            return reference.identifier

        if reference.kind == "custom":
            response = self._youtube.search().list(
                part="snippet",
                q=reference.identifier,
                type="channel",
                maxResults=1,
            ).execute()
            items = response.get("items") or []
            if not items:
                raise InvalidChannelReference(reference.url, f"Channel not found: {reference.url}")
            return items[0]["snippet"]["channelId"]

        lookup = {"forHandle": reference.identifier} if reference.kind == "handle" else {
            "forUsername": reference.identifier
        }
        response = self._youtube.channels().list(part="id", **lookup).execute()
        items = response.get("items") or []
        if not items:
            raise InvalidChannelReference(reference.url, f"Channel not found: {reference.url}")
        return items[0]["id"]

    # ========================================
    # Uploads
    # ========================================

    def _list_uploads(self, channel_id: str, max_count: Optional[int]) -> List[VideoListing]:
        channel_response = self._youtube.channels().list(
            part="contentDetails",
            id=channel_id,
        ).execute()
        if not channel_response.get("items"):
            raise InvalidChannelReference(channel_id, f"Channel not found: {channel_id}")

        uploads_playlist_id = (
            channel_response["items"][0]["contentDetails"]["relatedPlaylists"]["uploads"]
        )

        page_size = MAX_PAGE_SIZE if max_count is None else min(max_count, MAX_PAGE_SIZE)
        request = self._youtube.playlistItems().list(
            part="snippet,contentDetails",
            playlistId=uploads_playlist_id,
            maxResults=page_size,
        )

        videos: List[VideoListing] = []
        while request is not None and (max_count is None or len(videos) < max_count):
            response = request.execute()
            page_ids = [item["contentDetails"]["videoId"] for item in response.get("items", [])]
            if max_count is not None:
                page_ids = page_ids[: max_count - len(videos)]

            videos.extend(self._video_details(page_ids))
            request = self._youtube.playlistItems().list_next(request, response)

        return videos

    def _video_details(self, video_ids: List[str]) -> List[VideoListing]:
        if not video_ids:
            return []

        response = self._youtube.videos().list(
            part="snippet,contentDetails,statistics",
            id=",".join(video_ids),
        ).execute()
        by_id = {item["id"]: item for item in response.get("items", [])}

        # Preserve playlist order; videos().list does not
        return [self._parse_video(by_id[vid]) for vid in video_ids if vid in by_id]

    @staticmethod
    def _parse_video(item: Dict[str, Any]) -> VideoListing:
        snippet = item.get("snippet", {})
        content_details = item.get("contentDetails", {})
        statistics = item.get("statistics", {})

        return VideoListing(
            external_id=item["id"],
            title=snippet.get("title", ""),
            description=snippet.get("description"),
            published_at=parse_published_at(snippet.get("publishedAt")),
            duration_seconds=parse_duration_seconds(content_details.get("duration")),
            view_count=_optional_int(statistics.get("viewCount")),
            like_count=_optional_int(statistics.get("likeCount")),
            thumbnail_url=best_thumbnail(snippet),
        )
