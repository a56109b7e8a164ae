"""
Collaborator contracts for video listing and transcript fetching.

The indexing orchestrator depends only on these protocols. Concrete
sources live next to this module:

- ytdlp.YtDlpVideoSource: yt-dlp listing and subtitle download
- transcript_api.TranscriptApiFetcher: youtube-transcript-api captions
- youtube_api.YouTubeApiVideoLister: YouTube Data API v3 listing
"""

import logging
from typing import Optional, Protocol, Sequence

from tubeindex.core.exceptions import ConfigurationError, TranscriptUnavailable
from tubeindex.schemas.youtube import FetchedTranscript, VideoListing


logger = logging.getLogger(__name__)


class VideoLister(Protocol):
    """Enumerates the uploads of a channel."""

    async def list_channel_videos(
        self, channel_url: str, max_count: Optional[int] = None
    ) -> list[VideoListing]:
        ...


class TranscriptFetcher(Protocol):
    """
    Fetches the transcript (and refreshed metadata) of one video.

    Returns ``None`` when the video has no transcript; may also raise
    ``TranscriptUnavailable`` when fetching failed.
    """

    async def fetch_transcript(self, video: VideoListing) -> Optional[FetchedTranscript]:
        ...


class FallbackTranscriptFetcher:
    """
    Tries several transcript fetchers in order and returns the first
    non-empty transcript.

    Example:
        >>> fetcher = FallbackTranscriptFetcher([TranscriptApiFetcher(), YtDlpVideoSource()])
        >>> transcript = await fetcher.fetch_transcript(listing)
    """

    def __init__(self, fetchers: Sequence[TranscriptFetcher]):
        if not fetchers:
            raise ValueError("At least one transcript fetcher is required")
        self.fetchers = list(fetchers)

    async def fetch_transcript(self, video: VideoListing) -> Optional[FetchedTranscript]:
        last_error: Optional[Exception] = None

        for fetcher in self.fetchers:
            name = type(fetcher).__name__
            try:
                transcript = await fetcher.fetch_transcript(video)
            except ConfigurationError:
                raise
            except Exception as e:
                logger.warning(f"{name} failed for video {video.external_id}: {e}")
                last_error = e
                continue

            if transcript is not None and not transcript.is_empty:
                logger.debug(f"Transcript for {video.external_id} obtained via {name}")
                return transcript

        if last_error is not None:
            raise TranscriptUnavailable(video.external_id, str(last_error))
        return None
