"""
Transcript fetching via youtube-transcript-api.

Fallback order:
1. Transcript in a preferred language (manual before auto-generated)
2. Manual transcript in any language
3. Auto-generated transcript in any language

Videos with disabled or missing captions yield ``None``; every other
retrieval failure (rate limiting, IP blocks, parse errors) is raised as
``TranscriptUnavailable`` so callers can fall back to another fetcher.
"""

import asyncio
import logging
from typing import List, Optional

from youtube_transcript_api import YouTubeTranscriptApi
from youtube_transcript_api._errors import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    TranscriptsDisabled,
    VideoUnavailable,
)

from tubeindex.core.config import settings
from tubeindex.core.exceptions import TranscriptUnavailable
from tubeindex.schemas.youtube import FetchedTranscript, VideoListing
from tubeindex.services.sources.captions import clean_caption_text


logger = logging.getLogger(__name__)


def join_snippets(snippets) -> str:
    """Join caption snippets into one string, dropping sound markers."""
    parts = []
    for snippet in snippets:
        text = clean_caption_text(getattr(snippet, "text", "") or "")
        if text:
            parts.append(text)
    return " ".join(parts)


class TranscriptApiFetcher:
    """
    Fetches captions with youtube-transcript-api.

    Only the transcript text and its language are returned; listing
    metadata is left untouched.

    Example:
        >>> fetcher = TranscriptApiFetcher()
        >>> transcript = await fetcher.fetch_transcript(listing)
        >>> print(transcript.language, len(transcript.transcript_text))
    """

    def __init__(
        self,
        preferred_languages: Optional[List[str]] = None,
        api: Optional[YouTubeTranscriptApi] = None,
    ):
        self.preferred_languages = preferred_languages or settings.YOUTUBE_PREFERRED_TRANSCRIPT_LANGUAGES
        self._api = api or YouTubeTranscriptApi()

    async def fetch_transcript(self, video: VideoListing) -> Optional[FetchedTranscript]:
        video_id = video.external_id
        try:
            fetched = await asyncio.to_thread(self._fetch_with_fallbacks, video_id)
        except (TranscriptsDisabled, NoTranscriptFound, VideoUnavailable) as e:
            logger.info(f"No transcript for video {video_id}: {type(e).__name__}")
            return None
        except CouldNotRetrieveTranscript as e:
            logger.error(f"Transcript retrieval failed for {video_id}: {type(e).__name__}")
            raise TranscriptUnavailable(video_id, type(e).__name__) from e

        if fetched is None:
            return None

        text = join_snippets(fetched)
        if not text:
            return None

        return FetchedTranscript(
            transcript_text=text,
            language=getattr(fetched, "language_code", None),
        )

    def _fetch_with_fallbacks(self, video_id: str):
        try:
            return self._api.fetch(video_id, languages=self.preferred_languages)
        except NoTranscriptFound:
            logger.debug(f"No preferred-language transcript for {video_id}, trying any language")

        transcripts = list(self._api.list(video_id))
        manual = [t for t in transcripts if not t.is_generated]
        generated = [t for t in transcripts if t.is_generated]

        for transcript in manual + generated:
            logger.info(
                f"Using {'auto-generated' if transcript.is_generated else 'manual'} transcript "
                f"in non-preferred language {transcript.language_code} for video {video_id}"
            )
            return transcript.fetch()

        return None
