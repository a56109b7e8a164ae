"""
yt-dlp video source.

Lists channel uploads with the yt-dlp library (flat playlist extraction in
a worker thread) and downloads subtitles with the yt-dlp command line in a
subprocess, so a hung download can be killed when its timeout expires.

Subtitle fetching:
------------------
1. Download subtitles (manual + auto, English) and the info JSON into a
   temporary directory
2. If no subtitle file appeared, retry without the language restriction
3. Pick the best file: ``.en.vtt``, ``.en.srt``, any ``.vtt``, any ``.srt``
4. Flatten the captions into plain text

The temporary directory is removed on every path, including timeouts and
the fallback attempt.
"""

import asyncio
import json
import logging
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional, Sequence

import yt_dlp
from yt_dlp.utils import DownloadError

from tubeindex.core.config import settings
from tubeindex.core.exceptions import TranscriptUnavailable
from tubeindex.schemas.youtube import FetchedTranscript, VideoListing
from tubeindex.services.sources.captions import captions_to_text
from tubeindex.services.sources.urls import parse_channel_reference, parse_upload_date


logger = logging.getLogger(__name__)

SUBTITLE_PREFERENCE = ("*.en.vtt", "*.en.srt", "*.vtt", "*.srt")


def pick_subtitle_file(directory: Path) -> Optional[Path]:
    """Return the preferred subtitle file in ``directory``, if any."""
    for pattern in SUBTITLE_PREFERENCE:
        matches = sorted(directory.glob(pattern))
        if matches:
            return matches[0]
    return None


def _best_thumbnail(entry: dict[str, Any]) -> Optional[str]:
    if entry.get("thumbnail"):
        return entry["thumbnail"]
    thumbnails = entry.get("thumbnails") or []
    return thumbnails[-1].get("url") if thumbnails else None


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class YtDlpVideoSource:
    """
    Video lister and transcript fetcher backed by yt-dlp.

    Usage:
    ------
    source = YtDlpVideoSource()
    videos = await source.list_channel_videos("https://www.youtube.com/@mkbhd", max_count=5)
    transcript = await source.fetch_transcript(videos[0])
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        languages: Optional[Sequence[str]] = None,
        command: Optional[Sequence[str]] = None,
    ):
        """
        Args:
            timeout: Seconds allowed per subtitle download (default from settings)
            languages: Subtitle languages for the first attempt (default from settings)
            command: yt-dlp command prefix (default: current interpreter, ``-m yt_dlp``)
        """
        self.timeout = timeout or settings.TRANSCRIPT_FETCH_TIMEOUT
        self.languages = list(languages or settings.YOUTUBE_PREFERRED_TRANSCRIPT_LANGUAGES)
        self.command = list(command or (sys.executable, "-m", "yt_dlp"))

    # ========================================
    # Listing
    # ========================================

    async def list_channel_videos(
        self, channel_url: str, max_count: Optional[int] = None
    ) -> list[VideoListing]:
        """
        List a channel's uploads, newest first.

        Raises:
            InvalidChannelReference: If the URL is not a channel reference
        """
        reference = parse_channel_reference(channel_url)
        entries = await asyncio.to_thread(
            self._extract_flat_entries, reference.videos_url, max_count
        )

        videos = []
        for entry in entries:
            listing = self._entry_to_listing(entry)
            if listing is not None:
                videos.append(listing)
            if max_count is not None and len(videos) >= max_count:
                break

        logger.info(f"Listed {len(videos)} videos for {reference.url}")
        return videos

    def _extract_flat_entries(self, url: str, max_count: Optional[int]) -> list[dict[str, Any]]:
        opts: dict[str, Any] = {
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
            "extract_flat": "in_playlist",
        }
        if max_count is not None:
            opts["playlistend"] = max_count

        with yt_dlp.YoutubeDL(opts) as ydl:
            info = ydl.extract_info(url, download=False)

        return list((info or {}).get("entries") or [])

    @staticmethod
    def _entry_to_listing(entry: dict[str, Any]) -> Optional[VideoListing]:
        video_id = entry.get("id")
        if not video_id or len(video_id) > 20 or entry.get("_type") == "playlist":
            return None

        return VideoListing(
            external_id=video_id,
            title=entry.get("title") or "",
            description=entry.get("description"),
            published_at=parse_upload_date(entry.get("upload_date")),
            duration_seconds=_as_int(entry.get("duration")),
            view_count=_as_int(entry.get("view_count")),
            like_count=_as_int(entry.get("like_count")),
            thumbnail_url=_best_thumbnail(entry),
        )

    # ========================================
    # Transcripts
    # ========================================

    async def fetch_transcript(self, video: VideoListing) -> Optional[FetchedTranscript]:
        """
        Download and flatten a video's subtitles.

        Returns:
            FetchedTranscript, or None if the video has no subtitles

        Raises:
            TranscriptUnavailable: On timeout or download failure
        """
        with tempfile.TemporaryDirectory(prefix="tubeindex-") as tmp:
            directory = Path(tmp)
            output = str(directory / "%(id)s.%(ext)s")

            attempts = (
                ["--sub-langs", ",".join(self.languages)],
                [],
            )
            subtitle_file = None
            for language_args in attempts:
                args = [
                    "--skip-download",
                    "--write-subs",
                    "--write-auto-subs",
                    "--sub-format", "vtt/srt/best",
                    "--write-info-json",
                    "--no-warnings",
                    *language_args,
                    "-o", output,
                    video.video_url,
                ]
                returncode, stderr = await self._run(video.external_id, args)
                if returncode != 0:
                    logger.warning(
                        f"yt-dlp exited with {returncode} for {video.external_id}: {stderr[:200]}"
                    )

                subtitle_file = pick_subtitle_file(directory)
                if subtitle_file is not None:
                    break

            if subtitle_file is None:
                logger.info(f"No subtitles available for video {video.external_id}")
                return None

            text = captions_to_text(subtitle_file.read_text(encoding="utf-8", errors="replace"))
            metadata = self._load_info_json(directory, video.external_id)

        if not text.strip():
            return None

        return FetchedTranscript(
            transcript_text=text,
            title=metadata.get("title"),
            description=metadata.get("description"),
            published_at=parse_upload_date(metadata.get("upload_date")),
            duration_seconds=_as_int(metadata.get("duration")),
            view_count=_as_int(metadata.get("view_count")),
            like_count=_as_int(metadata.get("like_count")),
            thumbnail_url=metadata.get("thumbnail"),
            language=subtitle_file.suffixes[-2].lstrip(".") if len(subtitle_file.suffixes) > 1 else None,
        )

    async def _run(self, video_id: str, args: list[str]) -> tuple[int, str]:
        """Run yt-dlp, killing it if it outlives the timeout."""
        process = await asyncio.create_subprocess_exec(
            *self.command,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise TranscriptUnavailable(video_id, f"yt-dlp timed out after {self.timeout}s")

        return process.returncode, (stderr or b"").decode("utf-8", errors="replace")

    @staticmethod
    def _load_info_json(directory: Path, video_id: str) -> dict[str, Any]:
        path = directory / f"{video_id}.info.json"
        if not path.exists():
            return {}
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read yt-dlp metadata for {video_id}: {e}")
            return {}


async def probe_video(url: str) -> dict[str, Any]:
    """
    Fetch a single video's metadata without downloading anything.

    Raises:
        TranscriptUnavailable: If yt-dlp cannot resolve the video
    """
    def _extract() -> dict[str, Any]:
        with yt_dlp.YoutubeDL({"quiet": True, "skip_download": True}) as ydl:
            return ydl.extract_info(url, download=False) or {}

    try:
        return await asyncio.to_thread(_extract)
    except DownloadError as e:
        raise TranscriptUnavailable(url, str(e)) from e
