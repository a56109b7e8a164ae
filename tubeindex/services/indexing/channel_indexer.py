"""
Channel indexing orchestrator.

Run State Machine:
------------------
pending (0%) -> indexing_videos (10%, then 20-50% as batches finish)
-> completed (100%), with failed reachable from any non-terminal state.

Per Run:
--------
1. Parse the channel reference (invalid -> InvalidChannelReference, nothing written)
2. Upsert the channel, create a fresh IndexStatus row
3. List candidate videos, truncated to ``max_videos``
4. Index videos in concurrent batches (INDEX_VIDEO_BATCH_SIZE at a time)
5. Mark the channel indexed, complete the status row

Per Video:
----------
fetch transcript -> upsert video -> delete old chunks/keywords -> segment
-> insert chunks -> keywords + embedding per chunk, INDEX_CHUNK_BATCH_SIZE
chunks at a time

A failure inside one video is logged and tallied; it never fails the run.
Configuration errors (missing credentials) and anything raised outside the
per-video boundary fail the run: the status row is set to ``failed`` and
``RunFailure`` is raised to the caller.
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Optional, Sequence, Set

from tubeindex.core.config import settings
from tubeindex.core.exceptions import (
    ConfigurationError,
    IndexingAlreadyRunning,
    ProviderError,
    RunFailure,
    TranscriptUnavailable,
)
from tubeindex.core.logging import get_logger
from tubeindex.db.base import utc_now
from tubeindex.models.youtube import IndexState, TranscriptChunk
from tubeindex.schemas.youtube import IndexRunSummary, VideoListing
from tubeindex.services.processors.embedder import EmbeddingService
from tubeindex.services.processors.keyword_extractor import KeywordExtractor, round_half_up
from tubeindex.services.processors.segmenter import TranscriptSegmenter
from tubeindex.services.sources.base import TranscriptFetcher, VideoLister
from tubeindex.services.sources.urls import parse_channel_reference
from tubeindex.services.storage.base import IndexStore

logger = get_logger(__name__)

LISTED_PROGRESS = 10
VIDEO_PHASE_START = 20
VIDEO_PHASE_SPAN = 30
COMPLETED_PROGRESS = 100


class VideoOutcome(str, enum.Enum):
    INDEXED = "indexed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class VideoResult:
    outcome: VideoOutcome
    chunks: int = 0
    embedded_chunks: int = 0


def video_phase_progress(processed_videos: int, total_videos: int) -> int:
    """
    Progress after ``processed_videos`` of ``total_videos``, within 20-50%.

    Example:
        >>> video_phase_progress(3, 10)
        29
    """
    if total_videos <= 0:
        return VIDEO_PHASE_START + VIDEO_PHASE_SPAN
    return round_half_up(VIDEO_PHASE_START + processed_videos / total_videos * VIDEO_PHASE_SPAN)


def _raise_first_error(results: Sequence[object]) -> None:
    for result in results:
        if isinstance(result, BaseException):
            raise result


class ChannelIndexer:
    """
    Indexes a channel's videos into searchable transcript chunks.

    Usage:
    ------
    indexer = ChannelIndexer(
        store=store,
        video_lister=YtDlpVideoSource(),
        transcript_fetcher=FallbackTranscriptFetcher([...]),
        segmenter=TranscriptSegmenter(),
        keyword_extractor=KeywordExtractor(TransformersEntityRecognizer()),
        embedder=EmbeddingService(),
    )
    summary = await indexer.index_channel("https://www.youtube.com/@mkbhd", max_videos=20)
    """

    def __init__(
        self,
        store: IndexStore,
        video_lister: VideoLister,
        transcript_fetcher: TranscriptFetcher,
        segmenter: TranscriptSegmenter,
        keyword_extractor: KeywordExtractor,
        embedder: EmbeddingService,
        video_batch_size: Optional[int] = None,
        chunk_batch_size: Optional[int] = None,
    ):
        self.store = store
        self.video_lister = video_lister
        self.transcript_fetcher = transcript_fetcher
        self.segmenter = segmenter
        self.keyword_extractor = keyword_extractor
        self.embedder = embedder
        self.video_batch_size = video_batch_size or settings.INDEX_VIDEO_BATCH_SIZE
        self.chunk_batch_size = chunk_batch_size or settings.INDEX_CHUNK_BATCH_SIZE

        # External channel ids with a run in progress
        self._active: Set[str] = set()

    def is_running(self, channel_key: str) -> bool:
        return channel_key in self._active

    async def index_channel(
        self, channel_url: str, max_videos: Optional[int] = None
    ) -> IndexRunSummary:
        """
        Index (or re-index) a channel.

        Args:
            channel_url: Channel URL or handle
            max_videos: Only index the newest ``max_videos`` uploads

        Returns:
            IndexRunSummary with per-video tallies

        Raises:
            InvalidChannelReference: Before anything is written
            IndexingAlreadyRunning: If this channel is already being indexed
            RunFailure: If the run failed; the status row is set to failed
        """
        reference = parse_channel_reference(channel_url)
        channel_key = reference.identifier

        if channel_key in self._active:
            raise IndexingAlreadyRunning(channel_key)

        self._active.add(channel_key)
        try:
            return await self._run(channel_key, reference.url, max_videos)
        finally:
            self._active.discard(channel_key)

    async def _run(
        self, channel_key: str, channel_url: str, max_videos: Optional[int]
    ) -> IndexRunSummary:
        channel = await self.store.upsert_channel(channel_key, channel_key, channel_url)
        status = await self.store.create_index_status(channel.id)
        log = logger.bind(channel_id=channel.id, external_channel_id=channel_key, status_id=status.id)
        log.info("indexing_started", max_videos=max_videos)

        summary = IndexRunSummary(
            channel_id=channel.id,
            external_channel_id=channel_key,
            status_id=status.id,
        )
        progress = 0
        processed_chunks = 0

        try:
            videos = await self.video_lister.list_channel_videos(channel_url, max_videos)
            if max_videos is not None:
                videos = videos[:max_videos]

            summary.total_videos = len(videos)
            progress = LISTED_PROGRESS
            await self.store.update_index_status(
                status.id,
                status=IndexState.INDEXING_VIDEOS,
                progress=progress,
                total_videos=len(videos),
            )
            log.info("videos_listed", total_videos=len(videos))

            for start in range(0, len(videos), self.video_batch_size):
                batch = videos[start:start + self.video_batch_size]
                results = await asyncio.gather(
                    *(self._index_video_safely(channel.id, video) for video in batch),
                    return_exceptions=True,
                )
                _raise_first_error(results)

                for result in results:
                    summary.processed_videos += 1
                    summary.total_chunks += result.chunks
                    processed_chunks += result.embedded_chunks
                    if result.outcome is VideoOutcome.INDEXED:
                        summary.succeeded_videos += 1
                    elif result.outcome is VideoOutcome.SKIPPED:
                        summary.skipped_videos += 1
                    else:
                        summary.failed_videos += 1

                progress = max(progress, video_phase_progress(summary.processed_videos, len(videos)))
                await self.store.update_index_status(
                    status.id,
                    progress=progress,
                    processed_videos=summary.processed_videos,
                    total_chunks=summary.total_chunks,
                    processed_chunks=processed_chunks,
                )
                log.info(
                    "video_batch_completed",
                    processed_videos=summary.processed_videos,
                    total_videos=len(videos),
                    progress=progress,
                )

            await self.store.mark_channel_indexed(channel.id)
            await self.store.update_index_status(
                status.id,
                status=IndexState.COMPLETED,
                progress=COMPLETED_PROGRESS,
                completed_at=utc_now(),
            )

        except Exception as e:
            log.error("indexing_failed", error=str(e), error_type=type(e).__name__, progress=progress)
            await self._mark_failed(status.id, str(e) or type(e).__name__)
            raise RunFailure(channel_key, str(e) or type(e).__name__) from e

        log.info(
            "indexing_completed",
            succeeded=summary.succeeded_videos,
            skipped=summary.skipped_videos,
            failed=summary.failed_videos,
            chunks=summary.total_chunks,
        )
        return summary

    async def _mark_failed(self, status_id: int, message: str) -> None:
        # Progress is left at its last value so it never decreases
        try:
            await self.store.update_index_status(
                status_id,
                status=IndexState.FAILED,
                error_message=message,
                completed_at=utc_now(),
            )
        except Exception as e:
            logger.error("index_status_update_failed", status_id=status_id, error=str(e))

    # ========================================
    # Per Video
    # ========================================

    async def _index_video_safely(self, channel_id: int, listing: VideoListing) -> VideoResult:
        try:
            return await self.index_video(channel_id, listing)
        except ConfigurationError:
            raise
        except TranscriptUnavailable as e:
            logger.warning("transcript_unavailable", video=listing.external_id, reason=e.reason)
            return VideoResult(VideoOutcome.SKIPPED)
        except Exception as e:
            logger.error(
                "video_indexing_failed",
                video=listing.external_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return VideoResult(VideoOutcome.FAILED)

    async def index_video(self, channel_id: int, listing: VideoListing) -> VideoResult:
        """
        Fetch, segment, enrich and persist one video.

        Existing chunks and keywords of the video are replaced.
        """
        transcript = await self.transcript_fetcher.fetch_transcript(listing)
        if transcript is None or transcript.is_empty:
            logger.info("video_skipped_no_transcript", video=listing.external_id)
            return VideoResult(VideoOutcome.SKIPPED)

        video = await self.store.upsert_video(channel_id, listing, transcript)
        await self.store.delete_video_chunks(video.id)

        segments = self.segmenter.segment(transcript.transcript_text)
        chunks = await self.store.insert_chunks(video.id, segments)

        embedded = 0
        for start in range(0, len(chunks), self.chunk_batch_size):
            batch = chunks[start:start + self.chunk_batch_size]
            results = await asyncio.gather(
                *(self._enrich_chunk(video.id, chunk) for chunk in batch),
                return_exceptions=True,
            )
            _raise_first_error(results)
            embedded += sum(1 for ok in results if ok)

        logger.info(
            "video_indexed",
            video_id=video.id,
            video=listing.external_id,
            chunks=len(chunks),
            embedded_chunks=embedded,
        )
        return VideoResult(VideoOutcome.INDEXED, chunks=len(chunks), embedded_chunks=embedded)

    async def _enrich_chunk(self, video_id: int, chunk: TranscriptChunk) -> bool:
        """
        Persist keywords and the embedding of one chunk.

        Returns:
            True if the chunk's embedding was stored
        """
        try:
            extraction = await self.keyword_extractor.extract(chunk.content)
            records = self.keyword_extractor.to_keyword_records(extraction)
        except ProviderError as e:
            logger.warning("keyword_extraction_failed", chunk_id=chunk.id, error=str(e))
            records = []

        if records:
            try:
                await self.store.insert_keywords(video_id, chunk.id, records)
            except Exception as e:
                logger.error(
                    "keyword_persist_failed",
                    chunk_id=chunk.id,
                    keywords=len(records),
                    error=str(e),
                    error_type=type(e).__name__,
                )

        try:
            embedding = await self.embedder.embed_text(chunk.content)
        except ProviderError as e:
            logger.warning("chunk_embedding_failed", chunk_id=chunk.id, error=str(e))
            return False

        try:
            await self.store.set_chunk_embedding(chunk.id, embedding)
        except Exception as e:
            logger.error(
                "embedding_persist_failed",
                chunk_id=chunk.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        return True
