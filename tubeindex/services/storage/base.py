"""
Persistence port for the transcript index.

Indexing, search and maintenance services only talk to storage through
the ``IndexStore`` protocol, which is handed to them at construction.
``SqlAlchemyIndexStore`` is the PostgreSQL/pgvector implementation; tests
use an in-memory implementation of the same protocol.
"""

from datetime import datetime
from typing import Any, NamedTuple, Optional, Protocol, Sequence

from tubeindex.models.youtube import Channel, IndexStatus, TranscriptChunk, Video
from tubeindex.schemas.youtube import (
    FetchedTranscript,
    KeywordRecord,
    TranscriptSegment,
    VideoListing,
)


class ScoredChunk(NamedTuple):
    """Vector search candidate."""

    chunk: TranscriptChunk
    similarity: float


class KeywordHit(NamedTuple):
    """Keyword search candidate: one matching keyword row and its chunk."""

    chunk: TranscriptChunk
    keyword: str
    confidence: int


class IndexCounts(NamedTuple):
    """Row counts used by the status report."""

    channels: int
    videos: int
    chunks: int
    chunks_with_embeddings: int


class IndexStore(Protocol):
    """Storage operations used by indexing, search and maintenance."""

    # Channels
    async def upsert_channel(
        self, external_channel_id: str, channel_name: str, channel_url: str
    ) -> Channel: ...

    async def get_channel(self, channel_id: int) -> Optional[Channel]: ...

    async def get_channel_by_external_id(self, external_channel_id: str) -> Optional[Channel]: ...

    async def resolve_channel_key(self, external_channel_id: str) -> Optional[int]: ...

    async def mark_channel_indexed(self, channel_id: int, indexed_at: Optional[datetime] = None) -> None: ...

    async def count_channel_videos(self, channel_id: int) -> int: ...

    # Videos
    async def upsert_video(
        self, channel_id: int, listing: VideoListing, transcript: FetchedTranscript
    ) -> Video: ...

    async def get_video(self, video_id: int) -> Optional[Video]: ...

    # Chunks and keywords
    async def delete_video_chunks(self, video_id: int) -> int: ...

    async def insert_chunks(
        self, video_id: int, segments: Sequence[TranscriptSegment]
    ) -> list[TranscriptChunk]: ...

    async def insert_keywords(
        self, video_id: int, chunk_id: Optional[int], keywords: Sequence[KeywordRecord]
    ) -> int: ...

    async def set_chunk_embedding(self, chunk_id: int, embedding: list[float]) -> None: ...

    async def list_chunks_missing_embeddings(self, limit: int) -> list[TranscriptChunk]: ...

    # Index status
    async def create_index_status(self, channel_id: int) -> IndexStatus: ...

    async def update_index_status(self, status_id: int, **values: Any) -> None: ...

    async def get_latest_index_status(self, channel_id: int) -> Optional[IndexStatus]: ...

    async def list_recent_index_statuses(self, limit: int = 5) -> list[IndexStatus]: ...

    # Search
    async def find_similar_chunks(
        self,
        query_embedding: list[float],
        channel_id: Optional[int],
        limit: int,
        similarity_threshold: float,
    ) -> list[ScoredChunk]: ...

    async def find_keyword_hits(
        self, query_keywords: Sequence[str], channel_id: Optional[int], limit: int
    ) -> list[KeywordHit]: ...

    async def find_chunk_keyword_matches(
        self, chunk_id: int, query_keywords: Sequence[str]
    ) -> list[str]: ...

    async def log_search_query(
        self, channel_id: int, query: str, query_embedding: Optional[list[float]] = None
    ) -> int: ...

    async def complete_search_query_log(
        self, log_id: int, results_count: int, execution_time_ms: int
    ) -> None: ...

    # Statistics
    async def count_index_contents(self) -> IndexCounts: ...


def build_video_values(
    channel_id: int, listing: VideoListing, transcript: FetchedTranscript
) -> dict[str, Any]:
    """
    Column values for a video upsert.

    Fields refreshed by the transcript fetch win over the listing's values.
    """
    text = transcript.transcript_text
    return {
        "external_video_id": listing.external_id,
        "channel_id": channel_id,
        "title": (transcript.title or listing.title or listing.external_id)[:500],
        "description": transcript.description or listing.description,
        "published_at": transcript.published_at or listing.published_at,
        "duration_seconds": (
            transcript.duration_seconds
            if transcript.duration_seconds is not None
            else listing.duration_seconds
        ),
        "view_count": transcript.view_count if transcript.view_count is not None else listing.view_count,
        "like_count": transcript.like_count if transcript.like_count is not None else listing.like_count,
        "thumbnail_url": transcript.thumbnail_url or listing.thumbnail_url,
        "video_url": listing.video_url,
        "transcript": text,
        "transcript_length": len(text),
        "transcript_available": bool(text.strip()),
    }
