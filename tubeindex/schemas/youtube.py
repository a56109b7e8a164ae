"""
Pydantic schemas for the transcript index.

These schemas define the records exchanged with external collaborators
(video listers, transcript fetchers, model providers) and the structures
returned to callers of indexing and search.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tubeindex.core.config import settings


# ========================================
# Collaborator Records
# ========================================

class VideoListing(BaseModel):
    """A video as reported by a channel video lister."""

    external_id: str = Field(..., min_length=1, max_length=20)
    title: str = ""
    description: Optional[str] = None
    published_at: Optional[datetime] = None
    duration_seconds: Optional[int] = Field(None, ge=0)
    view_count: Optional[int] = Field(None, ge=0)
    like_count: Optional[int] = Field(None, ge=0)
    thumbnail_url: Optional[str] = None
    video_url: Optional[str] = None

    @model_validator(mode="after")
    def default_video_url(self) -> "VideoListing":
        """Fill in the watch URL when the lister did not supply one."""
        if not self.video_url:
            self.video_url = f"https://www.youtube.com/watch?v={self.external_id}"
        return self


class FetchedTranscript(BaseModel):
    """
    Transcript and refreshed metadata for one video.

    Metadata fields are optional and only override the listing's values
    when present.
    """

    transcript_text: str
    title: Optional[str] = None
    description: Optional[str] = None
    published_at: Optional[datetime] = None
    duration_seconds: Optional[int] = Field(None, ge=0)
    view_count: Optional[int] = Field(None, ge=0)
    like_count: Optional[int] = Field(None, ge=0)
    thumbnail_url: Optional[str] = None
    language: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.transcript_text.strip()


class TranscriptSegment(BaseModel):
    """One chunk produced by the segmenter."""

    chunk_index: int = Field(..., ge=0)
    text: str
    start_time: int = Field(..., ge=0)
    end_time: int = Field(..., ge=0)
    token_count: int = Field(..., ge=0)


class EntityHit(BaseModel):
    """A single named-entity recognition hit."""

    word: str
    entity_type: str
    score: float = Field(..., ge=0.0, le=1.0)


class KeywordExtractionResult(BaseModel):
    """Deduplicated, score-sorted entity hits plus a by-category grouping."""

    keywords: List[EntityHit] = Field(default_factory=list)
    grouped_by_type: Dict[str, List[EntityHit]] = Field(default_factory=dict)

    @property
    def total_count(self) -> int:
        return len(self.keywords)


class KeywordRecord(BaseModel):
    """Keyword row ready to be persisted."""

    keyword: str = Field(..., min_length=1, max_length=200)
    entity_type: Optional[str] = Field(None, max_length=50)
    confidence: int = Field(..., ge=0, le=100)
    frequency: int = Field(1, ge=1)
    relevance: int = Field(..., ge=0, le=100)


# ========================================
# Search
# ========================================

class SearchOptions(BaseModel):
    """Options for a hybrid search call."""

    channel_scope: Optional[str] = Field(
        None,
        description="External channel handle/id restricting the search",
    )
    limit: int = Field(default_factory=lambda: settings.SEARCH_DEFAULT_LIMIT, ge=1, le=100)
    similarity_threshold: float = Field(
        default_factory=lambda: settings.SEARCH_SIMILARITY_THRESHOLD,
        ge=0.0,
        le=1.0,
    )
    include_keywords: bool = True

    @field_validator("channel_scope")
    @classmethod
    def strip_scope(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lstrip("@")
        return v or None


class SearchResultVideo(BaseModel):
    """Video fields attached to a search result."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    external_video_id: str
    title: str
    video_url: str
    thumbnail_url: Optional[str] = None
    published_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None


class SearchResultChannel(BaseModel):
    """Channel display fields attached to a search result."""

    model_config = ConfigDict(from_attributes=True)

    channel_name: str
    channel_url: str


class SearchResult(BaseModel):
    """A ranked transcript chunk with its video and channel."""

    chunk_id: int
    chunk_index: int
    content: str
    video: SearchResultVideo
    channel: SearchResultChannel
    relevance_score: float = Field(..., ge=0.0, le=1.0)
    similarity: Optional[float] = Field(
        None,
        description="Cosine similarity; None for keyword-path results",
    )
    matched_keywords: List[str] = Field(default_factory=list)
    start_time: int
    end_time: int

    @property
    def timestamped_url(self) -> str:
        """Watch URL that starts playback at the chunk's start time."""
        return f"{self.video.video_url}&t={self.start_time}s"


# ========================================
# Indexing Results
# ========================================

class IndexRunSummary(BaseModel):
    """Outcome of a completed indexing run."""

    channel_id: int
    external_channel_id: str
    status_id: int
    total_videos: int = 0
    processed_videos: int = 0
    succeeded_videos: int = 0
    skipped_videos: int = 0
    failed_videos: int = 0
    total_chunks: int = 0


class ChannelIndexInfo(BaseModel):
    """Index state of a channel as seen by callers."""

    is_indexed: bool
    video_count: int = 0
    channel_name: Optional[str] = None
    last_indexed_at: Optional[datetime] = None


class IndexingEstimate(BaseModel):
    """Rough wall-clock estimate for indexing a number of videos."""

    video_count: int
    estimated_minutes: int
    estimated_hours: int


class IndexStatusSnapshot(BaseModel):
    """Read-only view of an IndexStatus row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    channel_id: int
    status: str
    progress: int
    total_videos: int
    processed_videos: int
    total_chunks: int
    processed_chunks: int
    error_message: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def coerce_state(cls, v):
        return getattr(v, "value", v)


class EmbeddingRegenerationResult(BaseModel):
    """Counts from a missing-embedding regeneration pass."""

    processed: int = 0
    errors: int = 0
    total: int = 0


class DatabaseStatusReport(BaseModel):
    """Health overview of the index contents."""

    channels: int = 0
    videos: int = 0
    chunks: int = 0
    chunks_with_embeddings: int = 0
    chunks_without_embeddings: int = 0
    embedding_coverage: float = 0.0
    recent_index_statuses: List[IndexStatusSnapshot] = Field(default_factory=list)
    environment: Dict[str, bool] = Field(default_factory=dict)
    recommendations: List[str] = Field(default_factory=list)
