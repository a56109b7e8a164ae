"""
YouTube Index Models

This module contains the persisted records of the transcript index.

Models Included:
----------------
1. Channel - An indexed YouTube channel (upserted by external channel id)
2. Video - A channel upload (upserted by external video id)
3. TranscriptChunk - Token-bounded window of a video transcript with an embedding
4. Keyword - Named entity extracted from a chunk
5. IndexStatus - Progress/state row for one indexing run
6. SearchQueryLog - Append-only analytics record of search queries
7. IndexState (Enum) - Indexing state machine values

Relationships:
--------------
- Channel (1) ←→ (Many) Video
- Video (1) ←→ (Many) TranscriptChunk
- Video (1) ←→ (Many) Keyword
- TranscriptChunk (0..1) ←→ (Many) Keyword (weak reference, SET NULL)
- Channel (1) ←→ (Many) IndexStatus, SearchQueryLog

Deleting a channel cascades to its videos; deleting a video cascades to
its chunks and keywords.
"""

import enum
from datetime import datetime
from typing import Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tubeindex.core.config import settings
from tubeindex.db.base import (
    BaseModel,
    String20,
    String50,
    String100,
    String200,
    String500,
    utc_now,
)


EMBEDDING_DIMENSION = settings.EMBEDDING_DIMENSION


# ================================
# Enums
# ================================

class IndexState(str, enum.Enum):
    """
    States of a channel indexing run.

    Flow: PENDING → INDEXING_VIDEOS → COMPLETED, with FAILED reachable
    from any non-terminal state. The intermediate sub-phase values are
    part of the schema but runs process extraction/embedding inline.
    """

    PENDING = "pending"
    INDEXING_VIDEOS = "indexing_videos"
    EXTRACTING_TRANSCRIPTS = "extracting_transcripts"
    PROCESSING_CHUNKS = "processing_chunks"
    GENERATING_EMBEDDINGS = "generating_embeddings"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (IndexState.COMPLETED, IndexState.FAILED)


# ================================
# Channel
# ================================

class Channel(BaseModel):
    """
    Indexed YouTube channel.

    Table: youtube_channels
    -----------------------
    ``external_channel_id`` holds whatever the channel reference resolved to
    (a handle such as ``mkbhd`` or a ``UC...`` id) and is the upsert key.
    ``is_indexed`` / ``last_indexed_at`` are only set when a full run completes.
    """

    __tablename__ = "youtube_channels"

    external_channel_id: Mapped[str] = mapped_column(
        String100,
        nullable=False,
        unique=True,
        comment="Channel handle or YouTube channel id"
    )

    channel_name: Mapped[str] = mapped_column(
        String200,
        nullable=False,
        comment="Display name"
    )

    channel_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Source URL used for indexing"
    )

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subscriber_count: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    video_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_indexed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="True once a full indexing run has completed"
    )

    last_indexed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    videos: Mapped[list["Video"]] = relationship(
        "Video",
        back_populates="channel",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )

    def __repr__(self) -> str:
        return (
            f"Channel(id={self.id}, external_channel_id='{self.external_channel_id}', "
            f"name='{self.channel_name}')"
        )


# ================================
# Video
# ================================

class Video(BaseModel):
    """
    YouTube upload belonging to a channel.

    Table: youtube_videos
    ---------------------
    Transcript fields are only populated when a transcript was obtained;
    videos without one are never written at all.
    """

    __tablename__ = "youtube_videos"

    external_video_id: Mapped[str] = mapped_column(
        String20,
        nullable=False,
        unique=True,
        comment="YouTube video id (upsert key)"
    )

    channel_id: Mapped[int] = mapped_column(
        ForeignKey("youtube_channels.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String500, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    view_count: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    like_count: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_url: Mapped[str] = mapped_column(Text, nullable=False)

    transcript: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transcript_length: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    transcript_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    channel: Mapped["Channel"] = relationship(
        "Channel",
        back_populates="videos",
        lazy="raise",
    )

    chunks: Mapped[list["TranscriptChunk"]] = relationship(
        "TranscriptChunk",
        back_populates="video",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )

    __table_args__ = (
        Index("ix_youtube_videos_published_at", "published_at"),
    )

    def __repr__(self) -> str:
        return f"Video(id={self.id}, external_video_id='{self.external_video_id}')"


# ================================
# Transcript Chunk
# ================================

class TranscriptChunk(BaseModel):
    """
    Token-bounded transcript window.

    Table: transcript_chunks
    ------------------------
    ``end_time`` of chunk i equals ``start_time`` of chunk i+1 within a
    video. ``embedding`` stays NULL when the embedding call failed; such
    chunks are only reachable through keyword search.
    """

    __tablename__ = "transcript_chunks"

    video_id: Mapped[int] = mapped_column(
        ForeignKey("youtube_videos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    chunk_index: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Order of this chunk within the video (0-indexed)"
    )

    content: Mapped[str] = mapped_column(Text, nullable=False)
    start_time: Mapped[int] = mapped_column(Integer, nullable=False, comment="Seconds")
    end_time: Mapped[int] = mapped_column(Integer, nullable=False, comment="Seconds")
    token_count: Mapped[int] = mapped_column(Integer, nullable=False)

    embedding = mapped_column(
        Vector(EMBEDDING_DIMENSION),
        nullable=True,
        comment="Embedding vector for cosine similarity search"
    )

    video: Mapped["Video"] = relationship(
        "Video",
        back_populates="chunks",
        lazy="raise",
    )

    __table_args__ = (
        UniqueConstraint(
            "video_id",
            "chunk_index",
            name="uq_transcript_chunks_video_chunk_index"
        ),
    )

    def __repr__(self) -> str:
        preview = self.content[:50] + "..." if self.content else ""
        return (
            f"TranscriptChunk(id={self.id}, video_id={self.video_id}, "
            f"index={self.chunk_index}, text='{preview}')"
        )

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None


# ================================
# Keyword
# ================================

class Keyword(BaseModel):
    """
    Entity/keyword extracted from a transcript chunk.

    Table: video_keywords
    ---------------------
    ``chunk_id`` is NULL for video-level keywords. Rows are never updated
    in place; re-indexing a video deletes and rewrites them.
    """

    __tablename__ = "video_keywords"

    video_id: Mapped[int] = mapped_column(
        ForeignKey("youtube_videos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    chunk_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("transcript_chunks.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    keyword: Mapped[str] = mapped_column(String200, nullable=False, index=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String50, nullable=True)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False, comment="0-100")
    frequency: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    relevance: Mapped[int] = mapped_column(Integer, nullable=False, comment="0-100")

    embedding = mapped_column(Vector(EMBEDDING_DIMENSION), nullable=True)

    def __repr__(self) -> str:
        return f"Keyword(id={self.id}, keyword='{self.keyword}', type={self.entity_type})"


# ================================
# Index Status
# ================================

class IndexStatus(BaseModel):
    """
    Progress row for one indexing run of a channel.

    Table: channel_index_status
    ---------------------------
    Written only by the orchestrator driving the run. The most recent row
    per channel is what callers poll.
    """

    __tablename__ = "channel_index_status"

    channel_id: Mapped[int] = mapped_column(
        ForeignKey("youtube_channels.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[IndexState] = mapped_column(
        Enum(
            IndexState,
            name="index_state",
            values_callable=lambda states: [s.value for s in states],
        ),
        nullable=False,
        default=IndexState.PENDING,
    )

    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="0-100")
    total_videos: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_videos: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_chunks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_chunks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"IndexStatus(id={self.id}, channel_id={self.channel_id}, "
            f"status={self.status}, progress={self.progress})"
        )


# ================================
# Search Query Log
# ================================

class SearchQueryLog(BaseModel):
    """
    Append-only analytics record of a channel-scoped search.

    Table: search_queries
    ---------------------
    Never read by the search path.
    """

    __tablename__ = "search_queries"

    channel_id: Mapped[int] = mapped_column(
        ForeignKey("youtube_channels.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    query: Mapped[str] = mapped_column(Text, nullable=False)
    query_embedding = mapped_column(Vector(EMBEDDING_DIMENSION), nullable=True)
    results_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    execution_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"SearchQueryLog(id={self.id}, query='{self.query[:40]}')"
