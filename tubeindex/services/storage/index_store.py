"""
PostgreSQL/pgvector implementation of the index store.

Each operation opens its own short-lived session from the injected
session factory and commits before returning. Indexing runs many
coroutines at once, and an ``AsyncSession`` must never be shared between
concurrently running tasks, so no session outlives a single call.

Upserts use PostgreSQL ``INSERT ... ON CONFLICT DO UPDATE`` keyed on the
external ids, so repeated indexing never duplicates channels or videos.
"""

from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tubeindex.core.logging import get_logger
from tubeindex.db.base import utc_now
from tubeindex.db.session import session_scope
from tubeindex.models.youtube import (
    Channel,
    IndexState,
    IndexStatus,
    Keyword,
    SearchQueryLog,
    TranscriptChunk,
    Video,
)
from tubeindex.schemas.youtube import (
    FetchedTranscript,
    KeywordRecord,
    TranscriptSegment,
    VideoListing,
)
from tubeindex.services.processors.text_search import escape_like
from tubeindex.services.storage.base import (
    IndexCounts,
    KeywordHit,
    ScoredChunk,
    build_video_values,
)

logger = get_logger(__name__)


def _keyword_like_clauses(column, query_keywords: Sequence[str]) -> list:
    return [
        func.lower(column).like(f"%{escape_like(kw.lower())}%", escape="\\")
        for kw in query_keywords
    ]


class SqlAlchemyIndexStore:
    """
    Index store backed by SQLAlchemy async sessions.

    Usage:
    ------
    engine = create_engine()
    store = SqlAlchemyIndexStore(create_session_factory(engine))
    channel = await store.upsert_channel("mkbhd", "MKBHD", "https://www.youtube.com/@mkbhd")
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ========================================
    # Channels
    # ========================================

    async def upsert_channel(
        self, external_channel_id: str, channel_name: str, channel_url: str
    ) -> Channel:
        stmt = (
            insert(Channel)
            .values(
                external_channel_id=external_channel_id,
                channel_name=channel_name,
                channel_url=channel_url,
            )
            .on_conflict_do_update(
                index_elements=[Channel.external_channel_id],
                set_={
                    "channel_name": channel_name,
                    "channel_url": channel_url,
                    "updated_at": utc_now(),
                },
            )
            .returning(Channel)
            .execution_options(populate_existing=True)
        )
        async with session_scope(self._session_factory) as session:
            channel = (await session.scalars(stmt)).one()
            await session.commit()

        logger.info(
            "channel_upserted",
            channel_id=channel.id,
            external_channel_id=external_channel_id,
        )
        return channel

    async def get_channel(self, channel_id: int) -> Optional[Channel]:
        async with session_scope(self._session_factory) as session:
            return await session.get(Channel, channel_id)

    async def get_channel_by_external_id(self, external_channel_id: str) -> Optional[Channel]:
        async with session_scope(self._session_factory) as session:
            result = await session.scalars(
                select(Channel).where(Channel.external_channel_id == external_channel_id)
            )
            return result.one_or_none()

    async def resolve_channel_key(self, external_channel_id: str) -> Optional[int]:
        async with session_scope(self._session_factory) as session:
            result = await session.scalars(
                select(Channel.id).where(Channel.external_channel_id == external_channel_id)
            )
            return result.one_or_none()

    async def mark_channel_indexed(
        self, channel_id: int, indexed_at: Optional[datetime] = None
    ) -> None:
        video_count = (
            select(func.count(Video.id))
            .where(Video.channel_id == channel_id)
            .scalar_subquery()
        )
        async with session_scope(self._session_factory) as session:
            await session.execute(
                update(Channel)
                .where(Channel.id == channel_id)
                .values(
                    is_indexed=True,
                    last_indexed_at=indexed_at or utc_now(),
                    video_count=video_count,
                    updated_at=utc_now(),
                )
            )
            await session.commit()

    async def count_channel_videos(self, channel_id: int) -> int:
        async with session_scope(self._session_factory) as session:
            result = await session.scalar(
                select(func.count(Video.id)).where(Video.channel_id == channel_id)
            )
            return result or 0

    # ========================================
    # Videos
    # ========================================

    async def upsert_video(
        self, channel_id: int, listing: VideoListing, transcript: FetchedTranscript
    ) -> Video:
        values = build_video_values(channel_id, listing, transcript)
        mutable = {k: v for k, v in values.items() if k != "external_video_id"}
        mutable["updated_at"] = utc_now()

        stmt = (
            insert(Video)
            .values(**values)
            .on_conflict_do_update(
                index_elements=[Video.external_video_id],
                set_=mutable,
            )
            .returning(Video)
            .execution_options(populate_existing=True)
        )
        async with session_scope(self._session_factory) as session:
            video = (await session.scalars(stmt)).one()
            await session.commit()
        return video

    async def get_video(self, video_id: int) -> Optional[Video]:
        async with session_scope(self._session_factory) as session:
            return await session.get(Video, video_id)

    # ========================================
    # Chunks and Keywords
    # ========================================

    async def delete_video_chunks(self, video_id: int) -> int:
        async with session_scope(self._session_factory) as session:
            await session.execute(delete(Keyword).where(Keyword.video_id == video_id))
            result = await session.execute(
                delete(TranscriptChunk).where(TranscriptChunk.video_id == video_id)
            )
            deleted = result.rowcount or 0
            await session.commit()

        if deleted:
            logger.info("video_chunks_deleted", video_id=video_id, chunks=deleted)
        return deleted

    async def insert_chunks(
        self, video_id: int, segments: Sequence[TranscriptSegment]
    ) -> list[TranscriptChunk]:
        chunks = [
            TranscriptChunk(
                video_id=video_id,
                chunk_index=segment.chunk_index,
                content=segment.text,
                start_time=segment.start_time,
                end_time=segment.end_time,
                token_count=segment.token_count,
            )
            for segment in sorted(segments, key=lambda s: s.chunk_index)
        ]
        if not chunks:
            return []

        async with session_scope(self._session_factory) as session:
            session.add_all(chunks)
            await session.commit()
        return chunks

    async def insert_keywords(
        self, video_id: int, chunk_id: Optional[int], keywords: Sequence[KeywordRecord]
    ) -> int:
        if not keywords:
            return 0

        async with session_scope(self._session_factory) as session:
            session.add_all([
                Keyword(
                    video_id=video_id,
                    chunk_id=chunk_id,
                    keyword=record.keyword,
                    entity_type=record.entity_type,
                    confidence=record.confidence,
                    frequency=record.frequency,
                    relevance=record.relevance,
                )
                for record in keywords
            ])
            await session.commit()
        return len(keywords)

    async def set_chunk_embedding(self, chunk_id: int, embedding: list[float]) -> None:
        async with session_scope(self._session_factory) as session:
            await session.execute(
                update(TranscriptChunk)
                .where(TranscriptChunk.id == chunk_id)
                .values(embedding=embedding, updated_at=utc_now())
            )
            await session.commit()

    async def list_chunks_missing_embeddings(self, limit: int) -> list[TranscriptChunk]:
        async with session_scope(self._session_factory) as session:
            result = await session.scalars(
                select(TranscriptChunk)
                .where(TranscriptChunk.embedding.is_(None))
                .order_by(TranscriptChunk.id)
                .limit(limit)
            )
            return list(result.all())

    # ========================================
    # Index Status
    # ========================================

    async def create_index_status(self, channel_id: int) -> IndexStatus:
        status = IndexStatus(
            channel_id=channel_id,
            status=IndexState.PENDING,
            progress=0,
            total_videos=0,
            processed_videos=0,
            total_chunks=0,
            processed_chunks=0,
            started_at=utc_now(),
        )
        async with session_scope(self._session_factory) as session:
            session.add(status)
            await session.commit()
        return status

    async def update_index_status(self, status_id: int, **values: Any) -> None:
        if not values:
            return
        values.setdefault("updated_at", utc_now())
        async with session_scope(self._session_factory) as session:
            await session.execute(
                update(IndexStatus).where(IndexStatus.id == status_id).values(**values)
            )
            await session.commit()

    async def get_latest_index_status(self, channel_id: int) -> Optional[IndexStatus]:
        async with session_scope(self._session_factory) as session:
            result = await session.scalars(
                select(IndexStatus)
                .where(IndexStatus.channel_id == channel_id)
                .order_by(IndexStatus.started_at.desc(), IndexStatus.id.desc())
                .limit(1)
            )
            return result.one_or_none()

    async def list_recent_index_statuses(self, limit: int = 5) -> list[IndexStatus]:
        async with session_scope(self._session_factory) as session:
            result = await session.scalars(
                select(IndexStatus)
                .order_by(IndexStatus.started_at.desc(), IndexStatus.id.desc())
                .limit(limit)
            )
            return list(result.all())

    # ========================================
    # Search
    # ========================================

    async def find_similar_chunks(
        self,
        query_embedding: list[float],
        channel_id: Optional[int],
        limit: int,
        similarity_threshold: float,
    ) -> list[ScoredChunk]:
        """
        Nearest chunks by cosine distance, keeping similarity > threshold.

        similarity = 1 - cosine_distance, so the filter is
        ``distance < 1 - threshold``.
        """
        distance = TranscriptChunk.embedding.cosine_distance(query_embedding)

        stmt = (
            select(TranscriptChunk, distance.label("distance"))
            .where(TranscriptChunk.embedding.isnot(None))
            .where(distance < 1.0 - similarity_threshold)
        )
        if channel_id is not None:
            stmt = stmt.join(Video, Video.id == TranscriptChunk.video_id).where(
                Video.channel_id == channel_id
            )
        stmt = stmt.order_by(distance).limit(limit)

        async with session_scope(self._session_factory) as session:
            rows = (await session.execute(stmt)).all()

        return [
            ScoredChunk(chunk=row[0], similarity=1.0 - float(row.distance))
            for row in rows
        ]

    async def find_keyword_hits(
        self, query_keywords: Sequence[str], channel_id: Optional[int], limit: int
    ) -> list[KeywordHit]:
        if not query_keywords:
            return []

        stmt = (
            select(TranscriptChunk, Keyword.keyword, Keyword.confidence)
            .select_from(Keyword)
            .join(TranscriptChunk, Keyword.chunk_id == TranscriptChunk.id)
            .join(Video, Keyword.video_id == Video.id)
            .where(or_(*_keyword_like_clauses(Keyword.keyword, query_keywords)))
        )
        if channel_id is not None:
            stmt = stmt.where(Video.channel_id == channel_id)
        stmt = stmt.order_by(Keyword.confidence.desc(), Keyword.id).limit(limit)

        async with session_scope(self._session_factory) as session:
            rows = (await session.execute(stmt)).all()

        return [
            KeywordHit(chunk=row[0], keyword=row.keyword, confidence=row.confidence)
            for row in rows
        ]

    async def find_chunk_keyword_matches(
        self, chunk_id: int, query_keywords: Sequence[str]
    ) -> list[str]:
        if not query_keywords:
            return []

        async with session_scope(self._session_factory) as session:
            result = await session.scalars(
                select(Keyword.keyword)
                .where(Keyword.chunk_id == chunk_id)
                .where(or_(*_keyword_like_clauses(Keyword.keyword, query_keywords)))
                .order_by(Keyword.confidence.desc(), Keyword.id)
            )
            keywords = result.all()

        return list(dict.fromkeys(keywords))

    async def log_search_query(
        self, channel_id: int, query: str, query_embedding: Optional[list[float]] = None
    ) -> int:
        entry = SearchQueryLog(
            channel_id=channel_id,
            query=query,
            query_embedding=query_embedding,
            results_count=0,
        )
        async with session_scope(self._session_factory) as session:
            session.add(entry)
            await session.commit()
        return entry.id

    async def complete_search_query_log(
        self, log_id: int, results_count: int, execution_time_ms: int
    ) -> None:
        async with session_scope(self._session_factory) as session:
            await session.execute(
                update(SearchQueryLog)
                .where(SearchQueryLog.id == log_id)
                .values(results_count=results_count, execution_time_ms=execution_time_ms)
            )
            await session.commit()

    # ========================================
    # Statistics
    # ========================================

    async def count_index_contents(self) -> IndexCounts:
        async with session_scope(self._session_factory) as session:
            channels = await session.scalar(select(func.count(Channel.id)))
            videos = await session.scalar(select(func.count(Video.id)))
            chunks = await session.scalar(select(func.count(TranscriptChunk.id)))
            embedded = await session.scalar(
                select(func.count(TranscriptChunk.id)).where(
                    TranscriptChunk.embedding.isnot(None)
                )
            )

        return IndexCounts(
            channels=channels or 0,
            videos=videos or 0,
            chunks=chunks or 0,
            chunks_with_embeddings=embedded or 0,
        )
