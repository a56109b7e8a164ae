"""
Index inspection and maintenance operations.

- Channel index info and latest run status
- Indexing time estimates
- Re-embedding chunks whose embedding is missing
- Database status report with recommendations
"""

import math
from typing import Optional

from tubeindex.core.config import Settings, settings
from tubeindex.core.exceptions import ProviderError
from tubeindex.core.logging import get_logger
from tubeindex.schemas.youtube import (
    ChannelIndexInfo,
    DatabaseStatusReport,
    EmbeddingRegenerationResult,
    IndexingEstimate,
    IndexStatusSnapshot,
)
from tubeindex.services.processors.embedder import EmbeddingService
from tubeindex.services.sources.urls import extract_channel_key
from tubeindex.services.storage.base import IndexStore

logger = get_logger(__name__)

LOW_COVERAGE_PERCENT = 50.0
RECENT_STATUS_LIMIT = 5


def estimate_indexing_time(
    video_count: int, minutes_per_video: Optional[float] = None
) -> IndexingEstimate:
    """
    Rough wall-clock estimate for indexing ``video_count`` videos.

    Example:
        >>> estimate_indexing_time(30)
        IndexingEstimate(video_count=30, estimated_minutes=75, estimated_hours=2)
    """
    if video_count < 0:
        raise ValueError("video_count must not be negative")

    per_video = minutes_per_video if minutes_per_video is not None else settings.INDEX_MINUTES_PER_VIDEO
    minutes = math.ceil(video_count * per_video)
    return IndexingEstimate(
        video_count=video_count,
        estimated_minutes=minutes,
        estimated_hours=math.ceil(minutes / 60),
    )


class IndexMaintenance:
    """
    Read-side and repair operations over the index.

    Usage:
    ------
    maintenance = IndexMaintenance(store, embedding_service)
    info = await maintenance.get_channel_index_info("https://www.youtube.com/@mkbhd")
    report = await maintenance.database_status()
    """

    def __init__(
        self,
        store: IndexStore,
        embedder: EmbeddingService,
        config_settings: Optional[Settings] = None,
    ):
        self.store = store
        self.embedder = embedder
        self.settings = config_settings or settings

    async def get_channel_index_info(self, channel_url: str) -> ChannelIndexInfo:
        """
        Raises:
            InvalidChannelReference: If the URL cannot be parsed
        """
        channel = await self.store.get_channel_by_external_id(extract_channel_key(channel_url))
        if channel is None:
            return ChannelIndexInfo(is_indexed=False, video_count=0)

        return ChannelIndexInfo(
            is_indexed=channel.is_indexed,
            video_count=await self.store.count_channel_videos(channel.id),
            channel_name=channel.channel_name,
            last_indexed_at=channel.last_indexed_at,
        )

    async def get_index_status(self, channel_url: str) -> Optional[IndexStatusSnapshot]:
        """Latest indexing run of a channel, or None if it was never indexed."""
        channel_id = await self.store.resolve_channel_key(extract_channel_key(channel_url))
        if channel_id is None:
            return None

        status = await self.store.get_latest_index_status(channel_id)
        return IndexStatusSnapshot.model_validate(status) if status is not None else None

    def estimate_indexing_time(self, video_count: int) -> IndexingEstimate:
        return estimate_indexing_time(video_count, self.settings.INDEX_MINUTES_PER_VIDEO)

    async def regenerate_missing_embeddings(
        self, batch_size: Optional[int] = None
    ) -> EmbeddingRegenerationResult:
        """
        Embed up to ``batch_size`` chunks that have no embedding yet.

        Raises:
            EmbeddingUnavailable: If no embedding credential is configured
        """
        self.embedder.ensure_configured()

        chunks = await self.store.list_chunks_missing_embeddings(
            batch_size or self.settings.EMBEDDING_REGEN_BATCH_SIZE
        )
        result = EmbeddingRegenerationResult(total=len(chunks))

        for chunk in chunks:
            try:
                embedding = await self.embedder.embed_text(chunk.content)
            except ProviderError as e:
                logger.warning("embedding_regeneration_failed", chunk_id=chunk.id, error=str(e))
                result.errors += 1
                continue

            await self.store.set_chunk_embedding(chunk.id, embedding)
            result.processed += 1

        logger.info(
            "embeddings_regenerated",
            processed=result.processed,
            errors=result.errors,
            total=result.total,
        )
        return result

    async def database_status(self) -> DatabaseStatusReport:
        counts = await self.store.count_index_contents()
        statuses = await self.store.list_recent_index_statuses(RECENT_STATUS_LIMIT)

        missing = counts.chunks - counts.chunks_with_embeddings
        coverage = (
            round(counts.chunks_with_embeddings / counts.chunks * 100, 2)
            if counts.chunks else 0.0
        )
        environment = {
            "OPENAI_API_KEY": bool(self.settings.OPENAI_API_KEY),
            "YOUTUBE_API_KEY": bool(self.settings.YOUTUBE_API_KEY),
            "DATABASE_URL": bool(self.settings.DATABASE_URL),
        }

        recommendations = []
        if missing > 0:
            recommendations.append(
                f"{missing} chunks have no embedding; run regenerate_missing_embeddings"
            )
        if counts.chunks and coverage < LOW_COVERAGE_PERCENT:
            recommendations.append(
                f"Embedding coverage is {coverage}%; vector search will miss most chunks"
            )
        if not environment["OPENAI_API_KEY"]:
            recommendations.append("Set OPENAI_API_KEY to enable embeddings and vector search")

        return DatabaseStatusReport(
            channels=counts.channels,
            videos=counts.videos,
            chunks=counts.chunks,
            chunks_with_embeddings=counts.chunks_with_embeddings,
            chunks_without_embeddings=missing,
            embedding_coverage=coverage,
            recent_index_statuses=[IndexStatusSnapshot.model_validate(s) for s in statuses],
            environment=environment,
            recommendations=recommendations,
        )
