"""
Composition root.

Builds the engine, the index store and every service from settings, and
hands each service its collaborators explicitly. Callers own the returned
container and must ``await services.close()`` when done.

Usage:
------
services = build_services()
try:
    summary = await services.indexer.index_channel("https://www.youtube.com/@mkbhd")
    results = await services.search.search("best budget phone")
finally:
    await services.close()
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from tubeindex.core.config import Settings, settings
from tubeindex.core.logging import get_logger
from tubeindex.db.session import close_db, create_engine, create_session_factory
from tubeindex.services.indexing.channel_indexer import ChannelIndexer
from tubeindex.services.indexing.maintenance import IndexMaintenance
from tubeindex.services.processors.embedder import EmbeddingService
from tubeindex.services.processors.keyword_extractor import (
    KeywordExtractor,
    TransformersEntityRecognizer,
)
from tubeindex.services.processors.segmenter import TranscriptSegmenter
from tubeindex.services.search.hybrid_search import HybridSearchEngine
from tubeindex.services.sources.base import FallbackTranscriptFetcher, VideoLister
from tubeindex.services.sources.transcript_api import TranscriptApiFetcher
from tubeindex.services.sources.youtube_api import YouTubeApiVideoLister
from tubeindex.services.sources.ytdlp import YtDlpVideoSource
from tubeindex.services.storage.index_store import SqlAlchemyIndexStore

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    engine: AsyncEngine
    store: SqlAlchemyIndexStore
    embedder: EmbeddingService
    recognizer: TransformersEntityRecognizer
    indexer: ChannelIndexer
    search: HybridSearchEngine
    maintenance: IndexMaintenance

    async def close(self) -> None:
        await self.embedder.shutdown()
        await self.recognizer.shutdown()
        await close_db(self.engine)


def build_video_lister(config_settings: Settings, ytdlp_source: YtDlpVideoSource) -> VideoLister:
    """YouTube Data API when a key is configured, yt-dlp otherwise."""
    if config_settings.YOUTUBE_API_KEY:
        return YouTubeApiVideoLister(api_key=config_settings.YOUTUBE_API_KEY)
    return ytdlp_source


def build_services(
    config_settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
) -> ServiceContainer:
    config_settings = config_settings or settings
    engine = engine or create_engine(config_settings=config_settings)
    store = SqlAlchemyIndexStore(create_session_factory(engine))

    embedder = EmbeddingService(
        api_key=config_settings.OPENAI_API_KEY or "",
        model_name=config_settings.EMBEDDING_MODEL,
        api_base=config_settings.EMBEDDING_API_BASE,
        dimension=config_settings.EMBEDDING_DIMENSION,
        timeout=config_settings.EMBEDDING_REQUEST_TIMEOUT,
    )
    recognizer = TransformersEntityRecognizer(
        model_name=config_settings.NER_MODEL,
        device=config_settings.NER_DEVICE,
        aggregation_strategy=config_settings.NER_AGGREGATION_STRATEGY,
    )
    keyword_extractor = KeywordExtractor(
        recognizer,
        window_chars=config_settings.NER_WINDOW_CHARS,
        min_score=config_settings.NER_MIN_SCORE,
        max_keywords=config_settings.MAX_KEYWORDS_PER_CHUNK,
    )
    segmenter = TranscriptSegmenter(
        chunk_size=config_settings.CHUNK_SIZE_TOKENS,
        chunk_overlap=config_settings.CHUNK_OVERLAP_TOKENS,
        tokenizer=config_settings.SEGMENT_TOKENIZER,
    )

    ytdlp_source = YtDlpVideoSource(
        timeout=config_settings.TRANSCRIPT_FETCH_TIMEOUT,
        languages=config_settings.YOUTUBE_PREFERRED_TRANSCRIPT_LANGUAGES,
    )
    transcript_fetcher = FallbackTranscriptFetcher([
        TranscriptApiFetcher(preferred_languages=config_settings.YOUTUBE_PREFERRED_TRANSCRIPT_LANGUAGES),
        ytdlp_source,
    ])

    indexer = ChannelIndexer(
        store=store,
        video_lister=build_video_lister(config_settings, ytdlp_source),
        transcript_fetcher=transcript_fetcher,
        segmenter=segmenter,
        keyword_extractor=keyword_extractor,
        embedder=embedder,
        video_batch_size=config_settings.INDEX_VIDEO_BATCH_SIZE,
        chunk_batch_size=config_settings.INDEX_CHUNK_BATCH_SIZE,
    )

    logger.info(
        "services_built",
        video_lister=type(indexer.video_lister).__name__,
        embeddings_configured=embedder.is_configured,
    )
    return ServiceContainer(
        engine=engine,
        store=store,
        embedder=embedder,
        recognizer=recognizer,
        indexer=indexer,
        search=HybridSearchEngine(store, embedder),
        maintenance=IndexMaintenance(store, embedder, config_settings),
    )
