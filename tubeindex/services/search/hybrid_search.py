"""
Hybrid search over indexed transcript chunks.

Retrieval Pipeline:
-------------------
1. Resolve the optional channel scope (unknown scope -> no results)
2. Embed the query
3. Log the query (best effort)
4. Vector search: chunks with an embedding, similarity > threshold,
   2 x limit candidates
5. Assemble results with matched keywords and a composite score
6. Sort by relevance, truncate to limit

If embedding the query or the vector search fails, or the vector search
returns nothing, the call falls back to keyword search instead. The two
paths are never merged. If keyword search fails as well, the call returns
an empty list.
"""

import logging
import time
from typing import Dict, List, Optional, Sequence, Tuple

from tubeindex.core.exceptions import (
    ConfigurationError,
    PersistenceReferentialMiss,
    SearchProviderOutage,
)
from tubeindex.models.youtube import Channel, TranscriptChunk, Video
from tubeindex.schemas.youtube import (
    SearchOptions,
    SearchResult,
    SearchResultChannel,
    SearchResultVideo,
)
from tubeindex.services.processors.embedder import EmbeddingService
from tubeindex.services.processors.text_search import extract_query_keywords
from tubeindex.services.search.scoring import (
    composite_relevance_score,
    keyword_relevance_score,
)
from tubeindex.services.storage.base import IndexStore, ScoredChunk

logger = logging.getLogger(__name__)

CANDIDATE_MULTIPLIER = 2


class _ParentCache:
    """Per-call cache of video and channel lookups."""

    def __init__(self, store: IndexStore):
        self.store = store
        self.videos: Dict[int, Optional[Video]] = {}
        self.channels: Dict[int, Optional[Channel]] = {}

    async def resolve(self, chunk: TranscriptChunk) -> Tuple[Video, Channel]:
        """
        Raises:
            PersistenceReferentialMiss: If the chunk's video or channel is gone
        """
        if chunk.video_id not in self.videos:
            self.videos[chunk.video_id] = await self.store.get_video(chunk.video_id)
        video = self.videos[chunk.video_id]
        if video is None:
            raise PersistenceReferentialMiss("video", chunk.video_id)

        if video.channel_id not in self.channels:
            self.channels[video.channel_id] = await self.store.get_channel(video.channel_id)
        channel = self.channels[video.channel_id]
        if channel is None:
            raise PersistenceReferentialMiss("channel", video.channel_id)

        return video, channel


def _build_result(
    chunk: TranscriptChunk,
    video: Video,
    channel: Channel,
    relevance_score: float,
    matched_keywords: List[str],
    similarity: Optional[float] = None,
) -> SearchResult:
    return SearchResult(
        chunk_id=chunk.id,
        chunk_index=chunk.chunk_index,
        content=chunk.content,
        video=SearchResultVideo.model_validate(video),
        channel=SearchResultChannel.model_validate(channel),
        relevance_score=relevance_score,
        similarity=similarity,
        matched_keywords=matched_keywords,
        start_time=chunk.start_time,
        end_time=chunk.end_time,
    )


def _rank(results: List[SearchResult], limit: int) -> List[SearchResult]:
    return sorted(results, key=lambda r: r.relevance_score, reverse=True)[:limit]


class HybridSearchEngine:
    """
    Vector search with keyword fallback over the transcript index.

    Usage:
    ------
    engine = HybridSearchEngine(store, embedding_service)

    results = await engine.search(
        "What did he say about the M3 chip?",
        SearchOptions(channel_scope="mkbhd", limit=5),
    )
    for result in results:
        print(result.relevance_score, result.timestamped_url)
    """

    def __init__(self, store: IndexStore, embedder: EmbeddingService):
        self.store = store
        self.embedder = embedder

    # ========================================
    # Public API
    # ========================================

    async def search(
        self, query: str, options: Optional[SearchOptions] = None
    ) -> List[SearchResult]:
        """
        Hybrid search.

        Args:
            query: Free-text query
            options: Scope, limit, threshold and keyword flag

        Returns:
            Results sorted by relevance, at most ``options.limit``

        Raises:
            ValueError: If the query is blank
            EmbeddingUnavailable: If no embedding credential is configured
        """
        query = self._validate_query(query)
        options = options or SearchOptions()
        self.embedder.ensure_configured()

        started = time.perf_counter()
        found, channel_id = await self._resolve_scope(options)
        if not found:
            return []

        query_embedding: Optional[List[float]] = None
        try:
            query_embedding = await self._embed_query(query)
        except SearchProviderOutage as e:
            logger.warning(f"Falling back to keyword search: {e}")

        log_id = await self._start_query_log(channel_id, query, query_embedding)

        candidates: List[ScoredChunk] = []
        if query_embedding is not None:
            try:
                candidates = await self._vector_candidates(query_embedding, channel_id, options)
            except SearchProviderOutage as e:
                logger.warning(f"Falling back to keyword search: {e}")

        if candidates:
            results = await self._assemble_vector_results(query, candidates, options)
        else:
            results = await self._keyword_search_or_empty(query, channel_id, options)

        await self._complete_query_log(log_id, len(results), started)
        return results

    async def keyword_search(
        self, query: str, options: Optional[SearchOptions] = None
    ) -> List[SearchResult]:
        """
        Keyword-only search over extracted entity keywords.

        Raises:
            ValueError: If the query is blank
        """
        query = self._validate_query(query)
        options = options or SearchOptions()

        found, channel_id = await self._resolve_scope(options)
        if not found:
            return []
        return await self._keyword_search(query, channel_id, options)

    # ========================================
    # Steps
    # ========================================

    @staticmethod
    def _validate_query(query: str) -> str:
        if query is None or not query.strip():
            raise ValueError("Search query must not be empty")
        return query.strip()

    async def _resolve_scope(self, options: SearchOptions) -> Tuple[bool, Optional[int]]:
        if options.channel_scope is None:
            return True, None

        channel_id = await self.store.resolve_channel_key(options.channel_scope)
        if channel_id is None:
            logger.info(f"Channel scope {options.channel_scope!r} not indexed, returning no results")
            return False, None
        return True, channel_id

    async def _embed_query(self, query: str) -> List[float]:
        try:
            return await self.embedder.embed_text(query)
        except ConfigurationError:
            raise
        except Exception as e:
            raise SearchProviderOutage(f"Query embedding failed: {e}") from e

    async def _vector_candidates(
        self,
        query_embedding: List[float],
        channel_id: Optional[int],
        options: SearchOptions,
    ) -> List[ScoredChunk]:
        try:
            scored = await self.store.find_similar_chunks(
                query_embedding,
                channel_id,
                options.limit * CANDIDATE_MULTIPLIER,
                options.similarity_threshold,
            )
        except Exception as e:
            raise SearchProviderOutage(f"Vector search failed: {e}") from e

        kept = [s for s in scored if s.similarity > options.similarity_threshold]
        logger.debug(f"Vector search returned {len(kept)} candidates")
        return kept

    async def _assemble_vector_results(
        self,
        query: str,
        candidates: Sequence[ScoredChunk],
        options: SearchOptions,
    ) -> List[SearchResult]:
        query_keywords = extract_query_keywords(query) if options.include_keywords else []
        parents = _ParentCache(self.store)

        results = []
        for candidate in candidates:
            chunk = candidate.chunk
            try:
                video, channel = await parents.resolve(chunk)

                matched: List[str] = []
                if query_keywords:
                    matched = await self.store.find_chunk_keyword_matches(chunk.id, query_keywords)
            except PersistenceReferentialMiss as e:
                logger.warning(f"Skipping chunk {chunk.id}: {e}")
                continue
            except Exception as e:
                logger.error(f"Skipping chunk {chunk.id}, lookup failed: {e}")
                continue

            score = composite_relevance_score(
                candidate.similarity, len(matched), query, chunk.content
            )
            results.append(_build_result(
                chunk, video, channel, score, matched, similarity=candidate.similarity
            ))

        return _rank(results, options.limit)

    async def _keyword_search_or_empty(
        self, query: str, channel_id: Optional[int], options: SearchOptions
    ) -> List[SearchResult]:
        try:
            return await self._keyword_search(query, channel_id, options)
        except Exception as e:
            logger.error(f"Keyword search failed, returning no results: {e}")
            return []

    async def _keyword_search(
        self, query: str, channel_id: Optional[int], options: SearchOptions
    ) -> List[SearchResult]:
        query_keywords = extract_query_keywords(query)
        if not query_keywords:
            return []

        hits = await self.store.find_keyword_hits(
            query_keywords, channel_id, options.limit * CANDIDATE_MULTIPLIER
        )

        # chunk id -> (chunk, matched keyword strings), first-hit order
        groups: Dict[int, Tuple[TranscriptChunk, List[str]]] = {}
        for hit in hits:
            chunk, matched = groups.setdefault(hit.chunk.id, (hit.chunk, []))
            if hit.keyword not in matched:
                matched.append(hit.keyword)

        parents = _ParentCache(self.store)
        results = []
        for chunk, matched in groups.values():
            try:
                video, channel = await parents.resolve(chunk)
            except PersistenceReferentialMiss as e:
                logger.warning(f"Skipping chunk {chunk.id}: {e}")
                continue
            except Exception as e:
                logger.error(f"Skipping chunk {chunk.id}, lookup failed: {e}")
                continue

            score = keyword_relevance_score(query_keywords, matched)
            results.append(_build_result(chunk, video, channel, score, matched))

        logger.debug(f"Keyword search matched {len(results)} chunks for {query_keywords}")
        return _rank(results, options.limit)

    # ========================================
    # Query Log
    # ========================================

    async def _start_query_log(
        self,
        channel_id: Optional[int],
        query: str,
        query_embedding: Optional[List[float]],
    ) -> Optional[int]:
        if channel_id is None:
            return None
        try:
            return await self.store.log_search_query(channel_id, query, query_embedding)
        except Exception as e:
            logger.warning(f"Failed to log search query: {e}")
            return None

    async def _complete_query_log(
        self, log_id: Optional[int], results_count: int, started: float
    ) -> None:
        if log_id is None:
            return
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        try:
            await self.store.complete_search_query_log(log_id, results_count, elapsed_ms)
        except Exception as e:
            logger.warning(f"Failed to complete search query log {log_id}: {e}")
