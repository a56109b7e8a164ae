"""
Tests for ChannelIndexer.

This test module verifies:
1. The run state machine and progress values
2. Per-video containment (skipped and failed videos never fail the run)
3. Per-chunk containment (keyword and embedding provider failures)
4. Run failures (configuration errors, listing errors)
5. Idempotent re-indexing, max_videos, batching and single-flight runs
"""

import asyncio

import pytest

from tubeindex.core.exceptions import (
    EmbeddingUnavailable,
    IndexingAlreadyRunning,
    InvalidChannelReference,
    ProviderError,
    RunFailure,
    TranscriptUnavailable,
)
from tubeindex.models.youtube import IndexState
from tubeindex.services.indexing.channel_indexer import (
    ChannelIndexer,
    VideoOutcome,
    video_phase_progress,
)
from tubeindex.services.processors.keyword_extractor import KeywordExtractor
from tubeindex.services.processors.segmenter import TranscriptSegmenter
from tests.fakes import (
    FakeEmbedder,
    FakeEntityRecognizer,
    FakeTranscriptFetcher,
    FakeVideoLister,
    make_listing,
)


CHANNEL_URL = "https://www.youtube.com/@mkbhd"

OBAMA_TRANSCRIPT = "Barack Obama spoke in Berlin."
# Three sentences of six tokens each; one chunk per sentence at chunk_size=10
THREE_CHUNK_TRANSCRIPT = "Alpha beta gamma delta. Epsilon zeta eta theta. Iota kappa lambda mu."


def build_indexer(
    store,
    video_lister,
    transcript_fetcher,
    recognizer=None,
    embedder=None,
    **kwargs,
) -> ChannelIndexer:
    return ChannelIndexer(
        store=store,
        video_lister=video_lister,
        transcript_fetcher=transcript_fetcher,
        segmenter=TranscriptSegmenter(chunk_size=10, chunk_overlap=0),
        keyword_extractor=KeywordExtractor(recognizer or FakeEntityRecognizer()),
        embedder=embedder or FakeEmbedder(),
        **kwargs,
    )


def progress_updates(store):
    return [values["progress"] for _, values in store.status_updates if "progress" in values]


@pytest.fixture
def two_videos():
    lister = FakeVideoLister([make_listing("obama"), make_listing("greek")])
    fetcher = FakeTranscriptFetcher({
        "obama": OBAMA_TRANSCRIPT,
        "greek": THREE_CHUNK_TRANSCRIPT,
    })
    return lister, fetcher


class TestVideoPhaseProgress:
    @pytest.mark.parametrize("processed,total,expected", [
        (0, 10, 20),
        (3, 10, 29),
        (1, 4, 28),
        (10, 10, 50),
        (0, 0, 50),
    ])
    def test_values(self, processed, total, expected):
        assert video_phase_progress(processed, total) == expected


@pytest.mark.asyncio
class TestSuccessfulRun:
    """Test a run where every video indexes."""

    async def test_summary_and_completed_status(self, store, recognizer, two_videos):
        """Test tallies, final status row and channel flags."""
        lister, fetcher = two_videos
        indexer = build_indexer(store, lister, fetcher, recognizer=recognizer)

        summary = await indexer.index_channel(CHANNEL_URL)

        assert summary.external_channel_id == "mkbhd"
        assert summary.total_videos == 2
        assert summary.processed_videos == 2
        assert summary.succeeded_videos == 2
        assert summary.skipped_videos == summary.failed_videos == 0
        assert summary.total_chunks == 4

        status = store.statuses[summary.status_id]
        assert status.status == IndexState.COMPLETED
        assert status.progress == 100
        assert status.completed_at is not None
        assert status.total_videos == 2
        assert status.processed_videos == 2
        assert status.total_chunks == 4
        assert status.processed_chunks == 4

        channel = store.channels[summary.channel_id]
        assert channel.is_indexed is True
        assert channel.video_count == 2
        assert channel.channel_url == CHANNEL_URL
        assert channel.last_indexed_at is not None

    async def test_progress_sequence(self, store, two_videos):
        lister, fetcher = two_videos
        await build_indexer(store, lister, fetcher).index_channel(CHANNEL_URL)

        assert progress_updates(store) == [10, 50, 100]
        first_status = store.status_updates[0][1]
        assert first_status["status"] == IndexState.INDEXING_VIDEOS
        assert first_status["total_videos"] == 2

    async def test_progress_is_monotonic_per_batch(self, store):
        """Test one progress update per video batch, never decreasing."""
        videos = [make_listing(f"v{i}") for i in range(4)]
        lister = FakeVideoLister(videos)
        fetcher = FakeTranscriptFetcher({v.external_id: "Some words here." for v in videos})
        indexer = build_indexer(store, lister, fetcher, video_batch_size=1)

        await indexer.index_channel(CHANNEL_URL)

        updates = progress_updates(store)
        assert updates == [10, 28, 35, 43, 50, 100]
        assert updates == sorted(updates)

    async def test_chunks_keywords_and_embeddings_persisted(self, store, recognizer, two_videos):
        lister, fetcher = two_videos
        await build_indexer(store, lister, fetcher, recognizer=recognizer).index_channel(CHANNEL_URL)

        greek_video = next(v for v in store.videos.values() if v.external_video_id == "greek")
        greek_chunks = sorted(
            (c for c in store.chunks.values() if c.video_id == greek_video.id),
            key=lambda c: c.chunk_index,
        )
        assert [c.chunk_index for c in greek_chunks] == [0, 1, 2]
        assert greek_chunks[0].content == "Alpha beta gamma delta."
        assert all(c.embedding is not None for c in store.chunks.values())

        keywords = sorted(store.keywords.values(), key=lambda k: -k.confidence)
        assert [(k.keyword, k.entity_type, k.confidence) for k in keywords] == [
            ("Barack Obama", "PER", 95),
            ("Berlin", "LOC", 90),
        ]

    async def test_video_metadata_refreshed_from_transcript(self, store, two_videos):
        lister, fetcher = two_videos
        await build_indexer(store, lister, fetcher).index_channel(CHANNEL_URL)

        video = next(v for v in store.videos.values() if v.external_video_id == "obama")
        assert video.title == "Video obama (refreshed)"
        assert video.transcript == OBAMA_TRANSCRIPT
        assert video.transcript_available is True

    async def test_empty_channel_completes(self, store):
        indexer = build_indexer(store, FakeVideoLister([]), FakeTranscriptFetcher())

        summary = await indexer.index_channel(CHANNEL_URL)

        assert summary.total_videos == 0
        assert store.statuses[summary.status_id].status == IndexState.COMPLETED
        assert progress_updates(store) == [10, 100]


@pytest.mark.asyncio
class TestPerVideoContainment:
    """Test that one video's problems never fail the run."""

    async def test_missing_transcript_is_skipped(self, store):
        lister = FakeVideoLister([make_listing("none"), make_listing("ok")])
        fetcher = FakeTranscriptFetcher({"none": None, "ok": "It works."})

        summary = await build_indexer(store, lister, fetcher).index_channel(CHANNEL_URL)

        assert summary.skipped_videos == 1
        assert summary.succeeded_videos == 1
        assert [v.external_video_id for v in store.videos.values()] == ["ok"]

    async def test_blank_transcript_is_skipped(self, store):
        lister = FakeVideoLister([make_listing("blank")])
        fetcher = FakeTranscriptFetcher({"blank": "   "})

        summary = await build_indexer(store, lister, fetcher).index_channel(CHANNEL_URL)

        assert summary.skipped_videos == 1
        assert store.videos == {}

    async def test_transcript_unavailable_is_skipped(self, store):
        lister = FakeVideoLister([make_listing("gone")])
        fetcher = FakeTranscriptFetcher({"gone": TranscriptUnavailable("gone", "timed out")})

        summary = await build_indexer(store, lister, fetcher).index_channel(CHANNEL_URL)

        assert summary.skipped_videos == 1
        assert store.statuses[summary.status_id].status == IndexState.COMPLETED

    async def test_unexpected_error_is_counted_as_failed(self, store):
        """Test that an arbitrary error fails the video, not the run."""
        lister = FakeVideoLister([make_listing("bad"), make_listing("good")])
        fetcher = FakeTranscriptFetcher({"bad": RuntimeError("boom"), "good": "Fine."})

        summary = await build_indexer(store, lister, fetcher).index_channel(CHANNEL_URL)

        assert summary.failed_videos == 1
        assert summary.succeeded_videos == 1
        assert summary.processed_videos == 2
        assert store.statuses[summary.status_id].status == IndexState.COMPLETED

    async def test_index_video_outcomes(self, store):
        fetcher = FakeTranscriptFetcher({"ok": THREE_CHUNK_TRANSCRIPT})
        indexer = build_indexer(store, FakeVideoLister(), fetcher)
        channel = await store.upsert_channel("mkbhd", "mkbhd", CHANNEL_URL)

        indexed = await indexer.index_video(channel.id, make_listing("ok"))
        skipped = await indexer.index_video(channel.id, make_listing("missing"))

        assert indexed.outcome is VideoOutcome.INDEXED
        assert indexed.chunks == indexed.embedded_chunks == 3
        assert skipped.outcome is VideoOutcome.SKIPPED


@pytest.mark.asyncio
class TestPerChunkContainment:
    """Test provider failures on single chunks."""

    async def test_embedding_failure_leaves_null_embedding(self, store, two_videos):
        lister, fetcher = two_videos
        embedder = FakeEmbedder(fail_on="Epsilon")

        summary = await build_indexer(store, lister, fetcher, embedder=embedder).index_channel(CHANNEL_URL)

        missing = [c for c in store.chunks.values() if c.embedding is None]
        assert [c.content for c in missing] == ["Epsilon zeta eta theta."]
        assert summary.succeeded_videos == 2
        status = store.statuses[summary.status_id]
        assert status.total_chunks == 4
        assert status.processed_chunks == 3

    async def test_keyword_failure_keeps_embedding(self, store, two_videos):
        lister, fetcher = two_videos
        recognizer = FakeEntityRecognizer(error=ProviderError("ner", "model crashed"))

        summary = await build_indexer(
            store, lister, fetcher, recognizer=recognizer
        ).index_channel(CHANNEL_URL)

        assert store.keywords == {}
        assert all(c.embedding is not None for c in store.chunks.values())
        assert summary.succeeded_videos == 2

    async def test_keyword_write_failure_keeps_later_chunks(self, store):
        """Test that a failed keyword insert neither fails the video nor stops later batches."""
        recognizer = FakeEntityRecognizer({
            "Alpha": ("B-MISC", 0.9),
            "Epsilon": ("B-MISC", 0.9),
            "Iota": ("B-MISC", 0.9),
        })
        lister = FakeVideoLister([make_listing("greek")])
        fetcher = FakeTranscriptFetcher({"greek": THREE_CHUNK_TRANSCRIPT})

        async def insert_keywords(video_id, chunk_id, keywords):
            raise RuntimeError("deadlock detected")

        store.insert_keywords = insert_keywords
        indexer = build_indexer(store, lister, fetcher, recognizer=recognizer, chunk_batch_size=1)

        summary = await indexer.index_channel(CHANNEL_URL)

        assert summary.succeeded_videos == 1
        assert summary.failed_videos == 0
        assert len(store.chunks) == 3
        assert all(c.embedding is not None for c in store.chunks.values())
        assert store.statuses[summary.status_id].processed_chunks == 3

    async def test_embedding_write_failure_leaves_chunk_unembedded(self, store):
        lister = FakeVideoLister([make_listing("greek")])
        fetcher = FakeTranscriptFetcher({"greek": THREE_CHUNK_TRANSCRIPT})
        original = store.set_chunk_embedding

        async def set_chunk_embedding(chunk_id, embedding):
            if store.chunks[chunk_id].chunk_index == 1:
                raise RuntimeError("connection reset")
            await original(chunk_id, embedding)

        store.set_chunk_embedding = set_chunk_embedding
        summary = await build_indexer(store, lister, fetcher).index_channel(CHANNEL_URL)

        assert summary.succeeded_videos == 1
        missing = [c.chunk_index for c in store.chunks.values() if c.embedding is None]
        assert missing == [1]
        assert store.statuses[summary.status_id].processed_chunks == 2


@pytest.mark.asyncio
class TestRunFailure:
    """Test failures that end the run."""

    async def test_missing_embedding_credential_fails_run(self, store, two_videos):
        """Test that a configuration error escapes every per-item boundary."""
        lister, fetcher = two_videos
        indexer = build_indexer(store, lister, fetcher, embedder=FakeEmbedder(configured=False))

        with pytest.raises(RunFailure) as exc_info:
            await indexer.index_channel(CHANNEL_URL)

        assert isinstance(exc_info.value.__cause__, EmbeddingUnavailable)
        [status] = store.statuses.values()
        assert status.status == IndexState.FAILED
        assert "OpenAI API key" in status.error_message
        assert status.progress == 10
        assert status.completed_at is not None
        [channel] = store.channels.values()
        assert channel.is_indexed is False

    async def test_listing_error_fails_run(self, store):
        lister = FakeVideoLister(error=RuntimeError("yt-dlp exited with status 1"))
        indexer = build_indexer(store, lister, FakeTranscriptFetcher())

        with pytest.raises(RunFailure, match="yt-dlp exited"):
            await indexer.index_channel(CHANNEL_URL)

        [status] = store.statuses.values()
        assert status.status == IndexState.FAILED
        assert status.progress == 0

    async def test_invalid_reference_writes_nothing(self, store, video_lister, transcript_fetcher):
        indexer = build_indexer(store, video_lister, transcript_fetcher)

        with pytest.raises(InvalidChannelReference):
            await indexer.index_channel("https://example.com/not-youtube")

        assert store.channels == {}
        assert store.statuses == {}
        assert video_lister.calls == []

    async def test_failed_run_releases_channel(self, store):
        indexer = build_indexer(store, FakeVideoLister(error=RuntimeError("down")), FakeTranscriptFetcher())

        with pytest.raises(RunFailure):
            await indexer.index_channel(CHANNEL_URL)

        assert indexer.is_running("mkbhd") is False


@pytest.mark.asyncio
class TestReindexAndLimits:
    """Test idempotency, max_videos, batching and single-flight."""

    async def test_reindex_replaces_chunks(self, store, recognizer, two_videos):
        """Test that a second run leaves one channel, one row per video and no stale chunks."""
        lister, fetcher = two_videos
        indexer = build_indexer(store, lister, fetcher, recognizer=recognizer)

        await indexer.index_channel(CHANNEL_URL)
        fetcher.transcripts["greek"] = "Only one sentence now."
        await indexer.index_channel("@mkbhd")

        assert len(store.channels) == 1
        assert sorted(v.external_video_id for v in store.videos.values()) == ["greek", "obama"]
        assert sorted(c.content for c in store.chunks.values()) == [
            OBAMA_TRANSCRIPT,
            "Only one sentence now.",
        ]
        assert len(store.keywords) == 2
        assert len(store.statuses) == 2

    async def test_max_videos_truncates(self, store):
        videos = [make_listing(f"v{i}") for i in range(5)]
        lister = FakeVideoLister(videos)
        fetcher = FakeTranscriptFetcher({v.external_id: "Words." for v in videos})

        summary = await build_indexer(store, lister, fetcher).index_channel(CHANNEL_URL, max_videos=2)

        assert lister.calls == [(CHANNEL_URL, 2)]
        assert fetcher.calls == ["v0", "v1"]
        assert summary.total_videos == 2

    async def test_video_batches_bound_concurrency(self, store):
        videos = [make_listing(f"v{i}") for i in range(7)]
        in_flight = 0
        peak = 0

        class SlowFetcher(FakeTranscriptFetcher):
            async def fetch_transcript(self, video):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0)
                in_flight -= 1
                return await super().fetch_transcript(video)

        fetcher = SlowFetcher({v.external_id: "Words." for v in videos})
        indexer = build_indexer(store, FakeVideoLister(videos), fetcher, video_batch_size=3)

        await indexer.index_channel(CHANNEL_URL)

        assert peak == 3
        assert len(fetcher.calls) == 7

    async def test_chunk_batches_bound_concurrency(self, store):
        """Test that at most chunk_batch_size chunks are embedded at once."""
        in_flight = 0
        peak = 0

        class SlowEmbedder(FakeEmbedder):
            async def embed_text(self, text, retry_on_error=True):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0)
                in_flight -= 1
                return await super().embed_text(text, retry_on_error)

        transcript = " ".join(f"Sentence number {word} here." for word in
                              ["one", "two", "three", "four", "five", "six"])
        lister = FakeVideoLister([make_listing("long")])
        fetcher = FakeTranscriptFetcher({"long": transcript})
        embedder = SlowEmbedder()
        indexer = build_indexer(store, lister, fetcher, embedder=embedder, chunk_batch_size=2)

        summary = await indexer.index_channel(CHANNEL_URL)

        assert summary.total_chunks == 6
        assert len(embedder.calls) == 6
        assert peak == 2

    async def test_concurrent_run_for_same_channel_rejected(self, store):
        """Test that a second run for a channel already indexing is refused."""
        release = asyncio.Event()

        class BlockingLister(FakeVideoLister):
            async def list_channel_videos(self, channel_url, max_count=None):
                await release.wait()
                return []

        indexer = build_indexer(store, BlockingLister(), FakeTranscriptFetcher())
        first = asyncio.create_task(indexer.index_channel(CHANNEL_URL))
        while not indexer.is_running("mkbhd"):
            await asyncio.sleep(0)

        with pytest.raises(IndexingAlreadyRunning):
            await indexer.index_channel("@mkbhd")

        release.set()
        summary = await first
        assert summary.total_videos == 0
        assert indexer.is_running("mkbhd") is False
        assert len(store.statuses) == 1
