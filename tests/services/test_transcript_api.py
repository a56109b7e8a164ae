"""
Tests for TranscriptApiFetcher and FallbackTranscriptFetcher.
"""

from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from youtube_transcript_api._errors import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    TranscriptsDisabled,
    VideoUnavailable,
)

from tubeindex.core.exceptions import ConfigurationError, TranscriptUnavailable
from tubeindex.schemas.youtube import FetchedTranscript
from tubeindex.services.sources.base import FallbackTranscriptFetcher
from tubeindex.services.sources.transcript_api import TranscriptApiFetcher, join_snippets
from tests.fakes import FakeTranscriptFetcher, make_listing


class FakeFetchedTranscript(list):
    """Iterable of snippets carrying the language, like the library's result."""

    def __init__(self, texts, language_code="en"):
        super().__init__(SimpleNamespace(text=t, start=0.0, duration=1.0) for t in texts)
        self.language_code = language_code


def listed_transcript(language_code, is_generated, texts):
    transcript = Mock()
    transcript.language_code = language_code
    transcript.is_generated = is_generated
    transcript.fetch.return_value = FakeFetchedTranscript(texts, language_code)
    return transcript


class TestJoinSnippets:
    def test_drops_markers_and_blank_snippets(self):
        snippets = FakeFetchedTranscript(["Hello", "[Music]", "  world  ", ""])
        assert join_snippets(snippets) == "Hello world"


@pytest.mark.asyncio
class TestTranscriptApiFetcher:
    """Test language fallbacks and error mapping."""

    async def test_preferred_language(self):
        api = Mock()
        api.fetch.return_value = FakeFetchedTranscript(["Hello", "there"], "en")
        fetcher = TranscriptApiFetcher(preferred_languages=["en", "en-US"], api=api)

        transcript = await fetcher.fetch_transcript(make_listing("abc"))

        assert transcript.transcript_text == "Hello there"
        assert transcript.language == "en"
        assert transcript.title is None
        api.fetch.assert_called_once_with("abc", languages=["en", "en-US"])

    async def test_falls_back_to_manual_then_generated(self):
        api = Mock()
        api.fetch.side_effect = NoTranscriptFound("abc", ["en"], None)
        api.list.return_value = [
            listed_transcript("de", True, ["Automatisch"]),
            listed_transcript("fr", False, ["Bonjour"]),
        ]
        fetcher = TranscriptApiFetcher(preferred_languages=["en"], api=api)

        transcript = await fetcher.fetch_transcript(make_listing("abc"))

        assert transcript.transcript_text == "Bonjour"
        assert transcript.language == "fr"

    async def test_generated_used_when_no_manual(self):
        api = Mock()
        api.fetch.side_effect = NoTranscriptFound("abc", ["en"], None)
        api.list.return_value = [listed_transcript("es", True, ["Hola"])]

        transcript = await TranscriptApiFetcher(["en"], api=api).fetch_transcript(make_listing("abc"))

        assert transcript.language == "es"

    async def test_no_transcripts_at_all(self):
        api = Mock()
        api.fetch.side_effect = NoTranscriptFound("abc", ["en"], None)
        api.list.return_value = []

        assert await TranscriptApiFetcher(["en"], api=api).fetch_transcript(make_listing("abc")) is None

    @pytest.mark.parametrize("error", [
        TranscriptsDisabled("abc"),
        VideoUnavailable("abc"),
    ])
    async def test_missing_captions_return_none(self, error):
        api = Mock()
        api.fetch.side_effect = error

        assert await TranscriptApiFetcher(["en"], api=api).fetch_transcript(make_listing("abc")) is None

    async def test_other_retrieval_errors_raise(self):
        api = Mock()
        api.fetch.side_effect = CouldNotRetrieveTranscript("abc")

        with pytest.raises(TranscriptUnavailable) as exc_info:
            await TranscriptApiFetcher(["en"], api=api).fetch_transcript(make_listing("abc"))
        assert exc_info.value.video_id == "abc"

    async def test_empty_text_returns_none(self):
        api = Mock()
        api.fetch.return_value = FakeFetchedTranscript(["[Music]", " "])

        assert await TranscriptApiFetcher(["en"], api=api).fetch_transcript(make_listing("abc")) is None


class RaisingFetcher:
    def __init__(self, error):
        self.error = error
        self.calls = 0

    async def fetch_transcript(self, video):
        self.calls += 1
        raise self.error


@pytest.mark.asyncio
class TestFallbackTranscriptFetcher:
    """Test fetcher chaining."""

    async def test_first_non_empty_wins(self):
        first = FakeTranscriptFetcher({"abc": None})
        second = FakeTranscriptFetcher({"abc": "From second."})
        third = FakeTranscriptFetcher({"abc": "From third."})

        transcript = await FallbackTranscriptFetcher([first, second, third]).fetch_transcript(
            make_listing("abc")
        )

        assert transcript.transcript_text == "From second."
        assert third.calls == []

    async def test_error_falls_through_to_next(self):
        failing = RaisingFetcher(RuntimeError("rate limited"))
        working = FakeTranscriptFetcher({"abc": "Works."})

        transcript = await FallbackTranscriptFetcher([failing, working]).fetch_transcript(
            make_listing("abc")
        )

        assert transcript.transcript_text == "Works."
        assert failing.calls == 1

    async def test_all_empty_returns_none(self):
        chain = FallbackTranscriptFetcher([FakeTranscriptFetcher(), FakeTranscriptFetcher({"abc": "  "})])
        assert await chain.fetch_transcript(make_listing("abc")) is None

    async def test_all_failing_raises_transcript_unavailable(self):
        chain = FallbackTranscriptFetcher([
            RaisingFetcher(RuntimeError("blocked")),
            FakeTranscriptFetcher(),
        ])

        with pytest.raises(TranscriptUnavailable, match="blocked"):
            await chain.fetch_transcript(make_listing("abc"))

    async def test_configuration_errors_propagate(self):
        later = FakeTranscriptFetcher({"abc": "unused"})
        chain = FallbackTranscriptFetcher([RaisingFetcher(ConfigurationError("no key")), later])

        with pytest.raises(ConfigurationError):
            await chain.fetch_transcript(make_listing("abc"))
        assert later.calls == []

    async def test_returned_transcript_is_unchanged(self):
        class Fixed:
            async def fetch_transcript(self, video):
                return FetchedTranscript(transcript_text="text", language="en")

        transcript = await FallbackTranscriptFetcher([Fixed()]).fetch_transcript(make_listing("abc"))
        assert transcript.language == "en"


def test_fallback_requires_a_fetcher():
    with pytest.raises(ValueError):
        FallbackTranscriptFetcher([])
