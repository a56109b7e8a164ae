"""
Tests for the keyword text utilities.

This test module verifies:
1. Query keyword extraction
2. Case-insensitive substring matching
3. LIKE escaping
"""

import pytest

from tubeindex.services.processors.text_search import (
    escape_like,
    extract_query_keywords,
    is_stop_word,
    keyword_matches,
    match_keywords,
)


class TestExtractQueryKeywords:
    """Test query-side keyword extraction."""

    def test_drops_stop_words_and_short_tokens(self):
        """Test the canonical example query."""
        assert extract_query_keywords("Tell me about Barack Obama") == ["tell", "barack", "obama"]

    def test_strips_punctuation_and_dedupes(self):
        """Test punctuation trimming and duplicate removal."""
        assert extract_query_keywords("Obama? OBAMA, obama!") == ["obama"]
        assert extract_query_keywords('"React" hooks.') == ["react", "hooks"]

    @pytest.mark.parametrize("query", ["", "   ", "is it on", None])
    def test_nothing_left(self, query):
        """Test queries that produce no keywords."""
        assert extract_query_keywords(query) == []

    def test_is_stop_word(self):
        assert is_stop_word(" The ")
        assert not is_stop_word("Berlin")


class TestMatching:
    """Test keyword matching helpers."""

    def test_substring_match_is_case_insensitive(self):
        assert keyword_matches("Barack Obama", "obama")
        assert not keyword_matches("Berlin", "obama")

    def test_match_keywords_keeps_order_without_duplicates(self):
        candidates = ["Barack Obama", "Berlin", "Michelle Obama", "Barack Obama"]

        assert match_keywords(candidates, ["obama"]) == ["Barack Obama", "Michelle Obama"]

    def test_match_keywords_no_query_keywords(self):
        assert match_keywords(["Berlin"], []) == []


class TestEscapeLike:
    def test_escapes_wildcards(self):
        assert escape_like("100%_done") == "100\\%\\_done"

    def test_escapes_backslash_first(self):
        assert escape_like("a\\b") == "a\\\\b"

    def test_plain_text_unchanged(self):
        assert escape_like("obama") == "obama"
