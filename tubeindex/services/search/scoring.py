"""
Relevance scoring for search results.

Vector path:
    similarity
    + 0.05 per matched keyword
    + 0.1 if the query appears verbatim in the chunk
    + 0.05 * fraction of query words found inside some content word
    capped at 1.0

Keyword path:
    fraction of query keywords found among the chunk's matched keywords
"""

from typing import Sequence

from tubeindex.services.processors.text_search import keyword_matches


KEYWORD_MATCH_BOOST = 0.05
VERBATIM_BOOST = 0.1
WORD_OVERLAP_BOOST = 0.05


def _clamp(score: float) -> float:
    return max(0.0, min(1.0, score))


def word_overlap_fraction(query: str, content: str) -> float:
    """Fraction of query words that occur as a substring of some content word."""
    query_words = query.lower().split()
    if not query_words:
        return 0.0

    content_words = content.lower().split()
    found = sum(
        1 for word in query_words
        if any(word in content_word for content_word in content_words)
    )
    return found / len(query_words)


def composite_relevance_score(
    similarity: float,
    matched_keyword_count: int,
    query: str,
    content: str,
) -> float:
    """
    Score a vector-path result.

    Example:
        >>> composite_relevance_score(0.8, 2, "react hooks", "Using React hooks today")
        1.0
    """
    score = similarity
    score += KEYWORD_MATCH_BOOST * matched_keyword_count

    if query.strip() and query.strip().lower() in content.lower():
        score += VERBATIM_BOOST

    score += WORD_OVERLAP_BOOST * word_overlap_fraction(query, content)
    return _clamp(score)


def keyword_relevance_score(
    query_keywords: Sequence[str],
    matched_keywords: Sequence[str],
) -> float:
    """
    Score a keyword-path result.

    Example:
        >>> keyword_relevance_score(["tell", "barack", "obama"], ["Barack Obama"])
        0.6666666666666666
    """
    if not query_keywords or not matched_keywords:
        return 0.0

    found = sum(
        1 for query_keyword in query_keywords
        if any(keyword_matches(matched, query_keyword) for matched in matched_keywords)
    )
    return _clamp(found / len(query_keywords))
