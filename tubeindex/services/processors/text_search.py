"""
Keyword Text Utilities

Shared stop-word list and the query-side keyword extraction used by the
keyword search path, display keyword matching and entity filtering.

Matching is always case-insensitive substring matching: the query keyword
``obama`` matches the stored keyword ``Barack Obama``.
"""

import string
from typing import Iterable


# Articles, pronouns, auxiliary/modal verbs and prepositions.
STOP_WORDS: frozenset[str] = frozenset({
    # Articles and conjunctions
    "the", "a", "an", "and", "or", "but", "nor", "so", "as", "if", "than", "then",
    # Prepositions
    "in", "on", "at", "to", "for", "of", "with", "by", "about", "from", "into",
    "onto", "over", "under", "above", "below", "between", "through", "during",
    "before", "after", "up", "down", "out", "off", "via",
    # Auxiliary and modal verbs
    "is", "are", "was", "were", "be", "been", "being", "have", "has", "had",
    "do", "does", "did", "will", "would", "could", "should", "may", "might",
    "must", "can", "not",
    # Demonstratives and interrogatives
    "this", "that", "these", "those", "there", "what", "which", "who", "whom",
    "when", "where", "why", "how",
    # Pronouns
    "i", "you", "he", "she", "it", "we", "they", "me", "him", "her", "us", "them",
    "my", "your", "his", "its", "our", "their",
})

MIN_KEYWORD_LENGTH = 3

_EDGE_PUNCTUATION = string.punctuation + "“”‘’"


def is_stop_word(word: str) -> bool:
    """Check a word against the shared stop-word list (case-insensitive)."""
    return word.strip().lower() in STOP_WORDS


def extract_query_keywords(query: str) -> list[str]:
    """
    Extract search keywords from a free-text query.

    Lowercases, splits on whitespace, trims surrounding punctuation and keeps
    tokens longer than two characters that are not stop words. Order is
    preserved and duplicates are dropped.

    Example:
        >>> extract_query_keywords("Tell me about Barack Obama")
        ['tell', 'barack', 'obama']
    """
    keywords: list[str] = []
    for token in (query or "").lower().split():
        token = token.strip(_EDGE_PUNCTUATION)
        if len(token) < MIN_KEYWORD_LENGTH or token in STOP_WORDS:
            continue
        if token not in keywords:
            keywords.append(token)
    return keywords


def keyword_matches(candidate: str, query_keyword: str) -> bool:
    """True when ``query_keyword`` occurs inside ``candidate`` (case-insensitive)."""
    return query_keyword.lower() in candidate.lower()


def match_keywords(candidates: Iterable[str], query_keywords: list[str]) -> list[str]:
    """
    Filter stored keyword strings to those containing any query keyword.

    Returns matches in input order without duplicates.
    """
    matched: list[str] = []
    for candidate in candidates:
        if candidate in matched:
            continue
        if any(keyword_matches(candidate, kw) for kw in query_keywords):
            matched.append(candidate)
    return matched


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so a keyword is matched literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
