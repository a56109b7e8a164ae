"""Hybrid search engine and relevance scoring."""

from tubeindex.services.search.hybrid_search import HybridSearchEngine
from tubeindex.services.search.scoring import (
    composite_relevance_score,
    keyword_relevance_score,
)

__all__ = [
    "HybridSearchEngine",
    "composite_relevance_score",
    "keyword_relevance_score",
]
