"""Persistence port and its SQLAlchemy implementation."""

from tubeindex.services.storage.base import (
    IndexCounts,
    IndexStore,
    KeywordHit,
    ScoredChunk,
    build_video_values,
)
from tubeindex.services.storage.index_store import SqlAlchemyIndexStore

__all__ = [
    "IndexStore",
    "SqlAlchemyIndexStore",
    "ScoredChunk",
    "KeywordHit",
    "IndexCounts",
    "build_video_values",
]
