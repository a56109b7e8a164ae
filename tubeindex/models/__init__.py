"""
Database Models

Import models from this module to ensure they're registered with SQLAlchemy:

    from tubeindex.models import Channel, Video, TranscriptChunk

This ensures that:
1. Alembic can detect all models for migrations
2. Relationships work correctly
"""

from tubeindex.models.youtube import (
    Channel,
    IndexState,
    IndexStatus,
    Keyword,
    SearchQueryLog,
    TranscriptChunk,
    Video,
)

__all__ = [
    "Channel",
    "Video",
    "TranscriptChunk",
    "Keyword",
    "IndexStatus",
    "SearchQueryLog",
    # Enums
    "IndexState",
]
