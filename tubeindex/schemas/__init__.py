"""
Pydantic schemas for collaborator records and caller-facing results.
"""

from tubeindex.schemas.youtube import (
    ChannelIndexInfo,
    DatabaseStatusReport,
    EmbeddingRegenerationResult,
    EntityHit,
    FetchedTranscript,
    IndexingEstimate,
    IndexRunSummary,
    IndexStatusSnapshot,
    KeywordExtractionResult,
    KeywordRecord,
    SearchOptions,
    SearchResult,
    SearchResultChannel,
    SearchResultVideo,
    TranscriptSegment,
    VideoListing,
)

__all__ = [
    # Collaborator records
    "VideoListing",
    "FetchedTranscript",
    "TranscriptSegment",
    "EntityHit",
    "KeywordExtractionResult",
    "KeywordRecord",
    # Search
    "SearchOptions",
    "SearchResult",
    "SearchResultVideo",
    "SearchResultChannel",
    # Indexing results
    "IndexRunSummary",
    "ChannelIndexInfo",
    "IndexingEstimate",
    "IndexStatusSnapshot",
    "EmbeddingRegenerationResult",
    "DatabaseStatusReport",
]
