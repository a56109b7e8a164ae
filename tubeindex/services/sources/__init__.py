"""
Video listing and transcript fetching collaborators.
"""

from tubeindex.services.sources.base import FallbackTranscriptFetcher, TranscriptFetcher, VideoLister
from tubeindex.services.sources.urls import (
    ChannelReference,
    canonical_channel_url,
    extract_channel_key,
    extract_video_id_from_url,
    parse_channel_reference,
)

__all__ = [
    "ChannelReference",
    "FallbackTranscriptFetcher",
    "TranscriptFetcher",
    "VideoLister",
    "canonical_channel_url",
    "extract_channel_key",
    "extract_video_id_from_url",
    "parse_channel_reference",
]
