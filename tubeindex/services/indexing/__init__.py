"""Channel indexing orchestrator and index maintenance."""

from tubeindex.services.indexing.channel_indexer import ChannelIndexer, VideoOutcome, VideoResult
from tubeindex.services.indexing.maintenance import IndexMaintenance, estimate_indexing_time

__all__ = [
    "ChannelIndexer",
    "IndexMaintenance",
    "VideoOutcome",
    "VideoResult",
    "estimate_indexing_time",
]
