"""
Exception hierarchy shared across indexing and search.

Per-item errors (one video, one chunk) are contained at their own
boundary by the caller; ``ConfigurationError`` subclasses are never
contained and always reach the top of an indexing run.
"""

from typing import Optional


class TubeIndexError(Exception):
    """Base exception for all tubeindex errors."""
    pass


class ConfigurationError(TubeIndexError):
    """Raised when a required setting or credential is missing."""
    pass


class EmbeddingUnavailable(ConfigurationError):
    """Raised when no embedding provider credential is configured."""
    pass


class InvalidChannelReference(TubeIndexError):
    """Raised when a channel URL or handle cannot be parsed."""

    def __init__(self, reference: str, message: Optional[str] = None):
        self.reference = reference
        super().__init__(message or f"Invalid YouTube channel URL: {reference!r}")


class TranscriptUnavailable(TubeIndexError):
    """Raised when a transcript could not be obtained for a video."""

    def __init__(self, video_id: str, reason: str = "no transcript available"):
        self.video_id = video_id
        self.reason = reason
        super().__init__(f"Transcript unavailable for video {video_id}: {reason}")


class ProviderError(TubeIndexError):
    """
    Raised when an external model provider (embedding or NER) fails.

    ``status_code`` carries the upstream HTTP status, or ``None`` when the
    failure happened before a response was received.
    """

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        detail = f" (status {status_code})" if status_code is not None else ""
        super().__init__(f"{provider} error{detail}: {message}")


class PersistenceReferentialMiss(TubeIndexError):
    """Raised when a stored record's parent cannot be resolved."""

    def __init__(self, entity: str, key: object):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key!r} not found")


class RunFailure(TubeIndexError):
    """Raised when an indexing run fails outside the per-video boundary."""

    def __init__(self, channel_id: str, message: str):
        self.channel_id = channel_id
        super().__init__(f"Indexing run for channel {channel_id} failed: {message}")


class SearchProviderOutage(TubeIndexError):
    """Raised when the vector search path fails; triggers keyword fallback."""
    pass


class IndexingAlreadyRunning(TubeIndexError):
    """Raised when an indexing run is requested for a channel already being indexed."""

    def __init__(self, channel_id: str):
        self.channel_id = channel_id
        super().__init__(f"Indexing already running for channel {channel_id}")
