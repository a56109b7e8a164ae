"""
YouTube URL parsing helpers.

Channel references are accepted in these forms:

- https://www.youtube.com/@handle
- https://www.youtube.com/c/customname
- https://www.youtube.com/channel/UCxxxxxxxxxxxxxxxxxxxxxx
- https://www.youtube.com/user/legacyname
- @handle
- UCxxxxxxxxxxxxxxxxxxxxxx
"""

import re
from datetime import datetime, timezone
from typing import NamedTuple, Optional
from urllib.parse import parse_qs, urlparse

from tubeindex.core.exceptions import InvalidChannelReference


_SEGMENT = r"([a-zA-Z0-9_-]+)"

_URL_PATTERNS = (
    ("handle", re.compile(rf"youtube\.com/@{_SEGMENT}")),
    ("custom", re.compile(rf"youtube\.com/c/{_SEGMENT}")),
    ("channel", re.compile(rf"youtube\.com/channel/{_SEGMENT}")),
    ("user", re.compile(rf"youtube\.com/user/{_SEGMENT}")),
)

_BARE_HANDLE = re.compile(rf"^@{_SEGMENT}$")
_BARE_CHANNEL_ID = re.compile(r"^(UC[a-zA-Z0-9_-]{22})$")

_URL_PREFIX = {
    "handle": "@",
    "custom": "c/",
    "channel": "channel/",
    "user": "user/",
}


class ChannelReference(NamedTuple):
    """A parsed channel reference."""

    kind: str
    identifier: str

    @property
    def url(self) -> str:
        """Canonical channel URL."""
        return f"https://www.youtube.com/{_URL_PREFIX[self.kind]}{self.identifier}"

    @property
    def videos_url(self) -> str:
        """URL of the channel's uploads tab."""
        return f"{self.url}/videos"


def parse_channel_reference(reference: str) -> ChannelReference:
    """
    Parse a channel URL or handle.

    Raises:
        InvalidChannelReference: If the reference matches no known form
    """
    value = (reference or "").strip()

    for kind, pattern in _URL_PATTERNS:
        match = pattern.search(value)
        if match:
            return ChannelReference(kind, match.group(1))

    match = _BARE_HANDLE.match(value)
    if match:
        return ChannelReference("handle", match.group(1))

    match = _BARE_CHANNEL_ID.match(value)
    if match:
        return ChannelReference("channel", match.group(1))

    raise InvalidChannelReference(reference)


def canonical_channel_url(handle: str) -> str:
    """
    Rebuild a channel URL from a stored external channel id.

    Example:
        >>> canonical_channel_url("mkbhd")
        'https://www.youtube.com/@mkbhd'
    """
    handle = handle.strip().lstrip("@")
    if _BARE_CHANNEL_ID.match(handle):
        return ChannelReference("channel", handle).url
    return ChannelReference("handle", handle).url


def extract_channel_key(reference: str) -> str:
    """Identifier stored as the channel's external id."""
    return parse_channel_reference(reference).identifier


def extract_video_id_from_url(url: str) -> Optional[str]:
    """
    Extract video ID from YouTube URL.

    Supports:
    - https://www.youtube.com/watch?v=VIDEO_ID
    - https://youtu.be/VIDEO_ID
    - https://www.youtube.com/embed/VIDEO_ID
    - https://www.youtube.com/shorts/VIDEO_ID
    """
    parsed = urlparse(url)
    if "youtube.com" in parsed.netloc:
        query_params = parse_qs(parsed.query)
        if "v" in query_params:
            return query_params["v"][0]

        for marker in ("/embed/", "/shorts/"):
            if marker in parsed.path:
                return parsed.path.split(marker)[1].split("/")[0] or None

    if "youtu.be" in parsed.netloc:
        return parsed.path.lstrip("/") or None

    return None


def parse_upload_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a ``YYYYMMDD`` upload date into a UTC datetime.

    Returns None for missing or malformed values (yt-dlp prints "NA").
    """
    if not value or len(value) != 8 or not value.isdigit():
        return None
    try:
        return datetime.strptime(value, "%Y%m%d").replace(tzinfo=timezone.utc)
    except ValueError:
        return None
