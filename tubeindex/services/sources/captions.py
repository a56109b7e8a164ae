"""
Subtitle file flattening.

Turns a WebVTT or SRT file into plain transcript text. Cue timing,
numeric cue ids, header/NOTE/STYLE blocks, inline tags, and bracketed
sound markers (``[Music]``) are dropped. YouTube auto-captions repeat
each line across rolling cues, so consecutive duplicate lines are
collapsed.
"""

import re


_TAG_RE = re.compile(r"<[^>]+>")
_SOUND_MARKER_RE = re.compile(r"\[[^\]]*\]")
_TIMING_RE = re.compile(r"-->")
_SKIP_BLOCK_PREFIXES = ("WEBVTT", "NOTE", "STYLE", "REGION", "Kind:", "Language:")


def clean_caption_text(text: str) -> str:
    """Strip tags, entities, and sound markers; normalize whitespace."""
    text = _TAG_RE.sub("", text)
    text = _SOUND_MARKER_RE.sub("", text)
    text = (
        text.replace("&nbsp;", " ")
        .replace("&amp;", "&")
        .replace("&lt;", "<")
        .replace("&gt;", ">")
        .replace("&#39;", "'")
        .replace("&quot;", '"')
    )
    return " ".join(text.split())


def captions_to_text(content: str) -> str:
    """
    Flatten VTT/SRT content into a single transcript string.

    Example:
        >>> captions_to_text("WEBVTT\\n\\n00:00.000 --> 00:02.000\\nHello world")
        'Hello world'
    """
    lines: list[str] = []
    previous = None

    blocks = re.split(r"\n\s*\n", content.replace("\r\n", "\n").strip())
    for block in blocks:
        block_lines = [line.strip() for line in block.split("\n") if line.strip()]
        if not block_lines or block_lines[0].startswith(_SKIP_BLOCK_PREFIXES):
            continue

        in_cue = False
        for line in block_lines:
            if _TIMING_RE.search(line):
                in_cue = True
                continue
            # Cue identifiers precede the timing line
            if not in_cue:
                continue

            text = clean_caption_text(line)
            if text and text != previous:
                lines.append(text)
                previous = text

    return " ".join(lines)
