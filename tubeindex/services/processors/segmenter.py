"""
Transcript Segmentation Service

This module splits a flat transcript into sentence-bounded, token-budgeted,
overlapping chunks with derived time ranges.

Strategy:
---------
1. Split the transcript into sentences on ``.``, ``!`` and ``?``
   (no abbreviation awareness)
2. Accumulate sentences while the running token estimate fits the budget
3. On overflow, close the chunk and seed the next one with the trailing
   ``floor(overlap / 4)`` words of the closed chunk plus the sentence
   that overflowed
4. Always emit the final partial chunk

Timing:
-------
Only aggregate token counts are known, so times are derived:
``end_time = start_time + floor(token_count / 4 * 60)`` and each chunk
starts where the previous one ended.

Configuration from settings:
- CHUNK_SIZE_TOKENS: 400 (default)
- CHUNK_OVERLAP_TOKENS: 50 (default)
- SEGMENT_TOKENIZER: "approximate" (ceil(chars / 4)) or "tiktoken"
"""

import logging
import math
import re
from typing import Callable, Optional

import tiktoken

from tubeindex.core.config import settings
from tubeindex.schemas.youtube import TranscriptSegment


logger = logging.getLogger(__name__)

# Sentence body followed by its terminating punctuation (if any)
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]*")


def estimate_tokens(text: str) -> int:
    """
    Approximate token count: one token per four characters, rounded up.

    Args:
        text: Text to measure

    Returns:
        Estimated number of tokens
    """
    return math.ceil(len(text) / 4)


def split_into_sentences(text: str) -> list[str]:
    """
    Split text into trimmed, non-empty sentences.

    Terminal punctuation stays attached to its sentence; runs such as
    ``?!`` or ``...`` close a single sentence.
    """
    sentences = []
    for match in _SENTENCE_RE.finditer(text):
        sentence = match.group(0).strip()
        # Skip fragments that are only punctuation
        if sentence and sentence.strip(".!? "):
            sentences.append(sentence)
    return sentences


def overlap_text(text: str, overlap_tokens: int) -> str:
    """Return the trailing ``floor(overlap_tokens / 4)`` words of ``text``."""
    word_count = overlap_tokens // 4
    if word_count <= 0:
        return ""
    words = text.split()
    return " ".join(words[-word_count:])


def estimated_duration_seconds(token_count: int) -> int:
    """Speech duration derived from a token count."""
    return math.floor(token_count / 4 * 60)


class TranscriptSegmenter:
    """
    Sentence-bounded transcript chunker.

    Usage:
    ------
    segmenter = TranscriptSegmenter()
    segments = segmenter.segment(transcript_text)

    for segment in segments:
        print(segment.chunk_index, segment.start_time, segment.end_time)
    """

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        tokenizer: Optional[str] = None,
    ):
        """
        Initialize the segmenter with configuration.

        Args:
            chunk_size: Target tokens per chunk (default from settings)
            chunk_overlap: Tokens carried into the next chunk (default from settings)
            tokenizer: "approximate" or "tiktoken" (default from settings)
        """
        self.chunk_size = chunk_size if chunk_size is not None else settings.CHUNK_SIZE_TOKENS
        self.chunk_overlap = (
            chunk_overlap if chunk_overlap is not None else settings.CHUNK_OVERLAP_TOKENS
        )
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.chunk_overlap < 0:
            raise ValueError("chunk_overlap cannot be negative")

        self._count: Callable[[str], int] = estimate_tokens
        if (tokenizer or settings.SEGMENT_TOKENIZER) == "tiktoken":
            try:
                encoding = tiktoken.get_encoding("cl100k_base")
                self._count = lambda text: len(encoding.encode(text))
            except Exception as e:
                logger.warning(f"tiktoken unavailable, using approximate token counts: {e}")

    def count_tokens(self, text: str) -> int:
        """Count tokens with the configured tokenizer."""
        return self._count(text)

    def segment(self, transcript: str) -> list[TranscriptSegment]:
        """
        Split a transcript into ordered chunks.

        Args:
            transcript: Flat transcript text

        Returns:
            Chunks in ``chunk_index`` order; empty for an empty transcript
        """
        segments: list[TranscriptSegment] = []
        current_chunk = ""
        current_tokens = 0
        start_time = 0

        for sentence in split_into_sentences(transcript or ""):
            sentence_tokens = self._count(sentence)

            if current_chunk and current_tokens + sentence_tokens > self.chunk_size:
                end_time = start_time + estimated_duration_seconds(current_tokens)
                segments.append(TranscriptSegment(
                    chunk_index=len(segments),
                    text=current_chunk.strip(),
                    start_time=start_time,
                    end_time=end_time,
                    token_count=current_tokens,
                ))

                carried = overlap_text(current_chunk, self.chunk_overlap)
                current_chunk = f"{carried} {sentence}" if carried else sentence
                current_tokens = self._count(current_chunk)
                start_time = end_time
            else:
                current_chunk = f"{current_chunk} {sentence}" if current_chunk else sentence
                current_tokens += sentence_tokens

        if current_chunk.strip():
            segments.append(TranscriptSegment(
                chunk_index=len(segments),
                text=current_chunk.strip(),
                start_time=start_time,
                end_time=start_time + estimated_duration_seconds(current_tokens),
                token_count=current_tokens,
            ))

        logger.debug(f"Segmented transcript into {len(segments)} chunks")
        return segments
