"""
Entity/Keyword Extraction Service

This module wraps a named-entity recognition model and turns its raw hits
into deduplicated, scored keywords for each transcript chunk.

Model: dslim/bert-base-NER (Hugging Face transformers "ner" pipeline)
- Categories: PER, ORG, LOC, MISC
- Input ceiling: ~512 word pieces, so text is fed in fixed-size
  character windows

Pipeline:
---------
1. Split text into ``NER_WINDOW_CHARS`` windows (independent of chunk
   boundaries)
2. Run the recognizer on every window and concatenate hits
3. Drop hits with score <= ``NER_MIN_SCORE`` and stop words
4. Deduplicate on (lowercased word, entity type), keeping the best score
5. Sort by score descending and group by category (``B-``/``I-`` stripped)
"""

import asyncio
import logging
import math
import re
from typing import Any, Optional, Protocol

import torch
from transformers import pipeline

from tubeindex.core.config import settings
from tubeindex.core.exceptions import ProviderError
from tubeindex.schemas.youtube import EntityHit, KeywordExtractionResult, KeywordRecord
from tubeindex.services.processors.text_search import is_stop_word


logger = logging.getLogger(__name__)

_TAG_PREFIX_RE = re.compile(r"^[BI]-")


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def normalize_entity_type(entity_type: str) -> str:
    """Strip a leading begin/inside tag: ``B-PER`` -> ``PER``."""
    return _TAG_PREFIX_RE.sub("", entity_type or "")


class EntityRecognizer(Protocol):
    """Anything that can tag entities in a piece of text."""

    async def recognize(self, text: str) -> list[EntityHit]:
        ...


class TransformersEntityRecognizer:
    """
    Entity recognizer backed by a Hugging Face token-classification pipeline.

    The model is loaded lazily on first use, in a worker thread.

    Usage:
    ------
    recognizer = TransformersEntityRecognizer()
    hits = await recognizer.recognize("Barack Obama visited Berlin.")
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        device: Optional[str] = None,
        aggregation_strategy: Optional[str] = None,
    ):
        self.model_name = model_name or settings.NER_MODEL
        self.device = device or settings.NER_DEVICE
        self.aggregation_strategy = aggregation_strategy or settings.NER_AGGREGATION_STRATEGY

        self._pipeline: Any = None
        self._load_lock = asyncio.Lock()

        self._validate_device()

    def _validate_device(self) -> None:
        """Validate and adjust device setting based on availability."""
        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA not available, falling back to CPU")
            self.device = "cpu"
        elif self.device == "mps" and not torch.backends.mps.is_available():
            logger.warning("MPS not available, falling back to CPU")
            self.device = "cpu"

    async def initialize(self) -> None:
        """Load the NER pipeline if it is not loaded yet."""
        async with self._load_lock:
            if self._pipeline is not None:
                return

            logger.info(f"Loading NER model: {self.model_name} on {self.device}")
            try:
                self._pipeline = await asyncio.to_thread(
                    pipeline,
                    "ner",
                    model=self.model_name,
                    aggregation_strategy=self.aggregation_strategy,
                    device=self.device,
                )
            except Exception as e:
                logger.error(f"Failed to load NER model: {e}")
                raise ProviderError("ner", f"failed to load model {self.model_name}: {e}") from e

    async def recognize(self, text: str) -> list[EntityHit]:
        """
        Tag entities in ``text``.

        Raises:
            ProviderError: If the model cannot be loaded or inference fails
        """
        if not text or not text.strip():
            return []

        await self.initialize()

        try:
            raw_hits = await asyncio.to_thread(self._pipeline, text)
        except Exception as e:
            logger.error(f"NER inference failed: {e}")
            raise ProviderError("ner", str(e)) from e

        hits = []
        for raw in raw_hits:
            entity_type = raw.get("entity_group") or raw.get("entity") or ""
            word = str(raw.get("word", "")).strip()
            if not word:
                continue
            hits.append(EntityHit(
                word=word,
                entity_type=entity_type,
                score=min(max(float(raw.get("score", 0.0)), 0.0), 1.0),
            ))
        return hits

    async def shutdown(self) -> None:
        """Release the model."""
        if self._pipeline is not None:
            if self.device == "cuda":
                torch.cuda.empty_cache()
            self._pipeline = None
        logger.info("NER recognizer shut down")


class KeywordExtractor:
    """
    Turns raw entity hits into keyword sets for transcript chunks.

    Usage:
    ------
    extractor = KeywordExtractor(TransformersEntityRecognizer())
    result = await extractor.extract(chunk_text)
    rows = extractor.to_keyword_records(result)
    """

    def __init__(
        self,
        recognizer: EntityRecognizer,
        window_chars: Optional[int] = None,
        min_score: Optional[float] = None,
        max_keywords: Optional[int] = None,
    ):
        self.recognizer = recognizer
        self.window_chars = window_chars or settings.NER_WINDOW_CHARS
        self.min_score = min_score if min_score is not None else settings.NER_MIN_SCORE
        self.max_keywords = max_keywords or settings.MAX_KEYWORDS_PER_CHUNK

        if self.window_chars <= 0:
            raise ValueError("window_chars must be positive")

    def split_windows(self, text: str) -> list[str]:
        """Split text into consecutive fixed-size character windows."""
        return [
            text[i:i + self.window_chars]
            for i in range(0, len(text), self.window_chars)
        ]

    async def extract(self, text: str) -> KeywordExtractionResult:
        """
        Extract deduplicated, score-sorted entities from text.

        Args:
            text: Arbitrary-length text

        Returns:
            KeywordExtractionResult with keywords and by-type grouping

        Raises:
            ProviderError: If the recognizer fails on any window
        """
        if not text or not text.strip():
            return KeywordExtractionResult()

        raw_hits: list[EntityHit] = []
        for window in self.split_windows(text):
            raw_hits.extend(await self.recognizer.recognize(window))

        best: dict[tuple[str, str], EntityHit] = {}
        for hit in raw_hits:
            if hit.score <= self.min_score:
                continue
            word = hit.word.strip()
            # Sub-word pieces leak through when the pipeline is not aggregating
            if not word or word.startswith("##") or is_stop_word(word):
                continue

            entity_type = normalize_entity_type(hit.entity_type)
            key = (word.lower(), entity_type)
            if key not in best or hit.score > best[key].score:
                best[key] = EntityHit(word=word, entity_type=entity_type, score=hit.score)

        keywords = sorted(best.values(), key=lambda h: h.score, reverse=True)

        grouped: dict[str, list[EntityHit]] = {}
        for hit in keywords:
            grouped.setdefault(hit.entity_type, []).append(hit)

        logger.debug(
            f"Extracted {len(keywords)} keywords from {len(raw_hits)} raw hits"
        )
        return KeywordExtractionResult(keywords=keywords, grouped_by_type=grouped)

    def to_keyword_records(
        self,
        result: KeywordExtractionResult,
        max_keywords: Optional[int] = None,
    ) -> list[KeywordRecord]:
        """
        Convert an extraction result into persistable keyword rows.

        Confidence and relevance are the hit score on a 0-100 scale; the
        list is capped at ``max_keywords`` highest-scoring entries.
        """
        cap = max_keywords or self.max_keywords
        records = []
        for hit in result.keywords[:cap]:
            score = round_half_up(hit.score * 100)
            records.append(KeywordRecord(
                keyword=hit.word[:200],
                entity_type=hit.entity_type[:50] or None,
                confidence=score,
                frequency=1,
                relevance=score,
            ))
        return records
