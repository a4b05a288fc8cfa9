"""Sentence-aware text chunking with overlapping windows.

Splits a document's text into :class:`~course_rag.models.rag.DocumentChunk`
objects of at most ``max_chunk_chars`` characters (default 600), each new
chunk seeded with the tail of the previous one (default ~100 characters).

The algorithm greedily packs sentences into a buffer.  When the next
sentence would push the buffer past the limit, the buffer is closed as a
chunk and a new buffer starts with the last
``ceil(overlap_chars / average_word_length)`` words of the closed one,
followed by that sentence.  Seed words are dropped from the front when
seed plus sentence would exceed the limit, so only a single sentence longer
than the limit ever produces an oversized chunk.  Such a sentence becomes
its own chunk rather than being cut mid-token.

The buffer is tracked as a ``[start, end)`` span over the original text,
never as a separately built string, so every chunk's content is exactly
``text[start_char:end_char]`` and repeated passages get their true offsets.
"""

from __future__ import annotations

import math

import structlog

from course_rag.models.rag import ChunkMetadata, DocumentChunk
from course_rag.services.ingestion.segmenter import segment_spans
from course_rag.utils.errors import ValidationError

logger = structlog.get_logger(logger_name=__name__)


class TextChunker:
    """Splits text into overlapping, size-bounded chunks at sentence boundaries.

    Parameters
    ----------
    max_chunk_chars:
        Default upper bound on chunk length in characters (600).
    overlap_chars:
        Default approximate overlap between consecutive chunks (100).
    average_word_length:
        Characters per word used to turn ``overlap_chars`` into a word
        count for the overlap tail (5).
    """

    def __init__(
        self,
        max_chunk_chars: int = 600,
        overlap_chars: int = 100,
        average_word_length: int = 5,
    ) -> None:
        if average_word_length <= 0:
            raise ValidationError(
                message=f"average_word_length must be positive, got {average_word_length}",
                stage="chunk",
            )
        self._validate_sizes(max_chunk_chars, overlap_chars)
        self._max_chunk_chars = max_chunk_chars
        self._overlap_chars = overlap_chars
        self._average_word_length = average_word_length

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_chunks(
        self,
        text: str,
        metadata: ChunkMetadata,
        max_chunk_chars: int | None = None,
        overlap_chars: int | None = None,
    ) -> list[DocumentChunk]:
        """Split *text* into ordered chunks, each carrying *metadata*.

        Per-call ``max_chunk_chars`` / ``overlap_chars`` override the
        instance defaults.  Empty or whitespace-only text returns ``[]``.
        The chunks have no ``document_id`` yet.

        Raises
        ------
        ValidationError
            If the size options are inconsistent.
        """
        max_chars = self._max_chunk_chars if max_chunk_chars is None else max_chunk_chars
        overlap = self._overlap_chars if overlap_chars is None else overlap_chars
        self._validate_sizes(max_chars, overlap)

        if not text or not text.strip():
            return []

        spans = self._accumulate_spans(text, max_chars, overlap)
        chunks = [
            self._make_chunk(text, index, start, end, metadata)
            for index, (start, end) in enumerate(spans)
        ]

        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            avg_chars=sum(len(c.content) for c in chunks) // max(1, len(chunks)),
            document_title=metadata.document_title,
        )
        return chunks

    # ------------------------------------------------------------------
    # Chunk accumulation
    # ------------------------------------------------------------------

    def _accumulate_spans(self, text: str, max_chars: int, overlap: int) -> list[tuple[int, int]]:
        """Return the trimmed ``(start, end)`` span of every chunk."""
        spans: list[tuple[int, int]] = []
        tail_words = math.ceil(overlap / self._average_word_length)

        buf_start = buf_end = 0
        buffer_empty = True

        for sentence in segment_spans(text):
            if buffer_empty:
                buf_start, buf_end = sentence.start, sentence.end
                buffer_empty = False
                continue

            # Sentences are contiguous, so buffer + sentence is one span.
            if (buf_end - buf_start) + len(sentence) > max_chars:
                spans.append(self._trim(text, buf_start, buf_end))
                buf_start = self._overlap_start(
                    text, buf_start, buf_end, tail_words, budget=max_chars - len(sentence)
                )
                if buf_start >= buf_end:
                    buf_start = sentence.start
            buf_end = sentence.end

        if not buffer_empty and text[buf_start:buf_end].strip():
            spans.append(self._trim(text, buf_start, buf_end))

        return spans

    @staticmethod
    def _overlap_start(text: str, start: int, end: int, tail_words: int, budget: int) -> int:
        """Return where the overlap seed taken from the buffer's tail begins.

        The seed is the last *tail_words* space-separated words, with words
        dropped from its front until it is at most *budget* characters.
        Returns *end* (no seed) when not even one word fits.
        """
        if tail_words <= 0 or budget <= 0:
            return end
        words = text[start:end].split(" ")
        for count in range(min(tail_words, len(words)), 0, -1):
            seed_start = end - len(" ".join(words[-count:]))
            if end - seed_start <= budget:
                return seed_start
        return end

    @staticmethod
    def _trim(text: str, start: int, end: int) -> tuple[int, int]:
        """Shrink ``[start, end)`` so it excludes leading/trailing whitespace."""
        raw = text[start:end]
        return start + (len(raw) - len(raw.lstrip())), end - (len(raw) - len(raw.rstrip()))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _make_chunk(
        text: str,
        index: int,
        start: int,
        end: int,
        metadata: ChunkMetadata,
    ) -> DocumentChunk:
        return DocumentChunk(
            chunk_index=index,
            content=text[start:end],
            start_char=start,
            end_char=end,
            metadata=metadata,
        )

    @staticmethod
    def _validate_sizes(max_chunk_chars: int, overlap_chars: int) -> None:
        if max_chunk_chars <= 0:
            raise ValidationError(
                message=f"max_chunk_chars must be positive, got {max_chunk_chars}",
                stage="chunk",
            )
        if overlap_chars < 0 or overlap_chars >= max_chunk_chars:
            raise ValidationError(
                message=(
                    f"overlap_chars must be in [0, {max_chunk_chars}), got {overlap_chars}"
                ),
                stage="chunk",
            )
