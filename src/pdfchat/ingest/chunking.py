"""Fixed-size, position-tracked chunking of extracted document text."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List, Tuple

from pdfchat.config import DEFAULT_CHUNK_SIZE
from pdfchat.errors import InvalidConfigError
from pdfchat.models import Chunk, ExtractedText

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ChunkingConfig:
    chunk_size: int = DEFAULT_CHUNK_SIZE
    overlap: int = 0

    def validate(self) -> None:
        if isinstance(self.chunk_size, bool) or not isinstance(self.chunk_size, int):
            raise InvalidConfigError(f"chunk_size must be an integer, got {self.chunk_size!r}")
        if self.chunk_size <= 0:
            raise InvalidConfigError(f"chunk_size must be a positive integer, got {self.chunk_size}")
        if isinstance(self.overlap, bool) or not isinstance(self.overlap, int):
            raise InvalidConfigError(f"overlap must be an integer, got {self.overlap!r}")
        if self.overlap < 0 or self.overlap >= self.chunk_size:
            raise InvalidConfigError(
                f"overlap must be in [0, chunk_size), got {self.overlap} for chunk_size {self.chunk_size}"
            )


class FixedWindowChunker:
    """Walk the text in fixed windows of ``chunk_size`` characters.

    Windows advance by ``chunk_size - overlap``. With the default overlap of
    zero the chunk texts concatenate back to the extracted text exactly. Each
    chunk records the page covering its first character only, so a chunk that
    crosses a page break is attributed to the earlier page.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()
        self.config.validate()

    def chunk(self, document_id: str, extracted: ExtractedText) -> List[Chunk]:
        chunks: List[Chunk] = []
        for start, end in self._windows(len(extracted.full_text)):
            text = extracted.full_text[start:end]
            if not text:
                continue
            chunks.append(
                Chunk(
                    document_id=document_id,
                    sequence_index=len(chunks),
                    page_number=extracted.page_for_offset(start),
                    text=text,
                    char_start=start,
                    char_end=end,
                )
            )
        LOGGER.debug(
            "Chunked document %s into %d chunks (size=%d, overlap=%d)",
            document_id,
            len(chunks),
            self.config.chunk_size,
            self.config.overlap,
        )
        return chunks

    def _windows(self, text_length: int) -> Iterator[Tuple[int, int]]:
        step = self.config.chunk_size - self.config.overlap
        start = 0
        while start < text_length:
            end = min(start + self.config.chunk_size, text_length)
            yield start, end
            if end >= text_length:
                break
            start += step


def chunk_text(
    document_id: str,
    extracted: ExtractedText,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = 0,
) -> List[Chunk]:
    """Convenience wrapper around :class:`FixedWindowChunker`."""

    return FixedWindowChunker(ChunkingConfig(chunk_size=chunk_size, overlap=overlap)).chunk(
        document_id, extracted
    )
