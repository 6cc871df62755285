"""Data models shared by the ingestion, retrieval and answer stages."""
from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Sequence, Tuple


class QualityTier(str, Enum):
    """Trade-off between answer latency/cost and model capability."""

    FAST = "fast"
    HIGH = "high"


class Intent(str, Enum):
    """Kind of request the answer generator is asked to fulfil."""

    QA = "qa"
    EXPLAIN = "explain"
    SUMMARIZE = "summarize"
    REWRITE = "rewrite"


@dataclass(frozen=True, slots=True)
class Document:
    """An ingested PDF. Immutable once created."""

    id: str
    display_name: str
    source_location: str
    page_count: int
    language: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PageBoundary:
    """Offset in the concatenated text where ``page_number`` begins."""

    page_number: int
    char_offset: int


@dataclass(frozen=True, slots=True)
class ExtractedText:
    """Linear text of a document plus the page each offset originates from."""

    full_text: str
    page_boundaries: Tuple[PageBoundary, ...]

    @property
    def page_count(self) -> int:
        return len(self.page_boundaries)

    def page_for_offset(self, offset: int) -> int:
        """Return the page covering ``offset`` (best effort, 1 when unknown)."""

        if not self.page_boundaries:
            return 1
        offsets = [boundary.char_offset for boundary in self.page_boundaries]
        index = bisect_right(offsets, offset) - 1
        return self.page_boundaries[max(index, 0)].page_number


@dataclass(frozen=True, slots=True)
class Chunk:
    """A contiguous slice of a document's extracted text."""

    document_id: str
    sequence_index: int
    page_number: int
    text: str
    char_start: int
    char_end: int
    vector: Optional[Tuple[float, ...]] = field(default=None, repr=False, compare=False)

    def with_vector(self, vector: Sequence[float]) -> "Chunk":
        return replace(self, vector=tuple(float(value) for value in vector))


@dataclass(frozen=True, slots=True)
class ScoredChunk:
    chunk: Chunk
    score: float


@dataclass(slots=True)
class AnswerRequest:
    """Transient request to answer ``question`` about a document."""

    document_id: str
    question: str
    quality_tier: QualityTier = QualityTier.FAST
    locale: Optional[str] = None
    intent: Optional[Intent] = None
    top_k: Optional[int] = None


@dataclass(slots=True)
class AnswerResult:
    """Structured result returned from :meth:`RAGService.generate_answer`."""

    text: str
    document_id: str
    quality_tier: QualityTier
    locale: str
    sources: List[ScoredChunk] = field(default_factory=list)
    retrieval_strategy: Optional[str] = None
    fallback: bool = False


@dataclass(slots=True)
class IngestResult:
    """Structured result returned from :meth:`RAGService.extract_and_chunk`."""

    document: Document
    chunk_count: int
    embedded: bool
    duration_seconds: float


@dataclass(frozen=True, slots=True)
class DocumentStats:
    document_id: str
    total_chunks: int
    total_pages: int
    average_chunk_length: float
    embedded: bool


__all__ = [
    "AnswerRequest",
    "AnswerResult",
    "Chunk",
    "Document",
    "DocumentStats",
    "ExtractedText",
    "IngestResult",
    "Intent",
    "PageBoundary",
    "QualityTier",
    "ScoredChunk",
]
