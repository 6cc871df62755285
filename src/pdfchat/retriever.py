"""Rank a document's chunks against a question."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from pdfchat.config import DEFAULT_TOP_K
from pdfchat.models import Chunk, ScoredChunk
from pdfchat.telemetry import emit_retriever_event
from pdfchat.tokenization import tokenize

LOGGER = logging.getLogger(__name__)

VECTOR_STRATEGY = "vector"
LEXICAL_STRATEGY = "lexical"


@dataclass(slots=True)
class RetrievalResult:
    chunks: List[ScoredChunk] = field(default_factory=list)
    strategy: Optional[str] = None


class Retriever:
    """Select the top-K chunks most relevant to a question.

    Cosine similarity is used when the query and every chunk carry vectors of
    the same dimension and the chunk vectors actually differ from one another.
    Otherwise chunks are scored by the number of distinct tokens they share
    with the question. Results are ordered by score, highest first, with ties
    broken by ascending ``sequence_index``.
    """

    def __init__(self, default_top_k: int = DEFAULT_TOP_K) -> None:
        self.default_top_k = default_top_k

    def retrieve(
        self,
        question: str,
        chunks: Sequence[Chunk],
        query_vector: Optional[Sequence[float]] = None,
        top_k: Optional[int] = None,
        *,
        session_id: str | None = None,
    ) -> RetrievalResult:
        limit = self.default_top_k if top_k is None else top_k
        if not chunks or limit <= 0:
            return RetrievalResult()

        started = time.perf_counter()
        scores = self._cosine_scores(chunks, query_vector)
        strategy = VECTOR_STRATEGY
        if scores is None:
            scores = self._lexical_scores(question, chunks)
            strategy = LEXICAL_STRATEGY

        ranked = sorted(
            (ScoredChunk(chunk=chunk, score=score) for chunk, score in zip(chunks, scores)),
            key=lambda item: (-item.score, item.chunk.sequence_index),
        )[:limit]

        emit_retriever_event(
            query=question,
            top_k=limit,
            strategy=strategy,
            results=[
                {
                    "sequence_index": item.chunk.sequence_index,
                    "page": item.chunk.page_number,
                    "score": round(item.score, 6),
                }
                for item in ranked
            ],
            duration_ms=(time.perf_counter() - started) * 1000.0,
            session_id=session_id,
        )
        return RetrievalResult(chunks=ranked, strategy=strategy)

    @staticmethod
    def _lexical_scores(question: str, chunks: Sequence[Chunk]) -> List[float]:
        query_tokens = tokenize(question)
        if not query_tokens:
            return [0.0] * len(chunks)
        return [float(len(query_tokens & tokenize(chunk.text))) for chunk in chunks]

    @staticmethod
    def _cosine_scores(
        chunks: Sequence[Chunk], query_vector: Optional[Sequence[float]]
    ) -> Optional[List[float]]:
        if query_vector is None or any(chunk.vector is None for chunk in chunks):
            return None

        query = np.asarray(query_vector, dtype=float)
        dimension = query.shape[0]
        if any(len(chunk.vector) != dimension for chunk in chunks):  # type: ignore[arg-type]
            LOGGER.warning("Chunk vector dimension differs from query dimension %d", dimension)
            return None

        matrix = np.asarray([chunk.vector for chunk in chunks], dtype=float)
        if np.allclose(matrix, matrix[0]):
            return None

        query_norm = np.linalg.norm(query)
        if query_norm == 0.0:
            return None
        row_norms = np.linalg.norm(matrix, axis=1)
        denominators = row_norms * query_norm
        similarities = np.divide(
            matrix @ query,
            denominators,
            out=np.zeros(len(chunks), dtype=float),
            where=denominators > 0,
        )
        return [float(value) for value in similarities]


__all__ = ["LEXICAL_STRATEGY", "RetrievalResult", "Retriever", "VECTOR_STRATEGY", "tokenize"]
