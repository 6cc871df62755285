"""Embedding backends and the stage that attaches vectors to chunks."""
from __future__ import annotations

import asyncio
import logging
import time
import zlib
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Sequence

import numpy as np
import openai

from pdfchat.config import PipelineSettings
from pdfchat.errors import EmbeddingUnavailableError
from pdfchat.models import Chunk
from pdfchat.telemetry import emit_embeddings_event
from pdfchat.tokenization import tokens

LOGGER = logging.getLogger(__name__)


class EmbeddingBackend(ABC):
    """Capability interface implemented by every embedding provider."""

    name: str = "unknown"

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector returned by :meth:`embed_texts`."""

    @property
    def informative(self) -> bool:
        """Whether vector similarity carries meaning for this backend."""

        return True

    @abstractmethod
    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        """Return one vector per input text, in order."""

    def embed_query(self, text: str) -> List[float]:
        """Vector for a question; backends with asymmetric encoders override this."""

        return self.embed_texts([text])[0]


class PlaceholderEmbeddingBackend(EmbeddingBackend):
    """All-zero vectors used when no embedding provider is configured.

    The vectors only guarantee presence and dimensionality; retrieval treats
    them as uninformative and ranks by lexical overlap instead.
    """

    name = "placeholder"

    def __init__(self, dimension: int = 1536) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be a positive integer")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def informative(self) -> bool:
        return False

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        return [[0.0] * self._dimension for _ in texts]


class TfidfEmbeddingBackend(EmbeddingBackend):
    """TF-IDF vectors computed locally, without any provider.

    Tokens are hashed into ``dimension`` buckets so every vector has the same
    length. Inverse document frequency is smoothed and taken over the texts of
    one :meth:`embed_texts` call, which the stage issues once per document.
    Queries become normalised term-frequency vectors.
    """

    name = "tfidf"

    def __init__(self, dimension: int = 1536) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be a positive integer")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def _counts(self, text: str) -> np.ndarray:
        counts = np.zeros(self._dimension, dtype=float)
        for token in tokens(text):
            counts[zlib.crc32(token.encode("utf-8")) % self._dimension] += 1.0
        return counts

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        counts = np.vstack([self._counts(text) for text in texts])
        lengths = counts.sum(axis=1, keepdims=True)
        term_frequency = np.divide(counts, lengths, out=np.zeros_like(counts), where=lengths > 0)
        document_frequency = (counts > 0).sum(axis=0)
        idf = np.log((1.0 + len(texts)) / (1.0 + document_frequency)) + 1.0
        return [_unit(row).tolist() for row in term_frequency * idf]

    def embed_query(self, text: str) -> List[float]:
        return _unit(self._counts(text)).tolist()


def _unit(vector: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(vector)
    return vector / norm if norm > 0 else vector


class OpenAIEmbeddingBackend(EmbeddingBackend):
    """Embeddings from an OpenAI-compatible ``/embeddings`` endpoint."""

    name = "openai"

    def __init__(
        self,
        *,
        model: str,
        dimension: int,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 15.0,
        client: Optional[openai.OpenAI] = None,
    ) -> None:
        self.model = model
        self._dimension = dimension
        self._client = client or openai.OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            response = self._client.embeddings.create(model=self.model, input=list(texts))
        except openai.OpenAIError as error:
            raise EmbeddingUnavailableError(
                f"Embedding provider request failed: {error}", cause=error
            ) from error
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]


class SentenceTransformerEmbeddingBackend(EmbeddingBackend):
    """Local sentence-transformers model (installed with ``pdfchat[local]``)."""

    name = "sentence-transformers"

    def __init__(self, model_name: str, *, device: str | None = None) -> None:
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as error:
            raise EmbeddingUnavailableError(
                "sentence-transformers is not installed; install pdfchat[local]", cause=error
            ) from error
        try:
            self._model = SentenceTransformer(model_name, device=device)
        except Exception as error:
            raise EmbeddingUnavailableError(
                f"Failed to load sentence-transformers model {model_name!r}: {error}", cause=error
            ) from error
        self._dimension = int(self._model.get_sentence_embedding_dimension())

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        embeddings = self._model.encode(
            list(texts),
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=False,
        )
        return embeddings.tolist()


def build_embedding_backend(settings: PipelineSettings) -> EmbeddingBackend:
    """Select the embedding backend named by ``settings.embedding_backend``.

    A backend that cannot be initialised is replaced by the placeholder
    backend with a warning, so retrieval keeps working in lexical mode.
    """

    backend = settings.embedding_backend
    if backend == "tfidf":
        return TfidfEmbeddingBackend(settings.embedding_dimension)
    if backend == "openai":
        if not settings.llm_api_key:
            LOGGER.warning("No API key configured for embeddings; using placeholder vectors.")
            return PlaceholderEmbeddingBackend(settings.embedding_dimension)
        return OpenAIEmbeddingBackend(
            model=settings.embedding_model,
            dimension=settings.embedding_dimension,
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            timeout=settings.embedding_timeout,
        )
    if backend == "sentence-transformers":
        try:
            return SentenceTransformerEmbeddingBackend(settings.embedding_model)
        except EmbeddingUnavailableError as error:
            LOGGER.warning("%s; using placeholder vectors.", error)
            return PlaceholderEmbeddingBackend(settings.embedding_dimension)
    return PlaceholderEmbeddingBackend(settings.embedding_dimension)


class EmbeddingStage:
    """Attach vectors to chunks, bounding every backend call by ``timeout``."""

    def __init__(self, backend: EmbeddingBackend, *, timeout: float = 15.0) -> None:
        self.backend = backend
        self.timeout = timeout

    @property
    def informative(self) -> bool:
        return self.backend.informative

    async def embed(self, chunks: Sequence[Chunk]) -> List[Chunk]:
        if not chunks:
            return []
        texts = [chunk.text for chunk in chunks]
        vectors = await self._run(self.backend.embed_texts, texts, count=len(texts))
        if len(vectors) != len(chunks):
            raise EmbeddingUnavailableError(
                f"Embedding backend returned {len(vectors)} vectors for {len(chunks)} chunks"
            )
        return [chunk.with_vector(vector) for chunk, vector in zip(chunks, vectors)]

    async def embed_query(self, text: str) -> Optional[List[float]]:
        """Vector for a question, or ``None`` when vectors are uninformative."""

        if not self.backend.informative or not text.strip():
            return None
        vectors = await self._run(lambda: [self.backend.embed_query(text)], count=1)
        return vectors[0]

    async def _run(
        self, call: Callable[..., List[List[float]]], *args: Any, count: int
    ) -> List[List[float]]:
        started = time.perf_counter()
        try:
            vectors = await asyncio.wait_for(asyncio.to_thread(call, *args), timeout=self.timeout)
        except asyncio.TimeoutError as error:
            self._emit(count, started, [f"timeout after {self.timeout}s"])
            raise EmbeddingUnavailableError(
                f"Embedding backend timed out after {self.timeout}s", cause=error
            ) from error
        except EmbeddingUnavailableError as error:
            self._emit(count, started, [str(error)])
            raise

        for vector in vectors:
            if len(vector) != self.backend.dimension:
                self._emit(count, started, ["dimension mismatch"])
                raise EmbeddingUnavailableError(
                    f"Expected {self.backend.dimension}-dimensional vectors, got {len(vector)}"
                )
        self._emit(count, started)
        return vectors

    def _emit(self, count: int, started: float, errors: list[str] | None = None) -> None:
        emit_embeddings_event(
            backend=self.backend.name,
            count=count,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            errors=errors,
        )


__all__ = [
    "EmbeddingBackend",
    "EmbeddingStage",
    "OpenAIEmbeddingBackend",
    "PlaceholderEmbeddingBackend",
    "SentenceTransformerEmbeddingBackend",
    "TfidfEmbeddingBackend",
    "build_embedding_backend",
]
