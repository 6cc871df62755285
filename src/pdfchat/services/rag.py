"""Pipeline façade: ingest documents, switch between them, answer questions."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional

from pdfchat.config import PipelineSettings
from pdfchat.embeddings import EmbeddingStage, build_embedding_backend
from pdfchat.errors import (
    DocumentNotFoundError,
    DocumentUnavailableError,
    EmbeddingUnavailableError,
    ExtractionError,
    GenerationUnavailableError,
)
from pdfchat.generation import AnswerGenerator
from pdfchat.index import DocumentIndex
from pdfchat.ingest import ChunkingConfig, FixedWindowChunker, LanguageDetector, PDFExtractor
from pdfchat.llm_provider import LLMStatus, build_llm_backends
from pdfchat.logging_config import AUDIT_LOGGER_NAME
from pdfchat.models import (
    AnswerRequest,
    AnswerResult,
    Document,
    DocumentStats,
    ExtractedText,
    IngestResult,
    Intent,
    QualityTier,
)
from pdfchat.prompt_builder import PromptBuilder, PromptCatalog
from pdfchat.retriever import Retriever
from pdfchat.session import SessionContext, SessionRegistry
from pdfchat.storage import (
    DocumentSource,
    FileSystemDocumentSource,
    SourceDocument,
    WritableDocumentSource,
)
from pdfchat.telemetry import emit_exception, emit_ingest_event, traced_duration

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)


@dataclass(slots=True)
class _Extraction:
    extracted: ExtractedText
    language: Optional[str]


class RAGService:
    """High level orchestration of the PDF retrieval-and-answer workflow.

    The active document is tracked per :class:`SessionContext`; the index of
    loaded chunk sets is shared by every session.
    """

    def __init__(
        self,
        settings: PipelineSettings | None = None,
        *,
        extractor: PDFExtractor | None = None,
        chunker: FixedWindowChunker | None = None,
        embedding_stage: EmbeddingStage | None = None,
        index: DocumentIndex | None = None,
        retriever: Retriever | None = None,
        generator: AnswerGenerator | None = None,
        source: DocumentSource | None = None,
        language_detector: LanguageDetector | None = None,
    ) -> None:
        self.settings = settings or PipelineSettings.from_env()
        self.extractor = extractor or PDFExtractor()
        self.chunker = chunker or FixedWindowChunker(
            ChunkingConfig(chunk_size=self.settings.chunk_size, overlap=self.settings.chunk_overlap)
        )
        self.embedding_stage = embedding_stage or EmbeddingStage(
            build_embedding_backend(self.settings), timeout=self.settings.embedding_timeout
        )
        self.index = index or DocumentIndex(capacity=self.settings.index_capacity)
        self.retriever = retriever or Retriever(default_top_k=self.settings.top_k)
        if generator is None:
            catalog = PromptCatalog.load_default(self.settings.default_locale)
            generator = AnswerGenerator(
                PromptBuilder(catalog), build_llm_backends(self.settings), self.settings
            )
        self.generator = generator
        self.source = source or FileSystemDocumentSource(self.settings.data_dir)
        self.language_detector = language_detector or LanguageDetector()
        self.sessions = SessionRegistry(capacity=self.settings.session_capacity)
        self._document_locks: Dict[str, asyncio.Lock] = {}
        self.index.add_eviction_listener(self._on_document_evicted)

    def session(self, session_id: str) -> SessionContext:
        return self.sessions.get(session_id)

    def llm_status(self) -> LLMStatus:
        return self.generator.backends[QualityTier.FAST].status()

    def _lock_for(self, document_id: str) -> asyncio.Lock:
        lock = self._document_locks.get(document_id)
        if lock is None:
            lock = asyncio.Lock()
            self._document_locks[document_id] = lock
        return lock

    def _on_document_evicted(self, document_id: str) -> None:
        self.sessions.forget_document(document_id)
        lock = self._document_locks.get(document_id)
        if lock is not None and not lock.locked():
            del self._document_locks[document_id]

    async def extract_and_chunk(
        self,
        session: SessionContext,
        document_id: str,
        data: bytes,
        *,
        display_name: str | None = None,
        source_location: str | None = None,
    ) -> IngestResult:
        """Extract, chunk, embed and load ``data`` as ``document_id``.

        Loading never changes which document any session has active. An
        embedding failure still loads the chunks without vectors.
        """

        async with self._lock_for(document_id):
            return await self._ingest(
                session, document_id, data, display_name=display_name, source_location=source_location
            )

    async def _ingest(
        self,
        session: SessionContext,
        document_id: str,
        data: bytes,
        *,
        display_name: str | None,
        source_location: str | None,
    ) -> IngestResult:
        started = time.perf_counter()
        name = display_name or f"{document_id}.pdf"
        emit_ingest_event(
            "ingest.start",
            document_id=document_id,
            session_id=session.session_id,
            file_name=name,
            size_bytes=len(data),
        )

        try:
            extraction = await self._extract(data)
        except Exception as error:
            emit_exception(
                module=f"{__name__}.extract",
                error=error,
                session_id=session.session_id,
                document_id=document_id,
            )
            raise

        with traced_duration("ingest.chunk", document_id=document_id):
            chunks = self.chunker.chunk(document_id, extraction.extracted)
        embedded = False
        try:
            chunks = await self.embedding_stage.embed(chunks)
            embedded = bool(chunks)
        except EmbeddingUnavailableError as error:
            LOGGER.warning("Loading document %s without vectors: %s", document_id, error)
            emit_exception(
                module=f"{__name__}.embeddings",
                error=error,
                session_id=session.session_id,
                document_id=document_id,
                suggestion="Retrieval falls back to lexical matching for this document.",
            )

        document = Document(
            id=document_id,
            display_name=name,
            source_location=source_location or "",
            page_count=extraction.extracted.page_count,
            language=extraction.language,
        )
        self.index.load(document, chunks)

        duration = time.perf_counter() - started
        emit_ingest_event(
            "ingest.complete",
            document_id=document_id,
            session_id=session.session_id,
            file_name=name,
            size_bytes=len(data),
            duration_ms=duration * 1000.0,
            language=extraction.language,
            pages=document.page_count,
            chunks=len(chunks),
            embedded=embedded,
        )
        AUDIT_LOGGER.info(
            {
                "event": "ingest",
                "session_id": session.session_id,
                "document_id": document_id,
                "file_name": name,
                "chunk_count": len(chunks),
            }
        )
        return IngestResult(
            document=document,
            chunk_count=len(chunks),
            embedded=embedded,
            duration_seconds=duration,
        )

    async def _extract(self, data: bytes) -> _Extraction:
        def _run() -> _Extraction:
            extracted = self.extractor.extract(data)
            return _Extraction(extracted, self.language_detector.detect(extracted.full_text))

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(_run), timeout=self.settings.extract_timeout
            )
        except asyncio.TimeoutError as error:
            raise ExtractionError(
                f"PDF extraction timed out after {self.settings.extract_timeout}s", cause=error
            ) from error

    async def ingest_upload(
        self,
        session: SessionContext,
        document_id: str,
        data: bytes,
        display_name: str | None = None,
    ) -> IngestResult:
        """Ingest an uploaded file, keep its bytes for later reloads and activate it."""

        result = await self.extract_and_chunk(session, document_id, data, display_name=display_name)
        if isinstance(self.source, WritableDocumentSource):
            location = await self.source.save(document_id, data, display_name)
            LOGGER.debug("Upload for %s kept at %s", document_id, location)
        self.index.activate(session, document_id)
        return result

    async def switch_to_document(self, session: SessionContext, document_id: str) -> bool:
        """Activate ``document_id`` for ``session``; ``False`` when it is not loaded."""

        return self.index.activate(session, document_id)

    async def ensure_active(self, session: SessionContext, document_id: str) -> None:
        """Activate the document, extracting it from the source first if needed."""

        if self.index.activate(session, document_id):
            return

        async with self._lock_for(document_id):
            if self.index.activate(session, document_id):
                return
            LOGGER.info("Document %s not loaded; extracting on demand", document_id)
            source = await self._fetch(document_id)
            await self._ingest(
                session,
                document_id,
                source.data,
                display_name=source.display_name,
                source_location=source.source_location,
            )
            self.index.activate(session, document_id)

    async def _fetch(self, document_id: str) -> SourceDocument:
        try:
            return await asyncio.wait_for(
                self.source.fetch(document_id), timeout=self.settings.fetch_timeout
            )
        except asyncio.TimeoutError as error:
            raise DocumentUnavailableError(
                f"Fetching document {document_id} timed out after {self.settings.fetch_timeout}s",
                cause=error,
            ) from error

    async def generate_answer(
        self,
        session: SessionContext,
        document_id: str,
        question: str,
        quality_tier: QualityTier = QualityTier.FAST,
        locale: str | None = None,
        *,
        intent: Intent | None = None,
        top_k: int | None = None,
    ) -> AnswerResult:
        """Answer ``question`` about ``document_id`` in ``locale``.

        Raises :class:`DocumentNotFoundError` when the document is neither
        loaded nor available from the source, and extraction errors for
        unreadable source files. Model failures yield the localised apology.
        """

        locale = locale or self.settings.default_locale
        await self.ensure_active(session, document_id)

        entry = self.index.get(document_id)
        chunks = entry.chunks if entry is not None else ()
        document_name = entry.document.display_name if entry is not None else document_id

        query_vector = None
        if entry is not None and entry.embedded:
            try:
                query_vector = await self.embedding_stage.embed_query(question)
            except EmbeddingUnavailableError as error:
                emit_exception(
                    module=f"{__name__}.embeddings",
                    error=error,
                    session_id=session.session_id,
                    document_id=document_id,
                    suggestion="Query ranked lexically.",
                )

        retrieval = self.retriever.retrieve(
            question, chunks, query_vector, top_k, session_id=session.session_id
        )

        fallback = not any(item.chunk.text.strip() for item in retrieval.chunks)
        try:
            answer = await self.generator.generate(
                question,
                document_name,
                quality_tier,
                locale,
                retrieval.chunks,
                intent,
                history=session.recent_history(document_id),
                session_id=session.session_id,
            )
        except GenerationUnavailableError as error:
            LOGGER.warning("Answer generation unavailable for session %s", session.session_id)
            emit_exception(
                module=f"{__name__}.llm",
                error=error,
                session_id=session.session_id,
                document_id=document_id,
                suggestion="Returned the apology answer.",
            )
            answer = self.generator.apology_answer(locale)
            fallback = True

        if not fallback:
            session.record_exchange(document_id, question, answer)

        AUDIT_LOGGER.info(
            {
                "event": "query",
                "session_id": session.session_id,
                "document_id": document_id,
                "question": question,
                "tier": quality_tier.value,
                "locale": locale,
                "sources": [item.chunk.sequence_index for item in retrieval.chunks],
                "fallback": fallback,
            }
        )
        return AnswerResult(
            text=answer,
            document_id=document_id,
            quality_tier=quality_tier,
            locale=locale,
            sources=retrieval.chunks,
            retrieval_strategy=retrieval.strategy,
            fallback=fallback,
        )

    async def answer(self, session: SessionContext, request: AnswerRequest) -> AnswerResult:
        """Run :meth:`generate_answer` for a validated :class:`AnswerRequest`."""

        return await self.generate_answer(
            session,
            request.document_id,
            request.question,
            request.quality_tier,
            request.locale,
            intent=request.intent,
            top_k=request.top_k,
        )

    def document_stats(self, document_id: str) -> DocumentStats:
        stats = self.index.stats(document_id)
        if stats is None:
            raise DocumentNotFoundError(f"Document {document_id!r} is not loaded")
        return stats

    def clear_document(self, document_id: str) -> bool:
        """Drop a document from the index and from every session's active pointer."""

        return self.index.evict(document_id)

    def reset(self) -> None:
        self.index.clear()
        self.sessions.clear()
        self._document_locks.clear()


@lru_cache(maxsize=1)
def get_rag_service() -> RAGService:
    """FastAPI dependency returning the shared :class:`RAGService` instance."""

    return RAGService()


__all__ = ["RAGService", "get_rag_service"]
