"""API router exposing upload, activation and query endpoints."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, Field

from pdfchat.errors import (
    DocumentNotFoundError,
    DocumentUnavailableError,
    ExtractionError,
    UnsupportedFormatError,
)
from pdfchat.ingest import looks_like_pdf
from pdfchat.models import AnswerRequest, AnswerResult, Intent, QualityTier, ScoredChunk
from pdfchat.services.rag import RAGService, get_rag_service

router = APIRouter(tags=["rag"])


class IngestResponse(BaseModel):
    """Response body returned from the upload endpoint."""

    status: str
    session_id: str
    document_id: str
    display_name: str
    pages: int
    chunks: int
    embedded: bool
    language: Optional[str] = None
    duration_seconds: float


class ActivateResponse(BaseModel):
    session_id: str
    document_id: str
    active: bool


class QueryRequest(BaseModel):
    """Request body accepted by the query endpoint."""

    document_id: str = Field(..., min_length=1, description="Document the question is about.")
    question: str = Field(..., min_length=1, description="User question about the document.")
    quality_tier: QualityTier = Field(QualityTier.FAST, description="Model tier used to answer.")
    locale: Optional[str] = Field(None, description="Answer language, e.g. 'en' or 'pt-BR'.")
    intent: Optional[Intent] = Field(None, description="Optional explain/summarize/rewrite mode.")
    top_k: Optional[int] = Field(None, ge=1, le=20, description="How many chunks should be considered.")


class AnswerSource(BaseModel):
    """Individual chunk used to answer a question."""

    sequence_index: int
    page: int
    score: float
    content: str


class QueryResponse(BaseModel):
    """Response payload for the query endpoint."""

    session_id: str
    document_id: str
    answer: str
    quality_tier: QualityTier
    locale: str
    retrieval_strategy: Optional[str] = None
    fallback: bool
    sources: list[AnswerSource]


class StatsResponse(BaseModel):
    document_id: str
    total_chunks: int
    total_pages: int
    average_chunk_length: float
    embedded: bool


def _serialise_sources(chunks: list[ScoredChunk]) -> list[AnswerSource]:
    return [
        AnswerSource(
            sequence_index=item.chunk.sequence_index,
            page=item.chunk.page_number,
            score=item.score,
            content=item.chunk.text,
        )
        for item in chunks
    ]


@router.post("/sessions/{session_id}/documents/{document_id}", response_model=IngestResponse)
async def upload_document(
    session_id: str,
    document_id: str,
    file: UploadFile = File(...),
    rag_service: RAGService = Depends(get_rag_service),
) -> IngestResponse:
    """Store, ingest and activate a PDF for the session."""

    data = await file.read()
    if not looks_like_pdf(data):
        raise HTTPException(status_code=415, detail="Only PDF documents are supported")

    session = rag_service.session(session_id)
    try:
        result = await rag_service.ingest_upload(session, document_id, data, file.filename)
    except UnsupportedFormatError as exc:
        raise HTTPException(status_code=415, detail=str(exc)) from exc
    except ExtractionError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except DocumentUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return IngestResponse(
        status="ok",
        session_id=session_id,
        document_id=document_id,
        display_name=result.document.display_name,
        pages=result.document.page_count,
        chunks=result.chunk_count,
        embedded=result.embedded,
        language=result.document.language,
        duration_seconds=result.duration_seconds,
    )


@router.post(
    "/sessions/{session_id}/documents/{document_id}/activate", response_model=ActivateResponse
)
async def activate_document(
    session_id: str,
    document_id: str,
    rag_service: RAGService = Depends(get_rag_service),
) -> ActivateResponse:
    """Switch the session to an already loaded document."""

    active = await rag_service.switch_to_document(rag_service.session(session_id), document_id)
    return ActivateResponse(session_id=session_id, document_id=document_id, active=active)


@router.post("/sessions/{session_id}/query", response_model=QueryResponse)
async def query_document(
    session_id: str,
    request: QueryRequest,
    rag_service: RAGService = Depends(get_rag_service),
) -> QueryResponse:
    """Answer a question about one document for the given session."""

    if not request.question.strip():
        raise HTTPException(status_code=422, detail="Question must not be empty")

    try:
        result: AnswerResult = await rag_service.answer(
            rag_service.session(session_id),
            AnswerRequest(
                document_id=request.document_id,
                question=request.question,
                quality_tier=request.quality_tier,
                locale=request.locale,
                intent=request.intent,
                top_k=request.top_k,
            ),
        )
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except UnsupportedFormatError as exc:
        raise HTTPException(status_code=415, detail=str(exc)) from exc
    except ExtractionError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except DocumentUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return QueryResponse(
        session_id=session_id,
        document_id=result.document_id,
        answer=result.text,
        quality_tier=result.quality_tier,
        locale=result.locale,
        retrieval_strategy=result.retrieval_strategy,
        fallback=result.fallback,
        sources=_serialise_sources(result.sources),
    )


@router.get("/documents/{document_id}/stats", response_model=StatsResponse)
def document_stats(
    document_id: str,
    rag_service: RAGService = Depends(get_rag_service),
) -> StatsResponse:
    try:
        stats = rag_service.document_stats(document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return StatsResponse(
        document_id=stats.document_id,
        total_chunks=stats.total_chunks,
        total_pages=stats.total_pages,
        average_chunk_length=stats.average_chunk_length,
        embedded=stats.embedded,
    )


@router.delete("/documents/{document_id}")
def clear_document(
    document_id: str,
    rag_service: RAGService = Depends(get_rag_service),
) -> dict[str, object]:
    """Drop a document from the in-memory index."""

    return {"document_id": document_id, "removed": rag_service.clear_document(document_id)}
