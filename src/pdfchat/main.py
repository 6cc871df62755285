import os

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from pdfchat.api.rag import router as rag_router
from pdfchat.logging_config import configure_logging
from pdfchat.services.rag import RAGService, get_rag_service
from pdfchat.telemetry import emit_app_startup_event

configure_logging(os.getenv("PDFCHAT_LOG_DIR", "logs"), os.getenv("PDFCHAT_LOG_LEVEL", "INFO"))

app = FastAPI(title="pdfchat API")
app.include_router(rag_router)


@app.on_event("startup")
async def _startup() -> None:
    emit_app_startup_event()


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck(rag_service: RAGService = Depends(get_rag_service)) -> str:
    """Report whether a language model provider is configured."""
    status = rag_service.llm_status()
    if not status.available:
        detail = status.error or "LLM backend is not configured"
        raise HTTPException(status_code=503, detail=detail)

    return "ok"


@app.get("/healthz/model")
def model_healthcheck(rag_service: RAGService = Depends(get_rag_service)) -> dict[str, object]:
    """Expose the configured backend and model names per quality tier."""

    status = rag_service.llm_status()
    payload: dict[str, object] = {
        "available": status.available,
        "backend": status.backend,
        "fast_model": rag_service.settings.fast_model,
        "high_model": rag_service.settings.high_model,
        "embedding_backend": rag_service.embedding_stage.backend.name,
    }
    if status.base_url:
        payload["base_url"] = status.base_url
    if status.error:
        payload["reason"] = status.error
    return payload
