"""Structured lifecycle events for the retrieval-and-answer pipeline."""

from __future__ import annotations

import logging
import os
import platform
import sys
import time
import traceback
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional

LOGGER = logging.getLogger("pdfchat.telemetry")

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "PDFCHAT_CHUNK_SIZE",
    "PDFCHAT_CHUNK_OVERLAP",
    "PDFCHAT_TOP_K",
    "PDFCHAT_EMBEDDING_BACKEND",
    "PDFCHAT_EMBEDDING_MODEL",
    "PDFCHAT_LLM_BASE_URL",
    "PDFCHAT_FAST_MODEL",
    "PDFCHAT_HIGH_MODEL",
    "PDFCHAT_DEFAULT_LOCALE",
    "PDFCHAT_INDEX_CAPACITY",
    "PDFCHAT_DATA_DIR",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    req_id: str | None = None,
    session_id: str | None = None,
    document_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if req_id:
        event["req_id"] = req_id
    if session_id:
        event["session_id"] = session_id
    if document_id:
        event["document_id"] = document_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    env_values = {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None}
    details = {
        "env": env_values,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
    }
    log_event(LOGGER, "app.startup", details=details)


def emit_ingest_event(
    step: str,
    *,
    document_id: str,
    session_id: str | None = None,
    file_name: str | None = None,
    size_bytes: int | None = None,
    duration_ms: float | None = None,
    language: str | None = None,
    pages: int | None = None,
    chunks: int | None = None,
    embedded: bool | None = None,
) -> None:
    details = {
        "file": file_name,
        "size_bytes": size_bytes,
        "language": language,
        "pages": pages,
        "chunks": chunks,
        "embedded": embedded,
    }
    log_event(
        LOGGER,
        step,
        session_id=session_id,
        document_id=document_id,
        duration_ms=duration_ms,
        details=details,
    )


def emit_embeddings_event(
    *, backend: str, count: int, duration_ms: float, errors: list[str] | None = None
) -> None:
    details = {
        "backend": backend,
        "count": count,
        "errors": errors or [],
        "per_item_ms": round(duration_ms / count, 3) if count else None,
    }
    level = "warning" if errors else "info"
    log_event(LOGGER, "embeddings.compute", level=level, duration_ms=duration_ms, details=details)


def emit_index_event(step: str, *, document_id: str, session_id: str | None = None, **details: Any) -> None:
    log_event(LOGGER, step, session_id=session_id, document_id=document_id, details=details)


def emit_retriever_event(
    *,
    query: str,
    top_k: int,
    strategy: str,
    results: list[dict[str, Any]],
    duration_ms: float,
    session_id: str | None = None,
) -> None:
    details = {
        "query_preview": query[:120],
        "top_k": top_k,
        "strategy": strategy,
        "results": results,
    }
    log_event(
        LOGGER, "retriever.search", session_id=session_id, duration_ms=duration_ms, details=details
    )


def emit_prompt_event(
    *,
    locale: str,
    intent: str | None,
    system_prompt: str,
    sources: Iterable[int],
    context_chars: int,
) -> None:
    details = {
        "locale": locale,
        "intent": intent,
        "system_prompt_preview": system_prompt[:120],
        "sources": list(sources),
        "context_chars": context_chars,
    }
    log_event(LOGGER, "prompt.compose", details=details)


def emit_inference_request(
    *,
    req_id: str,
    session_id: str | None,
    tier: str,
    model: str,
    prompt_len: int,
    max_tokens: int,
    temperature: float,
) -> None:
    details = {
        "tier": tier,
        "model": model,
        "prompt_len": prompt_len,
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    log_event(LOGGER, "inference.request", req_id=req_id, session_id=session_id, details=details)


def emit_inference_result(
    *,
    req_id: str,
    session_id: str | None,
    duration_ms: float,
    model_used: str,
    answer_preview: str,
    fallback: bool,
) -> None:
    details = {
        "model_used": model_used,
        "answer_preview": answer_preview[:120],
        "fallback": fallback,
    }
    log_event(
        LOGGER,
        "inference.result",
        req_id=req_id,
        session_id=session_id,
        duration_ms=duration_ms,
        details=details,
    )


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
    session_id: str | None = None,
    document_id: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module}
    if suggestion:
        details["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        req_id=req_id,
        session_id=session_id,
        document_id=document_id,
        details=details,
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", level="debug", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="warning", details=fields, exc=str(error))
        raise
    finally:
        end = time.perf_counter()
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            level="debug",
            duration_ms=(end - start) * 1000.0,
            details=fields,
        )


__all__ = [
    "emit_app_startup_event",
    "emit_embeddings_event",
    "emit_exception",
    "emit_index_event",
    "emit_inference_request",
    "emit_inference_result",
    "emit_ingest_event",
    "emit_prompt_event",
    "emit_retriever_event",
    "log_event",
    "traced_duration",
]
