"""Service layer wiring the pipeline components together."""
from __future__ import annotations

from .rag import RAGService, get_rag_service

__all__ = ["RAGService", "get_rag_service"]
