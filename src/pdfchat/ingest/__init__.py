"""Extraction and chunking stages of the ingestion path."""
from __future__ import annotations

from .chunking import ChunkingConfig, FixedWindowChunker, chunk_text
from .extractors import PDFExtractor, looks_like_pdf
from .language import LanguageDetector

__all__ = [
    "ChunkingConfig",
    "FixedWindowChunker",
    "LanguageDetector",
    "PDFExtractor",
    "chunk_text",
    "looks_like_pdf",
]
