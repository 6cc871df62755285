"""PDF text extraction with page boundary tracking."""
from __future__ import annotations

import io
import logging
from typing import List

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from pdfchat.errors import ExtractionError, UnsupportedFormatError
from pdfchat.models import ExtractedText, PageBoundary

from .normalization import normalize_page_text

LOGGER = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"
_HEADER_SEARCH_BYTES = 1024
PAGE_SEPARATOR = "\n"


def looks_like_pdf(data: bytes) -> bool:
    """Return ``True`` when the PDF header appears near the start of ``data``."""

    return bool(data) and PDF_MAGIC in data[:_HEADER_SEARCH_BYTES]


class PDFExtractor:
    """Turn raw PDF bytes into one text stream plus page boundaries.

    Pages are normalised individually and joined with :data:`PAGE_SEPARATOR`.
    A page whose text layer cannot be decoded is logged and contributes an
    empty string; a document that cannot be opened at all raises
    :class:`~pdfchat.errors.ExtractionError`. Extraction is never retried.
    """

    def __init__(self, *, normalize: bool = True) -> None:
        self.normalize = normalize

    def extract(self, data: bytes) -> ExtractedText:
        if not looks_like_pdf(data):
            raise UnsupportedFormatError("Input is not a PDF document")

        reader = self._open(data)
        page_texts = self._page_texts(reader)

        if not any(text.strip() for text in page_texts):
            # Scanned documents: keep the page count, expose no text.
            LOGGER.warning("PDF has %d pages but no text layer", len(page_texts))
            return ExtractedText(
                full_text="",
                page_boundaries=tuple(
                    PageBoundary(page_number=number, char_offset=0)
                    for number in range(1, len(page_texts) + 1)
                ),
            )

        boundaries: List[PageBoundary] = []
        offset = 0
        for page_number, text in enumerate(page_texts, start=1):
            boundaries.append(PageBoundary(page_number=page_number, char_offset=offset))
            offset += len(text) + len(PAGE_SEPARATOR)

        full_text = PAGE_SEPARATOR.join(page_texts)
        LOGGER.info(
            "Extracted %d characters from %d pages", len(full_text), len(page_texts)
        )
        return ExtractedText(full_text=full_text, page_boundaries=tuple(boundaries))

    def _open(self, data: bytes) -> PdfReader:
        try:
            reader = PdfReader(io.BytesIO(data))
        except PdfReadError as error:
            raise ExtractionError(f"Malformed PDF: {error}", cause=error) from error
        except Exception as error:  # PyPDF2 surfaces structural damage as assorted errors
            raise ExtractionError(f"Unable to parse PDF: {error}", cause=error) from error

        if reader.is_encrypted:
            try:
                decrypted = reader.decrypt("")
            except Exception as error:
                raise ExtractionError(f"Encrypted PDF: {error}", cause=error) from error
            if not decrypted:
                raise ExtractionError("Encrypted PDF requires a password")
        return reader

    def _page_texts(self, reader: PdfReader) -> List[str]:
        try:
            pages = list(reader.pages)
        except Exception as error:
            raise ExtractionError(f"Unable to read PDF page tree: {error}", cause=error) from error
        if not pages:
            raise ExtractionError("PDF contains no pages")

        texts: List[str] = []
        for index, page in enumerate(pages, start=1):
            try:
                text = page.extract_text() or ""
            except Exception as error:
                LOGGER.warning("Failed to extract text from PDF page %s: %s", index, error)
                text = ""
            texts.append(normalize_page_text(text) if self.normalize else text)
        return texts
