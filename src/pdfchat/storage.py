"""Persistence and lookup of uploaded PDF bytes."""
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Optional, Protocol, runtime_checkable

from pdfchat.errors import DocumentNotFoundError, DocumentUnavailableError

LOGGER = logging.getLogger(__name__)

_FILENAME_SAFE_CHARS_RE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9._-]+")


def _sanitize_filename(filename: str) -> str:
    """Return a filesystem-safe filename preserving the extension when possible."""
    if not filename:
        filename = "upload"
    sanitized = Path(filename).name
    sanitized = _FILENAME_SAFE_CHARS_RE.sub("_", sanitized)
    sanitized = sanitized.strip("._") or "upload"
    return sanitized


@dataclass(frozen=True, slots=True)
class SourceDocument:
    """Raw bytes of a document plus the metadata needed to index it."""

    document_id: str
    data: bytes
    display_name: str
    source_location: str


class DocumentSource(Protocol):
    """Where the pipeline fetches bytes for documents it has not loaded yet."""

    async def fetch(self, document_id: str) -> SourceDocument:
        """Return the stored document or raise :class:`DocumentNotFoundError`."""


@runtime_checkable
class WritableDocumentSource(DocumentSource, Protocol):
    async def save(self, document_id: str, data: bytes, display_name: Optional[str] = None) -> Path:
        ...


class FileSystemDocumentSource:
    """Store uploads under ``root`` as a PDF plus a JSON sidecar.

    File stems combine a readable form of the document id with a digest of
    the exact id, so ids that sanitise alike never share files.
    """

    def __init__(self, root: Path | str = "data") -> None:
        self.root = Path(root)

    def paths_for(self, document_id: str) -> tuple[Path, Path]:
        digest = hashlib.sha256(document_id.encode("utf-8")).hexdigest()[:16]
        stem = f"{_sanitize_filename(document_id)[:64]}-{digest}"
        return self.root / f"{stem}.pdf", self.root / f"{stem}.json"

    async def save(self, document_id: str, data: bytes, display_name: Optional[str] = None) -> Path:
        pdf_path, meta_path = self.paths_for(document_id)
        name = Path(display_name).name if display_name else f"{document_id}.pdf"

        def _write() -> None:
            self.root.mkdir(parents=True, exist_ok=True)
            pdf_path.write_bytes(data)
            meta_path.write_text(
                json.dumps({"document_id": document_id, "display_name": name}, ensure_ascii=False),
                encoding="utf-8",
            )

        try:
            await asyncio.to_thread(_write)
        except OSError as error:
            raise DocumentUnavailableError(
                f"Failed to store document {document_id}: {error}", cause=error
            ) from error
        LOGGER.info("Stored document %s (%d bytes) at %s", document_id, len(data), pdf_path)
        return pdf_path.resolve()

    async def fetch(self, document_id: str) -> SourceDocument:
        pdf_path, meta_path = self.paths_for(document_id)

        def _read() -> tuple[bytes, str]:
            if not pdf_path.is_file():
                raise DocumentNotFoundError(f"No stored document with id {document_id!r}")
            display_name = f"{document_id}.pdf"
            if meta_path.is_file():
                try:
                    metadata = json.loads(meta_path.read_text(encoding="utf-8"))
                    display_name = str(metadata.get("display_name") or display_name)
                except (OSError, ValueError) as error:
                    LOGGER.warning("Ignoring unreadable metadata for %s: %s", document_id, error)
            return pdf_path.read_bytes(), display_name

        try:
            data, display_name = await asyncio.to_thread(_read)
        except OSError as error:
            raise DocumentUnavailableError(
                f"Failed to read document {document_id}: {error}", cause=error
            ) from error
        return SourceDocument(
            document_id=document_id,
            data=data,
            display_name=display_name,
            source_location=str(pdf_path.resolve()),
        )


__all__ = ["DocumentSource", "FileSystemDocumentSource", "SourceDocument", "WritableDocumentSource"]
