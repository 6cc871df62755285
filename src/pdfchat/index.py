"""In-memory index of loaded documents and their chunk sets."""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from pdfchat.models import Chunk, Document, DocumentStats
from pdfchat.session import SessionContext
from pdfchat.telemetry import emit_index_event

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IndexEntry:
    document: Document
    chunks: Tuple[Chunk, ...]

    @property
    def embedded(self) -> bool:
        return bool(self.chunks) and all(chunk.vector is not None for chunk in self.chunks)


class DocumentIndex:
    """Bounded mapping of document id to an immutable chunk set.

    Each :meth:`load` swaps in a fresh :class:`IndexEntry`, so readers always
    observe either the previous chunk set or the new one in full. Once
    ``capacity`` documents are held, the least recently loaded or activated
    document is evicted. The index never changes which document a session has
    active; that pointer lives on the :class:`SessionContext`.
    """

    def __init__(self, capacity: int = 50) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be a positive integer")
        self.capacity = capacity
        self._lock = threading.RLock()
        self._entries: "OrderedDict[str, IndexEntry]" = OrderedDict()
        self._eviction_listeners: List[Callable[[str], None]] = []

    def add_eviction_listener(self, listener: Callable[[str], None]) -> None:
        """Call ``listener(document_id)`` whenever a document leaves the index."""

        self._eviction_listeners.append(listener)

    def _notify_evicted(self, document_id: str) -> None:
        for listener in self._eviction_listeners:
            listener(document_id)

    def load(self, document: Document, chunks: Sequence[Chunk]) -> IndexEntry:
        entry = IndexEntry(document=document, chunks=tuple(chunks))
        evicted: List[str] = []
        with self._lock:
            self._entries[document.id] = entry
            self._entries.move_to_end(document.id)
            while len(self._entries) > self.capacity:
                oldest, _ = self._entries.popitem(last=False)
                evicted.append(oldest)

        emit_index_event(
            "index.load",
            document_id=document.id,
            chunks=len(entry.chunks),
            embedded=entry.embedded,
        )
        for document_id in evicted:
            LOGGER.info("Evicted document %s from index (capacity %d)", document_id, self.capacity)
            emit_index_event("index.evict", document_id=document_id, reason="capacity")
            self._notify_evicted(document_id)
        return entry

    def get(self, document_id: str) -> Optional[IndexEntry]:
        with self._lock:
            return self._entries.get(document_id)

    def chunks(self, document_id: str) -> Tuple[Chunk, ...]:
        entry = self.get(document_id)
        return entry.chunks if entry is not None else ()

    def __contains__(self, document_id: object) -> bool:
        with self._lock:
            return document_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def activate(self, session: SessionContext, document_id: str) -> bool:
        """Make ``document_id`` the active document of ``session`` if it is loaded."""

        with self._lock:
            if document_id not in self._entries:
                return False
            self._entries.move_to_end(document_id)
            session.active_document_id = document_id
        emit_index_event("index.activate", document_id=document_id, session_id=session.session_id)
        return True

    def is_active(self, session: SessionContext, document_id: str) -> bool:
        with self._lock:
            return session.active_document_id == document_id and document_id in self._entries

    def active_document(self, session: SessionContext) -> Optional[Document]:
        with self._lock:
            if session.active_document_id is None:
                return None
            entry = self._entries.get(session.active_document_id)
            return entry.document if entry is not None else None

    def evict(self, document_id: str) -> bool:
        with self._lock:
            removed = self._entries.pop(document_id, None) is not None
        if removed:
            emit_index_event("index.evict", document_id=document_id, reason="explicit")
            self._notify_evicted(document_id)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        emit_index_event("index.clear", document_id="*")

    def stats(self, document_id: str) -> Optional[DocumentStats]:
        entry = self.get(document_id)
        if entry is None:
            return None
        total = len(entry.chunks)
        average = sum(len(chunk.text) for chunk in entry.chunks) / total if total else 0.0
        return DocumentStats(
            document_id=document_id,
            total_chunks=total,
            total_pages=entry.document.page_count,
            average_chunk_length=average,
            embedded=entry.embedded,
        )


__all__ = ["DocumentIndex", "IndexEntry"]
