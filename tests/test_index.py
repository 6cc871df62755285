import threading

import pytest

from pdfchat.index import DocumentIndex
from pdfchat.models import Chunk, Document
from pdfchat.session import HISTORY_LIMIT, SessionContext, SessionRegistry


def _document(document_id: str, pages: int = 1) -> Document:
    return Document(
        id=document_id,
        display_name=f"{document_id}.pdf",
        source_location=f"/tmp/{document_id}.pdf",
        page_count=pages,
    )


def _chunks(document_id: str, *texts: str) -> list[Chunk]:
    return [
        Chunk(document_id, index, 1, text, index * 10, index * 10 + len(text))
        for index, text in enumerate(texts)
    ]


def test_load_does_not_change_active_document() -> None:
    index = DocumentIndex()
    session = SessionContext("s1")
    index.load(_document("a"), _chunks("a", "one"))
    assert index.activate(session, "a")

    index.load(_document("b"), _chunks("b", "two"))

    assert index.is_active(session, "a")
    assert not index.is_active(session, "b")
    assert index.active_document(session).id == "a"


def test_activate_unknown_document_returns_false() -> None:
    index = DocumentIndex()
    session = SessionContext("s1")

    assert index.activate(session, "missing") is False
    assert session.active_document_id is None
    assert index.active_document(session) is None


def test_activate_is_idempotent() -> None:
    index = DocumentIndex()
    session = SessionContext("s1")
    index.load(_document("a"), _chunks("a", "one"))

    assert index.activate(session, "a")
    assert index.activate(session, "a")
    assert index.is_active(session, "a")


def test_active_document_is_scoped_to_session() -> None:
    index = DocumentIndex()
    first, second = SessionContext("s1"), SessionContext("s2")
    index.load(_document("a"), _chunks("a", "one"))
    index.load(_document("b"), _chunks("b", "two"))

    index.activate(first, "a")
    index.activate(second, "b")

    assert index.is_active(first, "a") and not index.is_active(first, "b")
    assert index.is_active(second, "b") and not index.is_active(second, "a")


def test_load_replaces_chunk_set() -> None:
    index = DocumentIndex()
    index.load(_document("a"), _chunks("a", "old", "older"))
    before = index.chunks("a")

    index.load(_document("a"), _chunks("a", "new"))

    assert [chunk.text for chunk in before] == ["old", "older"]
    assert [chunk.text for chunk in index.chunks("a")] == ["new"]


def test_concurrent_loads_never_mix_chunk_sets() -> None:
    index = DocumentIndex()
    versions = [_chunks("a", *(f"v{version}-{n}" for n in range(20))) for version in range(8)]

    threads = [
        threading.Thread(target=index.load, args=(_document("a"), chunks)) for chunks in versions
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    texts = [chunk.text for chunk in index.chunks("a")]
    prefixes = {text.split("-")[0] for text in texts}
    assert len(texts) == 20
    assert len(prefixes) == 1


def test_capacity_evicts_least_recently_used() -> None:
    index = DocumentIndex(capacity=2)
    session = SessionContext("s1")
    index.load(_document("a"), _chunks("a", "one"))
    index.load(_document("b"), _chunks("b", "two"))
    index.activate(session, "a")

    index.load(_document("c"), _chunks("c", "three"))

    assert "a" in index and "c" in index
    assert "b" not in index
    assert len(index) == 2


def test_evicted_active_document_is_no_longer_active() -> None:
    index = DocumentIndex()
    session = SessionContext("s1")
    index.load(_document("a"), _chunks("a", "one"))
    index.activate(session, "a")

    assert index.evict("a")
    assert not index.is_active(session, "a")
    assert index.evict("a") is False


def test_stats_report_chunk_and_page_counts() -> None:
    index = DocumentIndex()
    index.load(_document("a", pages=3), _chunks("a", "x" * 10, "y" * 20))

    stats = index.stats("a")

    assert stats.total_chunks == 2
    assert stats.total_pages == 3
    assert stats.average_chunk_length == pytest.approx(15.0)
    assert stats.embedded is False
    assert index.stats("missing") is None


def test_stats_of_empty_document() -> None:
    index = DocumentIndex()
    index.load(_document("blank"), [])

    stats = index.stats("blank")

    assert stats.total_chunks == 0
    assert stats.average_chunk_length == 0.0


def test_clear_removes_everything() -> None:
    index = DocumentIndex()
    index.load(_document("a"), _chunks("a", "one"))

    index.clear()

    assert len(index) == 0
    assert index.get("a") is None


def test_invalid_capacity_is_rejected() -> None:
    with pytest.raises(ValueError):
        DocumentIndex(capacity=0)


def test_session_registry_reuses_contexts() -> None:
    registry = SessionRegistry()

    first = registry.get("s1")
    first.active_document_id = "a"

    assert registry.get("s1") is first
    registry.forget_document("a")
    assert first.active_document_id is None
    assert len(registry) == 1


def test_eviction_listeners_hear_capacity_and_explicit_evictions() -> None:
    index = DocumentIndex(capacity=1)
    evicted: list[str] = []
    index.add_eviction_listener(evicted.append)

    index.load(_document("a"), _chunks("a", "one"))
    index.load(_document("b"), _chunks("b", "two"))
    index.evict("b")
    index.evict("missing")

    assert evicted == ["a", "b"]


def test_session_registry_drops_least_recently_used_session() -> None:
    registry = SessionRegistry(capacity=2)
    first = registry.get("s1")
    registry.get("s2")
    registry.get("s1")

    registry.get("s3")

    assert "s1" in registry and "s3" in registry
    assert "s2" not in registry
    assert registry.get("s1") is first
    with pytest.raises(ValueError):
        SessionRegistry(capacity=0)


def test_session_history_is_bounded_and_filtered_by_document() -> None:
    session = SessionContext("s1")
    session.record_exchange("other", "elsewhere?", "no")
    for number in range(6):
        session.record_exchange("doc", f"q{number}", f"a{number}")

    assert len(session.history) == HISTORY_LIMIT
    assert [turn.content for turn in session.recent_history("doc", limit=4)] == ["q4", "a4", "q5", "a5"]
    assert session.recent_history("other") == []
    assert session.recent_history("doc", limit=0) == []

    session.active_document_id = "doc"
    session.reset()

    assert session.active_document_id is None
    assert len(session.history) == 0


def test_registry_clear_resets_handed_out_contexts() -> None:
    registry = SessionRegistry()
    context = registry.get("s1")
    context.active_document_id = "a"
    context.record_exchange("a", "q", "a")

    registry.clear()

    assert context.active_document_id is None
    assert len(context.history) == 0
    assert len(registry) == 0
