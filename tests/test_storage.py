import asyncio
from pathlib import Path

import pytest

from pdfchat.errors import DocumentNotFoundError
from pdfchat.storage import FileSystemDocumentSource, WritableDocumentSource


def test_ids_that_sanitise_alike_keep_separate_files(tmp_path: Path) -> None:
    source = FileSystemDocumentSource(tmp_path)

    async def runner():
        await source.save("report 1", b"%PDF-1.4 first", "first.pdf")
        await source.save("report_1", b"%PDF-1.4 second", "second.pdf")
        return await source.fetch("report 1"), await source.fetch("report_1")

    first, second = asyncio.run(runner())

    assert source.paths_for("report 1") != source.paths_for("report_1")
    assert (first.data, first.display_name) == (b"%PDF-1.4 first", "first.pdf")
    assert (second.data, second.display_name) == (b"%PDF-1.4 second", "second.pdf")
    assert len(list(tmp_path.glob("*.pdf"))) == 2


def test_stored_names_stay_inside_the_root(tmp_path: Path) -> None:
    source = FileSystemDocumentSource(tmp_path / "data")

    pdf_path, meta_path = source.paths_for("../../etc/passwd")

    assert pdf_path.parent == tmp_path / "data"
    assert meta_path.parent == tmp_path / "data"
    assert pdf_path.name.startswith("passwd-")


def test_missing_display_name_defaults_to_document_id(tmp_path: Path) -> None:
    source = FileSystemDocumentSource(tmp_path)

    async def runner():
        await source.save("lease", b"%PDF-1.4")
        return await source.fetch("lease")

    fetched = asyncio.run(runner())

    assert fetched.display_name == "lease.pdf"
    assert fetched.source_location.endswith(".pdf")


def test_unknown_document_is_not_found(tmp_path: Path) -> None:
    source = FileSystemDocumentSource(tmp_path)

    with pytest.raises(DocumentNotFoundError):
        asyncio.run(source.fetch("missing"))


def test_filesystem_source_is_writable(tmp_path: Path) -> None:
    assert isinstance(FileSystemDocumentSource(tmp_path), WritableDocumentSource)
