"""Shared fixtures: an in-memory PDF builder, fake model backends and service factories."""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Callable, List, Sequence

import pytest

os.environ.setdefault("PDFCHAT_LOG_DIR", tempfile.mkdtemp(prefix="pdfchat-logs-"))

from pdfchat.config import PipelineSettings  # noqa: E402
from pdfchat.errors import GenerationUnavailableError  # noqa: E402
from pdfchat.generation import AnswerGenerator  # noqa: E402
from pdfchat.llm_provider import LLM, ModelProfile  # noqa: E402
from pdfchat.models import ExtractedText, PageBoundary, QualityTier  # noqa: E402
from pdfchat.prompt_builder import Prompt, PromptBuilder, PromptCatalog  # noqa: E402
from pdfchat.services.rag import RAGService  # noqa: E402
from pdfchat.storage import FileSystemDocumentSource  # noqa: E402


def _escape_pdf_text(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def build_pdf(pages: Sequence[str]) -> bytes:
    """Return a minimal single-font PDF with one line of text per page."""

    page_count = len(pages)
    font_id = 3
    first_page_id = 4
    objects: List[bytes] = []

    kids = " ".join(f"{first_page_id + 2 * index} 0 R" for index in range(page_count))
    objects.append(b"<< /Type /Catalog /Pages 2 0 R >>")
    objects.append(f"<< /Type /Pages /Kids [{kids}] /Count {page_count} >>".encode("latin-1"))
    objects.append(b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>")
    for index, text in enumerate(pages):
        page_id = first_page_id + 2 * index
        content_id = page_id + 1
        objects.append(
            (
                f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                f"/Resources << /Font << /F1 {font_id} 0 R >> >> /Contents {content_id} 0 R >>"
            ).encode("latin-1")
        )
        stream = f"BT /F1 12 Tf 72 720 Td ({_escape_pdf_text(text)}) Tj ET".encode("latin-1")
        objects.append(
            b"<< /Length " + str(len(stream)).encode("ascii") + b" >>\nstream\n" + stream + b"\nendstream"
        )

    output = bytearray(b"%PDF-1.4\n")
    offsets: List[int] = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(output))
        output += f"{number} 0 obj\n".encode("ascii") + body + b"\nendobj\n"

    xref_offset = len(output)
    output += f"xref\n0 {len(objects) + 1}\n".encode("ascii")
    output += b"0000000000 65535 f \n"
    for offset in offsets:
        output += f"{offset:010d} 00000 n \n".encode("ascii")
    output += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref_offset}\n%%EOF\n"
    ).encode("ascii")
    return bytes(output)


@pytest.fixture
def make_pdf() -> Callable[[Sequence[str]], bytes]:
    return build_pdf


class StaticExtractor:
    """Extractor returning fixed page texts regardless of the input bytes."""

    def __init__(self, pages: Sequence[str], separator: str = "") -> None:
        self.pages = list(pages)
        self.separator = separator
        self.calls = 0

    def extract(self, data: bytes) -> ExtractedText:
        self.calls += 1
        boundaries = []
        offset = 0
        for number, text in enumerate(self.pages, start=1):
            boundaries.append(PageBoundary(page_number=number, char_offset=offset))
            offset += len(text) + len(self.separator)
        return ExtractedText(
            full_text=self.separator.join(self.pages), page_boundaries=tuple(boundaries)
        )


class RecordingLLM(LLM):
    """Backend that records every prompt and echoes the model it was asked to use."""

    name = "recording"

    def __init__(self) -> None:
        self.calls: List[tuple[Prompt, ModelProfile]] = []

    @property
    def available(self) -> bool:
        return True

    async def generate(self, prompt: Prompt, profile: ModelProfile) -> str:
        self.calls.append((prompt, profile))
        return f"answer from {profile.model}"


class FailingLLM(LLM):
    name = "failing"

    def __init__(self) -> None:
        self.calls = 0

    @property
    def available(self) -> bool:
        return True

    async def generate(self, prompt: Prompt, profile: ModelProfile) -> str:
        self.calls += 1
        raise GenerationUnavailableError("provider returned 502")


@pytest.fixture
def recording_llm() -> RecordingLLM:
    return RecordingLLM()


@pytest.fixture
def failing_llm() -> FailingLLM:
    return FailingLLM()


@pytest.fixture
def static_extractor() -> type[StaticExtractor]:
    return StaticExtractor


@pytest.fixture
def catalog() -> PromptCatalog:
    return PromptCatalog.load_default()


@pytest.fixture
def settings(tmp_path: Path) -> PipelineSettings:
    return PipelineSettings(data_dir=tmp_path / "data", log_dir=tmp_path / "logs")


@pytest.fixture
def make_service(settings: PipelineSettings, catalog: PromptCatalog):
    def _factory(*, llm: LLM | None = None, settings_override: PipelineSettings | None = None, **components) -> RAGService:
        effective = settings_override or settings
        backend = llm or RecordingLLM()
        generator = AnswerGenerator(
            PromptBuilder(catalog), {tier: backend for tier in QualityTier}, effective
        )
        components.setdefault("source", FileSystemDocumentSource(effective.data_dir))
        return RAGService(effective, generator=generator, **components)

    return _factory
