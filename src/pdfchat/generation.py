"""Answer generation from retrieved chunks."""
from __future__ import annotations

import logging
import time
import uuid
from typing import Mapping, Optional, Sequence, Union

from pdfchat.config import PipelineSettings
from pdfchat.errors import GenerationUnavailableError
from pdfchat.llm_provider import LLM, select_profile
from pdfchat.models import Chunk, Intent, QualityTier, ScoredChunk
from pdfchat.prompt_builder import PromptBuilder
from pdfchat.session import ConversationTurn
from pdfchat.telemetry import emit_inference_request, emit_inference_result

LOGGER = logging.getLogger(__name__)


def _chunk_of(item: Union[Chunk, ScoredChunk]) -> Chunk:
    return item.chunk if isinstance(item, ScoredChunk) else item


class AnswerGenerator:
    """Compose a prompt from retrieved chunks and ask the tier's model.

    With no chunks carrying text the localised "nothing found" answer is
    returned without contacting any model. Earlier turns of the conversation
    reach the prompt the same way for every tier. Provider failures surface
    as :class:`~pdfchat.errors.GenerationUnavailableError`.
    """

    def __init__(
        self,
        builder: PromptBuilder,
        backends: Mapping[QualityTier, LLM],
        settings: PipelineSettings,
    ) -> None:
        missing = [tier.value for tier in QualityTier if tier not in backends]
        if missing:
            raise ValueError(f"No LLM backend registered for tiers: {', '.join(missing)}")
        self.builder = builder
        self.backends = dict(backends)
        self.settings = settings

    def no_content_answer(self, locale: Optional[str]) -> str:
        return self.builder.catalog.resolve(locale).no_content_answer

    def apology_answer(self, locale: Optional[str]) -> str:
        return self.builder.catalog.resolve(locale).apology_answer

    async def generate(
        self,
        question: str,
        document_name: str,
        tier: QualityTier,
        locale: Optional[str],
        chunks: Sequence[Union[Chunk, ScoredChunk]],
        intent: Optional[Intent] = None,
        *,
        history: Sequence[ConversationTurn] = (),
        session_id: str | None = None,
    ) -> str:
        chunks = [item for item in chunks if _chunk_of(item).text.strip()]
        if not chunks:
            answer = self.no_content_answer(locale)
            emit_inference_result(
                req_id=uuid.uuid4().hex,
                session_id=session_id,
                duration_ms=0.0,
                model_used="none",
                answer_preview=answer,
                fallback=True,
            )
            return answer

        prompt = self.builder.build(
            question, document_name, chunks, locale, intent, history=history
        )
        profile = select_profile(tier, self.settings)
        backend = self.backends[tier]
        req_id = uuid.uuid4().hex
        emit_inference_request(
            req_id=req_id,
            session_id=session_id,
            tier=tier.value,
            model=profile.model,
            prompt_len=prompt.length,
            max_tokens=profile.max_tokens,
            temperature=profile.temperature,
        )

        started = time.perf_counter()
        try:
            answer = await backend.generate(prompt, profile)
        except GenerationUnavailableError:
            LOGGER.warning("Generation failed for tier %s (model %s)", tier.value, profile.model)
            raise

        emit_inference_result(
            req_id=req_id,
            session_id=session_id,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            model_used=profile.model,
            answer_preview=answer,
            fallback=False,
        )
        return answer


__all__ = ["AnswerGenerator"]
