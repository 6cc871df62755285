"""Chat-model backends and per-tier model profiles."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import openai

from pdfchat.config import PipelineSettings
from pdfchat.errors import GenerationUnavailableError
from pdfchat.models import QualityTier
from pdfchat.prompt_builder import Prompt

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ModelProfile:
    """Model name and decoding parameters used for one quality tier."""

    tier: QualityTier
    model: str
    max_tokens: int
    temperature: float


def select_profile(tier: QualityTier, settings: PipelineSettings) -> ModelProfile:
    """Map a quality tier to its configured model profile."""

    if tier is QualityTier.HIGH:
        return ModelProfile(
            tier=tier,
            model=settings.high_model,
            max_tokens=settings.high_max_tokens,
            temperature=settings.llm_temperature,
        )
    return ModelProfile(
        tier=QualityTier.FAST,
        model=settings.fast_model,
        max_tokens=settings.fast_max_tokens,
        temperature=settings.llm_temperature,
    )


@dataclass(slots=True)
class LLMStatus:
    """Structured status information about the configured LLM backend."""

    available: bool
    backend: str
    base_url: Optional[str] = None
    error: Optional[str] = None


class LLM:
    """Common interface exposed by chat-model implementations."""

    name = "base"

    async def generate(self, prompt: Prompt, profile: ModelProfile) -> str:
        """Return the model's answer to ``prompt`` using ``profile``."""

        raise NotImplementedError

    @property
    def available(self) -> bool:
        return False

    @property
    def last_error(self) -> Optional[str]:
        return None

    def status(self) -> LLMStatus:
        return LLMStatus(available=self.available, backend=self.name, error=self.last_error)

    async def aclose(self) -> None:
        return None


class LLMStub(LLM):
    """Backend used when no provider credentials are configured.

    Every request fails with :class:`GenerationUnavailableError`, which the
    pipeline turns into the localised apology answer.
    """

    name = "stub"

    def __init__(self, *, reason: str | None = None) -> None:
        self._reason = reason or "LLM stub is active (no API key configured)."

    async def generate(self, prompt: Prompt, profile: ModelProfile) -> str:
        raise GenerationUnavailableError(self._reason)

    @property
    def last_error(self) -> Optional[str]:
        return self._reason


class OpenAICompatibleLLM(LLM):
    """Chat completions against an OpenAI-compatible endpoint such as OpenRouter."""

    name = "openai-compatible"

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        timeout: float = 60.0,
        max_retries: int = 1,
        app_title: str | None = None,
        app_referer: str | None = None,
        client: Optional[openai.AsyncOpenAI] = None,
    ) -> None:
        self.base_url = base_url
        headers: Dict[str, str] = {}
        if app_referer:
            headers["HTTP-Referer"] = app_referer
        if app_title:
            headers["X-Title"] = app_title
        self._client = client or openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            default_headers=headers or None,
        )
        self._last_error: Optional[str] = None

    @property
    def available(self) -> bool:
        return True

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def status(self) -> LLMStatus:
        return LLMStatus(
            available=True, backend=self.name, base_url=self.base_url, error=self._last_error
        )

    async def generate(self, prompt: Prompt, profile: ModelProfile) -> str:
        try:
            completion = await self._client.chat.completions.create(
                model=profile.model,
                messages=[
                    {"role": "system", "content": prompt.system},
                    {"role": "user", "content": prompt.user},
                ],
                max_tokens=profile.max_tokens,
                temperature=profile.temperature,
            )
        except openai.APITimeoutError as error:
            self._last_error = f"timeout: {error}"
            raise GenerationUnavailableError(
                f"Model {profile.model} timed out", cause=error
            ) from error
        except openai.OpenAIError as error:
            self._last_error = str(error)
            raise GenerationUnavailableError(
                f"Model {profile.model} request failed: {error}", cause=error
            ) from error

        content = completion.choices[0].message.content if completion.choices else None
        if not content or not content.strip():
            self._last_error = "empty completion"
            raise GenerationUnavailableError(f"Model {profile.model} returned an empty answer")
        self._last_error = None
        return content.strip()

    async def aclose(self) -> None:
        await self._client.close()


def build_llm_backends(settings: PipelineSettings) -> Dict[QualityTier, LLM]:
    """Register one backend per quality tier from ``settings``."""

    if not settings.llm_api_key:
        LOGGER.warning("No LLM API key configured; answers will use the apology fallback.")
        stub = LLMStub()
        return {tier: stub for tier in QualityTier}

    backend = OpenAICompatibleLLM(
        api_key=settings.llm_api_key,
        base_url=settings.llm_base_url,
        timeout=settings.llm_timeout,
        max_retries=settings.llm_max_retries,
        app_title=settings.app_title,
        app_referer=settings.app_referer,
    )
    return {tier: backend for tier in QualityTier}


__all__ = [
    "LLM",
    "LLMStatus",
    "LLMStub",
    "ModelProfile",
    "OpenAICompatibleLLM",
    "build_llm_backends",
    "select_profile",
]
