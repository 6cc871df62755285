"""Environment driven settings for the retrieval-and-answer pipeline."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional

from pdfchat.errors import InvalidConfigError

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 500
DEFAULT_TOP_K = 4
DEFAULT_EMBEDDING_DIMENSION = 1536
DEFAULT_LLM_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_FAST_MODEL = "deepseek/deepseek-chat"
DEFAULT_HIGH_MODEL = "anthropic/claude-3.5-sonnet"
DEFAULT_EMBEDDING_MODEL = "openai/text-embedding-3-small"

EMBEDDING_BACKENDS: frozenset[str] = frozenset(
    {"placeholder", "tfidf", "openai", "sentence-transformers"}
)


def _env(environ: Mapping[str, str], name: str) -> Optional[str]:
    value = environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _int_from_env(environ: Mapping[str, str], name: str, default: int) -> int:
    value = _env(environ, name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(environ: Mapping[str, str], name: str, default: float) -> float:
    value = _env(environ, name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    """Tunables shared by every pipeline component.

    Values are validated on construction; anything outside its allowed range
    raises :class:`~pdfchat.errors.InvalidConfigError`. ``chunk_overlap``
    defaults to ``0`` so that chunk texts concatenate back to the extracted
    text; raising it improves recall at the cost of duplicated context.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: int = 0
    top_k: int = DEFAULT_TOP_K
    embedding_backend: str = "placeholder"
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_dimension: int = DEFAULT_EMBEDDING_DIMENSION
    embedding_timeout: float = 15.0
    llm_base_url: str = DEFAULT_LLM_BASE_URL
    llm_api_key: Optional[str] = field(default=None, repr=False)
    fast_model: str = DEFAULT_FAST_MODEL
    high_model: str = DEFAULT_HIGH_MODEL
    fast_max_tokens: int = 1000
    high_max_tokens: int = 1500
    llm_temperature: float = 0.7
    llm_timeout: float = 60.0
    llm_max_retries: int = 1
    fetch_timeout: float = 30.0
    extract_timeout: float = 60.0
    default_locale: str = "en"
    index_capacity: int = 50
    session_capacity: int = 1000
    data_dir: Path = Path("data")
    log_dir: Path = Path("logs")
    app_title: str = "pdfchat"
    app_referer: Optional[str] = None

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise InvalidConfigError(f"chunk_size must be a positive integer, got {self.chunk_size}")
        if self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_size:
            raise InvalidConfigError(
                f"chunk_overlap must be in [0, chunk_size), got {self.chunk_overlap}"
            )
        if self.top_k <= 0:
            raise InvalidConfigError(f"top_k must be a positive integer, got {self.top_k}")
        if self.embedding_backend not in EMBEDDING_BACKENDS:
            raise InvalidConfigError(
                f"Unknown embedding backend {self.embedding_backend!r}; "
                f"expected one of {sorted(EMBEDDING_BACKENDS)}"
            )
        if self.embedding_dimension <= 0:
            raise InvalidConfigError("embedding_dimension must be a positive integer")
        if self.index_capacity <= 0:
            raise InvalidConfigError("index_capacity must be a positive integer")
        if self.session_capacity <= 0:
            raise InvalidConfigError("session_capacity must be a positive integer")
        if self.fast_max_tokens <= 0 or self.high_max_tokens <= 0:
            raise InvalidConfigError("max_tokens limits must be positive")
        if self.llm_max_retries < 0:
            raise InvalidConfigError("llm_max_retries must not be negative")
        for name in ("embedding_timeout", "llm_timeout", "fetch_timeout", "extract_timeout"):
            if getattr(self, name) <= 0:
                raise InvalidConfigError(f"{name} must be a positive number of seconds")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PipelineSettings":
        """Build settings from ``PDFCHAT_*`` environment variables."""

        env = os.environ if environ is None else environ
        api_key = _env(env, "OPENROUTER_API_KEY") or _env(env, "OPENAI_API_KEY")
        backend = (_env(env, "PDFCHAT_EMBEDDING_BACKEND") or "placeholder").lower()
        return cls(
            chunk_size=_int_from_env(env, "PDFCHAT_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
            chunk_overlap=_int_from_env(env, "PDFCHAT_CHUNK_OVERLAP", 0),
            top_k=_int_from_env(env, "PDFCHAT_TOP_K", DEFAULT_TOP_K),
            embedding_backend=backend,
            embedding_model=_env(env, "PDFCHAT_EMBEDDING_MODEL") or DEFAULT_EMBEDDING_MODEL,
            embedding_dimension=_int_from_env(
                env, "PDFCHAT_EMBEDDING_DIMENSION", DEFAULT_EMBEDDING_DIMENSION
            ),
            embedding_timeout=_float_from_env(env, "PDFCHAT_EMBEDDING_TIMEOUT", 15.0),
            llm_base_url=_env(env, "PDFCHAT_LLM_BASE_URL") or DEFAULT_LLM_BASE_URL,
            llm_api_key=api_key,
            fast_model=_env(env, "PDFCHAT_FAST_MODEL") or DEFAULT_FAST_MODEL,
            high_model=_env(env, "PDFCHAT_HIGH_MODEL") or DEFAULT_HIGH_MODEL,
            fast_max_tokens=_int_from_env(env, "PDFCHAT_FAST_MAX_TOKENS", 1000),
            high_max_tokens=_int_from_env(env, "PDFCHAT_HIGH_MAX_TOKENS", 1500),
            llm_temperature=_float_from_env(env, "PDFCHAT_LLM_TEMPERATURE", 0.7),
            llm_timeout=_float_from_env(env, "PDFCHAT_LLM_TIMEOUT", 60.0),
            llm_max_retries=_int_from_env(env, "PDFCHAT_LLM_MAX_RETRIES", 1),
            fetch_timeout=_float_from_env(env, "PDFCHAT_FETCH_TIMEOUT", 30.0),
            extract_timeout=_float_from_env(env, "PDFCHAT_EXTRACT_TIMEOUT", 60.0),
            default_locale=_env(env, "PDFCHAT_DEFAULT_LOCALE") or "en",
            index_capacity=_int_from_env(env, "PDFCHAT_INDEX_CAPACITY", 50),
            session_capacity=_int_from_env(env, "PDFCHAT_SESSION_CAPACITY", 1000),
            data_dir=Path(_env(env, "PDFCHAT_DATA_DIR") or "data"),
            log_dir=Path(_env(env, "PDFCHAT_LOG_DIR") or "logs"),
            app_title=_env(env, "PDFCHAT_APP_TITLE") or "pdfchat",
            app_referer=_env(env, "PDFCHAT_APP_REFERER"),
        )

    def with_overrides(self, **changes: object) -> "PipelineSettings":
        """Return a validated copy with ``changes`` applied."""

        return replace(self, **changes)


__all__ = ["EMBEDDING_BACKENDS", "PipelineSettings"]
