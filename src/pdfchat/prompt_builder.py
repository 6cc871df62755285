"""Locale-aware prompt construction for the answer generator."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from importlib.resources import files as pkg_files
from typing import Dict, Mapping, Optional, Sequence, Union

from pdfchat.errors import InvalidConfigError
from pdfchat.models import Chunk, Intent, ScoredChunk
from pdfchat.session import ConversationTurn
from pdfchat.telemetry import emit_prompt_event

LOGGER = logging.getLogger(__name__)

DEFAULT_LOCALE = "en"
SUPPORTED_LOCALES: tuple[str, ...] = ("en", "zh", "ja", "ko", "es", "fr", "de", "it", "pt-BR", "ru")

_REQUIRED_KEYS = (
    "language_instruction",
    "persona",
    "intents",
    "context_header",
    "history_header",
    "question_label",
    "answer_label",
    "no_content_answer",
    "apology_answer",
)
_SUBTAG_SPLIT_RE = re.compile(r"[-_]")


@dataclass(frozen=True, slots=True)
class LocaleTemplates:
    """Every piece of localised text used to talk to the model or the user."""

    locale: str
    language_instruction: str
    persona: str
    intents: Mapping[str, str]
    context_header: str
    history_header: str
    question_label: str
    answer_label: str
    no_content_answer: str
    apology_answer: str

    def intent_instruction(self, intent: Optional[Intent]) -> Optional[str]:
        if intent is None:
            return None
        return self.intents.get(intent.value)

    @classmethod
    def from_mapping(cls, locale: str, payload: Mapping[str, object]) -> "LocaleTemplates":
        missing = [key for key in _REQUIRED_KEYS if key not in payload]
        if missing:
            raise InvalidConfigError(f"Locale {locale!r} is missing prompt keys: {', '.join(missing)}")
        intents = payload["intents"]
        if not isinstance(intents, Mapping):
            raise InvalidConfigError(f"Locale {locale!r} 'intents' must be an object")
        unknown = set(intents) - {intent.value for intent in Intent}
        if unknown:
            raise InvalidConfigError(f"Locale {locale!r} has unknown intents: {sorted(unknown)}")
        return cls(
            locale=locale,
            language_instruction=str(payload["language_instruction"]),
            persona=str(payload["persona"]),
            intents={str(key): str(value) for key, value in intents.items()},
            context_header=str(payload["context_header"]),
            history_header=str(payload["history_header"]),
            question_label=str(payload["question_label"]),
            answer_label=str(payload["answer_label"]),
            no_content_answer=str(payload["no_content_answer"]),
            apology_answer=str(payload["apology_answer"]),
        )


def _primary_subtag(locale: str) -> str:
    return _SUBTAG_SPLIT_RE.split(locale, maxsplit=1)[0].lower()


class PromptCatalog:
    """Closed set of locale templates with a mandatory default.

    Lookup tries an exact (case-insensitive) locale match, then any supported
    locale sharing the primary language subtag, then the default locale.
    """

    def __init__(self, templates: Mapping[str, LocaleTemplates], default_locale: str = DEFAULT_LOCALE) -> None:
        self._templates: Dict[str, LocaleTemplates] = {
            locale.lower(): template for locale, template in templates.items()
        }
        if default_locale.lower() not in self._templates:
            raise InvalidConfigError(f"Default locale {default_locale!r} has no prompt templates")
        self.default_locale = default_locale
        self._by_primary: Dict[str, LocaleTemplates] = {}
        for locale, template in self._templates.items():
            self._by_primary.setdefault(_primary_subtag(locale), template)

    @classmethod
    def load_default(cls, default_locale: str = DEFAULT_LOCALE) -> "PromptCatalog":
        """Load the packaged templates from ``pdfchat/prompts/locales``."""

        directory = pkg_files("pdfchat.prompts").joinpath("locales")
        templates: Dict[str, LocaleTemplates] = {}
        for locale in SUPPORTED_LOCALES:
            resource = directory.joinpath(f"{locale}.json")
            try:
                payload = json.loads(resource.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as error:
                raise InvalidConfigError(
                    f"Failed to load prompt templates for {locale}: {error}", cause=error
                ) from error
            templates[locale] = LocaleTemplates.from_mapping(locale, payload)
        LOGGER.debug("Loaded prompt templates for %d locales", len(templates))
        return cls(templates, default_locale=default_locale)

    @property
    def locales(self) -> tuple[str, ...]:
        return tuple(template.locale for template in self._templates.values())

    def resolve(self, locale: Optional[str]) -> LocaleTemplates:
        if locale:
            normalized = locale.strip().lower()
            template = self._templates.get(normalized)
            if template is not None:
                return template
            template = self._by_primary.get(_primary_subtag(normalized))
            if template is not None:
                return template
            LOGGER.debug("Unsupported locale %s; using %s", locale, self.default_locale)
        return self._templates[self.default_locale.lower()]


@dataclass(frozen=True, slots=True)
class Prompt:
    system: str
    user: str

    @property
    def length(self) -> int:
        return len(self.system) + len(self.user)


class PromptBuilder:
    """Assemble the system and user messages sent to the chat model."""

    def __init__(self, catalog: PromptCatalog) -> None:
        self.catalog = catalog

    def build(
        self,
        question: str,
        document_name: str,
        chunks: Sequence[Union[Chunk, ScoredChunk]],
        locale: Optional[str],
        intent: Optional[Intent] = None,
        history: Sequence[ConversationTurn] = (),
    ) -> Prompt:
        if question is None:
            raise ValueError("question must not be None")

        templates = self.catalog.resolve(locale)
        system_parts = [templates.language_instruction, templates.persona]
        instruction = templates.intent_instruction(intent)
        if instruction:
            system_parts.append(instruction)
        system = "\n\n".join(system_parts)

        excerpts = []
        pages = []
        for item in chunks:
            chunk = item.chunk if isinstance(item, ScoredChunk) else item
            excerpts.append(f"[page {chunk.page_number}] {chunk.text.strip()}")
            pages.append(chunk.page_number)
        context_block = "\n\n".join(excerpts)
        header = templates.context_header.format(document_name=document_name)
        sections = [header, context_block]
        if history:
            lines = [templates.history_header]
            for turn in history:
                label = templates.question_label if turn.role == "user" else templates.answer_label
                lines.append(f"{label} {turn.content.strip()}")
            sections.append("\n".join(lines))
        sections.append(f"{templates.question_label} {question.strip()}")
        user = "\n\n".join(sections)

        emit_prompt_event(
            locale=templates.locale,
            intent=intent.value if intent else None,
            system_prompt=system,
            sources=pages,
            context_chars=len(context_block),
        )
        return Prompt(system=system, user=user)


__all__ = [
    "DEFAULT_LOCALE",
    "LocaleTemplates",
    "Prompt",
    "PromptBuilder",
    "PromptCatalog",
    "SUPPORTED_LOCALES",
]
