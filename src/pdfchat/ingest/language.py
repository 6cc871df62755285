"""Document language detection."""
from __future__ import annotations

import logging
from typing import Optional

from langdetect import DetectorFactory, LangDetectException, detect

LOGGER = logging.getLogger(__name__)
DetectorFactory.seed = 0

_SAMPLE_CHARS = 5000


class LanguageDetector:
    """Wraps langdetect; returns ``None`` instead of raising on short or empty text."""

    def detect(self, text: str) -> Optional[str]:
        cleaned = text.strip()[:_SAMPLE_CHARS]
        if not cleaned:
            return None
        try:
            language = detect(cleaned)
        except LangDetectException:
            LOGGER.info("Unable to determine language for text of length %s", len(text))
            return None
        LOGGER.debug("Detected language: %s", language)
        return language
