"""Word tokens shared by lexical ranking and TF-IDF vectors."""
from __future__ import annotations

import re
import unicodedata
from typing import FrozenSet, List

# Han ideographs and kana are single-character tokens. Other letters form
# words in any script; digit runs are kept whole.
_CJK = r"\u3040-\u30ff\u4e00-\u9fff"
_TOKEN_RE = re.compile(rf"[{_CJK}]|[^\W\d_{_CJK}]+|\d+")


def tokens(text: str) -> List[str]:
    """Lower-cased tokens of ``text`` in reading order, repeats included."""

    if not text:
        return []
    return _TOKEN_RE.findall(unicodedata.normalize("NFC", text).lower())


def tokenize(text: str) -> FrozenSet[str]:
    """Return the distinct lexical tokens of ``text``."""

    return frozenset(tokens(text))


__all__ = ["tokenize", "tokens"]
