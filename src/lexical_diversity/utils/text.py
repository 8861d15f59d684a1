"""Text helpers for Japanese headwords and English glosses."""

from __future__ import annotations

import re
from typing import Iterable, List, Sequence

_JAPANESE_RE = re.compile(r"[ぁ-んァ-ヶ一-龯々]")
_HIRAGANA_RE = re.compile(r"^[ぁ-んー]+$")
_KATAKANA_RE = re.compile(r"^[ァ-ヶー]+$")
_ASCII_ALNUM_RE = re.compile(r"^[A-Za-z0-9]+$")
_GLOSS_KEYWORD_RE = re.compile(r"\b\w{4,}\b")
_ITERATION_MARKS = frozenset("ヽヾゝゞ〃")

COMMON_GLOSS_WORDS = frozenset(
    {
        "a", "an", "the", "is", "are", "was", "were", "be", "to", "of", "in", "on", "for", "with", "by",
        "that", "this", "from", "into", "about", "have", "been", "being", "which", "what", "when",
        "where", "there", "their", "they", "them", "something", "someone", "thing", "things",
    }
)


def normalise_text(value: str) -> str:
    """Normalise text by lowercasing and collapsing whitespace."""
    collapsed = " ".join(value.strip().split())
    return collapsed.lower()


def contains_japanese(value: str) -> bool:
    return bool(_JAPANESE_RE.search(value))


def is_hiragana(value: str) -> bool:
    return bool(_HIRAGANA_RE.match(value))


def is_katakana(value: str) -> bool:
    return bool(_KATAKANA_RE.match(value))


def is_valid_japanese_word(word: str) -> bool:
    """Return ``True`` for headwords worth keeping in the dictionary.

    Pure ASCII words and bare iteration marks are rejected; anything else must
    contain at least one hiragana, katakana or kanji character.
    """
    if not word or not word.strip():
        return False
    if len(word) == 1 and word in _ITERATION_MARKS:
        return False
    if _ASCII_ALNUM_RE.match(word):
        return False
    return contains_japanese(word)


def gloss_keywords(definitions: Sequence[str], *, max_definitions: int = 2, per_definition: int = 5) -> List[str]:
    """Extract grouping keywords from the leading glosses of an entry."""
    keywords: List[str] = []
    for definition in definitions[:max_definitions]:
        words = _GLOSS_KEYWORD_RE.findall(definition.lower())[:per_definition]
        for word in words:
            if word not in COMMON_GLOSS_WORDS and word not in keywords:
                keywords.append(word)
    return keywords


def gloss_prefix(definition: str, size: int) -> List[str]:
    """Return the first ``size`` whitespace tokens of ``definition`` lowercased."""
    return normalise_text(definition).split(" ")[:size] if definition.strip() else []


def find_occurrences(text: str, term: str) -> List[int]:
    """Return every start offset of ``term`` inside ``text``."""
    if not term:
        return []
    positions: List[int] = []
    start = text.find(term)
    while start != -1:
        positions.append(start)
        start = text.find(term, start + 1)
    return positions


def min_distance(first: Iterable[int], second: Iterable[int]) -> float:
    """Smallest absolute difference between two offset collections."""
    second = list(second)
    best = float("inf")
    for left in first:
        for right in second:
            best = min(best, abs(left - right))
    return best


def snippet(text: str, limit: int = 100) -> str:
    """Collapse whitespace and truncate ``text`` for storage as a context sample."""
    return " ".join(text.split())[:limit]
