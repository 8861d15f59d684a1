"""Compatibility gates applied before a synonym may replace a word."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Protocol, Sequence

from .entries import DictionaryEntry

FORMAL_MARKERS = ("恐縮", "謝意", "恩義", "ございま", "いたしま", "申し上げ")
CASUAL_MARKERS = ("やば", "すげ", "マジ", "愉悦", "娯楽")

DEFAULT_INCOMPATIBLE: Dict[str, frozenset[str]] = {
    "嬉しい": frozenset({"愉悦"}),
    "助ける": frozenset({"愉悦"}),
    "ありがとう": frozenset({"恩に着る", "恩義", "御礼", "感謝します", "お礼申し上げます"}),
}


class EntryLookup(Protocol):
    def get_entry(self, word: str) -> Optional[DictionaryEntry]:  # pragma: no cover - protocol
        ...


@dataclass(frozen=True)
class CompatibilityVerdict:
    compatible: bool
    reason: str = ""


class CompatibilityPolicy(Protocol):
    def check(self, original: str, candidate: str, store: EntryLookup) -> CompatibilityVerdict:  # pragma: no cover
        ...


def tone_level(word: str) -> int:
    """0 (casual) to 3 (formal) register estimate for ``word``."""
    if any(marker in word for marker in FORMAL_MARKERS):
        return 3
    if any(marker in word for marker in CASUAL_MARKERS):
        return 0
    return 2 if len(word) > 4 else 1


def semantic_domain(pos: Sequence[str]) -> str:
    primary = pos[0] if pos else ""
    if "形容詞" in primary:
        return "emotion"
    if "動詞" in primary:
        return "action"
    if "名詞" in primary:
        return "object"
    return "abstract"


class HeuristicCompatibilityPolicy:
    """Hard-incompatible pairs, register distance and semantic domain agreement."""

    def __init__(
        self,
        incompatible: Optional[Mapping[str, Iterable[str]]] = None,
        max_tone_delta: int = 2,
    ) -> None:
        source = DEFAULT_INCOMPATIBLE if incompatible is None else incompatible
        self.incompatible = {word: frozenset(values) for word, values in source.items()}
        self.max_tone_delta = max_tone_delta

    def check(self, original: str, candidate: str, store: EntryLookup) -> CompatibilityVerdict:
        if candidate in self.incompatible.get(original, ()):
            return CompatibilityVerdict(False, "incompatible pair")
        delta = abs(tone_level(original) - tone_level(candidate))
        if delta >= self.max_tone_delta:
            return CompatibilityVerdict(False, f"tone delta {delta}")
        original_entry = store.get_entry(original)
        candidate_entry = store.get_entry(candidate)
        original_domain = semantic_domain(original_entry.pos if original_entry else ())
        candidate_domain = semantic_domain(candidate_entry.pos if candidate_entry else ())
        if original_domain != candidate_domain:
            return CompatibilityVerdict(False, f"domain {original_domain} != {candidate_domain}")
        return CompatibilityVerdict(True)
