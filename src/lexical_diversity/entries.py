"""Dictionary entry model and ingestion heuristics."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .utils.text import is_hiragana, is_katakana

LEVELS = ("basic", "common", "advanced")

# JMdict entity codes (without the surrounding ``&...;``) to Japanese tags.
_POS_EXACT = {
    "adj-i": "形容詞",
    "adj-ix": "形容詞",
    "adj-na": "ナ形容詞",
    "adj-no": "連体詞",
    "adj-pn": "連体詞",
    "adj-t": "タル形容詞",
    "adj-f": "連体詞",
    "adv": "副詞",
    "adv-to": "副詞",
    "conj": "接続詞",
    "int": "感動詞",
    "pn": "代名詞",
    "pref": "接頭辞",
    "suf": "接尾辞",
    "prt": "助詞",
    "ctr": "助数詞",
    "exp": "表現",
    "num": "数詞",
    "vk": "カ変動詞",
    "vz": "ザ変動詞",
    "vi": "自動詞",
    "vt": "他動詞",
}
_POS_PREFIX = (
    ("v5", "五段動詞"),
    ("v1", "一段動詞"),
    ("vs", "サ変動詞"),
    ("aux", "助動詞"),
    ("n", "名詞"),
)
_IMMUTABLE_FIELDS = frozenset({"word", "reading", "definitions"})


def normalize_pos(code: str) -> str:
    """Map a JMdict part-of-speech code to the tag set used by the tokenizer."""
    code = code.strip().strip("&;")
    if code in _POS_EXACT:
        return _POS_EXACT[code]
    for prefix, tag in _POS_PREFIX:
        if code.startswith(prefix):
            return tag
    return code


def estimate_frequency(word: str) -> float:
    """Heuristic 0-100 frequency: short and single-script words score higher."""
    score = 30.0
    if len(word) <= 2:
        score += 20
    if is_hiragana(word):
        score += 15
    elif is_katakana(word):
        score += 10
    return min(score, 100.0)


def estimate_level(word: str, definitions: Sequence[str] = ()) -> str:
    if len(word) <= 3:
        return "basic"
    if len(word) > 6 or any(len(definition) > 50 for definition in definitions):
        return "advanced"
    return "common"


def _unique(values: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


@dataclass
class DictionaryEntry:
    """A single headword with its glosses, relations and derived scores.

    ``word``, ``reading`` and ``definitions`` are fixed at construction;
    ``synonyms`` and ``quality`` are only changed by graph strengthening.
    """

    word: str
    reading: Optional[str] = None
    definitions: tuple[str, ...] = ()
    synonyms: List[str] = field(default_factory=list)
    antonyms: List[str] = field(default_factory=list)
    pos: List[str] = field(default_factory=list)
    frequency: float = 0.0
    level: str = "common"
    quality: Optional[float] = None
    source: str = "unknown"
    lang: str = "ja"

    def __post_init__(self) -> None:
        object.__setattr__(self, "definitions", tuple(self.definitions))
        self.synonyms = [synonym for synonym in _unique(self.synonyms) if synonym != self.word]
        self.antonyms = _unique(self.antonyms)
        self.pos = _unique(self.pos)
        if self.quality is not None:
            self.quality = max(0.0, min(100.0, float(self.quality)))

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _IMMUTABLE_FIELDS and name in self.__dict__:
            raise AttributeError(f"DictionaryEntry.{name} cannot be reassigned")
        if name == "quality" and value is not None:
            value = max(0.0, min(100.0, float(value)))
        super().__setattr__(name, value)

    @property
    def primary_pos(self) -> Optional[str]:
        return self.pos[0] if self.pos else None

    def add_synonym(self, synonym: str) -> bool:
        if synonym == self.word or synonym in self.synonyms:
            return False
        self.synonyms.append(synonym)
        return True

    def merge(self, other: DictionaryEntry) -> None:
        """Fold relations and POS tags from ``other`` into this entry."""
        for synonym in other.synonyms:
            self.add_synonym(synonym)
        self.antonyms = _unique([*self.antonyms, *other.antonyms])
        self.pos = _unique([*self.pos, *other.pos])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "word": self.word,
            "reading": self.reading,
            "definitions": list(self.definitions),
            "synonyms": list(self.synonyms),
            "antonyms": list(self.antonyms),
            "pos": list(self.pos),
            "frequency": self.frequency,
            "level": self.level,
            "quality": self.quality,
            "source": self.source,
            "lang": self.lang,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DictionaryEntry:
        return cls(
            word=data["word"],
            reading=data.get("reading"),
            definitions=tuple(data.get("definitions", ())),
            synonyms=list(data.get("synonyms", [])),
            antonyms=list(data.get("antonyms", [])),
            pos=list(data.get("pos", [])),
            frequency=float(data.get("frequency", 0.0)),
            level=data.get("level", "common"),
            quality=data.get("quality"),
            source=data.get("source", "unknown"),
            lang=data.get("lang", "ja"),
        )

    def copy(self) -> DictionaryEntry:
        return DictionaryEntry.from_dict(self.to_dict())
