"""Streaming readers for external lexical resources.

Two formats are understood:

* JMdict-style XML. The file is read in fixed-size chunks and split on
  ``<entry>`` boundaries so that memory stays flat regardless of file size.
  Part-of-speech entities (``&n;``) are kept as raw codes and normalised.
* kaikki.org Wiktionary exports (one JSON object per line).

Both readers yield :class:`~lexical_diversity.entries.DictionaryEntry`
instances that already passed validation.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, List, Mapping, Optional

from .entries import DictionaryEntry, estimate_frequency, estimate_level, normalize_pos
from .exceptions import LoadError
from .logging import get_logger
from .utils.io import load_jsonl
from .utils.text import is_valid_japanese_word

LOGGER = get_logger(__name__)

_ENTRY_RE = re.compile(r"<entry>(.*?)</entry>", re.S)
_KEB_RE = re.compile(r"<keb>(.*?)</keb>", re.S)
_REB_RE = re.compile(r"<reb>(.*?)</reb>", re.S)
_GLOSS_RE = re.compile(r"<gloss(?:[^>]*)>(.*?)</gloss>", re.S)
_POS_RE = re.compile(r"<pos>&([^;]+);</pos>")

_MAX_DEFINITIONS = 2
_MAX_POS = 3
_MIN_GLOSS_LENGTH = 3
_CHUNK_SIZE = 64 * 1024
_MAX_ENTRY_CHARS = 1024 * 1024
_ENTRY_OPEN = "<entry>"

_WIKTIONARY_POS = {
    "noun": "名詞",
    "name": "名詞",
    "verb": "動詞",
    "adj": "形容詞",
    "adv": "副詞",
    "conj": "接続詞",
    "intj": "感動詞",
    "pron": "代名詞",
    "particle": "助詞",
    "num": "数詞",
    "suffix": "接尾辞",
    "prefix": "接頭辞",
    "phrase": "表現",
}


@dataclass
class SourceStats:
    """Counters describing one pass over a source file."""

    seen: int = 0
    accepted: int = 0
    rejected: int = 0


def _glosses(raw: List[str]) -> List[str]:
    definitions: List[str] = []
    for gloss in raw:
        gloss = html.unescape(gloss).strip()
        if len(gloss) >= _MIN_GLOSS_LENGTH:
            definitions.append(gloss)
        if len(definitions) == _MAX_DEFINITIONS:
            break
    return definitions


def parse_jmdict_entry(fragment: str) -> Optional[DictionaryEntry]:
    """Build an entry from the body of one ``<entry>`` element, or ``None``."""
    kanji = _KEB_RE.search(fragment)
    reading = _REB_RE.search(fragment)
    headword = (kanji or reading).group(1).strip() if (kanji or reading) else None
    if not headword or not is_valid_japanese_word(headword):
        return None
    definitions = _glosses(_GLOSS_RE.findall(fragment))
    if not definitions:
        return None
    pos = [normalize_pos(code) for code in _POS_RE.findall(fragment)[:_MAX_POS]]
    return DictionaryEntry(
        word=headword,
        reading=reading.group(1).strip() if reading else None,
        definitions=tuple(definitions),
        pos=pos,
        frequency=estimate_frequency(headword),
        level=estimate_level(headword, definitions),
        source="jmdict",
    )


def iter_jmdict(
    path: Path,
    stats: Optional[SourceStats] = None,
    *,
    chunk_size: int = _CHUNK_SIZE,
    max_entry_chars: int = _MAX_ENTRY_CHARS,
) -> Iterator[DictionaryEntry]:
    """Stream accepted entries from a JMdict XML file.

    Text outside ``<entry>`` elements is dropped as it is read. An entry that
    is still open after ``max_entry_chars`` characters raises
    :class:`LoadError`.
    """
    stats = stats if stats is not None else SourceStats()
    try:
        stream = path.open("r", encoding="utf-8")
    except OSError as exc:
        raise LoadError(f"Cannot open dictionary source {path}: {exc}") from exc
    with stream:
        buffer = ""
        try:
            for chunk in iter(lambda: stream.read(chunk_size), ""):
                buffer += chunk
                last_end = 0
                for match in _ENTRY_RE.finditer(buffer):
                    last_end = match.end()
                    stats.seen += 1
                    entry = parse_jmdict_entry(match.group(1))
                    if entry is None:
                        stats.rejected += 1
                        continue
                    stats.accepted += 1
                    yield entry
                buffer = buffer[last_end:]
                start = buffer.find(_ENTRY_OPEN)
                if start < 0:
                    # Keep a possible partial "<entry" tag at the end.
                    buffer = buffer[1 - len(_ENTRY_OPEN) :]
                else:
                    buffer = buffer[start:]
                if len(buffer) > max_entry_chars:
                    raise LoadError(f"Unclosed <entry> longer than {max_entry_chars} characters in {path}")
        except UnicodeDecodeError as exc:
            raise LoadError(f"Dictionary source {path} is not valid UTF-8: {exc}") from exc
    if _ENTRY_OPEN in buffer:
        LOGGER.warning("Trailing incomplete <entry> ignored in %s", path)


def parse_wiktionary_record(record: Mapping[str, Any]) -> Optional[DictionaryEntry]:
    word = str(record.get("word", "")).strip()
    if not is_valid_japanese_word(word):
        return None
    raw_glosses: List[str] = []
    synonyms: List[str] = []
    for sense in record.get("senses", []) or []:
        raw_glosses.extend(sense.get("glosses", []) or [])
        synonyms.extend(item["word"] for item in sense.get("synonyms", []) or [] if item.get("word"))
    for related in record.get("related", []) or []:
        if "synonym" in (related.get("tags") or []) and related.get("word"):
            synonyms.append(related["word"])
    definitions = _glosses(raw_glosses)
    if not definitions:
        return None
    raw_pos = str(record.get("pos", "")).strip()
    pos = [_WIKTIONARY_POS.get(raw_pos, raw_pos)] if raw_pos else []
    reading: Optional[str] = None
    for form in record.get("forms", []) or []:
        if "hiragana" in (form.get("tags") or []) and form.get("form"):
            reading = form["form"]
            break
    return DictionaryEntry(
        word=word,
        reading=reading,
        definitions=tuple(definitions),
        synonyms=synonyms,
        pos=pos,
        frequency=estimate_frequency(word),
        level=estimate_level(word, definitions),
        source="wiktionary",
        lang=str(record.get("lang_code") or "ja"),
    )


def iter_wiktionary(path: Path, stats: Optional[SourceStats] = None) -> Iterator[DictionaryEntry]:
    """Stream accepted entries from a kaikki.org JSON Lines export."""
    stats = stats if stats is not None else SourceStats()

    def _reject(line_number: int, line: str) -> None:
        LOGGER.debug("Skipping malformed JSON at %s:%d", path, line_number)
        stats.seen += 1
        stats.rejected += 1

    try:
        for record in load_jsonl(path, on_invalid=_reject):
            stats.seen += 1
            entry = parse_wiktionary_record(record) if isinstance(record, dict) else None
            if entry is None:
                stats.rejected += 1
                continue
            stats.accepted += 1
            yield entry
    except UnicodeDecodeError as exc:
        raise LoadError(f"Dictionary source {path} is not valid UTF-8: {exc}") from exc
    except OSError as exc:
        raise LoadError(f"Cannot read dictionary source {path}: {exc}") from exc


def iter_source(path: Path, stats: Optional[SourceStats] = None) -> Iterator[DictionaryEntry]:
    """Dispatch to the reader matching ``path``'s suffix."""
    path = Path(path)
    if not path.exists():
        raise LoadError(f"Dictionary source not found: {path}")
    if path.suffix.lower() in {".jsonl", ".json"}:
        return iter_wiktionary(path, stats)
    return iter_jmdict(path, stats)
