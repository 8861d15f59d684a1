from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List

import pytest

from lexical_diversity.logging import configure_logging, parse_level
from lexical_diversity.utils import (
    file_digest,
    find_occurrences,
    gloss_keywords,
    gloss_prefix,
    is_valid_japanese_word,
    load_json,
    load_jsonl,
    make_rng,
    min_distance,
    save_json,
    snippet,
    source_fingerprint,
)


def test_japanese_word_filter() -> None:
    assert is_valid_japanese_word("猫")
    assert is_valid_japanese_word("サポート")
    assert not is_valid_japanese_word("ABC")
    assert not is_valid_japanese_word("ゝ")
    assert not is_valid_japanese_word(" ")


def test_gloss_keywords_skip_common_words() -> None:
    keywords = gloss_keywords(["to be happy about something", "glad feeling"])
    assert keywords == ["happy", "glad", "feeling"]
    assert gloss_prefix("To  Eat quickly", 2) == ["to", "eat"]


def test_offsets_and_snippets() -> None:
    assert find_occurrences("猫と猫", "猫") == [0, 2]
    assert find_occurrences("猫", "") == []
    assert min_distance([0, 10], [7]) == 3
    assert min_distance([], [1]) == float("inf")
    assert snippet("a  b\n c" + "x" * 200) == ("a b c" + "x" * 200)[:100]


def test_json_helpers(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "data.json"
    save_json(path, {"語": 1})
    assert load_json(path) == {"語": 1}
    assert "語" in path.read_text(encoding="utf-8")
    assert len(file_digest(path)) == 64
    lines = tmp_path / "data.jsonl"
    lines.write_text('{"a": 1}\n\n{"a": 2}\n', encoding="utf-8")
    assert [item["a"] for item in load_jsonl(lines)] == [1, 2]


def test_source_fingerprint_tracks_content(tmp_path: Path) -> None:
    path = tmp_path / "source.xml"
    path.write_text("<a/>", encoding="utf-8")
    before = source_fingerprint(path)
    path.write_text("<a></a>", encoding="utf-8")
    assert source_fingerprint(path) != before


def test_rng_seeding(monkeypatch: pytest.MonkeyPatch) -> None:
    assert make_rng(3).random() == make_rng(3).random()
    monkeypatch.setenv("LEXICAL_DIVERSITY_SEED", "words")
    assert make_rng().random() == make_rng().random()


def test_log_levels() -> None:
    assert parse_level("debug") == logging.DEBUG
    assert parse_level(logging.ERROR) == logging.ERROR
    with pytest.raises(ValueError):
        parse_level("chatty")
    configure_logging("warning")
    assert logging.getLogger("lexical_diversity").level == logging.WARNING


def test_jsonl_reports_malformed_lines(tmp_path: Path) -> None:
    lines = tmp_path / "data.jsonl"
    lines.write_text('{"a": 1}\n{broken\n\n{"a": 2}\n', encoding="utf-8")
    with pytest.raises(json.JSONDecodeError):
        list(load_jsonl(lines))
    skipped: List[int] = []
    records = list(load_jsonl(lines, on_invalid=lambda number, line: skipped.append(number)))
    assert [item["a"] for item in records] == [1, 2]
    assert skipped == [2]
