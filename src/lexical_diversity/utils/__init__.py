"""Utility helpers shared across the lexical diversity package."""

from .io import file_digest, load_json, load_jsonl, load_yaml_or_json, save_json, source_fingerprint
from .random import deterministic_hash, make_rng, seed_everything
from .text import (
    contains_japanese,
    find_occurrences,
    gloss_keywords,
    gloss_prefix,
    is_hiragana,
    is_katakana,
    is_valid_japanese_word,
    min_distance,
    normalise_text,
    snippet,
)

__all__ = [
    "contains_japanese",
    "deterministic_hash",
    "file_digest",
    "find_occurrences",
    "gloss_keywords",
    "gloss_prefix",
    "is_hiragana",
    "is_katakana",
    "is_valid_japanese_word",
    "load_json",
    "load_jsonl",
    "load_yaml_or_json",
    "make_rng",
    "min_distance",
    "normalise_text",
    "save_json",
    "seed_everything",
    "snippet",
    "source_fingerprint",
]
