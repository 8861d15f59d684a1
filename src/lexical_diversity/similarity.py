"""Similarity strategies used while strengthening the synonym graph."""

from __future__ import annotations

from typing import Protocol, Sequence

import numpy as np
from numpy.typing import NDArray

from .entries import DictionaryEntry
from .utils.text import gloss_prefix


class SimilarityStrategy(Protocol):
    """Scores how alike two entries' glosses are, in ``[0, 1]``."""

    def __call__(self, left: DictionaryEntry, right: DictionaryEntry) -> float:  # pragma: no cover - protocol
        ...


def jaccard(left: Sequence[str], right: Sequence[str]) -> float:
    left_set, right_set = set(left), set(right)
    union = left_set | right_set
    if not union:
        return 0.0
    return len(left_set & right_set) / len(union)


class GlossOverlapSimilarity:
    """Token-overlap ratio over a truncated prefix of the first gloss."""

    def __init__(self, prefix_tokens: int = 10) -> None:
        self.prefix_tokens = prefix_tokens

    def __call__(self, left: DictionaryEntry, right: DictionaryEntry) -> float:
        if not left.definitions or not right.definitions:
            return 0.0
        return jaccard(
            gloss_prefix(left.definitions[0], self.prefix_tokens),
            gloss_prefix(right.definitions[0], self.prefix_tokens),
        )


class BlendedGlossSimilarity:
    """Best pairwise gloss match, blending token overlap with length similarity."""

    def __init__(self, overlap_weight: float = 0.7, max_definitions: int = 3) -> None:
        self.overlap_weight = overlap_weight
        self.max_definitions = max_definitions

    def __call__(self, left: DictionaryEntry, right: DictionaryEntry) -> float:
        best = 0.0
        for left_gloss in left.definitions[: self.max_definitions]:
            for right_gloss in right.definitions[: self.max_definitions]:
                overlap = jaccard(left_gloss.lower().split(), right_gloss.lower().split())
                longest = max(len(left_gloss), len(right_gloss)) or 1
                length = 1.0 - abs(len(left_gloss) - len(right_gloss)) / longest
                best = max(best, self.overlap_weight * overlap + (1 - self.overlap_weight) * length)
        return best


def cosine_similarity(left: NDArray[np.float64], right: NDArray[np.float64]) -> float:
    """Cosine of two vectors, ``0.0`` when either has zero norm."""
    left_norm = float(np.linalg.norm(left))
    right_norm = float(np.linalg.norm(right))
    if left_norm == 0.0 or right_norm == 0.0:
        return 0.0
    return float(np.dot(left, right) / (left_norm * right_norm))
