"""Association statistics over co-occurrence counts."""

from __future__ import annotations

import math
from dataclasses import dataclass

# Critical value of the chi-square distribution with one degree of freedom at p = 0.05.
CHI_SQUARE_CRITICAL = 3.841


@dataclass(frozen=True)
class ChiSquareResult:
    statistic: float
    significant: bool


def pmi(joint: float, left: float, right: float, total: float) -> float:
    """Pointwise mutual information in bits; ``0.0`` when any count is missing."""
    if joint <= 0 or left <= 0 or right <= 0 or total <= 0:
        return 0.0
    return math.log2((joint / total) / ((left / total) * (right / total)))


def chi_square(joint: float, left: float, right: float, total: float) -> ChiSquareResult:
    """Chi-square statistic of the 2x2 table built from marginal counts.

    ``left`` and ``right`` are the number of observations involving each term
    and ``total`` is the number of observations overall.
    """
    a = joint
    b = left - joint
    c = right - joint
    d = total - a - b - c
    denominator = (a + b) * (c + d) * (a + c) * (b + d)
    if total <= 0 or denominator <= 0:
        return ChiSquareResult(0.0, False)
    statistic = total * (a * d - b * c) ** 2 / denominator
    return ChiSquareResult(statistic, statistic > CHI_SQUARE_CRITICAL)
