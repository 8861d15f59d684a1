"""Randomness helpers for reproducible substitution choices."""

from __future__ import annotations

import hashlib
import os
import random
from typing import Optional

import numpy as np

_SEED_ENV = "LEXICAL_DIVERSITY_SEED"


def deterministic_hash(value: str) -> int:
    """Return a deterministic integer hash for ``value``."""
    digest = hashlib.sha256(value.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=False)


def make_rng(seed: Optional[int] = None) -> random.Random:
    """Build an isolated RNG.

    An explicit ``seed`` wins; otherwise ``LEXICAL_DIVERSITY_SEED`` (hashed when
    it is not an integer) seeds the generator, and without either the RNG is
    seeded from system entropy.
    """
    if seed is not None:
        return random.Random(seed)
    env_value = os.getenv(_SEED_ENV)
    if env_value is None:
        return random.Random()
    try:
        return random.Random(int(env_value))
    except ValueError:
        return random.Random(deterministic_hash(env_value) % (2**32))


def seed_everything(seed: Optional[int] = None) -> int:
    """Seed Python and NumPy global randomness sources."""
    if seed is None:
        seed = deterministic_hash(os.getenv(_SEED_ENV, "lexical-diversity")) % (2**32)
    random.seed(seed)
    np.random.seed(seed)
    return seed
