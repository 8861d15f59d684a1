"""Bundled data for the lexical diversity package."""

from __future__ import annotations

import json
from importlib import resources
from typing import Any, Dict, List

SEED_SOURCE = "seed_dictionary"


def load_seed_dictionary() -> List[Dict[str, Any]]:
    """Return the raw records of the built-in fallback dictionary."""
    with resources.files(__package__).joinpath("seed_dictionary.json").open("r", encoding="utf-8") as stream:
        return json.load(stream)


__all__ = ["SEED_SOURCE", "load_seed_dictionary"]
