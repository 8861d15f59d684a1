"""Configuration helpers for the lexical diversity package."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional, cast

import yaml

from .utils.io import load_yaml_or_json, save_json


@dataclass
class StoreConfig:
    """Configuration for dictionary ingestion, caching and graph strengthening."""

    memory_budget_mb: float = 50.0
    max_entries: int = 200_000
    batch_size: int = 500
    avg_entry_size_bytes: int = 200
    chunk_size: int = 5000
    cache_max_age_days: float = 30.0
    min_cache_entries: int = 100
    max_process_entries: int = 5000
    max_group_entries: int = 2000
    group_min_size: int = 2
    group_max_size: int = 20
    group_weight: float = 60.0
    sample_size: int = 1000
    neighbor_window: int = 50
    similarity_threshold: float = 0.5
    gloss_prefix_tokens: int = 10
    quality_sample_size: int = 5


@dataclass
class LearnerConfig:
    """Configuration for per-user relationship learning."""

    min_co_occurrence: int = 2
    strength_threshold: float = 0.3
    max_relations_per_term: int = 10
    decay_factor: float = 0.95
    learning_rate: float = 0.1
    prune_threshold: float = 0.1
    proximity_window: int = 100
    max_keywords: int = 20
    max_contexts: int = 5
    proximity_weight: float = 0.3
    semantic_weight: float = 0.4
    cosine_weight: float = 0.3
    autosave_seconds: float = 300.0


@dataclass
class DiversifierConfig:
    """Configuration for synonym substitution."""

    target_pos: tuple[str, ...] = ("名詞", "動詞", "形容詞", "副詞")
    quality_reject: float = 30.0
    quality_accept: float = 70.0
    max_tone_delta: int = 2
    repetition_window_minutes: float = 30.0
    history_limit: int = 10
    max_synonyms: int = 10
    graph_depth: int = 2
    graph_min_weight: float = 60.0
    strengthen_on_first_use: bool = True
    vary_connectives: bool = False
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        # YAML and JSON hand back lists.
        self.target_pos = tuple(self.target_pos)


@dataclass
class LexicalConfig:
    """Top-level configuration for the store, learner and diversifier."""

    store: StoreConfig = field(default_factory=StoreConfig)
    learner: LearnerConfig = field(default_factory=LearnerConfig)
    diversifier: DiversifierConfig = field(default_factory=DiversifierConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LexicalConfig:
        return cls(
            store=StoreConfig(**data.get("store", {})),
            learner=LearnerConfig(**data.get("learner", {})),
            diversifier=DiversifierConfig(**data.get("diversifier", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["diversifier"]["target_pos"] = list(self.diversifier.target_pos)
        return data

    def save(self, path: Path) -> None:
        """Persist the configuration as YAML or JSON depending on the suffix."""
        path = Path(path)
        if path.suffix.lower() in {".yaml", ".yml"}:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as stream:
                yaml.safe_dump(self.to_dict(), stream, allow_unicode=True, sort_keys=False)
            return
        save_json(path, self.to_dict())


def _merge_dict(base: dict[str, Any], overrides: Iterable[dict[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for override in overrides:
        for key, value in override.items():
            existing = result.get(key)
            if isinstance(value, dict) and isinstance(existing, dict):
                result[key] = _merge_dict(cast(dict[str, Any], existing), [value])
            else:
                result[key] = value
    return result


def load_config(
    path: Optional[Path] = None,
    overrides: Optional[Iterable[dict[str, Any]]] = None,
) -> LexicalConfig:
    """Load configuration from disk and merge overrides."""

    overrides = list(overrides or [])
    base: dict[str, Any] = {} if path is None else load_yaml_or_json(Path(path))
    merged = _merge_dict(base, overrides)
    return LexicalConfig.from_dict(merged)
