from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from lexical_diversity.config import DiversifierConfig, LexicalConfig, load_config


def test_defaults() -> None:
    config = LexicalConfig()
    assert config.store.memory_budget_mb == 50.0
    assert config.store.chunk_size == 5000
    assert config.learner.min_co_occurrence == 2
    assert config.learner.strength_threshold == 0.3
    assert config.diversifier.quality_reject == 30.0
    assert config.diversifier.quality_accept == 70.0
    assert config.diversifier.target_pos == ("名詞", "動詞", "形容詞", "副詞")


def test_yaml_round_trip(tmp_path: Path) -> None:
    config = LexicalConfig()
    config.learner.decay_factor = 0.9
    config.diversifier.target_pos = ("形容詞",)
    path = tmp_path / "config.yaml"
    config.save(path)
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert raw["diversifier"]["target_pos"] == ["形容詞"]
    loaded = load_config(path)
    assert loaded.learner.decay_factor == 0.9
    assert loaded.diversifier.target_pos == ("形容詞",)


def test_json_config_with_overrides(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    LexicalConfig().save(path)
    loaded = load_config(path, overrides=[{"store": {"max_entries": 10}}, {"diversifier": {"seed": 7}}])
    assert loaded.store.max_entries == 10
    assert loaded.store.batch_size == 500
    assert loaded.diversifier.seed == 7


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(TypeError):
        LexicalConfig.from_dict({"store": {"memory_budget": 10}})


def test_non_mapping_config_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(TypeError):
        load_config(path)


def test_target_pos_is_coerced_to_tuple() -> None:
    assert DiversifierConfig(target_pos=["名詞"]).target_pos == ("名詞",)
