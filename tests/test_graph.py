from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from lexical_diversity.config import StoreConfig
from lexical_diversity.entries import DictionaryEntry
from lexical_diversity.graph import (
    StrengtheningReport,
    SynonymGraph,
    group_by_keywords,
    link_similar,
    representative_sample,
    score_quality,
)
from lexical_diversity.similarity import BlendedGlossSimilarity, GlossOverlapSimilarity
from lexical_diversity.store import LexicalStore


def _entry(word: str, gloss: str, pos: str = "形容詞", frequency: float = 50) -> DictionaryEntry:
    return DictionaryEntry(word=word, definitions=(gloss,), pos=[pos], frequency=frequency)


def test_strengthening_makes_graph_symmetric(seed_store: LexicalStore) -> None:
    assert not seed_store.graph.is_symmetric()
    report = seed_store.build_enhanced_synonym_map()
    assert seed_store.graph.is_symmetric()
    assert report.reciprocal_links > 0
    for word in seed_store.graph:
        for neighbor in seed_store.graph.neighbors(word):
            assert word in seed_store.graph.neighbors(neighbor)
    assert "嬉しい" in seed_store.get_entry("楽しい").synonyms


def test_quality_scores_stay_in_range(seed_store: LexicalStore) -> None:
    seed_store.build_enhanced_synonym_map()
    for entry in seed_store.entries():
        assert entry.quality is not None
        assert 0.0 <= entry.quality <= 100.0


def test_keyword_groups_are_fully_connected() -> None:
    graph = SynonymGraph()
    entries = [
        _entry("嬉しい", "happy feeling; glad"),
        _entry("楽しい", "happy feeling; enjoyable"),
        _entry("食べる", "to eat", pos="動詞"),
    ]
    pairs = group_by_keywords(graph, entries, StoreConfig())
    assert pairs == 1
    assert graph.weight("嬉しい", "楽しい") == 60.0
    assert graph.neighbors("食べる") == set()


def test_similar_glosses_with_shared_pos_are_linked() -> None:
    graph = SynonymGraph()
    entries = [
        _entry("食べる", "to eat food quickly", pos="動詞"),
        _entry("食う", "to eat food quickly", pos="動詞"),
        _entry("食物", "to eat food quickly", pos="名詞"),
    ]
    assert link_similar(graph, entries, StoreConfig()) == 1
    assert graph.weight("食べる", "食う") == 100.0
    assert "食物" not in graph


def test_similarity_strategies() -> None:
    left = _entry("a", "one two three four")
    right = _entry("b", "one two five six")
    assert GlossOverlapSimilarity(prefix_tokens=2)(left, right) == 1.0
    assert GlossOverlapSimilarity()(left, right) == 2 / 6
    assert 0.0 < BlendedGlossSimilarity()(left, right) <= 1.0


def test_representative_sample_draws_from_frequent_half() -> None:
    entries = [_entry(f"語{i}", "gloss", frequency=i) for i in range(100)]
    sample = representative_sample(entries, 10)
    assert len(sample) == 10
    assert min(entry.frequency for entry in sample) >= 50


def test_explore_respects_weight_and_depth() -> None:
    graph = SynonymGraph()
    graph.add_edge("a", "b", 100)
    graph.add_edge("b", "c", 60)
    graph.add_edge("c", "d", 100)
    graph.add_edge("a", "e", 50)
    reached = graph.explore("a", depth=2, min_weight=60)
    assert [(item.word, item.weight, item.depth) for item in reached] == [("b", 100, 1), ("c", 60, 2)]


def test_graph_serialisation_keeps_weights() -> None:
    graph = SynonymGraph()
    graph.add_edge("a", "b", 75)
    graph.add_directed("a", "c")
    restored = SynonymGraph.from_dict(graph.to_dict())
    assert restored.weight("a", "b") == 75
    assert restored.neighbors("a") == {"b", "c"}
    assert not restored.is_symmetric()
    assert restored.close_reciprocal() == 1


def test_score_quality_components() -> None:
    entries = {
        "a": _entry("a", "x", frequency=50),
        "b": _entry("b", "x", frequency=50),
        "c": _entry("c", "x", pos="名詞", frequency=20),
    }
    graph = SynonymGraph()
    graph.add_edge("a", "b")
    graph.add_edge("a", "c")
    # 2 edges -> 20, POS agreement 1/2 -> 15, balance (20 + 0) / 2 -> 10
    assert score_quality("a", graph, entries) == 45.0
    assert score_quality("missing", graph, entries) == 0.0


def test_copy_and_merge_keep_graphs_independent() -> None:
    graph = SynonymGraph()
    graph.add_edge("a", "b", 75)
    copied = graph.copy()
    copied.add_edge("b", "c", 80)
    assert graph.neighbors("b") == {"a"}
    other = SynonymGraph()
    other.add_edge("a", "b", 90)
    other.add_directed("d", "a", 65)
    graph.merge(other)
    assert graph.weight("a", "b") == 90
    assert graph.neighbors("d") == {"a"}


def test_graph_from_wrong_shapes_raises() -> None:
    with pytest.raises(TypeError):
        SynonymGraph.from_dict([])  # type: ignore[arg-type]
    with pytest.raises(KeyError):
        SynonymGraph.from_dict({"entries": [{"synonyms": ["b"]}]})


def test_threaded_strengthening_swaps_in_symmetric_graph(seed_store: LexicalStore) -> None:
    report = asyncio.run(seed_store.build_enhanced_synonym_map_async())
    assert report is not None and report.reciprocal_links > 0
    assert seed_store.strengthened
    assert seed_store.graph.is_symmetric()
    assert "嬉しい" in seed_store.get_entry("楽しい").synonyms
    assert all(entry.quality is not None for entry in seed_store.entries() if entry.word in seed_store.graph)


def test_threaded_strengthening_is_discarded_after_clear(seed_store: LexicalStore) -> None:
    async def scenario() -> Optional[StrengtheningReport]:
        task = asyncio.create_task(seed_store.build_enhanced_synonym_map_async())
        await asyncio.sleep(0)
        seed_store.clear()
        return await task

    assert asyncio.run(scenario()) is None
    assert not seed_store.strengthened
    assert len(seed_store.graph) == 0
