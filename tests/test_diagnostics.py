from __future__ import annotations

import asyncio
import io

from conftest import FakeClock, InMemoryRelationStore, StubPredictor, StubTokenizer
from lexical_diversity.diagnostics import DiagnosticsSuite, run_all_diagnostics
from lexical_diversity.learner import RelationshipLearner
from lexical_diversity.store import LexicalStore


def test_store_diagnostics(seed_store: LexicalStore) -> None:
    result = DiagnosticsSuite(seed_store).run()
    assert result.store["total_entries"] == 14
    assert result.health["status"] == "healthy"
    assert [probe.word for probe in result.probes] == ["嬉しい", "助ける", "とても"]
    assert result.learner == {}
    assert result.associations == []


def test_diagnostics_include_learner_associations(seed_store: LexicalStore, clock: FakeClock) -> None:
    learner = RelationshipLearner(
        "alice",
        tokenizer=StubTokenizer(),
        predictor=StubPredictor(),
        relation_store=InMemoryRelationStore(),
        clock=clock,
    )

    async def scenario() -> None:
        for _ in range(2):
            await learner.learn_from_conversation("猫が好きです。", [], "犬も好きです。")

    asyncio.run(scenario())
    stream = io.StringIO()
    result = run_all_diagnostics(seed_store, learner, stream=stream)
    assert result.learner["total_relations"] == 6
    assert len(result.associations) == 3
    assert all(stat.count == 2 for stat in result.associations)
    output = stream.getvalue()
    assert "Lexical Diversity Diagnostics" in output
    assert "Association" in output
    assert result.to_dict()["probes"][0]["word"] == "嬉しい"


def test_default_diagnostics_use_seed_dictionary() -> None:
    result = run_all_diagnostics()
    assert result.store["loaded_sources"] == ["seed_dictionary"]
