from __future__ import annotations

from lexical_diversity.compatibility import HeuristicCompatibilityPolicy, semantic_domain, tone_level
from lexical_diversity.store import LexicalStore


def test_tone_levels() -> None:
    assert tone_level("恐縮") == 3
    assert tone_level("お礼申し上げます") == 3
    assert tone_level("マジで") == 0
    assert tone_level("猫") == 1
    assert tone_level("ありがとう") == 2


def test_semantic_domains() -> None:
    assert semantic_domain(["形容詞"]) == "emotion"
    assert semantic_domain(["五段動詞"]) == "action"
    assert semantic_domain(["名詞", "サ変動詞"]) == "object"
    assert semantic_domain([]) == "abstract"


def test_policy_rejects_listed_pairs(seed_store: LexicalStore) -> None:
    policy = HeuristicCompatibilityPolicy()
    verdict = policy.check("ありがとう", "感謝します", seed_store)
    assert not verdict.compatible
    assert verdict.reason == "incompatible pair"


def test_policy_rejects_register_jumps(seed_store: LexicalStore) -> None:
    verdict = HeuristicCompatibilityPolicy().check("嬉しい", "恐縮", seed_store)
    assert not verdict.compatible
    assert verdict.reason.startswith("tone delta")


def test_policy_rejects_domain_mismatch(seed_store: LexicalStore) -> None:
    verdict = HeuristicCompatibilityPolicy().check("助ける", "支援", seed_store)
    assert not verdict.compatible
    assert verdict.reason == "domain action != object"
    assert HeuristicCompatibilityPolicy().check("学ぶ", "教える", seed_store).compatible


def test_custom_incompatible_pairs(seed_store: LexicalStore) -> None:
    policy = HeuristicCompatibilityPolicy({"嬉しい": ["楽しい"]}, max_tone_delta=3)
    assert not policy.check("嬉しい", "楽しい", seed_store).compatible
    assert policy.check("嬉しい", "楽しい", seed_store).reason == "incompatible pair"
