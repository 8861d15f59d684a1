from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from lexical_diversity.collaborators import ContextPrediction, Token
from lexical_diversity.config import LexicalConfig
from lexical_diversity.entries import DictionaryEntry
from lexical_diversity.store import LexicalStore

VOCABULARY: Dict[str, str] = {
    "猫": "名詞,一般,*,*",
    "犬": "名詞,一般,*,*",
    "好き": "名詞,形容動詞語幹,*,*",
    "嬉しい": "形容詞,自立,*,*",
    "楽しい": "形容詞,自立,*,*",
    "喜ばしい": "形容詞,自立,*,*",
    "愉悦": "名詞,一般,*,*",
    "今日": "名詞,副詞可能,*,*",
    "学ぶ": "動詞,自立,*,*",
    "勉強": "名詞,サ変接続,*,*",
    "です": "助動詞,*,*,*",
    "が": "助詞,格助詞,一般,*",
    "も": "助詞,係助詞,*,*",
    "は": "助詞,係助詞,*,*",
    "を": "助詞,格助詞,一般,*",
    "。": "記号,句点,*,*",
}


class StubTokenizer:
    """Greedy longest-match tokenizer over a fixed vocabulary."""

    def __init__(self, vocabulary: Optional[Mapping[str, str]] = None) -> None:
        self.vocabulary = dict(vocabulary or VOCABULARY)
        self.calls = 0

    async def tokenize(self, text: str) -> List[Token]:
        self.calls += 1
        tokens: List[Token] = []
        index = 0
        surfaces = sorted(self.vocabulary, key=len, reverse=True)
        while index < len(text):
            for surface in surfaces:
                if text.startswith(surface, index):
                    tokens.append(Token(surface, self.vocabulary[surface]))
                    index += len(surface)
                    break
            else:
                tokens.append(Token(text[index], "記号,一般,*,*"))
                index += 1
        return tokens


class FailingTokenizer:
    async def tokenize(self, text: str) -> List[Token]:
        raise RuntimeError("tokenizer offline")


class StubPredictor:
    def __init__(self, category: Optional[str] = "chat", confidence: float = 0.9) -> None:
        self.category = category
        self.confidence = confidence

    async def predict_context(self, text: str) -> ContextPrediction:
        return ContextPrediction(self.category, self.confidence)


class InMemoryRelationStore:
    def __init__(self, fail_saves: bool = False) -> None:
        self.data: Dict[str, Dict[str, Any]] = {}
        self.fail_saves = fail_saves
        self.saves = 0

    async def get_user_specific_relations(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.data.get(user_id)

    async def save_user_specific_relations(self, user_id: str, snapshot: Dict[str, Any]) -> None:
        if self.fail_saves:
            raise OSError("disk full")
        self.saves += 1
        self.data[user_id] = snapshot


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def config() -> LexicalConfig:
    return LexicalConfig()


@pytest.fixture
def workspace(tmp_path: Path) -> Iterator[Path]:
    yield tmp_path


@pytest.fixture
def tokenizer() -> StubTokenizer:
    return StubTokenizer()


@pytest.fixture
def relation_store() -> InMemoryRelationStore:
    return InMemoryRelationStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def seed_store() -> LexicalStore:
    store = LexicalStore()
    store.load_seed()
    return store


@pytest.fixture
def emotion_store() -> LexicalStore:
    """Small store where 嬉しい has two high-quality, compatible synonyms."""
    store = LexicalStore()
    for word, frequency in (("嬉しい", 85), ("楽しい", 80), ("喜ばしい", 70)):
        store.add_entry(
            DictionaryEntry(
                word=word,
                definitions=("glad feeling",),
                synonyms=[other for other in ("嬉しい", "楽しい", "喜ばしい") if other != word],
                pos=["形容詞"],
                frequency=frequency,
                quality=90,
                source="test",
            )
        )
    store.add_entry(
        DictionaryEntry(word="愉悦", definitions=("pleasure",), pos=["形容詞"], frequency=40, quality=95, source="test")
    )
    store.graph.add_edge("嬉しい", "愉悦")
    return store


JMDICT_SAMPLE = """<?xml version="1.0" encoding="UTF-8"?>
<JMdict>
<entry><ent_seq>1</ent_seq><k_ele><keb>猫</keb></k_ele><r_ele><reb>ねこ</reb></r_ele>
<sense><pos>&n;</pos><gloss>cat (esp. the domestic cat)</gloss></sense></entry>
<entry><ent_seq>2</ent_seq><k_ele><keb>犬</keb></k_ele><r_ele><reb>いぬ</reb></r_ele>
<sense><pos>&n;</pos><gloss>dog (Canis familiaris)</gloss></sense></entry>
<entry><ent_seq>3</ent_seq><r_ele><reb>ゝ</reb></r_ele>
<sense><pos>&n;</pos><gloss>repetition mark</gloss></sense></entry>
<entry><ent_seq>4</ent_seq><k_ele><keb>ABC</keb></k_ele>
<sense><pos>&n;</pos><gloss>latin letters</gloss></sense></entry>
<entry><ent_seq>5</ent_seq><k_ele><keb>嬉しい</keb></k_ele><r_ele><reb>うれしい</reb></r_ele>
<sense><pos>&adj-i;</pos><gloss>happy feeling; glad</gloss><gloss>joyful</gloss></sense></entry>
<entry><ent_seq>6</ent_seq><k_ele><keb>楽しい</keb></k_ele><r_ele><reb>たのしい</reb></r_ele>
<sense><pos>&adj-i;</pos><gloss>happy feeling; enjoyable</gloss></sense></entry>
<entry><ent_seq>7</ent_seq><k_ele><keb>食べる</keb></k_ele><r_ele><reb>たべる</reb></r_ele>
<sense><pos>&v1;</pos><pos>&vt;</pos><gloss>to eat</gloss></sense></entry>
<entry><ent_seq>8</ent_seq><r_ele><reb>あ</reb></r_ele>
<sense><pos>&int;</pos><gloss>ah</gloss></sense></entry>
</JMdict>
"""


@pytest.fixture
def jmdict_path(tmp_path: Path) -> Path:
    path = tmp_path / "JMdict_e.xml"
    path.write_text(JMDICT_SAMPLE, encoding="utf-8")
    return path
