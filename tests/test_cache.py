from __future__ import annotations

import time
from pathlib import Path

import pytest

from lexical_diversity.cache import DictionaryCache
from lexical_diversity.config import StoreConfig
from lexical_diversity.entries import DictionaryEntry
from lexical_diversity.exceptions import LoadError
from lexical_diversity.store import LexicalStore
from lexical_diversity.utils.io import file_digest, load_json, save_json


@pytest.fixture
def built_store(jmdict_path: Path) -> LexicalStore:
    store = LexicalStore(StoreConfig(chunk_size=2))
    store.load_from_source(jmdict_path)
    store.build_enhanced_synonym_map()
    return store


def test_cache_is_sharded_and_restores_everything(tmp_path: Path, built_store: LexicalStore, jmdict_path: Path) -> None:
    cache_dir = tmp_path / "cache"
    metadata = built_store.save_cache(cache_dir, [jmdict_path])
    assert metadata["stats"]["totalChunks"] == 3
    assert sorted(path.name for path in cache_dir.glob("parsed-dictionary-chunk-*.json")) == [
        "parsed-dictionary-chunk-0.json",
        "parsed-dictionary-chunk-1.json",
        "parsed-dictionary-chunk-2.json",
    ]
    assert (cache_dir / "synonym-map.json").exists()
    assert (cache_dir / "dictionary-indices.json").exists()

    restored = LexicalStore(StoreConfig(chunk_size=2))
    result = restored.load_from_cache(cache_dir, [jmdict_path])
    assert result.success
    assert len(restored) == len(built_store)
    assert restored.strengthened
    assert restored.get_synonyms("嬉しい") == built_store.get_synonyms("嬉しい")
    assert restored.get_words_by_reading("ねこ") == ["猫"]
    assert restored.get_entry("嬉しい").quality == built_store.get_entry("嬉しい").quality


def test_corrupted_shard_is_reported_by_name(tmp_path: Path, built_store: LexicalStore) -> None:
    cache_dir = tmp_path / "cache"
    built_store.save_cache(cache_dir)
    (cache_dir / "parsed-dictionary-chunk-1.json").write_text('{"chunkIndex": 1, "entries": []}', encoding="utf-8")
    with pytest.raises(LoadError, match="parsed-dictionary-chunk-1.json"):
        DictionaryCache(cache_dir, chunk_size=2).load()


def test_failed_cache_load_leaves_store_untouched(tmp_path: Path, built_store: LexicalStore, seed_store: LexicalStore) -> None:
    cache_dir = tmp_path / "cache"
    built_store.save_cache(cache_dir)
    (cache_dir / "synonym-map.json").write_text("{not json", encoding="utf-8")
    result = seed_store.load_from_cache(cache_dir)
    assert not result.success
    assert len(seed_store) == 14
    assert seed_store.get_entry("嬉しい") is not None


def test_cache_expires_after_max_age(tmp_path: Path, built_store: LexicalStore) -> None:
    cache_dir = tmp_path / "cache"
    built_store.save_cache(cache_dir)
    later = time.time() + 31 * 24 * 60 * 60
    cache = DictionaryCache(cache_dir, max_age_days=30, clock=lambda: later)
    assert not cache.is_valid()
    assert "days old" in cache.validate()
    assert DictionaryCache(cache_dir, max_age_days=30).is_valid()


def test_cache_is_invalidated_when_source_changes(tmp_path: Path, built_store: LexicalStore, jmdict_path: Path) -> None:
    cache_dir = tmp_path / "cache"
    built_store.save_cache(cache_dir, [jmdict_path])
    cache = DictionaryCache(cache_dir, source_paths=[jmdict_path])
    assert cache.is_valid()
    jmdict_path.write_text(jmdict_path.read_text(encoding="utf-8") + "<!-- updated -->\n", encoding="utf-8")
    assert cache.validate().startswith("source changed")


def test_clear_and_stats(tmp_path: Path, built_store: LexicalStore) -> None:
    cache_dir = tmp_path / "cache"
    built_store.save_cache(cache_dir)
    cache = DictionaryCache(cache_dir)
    stats = cache.stats()
    assert stats["exists"] and stats["valid"]
    assert stats["totalEntries"] == 5
    assert cache.clear() == 6
    assert cache.stats() == {"exists": False}
    assert not cache.is_valid()


def test_resaving_with_fewer_chunks_removes_stale_shards(tmp_path: Path, built_store: LexicalStore) -> None:
    cache_dir = tmp_path / "cache"
    built_store.save_cache(cache_dir)
    small = LexicalStore(StoreConfig(chunk_size=2))
    small.add_entry(DictionaryEntry(word="猫", definitions=("cat",), pos=["名詞"]))
    small.add_entry(DictionaryEntry(word="犬", definitions=("dog",), pos=["名詞"]))
    small.save_cache(cache_dir)
    assert not (cache_dir / "parsed-dictionary-chunk-1.json").exists()
    assert DictionaryCache(cache_dir).load().metadata["stats"]["totalEntries"] == 2


def test_wrong_shaped_synonym_map_falls_back_to_source(tmp_path: Path, built_store: LexicalStore, jmdict_path: Path) -> None:
    cache_dir = tmp_path / "cache"
    built_store.save_cache(cache_dir, [jmdict_path])
    (cache_dir / "synonym-map.json").write_text("[]", encoding="utf-8")
    with pytest.raises(LoadError, match="synonym-map.json"):
        DictionaryCache(cache_dir, chunk_size=2, source_paths=[jmdict_path]).load()

    store = LexicalStore(StoreConfig(chunk_size=2))
    result = store.initialize(cache_dir=cache_dir, source_path=jmdict_path)
    assert result.success
    assert result.method == "source"
    assert store.get_words_by_reading("ねこ") == ["猫"]


def test_malformed_index_with_matching_digest_is_a_load_error(tmp_path: Path, built_store: LexicalStore) -> None:
    cache_dir = tmp_path / "cache"
    built_store.save_cache(cache_dir)
    index_path = cache_dir / "dictionary-indices.json"
    save_json(index_path, {"readingMap": [{"r": "x"}], "posMap": []})
    metadata = load_json(cache_dir / "cache-metadata.json")
    metadata["files"]["dictionary-indices.json"] = file_digest(index_path)
    save_json(cache_dir / "cache-metadata.json", metadata)

    with pytest.raises(LoadError, match="malformed"):
        DictionaryCache(cache_dir, chunk_size=2).load()
    store = LexicalStore()
    store.load_seed()
    assert not store.load_from_cache(cache_dir).success
    assert store.get_entry("嬉しい") is not None


def test_wrong_shaped_metadata_is_invalid(tmp_path: Path, built_store: LexicalStore) -> None:
    cache_dir = tmp_path / "cache"
    built_store.save_cache(cache_dir)
    metadata_path = cache_dir / "cache-metadata.json"
    metadata = load_json(metadata_path)

    save_json(metadata_path, {**metadata, "createdAt": "yesterday"})
    cache = DictionaryCache(cache_dir)
    assert cache.validate().startswith("invalid createdAt")
    assert cache.stats()["ageDays"] is None

    save_json(metadata_path, [metadata])
    assert cache.read_metadata() is None
    assert cache.validate() == "metadata missing"
    with pytest.raises(LoadError):
        cache.load()
