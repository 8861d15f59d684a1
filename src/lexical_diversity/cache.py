"""Sharded on-disk cache for a parsed dictionary.

Layout of a cache directory::

    cache-metadata.json               version, timestamps, source hashes, file digests
    parsed-dictionary-chunk-{i}.json  up to ``chunk_size`` entries each
    synonym-map.json                  word -> synonyms (plus edge weights)
    dictionary-indices.json           reading and POS indices

The SHA-256 digest of every shard and of the two index files is recorded in
the metadata so a damaged file is reported by name instead of silently
producing a partial dictionary.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .entries import DictionaryEntry
from .exceptions import LoadError
from .graph import SynonymGraph
from .logging import get_logger
from .utils.io import file_digest, load_json, save_json, source_fingerprint

LOGGER = get_logger(__name__)

CACHE_VERSION = "1.0.0"
METADATA_FILE = "cache-metadata.json"
SYNONYM_FILE = "synonym-map.json"
INDEX_FILE = "dictionary-indices.json"
CHUNK_PATTERN = "parsed-dictionary-chunk-{index}.json"

_SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class CachePayload:
    """Everything restored from a valid cache directory."""

    entries: List[DictionaryEntry]
    graph: SynonymGraph
    reading_index: Dict[str, List[str]] = field(default_factory=dict)
    pos_index: Dict[str, List[str]] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


class DictionaryCache:
    """Read and write the sharded cache for one dictionary build."""

    def __init__(
        self,
        cache_dir: Path,
        *,
        chunk_size: int = 5000,
        max_age_days: float = 30.0,
        source_paths: Sequence[Path] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.cache_dir = Path(cache_dir)
        self.chunk_size = chunk_size
        self.max_age_days = max_age_days
        self.source_paths = [Path(path) for path in source_paths]
        self._clock = clock

    @property
    def metadata_path(self) -> Path:
        return self.cache_dir / METADATA_FILE

    def chunk_path(self, index: int) -> Path:
        return self.cache_dir / CHUNK_PATTERN.format(index=index)

    def source_hashes(self) -> Dict[str, str]:
        return {str(path): source_fingerprint(path) for path in self.source_paths if path.exists()}

    def read_metadata(self) -> Optional[Dict[str, Any]]:
        if not self.metadata_path.exists():
            return None
        try:
            metadata = load_json(self.metadata_path)
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Unreadable cache metadata %s: %s", self.metadata_path, exc)
            return None
        if not isinstance(metadata, dict):
            LOGGER.warning("Cache metadata %s is not an object", self.metadata_path)
            return None
        return metadata

    def _age_days(self, metadata: Mapping[str, Any]) -> Optional[float]:
        created_at = metadata.get("createdAt")
        if isinstance(created_at, bool) or not isinstance(created_at, (int, float)):
            return None
        return (self._clock() - float(created_at)) / _SECONDS_PER_DAY

    def validate(self, metadata: Optional[Mapping[str, Any]] = None) -> Optional[str]:
        """Return the reason the cache is unusable, or ``None`` when it is valid."""
        metadata = metadata if metadata is not None else self.read_metadata()
        if metadata is None:
            return "metadata missing"
        if metadata.get("version") != CACHE_VERSION:
            return f"version {metadata.get('version')!r} != {CACHE_VERSION!r}"
        age_days = self._age_days(metadata)
        if age_days is None:
            return f"invalid createdAt {metadata.get('createdAt')!r}"
        if age_days > self.max_age_days:
            return f"cache is {age_days:.1f} days old"
        stored = metadata.get("sourceHashes", {})
        if not isinstance(stored, dict):
            return "sourceHashes is not an object"
        for source, digest in self.source_hashes().items():
            if stored.get(source) != digest:
                return f"source changed: {source}"
        return None

    def is_valid(self) -> bool:
        return self.validate() is None

    def save(
        self,
        entries: Iterable[DictionaryEntry],
        graph: SynonymGraph,
        reading_index: Mapping[str, Iterable[str]],
        pos_index: Mapping[str, Iterable[str]],
        stats: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Write every cache file and return the metadata that was stored."""
        records = [entry.to_dict() for entry in entries]
        total_chunks = max(1, -(-len(records) // self.chunk_size))
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._remove_stale_chunks(total_chunks)
        chunks: List[Dict[str, Any]] = []
        for index in range(total_chunks):
            chunk = records[index * self.chunk_size : (index + 1) * self.chunk_size]
            path = self.chunk_path(index)
            save_json(path, {"chunkIndex": index, "totalChunks": total_chunks, "entries": chunk}, indent=0)
            chunks.append({"file": path.name, "entries": len(chunk), "sha256": file_digest(path)})
        save_json(self.cache_dir / SYNONYM_FILE, graph.to_dict(), indent=0)
        save_json(
            self.cache_dir / INDEX_FILE,
            {
                "readingMap": [{"reading": key, "words": list(words)} for key, words in reading_index.items()],
                "posMap": [{"pos": key, "words": list(words)} for key, words in pos_index.items()],
            },
            indent=0,
        )
        files = {name: file_digest(self.cache_dir / name) for name in (SYNONYM_FILE, INDEX_FILE)}
        metadata = {
            "version": CACHE_VERSION,
            "createdAt": self._clock(),
            "sourceHashes": self.source_hashes(),
            "stats": {
                **dict(stats or {}),
                "totalEntries": len(records),
                "synonymCount": len(graph),
                "totalChunks": total_chunks,
            },
            "chunks": chunks,
            "files": files,
        }
        save_json(self.metadata_path, metadata)
        LOGGER.info("Saved dictionary cache to %s (%d entries, %d chunks)", self.cache_dir, len(records), total_chunks)
        return metadata

    def _remove_stale_chunks(self, keep: int) -> None:
        for path in self.cache_dir.glob(CHUNK_PATTERN.format(index="*")):
            suffix = path.stem.rsplit("-", 1)[-1]
            if suffix.isdigit() and int(suffix) >= keep:
                path.unlink()

    def load(self) -> CachePayload:
        """Restore a cache, raising :class:`LoadError` on any inconsistency."""
        metadata = self.read_metadata()
        reason = self.validate(metadata)
        if reason is not None:
            raise LoadError(f"Cache at {self.cache_dir} is not usable: {reason}")
        assert metadata is not None
        try:
            return self._decode(metadata)
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            raise LoadError(f"Cache at {self.cache_dir} is malformed: {exc!r}") from exc

    def _decode(self, metadata: Mapping[str, Any]) -> CachePayload:
        entries: List[DictionaryEntry] = []
        for index, shard in enumerate(metadata.get("chunks", [])):
            entries.extend(self._load_shard(index, shard))
        expected = metadata.get("stats", {}).get("totalEntries")
        if expected is not None and expected != len(entries):
            raise LoadError(f"Cache entry count mismatch: expected {expected}, found {len(entries)}")
        digests = metadata.get("files", {})
        graph = SynonymGraph.from_dict(self._load_verified(SYNONYM_FILE, digests))
        indices = self._load_verified(INDEX_FILE, digests)
        return CachePayload(
            entries=entries,
            graph=graph,
            reading_index={item["reading"]: list(item["words"]) for item in indices.get("readingMap", [])},
            pos_index={item["pos"]: list(item["words"]) for item in indices.get("posMap", [])},
            metadata=dict(metadata),
        )

    def _load_verified(self, name: str, digests: Mapping[str, Any]) -> Dict[str, Any]:
        path = self.cache_dir / name
        if path.exists() and file_digest(path) != digests.get(name):
            raise LoadError(f"Cache file corrupted: {name}")
        payload = self._load_part(path)
        if not isinstance(payload, dict):
            raise LoadError(f"Cache file {name} is not an object")
        return payload

    def _load_shard(self, index: int, shard: Mapping[str, Any]) -> List[DictionaryEntry]:
        path = self.cache_dir / shard.get("file", self.chunk_path(index).name)
        if not path.exists():
            raise LoadError(f"Cache shard missing: {path.name}")
        if file_digest(path) != shard.get("sha256"):
            raise LoadError(f"Cache shard corrupted: {path.name}")
        payload = self._load_part(path)
        if not isinstance(payload, dict):
            raise LoadError(f"Cache shard {path.name} is not an object")
        if payload.get("chunkIndex") != index:
            raise LoadError(f"Cache shard {path.name} has chunk index {payload.get('chunkIndex')}")
        try:
            return [DictionaryEntry.from_dict(record) for record in payload.get("entries", [])]
        except (KeyError, TypeError, ValueError) as exc:
            raise LoadError(f"Cache shard {path.name} holds a malformed entry: {exc}") from exc

    def _load_part(self, path: Path) -> Dict[str, Any]:
        try:
            return load_json(path)
        except FileNotFoundError as exc:
            raise LoadError(f"Cache file missing: {path.name}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise LoadError(f"Cache file unreadable: {path.name}: {exc}") from exc

    def clear(self) -> int:
        """Delete every cache file; returns the number of files removed."""
        if not self.cache_dir.exists():
            return 0
        removed = 0
        candidates = [self.metadata_path, self.cache_dir / SYNONYM_FILE, self.cache_dir / INDEX_FILE]
        candidates.extend(self.cache_dir.glob(CHUNK_PATTERN.format(index="*")))
        for path in candidates:
            if path.exists():
                path.unlink()
                removed += 1
        LOGGER.info("Cleared %d cache files from %s", removed, self.cache_dir)
        return removed

    def stats(self) -> Dict[str, Any]:
        metadata = self.read_metadata()
        if metadata is None:
            return {"exists": False}
        size = sum(path.stat().st_size for path in self.cache_dir.glob("*.json"))
        stored_stats = metadata.get("stats")
        if not isinstance(stored_stats, dict):
            stored_stats = {}
        return {
            "exists": True,
            "valid": self.validate(metadata) is None,
            "createdAt": metadata.get("createdAt"),
            "ageDays": self._age_days(metadata),
            "sizeMB": round(size / (1024 * 1024), 3),
            **stored_stats,
        }
