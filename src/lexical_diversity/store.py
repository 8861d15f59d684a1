"""Bounded-memory lexical store with a derived synonym graph."""

from __future__ import annotations

import asyncio
import random
import time
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

from .cache import DictionaryCache
from .config import StoreConfig
from .data import SEED_SOURCE, load_seed_dictionary
from .entries import DictionaryEntry
from .exceptions import LoadError
from .graph import GraphNeighbor, StrengtheningReport, SynonymGraph, close_and_sync, score_quality, strengthen
from .logging import get_logger
from .similarity import SimilarityStrategy
from .sources import SourceStats, iter_source

LOGGER = get_logger(__name__)

_BYTES_PER_MB = 1024 * 1024


@dataclass
class LoadResult:
    """Outcome of a load attempt; ``method`` names where the data came from."""

    success: bool
    method: str
    load_time_ms: float = 0.0
    total_entries: int = 0
    entries_processed: int = 0
    stopped_early: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HealthReport:
    status: str = "healthy"
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class LexicalStore:
    """Dictionary entries, reading/POS indices and the synonym graph.

    The store never ends a load call empty: when neither the cache nor the
    source can be read it falls back to the bundled seed dictionary.
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        *,
        similarity: Optional[SimilarityStrategy] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or StoreConfig()
        self.similarity = similarity
        self.graph = SynonymGraph()
        self._entries: Dict[str, DictionaryEntry] = {}
        self._reading_index: Dict[str, List[str]] = defaultdict(list)
        self._pos_index: Dict[str, List[str]] = defaultdict(list)
        self._rng = rng or random.Random()
        self.loaded_sources: List[str] = []
        self.last_updated: Optional[float] = None
        self.strengthened = False
        self._generation = 0

    # ------------------------------------------------------------------
    # Entry management
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, word: object) -> bool:
        return word in self._entries

    def entries(self) -> List[DictionaryEntry]:
        return list(self._entries.values())

    def add_entry(self, entry: DictionaryEntry) -> DictionaryEntry:
        """Insert ``entry`` or merge it into an existing entry for the same word."""
        existing = self._entries.get(entry.word)
        if existing is not None:
            existing.merge(entry)
            target = existing
        else:
            self._entries[entry.word] = entry
            target = entry
            if entry.reading and entry.word not in self._reading_index[entry.reading]:
                self._reading_index[entry.reading].append(entry.word)
        for pos in entry.pos:
            if target.word not in self._pos_index[pos]:
                self._pos_index[pos].append(target.word)
        for synonym in entry.synonyms:
            self.graph.add_directed(entry.word, synonym)
        self.last_updated = time.time()
        return target

    def set_frequency(self, word: str, frequency: float) -> None:
        entry = self._entries.get(word)
        if entry is None:
            raise KeyError(word)
        entry.frequency = max(0.0, min(100.0, float(frequency)))

    def clear(self) -> None:
        self._entries.clear()
        self._reading_index.clear()
        self._pos_index.clear()
        self.graph.clear()
        self.loaded_sources = []
        self.strengthened = False
        self._generation += 1

    def estimated_memory_mb(self) -> float:
        return len(self._entries) * self.config.avg_entry_size_bytes / _BYTES_PER_MB

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    def load_seed(self) -> LoadResult:
        """Load the bundled fallback dictionary."""
        start = time.perf_counter()
        records = load_seed_dictionary()
        for record in records:
            self.add_entry(DictionaryEntry.from_dict({**record, "source": SEED_SOURCE}))
        if SEED_SOURCE not in self.loaded_sources:
            self.loaded_sources.append(SEED_SOURCE)
        LOGGER.info("Loaded %d seed entries", len(records))
        return LoadResult(
            success=True,
            method="seed",
            load_time_ms=(time.perf_counter() - start) * 1000,
            total_entries=len(self),
            entries_processed=len(records),
        )

    def _fallback(self, method: str, error: str, start: float) -> LoadResult:
        if not self._entries:
            LOGGER.warning("%s load failed (%s); falling back to seed dictionary", method, error)
            self.load_seed()
            method = "seed"
        else:
            LOGGER.warning("%s load failed (%s); keeping %d existing entries", method, error, len(self))
        return LoadResult(
            success=False,
            method=method,
            load_time_ms=(time.perf_counter() - start) * 1000,
            total_entries=len(self),
            error=error,
        )

    def load_from_source(
        self,
        path: Path,
        memory_budget_mb: Optional[float] = None,
        max_entries: Optional[int] = None,
    ) -> LoadResult:
        """Stream entries from a dictionary source within memory and size bounds.

        The memory estimate is checked after every batch and the entry bound
        after every entry, so ``len(store) <= max_entries`` always holds.
        """
        budget = self.config.memory_budget_mb if memory_budget_mb is None else memory_budget_mb
        limit = self.config.max_entries if max_entries is None else max_entries
        if budget <= 0 or limit <= 0:
            raise ValueError("memory_budget_mb and max_entries must be positive")
        start = time.perf_counter()
        stats = SourceStats()
        processed = 0
        stopped_early = False
        batch: List[DictionaryEntry] = []
        try:
            for entry in iter_source(Path(path), stats):
                if len(self) + len(batch) >= limit and entry.word not in self._entries:
                    stopped_early = True
                    break
                batch.append(entry)
                if len(batch) >= self.config.batch_size:
                    processed += self._add_batch(batch)
                    batch = []
                    if self.estimated_memory_mb() > budget:
                        LOGGER.warning(
                            "Memory estimate %.2fMB exceeds budget %.2fMB; stopping ingestion",
                            self.estimated_memory_mb(),
                            budget,
                        )
                        stopped_early = True
                        break
            processed += self._add_batch(batch)
        except LoadError as exc:
            processed += self._add_batch(batch)
            if processed == 0:
                return self._fallback("source", str(exc), start)
            LOGGER.warning("Source %s ended with an error after %d entries: %s", path, processed, exc)
        source_name = Path(path).name
        if source_name not in self.loaded_sources:
            self.loaded_sources.append(source_name)
        if not self._entries:
            return self._fallback("source", f"no valid entries in {path}", start)
        LOGGER.info(
            "Loaded %d entries from %s (seen=%d rejected=%d, %.2fMB)",
            processed,
            path,
            stats.seen,
            stats.rejected,
            self.estimated_memory_mb(),
        )
        return LoadResult(
            success=True,
            method="source",
            load_time_ms=(time.perf_counter() - start) * 1000,
            total_entries=len(self),
            entries_processed=processed,
            stopped_early=stopped_early,
        )

    def _add_batch(self, batch: Iterable[DictionaryEntry]) -> int:
        count = 0
        for entry in batch:
            self.add_entry(entry)
            count += 1
        return count

    def _cache(self, cache_dir: Path, source_paths: Iterable[Path] = ()) -> DictionaryCache:
        return DictionaryCache(
            cache_dir,
            chunk_size=self.config.chunk_size,
            max_age_days=self.config.cache_max_age_days,
            source_paths=list(source_paths),
        )

    def load_from_cache(self, cache_dir: Path, source_paths: Iterable[Path] = ()) -> LoadResult:
        """Restore entries, indices and graph from a cache directory."""
        start = time.perf_counter()
        try:
            payload = self._cache(cache_dir, source_paths).load()
        except LoadError as exc:
            LOGGER.info("Cache unavailable: %s", exc)
            return LoadResult(
                success=False,
                method="cache",
                load_time_ms=(time.perf_counter() - start) * 1000,
                total_entries=len(self),
                error=str(exc),
            )
        self.clear()
        for entry in payload.entries:
            self._entries[entry.word] = entry
        self.graph = payload.graph
        self._reading_index.update(payload.reading_index)
        self._pos_index.update(payload.pos_index)
        self.loaded_sources = list(payload.metadata.get("stats", {}).get("loadedSources", []))
        self.strengthened = bool(payload.metadata.get("stats", {}).get("strengthened", False))
        self.last_updated = time.time()
        LOGGER.info("Loaded %d entries from cache %s", len(self), cache_dir)
        return LoadResult(
            success=True,
            method="cache",
            load_time_ms=(time.perf_counter() - start) * 1000,
            total_entries=len(self),
            entries_processed=len(payload.entries),
        )

    def save_cache(self, cache_dir: Path, source_paths: Iterable[Path] = ()) -> Dict[str, Any]:
        return self._cache(cache_dir, source_paths).save(
            self._entries.values(),
            self.graph,
            self._reading_index,
            self._pos_index,
            stats={"loadedSources": list(self.loaded_sources), "strengthened": self.strengthened},
        )

    def initialize(self, cache_dir: Optional[Path] = None, source_path: Optional[Path] = None) -> LoadResult:
        """Cache first, then the raw source (refreshing the cache), then the seed."""
        sources = [Path(source_path)] if source_path else []
        if cache_dir is not None:
            result = self.load_from_cache(Path(cache_dir), sources)
            if result.success:
                return result
        if source_path is not None:
            result = self.load_from_source(Path(source_path))
            if result.success and cache_dir is not None and len(self) > self.config.min_cache_entries:
                self.save_cache(Path(cache_dir), sources)
            return result
        return self.load_seed()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def get_entry(self, word: str) -> Optional[DictionaryEntry]:
        return self._entries.get(word)

    def get_words_by_pos(self, pos: str) -> List[str]:
        return list(self._pos_index.get(pos, ()))

    def get_words_by_reading(self, reading: str) -> List[str]:
        return list(self._reading_index.get(reading, ()))

    def _frequency(self, word: str) -> float:
        entry = self._entries.get(word)
        return entry.frequency if entry is not None else 0.0

    def _pos_of(self, word: str) -> List[str]:
        entry = self._entries.get(word)
        return entry.pos if entry is not None else []

    def _level_of(self, word: str) -> Optional[str]:
        entry = self._entries.get(word)
        return entry.level if entry is not None else None

    def get_synonyms(self, word: str, max_results: int = 5) -> List[str]:
        """Current neighbours of ``word`` ranked by frequency, then edge weight."""
        neighbors: Set[str] = self.graph.neighbors(word)
        ranked = sorted(
            neighbors,
            key=lambda synonym: (-self._frequency(synonym), -self.graph.weight(word, synonym), synonym),
        )
        return ranked[:max_results]

    def get_contextual_synonym(self, word: str, pos: Optional[str] = None, level: Optional[str] = None) -> str:
        """Pick a synonym matching the requested POS and level when possible."""
        synonyms = self.get_synonyms(word, 10)
        if not synonyms:
            return word
        filtered = synonyms
        if pos:
            by_pos = [synonym for synonym in filtered if pos in self._pos_of(synonym)]
            filtered = by_pos or filtered
        if level:
            by_level = [synonym for synonym in filtered if self._level_of(synonym) == level]
            filtered = by_level or filtered
        if filtered is synonyms:
            top = synonyms[: max(1, int(len(synonyms) * 0.7))]
            return self._rng.choice(top)
        return self._rng.choice(filtered)

    def explore_semantic_graph(self, word: str, depth: int = 2, min_weight: float = 60.0, limit: int = 20) -> List[GraphNeighbor]:
        return self.graph.explore(word, depth=depth, min_weight=min_weight, limit=limit)

    def quality_of(self, word: str) -> float:
        """Stored quality, or a freshly computed bounded-sample score."""
        entry = self._entries.get(word)
        if entry is not None and entry.quality is not None:
            return entry.quality
        return score_quality(word, self.graph, self._entries, self.config.quality_sample_size)

    # ------------------------------------------------------------------
    # Strengthening
    # ------------------------------------------------------------------
    def build_enhanced_synonym_map(self) -> StrengtheningReport:
        """Densify the synonym graph and score every connected entry."""
        start = time.perf_counter()
        report = strengthen(self.graph, self._entries, self.config, self.similarity)
        self.strengthened = True
        self.last_updated = time.time()
        LOGGER.info(
            "Strengthened synonym graph in %.1fms: %d group pairs, %d similarity pairs, %d reciprocal links",
            (time.perf_counter() - start) * 1000,
            report.group_pairs,
            report.similarity_pairs,
            report.reciprocal_links,
        )
        return report

    async def build_enhanced_synonym_map_async(self) -> Optional[StrengtheningReport]:
        """Strengthen a snapshot in a worker thread, then swap it in.

        Entries and edges added while the worker runs are merged into the new
        graph. Returns ``None`` when the store was cleared or reloaded in the
        meantime, in which case the snapshot is discarded.
        """
        start = time.perf_counter()
        generation = self._generation
        graph = self.graph.copy()
        entries = {word: entry.copy() for word, entry in self._entries.items()}
        report = await asyncio.to_thread(strengthen, graph, entries, self.config, self.similarity)
        if generation != self._generation:
            LOGGER.info("Store was reloaded during strengthening; discarding the result")
            return None
        graph.merge(self.graph)
        close_and_sync(graph, self._entries.values())
        for word, snapshot in entries.items():
            live = self._entries.get(word)
            if live is not None and snapshot.quality is not None:
                live.quality = snapshot.quality
        self.graph = graph
        self.strengthened = True
        self.last_updated = time.time()
        LOGGER.info(
            "Strengthened synonym graph off-loop in %.1fms: %d group pairs, %d similarity pairs",
            (time.perf_counter() - start) * 1000,
            report.group_pairs,
            report.similarity_pairs,
        )
        return report

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def statistics(self) -> Dict[str, Any]:
        return {
            "total_entries": len(self),
            "estimated_memory_mb": round(self.estimated_memory_mb(), 3),
            "graph_nodes": len(self.graph),
            "graph_edges": self.graph.edge_count,
            "reading_index_size": len(self._reading_index),
            "pos_index_size": len(self._pos_index),
            "loaded_sources": list(self.loaded_sources),
            "strengthened": self.strengthened,
            "last_updated": self.last_updated,
        }

    def health_check(self) -> HealthReport:
        report = HealthReport()
        if not self._entries:
            report.issues.append("dictionary is empty")
            report.recommendations.append("initialize the store from a cache, a source or the seed dictionary")
        memory = self.estimated_memory_mb()
        if memory > self.config.memory_budget_mb:
            report.issues.append(f"memory estimate {memory:.2f}MB exceeds budget {self.config.memory_budget_mb:.2f}MB")
            report.recommendations.append("lower max_entries or raise memory_budget_mb")
        if self.strengthened and not self.graph.is_symmetric():
            report.issues.append("synonym graph is not symmetric")
            report.recommendations.append("rerun build_enhanced_synonym_map")
        if not self.strengthened:
            report.recommendations.append("run build_enhanced_synonym_map to densify the synonym graph")
        if report.issues:
            report.status = "warning"
        return report
