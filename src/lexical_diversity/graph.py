"""Weighted synonym graph and the passes that strengthen it."""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

from .config import StoreConfig
from .entries import DictionaryEntry
from .logging import get_logger
from .similarity import GlossOverlapSimilarity, SimilarityStrategy
from .utils.text import gloss_keywords

LOGGER = get_logger(__name__)

EXPLICIT_WEIGHT = 100.0


def _edge_key(left: str, right: str) -> Tuple[str, str]:
    return (left, right) if left <= right else (right, left)


@dataclass(frozen=True)
class GraphNeighbor:
    """A word reached during exploration with its weakest path weight."""

    word: str
    weight: float
    depth: int


@dataclass
class StrengtheningReport:
    group_pairs: int = 0
    similarity_pairs: int = 0
    reciprocal_links: int = 0
    scored_entries: int = 0
    processed_entries: int = 0
    total_nodes: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class SynonymGraph:
    """Adjacency sets with an undirected 0-100 weight per word pair.

    Directed edges are allowed so that raw dictionary data can be loaded
    as-is; :meth:`close_reciprocal` makes the graph symmetric.
    """

    def __init__(self) -> None:
        self._adjacency: Dict[str, Set[str]] = defaultdict(set)
        self._weights: Dict[Tuple[str, str], float] = {}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def add_directed(self, source: str, target: str, weight: float = EXPLICIT_WEIGHT) -> bool:
        if source == target:
            return False
        added = target not in self._adjacency[source]
        self._adjacency[source].add(target)
        key = _edge_key(source, target)
        self._weights[key] = max(self._weights.get(key, 0.0), weight)
        return added

    def add_edge(self, left: str, right: str, weight: float = EXPLICIT_WEIGHT) -> bool:
        """Add a symmetric edge; returns ``True`` when either direction is new."""
        forward = self.add_directed(left, right, weight)
        backward = self.add_directed(right, left, weight)
        return forward or backward

    def close_reciprocal(self) -> int:
        """Insert the reverse of every directed edge; returns links added."""
        missing = [
            (target, source)
            for source, targets in self._adjacency.items()
            for target in targets
            if source not in self._adjacency.get(target, ())
        ]
        for source, target in missing:
            self._adjacency[source].add(target)
        return len(missing)

    def clear(self) -> None:
        self._adjacency.clear()
        self._weights.clear()

    def copy(self) -> SynonymGraph:
        graph = SynonymGraph()
        for source, targets in self._adjacency.items():
            graph._adjacency[source] = set(targets)
        graph._weights = dict(self._weights)
        return graph

    def merge(self, other: SynonymGraph) -> None:
        """Add every edge of ``other``, keeping the stronger weight per pair."""
        for source, targets in other._adjacency.items():
            for target in targets:
                self.add_directed(source, target, other.weight(source, target))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def neighbors(self, word: str) -> Set[str]:
        return set(self._adjacency.get(word, ()))

    def weight(self, left: str, right: str) -> float:
        return self._weights.get(_edge_key(left, right), 0.0)

    def degree(self, word: str) -> int:
        return len(self._adjacency.get(word, ()))

    def is_symmetric(self) -> bool:
        return all(
            source in self._adjacency.get(target, ())
            for source, targets in self._adjacency.items()
            for target in targets
        )

    def __contains__(self, word: object) -> bool:
        return bool(self._adjacency.get(word)) if isinstance(word, str) else False

    def __iter__(self) -> Iterator[str]:
        return iter([word for word, targets in self._adjacency.items() if targets])

    def __len__(self) -> int:
        return sum(1 for targets in self._adjacency.values() if targets)

    @property
    def edge_count(self) -> int:
        return sum(len(targets) for targets in self._adjacency.values())

    def explore(self, word: str, *, depth: int = 2, min_weight: float = 60.0, limit: int = 20) -> List[GraphNeighbor]:
        """Breadth-first walk over edges of at least ``min_weight``.

        Each reached word carries the weakest edge weight on its path; the
        result is ordered by weight (strongest first) then depth.
        """
        best: Dict[str, GraphNeighbor] = {}
        queue: deque[Tuple[str, float, int]] = deque([(word, EXPLICIT_WEIGHT, 0)])
        while queue:
            current, path_weight, level = queue.popleft()
            if level >= depth:
                continue
            for neighbor in sorted(self._adjacency.get(current, ())):
                if neighbor == word:
                    continue
                edge = self.weight(current, neighbor)
                if edge < min_weight:
                    continue
                weight = min(path_weight, edge)
                known = best.get(neighbor)
                if known is not None and known.weight >= weight:
                    continue
                best[neighbor] = GraphNeighbor(neighbor, weight, level + 1)
                queue.append((neighbor, weight, level + 1))
        ranked = sorted(best.values(), key=lambda item: (-item.weight, item.depth, item.word))
        return ranked[:limit]

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        words = sorted(word for word, targets in self._adjacency.items() if targets)
        return {
            "size": len(words),
            "entries": [{"word": word, "synonyms": sorted(self._adjacency[word])} for word in words],
            "weights": [[left, right, weight] for (left, right), weight in sorted(self._weights.items())],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SynonymGraph:
        """Rebuild a graph from :meth:`to_dict` output.

        Raises ``TypeError`` or ``KeyError`` when ``data`` has another shape.
        """
        if not isinstance(data, Mapping):
            raise TypeError(f"expected a mapping, got {type(data).__name__}")
        graph = cls()
        for item in data.get("entries", []):
            for synonym in item.get("synonyms", []):
                if not isinstance(item["word"], str) or not isinstance(synonym, str):
                    raise TypeError("graph words must be strings")
                graph.add_directed(item["word"], synonym)
        # Explicit weights replace the default explicit weight on load.
        for left, right, weight in data.get("weights", []):
            graph._weights[_edge_key(left, right)] = float(weight)
        return graph


# ------------------------------------------------------------------
# Strengthening passes
# ------------------------------------------------------------------
def group_by_keywords(
    graph: SynonymGraph,
    entries: Sequence[DictionaryEntry],
    config: StoreConfig,
) -> int:
    """Fully connect words whose leading glosses share a keyword."""
    groups: Dict[str, List[str]] = defaultdict(list)
    for entry in entries[: config.max_group_entries]:
        for keyword in gloss_keywords(entry.definitions):
            groups[keyword].append(entry.word)
    pairs = 0
    for words in groups.values():
        if not config.group_min_size <= len(words) <= config.group_max_size:
            continue
        for index, left in enumerate(words):
            for right in words[index + 1 :]:
                if graph.add_edge(left, right, config.group_weight):
                    pairs += 1
    return pairs


def representative_sample(entries: Sequence[DictionaryEntry], size: int) -> List[DictionaryEntry]:
    """Evenly stepped sample from the more frequent half of ``entries``."""
    if len(entries) <= size:
        return list(entries)
    ranked = sorted(entries, key=lambda entry: entry.frequency, reverse=True)
    top = ranked[: len(ranked) // 2]
    step = max(1, len(top) // size)
    return top[::step][:size]


def link_similar(
    graph: SynonymGraph,
    entries: Sequence[DictionaryEntry],
    config: StoreConfig,
    similarity: Optional[SimilarityStrategy] = None,
) -> int:
    """Link POS-compatible neighbours in a frequency sample whose glosses overlap."""
    similarity = similarity or GlossOverlapSimilarity(config.gloss_prefix_tokens)
    sample = representative_sample(entries, config.sample_size)
    pairs = 0
    for index, left in enumerate(sample):
        left_pos = set(left.pos)
        for right in sample[index + 1 : index + 1 + config.neighbor_window]:
            if not left_pos.intersection(right.pos):
                continue
            score = similarity(left, right)
            if score > config.similarity_threshold and graph.add_edge(left.word, right.word, score * 100):
                pairs += 1
    return pairs


def score_quality(
    word: str,
    graph: SynonymGraph,
    entries: Mapping[str, DictionaryEntry],
    sample_size: int = 5,
) -> float:
    """Bounded-sample quality in ``[0, 100]``.

    Edge count contributes up to 50, POS agreement with the first
    ``sample_size`` neighbours up to 30 and frequency balance up to 20.
    """
    entry = entries.get(word)
    neighbors = sorted(graph.neighbors(word))
    if entry is None or not neighbors:
        return 0.0
    score = min(len(neighbors) * 10.0, 50.0)
    sampled = neighbors[:sample_size]
    pos_matches = 0
    balance = 0.0
    for neighbor in sampled:
        other = entries.get(neighbor)
        if other is None:
            continue
        if set(other.pos).intersection(entry.pos):
            pos_matches += 1
        balance += max(0.0, 20.0 - abs(entry.frequency - other.frequency))
    score += pos_matches / len(sampled) * 30.0
    score += balance / len(sampled)
    return max(0.0, min(100.0, score))


def strengthen(
    graph: SynonymGraph,
    entries: Mapping[str, DictionaryEntry],
    config: StoreConfig,
    similarity: Optional[SimilarityStrategy] = None,
) -> StrengtheningReport:
    """Run grouping, sampled similarity, reciprocal closure and quality scoring."""
    processed = list(entries.values())[: config.max_process_entries]
    report = StrengtheningReport(processed_entries=len(processed))
    report.group_pairs = group_by_keywords(graph, processed, config)
    LOGGER.debug("Keyword grouping linked %d pairs", report.group_pairs)
    report.similarity_pairs = link_similar(graph, processed, config, similarity)
    LOGGER.debug("Sampled similarity linked %d pairs", report.similarity_pairs)
    report.reciprocal_links = close_and_sync(graph, entries.values())
    for word in graph:
        entry = entries.get(word)
        if entry is None:
            continue
        entry.quality = score_quality(word, graph, entries, config.quality_sample_size)
        report.scored_entries += 1
    report.total_nodes = len(graph)
    return report


def close_and_sync(graph: SynonymGraph, entries: Iterable[DictionaryEntry]) -> int:
    """Make ``graph`` symmetric and mirror new neighbours into entry synonym lists."""
    added = graph.close_reciprocal()
    for entry in entries:
        for neighbor in sorted(graph.neighbors(entry.word)):
            entry.add_synonym(neighbor)
    return added
