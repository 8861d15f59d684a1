"""Diagnostics suite for the lexical store and relationship learner."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, TextIO

from rich.console import Console
from rich.table import Table

from .learner import RelationshipLearner
from .logging import get_logger
from .store import LexicalStore

LOGGER = get_logger(__name__)

DEFAULT_PROBES = ("嬉しい", "助ける", "とても")


@dataclass
class SynonymProbe:
    word: str
    synonyms: Sequence[str]
    quality: float


@dataclass
class AssociationStat:
    term1: str
    term2: str
    count: int
    pmi: float
    chi_square: float
    significant: bool


@dataclass
class DiagnosticsResult:
    store: Dict[str, Any] = field(default_factory=dict)
    health: Dict[str, Any] = field(default_factory=dict)
    probes: List[SynonymProbe] = field(default_factory=list)
    learner: Dict[str, Any] = field(default_factory=dict)
    associations: List[AssociationStat] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class DiagnosticsSuite:
    """Collects store statistics, synonym probes and association statistics."""

    def __init__(
        self,
        store: LexicalStore,
        learner: Optional[RelationshipLearner] = None,
        probes: Sequence[str] = DEFAULT_PROBES,
        top_pairs: int = 10,
    ) -> None:
        self.store = store
        self.learner = learner
        self.probe_words = list(probes)
        self.top_pairs = top_pairs

    def run(self) -> DiagnosticsResult:
        result = DiagnosticsResult(
            store=self.store.statistics(),
            health=self.store.health_check().to_dict(),
            probes=self._probe_synonyms(),
        )
        if self.learner is not None:
            result.learner = self.learner.learning_stats()
            result.associations = self._probe_associations()
        LOGGER.debug("Diagnostics collected for %d probes", len(result.probes))
        return result

    def _probe_synonyms(self) -> List[SynonymProbe]:
        return [
            SynonymProbe(word, self.store.get_synonyms(word), self.store.quality_of(word))
            for word in self.probe_words
            if word in self.store
        ]

    def _probe_associations(self) -> List[AssociationStat]:
        assert self.learner is not None
        pairs = sorted(self.learner.co_occurrence.values(), key=lambda pair: pair.count, reverse=True)
        stats: List[AssociationStat] = []
        for pair in pairs[: self.top_pairs]:
            chi = self.learner.chi_square(pair.term1, pair.term2)
            stats.append(
                AssociationStat(
                    term1=pair.term1,
                    term2=pair.term2,
                    count=pair.count,
                    pmi=self.learner.pmi(pair.term1, pair.term2),
                    chi_square=chi.statistic,
                    significant=chi.significant,
                )
            )
        return stats


def render_diagnostics(result: DiagnosticsResult, stream: Optional[TextIO] = None) -> None:
    """Pretty-print ``result`` as a rich table."""
    console = Console(file=stream)
    table = Table(title="Lexical Diversity Diagnostics")
    table.add_column("Probe")
    table.add_column("Details")
    table.add_row("Entries", str(result.store.get("total_entries", 0)))
    table.add_row("Memory", f"{result.store.get('estimated_memory_mb', 0.0):.3f} MB")
    table.add_row("Graph", f"{result.store.get('graph_nodes', 0)} nodes / {result.store.get('graph_edges', 0)} edges")
    status = "✅" if result.health.get("status") == "healthy" else "⚠️"
    table.add_row("Health", f"{status} {result.health.get('status')} {'; '.join(result.health.get('issues', []))}")
    for probe in result.probes:
        table.add_row("Synonyms", f"{probe.word} → {', '.join(probe.synonyms) or '-'} (quality {probe.quality:.0f})")
    if result.learner:
        table.add_row(
            "Learner",
            f"{result.learner.get('total_relations', 0)} relations over {result.learner.get('total_terms', 0)} terms",
        )
    for stat in result.associations:
        marker = "*" if stat.significant else ""
        table.add_row(
            "Association",
            f"{stat.term1}/{stat.term2} n={stat.count} pmi={stat.pmi:.2f} χ²={stat.chi_square:.2f}{marker}",
        )
    console.print(table)


def run_all_diagnostics(
    store: Optional[LexicalStore] = None,
    learner: Optional[RelationshipLearner] = None,
    stream: Optional[TextIO] = None,
) -> DiagnosticsResult:
    """Run diagnostics and optionally pretty-print to *stream*."""

    if store is None:
        store = LexicalStore()
        store.load_seed()
    result = DiagnosticsSuite(store, learner).run()
    if stream is not None:
        render_diagnostics(result, stream)
    return result
