"""Per-user online learning of term relations from conversation turns.

Each conversation turn updates three tables:

``co_occurrence``
    order-independent pair counts with a few context snippets;
``term_frequency``
    how often each keyword was extracted;
``user_relations``
    directed, strength-weighted relations promoted from the other two.

A pair is promoted only after it has co-occurred ``min_co_occurrence`` times
and its aggregated strength reaches ``strength_threshold``. Promotion blends
into existing strengths with an exponential moving average, so strengths
always stay inside ``[0, 1]``. Unused relations fade through
:meth:`RelationshipLearner.apply_decay`.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import numpy as np

from .association import ChiSquareResult, chi_square, pmi
from .collaborators import ContextPrediction, ContextPredictor, JanomeTokenizer, NullContextPredictor, RelationStore, Tokenizer
from .config import LearnerConfig
from .exceptions import AnalysisError, PersistenceError
from .logging import get_logger
from .scheduler import AutosaveScheduler
from .similarity import cosine_similarity
from .utils.text import find_occurrences, min_distance, snippet

LOGGER = get_logger(__name__)

OPEN_CLASS_POS = ("名詞", "動詞", "形容詞", "副詞")
STOP_WORDS = frozenset(
    {
        "こと", "もの", "ため", "よう", "そう", "これ", "それ", "あれ", "どれ", "できる", "する", "なる",
        "いる", "ある", "ない", "いう", "見る", "今日", "今", "とき", "時", "日", "年", "月", "分", "秒",
    }
)
_SECONDS_PER_DAY = 24 * 60 * 60
_CONTEXT_OBSERVATIONS = 20

HistoryTurn = Union[str, Mapping[str, Any]]


def pair_key(left: str, right: str) -> str:
    """Order-independent key for a co-occurrence pair."""
    return "|".join(sorted((left, right)))


@dataclass
class UserRelation:
    """A directed, learned relation from one term to ``term``."""

    term: str
    strength: float
    count: int = 1
    first_seen: float = 0.0
    last_updated: float = 0.0
    last_decayed: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "term": self.term,
            "strength": self.strength,
            "count": self.count,
            "firstSeen": self.first_seen,
            "lastUpdated": self.last_updated,
            "lastDecayed": self.last_decayed,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UserRelation:
        last_updated = float(data.get("lastUpdated", 0.0))
        return cls(
            term=data["term"],
            strength=max(0.0, min(1.0, float(data.get("strength", 0.0)))),
            count=int(data.get("count", 1)),
            first_seen=float(data.get("firstSeen", last_updated)),
            last_updated=last_updated,
            last_decayed=float(data.get("lastDecayed", last_updated)),
        )


@dataclass
class CoOccurrencePair:
    term1: str
    term2: str
    count: int = 0
    contexts: List[str] = field(default_factory=list)

    def observe(self, context: str, max_contexts: int) -> None:
        self.count += 1
        if context and context not in self.contexts and len(self.contexts) < max_contexts:
            self.contexts.append(context)

    def to_dict(self) -> Dict[str, Any]:
        return {"term1": self.term1, "term2": self.term2, "count": self.count, "contexts": list(self.contexts)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CoOccurrencePair:
        return cls(
            term1=data["term1"],
            term2=data["term2"],
            count=int(data.get("count", 0)),
            contexts=list(data.get("contexts", [])),
        )


@dataclass
class LearningOutcome:
    """Summary of one :meth:`RelationshipLearner.learn_from_conversation` call."""

    input_keywords: int = 0
    response_keywords: int = 0
    pairs_observed: int = 0
    relations_promoted: int = 0
    saved: bool = False
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def co_occurrence_strength(pair: CoOccurrencePair) -> float:
    """Frequency plus context-diversity score of a pair, in ``[0, 1]``."""
    return min(pair.count / 10.0, 1.0) * 0.7 + min(len(pair.contexts) / 3.0, 1.0) * 0.3


def _turn_text(turn: HistoryTurn) -> str:
    if isinstance(turn, str):
        return turn
    for key in ("content", "message", "text"):
        value = turn.get(key)
        if isinstance(value, str):
            return value
    return ""


class RelationshipLearner:
    """Learns which terms a particular user associates with each other."""

    def __init__(
        self,
        user_id: str = "default",
        *,
        tokenizer: Optional[Tokenizer] = None,
        predictor: Optional[ContextPredictor] = None,
        relation_store: Optional[RelationStore] = None,
        config: Optional[LearnerConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.user_id = user_id
        self.tokenizer = tokenizer or JanomeTokenizer()
        self.predictor = predictor or NullContextPredictor()
        self.relation_store = relation_store
        self._explicit_config = config is not None
        self.config = config or LearnerConfig()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._initialized = False
        self.user_relations: Dict[str, List[UserRelation]] = {}
        self.co_occurrence: Dict[str, CoOccurrencePair] = {}
        self.term_frequency: Dict[str, int] = {}
        self._context_strengths: Dict[Tuple[str, str], List[float]] = {}
        self._semantic_cache: Dict[Tuple[str, str], float] = {}
        self.last_saved: Optional[float] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def initialize(self) -> None:
        """Restore the persisted snapshot for this user, once."""
        if self._initialized:
            return
        self._initialized = True
        if self.relation_store is None:
            return
        try:
            snapshot = await self.relation_store.get_user_specific_relations(self.user_id)
        except Exception as exc:  # collaborator boundary
            LOGGER.warning("Could not load relations for %s: %s", self.user_id, exc)
            return
        if snapshot:
            self.restore(snapshot)
            LOGGER.info("Restored %d related terms for %s", len(self.user_relations), self.user_id)

    def restore(self, snapshot: Mapping[str, Any]) -> None:
        self.user_relations = {
            term: [UserRelation.from_dict(item) for item in relations]
            for term, relations in (snapshot.get("userRelations") or {}).items()
            if relations
        }
        self.co_occurrence = {
            key: CoOccurrencePair.from_dict(value) for key, value in (snapshot.get("coOccurrenceData") or {}).items()
        }
        self.term_frequency = {term: int(count) for term, count in (snapshot.get("termFrequency") or {}).items()}
        self.last_saved = snapshot.get("lastSaved")
        stored_config = snapshot.get("learningConfig") or {}
        if stored_config and not self._explicit_config:
            known = {item.name for item in fields(LearnerConfig)}
            merged = {**asdict(self.config), **{k: v for k, v in stored_config.items() if k in known}}
            self.config = LearnerConfig(**merged)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "userRelations": {term: [item.to_dict() for item in relations] for term, relations in self.user_relations.items()},
            "coOccurrenceData": {key: pair.to_dict() for key, pair in self.co_occurrence.items()},
            "termFrequency": dict(self.term_frequency),
            "learningConfig": asdict(self.config),
            "lastSaved": self.last_saved,
        }

    async def save(self) -> bool:
        """Persist the current snapshot; failures are logged and state is kept."""
        if self.relation_store is None:
            return False
        saved_at = self._clock()
        snapshot = self.snapshot()
        snapshot["lastSaved"] = saved_at
        try:
            await self.relation_store.save_user_specific_relations(self.user_id, snapshot)
        except PersistenceError as exc:
            LOGGER.warning("Saving relations for %s failed: %s", self.user_id, exc)
            return False
        except Exception as exc:  # collaborator boundary
            LOGGER.warning("Relation store raised while saving %s: %s", self.user_id, exc)
            return False
        self.last_saved = saved_at
        return True

    # ------------------------------------------------------------------
    # Keyword extraction
    # ------------------------------------------------------------------
    async def extract_keywords(self, text: str) -> List[str]:
        """Open-class, non-stop-word surfaces of ``text`` in order of appearance."""
        if not text or not text.strip():
            return []
        try:
            tokens = await self.tokenizer.tokenize(text)
        except Exception as exc:
            raise AnalysisError(f"Tokenization failed: {exc}") from exc
        keywords: List[str] = []
        for token in tokens:
            surface = token.surface.strip()
            if not surface or surface in STOP_WORDS or surface in keywords:
                continue
            if token.primary_pos not in OPEN_CLASS_POS:
                continue
            keywords.append(surface)
            if len(keywords) >= self.config.max_keywords:
                break
        return keywords

    async def _keywords_or_empty(self, text: str, outcome: LearningOutcome) -> List[str]:
        try:
            return await self.extract_keywords(text)
        except AnalysisError as exc:
            LOGGER.warning("Keyword extraction failed for %s: %s", self.user_id, exc)
            outcome.errors.append(str(exc))
            return []

    # ------------------------------------------------------------------
    # Strength signals
    # ------------------------------------------------------------------
    def proximity_strength(self, term1: str, term2: str, text1: str, text2: str) -> float:
        distance = min_distance(find_occurrences(text1, term1), find_occurrences(text2, term2))
        if distance == float("inf"):
            return 0.0
        return max(0.0, 1.0 - distance / self.config.proximity_window)

    async def _predict(self, text: str) -> ContextPrediction:
        try:
            return await self.predictor.predict_context(text)
        except Exception as exc:
            raise AnalysisError(f"Context prediction failed: {exc}") from exc

    async def _pattern_categories(self, term: str) -> Set[Optional[str]]:
        # An absent category is still a pattern: two uncategorised terms agree.
        try:
            prediction = await self._predict(f"{term}について {term}の実装 {term}を使用")
        except AnalysisError:
            return set()
        return {prediction.predicted_category}

    async def semantic_similarity(self, term1: str, term2: str) -> float:
        """Agreement of the context predictor about two terms, in ``[0, 1]``."""
        key = (term1, term2)
        if key in self._semantic_cache:
            return self._semantic_cache[key]
        first = await self._predict(term1)
        second = await self._predict(term2)
        score = 0.0
        if first.predicted_category == second.predicted_category:
            score = (first.confidence + second.confidence) / 2 * 0.8
        elif min(first.confidence, second.confidence) < 0.5:
            score = 0.2
        patterns1 = await self._pattern_categories(term1)
        patterns2 = await self._pattern_categories(term2)
        union = patterns1 | patterns2
        if union:
            score = max(score, len(patterns1 & patterns2) / len(union))
        score = max(0.0, min(1.0, score))
        self._semantic_cache[key] = score
        return score

    def _relation_vector(self, term: str, vocabulary: Sequence[str]) -> np.ndarray:
        strengths = {relation.term: relation.strength for relation in self.user_relations.get(term, [])}
        return np.array([strengths.get(other, 0.0) for other in vocabulary], dtype=float)

    def cosine_strength(self, term1: str, term2: str) -> float:
        vocabulary = sorted(
            set(self.user_relations)
            | {relation.term for relations in self.user_relations.values() for relation in relations}
        )
        if not vocabulary:
            return 0.0
        return max(0.0, cosine_similarity(self._relation_vector(term1, vocabulary), self._relation_vector(term2, vocabulary)))

    async def contextual_strength(self, term1: str, term2: str, text1: str, text2: str) -> float:
        """Weighted blend of proximity, semantic agreement and relation-vector cosine."""
        config = self.config
        try:
            semantic = await self.semantic_similarity(term1, term2)
        except AnalysisError as exc:
            LOGGER.debug("Semantic similarity unavailable for %s/%s: %s", term1, term2, exc)
            semantic = 0.0
        strength = (
            self.proximity_strength(term1, term2, text1, text2) * config.proximity_weight
            + semantic * config.semantic_weight
            + self.cosine_strength(term1, term2) * config.cosine_weight
        )
        return min(strength, 1.0)

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------
    def _observe_pair(self, left: str, right: str, context: str) -> Optional[str]:
        if left == right:
            return None
        key = pair_key(left, right)
        pair = self.co_occurrence.get(key)
        if pair is None:
            first, second = sorted((left, right))
            pair = self.co_occurrence[key] = CoOccurrencePair(first, second)
        pair.observe(context, self.config.max_contexts)
        return key

    def _upsert_relation(self, term: str, related: str, observed: float, now: float) -> UserRelation:
        observed = max(0.0, min(1.0, observed))
        relations = self.user_relations.setdefault(term, [])
        for relation in relations:
            if relation.term == related:
                rate = self.config.learning_rate
                relation.strength = max(0.0, min(1.0, relation.strength * (1 - rate) + observed * rate))
                relation.count += 1
                relation.last_updated = now
                relation.last_decayed = now
                break
        else:
            relation = UserRelation(related, observed, 1, now, now, now)
            relations.append(relation)
        relations.sort(key=lambda item: item.strength, reverse=True)
        del relations[self.config.max_relations_per_term :]
        return relation

    def _aggregated_strength(self, pair: CoOccurrencePair) -> float:
        contextual = [
            sum(values) / len(values)
            for values in (
                self._context_strengths.get((pair.term1, pair.term2)),
                self._context_strengths.get((pair.term2, pair.term1)),
            )
            if values
        ]
        return max([co_occurrence_strength(pair), *contextual])

    async def learn_from_conversation(
        self,
        input_text: str,
        history: Iterable[HistoryTurn] = (),
        response: str = "",
    ) -> LearningOutcome:
        """Update co-occurrence, contextual strengths and promoted relations.

        Calls for the same learner are serialized. The call never raises;
        failures are logged and recorded on the returned outcome.
        """
        outcome = LearningOutcome()
        async with self._lock:
            await self.initialize()
            try:
                await self._learn(input_text, list(history), response, outcome)
            except Exception as exc:
                LOGGER.exception("Learning failed for %s", self.user_id)
                outcome.errors.append(str(exc))
            outcome.saved = await self.save()
        return outcome

    async def _learn(self, input_text: str, history: List[HistoryTurn], response: str, outcome: LearningOutcome) -> None:
        input_keywords = await self._keywords_or_empty(input_text, outcome)
        response_keywords = await self._keywords_or_empty(response, outcome)
        outcome.input_keywords = len(input_keywords)
        outcome.response_keywords = len(response_keywords)
        history_keywords: List[List[str]] = []
        for turn in history:
            history_keywords.append(await self._keywords_or_empty(_turn_text(turn), outcome))
        for keyword in [*input_keywords, *response_keywords, *(kw for turn in history_keywords for kw in turn)]:
            self.term_frequency[keyword] = self.term_frequency.get(keyword, 0) + 1

        context = snippet(f"{input_text} {response}")
        touched: Set[str] = set()
        for left in input_keywords:
            for right in response_keywords:
                key = self._observe_pair(left, right, context)
                if key is not None:
                    touched.add(key)
            for turn_keywords in history_keywords:
                for right in turn_keywords:
                    key = self._observe_pair(left, right, context)
                    if key is not None:
                        touched.add(key)
        outcome.pairs_observed = len(touched)

        for left in input_keywords:
            for right in response_keywords:
                if left == right:
                    continue
                strength = await self.contextual_strength(left, right, input_text, response)
                observations = self._context_strengths.setdefault((left, right), [])
                observations.append(strength)
                del observations[:-_CONTEXT_OBSERVATIONS]

        now = self._clock()
        for key in sorted(touched):
            pair = self.co_occurrence[key]
            if pair.count < self.config.min_co_occurrence:
                continue
            strength = self._aggregated_strength(pair)
            if strength < self.config.strength_threshold:
                continue
            self._upsert_relation(pair.term1, pair.term2, strength, now)
            self._upsert_relation(pair.term2, pair.term1, strength, now)
            outcome.relations_promoted += 2
        if outcome.relations_promoted:
            LOGGER.debug("Promoted %d relations for %s", outcome.relations_promoted, self.user_id)

    async def learn_from_feedback(self, term: str, rating: float, context_text: str) -> int:
        """Nudge ``term``'s relations to the context keywords by a 0-1 rating.

        Returns the number of relations touched; never raises.
        """
        async with self._lock:
            await self.initialize()
            rating = max(0.0, min(1.0, float(rating)))
            adjustment = (rating - 0.5) * self.config.learning_rate * 2
            outcome = LearningOutcome()
            keywords = await self._keywords_or_empty(context_text, outcome)
            now = self._clock()
            touched = 0
            for keyword in keywords:
                if keyword == term:
                    continue
                observed = max(0.0, min(1.0, self.get_relationship_strength(term, keyword) + adjustment))
                if observed < self.config.prune_threshold and self.get_relationship_strength(term, keyword) == 0.0:
                    continue
                self._upsert_relation(term, keyword, observed, now)
                touched += 1
            if touched:
                await self.save()
            return touched

    def apply_decay(self, now: Optional[float] = None) -> int:
        """Fade relations by ``decay_factor`` per elapsed day and prune weak ones.

        Returns the number of relations removed.
        """
        now = self._clock() if now is None else now
        removed = 0
        for term in list(self.user_relations):
            kept: List[UserRelation] = []
            for relation in self.user_relations[term]:
                days = (now - relation.last_decayed) / _SECONDS_PER_DAY
                if days > 0:
                    relation.strength *= self.config.decay_factor**days
                    relation.last_decayed = now
                if relation.strength < self.config.prune_threshold:
                    removed += 1
                else:
                    kept.append(relation)
            if kept:
                self.user_relations[term] = kept
            else:
                del self.user_relations[term]
        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def relations_for(self, term: str) -> List[UserRelation]:
        return list(self.user_relations.get(term, []))

    def get_user_relations(self, term: str) -> List[str]:
        """Related terms at or above the promotion threshold, strongest first."""
        return [
            relation.term
            for relation in self.user_relations.get(term, [])
            if relation.strength >= self.config.strength_threshold
        ]

    def get_relationship_strength(self, term1: str, term2: str) -> float:
        for relation in self.user_relations.get(term1, []):
            if relation.term == term2:
                return relation.strength
        return 0.0

    def _marginals(self, term1: str, term2: str) -> Tuple[int, int, int, int]:
        joint = left = right = total = 0
        for pair in self.co_occurrence.values():
            total += pair.count
            members = (pair.term1, pair.term2)
            if term1 in members:
                left += pair.count
            if term2 in members:
                right += pair.count
            if term1 in members and term2 in members:
                joint = pair.count
        return joint, left, right, total

    def pmi(self, term1: str, term2: str) -> float:
        return pmi(*self._marginals(term1, term2))

    def chi_square(self, term1: str, term2: str) -> ChiSquareResult:
        return chi_square(*self._marginals(term1, term2))

    def significant_pairs(self, min_count: Optional[int] = None) -> List[Tuple[str, str, ChiSquareResult]]:
        threshold = self.config.min_co_occurrence if min_count is None else min_count
        results = []
        for pair in self.co_occurrence.values():
            if pair.count < threshold:
                continue
            result = self.chi_square(pair.term1, pair.term2)
            if result.significant:
                results.append((pair.term1, pair.term2, result))
        return sorted(results, key=lambda item: item[2].statistic, reverse=True)

    def learning_stats(self) -> Dict[str, Any]:
        strengths = [relation.strength for relations in self.user_relations.values() for relation in relations]
        return {
            "user_id": self.user_id,
            "total_terms": len(self.user_relations),
            "total_relations": len(strengths),
            "average_strength": float(np.mean(strengths)) if strengths else 0.0,
            "co_occurrence_pairs": len(self.co_occurrence),
            "tracked_terms": len(self.term_frequency),
            "last_saved": self.last_saved,
        }


class LearnerRegistry:
    """Explicitly owned per-user learners.

    ``factory`` builds an uninitialised learner for a user id; the registry
    initialises it once and optionally attaches an :class:`AutosaveScheduler`.
    """

    def __init__(
        self,
        factory: Callable[[str], RelationshipLearner],
        *,
        autosave: bool = False,
    ) -> None:
        self._factory = factory
        self._autosave = autosave
        self._learners: Dict[str, RelationshipLearner] = {}
        self._schedulers: Dict[str, AutosaveScheduler] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._learners

    def __len__(self) -> int:
        return len(self._learners)

    def peek(self, user_id: str) -> Optional[RelationshipLearner]:
        return self._learners.get(user_id)

    async def get(self, user_id: str) -> RelationshipLearner:
        async with self._lock:
            learner = self._learners.get(user_id)
            if learner is None:
                learner = self._factory(user_id)
                await learner.initialize()
                self._learners[user_id] = learner
                if self._autosave:
                    scheduler = AutosaveScheduler(learner, learner.config.autosave_seconds)
                    scheduler.start()
                    self._schedulers[user_id] = scheduler
            return learner

    async def close(self) -> None:
        """Stop autosave tasks and save every learner one last time."""
        schedulers = list(self._schedulers.values())
        self._schedulers.clear()
        for scheduler in schedulers:
            await scheduler.stop()
        for learner in self._learners.values():
            await learner.save()
