"""Synonym substitution over generated text.

Substitution works on tokenizer output. For every distinct content word the
diversifier ranks candidates from the lexical store, drops low-quality and
incompatible ones, and prefers words that were not used for the same source
word recently. A word is substituted at most once per pass and the chosen
synonym is never itself rewritten in the same pass.
"""

from __future__ import annotations

import asyncio
import random
import re
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Set, Tuple

from .collaborators import Token, Tokenizer
from .compatibility import CompatibilityPolicy, HeuristicCompatibilityPolicy
from .config import DiversifierConfig
from .learner import LearnerRegistry
from .logging import get_logger
from .store import LexicalStore
from .utils.random import make_rng

LOGGER = get_logger(__name__)

CONNECTIVE_VARIANTS: Dict[str, Tuple[str, ...]] = {
    "そして": ("それから", "さらに", "加えて"),
    "しかし": ("けれども", "ただし", "一方で"),
    "だから": ("そのため", "それゆえ"),
    "また": ("さらに", "加えて"),
}
_CONNECTIVE_RE = re.compile(r"(^|[。！？!?\n]\s*)(" + "|".join(CONNECTIVE_VARIANTS) + r")")

_FORMAL_RULES = (
    (re.compile(r"です(?=[。！？!?\s]|$)"), "でございます"),
    (re.compile(r"ください(?!ませ)"), "くださいませ"),
)
_CASUAL_RULES = (
    (re.compile(r"でございます"), "です"),
    (re.compile(r"いたします"), "します"),
    (re.compile(r"くださいませ"), "ください"),
)


@dataclass(frozen=True)
class UsageHistoryEntry:
    chosen: str
    timestamp: float


@dataclass
class DiversificationContext:
    """Per-request options for :meth:`LexicalDiversifier.diversify_response`."""

    user_id: Optional[str] = None
    politeness: str = "standard"
    vary_connectives: Optional[bool] = None


class LexicalDiversifier:
    """Quality- and compatibility-gated, anti-repetitive synonym substitution."""

    def __init__(
        self,
        store: LexicalStore,
        tokenizer: Tokenizer,
        *,
        registry: Optional[LearnerRegistry] = None,
        policy: Optional[CompatibilityPolicy] = None,
        config: Optional[DiversifierConfig] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.tokenizer = tokenizer
        self.registry = registry
        self.config = config or DiversifierConfig()
        self.policy = policy or HeuristicCompatibilityPolicy(max_tone_delta=self.config.max_tone_delta)
        self._clock = clock
        self._rng = rng or make_rng(self.config.seed)
        self._history: Dict[str, Deque[UsageHistoryEntry]] = {}
        self._background: Set[asyncio.Task[Any]] = set()
        self._strengthening_scheduled = False

    # ------------------------------------------------------------------
    # Usage history
    # ------------------------------------------------------------------
    def recent_usage(self, word: str, now: Optional[float] = None) -> List[UsageHistoryEntry]:
        now = self._clock() if now is None else now
        horizon = now - self.config.repetition_window_minutes * 60
        return [item for item in self._history.get(word, ()) if item.timestamp > horizon]

    def _record_usage(self, word: str, chosen: str, now: float) -> None:
        history = self._history.setdefault(word, deque(maxlen=self.config.history_limit))
        history.append(UsageHistoryEntry(chosen, now))

    def diversity_statistics(self) -> Dict[str, Any]:
        total = sum(len(history) for history in self._history.values())
        unique = sum(len({item.chosen for item in history}) for history in self._history.values())
        recent = {word: len(self.recent_usage(word)) for word in self._history if self.recent_usage(word)}
        return {
            "total_words": len(self._history),
            "total_substitutions": total,
            "diversity_score": unique / total if total else 0.0,
            "recent_usage": recent,
        }

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------
    def _schedule_strengthening(self) -> None:
        self._strengthening_scheduled = True
        if self.store.strengthened:
            return
        task = asyncio.create_task(self._strengthen(), name="strengthen-synonym-graph")
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _strengthen(self) -> None:
        try:
            await self.store.build_enhanced_synonym_map_async()
        except Exception:
            LOGGER.exception("Background synonym graph strengthening failed")

    async def wait_background(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel and await any background work started by this diversifier."""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()

    # ------------------------------------------------------------------
    # Candidate selection
    # ------------------------------------------------------------------
    def _is_target(self, token: Token) -> bool:
        return bool(token.surface.strip()) and token.primary_pos in self.config.target_pos

    def candidates(self, word: str, user_id: Optional[str] = None) -> List[str]:
        """Ranked substitution candidates before quality and compatibility gates."""
        ranked: List[str] = list(self.store.get_synonyms(word, self.config.max_synonyms))
        for neighbor in self.store.explore_semantic_graph(
            word, depth=self.config.graph_depth, min_weight=self.config.graph_min_weight
        ):
            if neighbor.word not in ranked and neighbor.word != word:
                ranked.append(neighbor.word)
        learner = self.registry.peek(user_id) if self.registry is not None and user_id else None
        if learner is not None:
            # Stable sort keeps store order among equally related candidates.
            ranked.sort(key=lambda candidate: -learner.get_relationship_strength(word, candidate))
        return ranked

    def _passes_quality(self, candidate: str) -> bool:
        quality = self.store.quality_of(candidate)
        if quality < self.config.quality_reject:
            return False
        if quality >= self.config.quality_accept:
            return True
        return self._rng.random() < quality / 100.0

    def choose_synonym(self, word: str, excluded: Set[str], user_id: Optional[str] = None, now: Optional[float] = None) -> Optional[str]:
        now = self._clock() if now is None else now
        qualified: List[str] = []
        for candidate in self.candidates(word, user_id):
            if candidate in excluded or candidate == word:
                continue
            if not self._passes_quality(candidate):
                continue
            verdict = self.policy.check(word, candidate, self.store)
            if not verdict.compatible:
                LOGGER.debug("Rejected %s -> %s: %s", word, candidate, verdict.reason)
                continue
            qualified.append(candidate)
        if not qualified:
            return None
        recent = self.recent_usage(word, now)
        used = {item.chosen for item in recent}
        fresh = [candidate for candidate in qualified if candidate not in used]
        if fresh:
            return fresh[0]
        last_used = {item.chosen: item.timestamp for item in recent}
        return min(qualified, key=lambda candidate: last_used.get(candidate, 0.0))

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------
    def _substitute(self, text: str, tokens: Sequence[Token], context: DiversificationContext) -> Tuple[str, int]:
        now = self._clock()
        replaced: Set[str] = set()
        replacements: Dict[str, str] = {}
        for token in tokens:
            word = token.surface
            if word in replaced or word in replacements or not self._is_target(token) or word not in self.store:
                continue
            try:
                chosen = self.choose_synonym(word, replaced, context.user_id, now)
            except Exception:
                LOGGER.exception("Candidate selection failed for %s", word)
                chosen = None
            if chosen is None:
                continue
            replacements[word] = chosen
            replaced.update((word, chosen))
            self._record_usage(word, chosen, now)
            LOGGER.debug("Substituting %s -> %s", word, chosen)
        if not replacements:
            return text, 0
        pieces: List[str] = []
        cursor = 0
        for token in tokens:
            start = text.find(token.surface, cursor)
            if start < 0 or not token.surface:
                continue
            pieces.append(text[cursor:start])
            pieces.append(replacements.get(token.surface, token.surface))
            cursor = start + len(token.surface)
        pieces.append(text[cursor:])
        return "".join(pieces), len(replacements)

    def vary_connectives(self, text: str) -> str:
        """Swap sentence-initial connectives for a variant."""

        def _replace(match: re.Match[str]) -> str:
            return match.group(1) + self._rng.choice(CONNECTIVE_VARIANTS[match.group(2)])

        return _CONNECTIVE_RE.sub(_replace, text)

    @staticmethod
    def adjust_politeness(text: str, politeness: str) -> str:
        """Rewrite copula and request forms toward ``formal`` or ``casual`` register."""
        if politeness == "formal":
            rules = _FORMAL_RULES
        elif politeness == "casual":
            rules = _CASUAL_RULES
        else:
            return text
        for pattern, replacement in rules:
            text = pattern.sub(replacement, text)
        return text

    async def diversify_response(self, text: str, context: Optional[DiversificationContext] = None) -> str:
        """Return ``text`` with compatible synonyms substituted.

        Failures never propagate: the original text is returned instead.
        """
        context = context or DiversificationContext()
        if not text or not text.strip():
            return text
        if self.config.strengthen_on_first_use and not self._strengthening_scheduled:
            self._schedule_strengthening()
        try:
            tokens = await self.tokenizer.tokenize(text)
        except Exception as exc:  # collaborator boundary
            LOGGER.warning("Tokenization failed; returning text unchanged: %s", exc)
            return text
        result, changed = self._substitute(text, tokens, context)
        vary = self.config.vary_connectives if context.vary_connectives is None else context.vary_connectives
        if vary:
            result = self.vary_connectives(result)
        result = self.adjust_politeness(result, context.politeness)
        if changed:
            LOGGER.info("Diversified %d words", changed)
        return result
