"""Interfaces to the services the learner and diversifier depend on.

The tokenizer, context predictor and relation store are owned by the host
application. Each is described by a small :class:`typing.Protocol`; the
module also ships default adapters (janome for tokenization and a JSON file
for relation persistence).
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from janome.tokenizer import Tokenizer as _JanomeBackend

from .exceptions import PersistenceError
from .logging import get_logger
from .utils.io import load_json, save_json

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class Token:
    """A surface form with its comma-separated part-of-speech string."""

    surface: str
    part_of_speech: str

    @property
    def primary_pos(self) -> str:
        return self.part_of_speech.split(",", 1)[0]


@dataclass(frozen=True)
class ContextPrediction:
    predicted_category: Optional[str] = None
    confidence: float = 0.0


class Tokenizer(Protocol):
    async def tokenize(self, text: str) -> List[Token]:  # pragma: no cover - protocol
        ...


class ContextPredictor(Protocol):
    async def predict_context(self, text: str) -> ContextPrediction:  # pragma: no cover - protocol
        ...


class RelationStore(Protocol):
    async def get_user_specific_relations(self, user_id: str) -> Optional[Dict[str, Any]]:  # pragma: no cover
        ...

    async def save_user_specific_relations(self, user_id: str, snapshot: Dict[str, Any]) -> None:  # pragma: no cover
        ...


class JanomeTokenizer:
    """Morphological tokenizer backed by janome.

    The janome dictionary takes a moment to load, so the backend is built on
    first use. Async calls tokenize in a worker thread.
    """

    def __init__(self) -> None:
        self._backend: Optional[_JanomeBackend] = None

    def _tokenizer(self) -> _JanomeBackend:
        if self._backend is None:
            self._backend = _JanomeBackend()
        return self._backend

    def tokenize_sync(self, text: str) -> List[Token]:
        return [Token(token.surface, token.part_of_speech) for token in self._tokenizer().tokenize(text)]

    async def tokenize(self, text: str) -> List[Token]:
        return await asyncio.to_thread(self.tokenize_sync, text)


class NullContextPredictor:
    """Predictor used when no context model is available."""

    async def predict_context(self, text: str) -> ContextPrediction:
        return ContextPrediction()


class JsonRelationStore:
    """Keeps every user's relation snapshot in one JSON document.

    Users are stored under ``user_<id>`` keys. Writes are serialized with an
    :class:`asyncio.Lock` so concurrent learners cannot interleave them.
    """

    FILENAME = "user-relations.json"

    def __init__(self, directory: Path) -> None:
        self.path = Path(directory) / self.FILENAME
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(user_id: str) -> str:
        return f"user_{user_id}"

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = load_json(self.path)
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Cannot read relation store {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"Relation store {self.path} does not hold a mapping")
        return data

    async def get_user_specific_relations(self, user_id: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            return self._read_all().get(self._key(user_id))

    async def save_user_specific_relations(self, user_id: str, snapshot: Dict[str, Any]) -> None:
        async with self._lock:
            data = self._read_all()
            data[self._key(user_id)] = snapshot
            try:
                save_json(self.path, data)
            except (OSError, TypeError, ValueError) as exc:
                raise PersistenceError(f"Cannot write relation store {self.path}: {exc}") from exc
        LOGGER.debug("Saved relations for %s to %s", user_id, self.path)
