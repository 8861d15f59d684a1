"""Lexical diversity toolkit: dictionary store, relationship learner and diversifier."""

from .collaborators import ContextPrediction, JanomeTokenizer, JsonRelationStore, NullContextPredictor, Token
from .compatibility import CompatibilityVerdict, HeuristicCompatibilityPolicy
from .config import DiversifierConfig, LearnerConfig, LexicalConfig, StoreConfig, load_config
from .diversifier import DiversificationContext, LexicalDiversifier
from .entries import DictionaryEntry
from .exceptions import AnalysisError, LexicalError, LoadError, PersistenceError
from .learner import LearnerRegistry, RelationshipLearner
from .scheduler import AutosaveScheduler
from .store import LexicalStore, LoadResult

__all__ = [
    "AnalysisError",
    "AutosaveScheduler",
    "CompatibilityVerdict",
    "ContextPrediction",
    "DictionaryEntry",
    "DiversificationContext",
    "DiversifierConfig",
    "HeuristicCompatibilityPolicy",
    "JanomeTokenizer",
    "JsonRelationStore",
    "LearnerConfig",
    "LearnerRegistry",
    "LexicalConfig",
    "LexicalDiversifier",
    "LexicalError",
    "LexicalStore",
    "LoadError",
    "LoadResult",
    "NullContextPredictor",
    "PersistenceError",
    "RelationshipLearner",
    "StoreConfig",
    "Token",
    "load_config",
]

__version__ = "0.1.0"
