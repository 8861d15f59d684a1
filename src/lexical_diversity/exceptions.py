"""Exception hierarchy for the lexical diversity package."""

from __future__ import annotations


class LexicalError(Exception):
    """Base exception for lexical store, learner and diversifier errors."""


class LoadError(LexicalError):
    """A dictionary source or cache could not be read or failed validation."""


class PersistenceError(LexicalError):
    """Learned relations could not be saved or restored."""


class AnalysisError(LexicalError):
    """Tokenization or context prediction failed for a single input."""
