"""
Exception hierarchy for VamanaDB.

All errors raised by the index derive from VamanaError. Configuration and
precondition errors also derive from the matching builtin (ValueError,
KeyError, RuntimeError) so callers that only know the builtins still catch them.
"""

from typing import Optional


class VamanaError(Exception):
    """Base class for all VamanaDB errors."""


class ConfigurationError(VamanaError, ValueError):
    """Invalid construction parameters (R, L, alpha, metric, empty vector set)."""


class DimensionMismatchError(ConfigurationError):
    """Two vectors (or a vector and an index) disagree on dimensionality."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Vector dimension {actual} doesn't match expected dimension {expected}")
        self.expected = expected
        self.actual = actual


class VectorNotFoundError(VamanaError, KeyError):
    """Raised by a vector source when it has no vector for an ID."""

    def __init__(self, vector_id: int) -> None:
        super().__init__(vector_id)
        self.vector_id = vector_id

    def __str__(self) -> str:
        return f"No vector stored for id {self.vector_id}"


class FetchError(VamanaError):
    """A vector source failed while the index was fetching a vector.

    The original source exception is chained as ``__cause__``.
    """

    def __init__(self, vector_id: Optional[int], message: Optional[str] = None) -> None:
        if message is None:
            message = f"Failed to fetch vector {vector_id}"
        super().__init__(message)
        self.vector_id = vector_id


class NotTrainedError(VamanaError, RuntimeError):
    """Quantizer used before any training data was observed."""


class ConstructionError(VamanaError):
    """Graph construction could not establish a valid entry point."""


class CorruptIndexError(VamanaError):
    """A saved index is missing, partial or fails validation."""
