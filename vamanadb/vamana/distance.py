"""
Distance metrics for vector comparisons.

Every metric returns a scalar where smaller means closer, so the graph code
can treat them uniformly:

- l2: squared Euclidean distance
- dot: negated dot product (maximum inner product becomes minimum distance)
- cosine: 1 - cosine similarity, ranging from 0 (same direction) to 2

Each metric comes in a pairwise form and a one-to-many form. The one-to-many
form is what graph construction uses when it scores a whole candidate pool
against one vector.
"""

from dataclasses import dataclass
from typing import Callable, Dict

import numpy as np
import numpy.typing as npt

from vamanadb.errors import ConfigurationError, DimensionMismatchError

Vector = npt.NDArray[np.float32]
Matrix = npt.NDArray[np.float32]


def _check_dimensions(v1: Vector, v2: Vector) -> None:
    if v1.shape[-1] != v2.shape[-1]:
        raise DimensionMismatchError(v1.shape[-1], v2.shape[-1])


def cosine_similarity(v1: Vector, v2: Vector) -> float:
    """
    Compute cosine similarity between two vectors.

    Cosine similarity measures the cosine of the angle between two vectors.
    It ranges from -1 (opposite directions) to 1 (same direction).

    Args:
        v1: First vector (1D numpy array)
        v2: Second vector (1D numpy array)

    Returns:
        Similarity score between -1 and 1 (higher means more similar)

    Example:
        >>> v1 = np.array([1.0, 0.0, 0.0])
        >>> v2 = np.array([1.0, 0.0, 0.0])
        >>> cosine_similarity(v1, v2)
        1.0
    """
    _check_dimensions(v1, v2)
    dot_product = np.dot(v1, v2)

    norm_v1 = np.linalg.norm(v1)
    norm_v2 = np.linalg.norm(v2)

    # Zero vectors have no direction
    if norm_v1 == 0.0 or norm_v2 == 0.0:
        return 0.0

    return float(dot_product / (norm_v1 * norm_v2))


def cosine_distance(v1: Vector, v2: Vector) -> float:
    """
    Compute cosine distance between two vectors.

    Cosine distance is defined as 1 - cosine_similarity. It ranges from
    0 (identical direction) to 2 (opposite directions).

    Example:
        >>> cosine_distance(np.array([1.0, 0.0]), np.array([0.0, 1.0]))
        1.0
    """
    return 1.0 - cosine_similarity(v1, v2)


def l2_squared(v1: Vector, v2: Vector) -> float:
    """
    Compute the squared Euclidean distance between two vectors.

    The square root is skipped: it is monotonic, so neighbor ordering is the
    same and every comparison saves a sqrt.

    Example:
        >>> l2_squared(np.array([0.0, 0.0]), np.array([3.0, 4.0]))
        25.0
    """
    _check_dimensions(v1, v2)
    diff = v1 - v2
    return float(np.dot(diff, diff))


def negative_dot(v1: Vector, v2: Vector) -> float:
    """
    Compute the negated dot product of two vectors.

    Larger inner products mean closer vectors, so the sign is flipped to keep
    the "smaller is closer" contract. Unlike the other metrics the result can
    be negative.
    """
    _check_dimensions(v1, v2)
    return -float(np.dot(v1, v2))


def cosine_distance_many(v: Vector, matrix: Matrix) -> np.ndarray:
    """Cosine distance from one vector to every row of a matrix."""
    _check_dimensions(v, matrix)
    norm_v = np.linalg.norm(v)
    norms = np.linalg.norm(matrix, axis=1)
    denom = norms * norm_v
    dots = matrix @ v
    similarity = np.divide(dots, denom, out=np.zeros_like(dots, dtype=np.float64), where=denom != 0.0)
    return 1.0 - similarity


def l2_squared_many(v: Vector, matrix: Matrix) -> np.ndarray:
    """Squared Euclidean distance from one vector to every row of a matrix."""
    _check_dimensions(v, matrix)
    diff = matrix - v
    return np.einsum("ij,ij->i", diff, diff)


def negative_dot_many(v: Vector, matrix: Matrix) -> np.ndarray:
    """Negated dot product of one vector with every row of a matrix."""
    _check_dimensions(v, matrix)
    return -(matrix @ v)


@dataclass(frozen=True)
class DistanceFunction:
    """
    A pluggable distance metric.

    Calling the object compares two vectors; ``many`` compares one vector
    against the rows of a matrix and returns a 1D array of distances.
    """

    name: str
    pair: Callable[[Vector, Vector], float]
    batch: Callable[[Vector, Matrix], np.ndarray]

    def __call__(self, v1: Vector, v2: Vector) -> float:
        return self.pair(v1, v2)

    def many(self, v: Vector, matrix: Matrix) -> np.ndarray:
        if len(matrix) == 0:
            return np.empty(0, dtype=np.float64)
        return np.asarray(self.batch(v, matrix), dtype=np.float64)


L2 = DistanceFunction("l2", l2_squared, l2_squared_many)
DOT = DistanceFunction("dot", negative_dot, negative_dot_many)
COSINE = DistanceFunction("cosine", cosine_distance, cosine_distance_many)

_METRICS: Dict[str, DistanceFunction] = {f.name: f for f in (L2, DOT, COSINE)}


def get_distance_function(name: str) -> DistanceFunction:
    """
    Look up a distance function by metric name.

    Args:
        name: One of "l2", "dot", "cosine"

    Returns:
        The matching DistanceFunction

    Raises:
        ConfigurationError: If the metric is unknown
    """
    try:
        return _METRICS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown distance metric '{name}', expected one of {sorted(_METRICS)}"
        ) from None
