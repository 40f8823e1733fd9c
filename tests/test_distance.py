"""
Tests for distance metrics.

These tests verify that our distance functions correctly measure closeness between vectors.
We test with known vector pairs to ensure the math is correct, and check that
the pairwise and one-to-many forms agree.
"""

import numpy as np
import pytest
from vamanadb.errors import ConfigurationError, DimensionMismatchError
from vamanadb.vamana.distance import (
    COSINE,
    DOT,
    L2,
    cosine_distance,
    cosine_similarity,
    get_distance_function,
    l2_squared,
    negative_dot,
)


def test_cosine_similarity_identical_vectors():
    """Identical vectors should have similarity of 1.0"""
    v1 = np.array([1.0, 2.0, 3.0], dtype=np.float32)
    v2 = np.array([1.0, 2.0, 3.0], dtype=np.float32)

    assert np.isclose(cosine_similarity(v1, v2), 1.0), "Identical vectors should have similarity 1.0"


def test_cosine_similarity_zero_vector():
    """Zero vectors have no direction and get similarity 0.0"""
    v1 = np.array([1.0, 2.0, 3.0], dtype=np.float32)
    v2 = np.zeros(3, dtype=np.float32)

    assert cosine_similarity(v1, v2) == 0.0, "Zero vector should return similarity 0.0"
    assert cosine_distance(v1, v2) == 1.0


def test_cosine_distance_opposite_vectors():
    """Opposite vectors are at the maximum cosine distance of 2.0"""
    v1 = np.array([1.0, 2.0, 3.0], dtype=np.float32)

    assert np.isclose(cosine_distance(v1, -v1), 2.0)


def test_l2_squared_known_value():
    """Squared L2 of a 3-4-5 triangle is 25"""
    v1 = np.array([0.0, 0.0], dtype=np.float32)
    v2 = np.array([3.0, 4.0], dtype=np.float32)

    assert l2_squared(v1, v2) == pytest.approx(25.0)


def test_negative_dot_prefers_larger_inner_product():
    """Larger inner products must give smaller distances"""
    query = np.array([1.0, 1.0], dtype=np.float32)
    near = np.array([2.0, 2.0], dtype=np.float32)
    far = np.array([0.5, 0.5], dtype=np.float32)

    assert negative_dot(query, near) < negative_dot(query, far)
    assert negative_dot(query, near) == pytest.approx(-4.0)


@pytest.mark.parametrize("metric", [L2, DOT, COSINE])
def test_metrics_are_symmetric(metric):
    """d(a, b) == d(b, a) for every metric"""
    rng = np.random.default_rng(0)
    a, b = rng.standard_normal((2, 16)).astype(np.float32)

    assert metric(a, b) == pytest.approx(metric(b, a))


@pytest.mark.parametrize("metric", [L2, DOT, COSINE])
def test_many_matches_pairwise(metric):
    """The one-to-many form must agree with the pairwise form row by row"""
    rng = np.random.default_rng(1)
    query = rng.standard_normal(8).astype(np.float32)
    matrix = rng.standard_normal((20, 8)).astype(np.float32)

    batch = metric.many(query, matrix)
    pairwise = np.array([metric(query, row) for row in matrix])

    assert batch.shape == (20,)
    assert np.allclose(batch, pairwise, atol=1e-5)


def test_many_with_empty_matrix():
    """Scoring against no vectors returns an empty array"""
    query = np.ones(4, dtype=np.float32)
    result = L2.many(query, np.empty((0, 4), dtype=np.float32))

    assert result.shape == (0,)


def test_cosine_many_with_zero_rows():
    """Zero rows in the matrix get cosine distance 1.0, not NaN"""
    query = np.array([1.0, 0.0], dtype=np.float32)
    matrix = np.array([[0.0, 0.0], [1.0, 0.0]], dtype=np.float32)

    result = COSINE.many(query, matrix)

    assert np.allclose(result, [1.0, 0.0])


def test_dimension_mismatch_raises():
    """Comparing vectors of different dimension is an error"""
    v1 = np.ones(3, dtype=np.float32)
    v2 = np.ones(4, dtype=np.float32)

    with pytest.raises(DimensionMismatchError) as exc_info:
        l2_squared(v1, v2)
    assert exc_info.value.expected == 3
    assert exc_info.value.actual == 4

    with pytest.raises(DimensionMismatchError):
        L2.many(v1, np.ones((2, 4), dtype=np.float32))


def test_get_distance_function():
    """Metric lookup by name"""
    assert get_distance_function("l2") is L2
    assert get_distance_function("dot") is DOT
    assert get_distance_function("cosine") is COSINE

    with pytest.raises(ConfigurationError):
        get_distance_function("manhattan")
