"""
Tests for benchmark dataset helpers.
"""

import numpy as np
import pytest
from vamanadb.datasets import generate_clustered_vectors, read_fvecs, read_ivecs, write_fvecs


def test_fvecs_round_trip(tmp_path):
    """Vectors written as .fvecs read back unchanged"""
    vectors = np.random.default_rng(0).standard_normal((12, 5)).astype(np.float32)
    path = tmp_path / "base.fvecs"

    write_fvecs(path, vectors)

    assert np.array_equal(read_fvecs(path), vectors)
    assert np.array_equal(read_fvecs(path, count=4), vectors[:4])


def test_fvecs_layout(tmp_path):
    """Each record is an int32 dimension followed by the values"""
    path = tmp_path / "one.fvecs"
    write_fvecs(path, np.array([[1.5, -2.0]], dtype=np.float32))

    raw = np.fromfile(path, dtype=np.int32)

    assert raw[0] == 2
    assert raw[1:].view(np.float32).tolist() == [1.5, -2.0]


def test_read_ivecs(tmp_path):
    """Ground-truth files hold int32 neighbor lists"""
    path = tmp_path / "truth.ivecs"
    records = np.array([[3, 7, 1, 4], [3, 0, 2, 9]], dtype=np.int32)
    records.tofile(path)

    truth = read_ivecs(path)

    assert truth.dtype == np.int32
    assert truth.tolist() == [[7, 1, 4], [0, 2, 9]]


def test_read_invalid_file(tmp_path):
    """Files that don't parse as records are rejected"""
    path = tmp_path / "broken.fvecs"
    np.array([4, 1, 2], dtype=np.int32).tofile(path)

    with pytest.raises(ValueError):
        read_fvecs(path)

    mixed = tmp_path / "mixed.ivecs"
    np.array([1, 5, 2, 6], dtype=np.int32).tofile(mixed)
    with pytest.raises(ValueError):
        read_ivecs(mixed)


def test_generate_clustered_vectors():
    """Synthetic data has the requested shapes and is reproducible"""
    vectors, queries = generate_clustered_vectors(n_vectors=100, dim=6, n_clusters=4, n_queries=7, seed=3)
    again, _ = generate_clustered_vectors(n_vectors=100, dim=6, n_clusters=4, n_queries=7, seed=3)

    assert vectors.shape == (100, 6)
    assert queries.shape == (7, 6)
    assert vectors.dtype == np.float32
    assert np.array_equal(vectors, again)
