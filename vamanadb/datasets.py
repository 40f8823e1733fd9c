"""
Benchmark dataset helpers.

Reads and writes the .fvecs / .ivecs formats used by the SIFT and GIST
ANN benchmarks (each record is a little-endian int32 dimension followed by
that many float32 or int32 values), and generates synthetic clustered data.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)


def _read_vecs(path: Union[str, Path], dtype, count: Optional[int]) -> np.ndarray:
    raw = np.fromfile(path, dtype=np.int32)
    if raw.size == 0:
        return np.empty((0, 0), dtype=dtype)

    dim = int(raw[0])
    if dim <= 0 or raw.size % (dim + 1) != 0:
        raise ValueError(f"{path} is not a valid vecs file (dimension {dim}, {raw.size} words)")

    records = raw.reshape(-1, dim + 1)
    if not np.all(records[:, 0] == dim):
        raise ValueError(f"{path} has records of mixed dimension")

    if count is not None:
        records = records[:count]

    logger.debug("Read %d vectors of dimension %d from %s", len(records), dim, path)
    return records[:, 1:].copy().view(dtype)


def read_fvecs(path: Union[str, Path], count: Optional[int] = None) -> np.ndarray:
    """
    Read float32 vectors from an .fvecs file.

    Args:
        path: File to read
        count: Read at most this many vectors

    Returns:
        Array of shape (n, dim), dtype float32
    """
    return _read_vecs(path, np.float32, count)


def read_ivecs(path: Union[str, Path], count: Optional[int] = None) -> np.ndarray:
    """
    Read int32 vectors (e.g. ground-truth neighbor lists) from an .ivecs file.

    Returns:
        Array of shape (n, dim), dtype int32
    """
    return _read_vecs(path, np.int32, count)


def write_fvecs(path: Union[str, Path], vectors: np.ndarray) -> None:
    """Write a 2D array of vectors in .fvecs format."""
    vectors = np.ascontiguousarray(vectors, dtype=np.float32)
    n, dim = vectors.shape
    records = np.empty((n, dim + 1), dtype=np.int32)
    records[:, 0] = dim
    records[:, 1:] = vectors.view(np.int32)
    records.tofile(path)


def generate_clustered_vectors(
    n_vectors: int = 1000,
    dim: int = 32,
    n_clusters: int = 10,
    cluster_std: float = 0.5,
    n_queries: int = 0,
    seed: int = 42,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Generate Gaussian blobs of vectors plus queries drawn from the same blobs.

    Args:
        n_vectors: Number of database vectors
        dim: Vector dimensionality
        n_clusters: Number of blobs
        cluster_std: Standard deviation within a blob
        n_queries: Number of query vectors
        seed: Random seed

    Returns:
        (vectors, queries), float32 arrays of shape (n_vectors, dim) and (n_queries, dim)
    """
    rng = np.random.default_rng(seed)
    centers = rng.uniform(-5.0, 5.0, size=(n_clusters, dim))

    def sample(count: int) -> np.ndarray:
        labels = rng.integers(0, n_clusters, size=count)
        return (centers[labels] + rng.normal(0.0, cluster_std, size=(count, dim))).astype(np.float32)

    return sample(n_vectors), sample(n_queries)
