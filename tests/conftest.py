"""
Pytest configuration and shared fixtures for VamanaDB tests
"""

import pytest
import numpy as np

from vamanadb import VamanaIndex, VamanaConfig, ArrayVectorSource
from vamanadb.datasets import generate_clustered_vectors


@pytest.fixture
def dimension() -> int:
    """Standard vector dimension for testing."""
    return 8


@pytest.fixture
def sample_vectors(dimension) -> np.ndarray:
    """Generate sample vectors for testing."""
    rng = np.random.default_rng(42)
    return rng.standard_normal((300, dimension)).astype(np.float32)


@pytest.fixture
def sample_source(sample_vectors) -> ArrayVectorSource:
    """Array-backed vector source over the sample vectors."""
    return ArrayVectorSource(sample_vectors)


@pytest.fixture
def small_config() -> VamanaConfig:
    """Small graph parameters that keep builds fast."""
    return VamanaConfig(
        max_degree=8,
        build_list_size=24,
        alpha=1.2,
        search_list_size=32,
        config_name="test",
    )


@pytest.fixture
def built_index(sample_source, small_config) -> VamanaIndex:
    """An index built over the sample vectors."""
    return VamanaIndex(sample_source, config=small_config).build()


@pytest.fixture
def clustered_data():
    """Clustered vectors plus queries drawn from the same blobs."""
    return generate_clustered_vectors(
        n_vectors=400, dim=8, n_clusters=8, cluster_std=0.6, n_queries=30, seed=7
    )
