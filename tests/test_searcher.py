"""
Tests for Vamana search algorithm.

These tests verify that the searcher correctly finds nearest neighbors:
- Empty graph handling
- Results are at most k, sorted by distance
- Fewer vectors than k returns all of them
- Search list size override and the L >= k rule
- Visit budget and timeout return partial results
- Query dimension validation
"""

import numpy as np
import pytest
from vamanadb.errors import DimensionMismatchError
from vamanadb.metrics import compute_ground_truth_brute_force
from vamanadb.vamana.builder import VamanaBuilder
from vamanadb.vamana.distance import L2
from vamanadb.vamana.graph import VamanaGraph
from vamanadb.vamana.searcher import VamanaSearcher, greedy_search
from vamanadb.vector_source import ArrayVectorSource


@pytest.fixture
def built_searcher(sample_source):
    """Searcher over a graph built from the sample vectors."""
    graph = VamanaGraph(len(sample_source), 8, sample_source.dimension)
    VamanaBuilder(graph, sample_source, L2, build_list_size=24, random_state=0).build()
    return VamanaSearcher(graph, sample_source, L2, search_list_size=32)


def test_search_empty_graph():
    """Searching an empty graph should return empty results"""
    source = ArrayVectorSource(np.empty((0, 2), dtype=np.float32))
    searcher = VamanaSearcher(VamanaGraph(0, 4, 2), source, L2, search_list_size=10)

    results = searcher.search(np.array([1.0, 0.0], dtype=np.float32), k=5)

    assert results == [], "Empty graph should return no results"


def test_search_returns_sorted_k(built_searcher, sample_vectors):
    """At most k results, ascending by distance"""
    results = built_searcher.search(sample_vectors[3], k=10)

    assert len(results) == 10
    distances = [d for _, d in results]
    assert distances == sorted(distances), "Results should be sorted closest first"
    assert results[0] == (3, 0.0), "The query vector itself is the closest match"


def test_search_k_zero(built_searcher, sample_vectors):
    """k = 0 returns nothing"""
    assert built_searcher.search(sample_vectors[0], k=0) == []


def test_search_fewer_vectors_than_k():
    """With fewer vectors than k, every vector is returned"""
    vectors = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]], dtype=np.float32)
    source = ArrayVectorSource(vectors)
    graph = VamanaGraph(4, 3, 2)
    VamanaBuilder(graph, source, L2, build_list_size=4, random_state=0).build()
    searcher = VamanaSearcher(graph, source, L2, search_list_size=2)

    results = searcher.search(np.array([0.1, 0.1], dtype=np.float32), k=10)

    assert sorted(node_id for node_id, _ in results) == [0, 1, 2, 3]
    assert results[0][0] == 0


def test_search_list_size_at_least_k(built_searcher, sample_vectors):
    """A search list smaller than k is raised to k"""
    results = built_searcher.search(sample_vectors[0], k=20, search_list_size=5)

    assert len(results) == 20


def test_set_search_list_size(built_searcher):
    """The default L' can be changed, and must be positive"""
    built_searcher.set_search_list_size(64)
    assert built_searcher.search_list_size == 64

    with pytest.raises(ValueError):
        built_searcher.set_search_list_size(0)


def test_large_search_list_is_exact(built_searcher, sample_vectors):
    """With L' covering a third of the data the top 5 match brute force"""
    query = sample_vectors[7] + 0.05
    results = built_searcher.search(query, k=5, search_list_size=100)

    truth, _ = compute_ground_truth_brute_force(query, sample_vectors, k=5)
    assert [node_id for node_id, _ in results] == truth


def test_max_visits_returns_partial_results(built_searcher, sample_vectors):
    """Running out of visit budget returns the best found so far"""
    results = built_searcher.search(sample_vectors[0], k=5, max_visits=1)

    # Only the entry point was expanded, so at most 1 + R candidates exist
    assert 0 < len(results) <= 5
    distances = [d for _, d in results]
    assert distances == sorted(distances)


def test_zero_timeout_returns_entry_point(built_searcher, sample_vectors):
    """An already expired deadline stops before any expansion"""
    results = built_searcher.search(sample_vectors[0], k=5, timeout=0.0)

    assert [node_id for node_id, _ in results] == [built_searcher.graph.entry_point]


def test_visit_budget_counts_expansions(built_searcher, sample_vectors):
    """greedy_search stops after max_visits expansions"""
    graph = built_searcher.graph
    candidates = greedy_search(graph, built_searcher.source, L2, sample_vectors[0], 32, max_visits=3)

    assert len(candidates.visited()) == 3


def test_search_dimension_mismatch(built_searcher):
    """Query of the wrong dimension is rejected"""
    with pytest.raises(DimensionMismatchError):
        built_searcher.search(np.ones(3, dtype=np.float32), k=5)


def test_invalid_search_list_size(sample_source):
    """Searcher refuses a non-positive default L'"""
    with pytest.raises(ValueError):
        VamanaSearcher(VamanaGraph(1, 2, sample_source.dimension), sample_source, L2, search_list_size=0)
