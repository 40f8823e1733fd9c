"""
Unit tests for metrics module.

Tests recall@k, precision@k, reciprocal rank and ground truth functions.
"""

import pytest
import numpy as np
from vamanadb.metrics import (
    compute_recall_at_k,
    compute_ground_truth,
    compute_ground_truth_brute_force,
    compute_precision_at_k,
    compute_mean_reciprocal_rank,
    evaluate_recall,
)


class TestRecallAtK:
    """Tests for recall@k computation."""

    def test_perfect_recall(self):
        """Test recall@10 with perfect retrieval."""
        retrieved = [1, 2, 3, 4, 5, 6, 7, 8, 9, 10]
        ground_truth = [1, 2, 3, 4, 5, 6, 7, 8, 9, 10]
        recall = compute_recall_at_k(retrieved, ground_truth, k=10)
        assert recall == 1.0, "Perfect retrieval should give recall=1.0"

    def test_partial_recall(self):
        """Test recall@10 with 70% correct retrieval."""
        retrieved = [1, 2, 3, 4, 5, 6, 7, 99, 98, 97]
        ground_truth = [1, 2, 3, 4, 5, 6, 7, 8, 9, 10]
        recall = compute_recall_at_k(retrieved, ground_truth, k=10)
        assert recall == 0.7, "7/10 correct should give recall=0.7"

    def test_short_result_list(self):
        """Fewer results than k count as misses."""
        recall = compute_recall_at_k([1, 2], [1, 2, 3, 4], k=4)
        assert recall == 0.5

    def test_zero_k(self):
        """k=0 gives recall 0 instead of dividing by zero."""
        assert compute_recall_at_k([1], [1], k=0) == 0.0


class TestPrecisionAndRank:
    """Tests for precision@k and reciprocal rank."""

    def test_precision_with_short_results(self):
        """Precision only counts the results actually returned."""
        precision = compute_precision_at_k([1, 2], [1, 2, 3, 4], k=4)
        assert precision == 1.0

    def test_precision_empty(self):
        """No results means precision 0."""
        assert compute_precision_at_k([], [1, 2], k=2) == 0.0

    def test_reciprocal_rank(self):
        """First hit at rank 3 gives 1/3."""
        assert compute_mean_reciprocal_rank([99, 98, 1, 2], [1, 2, 3, 4]) == pytest.approx(1 / 3)

    def test_reciprocal_rank_no_hit(self):
        """No hit gives 0."""
        assert compute_mean_reciprocal_rank([99, 98], [1, 2]) == 0.0


class TestGroundTruth:
    """Tests for brute force ground truth."""

    def test_brute_force_l2(self):
        """Nearest by squared L2, closest first."""
        query = np.array([1.0, 0.0, 0.0])
        database = np.array([[0.0, 1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])

        ids, dists = compute_ground_truth_brute_force(query, database, k=2)

        assert ids[0] == 1
        assert dists[0] == pytest.approx(0.0)
        assert dists[1] == pytest.approx(2.0)

    def test_brute_force_ties_prefer_lower_id(self):
        """Equal distances keep ID order."""
        query = np.zeros(2)
        database = np.array([[0.0, 1.0], [1.0, 0.0], [0.0, -1.0], [5.0, 5.0]])

        ids, _ = compute_ground_truth_brute_force(query, database, k=3)

        assert ids == [0, 1, 2]

    def test_brute_force_dot(self):
        """The dot metric prefers the largest inner product."""
        query = np.array([1.0, 1.0])
        database = np.array([[1.0, 0.0], [3.0, 3.0], [-1.0, -1.0]])

        ids, dists = compute_ground_truth_brute_force(query, database, k=3, metric="dot")

        assert ids == [1, 0, 2]
        assert dists[0] == pytest.approx(-6.0)

    def test_ground_truth_batch(self):
        """One neighbor list per query."""
        rng = np.random.default_rng(0)
        database = rng.standard_normal((50, 4))
        queries = database[:3]

        truth = compute_ground_truth(queries, database, k=5)

        assert len(truth) == 3
        assert [row[0] for row in truth] == [0, 1, 2]
        assert all(len(row) == 5 for row in truth)


class TestEvaluateRecall:
    """Tests for index-level recall evaluation."""

    def test_exact_searcher_has_full_recall(self):
        """A brute force 'index' scores recall 1.0."""
        rng = np.random.default_rng(1)
        database = rng.standard_normal((40, 3))
        queries = rng.standard_normal((5, 3))
        truth = compute_ground_truth(queries, database, k=4)

        class ExactIndex:
            def search(self, query, k, search_list_size=None):
                ids, dists = compute_ground_truth_brute_force(query, database, k=k)
                return list(zip(ids, dists))

        assert evaluate_recall(ExactIndex(), queries, truth, k=4) == 1.0

    def test_no_queries(self):
        """An empty query set scores 0."""
        assert evaluate_recall(None, np.empty((0, 3)), [], k=4) == 0.0
