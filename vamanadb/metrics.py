"""
Metrics for evaluating Vamana search quality.

This module provides functions to:
- Compute recall@k (fraction of ground truth neighbors retrieved)
- Compute exact ground truth via brute force search
- Measure the recall of an index over a query set
"""

import numpy as np
from typing import List, Optional, Tuple

from vamanadb.vamana.distance import get_distance_function


def compute_recall_at_k(
    retrieved_ids: List[int],
    ground_truth_ids: List[int],
    k: int = 10
) -> float:
    """
    Compute recall@k: fraction of ground truth neighbors retrieved.

    Recall@k measures how many of the true k-nearest neighbors
    were found by the search algorithm.

    Args:
        retrieved_ids: IDs returned by search (ordered by relevance)
        ground_truth_ids: True k-nearest neighbor IDs
        k: Number of neighbors to consider

    Returns:
        Recall@k value between 0.0 (no correct neighbors) and 1.0 (all correct)

    Example:
        >>> retrieved = [1, 2, 3, 99, 98]
        >>> ground_truth = [1, 2, 3, 4, 5]
        >>> compute_recall_at_k(retrieved, ground_truth, k=5)
        0.6  # Found 3 out of 5 correct neighbors
    """
    # Consider only top-k results
    retrieved_set = set(retrieved_ids[:k])
    ground_truth_set = set(ground_truth_ids[:k])

    # Count overlap
    correct_retrievals = len(retrieved_set & ground_truth_set)

    return correct_retrievals / k if k > 0 else 0.0


def compute_precision_at_k(
    retrieved_ids: List[int],
    ground_truth_ids: List[int],
    k: int = 10
) -> float:
    """
    Compute precision@k: fraction of retrieved neighbors that are correct.

    Args:
        retrieved_ids: IDs returned by search
        ground_truth_ids: True k-nearest neighbor IDs
        k: Number of neighbors to consider

    Returns:
        Precision@k value between 0.0 and 1.0

    Note:
        Differs from recall@k only when search returns fewer than k results,
        e.g. when a visit budget ran out.
    """
    retrieved_set = set(retrieved_ids[:k])
    ground_truth_set = set(ground_truth_ids[:k])

    correct_retrievals = len(retrieved_set & ground_truth_set)
    retrieved_count = min(len(retrieved_ids), k)

    return correct_retrievals / retrieved_count if retrieved_count > 0 else 0.0


def compute_mean_reciprocal_rank(
    retrieved_ids: List[int],
    ground_truth_ids: List[int]
) -> float:
    """
    Compute the reciprocal rank of the first correct result for a single query.

    Args:
        retrieved_ids: IDs returned by search (ordered)
        ground_truth_ids: True k-nearest neighbor IDs

    Returns:
        Reciprocal rank (1/rank of first correct result, or 0 if none found)

    Example:
        >>> compute_mean_reciprocal_rank([99, 98, 1, 2], [1, 2, 3, 4])
        0.333...  # 1/3
    """
    ground_truth_set = set(ground_truth_ids)

    for rank, retrieved_id in enumerate(retrieved_ids, start=1):
        if retrieved_id in ground_truth_set:
            return 1.0 / rank

    return 0.0


def compute_ground_truth_brute_force(
    query_vector: np.ndarray,
    all_vectors: np.ndarray,
    k: int = 10,
    metric: str = "l2",
) -> Tuple[List[int], List[float]]:
    """
    Compute exact k-NN via brute force (slow but exact).

    This is used to compute ground truth for evaluation.

    Args:
        query_vector: Query embedding (1D array, shape: [dim])
        all_vectors: All database vectors (2D array, shape: [n_vectors, dim])
        k: Number of neighbors to find
        metric: Distance metric name ("l2", "dot", "cosine")

    Returns:
        Tuple of (neighbor_ids, distances), both sorted by distance ascending
        (ties broken by lower ID, like the graph search)

    Example:
        >>> query = np.array([1.0, 0.0, 0.0])
        >>> database = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])
        >>> ids, dists = compute_ground_truth_brute_force(query, database, k=2)
        >>> ids  # [0, 1]
        >>> dists  # [0.0, 2.0] - squared L2 distances
    """
    distance = get_distance_function(metric)
    distances = distance.many(np.asarray(query_vector, dtype=np.float32), np.asarray(all_vectors, dtype=np.float32))

    # Full stable sort keeps the lower-ID-first tie-break
    order = np.argsort(distances, kind="stable")[:k]

    return order.tolist(), distances[order].tolist()


def compute_ground_truth(
    queries: np.ndarray,
    all_vectors: np.ndarray,
    k: int = 10,
    metric: str = "l2",
) -> List[List[int]]:
    """
    Pre-compute the exact k-NN IDs of every query.

    Args:
        queries: Query vectors (2D array)
        all_vectors: All database vectors (2D array)
        k: Number of neighbors per query
        metric: Distance metric name

    Returns:
        One list of neighbor IDs per query
    """
    return [
        compute_ground_truth_brute_force(query, all_vectors, k=k, metric=metric)[0]
        for query in queries
    ]


def evaluate_recall(
    index,
    queries: np.ndarray,
    ground_truth: List[List[int]],
    k: int = 10,
    search_list_size: Optional[int] = None,
) -> float:
    """
    Average recall@k of an index over a query set.

    Args:
        index: Anything with ``search(query, k, search_list_size=...)`` returning
            (id, distance) pairs
        queries: Query vectors
        ground_truth: Exact neighbor IDs per query (see compute_ground_truth)
        k: Number of neighbors
        search_list_size: Search list size override

    Returns:
        Mean recall@k between 0.0 and 1.0
    """
    if len(queries) == 0:
        return 0.0

    recalls = []
    for query, truth in zip(queries, ground_truth):
        results = index.search(query, k=k, search_list_size=search_list_size)
        recalls.append(compute_recall_at_k([node_id for node_id, _ in results], truth, k=k))

    return float(np.mean(recalls))
