"""
Utility functions for Vamana graph construction.

This module provides the helpers the builders share:
- Medoid selection: picks the fixed entry point every search starts from
- Robust pruning: chooses which out-edges a node keeps under the degree bound
- Random initialization: the R-regular starting graph the first pass walks

Robust pruning is what makes Vamana navigable at low degree. Picking just the
R closest candidates (as simple HNSW selection does) clusters all edges in one
direction; robust pruning discards a candidate when an already-accepted
neighbor is "in the way", which keeps long-range edges alive.
"""

import logging
from typing import Iterable, Optional, Tuple

import numpy as np

from vamanadb.errors import ConstructionError
from vamanadb.vamana.distance import DistanceFunction
from vamanadb.vamana.graph import VamanaGraph
from vamanadb.vector_source import VectorSource, fetch_vectors

logger = logging.getLogger(__name__)

MEDOID_BATCH_SIZE = 4096


def robust_prune(
    node_id: int,
    node_vector: np.ndarray,
    candidate_ids: Iterable[int],
    source: VectorSource,
    distance: DistanceFunction,
    alpha: float,
    max_degree: int,
) -> Tuple[int, ...]:
    """
    Select at most ``max_degree`` out-neighbors for a node.

    Algorithm:
        1. Sort candidates by distance to the node (lower ID wins ties)
        2. Accept the closest remaining candidate p
        3. Drop every remaining q with alpha * d(p, q) <= d(node, q)
        4. Repeat until max_degree neighbors are accepted or no candidates remain

    Args:
        node_id: Node being pruned (excluded from its own candidates)
        node_vector: Vector of that node
        candidate_ids: Candidate neighbor IDs (duplicates are ignored)
        source: Vector source for the candidates
        distance: Distance metric
        alpha: Pruning factor, >= 1.0 (larger keeps more, longer edges)
        max_degree: Maximum number of neighbors to keep

    Returns:
        Accepted neighbor IDs, closest first

    Example:
        >>> # On a line 0 -- 1 -- 2 seen from node 0, candidate 2 is occluded by 1
        >>> robust_prune(0, vectors[0], [1, 2], source, L2, alpha=1.0, max_degree=2)
        (1,)
    """
    ids = np.array(sorted({int(c) for c in candidate_ids} - {node_id}), dtype=np.int64)
    if len(ids) == 0:
        return ()

    vectors = fetch_vectors(source, ids.tolist())
    to_node = distance.many(node_vector, vectors)

    # lexsort sorts by the last key first: distance, then ID
    order = np.lexsort((ids, to_node))
    alive = np.ones(len(ids), dtype=bool)

    selected = []
    for position in order:
        if not alive[position]:
            continue

        selected.append(int(ids[position]))
        if len(selected) >= max_degree:
            break

        # The accepted node occludes itself (distance 0) and anything it covers
        to_accepted = distance.many(vectors[position], vectors)
        alive &= alpha * to_accepted > to_node

    return tuple(selected)


def compute_medoid(
    source: VectorSource,
    num_vectors: Optional[int] = None,
    distance: Optional[DistanceFunction] = None,
) -> int:
    """
    Find the vector closest to the dataset centroid.

    This is the approximate medoid used as the graph entry point. It takes
    two streaming passes over the source (one for the centroid, one for the
    nearest vector), so vectors are never all held in memory at once.

    Args:
        source: Vector source
        num_vectors: Number of vectors to consider (default: len(source))
        distance: Metric for the nearest-to-centroid pass (default: squared L2)

    Returns:
        ID of the medoid

    Raises:
        ConstructionError: If the source is empty or the centroid is not finite
    """
    n = len(source) if num_vectors is None else num_vectors
    if n <= 0:
        raise ConstructionError("Cannot pick an entry point for an empty vector set")

    total = np.zeros(source.dimension, dtype=np.float64)
    for start in range(0, n, MEDOID_BATCH_SIZE):
        batch = fetch_vectors(source, list(range(start, min(start + MEDOID_BATCH_SIZE, n))))
        total += batch.sum(axis=0, dtype=np.float64)
    centroid = (total / n).astype(np.float32)

    if not np.all(np.isfinite(centroid)):
        raise ConstructionError("Dataset centroid is not finite, cannot pick an entry point")

    best_id = -1
    best_dist = np.inf
    for start in range(0, n, MEDOID_BATCH_SIZE):
        batch = fetch_vectors(source, list(range(start, min(start + MEDOID_BATCH_SIZE, n))))
        if distance is None:
            diff = batch - centroid
            dists = np.einsum("ij,ij->i", diff, diff)
        else:
            dists = distance.many(centroid, batch)
        local = int(np.argmin(dists))
        if dists[local] < best_dist:
            best_dist = float(dists[local])
            best_id = start + local

    if best_id < 0:
        raise ConstructionError("No finite distance to the centroid, cannot pick an entry point")

    logger.debug("Medoid of %d vectors is %d", n, best_id)
    return best_id


def initialize_random_edges(graph: VamanaGraph, rng: np.random.Generator) -> None:
    """
    Give every node min(R, n - 1) distinct random out-neighbors.

    The random graph is well connected, so the first construction pass can
    reach any node from the entry point.

    Args:
        graph: Graph to initialize (existing edges are replaced)
        rng: Random generator
    """
    n = graph.size()
    degree = min(graph.max_degree, n - 1)
    if degree <= 0:
        return

    for node_id in range(n):
        # Draw from n - 1 slots and shift past node_id to skip the self-loop
        picks = rng.choice(n - 1, size=degree, replace=False)
        picks[picks >= node_id] += 1
        graph.set_neighbors(node_id, picks.tolist())
