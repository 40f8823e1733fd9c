"""
Vamana search algorithm.

Greedy best-first traversal over the flat graph:
1. Seed a candidate set with the fixed entry point
2. Take the nearest candidate not expanded yet and add its out-neighbors
3. Repeat until every candidate in the set has been expanded
4. Return the k closest candidates

The same traversal is used during construction (toward the node being
inserted) and at query time. The search list size L controls the
accuracy-speed tradeoff:
- Higher L = better recall, slower search
- Lower L = faster search, lower recall

A search can also be bounded by a number of expansions or a wall-clock
timeout. When the budget runs out the best candidates found so far are
returned; running out of budget is never an error.
"""

import logging
import time
from typing import List, Optional, Tuple

import numpy as np
import numpy.typing as npt

from vamanadb.errors import DimensionMismatchError
from vamanadb.vamana.candidate_set import CandidateSet
from vamanadb.vamana.distance import DistanceFunction
from vamanadb.vamana.graph import VamanaGraph
from vamanadb.vector_source import VectorSource

Vector = npt.NDArray[np.float32]

logger = logging.getLogger(__name__)


def greedy_search(
    graph: VamanaGraph,
    source: VectorSource,
    distance: DistanceFunction,
    center: Vector,
    search_list_size: int,
    entry_point: Optional[int] = None,
    max_visits: Optional[int] = None,
    deadline: Optional[float] = None,
) -> CandidateSet:
    """
    Walk the graph greedily toward ``center``.

    Args:
        graph: Graph to traverse
        source: Vector source for the graph's IDs
        distance: Distance metric
        center: Target vector (query, or node being inserted)
        search_list_size: Capacity L of the candidate set
        entry_point: Start node (default: the graph's entry point)
        max_visits: Stop after expanding this many nodes
        deadline: Stop once time.monotonic() passes this value

    Returns:
        The final candidate set; ``elements()`` gives the result order and
        ``visited()`` the full list of expanded nodes
    """
    candidates = CandidateSet(search_list_size, source, distance, center)

    start = graph.entry_point if entry_point is None else entry_point
    if start is None or graph.size() == 0:
        return candidates

    candidates.add(start)

    visits = 0
    while candidates.has_unvisited():
        if max_visits is not None and visits >= max_visits:
            break
        if deadline is not None and time.monotonic() >= deadline:
            break

        current = candidates.next()
        visits += 1

        # Snapshot of the neighbor tuple; concurrent writers replace, never mutate
        candidates.add_many(graph.get_neighbors(current.id))

    return candidates


class VamanaSearcher:
    """
    Handles search queries on a Vamana graph.

    Searches are read-only over the graph and keep all state in a per-call
    candidate set, so one searcher can serve concurrent queries.
    """

    def __init__(
        self,
        graph: VamanaGraph,
        source: VectorSource,
        distance: DistanceFunction,
        search_list_size: int = 100,
    ) -> None:
        """
        Initialize searcher with a graph.

        Args:
            graph: The VamanaGraph to search in
            source: Vector source for the graph's IDs
            distance: Distance metric the graph was built with
            search_list_size: Default candidate list size L' (higher = better recall)
        """
        if search_list_size < 1:
            raise ValueError(f"search_list_size must be >= 1, got {search_list_size}")

        self.graph = graph
        self.source = source
        self.distance = distance
        self.search_list_size = search_list_size

    def set_search_list_size(self, search_list_size: int) -> None:
        """
        Change the default search list size for subsequent searches.

        Searches already running keep the value they started with.
        """
        if search_list_size < 1:
            raise ValueError(f"search_list_size must be >= 1, got {search_list_size}")
        self.search_list_size = search_list_size

    def search(
        self,
        query: Vector,
        k: int,
        search_list_size: Optional[int] = None,
        max_visits: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[Tuple[int, float]]:
        """
        Search for k nearest neighbors to the query vector.

        Args:
            query: Query vector to search for
            k: Number of nearest neighbors to return
            search_list_size: Override the default L' for this query
            max_visits: Optional cap on the number of expanded nodes
            timeout: Optional time budget in seconds

        Returns:
            List of (node_id, distance) tuples, sorted by distance (closest first),
            at most k long

        Raises:
            DimensionMismatchError: If the query dimension doesn't match the graph
        """
        if len(query) != self.graph.dimension:
            raise DimensionMismatchError(self.graph.dimension, len(query))

        if k <= 0 or self.graph.size() == 0:
            return []

        # Read the default once; a concurrent setter only affects later calls
        L = search_list_size if search_list_size is not None else self.search_list_size

        # Ensure L is at least k
        L = max(L, k)

        deadline = time.monotonic() + timeout if timeout is not None else None

        candidates = greedy_search(
            self.graph,
            self.source,
            self.distance,
            np.asarray(query, dtype=np.float32),
            L,
            max_visits=max_visits,
            deadline=deadline,
        )

        if candidates.has_unvisited():
            logger.debug("Search budget exhausted with %d candidates", len(candidates))

        return candidates.items()[:k]
