"""
Bounded, distance-ordered candidate set used by greedy graph search.

The set holds at most ``capacity`` candidates sorted by distance to a fixed
center (the query, or the node being inserted). Search repeatedly takes the
nearest candidate it has not expanded yet (``next``), and feeds that node's
neighbors back in (``add``/``add_many``). Once the set is full a new candidate
only gets in if it is strictly closer than the current farthest entry, which
it then evicts.

Entries live in a sorted Python list keyed by ``(distance, id)``, so
insertion is a binary search plus a list insert regardless of the order in
which distances arrive, and ties resolve to the lower ID.
"""

import bisect
from typing import Dict, List, NamedTuple, Optional, Sequence, Set, Tuple

import numpy as np
import numpy.typing as npt

from vamanadb.vamana.distance import DistanceFunction
from vamanadb.vector_source import VectorSource, fetch_vector, fetch_vectors

Vector = npt.NDArray[np.float32]


class CandidateEntry(NamedTuple):
    """One candidate: vector ID, distance to the center, visited flag."""

    id: int
    distance: float
    visited: bool


class CandidateSet:
    """
    Bounded working set of graph nodes under consideration during a search.

    Invariants:
        - len(self) <= capacity
        - entries are ordered ascending by (distance, id)
        - the visited flag only goes from False to True
        - adding an ID that was already offered is a no-op
    """

    def __init__(
        self,
        capacity: int,
        source: VectorSource,
        distance: DistanceFunction,
        center: Vector,
    ) -> None:
        """
        Create an empty candidate set.

        Args:
            capacity: Maximum number of entries (the search list size L)
            source: Where vectors for candidate IDs are fetched from
            distance: Metric used to score candidates against the center
            center: The vector every candidate is measured against
        """
        if capacity < 1:
            raise ValueError(f"Candidate set capacity must be >= 1, got {capacity}")

        self.capacity = capacity
        self.source = source
        self.distance = distance
        self.center = center

        # Sorted (distance, id) keys and the visited flag per live entry
        self._keys: List[Tuple[float, int]] = []
        self._visited: Dict[int, bool] = {}
        self._unvisited = 0

        # Every entry before the cursor is visited
        self._cursor = 0

        # IDs ever offered, so duplicates and re-offers of evicted IDs skip the fetch
        self._seen: Set[int] = set()

        # Entries handed out by next(), including ones evicted afterwards
        self._expanded: List[Tuple[int, float]] = []

    def add(self, vector_id: int) -> bool:
        """
        Fetch a candidate's vector, score it and insert it.

        Args:
            vector_id: ID of the candidate

        Returns:
            True if the candidate is now in the set, False if it was a
            duplicate or not closer than the current farthest entry of a
            full set

        Raises:
            FetchError: If the vector source cannot provide the vector
        """
        if vector_id in self._seen:
            return False

        vector = fetch_vector(self.source, vector_id)
        return self._insert(vector_id, float(self.distance(self.center, vector)))

    def add_many(self, vector_ids: Sequence[int]) -> int:
        """
        Add several candidates, fetching their vectors in one batch.

        Equivalent to calling ``add`` for each ID in order.

        Returns:
            Number of candidates that entered the set
        """
        fresh: List[int] = []
        pending: Set[int] = set()
        for vector_id in vector_ids:
            vector_id = int(vector_id)
            if vector_id not in self._seen and vector_id not in pending:
                pending.add(vector_id)
                fresh.append(vector_id)

        if not fresh:
            return 0

        vectors = fetch_vectors(self.source, fresh)
        distances = self.distance.many(self.center, vectors)

        inserted = 0
        for vector_id, dist in zip(fresh, distances):
            if self._insert(vector_id, float(dist)):
                inserted += 1
        return inserted

    def _insert(self, vector_id: int, dist: float) -> bool:
        self._seen.add(vector_id)

        if len(self._keys) >= self.capacity:
            worst_dist, worst_id = self._keys[-1]
            if dist >= worst_dist:
                return False
            self._keys.pop()
            if not self._visited.pop(worst_id):
                self._unvisited -= 1
            self._cursor = min(self._cursor, len(self._keys))

        key = (dist, vector_id)
        position = bisect.bisect_left(self._keys, key)
        self._keys.insert(position, key)
        self._visited[vector_id] = False
        self._unvisited += 1

        if position < self._cursor:
            self._cursor = position
        return True

    def next(self) -> Optional[CandidateEntry]:
        """
        Return the nearest unvisited candidate and mark it visited.

        Returns:
            The candidate entry, or None when every entry has been visited
        """
        if self._unvisited == 0:
            return None

        position = self._cursor
        while self._visited[self._keys[position][1]]:
            position += 1

        dist, vector_id = self._keys[position]
        self._visited[vector_id] = True
        self._unvisited -= 1
        self._cursor = position + 1
        self._expanded.append((vector_id, dist))

        return CandidateEntry(vector_id, dist, True)

    def has_unvisited(self) -> bool:
        """Whether any entry is still waiting to be expanded."""
        return self._unvisited > 0

    def elements(self) -> List[int]:
        """All current IDs, closest first."""
        return [vector_id for _, vector_id in self._keys]

    def items(self) -> List[Tuple[int, float]]:
        """All current (id, distance) pairs, closest first."""
        return [(vector_id, dist) for dist, vector_id in self._keys]

    def entries(self) -> List[CandidateEntry]:
        """All current entries with their visited flags, closest first."""
        return [
            CandidateEntry(vector_id, dist, self._visited[vector_id])
            for dist, vector_id in self._keys
        ]

    def visited(self) -> List[Tuple[int, float]]:
        """
        Every (id, distance) returned by ``next`` so far, in expansion order.

        Entries stay in this list even if they were later evicted; graph
        construction prunes over this full visited set.
        """
        return list(self._expanded)

    def __contains__(self, vector_id: int) -> bool:
        return vector_id in self._visited

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:
        return (
            f"CandidateSet(size={len(self)}, capacity={self.capacity}, "
            f"unvisited={self._unvisited})"
        )
