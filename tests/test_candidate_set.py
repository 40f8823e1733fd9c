"""
Tests for the bounded candidate set.

These tests verify the invariants greedy search relies on:
- Size never exceeds capacity
- Entries stay ordered by distance, lower ID first on ties
- A full set ignores candidates that are not strictly closer
- Visited flags only go from False to True
- Duplicate adds are no-ops
- Source failures surface as FetchError
"""

import numpy as np
import pytest
from vamanadb.errors import FetchError, VectorNotFoundError
from vamanadb.vamana.candidate_set import CandidateEntry, CandidateSet
from vamanadb.vamana.distance import L2
from vamanadb.vector_source import ArrayVectorSource, CallableVectorSource


def line_source(n: int = 10) -> ArrayVectorSource:
    """Vector i sits at x = i on a line, so d(0, i) = i**2 under squared L2."""
    vectors = np.zeros((n, 2), dtype=np.float32)
    vectors[:, 0] = np.arange(n)
    return ArrayVectorSource(vectors)


def make_set(capacity: int, n: int = 10) -> CandidateSet:
    return CandidateSet(capacity, line_source(n), L2, np.zeros(2, dtype=np.float32))


def test_empty_set():
    """A new set is empty and has nothing to visit"""
    candidates = make_set(3)

    assert len(candidates) == 0
    assert not candidates.has_unvisited()
    assert candidates.next() is None
    assert candidates.elements() == []


def test_invalid_capacity():
    """Capacity must be positive"""
    with pytest.raises(ValueError):
        make_set(0)


def test_elements_sorted_regardless_of_insertion_order():
    """Entries come out ascending whether added sorted, reversed or shuffled"""
    for order in ([1, 2, 3, 4], [4, 3, 2, 1], [3, 1, 4, 2]):
        candidates = make_set(10)
        for vector_id in order:
            candidates.add(vector_id)
        assert candidates.elements() == [1, 2, 3, 4], f"Wrong order after adding {order}"


def test_capacity_is_never_exceeded():
    """Size stays at capacity however many candidates are offered"""
    candidates = make_set(3)
    for vector_id in [9, 8, 7, 6, 5, 4, 3, 2, 1]:
        candidates.add(vector_id)
        assert len(candidates) <= 3

    assert candidates.elements() == [1, 2, 3]


def test_full_set_ignores_farther_candidate():
    """Adding a farther candidate to a full set is a no-op"""
    candidates = make_set(2)
    candidates.add(1)
    candidates.add(2)

    assert candidates.add(5) is False
    assert candidates.elements() == [1, 2]


def test_full_set_ignores_equal_distance_candidate():
    """Only strictly closer candidates evict; equal distance is a no-op"""
    vectors = np.array([[1.0, 0.0], [-1.0, 0.0], [0.0, 1.0]], dtype=np.float32)
    candidates = CandidateSet(2, ArrayVectorSource(vectors), L2, np.zeros(2, dtype=np.float32))
    candidates.add(0)
    candidates.add(1)

    assert candidates.add(2) is False
    assert candidates.elements() == [0, 1]


def test_closer_candidate_evicts_farthest():
    """A strictly closer candidate replaces the current farthest entry"""
    candidates = make_set(2)
    candidates.add(3)
    candidates.add(5)

    assert candidates.add(1) is True
    assert candidates.elements() == [1, 3]
    assert 5 not in candidates


def test_ties_resolve_to_lower_id():
    """Equal distances are ordered by ID"""
    vectors = np.array([[0.0, 1.0], [1.0, 0.0], [0.0, -1.0]], dtype=np.float32)
    candidates = CandidateSet(3, ArrayVectorSource(vectors), L2, np.zeros(2, dtype=np.float32))
    for vector_id in [2, 0, 1]:
        candidates.add(vector_id)

    assert candidates.elements() == [0, 1, 2]


def test_duplicate_add_is_noop():
    """Adding an ID twice leaves the set unchanged"""
    candidates = make_set(5)
    assert candidates.add(2) is True
    assert candidates.add(2) is False

    assert candidates.elements() == [2]


def test_duplicate_add_keeps_visited_flag():
    """Re-adding a visited ID must not reset it to unvisited"""
    candidates = make_set(5)
    candidates.add(2)
    candidates.next()

    candidates.add(2)

    assert not candidates.has_unvisited()
    assert candidates.entries() == [CandidateEntry(2, 4.0, True)]


def test_next_returns_nearest_unvisited():
    """next() walks entries in distance order and marks them visited"""
    candidates = make_set(5)
    candidates.add_many([3, 1, 2])

    first = candidates.next()
    second = candidates.next()

    assert first.id == 1 and first.visited
    assert second.id == 2
    assert [entry.visited for entry in candidates.entries()] == [True, True, False]


def test_next_after_closer_insert():
    """A candidate inserted ahead of visited entries is expanded next"""
    candidates = make_set(5)
    candidates.add(4)
    candidates.add(5)
    candidates.next()  # visits 4

    candidates.add(1)

    assert candidates.next().id == 1
    assert candidates.next().id == 5
    assert candidates.next() is None


def test_visited_flags_are_monotonic():
    """Once visited, an entry stays visited for the rest of the search"""
    candidates = make_set(4)
    candidates.add_many([5, 6, 7])
    candidates.next()
    candidates.add_many([1, 2, 8])

    visited_before = {entry.id for entry in candidates.entries() if entry.visited}
    while candidates.has_unvisited():
        candidates.next()
        visited_now = {entry.id for entry in candidates.entries() if entry.visited}
        assert visited_before & set(candidates.elements()) <= visited_now
        visited_before = visited_now


def test_visited_log_keeps_evicted_entries():
    """visited() lists every expanded node, even if it was evicted later"""
    candidates = make_set(2)
    candidates.add(5)
    candidates.next()
    candidates.add_many([1, 2])

    assert 5 not in candidates
    assert [vector_id for vector_id, _ in candidates.visited()] == [5]


def test_evicted_id_is_not_readmitted():
    """An ID that was evicted is treated as already seen"""
    candidates = make_set(1)
    candidates.add(3)
    candidates.add(1)

    assert candidates.add(3) is False
    assert candidates.elements() == [1]


def test_add_many_matches_repeated_add():
    """Batched add gives the same set as adding one at a time"""
    ids = [7, 3, 3, 9, 1, 4, 1, 8]
    single = make_set(4)
    for vector_id in ids:
        single.add(vector_id)
    batched = make_set(4)
    batched.add_many(ids)

    assert batched.items() == single.items()


def test_has_unvisited_counter():
    """has_unvisited tracks evictions of unvisited entries"""
    candidates = make_set(1)
    candidates.add(5)
    candidates.add(1)  # evicts unvisited 5

    candidates.next()

    assert not candidates.has_unvisited()


def test_fetch_failure_raises_fetch_error():
    """A failing source is reported with the offending ID"""
    def fetch(vector_id):
        raise IOError("disk unavailable")

    source = CallableVectorSource(fetch, size=10, dimension=2)
    candidates = CandidateSet(3, source, L2, np.zeros(2, dtype=np.float32))

    with pytest.raises(FetchError) as exc_info:
        candidates.add(4)
    assert exc_info.value.vector_id == 4
    assert isinstance(exc_info.value.__cause__, IOError)


def test_missing_vector_in_batch_raises_fetch_error():
    """add_many names the missing ID"""
    candidates = make_set(3, n=5)

    with pytest.raises(FetchError) as exc_info:
        candidates.add_many([1, 42])
    assert exc_info.value.vector_id == 42
    assert isinstance(exc_info.value.__cause__, VectorNotFoundError)
