"""
Vamana graph index implementation module.

This module contains the core components for building and searching a flat
proximity graph for approximate nearest neighbor search.

Components:
- distance: Distance metrics (squared L2, negated dot product, cosine)
- candidate_set: Bounded, distance-ordered working set of a search
- graph: Degree-bounded adjacency arena plus the fixed entry point
- utils: Robust pruning, medoid selection, random initialization
- builder: Multi-pass Vamana construction and incremental insertion
- searcher: Greedy best-first search
- clustered: Sharded construction through overlapping KMeans clusters
"""

from vamanadb.vamana.distance import DistanceFunction, get_distance_function
from vamanadb.vamana.candidate_set import CandidateEntry, CandidateSet
from vamanadb.vamana.graph import VamanaGraph
from vamanadb.vamana.utils import robust_prune, compute_medoid
from vamanadb.vamana.builder import VamanaBuilder
from vamanadb.vamana.searcher import VamanaSearcher, greedy_search
from vamanadb.vamana.clustered import ClusteredBuilder

__all__ = [
    "DistanceFunction",
    "get_distance_function",
    "CandidateEntry",
    "CandidateSet",
    "VamanaGraph",
    "robust_prune",
    "compute_medoid",
    "VamanaBuilder",
    "VamanaSearcher",
    "greedy_search",
    "ClusteredBuilder",
]
