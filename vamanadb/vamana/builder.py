"""
Vamana graph construction.

This module builds the graph over a whole vector set. The construction
algorithm (DiskANN's Vamana):
1. Pick the medoid as the fixed entry point
2. Start from a random R-regular graph
3. For every node v, in random order:
   a. Greedy search from the entry point toward v, recording visited nodes
   b. Robust-prune the visited nodes (plus v's current edges) down to R
   c. Add back-edges p -> v, re-pruning p when it is already full
4. Run the pass again with the final alpha (earlier passes use alpha = 1.0)
5. Link every node the entry point still cannot reach from a nearby node it can

The first pass with alpha = 1.0 builds a sparse graph with good local
structure; the final pass with alpha > 1 adds the long-range edges that let
searches cross the dataset in few hops.
"""

import logging
from typing import List, Optional

import numpy as np
from tqdm import tqdm

from vamanadb.errors import ConfigurationError, ConstructionError
from vamanadb.vamana.distance import DistanceFunction
from vamanadb.vamana.graph import VamanaGraph
from vamanadb.vamana.searcher import greedy_search
from vamanadb.vamana.utils import compute_medoid, initialize_random_edges, robust_prune
from vamanadb.vector_source import VectorSource, fetch_vector

logger = logging.getLogger(__name__)


class VamanaBuilder:
    """
    Builds a Vamana graph and inserts nodes into it.

    This class encapsulates the per-node procedure (search, prune, back-edges)
    and the multi-pass driver that runs it over every vector.
    """

    def __init__(
        self,
        graph: VamanaGraph,
        source: VectorSource,
        distance: DistanceFunction,
        build_list_size: int = 50,
        alpha: float = 1.2,
        passes: int = 2,
        random_state: Optional[int] = None,
        show_progress: bool = False,
    ) -> None:
        """
        Initialize builder with a graph to operate on.

        Args:
            graph: The VamanaGraph to build (one node per vector in source)
            source: Vector source for the graph's IDs
            distance: Distance metric
            build_list_size: Candidate list size L for construction searches
            alpha: Pruning factor used by the final pass
            passes: Number of passes over the data
            random_state: Seed for initialization and node order
            show_progress: Show a tqdm progress bar per pass
        """
        if build_list_size < 1:
            raise ConfigurationError("build_list_size must be >= 1")
        if alpha < 1.0:
            raise ConfigurationError("alpha must be >= 1.0")
        if passes < 1:
            raise ConfigurationError("passes must be >= 1")

        self.graph = graph
        self.source = source
        self.distance = distance
        self.build_list_size = build_list_size
        self.alpha = alpha
        self.passes = passes
        self.show_progress = show_progress
        self.rng = np.random.default_rng(random_state)

    def pass_alphas(self) -> List[float]:
        """Alpha used by each pass: 1.0 for all but the last, then alpha."""
        return [1.0] * (self.passes - 1) + [self.alpha]

    def build(self) -> VamanaGraph:
        """
        Build the graph over every vector in the source.

        Returns:
            The built graph

        Raises:
            ConfigurationError: If there are no vectors
            ConstructionError: If no valid entry point can be established, or
                some node cannot be made reachable from it
            FetchError: If the source fails; nodes already processed keep
                consistent edge lists
        """
        n = self.graph.size()
        if n == 0:
            raise ConfigurationError("Cannot build an index over an empty vector set")

        entry_point = compute_medoid(self.source, n, self.distance)
        if not 0 <= entry_point < n:
            raise ConstructionError(f"Medoid {entry_point} is outside the graph")
        self.graph.entry_point = entry_point

        logger.info(
            "Building Vamana graph: n=%d, R=%d, L=%d, alpha=%.2f, passes=%d, entry=%d",
            n, self.graph.max_degree, self.build_list_size, self.alpha, self.passes, entry_point,
        )

        initialize_random_edges(self.graph, self.rng)

        for pass_index, alpha in enumerate(self.pass_alphas()):
            order = self.rng.permutation(n)
            for node_id in tqdm(
                order,
                desc=f"Vamana pass {pass_index + 1}/{self.passes}",
                unit="node",
                disable=not self.show_progress,
            ):
                self.insert(int(node_id), alpha)
            logger.debug(
                "Pass %d (alpha=%.2f) done: %d edges", pass_index + 1, alpha, self.graph.num_edges()
            )

        added = self.connect_unreachable()
        if added:
            logger.info("Linked %d nodes entry point %d could not reach", added, entry_point)

        logger.info("Vamana graph built: %d edges", self.graph.num_edges())
        return self.graph

    def insert(self, node_id: int, alpha: Optional[float] = None) -> None:
        """
        Run the per-node procedure: search, prune, add back-edges.

        Works both during a build pass and for a node appended to an already
        built graph. Every edge update replaces a whole neighbor tuple.

        Args:
            node_id: Node to (re)connect
            alpha: Pruning factor (default: the builder's alpha)
        """
        alpha = self.alpha if alpha is None else alpha
        vector = fetch_vector(self.source, node_id)

        if self.graph.entry_point is None:
            # First node of an incrementally grown graph
            self.graph.entry_point = node_id
            return

        candidates = greedy_search(
            self.graph, self.source, self.distance, vector, self.build_list_size
        )

        pool = [vector_id for vector_id, _ in candidates.visited()]
        pool.extend(self.graph.get_neighbors(node_id))

        neighbors = robust_prune(
            node_id, vector, pool, self.source, self.distance, alpha, self.graph.max_degree
        )
        self.graph.set_neighbors(node_id, neighbors)

        for neighbor_id in neighbors:
            self._add_back_edge(neighbor_id, node_id, alpha)

    def _add_back_edge(self, from_id: int, to_id: int, alpha: float) -> None:
        """
        Add the edge from_id -> to_id, pruning from_id if it is full.

        Args:
            from_id: Node receiving the new out-edge
            to_id: Target of the edge
            alpha: Pruning factor
        """
        current = self.graph.get_neighbors(from_id)
        if to_id in current:
            return

        if len(current) < self.graph.max_degree:
            self.graph.set_neighbors(from_id, current + (to_id,))
            return

        from_vector = fetch_vector(self.source, from_id)
        pruned = robust_prune(
            from_id,
            from_vector,
            current + (to_id,),
            self.source,
            self.distance,
            alpha,
            self.graph.max_degree,
        )
        self.graph.set_neighbors(from_id, pruned)

    def connect_unreachable(self, max_rounds: int = 10) -> int:
        """
        Give every node the entry point cannot reach an in-edge from one it can.

        A search toward an unreachable node u only expands reachable nodes.
        The closest of them with a free slot gets the edge to u; when all of
        them are full, the closest one is pruned down to R - 1 neighbors and
        u is added. That pruning can cut other nodes off, so the BFS repeats
        until it covers the whole graph.

        Args:
            max_rounds: Repair rounds before giving up

        Returns:
            Number of edges added

        Raises:
            ConstructionError: If nodes are still unreachable after max_rounds
        """
        added = 0
        for _ in range(max_rounds):
            reachable = self.graph.reachable_from_entry()
            unreachable = [i for i in range(self.graph.size()) if i not in reachable]
            if not unreachable:
                return added

            for node_id in unreachable:
                if node_id in reachable:
                    continue
                self._link_from_reachable(node_id)
                added += 1
                self.graph.reachable_from([node_id], reachable)

        unreachable = self.graph.unreachable_nodes()
        if unreachable:
            raise ConstructionError(
                f"{len(unreachable)} nodes are still unreachable from entry point "
                f"{self.graph.entry_point} after {max_rounds} repair rounds"
            )
        return added

    def _link_from_reachable(self, node_id: int) -> int:
        """
        Add an edge to node_id from a reachable node close to it.

        Returns:
            The node that received the edge
        """
        vector = fetch_vector(self.source, node_id)
        candidates = greedy_search(
            self.graph, self.source, self.distance, vector, self.build_list_size
        )
        expanded = [
            vector_id
            for vector_id, _ in sorted(candidates.visited(), key=lambda item: (item[1], item[0]))
            if vector_id != node_id
        ]
        if not expanded:
            raise ConstructionError(f"No reachable node to link {node_id} from")

        for parent in expanded:
            neighbors = self.graph.get_neighbors(parent)
            if len(neighbors) < self.graph.max_degree:
                self.graph.set_neighbors(parent, neighbors + (node_id,))
                return parent

        parent = expanded[0]
        kept = robust_prune(
            parent,
            fetch_vector(self.source, parent),
            self.graph.get_neighbors(parent),
            self.source,
            self.distance,
            self.alpha,
            self.graph.max_degree,
        )[: self.graph.max_degree - 1]
        self.graph.set_neighbors(parent, kept + (node_id,))
        return parent
