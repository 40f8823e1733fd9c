"""
Vamana graph data structure.

The graph is a flat, directed, degree-bounded graph over vector IDs. Unlike
HNSW there are no layers: every search starts from one fixed entry point (the
dataset medoid) and walks out-edges.

Nodes are slots of an arena indexed by vector ID. A node's out-edges are an
immutable tuple, and every update replaces the whole tuple, so a reader that
grabbed a neighbor list never sees it half-written.
"""

from collections import deque
from typing import Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np


class VamanaGraph:
    """
    Container for the Vamana graph: out-edges per node plus the entry point.

    Vector data is not stored here; nodes are referenced by ID only and
    vectors come from a VectorSource.
    """

    def __init__(self, num_nodes: int, max_degree: int, dimension: int) -> None:
        """
        Create a graph with ``num_nodes`` unconnected nodes.

        Args:
            num_nodes: Number of vectors the graph covers (IDs 0..num_nodes-1)
            max_degree: Maximum out-degree R
            dimension: Dimensionality of the indexed vectors
        """
        if num_nodes < 0:
            raise ValueError(f"num_nodes must be >= 0, got {num_nodes}")
        if max_degree < 1:
            raise ValueError(f"max_degree must be >= 1, got {max_degree}")

        self.max_degree = max_degree
        self.dimension = dimension

        self._edges: List[Tuple[int, ...]] = [() for _ in range(num_nodes)]

        # Fixed search entry point; None until construction picks the medoid
        self.entry_point: Optional[int] = None

    def get_neighbors(self, node_id: int) -> Tuple[int, ...]:
        """
        Get the out-edges of a node.

        Args:
            node_id: Node to query

        Returns:
            Tuple of neighbor IDs (a snapshot, safe to iterate while others write)
        """
        return self._edges[node_id]

    def set_neighbors(self, node_id: int, neighbors: Sequence[int]) -> None:
        """
        Replace a node's out-edges.

        Args:
            node_id: Node to update
            neighbors: New neighbor IDs, at most max_degree, no self-loop

        Raises:
            ValueError: If the list is too long, contains the node itself,
                contains duplicates or points outside the graph
        """
        new_edges = tuple(int(n) for n in neighbors)

        if len(new_edges) > self.max_degree:
            raise ValueError(
                f"Node {node_id} would have {len(new_edges)} neighbors, exceeds max_degree={self.max_degree}"
            )
        if node_id in new_edges:
            raise ValueError(f"Node {node_id} cannot be its own neighbor")
        if len(set(new_edges)) != len(new_edges):
            raise ValueError(f"Duplicate neighbors for node {node_id}: {new_edges}")
        for neighbor_id in new_edges:
            if not 0 <= neighbor_id < len(self._edges):
                raise ValueError(f"Neighbor {neighbor_id} of node {node_id} is not in the graph")

        self._edges[node_id] = new_edges

    def add_node(self) -> int:
        """
        Append an unconnected node to the arena.

        Returns:
            The ID of the new node
        """
        self._edges.append(())
        return len(self._edges) - 1

    def out_degree(self, node_id: int) -> int:
        """Number of out-edges of a node."""
        return len(self._edges[node_id])

    def max_out_degree(self) -> int:
        """Largest out-degree over all nodes (0 for an empty graph)."""
        return max((len(edges) for edges in self._edges), default=0)

    def num_edges(self) -> int:
        """Total number of directed edges."""
        return sum(len(edges) for edges in self._edges)

    def reachable_from_entry(self) -> Set[int]:
        """
        Collect every node reachable from the entry point.

        Returns:
            Set of reachable node IDs (empty if no entry point is set)
        """
        if self.entry_point is None:
            return set()
        return self.reachable_from([self.entry_point])

    def reachable_from(self, start_ids: Iterable[int], visited: Optional[Set[int]] = None) -> Set[int]:
        """
        Iterative BFS over out-edges from a set of start nodes.

        Args:
            start_ids: Nodes to start from
            visited: Nodes already known to be reached; the walk does not
                re-enter them, and the set is extended in place

        Returns:
            The visited set, including every start node
        """
        visited = set() if visited is None else visited
        queue: deque = deque()
        for start in start_ids:
            if start not in visited:
                visited.add(start)
                queue.append(start)

        while queue:
            current = queue.popleft()
            for neighbor in self._edges[current]:
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)

        return visited

    def unreachable_nodes(self) -> List[int]:
        """IDs of nodes that cannot be reached from the entry point."""
        reachable = self.reachable_from_entry()
        return [node_id for node_id in range(self.size()) if node_id not in reachable]

    def to_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Export the edges as dense arrays.

        Returns:
            (neighbors, degrees): an (n, max_degree) int64 matrix padded with -1
            and an (n,) int32 vector of out-degrees
        """
        n = self.size()
        neighbors = np.full((n, self.max_degree), -1, dtype=np.int64)
        degrees = np.zeros(n, dtype=np.int32)
        for node_id, edges in enumerate(self._edges):
            degrees[node_id] = len(edges)
            neighbors[node_id, : len(edges)] = edges
        return neighbors, degrees

    @classmethod
    def from_arrays(
        cls,
        neighbors: np.ndarray,
        degrees: np.ndarray,
        dimension: int,
        entry_point: Optional[int],
    ) -> "VamanaGraph":
        """
        Rebuild a graph from the arrays produced by ``to_arrays``.

        Raises:
            ValueError: If the arrays are inconsistent
        """
        if neighbors.ndim != 2 or degrees.shape != (neighbors.shape[0],):
            raise ValueError(
                f"Inconsistent graph arrays: neighbors {neighbors.shape}, degrees {degrees.shape}"
            )

        graph = cls(num_nodes=neighbors.shape[0], max_degree=neighbors.shape[1], dimension=dimension)
        for node_id in range(neighbors.shape[0]):
            degree = int(degrees[node_id])
            if not 0 <= degree <= graph.max_degree:
                raise ValueError(f"Node {node_id} has invalid degree {degree}")
            graph.set_neighbors(node_id, neighbors[node_id, :degree].tolist())

        if entry_point is not None and not 0 <= entry_point < graph.size():
            raise ValueError(f"Entry point {entry_point} is not in the graph")
        graph.entry_point = entry_point
        return graph

    def size(self) -> int:
        """
        Get the total number of nodes in the graph.

        Returns:
            Number of nodes
        """
        return len(self._edges)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"VamanaGraph(nodes={self.size()}, edges={self.num_edges()}, "
            f"R={self.max_degree}, dim={self.dimension}, entry={self.entry_point})"
        )
