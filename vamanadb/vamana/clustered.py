"""
Clustered (sharded) Vamana construction.

Building one graph over a very large dataset needs the whole edge table in
memory and a search over the full graph per node. The clustered build trades
a little recall for bounded work per shard:

1. Train KMeans on a sample and assign every vector to its ``overlap``
   nearest centroids, so clusters share border vectors
2. Build an independent Vamana sub-graph per cluster on a worker pool
3. Merge: per node, take the union of its out-edges across clusters
4. Re-run robust pruning per node over the union, capping at R
5. Link any node the global medoid cannot reach, as the single-graph build does

Workers only ever write their own private sub-graph. The merge runs in the
calling thread after every worker has finished, so the global edge table has
exactly one writer.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple

import numpy as np
from sklearn.cluster import KMeans
from tqdm import tqdm

from vamanadb.errors import ConfigurationError, ConstructionError
from vamanadb.vamana.builder import VamanaBuilder
from vamanadb.vamana.distance import DistanceFunction
from vamanadb.vamana.graph import VamanaGraph
from vamanadb.vamana.utils import compute_medoid, robust_prune
from vamanadb.vector_source import SubsetVectorSource, VectorSource, fetch_vector, fetch_vectors

logger = logging.getLogger(__name__)

ASSIGN_BATCH_SIZE = 4096


class ClusteredBuilder:
    """
    Builds a Vamana graph from overlapping per-cluster sub-graphs.
    """

    def __init__(
        self,
        graph: VamanaGraph,
        source: VectorSource,
        distance: DistanceFunction,
        build_list_size: int = 50,
        alpha: float = 1.2,
        passes: int = 2,
        cluster_count: int = 40,
        cluster_overlap: int = 2,
        sample_size: int = 10000,
        num_workers: int = 4,
        random_state: Optional[int] = None,
        show_progress: bool = False,
    ) -> None:
        """
        Initialize the clustered builder.

        Args:
            graph: Global graph to fill (one node per vector in source)
            source: Vector source
            distance: Distance metric
            build_list_size: Candidate list size L for sub-graph construction
            alpha: Pruning factor for sub-graphs and the final re-prune
            passes: Passes per sub-graph build
            cluster_count: Number of KMeans clusters
            cluster_overlap: Number of clusters each vector joins
            sample_size: Vectors sampled to train KMeans
            num_workers: Size of the worker pool for sub-graph builds
            random_state: Seed for sampling, KMeans and sub-graph builds
            show_progress: Show tqdm progress bars
        """
        if cluster_count < 1:
            raise ConfigurationError("cluster_count must be >= 1")
        if not 1 <= cluster_overlap <= cluster_count:
            raise ConfigurationError("cluster_overlap must be in [1, cluster_count]")
        if num_workers < 1:
            raise ConfigurationError("num_workers must be >= 1")

        self.graph = graph
        self.source = source
        self.distance = distance
        self.build_list_size = build_list_size
        self.alpha = alpha
        self.passes = passes
        self.cluster_count = cluster_count
        self.cluster_overlap = cluster_overlap
        self.sample_size = sample_size
        self.num_workers = num_workers
        self.random_state = random_state
        self.show_progress = show_progress

    def build(self) -> VamanaGraph:
        """
        Run the clustered build.

        Returns:
            The merged graph

        Raises:
            ConfigurationError: If there are no vectors
            ConstructionError: If no valid entry point can be established, or
                some node cannot be made reachable from it
            FetchError: If the source fails during any stage
        """
        n = self.graph.size()
        if n == 0:
            raise ConfigurationError("Cannot build an index over an empty vector set")

        entry_point = compute_medoid(self.source, n, self.distance)
        if not 0 <= entry_point < n:
            raise ConstructionError(f"Medoid {entry_point} is outside the graph")

        clusters = self.assign_clusters()
        logger.info(
            "Clustered build: n=%d, clusters=%d (non-empty %d), overlap=%d, workers=%d",
            n, self.cluster_count, len(clusters), self.cluster_overlap, self.num_workers,
        )

        with ThreadPoolExecutor(max_workers=self.num_workers) as executor:
            futures = [
                executor.submit(self._build_cluster, cluster_index, members)
                for cluster_index, members in enumerate(clusters)
            ]
            # Collect in submission order so the merge is deterministic
            shard_edges = [future.result() for future in futures]

        merged = self.merge_edges(n, shard_edges)
        self._reprune(merged)

        self.graph.entry_point = entry_point

        # Shards are reachable from their own medoids, not necessarily from the global one
        repair = VamanaBuilder(
            self.graph,
            self.source,
            self.distance,
            build_list_size=self.build_list_size,
            alpha=self.alpha,
        )
        added = repair.connect_unreachable()
        if added:
            logger.info("Linked %d nodes entry point %d could not reach", added, entry_point)

        logger.info("Clustered Vamana graph built: %d edges", self.graph.num_edges())
        return self.graph

    def assign_clusters(self) -> List[np.ndarray]:
        """
        Partition vector IDs into overlapping clusters.

        Returns:
            One sorted array of member IDs per non-empty cluster
        """
        n = self.graph.size()
        rng = np.random.default_rng(self.random_state)

        sample_ids = np.sort(rng.choice(n, size=min(n, self.sample_size), replace=False))
        sample = fetch_vectors(self.source, sample_ids.tolist())

        n_clusters = min(self.cluster_count, len(sample_ids))
        kmeans = KMeans(n_clusters=n_clusters, random_state=self.random_state, n_init=10)
        kmeans.fit(sample)

        overlap = min(self.cluster_overlap, n_clusters)
        members: List[List[np.ndarray]] = [[] for _ in range(n_clusters)]

        for start in range(0, n, ASSIGN_BATCH_SIZE):
            ids = np.arange(start, min(start + ASSIGN_BATCH_SIZE, n))
            batch = fetch_vectors(self.source, ids.tolist())

            # Distance of every vector in the batch to every centroid
            to_centroids = kmeans.transform(batch)
            nearest = np.argsort(to_centroids, axis=1, kind="stable")[:, :overlap]

            for cluster_index in range(n_clusters):
                in_cluster = (nearest == cluster_index).any(axis=1)
                if in_cluster.any():
                    members[cluster_index].append(ids[in_cluster])

        clusters = [np.concatenate(parts) for parts in members if parts]
        logger.debug("Cluster sizes: %s", [len(c) for c in clusters])
        return clusters

    def _build_cluster(self, cluster_index: int, members: np.ndarray) -> Dict[int, Tuple[int, ...]]:
        """
        Build the sub-graph of one cluster.

        Runs on a worker thread. The sub-graph and its builder are private to
        this call; only the returned edge map (in global IDs) leaves it.

        Returns:
            Mapping from global node ID to its out-edges in global IDs
        """
        if len(members) == 1:
            return {int(members[0]): ()}

        local_source = SubsetVectorSource(self.source, members)
        local_graph = VamanaGraph(len(members), self.graph.max_degree, self.graph.dimension)

        seed = None if self.random_state is None else self.random_state + cluster_index
        builder = VamanaBuilder(
            local_graph,
            local_source,
            self.distance,
            build_list_size=self.build_list_size,
            alpha=self.alpha,
            passes=self.passes,
            random_state=seed,
        )
        builder.build()

        logger.debug("Cluster %d built: %d nodes", cluster_index, len(members))
        return {
            int(members[local_id]): tuple(int(members[j]) for j in local_graph.get_neighbors(local_id))
            for local_id in range(len(members))
        }

    @staticmethod
    def merge_edges(
        num_nodes: int, shard_edges: List[Dict[int, Tuple[int, ...]]]
    ) -> List[List[int]]:
        """
        Union the out-edges each node got in every cluster it belongs to.

        Args:
            num_nodes: Number of nodes in the global graph
            shard_edges: Edge maps returned by the sub-graph builds

        Returns:
            Per node, the de-duplicated union of its edges in cluster order
        """
        merged: List[List[int]] = [[] for _ in range(num_nodes)]
        for edges in shard_edges:
            for node_id, neighbors in edges.items():
                merged[node_id].extend(neighbors)
        return [list(dict.fromkeys(neighbors)) for neighbors in merged]

    def _reprune(self, merged: List[List[int]]) -> None:
        """Robust-prune every node over its unioned edges and write the result."""
        for node_id in tqdm(
            range(len(merged)),
            desc="Re-pruning merged graph",
            unit="node",
            disable=not self.show_progress,
        ):
            candidates = merged[node_id]
            if not candidates:
                self.graph.set_neighbors(node_id, ())
                continue
            vector = fetch_vector(self.source, node_id)
            self.graph.set_neighbors(
                node_id,
                robust_prune(
                    node_id,
                    vector,
                    candidates,
                    self.source,
                    self.distance,
                    self.alpha,
                    self.graph.max_degree,
                ),
            )
