"""
Vamana index management for VamanaDB.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
import logging
import threading
import time

import numpy as np
import numpy.typing as npt

from vamanadb.config import VamanaConfig, get_default_config
from vamanadb.errors import ConfigurationError, DimensionMismatchError, NotTrainedError
from vamanadb.persistence import load_index, save_index
from vamanadb.quantization import ScalarQuantizer
from vamanadb.vamana.builder import VamanaBuilder
from vamanadb.vamana.clustered import ClusteredBuilder
from vamanadb.vamana.distance import get_distance_function
from vamanadb.vamana.graph import VamanaGraph
from vamanadb.vamana.searcher import VamanaSearcher, greedy_search
from vamanadb.vector_source import QuantizedVectorSource, VectorSource, fetch_vector, fetch_vectors

Vector = npt.NDArray[np.float32]

logger = logging.getLogger(__name__)

QUANTIZER_BATCH_SIZE = 4096


class VamanaIndex:
    """
    Approximate nearest neighbor index over an external vector source.

    This is the main entry point for VamanaDB. It builds a Vamana graph over
    the vectors of a VectorSource, answers k-NN queries, optionally trains a
    scalar quantizer for compressed search, and saves/loads the built index.

    IMPORTANT: The index never copies the vectors. It stores vector IDs only
    and fetches vectors from the source on demand, so the same source must be
    passed again when loading a saved index.

    Example:
        >>> vectors = np.random.rand(1000, 64).astype(np.float32)
        >>> index = VamanaIndex(ArrayVectorSource(vectors))
        >>> index.build()
        >>> index.search(vectors[0], k=5)
        [(0, 0.0), (412, 5.31), ...]
    """

    def __init__(
        self,
        source: VectorSource,
        config: Optional[VamanaConfig] = None,
        num_vectors: Optional[int] = None,
    ) -> None:
        """
        Initialize the index.

        Args:
            source: Where vectors come from (IDs 0..num_vectors-1)
            config: VamanaConfig with construction/search parameters
            num_vectors: Number of vectors to index (default: len(source))

        Raises:
            ConfigurationError: If the vector set is empty or larger than the source
        """
        if config is None:
            config = get_default_config()
        self.config = config

        n = len(source) if num_vectors is None else num_vectors
        if n <= 0:
            raise ConfigurationError("Cannot index an empty vector set")
        if n > len(source):
            raise ConfigurationError(f"num_vectors={n} exceeds the {len(source)} vectors in the source")

        self.source = source
        self.dimension = source.dimension
        self.distance = get_distance_function(config.distance_metric)

        self._graph = VamanaGraph(num_nodes=n, max_degree=config.max_degree, dimension=self.dimension)
        self._searcher = VamanaSearcher(
            self._graph, source, self.distance, search_list_size=config.search_list_size
        )
        self._built = False

        # Serializes incremental inserts; searches never take it
        self._write_lock = threading.Lock()

        self.quantizer: Optional[ScalarQuantizer] = None
        self._codes: Optional[np.ndarray] = None

        self._last_build_seconds = 0.0

    @property
    def graph(self) -> VamanaGraph:
        return self._graph

    @property
    def is_built(self) -> bool:
        return self._built

    def _make_builder(self) -> VamanaBuilder:
        return VamanaBuilder(
            self._graph,
            self.source,
            self.distance,
            build_list_size=self.config.build_list_size,
            alpha=self.config.alpha,
            passes=self.config.build_passes,
            random_state=self.config.random_state,
            show_progress=self.config.show_progress,
        )

    def build(self) -> "VamanaIndex":
        """
        Build the graph, sharded when the config asks for more than one cluster.

        Returns:
            self
        """
        if self.config.is_sharded:
            return self.build_sharded()

        start_time = time.perf_counter()
        self._make_builder().build()
        self._finish_build(start_time)
        return self

    def build_sharded(self) -> "VamanaIndex":
        """
        Build the graph from overlapping per-cluster sub-graphs.

        Returns:
            self
        """
        start_time = time.perf_counter()
        ClusteredBuilder(
            self._graph,
            self.source,
            self.distance,
            build_list_size=self.config.build_list_size,
            alpha=self.config.alpha,
            passes=self.config.build_passes,
            cluster_count=self.config.cluster_count,
            cluster_overlap=min(self.config.cluster_overlap, self.config.cluster_count),
            sample_size=self.config.cluster_sample_size,
            num_workers=self.config.num_workers,
            random_state=self.config.random_state,
            show_progress=self.config.show_progress,
        ).build()
        self._finish_build(start_time)
        return self

    def _finish_build(self, start_time: float) -> None:
        self._built = True
        self._last_build_seconds = time.perf_counter() - start_time
        logger.info("Index built in %.2fs (%s)", self._last_build_seconds, self.config)

    def insert(self, vector_id: int) -> None:
        """
        Add the next vector of the source to a built graph.

        The new node is connected with the same search/prune/back-edge
        procedure used during construction, then any node the entry point
        no longer reaches is linked back in. Each affected neighbor list is
        replaced as a whole, so concurrent searches stay consistent.

        Args:
            vector_id: Must equal the current graph size (IDs are dense)

        Raises:
            ConfigurationError: If the index has not been built yet
            ValueError: If the ID is not the next free ID
            FetchError: If the source cannot provide the vector; the index is
                left unchanged
        """
        with self._write_lock:
            if not self._built:
                raise ConfigurationError("Build the index before inserting vectors")
            if vector_id != self._graph.size():
                raise ValueError(f"Next vector id must be {self._graph.size()}, got {vector_id}")

            # The vector and its codes must be readable before any edge points at it
            vector = fetch_vector(self.source, vector_id)
            if self.quantizer is not None and self._codes is not None:
                code = self.quantizer.encode(vector)
                self._codes = np.vstack([self._codes, code[np.newaxis, :]])

            node_id = self._graph.add_node()
            builder = self._make_builder()
            builder.insert(node_id)
            builder.connect_unreachable()

    def set_search_list_size(self, search_list_size: int) -> None:
        """Set the default search list size L' for subsequent searches."""
        self._searcher.set_search_list_size(search_list_size)

    @property
    def search_list_size(self) -> int:
        return self._searcher.search_list_size

    def search(
        self,
        query: Vector,
        k: int = 10,
        search_list_size: Optional[int] = None,
        max_visits: Optional[int] = None,
        timeout: Optional[float] = None,
        use_quantizer: bool = False,
    ) -> List[Tuple[int, float]]:
        """
        Search for the k nearest neighbors of a query.

        Args:
            query: Query vector
            k: Number of results to return
            search_list_size: Override the default L' for this query
            max_visits: Optional cap on expanded nodes
            timeout: Optional time budget in seconds
            use_quantizer: Traverse with quantized vectors, then re-rank the
                candidates with exact distances

        Returns:
            List of (vector_id, distance) tuples, closest first, at most k.
            Empty if nothing has been built.

        Raises:
            DimensionMismatchError: If the query dimension doesn't match the index
            NotTrainedError: If use_quantizer is set but no quantizer was trained
        """
        query = np.asarray(query, dtype=np.float32)
        if query.ndim != 1 or len(query) != self.dimension:
            raise DimensionMismatchError(self.dimension, query.shape[-1] if query.ndim else 0)

        if not self._built:
            return []

        if not use_quantizer:
            return self._searcher.search(
                query, k, search_list_size=search_list_size, max_visits=max_visits, timeout=timeout
            )

        return self._search_quantized(query, k, search_list_size, max_visits, timeout)

    def _search_quantized(
        self,
        query: Vector,
        k: int,
        search_list_size: Optional[int],
        max_visits: Optional[int],
        timeout: Optional[float],
    ) -> List[Tuple[int, float]]:
        if self.quantizer is None or self._codes is None:
            raise NotTrainedError("Call train_quantizer() before searching with use_quantizer=True")

        if k <= 0:
            return []

        L = search_list_size if search_list_size is not None else self._searcher.search_list_size
        deadline = time.monotonic() + timeout if timeout is not None else None

        candidates = greedy_search(
            self._graph,
            QuantizedVectorSource(self.quantizer, self._codes),
            self.distance,
            query,
            max(L, k),
            max_visits=max_visits,
            deadline=deadline,
        )

        # Re-rank with exact vectors
        ids = candidates.elements()
        exact = self.distance.many(query, fetch_vectors(self.source, ids))
        ranked = sorted(zip(ids, exact.tolist()), key=lambda pair: (pair[1], pair[0]))
        return ranked[:k]

    def train_quantizer(self, bits: Optional[int] = None) -> ScalarQuantizer:
        """
        Train a scalar quantizer on every indexed vector and encode them.

        Args:
            bits: Code width (default: config.quantizer_bits)

        Returns:
            The trained quantizer
        """
        bits = self.config.quantizer_bits if bits is None else bits
        n = self._graph.size()
        quantizer = ScalarQuantizer(self.dimension, bits=bits)

        for start in range(0, n, QUANTIZER_BATCH_SIZE):
            ids = list(range(start, min(start + QUANTIZER_BATCH_SIZE, n)))
            quantizer.fit(fetch_vectors(self.source, ids))

        codes = np.empty((n, self.dimension), dtype=np.uint16)
        for start in range(0, n, QUANTIZER_BATCH_SIZE):
            ids = list(range(start, min(start + QUANTIZER_BATCH_SIZE, n)))
            codes[start:start + len(ids)] = quantizer.encode_batch(fetch_vectors(self.source, ids))

        self.quantizer = quantizer
        self._codes = codes
        logger.info("Trained %d-bit quantizer on %d vectors", bits, n)
        return quantizer

    @property
    def codes(self) -> Optional[np.ndarray]:
        return self._codes

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get statistics about the index.

        Returns:
            Dictionary with graph size, degree and reachability figures
        """
        n = self._graph.size()
        degrees = [self._graph.out_degree(i) for i in range(n)]
        return {
            "total_vectors": n,
            "dimension": self.dimension,
            "built": self._built,
            "entry_point": self._graph.entry_point,
            "num_edges": self._graph.num_edges(),
            "max_out_degree": max(degrees, default=0),
            "mean_out_degree": float(np.mean(degrees)) if degrees else 0.0,
            "unreachable_nodes": len(self._graph.unreachable_nodes()) if self._built else n,
            "search_list_size": self._searcher.search_list_size,
            "quantizer_trained": self.quantizer is not None,
            "build_seconds": self._last_build_seconds,
        }

    def size(self) -> int:
        """
        Get the number of indexed vectors.

        Returns:
            Number of graph nodes
        """
        return self._graph.size()

    def save(self, path: Union[str, Path]) -> Path:
        """
        Save the built graph (and quantizer, if trained) to a directory.

        Args:
            path: Target directory

        Returns:
            The index directory
        """
        if not self._built:
            raise ConfigurationError("Cannot save an index that has not been built")
        return save_index(path, self.config, self._graph, self.quantizer, self._codes)

    @classmethod
    def load(cls, path: Union[str, Path], source: VectorSource) -> "VamanaIndex":
        """
        Load a saved index without rebuilding.

        Args:
            path: Index directory written by ``save``
            source: The vector source the index was built over

        Returns:
            Loaded VamanaIndex

        Raises:
            CorruptIndexError: If the directory is missing, partial or invalid
            DimensionMismatchError: If the source has a different dimension
        """
        saved = load_index(path)

        if saved.graph.dimension != source.dimension:
            raise DimensionMismatchError(saved.graph.dimension, source.dimension)

        if saved.graph.size() > len(source):
            raise ConfigurationError(
                f"Saved index has {saved.graph.size()} nodes but the source only holds {len(source)} vectors"
            )

        index = cls(source, config=saved.config, num_vectors=saved.graph.size())
        index._graph = saved.graph
        index._searcher = VamanaSearcher(
            saved.graph, source, index.distance, search_list_size=saved.config.search_list_size
        )
        index.quantizer = saved.quantizer
        index._codes = saved.codes
        index._built = True
        return index

    def __repr__(self) -> str:
        return f"VamanaIndex(n={self.size()}, dim={self.dimension}, built={self._built}, {self.config})"
