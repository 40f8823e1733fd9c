"""
Scalar quantization with distribution-driven tiles.

A TileEncoder learns the distribution of one dimension's values and splits
it into tiles centered on the quantiles i / 2**bits. Each value is encoded as
the index of its tile, and decoded as the tile's centroid (the mean of the
values that fall into it).

The value distribution is modelled as a normal distribution summarized by a
running count, mean and sum of squared deviations (Welford's algorithm), so
training is a single streaming pass with constant memory:

- encode(x) = round(cdf(x) * 2**bits), a code in [0, 2**bits]
- code i covers cdf in [(i - 1/2) / 2**bits, (i + 1/2) / 2**bits)
- centroid(i) is the mean of the normal truncated to tile i

Inner tiles hold 1 / 2**bits of the distribution each, the two edge tiles
half that. Rounding keeps the mean on the middle code 2**(bits - 1) even when
the sample mean drifts slightly from the true one.

A ScalarQuantizer holds one TileEncoder per dimension and encodes whole
vectors into compact uint16 codes.
"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np
import numpy.typing as npt
from scipy.stats import norm

from vamanadb.errors import ConfigurationError, DimensionMismatchError, NotTrainedError
from vamanadb.vamana.distance import get_distance_function

Vector = npt.NDArray[np.float32]
Codes = npt.NDArray[np.uint16]

logger = logging.getLogger(__name__)

MAX_BITS = 15

# Codes within this distance of a tile edge round up into the upper tile
BOUNDARY_TOLERANCE = 1e-9


class TileEncoder:
    """
    Encodes scalars of one dimension into 2**bits equal-population tiles.

    Example:
        >>> encoder = TileEncoder(bits=4)
        >>> encoder.fit(np.random.normal(100, 1, 1_000_000))
        >>> encoder.encode(0.1), encoder.encode(100), encoder.encode(1000)
        (0, 8, 16)
    """

    def __init__(self, bits: int = 8) -> None:
        """
        Create an untrained encoder.

        Args:
            bits: Code width; the encoder has 2**bits tiles
        """
        if not 1 <= bits <= MAX_BITS:
            raise ConfigurationError(f"bits must be in [1, {MAX_BITS}], got {bits}")

        self.bits = bits
        self.tiles = 2 ** bits

        # Running summary: count, mean and sum of squared deviations
        self.count = 0
        self.mean = 0.0
        self.m2 = 0.0

    def add(self, value: float) -> None:
        """
        Observe one training value (Welford update).

        Args:
            value: Scalar drawn from this dimension
        """
        value = float(value)
        self.count += 1
        delta = value - self.mean
        self.mean += delta / self.count
        self.m2 += delta * (value - self.mean)

    def fit(self, values: np.ndarray) -> "TileEncoder":
        """
        Observe a batch of training values.

        The batch summary is merged into the running one (Chan et al.), so
        ``fit`` and repeated ``add`` calls can be mixed freely.

        Args:
            values: 1D array of scalars

        Returns:
            self
        """
        values = np.asarray(values, dtype=np.float64).ravel()
        if len(values) == 0:
            return self

        batch_count = len(values)
        batch_mean = float(values.mean())
        batch_m2 = float(((values - batch_mean) ** 2).sum())

        total = self.count + batch_count
        delta = batch_mean - self.mean
        self.mean += delta * batch_count / total
        self.m2 += batch_m2 + delta * delta * self.count * batch_count / total
        self.count = total
        return self

    @property
    def is_trained(self) -> bool:
        return self.count > 0

    @property
    def std(self) -> float:
        """Population standard deviation of the observed values."""
        self._check_trained()
        return float(np.sqrt(max(self.m2, 0.0) / self.count))

    def _check_trained(self) -> None:
        if self.count == 0:
            raise NotTrainedError("TileEncoder has not observed any training data")

    def encode(self, value: float) -> int:
        """
        Map a scalar to its tile index.

        Monotonic: value1 <= value2 implies encode(value1) <= encode(value2).

        Args:
            value: Scalar to encode

        Returns:
            Tile index in [0, 2**bits]

        Raises:
            NotTrainedError: If no training data has been observed
            ValueError: If the value is NaN or infinite
        """
        return int(self.encode_many(np.asarray([value]))[0])

    def encode_many(self, values: np.ndarray) -> np.ndarray:
        """Vectorized ``encode`` over a 1D array."""
        self._check_trained()
        values = np.asarray(values, dtype=np.float64)
        if not np.all(np.isfinite(values)):
            raise ValueError("Cannot encode non-finite values")
        std = self.std

        if std == 0.0:
            # Degenerate distribution: a step at the mean
            codes = np.where(values < self.mean, 0, np.where(values > self.mean, self.tiles, self.tiles // 2))
            return codes.astype(np.uint16)

        cdf = norm.cdf(values, loc=self.mean, scale=std)
        codes = np.floor(cdf * self.tiles + 0.5 + BOUNDARY_TOLERANCE)
        return np.clip(codes, 0, self.tiles).astype(np.uint16)

    def _cdf_edges(self) -> np.ndarray:
        """CDF values at the tile edges: 0, 0.5 / T, 1.5 / T, ..., 1."""
        inner = (np.arange(self.tiles) + 0.5) / self.tiles
        return np.concatenate([[0.0], inner, [1.0]])

    def centroid(self, code: int) -> float:
        """
        Representative value of a tile: the mean of the values it holds.

        Args:
            code: Tile index in [0, 2**bits]

        Returns:
            Centroid value

        Raises:
            NotTrainedError: If no training data has been observed
            ValueError: If the code is out of range
        """
        self._check_trained()
        if not 0 <= code <= self.tiles:
            raise ValueError(f"Code {code} out of range [0, {self.tiles}]")
        return float(self.centroids()[code])

    def centroids(self) -> np.ndarray:
        """
        Centroids of every code.

        Returns:
            Array of length 2**bits + 1
        """
        self._check_trained()
        std = self.std
        if std == 0.0:
            return np.full(self.tiles + 1, self.mean, dtype=np.float64)

        # Standardized tile edges; the outer ones are -inf and +inf
        cdf_edges = self._cdf_edges()
        edges = norm.ppf(cdf_edges)
        lower, upper = edges[:-1], edges[1:]

        # Mean of a standard normal truncated to [a, b] is (pdf(a) - pdf(b)) / (cdf(b) - cdf(a))
        offsets = (norm.pdf(lower) - norm.pdf(upper)) / np.diff(cdf_edges)
        return self.mean + std * offsets

    def boundaries(self) -> np.ndarray:
        """
        Lower boundary of each of the 2**bits + 1 tiles, strictly increasing.

        The first boundary is -inf: values below the distribution snap to tile 0.
        """
        self._check_trained()
        std = self.std
        if std == 0.0:
            # Not strictly increasing; a zero-variance dimension has no interior tiles
            return np.full(self.tiles + 1, self.mean)
        return norm.ppf(self._cdf_edges()[:-1], loc=self.mean, scale=std)

    def __repr__(self) -> str:
        if not self.is_trained:
            return f"TileEncoder(bits={self.bits}, untrained)"
        return f"TileEncoder(bits={self.bits}, n={self.count}, mean={self.mean:.4f}, std={self.std:.4f})"


class ScalarQuantizer:
    """
    Per-dimension scalar quantizer built from TileEncoders.

    Encodes a float vector into one code per dimension and decodes codes back
    into tile centroids. Used for compact storage and cheap approximate
    distances.
    """

    def __init__(self, dimension: int, bits: int = 8) -> None:
        """
        Create an untrained quantizer.

        Args:
            dimension: Vector dimensionality
            bits: Code width per dimension
        """
        if dimension < 1:
            raise ConfigurationError(f"dimension must be >= 1, got {dimension}")

        self.dimension = dimension
        self.bits = bits
        self.encoders: List[TileEncoder] = [TileEncoder(bits) for _ in range(dimension)]

        # Centroid table (dimension, 2**bits + 1), rebuilt lazily after training
        self._table: Optional[np.ndarray] = None

    def _check_vector(self, vector: np.ndarray) -> None:
        if vector.shape[-1] != self.dimension:
            raise DimensionMismatchError(self.dimension, vector.shape[-1])

    def add(self, vector: Vector) -> None:
        """Observe one training vector."""
        vector = np.asarray(vector)
        self._check_vector(vector)
        for encoder, value in zip(self.encoders, vector):
            encoder.add(value)
        self._table = None

    def fit(self, vectors: np.ndarray) -> "ScalarQuantizer":
        """
        Observe a batch of training vectors.

        Args:
            vectors: 2D array (n_vectors, dimension)

        Returns:
            self
        """
        vectors = np.atleast_2d(np.asarray(vectors))
        self._check_vector(vectors)
        for d, encoder in enumerate(self.encoders):
            encoder.fit(vectors[:, d])
        self._table = None
        logger.debug("Quantizer trained on %d more vectors", len(vectors))
        return self

    @property
    def is_trained(self) -> bool:
        return all(encoder.is_trained for encoder in self.encoders)

    def _centroid_table(self) -> np.ndarray:
        if self._table is None:
            self._table = np.stack([encoder.centroids() for encoder in self.encoders])
        return self._table

    def encode(self, vector: Vector) -> Codes:
        """
        Encode one vector.

        Returns:
            uint16 array of codes, one per dimension

        Raises:
            NotTrainedError: If the quantizer has not seen training data
        """
        vector = np.asarray(vector)
        self._check_vector(vector)
        return self.encode_batch(vector[np.newaxis, :])[0]

    def encode_batch(self, vectors: np.ndarray) -> Codes:
        """Encode a 2D array of vectors into a (n, dimension) uint16 array."""
        vectors = np.atleast_2d(np.asarray(vectors))
        self._check_vector(vectors)
        codes = np.empty(vectors.shape, dtype=np.uint16)
        for d, encoder in enumerate(self.encoders):
            codes[:, d] = encoder.encode_many(vectors[:, d])
        return codes

    def decode(self, codes: Codes) -> Vector:
        """Reconstruct one vector from its codes (per-dimension centroids)."""
        codes = np.asarray(codes)
        self._check_vector(codes)
        return self.decode_batch(codes[np.newaxis, :])[0]

    def decode_batch(self, codes: np.ndarray) -> np.ndarray:
        """Reconstruct a (n, dimension) array of vectors from codes."""
        codes = np.atleast_2d(np.asarray(codes, dtype=np.int64))
        self._check_vector(codes)
        table = self._centroid_table()
        return table[np.arange(self.dimension), codes].astype(np.float32)

    def centroid(self, dimension: int, code: int) -> float:
        """Centroid of one code in one dimension."""
        return self.encoders[dimension].centroid(code)

    def distance(self, query: Vector, codes: Codes, metric: str = "l2") -> float:
        """
        Approximate distance between an exact query and an encoded vector.

        Args:
            query: Exact query vector
            codes: Codes of the stored vector
            metric: Distance metric name

        Returns:
            Distance between the query and the reconstructed vector
        """
        return get_distance_function(metric)(np.asarray(query, dtype=np.float32), self.decode(codes))

    def get_state(self) -> Dict[str, Any]:
        """Training state as plain arrays, for persistence."""
        return {
            "bits": self.bits,
            "count": np.array([e.count for e in self.encoders], dtype=np.int64),
            "mean": np.array([e.mean for e in self.encoders], dtype=np.float64),
            "m2": np.array([e.m2 for e in self.encoders], dtype=np.float64),
        }

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "ScalarQuantizer":
        """Restore a quantizer from ``get_state`` output."""
        count = np.asarray(state["count"])
        mean = np.asarray(state["mean"])
        m2 = np.asarray(state["m2"])
        if not count.shape == mean.shape == m2.shape or count.ndim != 1:
            raise ValueError("Quantizer state arrays have inconsistent shapes")

        quantizer = cls(dimension=len(count), bits=int(state["bits"]))
        for encoder, c, mu, s in zip(quantizer.encoders, count, mean, m2):
            encoder.count = int(c)
            encoder.mean = float(mu)
            encoder.m2 = float(s)
        return quantizer

    def __repr__(self) -> str:
        state = "trained" if self.is_trained else "untrained"
        return f"ScalarQuantizer(dim={self.dimension}, bits={self.bits}, {state})"
