"""
Vector sources: where the index gets vectors from.

The graph never owns vectors. It stores IDs only and asks a VectorSource for
the vector behind an ID whenever it needs a distance. In a database the source
is the object store; in tests and small deployments it is a numpy array.

Sources must tolerate concurrent fetches from several build workers and
searches.
"""

from abc import ABC, abstractmethod
from typing import Callable, Sequence

import numpy as np
import numpy.typing as npt

from vamanadb.errors import FetchError, VectorNotFoundError

Vector = npt.NDArray[np.float32]
Matrix = npt.NDArray[np.float32]


class VectorSource(ABC):
    """Abstract vector source addressed by integer IDs in ``[0, len(source))``."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Dimensionality of every vector in the source."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of vectors the source holds."""

    @abstractmethod
    def fetch(self, vector_id: int) -> Vector:
        """
        Return the vector stored under an ID.

        Raises:
            VectorNotFoundError: If the ID has no vector
        """

    def fetch_many(self, vector_ids: Sequence[int]) -> Matrix:
        """
        Return the vectors for several IDs as a 2D array (one row per ID).

        Sources that can batch I/O should override this; the default fetches
        one ID at a time.
        """
        if len(vector_ids) == 0:
            return np.empty((0, self.dimension), dtype=np.float32)
        return np.stack([self.fetch(vector_id) for vector_id in vector_ids])


class ArrayVectorSource(VectorSource):
    """In-memory source backed by a 2D numpy array; row i is vector i."""

    def __init__(self, vectors: np.ndarray) -> None:
        vectors = np.asarray(vectors, dtype=np.float32)
        if vectors.ndim != 2:
            raise ValueError(f"Expected a 2D array of vectors, got shape {vectors.shape}")
        self.vectors = vectors

    @property
    def dimension(self) -> int:
        return self.vectors.shape[1]

    def __len__(self) -> int:
        return self.vectors.shape[0]

    def fetch(self, vector_id: int) -> Vector:
        if not 0 <= vector_id < len(self):
            raise VectorNotFoundError(vector_id)
        return self.vectors[vector_id]

    def fetch_many(self, vector_ids: Sequence[int]) -> Matrix:
        ids = np.asarray(vector_ids, dtype=np.int64)
        if len(ids) == 0:
            return np.empty((0, self.dimension), dtype=np.float32)
        bad = (ids < 0) | (ids >= len(self))
        if bad.any():
            raise VectorNotFoundError(int(ids[np.argmax(bad)]))
        return self.vectors[ids]


class CallableVectorSource(VectorSource):
    """
    Source that delegates to a fetch callback.

    This is how an external store plugs in: pass a function that maps an ID
    to a vector (raising VectorNotFoundError or any other error on failure).
    """

    def __init__(self, fetch_fn: Callable[[int], Vector], size: int, dimension: int) -> None:
        self._fetch_fn = fetch_fn
        self._size = size
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def __len__(self) -> int:
        return self._size

    def fetch(self, vector_id: int) -> Vector:
        return np.asarray(self._fetch_fn(vector_id), dtype=np.float32)


class SubsetVectorSource(VectorSource):
    """
    View of a parent source restricted to some IDs, renumbered from 0.

    Local ID i maps to ``member_ids[i]`` in the parent. The clustered builder
    uses one of these per cluster so a sub-graph can be built with dense IDs.
    """

    def __init__(self, parent: VectorSource, member_ids: Sequence[int]) -> None:
        self.parent = parent
        self.member_ids = np.asarray(member_ids, dtype=np.int64)

    @property
    def dimension(self) -> int:
        return self.parent.dimension

    def __len__(self) -> int:
        return len(self.member_ids)

    def fetch(self, vector_id: int) -> Vector:
        if not 0 <= vector_id < len(self):
            raise VectorNotFoundError(vector_id)
        return self.parent.fetch(int(self.member_ids[vector_id]))

    def fetch_many(self, vector_ids: Sequence[int]) -> Matrix:
        local = np.asarray(vector_ids, dtype=np.int64)
        bad = (local < 0) | (local >= len(self))
        if bad.any():
            raise VectorNotFoundError(int(local[np.argmax(bad)]))
        return self.parent.fetch_many(self.member_ids[local].tolist())


class QuantizedVectorSource(VectorSource):
    """
    Source that reconstructs vectors from scalar-quantizer codes.

    Fetches return the per-dimension tile centroids, i.e. an approximation of
    the original vector that costs ``dimension`` small integers to store.
    """

    def __init__(self, quantizer, codes: np.ndarray) -> None:
        self.quantizer = quantizer
        self.codes = codes

    @property
    def dimension(self) -> int:
        return self.codes.shape[1]

    def __len__(self) -> int:
        return self.codes.shape[0]

    def fetch(self, vector_id: int) -> Vector:
        if not 0 <= vector_id < len(self):
            raise VectorNotFoundError(vector_id)
        return self.quantizer.decode(self.codes[vector_id])

    def fetch_many(self, vector_ids: Sequence[int]) -> Matrix:
        ids = np.asarray(vector_ids, dtype=np.int64)
        bad = (ids < 0) | (ids >= len(self))
        if bad.any():
            raise VectorNotFoundError(int(ids[np.argmax(bad)]))
        return self.quantizer.decode_batch(self.codes[ids])


def fetch_vector(source: VectorSource, vector_id: int) -> Vector:
    """
    Fetch one vector, wrapping any source failure in a FetchError.

    Raises:
        FetchError: Carrying the offending ID, chained to the source error
    """
    try:
        return source.fetch(vector_id)
    except FetchError:
        raise
    except Exception as exc:
        raise FetchError(vector_id) from exc


def fetch_vectors(source: VectorSource, vector_ids: Sequence[int]) -> Matrix:
    """
    Fetch several vectors in one call, wrapping failures in a FetchError.

    When a batch fails without naming the bad ID, the IDs are fetched one by
    one so the error can point at the one that failed.
    """
    try:
        return source.fetch_many(vector_ids)
    except FetchError:
        raise
    except VectorNotFoundError as exc:
        raise FetchError(exc.vector_id) from exc
    except Exception:
        return np.stack([fetch_vector(source, vector_id) for vector_id in vector_ids])
