"""
VamanaDB - Vamana Graph Index for Approximate Nearest Neighbor Search

The vector-search core of a vector database: a flat, degree-bounded proximity
graph built with greedy search and robust pruning (optionally sharded through
KMeans clusters), plus a distribution-driven scalar quantizer.
"""

__version__ = "0.1.0"

from vamanadb.index import VamanaIndex
from vamanadb.config import (
    VamanaConfig,
    get_default_config,
    get_sharded_config,
)
from vamanadb.errors import (
    VamanaError,
    ConfigurationError,
    DimensionMismatchError,
    VectorNotFoundError,
    FetchError,
    NotTrainedError,
    ConstructionError,
    CorruptIndexError,
)
from vamanadb.quantization import TileEncoder, ScalarQuantizer
from vamanadb.vector_source import (
    VectorSource,
    ArrayVectorSource,
    CallableVectorSource,
)

__all__ = [
    "VamanaIndex",
    "VamanaConfig",
    "get_default_config",
    "get_sharded_config",
    "VamanaError",
    "ConfigurationError",
    "DimensionMismatchError",
    "VectorNotFoundError",
    "FetchError",
    "NotTrainedError",
    "ConstructionError",
    "CorruptIndexError",
    "TileEncoder",
    "ScalarQuantizer",
    "VectorSource",
    "ArrayVectorSource",
    "CallableVectorSource",
]
