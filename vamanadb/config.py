"""Configuration system for VamanaDB index construction and search.

Usage:
    from vamanadb import VamanaIndex, VamanaConfig

    # Default config
    index = VamanaIndex(source)

    # Custom config
    config = VamanaConfig(max_degree=64, build_list_size=125)
    index = VamanaIndex(source, config=config)

    # From file
    config = VamanaConfig.from_json("my_config.json")
    index = VamanaIndex(source, config=config)
"""

from typing import Dict, Any
import json
from dataclasses import dataclass, asdict

from vamanadb.errors import ConfigurationError

VALID_METRICS = ("l2", "dot", "cosine")


@dataclass
class VamanaConfig:
    """Configuration for a Vamana index.

    Graph parameters:
        max_degree: Maximum out-degree R of every node
        build_list_size: Candidate list size L used while building
        alpha: Pruning factor (>= 1.0, larger keeps more long-range edges)
        distance_metric: "l2", "dot" or "cosine"
        build_passes: Number of passes over the data (last pass uses alpha,
            earlier passes use 1.0)

    Search parameters:
        search_list_size: Default candidate list size L' for queries

    Clustered build:
        cluster_count: Number of KMeans clusters (1 disables sharding)
        cluster_overlap: Number of clusters each vector is assigned to
        cluster_sample_size: Vectors sampled to train KMeans
        num_workers: Size of the worker pool that builds sub-graphs

    Quantization:
        quantizer_bits: Code width of the scalar quantizer
    """

    # Graph parameters
    max_degree: int = 32
    build_list_size: int = 50
    alpha: float = 1.2
    distance_metric: str = "l2"
    build_passes: int = 2

    # Search defaults
    search_list_size: int = 100

    # Clustered build
    cluster_count: int = 1
    cluster_overlap: int = 2
    cluster_sample_size: int = 10000
    num_workers: int = 4

    # Quantization
    quantizer_bits: int = 8

    # Reproducibility and diagnostics
    random_state: int = 42
    show_progress: bool = False

    # Metadata
    config_name: str = "default"

    def __post_init__(self):
        """Validate configuration."""
        if self.max_degree < 1:
            raise ConfigurationError("max_degree must be >= 1")

        if self.build_list_size < 1:
            raise ConfigurationError("build_list_size must be >= 1")

        if self.alpha < 1.0:
            raise ConfigurationError("alpha must be >= 1.0")

        if self.distance_metric not in VALID_METRICS:
            raise ConfigurationError(f"distance_metric must be one of {list(VALID_METRICS)}")

        if self.build_passes < 1:
            raise ConfigurationError("build_passes must be >= 1")

        if self.search_list_size < 1:
            raise ConfigurationError("search_list_size must be >= 1")

        if self.cluster_count < 1:
            raise ConfigurationError("cluster_count must be >= 1")

        if self.cluster_overlap < 1:
            raise ConfigurationError("cluster_overlap must be >= 1")

        if self.is_sharded and self.cluster_overlap > self.cluster_count:
            raise ConfigurationError("cluster_overlap must not exceed cluster_count")

        if self.cluster_sample_size < self.cluster_count:
            raise ConfigurationError("cluster_sample_size must be >= cluster_count")

        if self.num_workers < 1:
            raise ConfigurationError("num_workers must be >= 1")

        if not 1 <= self.quantizer_bits <= 15:
            raise ConfigurationError("quantizer_bits must be in [1, 15]")

    @property
    def is_sharded(self) -> bool:
        """Whether build() should go through the clustered builder."""
        return self.cluster_count > 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)

    def to_json(self, filepath: str) -> None:
        """Save configuration to JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'VamanaConfig':
        """Load configuration from dictionary."""
        return cls(**config_dict)

    @classmethod
    def from_json(cls, filepath: str) -> 'VamanaConfig':
        """Load configuration from JSON file."""
        with open(filepath, 'r') as f:
            config_dict = json.load(f)
        return cls.from_dict(config_dict)

    def __repr__(self) -> str:
        """String representation."""
        sharding = (
            f"clusters={self.cluster_count}x{self.cluster_overlap}"
            if self.is_sharded
            else "single"
        )
        return (
            f"VamanaConfig("
            f"{self.config_name}, "
            f"R={self.max_degree}, L={self.build_list_size}, alpha={self.alpha}, "
            f"{self.distance_metric}, {sharding})"
        )


# Preset configurations

def get_default_config() -> VamanaConfig:
    """Default configuration (single graph, R=32, L=50, alpha=1.2)."""
    return VamanaConfig(config_name="default")


def get_sharded_config(cluster_count: int = 40, cluster_overlap: int = 2) -> VamanaConfig:
    """Configuration for a clustered build over a large dataset.

    Each vector lands in ``cluster_overlap`` clusters, so sub-graphs share
    nodes and the merged graph stays navigable across cluster borders.
    """
    return VamanaConfig(
        config_name="sharded",
        cluster_count=cluster_count,
        cluster_overlap=cluster_overlap,
    )
