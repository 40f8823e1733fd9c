"""Recall-based comparison: sharded Vamana vs a single Vamana graph.

This example builds the same dataset twice, once as one graph and once
through the clustered build (KMeans shards with overlap, merged and
re-pruned), and compares recall@k and latency across search list sizes.

Optionally runs on a SIFT-style benchmark given as .fvecs/.ivecs files:

    python recall_comparison.py base.fvecs query.fvecs groundtruth.ivecs
"""

import sys
import time
from typing import Dict, List

import numpy as np

from vamanadb import ArrayVectorSource, VamanaConfig, VamanaIndex
from vamanadb.datasets import generate_clustered_vectors, read_fvecs, read_ivecs
from vamanadb.metrics import compute_ground_truth, compute_recall_at_k


def load_dataset(argv: List[str], k: int):
    """Load a benchmark from files, or generate clustered synthetic data.

    Returns:
        (database, queries, ground_truth)
    """
    if len(argv) == 4:
        database = read_fvecs(argv[1])
        queries = read_fvecs(argv[2], count=100)
        ground_truth = read_ivecs(argv[3], count=100)[:, :k].tolist()
        return database, queries, ground_truth

    database, queries = generate_clustered_vectors(
        n_vectors=3000, dim=32, n_clusters=20, cluster_std=1.0, n_queries=100, seed=42
    )
    print(f"Pre-computing ground truth for {len(queries)} queries...")
    ground_truth = compute_ground_truth(queries, database, k=k)
    return database, queries, ground_truth


def build_index(database: np.ndarray, config: VamanaConfig) -> VamanaIndex:
    """Build an index and report how long it took."""
    print(f"Building {config} over {len(database)} vectors...")
    start_time = time.perf_counter()
    index = VamanaIndex(ArrayVectorSource(database), config=config).build()
    print(f"  Done in {time.perf_counter() - start_time:.1f}s")
    return index


def measure(
    index: VamanaIndex,
    queries: np.ndarray,
    ground_truth: List[List[int]],
    k: int,
    search_list_size: int,
) -> Dict[str, float]:
    """Average recall@k and latency at one search list size."""
    recalls = []
    latencies = []

    for query, truth in zip(queries, ground_truth):
        start_time = time.perf_counter()
        results = index.search(query, k=k, search_list_size=search_list_size)
        latencies.append((time.perf_counter() - start_time) * 1000)
        recalls.append(compute_recall_at_k([vector_id for vector_id, _ in results], truth, k=k))

    return {"avg_recall": float(np.mean(recalls)), "avg_latency": float(np.mean(latencies))}


def main():
    """Run the sharded vs single graph comparison."""
    print("="*60)
    print("Recall-Based Comparison: Sharded vs Single Vamana Graph")
    print("="*60)

    k = 10
    search_list_sizes = [10, 20, 40, 80]

    print("\n[Step 1] Loading data...")
    database, queries, ground_truth = load_dataset(sys.argv, k)

    print("\n[Step 2] Building indexes...")
    single = build_index(database, VamanaConfig(max_degree=24, build_list_size=48, config_name="single"))
    sharded = build_index(
        database,
        VamanaConfig(
            max_degree=24,
            build_list_size=48,
            cluster_count=8,
            cluster_overlap=2,
            num_workers=4,
            config_name="sharded",
        ),
    )

    print("\n[Step 3] Searching...")
    print(f"\n{'L':>6} | {'single recall':>13} {'ms':>6} | {'sharded recall':>14} {'ms':>6}")
    print("-" * 56)
    worst_gap = 0.0
    for search_list_size in search_list_sizes:
        single_results = measure(single, queries, ground_truth, k, search_list_size)
        sharded_results = measure(sharded, queries, ground_truth, k, search_list_size)
        worst_gap = max(worst_gap, single_results["avg_recall"] - sharded_results["avg_recall"])
        print(
            f"{search_list_size:>6} | {single_results['avg_recall']:>13.4f} {single_results['avg_latency']:>6.2f} | "
            f"{sharded_results['avg_recall']:>14.4f} {sharded_results['avg_latency']:>6.2f}"
        )

    print(f"\nVerdict:")
    if worst_gap <= 0.05:
        print(f"  GOOD: Sharded recall within 5 points of the single graph (worst gap {worst_gap:.3f})")
    else:
        print(f"  NEEDS WORK: Sharded recall trails by {worst_gap:.3f}")

    print(f"\n{'='*60}")
    print("Experiment complete!")
    print(f"{'='*60}\n")


if __name__ == "__main__":
    main()
