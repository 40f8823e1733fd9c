"""Quick start guide for VamanaDB.

This example shows the minimal code needed to:
1. Wrap vectors in a vector source
2. Build a Vamana graph index
3. Search for nearest neighbors
4. Search with a scalar quantizer
5. Save the index and load it back
"""

import logging
import os
import sys
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np
from vamanadb import ArrayVectorSource, VamanaConfig, VamanaIndex


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    print("="*60)
    print("VamanaDB Quick Start")
    print("="*60)

    # Step 1: Create synthetic dataset
    print("\n1. Creating dataset...")
    rng = np.random.default_rng(42)

    # 2000 vectors, 64 dimensions
    vectors = rng.standard_normal((2000, 64)).astype(np.float32)
    source = ArrayVectorSource(vectors)

    print(f"   Created {len(source)} vectors of dimension {source.dimension}")

    # Step 2: Build the index
    print("\n2. Building Vamana index...")

    config = VamanaConfig(
        max_degree=24,          # Out-degree bound R
        build_list_size=48,     # Construction search list L
        alpha=1.2,              # Pruning factor (> 1 keeps long-range edges)
        search_list_size=64,    # Default query search list L'
        show_progress=True,
    )
    index = VamanaIndex(source, config=config).build()

    stats = index.get_statistics()
    print(f"   Indexed {stats['total_vectors']} vectors")
    print(f"   Entry point (medoid): {stats['entry_point']}")
    print(f"   Mean out-degree: {stats['mean_out_degree']:.1f} (max {stats['max_out_degree']})")
    print(f"   Unreachable nodes: {stats['unreachable_nodes']}")

    # Step 3: Search
    print("\n3. Searching...")

    query = vectors[0] + 0.01
    results = index.search(query, k=10)

    print("   Top 5 results:")
    for rank, (vector_id, distance) in enumerate(results[:5], 1):
        print(f"      {rank}. Vector {vector_id} (distance: {distance:.4f})")

    # A tight visit budget still returns the best candidates found so far
    budgeted = index.search(query, k=10, max_visits=5)
    print(f"   With max_visits=5: {len(budgeted)} results, best = {budgeted[0][0]}")

    # Step 4: Quantized search
    print("\n4. Training an 8-bit scalar quantizer...")

    index.train_quantizer(bits=8)
    quantized = index.search(query, k=10, use_quantizer=True)
    overlap = len({i for i, _ in quantized} & {i for i, _ in results})
    print(f"   Quantized search shares {overlap}/10 results with exact search")

    # Step 5: Save and load
    print("\n5. Saving and loading...")

    with tempfile.TemporaryDirectory() as tmp:
        path = index.save(os.path.join(tmp, "quickstart-index"))
        loaded = VamanaIndex.load(path, source)
        same = loaded.search(query, k=10) == results
        print(f"   Loaded index returns identical results: {same}")

    print("\n" + "="*60)
    print("Quick Start Complete!")
    print("="*60)
    print("\nKey Takeaways:")
    print("  - The index stores IDs only; vectors come from the source")
    print("  - Raise search_list_size for recall, lower it for speed")
    print("  - Set cluster_count > 1 to build large datasets in shards")


if __name__ == "__main__":
    main()
