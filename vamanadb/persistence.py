"""
Saving and loading built indexes.

An index is a directory:

    meta.json        format version, config, sizes, SHA-256 of each data file
    graph.npz        padded neighbor matrix, degrees, entry point
    quantizer.npz    per-dimension quantizer state and codes (optional)

``meta.json`` is written last, so a directory whose save was interrupted has
no metadata and fails to load. Loading verifies checksums, shapes and ID
ranges and raises CorruptIndexError on anything unexpected; a partially valid
index is never returned.
"""

import hashlib
import json
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np

from vamanadb.config import VamanaConfig
from vamanadb.errors import CorruptIndexError, VamanaError
from vamanadb.quantization import ScalarQuantizer
from vamanadb.vamana.graph import VamanaGraph

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
META_FILE = "meta.json"
GRAPH_FILE = "graph.npz"
QUANTIZER_FILE = "quantizer.npz"


@dataclass
class SavedIndex:
    """Everything read back from an index directory."""

    config: VamanaConfig
    graph: VamanaGraph
    quantizer: Optional[ScalarQuantizer] = None
    codes: Optional[np.ndarray] = None


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 20), b""):
            digest.update(chunk)
    return digest.hexdigest()


def save_index(
    path: Union[str, Path],
    config: VamanaConfig,
    graph: VamanaGraph,
    quantizer: Optional[ScalarQuantizer] = None,
    codes: Optional[np.ndarray] = None,
) -> Path:
    """
    Write an index to a directory (created if missing).

    Args:
        path: Target directory
        config: Configuration the index was built with
        graph: Built graph
        quantizer: Trained quantizer, if any
        codes: Quantized codes of every vector, saved with the quantizer

    Returns:
        The index directory
    """
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)

    # Remove stale metadata first so a crash mid-save leaves an unloadable directory
    meta_path = directory / META_FILE
    if meta_path.exists():
        meta_path.unlink()

    neighbors, degrees = graph.to_arrays()
    entry_point = -1 if graph.entry_point is None else graph.entry_point
    np.savez(
        directory / GRAPH_FILE,
        neighbors=neighbors,
        degrees=degrees,
        entry_point=np.array(entry_point, dtype=np.int64),
        dimension=np.array(graph.dimension, dtype=np.int64),
    )
    files = {GRAPH_FILE: _sha256(directory / GRAPH_FILE)}

    quantizer_path = directory / QUANTIZER_FILE
    if quantizer is not None:
        state = quantizer.get_state()
        arrays = {
            "bits": np.array(state["bits"], dtype=np.int64),
            "count": state["count"],
            "mean": state["mean"],
            "m2": state["m2"],
        }
        if codes is not None:
            arrays["codes"] = codes
        np.savez(quantizer_path, **arrays)
        files[QUANTIZER_FILE] = _sha256(quantizer_path)
    elif quantizer_path.exists():
        quantizer_path.unlink()

    meta = {
        "format_version": FORMAT_VERSION,
        "config": config.to_dict(),
        "num_nodes": graph.size(),
        "dimension": graph.dimension,
        "files": files,
    }
    with open(meta_path, "w") as f:
        json.dump(meta, f, indent=2)

    logger.info("Saved index with %d nodes to %s", graph.size(), directory)
    return directory


def _load_npz(path: Path) -> dict:
    try:
        with np.load(path, allow_pickle=False) as data:
            return {key: data[key] for key in data.files}
    except (OSError, ValueError, zipfile.BadZipFile) as exc:
        raise CorruptIndexError(f"Cannot read {path.name}: {exc}") from exc


def _require(arrays: dict, keys, filename: str) -> None:
    missing = [key for key in keys if key not in arrays]
    if missing:
        raise CorruptIndexError(f"{filename} is missing arrays {missing}")


def load_index(path: Union[str, Path]) -> SavedIndex:
    """
    Read an index directory written by ``save_index``.

    Args:
        path: Index directory

    Returns:
        The saved config, graph and optional quantizer/codes

    Raises:
        CorruptIndexError: If anything is missing, truncated or inconsistent
    """
    directory = Path(path)
    meta_path = directory / META_FILE
    if not meta_path.is_file():
        raise CorruptIndexError(f"No {META_FILE} in {directory}")

    try:
        with open(meta_path, "r") as f:
            meta = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise CorruptIndexError(f"Cannot read {META_FILE}: {exc}") from exc

    if not isinstance(meta, dict) or meta.get("format_version") != FORMAT_VERSION:
        raise CorruptIndexError(f"Unsupported index format in {directory}")

    try:
        config = VamanaConfig.from_dict(meta["config"])
        num_nodes = int(meta["num_nodes"])
        dimension = int(meta["dimension"])
        files = dict(meta["files"])
    except (KeyError, TypeError, ValueError, VamanaError) as exc:
        raise CorruptIndexError(f"Invalid metadata in {META_FILE}: {exc}") from exc

    if GRAPH_FILE not in files:
        raise CorruptIndexError(f"{META_FILE} does not list {GRAPH_FILE}")
    unknown = set(files) - {GRAPH_FILE, QUANTIZER_FILE}
    if unknown:
        raise CorruptIndexError(f"{META_FILE} lists unknown data files: {sorted(unknown)}")

    for filename, checksum in files.items():
        file_path = directory / filename
        if not file_path.is_file():
            raise CorruptIndexError(f"Missing data file {filename}")
        if _sha256(file_path) != checksum:
            raise CorruptIndexError(f"Checksum mismatch for {filename}")

    arrays = _load_npz(directory / GRAPH_FILE)
    _require(arrays, ("neighbors", "degrees", "entry_point", "dimension"), GRAPH_FILE)

    neighbors = arrays["neighbors"]
    degrees = arrays["degrees"]
    entry_point = int(arrays["entry_point"])

    if neighbors.shape != (num_nodes, config.max_degree):
        raise CorruptIndexError(
            f"Neighbor matrix has shape {neighbors.shape}, expected {(num_nodes, config.max_degree)}"
        )
    if int(arrays["dimension"]) != dimension:
        raise CorruptIndexError("Graph dimension does not match metadata")

    try:
        graph = VamanaGraph.from_arrays(
            neighbors,
            degrees,
            dimension=dimension,
            entry_point=None if entry_point < 0 else entry_point,
        )
    except ValueError as exc:
        raise CorruptIndexError(f"Invalid graph data: {exc}") from exc

    if graph.size() > 0 and graph.entry_point is None:
        raise CorruptIndexError("Non-empty graph has no entry point")

    quantizer = None
    codes = None
    if QUANTIZER_FILE in files:
        q_arrays = _load_npz(directory / QUANTIZER_FILE)
        _require(q_arrays, ("bits", "count", "mean", "m2"), QUANTIZER_FILE)
        try:
            quantizer = ScalarQuantizer.from_state(q_arrays)
        except (ValueError, VamanaError) as exc:
            raise CorruptIndexError(f"Invalid quantizer state: {exc}") from exc
        if quantizer.dimension != dimension:
            raise CorruptIndexError("Quantizer dimension does not match metadata")

        codes = q_arrays.get("codes")
        if codes is not None:
            if codes.shape != (num_nodes, dimension):
                raise CorruptIndexError(f"Codes have shape {codes.shape}, expected {(num_nodes, dimension)}")
            if codes.size and int(codes.max()) > 2 ** quantizer.bits:
                raise CorruptIndexError("Codes exceed the quantizer's code range")

    logger.info("Loaded index with %d nodes from %s", graph.size(), directory)
    return SavedIndex(config=config, graph=graph, quantizer=quantizer, codes=codes)
