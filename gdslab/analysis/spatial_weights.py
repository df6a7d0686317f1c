#!/usr/bin/env python3
"""
Spatial Weights Module
======================
Builds the spatial weights matrix used by every later stage.

Analysis steps:
1. Load the joined course dataset and reproject if configured
2. Build KNN, Queen, Rook or distance band weights (libpysal)
3. Apply the configured transformation (row-standardization by default)
4. Report connectivity and save the weights as a GAL file
"""

from pathlib import Path
from datetime import datetime
from typing import Optional, Dict, Any
import numpy as np
import geopandas as gpd

from libpysal.weights import W, KNN, Queen, Rook, DistanceBand
from libpysal.io import open as ioopen

from ..config import CourseConfig, load_config, WEIGHTS_KINDS, WEIGHTS_TRANSFORMS
from ..reporting import print_header, stage_log
from ..preprocessing.data_loading import ensure_projected, load_course_dataset


def unit_coordinates(gdf: gpd.GeoDataFrame) -> np.ndarray:
    """Representative (x, y) per unit: the point itself or the polygon centroid."""
    if (gdf.geom_type == "Point").all():
        points = gdf.geometry
    else:
        points = gdf.geometry.centroid
    return np.column_stack([points.x.values, points.y.values])


def build_weights(gdf: gpd.GeoDataFrame, kind: str = "knn", k: int = 6,
                  threshold: Optional[float] = None, binary: bool = True) -> W:
    """
    Build a spatial weights matrix for the rows of ``gdf``.

    Weights are indexed positionally (0..n-1) so that they stay aligned with
    the row order of the frame.

    Args:
        gdf: Geographic units
        kind: One of knn, queen, rook, distance
        k: Number of neighbours for KNN weights
        threshold: Distance band (CRS units) for distance weights
        binary: Binary (True) or inverse distance (False) distance band weights

    Returns:
        libpysal W instance
    """
    kind = kind.lower()
    if kind not in WEIGHTS_KINDS:
        raise ValueError(f"Unknown weights kind '{kind}'. Must be one of: {WEIGHTS_KINDS}")
    if len(gdf) == 0:
        raise ValueError("Cannot build weights for an empty dataset")

    if kind == "knn":
        if k < 1 or k >= len(gdf):
            raise ValueError(f"KNN needs 1 <= k < n (k={k}, n={len(gdf)})")
        return KNN.from_array(unit_coordinates(gdf), k=k)

    if kind == "distance":
        if threshold is None or threshold <= 0:
            raise ValueError("Distance band weights need a positive threshold")
        return DistanceBand(unit_coordinates(gdf), threshold=threshold,
                            binary=binary, silence_warnings=True)

    builder = Queen if kind == "queen" else Rook
    return builder.from_dataframe(gdf, use_index=False, silence_warnings=True)


def transform_weights(w: W, transform: str = "r") -> W:
    """Set the weights transformation in place and return the weights."""
    if transform.lower() not in WEIGHTS_TRANSFORMS:
        raise ValueError(
            f"Invalid weights transform '{transform}'. Must be one of: {WEIGHTS_TRANSFORMS}"
        )
    w.transform = transform
    return w


def weights_summary(w: W) -> Dict[str, Any]:
    """Connectivity summary of a weights matrix"""
    return {
        'n': w.n,
        'mean_neighbors': float(w.mean_neighbors),
        'min_neighbors': int(w.min_neighbors),
        'max_neighbors': int(w.max_neighbors),
        'n_islands': len(w.islands),
        'islands': list(w.islands),
        'pct_nonzero': float(w.pct_nonzero),
        'transform': w.transform,
    }


def save_weights(w: W, path) -> Path:
    """Write weights to a GAL (or GWT) file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    f = ioopen(str(path), 'w')
    try:
        f.write(w)
    finally:
        f.close()
    return path


def load_weights(path, transform: Optional[str] = None) -> W:
    """
    Read weights written by :func:`save_weights`.

    GAL files store binary neighbour lists only, so the transformation has
    to be applied again after loading.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Spatial weights not found: {path} (run the weights stage first)")

    f = ioopen(str(path))
    try:
        w = f.read()
    finally:
        f.close()

    # GAL ids come back as strings; keep positional integer ids
    if w.id_order and isinstance(w.id_order[0], str) and all(i.isdigit() for i in w.id_order):
        neighbors = {int(i): [int(j) for j in w.neighbors[i]] for i in w.id_order}
        weights = {int(i): list(w.weights[i]) for i in w.id_order}
        w = W(neighbors, weights, id_order=sorted(neighbors), silence_warnings=True)

    if transform is not None:
        transform_weights(w, transform)
    return w


def print_weights_summary(summary: Dict[str, Any]):
    print(f"    ✓ Weights created for {summary['n']} units")
    print(f"    ✓ Neighbours: mean {summary['mean_neighbors']:.2f}, "
          f"min {summary['min_neighbors']}, max {summary['max_neighbors']}")
    print(f"    ✓ Non-zero cells: {summary['pct_nonzero']:.2f}%")
    print(f"    ✓ Transform: {summary['transform']}")
    if summary['n_islands']:
        print(f"    ⚠ {summary['n_islands']} island(s) without neighbours: {summary['islands'][:10]}")


def load_walkthrough_inputs(config: CourseConfig, gdf: Optional[gpd.GeoDataFrame] = None,
                            w: Optional[W] = None):
    """Load the course dataset and weights for stages that need both."""
    if gdf is None:
        gdf = load_course_dataset(config)
    gdf = ensure_projected(gdf, config.data.crs)

    if w is None:
        weights_path = config.get_weights_path()
        print(f"    Spatial weights: {weights_path}")
        w = load_weights(weights_path, transform=config.weights.transform)
    if w.n != len(gdf):
        raise ValueError(f"Weights cover {w.n} units but the dataset has {len(gdf)}")
    return gdf, w


def run_weights(config: Optional[CourseConfig] = None,
                gdf: Optional[gpd.GeoDataFrame] = None) -> W:
    """
    Main execution function for the spatial weights stage.

    Args:
        config: CourseConfig instance. If None, loads from default.
        gdf: Optional dataset; loaded from disk when omitted.
    """
    if config is None:
        config = load_config()

    results_dir = config.get_results_subdir("spatial_weights")

    with stage_log(results_dir / 'spatial_weights_log.txt'):
        print_header("SPATIAL WEIGHTS")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

        print_header("1. LOADING DATA", level=2)
        if gdf is None:
            gdf = load_course_dataset(config)
        gdf = ensure_projected(gdf, config.data.crs)

        print_header("2. BUILDING WEIGHTS", level=2)
        settings = config.weights
        print(f"    Kind: {settings.kind}"
              + (f" (k={settings.k})" if settings.kind == "knn" else "")
              + (f" (threshold={settings.threshold})" if settings.kind == "distance" else ""))
        w = build_weights(gdf, kind=settings.kind, k=settings.k,
                          threshold=settings.threshold, binary=settings.binary)
        transform_weights(w, settings.transform)

        summary = weights_summary(w)
        print_weights_summary(summary)

        weights_path = save_weights(w, config.get_weights_path())
        print(f"    ✓ Saved to: {weights_path}")

    return w


if __name__ == "__main__":
    run_weights()
