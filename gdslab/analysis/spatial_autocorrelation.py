#!/usr/bin/env python3
"""
Spatial Autocorrelation Module
==============================
Spatial lag, global Moran's I and local Moran's I (LISA).

Analysis steps:
1. Compute the spatial lag of the target (neighbourhood average)
2. Build the Moran scatterplot data (standardized value vs its lag)
3. Global Moran's I with permutation inference for every analysis variable
4. LISA for the target with quadrant labels and significance
"""

from datetime import datetime
from typing import Optional, Dict, Any, List
import numpy as np
import pandas as pd
import geopandas as gpd

from libpysal.weights import W, lag_spatial
from esda.moran import Moran, Moran_Local

from ..config import CourseConfig, load_config
from ..reporting import print_header, stage_log, significance_stars
from .spatial_weights import load_walkthrough_inputs


QUADRANT_LABELS = {1: 'HH', 2: 'LH', 3: 'LL', 4: 'HL'}


def _as_vector(y) -> np.ndarray:
    return np.asarray(y, dtype=float).flatten()


def _statistic_input(y, w: W, statistic: str) -> np.ndarray:
    """Vector aligned with ``w``, complete and not constant."""
    y = _as_vector(y)
    if len(y) != w.n:
        raise ValueError(f"Variable has {len(y)} values but weights cover {w.n} units")
    if np.isnan(y).any():
        raise ValueError(f"{statistic} is undefined: variable contains missing values")
    if y.std() == 0:
        raise ValueError(f"{statistic} is undefined for a constant variable")
    return y


def spatial_lag(w: W, y) -> np.ndarray:
    """Weighted neighbour sum of ``y``; the neighbour mean when ``w`` is row-standardized."""
    y = _as_vector(y)
    if len(y) != w.n:
        raise ValueError(f"Variable has {len(y)} values but weights cover {w.n} units")
    return lag_spatial(w, y)


def standardize(y) -> np.ndarray:
    """z-scores using the population standard deviation."""
    y = _as_vector(y)
    if np.isnan(y).any():
        raise ValueError("Cannot standardize a variable that contains missing values")
    sd = y.std()
    if not np.isfinite(sd) or sd == 0:
        raise ValueError("Cannot standardize a constant variable")
    return (y - y.mean()) / sd


def add_spatial_lags(gdf: gpd.GeoDataFrame, w: W, variables: List[str],
                     prefix: str = "w_") -> gpd.GeoDataFrame:
    """Return a copy of ``gdf`` with a lag column per variable."""
    out = gdf.copy()
    for col in variables:
        if col not in out.columns:
            raise ValueError(f"Variable '{col}' not found in dataset")
        out[f"{prefix}{col}"] = spatial_lag(w, out[col].values)
    return out


def moran_scatter_data(y, w: W) -> pd.DataFrame:
    """
    Coordinates of the Moran scatterplot.

    With row-standardized weights the OLS slope of ``w_z`` on ``z`` is
    Moran's I.
    """
    z = standardize(y)
    return pd.DataFrame({'z': z, 'w_z': spatial_lag(w, z)})


def global_moran(y, w: W, permutations: int = 999, seed: Optional[int] = None) -> Dict[str, Any]:
    """Global Moran's I (esda) as a flat dict."""
    y = _statistic_input(y, w, "Moran's I")

    # esda draws permutations from the global numpy generator
    if seed is not None:
        np.random.seed(seed)
    moran = Moran(y, w, transformation=w.transform, permutations=permutations)

    return {
        'I': float(moran.I),
        'EI': float(moran.EI),
        'z_norm': float(moran.z_norm),
        'p_norm': float(moran.p_norm),
        'z_sim': float(moran.z_sim) if permutations else np.nan,
        'p_sim': float(moran.p_sim) if permutations else np.nan,
        'permutations': permutations,
    }


def moran_table(gdf: gpd.GeoDataFrame, w: W, variables: List[str],
                permutations: int = 999, seed: Optional[int] = None) -> pd.DataFrame:
    """Global Moran's I for several variables, strongest first"""
    results = []

    for col in variables:
        try:
            if col not in gdf.columns:
                raise ValueError("not in dataset")
            res = global_moran(gdf[col].values, w, permutations=permutations, seed=seed)
        except ValueError as e:
            print(f"    {col:30s}: SKIPPED - {e}")
            continue

        results.append({'variable': col, **res})
        p = res['p_sim'] if permutations else res['p_norm']
        print(f"    {col:30s}: I={res['I']:7.4f}, p={p:.4f} {significance_stars(p)}")

    columns = ['variable', 'I', 'EI', 'z_norm', 'p_norm', 'z_sim', 'p_sim', 'permutations']
    table = pd.DataFrame(results, columns=columns)
    return table.sort_values('I', ascending=False).reset_index(drop=True)


def local_moran(y, w: W, permutations: int = 999, significance: float = 0.05,
                seed: Optional[int] = None) -> pd.DataFrame:
    """
    Local Moran's I with cluster labels.

    Quadrants follow esda: 1=HH, 2=LH, 3=LL, 4=HL. ``cluster`` is the
    quadrant label for significant units and ``NS`` otherwise. Without
    permutations no unit is significant.
    """
    y = _statistic_input(y, w, "Local Moran's I")

    lisa = Moran_Local(y, w, transformation=w.transform,
                       permutations=permutations, seed=seed)

    p_values = np.asarray(lisa.p_sim, dtype=float) if permutations else np.full(len(y), np.nan)
    lisa_df = pd.DataFrame({
        'value': y,
        'local_I': lisa.Is,
        'p_value': p_values,
        'quadrant': lisa.q,
    })
    lisa_df['quadrant_label'] = lisa_df['quadrant'].map(QUADRANT_LABELS)
    lisa_df['significant'] = lisa_df['p_value'] < significance
    lisa_df['cluster'] = np.where(lisa_df['significant'], lisa_df['quadrant_label'], 'NS')
    return lisa_df


def run_spatial_autocorrelation(config: Optional[CourseConfig] = None,
                                gdf: Optional[gpd.GeoDataFrame] = None,
                                w: Optional[W] = None) -> Dict[str, Any]:
    """
    Main execution function for the spatial autocorrelation stage.

    Args:
        config: CourseConfig instance. If None, loads from default.
        gdf: Optional dataset; loaded from disk when omitted.
        w: Optional weights; loaded from disk when omitted.
    """
    if config is None:
        config = load_config()

    results_dir = config.get_results_subdir("spatial_autocorrelation")
    settings = config.autocorrelation
    target = config.data.target

    with stage_log(results_dir / 'spatial_autocorrelation_log.txt'):
        print_header("SPATIAL AUTOCORRELATION")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"Permutations: {settings.permutations}")

        print_header("1. LOADING DATA", level=2)
        gdf, w = load_walkthrough_inputs(config, gdf, w)
        if target not in gdf.columns:
            raise ValueError(f"Target variable '{target}' not found in dataset")

        print_header("2. SPATIAL LAG", level=2)
        gdf = add_spatial_lags(gdf, w, [target])
        lag_col = f"w_{target}"
        preview = [c for c in (config.data.id_column, target, lag_col) if c in gdf.columns]
        print(gdf[preview].head(10).to_string(index=False))

        scatter = moran_scatter_data(gdf[target].values, w)
        if config.data.id_column in gdf.columns:
            scatter.insert(0, config.data.id_column, gdf[config.data.id_column].values)
        scatter_path = results_dir / f'moran_scatter_{target}.csv'
        scatter.to_csv(scatter_path, index=False)
        print(f"\n    ✓ Saved scatterplot data to: {scatter_path}")

        print_header("3. GLOBAL MORAN'S I", level=2)
        variables = config.select_variables(gdf)
        morans_df = moran_table(gdf, w, variables, permutations=settings.permutations,
                                seed=settings.seed)
        morans_path = results_dir / 'global_morans_I_by_variable.csv'
        morans_df.to_csv(morans_path, index=False)
        print(f"\n    ✓ Saved results to: {morans_path}")

        print_header(f"4. LISA ANALYSIS ({target})", level=2)
        lisa_df = local_moran(gdf[target].values, w, permutations=settings.permutations,
                              significance=settings.significance, seed=settings.seed)
        if config.data.id_column in gdf.columns:
            lisa_df.insert(0, config.data.id_column, gdf[config.data.id_column].values)

        print(f"\n    Cluster distribution:")
        print(lisa_df['cluster'].value_counts().to_string())

        lisa_path = results_dir / f'lisa_results_{target}.csv'
        lisa_df.to_csv(lisa_path, index=False)
        print(f"\n    ✓ Saved LISA results to: {lisa_path}")

    return {
        'data': gdf,
        'weights': w,
        'moran_scatter': scatter,
        'global_moran': morans_df,
        'lisa': lisa_df,
    }


if __name__ == "__main__":
    run_spatial_autocorrelation()
