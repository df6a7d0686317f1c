#!/usr/bin/env python3
"""
Clustering Module
=================
Geodemographic classification with K-Means, and a check of how spatially
compact the resulting clusters are.

Analysis steps:
1. Standardize the profiling variables
2. K-Means (scikit-learn) with a fixed random state
3. Cluster profiles (mean of each variable per cluster)
4. Join counts per cluster: are same-cluster units neighbours more often
   than chance?
"""

from datetime import datetime
from typing import Optional, List, Tuple
import numpy as np
import pandas as pd
import geopandas as gpd

from libpysal.weights import W
from esda.join_counts import Join_Counts
from sklearn.preprocessing import StandardScaler
from sklearn.cluster import KMeans

from ..config import CourseConfig, load_config
from ..reporting import print_header, stage_log, significance_stars
from .spatial_weights import load_walkthrough_inputs


def kmeans_clusters(df: pd.DataFrame, variables: List[str], n_clusters: int = 4,
                    random_state: int = 42) -> Tuple[np.ndarray, pd.DataFrame]:
    """
    Cluster units on standardized variables.

    Returns:
        (labels, profiles) where profiles holds the unstandardized mean of
        each variable per cluster plus its size
    """
    missing = [v for v in variables if v not in df.columns]
    if missing:
        raise ValueError(f"Variable(s) not found in dataset: {missing}")
    if n_clusters < 1 or n_clusters > len(df):
        raise ValueError(f"n_clusters must be between 1 and {len(df)}, got {n_clusters}")

    X = df[variables].astype(float).values
    if np.isnan(X).any():
        raise ValueError("Clustering variables contain missing values")
    X_scaled = StandardScaler().fit_transform(X)

    kmeans = KMeans(n_clusters=n_clusters, random_state=random_state, n_init=10)
    labels = kmeans.fit_predict(X_scaled)

    profiles = pd.DataFrame(X, columns=variables).groupby(labels).mean()
    profiles['size'] = pd.Series(labels).value_counts().sort_index()
    profiles.index.name = 'cluster'
    return labels, profiles


def cluster_join_counts(labels, w: W, permutations: int = 999,
                        seed: Optional[int] = None) -> pd.DataFrame:
    """
    Same-cluster joins (BB) per cluster with their pseudo p-value.

    Join counts are computed on binary weights; the transformation of
    ``w`` is restored afterwards.
    """
    labels = np.asarray(labels)
    original_transform = w.transform
    rows = []

    try:
        w.transform = 'b'
        for cluster in np.unique(labels):
            if seed is not None:
                np.random.seed(seed)
            jc = Join_Counts((labels == cluster).astype(int), w, permutations=permutations)
            rows.append({
                'cluster': cluster,
                'size': int((labels == cluster).sum()),
                'bb_joins': float(jc.bb),
                'expected_bb': float(jc.mean_bb) if permutations else np.nan,
                'p_sim_bb': float(jc.p_sim_bb) if permutations else np.nan,
            })
    finally:
        w.transform = original_transform

    return pd.DataFrame(rows)


def run_clustering(config: Optional[CourseConfig] = None,
                   gdf: Optional[gpd.GeoDataFrame] = None,
                   w: Optional[W] = None):
    """
    Main execution function for geodemographic clustering.

    Args:
        config: CourseConfig instance. If None, loads from default.
    """
    if config is None:
        config = load_config()

    results_dir = config.get_results_subdir("clustering")
    settings = config.clustering

    with stage_log(results_dir / 'clustering_log.txt'):
        print_header("GEODEMOGRAPHIC CLUSTERING")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

        print_header("1. LOADING DATA", level=2)
        gdf, w = load_walkthrough_inputs(config, gdf, w)

        variables = config.select_variables(gdf)
        print(f"    Variables ({len(variables)}): {variables}")

        print_header(f"2. K-MEANS (k={settings.n_clusters})", level=2)
        labels, profiles = kmeans_clusters(gdf, variables, n_clusters=settings.n_clusters,
                                           random_state=settings.random_state)
        print(profiles.round(2).to_string())

        print_header("3. SPATIAL COMPACTNESS (JOIN COUNTS)", level=2)
        jc_df = cluster_join_counts(labels, w, permutations=config.autocorrelation.permutations,
                                    seed=config.autocorrelation.seed)
        for _, row in jc_df.iterrows():
            print(f"    Cluster {int(row['cluster'])}: BB={row['bb_joins']:.0f} "
                  f"(expected {row['expected_bb']:.1f}), p={row['p_sim_bb']:.4f} "
                  f"{significance_stars(row['p_sim_bb'])}")

        assignments = pd.DataFrame({'cluster': labels})
        if config.data.id_column in gdf.columns:
            assignments.insert(0, config.data.id_column, gdf[config.data.id_column].values)
        assignments.to_csv(results_dir / 'cluster_assignments.csv', index=False)
        profiles.to_csv(results_dir / 'cluster_profiles.csv')
        jc_df.to_csv(results_dir / 'cluster_join_counts.csv', index=False)
        print(f"\n    ✓ Results saved to: {results_dir}")

    return labels, profiles, jc_df


if __name__ == "__main__":
    run_clustering()
