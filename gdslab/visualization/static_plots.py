#!/usr/bin/env python3
"""
Visualization Module - Static Plots
===================================
Matplotlib figures for the spatial autocorrelation walkthrough: Moran
scatterplot, LISA cluster map, weights connectivity and the Moran's I
comparison across variables.
"""

from typing import Optional
import numpy as np
import pandas as pd
import geopandas as gpd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from matplotlib.patches import Patch
from matplotlib.collections import LineCollection

from libpysal.weights import W

from .interactive_maps import LISA_COLORS, LISA_NAMES
from ..analysis.spatial_weights import unit_coordinates


def plot_moran_scatter(scatter_df: pd.DataFrame, moran_I: Optional[float] = None,
                       ax=None, title: Optional[str] = None):
    """Standardized values against their spatial lag, with the fitted slope."""
    if ax is None:
        _, ax = plt.subplots(figsize=(7, 7))

    z = scatter_df['z'].values
    w_z = scatter_df['w_z'].values
    slope, intercept = np.polyfit(z, w_z, 1)

    ax.scatter(z, w_z, s=30, color='steelblue', edgecolor='white', alpha=0.8)
    xs = np.linspace(z.min(), z.max(), 50)
    ax.plot(xs, intercept + slope * xs, color='red', linewidth=1.5)
    ax.axhline(0, color='black', linewidth=0.8, linestyle='--')
    ax.axvline(0, color='black', linewidth=0.8, linestyle='--')

    for label, (x, y) in {'HH': (0.95, 0.95), 'LH': (0.05, 0.95),
                          'LL': (0.05, 0.05), 'HL': (0.95, 0.05)}.items():
        ax.text(x, y, label, transform=ax.transAxes, ha='center', va='center',
                fontsize=11, fontweight='bold', color='grey')

    stat = moran_I if moran_I is not None else slope
    ax.set_xlabel('Standardized value (z)', fontsize=12)
    ax.set_ylabel('Spatial lag of z (Wz)', fontsize=12)
    ax.set_title(title or f"Moran Scatterplot (I = {stat:.3f})", fontsize=13, fontweight='bold')
    ax.grid(True, linestyle='--', alpha=0.3)
    return ax


def plot_lisa_clusters(gdf: gpd.GeoDataFrame, lisa_df: pd.DataFrame, ax=None,
                       title: str = 'LISA Cluster Map'):
    """Units coloured by significant LISA cluster; rows must align with ``lisa_df``."""
    if len(gdf) != len(lisa_df):
        raise ValueError(f"LISA results have {len(lisa_df)} rows but the map has {len(gdf)} units")
    if ax is None:
        _, ax = plt.subplots(figsize=(10, 8))

    clusters = lisa_df['cluster'].values
    handles = []
    for cluster_type in ['HH', 'LL', 'HL', 'LH', 'NS']:
        mask = clusters == cluster_type
        if mask.sum() == 0:
            continue
        gdf.loc[mask].plot(ax=ax, color=LISA_COLORS[cluster_type],
                           edgecolor='grey', linewidth=0.3,
                           markersize=60, zorder=2 if cluster_type == 'NS' else 3)
        handles.append(Patch(facecolor=LISA_COLORS[cluster_type], edgecolor='grey',
                             label=f"{LISA_NAMES[cluster_type]} ({mask.sum()})"))

    ax.legend(handles=handles, loc='lower left', fontsize=9)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.set_axis_off()
    return ax


def plot_weights_connectivity(gdf: gpd.GeoDataFrame, w: W, ax=None,
                              title: str = 'Spatial Weights Connectivity'):
    """Units with a line drawn between each pair of neighbours."""
    if w.n != len(gdf):
        raise ValueError(f"Weights cover {w.n} units but the map has {len(gdf)}")
    if ax is None:
        _, ax = plt.subplots(figsize=(10, 8))

    gdf.plot(ax=ax, facecolor='whitesmoke', edgecolor='grey', linewidth=0.4)

    coords = unit_coordinates(gdf)
    position = {uid: i for i, uid in enumerate(w.id_order)}
    segments = []
    for uid, neighbors in w.neighbors.items():
        i = position[uid]
        for nid in neighbors:
            j = position[nid]
            if i < j or uid not in w.neighbors.get(nid, []):
                segments.append([coords[i], coords[j]])

    ax.add_collection(LineCollection(segments, colors='firebrick', linewidths=0.6, alpha=0.7))
    ax.scatter(coords[:, 0], coords[:, 1], s=6, color='black', zorder=3)
    ax.set_title(f"{title} (mean neighbours {w.mean_neighbors:.1f})", fontsize=13, fontweight='bold')
    ax.set_axis_off()
    return ax


def plot_moran_comparison(moran_df: pd.DataFrame, significance: float = 0.05, ax=None):
    """Horizontal bars of Moran's I per variable, significant ones in red."""
    if ax is None:
        _, ax = plt.subplots(figsize=(10, 6))

    morans_sorted = moran_df.sort_values('I', ascending=True)
    p_col = 'p_sim' if morans_sorted['p_sim'].notna().any() else 'p_norm'
    colors = ['red' if p < significance else 'gray' for p in morans_sorted[p_col]]

    ax.barh(morans_sorted['variable'], morans_sorted['I'], color=colors, edgecolor='black')
    ax.axvline(x=0, color='black', linestyle='-', linewidth=0.8)
    ax.set_xlabel("Moran's I", fontsize=12)
    ax.set_title(f"Global Spatial Autocorrelation by Variable\n(Red = Significant p<{significance})",
                 fontsize=13, fontweight='bold')
    ax.grid(axis='x', alpha=0.3)
    return ax
