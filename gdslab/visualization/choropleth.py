#!/usr/bin/env python3
"""
Visualization Module - Choropleths
==================================
Classifies a variable with mapclassify and renders static choropleth maps.

The classification is always computed here and handed to geopandas as
user-defined bins, so the map legend and the saved break table agree.
"""

import re
from datetime import datetime
from typing import Optional, List
import numpy as np
import pandas as pd
import geopandas as gpd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import mapclassify as mc

from ..config import CourseConfig, load_config
from ..reporting import print_header, stage_log


SCHEMES = {
    'quantiles': mc.Quantiles,
    'equalinterval': mc.EqualInterval,
    'fisherjenks': mc.FisherJenks,
    'naturalbreaks': mc.NaturalBreaks,
    'jenkscaspall': mc.JenksCaspall,
    'maximumbreaks': mc.MaximumBreaks,
    'maxbreaks': mc.MaximumBreaks,
    'stdmean': mc.StdMean,
    'percentiles': mc.Percentiles,
    'boxplot': mc.BoxPlot,
    'headtailbreaks': mc.HeadTailBreaks,
    'userdefined': mc.UserDefined,
}

# Classifiers whose number of classes is implied by the data or parameters
SCHEMES_WITHOUT_K = {'stdmean', 'percentiles', 'boxplot', 'headtailbreaks', 'userdefined'}


def normalize_scheme(scheme: str) -> str:
    """Canonical scheme key: 'Fisher-Jenks', 'fisher_jenks' and 'FisherJenks' are equal."""
    key = re.sub(r'[\s_\-]', '', str(scheme)).lower()
    if key not in SCHEMES:
        raise ValueError(
            f"Unknown classification scheme '{scheme}'. "
            f"Must be one of: {sorted(set(SCHEMES))}"
        )
    return key


def classify(values, scheme: str = "quantiles", k: int = 5, bins: Optional[List[float]] = None):
    """
    Classify values into map classes.

    NaN values are dropped before classification.

    Returns:
        A fitted mapclassify classifier (``bins``, ``counts``, ``yb``)
    """
    key = normalize_scheme(scheme)
    y = np.asarray(values, dtype=float).flatten()
    y = y[~np.isnan(y)]
    if len(y) == 0:
        raise ValueError("Cannot classify an empty or all-missing variable")

    classifier = SCHEMES[key]
    if key == 'userdefined':
        if bins is None:
            raise ValueError("The user_defined scheme requires explicit bins")
        return classifier(y, bins=bins)
    if key in SCHEMES_WITHOUT_K:
        return classifier(y)
    if k < 2:
        raise ValueError(f"Choropleths need at least 2 classes, got k={k}")
    return classifier(y, k=k)


def class_table(classifier) -> pd.DataFrame:
    """Lower/upper bounds, legend label and count of each class"""
    bins = np.asarray(classifier.bins, dtype=float)
    # box plot and std-mean edges can start below the data minimum
    first = min(float(np.min(classifier.y)), float(bins[0]))
    lower = np.concatenate([[first], bins[:-1]])
    return pd.DataFrame({
        'class': np.arange(len(bins)),
        'lower': lower,
        'upper': bins,
        'label': [f"{lo:,.2f} - {hi:,.2f}" for lo, hi in zip(lower, bins)],
        'count': np.asarray(classifier.counts, dtype=int),
    })


def compare_schemes(values, schemes: List[str], k: int = 5) -> pd.DataFrame:
    """Goodness of absolute deviation fit and class sizes per scheme"""
    rows = []
    for scheme in schemes:
        classifier = classify(values, scheme=scheme, k=k)
        rows.append({
            'scheme': scheme,
            'k': classifier.k,
            'gadf': float(classifier.get_gadf()),
            'counts': ", ".join(str(c) for c in classifier.counts),
            'bins': ", ".join(f"{b:.4g}" for b in classifier.bins),
        })
    return pd.DataFrame(rows)


def assign_classes(gdf: gpd.GeoDataFrame, column: str, scheme: str = "quantiles",
                   k: int = 5) -> gpd.GeoDataFrame:
    """Copy of ``gdf`` with ``<column>_class``; missing values get class -1."""
    if column not in gdf.columns:
        raise ValueError(f"Variable '{column}' not found in dataset")

    out = gdf.copy()
    values = out[column].astype(float)
    classifier = classify(values.values, scheme=scheme, k=k)

    classes = np.full(len(out), -1, dtype=int)
    classes[values.notna().values] = classifier.yb
    out[f"{column}_class"] = classes
    return out


def plot_choropleth(gdf: gpd.GeoDataFrame, column: str, scheme: str = "quantiles",
                    k: int = 5, cmap: str = "YlOrRd", ax=None, title: Optional[str] = None):
    """Draw a classified choropleth and return the Axes."""
    if column not in gdf.columns:
        raise ValueError(f"Variable '{column}' not found in dataset")

    classifier = classify(gdf[column].values, scheme=scheme, k=k)

    if ax is None:
        _, ax = plt.subplots(figsize=(10, 8))

    gdf.plot(
        column=column,
        scheme='UserDefined',
        classification_kwds={'bins': list(classifier.bins)},
        cmap=cmap,
        edgecolor='white',
        linewidth=0.3,
        legend=True,
        legend_kwds={'loc': 'lower left', 'fontsize': 8, 'title': column},
        missing_kwds={'color': 'lightgrey', 'label': 'Missing'},
        ax=ax,
    )
    ax.set_title(title or f"{column} ({scheme}, k={classifier.k})", fontsize=13, fontweight='bold')
    ax.set_axis_off()
    return ax


def run_choropleths(config: Optional[CourseConfig] = None,
                    gdf: Optional[gpd.GeoDataFrame] = None) -> pd.DataFrame:
    """
    Main execution function for the choropleth stage.

    Args:
        config: CourseConfig instance. If None, loads from default.
        gdf: Optional dataset; loaded from disk when omitted.

    Returns:
        Scheme comparison table
    """
    from ..preprocessing.data_loading import load_course_dataset

    if config is None:
        config = load_config()

    results_dir = config.get_results_subdir("choropleths")
    assets_dir = config.get_assets_subdir("choropleths")
    settings = config.choropleth
    target = config.data.target

    with stage_log(results_dir / 'choropleths_log.txt'):
        print_header("CHOROPLETH CLASSIFICATION")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"Variable: {target}")

        if gdf is None:
            gdf = load_course_dataset(config)

        print_header(f"1. CLASS BREAKS ({settings.scheme}, k={settings.k})", level=2)
        classifier = classify(gdf[target].values, scheme=settings.scheme, k=settings.k)
        breaks = class_table(classifier)
        print(breaks.to_string(index=False))
        breaks_path = results_dir / f'class_breaks_{target}.csv'
        breaks.to_csv(breaks_path, index=False)
        print(f"\n    ✓ Saved to: {breaks_path}")

        print_header("2. SCHEME COMPARISON", level=2)
        schemes = list(dict.fromkeys([settings.scheme] + settings.compare))
        comparison = compare_schemes(gdf[target].values, schemes, k=settings.k)
        print(comparison[['scheme', 'k', 'gadf', 'counts']].to_string(index=False))
        comparison_path = results_dir / f'scheme_comparison_{target}.csv'
        comparison.to_csv(comparison_path, index=False)
        print(f"\n    ✓ Saved to: {comparison_path}")

        print_header("3. MAPS", level=2)
        for scheme in schemes:
            fig, ax = plt.subplots(figsize=(10, 8))
            plot_choropleth(gdf, target, scheme=scheme, k=settings.k, cmap=settings.cmap, ax=ax)
            plt.tight_layout()
            map_path = assets_dir / f'choropleth_{target}_{normalize_scheme(scheme)}.png'
            plt.savefig(map_path, dpi=300, bbox_inches='tight')
            plt.close(fig)
            print(f"    ✓ Saved: {map_path}")

    return comparison


if __name__ == "__main__":
    run_choropleths()
