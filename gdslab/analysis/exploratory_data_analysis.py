#!/usr/bin/env python3
"""
Exploratory Data Analysis Module
================================
Non-spatial summary of the course dataset before any spatial analysis.

Analysis steps:
1. Summary statistics (including skewness) per variable
2. Pearson correlation matrix and heatmap
3. Distribution of the target variable
"""

from pathlib import Path
from datetime import datetime
from typing import Optional, List
import numpy as np
import pandas as pd
import geopandas as gpd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns

from ..config import CourseConfig, load_config
from ..reporting import print_header, stage_log


def numeric_variables(df: pd.DataFrame, variables: Optional[List[str]] = None) -> List[str]:
    """Requested variables, or every numeric column when none are given."""
    if variables:
        missing = [v for v in variables if v not in df.columns]
        if missing:
            raise ValueError(f"Variable(s) not found in dataset: {missing}")
        non_numeric = [v for v in variables if not pd.api.types.is_numeric_dtype(df[v])]
        if non_numeric:
            raise ValueError(f"Variable(s) are not numeric: {non_numeric}")
        return list(variables)
    return list(df.select_dtypes(include=[np.number]).columns)


def describe_variables(df: pd.DataFrame, variables: Optional[List[str]] = None) -> pd.DataFrame:
    """Summary statistics with skewness, one row per variable"""
    cols = numeric_variables(df, variables)
    if not cols:
        raise ValueError("No numeric variables to describe")

    summary = df[cols].describe().T
    summary['skewness'] = df[cols].skew()
    summary['missing'] = df[cols].isna().sum()
    summary.index.name = 'variable'
    return summary


def correlation_matrix(df: pd.DataFrame, variables: Optional[List[str]] = None) -> pd.DataFrame:
    """Pearson correlations between variables"""
    cols = numeric_variables(df, variables)
    return df[cols].corr(method='pearson')


def plot_correlation_heatmap(corr: pd.DataFrame, output_path: Path):
    plt.figure(figsize=(10, 8))
    sns.heatmap(corr, annot=True, fmt='.2f', cmap='coolwarm',
                center=0, vmin=-1, vmax=1, square=True)
    plt.title('Correlation Matrix')
    plt.tight_layout()
    plt.savefig(output_path, dpi=300, bbox_inches='tight')
    plt.close()


def plot_distribution(df: pd.DataFrame, column: str, output_path: Path):
    fig, ax = plt.subplots(figsize=(8, 5))
    sns.histplot(df[column].dropna(), kde=True, ax=ax, color='steelblue')
    ax.axvline(df[column].mean(), color='red', linestyle='--', label='Mean')
    ax.axvline(df[column].median(), color='black', linestyle=':', label='Median')
    ax.set_title(f'Distribution of {column}', fontsize=13, fontweight='bold')
    ax.legend()
    plt.tight_layout()
    plt.savefig(output_path, dpi=300, bbox_inches='tight')
    plt.close(fig)


def run_eda(config: Optional[CourseConfig] = None, gdf: Optional[gpd.GeoDataFrame] = None):
    """
    Main execution function for EDA.

    Args:
        config: CourseConfig instance. If None, loads from default.
        gdf: Optional dataset; loaded from disk when omitted.
    """
    from ..preprocessing.data_loading import load_course_dataset

    if config is None:
        config = load_config()

    results_dir = config.get_results_subdir("eda")
    assets_dir = config.get_assets_subdir("eda")
    target = config.data.target

    with stage_log(results_dir / 'eda_log.txt'):
        print_header("EXPLORATORY DATA ANALYSIS")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

        if gdf is None:
            gdf = load_course_dataset(config)

        df = pd.DataFrame(gdf.drop(columns=gdf.geometry.name))
        variables = config.select_variables(df)

        print_header("1. SUMMARY STATISTICS", level=2)
        summary = describe_variables(df, variables)
        print(summary.round(3).to_string())
        summary.to_csv(results_dir / 'summary_statistics.csv')

        print_header("2. CORRELATIONS", level=2)
        corr = correlation_matrix(df, variables)
        if target in corr.columns:
            for var, value in corr[target].drop(target).sort_values(ascending=False).items():
                print(f"    {var:30s}: {value:7.3f}")
        corr.to_csv(results_dir / 'correlation_matrix.csv')
        if len(corr) > 1:
            heatmap_path = assets_dir / 'correlation_heatmap.png'
            plot_correlation_heatmap(corr, heatmap_path)
            print(f"    ✓ Saved: {heatmap_path}")

        print_header("3. TARGET DISTRIBUTION", level=2)
        hist_path = assets_dir / f'distribution_{target}.png'
        plot_distribution(df, target, hist_path)
        print(f"    ✓ Saved: {hist_path}")

    return summary, corr


if __name__ == "__main__":
    run_eda()
