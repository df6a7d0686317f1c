"""
GDSLAB Analysis Module
======================

Exploratory, spatial and regression analysis.

Modules:
    - exploratory_data_analysis: Summary statistics and correlations
    - spatial_weights: Weights construction, transformation and storage
    - spatial_autocorrelation: Spatial lag, global and local Moran's I
    - clustering: Geodemographic K-Means clusters
    - regression: OLS with spatial diagnostics, spatial lag and error models
"""

from .exploratory_data_analysis import run_eda
from .spatial_weights import run_weights
from .spatial_autocorrelation import run_spatial_autocorrelation
from .clustering import run_clustering
from .regression import run_regression

__all__ = [
    "run_eda",
    "run_weights",
    "run_spatial_autocorrelation",
    "run_clustering",
    "run_regression",
]
