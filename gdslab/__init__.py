"""
GDSLAB - Geographic Data Science Walkthroughs
=============================================

A configurable pipeline that runs the lecture walkthroughs of an
introductory course in geographic data science and spatial econometrics.

Modules:
    - config: Configuration loading and validation
    - preprocessing: Reading boundaries and joining attribute tables
    - analysis: EDA, spatial weights, Moran's I, clustering and regression
    - visualization: Choropleths, static figures and interactive maps
"""

__version__ = "1.0.0"
__author__ = "GDSLAB Team"

from .config import CourseConfig, load_config

__all__ = [
    "CourseConfig",
    "load_config",
    "__version__",
]
