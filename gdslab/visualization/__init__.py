"""
GDSLAB Visualization Module
===========================

Choropleths, static figures and interactive maps.

Modules:
    - choropleth: mapclassify classification and static choropleths
    - static_plots: Moran scatterplot, LISA map, weights connectivity
    - interactive_maps: Folium choropleth and LISA explorers
"""

from .choropleth import run_choropleths
from .interactive_maps import choropleth_map, lisa_map
from .generate_all_maps import generate_all_maps

__all__ = [
    "run_choropleths",
    "choropleth_map",
    "lisa_map",
    "generate_all_maps",
]
