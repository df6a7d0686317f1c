#!/usr/bin/env python3
"""
Visualization Module - Interactive Maps
=======================================
Folium maps for exploring the course dataset in a browser: a classified
choropleth of any variable and the LISA cluster map.
"""

from pathlib import Path
from typing import Optional, List
import numpy as np
import pandas as pd
import geopandas as gpd
import folium
from branca.colormap import StepColormap
from matplotlib import colormaps
from matplotlib.colors import to_hex

from .choropleth import classify


WEB_CRS = "EPSG:4326"

LISA_COLORS = {
    'HH': '#d7191c',  # High-High (red)
    'LL': '#2c7bb6',  # Low-Low (blue)
    'HL': '#fdae61',  # High-Low (orange)
    'LH': '#abd9e9',  # Low-High (light blue)
    'NS': '#ffffbf',  # Not significant (yellow)
}

LISA_NAMES = {
    'HH': 'High-High',
    'LL': 'Low-Low',
    'HL': 'High-Low',
    'LH': 'Low-High',
    'NS': 'Not Significant',
}


def class_colors(cmap: str, k: int) -> List[str]:
    """``k`` evenly spaced hex colours from a matplotlib colormap"""
    colormap = colormaps[cmap]
    return [to_hex(colormap(x)) for x in np.linspace(0.1, 0.9, k)]


def _web_frame(gdf: gpd.GeoDataFrame, columns: List[str]) -> gpd.GeoDataFrame:
    """Subset to JSON-friendly columns and reproject for web maps."""
    if gdf.crs is None:
        raise ValueError("Web maps need data with a CRS; set data.crs or fix the source file")
    keep = [c for c in dict.fromkeys(columns) if c in gdf.columns]
    web = gpd.GeoDataFrame(gdf[keep].copy(), geometry=gdf.geometry.values, crs=gdf.crs)
    if web.crs is not None and web.crs.to_string() != WEB_CRS:
        web = web.to_crs(WEB_CRS)
    return web


def _base_map(gdf: gpd.GeoDataFrame, tiles: str = "CartoDB positron") -> folium.Map:
    minx, miny, maxx, maxy = gdf.total_bounds
    m = folium.Map(location=[(miny + maxy) / 2, (minx + maxx) / 2], tiles=tiles)
    m.fit_bounds([[miny, minx], [maxy, maxx]])
    return m


def choropleth_map(gdf: gpd.GeoDataFrame, column: str, scheme: str = "quantiles",
                   k: int = 5, cmap: str = "YlOrRd", tooltip: Optional[List[str]] = None,
                   tiles: str = "CartoDB positron") -> folium.Map:
    """
    Interactive choropleth of ``column``.

    Returns:
        folium.Map with a GeoJson layer and a stepped legend
    """
    if column not in gdf.columns:
        raise ValueError(f"Variable '{column}' not found in dataset")

    classifier = classify(gdf[column].values, scheme=scheme, k=k)
    colors = class_colors(cmap, classifier.k)

    tooltip = [c for c in (tooltip or []) if c in gdf.columns and c != column] + [column]
    web = _web_frame(gdf, tooltip)
    values = web[column].astype(float)

    # Class index per unit; missing values get no class
    classes = np.full(len(web), -1, dtype=int)
    classes[values.notna().values] = classifier.yb
    web['_class'] = classes

    def style_function(feature):
        cls = feature['properties']['_class']
        color = colors[int(cls)] if cls is not None and int(cls) >= 0 else '#cccccc'
        return {
            'fillColor': color,
            'color': 'black',
            'weight': 0.3,
            'fillOpacity': 0.75,
        }

    def highlight_function(feature):
        return {
            'weight': 1.5,
            'color': 'black',
            'fillOpacity': 0.9,
        }

    m = _base_map(web, tiles=tiles)
    folium.GeoJson(
        web,
        name=f"{column} ({scheme})",
        style_function=style_function,
        highlight_function=highlight_function,
        tooltip=folium.GeoJsonTooltip(fields=tooltip, localize=True),
    ).add_to(m)

    index = [float(np.nanmin(values))] + [float(b) for b in classifier.bins]
    legend = StepColormap(colors, index=index, vmin=index[0], vmax=index[-1],
                          caption=f"{column} ({scheme}, k={classifier.k})")
    legend.add_to(m)

    folium.LayerControl().add_to(m)
    return m


def lisa_map(gdf: gpd.GeoDataFrame, lisa_df: pd.DataFrame,
             label_column: Optional[str] = None,
             tiles: str = "CartoDB positron") -> folium.Map:
    """
    Interactive LISA cluster map; ``lisa_df`` rows align with ``gdf`` rows.
    """
    if len(gdf) != len(lisa_df):
        raise ValueError(f"LISA results have {len(lisa_df)} rows but the map has {len(gdf)} units")

    columns = [label_column] if label_column else []
    web = _web_frame(gdf, columns)
    web['value'] = lisa_df['value'].values
    web['local_I'] = lisa_df['local_I'].round(4).values
    web['p_value'] = lisa_df['p_value'].round(4).values
    web['cluster'] = lisa_df['cluster'].values

    def style_function(feature):
        color = LISA_COLORS.get(feature['properties']['cluster'], LISA_COLORS['NS'])
        return {
            'fillColor': color,
            'color': 'grey',
            'weight': 0.3,
            'fillOpacity': 0.75,
        }

    m = _base_map(web, tiles=tiles)
    fields = [c for c in columns if c in web.columns] + ['value', 'local_I', 'p_value', 'cluster']
    folium.GeoJson(
        web,
        name="LISA clusters",
        style_function=style_function,
        tooltip=folium.GeoJsonTooltip(fields=fields, localize=True),
    ).add_to(m)

    # Add legend
    items = "".join(
        f'<p><span style="color:{LISA_COLORS[key]};">●</span> {LISA_NAMES[key]}</p>'
        for key in ['HH', 'LL', 'HL', 'LH', 'NS']
    )
    legend_html = f'''
    <div style="position: fixed; bottom: 50px; left: 50px; z-index: 1000;
                background-color: white; padding: 10px; border-radius: 5px;
                border: 2px solid grey;">
        <h4>LISA Clusters</h4>
        {items}
    </div>
    '''
    m.get_root().html.add_child(folium.Element(legend_html))
    return m


def save_map(m: folium.Map, output_path) -> str:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    m.save(str(output_path))
    print(f"✓ Saved: {output_path}")
    return str(output_path)
