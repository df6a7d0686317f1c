#!/usr/bin/env python3
"""
Prepare Example Data
====================
Writes the Columbus (Ohio) neighbourhood crime dataset bundled with libpysal
into the project data/ folder as a boundaries file plus a separate attribute
table, which is the shape of input the preprocessing stage expects.

Usage:
    python scripts/prepare_example_data.py
    python scripts/prepare_example_data.py --config config/walkthrough.yaml
"""

import argparse

import pandas as pd
import geopandas as gpd
from libpysal.examples import get_path

from gdslab import load_config


def prepare_columbus(config) -> None:
    gdf = gpd.read_file(get_path("columbus.shp"))
    print(f"Loaded Columbus: {len(gdf)} neighbourhoods, {len(gdf.columns)} columns")

    id_col = config.data.id_column
    config.paths.ensure_dirs()

    boundaries = gdf[[id_col, gdf.geometry.name]]
    boundaries.to_file(config.paths.source_boundaries, driver="GeoJSON")
    print(f"✓ Boundaries: {config.paths.source_boundaries}")

    attributes = pd.DataFrame(gdf.drop(columns=gdf.geometry.name))
    attributes.to_csv(config.paths.source_attributes, index=False)
    print(f"✓ Attributes: {config.paths.source_attributes}")


def main():
    parser = argparse.ArgumentParser(description="Write the Columbus example dataset to data/")
    parser.add_argument('--config', '-c', help='Path to configuration YAML file')
    args = parser.parse_args()

    prepare_columbus(load_config(args.config))


if __name__ == "__main__":
    main()
