#!/usr/bin/env python3
"""
Data Loading Module
===================
Reads the course boundaries and attribute table and joins them into a
single GeoDataFrame.

This module:
1. Reads polygon (or point) boundaries with geopandas
2. Reads the attribute table (CSV or Parquet)
3. Joins attributes onto geometries by key and reports mismatches
4. Saves the joined dataset as a GeoPackage for the later stages
"""

from pathlib import Path
from datetime import datetime
from typing import Optional
import pandas as pd
import geopandas as gpd
from shapely.geometry import Point

from ..config import CourseConfig, load_config
from ..reporting import print_header, stage_log

# temporary column holding the normalised join key
_JOIN_KEY = "_join_key"


def load_boundaries(path, crs: Optional[str] = None) -> gpd.GeoDataFrame:
    """Read a vector file of geographic units, optionally reprojected."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Boundaries file not found: {path}")

    gdf = gpd.read_file(path)
    if crs is not None:
        gdf = ensure_projected(gdf, crs)
    return gdf


def load_attributes(path) -> pd.DataFrame:
    """Read the attribute table from CSV or Parquet."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Attribute table not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path)
    if suffix in (".parquet", ".pq"):
        return pd.read_parquet(path)
    raise ValueError(f"Unsupported attribute table format '{suffix}' (use .csv or .parquet)")


def points_from_coordinates(df: pd.DataFrame, x: str = "longitude", y: str = "latitude",
                            crs: str = "EPSG:4326") -> gpd.GeoDataFrame:
    """Build point geometries from coordinate columns"""
    missing = [col for col in (x, y) if col not in df.columns]
    if missing:
        raise ValueError(f"Coordinate column(s) not found: {missing}")

    geometry = [Point(xy) for xy in zip(df[x], df[y])]
    return gpd.GeoDataFrame(df.copy(), geometry=geometry, crs=crs)


def ensure_projected(gdf: gpd.GeoDataFrame, crs: Optional[str] = None) -> gpd.GeoDataFrame:
    """
    Reproject to ``crs`` when it is set and differs from the current CRS.

    Distance based weights and centroids are only meaningful in a projected
    CRS, so geographic data without a target CRS is reported.
    """
    if crs is None:
        if gdf.crs is not None and gdf.crs.is_geographic:
            print(f"    ⚠ Data is in a geographic CRS ({gdf.crs.to_string()}); "
                  "distances and centroids are in degrees")
        return gdf

    if gdf.crs is None:
        raise ValueError("Cannot reproject data without a CRS; set one on the source file")

    if gdf.crs.to_string() != crs:
        gdf = gdf.to_crs(crs)
    return gdf


def join_attributes(gdf: gpd.GeoDataFrame, df: pd.DataFrame, left_on: str,
                    right_on: Optional[str] = None, how: str = "left") -> gpd.GeoDataFrame:
    """
    Join an attribute table onto geographic units.

    Keys must be unique on both sides and are matched on their text form, so
    an integer id matches the same id read back as a float (``7`` and
    ``7.0``) or as a string. The key column of ``gdf`` keeps its dtype.
    Returns a GeoDataFrame with the geometry and CRS of ``gdf``.
    """
    right_on = right_on or left_on

    if left_on not in gdf.columns:
        raise ValueError(f"Join key '{left_on}' not found in boundaries")
    if right_on not in df.columns:
        raise ValueError(f"Join key '{right_on}' not found in attribute table")

    left = gdf.copy()
    right = df.copy()
    left[_JOIN_KEY] = _key_strings(left[left_on])
    right[_JOIN_KEY] = _key_strings(right[right_on])
    right = right.drop(columns=right_on)

    unmatched = ~left[_JOIN_KEY].isin(right[_JOIN_KEY])
    if unmatched.any():
        print(f"    ⚠ {unmatched.sum()} of {len(left)} units have no attributes "
              f"(e.g. {left.loc[unmatched, left_on].head(3).tolist()})")

    extra = ~right[_JOIN_KEY].isin(left[_JOIN_KEY])
    if extra.any():
        print(f"    ⚠ {extra.sum()} attribute rows match no unit")

    merged = left.merge(right, on=_JOIN_KEY, how=how,
                        validate="one_to_one", suffixes=("", "_attr"))
    merged = merged.drop(columns=_JOIN_KEY)

    return gpd.GeoDataFrame(merged, geometry=gdf.geometry.name, crs=gdf.crs)


def _key_strings(values: pd.Series) -> pd.Series:
    """Text form of join keys; integral floats lose their ``.0``"""
    if pd.api.types.is_float_dtype(values):
        finite = values.dropna()
        if (finite == finite.round()).all():
            values = values.astype("Int64")
    return values.astype(str)


def load_course_dataset(config: CourseConfig) -> gpd.GeoDataFrame:
    """Load the joined dataset written by the preprocessing stage"""
    path = config.get_dataset_path()
    print(f"    Loading: {path}")
    if not path.exists():
        raise FileNotFoundError(f"Course dataset not found: {path} (run preprocessing first)")

    gdf = gpd.read_file(path)
    print(f"    ✓ Units: {len(gdf)}")
    return gdf


def describe_schema(gdf: gpd.GeoDataFrame):
    """Print column types and missing values"""
    print(f"    Rows: {len(gdf)}")
    print(f"    CRS: {gdf.crs.to_string() if gdf.crs is not None else 'None'}")
    print(f"    Geometry types: {gdf.geom_type.value_counts().to_dict()}")
    print(f"\n    {'Column':<30} {'Type':<15} {'Missing':>8}")
    print("    " + "-" * 55)
    for col in gdf.columns:
        if col == gdf.geometry.name:
            continue
        print(f"    {col:<30} {str(gdf[col].dtype):<15} {gdf[col].isna().sum():>8}")


def run_preprocessing(config: Optional[CourseConfig] = None) -> gpd.GeoDataFrame:
    """
    Main execution function for preprocessing.

    Args:
        config: CourseConfig instance. If None, loads from default.

    Returns:
        The joined GeoDataFrame
    """
    if config is None:
        config = load_config()

    config.paths.ensure_dirs()
    results_dir = config.get_results_subdir("preprocessing")

    with stage_log(results_dir / 'preprocessing_log.txt'):
        print_header("DATA PREPROCESSING")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

        print_header("1. LOADING BOUNDARIES", level=2)
        print(f"    File: {config.paths.source_boundaries}")
        gdf = load_boundaries(config.paths.source_boundaries, crs=config.data.crs)
        print(f"    ✓ Units: {len(gdf)}")

        print_header("2. LOADING ATTRIBUTES", level=2)
        print(f"    File: {config.paths.source_attributes}")
        df = load_attributes(config.paths.source_attributes)
        print(f"    ✓ Rows: {len(df)}, columns: {len(df.columns)}")

        print_header("3. JOINING ATTRIBUTES", level=2)
        joined = join_attributes(gdf, df, left_on=config.data.id_column,
                                 right_on=config.data.attribute_key, how="left")

        target = config.data.target
        if target not in joined.columns:
            raise ValueError(f"Target variable '{target}' not found after join")

        missing_target = joined[target].isna()
        if missing_target.any():
            print(f"    ⚠ Dropping {missing_target.sum()} units with missing '{target}'")
            joined = joined.loc[~missing_target].reset_index(drop=True)
        print(f"    ✓ Joined units: {len(joined)}")

        print_header("4. SCHEMA", level=2)
        describe_schema(joined)

        output_path = config.get_dataset_path()
        joined.to_file(output_path, driver="GPKG")
        print(f"\n    ✓ Saved to: {output_path}")

    return joined


if __name__ == "__main__":
    run_preprocessing()
