import matplotlib
matplotlib.use('Agg')

import numpy as np
import pandas as pd
import geopandas as gpd
import pytest
import yaml
from shapely.geometry import box

from gdslab.config import CourseConfig

SIDE = 7
CELL = 1000.0
SEED = 12345


def make_lattice(side: int = SIDE, cell: float = CELL) -> gpd.GeoDataFrame:
    """Square lattice of polygons in a projected CRS, row-major order."""
    rng = np.random.default_rng(SEED)
    rows, cols, geoms = [], [], []
    for r in range(side):
        for c in range(side):
            rows.append(r)
            cols.append(c)
            geoms.append(box(c * cell, r * cell, (c + 1) * cell, (r + 1) * cell))

    rows = np.array(rows)
    cols = np.array(cols)
    n = side * side

    x1 = rng.normal(0, 1, n)
    x2 = rng.normal(0, 1, n)
    trend = (rows + cols) / 2.0
    income = 20 + 3 * trend + rng.normal(0, 0.5, n)

    return gpd.GeoDataFrame({
        'geo_id': [f"u{r}{c}" for r, c in zip(rows, cols)],
        'row': rows,
        'col': cols,
        'income': income,
        'x1': x1,
        'x2': x2,
        'price': 2.0 + 1.5 * x1 - 1.0 * x2 + rng.normal(0, 0.1, n),
        'checker': ((rows + cols) % 2).astype(float),
        'constant': np.ones(n),
    }, geometry=geoms, crs="EPSG:3857")


@pytest.fixture
def lattice():
    return make_lattice()


def write_project(root, gdf: gpd.GeoDataFrame, overrides=None) -> str:
    """Write boundaries, attributes and a config file under ``root``."""
    data_dir = root / "data"
    config_dir = root / "config"
    data_dir.mkdir(parents=True, exist_ok=True)
    config_dir.mkdir(parents=True, exist_ok=True)

    gdf[['geo_id', 'geometry']].to_file(data_dir / "boundaries.gpkg", driver="GPKG")
    pd.DataFrame(gdf.drop(columns='geometry')).to_csv(data_dir / "attributes.csv", index=False)

    config = {
        'paths': {
            'source': {
                'boundaries': 'boundaries.gpkg',
                'attributes': 'attributes.csv',
            }
        },
        'data': {
            'id_column': 'geo_id',
            'target': 'income',
            'covariates': ['x1', 'x2'],
            'variables': ['checker'],
        },
        'weights': {'kind': 'queen', 'transform': 'r'},
        'autocorrelation': {'permutations': 99, 'significance': 0.05, 'seed': SEED},
        'choropleth': {'scheme': 'quantiles', 'k': 5, 'compare': ['equal_interval']},
        'clustering': {'n_clusters': 3, 'random_state': 0},
        'regression': {'models': ['ols', 'lag', 'error']},
    }
    for section, values in (overrides or {}).items():
        config.setdefault(section, {}).update(values)

    config_path = config_dir / "walkthrough.yaml"
    with open(config_path, 'w') as f:
        yaml.safe_dump(config, f)
    return str(config_path)


@pytest.fixture
def project(tmp_path, lattice):
    """A temporary project root; returns the loaded config."""
    config_path = write_project(tmp_path, lattice)
    return CourseConfig.load(config_path)


@pytest.fixture
def project_path(tmp_path, lattice):
    """A temporary project root; returns the config file path."""
    return write_project(tmp_path, lattice)


@pytest.fixture
def make_project(tmp_path):
    """Factory for projects built from a custom frame or config overrides."""
    def _make(gdf=None, overrides=None) -> CourseConfig:
        frame = make_lattice() if gdf is None else gdf
        return CourseConfig.load(write_project(tmp_path, frame, overrides))
    return _make


@pytest.fixture
def prepared(project):
    """Project with the dataset and spatial weights already written."""
    from gdslab.preprocessing.data_loading import run_preprocessing
    from gdslab.analysis.spatial_weights import run_weights

    run_preprocessing(project)
    run_weights(project)
    return project
