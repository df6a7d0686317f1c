"""
Configuration loader for the GDSLAB walkthroughs.

This module provides configuration management with YAML support,
validation, and path resolution.
"""

from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
import yaml


# Find project root by looking for config/ directory
def find_project_root() -> Path:
    """Find the project root directory by looking for config/walkthrough.yaml."""
    current = Path(__file__).resolve().parent

    # Walk up the directory tree
    for _ in range(10):  # Max 10 levels up
        config_file = current / "config" / "walkthrough.yaml"
        if config_file.exists():
            return current
        parent = current.parent
        if parent == current:
            break
        current = parent

    # Fallback: assume we're in gdslab/ package
    return Path(__file__).resolve().parent.parent


PROJECT_ROOT = find_project_root()
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "walkthrough.yaml"

WEIGHTS_KINDS = ["knn", "queen", "rook", "distance"]
WEIGHTS_TRANSFORMS = ["r", "b", "o", "v", "d"]
REGRESSION_MODELS = ["ols", "lag", "error"]


@dataclass
class PathsConfig:
    """Path configuration with automatic resolution."""
    data_dir: str = "data"
    results_dir: str = "results"
    assets_dir: str = "assets"
    weights_dir: str = "weights"
    source: Dict[str, str] = field(default_factory=lambda: {
        "boundaries": "boundaries.geojson",
        "attributes": "attributes.csv"
    })

    def resolve(self, base: Path) -> "ResolvedPaths":
        """Resolve all paths relative to base directory."""
        return ResolvedPaths(
            base=base,
            data=base / self.data_dir,
            results=base / self.results_dir,
            assets=base / self.assets_dir,
            weights=base / self.weights_dir,
            source_boundaries=base / self.data_dir / self.source["boundaries"],
            source_attributes=base / self.data_dir / self.source["attributes"]
        )


@dataclass
class ResolvedPaths:
    """Resolved absolute paths for the project."""
    base: Path
    data: Path
    results: Path
    assets: Path
    weights: Path
    source_boundaries: Path
    source_attributes: Path

    def ensure_dirs(self):
        """Create all directories if they don't exist."""
        for path in [self.data, self.results, self.assets, self.weights]:
            path.mkdir(parents=True, exist_ok=True)


@dataclass
class DataConfig:
    """Dataset columns and projection."""
    id_column: str = "geo_id"
    join_key: Optional[str] = None
    target: str = "income"
    covariates: List[str] = field(default_factory=list)
    variables: List[str] = field(default_factory=list)
    crs: Optional[str] = None

    @property
    def attribute_key(self) -> str:
        """Key column in the attribute table (falls back to id_column)."""
        return self.join_key or self.id_column


@dataclass
class WeightsConfig:
    """Spatial weights settings."""
    kind: str = "knn"
    k: int = 6
    threshold: Optional[float] = None
    binary: bool = True
    transform: str = "r"

    def validate(self):
        """Validate weights settings."""
        if self.kind not in WEIGHTS_KINDS:
            raise ValueError(
                f"Invalid weights kind '{self.kind}'. "
                f"Must be one of: {WEIGHTS_KINDS}"
            )
        if self.transform.lower() not in WEIGHTS_TRANSFORMS:
            raise ValueError(
                f"Invalid weights transform '{self.transform}'. "
                f"Must be one of: {WEIGHTS_TRANSFORMS}"
            )
        if self.kind == "knn" and self.k < 1:
            raise ValueError(f"KNN weights need k >= 1, got {self.k}")
        if self.kind == "distance" and (self.threshold is None or self.threshold <= 0):
            raise ValueError("Distance band weights need a positive threshold")


@dataclass
class AutocorrelationConfig:
    """Moran's I inference settings."""
    permutations: int = 999
    significance: float = 0.05
    seed: int = 12345


@dataclass
class ChoroplethConfig:
    """Choropleth classification settings."""
    scheme: str = "quantiles"
    k: int = 5
    cmap: str = "YlOrRd"
    compare: List[str] = field(default_factory=lambda: [
        "quantiles", "equal_interval", "fisher_jenks"
    ])

    def validate(self):
        """Validate scheme names against the classifier registry."""
        from .visualization.choropleth import normalize_scheme

        for scheme in [self.scheme] + list(self.compare):
            if normalize_scheme(scheme) == "userdefined":
                raise ValueError(
                    f"Scheme '{scheme}' needs explicit bins and cannot be configured; "
                    "call classify(..., bins=...) directly"
                )
        if self.k < 2:
            raise ValueError(f"Choropleths need at least 2 classes, got k={self.k}")


@dataclass
class RegressionConfig:
    """Regression model settings."""
    log_target: bool = False
    standardize: bool = False
    models: List[str] = field(default_factory=lambda: ["ols", "lag", "error"])
    white_test: bool = False
    vif_threshold: float = 10.0

    def validate(self):
        """Validate model names."""
        unknown = [m for m in self.models if m not in REGRESSION_MODELS]
        if unknown:
            raise ValueError(
                f"Invalid regression model(s) {unknown}. "
                f"Must be drawn from: {REGRESSION_MODELS}"
            )


@dataclass
class ClusteringConfig:
    """Geodemographic clustering settings."""
    n_clusters: int = 4
    random_state: int = 42


@dataclass
class OutputConfig:
    """Output file naming configuration."""
    dataset: str = "course_dataset.gpkg"
    spatial_weights: str = "spatial_weights_{kind}{k}.gal"

    def format_spatial_weights(self, kind: str, k: int) -> str:
        """Get spatial weights filename; k is only part of the name for KNN."""
        return self.spatial_weights.format(kind=kind, k=k if kind == "knn" else "")


class CourseConfig:
    """
    Main configuration class for the GDSLAB walkthroughs.

    Loads configuration from YAML and provides typed access to all settings.

    Usage:
        config = CourseConfig.load()  # Load from default location
        config = CourseConfig.load("path/to/config.yaml")  # Custom path

        # Access settings
        print(config.weights.kind)
        print(config.paths.data)
        print(config.get_weights_path())
    """

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None, base_path: Optional[Path] = None):
        config_dict = config_dict or {}
        self._raw = config_dict
        self._base_path = Path(base_path) if base_path else PROJECT_ROOT

        # Parse paths config
        paths_dict = config_dict.get("paths", {})
        source = {
            "boundaries": "boundaries.geojson",
            "attributes": "attributes.csv"
        }
        source.update(paths_dict.get("source", {}))
        paths_config = PathsConfig(
            data_dir=paths_dict.get("data_dir", "data"),
            results_dir=paths_dict.get("results_dir", "results"),
            assets_dir=paths_dict.get("assets_dir", "assets"),
            weights_dir=paths_dict.get("weights_dir", "weights"),
            source=source
        )
        self.paths = paths_config.resolve(self._base_path)

        # Parse data config
        data_dict = config_dict.get("data", {})
        self.data = DataConfig(
            id_column=data_dict.get("id_column", "geo_id"),
            join_key=data_dict.get("join_key"),
            target=data_dict.get("target", "income"),
            covariates=list(data_dict.get("covariates", [])),
            variables=list(data_dict.get("variables", [])),
            crs=data_dict.get("crs")
        )

        # Parse weights config
        weights_dict = config_dict.get("weights", {})
        self.weights = WeightsConfig(
            kind=str(weights_dict.get("kind", "knn")).lower(),
            k=int(weights_dict.get("k", 6)),
            threshold=weights_dict.get("threshold"),
            binary=bool(weights_dict.get("binary", True)),
            transform=str(weights_dict.get("transform", "r")).lower()
        )
        self.weights.validate()

        # Parse autocorrelation config
        auto_dict = config_dict.get("autocorrelation", {})
        self.autocorrelation = AutocorrelationConfig(
            permutations=int(auto_dict.get("permutations", 999)),
            significance=float(auto_dict.get("significance", 0.05)),
            seed=int(auto_dict.get("seed", 12345))
        )

        # Parse choropleth config
        choro_dict = config_dict.get("choropleth", {})
        self.choropleth = ChoroplethConfig(
            scheme=choro_dict.get("scheme", "quantiles"),
            k=int(choro_dict.get("k", 5)),
            cmap=choro_dict.get("cmap", "YlOrRd"),
            compare=list(choro_dict.get("compare", [
                "quantiles", "equal_interval", "fisher_jenks"
            ]))
        )
        self.choropleth.validate()

        # Parse regression config
        reg_dict = config_dict.get("regression", {})
        self.regression = RegressionConfig(
            log_target=bool(reg_dict.get("log_target", False)),
            standardize=bool(reg_dict.get("standardize", False)),
            models=[m.lower() for m in reg_dict.get("models", ["ols", "lag", "error"])],
            white_test=bool(reg_dict.get("white_test", False)),
            vif_threshold=float(reg_dict.get("vif_threshold", 10.0))
        )
        self.regression.validate()

        # Parse clustering config
        cluster_dict = config_dict.get("clustering", {})
        self.clustering = ClusteringConfig(
            n_clusters=int(cluster_dict.get("n_clusters", 4)),
            random_state=int(cluster_dict.get("random_state", 42))
        )

        # Parse output config
        output_dict = config_dict.get("output", {})
        self.output = OutputConfig(
            dataset=output_dict.get("dataset", "course_dataset.gpkg"),
            spatial_weights=output_dict.get("spatial_weights", "spatial_weights_{kind}{k}.gal")
        )

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "CourseConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to config file. If None, uses default.

        Returns:
            CourseConfig instance
        """
        if config_path is None:
            path = DEFAULT_CONFIG_PATH
        else:
            path = Path(config_path)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        # Determine base path (parent of config/ directory)
        base_path = path.resolve().parent.parent

        return cls(config_dict, base_path)

    # ==================== Convenience Methods ====================

    @property
    def analysis_variables(self) -> List[str]:
        """Variables profiled by Moran's I (target first, no duplicates)."""
        variables = [self.data.target] + list(self.data.variables) + list(self.data.covariates)
        return list(dict.fromkeys(variables))

    def select_variables(self, df) -> List[str]:
        """
        Variables the analysis stages profile in ``df``.

        Without configured ``data.variables`` this is the target followed by
        every numeric column except the unit id and spatial lag columns.
        """
        if self.data.variables:
            return self.analysis_variables

        lag_columns = {f"w_{col}" for col in df.columns}
        numeric = [
            col for col in df.select_dtypes(include="number").columns
            if col != self.data.id_column and col not in lag_columns
        ]
        return list(dict.fromkeys([self.data.target] + numeric))

    def get_dataset_path(self) -> Path:
        """Get full path to the joined course dataset."""
        return self.paths.data / self.output.dataset

    def get_weights_path(self) -> Path:
        """Get full path to spatial weights file."""
        filename = self.output.format_spatial_weights(self.weights.kind, self.weights.k)
        return self.paths.weights / filename

    def get_results_subdir(self, name: str) -> Path:
        """Get path to a results subdirectory, creating if needed."""
        path = self.paths.results / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_assets_subdir(self, name: str) -> Path:
        """Get path to an assets subdirectory, creating if needed."""
        path = self.paths.assets / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def summary(self) -> str:
        """Get a summary of current configuration."""
        weights_detail = (
            f"k={self.weights.k}" if self.weights.kind == "knn"
            else f"threshold={self.weights.threshold}" if self.weights.kind == "distance"
            else "contiguity"
        )
        return f"""
GDSLAB Walkthrough Configuration
================================
Paths:
  Data: {self.paths.data}
  Results: {self.paths.results}
  Assets: {self.paths.assets}
  Weights: {self.paths.weights}

Data:
  Boundaries: {self.paths.source_boundaries.name}
  Attributes: {self.paths.source_attributes.name}
  Unit id: {self.data.id_column} (join key: {self.data.attribute_key})
  Target: {self.data.target}
  Covariates: {', '.join(self.data.covariates) or 'none'}
  CRS: {self.data.crs or 'as read'}

Spatial Weights:
  Kind: {self.weights.kind} ({weights_detail})
  Transform: {self.weights.transform}
  File: {self.output.format_spatial_weights(self.weights.kind, self.weights.k)}

Moran's I:
  Permutations: {self.autocorrelation.permutations}
  Significance: {self.autocorrelation.significance}

Choropleth:
  Scheme: {self.choropleth.scheme} (k={self.choropleth.k})

Regression:
  Models: {', '.join(self.regression.models)}
  Log target: {self.regression.log_target}
"""


# Convenience function for quick loading
def load_config(config_path: Optional[str] = None) -> CourseConfig:
    """
    Load walkthrough configuration.

    Args:
        config_path: Optional path to config file.

    Returns:
        CourseConfig instance

    Usage:
        from gdslab import load_config
        config = load_config()
    """
    return CourseConfig.load(config_path)
