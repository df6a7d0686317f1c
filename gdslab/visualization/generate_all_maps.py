#!/usr/bin/env python3
"""
Generate All Maps
=================
Utility to generate all static figures and interactive maps at once.
"""

from typing import Optional, List
import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from ..config import CourseConfig, load_config
from .interactive_maps import choropleth_map, lisa_map, save_map
from .static_plots import (
    plot_moran_scatter,
    plot_lisa_clusters,
    plot_weights_connectivity,
    plot_moran_comparison,
)


def _read_result(config: CourseConfig, stage: str, filename: str) -> pd.DataFrame:
    path = config.paths.results / stage / filename
    if not path.exists():
        raise FileNotFoundError(f"Result not found: {path}")
    return pd.read_csv(path)


def _save_figure(fig, path) -> str:
    plt.tight_layout()
    fig.savefig(path, dpi=300, bbox_inches='tight')
    plt.close(fig)
    print(f"✓ Saved: {path}")
    return str(path)


def generate_all_maps(config: Optional[CourseConfig] = None) -> List[str]:
    """
    Generate all static figures and interactive maps.

    Returns:
        List of paths to generated files
    """
    from ..preprocessing.data_loading import load_course_dataset, ensure_projected
    from ..analysis.spatial_weights import load_weights

    if config is None:
        config = load_config()

    print("=" * 60)
    print("GENERATING ALL MAPS")
    print("=" * 60)

    target = config.data.target
    maps_dir = config.get_assets_subdir("maps")
    figures_dir = config.get_assets_subdir("figures")
    generated = []

    gdf = ensure_projected(load_course_dataset(config), config.data.crs)
    id_col = config.data.id_column if config.data.id_column in gdf.columns else None

    # Choropleth map (always available)
    try:
        m = choropleth_map(gdf, target, scheme=config.choropleth.scheme,
                           k=config.choropleth.k, cmap=config.choropleth.cmap,
                           tooltip=[id_col] if id_col else None)
        generated.append(save_map(m, maps_dir / f'choropleth_{target}_explorer.html'))
    except Exception as e:
        print(f"⚠ Failed to generate choropleth map: {e}")

    # Weights connectivity (requires weights stage)
    try:
        w = load_weights(config.get_weights_path(), transform=config.weights.transform)
        fig, ax = plt.subplots(figsize=(10, 8))
        plot_weights_connectivity(gdf, w, ax=ax)
        generated.append(_save_figure(fig, figures_dir / 'weights_connectivity.png'))
    except FileNotFoundError:
        print("⚠ Connectivity plot skipped (run the weights stage first)")
    except Exception as e:
        print(f"⚠ Failed to generate connectivity plot: {e}")

    # Moran scatterplot and comparison (require autocorrelation stage)
    try:
        scatter = _read_result(config, "spatial_autocorrelation", f'moran_scatter_{target}.csv')
        morans = _read_result(config, "spatial_autocorrelation", 'global_morans_I_by_variable.csv')
        target_row = morans.loc[morans['variable'] == target]
        moran_I = float(target_row['I'].iloc[0]) if len(target_row) else None

        fig, ax = plt.subplots(figsize=(7, 7))
        plot_moran_scatter(scatter, moran_I=moran_I, ax=ax)
        generated.append(_save_figure(fig, figures_dir / f'moran_scatter_{target}.png'))

        fig, ax = plt.subplots(figsize=(10, 6))
        plot_moran_comparison(morans, significance=config.autocorrelation.significance, ax=ax)
        generated.append(_save_figure(fig, figures_dir / 'global_morans_i_comparison.png'))
    except FileNotFoundError:
        print("⚠ Moran plots skipped (run spatial autocorrelation first)")
    except Exception as e:
        print(f"⚠ Failed to generate Moran plots: {e}")

    # LISA maps (require autocorrelation stage)
    try:
        lisa_df = _read_result(config, "spatial_autocorrelation", f'lisa_results_{target}.csv')

        fig, ax = plt.subplots(figsize=(10, 8))
        plot_lisa_clusters(gdf, lisa_df, ax=ax, title=f'LISA Cluster Map: {target}')
        generated.append(_save_figure(fig, figures_dir / f'lisa_cluster_map_{target}.png'))

        m = lisa_map(gdf, lisa_df, label_column=id_col)
        generated.append(save_map(m, maps_dir / 'lisa_clusters_explorer.html'))
    except FileNotFoundError:
        print("⚠ LISA maps skipped (run spatial autocorrelation first)")
    except Exception as e:
        print(f"⚠ Failed to generate LISA maps: {e}")

    print("\n" + "=" * 60)
    print(f"Generated {len(generated)} outputs")
    print("=" * 60)

    return generated


if __name__ == "__main__":
    generate_all_maps()
