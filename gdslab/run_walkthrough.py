#!/usr/bin/env python3
"""
GDSLAB Walkthrough Runner
=========================
Runs the course walkthroughs end to end, or any subset of their stages.

Usage:
    python -m gdslab.run_walkthrough
    python -m gdslab.run_walkthrough --config path/to/walkthrough.yaml
    python -m gdslab.run_walkthrough --stages weights autocorrelation
    python -m gdslab.run_walkthrough --show-config

Each stage reads what earlier stages wrote to disk, so a stage can be rerun
on its own once its inputs exist.
"""

import argparse
import importlib
import sys
import time
import traceback
from datetime import datetime
from typing import Dict, List, Optional

from .config import CourseConfig, load_config


# stage -> (module, entry point, description); imported only when run
STAGES = {
    'preprocessing': ('gdslab.preprocessing.data_loading', 'run_preprocessing',
                      'Read boundaries, join attributes'),
    'eda': ('gdslab.analysis.exploratory_data_analysis', 'run_eda',
            'Summary statistics and correlations'),
    'weights': ('gdslab.analysis.spatial_weights', 'run_weights',
                'Build and save the spatial weights matrix'),
    'autocorrelation': ('gdslab.analysis.spatial_autocorrelation', 'run_spatial_autocorrelation',
                        "Spatial lag, global and local Moran's I"),
    'choropleths': ('gdslab.visualization.choropleth', 'run_choropleths',
                    'Classification schemes and static maps'),
    'clustering': ('gdslab.analysis.clustering', 'run_clustering',
                   'Geodemographic K-Means clusters'),
    'regression': ('gdslab.analysis.regression', 'run_regression',
                   'OLS, spatial diagnostics, spatial lag/error models'),
    'visualization': ('gdslab.visualization.generate_all_maps', 'generate_all_maps',
                      'Moran/LISA figures and interactive maps'),
}

STAGE_ORDER = ['preprocessing', 'eda', 'weights', 'autocorrelation',
               'choropleths', 'clustering', 'regression', 'visualization']


def run_stage(stage: str, config: CourseConfig):
    module_name, func_name, _ = STAGES[stage]
    func = getattr(importlib.import_module(module_name), func_name)
    return func(config)


def run_walkthrough(config_path: Optional[str] = None,
                    stages: Optional[List[str]] = None) -> Dict[str, float]:
    """
    Run walkthrough stages in order.

    Args:
        config_path: Path to config file. If None, uses default.
        stages: Stages to run. If None, runs all of them.

    Returns:
        Seconds spent per stage
    """
    stages = list(stages) if stages else list(STAGE_ORDER)
    unknown = [s for s in stages if s not in STAGES]
    if unknown:
        print(f"Error: Unknown stage '{unknown[0]}'")
        print(f"Available stages: {', '.join(STAGE_ORDER)}")
        sys.exit(1)

    config = load_config(config_path)

    print("=" * 70)
    print("GDSLAB - GEOGRAPHIC DATA SCIENCE WALKTHROUGHS")
    print("=" * 70)
    print(f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Target: {config.data.target} | Weights: {config.weights.kind} "
          f"({config.weights.transform})")
    print(f"Stages: {' -> '.join(stages)}")

    timings = {}
    for i, stage in enumerate(stages, 1):
        print(f"\n>>> [{i}/{len(stages)}] {stage}: {STAGES[stage][2]}")
        start = time.perf_counter()
        try:
            run_stage(stage, config)
        except Exception as e:
            print(f"\n✗ ERROR in stage '{stage}': {e}")
            traceback.print_exc(file=sys.stdout)
            sys.exit(1)
        timings[stage] = time.perf_counter() - start

    print("\n" + "=" * 70)
    print("WALKTHROUGH COMPLETED SUCCESSFULLY")
    print("=" * 70)
    for stage, seconds in timings.items():
        print(f"  {stage:16s} {seconds:8.1f}s")
    print(f"\nResults: {config.paths.results}")
    print(f"Assets:  {config.paths.assets}")
    return timings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gdslab",
        description="Run the GDSLAB course walkthroughs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Stages:\n" + "\n".join(
            f"  {name:16s} {STAGES[name][2]}" for name in STAGE_ORDER
        ),
    )
    parser.add_argument('--config', '-c', help='Path to configuration YAML file')
    parser.add_argument('--stages', '-s', nargs='+', choices=STAGE_ORDER,
                        help='Stages to run (default: all, in order)')
    parser.add_argument('--show-config', action='store_true',
                        help='Print the resolved configuration and exit')
    parser.add_argument('--list-stages', action='store_true',
                        help='List available stages and exit')
    return parser


def main(argv: Optional[List[str]] = None):
    """CLI entry point"""
    args = build_parser().parse_args(argv)

    if args.list_stages:
        for i, name in enumerate(STAGE_ORDER, 1):
            print(f"  {i}. {name:16s} {STAGES[name][2]}")
        sys.exit(0)

    if args.show_config:
        print(load_config(args.config).summary())
        sys.exit(0)

    run_walkthrough(config_path=args.config, stages=args.stages)


if __name__ == "__main__":
    main()
