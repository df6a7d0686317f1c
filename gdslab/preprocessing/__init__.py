"""
GDSLAB Preprocessing Module
===========================

Reading and joining the course dataset.

Modules:
    - data_loading: Read boundaries and attributes, join them, save the dataset
"""

from .data_loading import (
    run_preprocessing,
    load_boundaries,
    load_attributes,
    join_attributes,
    points_from_coordinates,
    ensure_projected,
    load_course_dataset,
)

__all__ = [
    "run_preprocessing",
    "load_boundaries",
    "load_attributes",
    "join_attributes",
    "points_from_coordinates",
    "ensure_projected",
    "load_course_dataset",
]
