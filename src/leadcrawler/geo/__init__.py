"""Search coverage planning: extent tiers, grids and query variants."""

from .grid_planner import (
    GeoGridPlanner,
    GeographyTables,
    TierSpec,
    calculate_bounding_box,
    create_grid,
    load_geography,
    normalize_location,
    zoom_for_distance,
)

__all__ = [
    "GeoGridPlanner",
    "GeographyTables",
    "TierSpec",
    "calculate_bounding_box",
    "create_grid",
    "load_geography",
    "normalize_location",
    "zoom_for_distance",
]
