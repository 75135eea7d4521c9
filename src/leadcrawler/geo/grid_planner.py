"""
Geography-driven search coverage planning.

Turns free-text locations into an ordered list of search targets sized to
the estimated geographic extent of the place:

- province/region: one search per major settlement of the province
- with a known center: a grid_size x grid_size grid of map cells
- otherwise: the base query plus directional and qualifier variants

The planner never geocodes. The orchestrator learns a center from the map
site's own response and hands it back through remember_center().
"""

import logging
import math
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml

from ..constants import DEFAULT_MAX_CELLS, GEOCODE_CACHE_PREFIX, GEOCODE_CACHE_TTL_SECONDS
from ..infrastructure.cache import Cache
from ..models import (
    BoundingBox,
    Coordinates,
    CrawlPlan,
    ExtentTier,
    GridCell,
    PlanMode,
    SearchTarget,
    TargetKind,
)
from ..utils.text import normalize_text, phrase_pattern

logger = logging.getLogger(__name__)

KM_PER_DEGREE = 111.0

DEFAULT_GEOGRAPHY_PATH = Path(__file__).resolve().parent.parent / "data" / "geography.yaml"


def normalize_location(text: str) -> str:
    """Lower-case, strip diacritics, drop commas and collapse whitespace."""
    return normalize_text((text or "").replace(",", " "))


@dataclass
class TierSpec:
    """Search radius and grid density for one extent tier."""
    radius_km: float
    grid_size: int


@dataclass
class GeographyTables:
    """Heuristic tables that drive extent estimation and plan shaping."""
    tiers: dict[ExtentTier, TierSpec]
    tier_order: list[ExtentTier]
    indicators: dict[ExtentTier, list[str]]
    provinces: dict[str, list[str]]
    zoom_table: list[tuple[float, int]]
    fallback_zoom: int = 8
    province_word: str = "provincia"
    directions: list[str] = field(default_factory=list)
    extra_terms: list[str] = field(default_factory=list)

    def __post_init__(self):
        self._patterns = {
            tier: [phrase_pattern(normalize_location(p)) for p in phrases]
            for tier, phrases in self.indicators.items()
        }
        self._province_patterns = [
            (name, phrase_pattern(normalize_location(name))) for name in self.provinces
        ]

    def matches(self, tier: ExtentTier, normalized: str) -> bool:
        return any(p.search(normalized) for p in self._patterns.get(tier, []))

    def match_province(self, normalized: str) -> Optional[str]:
        for name, pattern in self._province_patterns:
            if pattern.search(normalized):
                return name
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GeographyTables":
        variants = data.get("simple_variants", {})
        return cls(
            tiers={
                ExtentTier(name): TierSpec(radius_km=float(v["radius_km"]), grid_size=int(v["grid_size"]))
                for name, v in data["tiers"].items()
            },
            tier_order=[ExtentTier(t) for t in data["tier_order"]],
            indicators={ExtentTier(t): list(v) for t, v in data["indicators"].items()},
            provinces={name: list(cities) for name, cities in data["provinces"].items()},
            zoom_table=[(float(km), int(zoom)) for km, zoom in data["zoom_table"]],
            fallback_zoom=int(data.get("fallback_zoom", 8)),
            province_word=data.get("province_word", "provincia"),
            directions=list(variants.get("directions", [])),
            extra_terms=list(variants.get("extra_terms", [])),
        )


def load_geography(path: Optional[Path] = None) -> GeographyTables:
    """Load geography tables from YAML (bundled file by default)."""
    if path is None:
        return _load_default_geography()
    with open(path, encoding="utf-8") as f:
        return GeographyTables.from_dict(yaml.safe_load(f))


@lru_cache(maxsize=1)
def _load_default_geography() -> GeographyTables:
    with open(DEFAULT_GEOGRAPHY_PATH, encoding="utf-8") as f:
        return GeographyTables.from_dict(yaml.safe_load(f))


def calculate_bounding_box(center: Coordinates, radius_km: float) -> BoundingBox:
    """Box extending radius_km from the center in each direction."""
    lat_delta = radius_km / KM_PER_DEGREE
    lng_delta = radius_km / (KM_PER_DEGREE * math.cos(math.radians(center.lat)))
    return BoundingBox(
        north=center.lat + lat_delta,
        south=center.lat - lat_delta,
        east=center.lng + lng_delta,
        west=center.lng - lng_delta,
    )


def zoom_for_distance(distance_km: float, tables: Optional[GeographyTables] = None) -> int:
    """Map zoom for a cell of the given size; smaller cells zoom in further."""
    tables = tables or load_geography()
    for max_km, zoom in tables.zoom_table:
        if distance_km <= max_km:
            return zoom
    return tables.fallback_zoom


def create_grid(bbox: BoundingBox, grid_size: int, tables: Optional[GeographyTables] = None) -> list[GridCell]:
    """
    Split a bounding box into grid_size x grid_size equal cells.

    Rows run south to north and are lettered (A, B, ...); columns run west
    to east and are numbered from 1.
    """
    lat_step = bbox.lat_span / grid_size
    lng_step = bbox.lng_span / grid_size

    mid_lat = (bbox.north + bbox.south) / 2
    cell_size_km = (
        lat_step * KM_PER_DEGREE
        + lng_step * KM_PER_DEGREE * math.cos(math.radians(mid_lat))
    ) / 2
    zoom = zoom_for_distance(cell_size_km, tables)

    cells = []
    for row in range(grid_size):
        for col in range(grid_size):
            cells.append(GridCell(
                center=Coordinates(
                    lat=bbox.south + lat_step * (row + 0.5),
                    lng=bbox.west + lng_step * (col + 0.5),
                ),
                zoom=zoom,
                label=f"{chr(65 + row)}{col + 1}",
                row=row,
                col=col,
            ))
    return cells


class GeoGridPlanner:
    """
    Plans search coverage for a location.

    Usage:
        planner = GeoGridPlanner(cache=MemoryCache())
        plan = planner.build_plan("Palermo", center=Coordinates(-34.58, -58.42))
        for target in plan.targets:
            ...
    """

    def __init__(
        self,
        cache: Optional[Cache] = None,
        tables: Optional[GeographyTables] = None,
        max_cells: int = DEFAULT_MAX_CELLS,
    ):
        self.cache = cache
        self.tables = tables or load_geography()
        self.max_cells = max_cells
        self._centers: dict[str, Coordinates] = {}

    def estimate_extent(self, location: str) -> ExtentTier:
        """
        Classify a location into an extent tier.

        Tables are checked from the largest tier down. Unmatched text falls
        to the smallest tier unless it mentions a province, in which case the
        whole province is assumed.
        """
        normalized = normalize_location(location)

        for tier in self.tables.tier_order:
            if self.tables.matches(tier, normalized):
                return tier

        if self.tables.province_word in normalized.split():
            return ExtentTier.PROVINCE
        if self.tables.match_province(normalized):
            return ExtentTier.PROVINCE

        return ExtentTier.TINY

    def tier_spec(self, tier: ExtentTier) -> TierSpec:
        return self.tables.tiers[tier]

    def build_plan(
        self,
        location: str,
        center: Optional[Coordinates] = None,
        max_cells: Optional[int] = None,
    ) -> CrawlPlan:
        """
        Build the ordered target list for a location.

        Args:
            location: Free-text location
            center: Map center learned from the site, if any
            max_cells: Cap on settlement/variant targets

        Returns:
            CrawlPlan in visit order
        """
        max_cells = max_cells or self.max_cells
        tier = self.estimate_extent(location)
        spec = self.tier_spec(tier)
        plan = CrawlPlan(
            location=location,
            tier=tier,
            radius_km=spec.radius_km,
            grid_size=spec.grid_size,
            mode=PlanMode.SIMPLE,
            center=center,
        )

        if tier.is_provincial:
            plan.mode = PlanMode.PROVINCIAL
            province = self.tables.match_province(normalize_location(location))
            if province:
                plan.province = province
                plan.targets = self.settlement_targets(province, max_cells)
            else:
                plan.targets = self.variant_targets(location, min(spec.grid_size ** 2, max_cells))
        elif center is not None:
            plan.mode = PlanMode.GRID
            plan.bbox = calculate_bounding_box(center, spec.radius_km)
            plan.targets = [
                SearchTarget(label=cell.label, kind=TargetKind.CELL, place=location, cell=cell)
                for cell in create_grid(plan.bbox, spec.grid_size, self.tables)
            ]
        else:
            plan.targets = self.variant_targets(location, min(spec.grid_size ** 2, max_cells))

        logger.info(
            f"Planned {len(plan.targets)} {plan.mode.value} targets for '{location}' "
            f"(tier {tier.value}, {spec.grid_size}x{spec.grid_size}, radius {spec.radius_km:g}km)"
        )
        return plan

    def settlement_targets(self, province: str, max_cells: int) -> list[SearchTarget]:
        return [
            SearchTarget(label=city, kind=TargetKind.SETTLEMENT, place=city)
            for city in self.tables.provinces[province][:max_cells]
        ]

    def variant_targets(self, location: str, count: int) -> list[SearchTarget]:
        """Base query, then cardinal directions, then qualifier terms."""
        targets = [SearchTarget(label="base", kind=TargetKind.VARIANT, place=location)]

        for direction in self.tables.directions[:max(0, count - len(targets))]:
            targets.append(SearchTarget(
                label=direction,
                kind=TargetKind.VARIANT,
                place=location,
                template=f"{{keyword}} {{place}} {direction}",
            ))

        for term in self.tables.extra_terms[:max(0, count - len(targets))]:
            targets.append(SearchTarget(
                label=term,
                kind=TargetKind.VARIANT,
                place=location,
                template=f"{{keyword}} {term} {{place}}",
            ))

        return targets

    async def remember_center(self, location: str, center: Coordinates) -> None:
        """Cache a center learned from the site for later plans."""
        key = location.lower()
        self._centers[key] = center
        if self.cache is not None:
            await self.cache.set(
                f"{GEOCODE_CACHE_PREFIX}:{key}",
                {"lat": center.lat, "lng": center.lng},
                GEOCODE_CACHE_TTL_SECONDS,
            )
        logger.debug(f"Center for '{location}': {center.lat:.5f}, {center.lng:.5f}")

    async def lookup_center(self, location: str) -> Optional[Coordinates]:
        """Previously learned center, from memory then the shared cache."""
        key = location.lower()
        if key in self._centers:
            return self._centers[key]
        if self.cache is None:
            return None
        cached = await self.cache.get(f"{GEOCODE_CACHE_PREFIX}:{key}")
        if not cached:
            return None
        center = Coordinates(lat=cached["lat"], lng=cached["lng"])
        self._centers[key] = center
        return center
