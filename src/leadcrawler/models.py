"""Data models for the lead crawler."""

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .constants import (
    DEFAULT_CONCURRENT_TABS,
    DEFAULT_MAX_RESULTS,
    DEFAULT_MIN_RELEVANCE,
    QUERY_JOINER,
    SCRAPE_CACHE_PREFIX,
)


@dataclass(frozen=True)
class Coordinates:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lng: float


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in degrees around a search center."""

    north: float
    south: float
    east: float
    west: float

    @property
    def lat_span(self) -> float:
        return self.north - self.south

    @property
    def lng_span(self) -> float:
        return self.east - self.west


@dataclass(frozen=True)
class GridCell:
    """One partition of a search area, e.g. label "B3"."""

    center: Coordinates
    zoom: int
    label: str
    row: int = 0
    col: int = 0


@dataclass
class Fingerprint:
    """Randomized browser identity applied to a pooled browser."""

    user_agent: str
    viewport: dict[str, int]
    headers: dict[str, str] = field(default_factory=dict)
    proxy: Optional[str] = None


class ExtentTier(str, Enum):
    """Estimated geographic extent of a location, largest first."""

    PROVINCE = "province"
    REGION = "region"
    LARGE = "large"
    MEDIUM = "medium"
    SMALL = "small"
    TINY = "tiny"

    @property
    def is_provincial(self) -> bool:
        return self in (ExtentTier.PROVINCE, ExtentTier.REGION)


class TargetKind(str, Enum):
    """How a search target was derived."""

    SETTLEMENT = "settlement"
    CELL = "cell"
    VARIANT = "variant"


class PlanMode(str, Enum):
    """Which sweep the orchestrator runs for a plan."""

    PROVINCIAL = "provincial"
    GRID = "grid"
    SIMPLE = "simple"


@dataclass(frozen=True)
class SearchTarget:
    """A single search the orchestrator visits.

    ``template`` is rendered with ``keyword`` and ``place``; grid cells carry
    their cell so the orchestrator can navigate to the cell's coordinates.
    """

    label: str
    kind: TargetKind
    place: str
    template: str = "{keyword} " + QUERY_JOINER + " {place}"
    cell: Optional[GridCell] = None

    def query_for(self, keyword: str) -> str:
        return self.template.format(keyword=keyword, place=self.place).strip()


@dataclass
class CrawlPlan:
    """Ordered search targets for one location."""

    location: str
    tier: ExtentTier
    radius_km: float
    grid_size: int
    mode: PlanMode
    targets: list[SearchTarget] = field(default_factory=list)
    center: Optional[Coordinates] = None
    bbox: Optional[BoundingBox] = None
    province: Optional[str] = None

    @property
    def cells(self) -> list[GridCell]:
        return [t.cell for t in self.targets if t.cell is not None]


@dataclass
class ScrapedListing:
    """A normalized business listing extracted from a detail page."""

    name: str
    place_id: str
    category: str = ""
    address: str = ""
    phone: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    review_count: int = 0
    coordinates: Optional[Coordinates] = None
    maps_url: str = ""
    is_open: Optional[bool] = None

    # Website classification
    has_real_website: bool = False
    is_social_media: bool = False
    is_directory: bool = False
    social_media_url: Optional[str] = None

    # Discovered social handles
    instagram_url: Optional[str] = None
    facebook_url: Optional[str] = None
    whatsapp_number: Optional[str] = None

    relevance_score: int = 0

    # Filled in by post-processing
    quality_score: int = 0
    is_franchise: bool = False

    scraped_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly dictionary."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        if self.coordinates is not None:
            data["coordinates"] = {"lat": self.coordinates.lat, "lng": self.coordinates.lng}
        data["scraped_at"] = self.scraped_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScrapedListing":
        """Deserialize from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        coords = values.get("coordinates")
        if isinstance(coords, dict):
            values["coordinates"] = Coordinates(lat=coords["lat"], lng=coords["lng"])
        scraped_at = values.get("scraped_at")
        if isinstance(scraped_at, str):
            values["scraped_at"] = datetime.fromisoformat(scraped_at)
        return cls(**values)


class CircuitState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class RetryAttempt:
    """One failed attempt seen by the retry executor."""

    attempt: int
    delay: float
    retryable: bool
    error: BaseException


@dataclass
class ScrapeOptions:
    """Options for a single (keyword, location) crawl."""

    keyword: str
    location: str
    max_results: int = DEFAULT_MAX_RESULTS
    strict_match: bool = False
    force_refresh: bool = False
    min_quality: int = 0
    exclude_franchises: bool = False
    min_relevance: int = DEFAULT_MIN_RELEVANCE
    concurrent_tabs: int = DEFAULT_CONCURRENT_TABS

    @property
    def cache_key(self) -> str:
        return f"{SCRAPE_CACHE_PREFIX}:{self.keyword}:{self.location}".lower()

    @property
    def base_query(self) -> str:
        return f"{self.keyword} {QUERY_JOINER} {self.location}"


@dataclass
class CrawlResult:
    """Raw outcome of one crawl, before post-processing."""

    listings: list[ScrapedListing] = field(default_factory=list)
    plan: Optional[CrawlPlan] = None
    targets_visited: int = 0
    targets_failed: int = 0
    aborted: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def is_partial(self) -> bool:
        return self.aborted is not None
