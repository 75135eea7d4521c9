"""
Target-site URL construction and parsing.

All knowledge of the map site's URL scheme lives here:

- search URLs:   https://www.google.com/maps/search/<urlencoded query>
- cell URLs:     .../maps/search/<keyword>/@<lat>,<lng>,<zoom>z
- identifiers:   the ``!1s<token>`` segment of a place URL
- map centers:   the ``@<lat>,<lng>,<zoom>z`` segment of the current URL
"""

import re
import time
from typing import Optional
from urllib.parse import quote

from .constants import LISTING_LINK_FRAGMENT, MAPS_SEARCH_URL
from .models import Coordinates, GridCell

PLACE_ID_PATTERN = re.compile(r"!1s([^!?&/]+)")
CENTER_PATTERN = re.compile(r"@(-?\d+\.?\d*),(-?\d+\.?\d*),(\d+\.?\d*)z")
PLACE_COORDS_PATTERN = re.compile(r"@(-?\d+\.\d+),(-?\d+\.\d+)")


def build_search_url(query: str) -> str:
    """Build an unparameterized free-text search URL."""
    return f"{MAPS_SEARCH_URL}{quote(query)}"


def build_cell_url(keyword: str, cell: GridCell) -> str:
    """Build a search URL pinned to a grid cell's center and zoom."""
    return (
        f"{MAPS_SEARCH_URL}{quote(keyword)}/"
        f"@{cell.center.lat:.6f},{cell.center.lng:.6f},{cell.zoom}z"
    )


def with_cache_buster(url: str, token: Optional[str] = None) -> str:
    """Append a throwaway query parameter so the site re-runs the search."""
    token = token or str(int(time.time() * 1000))
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}_={token}"


def is_listing_url(url: str) -> bool:
    return LISTING_LINK_FRAGMENT in url


def extract_place_id(url: str) -> Optional[str]:
    """Return the stable listing identifier from a place URL, if present."""
    match = PLACE_ID_PATTERN.search(url or "")
    return match.group(1) if match else None


def extract_center(url: str) -> Optional[tuple[Coordinates, float]]:
    """
    Parse the map center and zoom from the current URL.

    Args:
        url: URL of a map page

    Returns:
        (center, zoom) tuple, or None when the URL carries no viewport
    """
    match = CENTER_PATTERN.search(url or "")
    if not match:
        return None
    lat, lng, zoom = (float(g) for g in match.groups())
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return None
    return Coordinates(lat=lat, lng=lng), zoom


def extract_place_coordinates(url: str) -> Optional[Coordinates]:
    """Coordinates of a listing from its detail URL."""
    match = PLACE_COORDS_PATTERN.search(url or "")
    if not match:
        return None
    return Coordinates(lat=float(match.group(1)), lng=float(match.group(2)))
