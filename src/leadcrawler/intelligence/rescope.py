"""
Map rescope strategies.

After navigating to a grid cell's coordinates the site sometimes keeps
showing results for the previous viewport. Each strategy below tries one
way of forcing the results list to match the visible map; the chain stops
at the first strategy after which the map is centered on the cell and the
result feed is present. Failure of every strategy is logged, never raised.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from ..models import GridCell
from ..urls import extract_center, with_cache_buster

logger = logging.getLogger(__name__)


def center_tolerance(zoom: float) -> float:
    """Degrees the map center may drift from a cell and still count as on it."""
    return max(0.005, 360.0 / (2 ** zoom))


def is_scoped_to(url: str, cell: GridCell) -> bool:
    parsed = extract_center(url)
    if parsed is None:
        return False
    center, _ = parsed
    tolerance = center_tolerance(cell.zoom)
    return (
        abs(center.lat - cell.center.lat) <= tolerance
        and abs(center.lng - cell.center.lng) <= tolerance
    )


class RescopeStrategy(ABC):
    """One attempt at making the result feed match the visible map."""

    name: str = "strategy"

    @abstractmethod
    async def attempt(self, reader: Any, cell: GridCell, cell_url: str) -> None:
        """Perform the gesture or navigation."""

    async def succeeded(self, reader: Any, cell: GridCell) -> bool:
        return is_scoped_to(reader.url, cell) and await reader.has_feed()


class DragMapStrategy(RescopeStrategy):
    """Small drag and drag back; the site re-searches on viewport change."""

    name = "drag"

    def __init__(self, distance_px: float = 40.0):
        self.distance_px = distance_px

    async def attempt(self, reader, cell, cell_url):
        await reader.drag_map(self.distance_px, 0)
        await reader.drag_map(-self.distance_px, 0)


class SearchThisAreaStrategy(RescopeStrategy):
    name = "search_this_area"

    async def attempt(self, reader, cell, cell_url):
        if not await reader.click_search_this_area():
            logger.debug("No 'search this area' button on page")


class ZoomOutInStrategy(RescopeStrategy):
    name = "zoom_out_in"

    async def attempt(self, reader, cell, cell_url):
        await reader.zoom_out_in()


class CacheBustReloadStrategy(RescopeStrategy):
    """Reload the cell URL with a throwaway parameter."""

    name = "cache_bust_reload"

    async def attempt(self, reader, cell, cell_url):
        await reader.navigate(with_cache_buster(cell_url))


def default_strategies() -> list[RescopeStrategy]:
    return [
        DragMapStrategy(),
        SearchThisAreaStrategy(),
        ZoomOutInStrategy(),
        CacheBustReloadStrategy(),
    ]


class RescopeChain:
    """
    Ordered rescope strategies.

    Usage:
        chain = RescopeChain()
        used = await chain.run(reader, cell, cell_url)
    """

    def __init__(self, strategies: Optional[list[RescopeStrategy]] = None):
        self.strategies = strategies if strategies is not None else default_strategies()

    async def run(self, reader: Any, cell: GridCell, cell_url: str) -> Optional[str]:
        """
        Try strategies in order until the feed matches the cell.

        Returns:
            Name of the strategy that worked, or None if all failed
        """
        for strategy in self.strategies:
            try:
                await strategy.attempt(reader, cell, cell_url)
                if await strategy.succeeded(reader, cell):
                    logger.debug(f"Cell {cell.label} rescoped via {strategy.name}")
                    return strategy.name
            except Exception as e:
                logger.debug(f"Rescope strategy {strategy.name} failed on cell {cell.label}: {e}")

        logger.warning(f"Could not rescope results to cell {cell.label}, continuing with current feed")
        return None
