"""
Map page reader.

Wraps one Playwright page and owns every selector the crawler relies on:
result feed scrolling, listing link harvest, consent dismissal, map
gestures, and listing detail extraction. Detail extraction parses the
rendered HTML with BeautifulSoup and walks a fallback chain of selectors
per field, since the site's class names change often.
"""

import logging
import re
from typing import Any, Optional

from bs4 import BeautifulSoup

from ..constants import DEFAULT_NAVIGATION_TIMEOUT_MS
from ..models import ScrapedListing
from ..urls import extract_place_coordinates, extract_place_id, is_listing_url
from ..utils.challenge_handler import detect_challenge
from ..utils.human_simulator import HumanSimulator, HumanSimulatorConfig

logger = logging.getLogger(__name__)


# =============================================================================
# Selectors
# =============================================================================

FEED_SELECTOR = 'div[role="feed"]'
LISTING_LINK_SELECTOR = 'a[href*="/maps/place/"]'

CONSENT_SELECTORS = [
    'button[aria-label*="Aceptar"]',
    'button[aria-label*="Accept"]',
    'form[action*="consent"] button',
]

SEARCH_THIS_AREA_SELECTORS = [
    'button[aria-label*="Buscar en esta zona"]',
    'button[aria-label*="Search this area"]',
    'button[jsaction*="search.refresh"]',
]

ZOOM_OUT_SELECTOR = "button#widget-zoom-out"
ZOOM_IN_SELECTOR = "button#widget-zoom-in"

NAME_SELECTORS = ['h1[class*="fontHeadlineLarge"]', 'h1[class*="header"]', "h1"]
CATEGORY_SELECTORS = ['button[jsaction*="category"]', 'span[class*="fontBodyMedium"]']
ADDRESS_SELECTORS = ['button[data-item-id="address"]']
PHONE_SELECTORS = ['button[data-item-id^="phone:"]']
WEBSITE_SELECTORS = ['a[data-item-id="authority"]']
RATING_SELECTORS = ['div[class*="fontDisplayLarge"]', 'span[role="img"][aria-label*="estrellas"]']
REVIEW_SELECTORS = ['span[aria-label*="opiniones"]', 'span[aria-label*="reseñas"]', 'span[aria-label*="reviews"]']
HOURS_SELECTORS = ['button[data-item-id*="hour"]', 'button[data-item-id="oh"]', 'div[aria-label*="horario"]']

OPEN_NOW_WORDS = ("abierto", "open now")
CLOSED_WORDS = ("cerrado", "closed")

RATING_PATTERN = re.compile(r"\d+(?:[.,]\d+)?")
REVIEW_COUNT_PATTERN = re.compile(r"\d[\d.,]*")

HARVEST_LINKS_SCRIPT = f"""
() => Array.from(document.querySelectorAll('{LISTING_LINK_SELECTOR}'), a => a.href)
"""

SCROLL_FEED_SCRIPT = f"""
(distance) => {{
    const feed = document.querySelector('{FEED_SELECTOR}');
    if (!feed) return false;
    feed.scrollBy(0, distance);
    return true;
}}
"""


def _first(soup: BeautifulSoup, selectors: list[str]):
    for selector in selectors:
        element = soup.select_one(selector)
        if element is not None:
            return element
    return None


def _first_text(soup: BeautifulSoup, selectors: list[str]) -> str:
    for selector in selectors:
        element = soup.select_one(selector)
        if element is not None:
            text = element.get_text(" ", strip=True)
            if text:
                return text
    return ""


def parse_rating(text: str) -> Optional[float]:
    """Parse "4,5" or "4.5" into a float; None when absent."""
    match = RATING_PATTERN.search(text or "")
    if not match:
        return None
    try:
        return float(match.group(0).replace(",", "."))
    except ValueError:
        return None


def parse_review_count(label: str) -> int:
    """Digits of a review label such as "1.234 opiniones"; 0 when absent."""
    match = REVIEW_COUNT_PATTERN.search(label or "")
    if not match:
        return 0
    digits = re.sub(r"\D", "", match.group(0))
    return int(digits) if digits else 0


def parse_open_status(text: str) -> Optional[bool]:
    lowered = (text or "").lower()
    if any(word in lowered for word in OPEN_NOW_WORDS):
        return True
    if any(word in lowered for word in CLOSED_WORDS):
        return False
    return None


def parse_listing_html(html: str, url: str) -> Optional[ScrapedListing]:
    """
    Extract a listing from a rendered detail page.

    Args:
        html: Page HTML
        url: Final (post-redirect) page URL; provides id and coordinates

    Returns:
        ScrapedListing, or None when the page has no business name
    """
    soup = BeautifulSoup(html or "", "html.parser")

    name = _first_text(soup, NAME_SELECTORS)
    if not name:
        return None

    phone = None
    phone_el = _first(soup, PHONE_SELECTORS)
    if phone_el is not None:
        item_id = phone_el.get("data-item-id", "")
        phone = item_id.replace("phone:tel:", "").replace("phone:", "") or phone_el.get_text(strip=True) or None

    website = None
    website_el = _first(soup, WEBSITE_SELECTORS)
    if website_el is not None:
        website = website_el.get("href") or None

    rating = None
    rating_el = _first(soup, RATING_SELECTORS)
    if rating_el is not None:
        rating = parse_rating(rating_el.get_text(strip=True) or rating_el.get("aria-label", ""))

    review_count = 0
    review_el = _first(soup, REVIEW_SELECTORS)
    if review_el is not None:
        review_count = parse_review_count(review_el.get("aria-label", ""))

    return ScrapedListing(
        name=name,
        place_id=extract_place_id(url) or "",
        category=_first_text(soup, CATEGORY_SELECTORS),
        address=_first_text(soup, ADDRESS_SELECTORS),
        phone=phone,
        website=website,
        rating=rating,
        review_count=review_count,
        coordinates=extract_place_coordinates(url),
        maps_url=url,
        is_open=parse_open_status(_first_text(soup, HOURS_SELECTORS)),
    )


class MapsPageReader:
    """
    Site interaction for one leased page.

    Usage:
        reader = MapsPageReader(lease.page)
        await reader.navigate(url)
        links = await reader.harvest_links()
    """

    def __init__(
        self,
        page: Any,
        simulator: Optional[HumanSimulator] = None,
        navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
    ):
        self.page = page
        self.simulator = simulator or HumanSimulator(HumanSimulatorConfig())
        self.navigation_timeout_ms = navigation_timeout_ms

    @property
    def url(self) -> str:
        return self.page.url

    async def navigate(self, url: str) -> None:
        await self.page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)

    async def reload(self) -> None:
        await self.page.reload(wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)

    async def detect_challenge(self) -> Optional[str]:
        return await detect_challenge(self.page)

    async def dismiss_consent(self) -> bool:
        """Click through the cookie consent wall if it is showing."""
        for selector in CONSENT_SELECTORS:
            button = await self.page.query_selector(selector)
            if button:
                await button.click()
                logger.debug(f"Dismissed consent dialog via {selector}")
                return True
        return False

    async def wait_for_feed(self, timeout_ms: int = 10000) -> bool:
        try:
            await self.page.wait_for_selector(FEED_SELECTOR, timeout=timeout_ms)
            return True
        except Exception as e:
            logger.warning(f"Result feed did not appear: {e}")
            return False

    async def has_feed(self) -> bool:
        return await self.page.query_selector(FEED_SELECTOR) is not None

    async def harvest_links(self) -> list[str]:
        """Absolute hrefs of every listing link currently in the feed."""
        hrefs = await self.page.evaluate(HARVEST_LINKS_SCRIPT)
        return [h for h in hrefs or [] if h and is_listing_url(h)]

    async def scroll_feed(self, distance_px: int) -> bool:
        return bool(await self.page.evaluate(SCROLL_FEED_SCRIPT, distance_px))

    async def drag_map(self, dx: float, dy: float) -> None:
        await self.simulator.drag(self.page, dx, dy)

    async def click_search_this_area(self) -> bool:
        for selector in SEARCH_THIS_AREA_SELECTORS:
            if await self.simulator.click_element(self.page, selector):
                return True
        return False

    async def zoom_out_in(self) -> bool:
        """Zoom out one step and back in, which re-runs the area search."""
        if not await self.simulator.click_element(self.page, ZOOM_OUT_SELECTOR):
            return False
        await self.simulator.human_pause("zoom")
        return await self.simulator.click_element(self.page, ZOOM_IN_SELECTOR)

    async def read_listing(self) -> Optional[ScrapedListing]:
        """Parse the listing currently shown on the page."""
        html = await self.page.content()
        return parse_listing_html(html, self.page.url)
