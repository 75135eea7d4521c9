"""Shared fakes for crawler tests.

No test launches a real browser: the pool runs against FakeLauncher, and
the orchestrator talks to a scripted FakeMapsSite through FakeReader.
"""

import re
from typing import Optional

import pytest

from leadcrawler.infrastructure.browser_pool import BrowserPool, PoolConfig
from leadcrawler.models import ScrapedListing
from leadcrawler.urls import CENTER_PATTERN, extract_place_id


async def no_sleep(_seconds):
    return None


class FakeContext:
    def __init__(self):
        self.closed = False
        self.init_scripts = []
        self.default_timeout = None

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    def set_default_timeout(self, timeout):
        self.default_timeout = timeout

    async def new_page(self):
        return FakePage(context=self)

    async def close(self):
        self.closed = True


class FakePage:
    def __init__(self, url: str = "about:blank", context: Optional[FakeContext] = None):
        self.url = url
        self.context = context
        self.closed = False

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self):
        self.closed = False
        self.contexts = []

    async def new_context(self, **kwargs):
        context = FakeContext()
        context.options = kwargs
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


class FakeLauncher:
    def __init__(self):
        self.browsers = []
        self.fingerprints = []
        self.stopped = False

    async def launch(self, fingerprint):
        browser = FakeBrowser()
        self.browsers.append(browser)
        self.fingerprints.append(fingerprint)
        return browser

    async def stop(self):
        self.stopped = True


def place_url(name: str, token: str) -> str:
    slug = re.sub(r"\s+", "+", name)
    return f"https://www.google.com/maps/place/{slug}/data=!4m7!3m6!1s{token}!8m2!3d-34.58!4d-58.42"


class FakeMapsSite:
    """
    Scripted stand-in for the map site.

    - Free-text searches land on ``probe_url_suffix`` appended to the URL,
      which lets the test decide whether a center can be parsed.
    - ``links_for(url)`` returns the listing links visible for a search URL.
    - ``redirects`` maps a listing link to the URL the detail page resolves to.
    - ``listings`` maps a resolved listing token to its fields.
    - ``reveal_per_scroll`` makes the feed show that many links at first and
      that many more after each scroll.
    """

    def __init__(self, probe_url_suffix: str = ""):
        self.probe_url_suffix = probe_url_suffix
        self.navigations = []
        self.navigation_error: Optional[Exception] = None
        self.challenges = []
        self.redirects = {}
        self.listings = {}
        self.links = {}
        self.default_links = []
        self.reveal_per_scroll: Optional[int] = None
        self.scrolls = 0

    def links_for(self, url: str) -> list[str]:
        match = CENTER_PATTERN.search(url)
        if match and match.group(0) in self.links:
            return list(self.links[match.group(0)])
        return list(self.default_links)

    def add_listing(self, token: str, name: str, **fields) -> str:
        self.listings[token] = {"name": name, **fields}
        return place_url(name, token)


class FakeReader:
    """Page reader driven by a FakeMapsSite instead of a browser."""

    def __init__(self, page, site: FakeMapsSite):
        self.page = page
        self.site = site
        self.scrolls = 0

    @property
    def url(self) -> str:
        return self.page.url

    async def navigate(self, url: str) -> None:
        self.site.navigations.append(url)
        self.scrolls = 0
        if self.site.navigation_error is not None:
            raise self.site.navigation_error
        if url in self.site.redirects:
            self.page.url = self.site.redirects[url]
        elif "/maps/search/" in url and "@" not in url:
            self.page.url = url + self.site.probe_url_suffix
        else:
            self.page.url = url

    async def reload(self) -> None:
        return None

    async def detect_challenge(self) -> Optional[str]:
        if self.site.challenges:
            return self.site.challenges.pop(0)
        return None

    async def dismiss_consent(self) -> bool:
        return False

    async def wait_for_feed(self, timeout_ms: int = 10000) -> bool:
        return True

    async def has_feed(self) -> bool:
        return True

    async def harvest_links(self) -> list[str]:
        links = self.site.links_for(self.page.url)
        if self.site.reveal_per_scroll is None:
            return links
        return links[:self.site.reveal_per_scroll * (self.scrolls + 1)]

    async def scroll_feed(self, distance_px: int) -> bool:
        self.scrolls += 1
        self.site.scrolls += 1
        return True

    async def drag_map(self, dx, dy) -> None:
        return None

    async def click_search_this_area(self) -> bool:
        return False

    async def zoom_out_in(self) -> bool:
        return False

    async def read_listing(self) -> Optional[ScrapedListing]:
        token = extract_place_id(self.page.url)
        fields = self.site.listings.get(token)
        if fields is None:
            return None
        return ScrapedListing(place_id=token, maps_url=self.page.url, **fields)


@pytest.fixture
def fake_launcher():
    return FakeLauncher()


@pytest.fixture
def pool_config():
    return PoolConfig(
        min_browsers=1,
        max_browsers=4,
        acquire_timeout=1.0,
        poll_interval=0.01,
        maintenance_interval=0,
    )


@pytest.fixture
def browser_pool(pool_config, fake_launcher):
    return BrowserPool(pool_config, launcher=fake_launcher)
