"""
Browser Pool Management.

Keeps a bounded set of long-lived browser processes and leases out one page
at a time per browser. Each browser carries its own randomized fingerprint,
is recycled after a page-count threshold or TTL, and idle extras are closed
by a periodic maintenance task.

Usage:
    pool = BrowserPool(PoolConfig(max_browsers=3))
    await pool.initialize()
    async with pool.page() as lease:
        await lease.page.goto(url)
    await pool.shutdown()
"""

import asyncio
import itertools
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlparse

from ..exceptions import PoolExhaustedError
from ..models import Fingerprint
from .anti_detection import AntiDetectionProfile

logger = logging.getLogger(__name__)


# Chromium flags that reduce automation tells and resource usage
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
    "--disable-infobars",
    "--disable-extensions",
    "--disable-plugins-discovery",
    "--disable-background-networking",
]

# Injected before any page script runs
STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => false });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['es-AR', 'es', 'en'] });
window.chrome = { runtime: {} };
"""


@dataclass
class PoolConfig:
    """Sizing and lifetime settings for the pool (times in seconds)."""
    min_browsers: int = 1
    max_browsers: int = 3
    max_pages_per_browser: int = 50
    browser_ttl: float = 30 * 60
    idle_timeout: float = 5 * 60
    acquire_timeout: float = 30.0
    poll_interval: float = 0.1
    maintenance_interval: float = 60.0
    headless: bool = True
    locale: str = "es-AR"
    navigation_timeout_ms: int = 30000


@dataclass
class BrowserInstance:
    """A pooled browser process and its bookkeeping."""
    id: str
    browser: Any
    fingerprint: Fingerprint
    created_at: float
    last_used: float
    pages_opened: int = 0
    in_use: bool = False


@dataclass
class PageLease:
    """A page handed out by acquire(); give it back with release()."""
    page: Any
    instance_id: str
    fingerprint: Fingerprint


@dataclass
class PoolStats:
    """Current status of the browser pool."""
    total: int
    available: int
    in_use: int
    total_pages_opened: int


class PlaywrightLauncher:
    """Launches stealth-configured Chromium processes through Playwright."""

    def __init__(self, headless: bool = True, locale: str = "es-AR"):
        self.headless = headless
        self.locale = locale
        self._playwright = None

    async def launch(self, fingerprint: Fingerprint) -> Any:
        if self._playwright is None:
            try:
                from playwright.async_api import async_playwright
            except ImportError:
                raise ImportError(
                    "playwright package not installed. "
                    "Install with: pip install playwright && playwright install chromium"
                )
            self._playwright = await async_playwright().start()

        viewport = fingerprint.viewport
        launch_options: dict[str, Any] = {
            "headless": self.headless,
            "args": LAUNCH_ARGS + [
                f"--window-size={viewport['width']},{viewport['height']}",
                f"--lang={self.locale}",
            ],
        }
        if fingerprint.proxy:
            launch_options["proxy"] = proxy_settings(fingerprint.proxy)

        return await self._playwright.chromium.launch(**launch_options)

    async def stop(self) -> None:
        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping playwright: {e}")
            self._playwright = None


def proxy_settings(proxy_url: str) -> dict[str, str]:
    """Split a proxy URL into Playwright's server/username/password form."""
    parsed = urlparse(proxy_url)
    server = f"{parsed.scheme or 'http'}://{parsed.hostname}"
    if parsed.port:
        server += f":{parsed.port}"
    settings = {"server": server}
    if parsed.username:
        settings["username"] = parsed.username
    if parsed.password:
        settings["password"] = parsed.password
    return settings


class BrowserPool:
    """
    Bounded pool of browser processes.

    Features:
    - Lazy growth from min_browsers up to max_browsers
    - Bounded wait (then PoolExhaustedError) when every browser is busy
    - Recycling after max_pages_per_browser pages or browser_ttl
    - Idle extras closed by a periodic maintenance task
    - Per-browser fingerprint applied to every page
    """

    def __init__(
        self,
        config: Optional[PoolConfig] = None,
        anti_detection: Optional[AntiDetectionProfile] = None,
        launcher: Optional[Any] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize browser pool.

        Args:
            config: Pool sizing and lifetime settings
            anti_detection: Fingerprint source for new browsers
            launcher: Object with async ``launch(fingerprint)`` and ``stop()``;
                defaults to PlaywrightLauncher
            clock: Monotonic time source in seconds
            sleep: Awaitable sleep used while waiting for a free browser
        """
        self.config = config or PoolConfig()
        self.anti_detection = anti_detection or AntiDetectionProfile()
        self.launcher = launcher or PlaywrightLauncher(
            headless=self.config.headless,
            locale=self.config.locale,
        )
        self._clock = clock
        self._sleep = sleep
        self._instances: dict[str, BrowserInstance] = {}
        self._lock = asyncio.Lock()
        self._ids = itertools.count(1)
        self._initialized = False
        self._maintenance_task: Optional[asyncio.Task] = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Bring the pool up to min_browsers and start maintenance."""
        if self._initialized:
            return

        logger.info(
            f"Initializing browser pool (min: {self.config.min_browsers}, "
            f"max: {self.config.max_browsers})"
        )
        async with self._lock:
            while len(self._instances) < self.config.min_browsers:
                await self._create_instance()

        self._start_maintenance()
        self._initialized = True
        logger.info(f"Browser pool ready with {len(self._instances)} browsers")

    async def _create_instance(self) -> BrowserInstance:
        """Launch a browser and register it. Caller holds the lock."""
        fingerprint = self.anti_detection.make_fingerprint()
        browser = await self.launcher.launch(fingerprint)
        now = self._clock()
        instance = BrowserInstance(
            id=f"browser-{next(self._ids)}",
            browser=browser,
            fingerprint=fingerprint,
            created_at=now,
            last_used=now,
        )
        self._instances[instance.id] = instance
        logger.debug(f"Created {instance.id} | UA: {fingerprint.user_agent[:40]}...")
        return instance

    def _find_available(self) -> Optional[BrowserInstance]:
        for instance in self._instances.values():
            if not instance.in_use and instance.pages_opened < self.config.max_pages_per_browser:
                return instance
        return None

    async def _claim_instance(self) -> BrowserInstance:
        deadline = self._clock() + self.config.acquire_timeout
        waiting = False

        while True:
            async with self._lock:
                instance = self._find_available()
                if instance is None and len(self._instances) < self.config.max_browsers:
                    instance = await self._create_instance()
                if instance is not None:
                    instance.in_use = True
                    instance.last_used = self._clock()
                    instance.pages_opened += 1
                    return instance

            if not waiting:
                logger.debug("Browser pool full, waiting for a free browser")
                waiting = True
            if self._clock() >= deadline:
                raise PoolExhaustedError(self.config.acquire_timeout, len(self._instances))
            await self._sleep(self.config.poll_interval)

    async def acquire(self) -> PageLease:
        """
        Lease a fresh page from a free browser.

        Returns:
            PageLease with the page, owning instance id and fingerprint

        Raises:
            PoolExhaustedError: If no browser frees up within acquire_timeout
        """
        if not self._initialized:
            await self.initialize()

        instance = await self._claim_instance()
        try:
            page = await self._open_page(instance)
        except Exception:
            instance.in_use = False
            raise

        logger.debug(f"Page opened on {instance.id} (total: {instance.pages_opened})")
        return PageLease(page=page, instance_id=instance.id, fingerprint=instance.fingerprint)

    async def _open_page(self, instance: BrowserInstance) -> Any:
        """Open a page in a fresh context carrying the instance fingerprint."""
        fp = instance.fingerprint
        context = await instance.browser.new_context(
            user_agent=fp.user_agent,
            viewport=fp.viewport,
            locale=self.config.locale,
            extra_http_headers=fp.headers,
            ignore_https_errors=True,
        )
        try:
            await context.add_init_script(STEALTH_SCRIPT)
            context.set_default_timeout(self.config.navigation_timeout_ms)
            return await context.new_page()
        except Exception:
            await self._close_quietly(context, "context")
            raise

    async def release(self, instance_id: str, page: Any = None) -> None:
        """
        Return a leased browser to the pool.

        Closes the page (and its context) best-effort, then recycles the
        browser once it has served max_pages_per_browser pages.
        """
        instance = self._instances.get(instance_id)
        if instance is None:
            return

        if page is not None:
            context = getattr(page, "context", None)
            await self._close_quietly(page, "page")
            if context is not None:
                await self._close_quietly(context, "context")

        instance.in_use = False
        instance.last_used = self._clock()

        if instance.pages_opened >= self.config.max_pages_per_browser:
            logger.debug(f"Recycling {instance.id} ({instance.pages_opened} pages)")
            await self._recycle(instance_id)

    @asynccontextmanager
    async def page(self):
        """Acquire a page for the duration of a ``with`` block."""
        lease = await self.acquire()
        try:
            yield lease
        finally:
            await self.release(lease.instance_id, lease.page)

    async def _close_quietly(self, resource: Any, what: str) -> None:
        try:
            await resource.close()
        except Exception as e:
            logger.debug(f"Error closing {what}: {e}")

    async def _close_instance(self, instance_id: str) -> None:
        async with self._lock:
            instance = self._instances.pop(instance_id, None)
        if instance is None:
            return
        try:
            await instance.browser.close()
        except Exception as e:
            logger.warning(f"Error closing {instance_id}: {e}")

    async def _recycle(self, instance_id: str) -> None:
        """Close a browser and replace it when the pool drops below minimum."""
        await self._close_instance(instance_id)
        async with self._lock:
            if self._initialized and len(self._instances) < self.config.min_browsers:
                replacement = await self._create_instance()
                logger.info(f"Recycled {instance_id} -> {replacement.id}")

    async def run_maintenance(self) -> None:
        """Recycle expired browsers and close idle extras."""
        now = self._clock()
        for instance in list(self._instances.values()):
            if instance.in_use:
                continue

            age = now - instance.created_at
            idle = now - instance.last_used

            if age > self.config.browser_ttl:
                logger.debug(f"Recycling {instance.id} after TTL ({age / 60:.0f} min)")
                await self._recycle(instance.id)
            elif idle > self.config.idle_timeout and len(self._instances) > self.config.min_browsers:
                logger.debug(f"Closing idle {instance.id}")
                await self._close_instance(instance.id)

    def _start_maintenance(self) -> None:
        if self.config.maintenance_interval <= 0:
            return
        self._maintenance_task = asyncio.create_task(self._maintenance_loop())

    async def _maintenance_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.maintenance_interval)
            try:
                await self.run_maintenance()
            except Exception as e:
                logger.warning(f"Browser pool maintenance failed: {e}")

    def get_stats(self) -> PoolStats:
        """Snapshot of pool occupancy."""
        instances = list(self._instances.values())
        in_use = sum(1 for i in instances if i.in_use)
        return PoolStats(
            total=len(instances),
            available=len(instances) - in_use,
            in_use=in_use,
            total_pages_opened=sum(i.pages_opened for i in instances),
        )

    async def shutdown(self) -> None:
        """Stop maintenance and close every browser. Safe to call twice."""
        if not self._initialized and not self._instances:
            return

        logger.info("Shutting down browser pool")
        if self._maintenance_task is not None:
            self._maintenance_task.cancel()
            try:
                await self._maintenance_task
            except asyncio.CancelledError:
                pass
            self._maintenance_task = None

        self._initialized = False
        for instance_id in list(self._instances):
            await self._close_instance(instance_id)

        stop = getattr(self.launcher, "stop", None)
        if stop is not None:
            await stop()
        logger.info("Browser pool stopped")
