"""
Crawl orchestration.

Runs one (keyword, location) request end to end:

    cache check -> circuit gate -> initial probe -> plan -> sweep targets
    -> scroll/collect links -> extract details -> cache raw -> post-process

Every navigation goes through the shared circuit breaker wrapping the
retry executor. Per-listing and per-target failures are logged and
skipped; an open circuit or an exhausted pool mid-sweep ends the crawl
with whatever was collected so far.
"""

import asyncio
import logging
import math
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from .constants import (
    DEFAULT_MAX_CELLS,
    DEFAULT_MAX_SCROLL_ATTEMPTS,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_STALL_LIMIT,
    DEFAULT_TARGET_SLACK,
    LISTING_DELAY_RANGE,
    SCRAPE_CACHE_TTL_SECONDS,
    SCROLL_DELAY_RANGE,
    SCROLL_STEP_MAX_PX,
    SCROLL_STEP_MIN_PX,
    TARGET_DELAY_RANGE,
)
from .exceptions import CircuitOpenError, NavigationError, PoolExhaustedError
from .geo.grid_planner import GeoGridPlanner
from .infrastructure.anti_detection import AntiDetectionProfile
from .infrastructure.browser_pool import BrowserPool
from .infrastructure.cache import Cache, MemoryCache
from .infrastructure.metrics import MetricsSink, ScraperMetrics
from .infrastructure.resilience import CircuitBreaker, RetryOptions, with_retry
from .intelligence.classification import ListingClassifier
from .intelligence.page_reader import MapsPageReader
from .intelligence.rescope import RescopeChain
from .logging_config import setup_logging
from .models import CrawlPlan, CrawlResult, ScrapedListing, ScrapeOptions, SearchTarget
from .postprocess import Categorizer, DefaultQualityScorer, FranchiseCategorizer, PostProcessor, QualityScorer
from .urls import build_cell_url, build_search_url, extract_center, extract_place_id
from .utils.challenge_handler import ChallengeHandler, ChallengeOutcome

logger = logging.getLogger(__name__)

ABORTING_ERRORS = (CircuitOpenError, PoolExhaustedError)


@dataclass
class CrawlSettings:
    """Per-orchestrator crawl tunables (pauses in seconds)."""
    navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS
    max_scroll_attempts: int = DEFAULT_MAX_SCROLL_ATTEMPTS
    stall_limit: int = DEFAULT_STALL_LIMIT
    target_slack: int = DEFAULT_TARGET_SLACK
    max_cells: int = DEFAULT_MAX_CELLS
    cache_ttl: int = SCRAPE_CACHE_TTL_SECONDS
    retry: RetryOptions = field(default_factory=RetryOptions)
    listing_delay: tuple[float, float] = LISTING_DELAY_RANGE
    scroll_delay: tuple[float, float] = SCROLL_DELAY_RANGE
    target_delay: tuple[float, float] = TARGET_DELAY_RANGE
    # Off in tests: skips every human-like pause
    humanize: bool = True

    @classmethod
    def from_config(cls, config) -> "CrawlSettings":
        return cls(
            navigation_timeout_ms=config.navigation_timeout_ms,
            max_scroll_attempts=config.max_scroll_attempts,
            stall_limit=config.stall_limit,
            target_slack=config.target_slack,
            max_cells=config.max_cells,
            cache_ttl=config.cache_ttl,
            retry=config.retry_options(),
            humanize=config.humanize,
        )


@dataclass
class _CrawlState:
    listings: list[ScrapedListing] = field(default_factory=list)
    seen_links: set[str] = field(default_factory=set)
    listing_ids: set[str] = field(default_factory=set)


class CrawlOrchestrator:
    """
    Drives crawls against the map site.

    All collaborators are passed in; nothing is looked up globally, so two
    orchestrators never share state unless handed the same objects.

    Usage:
        orchestrator = CrawlOrchestrator.from_config(CrawlerConfig.from_env())
        listings = await orchestrator.scrape_places(
            ScrapeOptions(keyword="dentista", location="Palermo")
        )
        await orchestrator.close()
    """

    def __init__(
        self,
        pool: BrowserPool,
        breaker: CircuitBreaker,
        planner: GeoGridPlanner,
        cache: Cache,
        metrics: MetricsSink,
        anti_detection: AntiDetectionProfile,
        quality_scorer: QualityScorer,
        categorizer: Categorizer,
        classifier: Optional[ListingClassifier] = None,
        reader_factory: Optional[Callable[[Any], Any]] = None,
        challenge_handler: Optional[ChallengeHandler] = None,
        rescope_chain: Optional[RescopeChain] = None,
        settings: Optional[CrawlSettings] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.pool = pool
        self.breaker = breaker
        self.planner = planner
        self.cache = cache
        self.metrics = metrics
        self.anti_detection = anti_detection
        self.classifier = classifier or ListingClassifier()
        self.postprocessor = PostProcessor(quality_scorer, categorizer)
        self.settings = settings or CrawlSettings()
        self.reader_factory = reader_factory or self._default_reader
        self.challenge_handler = challenge_handler or ChallengeHandler(sleep=sleep)
        self.rescope_chain = rescope_chain or RescopeChain()
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config,
        cache: Optional[Cache] = None,
        metrics: Optional[MetricsSink] = None,
    ) -> "CrawlOrchestrator":
        """Wire a production orchestrator from a CrawlerConfig."""
        setup_logging(config.log_level, config.log_file)
        anti_detection = AntiDetectionProfile(config.anti_detection_config())
        cache = cache or MemoryCache()
        classifier = ListingClassifier()
        return cls(
            pool=BrowserPool(config.pool_config(), anti_detection=anti_detection),
            breaker=CircuitBreaker(
                threshold=config.breaker_threshold,
                reset_timeout=config.breaker_reset_timeout,
                name="maps",
            ),
            planner=GeoGridPlanner(cache=cache, max_cells=config.max_cells),
            cache=cache,
            metrics=metrics or ScraperMetrics(),
            anti_detection=anti_detection,
            quality_scorer=DefaultQualityScorer(),
            categorizer=FranchiseCategorizer(classifier),
            classifier=classifier,
            settings=CrawlSettings.from_config(config),
        )

    def _default_reader(self, page: Any) -> MapsPageReader:
        return MapsPageReader(page, navigation_timeout_ms=self.settings.navigation_timeout_ms)

    async def scrape_places(self, options: ScrapeOptions) -> list[ScrapedListing]:
        """
        Crawl listings for a keyword and location.

        Args:
            options: Request options

        Returns:
            Post-processed listings, best quality first

        Raises:
            CircuitOpenError: If the shared breaker is open
            PoolExhaustedError: If no page could be leased to start the crawl
        """
        cache_key = options.cache_key

        if not options.force_refresh:
            cached = await self.cache.get(cache_key)
            if cached:
                self.metrics.record_cache_hit()
                logger.info(f"Cache hit for '{cache_key}' ({len(cached)} raw listings)")
                listings = [ScrapedListing.from_dict(item) for item in cached]
                return self.postprocessor.process(listings, options)
            self.metrics.record_cache_miss()

        result = await self.crawl(options)

        if result.listings:
            await self.cache.set(
                cache_key,
                [listing.to_dict() for listing in result.listings],
                self.settings.cache_ttl,
            )

        final = self.postprocessor.process(result.listings, options)
        logger.info(
            f"'{options.keyword}' in '{options.location}': {len(result.listings)} raw, "
            f"{len(final)} after post-processing ({result.duration_seconds:.1f}s"
            f"{', partial' if result.is_partial else ''})"
        )
        return final

    async def crawl(self, options: ScrapeOptions) -> CrawlResult:
        """
        Run the crawl without cache or post-processing.

        Returns:
            CrawlResult with the raw listings; ``aborted`` is set when the
            sweep ended early

        Raises:
            CircuitOpenError: If the shared breaker is open
            PoolExhaustedError: If the first page lease fails
        """
        if self.breaker.is_open():
            raise CircuitOpenError(self.breaker.retry_after())

        started = self._clock()
        result = CrawlResult()
        state = _CrawlState()
        unexpected_failure = False

        lease = await self.pool.acquire()
        reader = self.reader_factory(lease.page)
        try:
            result.plan = await self._probe(reader, options)
            await self._sweep(reader, result.plan, options, state, result)
        except ABORTING_ERRORS as e:
            result.aborted = str(e)
            logger.warning(f"Crawl aborted, returning {len(state.listings)} partial listings: {e}")
        except Exception as e:
            unexpected_failure = True
            result.aborted = str(e)
            logger.error(f"Crawl failed, returning {len(state.listings)} partial listings: {e}")
        finally:
            await self.pool.release(lease.instance_id, lease.page)

        if unexpected_failure:
            self.breaker.record_failure()
        elif state.listings:
            self.breaker.record_success()

        result.listings = state.listings
        result.duration_seconds = self._clock() - started
        return result

    async def _navigate(self, reader: Any, url: str, label: str) -> ChallengeOutcome:
        """
        Navigate through breaker and retry, then deal with challenge pages.

        Raises:
            CircuitOpenError: If the breaker is open
            NavigationError: If navigation failed after retries, or a
                challenge page survived the reloads
        """
        started = self._clock()
        try:
            await self.breaker.execute(
                lambda: with_retry(
                    lambda: reader.navigate(url),
                    self.settings.retry,
                    operation_name=f"Navigate {label}",
                    sleep=self._sleep,
                )
            )
        except CircuitOpenError:
            raise
        except Exception as e:
            self.metrics.record_request(url, False, self._clock() - started, error=str(e))
            raise NavigationError(url, str(e)) from e

        challenge = await self.challenge_handler.check_and_recover(reader)
        self.metrics.record_request(
            url,
            True,
            self._clock() - started,
            blocked=challenge.detected,
            captcha=challenge.captcha,
        )
        if challenge.detected and not challenge.resolved:
            logger.warning(f"Challenge ({challenge.kind}) still showing on {label} after reload")
            raise NavigationError(url, f"challenge page still showing ({challenge.kind})")
        return challenge

    async def _probe(self, reader: Any, options: ScrapeOptions) -> CrawlPlan:
        """Unparameterized search to learn the map center, then plan."""
        center = None
        try:
            await self._navigate(reader, build_search_url(options.base_query), "initial search")
            await reader.dismiss_consent()
            parsed = extract_center(reader.url)
            if parsed is not None:
                center = parsed[0]
                await self.planner.remember_center(options.location, center)
        except NavigationError as e:
            logger.warning(f"Initial search failed, falling back to cached center: {e}")

        if center is None:
            center = await self.planner.lookup_center(options.location)

        return self.planner.build_plan(options.location, center=center, max_cells=self.settings.max_cells)

    async def _sweep(
        self,
        reader: Any,
        plan: CrawlPlan,
        options: ScrapeOptions,
        state: _CrawlState,
        result: CrawlResult,
    ) -> None:
        targets = plan.targets
        logger.info(f"Starting {plan.mode.value} sweep over {len(targets)} targets")

        for index, target in enumerate(targets):
            remaining = options.max_results - len(state.listings)
            if remaining <= 0:
                logger.debug(f"Reached {options.max_results} listings, stopping sweep")
                break

            budget = math.ceil(remaining / (len(targets) - index)) + self.settings.target_slack
            try:
                added = await self._visit_target(reader, target, options, budget, state)
                result.targets_visited += 1
                logger.info(
                    f"Target {index + 1}/{len(targets)} '{target.label}': +{added} "
                    f"(total {len(state.listings)})"
                )
            except ABORTING_ERRORS:
                raise
            except Exception as e:
                result.targets_failed += 1
                logger.warning(f"Target '{target.label}' failed: {e}")

            if index < len(targets) - 1:
                await self._pause(self.settings.target_delay)

    async def _visit_target(
        self,
        reader: Any,
        target: SearchTarget,
        options: ScrapeOptions,
        budget: int,
        state: _CrawlState,
    ) -> int:
        if target.cell is not None:
            url = build_cell_url(options.keyword, target.cell)
        else:
            url = build_search_url(target.query_for(options.keyword))

        await self._navigate(reader, url, f"target {target.label}")
        if target.cell is not None:
            await self.rescope_chain.run(reader, target.cell, url)
        await reader.wait_for_feed()

        links = await self._scroll_collect(reader, budget, state)
        return await self._extract_details(reader, links, options, state)

    async def _scroll_collect(self, reader: Any, budget: int, state: _CrawlState) -> list[tuple[str, str]]:
        """
        Scroll the result feed collecting unseen listing links.

        Stops at the budget, after stall_limit scrolls in a row that found
        nothing new, or after max_scroll_attempts scrolls. Only the returned
        links are marked as seen, so later targets can still pick up the rest.

        Returns:
            At most ``budget`` (link id, url) pairs in discovery order
        """
        found: dict[str, str] = {}
        stalls = 0
        attempts = 0

        while True:
            before = len(found)
            for href in await reader.harvest_links():
                link_id = extract_place_id(href) or href.split("?")[0]
                if link_id in state.seen_links or link_id in found:
                    continue
                found[link_id] = href

            if len(found) >= budget:
                break
            stalls = stalls + 1 if len(found) == before else 0
            if stalls >= self.settings.stall_limit or attempts >= self.settings.max_scroll_attempts:
                break

            await reader.scroll_feed(random.randint(SCROLL_STEP_MIN_PX, SCROLL_STEP_MAX_PX))
            attempts += 1
            await self._pause(self.settings.scroll_delay)

        links = list(found.items())[:budget]
        state.seen_links.update(link_id for link_id, _ in links)
        logger.debug(f"Collected {len(links)} new links after {attempts} scrolls ({len(found)} seen)")
        return links

    def _free_browsers(self) -> int:
        return self.pool.config.max_browsers - self.pool.get_stats().in_use

    async def _extract_details(
        self,
        reader: Any,
        links: list[tuple[str, str]],
        options: ScrapeOptions,
        state: _CrawlState,
    ) -> int:
        """
        Extract links in bounded-parallel batches and merge the results.

        Batches are never wider than the browsers the pool can still hand
        out. With none left, links are read one by one on the crawl's own page.
        An aborting error is raised only after the rest of its batch is merged.
        """
        added = 0
        index = 0

        while index < len(links):
            width = min(max(1, options.concurrent_tabs), self._free_browsers())
            shared = None
            if width <= 0:
                logger.debug("No free browser for detail pages, using the crawl page")
                shared = reader
                width = 1

            batch = links[index:index + width]
            index += width
            outcomes = await asyncio.gather(
                *(self._extract_one(link_id, url, options, shared) for link_id, url in batch),
                return_exceptions=True,
            )

            aborting = None
            for (link_id, _), outcome in zip(batch, outcomes):
                if isinstance(outcome, ABORTING_ERRORS):
                    aborting = aborting or outcome
                    continue
                if isinstance(outcome, Exception):
                    logger.warning(f"Skipping listing {link_id}: {outcome}")
                    continue
                if isinstance(outcome, BaseException):
                    raise outcome
                if outcome is None:
                    continue
                if outcome.place_id in state.listing_ids:
                    logger.debug(f"Duplicate listing {outcome.place_id} ({outcome.name})")
                    continue

                state.listing_ids.add(outcome.place_id)
                state.listings.append(outcome)
                added += 1
                self.metrics.record_place_found(
                    phone=outcome.phone,
                    website=outcome.website,
                    social_media_url=outcome.social_media_url,
                    relevance_score=outcome.relevance_score,
                )

            if aborting is not None:
                raise aborting

        return added

    async def _read_detail(self, reader: Any, link_id: str, url: str) -> Optional[ScrapedListing]:
        await self._navigate(reader, url, f"listing {link_id}")
        return await reader.read_listing()

    async def _extract_one(
        self,
        link_id: str,
        url: str,
        options: ScrapeOptions,
        reader: Any = None,
    ) -> Optional[ScrapedListing]:
        """Read one detail page, on ``reader`` when given, else on a leased page."""
        if reader is not None:
            listing = await self._read_detail(reader, link_id, url)
        else:
            lease = await self.pool.acquire()
            try:
                listing = await self._read_detail(self.reader_factory(lease.page), link_id, url)
            finally:
                await self.pool.release(lease.instance_id, lease.page)

        if listing is None:
            logger.debug(f"No business name on {url}, skipping")
            return None

        if not listing.place_id:
            listing.place_id = link_id
        if not listing.maps_url:
            listing.maps_url = url
        self.classifier.apply(listing, options.keyword)

        await self._pause(self.settings.listing_delay)
        if self.settings.humanize and self.anti_detection.should_take_long_pause():
            pause = self.anti_detection.get_long_pause_delay()
            logger.debug(f"Taking a long pause ({pause:.1f}s)")
            await self._sleep(pause)

        return listing

    async def _pause(self, bounds: tuple[float, float]) -> None:
        if not self.settings.humanize:
            return
        await self._sleep(self.anti_detection.human_delay(*bounds))

    async def close(self) -> None:
        """Shut down the browser pool and log crawl metrics."""
        await self.pool.shutdown()
        if isinstance(self.metrics, ScraperMetrics):
            self.metrics.log_summary()
