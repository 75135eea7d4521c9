from dotenv import load_dotenv
from dataclasses import dataclass, field
from typing import Any, Callable, Optional
from pathlib import Path
import json
import os

from .constants import (
    DEFAULT_MAX_CELLS,
    DEFAULT_MAX_SCROLL_ATTEMPTS,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_STALL_LIMIT,
    DEFAULT_TARGET_SLACK,
    SCRAPE_CACHE_TTL_SECONDS,
)
from .infrastructure.anti_detection import AntiDetectionConfig
from .infrastructure.browser_pool import PoolConfig
from .infrastructure.resilience import RetryOptions

load_dotenv()  # Loads variables from .env file

ENV_PREFIX = "LEADCRAWLER_"


def _env(name: str, default: Any, cast: Callable[[str], Any] = str) -> Any:
    raw = os.getenv(f"{ENV_PREFIX}{name}")
    if raw is None or raw == "":
        return default
    return cast(raw)


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _as_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class CrawlerConfig:
    """Configuration for the crawler (times in seconds unless noted)."""

    # Browser pool
    min_browsers: int = 1
    max_browsers: int = 3
    max_pages_per_browser: int = 50
    browser_ttl: float = 1800.0
    idle_timeout: float = 300.0
    acquire_timeout: float = 30.0
    headless: bool = True
    locale: str = "es-AR"
    navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS
    proxies: list[str] = field(default_factory=list)

    # Retry and circuit breaker
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    breaker_threshold: int = 5
    breaker_reset_timeout: float = 60.0

    # Crawl behaviour
    max_scroll_attempts: int = DEFAULT_MAX_SCROLL_ATTEMPTS
    stall_limit: int = DEFAULT_STALL_LIMIT
    target_slack: int = DEFAULT_TARGET_SLACK
    max_cells: int = DEFAULT_MAX_CELLS
    cache_ttl: int = SCRAPE_CACHE_TTL_SECONDS
    humanize: bool = True

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "CrawlerConfig":
        """Load configuration from LEADCRAWLER_* environment variables.

        Returns:
            CrawlerConfig: Configuration instance with values from environment
        """
        defaults = cls()
        return cls(
            min_browsers=_env("MIN_BROWSERS", defaults.min_browsers, int),
            max_browsers=_env("MAX_BROWSERS", defaults.max_browsers, int),
            max_pages_per_browser=_env("MAX_PAGES_PER_BROWSER", defaults.max_pages_per_browser, int),
            browser_ttl=_env("BROWSER_TTL", defaults.browser_ttl, float),
            idle_timeout=_env("IDLE_TIMEOUT", defaults.idle_timeout, float),
            acquire_timeout=_env("ACQUIRE_TIMEOUT", defaults.acquire_timeout, float),
            headless=_env("HEADLESS", defaults.headless, _as_bool),
            locale=_env("LOCALE", defaults.locale),
            navigation_timeout_ms=_env("NAVIGATION_TIMEOUT_MS", defaults.navigation_timeout_ms, int),
            proxies=_env("PROXIES", [], _as_list),
            max_retries=_env("MAX_RETRIES", defaults.max_retries, int),
            initial_delay=_env("INITIAL_DELAY", defaults.initial_delay, float),
            max_delay=_env("MAX_DELAY", defaults.max_delay, float),
            backoff_multiplier=_env("BACKOFF_MULTIPLIER", defaults.backoff_multiplier, float),
            breaker_threshold=_env("BREAKER_THRESHOLD", defaults.breaker_threshold, int),
            breaker_reset_timeout=_env("BREAKER_RESET_TIMEOUT", defaults.breaker_reset_timeout, float),
            max_scroll_attempts=_env("MAX_SCROLL_ATTEMPTS", defaults.max_scroll_attempts, int),
            stall_limit=_env("STALL_LIMIT", defaults.stall_limit, int),
            target_slack=_env("TARGET_SLACK", defaults.target_slack, int),
            max_cells=_env("MAX_CELLS", defaults.max_cells, int),
            cache_ttl=_env("CACHE_TTL", defaults.cache_ttl, int),
            humanize=_env("HUMANIZE", defaults.humanize, _as_bool),
            log_level=_env("LOG_LEVEL", defaults.log_level),
            log_file=_env("LOG_FILE", None),
        )

    @classmethod
    def from_file(cls, path: str) -> "CrawlerConfig":
        """Load configuration from a JSON file.

        Unknown keys are ignored; a missing file yields the defaults.

        Args:
            path: Path to JSON configuration file

        Returns:
            CrawlerConfig with values from file
        """
        config = cls()
        file_path = Path(path)

        if not file_path.exists():
            return config

        with open(file_path) as f:
            data = json.load(f)

        crawler_data = data.get("crawler", data)

        for field_name in config.__dataclass_fields__:
            if field_name in crawler_data:
                setattr(config, field_name, crawler_data[field_name])

        return config

    def to_dict(self) -> dict:
        return {
            field_name: getattr(self, field_name)
            for field_name in self.__dataclass_fields__
        }

    def pool_config(self) -> PoolConfig:
        return PoolConfig(
            min_browsers=self.min_browsers,
            max_browsers=self.max_browsers,
            max_pages_per_browser=self.max_pages_per_browser,
            browser_ttl=self.browser_ttl,
            idle_timeout=self.idle_timeout,
            acquire_timeout=self.acquire_timeout,
            headless=self.headless,
            locale=self.locale,
            navigation_timeout_ms=self.navigation_timeout_ms,
        )

    def retry_options(self) -> RetryOptions:
        return RetryOptions(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            backoff_multiplier=self.backoff_multiplier,
        )

    def anti_detection_config(self) -> AntiDetectionConfig:
        return AntiDetectionConfig(proxies=list(self.proxies))
