"""Google Maps business-listing crawler."""

__version__ = "0.1.0"

from leadcrawler.config import CrawlerConfig
from leadcrawler.exceptions import (
    CircuitOpenError,
    LeadCrawlerError,
    NavigationError,
    PoolExhaustedError,
)
from leadcrawler.models import (
    Coordinates,
    CrawlPlan,
    CrawlResult,
    ExtentTier,
    GridCell,
    ScrapedListing,
    ScrapeOptions,
    SearchTarget,
)
from leadcrawler.orchestrator import CrawlOrchestrator, CrawlSettings
from leadcrawler.postprocess import (
    Categorizer,
    DefaultQualityScorer,
    FranchiseCategorizer,
    PostProcessor,
    QualityScorer,
)
from leadcrawler.geo import GeoGridPlanner
from leadcrawler.infrastructure import (
    AntiDetectionProfile,
    BrowserPool,
    CircuitBreaker,
    MemoryCache,
    MetricsSink,
    PoolConfig,
    RetryOptions,
    ScraperMetrics,
    with_retry,
)
from leadcrawler.logging_config import setup_logging

__all__ = [
    "CrawlerConfig",
    "CircuitOpenError",
    "LeadCrawlerError",
    "NavigationError",
    "PoolExhaustedError",
    "Coordinates",
    "CrawlPlan",
    "CrawlResult",
    "ExtentTier",
    "GridCell",
    "ScrapedListing",
    "ScrapeOptions",
    "SearchTarget",
    "CrawlOrchestrator",
    "CrawlSettings",
    "Categorizer",
    "DefaultQualityScorer",
    "FranchiseCategorizer",
    "PostProcessor",
    "QualityScorer",
    "GeoGridPlanner",
    "AntiDetectionProfile",
    "BrowserPool",
    "CircuitBreaker",
    "MemoryCache",
    "MetricsSink",
    "PoolConfig",
    "RetryOptions",
    "ScraperMetrics",
    "with_retry",
    "setup_logging",
]
