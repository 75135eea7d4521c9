"""
Infrastructure Package.

Provides the browser pool, retry and circuit breaker, anti-detection
profile, cache and metrics shared by every crawl.
"""

from .anti_detection import (
    AntiDetectionConfig,
    AntiDetectionProfile,
)
from .browser_pool import (
    BrowserPool,
    PageLease,
    PlaywrightLauncher,
    PoolConfig,
    PoolStats,
)
from .cache import (
    Cache,
    CacheEntry,
    MemoryCache,
)
from .metrics import (
    MetricsSink,
    NullMetrics,
    ScraperMetrics,
    ScrapingMetrics,
)
from .resilience import (
    CircuitBreaker,
    RetryOptions,
    compute_delay,
    is_retryable_error,
    retry,
    with_retry,
)

__all__ = [
    # Anti-detection
    "AntiDetectionConfig",
    "AntiDetectionProfile",
    # Browser pool
    "BrowserPool",
    "PageLease",
    "PlaywrightLauncher",
    "PoolConfig",
    "PoolStats",
    # Cache
    "Cache",
    "CacheEntry",
    "MemoryCache",
    # Metrics
    "MetricsSink",
    "NullMetrics",
    "ScraperMetrics",
    "ScrapingMetrics",
    # Resilience
    "CircuitBreaker",
    "RetryOptions",
    "compute_delay",
    "is_retryable_error",
    "retry",
    "with_retry",
]
