# src/leadcrawler/constants.py
"""Centralized constants for the lead crawler.

This module contains magic numbers and target-site values that are used
across multiple modules. For user-configurable settings, see config.py
and CrawlerConfig.
"""

# =============================================================================
# Target Site
# =============================================================================

MAPS_BASE_URL = "https://www.google.com/maps"
MAPS_SEARCH_URL = f"{MAPS_BASE_URL}/search/"

# Detail links in the result feed always contain this path fragment
LISTING_LINK_FRAGMENT = "/maps/place/"

# Joins keyword and place in free-text search queries
QUERY_JOINER = "en"


# =============================================================================
# Cache
# =============================================================================

SCRAPE_CACHE_PREFIX = "scrape"
GEOCODE_CACHE_PREFIX = "geocode"

# Raw result sets are reused for one day
SCRAPE_CACHE_TTL_SECONDS = 86400

# Centers almost never move
GEOCODE_CACHE_TTL_SECONDS = 30 * 86400

# In-memory cache cleans expired entries beyond this size
MEMORY_CACHE_CLEANUP_THRESHOLD = 10000


# =============================================================================
# Crawl Behaviour
# =============================================================================

DEFAULT_MAX_RESULTS = 40
DEFAULT_NAVIGATION_TIMEOUT_MS = 30000
DEFAULT_MAX_SCROLL_ATTEMPTS = 12
DEFAULT_STALL_LIMIT = 3
DEFAULT_CONCURRENT_TABS = 3
DEFAULT_TARGET_SLACK = 5

# Provincial sweeps never visit more settlements than this
DEFAULT_MAX_CELLS = 64

# Feed scroll distance range in pixels
SCROLL_STEP_MIN_PX = 800
SCROLL_STEP_MAX_PX = 1200

# Pause ranges in seconds
LISTING_DELAY_RANGE = (0.8, 2.0)
SCROLL_DELAY_RANGE = (1.0, 2.0)
TARGET_DELAY_RANGE = (2.0, 4.0)

# Bot-challenge cooldown before reloading
CHALLENGE_COOLDOWN_SECONDS = 30.0


# =============================================================================
# Relevance And Quality
# =============================================================================

RELEVANCE_NAME_MATCH = 100
RELEVANCE_CATEGORY_MATCH = 80
RELEVANCE_SYNONYM_CATEGORY_MATCH = 60
RELEVANCE_SYNONYM_NAME_MATCH = 40
RELEVANCE_NO_MATCH_FLOOR = 20
RELEVANCE_EXCLUDED_PENALTY = 100

# strict_match keeps only listings at or above this relevance
STRICT_RELEVANCE_THRESHOLD = 60

# Default relevance filter applied during post-processing
DEFAULT_MIN_RELEVANCE = 20

# Phones with fewer digits are too ambiguous to deduplicate on
MIN_PHONE_DIGITS_FOR_DEDUPE = 8

MAX_QUALITY_SCORE = 100
