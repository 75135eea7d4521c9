"""
Crawler metrics.

MetricsSink is the interface the orchestrator reports into. ScraperMetrics
is the default in-memory implementation keeping counters, timing and a
bounded request history; NullMetrics discards everything.
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Optional

logger = logging.getLogger(__name__)


class MetricsSink(ABC):
    """Counters and timers reported by the crawler."""

    @abstractmethod
    def record_request(
        self,
        url: str,
        success: bool,
        duration: float,
        blocked: bool = False,
        captcha: bool = False,
        error: Optional[str] = None,
    ) -> None:
        """Record one navigation or detail request (duration in seconds)."""

    @abstractmethod
    def record_place_found(
        self,
        phone: Optional[str] = None,
        website: Optional[str] = None,
        email: Optional[str] = None,
        social_media_url: Optional[str] = None,
        relevance_score: Optional[int] = None,
        lead_score: Optional[int] = None,
    ) -> None:
        """Record one extracted listing."""

    @abstractmethod
    def record_cache_hit(self) -> None:
        ...

    @abstractmethod
    def record_cache_miss(self) -> None:
        ...


class NullMetrics(MetricsSink):
    """Sink that drops every measurement."""

    def record_request(self, url, success, duration, blocked=False, captcha=False, error=None) -> None:
        pass

    def record_place_found(self, phone=None, website=None, email=None,
                           social_media_url=None, relevance_score=None, lead_score=None) -> None:
        pass

    def record_cache_hit(self) -> None:
        pass

    def record_cache_miss(self) -> None:
        pass


@dataclass
class RequestRecord:
    """Record of a single request."""
    url: str
    success: bool
    duration: float
    timestamp: datetime
    blocked: bool = False
    captcha: bool = False
    error: Optional[str] = None


@dataclass
class ScrapingMetrics:
    """Aggregated counters for a crawling session."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    blocked_requests: int = 0
    captcha_encountered: int = 0

    total_request_time: float = 0.0
    fastest_request: Optional[float] = None
    slowest_request: float = 0.0

    total_places_found: int = 0
    places_with_phone: int = 0
    places_with_website: int = 0
    places_with_email: int = 0
    places_with_social_media: int = 0

    average_relevance_score: float = 0.0
    average_lead_score: float = 0.0

    cache_hits: int = 0
    cache_misses: int = 0

    session_start: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)

    @property
    def average_request_time(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_request_time / self.total_requests


class ScraperMetrics(MetricsSink):
    """
    In-memory metrics for one process.

    Keeps the most recent ``max_history`` requests for inspection.
    """

    def __init__(self, max_history: int = 1000):
        self.max_history = max_history
        self._metrics = ScrapingMetrics()
        self._history: Deque[RequestRecord] = deque(maxlen=max_history)
        self._relevance_samples = 0
        self._lead_samples = 0

    def record_request(
        self,
        url: str,
        success: bool,
        duration: float,
        blocked: bool = False,
        captcha: bool = False,
        error: Optional[str] = None,
    ) -> None:
        m = self._metrics
        self._history.append(RequestRecord(
            url=url,
            success=success,
            duration=duration,
            timestamp=datetime.now(),
            blocked=blocked,
            captcha=captcha,
            error=error,
        ))

        m.total_requests += 1
        m.last_activity = datetime.now()
        if success:
            m.successful_requests += 1
        else:
            m.failed_requests += 1
        if blocked:
            m.blocked_requests += 1
        if captcha:
            m.captcha_encountered += 1

        m.total_request_time += duration
        if m.fastest_request is None or duration < m.fastest_request:
            m.fastest_request = duration
        m.slowest_request = max(m.slowest_request, duration)

    def record_place_found(
        self,
        phone: Optional[str] = None,
        website: Optional[str] = None,
        email: Optional[str] = None,
        social_media_url: Optional[str] = None,
        relevance_score: Optional[int] = None,
        lead_score: Optional[int] = None,
    ) -> None:
        m = self._metrics
        m.total_places_found += 1
        if phone:
            m.places_with_phone += 1
        if website:
            m.places_with_website += 1
        if email:
            m.places_with_email += 1
        if social_media_url:
            m.places_with_social_media += 1

        # Running means over the listings that reported a value
        if relevance_score is not None:
            self._relevance_samples += 1
            m.average_relevance_score += (relevance_score - m.average_relevance_score) / self._relevance_samples
        if lead_score is not None:
            self._lead_samples += 1
            m.average_lead_score += (lead_score - m.average_lead_score) / self._lead_samples

    def record_cache_hit(self) -> None:
        self._metrics.cache_hits += 1

    def record_cache_miss(self) -> None:
        self._metrics.cache_misses += 1

    def get_metrics(self) -> ScrapingMetrics:
        return self._metrics

    def get_request_history(self, limit: int = 100) -> list[RequestRecord]:
        return list(self._history)[-limit:]

    def get_success_rate(self) -> float:
        """Percentage of successful requests."""
        m = self._metrics
        return m.successful_requests / m.total_requests * 100 if m.total_requests else 0.0

    def get_block_rate(self) -> float:
        """Percentage of requests that hit a bot challenge."""
        m = self._metrics
        return m.blocked_requests / m.total_requests * 100 if m.total_requests else 0.0

    def get_cache_hit_rate(self) -> float:
        m = self._metrics
        total = m.cache_hits + m.cache_misses
        return m.cache_hits / total * 100 if total else 0.0

    def get_data_quality_stats(self) -> dict[str, float]:
        """Percentage of listings carrying each contact channel."""
        m = self._metrics
        total = m.total_places_found or 1
        return {
            "phone_rate": m.places_with_phone / total * 100,
            "website_rate": m.places_with_website / total * 100,
            "email_rate": m.places_with_email / total * 100,
            "social_media_rate": m.places_with_social_media / total * 100,
        }

    def get_summary(self) -> str:
        m = self._metrics
        return (
            f"Metrics: {m.total_requests} requests | "
            f"{self.get_success_rate():.1f}% success | "
            f"{self.get_block_rate():.1f}% blocked | "
            f"{self.get_cache_hit_rate():.1f}% cache | "
            f"{m.average_request_time:.2f}s avg"
        )

    def log_summary(self) -> None:
        quality = self.get_data_quality_stats()
        m = self._metrics
        logger.info(self.get_summary())
        logger.info(
            f"Listings: {m.total_places_found} found | "
            f"{quality['phone_rate']:.0f}% phone | "
            f"{quality['website_rate']:.0f}% website | "
            f"{quality['social_media_rate']:.0f}% social | "
            f"avg relevance {m.average_relevance_score:.0f}"
        )

    def reset(self) -> None:
        self._metrics = ScrapingMetrics()
        self._history.clear()
        self._relevance_samples = 0
        self._lead_samples = 0
