"""Typed failures raised by the crawler core."""


class LeadCrawlerError(Exception):
    """Base class for all crawler errors."""


class PoolExhaustedError(LeadCrawlerError):
    """No browser instance became available within the acquire timeout."""

    def __init__(self, timeout: float, total: int):
        self.timeout = timeout
        self.total = total
        super().__init__(
            f"Browser pool exhausted: no instance free after {timeout:.1f}s "
            f"({total} browsers in use)"
        )


class CircuitOpenError(LeadCrawlerError):
    """The shared circuit breaker is open; the call was not attempted."""

    def __init__(self, retry_after: float = 0.0):
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker is open, retry in {retry_after:.1f}s"
        )


class NavigationError(LeadCrawlerError):
    """A page navigation failed after retries."""

    def __init__(self, url: str, message: str = ""):
        self.url = url
        super().__init__(f"Navigation to {url} failed: {message}" if message else f"Navigation to {url} failed")
