"""
Retry with exponential backoff and a shared circuit breaker.

Navigation against the map site fails transiently (resets, timeouts, closed
targets) and occasionally for good (bad certificates, malformed URLs). This
module retries the former with jittered exponential backoff and lets a
process-wide CircuitBreaker pause all crawling after sustained failures.
"""

import asyncio
import functools
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..exceptions import CircuitOpenError
from ..models import CircuitState, RetryAttempt

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Error messages that are always worth another attempt
RETRYABLE_ERRORS = [
    "ECONNRESET",
    "ETIMEDOUT",
    "ECONNREFUSED",
    "EPIPE",
    "ENOTFOUND",
    "ENETUNREACH",
    "EAI_AGAIN",
    "Navigation timeout",
    "net::ERR_CONNECTION_RESET",
    "net::ERR_CONNECTION_REFUSED",
    "net::ERR_NAME_NOT_RESOLVED",
    "net::ERR_INTERNET_DISCONNECTED",
    "net::ERR_PROXY_CONNECTION_FAILED",
    "Protocol error",
    "Target closed",
    "Session closed",
    "Execution context was destroyed",
]

# Error messages that will fail the same way every time
NON_RETRYABLE_ERRORS = [
    "net::ERR_CERT_",
    "net::ERR_SSL_",
    "Invalid URL",
    "ERR_INVALID_URL",
    "Cannot navigate to invalid URL",
]

RETRYABLE_TYPES = (TimeoutError, asyncio.TimeoutError, ConnectionError)


@dataclass
class RetryOptions:
    """Backoff settings for with_retry (delays in seconds)."""
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: float = 0.25
    # Overrides is_retryable_error when set
    retry_on: Optional[Callable[[BaseException], bool]] = None


def is_retryable_error(error: BaseException) -> bool:
    """
    Classify an error as transient or permanent.

    The deny-list wins over everything else. Unclassified errors are retried
    only when they look network-related.
    """
    message = str(error)

    for pattern in NON_RETRYABLE_ERRORS:
        if pattern in message:
            return False

    # Playwright's TimeoutError does not subclass the builtin one
    if isinstance(error, RETRYABLE_TYPES) or type(error).__name__ == "TimeoutError":
        return True

    for pattern in RETRYABLE_ERRORS:
        if pattern in message:
            return True

    return "net::" in message or "timeout" in message.lower()


def base_delay(attempt: int, options: RetryOptions) -> float:
    """Un-jittered delay before retrying after ``attempt`` (0-based)."""
    exponential = options.initial_delay * (options.backoff_multiplier ** attempt)
    return min(exponential, options.max_delay)


def compute_delay(attempt: int, options: RetryOptions, rng: Optional[random.Random] = None) -> float:
    """Backoff delay with symmetric jitter, never negative."""
    bounded = base_delay(attempt, options)
    uniform = rng.uniform if rng else random.uniform
    jitter = bounded * options.jitter * uniform(-1.0, 1.0)
    return max(0.0, bounded + jitter)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
    operation_name: str = "operation",
    on_retry: Optional[Callable[[RetryAttempt], None]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run an async operation, retrying transient failures.

    Args:
        operation: Zero-argument coroutine factory
        options: Retry settings (defaults if omitted)
        operation_name: Label used in log messages
        on_retry: Called with each RetryAttempt before sleeping
        sleep: Awaitable sleep used between attempts

    Returns:
        The operation's result

    Raises:
        The last error once retries are exhausted or the error is permanent
    """
    opts = options or RetryOptions()
    total = opts.max_retries + 1

    for attempt in range(total):
        try:
            return await operation()
        except Exception as e:
            should_retry = opts.retry_on(e) if opts.retry_on else is_retryable_error(e)

            if not should_retry or attempt >= opts.max_retries:
                logger.error(f"{operation_name} failed after {attempt + 1} attempt(s): {e}")
                raise

            delay = compute_delay(attempt, opts)
            logger.warning(
                f"{operation_name} failed (attempt {attempt + 1}/{total}), "
                f"retrying in {delay:.2f}s: {e}"
            )
            if on_retry:
                on_retry(RetryAttempt(attempt=attempt, delay=delay, retryable=True, error=e))
            await sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RuntimeError(f"{operation_name} exhausted retries without an error")


def retry(options: Optional[RetryOptions] = None, operation_name: Optional[str] = None):
    """Decorator form of with_retry for async functions and methods."""
    def decorator(func):
        name = operation_name or func.__qualname__

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await with_retry(lambda: func(*args, **kwargs), options, name)

        return wrapper

    return decorator


class CircuitBreaker:
    """
    Process-wide failure circuit.

    closed -> open once ``threshold`` consecutive failures are recorded.
    open -> half_open once ``reset_timeout`` seconds have elapsed; the
    breaker then reports itself as not open so a single probe can run.
    half_open -> closed on success, or back to open on failure.
    """

    def __init__(
        self,
        threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "circuit",
    ):
        self.threshold = threshold
        self.reset_timeout = reset_timeout
        self.name = name
        self._clock = clock
        self._failures = 0
        self._last_failure = 0.0
        self._state = CircuitState.CLOSED

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def last_failure(self) -> float:
        return self._last_failure

    @property
    def state(self) -> CircuitState:
        return self._state

    def is_open(self) -> bool:
        """Whether calls should be refused right now."""
        if self._state == CircuitState.OPEN:
            if self._clock() - self._last_failure >= self.reset_timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info(f"Circuit '{self.name}' half-open, allowing a probe")
                return False
            return True
        return False

    def retry_after(self) -> float:
        """Seconds until an open circuit lets a probe through."""
        if self._state != CircuitState.OPEN:
            return 0.0
        return max(0.0, self.reset_timeout - (self._clock() - self._last_failure))

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            logger.info(f"Circuit '{self.name}' closed after successful probe")
        self._failures = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failures += 1
        self._last_failure = self._clock()

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(f"Circuit '{self.name}' re-opened: probe failed")
        elif self._failures >= self.threshold and self._state != CircuitState.OPEN:
            self._state = CircuitState.OPEN
            logger.warning(
                f"Circuit '{self.name}' opened after {self._failures} consecutive failures"
            )

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``fn`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open; ``fn`` is not called
        """
        if self.is_open():
            raise CircuitOpenError(self.retry_after())

        try:
            result = await fn()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def get_state(self) -> dict:
        """Snapshot for logging and metrics."""
        return {
            "state": self._state.value,
            "failures": self._failures,
            "threshold": self.threshold,
            "last_failure": self._last_failure,
            "reset_timeout": self.reset_timeout,
        }

    def reset(self) -> None:
        self._failures = 0
        self._last_failure = 0.0
        self._state = CircuitState.CLOSED
