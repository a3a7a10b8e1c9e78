"""
Rate-limit bookkeeping and bounded retry helpers.
RateLimitGate is shared by every worker that talks to the forge so backoff is coordinated;
call_with_retry wraps store writes that may hit a transient error.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple, Type

logger = logging.getLogger(__name__)

LOW_QUOTA_WARNING = 10  # warn below this many remaining requests
LOW_QUOTA_WAIT = 3  # suspend until reset below this many remaining requests
RESET_BUFFER_SECONDS = 1.0
QUOTA_EXHAUSTED_WAIT_SECONDS = 60.0


def _safe_int_from_headers(headers: Dict[str, Any], key: str) -> Optional[int]:
    try:
        val = headers.get(key)
        return int(val) if val is not None else None
    except (TypeError, ValueError):
        return None


def _safe_float_from_headers(headers: Dict[str, Any], key: str) -> Optional[float]:
    try:
        val = headers.get(key)
        return float(val) if val is not None else None
    except (TypeError, ValueError):
        return None


def parse_rate_headers(resp) -> Tuple[Optional[int], Optional[float]]:
    """Return (remaining, reset epoch seconds) from X-RateLimit-* headers, None when absent."""
    headers = getattr(resp, 'headers', None) or {}
    return _safe_int_from_headers(headers, 'X-RateLimit-Remaining'), _safe_float_from_headers(headers, 'X-RateLimit-Reset')


def is_quota_exhausted(resp) -> bool:
    """A 403 whose message says the API rate limit was exceeded."""
    if getattr(resp, 'status_code', 0) != 403:
        return False
    text = getattr(resp, 'text', '') or ''
    return 'rate limit' in text.lower()


class RateLimitGate:
    """
    Shared rate-limit state for all threads calling the forge.

    observe() records the quota signals of a response; wait() blocks the calling thread
    until the gate reopens. Each worker sleeps on its own thread, so one worker's wait
    never holds the lock other workers need.
    """

    def __init__(self, clock: Callable[[], float] = time.time, sleep: Callable[[float], None] = time.sleep):
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._resume_at = 0.0
        self.remaining: Optional[int] = None
        self.reset_at: Optional[float] = None

    def observe(self, resp) -> float:
        """Inspect quota headers. Returns the wait (seconds) scheduled before the next request, 0 if none."""
        remaining, reset_at = parse_rate_headers(resp)
        if remaining is None:
            return 0.0
        with self._lock:
            self.remaining = remaining
            self.reset_at = reset_at
            if remaining >= LOW_QUOTA_WARNING:
                return 0.0
            logger.warning("GitHub API rate limit is getting low: %s requests remaining", remaining)
            if remaining >= LOW_QUOTA_WAIT:
                return 0.0
            now = self._clock()
            wait = max(0.0, (reset_at or now) - now) + RESET_BUFFER_SECONDS
            self._resume_at = max(self._resume_at, now + wait)
        logger.info("Rate limit almost reached; waiting %.1f seconds for reset", wait)
        return wait

    def block_for(self, seconds: float):
        """Close the gate for everyone for `seconds` (used when the quota is already exhausted)."""
        with self._lock:
            self._resume_at = max(self._resume_at, self._clock() + seconds)

    def wait(self) -> float:
        """Sleep until the gate is open. Returns the time slept."""
        with self._lock:
            delay = self._resume_at - self._clock()
        if delay <= 0:
            return 0.0
        self._sleep(delay)
        return delay


def call_with_retry(
    fn: Callable[[], Any],
    retry_on: Tuple[Type[BaseException], ...],
    attempts: int = 3,
    delay: float = 5.0,
    sleep: Callable[[float], None] = time.sleep,
    description: str = '',
) -> Any:
    """Call fn, retrying on the given exception types with a fixed delay. The last error is re-raised."""
    attempts = max(1, int(attempts))
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as ex:
            if attempt >= attempts:
                logger.error("Giving up on %s after %d attempts: %s", description or 'operation', attempt, ex)
                raise
            logger.warning("Transient failure on %s (attempt %d/%d): %s; retrying in %.1fs", description or 'operation', attempt, attempts, ex, delay)
            sleep(delay)


__all__ = ["RateLimitGate", "call_with_retry", "parse_rate_headers", "is_quota_exhausted", "QUOTA_EXHAUSTED_WAIT_SECONDS"]
