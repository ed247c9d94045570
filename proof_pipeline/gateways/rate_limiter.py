"""Token bucket rate limiter for provider request throttling."""

import threading
import time

from loguru import logger


class TokenBucket:
    """
    Token bucket algorithm implementation for rate limiting.

    Tokens refill continuously at a fixed rate. Requests consume tokens.
    If insufficient tokens are available, the request is rejected.

    Attributes:
        capacity: Maximum number of tokens the bucket can hold
        refill_rate: Tokens added per second
        tokens: Current number of tokens available
        last_refill: Timestamp of last token refill
        lock: Thread lock for safe concurrent access
    """

    def __init__(self, capacity: int, refill_rate: float):
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.tokens = float(capacity)
        self.last_refill = time.monotonic()
        self.lock = threading.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def acquire(self, tokens: int = 1) -> bool:
        """
        Attempt to acquire tokens from the bucket (thread-safe).

        Returns:
            True if tokens were acquired, False if insufficient tokens available
        """
        with self.lock:
            self._refill()

            if self.tokens >= tokens:
                self.tokens -= tokens
                return True

            logger.debug(f"Insufficient tokens: {self.tokens:.2f} < {tokens}")
            return False


class RateLimiter:
    """
    Requests-per-minute limiter shared by gateways billed to one account.

    Attributes:
        rpm_bucket: Token bucket for request rate limiting
    """

    def __init__(self, max_rpm: int):
        if max_rpm <= 0:
            raise ValueError("max_rpm must be positive")

        self.max_rpm = max_rpm
        self.rpm_bucket = TokenBucket(capacity=max_rpm, refill_rate=max_rpm / 60.0)

        logger.bind(component="rate_limiter").info(f"RateLimiter initialized: {max_rpm} RPM")

    def can_proceed(self, request_count: int = 1) -> bool:
        """Consume ``request_count`` request tokens if available."""
        if self.rpm_bucket.acquire(request_count):
            return True
        logger.bind(component="rate_limiter").warning("RPM limit reached, request throttled")
        return False
