"""Token bucket rate limiting per AWS service.

Every task in a run that talks to the same service draws from one shared bucket, so a
large fan-out of region tasks cannot exceed the service's request budget.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimiterConfig:
    """Token bucket settings.

    Attributes:
        requests_per_second: Sustained refill rate
        burst_size: Bucket capacity
        wait_timeout: Longest time ``acquire`` blocks before giving up (seconds)
    """

    requests_per_second: float = 10.0
    burst_size: int = 20
    wait_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        if self.burst_size < 1:
            raise ValueError("burst_size must be at least 1")


SERVICE_RATE_LIMITS: Dict[str, RateLimiterConfig] = {
    "default": RateLimiterConfig(requests_per_second=10, burst_size=20),
    "ec2": RateLimiterConfig(requests_per_second=20, burst_size=40),
    "autoscaling": RateLimiterConfig(requests_per_second=10, burst_size=20),
    "elbv2": RateLimiterConfig(requests_per_second=10, burst_size=20),
    "rds": RateLimiterConfig(requests_per_second=10, burst_size=20),
    "s3": RateLimiterConfig(requests_per_second=50, burst_size=100),
    "emr": RateLimiterConfig(requests_per_second=5, burst_size=10),
    "redshift": RateLimiterConfig(requests_per_second=5, burst_size=10),
    "es": RateLimiterConfig(requests_per_second=5, burst_size=10),
    "sagemaker": RateLimiterConfig(requests_per_second=5, burst_size=10),
    "eks": RateLimiterConfig(requests_per_second=5, burst_size=10),
    "cloudwatch": RateLimiterConfig(requests_per_second=20, burst_size=40),
    "sts": RateLimiterConfig(requests_per_second=5, burst_size=10),
}


class TokenBucketRateLimiter:
    """Thread-safe token bucket."""

    def __init__(self, config: Optional[RateLimiterConfig] = None):
        self.config = config or RateLimiterConfig()
        self._tokens = float(self.config.burst_size)
        self._last_refill = time.monotonic()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(
            float(self.config.burst_size),
            self._tokens + elapsed * self.config.requests_per_second,
        )
        self._last_refill = now

    def acquire(self, tokens: int = 1, cancel_event: Optional[threading.Event] = None) -> bool:
        """Block until ``tokens`` are available.

        Args:
            tokens: Number of tokens to take
            cancel_event: Stop waiting as soon as this event is set

        Returns:
            True if the tokens were taken, False on timeout or cancellation
        """
        deadline = time.monotonic() + self.config.wait_timeout
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= tokens:
                    self._tokens -= tokens
                    return True
                wait = (tokens - self._tokens) / self.config.requests_per_second

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.debug("Rate limiter wait timed out after %.1fs", self.config.wait_timeout)
                return False

            wait = min(wait, remaining)
            if cancel_event is not None:
                if cancel_event.wait(wait):
                    return False
            else:
                time.sleep(wait)


class RateLimiterRegistry:
    """One limiter per service, shared by every task of a run."""

    def __init__(self, overrides: Optional[Dict[str, RateLimiterConfig]] = None):
        self._configs = dict(SERVICE_RATE_LIMITS)
        self._configs.update(overrides or {})
        self._limiters: Dict[str, TokenBucketRateLimiter] = {}
        self._lock = threading.Lock()

    def config_for(self, service_name: str) -> RateLimiterConfig:
        return self._configs.get(service_name, self._configs["default"])

    def get(self, service_name: str) -> TokenBucketRateLimiter:
        with self._lock:
            limiter = self._limiters.get(service_name)
            if limiter is None:
                limiter = TokenBucketRateLimiter(self.config_for(service_name))
                self._limiters[service_name] = limiter
            return limiter
