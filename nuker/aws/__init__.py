"""AWS access: clients, rate limiting, retries and credentials."""

from .client import ClientContext, create_boto_client
from .rate_limit import RateLimiterConfig, RateLimiterRegistry, TokenBucketRateLimiter
from .retry import RetryConfig, call_with_retry, to_deletion_error

__all__ = [
    "ClientContext",
    "create_boto_client",
    "RateLimiterConfig",
    "RateLimiterRegistry",
    "TokenBucketRateLimiter",
    "RetryConfig",
    "call_with_retry",
    "to_deletion_error",
]
