"""boto3 client creation and rate-limited, retried AWS calls.

A :class:`ClientContext` is created once per run and shared by every task. It owns the
boto3 session, caches one client per (service, region), and routes every request through
the per-service rate limiter and the throttling retry loop.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

import boto3
from botocore.config import Config

from ..errors import ThrottledError
from .rate_limit import RateLimiterRegistry
from .retry import DEFAULT_RETRY_CONFIG, RetryConfig, call_with_retry

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10
DEFAULT_READ_TIMEOUT = 30
DEFAULT_MAX_POOL_CONNECTIONS = 25


def create_boto_client(
    service_name: str,
    region_name: Optional[str] = None,
    profile_name: Optional[str] = None,
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT,
    read_timeout: int = DEFAULT_READ_TIMEOUT,
    max_pool_connections: int = DEFAULT_MAX_POOL_CONNECTIONS,
) -> Any:
    """Create a boto3 client with explicit timeouts.

    botocore's own retries are disabled; throttling is retried by :func:`call_with_retry`.

    Args:
        service_name: AWS service name (ec2, s3, rds, ...)
        region_name: AWS region (None = session default)
        profile_name: AWS profile name (optional)
        connect_timeout: Connection timeout in seconds
        read_timeout: Read timeout in seconds
        max_pool_connections: HTTP connection pool size

    Returns:
        boto3 client
    """
    session = boto3.Session(profile_name=profile_name)
    return session.client(
        service_name,
        region_name=region_name,
        config=build_client_config(connect_timeout, read_timeout, max_pool_connections),
    )


def build_client_config(
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT,
    read_timeout: int = DEFAULT_READ_TIMEOUT,
    max_pool_connections: int = DEFAULT_MAX_POOL_CONNECTIONS,
) -> Config:
    return Config(
        retries={"total_max_attempts": 1, "mode": "standard"},
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        max_pool_connections=max_pool_connections,
    )


class ClientContext:
    """Shared AWS access for one run.

    Attributes:
        profile_name: AWS profile the session was built from
        retry_config: Throttling retry settings
        rate_limiters: Per-service token buckets
        cancel_event: Set when the run is cancelled; aborts rate limit and backoff waits
    """

    def __init__(
        self,
        profile_name: Optional[str] = None,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
        rate_limiters: Optional[RateLimiterRegistry] = None,
        connect_timeout: int = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: int = DEFAULT_READ_TIMEOUT,
        max_pool_connections: int = DEFAULT_MAX_POOL_CONNECTIONS,
        cancel_event: Optional[threading.Event] = None,
        session_factory: Callable[..., Any] = boto3.Session,
    ):
        self.profile_name = profile_name
        self.retry_config = retry_config
        self.rate_limiters = rate_limiters or RateLimiterRegistry()
        self.cancel_event = cancel_event or threading.Event()
        self._client_config = build_client_config(connect_timeout, read_timeout, max_pool_connections)
        self._session_factory = session_factory
        self._session: Any = None
        self._clients: Dict[Tuple[str, str], Any] = {}
        self._lock = threading.Lock()

    @property
    def session(self) -> Any:
        with self._lock:
            if self._session is None:
                self._session = self._session_factory(profile_name=self.profile_name)
            return self._session

    def client(self, service_name: str, region: str) -> Any:
        """Cached client for (service, region).

        boto3 sessions are not thread-safe, so client creation is serialized. The clients
        themselves are safe to share between threads.
        """
        session = self.session
        key = (service_name, region)
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                logger.debug(f"Creating {service_name} client for {region}")
                client = session.client(service_name, region_name=region, config=self._client_config)
                self._clients[key] = client
            return client

    def _acquire(self, service_name: str) -> None:
        limiter = self.rate_limiters.get(service_name)
        if not limiter.acquire(cancel_event=self.cancel_event):
            raise ThrottledError(
                f"Timed out waiting for {service_name} rate limiter",
                error_code="RateLimiterTimeout",
            )

    def call(self, service_name: str, region: str, operation: str, **kwargs: Any) -> Any:
        """Issue one AWS request, rate limited and retried while throttled."""
        method = getattr(self.client(service_name, region), operation)

        def attempt() -> Any:
            self._acquire(service_name)
            return method(**kwargs)

        return call_with_retry(attempt, retry_config=self.retry_config, cancel_event=self.cancel_event)

    def paginate(self, service_name: str, region: str, operation: str, **kwargs: Any) -> List[Dict[str, Any]]:
        """Fetch every page of a paginated operation.

        Each page costs one rate limiter token. A throttled page restarts the listing.
        """
        paginator = self.client(service_name, region).get_paginator(operation)

        def attempt() -> List[Dict[str, Any]]:
            pages = []
            for page in paginator.paginate(**kwargs):
                self._acquire(service_name)
                pages.append(page)
            return pages

        return call_with_retry(attempt, retry_config=self.retry_config, cancel_event=self.cancel_event)
