"""
Shared httpx client construction for external services.

Every upstream (inference provider, auth, storage, property data) gets its
own AsyncClient built here, so timeouts and pool limits are configured in
one place and tests can swap in an `httpx.MockTransport`.
"""

from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from caselli.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class TimeoutConfig:
    """HTTP timeout configuration for different operation types."""

    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    write_timeout: float = 30.0
    pool_timeout: float = 5.0

    def to_httpx(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.connect_timeout,
            read=self.read_timeout,
            write=self.write_timeout,
            pool=self.pool_timeout,
        )


@dataclass
class RetryConfig:
    """Fixed-delay retry policy (attempts includes the first try)."""

    max_attempts: int = 3
    delay_seconds: float = 2.0


def create_http_client(
    service_name: str,
    base_url: str,
    timeout_config: Optional[TimeoutConfig] = None,
    headers: Optional[Dict[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Build an AsyncClient with the service's base URL, timeouts and pool limits.

    Args:
        service_name: Name used in logs
        base_url: Base URL for the service
        timeout_config: Timeout configuration (defaults to TimeoutConfig())
        headers: Default headers sent with every request
        transport: Optional transport override (tests pass httpx.MockTransport)
    """
    timeout_config = timeout_config or TimeoutConfig()

    limits = httpx.Limits(
        max_keepalive_connections=20,
        max_connections=100,
        keepalive_expiry=30.0,
    )

    client = httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout_config.to_httpx(),
        limits=limits,
        headers=headers,
        follow_redirects=False,
        transport=transport,
    )

    logger.info(
        "HTTP client initialized",
        service=service_name,
        base_url=base_url,
        read_timeout=timeout_config.read_timeout,
    )
    return client
