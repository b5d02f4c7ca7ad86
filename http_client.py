import logging
from typing import Optional

import httpx

from config import settings

logger = logging.getLogger(__name__)


def build_http_client(timeout: Optional[float] = None) -> httpx.Client:
    """HTTP client with connection pooling and a hard time bound for every request."""
    limits = httpx.Limits(
        max_keepalive_connections=10,
        max_connections=20,
        keepalive_expiry=30.0,
    )
    total = timeout if timeout is not None else settings.openlibrary_timeout
    return httpx.Client(
        limits=limits,
        timeout=httpx.Timeout(total, connect=min(5.0, total)),
        follow_redirects=True,
        headers={
            "User-Agent": settings.openlibrary_user_agent,
            "Accept": "application/json",
        },
    )


# Global HTTP client instance
_global_client: Optional[httpx.Client] = None


def get_http_client() -> httpx.Client:
    """Get or create the shared HTTP client."""
    global _global_client
    if _global_client is None or _global_client.is_closed:
        _global_client = build_http_client()
    return _global_client


def cleanup_http_client() -> None:
    """Close the shared HTTP client."""
    global _global_client
    if _global_client is not None:
        _global_client.close()
        logger.debug("Shared HTTP client closed")
        _global_client = None
