"""Helper to create Redis clients, including TLS endpoints (rediss://)."""

from __future__ import annotations

import ssl
from typing import Any

from redis import Redis


def create_redis_client(url: str, **kwargs: Any) -> Redis:
    """Create a Redis client from a URL.

    Hosted providers such as Upstash need TLS; a plain ``redis://`` URL for
    them is upgraded and certificate verification is relaxed.
    """
    if ".upstash.io" in url and url.startswith("redis://"):
        url = url.replace("redis://", "rediss://", 1)
    if url.startswith("rediss://"):
        kwargs.setdefault("ssl_cert_reqs", ssl.CERT_NONE)
    kwargs.setdefault("socket_connect_timeout", 5)
    return Redis.from_url(url, **kwargs)
