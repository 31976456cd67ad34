# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

"""
Shared async Redis client helpers with optional connection caps.

One pool per (url, decode_responses, max_connections) triple is kept for the
lifetime of the process; the rate gate, the credit ledger and the job channel
all borrow from it. Call close_async_redis_clients() once on shutdown.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Optional, Tuple

import redis.asyncio as aioredis
from redis.asyncio import Redis as AsyncRedis

logger = logging.getLogger(__name__)

_ASYNC_CLIENTS: Dict[Tuple[str, bool, Optional[int]], AsyncRedis] = {}


def _client_name_base() -> str:
    return (
        os.getenv("REDIS_CLIENT_NAME")
        or os.getenv("SERVICE_NAME")
        or "queuebot"
    )


def _client_instance_hint() -> str:
    return os.getenv("INSTANCE_ID") or os.getenv("HOSTNAME") or "local"


def _sanitize_client_name(raw: str) -> str:
    safe = "".join(ch if (ch.isalnum() or ch in {"-", "_", ":", "."}) else "_" for ch in raw)
    return safe[:128]


def _build_client_name(kind: str) -> str:
    base = _client_name_base()
    instance = _client_instance_hint()
    pid = os.getpid()
    return _sanitize_client_name(f"{base}:{instance}:{pid}:{kind}")


def safe_redis_url(url: str) -> str:
    """Mask credentials so the url can be logged."""
    if not url or "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    if "@" not in rest:
        return url
    creds, host = rest.split("@", 1)
    if ":" in creds:
        return f"{scheme}://***:***@{host}"
    return f"{scheme}://***@{host}"


def get_async_redis_client(
    redis_url: str,
    *,
    decode_responses: bool = False,
    max_connections: Optional[int] = None,
) -> AsyncRedis:
    if max_connections is not None and max_connections <= 0:
        max_connections = None
    key = (redis_url, decode_responses, max_connections)
    client = _ASYNC_CLIENTS.get(key)
    if client is not None:
        return client

    kwargs = {"decode_responses": decode_responses}
    if max_connections is not None:
        kwargs["max_connections"] = max_connections
    kwargs["client_name"] = _build_client_name("async_decode" if decode_responses else "async")
    client = aioredis.from_url(redis_url, **kwargs)
    _ASYNC_CLIENTS[key] = client
    logger.info(
        "Created async Redis client pool url=%s decode_responses=%s max_connections=%s client_name=%s",
        safe_redis_url(redis_url),
        decode_responses,
        max_connections,
        kwargs.get("client_name"),
    )
    return client


async def close_async_redis_clients() -> None:
    """Close every shared pool. The first failure is re-raised after all pools were attempted."""
    first_error: Optional[BaseException] = None
    for client in list(_ASYNC_CLIENTS.values()):
        try:
            await client.aclose()
        except Exception as e:
            logger.warning("Failed to close async Redis client", exc_info=True)
            first_error = first_error or e
    _ASYNC_CLIENTS.clear()
    if first_error is not None:
        raise first_error
