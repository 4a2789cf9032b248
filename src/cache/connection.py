import asyncio
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from config.settings import get_settings

_log = logging.getLogger(__name__)

_client: Optional[aioredis.Redis] = None
# Concurrent first callers await the same creation task
_pending: Optional[asyncio.Task] = None


async def _connect() -> Optional[aioredis.Redis]:
    url = get_settings().redis_url
    try:
        client = aioredis.from_url(
            url,
            decode_responses=False,
            socket_connect_timeout=1,
            socket_timeout=2,
        )
    except (RedisError, ValueError) as exc:
        _log.error(f"Failed to create Redis client for {url}, rate limiting will fail open ({exc})")
        return None
    _log.info(f"Created Redis client for {url}")
    return client


async def get_redis() -> Optional[aioredis.Redis]:
    """
    Return the shared Redis client, creating it on first use.
    Returns None if the client cannot be created; the next call retries.
    """
    global _client, _pending
    if _client is not None:
        return _client
    if _pending is None:
        _pending = asyncio.create_task(_connect())
    task = _pending
    try:
        _client = await task
    finally:
        if _pending is task:
            _pending = None
    return _client


async def close_redis() -> None:
    """Close and discard the cached client."""
    global _client, _pending
    if _pending is not None and not _pending.done():
        _pending.cancel()
        try:
            await _pending
        except asyncio.CancelledError:
            _log.debug("Cancelled pending Redis client creation")
    _pending = None

    client, _client = _client, None
    if client is None:
        return
    try:
        await client.aclose()
        _log.info("Redis connection closed.")
    except RedisError as e:
        _log.warning(f"Error closing Redis connection: {e}")
