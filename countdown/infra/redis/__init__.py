"""Redis access for the scheduler: one shared async client and a cross-replica run lock."""

import logging
import os
import socket
from collections.abc import Callable, Coroutine
from typing import Any

import redis.asyncio as redis

from countdown.configs import configs

logger = logging.getLogger(__name__)

LOCK_PREFIX = "countdown:lock"

_client: redis.Redis | None = None


async def get_redis_client() -> redis.Redis:
    """Shared client, created lazily. It is bound to the event loop that first uses it."""
    global _client
    if _client is None:
        _client = redis.from_url(configs.Redis.REDIS_URL, decode_responses=True)
        logger.info("Redis client created for %s:%s/%s", configs.Redis.HOST, configs.Redis.PORT, configs.Redis.DB)
    return _client


async def close_redis_client() -> None:
    global _client
    if _client is None:
        return
    client, _client = _client, None
    await client.aclose()
    logger.debug("Redis client closed")


def _holder() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


async def run_once(
    key: str,
    coro_fn: Callable[[], Coroutine[Any, Any, Any]],
    *,
    ttl: int = 300,
    client: redis.Redis | None = None,
) -> bool:
    """Run *coro_fn* unless another replica already did within *ttl* seconds.

    The lock is never released explicitly; it expires, so a crashed worker
    cannot block later runs and a duplicate beat inside the same period is
    skipped.

    Returns:
        True if this process ran *coro_fn*.
    """
    client = client or await get_redis_client()
    name = f"{LOCK_PREFIX}:{key}"
    if not await client.set(name, _holder(), nx=True, ex=ttl):
        holder = await client.get(name)
        logger.info("Skipping %s, lock held by %s", key, holder)
        return False
    await coro_fn()
    return True


__all__ = ["LOCK_PREFIX", "close_redis_client", "get_redis_client", "run_once"]
