"""Redis-backed sliding-window log store.

Each client key maps to a sorted set scored by request time (epoch ms). The
evict and record steps, and optionally the count, are sent as one MULTI/EXEC
pipeline so concurrent callers on the same key never interleave them.
"""

from __future__ import annotations

import asyncio
import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from sliding_limiter.adapters.rate_limit.base import WindowStore
from sliding_limiter.core.errors import StoreUnavailableAppError

logger = logging.getLogger(__name__)

_STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class RedisWindowStore(WindowStore):
    """Distributed window store implemented with Redis sorted sets.

    Keys expire after one window of inactivity, so Redis reclaims the log of
    a client that stops sending requests.
    """

    def __init__(self, client: Redis, *, key_prefix: str = "rate") -> None:
        self._client = client
        self._key_prefix = key_prefix

    def _redis_key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    def _unavailable(self, operation: str, exc: BaseException) -> StoreUnavailableAppError:
        logger.warning(
            "window_store.unavailable",
            extra={
                "backend": "redis",
                "operation": operation,
                "error_type": type(exc).__name__,
            },
        )
        return StoreUnavailableAppError(
            code="store_unavailable",
            message="Rate limit store is unavailable",
            details={"backend": "redis", "operation": operation},
        )

    async def _write(self, key: str, cutoff: int, score: int, member: str, *, with_count: bool) -> list:
        redis_key = self._redis_key(key)
        ttl_ms = max(score - cutoff, 1)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                # "(" makes the bound exclusive: an entry scored exactly at cutoff survives
                pipe.zremrangebyscore(redis_key, "-inf", f"({cutoff}")
                pipe.zadd(redis_key, {member: score})
                if with_count:
                    pipe.zcard(redis_key)
                pipe.pexpire(redis_key, ttl_ms)
                return await pipe.execute()
        except _STORE_ERRORS as exc:
            raise self._unavailable("evict_and_record", exc) from exc

    async def evict_and_record(self, key: str, cutoff: int, score: int, member: str) -> None:
        await self._write(key, cutoff, score, member, with_count=False)

    async def evict_record_and_count(self, key: str, cutoff: int, score: int, member: str) -> int:
        _, _, count, _ = await self._write(key, cutoff, score, member, with_count=True)
        return int(count)

    async def count(self, key: str) -> int:
        try:
            return int(await self._client.zcard(self._redis_key(key)))
        except _STORE_ERRORS as exc:
            raise self._unavailable("count", exc) from exc

    async def reset(self, key: str) -> None:
        try:
            await self._client.delete(self._redis_key(key))
        except _STORE_ERRORS as exc:
            raise self._unavailable("reset", exc) from exc

    async def close(self) -> None:
        await self._client.aclose()
