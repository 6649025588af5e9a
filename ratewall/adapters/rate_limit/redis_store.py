"""Redis sorted-set counter store.

Each key is a sorted set whose members and scores are the event timestamps
in milliseconds:

- add           -> ZADD key ts ts (+ PEXPIRE when a key TTL is configured)
- count_from    -> ZCOUNT key ts +inf
- prune_before  -> ZREMRANGEBYSCORE key -inf (ts

Redis executes each command atomically, which is what keeps concurrent
inserts on the same key from losing updates.
"""

from __future__ import annotations

import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from ratewall.adapters.rate_limit.base import AbstractCounterStore
from ratewall.core.errors import StoreError

logger = logging.getLogger(__name__)


class RedisCounterStore(AbstractCounterStore):
    """Counter store backed by Redis sorted sets.

    Args:
        client: A ``redis.asyncio.Redis`` client. The store owns it and closes
            it in ``close()``.
        key_ttl_ms: Optional expiry refreshed on every insert so keys for
            clients that never come back are evicted by Redis.
    """

    def __init__(self, client: Redis, *, key_ttl_ms: int | None = None) -> None:
        if key_ttl_ms is not None and key_ttl_ms < 1:
            raise ValueError("key_ttl_ms must be >= 1")

        self._client = client
        self._key_ttl_ms = key_ttl_ms

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        connect_timeout_seconds: float = 5.0,
        socket_timeout_seconds: float = 5.0,
        key_ttl_ms: int | None = None,
    ) -> "RedisCounterStore":
        """Create a store with a new client for ``url``.

        The connection is established lazily on the first command.
        """

        client = Redis.from_url(
            url,
            socket_connect_timeout=connect_timeout_seconds,
            socket_timeout=socket_timeout_seconds,
            decode_responses=True,
        )
        return cls(client, key_ttl_ms=key_ttl_ms)

    async def add(self, key: str, timestamp_ms: int) -> None:
        try:
            if self._key_ttl_ms is None:
                await self._client.zadd(key, {str(timestamp_ms): timestamp_ms})
                return

            async with self._client.pipeline(transaction=True) as pipe:
                pipe.zadd(key, {str(timestamp_ms): timestamp_ms})
                pipe.pexpire(key, self._key_ttl_ms)
                await pipe.execute()
        except (RedisError, OSError) as exc:
            raise StoreError.wrap("add", key, exc) from exc

    async def count_from(self, key: str, lower_bound_ms: int) -> int:
        try:
            count = await self._client.zcount(key, lower_bound_ms, "+inf")
        except (RedisError, OSError) as exc:
            raise StoreError.wrap("count_from", key, exc) from exc
        return int(count)

    async def prune_before(self, key: str, upper_bound_ms: int) -> None:
        try:
            await self._client.zremrangebyscore(key, "-inf", f"({upper_bound_ms}")
        except (RedisError, OSError) as exc:
            raise StoreError.wrap("prune_before", key, exc) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as exc:
            logger.warning("store.ping_failed", extra={"error_type": type(exc).__name__})
            return False

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("store.closed", extra={"backend": "redis"})
