"""Sliding-window rate limiter with a block period.

Per identity key the limiter behaves like a small state machine that is
re-derived from the counter store on every call:

- Open: fewer than ``capacity`` events in the trailing window; admit and
  record the event.
- Exhausted: ``capacity`` events already in the window; record a block
  marker under ``<key>_block`` and reject.
- Blocked: a block marker younger than ``block_ms`` exists; reject without
  looking at the window.

Block markers live in their own time-scored series so the same prune/count
primitives that slide the window also expire the block. The limiter itself
holds no per-key state.

Every store failure rejects the request (fail-closed) and is logged; none
is raised to the caller.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from ratewall.adapters.rate_limit.base import AbstractCounterStore
from ratewall.core.errors import StoreError
from ratewall.services.identity import RequestIdentity, block_key, hash_key

KeyFunc = Callable[[RequestIdentity], str]


@dataclass(frozen=True)
class LimiterConfig:
    """Immutable limiter configuration.

    Attributes:
        capacity: Maximum admitted events per window.
        window_ms: Sliding window length in milliseconds.
        block_ms: Block period length in milliseconds.
    """

    capacity: int
    window_ms: int
    block_ms: int

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError("capacity must be >= 1")
        if self.window_ms < 1:
            raise ValueError("window_ms must be >= 1")
        if self.block_ms < 1:
            raise ValueError("block_ms must be >= 1")

    @classmethod
    def from_seconds(
        cls, *, capacity: int, window_seconds: int, block_seconds: int
    ) -> "LimiterConfig":
        return cls(
            capacity=capacity,
            window_ms=window_seconds * 1000,
            block_ms=block_seconds * 1000,
        )


@dataclass(frozen=True)
class LimitResult:
    """Outcome of ``SlidingWindowLimiter.allow_request``.

    Attributes:
        allowed: Whether the request may proceed.
        current_count: Events in the window as seen by this call (including
            the admitted one), or the limiter's last observed count when the
            call stopped before counting.
    """

    allowed: bool
    current_count: int


class SlidingWindowLimiter:
    """Rate limiter for one identity dimension (IP or token).

    Args:
        name: Dimension label used in logs (e.g. ``"ip"``).
        config: Capacity, window and block durations.
        key_func: Derives this dimension's identity key from a request.
        store: Shared ordered counter store.
        clock: Time source returning UNIX time in seconds.
        logger: Diagnostics handle; defaults to this module's logger.
    """

    def __init__(
        self,
        *,
        name: str,
        config: LimiterConfig,
        key_func: KeyFunc,
        store: AbstractCounterStore,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self.name = name
        self.config = config
        self.key_func = key_func
        self._store = store
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        # Reporting only; decisions never read it.
        self.last_count = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"SlidingWindowLimiter(name={self.name!r}, capacity={self.config.capacity}, "
            f"window_ms={self.config.window_ms}, block_ms={self.config.block_ms})"
        )

    def derive_key(self, identity: RequestIdentity) -> str:
        return self.key_func(identity)

    def _now_ms(self) -> int:
        return round(self._clock() * 1000)

    def _log_store_error(self, exc: StoreError, key: str) -> None:
        self._logger.error(
            "rate_limit.store_error",
            extra={
                "limiter": self.name,
                "operation": exc.operation,
                "key_hash": hash_key(key),
                "error_message": exc.message,
            },
        )

    async def is_blocked(self, marker_key: str, now_ms: int) -> bool:
        """Check whether a block marker is active for ``marker_key``.

        Expired markers are pruned first. Store failures count as blocked.

        Args:
            marker_key: Block-marker series key (identity key + ``_block``).
            now_ms: Current time in epoch milliseconds.

        Returns:
            True if the identity is blocked or the store could not answer.
        """

        since = now_ms - self.config.block_ms
        try:
            await self._store.prune_before(marker_key, since)
            markers = await self._store.count_from(marker_key, since)
        except StoreError as exc:
            self._log_store_error(exc, marker_key)
            return True
        return markers > 0

    async def allow_request(self, key: str) -> LimitResult:
        """Decide whether one more request for ``key`` is admitted.

        Admitted requests are recorded in the window. The request that finds
        the window full records a block marker; requests rejected while a
        block is active record nothing, so they never extend it.

        Args:
            key: Identity key produced by ``key_func``.

        Returns:
            LimitResult with the decision and the observed window count.
        """

        now_ms = self._now_ms()
        marker_key = block_key(key)

        if await self.is_blocked(marker_key, now_ms):
            self._logger.info(
                "rate_limit.rejected",
                extra={"limiter": self.name, "key_hash": hash_key(key), "reason": "blocked"},
            )
            return LimitResult(allowed=False, current_count=self.last_count)

        window_start = now_ms - self.config.window_ms
        try:
            await self._store.prune_before(key, window_start)
            count = await self._store.count_from(key, window_start)
        except StoreError as exc:
            self._log_store_error(exc, key)
            return LimitResult(allowed=False, current_count=self.last_count)

        self.last_count = count

        if count >= self.config.capacity:
            try:
                await self._store.add(marker_key, now_ms)
            except StoreError as exc:
                self._log_store_error(exc, marker_key)
            else:
                self._logger.warning(
                    "rate_limit.blocked",
                    extra={
                        "limiter": self.name,
                        "key_hash": hash_key(key),
                        "count": count,
                        "limit": self.config.capacity,
                        "block_ms": self.config.block_ms,
                    },
                )
            return LimitResult(allowed=False, current_count=count)

        try:
            await self._store.add(key, now_ms)
        except StoreError as exc:
            self._log_store_error(exc, key)
            return LimitResult(allowed=False, current_count=count)

        count += 1
        self.last_count = count
        self._logger.debug(
            "rate_limit.allowed",
            extra={
                "limiter": self.name,
                "key_hash": hash_key(key),
                "count": count,
                "limit": self.config.capacity,
                "window_ms": self.config.window_ms,
            },
        )
        return LimitResult(allowed=True, current_count=count)
