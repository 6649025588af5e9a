"""Ordered counter store interface.

The limiter depends on this abstraction (not a concrete client) so the
backing store can be Redis in production and an in-process structure in
tests, with no change to the decision logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractCounterStore(ABC):
    """Time-ordered event counter keyed by string.

    Each key holds a multiset of integer scores (millisecond timestamps).
    Implementations must raise ``StoreError`` for any backend failure.
    """

    @abstractmethod
    async def add(self, key: str, timestamp_ms: int) -> None:
        """Record one event scored by ``timestamp_ms`` under ``key``.

        Duplicate timestamps are allowed; a backend may store them as a
        single entry, which slightly under-counts bursts within one millisecond.
        Concurrent calls on the same key must not lose updates.

        Raises:
            StoreError: If the store cannot complete the insert.
        """
        raise NotImplementedError

    @abstractmethod
    async def count_from(self, key: str, lower_bound_ms: int) -> int:
        """Count entries under ``key`` scored at or after ``lower_bound_ms``.

        Raises:
            StoreError: If the store cannot complete the count.
        """
        raise NotImplementedError

    @abstractmethod
    async def prune_before(self, key: str, upper_bound_ms: int) -> None:
        """Remove entries under ``key`` scored strictly before ``upper_bound_ms``.

        Pruning again with the same or a smaller bound is a no-op.

        Raises:
            StoreError: If the store cannot complete the removal.
        """
        raise NotImplementedError

    async def ping(self) -> bool:
        """Return True when the store is reachable. Never raises."""
        return True

    async def close(self) -> None:
        """Release resources held by the store."""
        return None
