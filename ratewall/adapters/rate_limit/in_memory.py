"""In-memory ordered counter store.

Notes:
- Per-process only: running multiple workers gives each one its own counts.
- Thread-safe: uses a lock around shared state, so the same instance can be
  shared between the event loop and test client threads.
- Keys emptied by a prune are dropped, so idle clients do not accumulate.
"""

from __future__ import annotations

import threading
from bisect import bisect_left, insort

from ratewall.adapters.rate_limit.base import AbstractCounterStore


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store keeping a sorted list of scores per key.

    Scores are kept sorted with ``bisect`` so range counts and prunes are a
    binary search plus a slice.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._scores_by_key: dict[str, list[int]] = {}

    async def add(self, key: str, timestamp_ms: int) -> None:
        with self._lock:
            insort(self._scores_by_key.setdefault(key, []), timestamp_ms)

    async def count_from(self, key: str, lower_bound_ms: int) -> int:
        with self._lock:
            scores = self._scores_by_key.get(key)
            if not scores:
                return 0
            return len(scores) - bisect_left(scores, lower_bound_ms)

    async def prune_before(self, key: str, upper_bound_ms: int) -> None:
        with self._lock:
            scores = self._scores_by_key.get(key)
            if scores is None:
                return
            cut = bisect_left(scores, upper_bound_ms)
            if cut:
                del scores[:cut]
            if not scores:
                del self._scores_by_key[key]

    def size(self, key: str) -> int:
        """Return the number of stored entries for ``key``."""

        with self._lock:
            return len(self._scores_by_key.get(key, ()))

    def keys(self) -> list[str]:
        """Return the keys currently holding at least one entry."""

        with self._lock:
            return sorted(self._scores_by_key)
