"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any ratewall import so that modules
building settings at import time (``ratewall.main``) see a complete,
Redis-free configuration.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("MAX_REQUESTS", "10")
os.environ.setdefault("WINDOW_SECONDS", "10")
os.environ.setdefault("BLOCK_SECONDS", "10")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Any  # noqa: E402
from unittest.mock import Mock  # noqa: E402

import pytest  # noqa: E402

from ratewall.adapters.rate_limit.in_memory import InMemoryCounterStore  # noqa: E402
from ratewall.core.config import RateLimitSettings, Settings, StoreSettings  # noqa: E402
from ratewall.core.errors import StoreError  # noqa: E402

_RATE_LIMIT_VARS = (
    "MAX_REQUESTS_IP",
    "MAX_REQUESTS_TOKEN",
    "WINDOW_SECONDS_IP",
    "WINDOW_SECONDS_TOKEN",
    "BLOCK_SECONDS_IP",
    "BLOCK_SECONDS_TOKEN",
)


def make_settings(**rate_limit: Any) -> Settings:
    """Build settings with an in-memory store and the given rate limits."""

    values: dict[str, Any] = {"max_requests": 10, "window_seconds": 10, "block_seconds": 10}
    values.update(rate_limit)
    return Settings(
        store=StoreSettings(store_backend="memory"),
        rate_limit=RateLimitSettings(**values),
    )


class FailingStore(InMemoryCounterStore):
    """In-memory store that raises StoreError for selected operations."""

    def __init__(self, *fail_on: str) -> None:
        super().__init__()
        self.fail_on = set(fail_on)

    def _maybe_fail(self, operation: str, key: str) -> None:
        if operation in self.fail_on:
            raise StoreError.wrap(operation, key, ConnectionError("store down"))

    async def add(self, key: str, timestamp_ms: int) -> None:
        self._maybe_fail("add", key)
        await super().add(key, timestamp_ms)

    async def count_from(self, key: str, lower_bound_ms: int) -> int:
        self._maybe_fail("count_from", key)
        return await super().count_from(key, lower_bound_ms)

    async def prune_before(self, key: str, upper_bound_ms: int) -> None:
        self._maybe_fail("prune_before", key)
        await super().prune_before(key, upper_bound_ms)


@pytest.fixture(autouse=True)
def _isolate_rate_limit_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _RATE_LIMIT_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=1000.0)


@pytest.fixture
def store() -> InMemoryCounterStore:
    return InMemoryCounterStore()
