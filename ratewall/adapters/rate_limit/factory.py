"""Factory for creating counter store instances."""

from ratewall.adapters.rate_limit.base import AbstractCounterStore
from ratewall.adapters.rate_limit.in_memory import InMemoryCounterStore
from ratewall.adapters.rate_limit.redis_store import RedisCounterStore
from ratewall.core.config import StoreSettings
from ratewall.core.errors import ConfigurationError


def create_counter_store(
    store_settings: StoreSettings,
    *,
    key_ttl_ms: int | None = None,
) -> AbstractCounterStore:
    """Instantiate the counter store selected by ``STORE_BACKEND``.

    Args:
        store_settings: Resolved store settings.
        key_ttl_ms: Expiry applied to Redis keys on insert (ignored by the
            in-memory store, which drops emptied keys itself).

    Returns:
        AbstractCounterStore: Configured store instance.

    Raises:
        ConfigurationError: If the backend name is unknown.
    """
    backend = store_settings.store_backend.lower()

    if backend == "redis":
        return RedisCounterStore.from_url(
            store_settings.redis_url,
            connect_timeout_seconds=store_settings.redis_connect_timeout_seconds,
            socket_timeout_seconds=store_settings.redis_socket_timeout_seconds,
            key_ttl_ms=key_ttl_ms,
        )

    if backend == "memory":
        return InMemoryCounterStore()

    raise ConfigurationError(
        code="unknown_store_backend",
        message=(
            f"Unknown counter store backend: '{backend}'. Supported backends: redis, memory"
        ),
        details={"variable": "STORE_BACKEND"},
    )
