"""Limiter selection and composition.

The selector holds limiters in priority order (token before IP). The first
limiter that can derive a non-empty key governs the request; the last one
is the catch-all.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from ratewall.adapters.rate_limit.base import AbstractCounterStore
from ratewall.core.config import RateLimitSettings
from ratewall.services.identity import RequestIdentity, ip_identity, token_identity
from ratewall.services.sliding_window import SlidingWindowLimiter


@dataclass(frozen=True)
class RateLimitDecision:
    """Admission decision plus observability fields.

    Attributes:
        allowed: Whether the request may reach the downstream handler.
        identity: Identity key of the governing limiter.
        current_count: Window count reported by the governing limiter.
        limiter: Name of the governing limiter.
    """

    allowed: bool
    identity: str
    current_count: int
    limiter: str


class LimiterSelector:
    """Route each request to one limiter and return its decision.

    Args:
        limiters: Limiters in priority order; the last one must always
            derive a key.
    """

    def __init__(
        self,
        limiters: Sequence[SlidingWindowLimiter],
    ) -> None:
        if not limiters:
            raise ValueError("at least one limiter is required")

        self._limiters = tuple(limiters)

    @property
    def limiters(self) -> tuple[SlidingWindowLimiter, ...]:
        return self._limiters

    def select(self, identity: RequestIdentity) -> tuple[SlidingWindowLimiter, str]:
        """Pick the governing limiter and its key for a request."""

        for limiter in self._limiters:
            key = limiter.derive_key(identity)
            if key:
                return limiter, key

        catch_all = self._limiters[-1]
        return catch_all, catch_all.derive_key(identity)

    async def decide(self, identity: RequestIdentity) -> RateLimitDecision:
        """Make the single admission decision for a request.

        Args:
            identity: Request attributes used for key derivation.

        Returns:
            RateLimitDecision from the governing limiter.
        """

        limiter, key = self.select(identity)
        result = await limiter.allow_request(key)

        return RateLimitDecision(
            allowed=result.allowed,
            identity=key,
            current_count=result.current_count,
            limiter=limiter.name,
        )


def build_limiter_selector(
    rate_limit_settings: RateLimitSettings,
    store: AbstractCounterStore,
    *,
    clock: Callable[[], float] = time.time,
    logger: logging.Logger | None = None,
) -> LimiterSelector:
    """Build the token and IP limiters over a shared store.

    Args:
        rate_limit_settings: Resolved rate limit settings.
        store: Counter store shared by both limiters.
        clock: Time source returning UNIX time in seconds.
        logger: Diagnostics handle passed to every component.

    Returns:
        LimiterSelector checking the token limiter before the IP limiter.

    Raises:
        ConfigurationError: If a dimension's settings cannot be resolved.
    """

    log = logger or logging.getLogger(__name__)
    key_funcs = (("token", token_identity), ("ip", ip_identity))

    limiters = []
    for name, key_func in key_funcs:
        config = rate_limit_settings.limiter_config(name)
        log.info(
            "rate_limit.setup",
            extra={
                "limiter": name,
                "max_requests": config.capacity,
                "window_ms": config.window_ms,
                "block_ms": config.block_ms,
            },
        )
        limiters.append(
            SlidingWindowLimiter(
                name=name,
                config=config,
                key_func=key_func,
                store=store,
                clock=clock,
                logger=log,
            )
        )

    return LimiterSelector(limiters)
