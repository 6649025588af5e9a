"""Unit tests for identity derivation and limiter selection."""

import asyncio
import logging
from unittest.mock import Mock

import pytest
from conftest import make_settings

from ratewall.core.errors import ConfigurationError
from ratewall.services.identity import (
    RequestIdentity,
    block_key,
    hash_key,
    ip_identity,
    token_identity,
)
from ratewall.services.selector import LimiterSelector, RateLimitDecision, build_limiter_selector


@pytest.mark.parametrize(
    ("address", "expected"),
    [
        ("192.168.0.7", "IP_192.168.0.7"),
        ("192.168.0.7:53412", "IP_192.168.0.7"),
        ("::1", "IP_::1"),
        ("[2001:db8::1]:443", "IP_2001:db8::1"),
        ("testclient", "IP_testclient"),
    ],
)
def test_ip_identity_strips_port(address: str, expected: str) -> None:
    assert ip_identity(RequestIdentity(remote_address=address)) == expected


def test_token_identity_is_empty_without_token() -> None:
    assert token_identity(RequestIdentity(remote_address="1.2.3.4")) == ""
    assert token_identity(RequestIdentity(remote_address="1.2.3.4", api_key="")) == ""
    assert token_identity(RequestIdentity(remote_address="1.2.3.4", api_key="abc")) == "TOKEN_abc"


def test_dimensions_never_collide() -> None:
    same_text = RequestIdentity(remote_address="abc", api_key="abc")

    assert ip_identity(same_text) != token_identity(same_text)
    assert block_key("IP_abc") == "IP_abc_block"


def test_hash_key_is_stable_and_hides_key() -> None:
    assert hash_key("TOKEN_secret") == hash_key("TOKEN_secret")
    assert "secret" not in hash_key("TOKEN_secret")
    assert len(hash_key("TOKEN_secret")) == 16


def _selector(store, clock, **rate_limit) -> LimiterSelector:
    return build_limiter_selector(make_settings(**rate_limit).rate_limit, store, clock=clock)


def _decide(selector: LimiterSelector, identity: RequestIdentity) -> RateLimitDecision:
    return asyncio.run(selector.decide(identity))


def test_builds_token_limiter_before_ip_limiter(store, clock) -> None:
    selector = _selector(store, clock, max_requests_ip=3, max_requests_token=7)

    names = [limiter.name for limiter in selector.limiters]
    capacities = [limiter.config.capacity for limiter in selector.limiters]
    assert names == ["token", "ip"]
    assert capacities == [7, 3]


def test_token_takes_precedence_over_ip(store, clock) -> None:
    selector = _selector(store, clock)

    decision = _decide(selector, RequestIdentity(remote_address="10.0.0.1", api_key="SomeToken"))

    assert decision.allowed is True
    assert decision.identity == "TOKEN_SomeToken"
    assert decision.limiter == "token"
    assert decision.current_count == 1


def test_falls_back_to_ip_without_token(store, clock) -> None:
    selector = _selector(store, clock)

    decision = _decide(selector, RequestIdentity(remote_address="10.0.0.1:5000"))

    assert decision.identity == "IP_10.0.0.1"
    assert decision.limiter == "ip"


def test_token_requests_use_only_token_configuration(store, clock) -> None:
    selector = _selector(store, clock, max_requests_ip=1, max_requests_token=4)
    with_token = RequestIdentity(remote_address="10.0.0.1", api_key="SomeToken")

    results = [_decide(selector, with_token).allowed for _ in range(5)]

    assert results == [True, True, True, True, False]


def test_token_and_ip_counts_are_independent(store, clock) -> None:
    selector = _selector(store, clock, max_requests=3)
    with_token = RequestIdentity(remote_address="10.0.0.1", api_key="SomeToken")
    without_token = RequestIdentity(remote_address="10.0.0.1")

    token_counts = [_decide(selector, with_token).current_count for _ in range(3)]
    ip_counts = [_decide(selector, without_token).current_count for _ in range(3)]

    assert token_counts == [1, 2, 3]
    assert ip_counts == [1, 2, 3]
    assert _decide(selector, with_token).allowed is False
    assert _decide(selector, without_token).allowed is False


def test_catch_all_is_used_when_no_limiter_derives_a_key(store, clock) -> None:
    selector = _selector(store, clock)
    token_only = LimiterSelector([selector.limiters[0]])

    limiter, key = token_only.select(RequestIdentity(remote_address="10.0.0.1"))

    assert limiter.name == "token"
    assert key == ""


def test_selector_requires_limiters() -> None:
    with pytest.raises(ValueError):
        LimiterSelector([])


def test_missing_configuration_fails_selector_build(store, clock) -> None:
    settings = make_settings(max_requests=None, max_requests_token=5)

    with pytest.raises(ConfigurationError) as exc_info:
        build_limiter_selector(settings.rate_limit, store, clock=clock)

    assert "MAX_REQUESTS_IP or MAX_REQUESTS" in exc_info.value.message


def test_each_rejection_is_logged_once_by_its_limiter(store, clock) -> None:
    logger = Mock(spec=logging.Logger)
    selector = build_limiter_selector(
        make_settings(max_requests=1).rate_limit, store, clock=clock, logger=logger
    )
    identity = RequestIdentity(remote_address="10.0.0.1")

    decisions = [_decide(selector, identity).allowed for _ in range(3)]

    assert decisions == [True, False, False]
    assert [c.args[0] for c in logger.warning.call_args_list] == ["rate_limit.blocked"]
    rejections = [c.args[0] for c in logger.info.call_args_list if c.args[0].startswith("rate_limit.rej")]
    assert rejections == ["rate_limit.rejected"]
