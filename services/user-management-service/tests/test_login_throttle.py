"""Tests for the failed-login throttles."""

from __future__ import annotations

import time

import fakeredis
import pytest

from user_management.security.login_throttle import SlidingWindowLoginThrottle
from user_management.security.redis_login_throttle import RedisLoginThrottle


@pytest.fixture()
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    return client


@pytest.fixture(params=["memory", "redis"])
def throttle(request, redis_client):
    if request.param == "redis":
        return RedisLoginThrottle(redis_client, max_failures=2, window_seconds=1, key_prefix="test")
    return SlidingWindowLoginThrottle(max_failures=2, window_seconds=1)


def test_blocks_after_max_failures(throttle):
    key = "login:t1:abc"
    assert not throttle.is_blocked(key)
    throttle.register_failure(key)
    assert not throttle.is_blocked(key)
    throttle.register_failure(key)
    assert throttle.is_blocked(key)
    assert not throttle.is_blocked("login:t1:other")


def test_clear_resets_failures(throttle):
    key = "login:t1:abc"
    throttle.register_failure(key)
    throttle.register_failure(key)

    throttle.clear(key)

    assert not throttle.is_blocked(key)


def test_failures_expire_with_window(throttle):
    key = "login:t1:abc"
    throttle.register_failure(key)
    throttle.register_failure(key)
    assert throttle.is_blocked(key)
    time.sleep(1.1)
    assert not throttle.is_blocked(key)


def test_redis_keys_are_prefixed_and_expire(redis_client):
    throttle = RedisLoginThrottle(redis_client, max_failures=3, window_seconds=60, key_prefix="test")

    throttle.register_failure("login:t1:abc")

    assert redis_client.exists("test:login:t1:abc")
    assert 0 < redis_client.pttl("test:login:t1:abc") <= 60_000


class ManualClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_stale_keys_are_dropped_when_map_is_full():
    clock = ManualClock()
    throttle = SlidingWindowLoginThrottle(max_failures=1, window_seconds=60, max_keys=2, clock=clock)
    throttle.register_failure("login:t1:a")
    throttle.register_failure("login:t1:b")

    clock.now += 61
    throttle.register_failure("login:t1:c")

    assert len(throttle) == 1
    assert throttle.is_blocked("login:t1:c")


def test_tracked_keys_stay_bounded_under_spraying():
    clock = ManualClock()
    throttle = SlidingWindowLoginThrottle(max_failures=1, window_seconds=60, max_keys=3, clock=clock)

    for index in range(50):
        clock.now += 0.01
        throttle.register_failure(f"login:t1:{index}")

    assert len(throttle) == 3
    assert throttle.is_blocked("login:t1:49")
    assert not throttle.is_blocked("login:t1:0")
