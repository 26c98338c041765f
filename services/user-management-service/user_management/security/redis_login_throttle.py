"""Redis-backed failed-login throttle shared by all service replicas."""

from __future__ import annotations

import time
import uuid

from redis import Redis


class RedisLoginThrottle:
    """Failure timestamps kept in one sorted set per key, trimmed to the window."""

    def __init__(
        self,
        client: Redis,
        *,
        max_failures: int,
        window_seconds: int,
        key_prefix: str = "login-failures",
    ) -> None:
        self._client = client
        self._max_failures = max_failures
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    def is_blocked(self, key: str) -> bool:
        now_ms = int(time.time() * 1000)
        redis_key = self._key(key)
        pipe = self._client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        pipe.zcard(redis_key)
        _, current = pipe.execute()
        return int(current) >= self._max_failures

    def register_failure(self, key: str) -> None:
        now_ms = int(time.time() * 1000)
        redis_key = self._key(key)
        pipe = self._client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        pipe.zadd(redis_key, {f"{now_ms}:{uuid.uuid4().hex[:8]}": now_ms})
        pipe.pexpire(redis_key, self._window_ms)
        pipe.execute()

    def clear(self, key: str) -> None:
        self._client.delete(self._key(key))
