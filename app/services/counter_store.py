"""
Counter Store adapter over Redis.

Structured values are stored as JSON strings; counters are plain integers written
by INCR/DECR. Every Redis failure (refused connection, socket timeout) is raised
as StoreUnavailable so callers never mistake an outage for "not found".
"""
import json
import logging
from typing import Any, List, Optional

import redis

from app.core import config
from app.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class CounterStore:
    def __init__(self, client: redis.Redis):
        self.client = client

    def _call(self, op: str, func, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except redis.exceptions.RedisError as e:
            logger.error("[Store] %s failed: %s", op, e)
            raise StoreUnavailable("Counter store unavailable") from e

    def get(self, key: str) -> Any:
        raw = self._call("get", self.client.get, key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self._call("set", self.client.set, key, json.dumps(value), ex=ttl)

    def set_if_absent(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """SET NX. True only for the caller that created the key."""
        return bool(self._call("set_if_absent", self.client.set, key, json.dumps(value), ex=ttl, nx=True))

    def incr(self, key: str) -> int:
        return int(self._call("incr", self.client.incr, key))

    def decr(self, key: str) -> int:
        return int(self._call("decr", self.client.decr, key))

    def expire(self, key: str, ttl: int) -> bool:
        return bool(self._call("expire", self.client.expire, key, ttl))

    def ttl(self, key: str) -> int:
        """Seconds until expiry, or -1 when the key has no TTL or does not exist."""
        remaining = int(self._call("ttl", self.client.ttl, key))
        return remaining if remaining >= 0 else -1

    def list_append(self, key: str, value: str) -> int:
        return int(self._call("list_append", self.client.rpush, key, value))

    def list_range(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        return list(self._call("list_range", self.client.lrange, key, start, end))

    def list_remove(self, key: str, value: str) -> int:
        return int(self._call("list_remove", self.client.lrem, key, 0, value))

    def delete(self, *keys: str) -> bool:
        if not keys:
            return False
        return bool(self._call("delete", self.client.delete, *keys))


_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    global _client
    if _client is None:
        _client = redis.Redis.from_url(
            config.REDIS_URL,
            decode_responses=True,
            socket_timeout=config.REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=config.REDIS_SOCKET_TIMEOUT,
        )
    return _client


def get_store() -> CounterStore:
    """FastAPI dependency, overridden in tests with a fakeredis-backed store."""
    return CounterStore(get_redis_client())
