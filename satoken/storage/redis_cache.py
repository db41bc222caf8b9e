from __future__ import annotations

from typing import Any, Callable, List, Optional, TypeVar

from redis import Redis
from redis.exceptions import RedisError, ResponseError

from satoken.logging import get_logger
from satoken.storage.base import (
    TTL_MISSING,
    StorageValue,
    decode_value,
    encode_value,
    validate_ttl,
)
from satoken.storage.errors import StorageError

logger = get_logger(__name__)

T = TypeVar("T")

_GLOB_SPECIALS = "\\*?[]^"

# Atomic get-and-delete for servers older than 6.2 (no GETDEL)
_POP_SCRIPT = """
local value = redis.call('GET', KEYS[1])
if value then
    redis.call('DEL', KEYS[1])
end
return value
"""


def _escape_glob(literal: str) -> str:
    return "".join("\\" + ch if ch in _GLOB_SPECIALS else ch for ch in literal)


class RedisStorage:
    """Storage adapter backed by a synchronous Redis client.

    Values are JSON encoded so a ``str`` and a ``list[str]`` survive the round
    trip with their variant intact. Every ``RedisError`` is re-raised as
    ``StorageError``.
    """

    DEFAULT_OPERATION_TIMEOUT = 5.0

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        *,
        socket_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        client: Optional[Redis] = None,
        scan_count: int = 500,
    ):
        self.redis_url = redis_url
        self.scan_count = scan_count
        # Pre-built clients (e.g. fakeredis in tests) must use decode_responses=True
        self.client = client or Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def _call(self, operation: str, key: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except RedisError as exc:
            logger.warning("redis_operation_failed", operation=operation, key=key, error=str(exc))
            raise StorageError(
                f"redis {operation} failed", detail={"key": key, "error": str(exc)}
            ) from exc

    def verify_connection(self) -> None:
        """Assert Redis connectivity before handing the adapter out."""
        self._call("ping", "", self.client.ping)

    def set(self, key: str, value: StorageValue, ttl: int = 0) -> None:
        payload = encode_value(value)
        ttl = validate_ttl(ttl)
        self._call("set", key, lambda: self.client.set(key, payload, ex=ttl or None))

    def get(self, key: str) -> Optional[StorageValue]:
        raw = self._call("get", key, lambda: self.client.get(key))
        if raw is None:
            return None
        return decode_value(raw)

    def pop(self, key: str) -> Optional[StorageValue]:
        def _pop() -> Any:
            try:
                return self.client.getdel(key)
            except ResponseError:
                # Server predates GETDEL; the script keeps get+delete atomic
                return self.client.eval(_POP_SCRIPT, 1, key)

        raw = self._call("pop", key, _pop)
        if raw is None:
            return None
        return decode_value(raw)

    def delete(self, key: str) -> None:
        self._call("delete", key, lambda: self.client.delete(key))

    def exists(self, key: str) -> bool:
        return bool(self._call("exists", key, lambda: self.client.exists(key)))

    def expire(self, key: str, ttl: int) -> bool:
        ttl = validate_ttl(ttl)
        if ttl == 0:
            if not self.exists(key):
                return False
            self._call("persist", key, lambda: self.client.persist(key))
            return True
        return bool(self._call("expire", key, lambda: self.client.expire(key, ttl)))

    def ttl(self, key: str) -> int:
        result = self._call("ttl", key, lambda: self.client.ttl(key))
        if result is None:
            return TTL_MISSING
        return int(result)

    def keys(self, pattern: str) -> List[str]:
        if pattern.endswith("*"):
            match = _escape_glob(pattern[:-1]) + "*"
        else:
            match = _escape_glob(pattern)
        return self._call(
            "scan",
            pattern,
            # SCAN may yield a key more than once
            lambda: list(dict.fromkeys(self.client.scan_iter(match=match, count=self.scan_count))),
        )

    def close(self) -> None:
        """Close Redis connection."""
        self.client.close()
