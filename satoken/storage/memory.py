from __future__ import annotations

import math
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from satoken.logging import get_logger
from satoken.storage.base import (
    TTL_MISSING,
    TTL_NO_EXPIRY,
    StorageValue,
    match_pattern,
    validate_ttl,
    validate_value,
)


class MemoryStorage:
    """In-process expiring key-value store.

    Entries are ``(value, expires_at)`` pairs where ``expires_at`` is a reading
    of ``clock`` (monotonic seconds) or ``None`` for keys without expiry.
    Expired entries are dropped lazily when touched, or in bulk by
    ``purge_expired``. Data is lost when the process exits.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.logger = get_logger(__name__)
        self._clock = clock
        self._data: Dict[str, Tuple[StorageValue, Optional[float]]] = {}
        # RLock so compound operations can call the single-key helpers
        self._data_lock = threading.RLock()

    def _expires_at(self, ttl: int) -> Optional[float]:
        return self._clock() + ttl if ttl > 0 else None

    def _live_entry(self, key: str) -> Optional[Tuple[StorageValue, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return entry

    @staticmethod
    def _copy(value: StorageValue) -> StorageValue:
        return list(value) if isinstance(value, list) else value

    def set(self, key: str, value: StorageValue, ttl: int = 0) -> None:
        stored = self._copy(validate_value(value))
        ttl = validate_ttl(ttl)
        with self._data_lock:
            self._data[key] = (stored, self._expires_at(ttl))

    def get(self, key: str) -> Optional[StorageValue]:
        with self._data_lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            return self._copy(entry[0])

    def pop(self, key: str) -> Optional[StorageValue]:
        with self._data_lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            del self._data[key]
            return entry[0]

    def delete(self, key: str) -> None:
        with self._data_lock:
            self._data.pop(key, None)

    def exists(self, key: str) -> bool:
        with self._data_lock:
            return self._live_entry(key) is not None

    def expire(self, key: str, ttl: int) -> bool:
        ttl = validate_ttl(ttl)
        with self._data_lock:
            entry = self._live_entry(key)
            if entry is None:
                return False
            self._data[key] = (entry[0], self._expires_at(ttl))
            return True

    def ttl(self, key: str) -> int:
        with self._data_lock:
            entry = self._live_entry(key)
            if entry is None:
                return TTL_MISSING
            expires_at = entry[1]
            if expires_at is None:
                return TTL_NO_EXPIRY
            return max(0, math.ceil(expires_at - self._clock()))

    def keys(self, pattern: str) -> List[str]:
        with self._data_lock:
            return [
                key
                for key in list(self._data.keys())
                if match_pattern(pattern, key) and self._live_entry(key) is not None
            ]

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        with self._data_lock:
            expired = [
                key
                for key, (_, expires_at) in self._data.items()
                if expires_at is not None and expires_at <= now
            ]
            for key in expired:
                del self._data[key]
        if expired:
            self.logger.debug("memory_storage_purged", count=len(expired))
        return len(expired)

    def clear(self) -> None:
        """Remove all keys (useful for testing)."""
        with self._data_lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._data_lock:
            return sum(1 for key in list(self._data) if self._live_entry(key) is not None)
