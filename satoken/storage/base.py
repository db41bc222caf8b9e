"""Storage adapter contract shared by every component.

Values are a closed set of variants: a ``str`` or a ``list[str]``. Adapters
validate values on write and on read so callers never see anything else.
TTLs are whole seconds; ``0`` means the key never expires. ``ttl()`` follows
Redis conventions: ``-1`` for a key without expiry, ``-2`` for a missing key.
"""

from __future__ import annotations

import json
from typing import List, Optional, Protocol, Union

from satoken.storage.errors import InvalidStoredValue

StorageValue = Union[str, List[str]]

TTL_NO_EXPIRY = -1
TTL_MISSING = -2


class Storage(Protocol):
    def set(self, key: str, value: StorageValue, ttl: int = 0) -> None: ...

    def get(self, key: str) -> Optional[StorageValue]: ...

    def pop(self, key: str) -> Optional[StorageValue]: ...

    def delete(self, key: str) -> None: ...

    def exists(self, key: str) -> bool: ...

    def expire(self, key: str, ttl: int) -> bool: ...

    def ttl(self, key: str) -> int: ...

    def keys(self, pattern: str) -> List[str]: ...


def validate_value(value: object) -> StorageValue:
    """Return ``value`` narrowed to a storage variant or raise ``InvalidStoredValue``."""
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        items = list(value)
        if all(isinstance(item, str) for item in items):
            return items
    raise InvalidStoredValue(
        "storage values must be str or list[str]",
        detail={"type": type(value).__name__},
    )


def validate_ttl(ttl: int) -> int:
    if isinstance(ttl, bool) or not isinstance(ttl, int):
        raise ValueError(f"ttl must be an int number of seconds, got {ttl!r}")
    if ttl < 0:
        raise ValueError("ttl must be zero (no expiry) or positive")
    return ttl


def encode_value(value: StorageValue) -> str:
    """Serialize a validated value for byte-oriented backends."""
    return json.dumps(validate_value(value), separators=(",", ":"))


def decode_value(raw: str) -> StorageValue:
    try:
        decoded = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise InvalidStoredValue("stored value is not valid JSON") from exc
    return validate_value(decoded)


def match_pattern(pattern: str, key: str) -> bool:
    """Trailing-wildcard glob: ``prefix*`` matches by prefix, anything else exactly."""
    if pattern.endswith("*"):
        return key.startswith(pattern[:-1])
    return key == pattern


__all__ = [
    "Storage",
    "StorageValue",
    "TTL_NO_EXPIRY",
    "TTL_MISSING",
    "validate_value",
    "validate_ttl",
    "encode_value",
    "decode_value",
    "match_pattern",
]
