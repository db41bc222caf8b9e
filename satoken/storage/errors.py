from __future__ import annotations

from typing import Any, Dict, Optional


class StorageError(Exception):
    """Raised when a storage adapter cannot complete an operation."""

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class InvalidStoredValue(StorageError):
    """Raised when a value outside the ``str`` / ``list[str]`` variants is written or read."""


__all__ = ["StorageError", "InvalidStoredValue"]
