"""Per-identity session bag persisted as one JSON blob.

Every device logged in under a login ID shares the same session. Each
``set`` re-reads the blob, applies the change, and writes it back, so
concurrent writers follow last-writer-wins semantics.
"""

from __future__ import annotations

import json
import time
from typing import Any, Dict, List, Optional

from satoken.logging import get_logger
from satoken.service.errors import ValidationError
from satoken.storage.base import Storage

logger = get_logger(__name__)

SESSION_KEY_LOGIN_ID = "loginId"
SESSION_KEY_DEVICE = "device"
SESSION_KEY_LOGIN_TIME = "loginTime"
SESSION_KEY_PERMISSIONS = "permissions"
SESSION_KEY_ROLES = "roles"


def session_key(prefix: str, login_id: str) -> str:
    return f"{prefix}:session:{login_id}"


class Session:
    def __init__(
        self,
        login_id: str,
        storage: Storage,
        prefix: str,
        *,
        timeout: int = 0,
        create_time: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.id = login_id
        self.storage = storage
        self.prefix = prefix
        self.timeout = timeout
        self.create_time = create_time if create_time is not None else int(time.time())
        self._data: Dict[str, Any] = dict(data or {})

    @property
    def key(self) -> str:
        return session_key(self.prefix, self.id)

    @classmethod
    def new(cls, login_id: str, storage: Storage, prefix: str, *, timeout: int = 0) -> "Session":
        """Empty session; nothing is written until the first ``set``."""
        return cls(login_id, storage, prefix, timeout=timeout)

    @classmethod
    def load(
        cls, login_id: str, storage: Storage, prefix: str, *, timeout: int = 0
    ) -> Optional["Session"]:
        """Restore a persisted session, or ``None`` when absent or unreadable."""
        raw = storage.get(session_key(prefix, login_id))
        if raw is None:
            return None
        record = cls._parse(login_id, raw)
        if record is None:
            return None
        return cls(
            login_id,
            storage,
            prefix,
            timeout=timeout,
            create_time=record.get("createTime"),
            data=record.get("data") or {},
        )

    @staticmethod
    def _parse(login_id: str, raw: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(raw, str):
            logger.warning("session_record_invalid", login_id=login_id, reason="not_a_string")
            return None
        try:
            record = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("session_record_invalid", login_id=login_id, reason="bad_json")
            return None
        if not isinstance(record, dict) or not isinstance(record.get("data", {}), dict):
            logger.warning("session_record_invalid", login_id=login_id, reason="bad_shape")
            return None
        return record

    def _refresh(self) -> None:
        raw = self.storage.get(self.key)
        if raw is None:
            return
        record = self._parse(self.id, raw)
        if record is None:
            return
        self._data = dict(record.get("data") or {})
        created = record.get("createTime")
        if isinstance(created, int):
            self.create_time = created

    def _save(self) -> None:
        blob = json.dumps(
            {"id": self.id, "createTime": self.create_time, "data": self._data},
            separators=(",", ":"),
        )
        self.storage.set(self.key, blob, self.timeout)

    def set(self, key: str, value: Any) -> None:
        try:
            json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                f"session value for {key!r} is not JSON serializable",
                detail={"key": key},
            ) from exc
        self._refresh()
        self._data[key] = value
        self._save()

    def update(self, values: Dict[str, Any]) -> None:
        """Set several entries with one read-modify-write."""
        try:
            json.dumps(values)
        except (TypeError, ValueError) as exc:
            raise ValidationError("session values are not JSON serializable") from exc
        self._refresh()
        self._data.update(values)
        self._save()

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._data

    __contains__ = has

    def delete(self, key: str) -> None:
        self._refresh()
        if key in self._data:
            del self._data[key]
            self._save()

    def keys(self) -> List[str]:
        return list(self._data.keys())

    @property
    def data(self) -> Dict[str, Any]:
        return dict(self._data)

    def destroy(self) -> None:
        self.storage.delete(self.key)
        self._data = {}
