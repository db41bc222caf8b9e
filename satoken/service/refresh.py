"""Access/refresh token pairs issued alongside (not inside) the login tokens.

Refresh tokens are long lived and are not rotated: refreshing mints a new
access token and returns it with the same refresh token until that token is
revoked or expires.
"""

from __future__ import annotations

import time
from typing import Optional

from pydantic import BaseModel, ValidationError as PydanticValidationError

from satoken.config import Settings
from satoken.logging import get_logger
from satoken.service.errors import InvalidRefreshTokenError, NotLoginError
from satoken.service.token import TokenGenerator
from satoken.storage.base import Storage

logger = get_logger(__name__)


class RefreshTokenInfo(BaseModel):
    access_token: str
    refresh_token: str
    login_id: str
    device: str
    create_time: int
    # Unix seconds when the current access token expires (0 = never)
    expire_time: int
    # Unix seconds when the refresh token expires (0 = never)
    refresh_expire_time: int = 0


class StoredAccessToken(BaseModel):
    login_id: str
    device: str
    refresh_token: str


class RefreshTokenManager:
    def __init__(
        self,
        storage: Storage,
        prefix: str,
        settings: Settings,
        *,
        generator: Optional[TokenGenerator] = None,
    ) -> None:
        self.storage = storage
        self.prefix = prefix
        self.settings = settings
        self.generator = generator or TokenGenerator(settings)

    def _refresh_key(self, refresh_token: str) -> str:
        return f"{self.prefix}:refresh:{refresh_token}"

    def _access_key(self, access_token: str) -> str:
        return f"{self.prefix}:access:{access_token}"

    @staticmethod
    def _expiry(now: int, ttl: int) -> int:
        return now + ttl if ttl > 0 else 0

    def _issue_access_token(self, login_id: str, device: str, refresh_token: str) -> tuple[str, int]:
        now = int(time.time())
        access_token = self.generator.generate(login_id, device)
        record = StoredAccessToken(login_id=login_id, device=device, refresh_token=refresh_token)
        ttl = self.settings.refresh_access_token_timeout
        self.storage.set(self._access_key(access_token), record.model_dump_json(), ttl)
        return access_token, self._expiry(now, ttl)

    def _save(self, info: RefreshTokenInfo) -> None:
        ttl = self.settings.refresh_token_timeout
        if info.refresh_expire_time:
            # Keep the absolute expiry set at issue time
            ttl = max(1, info.refresh_expire_time - int(time.time()))
        self.storage.set(self._refresh_key(info.refresh_token), info.model_dump_json(), ttl)

    def generate_token_pair(self, login_id: str, device: str) -> RefreshTokenInfo:
        now = int(time.time())
        refresh_token = self.generator.generate(login_id, device)
        access_token, expire_time = self._issue_access_token(login_id, device, refresh_token)
        info = RefreshTokenInfo(
            access_token=access_token,
            refresh_token=refresh_token,
            login_id=login_id,
            device=device,
            create_time=now,
            expire_time=expire_time,
            refresh_expire_time=self._expiry(now, self.settings.refresh_token_timeout),
        )
        self._save(info)
        logger.info("refresh_token_issued", login_id=login_id, device=device)
        return info

    def get_refresh_token_info(self, refresh_token: str) -> RefreshTokenInfo:
        if not refresh_token:
            raise InvalidRefreshTokenError("refresh token is required")
        raw = self.storage.get(self._refresh_key(refresh_token))
        if not isinstance(raw, str):
            raise InvalidRefreshTokenError("refresh token is invalid or expired")
        try:
            return RefreshTokenInfo.model_validate_json(raw)
        except PydanticValidationError as exc:
            logger.warning("refresh_token_record_invalid", error=str(exc))
            raise InvalidRefreshTokenError("refresh token is invalid or expired") from exc

    def refresh_access_token(self, refresh_token: str) -> RefreshTokenInfo:
        info = self.get_refresh_token_info(refresh_token)
        self.storage.delete(self._access_key(info.access_token))
        access_token, expire_time = self._issue_access_token(
            info.login_id, info.device, info.refresh_token
        )
        info = info.model_copy(update={"access_token": access_token, "expire_time": expire_time})
        self._save(info)
        logger.info("access_token_refreshed", login_id=info.login_id, device=info.device)
        return info

    def validate_access_token(self, access_token: str) -> str:
        """Return the login ID an access token from this manager belongs to."""
        raw = self.storage.get(self._access_key(access_token)) if access_token else None
        if not isinstance(raw, str):
            raise NotLoginError("access token is invalid or expired")
        try:
            return StoredAccessToken.model_validate_json(raw).login_id
        except PydanticValidationError as exc:
            raise NotLoginError("access token is invalid or expired") from exc

    def revoke_refresh_token(self, refresh_token: str) -> None:
        """Delete the refresh record; access tokens already issued run out on their own."""
        if not refresh_token:
            return
        self.storage.delete(self._refresh_key(refresh_token))
        logger.info("refresh_token_revoked", refresh_token=refresh_token)
