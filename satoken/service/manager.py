"""Root authentication manager.

Each (login ID, device) pair moves between LoggedOut and LoggedIn. Two
mappings back a login::

    <prefix>:token:<token>              -> login ID
    <prefix>:account:<login ID>:<device> -> token

Both are written with the configured timeout. They are separate writes, so a
crash between them can leave one dangling until it expires.
"""

from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Iterable, List, Optional, Union

from satoken.config import Settings
from satoken.logging import get_logger
from satoken.service.errors import (
    AccountDisabledError,
    InvalidTokenDataError,
    NotLoginError,
    PermissionDeniedError,
    RoleDeniedError,
    TokenNotFoundError,
    ValidationError,
)
from satoken.service.nonce import NonceManager
from satoken.service.oauth2 import OAuth2Server
from satoken.service.refresh import RefreshTokenInfo, RefreshTokenManager
from satoken.service.session import (
    SESSION_KEY_DEVICE,
    SESSION_KEY_LOGIN_ID,
    SESSION_KEY_LOGIN_TIME,
    SESSION_KEY_PERMISSIONS,
    SESSION_KEY_ROLES,
    Session,
    session_key,
)
from satoken.service.token import TokenGenerator
from satoken.storage.base import Storage
from satoken.storage.errors import InvalidStoredValue

logger = get_logger(__name__)

DEFAULT_DEVICE = "default"
DISABLE_VALUE = "1"
PERMISSION_WILDCARD = "*"
PERMISSION_SEPARATOR = ":"


@dataclass(frozen=True)
class TokenInfo:
    login_id: str
    device: str
    create_time: int
    active_time: int
    tag: Optional[str] = None


def _to_string_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, str)]


class Manager:
    def __init__(self, storage: Storage, settings: Optional[Settings] = None) -> None:
        self._storage = storage
        self._settings = settings or Settings()
        self.prefix = self._settings.key_prefix
        self.generator = TokenGenerator(self._settings)
        self.nonce_manager = NonceManager(storage, self.prefix, self._settings.nonce_timeout)
        self.refresh_manager = RefreshTokenManager(
            storage, self.prefix, self._settings, generator=self.generator
        )
        self._oauth2_server = OAuth2Server(storage, self.prefix, self._settings)
        self._renew_pool = ThreadPoolExecutor(
            max_workers=self._settings.renew_workers, thread_name_prefix="satoken-renew"
        )

    # Accessors

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def storage(self) -> Storage:
        return self._storage

    @property
    def oauth2_server(self) -> OAuth2Server:
        return self._oauth2_server

    def close(self) -> None:
        """Stop the renewal pool; pending renewals are abandoned."""
        self._renew_pool.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "Manager":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # Keys

    def _token_key(self, token: str) -> str:
        return f"{self.prefix}:token:{token}"

    def _account_key(self, login_id: str, device: str) -> str:
        return f"{self.prefix}:account:{login_id}:{device}"

    def _account_pattern(self, login_id: str) -> str:
        return f"{self.prefix}:account:{login_id}:*"

    def _disable_key(self, login_id: str) -> str:
        return f"{self.prefix}:disable:{login_id}"

    @staticmethod
    def _login_id(login_id: Any) -> str:
        value = "" if login_id is None else str(login_id)
        if not value:
            raise ValidationError("login_id is required")
        return value

    @staticmethod
    def _device(device: Optional[str]) -> str:
        if not device:
            return DEFAULT_DEVICE
        if PERMISSION_SEPARATOR in device:
            raise ValidationError(
                "device name must not contain ':'", detail={"device": device}
            )
        return device

    def _read_string(self, key: str) -> Optional[str]:
        try:
            value = self._storage.get(key)
        except InvalidStoredValue as exc:
            raise InvalidTokenDataError(
                "stored token data is unreadable", detail={"key": key}
            ) from exc
        if value is None:
            return None
        if not isinstance(value, str):
            raise InvalidTokenDataError("stored token data has an unexpected type", detail={"key": key})
        return value

    # Login / logout

    def login(self, login_id: Any, device: Optional[str] = None) -> str:
        login_id = self._login_id(login_id)
        device = self._device(device)
        if self.is_disable(login_id):
            logger.info("login_rejected_disabled", login_id=login_id, device=device)
            raise AccountDisabledError("account is disabled", detail={"login_id": login_id})

        if not self._settings.is_concurrent:
            self._kickout(login_id, device)

        token = self.generator.generate(login_id, device)
        self._write_login(login_id, token, device)

        session = self.get_session(login_id)
        session.update(
            {
                SESSION_KEY_LOGIN_ID: login_id,
                SESSION_KEY_DEVICE: device,
                SESSION_KEY_LOGIN_TIME: int(time.time()),
            }
        )
        logger.info("login", login_id=login_id, device=device)
        return token

    def login_by_token(self, login_id: Any, token: str, device: Optional[str] = None) -> None:
        """Bind a caller-supplied token to ``login_id``, e.g. for seamless re-login."""
        login_id = self._login_id(login_id)
        device = self._device(device)
        if not token:
            raise ValidationError("token is required")
        self._write_login(login_id, token, device)
        logger.info("login_by_token", login_id=login_id, device=device)

    def _write_login(self, login_id: str, token: str, device: str) -> None:
        timeout = self._settings.timeout
        self._storage.set(self._token_key(token), login_id, timeout)
        self._storage.set(self._account_key(login_id, device), token, timeout)

    def logout(self, login_id: Any, device: Optional[str] = None) -> None:
        login_id = self._login_id(login_id)
        device = self._device(device)
        account_key = self._account_key(login_id, device)
        token = self._storage.get(account_key)
        if not isinstance(token, str):
            return
        self._storage.delete(self._token_key(token))
        self._storage.delete(account_key)
        logger.info("logout", login_id=login_id, device=device)

    def logout_by_token(self, token: str) -> None:
        if not token:
            return
        self._storage.delete(self._token_key(token))
        logger.info("logout_by_token")

    def kickout(self, login_id: Any, device: Optional[str] = None) -> None:
        """Invalidate the token of one device; its account entry expires on its own."""
        self._kickout(self._login_id(login_id), self._device(device))

    def _kickout(self, login_id: str, device: str) -> None:
        token = self._storage.get(self._account_key(login_id, device))
        if not isinstance(token, str):
            return
        self._storage.delete(self._token_key(token))
        logger.info("kickout", login_id=login_id, device=device)

    # Token validation

    def is_login(self, token: str) -> bool:
        if not token:
            return False
        token_key = self._token_key(token)
        if not self._storage.exists(token_key):
            return False
        if self._settings.auto_renew and self._settings.timeout > 0:
            self._schedule_renew(token_key)
        return True

    def _schedule_renew(self, token_key: str) -> None:
        try:
            future = self._renew_pool.submit(self._renew, token_key)
        except RuntimeError:
            # Pool already shut down
            logger.debug("token_renew_skipped", reason="manager_closed")
            return
        future.add_done_callback(self._renew_done)

    def _renew(self, token_key: str) -> None:
        """Extend the token and the session it belongs to by one timeout."""
        timeout = self._settings.timeout
        if not self._storage.expire(token_key, timeout):
            return
        login_id = self._storage.get(token_key)
        if isinstance(login_id, str):
            self._storage.expire(session_key(self.prefix, login_id), timeout)

    @staticmethod
    def _renew_done(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.debug("token_renew_failed", error=str(exc))

    def check_login(self, token: str) -> None:
        if not self.is_login(token):
            raise NotLoginError("not logged in")

    def get_login_id(self, token: str) -> str:
        if not self.is_login(token):
            raise NotLoginError("not logged in")
        return self.get_login_id_not_check(token)

    def get_login_id_not_check(self, token: str) -> str:
        login_id = self._read_string(self._token_key(token)) if token else None
        if login_id is None:
            raise TokenNotFoundError("token not found")
        return login_id

    def get_token_value(self, login_id: Any, device: Optional[str] = None) -> str:
        login_id = self._login_id(login_id)
        device = self._device(device)
        token = self._read_string(self._account_key(login_id, device))
        if token is None:
            raise TokenNotFoundError(
                f"token not found for login id: {login_id}",
                detail={"login_id": login_id, "device": device},
            )
        return token

    def get_token_info(self, token: str) -> TokenInfo:
        login_id = self.get_login_id_not_check(token)
        device = DEFAULT_DEVICE
        for key in self._account_keys(login_id):
            if self._storage.get(key) == token:
                device = key.rsplit(PERMISSION_SEPARATOR, 1)[-1]
                break
        session = Session.load(login_id, self._storage, self.prefix, timeout=self._settings.timeout)
        create_time = 0
        if session is not None:
            login_time = session.get(SESSION_KEY_LOGIN_TIME)
            if isinstance(login_time, int):
                create_time = login_time
        return TokenInfo(
            login_id=login_id, device=device, create_time=create_time, active_time=create_time
        )

    # Account disable

    def disable(self, login_id: Any, duration: Union[int, timedelta]) -> None:
        """Ban ``login_id``; a zero or negative duration bans permanently."""
        login_id = self._login_id(login_id)
        if isinstance(duration, timedelta):
            seconds = int(duration.total_seconds())
        else:
            seconds = int(duration)
        self._storage.set(self._disable_key(login_id), DISABLE_VALUE, max(seconds, 0))
        logger.info("account_disabled", login_id=login_id, duration=max(seconds, 0))

    def untie(self, login_id: Any) -> None:
        login_id = self._login_id(login_id)
        self._storage.delete(self._disable_key(login_id))
        logger.info("account_untied", login_id=login_id)

    def is_disable(self, login_id: Any) -> bool:
        return self._storage.exists(self._disable_key(self._login_id(login_id)))

    def get_disable_time(self, login_id: Any) -> int:
        """Seconds left on the ban; -1 for a permanent ban, -2 when not banned."""
        return self._storage.ttl(self._disable_key(self._login_id(login_id)))

    # Sessions

    def get_session(self, login_id: Any) -> Session:
        login_id = self._login_id(login_id)
        timeout = self._settings.timeout
        session = Session.load(login_id, self._storage, self.prefix, timeout=timeout)
        if session is None:
            session = Session.new(login_id, self._storage, self.prefix, timeout=timeout)
        return session

    def get_session_by_token(self, token: str) -> Session:
        return self.get_session(self.get_login_id(token))

    def delete_session(self, login_id: Any) -> None:
        self.get_session(login_id).destroy()

    # Permissions

    def set_permissions(self, login_id: Any, permissions: Iterable[str]) -> None:
        self.get_session(login_id).set(SESSION_KEY_PERMISSIONS, list(permissions))

    def get_permissions(self, login_id: Any) -> List[str]:
        return _to_string_list(self.get_session(login_id).get(SESSION_KEY_PERMISSIONS))

    def has_permission(self, login_id: Any, permission: str) -> bool:
        return any(self.match_permission(p, permission) for p in self.get_permissions(login_id))

    def has_permissions_and(self, login_id: Any, permissions: Iterable[str]) -> bool:
        owned = self.get_permissions(login_id)
        return all(
            any(self.match_permission(p, wanted) for p in owned) for wanted in permissions
        )

    def has_permissions_or(self, login_id: Any, permissions: Iterable[str]) -> bool:
        owned = self.get_permissions(login_id)
        return any(
            any(self.match_permission(p, wanted) for p in owned) for wanted in permissions
        )

    def check_permission(self, login_id: Any, permission: str) -> None:
        if not self.has_permission(login_id, permission):
            raise PermissionDeniedError(
                f"missing permission: {permission}", detail={"permission": permission}
            )

    def check_permissions_and(self, login_id: Any, permissions: Iterable[str]) -> None:
        permissions = list(permissions)
        if not self.has_permissions_and(login_id, permissions):
            raise PermissionDeniedError(
                "missing required permissions", detail={"permissions": permissions}
            )

    def check_permissions_or(self, login_id: Any, permissions: Iterable[str]) -> None:
        permissions = list(permissions)
        if not self.has_permissions_or(login_id, permissions):
            raise PermissionDeniedError(
                "none of the permissions is granted", detail={"permissions": permissions}
            )

    @staticmethod
    def match_permission(pattern: str, permission: str) -> bool:
        """Match ``permission`` against a granted ``pattern``.

        ``*`` grants everything, ``user:*`` grants every permission starting
        with ``user:``, and ``user:*:view`` matches one colon segment per ``*``
        with the same number of segments on both sides.
        """
        if pattern == PERMISSION_WILDCARD or pattern == permission:
            return True
        if pattern.endswith(PERMISSION_SEPARATOR + PERMISSION_WILDCARD):
            return permission.startswith(pattern[:-1])
        if PERMISSION_WILDCARD in pattern:
            parts = pattern.split(PERMISSION_SEPARATOR)
            perm_parts = permission.split(PERMISSION_SEPARATOR)
            if len(parts) != len(perm_parts):
                return False
            return all(
                part == PERMISSION_WILDCARD or part == perm_part
                for part, perm_part in zip(parts, perm_parts)
            )
        return False

    # Roles

    def set_roles(self, login_id: Any, roles: Iterable[str]) -> None:
        self.get_session(login_id).set(SESSION_KEY_ROLES, list(roles))

    def get_roles(self, login_id: Any) -> List[str]:
        return _to_string_list(self.get_session(login_id).get(SESSION_KEY_ROLES))

    def has_role(self, login_id: Any, role: str) -> bool:
        return role in self.get_roles(login_id)

    def has_roles_and(self, login_id: Any, roles: Iterable[str]) -> bool:
        owned = set(self.get_roles(login_id))
        return all(role in owned for role in roles)

    def has_roles_or(self, login_id: Any, roles: Iterable[str]) -> bool:
        owned = set(self.get_roles(login_id))
        return any(role in owned for role in roles)

    def check_role(self, login_id: Any, role: str) -> None:
        if not self.has_role(login_id, role):
            raise RoleDeniedError(f"missing role: {role}", detail={"role": role})

    def check_roles_and(self, login_id: Any, roles: Iterable[str]) -> None:
        roles = list(roles)
        if not self.has_roles_and(login_id, roles):
            raise RoleDeniedError("missing required roles", detail={"roles": roles})

    def check_roles_or(self, login_id: Any, roles: Iterable[str]) -> None:
        roles = list(roles)
        if not self.has_roles_or(login_id, roles):
            raise RoleDeniedError("none of the roles is granted", detail={"roles": roles})

    # Enumeration

    def _account_keys(self, login_id: str) -> List[str]:
        head = f"{self.prefix}:account:{login_id}:"
        # Skip keys of other identities whose login ID extends this one with ':'
        return [
            key
            for key in self._storage.keys(self._account_pattern(login_id))
            if key.startswith(head) and PERMISSION_SEPARATOR not in key[len(head):]
        ]

    def get_token_value_list_by_login_id(self, login_id: Any) -> List[str]:
        login_id = self._login_id(login_id)
        tokens: List[str] = []
        for key in self._account_keys(login_id):
            value = self._storage.get(key)
            if isinstance(value, str):
                tokens.append(value)
        return tokens

    def get_session_count_by_login_id(self, login_id: Any) -> int:
        return len(self.get_token_value_list_by_login_id(login_id))

    # Security features

    def generate_nonce(self) -> str:
        return self.nonce_manager.generate()

    def verify_nonce(self, nonce: str) -> bool:
        return self.nonce_manager.verify(nonce)

    def login_with_refresh_token(
        self, login_id: Any, device: Optional[str] = None
    ) -> RefreshTokenInfo:
        login_id = self._login_id(login_id)
        device = self._device(device)
        if self.is_disable(login_id):
            raise AccountDisabledError("account is disabled", detail={"login_id": login_id})
        return self.refresh_manager.generate_token_pair(login_id, device)

    def refresh_access_token(self, refresh_token: str) -> RefreshTokenInfo:
        return self.refresh_manager.refresh_access_token(refresh_token)

    def revoke_refresh_token(self, refresh_token: str) -> None:
        self.refresh_manager.revoke_refresh_token(refresh_token)
