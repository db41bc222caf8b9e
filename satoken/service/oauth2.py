"""OAuth2 authorization-code server.

Lifecycle per authorization attempt::

    Requested -> CodeIssued -> Exchanged (active) -> Refreshed | Revoked | Expired

Codes, access tokens and refresh tokens live in their own key namespace,
independent of the login tokens. Codes and refresh tokens are consumed with
the storage adapter's atomic ``pop`` so each can be redeemed once. Refresh
tokens rotate: every refresh grant retires the presented refresh token and
its access token and mints a new pair.
"""

from __future__ import annotations

import secrets
import time
from enum import Enum
from typing import Any, List, Optional, Union

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerifyMismatchError
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from satoken.config import Settings
from satoken.logging import get_logger
from satoken.service.errors import (
    InvalidAccessTokenError,
    InvalidClientError,
    InvalidCodeError,
    InvalidRedirectURIError,
    InvalidRefreshTokenError,
    InvalidScopeError,
    UnsupportedGrantTypeError,
    ValidationError,
)
from satoken.storage.base import Storage

logger = get_logger(__name__)


class GrantType(str, Enum):
    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"


class OAuth2Client(BaseModel):
    """OAuth2 client registration.

    ``client_secret`` is only set on the object passed to ``register_client``;
    clients read back from storage carry ``None`` since only a hash is kept.
    """

    client_id: str
    client_secret: Optional[str] = None
    redirect_uris: List[str] = Field(default_factory=list)
    # Unknown grant names are accepted here and rejected by register_client
    grant_types: List[Union[GrantType, str]] = Field(
        default_factory=lambda: [GrantType.AUTHORIZATION_CODE, GrantType.REFRESH_TOKEN]
    )
    scopes: List[str] = Field(default_factory=list)


class AuthorizationCode(BaseModel):
    code: str
    client_id: str
    redirect_uri: str
    user_id: str
    scopes: List[str] = Field(default_factory=list)
    # Unix seconds; 0 means the code never expires
    expires_at: float


class OAuth2AccessToken(BaseModel):
    token: str
    token_type: str = "Bearer"
    user_id: str
    client_id: str
    scopes: List[str] = Field(default_factory=list)
    expires_in: int
    refresh_token: Optional[str] = None


class StoredClient(BaseModel):
    client_id: str
    client_secret_hash: str
    redirect_uris: List[str] = Field(default_factory=list)
    grant_types: List[GrantType] = Field(default_factory=list)
    scopes: List[str] = Field(default_factory=list)
    created_at: float = Field(default_factory=time.time)


class StoredAccessToken(BaseModel):
    token: str
    user_id: str
    client_id: str
    scopes: List[str] = Field(default_factory=list)
    expires_at: float
    refresh_token: Optional[str] = None


class StoredRefreshToken(BaseModel):
    token: str
    user_id: str
    client_id: str
    scopes: List[str] = Field(default_factory=list)
    access_token: str
    expires_at: float


class OAuth2Server:
    def __init__(self, storage: Storage, prefix: str, settings: Settings) -> None:
        self.storage = storage
        self.prefix = f"{prefix}:oauth2"
        self.settings = settings
        self._secret_hasher = PasswordHasher(type=Type.ID)

    # Keys

    def _client_key(self, client_id: str) -> str:
        return f"{self.prefix}:client:{client_id}"

    def _code_key(self, code: str) -> str:
        return f"{self.prefix}:code:{code}"

    def _access_key(self, token: str) -> str:
        return f"{self.prefix}:access:{token}"

    def _refresh_key(self, token: str) -> str:
        return f"{self.prefix}:refresh:{token}"

    @staticmethod
    def _expires_at(ttl: int) -> float:
        return time.time() + ttl if ttl > 0 else 0

    @staticmethod
    def _expired(expires_at: float) -> bool:
        return bool(expires_at) and expires_at <= time.time()

    def _load(self, model: type[BaseModel], raw: Any) -> Optional[Any]:
        if not isinstance(raw, str):
            return None
        try:
            return model.model_validate_json(raw)
        except PydanticValidationError as exc:
            logger.warning("oauth2_record_invalid", model=model.__name__, error=str(exc))
            return None

    # Clients

    def register_client(self, client: OAuth2Client) -> None:
        """Store a client registration, replacing any previous one with the same ID."""
        if not client.client_id:
            raise ValidationError("client_id is required")
        if not client.client_secret:
            raise ValidationError("client_secret is required")
        grant_types = [self._grant_type(client.client_id, grant) for grant in client.grant_types]
        stored = StoredClient(
            client_id=client.client_id,
            client_secret_hash=self._secret_hasher.hash(client.client_secret),
            redirect_uris=list(client.redirect_uris),
            grant_types=grant_types,
            scopes=list(client.scopes),
        )
        self.storage.set(self._client_key(client.client_id), stored.model_dump_json(), 0)
        logger.info("oauth2_client_registered", client_id=client.client_id)

    @staticmethod
    def _grant_type(client_id: str, grant: Any) -> GrantType:
        try:
            return GrantType(grant)
        except ValueError:
            raise UnsupportedGrantTypeError(
                f"unsupported grant type: {grant}",
                detail={"client_id": client_id, "grant_type": str(grant)},
            ) from None

    def _get_stored_client(self, client_id: str) -> Optional[StoredClient]:
        if not client_id:
            return None
        return self._load(StoredClient, self.storage.get(self._client_key(client_id)))

    def get_client(self, client_id: str) -> Optional[OAuth2Client]:
        stored = self._get_stored_client(client_id)
        if stored is None:
            return None
        return OAuth2Client(
            client_id=stored.client_id,
            redirect_uris=stored.redirect_uris,
            grant_types=stored.grant_types,
            scopes=stored.scopes,
        )

    def delete_client(self, client_id: str) -> None:
        self.storage.delete(self._client_key(client_id))

    def authenticate_client(self, client_id: str, client_secret: str) -> StoredClient:
        stored = self._get_stored_client(client_id)
        if stored is None:
            raise InvalidClientError("unknown client", detail={"client_id": client_id})
        try:
            self._secret_hasher.verify(stored.client_secret_hash, client_secret or "")
        except (InvalidHash, VerifyMismatchError):
            logger.warning("oauth2_client_secret_mismatch", client_id=client_id)
            raise InvalidClientError(
                "client authentication failed", detail={"client_id": client_id}
            ) from None
        return stored

    # Authorization code grant

    def generate_authorization_code(
        self,
        client_id: str,
        redirect_uri: str,
        user_id: str,
        scopes: Optional[List[str]] = None,
    ) -> AuthorizationCode:
        client = self._get_stored_client(client_id)
        if client is None:
            raise InvalidClientError("unknown client", detail={"client_id": client_id})
        if redirect_uri not in client.redirect_uris:
            raise InvalidRedirectURIError(
                "redirect_uri is not registered for this client",
                detail={"client_id": client_id, "redirect_uri": redirect_uri},
            )
        if GrantType.AUTHORIZATION_CODE not in client.grant_types:
            raise UnsupportedGrantTypeError(
                "client is not allowed to use the authorization_code grant",
                detail={"client_id": client_id},
            )
        requested = list(scopes or [])
        if client.scopes:
            unknown = [scope for scope in requested if scope not in client.scopes]
            if unknown:
                raise InvalidScopeError(
                    "requested scope exceeds client registration",
                    detail={"client_id": client_id, "scopes": unknown},
                )
        if not user_id:
            raise ValidationError("user_id is required")

        ttl = self.settings.oauth2_code_timeout
        code = AuthorizationCode(
            code=secrets.token_urlsafe(32),
            client_id=client_id,
            redirect_uri=redirect_uri,
            user_id=user_id,
            scopes=requested,
            expires_at=self._expires_at(ttl),
        )
        self.storage.set(self._code_key(code.code), code.model_dump_json(), ttl)
        logger.info("oauth2_code_issued", client_id=client_id, user_id=user_id)
        return code

    def exchange_code_for_token(
        self,
        code: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
    ) -> OAuth2AccessToken:
        """Redeem an authorization code.

        The code is removed before its binding is checked, so a code presented
        with the wrong client or redirect URI is burned as well.
        """
        client = self.authenticate_client(client_id, client_secret)
        raw = self.storage.pop(self._code_key(code)) if code else None
        auth_code: Optional[AuthorizationCode] = self._load(AuthorizationCode, raw)
        if auth_code is None or self._expired(auth_code.expires_at):
            raise InvalidCodeError("authorization code is invalid, expired, or already used")
        if auth_code.client_id != client.client_id:
            logger.warning(
                "oauth2_code_client_mismatch",
                client_id=client_id,
                bound_client_id=auth_code.client_id,
            )
            raise InvalidCodeError("authorization code was issued to another client")
        if auth_code.redirect_uri != redirect_uri:
            raise InvalidRedirectURIError(
                "redirect_uri does not match the authorization request",
                detail={"redirect_uri": redirect_uri},
            )
        token = self._mint_tokens(auth_code.user_id, client.client_id, auth_code.scopes)
        logger.info("oauth2_code_exchanged", client_id=client_id, user_id=auth_code.user_id)
        return token

    def _mint_tokens(self, user_id: str, client_id: str, scopes: List[str]) -> OAuth2AccessToken:
        access_ttl = self.settings.oauth2_access_token_timeout
        refresh_ttl = self.settings.oauth2_refresh_token_timeout
        access_token = secrets.token_urlsafe(32)
        refresh_token = secrets.token_urlsafe(48)

        access_record = StoredAccessToken(
            token=access_token,
            user_id=user_id,
            client_id=client_id,
            scopes=scopes,
            expires_at=self._expires_at(access_ttl),
            refresh_token=refresh_token,
        )
        refresh_record = StoredRefreshToken(
            token=refresh_token,
            user_id=user_id,
            client_id=client_id,
            scopes=scopes,
            access_token=access_token,
            expires_at=self._expires_at(refresh_ttl),
        )
        self.storage.set(self._access_key(access_token), access_record.model_dump_json(), access_ttl)
        self.storage.set(self._refresh_key(refresh_token), refresh_record.model_dump_json(), refresh_ttl)
        return OAuth2AccessToken(
            token=access_token,
            user_id=user_id,
            client_id=client_id,
            scopes=scopes,
            expires_in=access_ttl,
            refresh_token=refresh_token,
        )

    # Refresh grant

    def refresh_access_token(
        self, refresh_token: str, client_id: str, client_secret: str
    ) -> OAuth2AccessToken:
        client = self.authenticate_client(client_id, client_secret)
        if GrantType.REFRESH_TOKEN not in client.grant_types:
            raise UnsupportedGrantTypeError(
                "client is not allowed to use the refresh_token grant",
                detail={"client_id": client_id},
            )
        key = self._refresh_key(refresh_token) if refresh_token else None
        record: Optional[StoredRefreshToken] = (
            self._load(StoredRefreshToken, self.storage.get(key)) if key else None
        )
        if record is None or self._expired(record.expires_at):
            raise InvalidRefreshTokenError("refresh token is invalid or expired")
        if record.client_id != client.client_id:
            raise InvalidClientError(
                "refresh token was issued to another client", detail={"client_id": client_id}
            )
        # Rotation: only the caller that wins the pop may mint the next pair
        if self.storage.pop(key) is None:
            raise InvalidRefreshTokenError("refresh token is invalid or expired")
        self.storage.delete(self._access_key(record.access_token))
        token = self._mint_tokens(record.user_id, record.client_id, record.scopes)
        logger.info("oauth2_token_refreshed", client_id=client_id, user_id=record.user_id)
        return token

    # Grant dispatch

    def token(self, grant_type: str, **params: Any) -> OAuth2AccessToken:
        """Token-endpoint dispatcher for the supported grant types."""
        if grant_type == GrantType.AUTHORIZATION_CODE.value:
            return self.exchange_code_for_token(
                params.get("code", ""),
                params.get("client_id", ""),
                params.get("client_secret", ""),
                params.get("redirect_uri", ""),
            )
        if grant_type == GrantType.REFRESH_TOKEN.value:
            return self.refresh_access_token(
                params.get("refresh_token", ""),
                params.get("client_id", ""),
                params.get("client_secret", ""),
            )
        raise UnsupportedGrantTypeError(
            f"unsupported grant type: {grant_type}", detail={"grant_type": grant_type}
        )

    # Resource-server side

    def validate_access_token(self, token: str) -> OAuth2AccessToken:
        """Look up an access token without touching its expiry."""
        raw = self.storage.get(self._access_key(token)) if token else None
        record: Optional[StoredAccessToken] = self._load(StoredAccessToken, raw)
        if record is None or self._expired(record.expires_at):
            raise InvalidAccessTokenError("access token is invalid or expired")
        expires_in = max(0, int(record.expires_at - time.time())) if record.expires_at else 0
        return OAuth2AccessToken(
            token=record.token,
            user_id=record.user_id,
            client_id=record.client_id,
            scopes=record.scopes,
            expires_in=expires_in,
            refresh_token=record.refresh_token,
        )

    def revoke_token(self, token: str) -> None:
        """Revoke an access or refresh token; unknown values are ignored."""
        if not token:
            return
        self.storage.delete(self._access_key(token))
        self.storage.delete(self._refresh_key(token))
        logger.info("oauth2_token_revoked", token=token)
