from __future__ import annotations

import os
from enum import Enum
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from satoken.logging import get_logger

logger = get_logger(__name__)


class TokenStyle(str, Enum):
    """Token value formats produced by the token generator."""

    UUID = "uuid"
    SIMPLE = "simple"
    RANDOM32 = "random32"
    RANDOM64 = "random64"
    RANDOM128 = "random128"
    JWT = "jwt"
    HASH = "hash"
    TIMESTAMP = "timestamp"
    TIK = "tik"


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for token issuance, storage and the OAuth2 server.

    All durations are in seconds. A ``timeout`` of 0 issues tokens that never
    expire.
    """

    token_name: str = env_field(
        "satoken",
        "SATOKEN_TOKEN_NAME",
        description="Header/cookie name bindings read the token from",
    )
    token_style: TokenStyle = env_field(TokenStyle.UUID, "SATOKEN_TOKEN_STYLE")
    timeout: int = env_field(
        30 * 24 * 60 * 60,
        "SATOKEN_TIMEOUT",
        description="Login token and session lifetime",
    )
    is_concurrent: bool = env_field(
        True,
        "SATOKEN_IS_CONCURRENT",
        description="Allow a new login on a device without kicking out the previous token",
    )
    auto_renew: bool = env_field(
        True,
        "SATOKEN_AUTO_RENEW",
        description="Extend token TTL in the background whenever it is checked",
    )
    key_prefix: str = env_field("satoken", "SATOKEN_KEY_PREFIX")
    jwt_secret_key: str | None = env_field(None, "SATOKEN_JWT_SECRET_KEY")
    nonce_timeout: int = env_field(5 * 60, "SATOKEN_NONCE_TIMEOUT")
    refresh_token_timeout: int = env_field(
        30 * 24 * 60 * 60, "SATOKEN_REFRESH_TOKEN_TIMEOUT"
    )
    refresh_access_token_timeout: int = env_field(
        2 * 60 * 60,
        "SATOKEN_REFRESH_ACCESS_TOKEN_TIMEOUT",
        description="Lifetime of access tokens issued alongside a refresh token",
    )
    oauth2_code_timeout: int = env_field(10 * 60, "SATOKEN_OAUTH2_CODE_TIMEOUT")
    oauth2_access_token_timeout: int = env_field(
        2 * 60 * 60, "SATOKEN_OAUTH2_ACCESS_TOKEN_TIMEOUT"
    )
    oauth2_refresh_token_timeout: int = env_field(
        30 * 24 * 60 * 60, "SATOKEN_OAUTH2_REFRESH_TOKEN_TIMEOUT"
    )
    renew_workers: int = env_field(
        2,
        "SATOKEN_RENEW_WORKERS",
        description="Threads available to background token renewal",
    )
    redis_url: str | None = env_field(None, "REDIS_URL")
    use_memory_storage: bool = env_field(True, "SATOKEN_USE_MEMORY_STORAGE")
    allow_redis_fallback: bool = env_field(
        False,
        "SATOKEN_ALLOW_REDIS_FALLBACK",
        description="Fall back to in-memory storage when Redis is unreachable",
    )

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("token_style", mode="before")
    @classmethod
    def _validate_token_style(cls, value: Any) -> TokenStyle:
        if isinstance(value, str):
            value = value.strip().lower()
        return TokenStyle(value)

    @field_validator(
        "timeout",
        "nonce_timeout",
        "refresh_token_timeout",
        "refresh_access_token_timeout",
        "oauth2_code_timeout",
        "oauth2_access_token_timeout",
        "oauth2_refresh_token_timeout",
    )
    @classmethod
    def _validate_duration(cls, value: int) -> int:
        if value < 0:
            raise ValueError("durations must be zero or positive seconds")
        return value

    @field_validator("renew_workers")
    @classmethod
    def _validate_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("renew_workers must be at least 1")
        return value

    @field_validator("key_prefix", "token_name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("jwt_secret_key")
    @classmethod
    def _validate_jwt_secret(cls, value: str | None) -> str | None:
        if value is not None and len(value) < 16:
            logger.warning(
                "jwt_secret_key_short",
                length=len(value),
                message="JWT secret keys under 16 characters are easy to brute force",
            )
        return value or None
