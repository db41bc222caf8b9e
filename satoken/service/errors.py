from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for authentication-core exceptions.

    Every subclass carries a stable ``error_code`` and an HTTP-style
    ``status_code`` so framework bindings can map a failure to their own
    transport without inspecting messages.
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class ValidationError(ServiceError):
    """Caller supplied a malformed argument (400)."""
    status_code = 400
    error_code = "validation_error"


class ConfigurationError(ServiceError):
    """The core is configured in a way that cannot serve the request (500)."""
    status_code = 500
    error_code = "configuration_error"


class AccountDisabledError(ServiceError):
    """Login refused because the identity is banned (403)."""
    status_code = 403
    error_code = "account_disabled"


class NotLoginError(ServiceError):
    """Token missing, expired, or kicked out (401)."""
    status_code = 401
    error_code = "not_login"


class TokenNotFoundError(ServiceError):
    status_code = 401
    error_code = "token_not_found"


class InvalidTokenDataError(ServiceError):
    """Token mapping exists but holds an unexpected value."""
    status_code = 401
    error_code = "invalid_token_data"


class InvalidRefreshTokenError(ServiceError):
    status_code = 401
    error_code = "invalid_refresh_token"


class PermissionDeniedError(ServiceError):
    status_code = 403
    error_code = "permission_denied"


class RoleDeniedError(ServiceError):
    status_code = 403
    error_code = "role_denied"


class UnsupportedGrantTypeError(ServiceError):
    status_code = 400
    error_code = "unsupported_grant_type"


class InvalidClientError(ServiceError):
    """OAuth2 client unknown or its credentials do not match (401)."""
    status_code = 401
    error_code = "invalid_client"


class InvalidCodeError(ServiceError):
    """Authorization code unknown, expired, consumed, or bound elsewhere (400)."""
    status_code = 400
    error_code = "invalid_code"


class InvalidRedirectURIError(ServiceError):
    status_code = 400
    error_code = "invalid_redirect_uri"


class InvalidScopeError(ServiceError):
    status_code = 400
    error_code = "invalid_scope"


class InvalidAccessTokenError(ServiceError):
    """OAuth2 access token unknown, expired, or revoked (401)."""
    status_code = 401
    error_code = "invalid_token"


__all__ = [
    "ServiceError",
    "ValidationError",
    "ConfigurationError",
    "AccountDisabledError",
    "NotLoginError",
    "TokenNotFoundError",
    "InvalidTokenDataError",
    "InvalidRefreshTokenError",
    "PermissionDeniedError",
    "RoleDeniedError",
    "UnsupportedGrantTypeError",
    "InvalidClientError",
    "InvalidCodeError",
    "InvalidRedirectURIError",
    "InvalidScopeError",
    "InvalidAccessTokenError",
]
