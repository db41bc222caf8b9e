from __future__ import annotations

from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

# Stable error codes a client may see in an error envelope
ERROR_CODES = frozenset({
    "validation_error",
    "configuration_error",
    "account_disabled",
    "not_login",
    "token_not_found",
    "invalid_token_data",
    "invalid_refresh_token",
    "permission_denied",
    "role_denied",
    "unsupported_grant_type",
    "invalid_client",
    "invalid_code",
    "invalid_redirect_uri",
    "invalid_scope",
    "invalid_token",
    "storage_error",
    "server_error",
})


class ErrorBody(BaseModel):
    """Error envelope body with stable code values."""

    code: str = Field(..., description="Stable error code")
    message: str
    details: Optional[Any] = None  # object, array, or null

    @field_validator("code")
    @classmethod
    def _validate_error_code(cls, value: str) -> str:
        if value not in ERROR_CODES:
            raise ValueError(
                f"Invalid error code '{value}'. Must be one of: {', '.join(sorted(ERROR_CODES))}"
            )
        return value


class Envelope(BaseModel):
    status: str = Field(..., pattern="^(ok|error)$")
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))
