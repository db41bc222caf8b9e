from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
import string
import time
import uuid
from typing import Any, Optional

from satoken.config import Settings, TokenStyle
from satoken.logging import get_logger
from satoken.service.errors import ConfigurationError

logger = get_logger(__name__)

ALPHANUMERIC = string.ascii_letters + string.digits
# Short-ID alphabet: digits first so ids read like counters, not hashes
TIK_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase
TIK_LENGTH = 11


def random_string(length: int, alphabet: str = ALPHANUMERIC) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


class TokenGenerator:
    """Produce token values in the configured ``TokenStyle``.

    Generation is pure computation over ``secrets``; nothing here touches
    storage. Random styles are unique in practice, not by construction.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._strategies = {
            TokenStyle.UUID: self._uuid,
            TokenStyle.SIMPLE: self._simple,
            TokenStyle.RANDOM32: lambda login_id, device: random_string(32),
            TokenStyle.RANDOM64: lambda login_id, device: random_string(64),
            TokenStyle.RANDOM128: lambda login_id, device: random_string(128),
            TokenStyle.JWT: self._jwt,
            TokenStyle.HASH: self._hash,
            TokenStyle.TIMESTAMP: self._timestamp,
            TokenStyle.TIK: lambda login_id, device: random_string(TIK_LENGTH, TIK_ALPHABET),
        }

    @property
    def style(self) -> TokenStyle:
        return self.settings.token_style

    def generate(self, login_id: str, device: str) -> str:
        strategy = self._strategies.get(self.style)
        if strategy is None:
            raise ConfigurationError(f"unsupported token style: {self.style}")
        return strategy(login_id, device)

    def _uuid(self, login_id: str, device: str) -> str:
        return str(uuid.uuid4())

    def _simple(self, login_id: str, device: str) -> str:
        return uuid.uuid4().hex

    def _hash(self, login_id: str, device: str) -> str:
        salt = secrets.token_hex(16)
        material = f"{login_id}:{device}:{time.time_ns()}:{salt}"
        return hashlib.sha256(material.encode()).hexdigest()

    def _timestamp(self, login_id: str, device: str) -> str:
        # 13-digit millisecond prefix keeps tokens lexically ordered by issue time
        millis = time.time_ns() // 1_000_000
        return f"{millis:013d}_{login_id}_{secrets.token_hex(8)}"

    # JWT (HS256)

    def _secret(self) -> bytes:
        secret = self.settings.jwt_secret_key
        if not secret:
            raise ConfigurationError("jwt token style requires jwt_secret_key")
        return secret.encode()

    def _jwt(self, login_id: str, device: str) -> str:
        now = int(time.time())
        payload: dict[str, Any] = {
            "loginId": login_id,
            "device": device,
            "iat": now,
            "jti": secrets.token_hex(8),
        }
        if self.settings.timeout > 0:
            payload["exp"] = now + self.settings.timeout
        return self.encode_jwt(payload)

    @staticmethod
    def _encode_segment(data: bytes) -> str:
        return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")

    @staticmethod
    def _decode_segment(segment: str) -> bytes:
        padding = "=" * ((4 - len(segment) % 4) % 4)
        return base64.urlsafe_b64decode(segment + padding)

    def encode_jwt(self, payload: dict[str, Any]) -> str:
        header = {"alg": "HS256", "typ": "JWT"}
        header_enc = self._encode_segment(
            json.dumps(header, separators=(",", ":")).encode()
        )
        payload_enc = self._encode_segment(
            json.dumps(payload, separators=(",", ":")).encode()
        )
        signing_input = f"{header_enc}.{payload_enc}"
        signature = hmac.new(self._secret(), signing_input.encode(), hashlib.sha256).digest()
        return f"{signing_input}.{self._encode_segment(signature)}"

    def decode_jwt(self, token: str) -> Optional[dict[str, Any]]:
        """Verify an HS256 token issued by this generator and return its claims.

        Returns ``None`` for malformed tokens, foreign algorithms, bad
        signatures, and expired tokens.
        """
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            return None

        try:
            header = json.loads(self._decode_segment(header_b64))
        except (ValueError, TypeError):
            logger.warning("jwt_header_decode_failed")
            return None
        # Reject anything but HS256 to rule out algorithm confusion
        if not isinstance(header, dict):
            return None
        if header.get("alg") != "HS256":
            logger.warning("jwt_invalid_algorithm", alg=header.get("alg"))
            return None

        signing_input = f"{header_b64}.{payload_b64}"
        expected_sig = self._encode_segment(
            hmac.new(self._secret(), signing_input.encode(), hashlib.sha256).digest()
        )
        if not hmac.compare_digest(expected_sig, sig_b64):
            return None
        try:
            payload = json.loads(self._decode_segment(payload_b64))
        except (ValueError, TypeError) as exc:
            logger.warning("jwt_payload_decode_failed", error=str(exc))
            return None
        if not isinstance(payload, dict):
            return None
        exp = payload.get("exp")
        if exp is not None:
            try:
                if float(exp) <= time.time():
                    return None
            except (TypeError, ValueError):
                return None
        return payload
