"""Tests for token generation strategies and the HS256 codec."""

import re
import time
import uuid

import pytest

from satoken.config import Settings, TokenStyle
from satoken.service.errors import ConfigurationError
from satoken.service.token import TIK_ALPHABET, TIK_LENGTH, TokenGenerator

SECRET = "unit-test-jwt-secret-0123456789"


def _generator(style, **overrides):
    return TokenGenerator(Settings(token_style=style, jwt_secret_key=SECRET, **overrides))


class TestStyles:
    def test_uuid(self):
        token = _generator(TokenStyle.UUID).generate("1", "web")
        assert str(uuid.UUID(token)) == token

    def test_simple_is_uuid_hex(self):
        token = _generator(TokenStyle.SIMPLE).generate("1", "web")
        assert re.fullmatch(r"[0-9a-f]{32}", token)

    @pytest.mark.parametrize(
        "style,length",
        [(TokenStyle.RANDOM32, 32), (TokenStyle.RANDOM64, 64), (TokenStyle.RANDOM128, 128)],
    )
    def test_random_lengths(self, style, length):
        token = _generator(style).generate("1", "web")
        assert len(token) == length
        assert token.isalnum()

    def test_hash_is_sha256_hex(self):
        token = _generator(TokenStyle.HASH).generate("1", "web")
        assert re.fullmatch(r"[0-9a-f]{64}", token)

    def test_timestamp_layout(self):
        before = int(time.time() * 1000)
        token = _generator(TokenStyle.TIMESTAMP).generate("1001", "web")
        millis, login_id, suffix = token.split("_")
        assert len(millis) == 13
        assert int(millis) >= before
        assert login_id == "1001"
        assert re.fullmatch(r"[0-9a-f]{16}", suffix)

    def test_tik_is_short_alphanumeric(self):
        token = _generator(TokenStyle.TIK).generate("1", "web")
        assert len(token) == TIK_LENGTH == 11
        assert all(ch in TIK_ALPHABET for ch in token)

    @pytest.mark.parametrize(
        "style",
        [
            TokenStyle.UUID,
            TokenStyle.SIMPLE,
            TokenStyle.RANDOM32,
            TokenStyle.HASH,
            TokenStyle.TIMESTAMP,
            TokenStyle.TIK,
            TokenStyle.JWT,
        ],
    )
    def test_consecutive_tokens_differ(self, style):
        generator = _generator(style)
        assert generator.generate("1", "web") != generator.generate("1", "web")


class TestJwt:
    def test_claims_round_trip(self):
        generator = _generator(TokenStyle.JWT, timeout=600)
        claims = generator.decode_jwt(generator.generate("1001", "app"))
        assert claims["loginId"] == "1001"
        assert claims["device"] == "app"
        assert claims["exp"] - claims["iat"] == 600

    def test_no_exp_when_timeout_is_zero(self):
        generator = _generator(TokenStyle.JWT, timeout=0)
        claims = generator.decode_jwt(generator.generate("1", "web"))
        assert "exp" not in claims

    def test_missing_secret_is_a_configuration_error(self):
        generator = TokenGenerator(Settings(token_style=TokenStyle.JWT))
        with pytest.raises(ConfigurationError):
            generator.generate("1", "web")

    def test_tampered_signature_is_rejected(self):
        generator = _generator(TokenStyle.JWT)
        token = generator.generate("1", "web")
        head, payload, sig = token.split(".")
        forged = f"{head}.{payload}.{'A' * len(sig)}"
        assert generator.decode_jwt(forged) is None

    def test_other_secret_is_rejected(self):
        token = _generator(TokenStyle.JWT).generate("1", "web")
        other = TokenGenerator(
            Settings(token_style=TokenStyle.JWT, jwt_secret_key="a-completely-different-secret")
        )
        assert other.decode_jwt(token) is None

    def test_expired_token_is_rejected(self):
        generator = _generator(TokenStyle.JWT)
        token = generator.encode_jwt({"loginId": "1", "exp": int(time.time()) - 10})
        assert generator.decode_jwt(token) is None

    def test_non_hs256_header_is_rejected(self):
        generator = _generator(TokenStyle.JWT)
        header = generator._encode_segment(b'{"alg":"none","typ":"JWT"}')
        payload = generator._encode_segment(b'{"loginId":"1"}')
        assert generator.decode_jwt(f"{header}.{payload}.") is None

    @pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d"])
    def test_malformed_tokens(self, token):
        assert _generator(TokenStyle.JWT).decode_jwt(token) is None
