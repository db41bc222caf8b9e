from __future__ import annotations

import secrets

from satoken.logging import get_logger
from satoken.storage.base import Storage

logger = get_logger(__name__)

DEFAULT_NONCE_TTL = 5 * 60


class NonceManager:
    """Issue and single-use verify anti-replay nonces."""

    def __init__(self, storage: Storage, prefix: str, ttl: int = DEFAULT_NONCE_TTL) -> None:
        self.storage = storage
        self.prefix = prefix
        self.ttl = ttl

    def _key(self, nonce: str) -> str:
        return f"{self.prefix}:nonce:{nonce}"

    def generate(self) -> str:
        nonce = secrets.token_hex(32)
        self.storage.set(self._key(nonce), "1", self.ttl)
        return nonce

    def verify(self, nonce: str) -> bool:
        """Consume ``nonce``; True only for the first verification before expiry."""
        if not nonce:
            return False
        # pop is atomic in every adapter, so two racing verifications cannot both win
        if self.storage.pop(self._key(nonce)) is None:
            logger.info("nonce_replay_rejected", nonce=nonce)
            return False
        return True
