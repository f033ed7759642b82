"""
auth/reset.py -- One-time password reset tokens.

secrets.token_hex(20) gives 160 bits of entropy, so brute-forcing a live
token inside its short window is computationally infeasible. Only the
SHA-256 digest is stored on the user record; the plaintext travels to the
user by mail and exists nowhere else.

Why not bcrypt: the reset endpoint receives only the token, not the email,
so the store must find the user BY the digest. That requires a
deterministic hash. High token entropy gives the brute-force resistance that
bcrypt's cost factor provides for low-entropy passwords.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.models import ResetToken
from core.config import Settings

_TOKEN_BYTES = 20


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hash_reset_token(plaintext: str) -> str:
    """Return the SHA-256 hex digest of a plaintext reset token."""
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


def match_token(candidate: str, stored_hash: str | None) -> bool:
    """Return True if candidate hashes to stored_hash (constant-time compare)."""
    if not candidate or not stored_hash:
        return False
    return hmac.compare_digest(hash_reset_token(candidate), stored_hash)


class ResetTokenGenerator:
    """Generates reset tokens that expire reset_token_expire_minutes from now."""

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = _utcnow) -> None:
        self._ttl = timedelta(minutes=settings.reset_token_expire_minutes)
        self._clock = clock

    def generate(self) -> ResetToken:
        plaintext = secrets.token_hex(_TOKEN_BYTES)
        return ResetToken(
            plaintext=plaintext,
            hashed=hash_reset_token(plaintext),
            expires_at=self._clock() + self._ttl,
        )

    def now(self) -> datetime:
        """Current time on this generator's clock. Used for expiry lookups."""
        return self._clock()
