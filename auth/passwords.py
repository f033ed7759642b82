"""
auth/passwords.py -- Password hashing (bcrypt).

Bcrypt is the right choice for low-entropy secrets (passwords) because its
cost factor makes brute-force expensive. Every digest carries its own random
salt, so two users with the same password get different digests.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

This is deliberately NOT used for reset tokens -- see auth/reset.py. Reset
tokens need a deterministic digest so the store can look them up.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import bcrypt

_DEFAULT_ROUNDS = 12


def hash_password(plain: str, rounds: int = _DEFAULT_ROUNDS) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt accepts at most 72 bytes of input (older releases truncate,
    newer ones raise ValueError). CredentialService rejects longer passwords
    before they get here.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed or missing digest is a non-match, never an exception.
    """
    if not plain or not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False

