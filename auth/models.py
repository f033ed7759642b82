"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; the store and the credential service do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Closed set of roles. RoleGuard allow-sets are built from these members."""

    user = "user"
    admin = "admin"


@dataclass
class User:
    """A principal known to Credgate.

    email is always stored lowercase; the store and the credential service
    both normalize before reading or writing.

    hashed_password is None on default reads. Only lookups that explicitly
    ask for it (login, password change) carry the digest.

    reset_token_hash / reset_token_expire are set together by a forgot-password
    request and cleared together on reset or on failed mail delivery.
    """

    name: str
    email: str
    role: Role = Role.user
    id: str | None = None
    hashed_password: str | None = None
    reset_token_hash: str | None = None
    reset_token_expire: datetime | None = None  # aware UTC datetime
    created_at: str | None = None

    def to_public(self) -> dict:
        """Return the fields safe to send to a client."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class ResetToken:
    """Output of ResetTokenGenerator.generate().

    plaintext goes to the user by mail and is never persisted; hashed and
    expires_at are written to the User record.
    """

    plaintext: str
    hashed: str
    expires_at: datetime


@dataclass(frozen=True)
class UserPage:
    """One page of users plus the numbers needed to build pagination links."""

    users: list[User]
    total: int
    page: int
    limit: int

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_prev(self) -> bool:
        return self.page > 1


@dataclass(frozen=True)
class AuthResult:
    """A user together with a freshly issued session token."""

    user: User
    token: str
