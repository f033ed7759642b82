"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication (AuthGate)
and role authorization (RoleGuard).

Token sources, in priority order:
  1. Authorization header -- "Bearer <token>" or the bare token value.
  2. "token" cookie -- set by the login/register responses. The placeholder
     value "none" written by logout counts as no cookie.

get_current_user() verifies the token, re-reads the user from the store and
attaches it to request.state.user. Every failure -- no token, malformed,
forged, expired, or a valid token whose user has since been deleted --
raises the same Unauthenticated error.

RoleGuard is declared per route with a fixed allow-set of Role members and
runs after get_current_user.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Depends, Request

from auth.errors import Forbidden, Unauthenticated
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import COOKIE_NAME, TokenSigner

logger = logging.getLogger("credgate.auth")

_COOKIE_CLEARED = "none"


def extract_token(request: Request) -> str | None:
    """Return the candidate session token from the request, or None."""
    auth_header = request.headers.get("Authorization", "").strip()
    if auth_header:
        scheme, _, value = auth_header.partition(" ")
        if scheme.lower() == "bearer":
            return value.strip() or None
        return auth_header

    cookie = request.cookies.get(COOKIE_NAME)
    if cookie and cookie != _COOKIE_CLEARED:
        return cookie
    return None


def get_current_user(request: Request) -> User:
    """Require authentication. Raises Unauthenticated (401) if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    token = extract_token(request)
    if token is None:
        raise Unauthenticated()

    signer: TokenSigner = request.app.state.signer
    user_id = signer.verify(token)

    user_store: UserStore = request.app.state.user_store
    user = user_store.find_by_id(user_id)
    if user is None:
        # Valid signature, but the account no longer exists. Fail closed.
        logger.info("Token for missing user %s rejected", user_id)
        raise Unauthenticated()

    request.state.user = user
    return user


class RoleGuard:
    """Allow only users whose role is in a fixed allow-set.

    Use as a FastAPI dependency:
        require_admin = RoleGuard(Role.admin)

        @router.get("/admin-only")
        def route(user: User = Depends(require_admin)): ...
    """

    def __init__(self, *roles: Role) -> None:
        if not roles:
            raise ValueError("RoleGuard needs at least one role.")
        self.allowed: frozenset[Role] = frozenset(Role(r) for r in roles)

    def check(self, user: User) -> User:
        """Return user unchanged if allowed; raise Forbidden (403) otherwise."""
        if user.role not in self.allowed:
            raise Forbidden(f"User role {user.role.value} is not authorized to access this route.")
        return user

    def __call__(self, user: User = Depends(get_current_user)) -> User:
        return self.check(user)


require_admin = RoleGuard(Role.admin)
