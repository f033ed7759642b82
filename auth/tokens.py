"""
auth/tokens.py -- Session token signing (JWT) and the session cookie.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the principal id (sub), issued-at (iat) and expiry (exp). Nothing else
       is embedded -- role and profile are always re-read from the store, so a
       role change takes effect on the next request.

  Verification raises Unauthenticated on any failure -- malformed structure,
       bad signature, missing claims, expiry. The caller cannot tell these
       apart; the reason is logged at DEBUG for operators only.

  Expiry is checked here rather than by jose so it honours the injected
       clock and so the expiry instant itself is rejected (jose accepts
       now == exp).

  Stateless: the server keeps no session table. Rotating SECRET_KEY
       invalidates every outstanding token.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import Unauthenticated
from core.config import Settings

logger = logging.getLogger("credgate.auth")

_ALGORITHM = "HS256"

COOKIE_NAME = "token"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenSigner:
    """Issues and verifies signed, expiring session tokens.

    Usage:
        signer = TokenSigner(settings)
        token = signer.issue(user.id)
        user_id = signer.verify(token)   # raises Unauthenticated
    """

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = _utcnow) -> None:
        self._secret_key = settings.secret_key
        self._ttl = timedelta(seconds=settings.token_expire_seconds)
        self._clock = clock

    def issue(self, principal_id: str) -> str:
        """Encode a signed JWT for principal_id expiring at now + configured TTL.

        exp keeps sub-second precision (a NumericDate may be fractional) so
        a token never expires before the full TTL has elapsed.
        """
        now = self._clock()
        payload = {
            "sub": str(principal_id),
            "iat": int(now.timestamp()),
            "exp": (now + self._ttl).timestamp(),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> str:
        """Return the principal id embedded in a valid token.

        Raises Unauthenticated for every kind of invalid token.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False},
            )
        except JWTError as exc:
            logger.debug("Rejected session token: %s", exc)
            raise Unauthenticated() from exc

        sub = payload.get("sub")
        exp = payload.get("exp")
        if not isinstance(sub, str) or not sub or not isinstance(exp, (int, float)):
            logger.debug("Rejected session token: missing claims")
            raise Unauthenticated()
        if self._clock().timestamp() >= exp:
            logger.debug("Rejected session token: expired")
            raise Unauthenticated()
        return sub


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, settings: Settings) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for most cases.
    secure: only sent over HTTPS when ENVIRONMENT=production.
    expires: cookie_expire_days from now.

    Args:
        response: FastAPI/Starlette response object.
        token:    Encoded JWT string.
        settings: Application settings (cookie lifetime, environment).
    """
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        expires=_utcnow() + timedelta(days=settings.cookie_expire_days),
    )


def clear_auth_cookie(response) -> None:
    """Overwrite the session cookie with a placeholder that expires in 10 seconds.

    Logout is purely client-side: nothing on the server is invalidated.
    """
    response.set_cookie(
        COOKIE_NAME,
        value="none",
        httponly=True,
        samesite="lax",
        expires=_utcnow() + timedelta(seconds=10),
    )
