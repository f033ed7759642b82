"""
auth/service.py -- CredentialService: registration, login, password flows.

Orchestrates the Hasher (auth/passwords.py), TokenSigner (auth/tokens.py),
ResetTokenGenerator (auth/reset.py), the UserStore and a Mailer. Every
method either returns a result or raises an AuthError subclass; there is no
partial success. Flows that end in a usable session return an AuthResult
carrying a fresh token -- the route layer turns that into the JSON body and
the session cookie.

Security design decisions:
  Login runs bcrypt even for unknown emails (against a dummy digest built
       with the configured cost) so response time does not reveal whether an
       account exists. Unknown email and wrong password raise the same
       InvalidCredentials; the difference is only visible in the log.

  Forgot-password compensates: if the mail cannot be delivered the reset
       fields are cleared and saved again before EmailDeliveryFailed is
       raised. A reset token must never stay valid when the user was never
       told about it. The set and the clear each write only the two reset
       fields, as two separate atomic store writes -- a crash between them
       leaves a live token nobody received, which expires on its own after
       reset_token_expire_minutes.

  The admin update path never touches passwords. Password changes go
       through update_password (current password required) or the reset flow.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from auth.errors import (
    DeliveryError,
    EmailDeliveryFailed,
    IncorrectPassword,
    InvalidCredentials,
    InvalidOrExpiredToken,
    MissingCredentials,
    UserNotFound,
    ValidationError,
)
from auth.mailer import Mailer
from auth.models import AuthResult, Role, User, UserPage
from auth.passwords import hash_password, verify_password
from auth.reset import ResetTokenGenerator, hash_reset_token, match_token
from auth.store import UserStore
from auth.tokens import TokenSigner
from core.config import Settings

logger = logging.getLogger("credgate.auth")

_RESET_SUBJECT = "Password reset token"

# Fields an admin may change on another user's record.
_ADMIN_UPDATABLE = ("name", "email", "role")

_RESET_FIELDS = ("reset_token_hash", "reset_token_expire")

# bcrypt input limit; the character policy alone does not bound multi-byte input.
_BCRYPT_MAX_BYTES = 72


class CredentialService:
    """Credential flows over an injected store, signer and mailer.

    Usage:
        service = CredentialService(settings, store, TokenSigner(settings),
                                    ResetTokenGenerator(settings), build_mailer(settings))
        result = service.login("ada@example.com", "secret")
        result.token
    """

    def __init__(
        self,
        settings: Settings,
        store: UserStore,
        signer: TokenSigner,
        reset_tokens: ResetTokenGenerator,
        mailer: Mailer,
    ) -> None:
        self._settings = settings
        self._store = store
        self._signer = signer
        self._reset_tokens = reset_tokens
        self._mailer = mailer
        # Same cost as real digests, so the unknown-email path is not faster.
        self._dummy_hash = hash_password("credgate_timing_dummy", settings.bcrypt_rounds)

    # ------------------------------------------------------------------
    # Public flows
    # ------------------------------------------------------------------

    def register(self, name: str, email: str, password: str, role: Role | str | None = None) -> AuthResult:
        """Create a user and return it with a session token.

        Raises ValidationError (bad role, password outside policy, bad
        name/email) or DuplicateEmail.
        """
        user = self._create(name, email, password, role)
        logger.info("Registered user %s (role=%s)", user.id, user.role.value)
        return self._issue(user)

    def login(self, email: str | None, password: str | None) -> AuthResult:
        if not email or not password:
            raise MissingCredentials()

        user = self._store.find_by_email(email, include_password=True)
        if user is None:
            # Equalize timing -- do NOT return early before running bcrypt.
            verify_password(password, self._dummy_hash)
            logger.info("Login failed: unknown email")
            raise InvalidCredentials()
        if not verify_password(password, user.hashed_password):
            logger.info("Login failed: wrong password for user %s", user.id)
            raise InvalidCredentials()
        return self._issue(user)

    def update_details(self, user_id: str, name: str | None = None, email: str | None = None) -> User:
        """Change name and/or email. The email is lowercased and re-checked for uniqueness."""
        fields: dict = {}
        if name is not None:
            fields["name"] = name
        if email is not None:
            fields["email"] = email.strip().lower()
        updated = self._store.update_by_id(user_id, fields, validate=True)
        if updated is None:
            raise UserNotFound()
        return updated

    def update_password(self, user_id: str, current_password: str | None, new_password: str | None) -> AuthResult:
        user = self._store.find_by_id(user_id, include_password=True)
        if user is None:
            raise UserNotFound()
        if not verify_password(current_password or "", user.hashed_password):
            logger.info("Password change rejected for user %s: current password incorrect", user.id)
            raise IncorrectPassword()
        self._check_password(new_password, field="newPassword")
        user.hashed_password = hash_password(new_password, self._settings.bcrypt_rounds)
        self._store.save(user, ("hashed_password",))
        logger.info("Password changed for user %s", user.id)
        return self._issue(user)

    def forgot_password(self, email: str | None, reset_url_base: str) -> None:
        """Store a reset token for `email` and mail the link to the user.

        reset_url_base is the absolute URL the plaintext token is appended to,
        e.g. "https://host/api/v1/auth/resetpassword".
        """
        if not email:
            raise ValidationError([{"field": "email", "message": "Please add an email."}])
        user = self._store.find_by_email(email)
        if user is None:
            raise UserNotFound("There is no user with that email.")

        reset = self._reset_tokens.generate()
        user.reset_token_hash = reset.hashed
        user.reset_token_expire = reset.expires_at
        self._store.save(user, _RESET_FIELDS, validate=False)

        reset_url = f"{reset_url_base.rstrip('/')}/{reset.plaintext}"
        message = (
            "You are receiving this email because you (or someone else) has requested "
            f"the reset of a password. Please make a PUT request to: \n\n {reset_url}"
        )
        try:
            self._mailer.send(user.email, _RESET_SUBJECT, message)
        except DeliveryError as exc:
            logger.exception("Reset mail delivery failed for user %s", user.id)
            self._clear_reset_token(user)
            raise EmailDeliveryFailed() from exc
        except Exception:
            self._clear_reset_token(user)
            raise
        logger.info("Reset token issued for user %s", user.id)

    def reset_password(self, reset_token: str | None, password: str | None) -> AuthResult:
        token_hash = hash_reset_token(reset_token or "")
        user = self._store.find_by_reset_token(token_hash, self._reset_tokens.now())
        if user is None or not match_token(reset_token or "", user.reset_token_hash):
            raise InvalidOrExpiredToken()
        self._check_password(password)
        user.hashed_password = hash_password(password, self._settings.bcrypt_rounds)
        user.reset_token_hash = None
        user.reset_token_expire = None
        self._store.save(user, ("hashed_password", *_RESET_FIELDS))
        logger.info("Password reset completed for user %s", user.id)
        return self._issue(user)

    # ------------------------------------------------------------------
    # User management (admin surface)
    # ------------------------------------------------------------------

    def list_users(self, page: int = 1, limit: int = 25) -> UserPage:
        page = max(page, 1)
        limit = max(limit, 1)
        users = self._store.list_users(offset=(page - 1) * limit, limit=limit)
        return UserPage(users=users, total=self._store.count_users(), page=page, limit=limit)

    def get_user(self, user_id: str) -> User:
        user = self._store.find_by_id(user_id)
        if user is None:
            raise UserNotFound(f"No user with that id of {user_id}.")
        return user

    def create_user(self, name: str, email: str, password: str, role: Role | str | None = None) -> User:
        user = self._create(name, email, password, role)
        logger.info("Admin created user %s (role=%s)", user.id, user.role.value)
        return user

    def update_user(self, user_id: str, fields: dict) -> User:
        """Update name/email/role. Password fields in `fields` are dropped."""
        changes = {k: v for k, v in fields.items() if k in _ADMIN_UPDATABLE and v is not None}
        if "email" in changes:
            changes["email"] = changes["email"].strip().lower()
        updated = self._store.update_by_id(user_id, changes, validate=True)
        if updated is None:
            raise UserNotFound(f"No user with that id of {user_id}.")
        return updated

    def delete_user(self, user_id: str) -> None:
        if self._store.delete_by_id(user_id) is None:
            raise UserNotFound(f"No user with that id of {user_id}.")
        logger.info("Deleted user %s", user_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _create(self, name: str, email: str, password: str, role: Role | str | None) -> User:
        errors: list[dict[str, str]] = []
        parsed_role = Role.user
        if role is not None:
            try:
                parsed_role = Role(role)
            except ValueError:
                errors.append({"field": "role", "message": f"`{role}` is not a valid role."})
        errors.extend(self._password_errors(password, "password"))
        if errors:
            raise ValidationError(errors)
        user = User(
            name=name,
            email=(email or "").strip().lower(),
            role=parsed_role,
            hashed_password=hash_password(password, self._settings.bcrypt_rounds),
        )
        return self._store.create(user)

    def _password_errors(self, password: str | None, field: str) -> list[dict[str, str]]:
        lo = self._settings.password_min_length
        hi = self._settings.password_max_length
        if not password:
            return [{"field": field, "message": "Please add a password."}]
        if not lo <= len(password) <= hi:
            return [{"field": field, "message": f"Password must be between {lo} and {hi} characters."}]
        if len(password.encode("utf-8")) > _BCRYPT_MAX_BYTES:
            return [{"field": field, "message": f"Password must be at most {_BCRYPT_MAX_BYTES} bytes."}]
        return []

    def _check_password(self, password: str | None, field: str = "password") -> None:
        errors = self._password_errors(password, field)
        if errors:
            raise ValidationError(errors)

    def _clear_reset_token(self, user: User) -> None:
        user.reset_token_hash = None
        user.reset_token_expire = None
        self._store.save(user, _RESET_FIELDS, validate=False)

    def _issue(self, user: User) -> AuthResult:
        user.hashed_password = None
        return AuthResult(user=user, token=self._signer.issue(user.id))
