"""
auth/errors.py -- Error taxonomy for the auth core.

Every failure a core operation can report is one of the AuthError subclasses
below. Each carries a stable machine-readable code, the HTTP status the
boundary translator (api/main.py) maps it to, and a client-safe message.
Messages never include internal diagnostics: login and token validation use
a single fixed message per flow so callers cannot tell which check failed.

DeliveryError is raised by mailers and is internal -- CredentialService
compensates and converts it into EmailDeliveryFailed.

Layer rule: no imports from api/. Deliberately free of fastapi so the core can
be exercised without an HTTP stack.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all client-reportable auth failures."""

    code: str = "auth_error"
    status_code: int = 400
    default_message: str = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    """One or more fields failed validation.

    fields is a list of {"field": ..., "message": ...} dicts so the client can
    attach each message to its input.
    """

    code = "validation_error"
    status_code = 400
    default_message = "Validation failed."

    def __init__(self, fields: list[dict[str, str]], message: str | None = None) -> None:
        self.fields = fields
        super().__init__(message or "; ".join(f["message"] for f in fields) or None)


class DuplicateEmail(AuthError):
    code = "duplicate_email"
    status_code = 400
    default_message = "Email already exists."


class MissingCredentials(AuthError):
    code = "missing_credentials"
    status_code = 400
    default_message = "Please provide an email and password."


class InvalidCredentials(AuthError):
    # Same message for unknown email and wrong password -- no account enumeration.
    code = "invalid_credentials"
    status_code = 400
    default_message = "Invalid credentials."


class IncorrectPassword(AuthError):
    code = "incorrect_password"
    status_code = 401
    default_message = "Password is incorrect."


class Unauthenticated(AuthError):
    # Uniform across missing, malformed, forged and expired tokens.
    code = "unauthenticated"
    status_code = 401
    default_message = "Not authorized to access this route."


class Forbidden(AuthError):
    code = "forbidden"
    status_code = 403
    default_message = "Not authorized to access this route."


class UserNotFound(AuthError):
    code = "not_found"
    status_code = 404
    default_message = "User not found."


class InvalidOrExpiredToken(AuthError):
    code = "invalid_token"
    status_code = 400
    default_message = "Invalid token."


class EmailDeliveryFailed(AuthError):
    code = "email_failed"
    status_code = 500
    default_message = "Email could not be sent."


class DeliveryError(Exception):
    """Raised by a Mailer when a message could not be handed to the relay."""
