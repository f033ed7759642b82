"""
API request and response models for Credgate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models are deliberately permissive (Optional fields, plain str role):
missing or out-of-policy values are reported by CredentialService through the
error taxonomy (MissingCredentials, ValidationError) rather than as generic
schema errors. max_length caps keep absurd payloads away from bcrypt.

Every response carries the `success` flag of the uniform envelope.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User

_SHORT = 255


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    name: Optional[str] = Field(default=None, max_length=_SHORT)
    email: Optional[str] = Field(default=None, max_length=_SHORT)
    password: Optional[str] = Field(default=None, max_length=_SHORT)
    role: Optional[str] = Field(default=None, max_length=20)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: Optional[str] = Field(default=None, max_length=_SHORT)
    password: Optional[str] = Field(default=None, max_length=_SHORT)


class UpdateDetailsRequest(BaseModel):
    """Request body for PUT /api/v1/auth/updatedetails."""

    name: Optional[str] = Field(default=None, max_length=_SHORT)
    email: Optional[str] = Field(default=None, max_length=_SHORT)


class UpdatePasswordRequest(BaseModel):
    """Request body for PUT /api/v1/auth/updatepassword.

    Wire names are camelCase (currentPassword / newPassword); snake_case is
    accepted as well.
    """

    model_config = ConfigDict(populate_by_name=True)

    current_password: Optional[str] = Field(default=None, alias="currentPassword", max_length=_SHORT)
    new_password: Optional[str] = Field(default=None, alias="newPassword", max_length=_SHORT)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/forgotpassword."""

    email: Optional[str] = Field(default=None, max_length=_SHORT)


class ResetPasswordRequest(BaseModel):
    """Request body for PUT /api/v1/auth/resetpassword/{resettoken}."""

    password: Optional[str] = Field(default=None, max_length=_SHORT)


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users (admin)."""

    name: Optional[str] = Field(default=None, max_length=_SHORT)
    email: Optional[str] = Field(default=None, max_length=_SHORT)
    password: Optional[str] = Field(default=None, max_length=_SHORT)
    role: Optional[str] = Field(default=None, max_length=20)


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id} (admin).

    Unknown keys -- including any password field -- are ignored. Passwords
    change only through updatepassword or the reset flow.
    """

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(default=None, max_length=_SHORT)
    email: Optional[str] = Field(default=None, max_length=_SHORT)
    role: Optional[str] = Field(default=None, max_length=20)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PrincipalResponse(BaseModel):
    """Public view of a user. Never includes password or reset-token fields."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    role: str
    created_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "PrincipalResponse":
        return cls(**user.to_public())


class TokenResponse(BaseModel):
    """Body of every response that issues a session (the token is also set as a cookie)."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    token: str


class PrincipalEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    data: PrincipalResponse


class MessageEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    data: str


class EmptyEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    data: dict = Field(default_factory=dict)


class PageLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int
    limit: int


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    next: Optional[PageLink] = None
    prev: Optional[PageLink] = None


class UserListResponse(BaseModel):
    """Response for GET /api/v1/users.

    count is the number of users on this page; total is across all pages.
    """

    model_config = ConfigDict(frozen=True)

    success: bool = True
    count: int
    total: int
    pagination: Pagination
    data: list[PrincipalResponse]


class FieldError(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses.

    error is a single message, or a list of per-field messages for
    validation failures.
    """

    model_config = ConfigDict(frozen=True)

    success: bool = False
    code: str
    error: Union[str, list[FieldError]]


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
