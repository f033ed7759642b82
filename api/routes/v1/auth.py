"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register                   -- create account; sets token cookie
  POST /api/v1/auth/login                      -- password login; sets token cookie
  GET|POST /api/v1/auth/logout                 -- clears cookie; 200 (idempotent)
  GET  /api/v1/auth/me                         -- current user (requires auth)
  PUT  /api/v1/auth/updatedetails              -- change name/email (requires auth)
  PUT  /api/v1/auth/updatepassword             -- change password (requires auth); new token
  POST /api/v1/auth/forgotpassword             -- mail a reset link
  PUT  /api/v1/auth/resetpassword/{resettoken} -- set a new password with a reset token

Handlers are plain `def`: bcrypt and the store are blocking, so FastAPI runs
them in its thread pool. Handlers raise AuthError subclasses; the boundary
translator in api/main.py turns them into the error envelope.

Security:
  login, register and forgotpassword are rate-limited (Settings.auth_rate_limit).
  @limiter.limit goes BELOW @router: the limit is a callable, and slowapi
  evaluates callable limits in its endpoint wrapper, so the wrapper must be
  what the router registers.
  Cache-Control: no-store on every response that carries a token.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import auth_rate_limit, limiter
from api.models import (
    EmptyEnvelope,
    ForgotPasswordRequest,
    LoginRequest,
    MessageEnvelope,
    PrincipalEnvelope,
    PrincipalResponse,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UpdateDetailsRequest,
    UpdatePasswordRequest,
)
from auth.dependencies import get_current_user
from auth.models import AuthResult, User
from auth.service import CredentialService
from auth.tokens import clear_auth_cookie, set_auth_cookie

# Path the plaintext reset token is appended to in the mailed link. Must match
# the reset_password route below under the /api/v1 prefix set in api/main.py.
_RESET_PATH = "/api/v1/auth/resetpassword"

# Auth policy:
# - register, login, logout, forgotpassword, resetpassword: public
# - me, updatedetails, updatepassword: requires auth (get_current_user)
router = APIRouter()


def _service(request: Request) -> CredentialService:
    return request.app.state.credentials


def _token_response(request: Request, result: AuthResult) -> JSONResponse:
    """Return {success, token} and set the same token as the session cookie."""
    resp = JSONResponse(status_code=200, content=TokenResponse(token=result.token).model_dump())
    set_auth_cookie(resp, result.token, request.app.state.settings)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=TokenResponse)
@limiter.limit(auth_rate_limit)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and start a session for it."""
    result = _service(request).register(body.name, body.email, body.password, body.role)
    return _token_response(request, result)


@router.post("/auth/login", response_model=TokenResponse)
@limiter.limit(auth_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the token cookie.

    Unknown email and wrong password produce the identical 400
    invalid_credentials response.
    """
    result = _service(request).login(body.email, body.password)
    return _token_response(request, result)


@router.api_route("/auth/logout", methods=["GET", "POST"], response_model=EmptyEnvelope)
async def logout() -> JSONResponse:
    """Clear the token cookie. Nothing server-side is invalidated, so this always succeeds."""
    resp = JSONResponse(content=EmptyEnvelope().model_dump())
    clear_auth_cookie(resp)
    return resp


@router.post("/auth/forgotpassword", response_model=MessageEnvelope)
@limiter.limit(auth_rate_limit)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageEnvelope:
    """Mail a one-time reset link to the account's email address."""
    base = request.app.state.settings.public_base_url or str(request.base_url)
    reset_url_base = f"{base.rstrip('/')}{_RESET_PATH}"
    _service(request).forgot_password(body.email, reset_url_base)
    return MessageEnvelope(data="Email sent")


@router.put("/auth/resetpassword/{resettoken}", response_model=TokenResponse)
def reset_password(request: Request, resettoken: str, body: ResetPasswordRequest) -> JSONResponse:
    """Set a new password using the plaintext reset token from the mailed link."""
    result = _service(request).reset_password(resettoken, body.password)
    return _token_response(request, result)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=PrincipalEnvelope)
def me(current_user: User = Depends(get_current_user)) -> PrincipalEnvelope:
    """Return the currently authenticated user."""
    return PrincipalEnvelope(data=PrincipalResponse.from_user(current_user))


@router.put("/auth/updatedetails", response_model=PrincipalEnvelope)
def update_details(
    request: Request,
    body: UpdateDetailsRequest,
    current_user: User = Depends(get_current_user),
) -> PrincipalEnvelope:
    """Change the current user's name and/or email."""
    updated = _service(request).update_details(current_user.id, name=body.name, email=body.email)
    return PrincipalEnvelope(data=PrincipalResponse.from_user(updated))


@router.put("/auth/updatepassword", response_model=TokenResponse)
def update_password(
    request: Request,
    body: UpdatePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> JSONResponse:
    """Change the current user's password and issue a fresh session token."""
    result = _service(request).update_password(current_user.id, body.current_password, body.new_password)
    return _token_response(request, result)
