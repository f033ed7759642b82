"""
api/main.py -- FastAPI application entry point for Credgate.

Run with:  uvicorn asgi:app --reload
           python main.py serve

Middleware stack (outermost to innermost):
  1. log_requests          -- method, path, status, latency, client
  2. TrustedHostMiddleware -- rejects Host headers outside Settings.allowed_hosts
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan is the composition root: it reads Settings once and builds the
store, signer, reset-token generator, mailer and CredentialService, handing
each the same immutable Settings object. Nothing downstream reads
configuration on its own.

Exception handlers are the single boundary translator: every AuthError,
validation failure, HTTPException and unexpected exception leaves the
service as {"success": false, "code": ..., "error": ...}.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorResponse, FieldError, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.errors import AuthError, ValidationError
from auth.mailer import build_mailer
from auth.reset import ResetTokenGenerator
from auth.service import CredentialService
from auth.store import UserStore
from auth.tokens import TokenSigner
from core.config import get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("credgate.api")


# ---------------------------------------------------------------------------
# Lifespan -- startup / shutdown
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the auth components on startup and dispose of the store on shutdown.

    Startup order matters: Settings first (it refuses to load without a
    usable SECRET_KEY), then the store, then the service that depends on
    everything else.
    """
    settings = get_settings()
    logger.info("Credgate API starting up (environment=%s)", settings.environment)
    app.state.settings = settings
    app.state.user_store = UserStore(db_url=settings.database_url)
    app.state.signer = TokenSigner(settings)
    app.state.credentials = CredentialService(
        settings,
        app.state.user_store,
        app.state.signer,
        ResetTokenGenerator(settings),
        build_mailer(settings),
    )
    logger.info("Auth initialized (%d users)", app.state.user_store.count_users())

    yield

    app.state.user_store.close()
    logger.info("Credgate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Credgate API",
    description="Credential issuance and access control: registration, login, sessions, password reset.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(SlowAPIMiddleware)

# Outermost of the two: a request with a Host outside ALLOWED_HOSTS gets 400
# before routing. The reset link is built from the request host, so this is
# what keeps a forged Host out of mailed links.
app.add_middleware(TrustedHostMiddleware, allowed_hosts=get_settings().allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, error) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(code=code, error=error).model_dump(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map an AuthError subclass to its status and envelope.

    The message is the fixed client-safe text carried by the error; nothing
    from a chained cause is exposed.
    """
    if isinstance(exc, ValidationError):
        fields = [FieldError(**f) for f in exc.fields]
        return _error(exc.status_code, exc.code, fields)
    response = _error(exc.status_code, exc.code, exc.message)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Plain def: SlowAPIMiddleware invokes this handler itself, outside
    Starlette's exception middleware.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with per-field messages when the body or query fails schema validation."""
    fields = [
        FieldError(
            field=".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")),
            message=err.get("msg", "Invalid value."),
        )
        for err in exc.errors()
    ]
    return _error(400, ValidationError.code, fields)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return the envelope for FastAPI/Starlette HTTP exceptions (404 route, 405 method...)."""
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and database reachability."""
    try:
        database = "ok" if request.app.state.user_store.ping() else "error"
    except Exception:
        logger.exception("Health check: database unreachable")
        database = "error"
    status = "healthy" if database == "ok" else "degraded"
    return HealthResponse(status=status, version=__version__, components={"app": "ok", "database": database})
