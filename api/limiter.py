"""
api/limiter.py -- Rate limiting for the unauthenticated credential endpoints.

One Limiter for the whole process: api/main.py mounts it (app.state.limiter
plus SlowAPIMiddleware) and api/routes/v1/auth.py decorates register, login
and forgotpassword with it. Counters are keyed by client address and kept in
process memory, so they reset on restart and are not shared between workers.

The limit itself comes from Settings.auth_rate_limit (e.g. "10/minute").
slowapi calls auth_rate_limit() per request rather than at import time.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def auth_rate_limit() -> str:
    return get_settings().auth_rate_limit
