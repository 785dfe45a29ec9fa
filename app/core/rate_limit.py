"""
Per-client request limits.

The sign-in endpoints share one bucket per client IP, claim opening has its
own. Counters live in Redis when REDIS_HOST is configured and in process
memory otherwise (also the fallback while Redis is unreachable).
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.core.config import settings
from app.core.errors import ErrorKind, Failure

logger = logging.getLogger(__name__)


def _storage_uri() -> str:
    if settings.REDIS_HOST:
        scheme = "rediss" if settings.REDIS_SSL else "redis"
        return f"{scheme}://{settings.REDIS_HOST}:{settings.REDIS_PORT}"
    return "memory://"


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_storage_uri(),
    in_memory_fallback_enabled=True,
    enabled=settings.RATE_LIMIT_ENABLED,
)

# decorators, applied below the router decorator of each endpoint
auth_limit = limiter.shared_limit(settings.RATE_LIMIT_AUTH, scope="auth")
claim_limit = limiter.limit(settings.RATE_LIMIT_CLAIM)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        "rate limit exceeded: %s %s from %s (%s)",
        request.method,
        request.url.path,
        get_remote_address(request),
        exc.detail,
    )
    failure = Failure(ErrorKind.RATE_LIMIT_EXCEEDED, "Too many requests, please try again later")
    return JSONResponse(
        status_code=failure.kind.status_code,
        content={"detail": failure.to_detail()},
        headers={"Retry-After": str(exc.limit.limit.get_expiry())},
    )
