# storefront/core/rate_limiter.py

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from limits import parse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .config import settings
from .exceptions import ErrorCode

logger = logging.getLogger(__name__)

# Fixed windows, counted per client IP
API_LIMIT = "100/15minutes"
AUTH_LIMIT = "5/15minutes"
UPLOAD_LIMIT = "20/hour"
ORDER_LIMIT = "10/minute"
PASSWORD_RESET_LIMIT = "3/hour"

RATE_LIMIT_MESSAGES = [
    (parse(AUTH_LIMIT), "Too many authentication attempts, please try again later."),
    (parse(UPLOAD_LIMIT), "Too many upload requests, please try again later."),
    (parse(ORDER_LIMIT), "Too many orders created, please slow down."),
    (parse(PASSWORD_RESET_LIMIT), "Too many password reset attempts, please try again later."),
]
DEFAULT_MESSAGE = "Too many requests from this IP, please try again later."

limiter = Limiter(
    key_func=get_remote_address,
    application_limits=[API_LIMIT],
    strategy="fixed-window",
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Custom handler for rate limit exceeded errors.
    """
    wrapped = getattr(exc, "limit", None)
    item = getattr(wrapped, "limit", None)
    message = DEFAULT_MESSAGE
    if item is not None:
        message = next((text for limit, text in RATE_LIMIT_MESSAGES if limit == item), DEFAULT_MESSAGE)

    client = request.client.host if request.client else "unknown"
    logger.warning(f"Rate limit exceeded for {client} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": ErrorCode.RATE_LIMIT_EXCEEDED.value,
                "message": message,
                "limit": exc.detail,
            }
        },
    )
