# storefront/core/error_handlers.py

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import traceback
import uuid

from .exceptions import ErrorCode, StorefrontError

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An internal server error occurred. Please try again later."


def error_body(code: str, message, **extra) -> dict:
    """The ``{"error": {...}}`` envelope shared by every failure response."""
    body = {"code": code, "message": message}
    body.update({key: value for key, value in extra.items() if value is not None})
    return {"error": body}


def _request_id(request: Request):
    return getattr(request.state, "request_id", None)


def setup_error_handlers(app: FastAPI):
    """Register the handlers that turn exceptions into error envelopes."""

    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"{exc.code.value} on {request.method} {request.url.path}: {exc.user_message}",
            extra={
                "error_code": exc.code.value,
                "technical_details": exc.technical_details,
                "request_id": _request_id(request),
                "client_ip": request.client.host if request.client else None,
            }
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed bodies and parameters are reported as 400, field by field."""
        details = [
            {
                "field": " -> ".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        logger.warning(
            f"Request validation failed on {request.method} {request.url.path}",
            extra={"validation_errors": details, "request_id": _request_id(request)}
        )
        return JSONResponse(
            status_code=400,
            content=error_body(ErrorCode.VALIDATION_ERROR.value, "Request validation failed", details=details),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)

        logger.warning(f"HTTP {exc.status_code} on {request.method} {request.url.path}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(f"HTTP_{exc.status_code}", exc.detail),
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        # traceback goes to the log only
        logger.error(
            f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc}",
            extra={
                "request_id": _request_id(request),
                "traceback": traceback.format_exc(),
            }
        )
        return JSONResponse(
            status_code=500,
            content=error_body(
                ErrorCode.INTERNAL_SERVER_ERROR.value, INTERNAL_ERROR_MESSAGE, requestId=_request_id(request)
            ),
        )


async def add_request_id_middleware(request: Request, call_next):
    """Tag each request with ``X-Request-ID``, reusing the caller's value when given."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response
