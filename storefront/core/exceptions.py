# storefront/core/exceptions.py

from enum import Enum
from typing import Optional, Dict, Any, List
import logging

logger = logging.getLogger(__name__)


class ErrorCode(Enum):
    """Standardized error codes for the application."""

    # Input errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    DUPLICATE_RESOURCE = "DUPLICATE_RESOURCE"

    # Auth errors
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    FORBIDDEN = "FORBIDDEN"
    ACCOUNT_DEACTIVATED = "ACCOUNT_DEACTIVATED"

    # Lookup errors
    NOT_FOUND = "NOT_FOUND"

    # File processing errors
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"

    # System errors
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    PAYMENT_GATEWAY_ERROR = "PAYMENT_GATEWAY_ERROR"


STATUS_CODE_MAP: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.DUPLICATE_RESOURCE: 400,
    ErrorCode.NOT_AUTHORIZED: 401,
    ErrorCode.INVALID_TOKEN: 401,
    ErrorCode.TOKEN_EXPIRED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.ACCOUNT_DEACTIVATED: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_FILE_TYPE: 400,
    ErrorCode.FILE_TOO_LARGE: 413,
    ErrorCode.RATE_LIMIT_EXCEEDED: 429,
    ErrorCode.INTERNAL_SERVER_ERROR: 500,
    ErrorCode.PAYMENT_GATEWAY_ERROR: 502,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
}


class StorefrontError(Exception):
    """Base exception for all storefront application errors."""

    def __init__(
        self,
        code: ErrorCode,
        user_message: str,
        technical_details: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.user_message = user_message
        self.technical_details = technical_details
        self.context = context or {}
        self.status_code = status_code or STATUS_CODE_MAP.get(code, 400)

        logger.debug(
            f"Storefront Error: {code.value}",
            extra={
                "error_code": code.value,
                "user_message": user_message,
                "technical_details": technical_details,
            }
        )

        super().__init__(self.user_message)

    def to_response(self) -> Dict[str, Any]:
        """Convert to API response format."""
        response = {
            "error": {
                "code": self.code.value,
                "message": self.user_message,
            }
        }
        if self.context:
            response["error"]["context"] = self.context
        return response


class ValidationFailedError(StorefrontError):
    """One or more input fields failed validation."""

    def __init__(self, errors: List[str], prefix: Optional[str] = "Validation failed"):
        self.errors = list(errors)
        joined = ", ".join(self.errors)
        message = f"{prefix}: {joined}" if prefix else joined
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            user_message=message,
            context={"errors": self.errors} if len(self.errors) > 1 else None,
        )


class ResourceNotFoundError(StorefrontError):
    def __init__(self, resource: str, message: Optional[str] = None):
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            user_message=message or f"{resource} not found",
            context={"resource": resource},
        )


class DuplicateResourceError(StorefrontError):
    def __init__(self, message: str):
        super().__init__(code=ErrorCode.DUPLICATE_RESOURCE, user_message=message)


class AuthenticationError(StorefrontError):
    """Raised for missing, invalid, expired or revoked credentials (401)."""

    def __init__(self, message: str = "Not authorized", code: ErrorCode = ErrorCode.NOT_AUTHORIZED):
        super().__init__(code=code, user_message=message)


class AuthorizationError(StorefrontError):
    """Raised when an authenticated user may not perform an action (403)."""

    def __init__(self, message: str = "Not authorized", code: ErrorCode = ErrorCode.FORBIDDEN):
        super().__init__(code=code, user_message=message)


class FileProcessingError(StorefrontError):
    """Specific error for upload processing issues."""

    def __init__(
        self,
        code: ErrorCode,
        user_message: str,
        filename: Optional[str] = None,
        technical_details: Optional[str] = None,
    ):
        super().__init__(
            code=code,
            user_message=user_message,
            technical_details=technical_details,
            context={"filename": filename} if filename else None,
        )


class PaymentGatewayError(StorefrontError):
    def __init__(self, message: str, technical_details: Optional[str] = None):
        super().__init__(
            code=ErrorCode.PAYMENT_GATEWAY_ERROR,
            user_message=message,
            technical_details=technical_details,
        )


def raise_file_error(error_type: str, filename: Optional[str] = None, details: Optional[str] = None):
    """Raise an upload error with a standard message for the given type."""
    if error_type == "invalid_type":
        raise FileProcessingError(
            code=ErrorCode.INVALID_FILE_TYPE,
            user_message="Only image files are allowed (jpeg, jpg, png, gif, webp)",
            filename=filename,
            technical_details=details,
        )
    if error_type == "too_large":
        raise FileProcessingError(
            code=ErrorCode.FILE_TOO_LARGE,
            user_message="File too large",
            filename=filename,
            technical_details=details,
        )
    raise FileProcessingError(
        code=ErrorCode.VALIDATION_ERROR,
        user_message=details or "No file uploaded",
        filename=filename,
    )
