"""Custom exception classes and error handling for the brokerage API."""

from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..config.logging import get_logger
from .models.responses import ErrorResponse

logger = get_logger(__name__)


class BrokerAPIException(Exception):
    """Base exception for the brokerage API."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        self.request_id = request_id


class ValidationException(BrokerAPIException):
    """Exception for requests the ledger rejected as malformed."""

    def __init__(self, message: str, error_code: str = "validation_error", **kwargs):
        super().__init__(message, status_code=422, error_code=error_code, **kwargs)


class NotFoundError(BrokerAPIException):
    """Exception for resource not found errors."""

    def __init__(self, message: str, error_code: str = "not_found", **kwargs):
        super().__init__(message, status_code=404, error_code=error_code, **kwargs)


class ConflictError(BrokerAPIException):
    """Exception for requests that conflict with current ledger state."""

    def __init__(self, message: str, error_code: str = "conflict", **kwargs):
        super().__init__(message, status_code=409, error_code=error_code, **kwargs)


class ForbiddenError(BrokerAPIException):
    """Exception for actions the acting account may not perform."""

    def __init__(self, message: str, error_code: str = "permission_denied", **kwargs):
        super().__init__(message, status_code=403, error_code=error_code, **kwargs)


class ExternalServiceError(BrokerAPIException):
    """Exception for failures of market data providers."""

    def __init__(self, message: str, error_code: str = "price_unavailable", **kwargs):
        super().__init__(message, status_code=503, error_code=error_code, **kwargs)


_CONFLICT_CODES = {
    "insufficient_funds",
    "insufficient_shares",
    "order_not_pending",
    "invalid_transition",
    "wallet_inactive",
    "duplicate_user",
}

_VALIDATION_CODES = {
    "invalid_amount",
    "invalid_order",
    "invalid_transaction_type",
    "invalid_status",
    "invalid_role",
}


def exception_for_result(
    result: Any, request_id: Optional[str] = None
) -> BrokerAPIException:
    """Map a failed service result onto the matching API exception."""
    code = getattr(result, "error_code", None) or "internal_error"
    message = getattr(result, "error", None) or "Operation failed"
    details: Dict[str, Any] = {}
    if getattr(result, "requires_funding", False):
        details["requires_funding"] = True

    kwargs = {"error_code": code, "details": details, "request_id": request_id}

    if code.endswith("_not_found"):
        return NotFoundError(message, **kwargs)
    if code in _CONFLICT_CODES:
        return ConflictError(message, **kwargs)
    if code in _VALIDATION_CODES:
        return ValidationException(message, **kwargs)
    if code == "permission_denied":
        return ForbiddenError(message, **kwargs)
    if code == "price_unavailable":
        return ExternalServiceError(message, **kwargs)
    return BrokerAPIException(message, **kwargs)


def raise_for_result(result: Any, request_id: Optional[str] = None) -> None:
    """Raise the mapped API exception when a service result is a failure."""
    if not result.success:
        raise exception_for_result(result, request_id)


async def broker_exception_handler(
    request: Request, exc: BrokerAPIException
) -> JSONResponse:
    """Handle brokerage API exceptions."""
    request_id = getattr(request.state, "request_id", None)

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Request failed",
        exception_type=type(exc).__name__,
        error_code=exc.error_code,
        message=exc.message,
        status_code=exc.status_code,
        request_id=request_id,
        path=request.url.path,
        method=request.method,
    )

    error_response = ErrorResponse(
        success=False,
        error={
            "type": type(exc).__name__,
            "code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
            "status_code": exc.status_code,
        },
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code, content=error_response.model_dump(mode="json")
    )


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle request body and Pydantic validation errors."""
    request_id = getattr(request.state, "request_id", None)

    # Extract field errors from the validation error
    field_errors = {}
    for error in exc.errors():
        field_path = ".".join(str(loc) for loc in error["loc"])
        field_errors[field_path] = error["msg"]

    logger.warning(
        "Validation error occurred",
        field_errors=field_errors,
        request_id=request_id,
        path=request.url.path,
        method=request.method,
    )

    error_response = ErrorResponse(
        success=False,
        error={
            "type": "ValidationError",
            "code": "validation_error",
            "message": "Request validation failed",
            "details": {"field_errors": field_errors},
            "status_code": 422,
        },
        request_id=request_id,
    )

    return JSONResponse(status_code=422, content=error_response.model_dump(mode="json"))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    request_id = getattr(request.state, "request_id", None)

    logger.warning(
        "HTTP exception occurred",
        status_code=exc.status_code,
        detail=exc.detail,
        request_id=request_id,
        path=request.url.path,
        method=request.method,
    )

    error_response = ErrorResponse(
        success=False,
        error={
            "type": "HTTPException",
            "message": str(exc.detail),
            "status_code": exc.status_code,
        },
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(mode="json"),
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", None)

    logger.error(
        "Unexpected exception occurred",
        exception_type=type(exc).__name__,
        message=str(exc),
        request_id=request_id,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )

    # Don't expose internal error details
    error_response = ErrorResponse(
        success=False,
        error={
            "type": "InternalServerError",
            "code": "internal_error",
            "message": "An unexpected error occurred",
            "status_code": 500,
        },
        request_id=request_id,
    )

    return JSONResponse(status_code=500, content=error_response.model_dump(mode="json"))


def setup_exception_handlers(app):
    """Register exception handlers with FastAPI app."""
    app.add_exception_handler(BrokerAPIException, broker_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered")
