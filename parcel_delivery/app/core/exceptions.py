"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict, Optional

logger = logging.getLogger("parcel_delivery.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 500,
        details: Dict[str, Any] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        self.headers = headers
        super().__init__(message)


class InputValidationError(AppException):
    """Raised when request data is missing or malformed."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"field": field} if field else None
        )


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class ParcelNotFoundError(ResourceNotFoundError):
    """Raised when a parcel id does not reference an existing parcel."""

    def __init__(self, parcel_id: Any):
        super().__init__("Parcel", parcel_id)


class ParcelAlreadyPaidError(AppException):
    """Raised when a parcel has already transitioned to paid."""

    def __init__(self, parcel_id: Any, message: Optional[str] = None):
        super().__init__(
            message=message or f"Parcel with ID {parcel_id} is already paid",
            error_code="ERR_PAY_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"parcel_id": parcel_id}
        )


class DuplicateTransactionError(AppException):
    """Raised when a transaction id has already been recorded."""

    def __init__(self, transaction_id: str):
        super().__init__(
            message=f"Transaction {transaction_id} has already been recorded",
            error_code="ERR_PAY_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"transaction_id": transaction_id}
        )


class PaymentPersistFailedAfterStateChangeError(AppException):
    """
    Raised when a parcel was marked paid but its payment record was not stored.

    The parcel is left paid. Callers must not retry blindly; the state
    needs manual reconciliation.
    """

    def __init__(self, parcel_id: Any, transaction_id: str, reconciliation_id: Optional[int] = None):
        super().__init__(
            message="Parcel was marked paid but the payment record could not be saved",
            error_code="ERR_PAY_003",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={
                "parcel_id": parcel_id,
                "transaction_id": transaction_id,
                "reconciliation_id": reconciliation_id
            }
        )


class ReconciliationConflictError(AppException):
    """
    Raised when a reconciliation marker cannot be replayed automatically.

    The marker's transaction id is already recorded against another parcel,
    so the marker's parcel stays paid without a payment record until an
    admin settles it.
    """

    def __init__(self, reconciliation_id: int, transaction_id: str, parcel_id: Any, recorded_parcel_id: Any):
        super().__init__(
            message=(
                f"Transaction {transaction_id} is recorded for parcel {recorded_parcel_id}, "
                f"not parcel {parcel_id}"
            ),
            error_code="ERR_PAY_004",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "reconciliation_id": reconciliation_id,
                "transaction_id": transaction_id,
                "parcel_id": parcel_id,
                "recorded_parcel_id": recorded_parcel_id
            }
        )


class StoreUnavailableError(AppException):
    """Raised when the backing store cannot be reached. Safe to retry."""

    def __init__(self, operation: str):
        super().__init__(
            message=f"Data store unavailable during {operation}",
            error_code="ERR_STORE_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"operation": operation}
        )


class PaymentGatewayError(AppException):
    """Raised when the payment gateway rejects or fails a request."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
        error_code: str = "ERR_GATEWAY_001"
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code
        )


class PaymentDeclinedError(PaymentGatewayError):
    """Raised when the gateway declines the card. Not a gateway fault."""

    def __init__(self, message: str = "Payment was declined"):
        super().__init__(
            message=message,
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            error_code="ERR_GATEWAY_002"
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"}
        )


class TokenRevokedError(AppException):
    """Raised when token has been revoked."""

    def __init__(self):
        super().__init__(
            message="Token has been revoked",
            error_code="ERR_AUTH_002",
            status_code=status.HTTP_401_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        },
        headers=exc.headers
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception(
        "Unhandled exception",
        extra={"path": request.url.path, "exception_type": type(exc).__name__}
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
