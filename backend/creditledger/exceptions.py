"""
Ledger error taxonomy and its mapping onto HTTP responses.

Business-rule failures (UserNotFoundError, InsufficientCreditsError,
InvalidAmountError) are raised to the caller. TransactionFailureError marks an
infrastructure failure; mutations report it as a failed result instead of
raising it.
"""
from typing import Any, Dict, Optional
import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base exception for credit ledger failures."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class UserNotFoundError(LedgerError):
    """Raised when the referenced user does not exist."""

    def __init__(self, user_id: str):
        super().__init__(f"User with ID {user_id} not found", {"user_id": user_id})
        self.user_id = user_id


class InsufficientCreditsError(LedgerError):
    """Raised when a debit would drive a balance below zero."""

    def __init__(self, required: int, available: int, kind: Optional[str] = None):
        message = f"Insufficient credits. Required: {required}, Available: {available}"
        details = {
            "required": required,
            "available": available,
            "deficit": required - available,
        }
        if kind:
            details["kind"] = kind
        super().__init__(message, details)
        self.required = required
        self.available = available

    @property
    def deficit(self) -> int:
        return self.required - self.available


class InvalidAmountError(LedgerError):
    """Raised when a caller passes a non-positive or non-integer amount."""

    def __init__(self, amount: Any, reason: str = "Credit amount must be a positive integer"):
        super().__init__(reason, {"amount": amount})
        self.amount = amount


class TransactionFailureError(LedgerError):
    """Raised when the store could not serve a request."""

    def __init__(self, operation: str, error: str):
        super().__init__(f"Ledger operation '{operation}' failed: {error}", {"operation": operation})
        self.operation = operation


STATUS_CODES = {
    UserNotFoundError: status.HTTP_404_NOT_FOUND,
    InsufficientCreditsError: status.HTTP_402_PAYMENT_REQUIRED,
    InvalidAmountError: status.HTTP_400_BAD_REQUEST,
    TransactionFailureError: status.HTTP_503_SERVICE_UNAVAILABLE,
}

GENERIC_FAILURE_MESSAGE = "Failed to process your request. Please try again."


def error_body(exc: LedgerError) -> Dict[str, Any]:
    """JSON body for a ledger error. Infrastructure detail is never exposed."""
    if isinstance(exc, TransactionFailureError):
        return {"error": "TransactionFailure", "message": GENERIC_FAILURE_MESSAGE}
    return {
        "error": exc.__class__.__name__,
        "message": exc.message,
        **exc.details,
    }


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """FastAPI exception handler for every LedgerError subclass."""
    status_code = STATUS_CODES.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content=error_body(exc))
