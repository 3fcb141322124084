"""
Custom exception classes and FastAPI exception handlers.

The service layer raises domain errors (like InsufficientFundsError) without
importing HTTP concepts. The handler registered here translates them into
HTTP responses with a consistent JSON body:

    {"detail": "<human message>", "error_type": "<ErrorCode>"}

Exception hierarchy:
    PaymentAPIError (base)
    ├── NotFoundError            — NOT_FOUND           404
    ├── ValidationError          — VALIDATION_ERROR    400
    ├── UnauthorizedError        — UNAUTHORIZED        401
    │   └── InvalidCredentialsError
    ├── ForbiddenError           — FORBIDDEN           403
    ├── ConflictError            — CONFLICT            409
    ├── InsufficientFundsError   — INSUFFICIENT_FUNDS  400
    └── PaymentError             — PAYMENT_ERROR       400

Every subclass pins exactly one ErrorCode, and ERROR_STATUS_CODES maps every
ErrorCode to a status, so the translation is a table lookup rather than a
dispatch on class names.

TransactionStateError is deliberately NOT part of this hierarchy: it signals
an illegal state-machine transition (a programming error) and is translated
by the transaction service into a ValidationError or PaymentError.
"""

import enum
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode(str, enum.Enum):
    """Stable machine-readable error codes returned to clients."""
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    PAYMENT_ERROR = "PAYMENT_ERROR"


ERROR_STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.CONFLICT: 409,
    ErrorCode.INSUFFICIENT_FUNDS: 400,
    ErrorCode.PAYMENT_ERROR: 400,
}


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class PaymentAPIError(Exception):
    """Base exception for all Payments API domain errors."""

    code: ErrorCode = ErrorCode.PAYMENT_ERROR
    default_detail: str = "An error occurred"
    # Extra response headers, e.g. WWW-Authenticate on 401s
    headers: dict[str, str] | None = None

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_CODES[self.code]

    def to_content(self) -> dict:
        """JSON body for the HTTP response."""
        return {"detail": self.detail, "error_type": self.code.value}


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class NotFoundError(PaymentAPIError):
    """Raised when a requested user or transaction does not exist."""
    code = ErrorCode.NOT_FOUND
    default_detail = "Resource not found"


class ValidationError(PaymentAPIError):
    """Raised when a request is well-formed but breaks a business rule."""
    code = ErrorCode.VALIDATION_ERROR
    default_detail = "Validation error"


class UnauthorizedError(PaymentAPIError):
    code = ErrorCode.UNAUTHORIZED
    default_detail = "Not authenticated"
    headers = {"WWW-Authenticate": "Bearer"}


class InvalidCredentialsError(UnauthorizedError):
    """Raised when login credentials are incorrect."""

    def __init__(self):
        super().__init__("Invalid email or password")


class ForbiddenError(PaymentAPIError):
    """Raised when a user attempts an action on a resource they don't own."""
    code = ErrorCode.FORBIDDEN
    default_detail = "You do not have access to this resource"


class ConflictError(PaymentAPIError):
    """Raised when a unique value (e.g. email) is already taken."""
    code = ErrorCode.CONFLICT
    default_detail = "Resource conflict"


class InsufficientFundsError(PaymentAPIError):
    """
    Raised when a debit would cause a negative balance.

    Attributes:
        requested_cents: The amount the caller tried to move (if known).
        available_cents: The balance at the time of the check (if known).
    """
    code = ErrorCode.INSUFFICIENT_FUNDS
    default_detail = "Insufficient funds"

    def __init__(
        self,
        detail: str | None = None,
        requested_cents: int | None = None,
        available_cents: int | None = None,
    ):
        self.requested_cents = requested_cents
        self.available_cents = available_cents
        if detail is None and requested_cents is not None:
            detail = (
                f"Insufficient funds: requested {requested_cents} cents, "
                f"available {available_cents} cents"
            )
        super().__init__(detail)

    def to_content(self) -> dict:
        content = super().to_content()
        if self.requested_cents is not None:
            content["requested_cents"] = self.requested_cents
            content["available_cents"] = self.available_cents
        return content


class PaymentError(PaymentAPIError):
    """Raised when funds movement fails after all checks passed."""
    code = ErrorCode.PAYMENT_ERROR
    default_detail = "Payment error"


class TransactionStateError(Exception):
    """Raised by the Transaction entity on an illegal state transition."""


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    This is called once during app startup in main.py.
    """

    @app.exception_handler(PaymentAPIError)
    async def payment_api_error_handler(
        request: Request, exc: PaymentAPIError
    ) -> JSONResponse:
        logger.warning(
            "%s %s failed: %s (%s)",
            request.method, request.url.path, exc.code.value, exc.detail,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_content(),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Field errors are flattened to plain values; pydantic's ctx may hold
        # exception objects that are not JSON serializable.
        errors = [
            {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=ERROR_STATUS_CODES[ErrorCode.VALIDATION_ERROR],
            content={
                "detail": "Request validation failed",
                "error_type": ErrorCode.VALIDATION_ERROR.value,
                "errors": errors,
            },
        )
