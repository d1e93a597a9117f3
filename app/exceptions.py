"""
Custom exception classes and FastAPI exception handlers.

Services raise domain-specific errors (like InsufficientFundsError) without
importing HTTP concepts. The handlers registered here translate them into
HTTP responses with one consistent body:

    {"timestamp": "...", "status": 400, "error": "Transfer Failed", "message": "..."}

Each exception class declares its HTTP status and error label, so a single
handler covers the whole hierarchy.

Exception hierarchy:
    BankAPIError (base)
    ├── InvalidCredentialsError / AuthenticationFailedError       401
    ├── RefreshTokenExpiredError                                  401
    ├── RefreshTokenNotFoundError                                 404
    ├── InsufficientPrivilegesError / CardAccessDeniedError       403
    ├── UserNotFoundError / CardNotFoundError                     404
    ├── RoleNotFoundError / BlockRequestNotFoundError             404
    ├── UserAlreadyExistsError                                    409
    ├── CardOperationError                                        400
    │   ├── CardNumberExistsError
    │   ├── CardAlreadyBlockedError
    │   └── PositiveBalanceError
    ├── TransferError                                             400
    │   └── InsufficientFundsError
    ├── BlockRequestError                                         400
    │   ├── BlockRequestAlreadyProcessedError
    │   └── PendingBlockRequestExistsError
    ├── InvalidDecisionError / InvalidParameterError              400
    ├── DatabaseOperationError                                    500
    │   └── TransactionTimeoutError
    └── CryptoError                                               500
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class BankAPIError(Exception):
    """Base exception for all domain errors."""

    status_code: int = 400
    error: str = "Bad Request"
    # Message sent to the client for 5xx errors instead of the real detail
    public_message: str | None = None

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)

    @property
    def message(self) -> str:
        return self.public_message or self.detail


# ---------------------------------------------------------------------------
# Authentication / authorization
# ---------------------------------------------------------------------------

class InvalidCredentialsError(BankAPIError):
    """Raised when login credentials are incorrect."""

    status_code = 401
    error = "Invalid Credentials"

    def __init__(self):
        super().__init__("Invalid username or password")


class AuthenticationFailedError(BankAPIError):
    """Raised when a bearer token is missing, invalid or expired."""

    status_code = 401
    error = "Authentication Failed"

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(detail)


class RefreshTokenExpiredError(BankAPIError):
    """
    Raised when a refresh token is past its expiry.

    The token row is revoked before this is raised, and the request
    transaction commits that revocation (see app.database.get_db).
    """

    status_code = 401
    error = "Refresh Token Expired"

    def __init__(self):
        super().__init__("Refresh token was expired. Please make a new signin request")


class RefreshTokenNotFoundError(BankAPIError):
    status_code = 404
    error = "Refresh Token Not Found"

    def __init__(self):
        super().__init__("Refresh token not found or has been revoked")


class InsufficientPrivilegesError(BankAPIError):
    status_code = 403
    error = "Insufficient Privileges"

    def __init__(self, detail: str = "You do not have permission to access this resource"):
        super().__init__(detail)


class CardAccessDeniedError(BankAPIError):
    """Raised when a user references a card they do not own."""

    status_code = 403
    error = "Card Access Denied"

    def __init__(self, detail: str = "Card not found or access denied"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Lookup misses
# ---------------------------------------------------------------------------

class UserNotFoundError(BankAPIError):
    status_code = 404
    error = "User Not Found"

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"User not found: {username}")


class CardNotFoundError(BankAPIError):
    status_code = 404
    error = "Card Not Found"

    def __init__(self, detail: str = "Card not found"):
        super().__init__(detail)


class RoleNotFoundError(BankAPIError):
    status_code = 404
    error = "Role Not Found"

    def __init__(self, role_name: str):
        self.role_name = role_name
        super().__init__(f"Role not found: {role_name}")


class BlockRequestNotFoundError(BankAPIError):
    status_code = 404
    error = "Block Request Not Found"

    def __init__(self, request_id: int):
        self.request_id = request_id
        super().__init__("Block request not found")


class UserAlreadyExistsError(BankAPIError):
    status_code = 409
    error = "User Already Exists"

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"User already exists: {username}")


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------

class CardOperationError(BankAPIError):
    status_code = 400
    error = "Card Operation Failed"


class CardNumberExistsError(CardOperationError):
    def __init__(self):
        super().__init__("Card number already exists")


class CardAlreadyBlockedError(CardOperationError):
    def __init__(self):
        super().__init__("Card is already blocked")


class PositiveBalanceError(CardOperationError):
    def __init__(self):
        super().__init__("Cannot delete card with positive balance")


class TransferError(BankAPIError):
    status_code = 400
    error = "Transfer Failed"


class InsufficientFundsError(TransferError):
    """Raised when the source card balance is below the transfer amount."""

    def __init__(self):
        super().__init__("Insufficient funds")


class BlockRequestError(BankAPIError):
    status_code = 400
    error = "Block Request Error"


class BlockRequestAlreadyProcessedError(BlockRequestError):
    def __init__(self):
        super().__init__("Block request has already been processed")


class PendingBlockRequestExistsError(BlockRequestError):
    def __init__(self):
        super().__init__("Block request for this card is already pending")


class InvalidDecisionError(BankAPIError):
    status_code = 400
    error = "Invalid Decision"

    def __init__(self, decision: str):
        self.decision = decision
        super().__init__("Invalid decision. Use 'approve' or 'reject'")


class InvalidParameterError(BankAPIError):
    status_code = 400
    error = "Invalid Parameter"

    def __init__(self, name: str, value: str, detail: str | None = None):
        self.name = name
        self.value = value
        super().__init__(detail or f"Invalid {name}: '{value}'")


# ---------------------------------------------------------------------------
# Internal failures
# ---------------------------------------------------------------------------

class DatabaseOperationError(BankAPIError):
    """Raised when a persistence operation fails. Detail is only logged."""

    status_code = 500
    error = "Database Operation Failed"
    public_message = "A database error occurred"


class TransactionTimeoutError(DatabaseOperationError):
    def __init__(self, operation: str, seconds: float):
        super().__init__(f"Transaction '{operation}' exceeded {seconds}s and was aborted")


class CryptoError(BankAPIError):
    """Raised when card number encryption or decryption fails."""

    status_code = 500
    error = "Internal Server Error"
    public_message = "An unexpected error occurred"


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def error_body(status_code: int, error: str, message: str) -> dict:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": status_code,
        "error": error,
        "message": message,
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers with the FastAPI application.

    Every error response uses the {timestamp, status, error, message} body.
    Server-side failures are logged with their stack trace; client errors
    are logged at WARNING without one.

    This is called once during app startup in main.py.
    """

    @app.exception_handler(BankAPIError)
    async def bank_api_error_handler(request: Request, exc: BankAPIError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "%s %s failed: %s", request.method, request.url.path, exc.detail,
                exc_info=exc,
            )
        else:
            logger.warning(
                "%s %s rejected (%s): %s",
                request.method, request.url.path, exc.status_code, exc.detail,
            )
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, exc.error, exc.message),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        parts = []
        for err in exc.errors():
            field = ".".join(str(loc) for loc in err["loc"] if loc not in ("body", "query", "path"))
            parts.append(f"{field} - {err['msg']}; ")
        message = "Validation failed: " + "".join(parts)
        logger.warning("%s %s rejected: %s", request.method, request.url.path, message)
        return JSONResponse(
            status_code=400,
            content=error_body(400, "Validation Failed", message),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        error = {
            401: "Authentication Failed",
            403: "Access Denied",
            404: "Not Found",
            405: "Method Not Allowed",
        }.get(exc.status_code, "Error")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, error, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unexpected error on %s %s", request.method, request.url.path, exc_info=exc
        )
        return JSONResponse(
            status_code=500,
            content=error_body(500, "Internal Server Error", "An unexpected error occurred"),
        )
