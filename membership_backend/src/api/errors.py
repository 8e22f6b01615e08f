"""
Operational error types and the centralized FastAPI exception handlers.

Domain code raises AppError subclasses; the handlers render them as
{"status", "message"} and log the failure with the (sanitized) request.
Unexpected exceptions become a generic 500 in production.
"""
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import IntegrityError

from src.api import config
from src.api.logging_config import sanitize_headers


class AppError(Exception):
    """An expected, client-facing failure carrying an HTTP status."""

    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: str = None, status_code: int = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.is_operational = True
        super().__init__(self.message)

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class InvalidInputError(AppError):
    status_code = 400
    default_message = "Invalid input data"


class DuplicateKeyError(AppError):
    status_code = 400
    default_message = "Duplicate field value. Please use another value!"


class InvalidCredentialsError(AppError):
    status_code = 400
    default_message = "Invalid credentials"


class UnauthenticatedError(AppError):
    status_code = 401
    default_message = "No token, authorization denied"


class InvalidTokenError(AppError):
    status_code = 401
    default_message = "Invalid token. Please log in again!"


class TokenExpiredError(AppError):
    status_code = 401
    default_message = "Your token has expired! Please log in again."


class DeactivatedError(AppError):
    status_code = 401
    default_message = "User account is deactivated"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "Insufficient permissions"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Resource not found"


class InvalidPremiumError(AppError):
    status_code = 400
    default_message = "Total premium must equal base premium plus GST"


class DuplicateTransactionError(AppError):
    status_code = 400
    default_message = "Transaction already recorded"


class AlreadyProcessedError(AppError):
    status_code = 400
    default_message = "Payment already processed"


class ExpiredError(AppError):
    status_code = 400
    default_message = "QR code has expired"


class WrongMethodError(AppError):
    status_code = 400
    default_message = "Not a QR code payment"


class GatewayError(AppError):
    status_code = 502
    default_message = "Payment gateway request failed"


def _request_info(request: Request) -> dict:
    return {
        "method": request.method,
        "url": str(request.url.path),
        "query": dict(request.query_params),
        "params": dict(request.path_params),
        "headers": sanitize_headers(request.headers),
    }


async def app_error_handler(request: Request, exc: AppError):
    logger.bind(request=_request_info(request)).warning(
        "{} {} -> {} {}: {}",
        request.method, request.url.path, exc.status_code, type(exc).__name__, exc.message,
    )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": exc.status, "message": exc.message},
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        details.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    return await app_error_handler(
        request, InvalidInputError(f"Invalid input data. {'. '.join(details)}")
    )


UNIQUE_VIOLATION_MARKERS = ("unique constraint", "duplicate key", "duplicate entry")


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when the driver reports a unique index violation (SQLite, PostgreSQL, MySQL)."""
    if getattr(exc.orig, "pgcode", None) == "23505":
        return True
    text = str(exc.orig).lower()
    return any(marker in text for marker in UNIQUE_VIOLATION_MARKERS)


async def integrity_error_handler(request: Request, exc: IntegrityError):
    if is_unique_violation(exc):
        return await app_error_handler(request, DuplicateKeyError())
    return await app_error_handler(request, InvalidInputError())


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.bind(request=_request_info(request)).opt(exception=exc).error(
        "Unhandled error on {} {}", request.method, request.url.path
    )
    if config.is_production():
        content = {"status": "error", "message": "Something went very wrong!"}
    else:
        content = {
            "status": "error",
            "message": str(exc),
            "error": type(exc).__name__,
            "stack": traceback.format_exception(type(exc), exc, exc.__traceback__),
        }
    return JSONResponse(status_code=500, content=content)


# PUBLIC_INTERFACE
def register_error_handlers(app: FastAPI):
    """Attach all handlers to the application."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
