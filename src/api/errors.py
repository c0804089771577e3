"""
Exception handlers - Map the domain error taxonomy to HTTP responses.

All JSON errors share the shape {"error": CODE, "detail": message}.
Raw storage or network errors never reach the caller.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.domain.exceptions import (
    AccountNotFound,
    AlreadyVerified,
    EmailAlreadyRegistered,
    EmailNotVerified,
    InternalError,
    InvalidCredential,
    InvalidCredentials,
    InvalidOrExpiredLink,
    MailDispatchFailed,
    NoPendingRegistration,
    RegistrationError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins
_ERROR_MAP: list[tuple[type[RegistrationError], int, str, str]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", ""),
    (EmailAlreadyRegistered, status.HTTP_400_BAD_REQUEST, "EMAIL_ALREADY_REGISTERED",
     "Email already registered"),
    (AlreadyVerified, status.HTTP_400_BAD_REQUEST, "ALREADY_VERIFIED",
     "Email is already verified. Please log in."),
    (InvalidOrExpiredLink, status.HTTP_400_BAD_REQUEST, "INVALID_OR_EXPIRED_LINK",
     "Invalid or expired link"),
    (NoPendingRegistration, status.HTTP_404_NOT_FOUND, "NO_PENDING_REGISTRATION",
     "No pending registration found. Please sign up again."),
    (AccountNotFound, status.HTTP_404_NOT_FOUND, "ACCOUNT_NOT_FOUND", "Account not found"),
    (InvalidCredentials, status.HTTP_401_UNAUTHORIZED, "INVALID_CREDENTIALS",
     "Invalid email or password"),
    (InvalidCredential, status.HTTP_401_UNAUTHORIZED, "INVALID_CREDENTIAL",
     "Invalid or expired token"),
    (MailDispatchFailed, status.HTTP_500_INTERNAL_SERVER_ERROR, "MAIL_DISPATCH_FAILED",
     "Failed to send verification email. Please try again later."),
    (InternalError, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR",
     "Something went wrong"),
]


def _error_response(status_code: int, error: str, detail: str, **extra: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"error": error, "detail": detail, **extra}
    )


async def domain_error_handler(request: Request, exc: RegistrationError) -> JSONResponse:
    if isinstance(exc, EmailNotVerified):
        return _error_response(
            status.HTTP_403_FORBIDDEN,
            "EMAIL_NOT_VERIFIED",
            "Please verify your email before logging in",
            email=exc.email,
        )

    for exc_type, status_code, code, message in _ERROR_MAP:
        if isinstance(exc, exc_type):
            # Validation messages are written for users; the others may carry an email
            detail = str(exc) if exc_type is ValidationError else message
            return _error_response(status_code, code, detail)

    logger.error("Unmapped domain error on %s: %r", request.url.path, exc)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "Something went wrong"
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        detail = "Invalid request"
    return _error_response(status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", detail)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "Something went wrong"
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RegistrationError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
