from fastapi import Request, status
from fastapi.responses import JSONResponse

from homeservices_auth.config import request_logger
from homeservices_auth.exceptions.types import (
    AccountLockedException,
    AppException,
    AuthenticationException,
    BadRequestException,
    ConflictException,
    DatabaseException,
    ForbiddenException,
    NotFoundException,
    NotificationException,
    OTPException,
)


async def general_exception_handler(request: Request, exc: AppException):
    """
    Handles general application exceptions.

    Args:
        request: The request object.
        exc (AppException): The exception instance.

    Returns:
        JSONResponse: The error message with the exception's status code.
    """
    request_logger.error(f"GeneralException: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": f"An unexpected error occurred.\n{str(exc)}"},
    )


async def database_exception_handler(request: Request, exc: DatabaseException):
    """
    Handles database exceptions.

    The underlying driver message is logged but never returned to the client.
    """
    request_logger.error(f"DatabaseException: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": "A database error occurred."},
    )


async def authentication_exception_handler(
    request: Request, exc: AuthenticationException
):
    """
    Handles authentication exceptions with a Bearer challenge header.

    Args:
        request: The request object.
        exc (AuthenticationException): The authentication exception instance.

    Returns:
        JSONResponse: A response containing the error message and status code 401.
    """
    request_logger.warning(f"AuthenticationException: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def account_locked_exception_handler(
    request: Request, exc: AccountLockedException
):
    request_logger.warning(f"AccountLockedException: {exc}")
    headers = {}
    if exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc)},
        headers=headers,
    )


async def otp_exception_handler(request: Request, exc: OTPException):
    """
    Handles OTP rejections (not found, expired, invalid, too many attempts).

    The error code and any remaining attempts are returned next to the
    message so clients can branch without parsing text.
    """
    request_logger.warning(f"{type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), **(exc.details or {})},
    )


async def bad_request_exception_handler(request: Request, exc: BadRequestException):
    request_logger.warning(f"BadRequestException: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc)},
    )


async def not_found_exception_handler(request: Request, exc: NotFoundException):
    request_logger.warning(f"NotFoundException: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc)},
    )


async def conflict_exception_handler(request: Request, exc: ConflictException):
    request_logger.warning(f"ConflictException: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc)},
    )


async def forbidden_exception_handler(request: Request, exc: ForbiddenException):
    request_logger.warning(f"ForbiddenException: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc)},
    )


async def notification_exception_handler(
    request: Request, exc: NotificationException
):
    request_logger.error(f"NotificationException: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc)},
    )


exception_schema = {
    status.HTTP_500_INTERNAL_SERVER_ERROR: {
        "description": "Internal Server Error",
        "content": {
            "application/json": {
                "example": {"detail": "Some internal server error message"},
            }
        },
    },
    status.HTTP_401_UNAUTHORIZED: {
        "description": "Authentication Error",
        "content": {
            "application/json": {
                "example": {"detail": "Authentication failed."},
            }
        },
    },
    status.HTTP_429_TOO_MANY_REQUESTS: {
        "description": "Too Many Attempts",
        "content": {
            "application/json": {
                "example": {
                    "detail": "Too many attempts. Please request a new OTP.",
                    "error_code": "OTP_MAX_ATTEMPTS",
                },
            }
        },
    },
}


__all__ = [
    "general_exception_handler",
    "database_exception_handler",
    "authentication_exception_handler",
    "account_locked_exception_handler",
    "otp_exception_handler",
    "bad_request_exception_handler",
    "not_found_exception_handler",
    "conflict_exception_handler",
    "forbidden_exception_handler",
    "notification_exception_handler",
    "exception_schema",
]
