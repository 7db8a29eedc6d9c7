"""
Test suite for exception types and their HTTP handlers.

Run all tests:
    pytest tests/exceptions/test_handlers.py -v
"""

import json
from unittest.mock import MagicMock

import pytest

from homeservices_auth.exceptions.handlers import (
    account_locked_exception_handler,
    authentication_exception_handler,
    bad_request_exception_handler,
    conflict_exception_handler,
    database_exception_handler,
    forbidden_exception_handler,
    general_exception_handler,
    not_found_exception_handler,
    notification_exception_handler,
    otp_exception_handler,
)
from homeservices_auth.exceptions.types import (
    AccountLockedException,
    AppException,
    AuthenticationException,
    ConflictException,
    DatabaseException,
    ForbiddenException,
    InvalidCredentialsException,
    NotificationException,
    OTPExpiredException,
    OTPInvalidException,
    OTPNotFoundException,
    TooManyAttemptsException,
    UserAlreadyExistsException,
    UserNotFoundException,
    WeakPasswordException,
)


def _body(response) -> dict:
    return json.loads(response.body)


class TestExceptionTypes:

    @pytest.mark.parametrize(
        "exc,status_code",
        [
            (AuthenticationException(), 401),
            (InvalidCredentialsException(), 401),
            (AccountLockedException(), 423),
            (WeakPasswordException(), 400),
            (OTPNotFoundException(), 400),
            (OTPExpiredException(), 400),
            (OTPInvalidException(), 400),
            (TooManyAttemptsException(), 429),
            (UserNotFoundException(), 404),
            (UserAlreadyExistsException(), 409),
            (ForbiddenException(), 403),
            (NotificationException(), 502),
            (DatabaseException(), 500),
        ],
    )
    def test_status_codes(self, exc, status_code):
        assert exc.status_code == status_code
        assert isinstance(exc, AppException)

    def test_otp_exception_details(self):
        exc = OTPInvalidException(remaining_attempts=1)
        assert exc.details == {"error_code": "OTP_INVALID", "remaining_attempts": 1}
        assert OTPExpiredException().details == {"error_code": "OTP_EXPIRED"}


class TestHandlers:

    @pytest.mark.asyncio
    async def test_general_handler(self):
        response = await general_exception_handler(
            MagicMock(), AppException("boom", status_code=503)
        )
        assert response.status_code == 503
        assert "boom" in _body(response)["detail"]

    @pytest.mark.asyncio
    async def test_database_handler_hides_driver_message(self):
        response = await database_exception_handler(
            MagicMock(), DatabaseException("UNIQUE constraint failed: users.email")
        )
        assert response.status_code == 500
        assert _body(response) == {"detail": "A database error occurred."}

    @pytest.mark.asyncio
    async def test_authentication_handler_sets_challenge(self):
        response = await authentication_exception_handler(
            MagicMock(), AuthenticationException("Invalid or expired access token")
        )
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert _body(response) == {"detail": "Invalid or expired access token"}

    @pytest.mark.asyncio
    async def test_account_locked_handler_sets_retry_after(self):
        response = await account_locked_exception_handler(
            MagicMock(), AccountLockedException(retry_after=120)
        )
        assert response.status_code == 423
        assert response.headers["Retry-After"] == "120"

    @pytest.mark.asyncio
    async def test_account_locked_without_retry_after(self):
        response = await account_locked_exception_handler(
            MagicMock(), AccountLockedException()
        )
        assert "Retry-After" not in response.headers

    @pytest.mark.asyncio
    async def test_otp_handler_includes_error_code(self):
        response = await otp_exception_handler(
            MagicMock(), OTPInvalidException(remaining_attempts=2)
        )
        assert response.status_code == 400
        assert _body(response) == {
            "detail": "Invalid OTP code.",
            "error_code": "OTP_INVALID",
            "remaining_attempts": 2,
        }

    @pytest.mark.asyncio
    async def test_otp_handler_too_many_attempts(self):
        response = await otp_exception_handler(MagicMock(), TooManyAttemptsException())
        assert response.status_code == 429
        assert _body(response)["error_code"] == "OTP_MAX_ATTEMPTS"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "handler,exc",
        [
            (bad_request_exception_handler, WeakPasswordException()),
            (not_found_exception_handler, UserNotFoundException()),
            (conflict_exception_handler, UserAlreadyExistsException()),
            (forbidden_exception_handler, ForbiddenException("Missing permission: x")),
            (notification_exception_handler, NotificationException()),
        ],
    )
    async def test_simple_handlers(self, handler, exc):
        response = await handler(MagicMock(), exc)
        assert response.status_code == exc.status_code
        assert _body(response) == {"detail": exc.message}
