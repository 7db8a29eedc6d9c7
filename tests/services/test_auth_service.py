"""
Test suite for AuthService.

- Registration
- Password sign-in and lockout
- OTP sign-in, password reset and email verification
- Password change, logout and unlock

Run all tests:
    pytest tests/services/test_auth_service.py -v

Run with coverage:
    pytest tests/services/test_auth_service.py --cov=homeservices_auth.services.auth --cov-report=term-missing -v
"""

from uuid import uuid4

import pytest

from homeservices_auth.enums import OTPErrorCode, OTPPurpose
from homeservices_auth.exceptions.types import (
    AccountLockedException,
    AuthenticationException,
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
from homeservices_auth.schemas.otp import OTPValidationResult
from homeservices_auth.services.auth import raise_for_otp_result

TEST_PASSWORD = "Str0ng!Pass"
NEW_PASSWORD = "N3w!Password"


class TestRaiseForOTPResult:

    def test_success_is_noop(self):
        raise_for_otp_result(OTPValidationResult.success(uuid4(), "a@example.com"))

    @pytest.mark.parametrize(
        "error_code,exception",
        [
            (OTPErrorCode.OTP_NOT_FOUND, OTPNotFoundException),
            (OTPErrorCode.OTP_EXPIRED, OTPExpiredException),
            (OTPErrorCode.OTP_MAX_ATTEMPTS, TooManyAttemptsException),
            (OTPErrorCode.OTP_INVALID, OTPInvalidException),
        ],
    )
    def test_failure_maps_to_exception(self, error_code, exception):
        with pytest.raises(exception):
            raise_for_otp_result(OTPValidationResult.failure(error_code, "nope"))

    def test_invalid_carries_remaining_attempts(self):
        result = OTPValidationResult.failure(
            OTPErrorCode.OTP_INVALID, "nope", remaining_attempts=2
        )
        with pytest.raises(OTPInvalidException) as exc_info:
            raise_for_otp_result(result)
        assert exc_info.value.details == {
            "error_code": "OTP_INVALID",
            "remaining_attempts": 2,
        }


class TestRegister:

    @pytest.mark.asyncio
    async def test_creates_user_and_welcomes(
        self, db_session, auth_service, password_service, mock_dispatcher
    ):
        user = await auth_service.register(
            db_session,
            username="bob",
            email="Bob@Example.com",
            password=TEST_PASSWORD,
            first_name="Bob",
        )

        assert user.email == "bob@example.com"
        assert user.is_email_confirmed is False
        assert password_service.verify_password(TEST_PASSWORD, user.password_hash)
        mock_dispatcher.send_welcome.assert_awaited_once_with("bob@example.com", "bob")

    @pytest.mark.asyncio
    async def test_weak_password_rejected(self, db_session, auth_service):
        with pytest.raises(WeakPasswordException):
            await auth_service.register(
                db_session, username="bob", email="bob@example.com", password="weak"
            )

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, db_session, test_user, auth_service):
        with pytest.raises(UserAlreadyExistsException):
            await auth_service.register(
                db_session,
                username="other",
                email="JANE@example.com",
                password=TEST_PASSWORD,
            )

    @pytest.mark.asyncio
    async def test_duplicate_username_rejected(
        self, db_session, test_user, auth_service
    ):
        with pytest.raises(UserAlreadyExistsException) as exc_info:
            await auth_service.register(
                db_session,
                username="JDoe",
                email="other@example.com",
                password=TEST_PASSWORD,
            )
        assert "username" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_welcome_failure_keeps_account(
        self, db_session, auth_service, mock_dispatcher
    ):
        mock_dispatcher.send_welcome.side_effect = NotificationException()

        user = await auth_service.register(
            db_session, username="bob", email="bob@example.com", password=TEST_PASSWORD
        )

        assert user.id is not None


class TestLogin:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("identifier", ["jane@example.com", "JANE@EXAMPLE.COM", "jdoe"])
    async def test_success(self, db_session, test_user, auth_service, identifier):
        result = await auth_service.login(db_session, identifier, TEST_PASSWORD)

        assert result.user.email == "jane@example.com"
        assert result.access_token
        assert test_user.last_login_at is not None
        assert test_user.failed_login_attempts == 0

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session, auth_service):
        with pytest.raises(InvalidCredentialsException):
            await auth_service.login(db_session, "nobody@example.com", TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_wrong_password_counts_failure(
        self, db_session, test_user, auth_service
    ):
        with pytest.raises(InvalidCredentialsException):
            await auth_service.login(db_session, "jdoe", "Wr0ng!Pass")
        assert test_user.failed_login_attempts == 1

    @pytest.mark.asyncio
    async def test_inactive_user(self, db_session, inactive_user, auth_service):
        with pytest.raises(AuthenticationException) as exc_info:
            await auth_service.login(db_session, "ghost", TEST_PASSWORD)
        assert not isinstance(exc_info.value, InvalidCredentialsException)

    @pytest.mark.asyncio
    async def test_lockout_after_max_failures(
        self, db_session, test_user, auth_service, mock_dispatcher
    ):
        for _ in range(auth_service.max_failed_attempts - 1):
            with pytest.raises(InvalidCredentialsException):
                await auth_service.login(db_session, "jdoe", "Wr0ng!Pass")

        with pytest.raises(AccountLockedException) as exc_info:
            await auth_service.login(db_session, "jdoe", "Wr0ng!Pass")

        assert exc_info.value.retry_after > 0
        assert test_user.is_locked_out()
        mock_dispatcher.send_lockout_notice.assert_awaited_once()

        # Correct password is refused while locked
        with pytest.raises(AccountLockedException):
            await auth_service.login(db_session, "jdoe", TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(
        self, db_session, test_user, auth_service
    ):
        with pytest.raises(InvalidCredentialsException):
            await auth_service.login(db_session, "jdoe", "Wr0ng!Pass")

        await auth_service.login(db_session, "jdoe", TEST_PASSWORD)

        assert test_user.failed_login_attempts == 0


class TestLoginWithOTP:

    @pytest.mark.asyncio
    async def test_request_and_sign_in(
        self, db_session, test_user, auth_service, mock_dispatcher
    ):
        await auth_service.request_login_otp(db_session, "jane@example.com")
        code = mock_dispatcher.send_otp.await_args.args[2]

        result = await auth_service.login_with_otp(db_session, "jane@example.com", code)

        assert result.user.id == test_user.id
        assert result.refresh_token

    @pytest.mark.asyncio
    async def test_unknown_email_is_silent(
        self, db_session, auth_service, mock_dispatcher
    ):
        await auth_service.request_login_otp(db_session, "nobody@example.com")
        mock_dispatcher.send_otp.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_inactive_user_not_sent(
        self, db_session, inactive_user, auth_service, mock_dispatcher
    ):
        await auth_service.request_login_otp(db_session, "ghost@example.com")
        mock_dispatcher.send_otp.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_wrong_code(self, db_session, test_user, auth_service):
        await auth_service.request_login_otp(db_session, "jane@example.com")

        with pytest.raises(OTPInvalidException) as exc_info:
            await auth_service.login_with_otp(db_session, "jane@example.com", "000000")
        assert exc_info.value.remaining_attempts == 2

    @pytest.mark.asyncio
    async def test_no_code_requested(self, db_session, test_user, auth_service):
        with pytest.raises(OTPNotFoundException):
            await auth_service.login_with_otp(db_session, "jane@example.com", "123456")


class TestPasswordReset:

    @pytest.mark.asyncio
    async def test_reset_flow(
        self, db_session, test_user, auth_service, password_service, mock_dispatcher
    ):
        await auth_service.login(db_session, "jdoe", TEST_PASSWORD)
        await auth_service.request_password_reset(db_session, "jane@example.com")
        code = mock_dispatcher.send_password_reset.await_args.args[2]

        await auth_service.reset_password(
            db_session, "jane@example.com", code, NEW_PASSWORD
        )

        assert password_service.verify_password(NEW_PASSWORD, test_user.password_hash)
        assert test_user.refresh_token_hash is None
        mock_dispatcher.send_password_changed_notice.assert_awaited_once_with(
            "jane@example.com", "jdoe"
        )

    @pytest.mark.asyncio
    async def test_reset_unlocks_account(
        self, db_session, test_user, auth_service, mock_dispatcher
    ):
        for _ in range(auth_service.max_failed_attempts):
            with pytest.raises((InvalidCredentialsException, AccountLockedException)):
                await auth_service.login(db_session, "jdoe", "Wr0ng!Pass")
        assert test_user.is_locked_out()

        await auth_service.request_password_reset(db_session, "jane@example.com")
        code = mock_dispatcher.send_password_reset.await_args.args[2]
        await auth_service.reset_password(
            db_session, "jane@example.com", code, NEW_PASSWORD
        )

        result = await auth_service.login(db_session, "jdoe", NEW_PASSWORD)
        assert result.user.id == test_user.id

    @pytest.mark.asyncio
    async def test_weak_password_does_not_burn_attempt(
        self, db_session, test_user, auth_service, otp_service, mock_dispatcher
    ):
        await auth_service.request_password_reset(db_session, "jane@example.com")
        code = mock_dispatcher.send_password_reset.await_args.args[2]

        with pytest.raises(WeakPasswordException):
            await auth_service.reset_password(
                db_session, "jane@example.com", code, "weak"
            )

        token = await otp_service.get_active_token(
            db_session, "jane@example.com", OTPPurpose.PASSWORD_RESET
        )
        assert token.attempt_count == 0

    @pytest.mark.asyncio
    async def test_unknown_email_is_silent(
        self, db_session, auth_service, mock_dispatcher
    ):
        await auth_service.request_password_reset(db_session, "nobody@example.com")
        mock_dispatcher.send_password_reset.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exhausted_code_rejected(
        self, db_session, test_user, auth_service, mock_dispatcher
    ):
        await auth_service.request_password_reset(db_session, "jane@example.com")
        code = mock_dispatcher.send_password_reset.await_args.args[2]

        for _ in range(5):
            with pytest.raises(OTPInvalidException):
                await auth_service.reset_password(
                    db_session, "jane@example.com", "wrong", NEW_PASSWORD
                )

        with pytest.raises(TooManyAttemptsException):
            await auth_service.reset_password(
                db_session, "jane@example.com", code, NEW_PASSWORD
            )


class TestEmailVerification:

    @pytest.mark.asyncio
    async def test_confirm_email(
        self, db_session, auth_service, mock_dispatcher
    ):
        user = await auth_service.register(
            db_session, username="bob", email="bob@example.com", password=TEST_PASSWORD
        )
        await auth_service.request_email_verification(db_session, user.id)
        args = mock_dispatcher.send_otp.await_args.args
        assert args[3] == OTPPurpose.EMAIL_VERIFICATION

        confirmed = await auth_service.confirm_email(
            db_session, "bob@example.com", args[2]
        )

        assert confirmed.is_email_confirmed is True

    @pytest.mark.asyncio
    async def test_already_confirmed_not_sent(
        self, db_session, test_user, auth_service, mock_dispatcher
    ):
        await auth_service.request_email_verification(db_session, test_user.id)
        mock_dispatcher.send_otp.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session, auth_service):
        with pytest.raises(UserNotFoundException):
            await auth_service.request_email_verification(db_session, uuid4())


class TestAccountMaintenance:

    @pytest.mark.asyncio
    async def test_change_password(
        self, db_session, test_user, auth_service, password_service
    ):
        login = await auth_service.login(db_session, "jdoe", TEST_PASSWORD)

        await auth_service.change_password(
            db_session, test_user.id, TEST_PASSWORD, NEW_PASSWORD
        )

        assert password_service.verify_password(NEW_PASSWORD, test_user.password_hash)
        with pytest.raises(AuthenticationException):
            await auth_service.tokens.refresh(db_session, login.refresh_token)

    @pytest.mark.asyncio
    async def test_change_password_wrong_current(
        self, db_session, test_user, auth_service
    ):
        with pytest.raises(InvalidCredentialsException) as exc_info:
            await auth_service.change_password(
                db_session, test_user.id, "Wr0ng!Pass", NEW_PASSWORD
            )
        assert exc_info.value.message == "Current password is incorrect."

    @pytest.mark.asyncio
    async def test_change_password_weak_new(self, db_session, test_user, auth_service):
        with pytest.raises(WeakPasswordException):
            await auth_service.change_password(
                db_session, test_user.id, TEST_PASSWORD, "weak"
            )

    @pytest.mark.asyncio
    async def test_logout_revokes_refresh_token(
        self, db_session, test_user, auth_service
    ):
        login = await auth_service.login(db_session, "jdoe", TEST_PASSWORD)

        assert await auth_service.logout(db_session, test_user.id) is True

        with pytest.raises(AuthenticationException):
            await auth_service.tokens.refresh(db_session, login.refresh_token)

    @pytest.mark.asyncio
    async def test_unlock_user(self, db_session, test_user, auth_service):
        for _ in range(auth_service.max_failed_attempts):
            with pytest.raises((InvalidCredentialsException, AccountLockedException)):
                await auth_service.login(db_session, "jdoe", "Wr0ng!Pass")

        user = await auth_service.unlock_user(db_session, test_user.id)

        assert user.is_locked_out() is False
        assert user.failed_login_attempts == 0

    @pytest.mark.asyncio
    async def test_unlock_unknown_user(self, db_session, auth_service):
        with pytest.raises(UserNotFoundException):
            await auth_service.unlock_user(db_session, uuid4())
