"""
Authentication Service for user-facing credential flows.

This module composes the password, OTP and token services into the flows a
controller layer calls:
- Registration with strength and uniqueness checks
- Password sign-in with failed-attempt lockout
- Passwordless sign-in with a LOGIN code
- Password reset with a PASSWORD_RESET code
- Email verification with an EMAIL_VERIFICATION code
- Password change, logout and administrative unlock

OTPService.validate returns results; this layer turns rejected results into
typed exceptions so the HTTP boundary can map them to status codes.

Example usage:
    from homeservices_auth.services import build_auth_service

    auth = build_auth_service()
    result = await auth.login(session, "jane@example.com", "Str0ng!Pass")
"""

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from homeservices_auth.config import auth_logger, settings
from homeservices_auth.db.crud import user_db
from homeservices_auth.db.models import User
from homeservices_auth.enums import OTPErrorCode, OTPPurpose
from homeservices_auth.exceptions.types import (
    AccountLockedException,
    AuthenticationException,
    InvalidCredentialsException,
    OTPExpiredException,
    OTPInvalidException,
    OTPNotFoundException,
    TooManyAttemptsException,
    UserAlreadyExistsException,
    UserNotFoundException,
    WeakPasswordException,
)
from homeservices_auth.schemas.auth import LoginResult
from homeservices_auth.schemas.otp import OTPValidationResult
from homeservices_auth.services.notifications import NotificationDispatcher
from homeservices_auth.services.otp import OTPService, normalize_email
from homeservices_auth.services.password import PasswordService
from homeservices_auth.services.token import TokenService
from homeservices_auth.utils import mask_email


def raise_for_otp_result(result: OTPValidationResult) -> None:
    """Raise the exception matching a rejected OTP result; no-op on success."""
    if result.valid:
        return
    if result.error_code == OTPErrorCode.OTP_NOT_FOUND:
        raise OTPNotFoundException()
    if result.error_code == OTPErrorCode.OTP_EXPIRED:
        raise OTPExpiredException()
    if result.error_code == OTPErrorCode.OTP_MAX_ATTEMPTS:
        raise TooManyAttemptsException()
    raise OTPInvalidException(remaining_attempts=result.remaining_attempts)


class AuthService:
    """
    Credential flows built on the password, OTP and token services.

    Attributes:
        passwords: Hashing and strength rules.
        otps: Code issuance and validation.
        tokens: Access/refresh token issuance.
        dispatcher: Account notifications.
        max_failed_attempts: Failed sign-ins that trigger a lockout.
        lockout_duration: How long a lockout lasts.
        logger: Destination for diagnostic messages.
    """

    def __init__(
        self,
        passwords: PasswordService,
        otps: OTPService,
        tokens: TokenService,
        dispatcher: NotificationDispatcher,
        max_failed_attempts: int | None = None,
        lockout_minutes: int | None = None,
        logger: logging.Logger | None = None,
    ):
        self.passwords = passwords
        self.otps = otps
        self.tokens = tokens
        self.dispatcher = dispatcher
        self.max_failed_attempts = (
            max_failed_attempts or settings.LOCKOUT_MAX_FAILED_ATTEMPTS
        )
        self.lockout_duration = timedelta(
            minutes=lockout_minutes or settings.LOCKOUT_DURATION_MINUTES
        )
        self.logger = logger or auth_logger

    # =========================================================================
    # Registration
    # =========================================================================

    async def register(
        self,
        session: AsyncSession,
        username: str,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        phone_number: str | None = None,
    ) -> User:
        """
        Create a user account and send the welcome email.

        A failed welcome email is logged but does not undo the registration.

        Raises:
            WeakPasswordException: If the password fails the strength rules.
            UserAlreadyExistsException: If the email or username is taken.
        """
        email = normalize_email(email)
        username = username.strip()

        if not self.passwords.is_password_strong(password):
            self.logger.warning(f"Registration failed: weak password {mask_email(email)}")
            raise WeakPasswordException()

        if await user_db.get_by_email(session, email) is not None:
            self.logger.warning(f"Registration failed: email exists {mask_email(email)}")
            raise UserAlreadyExistsException()

        if await user_db.get_by_username(session, username) is not None:
            self.logger.warning(f"Registration failed: username exists {username}")
            raise UserAlreadyExistsException("User with this username already exists.")

        user = await user_db.create(
            session=session,
            data={
                "username": username,
                "email": email,
                "password_hash": self.passwords.hash_password(password),
                "first_name": first_name,
                "last_name": last_name,
                "phone_number": phone_number,
            },
            commit_self=True,
        )
        self.logger.info(f"User registered: {mask_email(email)}")

        try:
            await self.dispatcher.send_welcome(user.email, user.username)
        except Exception as e:
            self.logger.error(
                f"Welcome email failed for {mask_email(email)}: {type(e).__name__}"
            )

        return user

    # =========================================================================
    # Password sign-in
    # =========================================================================

    def _lockout_seconds(self, user: User) -> int | None:
        if user.lockout_end_at is None:
            return None
        remaining = user.lockout_end_at - datetime.now(timezone.utc)
        return max(int(remaining.total_seconds()), 1)

    async def login(
        self,
        session: AsyncSession,
        email_or_username: str,
        password: str,
    ) -> LoginResult:
        """
        Sign in with a password and issue tokens.

        Each wrong password is counted on the user; reaching
        ``max_failed_attempts`` locks the account for ``lockout_duration``
        and sends a lockout notice. A successful sign-in clears the count.

        Raises:
            InvalidCredentialsException: Unknown user or wrong password.
            AccountLockedException: The account is currently locked.
            AuthenticationException: The account is deactivated.
        """
        user = await user_db.get_by_email_or_username(session, email_or_username)
        if user is None:
            self.logger.warning("Signin failed: user not found")
            raise InvalidCredentialsException()

        target = mask_email(user.email)

        if user.is_locked_out():
            self.logger.warning(f"Signin failed: account locked {target}")
            raise AccountLockedException(retry_after=self._lockout_seconds(user))

        if not user.is_active:
            self.logger.warning(f"Signin failed: user deactivated {target}")
            raise AuthenticationException("This account has been deactivated")

        if not self.passwords.verify_password(password, user.password_hash):
            locked = user.register_failed_login(
                self.max_failed_attempts, self.lockout_duration
            )
            await user_db.save(session, user, commit_self=True)
            self.logger.warning(
                f"Signin failed: wrong password {target}, "
                f"failed_attempts={user.failed_login_attempts}"
            )
            if locked:
                self.logger.warning(f"Account locked: {target}")
                await self._notify_lockout(user)
                raise AccountLockedException(retry_after=self._lockout_seconds(user))
            raise InvalidCredentialsException()

        user.register_successful_login()
        result = await self.tokens.issue_for_user(session, user)
        self.logger.info(f"User signin: {target}")
        return result

    async def _notify_lockout(self, user: User) -> None:
        try:
            await self.dispatcher.send_lockout_notice(
                user.email, user.username, user.lockout_end_at
            )
        except Exception as e:
            self.logger.error(
                f"Lockout notice failed for {mask_email(user.email)}: "
                f"{type(e).__name__}"
            )

    # =========================================================================
    # OTP flows
    # =========================================================================

    async def _verify_otp(
        self,
        session: AsyncSession,
        email: str,
        code: str,
        purpose: OTPPurpose,
    ) -> User:
        result = await self.otps.validate(session, email, code, purpose)
        raise_for_otp_result(result)

        user = await user_db.get_by_id(session, result.user_id)
        if user is None or user.is_deleted:
            raise UserNotFoundException()
        return user

    async def request_login_otp(
        self,
        session: AsyncSession,
        email: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """
        Send a LOGIN code to a registered, active, unlocked user.

        Unknown emails are accepted silently so the endpoint cannot be used
        to probe for accounts.
        """
        user = await user_db.get_by_email(session, email)
        if user is None or not user.is_active or user.is_locked_out():
            self.logger.info(f"Login OTP not sent: ineligible {mask_email(email)}")
            return

        await self.otps.generate(
            session,
            user.id,
            user.email,
            OTPPurpose.LOGIN,
            phone_number=user.phone_number,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def login_with_otp(
        self, session: AsyncSession, email: str, code: str
    ) -> LoginResult:
        """
        Exchange a LOGIN code for tokens.

        Raises:
            OTPException: If the code is rejected.
            AccountLockedException: The account was locked after the code was sent.
            AuthenticationException: The account is deactivated.
        """
        user = await self._verify_otp(session, email, code, OTPPurpose.LOGIN)

        if user.is_locked_out():
            raise AccountLockedException(retry_after=self._lockout_seconds(user))
        if not user.is_active:
            raise AuthenticationException("This account has been deactivated")

        user.register_successful_login()
        result = await self.tokens.issue_for_user(session, user)
        self.logger.info(f"User signin via OTP: {mask_email(user.email)}")
        return result

    async def request_password_reset(
        self,
        session: AsyncSession,
        email: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """Send a PASSWORD_RESET code; unknown emails are accepted silently."""
        user = await user_db.get_by_email(session, email)
        if user is None:
            self.logger.info(f"Password reset not sent: unknown {mask_email(email)}")
            return

        await self.otps.generate(
            session,
            user.id,
            user.email,
            OTPPurpose.PASSWORD_RESET,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def reset_password(
        self,
        session: AsyncSession,
        email: str,
        code: str,
        new_password: str,
    ) -> None:
        """
        Set a new password using a PASSWORD_RESET code.

        The strength check runs first so a weak password does not burn an
        attempt. On success the lockout is cleared, the refresh token is
        revoked and a password-changed notice is sent.

        Raises:
            WeakPasswordException: If the new password fails the strength rules.
            OTPException: If the code is rejected.
        """
        if not self.passwords.is_password_strong(new_password):
            raise WeakPasswordException()

        user = await self._verify_otp(session, email, code, OTPPurpose.PASSWORD_RESET)

        user.password_hash = self.passwords.hash_password(new_password)
        user.unlock()
        user.clear_refresh_token()
        await user_db.save(session, user, commit_self=True)
        self.logger.info(f"Password reset: {mask_email(user.email)}")

        await self._notify_password_changed(user)

    async def request_email_verification(
        self,
        session: AsyncSession,
        user_id: UUID,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """
        Send an EMAIL_VERIFICATION code to the user's address.

        Raises:
            UserNotFoundException: If the user does not exist.
        """
        user = await user_db.get_by_id(session, user_id)
        if user is None or user.is_deleted:
            raise UserNotFoundException()
        if user.is_email_confirmed:
            self.logger.info(f"Email already confirmed: {mask_email(user.email)}")
            return

        await self.otps.generate(
            session,
            user.id,
            user.email,
            OTPPurpose.EMAIL_VERIFICATION,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def confirm_email(self, session: AsyncSession, email: str, code: str) -> User:
        """
        Mark the user's email confirmed using an EMAIL_VERIFICATION code.

        Raises:
            OTPException: If the code is rejected.
        """
        user = await self._verify_otp(
            session, email, code, OTPPurpose.EMAIL_VERIFICATION
        )
        user.is_email_confirmed = True
        user = await user_db.save(session, user, commit_self=True)
        self.logger.info(f"Email confirmed: {mask_email(user.email)}")
        return user

    # =========================================================================
    # Account maintenance
    # =========================================================================

    async def change_password(
        self,
        session: AsyncSession,
        user_id: UUID,
        current_password: str,
        new_password: str,
    ) -> None:
        """
        Replace the password of a signed-in user.

        The refresh token is revoked so other sessions must sign in again.

        Raises:
            UserNotFoundException: If the user does not exist.
            InvalidCredentialsException: If the current password is wrong.
            WeakPasswordException: If the new password fails the strength rules.
        """
        user = await user_db.get_by_id(session, user_id)
        if user is None or user.is_deleted:
            raise UserNotFoundException()

        if not self.passwords.verify_password(current_password, user.password_hash):
            self.logger.warning(
                f"Password change failed: wrong password {mask_email(user.email)}"
            )
            raise InvalidCredentialsException("Current password is incorrect.")

        if not self.passwords.is_password_strong(new_password):
            raise WeakPasswordException()

        user.password_hash = self.passwords.hash_password(new_password)
        user.clear_refresh_token()
        await user_db.save(session, user, commit_self=True)
        self.logger.info(f"Password changed: {mask_email(user.email)}")

        await self._notify_password_changed(user)

    async def _notify_password_changed(self, user: User) -> None:
        try:
            await self.dispatcher.send_password_changed_notice(
                user.email, user.username
            )
        except Exception as e:
            self.logger.error(
                f"Password change notice failed for {mask_email(user.email)}: "
                f"{type(e).__name__}"
            )

    async def logout(self, session: AsyncSession, user_id: UUID) -> bool:
        return await self.tokens.revoke(session, user_id)

    async def unlock_user(self, session: AsyncSession, user_id: UUID) -> User:
        """
        Clear a lockout and the failed sign-in count.

        Raises:
            UserNotFoundException: If the user does not exist.
        """
        user = await user_db.get_by_id(session, user_id)
        if user is None or user.is_deleted:
            raise UserNotFoundException()

        user.unlock()
        user = await user_db.save(session, user, commit_self=True)
        self.logger.info(f"User unlocked: {mask_email(user.email)}")
        return user


__all__ = ["AuthService", "raise_for_otp_result"]
