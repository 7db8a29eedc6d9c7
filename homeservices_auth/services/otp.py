"""
One-time passcode issuance and validation.

Each (user, purpose) pair moves through
``no token -> active -> verified | expired | superseded | max attempts``.
Issuing a code supersedes any unused code for the same pair inside the
same transaction, and a partial unique index rejects a concurrent second
insert.

Example usage:
    from homeservices_auth.services.otp import OTPService

    otp_service = OTPService(dispatcher=BrevoNotificationDispatcher())
    await otp_service.generate(
        session, user.id, user.email, OTPPurpose.PASSWORD_RESET
    )
    result = await otp_service.validate(
        session, user.email, submitted_code, OTPPurpose.PASSWORD_RESET
    )
    if not result.valid:
        ...  # branch on result.error_code
"""

import hmac
import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from homeservices_auth.config import otp_logger, settings
from homeservices_auth.db.crud import otp_token_db, user_db
from homeservices_auth.db.models import OTPToken
from homeservices_auth.enums import OTPCodeFormat, OTPErrorCode, OTPPurpose
from homeservices_auth.exceptions.types import (
    InvalidArgumentException,
    OTPGenerationException,
)
from homeservices_auth.schemas.otp import (
    ALPHANUMERIC_LENGTH_RANGE,
    NUMERIC_LENGTH_RANGE,
    OTPPolicy,
    OTPValidationResult,
)
from homeservices_auth.services.notifications import NotificationDispatcher
from homeservices_auth.utils import mask_email

ALPHANUMERIC_ALPHABET = string.ascii_uppercase + string.digits


def normalize_email(email: str) -> str:
    return email.strip().lower()


class OTPService:
    """
    Issues, delivers and checks one-time passcodes.

    Attributes:
        dispatcher: Delivers codes to users.
        policies: Issuance rules per purpose; must cover every OTPPurpose.
        logger: Destination for diagnostic messages. Codes are never logged.
        reset_url: Base URL of the password reset page sent with reset codes.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        policies: dict[OTPPurpose, OTPPolicy] | None = None,
        logger: logging.Logger | None = None,
        reset_url: str | None = None,
    ):
        policies = policies if policies is not None else settings.otp_policies()
        missing = [purpose.value for purpose in OTPPurpose if purpose not in policies]
        if missing:
            raise InvalidArgumentException(
                f"OTP policy missing for purpose(s): {', '.join(missing)}"
            )

        self.dispatcher = dispatcher
        self.policies = policies
        self.logger = logger or otp_logger
        self.reset_url = reset_url or settings.PASSWORD_RESET_URL

    # =========================================================================
    # Code generation
    # =========================================================================

    @staticmethod
    def generate_numeric_code(length: int = 6) -> str:
        """
        Generate a numeric code of ``length`` digits.

        Codes never start with ``0`` and are never one repeated digit.

        Raises:
            InvalidArgumentException: If length is outside 4..10.
        """
        low, high = NUMERIC_LENGTH_RANGE
        if not low <= length <= high:
            raise InvalidArgumentException(
                f"Numeric OTP length must be between {low} and {high}."
            )

        while True:
            code = "".join(str(secrets.randbelow(10)) for _ in range(length))
            if code[0] != "0" and len(set(code)) > 1:
                return code

    @staticmethod
    def generate_alphanumeric_code(length: int = 8) -> str:
        """
        Generate a code drawn uniformly from ``A-Z`` and ``0-9``.

        Raises:
            InvalidArgumentException: If length is outside 6..12.
        """
        low, high = ALPHANUMERIC_LENGTH_RANGE
        if not low <= length <= high:
            raise InvalidArgumentException(
                f"Alphanumeric OTP length must be between {low} and {high}."
            )

        return "".join(secrets.choice(ALPHANUMERIC_ALPHABET) for _ in range(length))

    def generate_code(self, purpose: OTPPurpose) -> str:
        policy = self.policies[purpose]
        if policy.code_format == OTPCodeFormat.NUMERIC:
            return self.generate_numeric_code(policy.length)
        return self.generate_alphanumeric_code(policy.length)

    def build_reset_link(self, email: str, code: str) -> str:
        return f"{self.reset_url}?{urlencode({'email': email, 'code': code})}"

    # =========================================================================
    # Issuance
    # =========================================================================

    async def generate(
        self,
        session: AsyncSession,
        user_id: UUID,
        email: str,
        purpose: OTPPurpose,
        phone_number: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """
        Issue a new code for (user_id, purpose) and deliver it.

        Prior unused codes for the pair are marked used, the new token is
        inserted and delivery is requested, all before a single commit. If
        any step fails the transaction is rolled back, so neither the
        invalidation nor the new token survives.

        Args:
            session: The database session.
            user_id: Owner of the code.
            email: Address to deliver the code to.
            purpose: Flow the code is for.
            phone_number: Optional phone number recorded on the token.
            ip_address: Requesting client's address, for audit.
            user_agent: Requesting client's user agent, for audit.

        Returns:
            str: The issued code. Callers must not echo it to clients.

        Raises:
            OTPGenerationException: If persistence or delivery fails.
        """
        policy = self.policies[purpose]
        email = normalize_email(email)
        target = mask_email(email)

        try:
            invalidated = await otp_token_db.invalidate_previous_tokens(
                session=session,
                user_id=user_id,
                purpose=purpose,
                commit_self=False,
            )

            code = self.generate_code(purpose)
            await otp_token_db.create(
                session=session,
                data={
                    "user_id": user_id,
                    "code": code,
                    "email": email,
                    "phone_number": phone_number,
                    "purpose": purpose,
                    "expires_at": datetime.now(timezone.utc)
                    + timedelta(minutes=policy.expiry_minutes),
                    "max_attempts": policy.max_attempts,
                    "ip_address": ip_address,
                    "user_agent": user_agent,
                },
                commit_self=False,
            )

            user = await user_db.get_by_id(session, user_id)
            username = user.username if user is not None else "User"

            if purpose == OTPPurpose.PASSWORD_RESET:
                await self.dispatcher.send_password_reset(
                    email, username, code, self.build_reset_link(email, code)
                )
            else:
                await self.dispatcher.send_otp(email, username, code, purpose)

            await session.commit()
        except Exception as e:
            await session.rollback()
            self.logger.error(
                f"OTP generation failed: email={target}, purpose={purpose.value}, "
                f"error={type(e).__name__}: {e}"
            )
            raise OTPGenerationException() from e

        self.logger.info(
            f"OTP issued: email={target}, purpose={purpose.value}, "
            f"superseded={invalidated}"
        )
        return code

    # =========================================================================
    # Validation
    # =========================================================================

    async def get_active_token(
        self, session: AsyncSession, email: str, purpose: OTPPurpose
    ) -> OTPToken | None:
        return await otp_token_db.get_active_token(
            session=session, email=normalize_email(email), purpose=purpose
        )

    async def validate(
        self,
        session: AsyncSession,
        email: str,
        code: str,
        purpose: OTPPurpose,
    ) -> OTPValidationResult:
        """
        Check a submitted code and consume it on success.

        Checks run in order: no unused token, expired, attempts exhausted.
        Otherwise the attempt is counted and persisted before the comparison,
        so every wrong guess consumes an attempt. Comparison is case-sensitive
        and constant-time.

        Returns:
            OTPValidationResult: Success with the owner's id and email, or
            a failure carrying an OTPErrorCode.

        Raises:
            DatabaseException: If the token store is unavailable.
        """
        email = normalize_email(email)
        target = mask_email(email)
        token = await self.get_active_token(session, email, purpose)

        if token is None:
            self.logger.warning(
                f"OTP validation failed: no active token for {target}, "
                f"purpose={purpose.value}"
            )
            return OTPValidationResult.failure(
                OTPErrorCode.OTP_NOT_FOUND,
                "No active OTP found. Please request a new one.",
            )

        if token.is_expired():
            self.logger.warning(f"OTP validation failed: expired for {target}")
            return OTPValidationResult.failure(
                OTPErrorCode.OTP_EXPIRED,
                "OTP has expired. Please request a new one.",
            )

        if token.attempt_count >= token.max_attempts:
            self.logger.warning(
                f"OTP validation failed: max attempts reached for {target}"
            )
            return OTPValidationResult.failure(
                OTPErrorCode.OTP_MAX_ATTEMPTS,
                "Too many attempts. Please request a new OTP.",
            )

        matched = hmac.compare_digest(
            token.code.encode("utf-8"), (code or "").encode("utf-8")
        )
        token = await otp_token_db.increment_attempts(
            session, token, commit_self=not matched
        )
        if matched:
            token = await otp_token_db.mark_as_used(session, token)

        if not matched:
            self.logger.warning(
                f"OTP validation failed: invalid code for {target}, "
                f"remaining={token.remaining_attempts}"
            )
            return OTPValidationResult.failure(
                OTPErrorCode.OTP_INVALID,
                "Invalid OTP code.",
                remaining_attempts=token.remaining_attempts,
            )

        self.logger.info(f"OTP verified: email={target}, purpose={purpose.value}")
        return OTPValidationResult.success(user_id=token.user_id, email=token.email)

    async def is_valid(
        self,
        session: AsyncSession,
        email: str,
        code: str,
        purpose: OTPPurpose,
    ) -> bool:
        result = await self.validate(session, email, code, purpose)
        return result.valid

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def invalidate_all(
        self,
        session: AsyncSession,
        user_id: UUID,
        purpose: OTPPurpose,
        commit_self: bool = True,
    ) -> int:
        count = await otp_token_db.invalidate_previous_tokens(
            session=session,
            user_id=user_id,
            purpose=purpose,
            commit_self=commit_self,
        )
        self.logger.info(
            f"OTPs invalidated: user_id={user_id}, purpose={purpose.value}, "
            f"count={count}"
        )
        return count

    async def purge_expired(
        self,
        session: AsyncSession,
        older_than: datetime | None = None,
    ) -> int:
        """Delete tokens whose expiry passed before ``older_than`` (default now)."""
        count = await otp_token_db.purge_expired(
            session=session, older_than=older_than, commit_self=True
        )
        self.logger.info(f"Expired OTPs purged: count={count}")
        return count


__all__ = ["OTPService", "normalize_email"]
