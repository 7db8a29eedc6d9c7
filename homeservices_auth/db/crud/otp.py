"""
CRUD operations for OTPToken model.

This module provides database operations for OTP token management including
lookup of the active token, attempt counting, invalidation and cleanup of
expired tokens.
"""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from homeservices_auth.db.crud.base import BaseDB
from homeservices_auth.db.models.otp import OTPToken
from homeservices_auth.enums import OTPPurpose


class OTPTokenDB(BaseDB[OTPToken]):
    """
    CRUD operations for OTPToken model.

    Tokens are never reused: issuing a new one marks every unused token of
    the same (user, purpose) as used, and a successful verification marks
    the verified token as used.
    """

    def __init__(self):
        super().__init__(model=OTPToken)

    async def get_active_token(
        self,
        session: AsyncSession,
        email: str,
        purpose: OTPPurpose,
    ) -> OTPToken | None:
        """
        Retrieve the newest unused OTP token for an email and purpose.

        Expired tokens are returned too so that callers can tell an expired
        code from a missing one.

        Args:
            session: The async database session.
            email: The email address the OTP was sent to.
            purpose: The purpose of the OTP.

        Returns:
            The most recent unused OTPToken, or None.

        Raises:
            DatabaseException: If a database error occurs.
        """
        result = await self.get_all(
            session=session,
            filters=[
                self.model.email == email,
                self.model.purpose == purpose,
                self.model.is_used.is_(False),
                self.model.is_deleted.is_(False),
            ],
            order_by=[self.model.created_at.desc()],
            limit=1,
        )
        return result[0] if result else None

    async def increment_attempts(
        self,
        session: AsyncSession,
        token: OTPToken,
        commit_self: bool = True,
    ) -> OTPToken:
        """
        Increment the attempt counter for an OTP token.

        Raises:
            DatabaseException: If a database error occurs.
        """
        token.attempt_count += 1
        return await self.save(session, token, commit_self=commit_self)

    async def mark_as_used(
        self,
        session: AsyncSession,
        token: OTPToken,
        commit_self: bool = True,
    ) -> OTPToken:
        """
        Mark an OTP token as consumed.

        Raises:
            DatabaseException: If a database error occurs.
        """
        token.is_used = True
        token.used_at = datetime.now(timezone.utc)
        return await self.save(session, token, commit_self=commit_self)

    async def invalidate_previous_tokens(
        self,
        session: AsyncSession,
        user_id: UUID,
        purpose: OTPPurpose,
        commit_self: bool = True,
    ) -> int:
        """
        Mark every unused token of a user and purpose as used.

        Expired tokens are included so the partial unique index on
        (user_id, purpose) admits the next insert.

        Args:
            session: The async database session.
            user_id: Owner of the tokens.
            purpose: The purpose of the OTP.
            commit_self: Whether to commit the session after updating.

        Returns:
            The number of tokens invalidated.

        Raises:
            DatabaseException: If a database error occurs.
        """
        return await self.update_by_conditions(
            session=session,
            conditions=[
                self.model.user_id == user_id,
                self.model.purpose == purpose,
                self.model.is_used.is_(False),
            ],
            updates={
                "is_used": True,
                "used_at": datetime.now(timezone.utc),
            },
            commit_self=commit_self,
        )

    async def purge_expired(
        self,
        session: AsyncSession,
        older_than: datetime | None = None,
        commit_self: bool = True,
    ) -> int:
        """
        Hard-delete tokens that expired before ``older_than`` (default: now).

        Returns:
            The number of tokens deleted.

        Raises:
            DatabaseException: If a database error occurs.
        """
        cutoff = older_than or datetime.now(timezone.utc)
        return await self.delete_by_conditions(
            session=session,
            conditions=[self.model.expires_at < cutoff],
            commit_self=commit_self,
        )


__all__ = ["OTPTokenDB"]
