"""
OTP Token model for storing one-time passcodes.

"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, Enum, ForeignKey, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from homeservices_auth.db.models.base import BaseModel, UTCDateTime, utcnow
from homeservices_auth.enums import OTPPurpose


class OTPToken(BaseModel):
    """
    A one-time passcode issued to a user for a single purpose.

    Codes are short-lived and attempt-limited, and are compared in constant
    time. At most one unused token may exist per (user, purpose); the partial
    unique index enforces this even under concurrent issuance.

    Attributes:
        user_id: Owner of the token.
        code: The passcode as delivered.
        email: Address the code was sent to (validation looks tokens up by it).
        phone_number: Optional phone number the code was sent to.
        purpose: The flow the code belongs to.
        expires_at: Instant after which the code is rejected.
        attempt_count: Verification attempts made so far.
        max_attempts: Attempts allowed by the purpose's policy at issue time.
        is_used: Set once consumed or superseded.
        used_at: When the token was consumed or superseded.
        ip_address: Requesting client's address, if known.
        user_agent: Requesting client's user agent, if known.
    """

    __tablename__ = "otp_tokens"
    __table_args__ = (
        Index(
            "uq_otp_tokens_active_user_purpose",
            "user_id",
            "purpose",
            unique=True,
            postgresql_where=text("is_used = false"),
            sqlite_where=text("is_used = 0"),
        ),
        Index("ix_otp_tokens_email_purpose", "email", "purpose"),
    )

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    code: Mapped[str] = mapped_column(String(12), nullable=False)

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    purpose: Mapped[OTPPurpose] = mapped_column(
        Enum(OTPPurpose, native_enum=False, name="otp_purpose"),
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)

    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    used_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)

    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or utcnow())

    @property
    def remaining_attempts(self) -> int:
        return max(self.max_attempts - self.attempt_count, 0)


__all__ = ["OTPToken"]
