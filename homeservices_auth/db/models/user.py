"""
User account model.

A user owns at most one active refresh token, stored as a SHA-256 hash on
the row itself. Failed sign-ins are counted on the row and lock the account
for a fixed window once the threshold is reached.
"""

from datetime import datetime, timedelta

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from homeservices_auth.db.models.base import BaseModel, UTCDateTime, utcnow


class User(BaseModel):
    __tablename__ = "users"

    username: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        index=True,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_email_confirmed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    is_phone_confirmed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Lockout
    failed_login_attempts: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    lockout_end_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )

    # Single active refresh token
    refresh_token_hash: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        unique=True,
        index=True,
    )
    refresh_token_expires_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def is_locked_out(self, now: datetime | None = None) -> bool:
        if self.lockout_end_at is None:
            return False
        return self.lockout_end_at > (now or utcnow())

    def register_failed_login(
        self, max_attempts: int, lockout_duration: timedelta
    ) -> bool:
        """
        Count a failed sign-in and lock the account once ``max_attempts`` is hit.

        Returns:
            bool: True if this failure locked the account.
        """
        self.failed_login_attempts = (self.failed_login_attempts or 0) + 1
        if self.failed_login_attempts >= max_attempts:
            self.lockout_end_at = utcnow() + lockout_duration
            return True
        return False

    def register_successful_login(self) -> None:
        self.last_login_at = utcnow()
        self.failed_login_attempts = 0
        self.lockout_end_at = None

    def unlock(self) -> None:
        self.failed_login_attempts = 0
        self.lockout_end_at = None

    def set_refresh_token(self, token_hash: str, expires_at: datetime) -> None:
        self.refresh_token_hash = token_hash
        self.refresh_token_expires_at = expires_at

    def clear_refresh_token(self) -> None:
        self.refresh_token_hash = None
        self.refresh_token_expires_at = None

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"


__all__ = ["User"]
