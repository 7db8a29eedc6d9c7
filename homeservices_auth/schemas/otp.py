"""
OTP value types shared by configuration and the OTP service.
"""

from dataclasses import dataclass
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from homeservices_auth.enums import OTPCodeFormat, OTPErrorCode

NUMERIC_LENGTH_RANGE = (4, 10)
ALPHANUMERIC_LENGTH_RANGE = (6, 12)


class OTPPolicy(BaseModel):
    """Issuance rules for one OTP purpose."""

    model_config = ConfigDict(frozen=True)

    length: int = Field(gt=0)
    expiry_minutes: int = Field(gt=0)
    max_attempts: int = Field(gt=0)
    code_format: OTPCodeFormat

    def length_range(self) -> tuple[int, int]:
        if self.code_format == OTPCodeFormat.NUMERIC:
            return NUMERIC_LENGTH_RANGE
        return ALPHANUMERIC_LENGTH_RANGE


@dataclass
class OTPValidationResult:
    """
    Outcome of checking a submitted OTP.

    Attributes:
        valid: True when the code matched and the token was consumed.
        user_id: Owner of the token on success.
        email: Address the token was issued to on success.
        error_code: Rejection reason when ``valid`` is False.
        message: Human-readable description of the outcome.
        remaining_attempts: Guesses left after an OTP_INVALID rejection.
    """

    valid: bool
    user_id: UUID | None = None
    email: str | None = None
    error_code: OTPErrorCode | None = None
    message: str = ""
    remaining_attempts: int | None = None

    @classmethod
    def success(cls, user_id: UUID, email: str) -> "OTPValidationResult":
        return cls(valid=True, user_id=user_id, email=email, message="OTP verified.")

    @classmethod
    def failure(
        cls,
        error_code: OTPErrorCode,
        message: str,
        remaining_attempts: int | None = None,
    ) -> "OTPValidationResult":
        return cls(
            valid=False,
            error_code=error_code,
            message=message,
            remaining_attempts=remaining_attempts,
        )


__all__ = [
    "ALPHANUMERIC_LENGTH_RANGE",
    "NUMERIC_LENGTH_RANGE",
    "OTPPolicy",
    "OTPValidationResult",
]
