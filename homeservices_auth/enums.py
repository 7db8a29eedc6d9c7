from enum import Enum


class OTPPurpose(str, Enum):
    """Flow an OTP token was issued for."""

    LOGIN = "login"
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFICATION = "email_verification"
    TWO_FACTOR_AUTH = "two_factor_auth"


class OTPCodeFormat(str, Enum):
    """Alphabet an OTP code is drawn from."""

    NUMERIC = "numeric"  # 0-9
    ALPHANUMERIC = "alphanumeric"  # A-Z and 0-9


class OTPErrorCode(str, Enum):
    """Machine-readable reasons an OTP was rejected."""

    OTP_NOT_FOUND = "OTP_NOT_FOUND"
    OTP_EXPIRED = "OTP_EXPIRED"
    OTP_MAX_ATTEMPTS = "OTP_MAX_ATTEMPTS"
    OTP_INVALID = "OTP_INVALID"
