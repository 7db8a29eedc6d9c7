from fastapi import status

from homeservices_auth.enums import OTPErrorCode


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code or status.HTTP_500_INTERNAL_SERVER_ERROR
        self.details = details
        super().__init__(message)


class DatabaseException(AppException):
    """Exception raised for database-related errors."""

    def __init__(self, message: str = "A database error occurred."):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class AuthenticationException(AppException):
    """
    Exception raised when a caller cannot be authenticated.

    Token validation deliberately uses one generic message for every
    failure so callers learn nothing about which check failed.
    """

    def __init__(self, message: str = "Authentication failed."):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class InvalidCredentialsException(AuthenticationException):
    """Exception raised when provided credentials are invalid."""

    def __init__(self, message: str = "Invalid email or password."):
        super().__init__(message)


class AccountLockedException(AppException):
    """Exception raised when sign-in is attempted on a locked account."""

    def __init__(
        self,
        message: str = "Account is temporarily locked. Please try again later.",
        retry_after: int | None = None,
    ):
        super().__init__(message, status.HTTP_423_LOCKED)
        self.retry_after = retry_after


class BadRequestException(AppException):
    """Exception raised for bad request errors."""

    def __init__(self, message: str = "Bad request."):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class InvalidArgumentException(BadRequestException):
    """Exception raised when a caller passes a value outside its contract."""

    def __init__(self, message: str = "Invalid argument."):
        super().__init__(message)


class WeakPasswordException(BadRequestException):
    """Exception raised when a new password fails the strength rules."""

    def __init__(
        self,
        message: str = (
            "Password must be at least 8 characters and contain upper and lower "
            "case letters, a digit and a special character."
        ),
    ):
        super().__init__(message)


class OTPException(AppException):
    """Base for OTP rejections surfaced to HTTP callers."""

    error_code: OTPErrorCode = OTPErrorCode.OTP_INVALID

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        remaining_attempts: int | None = None,
    ):
        details: dict = {"error_code": self.error_code.value}
        if remaining_attempts is not None:
            details["remaining_attempts"] = remaining_attempts
        super().__init__(message, status_code, details)
        self.remaining_attempts = remaining_attempts


class OTPNotFoundException(OTPException):
    """Exception raised when no active OTP exists for the request."""

    error_code = OTPErrorCode.OTP_NOT_FOUND

    def __init__(self, message: str = "No active OTP found. Please request a new one."):
        super().__init__(message)


class OTPExpiredException(OTPException):
    """Exception raised when OTP has expired."""

    error_code = OTPErrorCode.OTP_EXPIRED

    def __init__(self, message: str = "OTP has expired. Please request a new one."):
        super().__init__(message)


class OTPInvalidException(OTPException):
    """Exception raised when OTP is invalid."""

    error_code = OTPErrorCode.OTP_INVALID

    def __init__(
        self,
        message: str = "Invalid OTP code.",
        remaining_attempts: int | None = None,
    ):
        super().__init__(message, remaining_attempts=remaining_attempts)


class TooManyAttemptsException(OTPException):
    """Exception raised when too many OTP verification attempts."""

    error_code = OTPErrorCode.OTP_MAX_ATTEMPTS

    def __init__(self, message: str = "Too many attempts. Please request a new OTP."):
        super().__init__(message, status.HTTP_429_TOO_MANY_REQUESTS)


class OTPGenerationException(AppException):
    """Exception raised when an OTP could not be stored or delivered."""

    def __init__(self, message: str = "Failed to generate OTP. Please try again."):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class NotificationException(AppException):
    """Exception raised when the mail provider rejects or drops a message."""

    def __init__(
        self,
        message: str = "Failed to deliver notification.",
        status_code: int = status.HTTP_502_BAD_GATEWAY,
    ):
        super().__init__(message, status_code)


class NotFoundException(AppException):
    """Exception raised when a resource is not found."""

    def __init__(self, message: str = "Resource not found."):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class UserNotFoundException(NotFoundException):
    """Exception raised when a user is not found."""

    def __init__(self, message: str = "User not found."):
        super().__init__(message)


class ConflictException(AppException):
    """Exception raised when there's a conflict with existing resources."""

    def __init__(self, message: str = "Resource conflict."):
        super().__init__(message, status.HTTP_409_CONFLICT)


class UserAlreadyExistsException(ConflictException):
    """Exception raised when a user already exists."""

    def __init__(self, message: str = "User with this email already exists."):
        super().__init__(message)


class ForbiddenException(AppException):
    """Exception raised when access is forbidden."""

    def __init__(self, message: str = "Access forbidden."):
        super().__init__(message, status.HTTP_403_FORBIDDEN)


__all__ = [
    "AppException",
    "DatabaseException",
    "AuthenticationException",
    "InvalidCredentialsException",
    "AccountLockedException",
    "BadRequestException",
    "InvalidArgumentException",
    "WeakPasswordException",
    "OTPException",
    "OTPNotFoundException",
    "OTPExpiredException",
    "OTPInvalidException",
    "TooManyAttemptsException",
    "OTPGenerationException",
    "NotificationException",
    "NotFoundException",
    "UserNotFoundException",
    "ConflictException",
    "UserAlreadyExistsException",
    "ForbiddenException",
]
