from homeservices_auth.services.auth import AuthService
from homeservices_auth.services.notifications import (
    BrevoNotificationDispatcher,
    NotificationDispatcher,
)
from homeservices_auth.services.otp import OTPService
from homeservices_auth.services.password import PasswordService
from homeservices_auth.services.token import TokenService


def build_auth_service(
    dispatcher: NotificationDispatcher | None = None,
    tokens: TokenService | None = None,
) -> AuthService:
    """Wire an AuthService from settings, defaulting to Brevo for mail."""
    dispatcher = dispatcher or BrevoNotificationDispatcher()
    return AuthService(
        passwords=PasswordService(),
        otps=OTPService(dispatcher=dispatcher),
        tokens=tokens or TokenService(),
        dispatcher=dispatcher,
    )


__all__ = [
    "AuthService",
    "BrevoNotificationDispatcher",
    "NotificationDispatcher",
    "OTPService",
    "PasswordService",
    "TokenService",
    "build_auth_service",
]
