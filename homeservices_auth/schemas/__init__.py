from homeservices_auth.schemas.auth import AccessGrants, LoginResult, UserProfile
from homeservices_auth.schemas.otp import OTPPolicy, OTPValidationResult

__all__ = [
    "AccessGrants",
    "LoginResult",
    "OTPPolicy",
    "OTPValidationResult",
    "UserProfile",
]
