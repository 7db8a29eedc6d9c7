from functools import lru_cache
import logging

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from homeservices_auth.enums import OTPCodeFormat, OTPPurpose
from homeservices_auth.logger import init_sentry, setup_logger
from homeservices_auth.schemas.otp import OTPPolicy


class Settings(BaseSettings):
    # Application settings
    ENVIRONMENT: str = "development"  # Options: development, test, production
    API_DOMAIN: str = "http://localhost:8000"
    APP_NAME: str = "HomeServices Auth"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = (
        "Credential core of the home-services marketplace: password hashing, "
        "one-time passcodes and JWT access/refresh tokens."
    )
    DEBUG: bool = False

    # Database settings
    DATABASE_URL: str
    TEST_DATABASE_URL: str = "sqlite+aiosqlite:///:memory:"

    # JWT settings
    JWT_SECRET_KEY: str = "homeservices_jwt_secret_key_change_in_production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "homeservices-api"
    JWT_AUDIENCE: str = "homeservices-clients"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # OTP settings, one block per OTPPurpose
    OTP_LOGIN_LENGTH: int = 6
    OTP_LOGIN_EXPIRY_MINUTES: int = 10
    OTP_LOGIN_MAX_ATTEMPTS: int = 3
    OTP_LOGIN_FORMAT: OTPCodeFormat = OTPCodeFormat.NUMERIC

    OTP_PASSWORD_RESET_LENGTH: int = 8
    OTP_PASSWORD_RESET_EXPIRY_MINUTES: int = 15
    OTP_PASSWORD_RESET_MAX_ATTEMPTS: int = 5
    OTP_PASSWORD_RESET_FORMAT: OTPCodeFormat = OTPCodeFormat.ALPHANUMERIC

    OTP_EMAIL_VERIFICATION_LENGTH: int = 6
    OTP_EMAIL_VERIFICATION_EXPIRY_MINUTES: int = 30
    OTP_EMAIL_VERIFICATION_MAX_ATTEMPTS: int = 3
    OTP_EMAIL_VERIFICATION_FORMAT: OTPCodeFormat = OTPCodeFormat.ALPHANUMERIC

    OTP_TWO_FACTOR_AUTH_LENGTH: int = 6
    OTP_TWO_FACTOR_AUTH_EXPIRY_MINUTES: int = 5
    OTP_TWO_FACTOR_AUTH_MAX_ATTEMPTS: int = 3
    OTP_TWO_FACTOR_AUTH_FORMAT: OTPCodeFormat = OTPCodeFormat.ALPHANUMERIC

    # Account lockout settings
    LOCKOUT_MAX_FAILED_ATTEMPTS: int = 5
    LOCKOUT_DURATION_MINUTES: int = 30

    # Password reset link sent alongside the reset code
    PASSWORD_RESET_URL: str = "http://localhost:3000/reset-password"

    # Brevo settings
    BREVO_API_KEY: str = "your_brevo_api_key"
    BREVO_BASE_URL: str = "https://api.brevo.com/v3"
    BREVO_SENDER_EMAIL: str = "no-reply@homeservices.local"
    BREVO_SENDER_NAME: str = "HomeServices"

    # Sentry settings
    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    model_config: SettingsConfigDict = SettingsConfigDict(  # type: ignore
        env_file=".env",
        extra="ignore",
    )

    def otp_policies(self) -> dict[OTPPurpose, OTPPolicy]:
        """
        Build the issuance policy of every OTP purpose.

        Every member of OTPPurpose must have a settings block; a purpose
        added to the enum without one fails here rather than at issue time.

        Returns:
            dict[OTPPurpose, OTPPolicy]: One policy per purpose.
        """
        policies: dict[OTPPurpose, OTPPolicy] = {}
        for purpose in OTPPurpose:
            prefix = f"OTP_{purpose.name}"
            policies[purpose] = OTPPolicy(
                length=getattr(self, f"{prefix}_LENGTH"),
                expiry_minutes=getattr(self, f"{prefix}_EXPIRY_MINUTES"),
                max_attempts=getattr(self, f"{prefix}_MAX_ATTEMPTS"),
                code_format=getattr(self, f"{prefix}_FORMAT"),
            )
        return policies

    @model_validator(mode="after")
    def _validate_otp_policies(self) -> "Settings":
        """Reject policies whose code length is outside the range of its format."""
        for purpose, policy in self.otp_policies().items():
            low, high = policy.length_range()
            if not low <= policy.length <= high:
                raise ValueError(
                    f"OTP length for {purpose.value} must be between {low} and "
                    f"{high} for {policy.code_format.value} codes, got {policy.length}"
                )
        return self

    @model_validator(mode="after")
    def _validate_production_secrets(self) -> "Settings":
        """Ensure insecure default secrets are overridden in production."""
        if self.ENVIRONMENT != "production":
            return self

        insecure_defaults: dict[str, str] = {
            "JWT_SECRET_KEY": "homeservices_jwt_secret_key_change_in_production",
            "BREVO_API_KEY": "your_brevo_api_key",
        }

        still_default = [
            name
            for name, default_val in insecure_defaults.items()
            if getattr(self, name) == default_val
        ]

        if still_default:
            raise ValueError(
                f"ENVIRONMENT is 'production' but the following secrets still "
                f"have their insecure default values: {', '.join(still_default)}. "
                f"Set them via environment variables or .env file."
            )

        return self


@lru_cache()
def get_settings() -> Settings:
    return Settings()  # type: ignore


settings = get_settings()

if not settings.DEBUG:
    init_sentry(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )

# One logger per component, each with its own file and Sentry tag
app_logger = setup_logger(
    name="app_logger",
    log_file="logs/app.log",
    level=logging.INFO,
    sentry_tag="app",
)
database_logger = setup_logger(
    name="database_logger",
    log_file="logs/database.log",
    level=logging.INFO,
    sentry_tag="database",
)
request_logger = setup_logger(
    name="request_logger",
    log_file="logs/requests.log",
    level=logging.INFO,
    sentry_tag="request",
)
auth_logger = setup_logger(
    name="auth_logger",
    log_file="logs/auth.log",
    level=logging.INFO,
    sentry_tag="auth",
)
otp_logger = setup_logger(
    name="otp_logger",
    log_file="logs/otp.log",
    level=logging.INFO,
    sentry_tag="otp",
)
token_logger = setup_logger(
    name="token_logger",
    log_file="logs/token.log",
    level=logging.INFO,
    sentry_tag="token",
)
notification_logger = setup_logger(
    name="notification_logger",
    log_file="logs/notification.log",
    level=logging.INFO,
    sentry_tag="email",
)
utils_logger = setup_logger(
    name="utils_logger",
    log_file="logs/utils.log",
    level=logging.INFO,
    sentry_tag="utils",
)

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "app_logger",
    "database_logger",
    "request_logger",
    "auth_logger",
    "otp_logger",
    "token_logger",
    "notification_logger",
    "utils_logger",
]
