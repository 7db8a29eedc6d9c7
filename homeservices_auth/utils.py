"""
Utility functions shared by the credential services.

- JWT encoding and decoding with issuer/audience checks
- SHA-256 hashing of opaque tokens for storage
- Masking of email addresses for logs
"""

from datetime import datetime, timedelta, timezone
import hashlib
from typing import Any
import uuid

import jwt

from homeservices_auth.config import settings, utils_logger


def create_jwt_token(
    data: dict[str, Any] | None,
    expires_delta: timedelta | None = None,
    *,
    secret_key: str | None = None,
    algorithm: str | None = None,
    issuer: str | None = None,
    audience: str | None = None,
) -> str:
    """
    Create a signed JWT carrying ``data`` plus the registered claims.

    ``exp``, ``iat`` and ``jti`` are always set; ``iss`` and ``aud`` are set
    from the arguments or, when omitted, from settings.

    Args:
        data: Claims to encode. Cannot be None.
        expires_delta: Lifetime of the token. Defaults to
            ``ACCESS_TOKEN_EXPIRE_MINUTES``. Negative values produce an
            already-expired token.
        secret_key: HMAC key. Defaults to ``JWT_SECRET_KEY``.
        algorithm: Signing algorithm. Defaults to ``JWT_ALGORITHM``.
        issuer: ``iss`` claim. Defaults to ``JWT_ISSUER``.
        audience: ``aud`` claim. Defaults to ``JWT_AUDIENCE``.

    Returns:
        str: Encoded JWT string (header.payload.signature).

    Raises:
        ValueError: If data is None.

    Examples:
        >>> token = create_jwt_token({"sub": "123"})
        >>> len(token.split("."))
        3
    """
    if data is None:
        utils_logger.error("Attempted to create JWT token with None data")
        raise ValueError("Data cannot be None")

    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    now = datetime.now(timezone.utc)
    expire = now + expires_delta

    to_encode = data.copy()
    to_encode["exp"] = expire
    to_encode["iat"] = now
    to_encode["jti"] = str(uuid.uuid4())
    to_encode["iss"] = issuer or settings.JWT_ISSUER
    to_encode["aud"] = audience or settings.JWT_AUDIENCE

    try:
        encoded_jwt = jwt.encode(
            to_encode,
            secret_key or settings.JWT_SECRET_KEY,
            algorithm=algorithm or settings.JWT_ALGORITHM,
        )
    except Exception as e:
        utils_logger.error(f"Failed to create JWT token: {type(e).__name__} - {str(e)}")
        raise

    utils_logger.debug(f"JWT token created with expiration: {expire.isoformat()}")
    return encoded_jwt


def decode_jwt_token(
    token: str | None,
    *,
    secret_key: str | None = None,
    algorithm: str | None = None,
    issuer: str | None = None,
    audience: str | None = None,
) -> dict[str, Any] | None:
    """
    Decode and fully validate a JWT.

    Signature, issuer, audience and expiry are all checked with zero clock
    leeway, and ``exp``, ``iat``, ``sub``, ``iss`` and ``aud`` must be present.

    Args:
        token: The JWT string. None or empty is treated as invalid.
        secret_key: HMAC key. Defaults to ``JWT_SECRET_KEY``.
        algorithm: Expected algorithm. Defaults to ``JWT_ALGORITHM``.
        issuer: Expected ``iss``. Defaults to ``JWT_ISSUER``.
        audience: Expected ``aud``. Defaults to ``JWT_AUDIENCE``.

    Returns:
        dict[str, Any] | None: The claims, or None for any invalid, expired
        or tampered token.
    """
    if not token:
        utils_logger.warning(
            f"JWT token decoding attempted with invalid token: "
            f"{'None' if token is None else 'empty string'}"
        )
        return None

    try:
        return jwt.decode(
            token,
            secret_key or settings.JWT_SECRET_KEY,
            algorithms=[algorithm or settings.JWT_ALGORITHM],
            issuer=issuer or settings.JWT_ISSUER,
            audience=audience or settings.JWT_AUDIENCE,
            leeway=0,
            options={"require": ["exp", "iat", "sub", "iss", "aud"]},
        )
    except jwt.ExpiredSignatureError:
        utils_logger.warning("JWT token decoding failed: token has expired")
        return None
    except jwt.InvalidTokenError as e:
        utils_logger.warning(
            f"JWT token decoding failed: invalid token - {type(e).__name__}"
        )
        return None


def hash_token(token: str) -> str:
    """
    Hash an opaque token with SHA-256 so it can be stored and looked up
    without keeping the plaintext.

    Returns:
        str: 64 hex characters.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def mask_email(email: str | None) -> str:
    """
    Mask the local part of an email address for logs.

    Examples:
        >>> mask_email("jane.doe@example.com")
        'j***e@example.com'
        >>> mask_email("al@example.com")
        'a*@example.com'
        >>> mask_email("A@Example.com")
        '*@example.com'
    """
    if not email or "@" not in email:
        return "***"

    local, domain = email.strip().lower().split("@", 1)
    if len(local) <= 1:
        masked = "*"
    elif len(local) == 2:
        masked = f"{local[0]}*"
    else:
        masked = f"{local[0]}***{local[-1]}"
    return f"{masked}@{domain}"


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


__all__ = [
    "create_jwt_token",
    "decode_jwt_token",
    "hash_token",
    "mask_email",
    "ensure_utc",
]
