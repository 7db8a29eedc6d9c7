"""
Password hashing and strength rules.

Hashes are PBKDF2-HMAC-SHA256 with 100,000 iterations, a 16-byte random salt
and a 32-byte derived key, stored as base64(salt || key). The format has no
version prefix, so changing any parameter invalidates existing hashes.

Example usage:
    from homeservices_auth.services.password import PasswordService

    passwords = PasswordService()
    stored = passwords.hash_password("Str0ng!Pass")
    assert passwords.verify_password("Str0ng!Pass", stored)
"""

import base64
import binascii
import hmac
import logging
import secrets
import string

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from homeservices_auth.config import auth_logger
from homeservices_auth.exceptions.types import InvalidArgumentException

SALT_SIZE = 16
KEY_SIZE = 32
ITERATIONS = 100_000
RESET_TOKEN_SIZE = 32
MIN_RESET_TOKEN_BYTES = 16
MIN_PASSWORD_LENGTH = 8
SPECIAL_CHARACTERS = "!@#$%^&*"


class PasswordService:
    """
    Stateless password utilities.

    Attributes:
        logger: Destination for diagnostic messages. Never receives passwords.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or auth_logger

    def _derive(self, password: str, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=salt,
            iterations=ITERATIONS,
        )
        return kdf.derive(password.encode("utf-8"))

    def hash_password(self, password: str | None) -> str:
        """
        Hash a password with a fresh random salt.

        Two calls with the same password produce different strings.

        Args:
            password: The plain password. Must be non-empty.

        Returns:
            str: base64 of the 48-byte salt||key blob.

        Raises:
            InvalidArgumentException: If password is None or empty.
        """
        if not password:
            self.logger.warning("Password hashing attempted with empty password")
            raise InvalidArgumentException("Password cannot be empty.")

        salt = secrets.token_bytes(SALT_SIZE)
        key = self._derive(password, salt)
        return base64.b64encode(salt + key).decode("ascii")

    def verify_password(self, password: str | None, hashed: str | None) -> bool:
        """
        Check a password against a stored hash in constant time.

        Never raises: missing input, malformed base64 and a decoded blob of
        the wrong size all return False.
        """
        if not password or not hashed:
            return False

        try:
            blob = base64.b64decode(hashed, validate=True)
        except (binascii.Error, ValueError):
            self.logger.warning("Password verification failed: malformed hash")
            return False

        if len(blob) != SALT_SIZE + KEY_SIZE:
            self.logger.warning(
                f"Password verification failed: unexpected hash length {len(blob)}"
            )
            return False

        salt, expected = blob[:SALT_SIZE], blob[SALT_SIZE:]
        return hmac.compare_digest(self._derive(password, salt), expected)

    def is_password_strong(self, password: str | None) -> bool:
        """At least 8 characters with lower, upper, digit and a non-alphanumeric."""
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            return False
        return (
            any(c.islower() for c in password)
            and any(c.isupper() for c in password)
            and any(c.isdigit() for c in password)
            and any(not c.isalnum() for c in password)
        )

    def generate_reset_token(self) -> str:
        """Return base64 of 32 cryptographically random bytes."""
        return base64.b64encode(secrets.token_bytes(RESET_TOKEN_SIZE)).decode("ascii")

    def is_valid_reset_token(self, token: str | None) -> bool:
        """
        Structural check only: decodable base64 carrying at least 16 bytes.

        Binding a token to a user and an expiry is the job of the stored
        PASSWORD_RESET OTP, not of this check.
        """
        if not token:
            return False
        try:
            return len(base64.b64decode(token, validate=True)) >= MIN_RESET_TOKEN_BYTES
        except (binascii.Error, ValueError):
            return False

    def generate_random_password(self, length: int = 12) -> str:
        """
        Generate a random password that passes ``is_password_strong``.

        Raises:
            InvalidArgumentException: If length is below the minimum length.
        """
        if length < MIN_PASSWORD_LENGTH:
            raise InvalidArgumentException(
                f"Password length must be at least {MIN_PASSWORD_LENGTH}."
            )

        alphabet = string.ascii_letters + string.digits + SPECIAL_CHARACTERS
        while True:
            candidate = "".join(secrets.choice(alphabet) for _ in range(length))
            if self.is_password_strong(candidate):
                return candidate


__all__ = ["PasswordService"]
