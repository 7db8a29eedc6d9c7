"""
Test suite for PasswordService.

- Hash format and salting
- Verification, including malformed stored hashes
- Strength rules
- Reset tokens and random passwords

Run all tests:
    pytest tests/services/test_password_service.py -v

Run with coverage:
    pytest tests/services/test_password_service.py --cov=homeservices_auth.services.password --cov-report=term-missing -v
"""

import base64
from unittest.mock import patch

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import pytest

from homeservices_auth.exceptions.types import InvalidArgumentException
from homeservices_auth.services.password import (
    ITERATIONS,
    KEY_SIZE,
    SALT_SIZE,
    PasswordService,
)


@pytest.fixture
def service():
    return PasswordService()


class TestHashPassword:

    def test_hash_is_base64_of_salt_and_key(self, service):
        hashed = service.hash_password("Str0ng!Pass")
        blob = base64.b64decode(hashed, validate=True)
        assert len(blob) == SALT_SIZE + KEY_SIZE

    def test_same_password_hashes_differently(self, service):
        assert service.hash_password("Str0ng!Pass") != service.hash_password(
            "Str0ng!Pass"
        )

    def test_key_is_pbkdf2_sha256_of_salt(self, service):
        blob = base64.b64decode(service.hash_password("Str0ng!Pass"))
        salt, key = blob[:SALT_SIZE], blob[SALT_SIZE:]
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=salt,
            iterations=ITERATIONS,
        )
        kdf.verify(b"Str0ng!Pass", key)

    def test_derivation_goes_through_cryptography(self, service):
        with patch(
            "homeservices_auth.services.password.PBKDF2HMAC", wraps=PBKDF2HMAC
        ) as kdf_cls:
            service.hash_password("Str0ng!Pass")
        kdf_cls.assert_called_once()
        assert kdf_cls.call_args.kwargs["iterations"] == ITERATIONS

    @pytest.mark.parametrize("password", [None, ""])
    def test_empty_password_rejected(self, service, password):
        with pytest.raises(InvalidArgumentException):
            service.hash_password(password)


class TestVerifyPassword:

    def test_correct_password_verifies(self, service):
        hashed = service.hash_password("Str0ng!Pass")
        assert service.verify_password("Str0ng!Pass", hashed) is True

    def test_wrong_password_fails(self, service):
        hashed = service.hash_password("Str0ng!Pass")
        assert service.verify_password("str0ng!Pass", hashed) is False

    def test_non_ascii_password_roundtrip(self, service):
        hashed = service.hash_password("Pässwörd!9")
        assert service.verify_password("Pässwörd!9", hashed) is True

    @pytest.mark.parametrize(
        "password,hashed",
        [
            (None, "abc"),
            ("", "abc"),
            ("Str0ng!Pass", None),
            ("Str0ng!Pass", ""),
        ],
    )
    def test_missing_input_returns_false(self, service, password, hashed):
        assert service.verify_password(password, hashed) is False

    def test_malformed_base64_returns_false(self, service):
        assert service.verify_password("Str0ng!Pass", "not base64 at all!!") is False

    def test_wrong_length_blob_returns_false(self, service):
        short = base64.b64encode(b"x" * 20).decode()
        assert service.verify_password("Str0ng!Pass", short) is False


class TestIsPasswordStrong:

    @pytest.mark.parametrize(
        "password",
        ["Str0ng!Pass", "Aa1!aaaa", "Zz9@longer-password"],
    )
    def test_strong_passwords(self, service, password):
        assert service.is_password_strong(password) is True

    @pytest.mark.parametrize(
        "password",
        [
            None,
            "",
            "Aa1!aaa",  # too short
            "aa1!aaaa",  # no upper
            "AA1!AAAA",  # no lower
            "Aab!aaaa",  # no digit
            "Aa1aaaaa",  # no special
        ],
    )
    def test_weak_passwords(self, service, password):
        assert service.is_password_strong(password) is False


class TestResetToken:

    def test_generated_token_decodes_to_32_bytes(self, service):
        token = service.generate_reset_token()
        assert len(base64.b64decode(token)) == 32

    def test_generated_token_is_valid(self, service):
        assert service.is_valid_reset_token(service.generate_reset_token()) is True

    def test_tokens_are_unique(self, service):
        assert service.generate_reset_token() != service.generate_reset_token()

    @pytest.mark.parametrize(
        "token",
        [None, "", "***", base64.b64encode(b"x" * 15).decode()],
    )
    def test_invalid_tokens(self, service, token):
        assert service.is_valid_reset_token(token) is False


class TestGenerateRandomPassword:

    def test_default_length(self, service):
        assert len(service.generate_random_password()) == 12

    def test_generated_password_is_strong(self, service):
        for _ in range(20):
            assert service.is_password_strong(service.generate_random_password(8))

    def test_short_length_rejected(self, service):
        with pytest.raises(InvalidArgumentException):
            service.generate_random_password(7)
