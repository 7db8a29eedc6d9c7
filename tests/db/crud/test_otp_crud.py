"""
Test suite for OTPToken CRUD operations.

- Active token lookup
- Attempt counting and consumption
- Invalidation and the one-unused-token-per-purpose index
- Expired token cleanup

Run all tests:
    pytest tests/db/crud/test_otp_crud.py -v

Run with coverage:
    pytest tests/db/crud/test_otp_crud.py --cov=homeservices_auth.db.crud.otp --cov-report=term-missing -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from homeservices_auth.db.crud import otp_token_db
from homeservices_auth.db.models import OTPToken
from homeservices_auth.enums import OTPPurpose
from homeservices_auth.exceptions.types import DatabaseException


def _token_data(user, purpose=OTPPurpose.LOGIN, minutes=10, **overrides) -> dict:
    data = {
        "user_id": user.id,
        "code": "482913",
        "email": user.email,
        "purpose": purpose,
        "expires_at": datetime.now(timezone.utc) + timedelta(minutes=minutes),
        "max_attempts": 3,
    }
    data.update(overrides)
    return data


class TestGetActiveToken:

    @pytest.mark.asyncio
    async def test_returns_unused_token(self, db_session, test_user):
        created = await otp_token_db.create(db_session, _token_data(test_user))

        token = await otp_token_db.get_active_token(
            db_session, "jane@example.com", OTPPurpose.LOGIN
        )

        assert token.id == created.id

    @pytest.mark.asyncio
    async def test_includes_expired_token(self, db_session, test_user):
        await otp_token_db.create(db_session, _token_data(test_user, minutes=-5))

        token = await otp_token_db.get_active_token(
            db_session, "jane@example.com", OTPPurpose.LOGIN
        )

        assert token is not None
        assert token.is_expired()

    @pytest.mark.asyncio
    async def test_ignores_used_and_other_purposes(self, db_session, test_user):
        await otp_token_db.create(
            db_session, _token_data(test_user, is_used=True)
        )
        await otp_token_db.create(
            db_session, _token_data(test_user, purpose=OTPPurpose.PASSWORD_RESET)
        )

        token = await otp_token_db.get_active_token(
            db_session, "jane@example.com", OTPPurpose.LOGIN
        )

        assert token is None


class TestAttemptsAndUse:

    @pytest.mark.asyncio
    async def test_increment_attempts(self, db_session, test_user):
        token = await otp_token_db.create(db_session, _token_data(test_user))

        token = await otp_token_db.increment_attempts(db_session, token)

        assert token.attempt_count == 1
        assert token.remaining_attempts == 2

    @pytest.mark.asyncio
    async def test_mark_as_used(self, db_session, test_user):
        token = await otp_token_db.create(db_session, _token_data(test_user))

        token = await otp_token_db.mark_as_used(db_session, token)

        assert token.is_used is True
        assert token.used_at is not None

    def test_remaining_attempts_never_negative(self):
        token = OTPToken(attempt_count=7, max_attempts=3)
        assert token.remaining_attempts == 0


class TestInvalidation:

    @pytest.mark.asyncio
    async def test_invalidate_previous_tokens(self, db_session, test_user):
        await otp_token_db.create(db_session, _token_data(test_user, minutes=-5))

        count = await otp_token_db.invalidate_previous_tokens(
            db_session, test_user.id, OTPPurpose.LOGIN
        )

        assert count == 1
        assert (
            await otp_token_db.get_active_token(
                db_session, "jane@example.com", OTPPurpose.LOGIN
            )
            is None
        )

    @pytest.mark.asyncio
    async def test_second_unused_token_rejected(self, db_session, test_user):
        await otp_token_db.create(db_session, _token_data(test_user))

        with pytest.raises(DatabaseException):
            await otp_token_db.create(db_session, _token_data(test_user))
        await db_session.rollback()

    @pytest.mark.asyncio
    async def test_used_tokens_do_not_conflict(self, db_session, test_user):
        await otp_token_db.create(db_session, _token_data(test_user, is_used=True))
        await otp_token_db.create(db_session, _token_data(test_user, is_used=True))

        token = await otp_token_db.create(db_session, _token_data(test_user))

        assert token.is_used is False


class TestPurgeExpired:

    @pytest.mark.asyncio
    async def test_deletes_only_expired(self, db_session, test_user):
        await otp_token_db.create(
            db_session, _token_data(test_user, minutes=-5, is_used=True)
        )
        await otp_token_db.create(
            db_session, _token_data(test_user, purpose=OTPPurpose.PASSWORD_RESET)
        )

        count = await otp_token_db.purge_expired(db_session)

        assert count == 1
        remaining = await otp_token_db.get_all(db_session)
        assert [t.purpose for t in remaining] == [OTPPurpose.PASSWORD_RESET]

    @pytest.mark.asyncio
    async def test_older_than_cutoff(self, db_session, test_user):
        await otp_token_db.create(db_session, _token_data(test_user, minutes=-5))

        count = await otp_token_db.purge_expired(
            db_session, older_than=datetime.now(timezone.utc) - timedelta(hours=1)
        )

        assert count == 0
