"""
Access and refresh token issuance.

Access tokens are HS256 JWTs carrying the user's identity and effective
roles, groups and permissions. Refresh tokens are opaque random strings;
only their SHA-256 hash is stored, on the user row, so each user holds at
most one refresh token and issuing a new one revokes the previous one.

Example usage:
    from homeservices_auth.services.token import TokenService

    tokens = TokenService()
    result = await tokens.issue_for_user(session, user)
    claims = tokens.validate(result.access_token)
    rotated = await tokens.refresh(session, result.refresh_token)
"""

import base64
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from homeservices_auth.config import settings, token_logger
from homeservices_auth.db.crud import user_db
from homeservices_auth.db.models import User
from homeservices_auth.exceptions.types import AuthenticationException
from homeservices_auth.schemas.auth import AccessGrants, LoginResult, UserProfile
from homeservices_auth.utils import (
    create_jwt_token,
    decode_jwt_token,
    hash_token,
    mask_email,
)

REFRESH_TOKEN_BYTES = 64
ACCESS_TOKEN_TYPE = "access"


def _unique(values: Iterable[str]) -> list[str]:
    """Drop duplicates, keeping first-seen order."""
    return list(dict.fromkeys(values))


class TokenService:
    """
    Issues, validates, rotates and revokes tokens.

    Attributes:
        secret_key: HMAC key for access tokens.
        algorithm: JWT signing algorithm.
        issuer: ``iss`` claim written and required.
        audience: ``aud`` claim written and required.
        access_token_lifetime: Lifetime of access tokens.
        refresh_token_lifetime: Lifetime of refresh tokens.
        logger: Destination for diagnostic messages. Tokens are never logged.
    """

    def __init__(
        self,
        secret_key: str | None = None,
        algorithm: str | None = None,
        issuer: str | None = None,
        audience: str | None = None,
        access_token_minutes: int | None = None,
        refresh_token_days: int | None = None,
        logger: logging.Logger | None = None,
    ):
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.issuer = issuer or settings.JWT_ISSUER
        self.audience = audience or settings.JWT_AUDIENCE
        self.access_token_lifetime = timedelta(
            minutes=access_token_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
        self.refresh_token_lifetime = timedelta(
            days=refresh_token_days or settings.REFRESH_TOKEN_EXPIRE_DAYS
        )
        self.logger = logger or token_logger

    @staticmethod
    def generate_refresh_token() -> str:
        """Return base64 of 64 cryptographically random bytes."""
        return base64.b64encode(secrets.token_bytes(REFRESH_TOKEN_BYTES)).decode(
            "ascii"
        )

    def build_claims(
        self,
        user: User,
        roles: list[str],
        groups: list[str],
        permissions: list[str],
    ) -> dict[str, Any]:
        return {
            "sub": str(user.id),
            "username": user.username,
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "is_active": user.is_active,
            "is_email_confirmed": user.is_email_confirmed,
            "roles": list(roles),
            "groups": list(groups),
            "permissions": list(permissions),
            "type": ACCESS_TOKEN_TYPE,
        }

    async def resolve_access(self, session: AsyncSession, user_id: UUID) -> AccessGrants:
        """
        Resolve the user's effective roles, groups and permissions.

        Only active, unexpired assignments count, and only granted
        permissions. Permissions reachable through both a role and a group
        appear once.
        """
        roles = await user_db.get_effective_roles(session, user_id)
        groups = await user_db.get_effective_groups(session, user_id)
        role_permissions = await user_db.get_role_permissions(session, user_id)
        group_permissions = await user_db.get_group_permissions(session, user_id)
        return AccessGrants(
            roles=_unique(roles),
            groups=_unique(groups),
            permissions=_unique([*role_permissions, *group_permissions]),
        )

    async def issue(
        self,
        session: AsyncSession,
        user: User,
        roles: list[str],
        groups: list[str],
        permissions: list[str],
        commit_self: bool = True,
    ) -> LoginResult:
        """
        Mint an access token and a fresh refresh token for ``user``.

        The new refresh token overwrites whatever the user held before.

        Args:
            session: The database session.
            user: The user to issue tokens for.
            roles: Role names to embed.
            groups: Group names to embed.
            permissions: Permission names to embed.
            commit_self: Commit the refresh token write when True.

        Returns:
            LoginResult: Both tokens, the access token expiry, the user
            profile and the embedded access lists.
        """
        now = datetime.now(timezone.utc)
        expires_at = now + self.access_token_lifetime

        access_token = create_jwt_token(
            self.build_claims(user, roles, groups, permissions),
            expires_delta=self.access_token_lifetime,
            secret_key=self.secret_key,
            algorithm=self.algorithm,
            issuer=self.issuer,
            audience=self.audience,
        )

        refresh_token = self.generate_refresh_token()
        await user_db.set_refresh_token(
            session,
            user,
            token_hash=hash_token(refresh_token),
            expires_at=now + self.refresh_token_lifetime,
            commit_self=commit_self,
        )

        self.logger.info(
            f"Token pair issued: user={mask_email(user.email)}, "
            f"expires_in={int(self.access_token_lifetime.total_seconds())}s"
        )

        return LoginResult(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="bearer",
            expires_at=expires_at,
            expires_in=int(self.access_token_lifetime.total_seconds()),
            user=UserProfile.model_validate(user),
            roles=list(roles),
            groups=list(groups),
            permissions=list(permissions),
        )

    async def issue_for_user(
        self, session: AsyncSession, user: User, commit_self: bool = True
    ) -> LoginResult:
        """Resolve the user's current access and issue tokens carrying it."""
        grants = await self.resolve_access(session, user.id)
        return await self.issue(
            session,
            user,
            grants.roles,
            grants.groups,
            grants.permissions,
            commit_self=commit_self,
        )

    async def refresh(self, session: AsyncSession, refresh_token: str) -> LoginResult:
        """
        Exchange a refresh token for a new token pair.

        The presented token is consumed: the user's stored token is replaced
        by the new one, so presenting it again fails.

        Raises:
            AuthenticationException: If the token is unknown or expired, or
                the user is no longer active.
        """
        if not refresh_token:
            raise AuthenticationException("Invalid or expired refresh token")

        user = await user_db.get_by_refresh_token_hash(
            session, hash_token(refresh_token)
        )
        if user is None:
            self.logger.warning("Token refresh failed: unknown refresh token")
            raise AuthenticationException("Invalid or expired refresh token")

        expires_at = user.refresh_token_expires_at
        if expires_at is None or expires_at <= datetime.now(timezone.utc):
            self.logger.warning(
                f"Token refresh failed: expired refresh token for "
                f"{mask_email(user.email)}"
            )
            raise AuthenticationException("Invalid or expired refresh token")

        if not user.is_active:
            self.logger.warning(
                f"Token refresh failed: user inactive {mask_email(user.email)}"
            )
            raise AuthenticationException("User account is not active")

        result = await self.issue_for_user(session, user)
        self.logger.info(f"Token pair rotated: user={mask_email(user.email)}")
        return result

    def validate(self, token: str | None) -> dict[str, Any]:
        """
        Verify an access token and return its claims.

        Signature, issuer, audience and expiry are checked with no clock
        leeway. Every failure produces the same exception and message.

        Raises:
            AuthenticationException: If the token is not a valid access token.
        """
        claims = decode_jwt_token(
            token,
            secret_key=self.secret_key,
            algorithm=self.algorithm,
            issuer=self.issuer,
            audience=self.audience,
        )
        if claims is None or claims.get("type") != ACCESS_TOKEN_TYPE:
            raise AuthenticationException("Invalid or expired access token")
        return claims

    async def revoke(
        self, session: AsyncSession, user_id: UUID, commit_self: bool = True
    ) -> bool:
        """
        Clear the user's refresh token so it can no longer be exchanged.

        Returns:
            bool: True if the user exists.
        """
        revoked = await user_db.clear_refresh_token(
            session, user_id, commit_self=commit_self
        )
        if revoked:
            self.logger.info(f"Refresh token revoked: user_id={user_id}")
        else:
            self.logger.warning(f"Refresh token revocation failed: user {user_id} not found")
        return revoked


__all__ = ["TokenService"]
