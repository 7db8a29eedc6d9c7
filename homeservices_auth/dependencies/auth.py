"""
Authentication dependencies for FastAPI endpoints.

- Validating bearer access tokens and exposing their claims
- Loading the current user
- Requiring a permission from the token

Example usage:
    from homeservices_auth.dependencies.auth import (
        get_current_user,
        require_permission,
    )

    @router.get("/me")
    async def me(user: User = Depends(get_current_user)):
        return UserProfile.model_validate(user)

    @router.post("/bookings", dependencies=[Depends(require_permission("bookings.create"))])
    async def create_booking(...):
        ...
"""

from typing import Annotated, Any, Callable, Coroutine
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from homeservices_auth.config import auth_logger
from homeservices_auth.db.crud import user_db
from homeservices_auth.db.models import User
from homeservices_auth.dependencies.db import get_async_session
from homeservices_auth.exceptions.types import AuthenticationException, ForbiddenException
from homeservices_auth.services.auth import AuthService
from homeservices_auth.services.token import TokenService

# Missing credentials are reported by get_current_claims as a 401
bearer_scheme = HTTPBearer(auto_error=False)


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


async def get_current_claims(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
    tokens: Annotated[TokenService, Depends(get_token_service)],
) -> dict[str, Any]:
    """
    Validate the bearer token and return its claims.

    Raises:
        AuthenticationException: If the header is missing or the token is invalid.
    """
    if credentials is None:
        auth_logger.warning("Authentication failed: missing bearer token")
        raise AuthenticationException("Not authenticated")

    return tokens.validate(credentials.credentials)


async def get_current_user(
    claims: Annotated[dict[str, Any], Depends(get_current_claims)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> User:
    """
    Load the user named by the token's ``sub`` claim.

    Raises:
        AuthenticationException: If the user no longer exists or is inactive.
    """
    try:
        user_id = UUID(claims["sub"])
    except (KeyError, ValueError):
        auth_logger.warning("Authentication failed: invalid subject claim")
        raise AuthenticationException("Invalid or expired access token")

    user = await user_db.get_by_id(session=session, id=user_id)

    if user is None or user.is_deleted:
        auth_logger.warning(f"Authentication failed: user not found {user_id}")
        raise AuthenticationException("User not found")

    if not user.is_active:
        auth_logger.warning(f"Authentication failed: user inactive {user_id}")
        raise AuthenticationException("User account is not active")

    return user


def require_permission(
    permission: str,
) -> Callable[..., Coroutine[Any, Any, dict[str, Any]]]:
    """
    Build a dependency that admits only tokens carrying ``permission``.

    Raises (from the dependency):
        ForbiddenException: If the permission is absent from the token.
    """

    async def _check(
        claims: Annotated[dict[str, Any], Depends(get_current_claims)],
    ) -> dict[str, Any]:
        if permission not in claims.get("permissions", []):
            auth_logger.warning(
                f"Authorization failed: {claims.get('sub')} lacks {permission}"
            )
            raise ForbiddenException(f"Missing permission: {permission}")
        return claims

    return _check


__all__ = [
    "bearer_scheme",
    "get_auth_service",
    "get_current_claims",
    "get_current_user",
    "get_token_service",
    "require_permission",
]
