"""
CRUD operations for the User model and its effective access grants.
"""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from homeservices_auth.db.crud.base import BaseDB
from homeservices_auth.db.models import (
    Group,
    GroupPermission,
    Permission,
    Role,
    RolePermission,
    User,
    UserGroup,
    UserRole,
)
from homeservices_auth.exceptions.types import DatabaseException


def _effective(assignment, now: datetime) -> list:
    """Conditions under which a role or group assignment counts."""
    return [
        assignment.is_active.is_(True),
        assignment.is_deleted.is_(False),
        or_(assignment.expires_at.is_(None), assignment.expires_at > now),
    ]


class UserDB(BaseDB[User]):
    def __init__(self):
        super().__init__(model=User)

    async def get_by_email(self, session: AsyncSession, email: str) -> User | None:
        """Case-insensitive lookup of a non-deleted user by email."""
        return await self.get_one_by_conditions(
            session=session,
            conditions=[
                func.lower(self.model.email) == email.strip().lower(),
                self.model.is_deleted.is_(False),
            ],
        )

    async def get_by_username(
        self, session: AsyncSession, username: str
    ) -> User | None:
        return await self.get_one_by_conditions(
            session=session,
            conditions=[
                func.lower(self.model.username) == username.strip().lower(),
                self.model.is_deleted.is_(False),
            ],
        )

    async def get_by_email_or_username(
        self, session: AsyncSession, identifier: str
    ) -> User | None:
        if "@" in identifier:
            return await self.get_by_email(session, identifier)
        return await self.get_by_username(session, identifier)

    async def get_by_refresh_token_hash(
        self, session: AsyncSession, token_hash: str
    ) -> User | None:
        """
        Find the user holding a refresh token, regardless of its expiry.

        The caller decides how to treat an expired token.
        """
        return await self.get_one_by_conditions(
            session=session,
            conditions=[
                self.model.refresh_token_hash == token_hash,
                self.model.is_deleted.is_(False),
            ],
        )

    async def set_refresh_token(
        self,
        session: AsyncSession,
        user: User,
        token_hash: str,
        expires_at: datetime,
        commit_self: bool = True,
    ) -> User:
        """Replace whatever refresh token the user held with a new one."""
        user.set_refresh_token(token_hash, expires_at)
        return await self.save(session, user, commit_self=commit_self)

    async def clear_refresh_token(
        self,
        session: AsyncSession,
        user_id: UUID,
        commit_self: bool = True,
    ) -> bool:
        """
        Revoke the user's refresh token.

        Returns:
            bool: True if a user row was updated.
        """
        count = await self.update_by_conditions(
            session=session,
            conditions=[self.model.id == user_id],
            updates={"refresh_token_hash": None, "refresh_token_expires_at": None},
            commit_self=commit_self,
        )
        return count > 0

    async def get_effective_roles(
        self, session: AsyncSession, user_id: UUID
    ) -> list[str]:
        now = datetime.now(timezone.utc)
        try:
            stmt = (
                select(Role.name)
                .join(UserRole, UserRole.role_id == Role.id)
                .where(
                    UserRole.user_id == user_id,
                    Role.is_active.is_(True),
                    Role.is_deleted.is_(False),
                    *_effective(UserRole, now),
                )
                .order_by(Role.name)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error retrieving roles of user {user_id}: {str(e)}"
            ) from e

    async def get_effective_groups(
        self, session: AsyncSession, user_id: UUID
    ) -> list[str]:
        now = datetime.now(timezone.utc)
        try:
            stmt = (
                select(Group.name)
                .join(UserGroup, UserGroup.group_id == Group.id)
                .where(
                    UserGroup.user_id == user_id,
                    Group.is_active.is_(True),
                    Group.is_deleted.is_(False),
                    *_effective(UserGroup, now),
                )
                .order_by(Group.name)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error retrieving groups of user {user_id}: {str(e)}"
            ) from e

    async def get_role_permissions(
        self, session: AsyncSession, user_id: UUID
    ) -> list[str]:
        """Permissions granted through the user's effective roles."""
        now = datetime.now(timezone.utc)
        try:
            stmt = (
                select(Permission.name)
                .join(RolePermission, RolePermission.permission_id == Permission.id)
                .join(Role, Role.id == RolePermission.role_id)
                .join(UserRole, UserRole.role_id == Role.id)
                .where(
                    UserRole.user_id == user_id,
                    RolePermission.is_granted.is_(True),
                    RolePermission.is_deleted.is_(False),
                    Role.is_active.is_(True),
                    Role.is_deleted.is_(False),
                    Permission.is_active.is_(True),
                    Permission.is_deleted.is_(False),
                    *_effective(UserRole, now),
                )
                .order_by(Permission.name)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error retrieving role permissions of user {user_id}: {str(e)}"
            ) from e

    async def get_group_permissions(
        self, session: AsyncSession, user_id: UUID
    ) -> list[str]:
        """Permissions granted through the user's effective groups."""
        now = datetime.now(timezone.utc)
        try:
            stmt = (
                select(Permission.name)
                .join(GroupPermission, GroupPermission.permission_id == Permission.id)
                .join(Group, Group.id == GroupPermission.group_id)
                .join(UserGroup, UserGroup.group_id == Group.id)
                .where(
                    UserGroup.user_id == user_id,
                    GroupPermission.is_granted.is_(True),
                    GroupPermission.is_deleted.is_(False),
                    Group.is_active.is_(True),
                    Group.is_deleted.is_(False),
                    Permission.is_active.is_(True),
                    Permission.is_deleted.is_(False),
                    *_effective(UserGroup, now),
                )
                .order_by(Permission.name)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error retrieving group permissions of user {user_id}: {str(e)}"
            ) from e


__all__ = ["UserDB"]
