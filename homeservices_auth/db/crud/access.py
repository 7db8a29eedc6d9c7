"""
CRUD operations for roles, groups and permissions.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from homeservices_auth.db.crud.base import BaseDB
from homeservices_auth.db.models import (
    Group,
    GroupPermission,
    Permission,
    Role,
    RolePermission,
    UserGroup,
    UserRole,
)


class PermissionDB(BaseDB[Permission]):
    def __init__(self):
        super().__init__(model=Permission)

    async def get_by_name(self, session: AsyncSession, name: str) -> Permission | None:
        return await self.get_one_by_conditions(
            session=session,
            conditions=[self.model.name == name, self.model.is_deleted.is_(False)],
        )


class RoleDB(BaseDB[Role]):
    def __init__(self):
        super().__init__(model=Role)

    async def get_by_name(self, session: AsyncSession, name: str) -> Role | None:
        return await self.get_one_by_conditions(
            session=session,
            conditions=[self.model.name == name, self.model.is_deleted.is_(False)],
        )

    async def assign_to_user(
        self,
        session: AsyncSession,
        role_id: UUID,
        user_id: UUID,
        expires_at: datetime | None = None,
        commit_self: bool = True,
    ) -> UserRole:
        assignment = UserRole(user_id=user_id, role_id=role_id, expires_at=expires_at)
        return await BaseDB(UserRole).save(session, assignment, commit_self=commit_self)

    async def grant_permission(
        self,
        session: AsyncSession,
        role_id: UUID,
        permission_id: UUID,
        is_granted: bool = True,
        commit_self: bool = True,
    ) -> RolePermission:
        link = RolePermission(
            role_id=role_id, permission_id=permission_id, is_granted=is_granted
        )
        return await BaseDB(RolePermission).save(session, link, commit_self=commit_self)


class GroupDB(BaseDB[Group]):
    def __init__(self):
        super().__init__(model=Group)

    async def get_by_name(self, session: AsyncSession, name: str) -> Group | None:
        return await self.get_one_by_conditions(
            session=session,
            conditions=[self.model.name == name, self.model.is_deleted.is_(False)],
        )

    async def add_member(
        self,
        session: AsyncSession,
        group_id: UUID,
        user_id: UUID,
        expires_at: datetime | None = None,
        commit_self: bool = True,
    ) -> UserGroup:
        membership = UserGroup(
            user_id=user_id, group_id=group_id, expires_at=expires_at
        )
        return await BaseDB(UserGroup).save(session, membership, commit_self=commit_self)

    async def grant_permission(
        self,
        session: AsyncSession,
        group_id: UUID,
        permission_id: UUID,
        is_granted: bool = True,
        commit_self: bool = True,
    ) -> GroupPermission:
        link = GroupPermission(
            group_id=group_id, permission_id=permission_id, is_granted=is_granted
        )
        return await BaseDB(GroupPermission).save(
            session, link, commit_self=commit_self
        )


__all__ = ["GroupDB", "PermissionDB", "RoleDB"]
