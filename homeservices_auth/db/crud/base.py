from datetime import datetime, timezone
from typing import (
    Any,
    TypeVar,
    Generic,
    Type,
    Sequence,
)
from uuid import UUID

from sqlalchemy import (
    SQLColumnExpression,
    and_,
    func,
    update as sa_update,
    delete as sa_delete,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import Delete, Select, Update

from homeservices_auth.exceptions.types import DatabaseException

T = TypeVar("T")


class BaseDB(Generic[T]):
    """
    Generic async CRUD helper bound to one model class.

    Every write accepts ``commit_self``: True commits immediately, False only
    flushes so the caller can group several writes into one transaction.
    """

    def __init__(self, model: Type[T]):
        self.model = model

    async def _finish(self, session: AsyncSession, commit_self: bool) -> None:
        if commit_self:
            await session.commit()
        else:
            await session.flush()

    async def get_by_id(
        self, session: AsyncSession, id: UUID, options: list[Any] | None = None
    ) -> T | None:
        """
        Retrieves an instance of the model by its primary key.

        Args:
            session (AsyncSession): The asynchronous database session.
            id (UUID): The primary key value.
            options (list[Any], optional): SQLAlchemy loader options.

        Returns:
            T | None: The model instance if found, otherwise None.

        Raises:
            DatabaseException: If an error occurs while querying the database.
        """
        try:
            stmt: Select = (
                select(self.model)
                .options(*(options or []))
                .where(getattr(self.model, "id") == id)
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error retrieving {self.model.__name__} with ID {id}: {str(e)}"
            ) from e

    async def get_all(
        self,
        session: AsyncSession,
        filters: list[Any] | None = None,
        order_by: list[Any] | None = None,
        limit: int | None = None,
    ) -> Sequence[T]:
        """
        Retrieves filtered, ordered and optionally limited records.

        Raises:
            DatabaseException: If an error occurs while querying the database.
        """
        try:
            stmt = select(self.model)
            if filters:
                stmt = stmt.filter(*filters)
            if order_by:
                stmt = stmt.order_by(*order_by)
            if limit:
                stmt = stmt.limit(limit)

            result = await session.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error retrieving all {self.model.__name__} records: {str(e)}"
            ) from e

    async def get_by_conditions(
        self,
        session: AsyncSession,
        conditions: Sequence[SQLColumnExpression],
    ) -> Sequence[T]:
        """
        Retrieves records of the model that match all of the given conditions.

        Raises:
            DatabaseException: If an error occurs while querying the database.
        """
        try:
            stmt = select(self.model).where(and_(*conditions))
            result = await session.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error retrieving {self.model.__name__} with conditions: {str(e)}"
            ) from e

    async def get_one_by_conditions(
        self,
        session: AsyncSession,
        conditions: Sequence[SQLColumnExpression],
    ) -> T | None:
        """
        Retrieves the first record of the model that matches the given conditions.

        Raises:
            DatabaseException: If an error occurs while querying the database.
        """
        try:
            stmt = select(self.model).where(and_(*conditions))
            result = await session.execute(stmt)
            return result.scalars().first()
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error retrieving one {self.model.__name__} with conditions: {str(e)}"
            ) from e

    async def count_by_conditions(
        self,
        session: AsyncSession,
        conditions: Sequence[SQLColumnExpression],
    ) -> int:
        try:
            stmt = select(func.count()).select_from(self.model).where(and_(*conditions))  # type: ignore[arg-type]
            result = await session.execute(stmt)
            return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error counting {self.model.__name__} records: {str(e)}"
            ) from e

    async def create(
        self,
        session: AsyncSession,
        data: dict,
        commit_self: bool = True,
    ) -> T:
        """
        Creates and persists a new instance of the model.

        Args:
            session (AsyncSession): The asynchronous database session.
            data (dict): Field values of the new instance.
            commit_self (bool, optional): Commit when True, only flush when False.

        Returns:
            T: The newly created instance.

        Raises:
            DatabaseException: If the insert fails (including unique violations).
        """
        try:
            obj = self.model(**data)
            session.add(obj)
            await self._finish(session, commit_self)
            await session.refresh(obj)
            return obj
        except (SQLAlchemyError, ValueError) as e:
            raise DatabaseException(
                f"Error creating {self.model.__name__}: {str(e)}"
            ) from e

    async def save(
        self,
        session: AsyncSession,
        obj: T,
        commit_self: bool = True,
    ) -> T:
        """
        Persists attribute changes made to an already-loaded instance.

        Raises:
            DatabaseException: If the write fails.
        """
        try:
            session.add(obj)
            await self._finish(session, commit_self)
            await session.refresh(obj)
            return obj
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error saving {self.model.__name__}: {str(e)}"
            ) from e

    async def update(
        self, session: AsyncSession, id: UUID, updates: dict, commit_self: bool = True
    ) -> T | None:
        """
        Updates the record with the given ID.

        Returns:
            T | None: The updated record, or None if no record has that ID.

        Raises:
            DatabaseException: If an error occurs while updating the record.
        """
        try:
            stmt: Update = (
                sa_update(self.model)
                .where(getattr(self.model, "id") == id)
                .values(**updates)
                .returning(self.model)
                .execution_options(synchronize_session="fetch")
            )
            result = await session.execute(stmt)
            obj = result.scalar_one_or_none()
            await self._finish(session, commit_self)
            return obj
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error updating {self.model.__name__} with ID {id}: {str(e)}"
            ) from e

    async def update_by_conditions(
        self,
        session: AsyncSession,
        conditions: list[SQLColumnExpression],
        updates: dict,
        commit_self: bool = True,
    ) -> int:
        """
        Updates every record matching the conditions.

        Returns:
            int: The number of records updated.

        Raises:
            DatabaseException: If an error occurs while updating the records.
        """
        try:
            stmt: Update = (
                sa_update(self.model)
                .where(and_(*conditions))
                .values(**updates)
                .execution_options(synchronize_session="fetch")
            )
            result = await session.execute(stmt)
            await self._finish(session, commit_self)
            return result.rowcount  # type: ignore[attr-defined]
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error updating {self.model.__name__} with conditions: {str(e)}"
            ) from e

    async def delete_by_conditions(
        self,
        session: AsyncSession,
        conditions: list[SQLColumnExpression],
        commit_self: bool = True,
    ) -> int:
        """
        Hard-deletes every record matching the conditions.

        Returns:
            int: The number of records deleted.

        Raises:
            DatabaseException: If an error occurs while deleting the records.
        """
        try:
            stmt: Delete = (
                sa_delete(self.model)
                .where(and_(*conditions))
                .execution_options(synchronize_session="fetch")
            )
            result = await session.execute(stmt)
            await self._finish(session, commit_self)
            return result.rowcount  # type: ignore[attr-defined]
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error deleting {self.model.__name__} with conditions: {str(e)}"
            ) from e

    async def soft_delete(
        self, session: AsyncSession, id: UUID, commit_self: bool = True
    ) -> T | None:
        """
        Marks a record as deleted without removing it.

        Returns:
            T | None: The soft-deleted record, or None if no record has that ID.
        """
        return await self.update(
            session,
            id,
            {"is_deleted": True, "deleted_at": datetime.now(timezone.utc)},
            commit_self=commit_self,
        )
