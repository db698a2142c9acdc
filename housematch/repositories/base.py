import uuid
from typing import Any, Generic, TypeVar

from sqlalchemy import select, func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from housematch.core.database import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseRepository(Generic[ModelType]):
    def __init__(self, model: type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def get(self, id: uuid.UUID) -> ModelType | None:
        result = await self.session.execute(
            select(self.model)
            .where(self.model.id == id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def insert_ignoring_conflict(
        self,
        values: dict[str, Any],
        index_elements: list[str],
    ) -> bool:
        """
        Insert a row unless it collides with a unique key.

        Relies on the backend's ``ON CONFLICT DO NOTHING`` so two concurrent
        writers cannot both create the same logical row.

        Args:
            values: Column values for the new row
            index_elements: Columns of the unique key to arbitrate on

        Returns:
            True if this call inserted the row, False if it already existed
        """
        dialect = self.session.bind.dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(self.model)
        elif dialect == "sqlite":
            stmt = sqlite.insert(self.model)
        else:
            raise NotImplementedError(f"Unsupported dialect for conflict-free insert: {dialect}")

        stmt = stmt.values(**values).on_conflict_do_nothing(index_elements=index_elements)
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def compare_and_set(
        self,
        id: uuid.UUID,
        expected: dict[str, Any],
        values: dict[str, Any],
    ) -> bool:
        """
        Conditionally update one row.

        The update only applies while every column in ``expected`` still
        holds the given value, so a concurrent writer that got there first
        makes this call a no-op.

        Returns:
            True if the row was updated
        """
        query = update(self.model).where(self.model.id == id)
        for field, value in expected.items():
            query = query.where(getattr(self.model, field) == value)

        result = await self.session.execute(
            query.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def count(self, filters: dict[str, Any] | None = None) -> int:
        query = select(func.count()).select_from(self.model)

        if filters:
            for field, value in filters.items():
                if hasattr(self.model, field):
                    query = query.where(getattr(self.model, field) == value)

        result = await self.session.execute(query)
        return result.scalar_one()
