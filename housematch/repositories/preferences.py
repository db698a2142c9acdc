import uuid
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from housematch.models.preferences import MatchPreferences
from housematch.repositories.base import BaseRepository


class PreferencesRepository(BaseRepository[MatchPreferences]):
    def __init__(self, session: AsyncSession):
        super().__init__(MatchPreferences, session)

    async def get_by_user_id(self, user_id: uuid.UUID) -> MatchPreferences | None:
        query = (
            select(MatchPreferences)
            .where(MatchPreferences.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id: uuid.UUID) -> tuple[MatchPreferences, bool]:
        existing = await self.get_by_user_id(user_id)
        if existing is not None:
            return existing, False

        created = await self.insert_ignoring_conflict(
            {"user_id": user_id},
            index_elements=["user_id"],
        )
        preferences = await self.get_by_user_id(user_id)
        return preferences, created

    async def get_by_user_ids(
        self,
        user_ids: Sequence[uuid.UUID],
    ) -> dict[uuid.UUID, MatchPreferences]:
        if not user_ids:
            return {}

        query = select(MatchPreferences).where(MatchPreferences.user_id.in_(list(user_ids)))
        result = await self.session.execute(query)
        return {p.user_id: p for p in result.scalars().all()}

    async def get_active_user_ids(
        self,
        *,
        exclude_user_id: uuid.UUID | None = None,
        limit: int = 100,
    ) -> list[uuid.UUID]:
        query = select(MatchPreferences.user_id).where(MatchPreferences.is_active.is_(True))
        if exclude_user_id is not None:
            query = query.where(MatchPreferences.user_id != exclude_user_id)

        query = query.order_by(MatchPreferences.last_active_at.desc()).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def set_fields(
        self,
        preferences: MatchPreferences,
        values: dict,
    ) -> MatchPreferences:
        for field, value in values.items():
            setattr(preferences, field, value)

        await self.session.flush()
        await self.session.refresh(preferences)
        return preferences
