import uuid
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import select, and_, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from housematch.models.match import (
    Match,
    MatchStatusEnum,
    MatchTypeEnum,
    TargetTypeEnum,
)
from housematch.repositories.base import BaseRepository


class MatchRepository(BaseRepository[Match]):
    def __init__(self, session: AsyncSession):
        super().__init__(Match, session)

    async def create_match(self, values: dict[str, Any]) -> tuple[Match, bool]:
        created = await self.insert_ignoring_conflict(
            values,
            index_elements=["user_id", "target_id", "target_type"],
        )
        match = await self.get_by_pair(
            values["user_id"], values["target_id"], values["target_type"]
        )
        return match, created

    async def get_by_pair(
        self,
        user_id: uuid.UUID,
        target_id: uuid.UUID,
        target_type: TargetTypeEnum,
    ) -> Match | None:
        query = (
            select(Match)
            .where(
                and_(
                    Match.user_id == user_id,
                    Match.target_id == target_id,
                    Match.target_type == target_type,
                )
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_mirror(self, match: Match) -> Match | None:
        if match.target_type != TargetTypeEnum.USER:
            return None
        return await self.get_by_pair(match.target_id, match.user_id, TargetTypeEnum.USER)

    def pair_lock_query(self, match: Match):
        return (
            select(Match)
            .where(
                and_(
                    Match.target_type == TargetTypeEnum.USER,
                    or_(
                        and_(Match.user_id == match.user_id, Match.target_id == match.target_id),
                        and_(Match.user_id == match.target_id, Match.target_id == match.user_id),
                    ),
                )
            )
            .order_by(Match.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    async def lock_pair(self, match: Match) -> tuple[Match, Match | None]:
        """
        Lock both directed rows of a user pair and return them fresh.

        Rows are locked lowest id first, so two writers on the same pair
        queue behind each other instead of deadlocking.

        Returns:
            (match, mirror) where mirror is None if it does not exist yet
        """
        result = await self.session.execute(self.pair_lock_query(match))
        rows = result.scalars().all()
        own = next(row for row in rows if row.id == match.id)
        mirror = next((row for row in rows if row.id != match.id), None)
        return own, mirror

    async def get_for_targets(
        self,
        user_id: uuid.UUID,
        target_ids: Sequence[uuid.UUID],
        target_type: TargetTypeEnum,
    ) -> dict[uuid.UUID, Match]:
        if not target_ids:
            return {}

        query = select(Match).where(
            and_(
                Match.user_id == user_id,
                Match.target_type == target_type,
                Match.target_id.in_(list(target_ids)),
            )
        )
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return {m.target_id: m for m in result.scalars().all()}

    async def count_created_since(self, user_id: uuid.UUID, since: datetime) -> int:
        query = select(func.count()).select_from(Match).where(
            and_(
                Match.user_id == user_id,
                Match.created_at >= since,
            )
        )
        result = await self.session.execute(query)
        return result.scalar_one()

    async def get_matches_for_user(
        self,
        user_id: uuid.UUID,
        *,
        status: MatchStatusEnum | None = None,
        match_type: MatchTypeEnum | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Sequence[Match]:
        query = select(Match).where(Match.user_id == user_id)

        if status is not None:
            query = query.where(Match.status == status)
        if match_type is not None:
            query = query.where(Match.match_type == match_type)

        query = (
            query.order_by(Match.compatibility_score.desc(), Match.created_at.desc())
            .offset(skip)
            .limit(limit)
        )

        result = await self.session.execute(query.execution_options(populate_existing=True))
        return result.scalars().all()

    async def count_for_user(
        self,
        user_id: uuid.UUID,
        *,
        status: MatchStatusEnum | None = None,
        match_type: MatchTypeEnum | None = None,
    ) -> int:
        query = select(func.count()).select_from(Match).where(Match.user_id == user_id)
        if status is not None:
            query = query.where(Match.status == status)
        if match_type is not None:
            query = query.where(Match.match_type == match_type)

        result = await self.session.execute(query)
        return result.scalar_one()

    async def get_status_summary(self, user_id: uuid.UUID) -> dict[str, int]:
        query = (
            select(Match.status, func.count())
            .where(Match.user_id == user_id)
            .group_by(Match.status)
        )
        result = await self.session.execute(query)
        summary = {status.value: 0 for status in MatchStatusEnum}
        for status, count in result.all():
            summary[MatchStatusEnum(status).value] = count
        return summary

    def due_for_expiry_query(self, now: datetime, limit: int):
        return (
            select(Match)
            .where(
                and_(
                    Match.status == MatchStatusEnum.PENDING,
                    Match.expires_at < now,
                )
            )
            .order_by(Match.expires_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )

    async def get_due_for_expiry(
        self,
        now: datetime,
        *,
        limit: int = 500,
    ) -> Sequence[Match]:
        query = self.due_for_expiry_query(now, limit)
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return result.scalars().all()

    async def get_expiring_between(
        self,
        start: datetime,
        end: datetime,
        *,
        user_id: uuid.UUID | None = None,
        limit: int = 500,
    ) -> Sequence[Match]:
        query = select(Match).where(
            and_(
                Match.status == MatchStatusEnum.PENDING,
                Match.expires_at >= start,
                Match.expires_at <= end,
            )
        )
        if user_id is not None:
            query = query.where(Match.user_id == user_id)

        query = query.order_by(Match.expires_at).limit(limit)
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return result.scalars().all()

    async def get_unviewed_expiring(
        self,
        start: datetime,
        end: datetime,
        viewed_before: datetime,
        *,
        limit: int = 500,
    ) -> Sequence[Match]:
        query = (
            select(Match)
            .where(
                and_(
                    Match.status == MatchStatusEnum.PENDING,
                    Match.expires_at >= start,
                    Match.expires_at <= end,
                    or_(Match.viewed_at.is_(None), Match.viewed_at < viewed_before),
                )
            )
            .order_by(Match.expires_at)
            .limit(limit)
        )
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return result.scalars().all()

    async def count_by_status(self, status: MatchStatusEnum) -> int:
        return await self.count({"status": status})

    async def count_expiring_between(self, start: datetime, end: datetime) -> int:
        query = select(func.count()).select_from(Match).where(
            and_(
                Match.status == MatchStatusEnum.PENDING,
                Match.expires_at >= start,
                Match.expires_at <= end,
            )
        )
        result = await self.session.execute(query)
        return result.scalar_one()

    async def get_matched_durations(self, *, limit: int = 1000) -> list[tuple[datetime, datetime]]:
        query = (
            select(Match.created_at, Match.matched_at)
            .where(
                and_(
                    Match.status == MatchStatusEnum.MATCHED,
                    Match.matched_at.is_not(None),
                )
            )
            .order_by(Match.matched_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [(created, matched) for created, matched in result.all()]

    async def mark_viewed(self, match: Match, now: datetime) -> Match:
        values: dict[str, Any] = {"view_count": Match.view_count + 1}
        if match.viewed_at is None:
            values["viewed_at"] = now

        await self.compare_and_set(match.id, {}, values)
        return await self.get(match.id)
