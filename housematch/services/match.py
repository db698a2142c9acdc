import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from housematch.core.config import Settings, get_settings
from housematch.core.database import utcnow
from housematch.core.exceptions import (
    DailyLimitExceededError,
    InvalidArgumentError,
    NotFoundError,
)
from housematch.models.match import (
    Match,
    MatchActionEnum,
    MatchStatusEnum,
    MatchTypeEnum,
    TargetTypeEnum,
)
from housematch.repositories.match import MatchRepository
from housematch.repositories.preferences import PreferencesRepository
from housematch.services.collaborators import ProfileStore, PropertyStore
from housematch.services.events import EventPublisher, MatchEvent
from housematch.services.matching.lifecycle import ExpirationResult, MatchLifecycleManager
from housematch.services.matching.profiles import PreferencesData
from housematch.services.matching.selector import (
    Candidate,
    CandidateKind,
    CandidateSelector,
    start_of_utc_day,
)

logger = logging.getLogger(__name__)

MAX_EXPIRING_WINDOW_HOURS = 168


@dataclass
class SwipeResult:
    match: Match
    is_mutual_match: bool


@dataclass
class MatchHistory:
    matches: Sequence[Match]
    total: int
    summary: dict[str, int] = field(default_factory=dict)


@dataclass
class ExpirationStats:
    total: int
    pending: int
    expired: int
    expiring_today: int
    expiring_soon: int
    average_match_duration_hours: Optional[float]


class MatchService:
    """
    Unit-of-work facade over candidate selection and the match lifecycle.

    Each public operation commits its own transaction and only then hands
    the collected events to the publisher.
    """

    def __init__(
        self,
        session: AsyncSession,
        profile_store: ProfileStore,
        property_store: PropertyStore,
        publisher: Optional[EventPublisher] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.profile_store = profile_store
        self.property_store = property_store
        self.publisher = publisher
        self.clock = clock
        self.match_repository = MatchRepository(session)
        self.preferences_repository = PreferencesRepository(session)
        self.lifecycle = MatchLifecycleManager(session, self.settings, clock=clock)
        self.selector = CandidateSelector(
            session,
            profile_store,
            property_store,
            lifecycle=self.lifecycle,
            settings=self.settings,
        )

    async def get_candidates(
        self,
        user_id: uuid.UUID,
        limit: int = 10,
        kind: CandidateKind = CandidateKind.BOTH,
    ) -> list[Candidate]:
        try:
            candidates = await self.selector.select_candidates(user_id, limit=limit, kind=kind)
        except Exception:
            await self.session.rollback()
            self.lifecycle.drain_events()
            raise

        await self._commit_and_publish()
        return candidates

    async def swipe(
        self,
        user_id: uuid.UUID,
        target_id: uuid.UUID,
        target_type: TargetTypeEnum,
        action: MatchActionEnum,
    ) -> SwipeResult:
        """
        Record a like, pass or super like on a user or property.

        The match row is created first when the target was never surfaced.
        After the action commits, the pair is reconciled once more in a fresh
        transaction so two concurrent likes still end up matched.

        Raises:
            InvalidArgumentError: Bad action or self-target
            NotFoundError: If the requester or target does not exist
            DailyLimitExceededError: If creating the row would exceed the quota
            InvalidStateError: If the match is no longer pending or has expired
        """
        if action == MatchActionEnum.NONE:
            raise InvalidArgumentError("Action must be liked, passed or super_liked", field="action")

        if target_type == TargetTypeEnum.USER and target_id == user_id:
            raise InvalidArgumentError("Cannot swipe on yourself", field="target_id")

        try:
            match = await self.match_repository.get_by_pair(user_id, target_id, target_type)
            if match is None:
                match = await self._create_for_swipe(user_id, target_id, target_type, action)

            match, is_mutual = await self.lifecycle.apply_action(match, user_id, action)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            self.lifecycle.drain_events()
            raise

        # the mirror may have committed a like between our read and our write
        match, reconciled = await self.lifecycle.reconcile(match)
        await self._commit_and_publish()

        return SwipeResult(match=match, is_mutual_match=is_mutual or reconciled)

    async def _create_for_swipe(
        self,
        user_id: uuid.UUID,
        target_id: uuid.UUID,
        target_type: TargetTypeEnum,
        action: MatchActionEnum,
    ) -> Match:

        requester = await self.profile_store.get_profile(user_id)
        if requester is None:
            raise NotFoundError("Profile not found", field="user_id")

        target_preferences = None
        if target_type == TargetTypeEnum.PROPERTY:
            target = await self.property_store.get_property(target_id)
            if target is None or not target.is_available:
                raise NotFoundError("Property not found", field="target_id")
        else:
            target = await self.profile_store.get_profile(target_id)
            if target is None:
                raise NotFoundError("Profile not found", field="target_id")
            other = await self.preferences_repository.get_by_user_id(target_id)
            if other is not None:
                target_preferences = PreferencesData.from_model(other)

        preferences_model, _ = await self.preferences_repository.get_or_create(user_id)
        preferences = PreferencesData.from_model(preferences_model)

        bypass = action == MatchActionEnum.SUPER_LIKED and self.settings.super_like_bypasses_quota
        if not bypass:
            created_today = await self.match_repository.count_created_since(
                user_id, start_of_utc_day(self.clock())
            )
            if created_today >= preferences.daily_match_limit:
                raise DailyLimitExceededError(preferences.daily_match_limit)

        candidate = self.selector.evaluate(requester, target, preferences, target_preferences)
        match, _ = await self.lifecycle.create(
            user_id,
            target_id,
            target_type,
            candidate.result,
            candidate.context,
        )
        return match

    async def get_history(
        self,
        user_id: uuid.UUID,
        *,
        status: Optional[MatchStatusEnum] = None,
        match_type: Optional[MatchTypeEnum] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> MatchHistory:
        skip = (page - 1) * page_size
        matches = await self.match_repository.get_matches_for_user(
            user_id,
            status=status,
            match_type=match_type,
            skip=skip,
            limit=page_size,
        )
        total = await self.match_repository.count_for_user(
            user_id,
            status=status,
            match_type=match_type,
        )
        summary = await self.match_repository.get_status_summary(user_id)
        return MatchHistory(matches=matches, total=total, summary=summary)

    async def get_match(self, user_id: uuid.UUID, match_id: uuid.UUID) -> Match:
        """Fetch a match the user is part of; the owner's view is recorded."""
        match = await self._get_involved(user_id, match_id)

        if match.user_id == user_id:
            match = await self.match_repository.mark_viewed(match, self.clock())
            await self.session.commit()

        return match

    async def extend(self, user_id: uuid.UUID, match_id: uuid.UUID, days: int) -> Match:
        match = await self._get_involved(user_id, match_id)
        try:
            match = await self.lifecycle.extend(match, days)
        except Exception:
            await self.session.rollback()
            raise

        await self.session.commit()
        return match

    async def block(self, user_id: uuid.UUID, match_id: uuid.UUID) -> Match:
        match = await self._get_involved(user_id, match_id)
        try:
            match = await self.lifecycle.block(match, user_id)
        except Exception:
            await self.session.rollback()
            raise

        await self.session.commit()
        return match

    async def get_expiring_soon(self, user_id: uuid.UUID, hours: int = 24) -> Sequence[Match]:
        if not 1 <= hours <= MAX_EXPIRING_WINDOW_HOURS:
            raise InvalidArgumentError(
                f"Hours must be between 1 and {MAX_EXPIRING_WINDOW_HOURS}",
                field="hours",
            )

        now = self.clock()
        return await self.match_repository.get_expiring_between(
            now,
            now + timedelta(hours=hours),
            user_id=user_id,
        )

    async def get_expiration_stats(self) -> ExpirationStats:
        now = self.clock()
        end_of_day = start_of_utc_day(now) + timedelta(days=1)

        durations = await self.match_repository.get_matched_durations()
        hours = [
            (matched - created).total_seconds() / 3600
            for created, matched in durations
            if matched >= created
        ]

        return ExpirationStats(
            total=await self.match_repository.count(),
            pending=await self.match_repository.count_by_status(MatchStatusEnum.PENDING),
            expired=await self.match_repository.count_by_status(MatchStatusEnum.EXPIRED),
            expiring_today=await self.match_repository.count_expiring_between(now, end_of_day),
            expiring_soon=await self.match_repository.count_expiring_between(
                now, now + timedelta(hours=24)
            ),
            average_match_duration_hours=round(sum(hours) / len(hours), 2) if hours else None,
        )

    async def expire_due(self) -> ExpirationResult:
        try:
            result = await self.lifecycle.expire_due(self.clock())
        except Exception:
            await self.session.rollback()
            self.lifecycle.drain_events()
            raise

        await self._commit_and_publish()
        return result

    async def _get_involved(self, user_id: uuid.UUID, match_id: uuid.UUID) -> Match:
        match = await self.match_repository.get(match_id)
        if match is None or not match.involves(user_id):
            raise NotFoundError("Match not found", field="match_id")
        return match

    async def _commit_and_publish(self) -> list[MatchEvent]:
        await self.session.commit()
        events = self.lifecycle.drain_events()

        if self.publisher is None or not events:
            return events

        for event in events:
            try:
                await self.publisher.publish(event)
            except Exception:
                logger.exception(f"Failed to publish {event.event_type} for match {event.match_id}")

        return events
