"""
Match lifecycle: creation, swipe actions, mirror reconciliation, expiry,
extension and blocking.

Every status transition is a compare-and-set on the row's current status,
so concurrent writers never move a match twice. Events are collected in
``pending_events`` and published by the caller after commit.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from housematch.core.config import Settings, get_settings
from housematch.core.database import utcnow
from housematch.core.exceptions import InvalidArgumentError, InvalidStateError
from housematch.core.validators import validate_extension_days
from housematch.models.match import (
    Match,
    MatchActionEnum,
    MatchStatusEnum,
    MatchTypeEnum,
    FACTOR_COLUMNS,
    TargetTypeEnum,
    derive_status,
    factor_values,
)
from housematch.repositories.match import MatchRepository
from housematch.services.events import (
    MATCH_CREATED,
    MATCH_EXPIRED,
    MATCH_MUTUAL,
    MatchEvent,
)
from housematch.services.matching.scorer import CompatibilityResult

logger = logging.getLogger(__name__)

BLOCKABLE_STATUSES = (MatchStatusEnum.PENDING, MatchStatusEnum.MATCHED)


@dataclass
class MatchContext:
    """Display context stored alongside the scores."""

    match_reasons: list[str] = field(default_factory=list)
    common_interests: list[str] = field(default_factory=list)
    shared_preferences: list[str] = field(default_factory=list)


@dataclass
class ExpirationResult:

    processed: int = 0
    expired: int = 0
    extended: int = 0


class MatchLifecycleManager:

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.clock = clock
        self.repository = MatchRepository(session)
        self.pending_events: list[MatchEvent] = []

    def drain_events(self) -> list[MatchEvent]:

        events, self.pending_events = self.pending_events, []
        seen: set[str] = set()
        unique: list[MatchEvent] = []
        for event in events:
            if event.idempotency_key not in seen:
                seen.add(event.idempotency_key)
                unique.append(event)
        return unique

    def offer_window(self, target_type: TargetTypeEnum) -> timedelta:
        if target_type == TargetTypeEnum.PROPERTY:
            return timedelta(days=self.settings.housing_offer_days)
        return timedelta(days=self.settings.roommate_offer_days)

    async def create(
        self,
        user_id: uuid.UUID,
        target_id: uuid.UUID,
        target_type: TargetTypeEnum,
        result: CompatibilityResult,
        context: Optional[MatchContext] = None,
    ) -> tuple[Match, bool]:
        """
        Create a pending match for a directed pair.

        Existing rows are returned untouched, including the winner's row when
        two callers race on the same pair.

        Returns:
            (match, created) where created is False for an existing row

        Raises:
            InvalidArgumentError: If a user targets themselves
        """
        if target_type == TargetTypeEnum.USER and user_id == target_id:
            raise InvalidArgumentError("Cannot match a user with themselves", field="target_id")

        existing = await self.repository.get_by_pair(user_id, target_id, target_type)
        if existing is not None:
            return existing, False

        context = context or MatchContext()
        now = self.clock()
        is_property = target_type == TargetTypeEnum.PROPERTY

        values: dict[str, Any] = {
            "user_id": user_id,
            "target_id": target_id,
            "target_type": target_type,
            "match_type": MatchTypeEnum.HOUSING if is_property else MatchTypeEnum.ROOMMATE,
            "status": MatchStatusEnum.PENDING,
            "user_action": MatchActionEnum.NONE,
            # a listing is an open offer from its owner
            "target_action": MatchActionEnum.LIKED if is_property else MatchActionEnum.NONE,
            "location_proximity": result.distance_km,
            "budget_compatibility": result.budget_compatibility,
            "state_match": result.state_match,
            "match_reasons": context.match_reasons,
            "common_interests": context.common_interests,
            "shared_preferences": context.shared_preferences,
            "expires_at": now + self.offer_window(target_type),
            "last_interaction_at": now,
            "created_at": now,
            "updated_at": now,
            **factor_values(result.factors),
        }

        match, created = await self.repository.create_match(values)
        if created:
            logger.info(
                f"Created {values['match_type'].value} match {match.id} "
                f"({user_id} -> {target_id}, score {match.compatibility_score})"
            )
            self.pending_events.append(MatchEvent.for_match(MATCH_CREATED, match))

        return match, created

    async def apply_action(
        self,
        match: Match,
        acting_user_id: uuid.UUID,
        action: MatchActionEnum,
    ) -> tuple[Match, bool]:
        """
        Record a swipe on a pending match.

        Both rows of a user-to-user pair are locked first and read fresh.
        The acting user's side of the record is set, the other side is taken
        from the mirror record as it currently counts, and the pair is then
        reconciled so both rows agree.

        Returns:
            (match, is_mutual) where is_mutual is True only if this call
            moved the pair to matched

        Raises:
            InvalidArgumentError: If the action is ``none`` or the user is
                not a party to the match
            InvalidStateError: If the match is no longer pending or its
                offer has expired
        """
        if action == MatchActionEnum.NONE:
            raise InvalidArgumentError("Action must be liked, passed or super_liked", field="action")

        now = self.clock()
        mirror = None
        if match.target_type == TargetTypeEnum.USER:
            match, mirror = await self.repository.lock_pair(match)

        if match.status != MatchStatusEnum.PENDING:
            raise InvalidStateError(f"Match is {match.status.value} and can no longer be acted on")
        if match.is_expired(now):
            raise InvalidStateError("Match offer has expired")

        if acting_user_id == match.user_id:
            side = "user_action"
        elif match.target_type == TargetTypeEnum.USER and acting_user_id == match.target_id:
            side = "target_action"
        else:
            raise InvalidArgumentError("User is not part of this match", field="match_id")

        user_action = action if side == "user_action" else match.user_action
        target_action = action if side == "target_action" else match.target_action
        if side == "user_action" and mirror is not None:
            target_action = self.counted_action(mirror, now)

        status = derive_status(user_action, target_action)

        values: dict[str, Any] = {
            "user_action": user_action,
            "target_action": target_action,
            "status": status,
            "last_interaction_at": now,
        }
        if status == MatchStatusEnum.MATCHED:
            values["matched_at"] = now
            if match.target_type == TargetTypeEnum.USER:
                values["match_type"] = MatchTypeEnum.MUTUAL
        if side == "user_action" and match.viewed_at is not None and match.response_time is None:
            values["response_time"] = max(0, int((now - match.viewed_at).total_seconds() // 60))

        moved = await self.repository.compare_and_set(
            match.id,
            {"status": MatchStatusEnum.PENDING},
            values,
        )
        match = await self.repository.get(match.id)

        if not moved:
            logger.info(f"Match {match.id} changed concurrently, now {match.status.value}")
            return match, False

        logger.info(f"User {acting_user_id} {action.value} match {match.id} -> {match.status.value}")

        is_mutual = status == MatchStatusEnum.MATCHED
        if is_mutual:
            self.pending_events.append(MatchEvent.for_match(MATCH_MUTUAL, match))

        match, reconciled_mutual = await self.reconcile(match)
        return match, is_mutual or reconciled_mutual

    @staticmethod
    def counted_action(row: Match, now: datetime) -> MatchActionEnum:
        """
        A directed row's user side as it counts towards its pair.

        Expired and blocked rows, and pending rows past their expiry, count
        as no action at all.
        """
        if row.status in (MatchStatusEnum.EXPIRED, MatchStatusEnum.BLOCKED):
            return MatchActionEnum.NONE
        if row.status == MatchStatusEnum.PENDING and row.is_expired(now):
            return MatchActionEnum.NONE
        return row.user_action

    async def reconcile(self, match: Match) -> tuple[Match, bool]:
        """
        Bring a user-to-user pair's two directed records into agreement.

        Each record's target side mirrors the other record's user side; a
        record whose two sides are both positive becomes matched, one with a
        pass becomes rejected. A record that has lapsed, expired or been
        blocked never contributes. Safe to call repeatedly.

        Returns:
            (refreshed match, whether this call created the mutual match)
        """
        if match.target_type != TargetTypeEnum.USER:
            return match, False

        match, mirror = await self.repository.lock_pair(match)
        if mirror is None:
            return match, False

        now = self.clock()
        became_matched = False

        for row, other in ((match, mirror), (mirror, match)):
            if row.status != MatchStatusEnum.PENDING or row.is_expired(now):
                continue

            target_action = self.counted_action(other, now)
            if target_action == MatchActionEnum.NONE:
                continue

            status = derive_status(row.user_action, target_action)
            if target_action == row.target_action and status == MatchStatusEnum.PENDING:
                continue

            values: dict[str, Any] = {"target_action": target_action, "status": status}
            if status == MatchStatusEnum.MATCHED:
                values["matched_at"] = now
                values["match_type"] = MatchTypeEnum.MUTUAL

            moved = await self.repository.compare_and_set(
                row.id,
                {"status": MatchStatusEnum.PENDING},
                values,
            )
            if moved and status == MatchStatusEnum.MATCHED:
                became_matched = True

        match = await self.repository.get(match.id)
        if became_matched:
            logger.info(f"Mutual match between {match.user_id} and {match.target_id}")
            self.pending_events.append(MatchEvent.for_match(MATCH_MUTUAL, match))

        return match, became_matched

    async def expire_due(
        self,
        now: Optional[datetime] = None,
        *,
        batch_size: Optional[int] = None,
        auto_extend: Optional[bool] = None,
    ) -> ExpirationResult:
        """
        Expire pending matches whose offer window has passed.

        Only rows still pending at write time are touched, so running the
        sweep twice, or concurrently, expires each match once. With
        auto-extension enabled, strong matches get a few more days instead.
        """
        now = now or self.clock()
        batch_size = batch_size or self.settings.expiry_sweep_batch_size
        if auto_extend is None:
            auto_extend = self.settings.expiry_auto_extend_enabled

        result = ExpirationResult()
        due = await self.repository.get_due_for_expiry(now, limit=batch_size)

        for match in due:
            result.processed += 1

            if auto_extend and self.should_auto_extend(match, now):
                days = self.settings.expiry_auto_extend_days
                extended = await self.repository.compare_and_set(
                    match.id,
                    {"status": MatchStatusEnum.PENDING, "expires_at": match.expires_at},
                    {"expires_at": now + timedelta(days=days)},
                )
                if extended:
                    result.extended += 1
                    logger.info(f"Auto-extended match {match.id} by {days} days")
                continue

            expired = await self.repository.compare_and_set(
                match.id,
                {"status": MatchStatusEnum.PENDING},
                {"status": MatchStatusEnum.EXPIRED, "last_interaction_at": now},
            )
            if expired:
                result.expired += 1
                self.pending_events.append(MatchEvent.for_match(MATCH_EXPIRED, match))

        if result.processed:
            logger.info(
                f"Expiry sweep: processed {result.processed}, "
                f"expired {result.expired}, extended {result.extended}"
            )

        return result

    @staticmethod
    def should_auto_extend(match: Match, now: datetime) -> bool:

        recently_viewed = match.viewed_at is not None and now - match.viewed_at <= timedelta(days=2)

        if match.compatibility_score >= 90:
            return True
        if match.compatibility_score >= 85 and recently_viewed:
            return True
        if match.compatibility_score >= 80 and match.view_count > 0:
            return True
        return False

    async def extend(self, match: Match, days: int) -> Match:
        """
        Push a pending match's expiry out by ``days``.

        Raises:
            InvalidArgumentError: If days is outside 1..max_extension_days
            InvalidStateError: If the match is not pending
        """
        validation = validate_extension_days(days, self.settings.max_extension_days)
        if not validation.is_valid:
            raise InvalidArgumentError(validation.error_message, field="days")

        if match.status != MatchStatusEnum.PENDING:
            raise InvalidStateError(f"Only pending matches can be extended, match is {match.status.value}")

        moved = await self.repository.compare_and_set(
            match.id,
            {"status": MatchStatusEnum.PENDING, "expires_at": match.expires_at},
            {"expires_at": match.extended_expiry(days)},
        )
        refreshed = await self.repository.get(match.id)
        if not moved:
            raise InvalidStateError(f"Match changed concurrently and is now {refreshed.status.value}")

        logger.info(f"Extended match {match.id} by {days} days to {refreshed.expires_at.isoformat()}")
        return refreshed

    async def block(self, match: Match, acting_user_id: uuid.UUID) -> Match:
        """
        Block a pending or matched pair; the mirror record is blocked too.

        Raises:
            InvalidArgumentError: If the user is not a party to the match
            InvalidStateError: If the match is already rejected, expired or blocked
        """
        if not match.involves(acting_user_id):
            raise InvalidArgumentError("User is not part of this match", field="match_id")

        if match.status not in BLOCKABLE_STATUSES:
            raise InvalidStateError(f"Match is {match.status.value} and cannot be blocked")

        now = self.clock()
        moved = await self.repository.compare_and_set(
            match.id,
            {"status": match.status},
            {"status": MatchStatusEnum.BLOCKED, "last_interaction_at": now},
        )
        refreshed = await self.repository.get(match.id)
        if not moved:
            raise InvalidStateError(f"Match changed concurrently and is now {refreshed.status.value}")

        mirror = await self.repository.get_mirror(refreshed)
        if mirror is not None and mirror.status in BLOCKABLE_STATUSES:
            await self.repository.compare_and_set(
                mirror.id,
                {"status": mirror.status},
                {"status": MatchStatusEnum.BLOCKED, "last_interaction_at": now},
            )

        logger.info(f"User {acting_user_id} blocked match {match.id}")
        return refreshed

    async def rescore(self, match: Match, result: CompatibilityResult) -> Match:
        """Replace a match's factor scores; the overall is recomputed on flush."""
        for name, value in result.factors.as_dict().items():
            setattr(match, FACTOR_COLUMNS[name], value)
        match.budget_compatibility = result.budget_compatibility
        match.location_proximity = result.distance_km
        match.state_match = result.state_match

        await self.session.flush()
        await self.session.refresh(match)
        return match
