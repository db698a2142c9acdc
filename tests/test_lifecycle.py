"""Match lifecycle tests against a real database session."""

import uuid
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import FakeClock, make_profile, make_property, save_preferences
from housematch.core.exceptions import (
    DailyLimitExceededError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from housematch.core.weights import CompatibilityFactors
from housematch.models.match import (
    Match,
    MatchActionEnum,
    MatchStatusEnum,
    MatchTypeEnum,
    TargetTypeEnum,
)
from housematch.repositories.match import MatchRepository
from housematch.services.events import (
    MATCH_CREATED,
    MATCH_EXPIRED,
    MATCH_MUTUAL,
    mutual_idempotency_key,
)
from housematch.services.match import MatchService
from housematch.services.matching.lifecycle import MatchLifecycleManager
from housematch.services.matching.scorer import CompatibilityResult


def _result(overall_factor: int = 80) -> CompatibilityResult:
    factors = CompatibilityFactors(*([overall_factor] * 7))
    return CompatibilityResult(factors=factors, overall=factors.weighted_overall())


@pytest_asyncio.fixture
async def service(db_session: AsyncSession, profile_store, property_store, publisher, clock) -> MatchService:
    return MatchService(db_session, profile_store, property_store, publisher, clock=clock)


@pytest.fixture
def pair(profile_store) -> tuple[uuid.UUID, uuid.UUID]:
    alice = profile_store.add(make_profile(gender="female"))
    bola = profile_store.add(make_profile(gender="female", interests=["reading", "music"]))
    return alice.user_id, bola.user_id


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_is_idempotent_per_pair(self, db_session: AsyncSession, clock: FakeClock) -> None:
        lifecycle = MatchLifecycleManager(db_session, clock=clock)
        user_id, target_id = uuid.uuid4(), uuid.uuid4()

        first, created = await lifecycle.create(user_id, target_id, TargetTypeEnum.USER, _result())
        second, created_again = await lifecycle.create(user_id, target_id, TargetTypeEnum.USER, _result(20))

        assert created is True
        assert created_again is False
        assert first.id == second.id
        assert second.compatibility_score == 80
        assert [e.event_type for e in lifecycle.drain_events()] == [MATCH_CREATED]

    @pytest.mark.asyncio
    async def test_new_match_fields(self, db_session: AsyncSession, clock: FakeClock) -> None:
        lifecycle = MatchLifecycleManager(db_session, clock=clock)

        match, _ = await lifecycle.create(uuid.uuid4(), uuid.uuid4(), TargetTypeEnum.USER, _result())

        assert match.status == MatchStatusEnum.PENDING
        assert match.match_type == MatchTypeEnum.ROOMMATE
        assert match.user_action == MatchActionEnum.NONE
        assert match.target_action == MatchActionEnum.NONE
        assert match.expires_at == clock() + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_property_match_is_an_open_offer(self, db_session: AsyncSession, clock: FakeClock) -> None:
        lifecycle = MatchLifecycleManager(db_session, clock=clock)

        match, _ = await lifecycle.create(uuid.uuid4(), uuid.uuid4(), TargetTypeEnum.PROPERTY, _result())

        assert match.match_type == MatchTypeEnum.HOUSING
        assert match.target_action == MatchActionEnum.LIKED
        assert match.expires_at == clock() + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_rescore_replaces_factors(self, db_session: AsyncSession, clock: FakeClock) -> None:
        lifecycle = MatchLifecycleManager(db_session, clock=clock)
        match, _ = await lifecycle.create(uuid.uuid4(), uuid.uuid4(), TargetTypeEnum.USER, _result())

        rescored = await lifecycle.rescore(match, _result(95))

        assert rescored.compatibility_score == 95
        assert rescored.budget_compatibility == 95

    @pytest.mark.asyncio
    async def test_factor_write_recomputes_overall(self, db_session: AsyncSession, clock: FakeClock) -> None:
        lifecycle = MatchLifecycleManager(db_session, clock=clock)
        match, _ = await lifecycle.create(uuid.uuid4(), uuid.uuid4(), TargetTypeEnum.USER, _result())

        match.location_score = 0
        await db_session.flush()

        assert match.compatibility_score == 64

    @pytest.mark.asyncio
    async def test_self_match_is_rejected(self, db_session: AsyncSession) -> None:
        lifecycle = MatchLifecycleManager(db_session)
        user_id = uuid.uuid4()

        with pytest.raises(InvalidArgumentError):
            await lifecycle.create(user_id, user_id, TargetTypeEnum.USER, _result())


class TestSwipe:

    @pytest.mark.asyncio
    async def test_like_leaves_match_pending(self, service: MatchService, pair, publisher) -> None:
        alice, bola = pair

        result = await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        assert result.is_mutual_match is False
        assert result.match.status == MatchStatusEnum.PENDING
        assert result.match.user_action == MatchActionEnum.LIKED
        assert [e.event_type for e in publisher.events] == [MATCH_CREATED]

    @pytest.mark.asyncio
    async def test_both_likes_make_one_mutual_match(self, service: MatchService, pair, publisher) -> None:
        alice, bola = pair

        await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)
        result = await service.swipe(bola, alice, TargetTypeEnum.USER, MatchActionEnum.SUPER_LIKED)

        assert result.is_mutual_match is True
        assert result.match.status == MatchStatusEnum.MATCHED
        assert result.match.match_type == MatchTypeEnum.MUTUAL
        assert result.match.target_action == MatchActionEnum.LIKED
        assert result.match.matched_at is not None

        mirror = await service.match_repository.get_by_pair(alice, bola, TargetTypeEnum.USER)
        assert mirror.status == MatchStatusEnum.MATCHED
        assert mirror.target_action == MatchActionEnum.SUPER_LIKED

        mutual = publisher.of_type(MATCH_MUTUAL)
        assert len(mutual) == 1
        assert mutual[0].idempotency_key == mutual_idempotency_key(alice, bola, TargetTypeEnum.USER)

    @pytest.mark.asyncio
    async def test_pass_rejects_both_records(self, service: MatchService, pair, publisher) -> None:
        alice, bola = pair

        await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.PASSED)
        result = await service.swipe(bola, alice, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        assert result.is_mutual_match is False
        assert result.match.status == MatchStatusEnum.REJECTED
        assert publisher.of_type(MATCH_MUTUAL) == []

    @pytest.mark.asyncio
    async def test_swipe_on_settled_match_fails(self, service: MatchService, pair) -> None:
        alice, bola = pair
        await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.PASSED)

        with pytest.raises(InvalidStateError):
            await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)

    @pytest.mark.asyncio
    async def test_swipe_validation(self, service: MatchService, pair) -> None:
        alice, _ = pair

        with pytest.raises(InvalidArgumentError):
            await service.swipe(alice, alice, TargetTypeEnum.USER, MatchActionEnum.LIKED)
        with pytest.raises(InvalidArgumentError):
            await service.swipe(alice, uuid.uuid4(), TargetTypeEnum.USER, MatchActionEnum.NONE)
        with pytest.raises(NotFoundError):
            await service.swipe(alice, uuid.uuid4(), TargetTypeEnum.USER, MatchActionEnum.LIKED)

    @pytest.mark.asyncio
    async def test_liking_a_property_matches_immediately(
        self, service: MatchService, pair, property_store, publisher
    ) -> None:
        alice, _ = pair
        listing = property_store.add(make_property())

        result = await service.swipe(alice, listing.id, TargetTypeEnum.PROPERTY, MatchActionEnum.LIKED)

        assert result.is_mutual_match is True
        assert result.match.status == MatchStatusEnum.MATCHED
        assert result.match.match_type == MatchTypeEnum.HOUSING
        assert len(publisher.of_type(MATCH_MUTUAL)) == 1

    @pytest.mark.asyncio
    async def test_unavailable_property_is_not_found(self, service: MatchService, pair, property_store) -> None:
        alice, _ = pair
        listing = property_store.add(make_property(is_available=False))

        with pytest.raises(NotFoundError):
            await service.swipe(alice, listing.id, TargetTypeEnum.PROPERTY, MatchActionEnum.LIKED)

    @pytest.mark.asyncio
    async def test_swipe_creation_counts_against_quota(
        self, service: MatchService, db_session: AsyncSession, pair, profile_store
    ) -> None:
        alice, bola = pair
        await save_preferences(
            db_session,
            alice,
            matching_settings={"daily_match_limit": 1},
        )
        other = profile_store.add(make_profile())

        await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)
        with pytest.raises(DailyLimitExceededError):
            await service.swipe(alice, other.user_id, TargetTypeEnum.USER, MatchActionEnum.LIKED)

    @pytest.mark.asyncio
    async def test_expired_offer_cannot_be_swiped(self, service: MatchService, pair, clock: FakeClock) -> None:
        alice, bola = pair
        await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        clock.advance(days=8)
        with pytest.raises(InvalidStateError):
            await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.PASSED)

    @pytest.mark.asyncio
    async def test_lapsed_offer_is_not_matched(self, service: MatchService, pair, clock: FakeClock) -> None:
        alice, bola = pair
        await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        clock.advance(days=8)
        result = await service.swipe(bola, alice, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        assert result.is_mutual_match is False
        assert result.match.status == MatchStatusEnum.PENDING

    @pytest.mark.asyncio
    async def test_swept_offer_is_not_matched(
        self, service: MatchService, pair, clock: FakeClock, publisher
    ) -> None:
        alice, bola = pair
        await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        clock.advance(days=8)
        swept = await service.expire_due()
        result = await service.swipe(bola, alice, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        assert swept.expired == 1
        assert result.is_mutual_match is False
        assert result.match.status == MatchStatusEnum.PENDING
        assert result.match.target_action == MatchActionEnum.NONE
        offer = await service.match_repository.get_by_pair(alice, bola, TargetTypeEnum.USER)
        assert offer.status == MatchStatusEnum.EXPIRED
        assert publisher.of_type(MATCH_MUTUAL) == []

    @pytest.mark.asyncio
    async def test_like_copied_from_an_expired_offer_does_not_count(
        self, service: MatchService, db_session: AsyncSession, pair, clock: FakeClock, publisher
    ) -> None:
        alice, bola = pair
        await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        clock.advance(days=6)
        reverse, _ = await service.lifecycle.create(bola, alice, TargetTypeEnum.USER, _result())
        reverse, _ = await service.lifecycle.reconcile(reverse)
        await db_session.commit()
        assert reverse.target_action == MatchActionEnum.LIKED

        clock.advance(days=2)
        await service.expire_due()
        result = await service.swipe(bola, alice, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        assert result.is_mutual_match is False
        assert result.match.status == MatchStatusEnum.PENDING
        assert result.match.target_action == MatchActionEnum.NONE
        assert publisher.of_type(MATCH_MUTUAL) == []

    @pytest.mark.asyncio
    async def test_action_reads_the_pair_fresh(self, service: MatchService, pair) -> None:
        alice, bola = pair
        await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)
        stale = await service.match_repository.get_by_pair(alice, bola, TargetTypeEnum.USER)

        await service.match_repository.compare_and_set(
            stale.id, {}, {"status": MatchStatusEnum.REJECTED}
        )

        with pytest.raises(InvalidStateError):
            await service.lifecycle.apply_action(stale, alice, MatchActionEnum.SUPER_LIKED)

    @pytest.mark.asyncio
    async def test_pair_rows_are_locked_in_id_order(self, db_session: AsyncSession) -> None:
        repository = MatchRepository(db_session)
        match = Match(user_id=uuid.uuid4(), target_id=uuid.uuid4(), target_type=TargetTypeEnum.USER)

        sql = str(repository.pair_lock_query(match).compile(dialect=postgresql.dialect()))

        assert "ORDER BY matches.id" in sql
        assert sql.rstrip().endswith("FOR UPDATE")

    @pytest.mark.asyncio
    async def test_sweep_skips_rows_held_by_a_swipe(self, db_session: AsyncSession, clock: FakeClock) -> None:
        repository = MatchRepository(db_session)

        sql = str(repository.due_for_expiry_query(clock(), 500).compile(dialect=postgresql.dialect()))

        assert sql.rstrip().endswith("FOR UPDATE SKIP LOCKED")


class TestExpiry:

    @pytest.mark.asyncio
    async def test_sweep_expires_once(self, service: MatchService, pair, clock: FakeClock, publisher) -> None:
        alice, bola = pair
        liked = await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        clock.advance(days=6)
        early = await service.expire_due()
        assert early.processed == 0

        clock.advance(days=2)
        first = await service.expire_due()
        second = await service.expire_due()

        assert first.expired == 1
        assert second.processed == 0

        match = await service.match_repository.get(liked.match.id)
        assert match.status == MatchStatusEnum.EXPIRED
        assert len(publisher.of_type(MATCH_EXPIRED)) == 1

    @pytest.mark.asyncio
    async def test_settled_matches_never_expire(self, service: MatchService, pair, clock: FakeClock) -> None:
        alice, bola = pair
        await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)
        await service.swipe(bola, alice, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        clock.advance(days=60)
        result = await service.expire_due()

        assert result.processed == 0

    @pytest.mark.asyncio
    async def test_auto_extension_of_strong_matches(self, db_session: AsyncSession, clock: FakeClock) -> None:
        lifecycle = MatchLifecycleManager(db_session, clock=clock)
        strong, _ = await lifecycle.create(uuid.uuid4(), uuid.uuid4(), TargetTypeEnum.USER, _result(95))
        weak, _ = await lifecycle.create(uuid.uuid4(), uuid.uuid4(), TargetTypeEnum.USER, _result(50))

        now = clock.advance(days=8)
        result = await lifecycle.expire_due(now, auto_extend=True)

        assert result.extended == 1
        assert result.expired == 1
        assert (await lifecycle.repository.get(strong.id)).status == MatchStatusEnum.PENDING
        assert (await lifecycle.repository.get(weak.id)).status == MatchStatusEnum.EXPIRED


class TestExtendAndBlock:

    @pytest.mark.asyncio
    async def test_extend_pushes_expiry(self, service: MatchService, pair) -> None:
        alice, bola = pair
        liked = await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)
        before = liked.match.expires_at

        extended = await service.extend(alice, liked.match.id, 5)

        assert extended.expires_at == before + timedelta(days=5)

    @pytest.mark.asyncio
    async def test_extend_rejects_bad_days_and_settled_matches(self, service: MatchService, pair) -> None:
        alice, bola = pair
        passed = await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.PASSED)
        match_id = passed.match.id

        with pytest.raises(InvalidArgumentError):
            await service.extend(alice, match_id, 0)
        with pytest.raises(InvalidStateError):
            await service.extend(alice, match_id, 3)

    @pytest.mark.asyncio
    async def test_block_blocks_both_records(self, service: MatchService, pair) -> None:
        alice, bola = pair
        await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)
        mutual = await service.swipe(bola, alice, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        blocked = await service.block(bola, mutual.match.id)

        assert blocked.status == MatchStatusEnum.BLOCKED
        mirror = await service.match_repository.get_by_pair(alice, bola, TargetTypeEnum.USER)
        assert mirror.status == MatchStatusEnum.BLOCKED

        with pytest.raises(InvalidStateError):
            await service.block(bola, mutual.match.id)

    @pytest.mark.asyncio
    async def test_outsiders_cannot_see_or_change_a_match(self, service: MatchService, pair) -> None:
        alice, bola = pair
        liked = await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)
        stranger = uuid.uuid4()

        with pytest.raises(NotFoundError):
            await service.get_match(stranger, liked.match.id)
        with pytest.raises(NotFoundError):
            await service.block(stranger, liked.match.id)

    @pytest.mark.asyncio
    async def test_owner_view_is_recorded(self, service: MatchService, pair) -> None:
        alice, bola = pair
        liked = await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        viewed = await service.get_match(alice, liked.match.id)
        seen_by_target = await service.get_match(bola, liked.match.id)

        assert viewed.view_count == 1
        assert viewed.viewed_at is not None
        assert seen_by_target.view_count == 1


class TestHistoryAndStats:

    @pytest.mark.asyncio
    async def test_history_filters_and_summary(self, service: MatchService, pair, property_store) -> None:
        alice, bola = pair
        listing = property_store.add(make_property())
        await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)
        await service.swipe(alice, listing.id, TargetTypeEnum.PROPERTY, MatchActionEnum.LIKED)

        history = await service.get_history(alice)
        housing = await service.get_history(alice, match_type=MatchTypeEnum.HOUSING)
        matched = await service.get_history(alice, status=MatchStatusEnum.MATCHED)

        assert history.total == 2
        assert housing.total == 1
        assert matched.matches[0].target_id == listing.id
        assert history.summary["pending"] == 1
        assert history.summary["matched"] == 1

    @pytest.mark.asyncio
    async def test_expiring_soon_window(self, service: MatchService, pair, clock: FakeClock) -> None:
        alice, bola = pair
        await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        assert await service.get_expiring_soon(alice, hours=24) == []

        clock.advance(days=6, hours=12)
        soon = await service.get_expiring_soon(alice, hours=24)
        assert len(soon) == 1

        with pytest.raises(InvalidArgumentError):
            await service.get_expiring_soon(alice, hours=200)

    @pytest.mark.asyncio
    async def test_expiration_stats(self, service: MatchService, pair) -> None:
        alice, bola = pair
        await service.swipe(alice, bola, TargetTypeEnum.USER, MatchActionEnum.LIKED)

        stats = await service.get_expiration_stats()

        assert stats.total == 1
        assert stats.pending == 1
        assert stats.expired == 0
        assert stats.average_match_duration_hours is None
