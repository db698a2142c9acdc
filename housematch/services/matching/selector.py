import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence, Union

from sqlalchemy.ext.asyncio import AsyncSession

from housematch.core.config import Settings, get_settings
from housematch.core.exceptions import NotFoundError
from housematch.models.match import (
    TERMINAL_STATUSES,
    Match,
    MatchActionEnum,
    MatchStatusEnum,
    TargetTypeEnum,
)
from housematch.repositories.match import MatchRepository
from housematch.repositories.preferences import PreferencesRepository
from housematch.services.collaborators import ProfileStore, PropertySearch, PropertyStore
from housematch.services.matching.helpers import (
    common_interests,
    contains_value,
    distance_between,
    generate_match_reasons,
    generate_property_match_reasons,
    shared_preferences,
)
from housematch.services.matching.lifecycle import MatchContext, MatchLifecycleManager
from housematch.services.matching.profiles import (
    LocationData,
    PreferencesData,
    ProfileData,
    PropertyData,
)
from housematch.services.matching.scorer import CompatibilityResult, MatchScorer

logger = logging.getLogger(__name__)

CandidateTarget = Union[ProfileData, PropertyData]


class CandidateKind(str, Enum):

    ROOMMATE = "roommate"
    HOUSING = "housing"
    BOTH = "both"


@dataclass
class ScoredCandidate:

    target_id: uuid.UUID
    target_type: TargetTypeEnum
    target: CandidateTarget
    result: CompatibilityResult
    context: MatchContext

    @property
    def sort_key(self) -> tuple:
        distance = self.result.distance_km
        return (
            -self.result.overall,
            distance is None,
            distance if distance is not None else 0.0,
            str(self.target_id),
        )


@dataclass
class Candidate:

    match: Match
    target: CandidateTarget
    result: CompatibilityResult
    is_new: bool = False
    auto_liked: bool = False
    is_mutual_match: bool = False


@dataclass
class SelectionReport:
    """What a selection pass did, for logging."""

    considered: int = 0
    excluded_history: int = 0
    excluded_deal_breakers: int = 0
    excluded_hard_filters: int = 0
    below_threshold: int = 0
    skipped_quota: int = 0
    created: list[uuid.UUID] = field(default_factory=list)


def start_of_utc_day(now: datetime) -> datetime:
    return datetime.combine(now.astimezone(timezone.utc).date(), time.min, tzinfo=timezone.utc)


def violates_deal_breakers(deal_breakers: Sequence[str], labels: Sequence[str]) -> bool:
    """True if any deal-breaker term appears in any candidate label."""
    terms = [term.strip().lower() for term in deal_breakers if term and term.strip()]
    if not terms:
        return False
    haystack = [label.lower() for label in labels if label]
    return any(term in label for term in terms for label in haystack)


class CandidateSelector:
    """
    Finds, filters, ranks and surfaces match candidates for a requester.

    Filters run in a fixed order: self, pair history, deal-breakers, hard
    filters, then the requester's compatibility threshold. Surfacing a new
    candidate creates its pending match and counts against the daily quota;
    pending matches already on record are re-shown for free.
    """

    def __init__(
        self,
        session: AsyncSession,
        profile_store: ProfileStore,
        property_store: PropertyStore,
        lifecycle: Optional[MatchLifecycleManager] = None,
        scorer: Optional[MatchScorer] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.profile_store = profile_store
        self.property_store = property_store
        self.lifecycle = lifecycle or MatchLifecycleManager(session, self.settings)
        self.scorer = scorer or MatchScorer()
        self.match_repository = MatchRepository(session)
        self.preferences_repository = PreferencesRepository(session)

    async def select_candidates(
        self,
        requester_id: uuid.UUID,
        limit: int = 10,
        kind: CandidateKind = CandidateKind.BOTH,
    ) -> list[Candidate]:
        """
        Select and surface up to ``limit`` candidates for a requester.

        Args:
            requester_id: The user asking for candidates
            limit: Maximum number of candidates returned
            kind: Roommates, properties or both

        Returns:
            Candidates ordered by score desc, distance asc, target id

        Raises:
            NotFoundError: If the requester has no profile
            DownstreamUnavailableError: If a collaborator cannot be reached
        """
        preferences_model, _ = await self.preferences_repository.get_or_create(requester_id)
        preferences = PreferencesData.from_model(preferences_model)

        if not preferences.is_active:
            logger.info(f"Matching is paused for user {requester_id}")
            return []

        requester = await self.profile_store.get_profile(requester_id)
        if requester is None:
            raise NotFoundError("Profile not found", field="user_id")

        # fetch everything before writing so a collaborator failure leaves no partial result
        report = SelectionReport()
        scored: list[ScoredCandidate] = []
        existing: dict[tuple[uuid.UUID, TargetTypeEnum], Match] = {}

        if kind in (CandidateKind.ROOMMATE, CandidateKind.BOTH):
            roommates, roommate_matches = await self._roommate_candidates(requester, preferences, report)
            scored.extend(roommates)
            existing.update(roommate_matches)

        if kind in (CandidateKind.HOUSING, CandidateKind.BOTH):
            properties, property_matches = await self._property_candidates(requester, preferences, report)
            scored.extend(properties)
            existing.update(property_matches)

        scored.sort(key=lambda c: c.sort_key)

        now = self.lifecycle.clock()
        created_today = await self.match_repository.count_created_since(
            requester_id, start_of_utc_day(now)
        )
        quota_left = max(0, preferences.daily_match_limit - created_today)

        selected: list[Candidate] = []
        for candidate in scored:
            if len(selected) >= limit:
                break

            match = existing.get((candidate.target_id, candidate.target_type))
            if match is not None:
                if match.status == MatchStatusEnum.PENDING and not match.is_expired(now):
                    selected.append(Candidate(match=match, target=candidate.target, result=candidate.result))
                continue

            if quota_left <= 0:
                report.skipped_quota += 1
                continue

            match, created = await self.lifecycle.create(
                requester_id,
                candidate.target_id,
                candidate.target_type,
                candidate.result,
                candidate.context,
            )
            if created:
                quota_left -= 1
                report.created.append(match.id)

            entry = Candidate(match=match, target=candidate.target, result=candidate.result, is_new=created)

            if (
                created
                and preferences.auto_like_enabled
                and candidate.result.overall >= self.settings.auto_like_threshold
            ):
                match, is_mutual = await self.lifecycle.apply_action(
                    match, requester_id, MatchActionEnum.LIKED
                )
                entry.match = match
                entry.auto_liked = True
                entry.is_mutual_match = is_mutual

            selected.append(entry)

        logger.info(
            f"Selected {len(selected)} candidates for {requester_id}: "
            f"considered={report.considered} history={report.excluded_history} "
            f"deal_breakers={report.excluded_deal_breakers} hard={report.excluded_hard_filters} "
            f"threshold={report.below_threshold} quota={report.skipped_quota} "
            f"created={len(report.created)}"
        )
        return selected

    def evaluate(
        self,
        requester: ProfileData,
        target: CandidateTarget,
        preferences: PreferencesData,
        target_preferences: Optional[PreferencesData] = None,
    ) -> ScoredCandidate:
        """Score one candidate and build its display context, no filtering."""
        result = self.scorer.score(requester, target, preferences, target_preferences)

        if isinstance(target, PropertyData):
            context = MatchContext(
                match_reasons=generate_property_match_reasons(result.factors, target),
                shared_preferences=[],
            )
            return ScoredCandidate(target.id, TargetTypeEnum.PROPERTY, target, result, context)

        other = target_preferences or PreferencesData(user_id=target.user_id)
        context = MatchContext(
            match_reasons=generate_match_reasons(result.factors, result.overall),
            common_interests=common_interests(requester.interests, target.interests),
            shared_preferences=(
                shared_preferences(preferences.lifestyle, other.lifestyle)
                + shared_preferences(preferences.schedule, other.schedule)
            ),
        )
        return ScoredCandidate(target.user_id, TargetTypeEnum.USER, target, result, context)

    async def _roommate_candidates(
        self,
        requester: ProfileData,
        preferences: PreferencesData,
        report: SelectionReport,
    ) -> tuple[list[ScoredCandidate], dict]:

        user_ids = await self.preferences_repository.get_active_user_ids(
            exclude_user_id=requester.user_id,
            limit=self.settings.candidate_pool_size,
        )
        if not user_ids:
            return [], {}

        profiles = await self.profile_store.get_profiles(user_ids)
        candidate_preferences = await self.preferences_repository.get_by_user_ids(list(profiles))
        history = await self.match_repository.get_for_targets(
            requester.user_id, list(profiles), TargetTypeEnum.USER
        )

        scored: list[ScoredCandidate] = []
        for user_id, profile in profiles.items():
            report.considered += 1

            if user_id == requester.user_id:
                continue

            if self._excluded_by_history(history.get(user_id)):
                report.excluded_history += 1
                continue

            if violates_deal_breakers(preferences.deal_breakers, profile.labels()):
                report.excluded_deal_breakers += 1
                continue

            if not self.passes_hard_filters(requester.location, profile, preferences):
                report.excluded_hard_filters += 1
                continue

            other = candidate_preferences.get(user_id)
            candidate = self.evaluate(
                requester,
                profile,
                preferences,
                PreferencesData.from_model(other) if other is not None else None,
            )
            if candidate.result.overall < preferences.compatibility_threshold:
                report.below_threshold += 1
                continue

            scored.append(candidate)

        existing = {(target_id, TargetTypeEnum.USER): m for target_id, m in history.items()}
        return scored, existing

    async def _property_candidates(
        self,
        requester: ProfileData,
        preferences: PreferencesData,
        report: SelectionReport,
    ) -> tuple[list[ScoredCandidate], dict]:

        _, flexible_max = preferences.flexible_budget()
        search = PropertySearch(
            exclude_owner_id=requester.user_id,
            max_rent=flexible_max,
            states=preferences.preferred_states if preferences.location_flexibility == 0 else [],
            cities=preferences.preferred_cities if preferences.location_flexibility == 0 else [],
        )
        properties = await self.property_store.search_properties(search, self.settings.candidate_pool_size)
        if not properties:
            return [], {}

        history = await self.match_repository.get_for_targets(
            requester.user_id, [p.id for p in properties], TargetTypeEnum.PROPERTY
        )

        scored: list[ScoredCandidate] = []
        for property_data in properties:
            report.considered += 1

            if property_data.owner_id == requester.user_id or not property_data.is_available:
                continue

            if self._excluded_by_history(history.get(property_data.id)):
                report.excluded_history += 1
                continue

            if violates_deal_breakers(preferences.deal_breakers, property_data.labels()):
                report.excluded_deal_breakers += 1
                continue

            if not self.passes_hard_filters(requester.location, property_data, preferences):
                report.excluded_hard_filters += 1
                continue

            candidate = self.evaluate(requester, property_data, preferences)
            if candidate.result.overall < preferences.compatibility_threshold:
                report.below_threshold += 1
                continue

            scored.append(candidate)

        existing = {(target_id, TargetTypeEnum.PROPERTY): m for target_id, m in history.items()}
        return scored, existing

    @staticmethod
    def _excluded_by_history(match: Optional[Match]) -> bool:
        if match is None:
            return False
        return match.status in TERMINAL_STATUSES or match.status == MatchStatusEnum.MATCHED

    @staticmethod
    def passes_hard_filters(
        requester_location: LocationData,
        target: CandidateTarget,
        preferences: PreferencesData,
    ) -> bool:
        """
        Apply the requester's hard filters to one candidate.

        Distance and budget are relaxed by their flexibility percentages and
        preferred states/cities are only enforced with zero location
        flexibility. Age and gender are strict. Unknown distance passes.
        """
        location_flex = Decimal(preferences.location_flexibility) / Decimal(100)

        distance = distance_between(requester_location, target.location)
        if distance is not None:
            allowed = preferences.max_distance * (1 + float(location_flex))
            if distance > allowed:
                return False

        if location_flex == 0:
            if preferences.preferred_states and not contains_value(
                preferences.preferred_states, target.location.state
            ):
                return False
            if preferences.preferred_cities and not contains_value(
                preferences.preferred_cities, target.location.city
            ):
                return False

        if isinstance(target, PropertyData):
            low, high = preferences.flexible_budget()
            return low <= target.rent_per_month <= high

        if target.age is not None and not (preferences.age_min <= target.age <= preferences.age_max):
            return False

        if preferences.gender_preference != "any":
            if target.gender is None or target.gender.lower() != preferences.gender_preference:
                return False

        return True
