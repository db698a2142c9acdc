from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from housematch.core.weights import DEFAULT_WEIGHTS, CompatibilityFactors, MatchWeights, round_half_up
from housematch.models.preferences import DEFAULT_LIFESTYLE, NO_PREFERENCE
from housematch.services.matching.helpers import (
    contains_value,
    distance_between,
    is_compatible_lifestyle,
    is_compatible_schedule,
    same_value,
)
from housematch.services.matching.profiles import (
    LocationData,
    PreferencesData,
    ProfileData,
    PropertyData,
)

LIFESTYLE_AXES = ("smoking", "drinking", "pets", "parties", "guests", "noise_level")
SCHEDULE_AXES = ("work_schedule", "sleep_schedule", "social_level")

CLEANLINESS_LEVELS = {"very_clean": 4, "clean": 3, "average": 2, "relaxed": 1}
SOCIAL_LEVELS = {"very_social": 4, "social": 3, "moderate": 2, "private": 1}

NEUTRAL_SCORE = 70

Candidate = Union[ProfileData, PropertyData]

@dataclass(frozen=True)
class CompatibilityResult:

    factors: CompatibilityFactors
    overall: int
    distance_km: Optional[float] = None
    state_match: bool = False

    @property
    def budget_compatibility(self) -> int:
        return self.factors.budget


def _clamp(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


class MatchScorer:
    """
    Pure scoring of a requester against one candidate.

    Every factor is an integer in [0, 100]; the overall score is the
    weighted sum of the factors, rounded and clamped to the same range.
    """

    def __init__(self, weights: Optional[MatchWeights] = None):

        self.weights = weights or DEFAULT_WEIGHTS

    def calculate_location_score(
        self,
        requester_location: LocationData,
        candidate_location: LocationData,
        preferences: PreferencesData,
    ) -> int:
        """
        Calculate location compatibility.

        With coordinates on both sides the score falls linearly from 100 at
        zero distance to 0 at the requester's maximum distance. Without them
        a region rule applies:
        - +40: same state
        - +30: same city
        - +20: same area
        - +10: candidate state is a preferred state
        - +10: candidate city is a preferred city

        Returns:
            Score from 0 to 100
        """
        distance = distance_between(requester_location, candidate_location)
        if distance is not None:
            return _clamp(100 * (1 - distance / preferences.max_distance))

        score = 0
        if same_value(requester_location.state, candidate_location.state):
            score += 40
        if same_value(requester_location.city, candidate_location.city):
            score += 30
        if same_value(requester_location.area, candidate_location.area):
            score += 20
        if contains_value(preferences.preferred_states, candidate_location.state):
            score += 10
        if contains_value(preferences.preferred_cities, candidate_location.city):
            score += 10

        return min(score, 100)

    def calculate_user_budget_score(
        self,
        preferences: PreferencesData,
        other: PreferencesData,
    ) -> int:
        """
        Overlap of the two flexibility-widened budget ranges relative to their
        mean width. Disjoint ranges score 0.
        """
        low_a, high_a = (float(v) for v in preferences.flexible_budget())
        low_b, high_b = (float(v) for v in other.flexible_budget())

        overlap = min(high_a, high_b) - max(low_a, low_b)
        if overlap < 0:
            return 0

        mean_width = ((high_a - low_a) + (high_b - low_b)) / 2
        if mean_width <= 0:
            return 100

        return _clamp(overlap / mean_width * 100)

    def calculate_property_budget_score(
        self,
        preferences: PreferencesData,
        rent: Decimal,
    ) -> int:
        """
        Calculate how well a monthly rent fits the requester's budget.

        Scoring:
        - 80..100: inside the range, higher towards its middle
        - 40..80: inside the flexibility-widened range, lower with overage
        - 0: outside the widened range
        """
        low = float(preferences.budget_min)
        high = float(preferences.budget_max)
        price = float(rent)

        if low <= price <= high:
            half_width = (high - low) / 2
            if half_width <= 0:
                return 100
            middle_distance = abs(price - (low + high) / 2)
            return _clamp(max(100 - (middle_distance / half_width) * 20, 80))

        flex_low, flex_high = (float(v) for v in preferences.flexible_budget())
        if flex_low <= price <= flex_high:
            if price > high:
                overage = (price - high) / high
            else:
                overage = (low - price) / low
            return _clamp(max(80 - overage * 100, 40))

        return 0

    def calculate_user_lifestyle_score(
        self,
        lifestyle: dict[str, str],
        other: dict[str, str],
    ) -> int:

        total = 0
        axes = 0
        for axis in LIFESTYLE_AXES:
            mine = lifestyle.get(axis, NO_PREFERENCE)
            theirs = other.get(axis, NO_PREFERENCE)
            if mine == NO_PREFERENCE or theirs == NO_PREFERENCE:
                continue

            axes += 1
            if mine == theirs:
                total += 100
            elif is_compatible_lifestyle(mine, theirs):
                total += 70
            else:
                total += 30

        return round_half_up(total / axes) if axes else NEUTRAL_SCORE

    def calculate_property_lifestyle_score(
        self,
        lifestyle: dict[str, str],
        property_data: PropertyData,
    ) -> int:

        score = NEUTRAL_SCORE

        if lifestyle.get("smoking") == "yes" and not property_data.allows("smoking_allowed"):
            score -= 30
        if lifestyle.get("pets") == "love" and not property_data.allows("pets_allowed"):
            score -= 25
        if lifestyle.get("parties") == "love" and not property_data.allows("parties_allowed"):
            score -= 20
        if lifestyle.get("guests") == "frequent" and not property_data.allows("guests_allowed"):
            score -= 20

        return max(score, 0)

    def calculate_schedule_score(
        self,
        schedule: dict[str, str],
        other: dict[str, str],
    ) -> int:

        total = 0
        axes = 0
        for axis in SCHEDULE_AXES:
            mine = schedule.get(axis, NO_PREFERENCE)
            theirs = other.get(axis, NO_PREFERENCE)
            if mine == NO_PREFERENCE or theirs == NO_PREFERENCE:
                continue

            axes += 1
            if mine == theirs:
                total += 100
            elif is_compatible_schedule(mine, theirs):
                total += 70
            else:
                total += 40

        return round_half_up(total / axes) if axes else NEUTRAL_SCORE

    def calculate_cleanliness_score(self, level: str, other: str) -> int:
        """100 for the same level, 20 less per level apart, never below 40."""
        if level == NO_PREFERENCE or other == NO_PREFERENCE:
            return NEUTRAL_SCORE

        difference = abs(CLEANLINESS_LEVELS.get(level, 2) - CLEANLINESS_LEVELS.get(other, 2))
        return max(100 - difference * 20, 40)

    def calculate_property_cleanliness_score(self, property_data: PropertyData) -> int:

        score = NEUTRAL_SCORE
        if property_data.has_amenity("cleaning_service"):
            score += 20
        if property_data.is_verified:
            score += 10
        if property_data.has_amenity("furnished"):
            score += 5
        return min(score, 100)

    def calculate_social_score(self, level: str, other: str) -> int:
        """100 for the same level, 15 less per level apart, never below 50."""
        if level == NO_PREFERENCE or other == NO_PREFERENCE:
            return NEUTRAL_SCORE

        difference = abs(SOCIAL_LEVELS.get(level, 2) - SOCIAL_LEVELS.get(other, 2))
        return max(100 - difference * 15, 50)

    def calculate_user_preferences_score(
        self,
        requester: ProfileData,
        candidate: ProfileData,
        preferences: PreferencesData,
        other: PreferencesData,
    ) -> int:
        """
        Calculate how well two users fit each other's stated preferences.

        Gender is checked against each side's actual gender whenever either
        side expresses a preference; the age component is the overlap of the
        two preferred age ranges relative to their mean width.
        """
        components: list[float] = []

        if preferences.gender_preference != "any" or other.gender_preference != "any":
            accepted = (
                self._accepts_gender(preferences.gender_preference, candidate.gender)
                and self._accepts_gender(other.gender_preference, requester.gender)
            )
            components.append(100 if accepted else 0)

        overlap = min(preferences.age_max, other.age_max) - max(preferences.age_min, other.age_min)
        if overlap >= 0:
            mean_width = ((preferences.age_max - preferences.age_min) + (other.age_max - other.age_min)) / 2
            components.append(min(overlap / mean_width * 100, 100) if mean_width > 0 else 100)
        else:
            components.append(0)

        return _clamp(sum(components) / len(components)) if components else NEUTRAL_SCORE

    def calculate_property_preferences_score(
        self,
        property_preferences: dict,
        property_data: PropertyData,
    ) -> int:
        """
        Calculate how well a property fits the requester's property preferences.

        Checks property type, bedrooms and bathrooms (50 partial credit when
        short), amenity coverage and the furnished preference, averaged over
        the checks that apply.
        """
        scores: list[float] = []

        property_types = property_preferences.get("property_types") or []
        if property_types:
            scores.append(100 if property_data.property_type in property_types else 0)

        minimum_bedrooms = property_preferences.get("minimum_bedrooms", 1)
        scores.append(100 if property_data.bedrooms >= minimum_bedrooms else 50)

        minimum_bathrooms = property_preferences.get("minimum_bathrooms", 1)
        scores.append(100 if property_data.bathrooms >= minimum_bathrooms else 50)

        amenities = property_preferences.get("amenities") or []
        if amenities:
            present = sum(1 for amenity in amenities if property_data.has_amenity(amenity))
            scores.append(present / len(amenities) * 100)

        furnished = property_preferences.get("furnished", NO_PREFERENCE)
        if furnished != NO_PREFERENCE:
            is_furnished = property_data.has_amenity("furnished")
            if (furnished == "yes" and is_furnished) or (furnished == "no" and not is_furnished):
                scores.append(100)
            elif furnished == "partial":
                scores.append(70)
            else:
                scores.append(0)

        return _clamp(sum(scores) / len(scores)) if scores else NEUTRAL_SCORE

    def score(
        self,
        requester: ProfileData,
        candidate: Candidate,
        preferences: PreferencesData,
        candidate_preferences: Optional[PreferencesData] = None,
    ) -> CompatibilityResult:
        """
        Score a requester against a user or property candidate.

        Args:
            requester: The requester's profile
            candidate: Another user's profile or a property
            preferences: The requester's preferences
            candidate_preferences: The candidate user's preferences, if any

        Returns:
            CompatibilityResult with per-factor scores and the weighted overall
        """
        if isinstance(candidate, PropertyData):
            factors = self._score_property(requester, candidate, preferences)
        else:
            other = candidate_preferences or PreferencesData(
                user_id=candidate.user_id,
                lifestyle={**DEFAULT_LIFESTYLE, **candidate.lifestyle},
            )
            factors = self._score_user(requester, candidate, preferences, other)

        return CompatibilityResult(
            factors=factors,
            overall=factors.weighted_overall(self.weights),
            distance_km=distance_between(requester.location, candidate.location),
            state_match=same_value(requester.location.state, candidate.location.state),
        )

    def _score_user(
        self,
        requester: ProfileData,
        candidate: ProfileData,
        preferences: PreferencesData,
        other: PreferencesData,
    ) -> CompatibilityFactors:

        return CompatibilityFactors(
            location=self.calculate_location_score(requester.location, candidate.location, preferences),
            budget=self.calculate_user_budget_score(preferences, other),
            lifestyle=self.calculate_user_lifestyle_score(preferences.lifestyle, other.lifestyle),
            preferences=self.calculate_user_preferences_score(requester, candidate, preferences, other),
            schedule=self.calculate_schedule_score(preferences.schedule, other.schedule),
            cleanliness=self.calculate_cleanliness_score(
                preferences.lifestyle.get("cleanliness", NO_PREFERENCE),
                other.lifestyle.get("cleanliness", NO_PREFERENCE),
            ),
            social_level=self.calculate_social_score(
                preferences.schedule.get("social_level", NO_PREFERENCE),
                other.schedule.get("social_level", NO_PREFERENCE),
            ),
        )

    def _score_property(
        self,
        requester: ProfileData,
        property_data: PropertyData,
        preferences: PreferencesData,
    ) -> CompatibilityFactors:

        return CompatibilityFactors(
            location=self.calculate_location_score(requester.location, property_data.location, preferences),
            budget=self.calculate_property_budget_score(preferences, property_data.rent_per_month),
            lifestyle=self.calculate_property_lifestyle_score(preferences.lifestyle, property_data),
            preferences=self.calculate_property_preferences_score(
                preferences.property_preferences, property_data
            ),
            schedule=NEUTRAL_SCORE,
            cleanliness=self.calculate_property_cleanliness_score(property_data),
            social_level=NEUTRAL_SCORE,
        )

    @staticmethod
    def _accepts_gender(preference: str, gender: Optional[str]) -> bool:
        if preference == "any":
            return True
        return gender is not None and gender.lower() == preference
