from housematch.services.matching.scorer import MatchScorer, CompatibilityResult
from housematch.services.matching.profiles import (
    LocationData,
    PreferencesData,
    ProfileData,
    PropertyData,
)
from housematch.services.matching.lifecycle import (
    ExpirationResult,
    MatchContext,
    MatchLifecycleManager,
)

__all__ = [
    "MatchScorer",
    "CompatibilityResult",
    "LocationData",
    "PreferencesData",
    "ProfileData",
    "PropertyData",
    "ExpirationResult",
    "MatchContext",
    "MatchLifecycleManager",
]
