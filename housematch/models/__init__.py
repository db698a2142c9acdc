from housematch.models.match import (
    Match,
    MatchActionEnum,
    MatchStatusEnum,
    MatchTypeEnum,
    TargetTypeEnum,
)
from housematch.models.preferences import GenderPreferenceEnum, MatchPreferences

__all__ = [
    "Match",
    "MatchActionEnum",
    "MatchStatusEnum",
    "MatchTypeEnum",
    "TargetTypeEnum",
    "MatchPreferences",
    "GenderPreferenceEnum",
]
