from housematch.schemas.common import (
    BaseSchema,
    PaginationMeta,
    PaginationParams,
)
from housematch.schemas.match import (
    CandidateResponse,
    ExpirationStatsResponse,
    ExtendRequest,
    MatchHistoryResponse,
    MatchResponse,
    SwipeRequest,
    SwipeResponse,
)
from housematch.schemas.preferences import (
    DealBreakerRequest,
    PreferencesResponse,
    PreferencesUpdate,
    SECTION_SCHEMAS,
    ToggleRequest,
)

__all__ = [
    "BaseSchema",
    "PaginationMeta",
    "PaginationParams",
    "CandidateResponse",
    "ExpirationStatsResponse",
    "ExtendRequest",
    "MatchHistoryResponse",
    "MatchResponse",
    "SwipeRequest",
    "SwipeResponse",
    "DealBreakerRequest",
    "PreferencesResponse",
    "PreferencesUpdate",
    "SECTION_SCHEMAS",
    "ToggleRequest",
]
