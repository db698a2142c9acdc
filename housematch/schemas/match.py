from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import Field

from housematch.models.match import (
    MatchActionEnum,
    MatchStatusEnum,
    MatchTypeEnum,
    TargetTypeEnum,
)
from housematch.schemas.common import BaseSchema, IDTimestampSchema

class CompatibilityFactorsResponse(BaseSchema):

    location: int = Field(..., ge=0, le=100)
    budget: int = Field(..., ge=0, le=100)
    lifestyle: int = Field(..., ge=0, le=100)
    preferences: int = Field(..., ge=0, le=100)
    schedule: int = Field(..., ge=0, le=100)
    cleanliness: int = Field(..., ge=0, le=100)
    social_level: int = Field(..., ge=0, le=100)

class MatchResponse(IDTimestampSchema):

    user_id: UUID
    target_id: UUID
    target_type: TargetTypeEnum
    match_type: MatchTypeEnum
    status: MatchStatusEnum
    user_action: MatchActionEnum
    target_action: MatchActionEnum
    compatibility_score: int = Field(..., ge=0, le=100, description="Overall compatibility (0-100)")
    factors: CompatibilityFactorsResponse
    location_proximity: Optional[Decimal] = None
    budget_compatibility: int
    state_match: bool
    match_reasons: list[str] = []
    common_interests: list[str] = []
    shared_preferences: list[str] = []
    expires_at: datetime
    last_interaction_at: Optional[datetime] = None
    matched_at: Optional[datetime] = None
    view_count: int = 0
    viewed_at: Optional[datetime] = None
    response_time: Optional[int] = Field(default=None, description="Minutes from first view to action")

class CandidateResponse(BaseSchema):

    match: MatchResponse
    target: dict[str, Any]
    is_new: bool
    auto_liked: bool
    is_mutual_match: bool

class CandidateQuery(BaseSchema):

    limit: int = Field(default=10, ge=1, le=50)
    type: Literal["roommate", "housing", "both"] = "both"

class SwipeRequest(BaseSchema):

    target_id: UUID
    target_type: TargetTypeEnum
    action: Literal["liked", "passed", "super_liked"]

class SwipeResponse(BaseSchema):

    match: MatchResponse
    is_mutual_match: bool

class ExtendRequest(BaseSchema):

    days: int = Field(..., ge=1, le=30, description="Days to push the expiry out by")

class MatchHistoryResponse(BaseSchema):

    matches: list[MatchResponse]
    summary: dict[str, int]

class ExpirationStatsResponse(BaseSchema):

    total: int
    pending: int
    expired: int
    expiring_today: int
    expiring_soon: int
    average_match_duration_hours: Optional[float] = None
