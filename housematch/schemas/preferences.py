from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import Field, StrictBool

from housematch.models.preferences import GenderPreferenceEnum
from housematch.schemas.common import BaseSchema, IDTimestampSchema

class LifestyleSection(BaseSchema):

    smoking: Optional[Literal["yes", "no", "occasionally", "no_preference"]] = None
    drinking: Optional[Literal["yes", "no", "occasionally", "rarely", "never", "no_preference"]] = None
    pets: Optional[Literal["love", "okay", "allergic", "no", "no_preference"]] = None
    parties: Optional[Literal["frequent", "occasional", "rare", "never", "no_preference"]] = None
    guests: Optional[Literal["frequent", "occasional", "rare", "never", "no_preference"]] = None
    cleanliness: Optional[Literal["very_clean", "clean", "average", "relaxed", "no_preference"]] = None
    noise_level: Optional[Literal["quiet", "moderate", "lively", "no_preference"]] = None

class ScheduleSection(BaseSchema):

    work_schedule: Optional[Literal["day_shift", "night_shift", "flexible", "student", "no_preference"]] = None
    sleep_schedule: Optional[Literal["early_bird", "night_owl", "flexible", "no_preference"]] = None
    social_level: Optional[Literal["very_social", "social", "moderate", "private", "no_preference"]] = None

class PropertyPreferencesSection(BaseSchema):

    property_types: Optional[list[str]] = Field(default=None, max_length=10)
    amenities: Optional[list[str]] = Field(default=None, max_length=30)
    minimum_bedrooms: Optional[int] = Field(default=None, ge=0, le=10)
    minimum_bathrooms: Optional[int] = Field(default=None, ge=0, le=10)
    furnished: Optional[Literal["yes", "no", "partial", "no_preference"]] = None
    parking: Optional[Literal["required", "preferred", "not_needed"]] = None
    security: Optional[Literal["required", "preferred", "not_needed"]] = None

class RoommatePreferencesSection(BaseSchema):

    occupation: Optional[list[str]] = Field(default=None, max_length=20)
    education_level: Optional[list[str]] = Field(default=None, max_length=10)
    relationship_status: Optional[list[str]] = Field(default=None, max_length=10)
    has_children: Optional[Literal["yes", "no", "no_preference"]] = None
    religion: Optional[list[str]] = Field(default=None, max_length=10)
    languages: Optional[list[str]] = Field(default=None, max_length=20)

class MatchingSettingsSection(BaseSchema):

    auto_like_high_compatibility: Optional[StrictBool] = None
    compatibility_threshold: Optional[int] = Field(default=None, ge=0, le=100)
    daily_match_limit: Optional[int] = Field(default=None, ge=1, le=100)
    show_distance: Optional[StrictBool] = None
    show_last_active: Optional[StrictBool] = None

SECTION_SCHEMAS: dict[str, type[BaseSchema]] = {
    "lifestyle": LifestyleSection,
    "schedule": ScheduleSection,
    "property_preferences": PropertyPreferencesSection,
    "roommate_preferences": RoommatePreferencesSection,
    "matching_settings": MatchingSettingsSection,
}

class PreferencesUpdate(BaseSchema):
    """Partial update; omitted fields keep their stored value."""

    is_active: Optional[StrictBool] = None
    max_distance: Optional[int] = Field(default=None, ge=1, le=1000, description="Kilometres")
    age_min: Optional[int] = Field(default=None, ge=18, le=100)
    age_max: Optional[int] = Field(default=None, ge=18, le=100)
    gender_preference: Optional[GenderPreferenceEnum] = None
    budget_min: Optional[Decimal] = Field(default=None, ge=0)
    budget_max: Optional[Decimal] = Field(default=None, ge=0)
    budget_flexibility: Optional[int] = Field(default=None, ge=0, le=100)
    preferred_states: Optional[list[str]] = None
    preferred_cities: Optional[list[str]] = None
    preferred_areas: Optional[list[str]] = None
    location_flexibility: Optional[int] = Field(default=None, ge=0, le=100)
    lifestyle: Optional[LifestyleSection] = None
    schedule: Optional[ScheduleSection] = None
    property_preferences: Optional[PropertyPreferencesSection] = None
    roommate_preferences: Optional[RoommatePreferencesSection] = None
    matching_settings: Optional[MatchingSettingsSection] = None
    deal_breakers: Optional[list[str]] = None

    def to_update(self) -> dict[str, Any]:
        data = self.model_dump(exclude_none=True)
        for section in SECTION_SCHEMAS:
            if section in data:
                data[section] = {k: v for k, v in data[section].items() if v is not None}
        return data

class PreferencesResponse(IDTimestampSchema):

    user_id: UUID
    is_active: bool
    max_distance: int
    age_min: int
    age_max: int
    gender_preference: GenderPreferenceEnum
    budget_min: Decimal
    budget_max: Decimal
    budget_flexibility: int
    preferred_states: list[str]
    preferred_cities: list[str]
    preferred_areas: list[str]
    location_flexibility: int
    lifestyle: dict[str, Any]
    schedule: dict[str, Any]
    property_preferences: dict[str, Any]
    roommate_preferences: dict[str, Any]
    matching_settings: dict[str, Any]
    deal_breakers: list[str]
    last_active_at: Optional[datetime] = None

class ToggleRequest(BaseSchema):

    is_active: StrictBool

class DealBreakerRequest(BaseSchema):

    deal_breaker: str = Field(..., min_length=1, max_length=100)
