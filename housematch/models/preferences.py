import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Enum,
    Index,
    Integer,
    Numeric,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from housematch.core.database import BaseModel, UTCDateTime, utcnow

JSONType = JSON().with_variant(JSONB(), "postgresql")

NO_PREFERENCE = "no_preference"


class GenderPreferenceEnum(str, enum.Enum):

    MALE = "male"
    FEMALE = "female"
    ANY = "any"

DEFAULT_LIFESTYLE: dict[str, str] = {
    "smoking": NO_PREFERENCE,
    "drinking": NO_PREFERENCE,
    "pets": NO_PREFERENCE,
    "parties": NO_PREFERENCE,
    "guests": NO_PREFERENCE,
    "cleanliness": NO_PREFERENCE,
    "noise_level": NO_PREFERENCE,
}

DEFAULT_SCHEDULE: dict[str, str] = {
    "work_schedule": NO_PREFERENCE,
    "sleep_schedule": NO_PREFERENCE,
    "social_level": NO_PREFERENCE,
}

DEFAULT_PROPERTY_PREFERENCES: dict[str, Any] = {
    "property_types": [],
    "amenities": [],
    "minimum_bedrooms": 1,
    "minimum_bathrooms": 1,
    "furnished": NO_PREFERENCE,
    "parking": "preferred",
    "security": "preferred",
}

DEFAULT_ROOMMATE_PREFERENCES: dict[str, Any] = {
    "occupation": [],
    "education_level": [],
    "relationship_status": [],
    "has_children": NO_PREFERENCE,
    "religion": [],
    "languages": [],
}

DEFAULT_MATCHING_SETTINGS: dict[str, Any] = {
    "auto_like_high_compatibility": False,
    "compatibility_threshold": 60,
    "daily_match_limit": 20,
    "show_distance": True,
    "show_last_active": True,
}

PREFERENCE_SECTIONS: dict[str, dict[str, Any]] = {
    "lifestyle": DEFAULT_LIFESTYLE,
    "schedule": DEFAULT_SCHEDULE,
    "property_preferences": DEFAULT_PROPERTY_PREFERENCES,
    "roommate_preferences": DEFAULT_ROOMMATE_PREFERENCES,
    "matching_settings": DEFAULT_MATCHING_SETTINGS,
}


def _section_default(name: str):
    def factory() -> dict[str, Any]:
        # deep enough: section values are scalars or flat lists
        return {
            key: list(value) if isinstance(value, list) else value
            for key, value in PREFERENCE_SECTIONS[name].items()
        }
    return factory


class MatchPreferences(BaseModel):

    __tablename__ = "match_preferences"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        unique=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    max_distance: Mapped[int] = mapped_column(
        Integer,
        default=50,
        nullable=False,
    )
    age_min: Mapped[int] = mapped_column(Integer, default=18, nullable=False)
    age_max: Mapped[int] = mapped_column(Integer, default=65, nullable=False)
    gender_preference: Mapped[GenderPreferenceEnum] = mapped_column(
        Enum(
            GenderPreferenceEnum,
            name="gender_preference_enum",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=GenderPreferenceEnum.ANY,
        nullable=False,
    )

    budget_min: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0"),
        nullable=False,
    )
    budget_max: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("1000000"),
        nullable=False,
    )
    budget_flexibility: Mapped[int] = mapped_column(Integer, default=20, nullable=False)

    preferred_states: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    preferred_cities: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    preferred_areas: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    location_flexibility: Mapped[int] = mapped_column(Integer, default=50, nullable=False)

    lifestyle: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        default=_section_default("lifestyle"),
        nullable=False,
    )
    schedule: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        default=_section_default("schedule"),
        nullable=False,
    )
    property_preferences: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        default=_section_default("property_preferences"),
        nullable=False,
    )
    roommate_preferences: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        default=_section_default("roommate_preferences"),
        nullable=False,
    )
    matching_settings: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        default=_section_default("matching_settings"),
        nullable=False,
    )

    deal_breakers: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)

    last_active_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("max_distance >= 1 AND max_distance <= 1000", name="check_max_distance_range"),
        CheckConstraint("age_min >= 18 AND age_max <= 100 AND age_min < age_max", name="check_age_range"),
        CheckConstraint("budget_min >= 0 AND budget_min < budget_max", name="check_budget_range"),
        CheckConstraint("budget_flexibility >= 0 AND budget_flexibility <= 100", name="check_budget_flexibility"),
        CheckConstraint("location_flexibility >= 0 AND location_flexibility <= 100", name="check_location_flexibility"),
        Index("idx_match_preferences_is_active", "is_active"),
    )

    @property
    def compatibility_threshold(self) -> int:
        return int(self.matching_settings.get("compatibility_threshold", 60))

    @property
    def daily_match_limit(self) -> int:
        return int(self.matching_settings.get("daily_match_limit", 20))

    @property
    def auto_like_enabled(self) -> bool:
        return bool(self.matching_settings.get("auto_like_high_compatibility", False))

    def __repr__(self) -> str:
        return f"<MatchPreferences(user_id={self.user_id}, is_active={self.is_active})>"
