from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional
import uuid

from housematch.models.preferences import (
    DEFAULT_LIFESTYLE,
    DEFAULT_MATCHING_SETTINGS,
    DEFAULT_PROPERTY_PREFERENCES,
    DEFAULT_ROOMMATE_PREFERENCES,
    DEFAULT_SCHEDULE,
    NO_PREFERENCE,
)

# lifestyle values that describe the absence of the habit
ABSENT_LIFESTYLE_VALUES = frozenset({"no", "never", "allergic", "okay", "quiet", NO_PREFERENCE})


def _humanize(key: str) -> str:
    return key.replace("_", " ").strip().lower()


@dataclass
class LocationData:

    state: Optional[str] = None
    city: Optional[str] = None
    area: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @classmethod
    def from_payload(cls, payload: Optional[dict[str, Any]]) -> "LocationData":

        if not payload:
            return cls()

        coords = payload.get("coordinates") or {}
        latitude = payload.get("latitude", coords.get("latitude"))
        longitude = payload.get("longitude", coords.get("longitude"))

        return cls(
            state=payload.get("state"),
            city=payload.get("city"),
            area=payload.get("area"),
            latitude=float(latitude) if latitude is not None else None,
            longitude=float(longitude) if longitude is not None else None,
        )


@dataclass
class ProfileData:
    """Snapshot of a user profile as served by the profile service."""

    user_id: uuid.UUID
    age: Optional[int] = None
    gender: Optional[str] = None
    occupation: Optional[str] = None
    interests: list[str] = field(default_factory=list)
    lifestyle: dict[str, str] = field(default_factory=dict)
    location: LocationData = field(default_factory=LocationData)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ProfileData":

        user_id = payload.get("user_id") or payload["id"]
        age = payload.get("age")
        return cls(
            user_id=uuid.UUID(str(user_id)),
            age=int(age) if age is not None else None,
            gender=payload.get("gender"),
            occupation=payload.get("occupation"),
            interests=list(payload.get("interests") or []),
            lifestyle=dict(payload.get("lifestyle") or {}),
            location=LocationData.from_payload(payload.get("location")),
        )

    def labels(self) -> list[str]:
        """Free-text attributes deal-breakers are checked against."""
        labels: list[str] = []
        if self.occupation:
            labels.append(self.occupation)
        labels.extend(self.interests)
        for key, value in self.lifestyle.items():
            if value and value not in ABSENT_LIFESTYLE_VALUES:
                labels.append(f"{_humanize(key)}: {_humanize(str(value))}")
        return labels


@dataclass
class PropertyData:
    """Snapshot of a property listing as served by the property service."""

    id: uuid.UUID
    owner_id: uuid.UUID
    property_type: str
    rent_per_month: Decimal
    title: str = ""
    bedrooms: int = 0
    bathrooms: int = 0
    amenities: dict[str, bool] = field(default_factory=dict)
    rules: dict[str, bool] = field(default_factory=dict)
    location: LocationData = field(default_factory=LocationData)
    is_verified: bool = False
    is_available: bool = True

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "PropertyData":

        pricing = payload.get("pricing") or {}
        rent = payload.get("rent_per_month", pricing.get("rent_per_month", 0))
        return cls(
            id=uuid.UUID(str(payload["id"])),
            owner_id=uuid.UUID(str(payload["owner_id"])),
            property_type=payload.get("property_type", ""),
            rent_per_month=Decimal(str(rent)),
            title=payload.get("title") or "",
            bedrooms=int(payload.get("bedrooms") or 0),
            bathrooms=int(payload.get("bathrooms") or 0),
            amenities={k: bool(v) for k, v in (payload.get("amenities") or {}).items()},
            rules={k: bool(v) for k, v in (payload.get("rules") or {}).items()},
            location=LocationData.from_payload(payload.get("location")),
            is_verified=bool(payload.get("is_verified", False)),
            is_available=bool(payload.get("is_available", True)),
        )

    def has_amenity(self, name: str) -> bool:
        return bool(self.amenities.get(name))

    def allows(self, rule: str) -> bool:
        return bool(self.rules.get(rule))

    def labels(self) -> list[str]:
        labels = [self.property_type]
        if self.title:
            labels.append(self.title)
        labels.extend(_humanize(name) for name, present in self.amenities.items() if present)
        labels.extend(_humanize(rule) for rule, allowed in self.rules.items() if allowed)
        return labels


@dataclass
class PreferencesData:


    user_id: uuid.UUID
    is_active: bool = True
    max_distance: int = 50
    age_min: int = 18
    age_max: int = 65
    gender_preference: str = "any"
    budget_min: Decimal = Decimal("0")
    budget_max: Decimal = Decimal("1000000")
    budget_flexibility: int = 20
    preferred_states: list[str] = field(default_factory=list)
    preferred_cities: list[str] = field(default_factory=list)
    preferred_areas: list[str] = field(default_factory=list)
    location_flexibility: int = 50
    lifestyle: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_LIFESTYLE))
    schedule: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_SCHEDULE))
    property_preferences: dict[str, Any] = field(
        default_factory=lambda: dict(DEFAULT_PROPERTY_PREFERENCES)
    )
    roommate_preferences: dict[str, Any] = field(
        default_factory=lambda: dict(DEFAULT_ROOMMATE_PREFERENCES)
    )
    matching_settings: dict[str, Any] = field(
        default_factory=lambda: dict(DEFAULT_MATCHING_SETTINGS)
    )
    deal_breakers: list[str] = field(default_factory=list)

    @classmethod
    def from_model(cls, preferences: Any) -> "PreferencesData":

        gender = preferences.gender_preference
        return cls(
            user_id=preferences.user_id,
            is_active=preferences.is_active,
            max_distance=preferences.max_distance,
            age_min=preferences.age_min,
            age_max=preferences.age_max,
            gender_preference=gender.value if hasattr(gender, "value") else str(gender),
            budget_min=Decimal(str(preferences.budget_min)),
            budget_max=Decimal(str(preferences.budget_max)),
            budget_flexibility=preferences.budget_flexibility,
            preferred_states=list(preferences.preferred_states or []),
            preferred_cities=list(preferences.preferred_cities or []),
            preferred_areas=list(preferences.preferred_areas or []),
            location_flexibility=preferences.location_flexibility,
            lifestyle={**DEFAULT_LIFESTYLE, **(preferences.lifestyle or {})},
            schedule={**DEFAULT_SCHEDULE, **(preferences.schedule or {})},
            property_preferences={
                **DEFAULT_PROPERTY_PREFERENCES,
                **(preferences.property_preferences or {}),
            },
            roommate_preferences={
                **DEFAULT_ROOMMATE_PREFERENCES,
                **(preferences.roommate_preferences or {}),
            },
            matching_settings={
                **DEFAULT_MATCHING_SETTINGS,
                **(preferences.matching_settings or {}),
            },
            deal_breakers=list(preferences.deal_breakers or []),
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

    def flexible_budget(self) -> tuple[Decimal, Decimal]:
        flex = Decimal(self.budget_flexibility) / Decimal(100)
        return self.budget_min * (1 - flex), self.budget_max * (1 + flex)
