import math
from typing import Optional

from housematch.core.weights import CompatibilityFactors, round_half_up
from housematch.services.matching.profiles import LocationData, PropertyData

EARTH_RADIUS_KM = 6371.0

LIFESTYLE_COMPATIBILITY: dict[str, frozenset[str]] = {
    "yes": frozenset({"yes", "occasionally"}),
    "no": frozenset({"no", "rarely", "never"}),
    "occasionally": frozenset({"yes", "occasionally", "rarely"}),
    "rarely": frozenset({"no", "occasionally", "rarely"}),
    "never": frozenset({"no", "rarely", "never"}),
    "love": frozenset({"love", "okay"}),
    "okay": frozenset({"love", "okay", "rarely"}),
    "allergic": frozenset({"no", "never"}),
    "frequent": frozenset({"frequent", "occasional"}),
    "occasional": frozenset({"frequent", "occasional", "rare"}),
    "rare": frozenset({"occasional", "rare", "never"}),
}

SCHEDULE_COMPATIBILITY: dict[str, frozenset[str]] = {
    "day_shift": frozenset({"day_shift", "flexible"}),
    "night_shift": frozenset({"night_shift", "flexible"}),
    "flexible": frozenset({"day_shift", "night_shift", "flexible", "student"}),
    "student": frozenset({"student", "flexible"}),
    "early_bird": frozenset({"early_bird", "flexible"}),
    "night_owl": frozenset({"night_owl", "flexible"}),
    "very_social": frozenset({"very_social", "social"}),
    "social": frozenset({"very_social", "social", "moderate"}),
    "moderate": frozenset({"social", "moderate", "private"}),
    "private": frozenset({"moderate", "private"}),
}


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres, rounded to two decimals."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round_half_up(EARTH_RADIUS_KM * c * 100) / 100


def distance_between(a: LocationData, b: LocationData) -> Optional[float]:

    if not (a.has_coordinates and b.has_coordinates):
        return None
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def same_value(a: Optional[str], b: Optional[str]) -> bool:
    """Case-insensitive equality that never matches two unknowns."""
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


def contains_value(values: list[str], value: Optional[str]) -> bool:

    if not value:
        return False
    needle = value.strip().lower()
    return any(v.strip().lower() == needle for v in values)


def is_compatible_lifestyle(a: str, b: str) -> bool:
    return b in LIFESTYLE_COMPATIBILITY.get(a, frozenset())


def is_compatible_schedule(a: str, b: str) -> bool:
    return b in SCHEDULE_COMPATIBILITY.get(a, frozenset())


def generate_match_reasons(factors: CompatibilityFactors, overall: int) -> list[str]:

    reasons: list[str] = []

    if factors.location >= 80:
        reasons.append("Great location compatibility")
    if factors.budget >= 80:
        reasons.append("Perfect budget match")
    if factors.lifestyle >= 80:
        reasons.append("Similar lifestyle preferences")
    if factors.schedule >= 80:
        reasons.append("Compatible schedules")
    if factors.cleanliness >= 80:
        reasons.append("Matching cleanliness standards")
    if factors.social_level >= 80:
        reasons.append("Similar social preferences")
    if overall >= 90:
        reasons.append("Exceptional overall compatibility")

    return reasons or ["Good potential match"]


def generate_property_match_reasons(
    factors: CompatibilityFactors,
    property_data: PropertyData,
) -> list[str]:

    reasons: list[str] = []

    if factors.location >= 80:
        city = property_data.location.city
        reasons.append(f"Great location in {city}" if city else "Great location")
    if factors.budget >= 80:
        reasons.append("Within your budget range")
    if factors.preferences >= 80:
        reasons.append("Matches your property preferences")
    if property_data.has_amenity("wifi"):
        reasons.append("Has WiFi")
    if property_data.has_amenity("parking"):
        reasons.append("Parking available")
    if property_data.has_amenity("security"):
        reasons.append("Secure building")
    if property_data.has_amenity("generator"):
        reasons.append("Backup power available")

    return reasons or ["Good property match"]


def common_interests(a: list[str], b: list[str]) -> list[str]:
    """Interests both sides list, in the first side's order."""
    other = {item.strip().lower() for item in b}
    seen: set[str] = set()
    shared: list[str] = []
    for item in a:
        key = item.strip().lower()
        if key in other and key not in seen:
            seen.add(key)
            shared.append(item)
    return shared


def shared_preferences(a: dict[str, str], b: dict[str, str]) -> list[str]:
    """Preference axes on which both sides state the same concrete value."""
    shared: list[str] = []
    for key in sorted(a):
        value = a.get(key)
        if value and value != "no_preference" and b.get(key) == value:
            shared.append(f"{key}:{value}")
    return shared
