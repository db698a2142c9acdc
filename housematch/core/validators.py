import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Union


@dataclass
class ValidationResult:


    is_valid: bool
    error_message: str | None = None
    sanitized_value: Union[str, int, Decimal, list, None] = None

MAX_DISTANCE_MIN_KM = 1
MAX_DISTANCE_MAX_KM = 1000

AGE_MIN = 18
AGE_MAX = 100

PERCENT_MIN = 0
PERCENT_MAX = 100

MAX_PREFERRED_STATES = 10
MAX_PREFERRED_CITIES = 20
MAX_PREFERRED_AREAS = 30

DEAL_BREAKER_MAX_LENGTH = 100
MAX_DEAL_BREAKERS = 50

EXTENSION_DAYS_MIN = 1
EXTENSION_DAYS_MAX = 30

_WHITESPACE_RE = re.compile(r"\s+")


def validate_max_distance(value: Any) -> ValidationResult:

    if isinstance(value, bool) or not isinstance(value, int):
        return ValidationResult(is_valid=False, error_message="Maximum distance must be a whole number")

    if value < MAX_DISTANCE_MIN_KM or value > MAX_DISTANCE_MAX_KM:
        return ValidationResult(
            is_valid=False,
            error_message=f"Maximum distance must be between {MAX_DISTANCE_MIN_KM} and {MAX_DISTANCE_MAX_KM} km",
        )

    return ValidationResult(is_valid=True, sanitized_value=value)


def validate_age_range(age_min: int, age_max: int) -> ValidationResult:
    """
    Validate a preferred age range.

    Both bounds must be within 18..100 and the minimum must be strictly
    below the maximum.

    Args:
        age_min: Lower bound of the range
        age_max: Upper bound of the range

    Returns:
        ValidationResult with the (min, max) tuple as sanitized value
    """
    for value in (age_min, age_max):
        if value < AGE_MIN or value > AGE_MAX:
            return ValidationResult(
                is_valid=False,
                error_message=f"Age must be between {AGE_MIN} and {AGE_MAX}",
            )

    if age_min >= age_max:
        return ValidationResult(
            is_valid=False,
            error_message="Minimum age must be less than maximum age",
        )

    return ValidationResult(is_valid=True, sanitized_value=[age_min, age_max])


def validate_budget_range(
    budget_min: Union[int, float, Decimal, str],
    budget_max: Union[int, float, Decimal, str],
) -> ValidationResult:
    """
    Validate a budget range.

    Args:
        budget_min: Minimum monthly budget
        budget_max: Maximum monthly budget

    Returns:
        ValidationResult with [min, max] as Decimals when valid
    """
    try:
        low = Decimal(str(budget_min))
        high = Decimal(str(budget_max))
    except InvalidOperation:
        return ValidationResult(
            is_valid=False,
            error_message="Budget must be a valid number",
        )

    if low < 0 or high < 0:
        return ValidationResult(
            is_valid=False,
            error_message="Budget must not be negative",
        )

    if low >= high:
        return ValidationResult(
            is_valid=False,
            error_message="Minimum budget must be less than maximum budget",
        )

    return ValidationResult(is_valid=True, sanitized_value=[low, high])


def validate_percentage(value: Any, label: str = "Value") -> ValidationResult:

    if isinstance(value, bool) or not isinstance(value, int):
        return ValidationResult(is_valid=False, error_message=f"{label} must be a whole number")

    if value < PERCENT_MIN or value > PERCENT_MAX:
        return ValidationResult(
            is_valid=False,
            error_message=f"{label} must be between {PERCENT_MIN} and {PERCENT_MAX}",
        )

    return ValidationResult(is_valid=True, sanitized_value=value)


def validate_location_list(values: list[str], max_items: int, label: str) -> ValidationResult:
    """Trim, drop blanks and de-duplicate a list of location names."""
    cleaned: list[str] = []
    seen: set[str] = set()
    for raw in values:
        item = sanitize_text(raw)
        if not item or item.lower() in seen:
            continue
        seen.add(item.lower())
        cleaned.append(item)

    if len(cleaned) > max_items:
        return ValidationResult(
            is_valid=False,
            error_message=f"At most {max_items} {label} can be selected",
        )

    return ValidationResult(is_valid=True, sanitized_value=cleaned)


def validate_deal_breaker(value: Any) -> ValidationResult:

    if not isinstance(value, str):
        return ValidationResult(is_valid=False, error_message="Deal breaker must be text")

    cleaned = sanitize_text(value)
    if not cleaned:
        return ValidationResult(is_valid=False, error_message="Deal breaker must not be empty")

    if len(cleaned) > DEAL_BREAKER_MAX_LENGTH:
        return ValidationResult(
            is_valid=False,
            error_message=f"Deal breaker must not exceed {DEAL_BREAKER_MAX_LENGTH} characters",
        )

    return ValidationResult(is_valid=True, sanitized_value=cleaned)


def validate_extension_days(days: Any, max_days: int = EXTENSION_DAYS_MAX) -> ValidationResult:

    if isinstance(days, bool) or not isinstance(days, int):
        return ValidationResult(is_valid=False, error_message="Extension must be a whole number of days")

    if days < EXTENSION_DAYS_MIN or days > max_days:
        return ValidationResult(
            is_valid=False,
            error_message=f"Extension must be between {EXTENSION_DAYS_MIN} and {max_days} days",
        )

    return ValidationResult(is_valid=True, sanitized_value=days)


def sanitize_text(text: str) -> str:

    return _WHITESPACE_RE.sub(" ", text).strip()
