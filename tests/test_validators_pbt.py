"""
Property-based tests for preference validation functions.

Uses Hypothesis to check the accepted and rejected ranges of every
validator used when preferences are updated or matches extended.
"""

from decimal import Decimal

import pytest
from hypothesis import assume, given, settings, strategies as st

from housematch.core.validators import (
    AGE_MAX,
    AGE_MIN,
    DEAL_BREAKER_MAX_LENGTH,
    EXTENSION_DAYS_MAX,
    MAX_DISTANCE_MAX_KM,
    MAX_DISTANCE_MIN_KM,
    sanitize_text,
    validate_age_range,
    validate_budget_range,
    validate_deal_breaker,
    validate_extension_days,
    validate_location_list,
    validate_max_distance,
    validate_percentage,
)


class TestMaxDistanceValidationProperty:

    @settings(max_examples=100)
    @given(distance=st.integers(min_value=MAX_DISTANCE_MIN_KM, max_value=MAX_DISTANCE_MAX_KM))
    def test_accepts_distances_within_range(self, distance: int) -> None:
        result = validate_max_distance(distance)
        assert result.is_valid is True
        assert result.error_message is None
        assert result.sanitized_value == distance

    @settings(max_examples=100)
    @given(distance=st.one_of(
        st.integers(max_value=MAX_DISTANCE_MIN_KM - 1),
        st.integers(min_value=MAX_DISTANCE_MAX_KM + 1),
    ))
    def test_rejects_distances_outside_range(self, distance: int) -> None:
        result = validate_max_distance(distance)
        assert result.is_valid is False
        assert "between" in result.error_message

    @pytest.mark.parametrize("value", [True, 10.5, "50", None])
    def test_rejects_non_integers(self, value) -> None:
        assert validate_max_distance(value).is_valid is False


class TestAgeRangeValidationProperty:
    """
    *For any* pair of ages within 18..100, the range is accepted exactly
    when the minimum is below the maximum.
    """

    @settings(max_examples=100)
    @given(
        age_min=st.integers(min_value=AGE_MIN, max_value=AGE_MAX),
        age_max=st.integers(min_value=AGE_MIN, max_value=AGE_MAX),
    )
    def test_order_decides_validity(self, age_min: int, age_max: int) -> None:
        result = validate_age_range(age_min, age_max)
        assert result.is_valid is (age_min < age_max)

    @settings(max_examples=100)
    @given(age=st.integers(max_value=AGE_MIN - 1))
    def test_rejects_ages_below_minimum(self, age: int) -> None:
        result = validate_age_range(age, 40)
        assert result.is_valid is False
        assert "between" in result.error_message


class TestBudgetRangeValidationProperty:

    @settings(max_examples=100)
    @given(
        low=st.integers(min_value=0, max_value=10_000_000),
        width=st.integers(min_value=1, max_value=10_000_000),
    )
    def test_accepts_increasing_ranges(self, low: int, width: int) -> None:
        result = validate_budget_range(low, low + width)
        assert result.is_valid is True
        assert result.sanitized_value == [Decimal(low), Decimal(low + width)]

    @settings(max_examples=100)
    @given(
        low=st.integers(min_value=0, max_value=10_000_000),
        high=st.integers(min_value=0, max_value=10_000_000),
    )
    def test_rejects_non_increasing_ranges(self, low: int, high: int) -> None:
        assume(low >= high)
        result = validate_budget_range(low, high)
        assert result.is_valid is False

    def test_rejects_negative_budget(self) -> None:
        result = validate_budget_range(-1, 100)
        assert result.is_valid is False
        assert "negative" in result.error_message

    def test_rejects_non_numeric_budget(self) -> None:
        assert validate_budget_range("cheap", "100").is_valid is False


class TestPercentageValidationProperty:

    @settings(max_examples=100)
    @given(value=st.integers(min_value=-1000, max_value=1000))
    def test_accepts_only_zero_to_hundred(self, value: int) -> None:
        result = validate_percentage(value, "Budget flexibility")
        assert result.is_valid is (0 <= value <= 100)
        if not result.is_valid:
            assert result.error_message.startswith("Budget flexibility")

    def test_rejects_booleans(self) -> None:
        assert validate_percentage(True).is_valid is False


class TestLocationListValidation:

    def test_trims_and_deduplicates_case_insensitively(self) -> None:
        result = validate_location_list(["  Lagos ", "lagos", "", "Oyo"], 10, "states")
        assert result.is_valid is True
        assert result.sanitized_value == ["Lagos", "Oyo"]

    def test_rejects_too_many_items(self) -> None:
        result = validate_location_list([f"City {i}" for i in range(4)], 3, "cities")
        assert result.is_valid is False
        assert "3 cities" in result.error_message


class TestDealBreakerValidationProperty:

    @settings(max_examples=100)
    @given(text=st.text(alphabet=st.characters(whitelist_categories=("L", "N")), min_size=1, max_size=DEAL_BREAKER_MAX_LENGTH))
    def test_accepts_short_text(self, text: str) -> None:
        result = validate_deal_breaker(text)
        assert result.is_valid is True
        assert result.sanitized_value == text

    def test_rejects_blank_text(self) -> None:
        assert validate_deal_breaker("   ").is_valid is False

    def test_rejects_long_text(self) -> None:
        assert validate_deal_breaker("x" * (DEAL_BREAKER_MAX_LENGTH + 1)).is_valid is False

    def test_rejects_non_text(self) -> None:
        assert validate_deal_breaker(42).is_valid is False

    @settings(max_examples=100)
    @given(text=st.text(max_size=200))
    def test_sanitize_is_idempotent(self, text: str) -> None:
        once = sanitize_text(text)
        assert sanitize_text(once) == once
        assert once == once.strip()


class TestExtensionDaysValidationProperty:

    @settings(max_examples=100)
    @given(days=st.integers(min_value=-100, max_value=100))
    def test_accepts_one_to_maximum(self, days: int) -> None:
        result = validate_extension_days(days)
        assert result.is_valid is (1 <= days <= EXTENSION_DAYS_MAX)

    def test_custom_maximum(self) -> None:
        assert validate_extension_days(10, max_days=7).is_valid is False
        assert validate_extension_days(7, max_days=7).is_valid is True
