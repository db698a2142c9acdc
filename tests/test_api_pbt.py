"""
Property-based tests for the API response envelope and domain error mapping.

Every response, success or error, carries the ``success``, ``data`` and
``error`` fields.
"""

from typing import Any

import pytest
from hypothesis import given, settings, strategies as st

from housematch.api.responses import create_error_response, create_success_response
from housematch.core.exceptions import (
    DailyLimitExceededError,
    DownstreamUnavailableError,
    InvalidArgumentError,
    InvalidStateError,
    MatchingError,
    NotAuthenticatedError,
    NotFoundError,
)
from housematch.schemas.common import PaginationMeta


json_primitives = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(),
    st.floats(allow_nan=False, allow_infinity=False),
    st.text(max_size=100),
)

json_data = st.recursive(
    json_primitives,
    lambda children: st.one_of(
        st.lists(children, max_size=5),
        st.dictionaries(st.text(min_size=1, max_size=20), children, max_size=5),
    ),
    max_leaves=10,
)

error_codes = st.sampled_from([
    "VALIDATION_ERROR",
    "AUTH_REQUIRED",
    "NOT_FOUND",
    "INVALID_STATE",
    "DAILY_LIMIT_EXCEEDED",
    "DOWNSTREAM_UNAVAILABLE",
])


class TestAPIResponseFormatConsistency:

    @given(data=json_data)
    @settings(max_examples=100)
    def test_success_response_has_required_fields(self, data: Any) -> None:
        response = create_success_response(data=data)

        assert response["success"] is True
        assert response["error"] is None
        assert response["data"] == data
        assert "pagination" not in response

    @given(
        page=st.integers(min_value=1, max_value=1000),
        page_size=st.integers(min_value=1, max_value=100),
        total_items=st.integers(min_value=0, max_value=100_000),
    )
    @settings(max_examples=100)
    def test_pagination_meta_is_consistent(self, page: int, page_size: int, total_items: int) -> None:
        meta = PaginationMeta.build(page, page_size, total_items)

        assert meta.total_pages * page_size >= total_items
        assert (meta.total_pages - 1) * page_size < total_items or total_items == 0
        assert meta.has_prev is (page > 1)
        assert meta.has_next is (page < meta.total_pages)

        response = create_success_response(data=[], pagination=meta.model_dump())
        assert response["pagination"]["total_items"] == total_items

    @given(
        code=error_codes,
        message=st.text(min_size=1, max_size=200),
        details=st.one_of(st.none(), st.lists(
            st.fixed_dictionaries({"field": st.text(max_size=20), "message": st.text(max_size=50)}),
            min_size=1,
            max_size=3,
        )),
    )
    @settings(max_examples=100)
    def test_error_response_has_required_fields(
        self, code: str, message: str, details: list[dict] | None
    ) -> None:
        response = create_error_response(code=code, message=message, details=details)

        assert response["success"] is False
        assert response["data"] is None
        assert response["error"]["code"] == code
        assert response["error"]["message"] == message
        if details:
            assert response["error"]["details"] == details
        else:
            assert "details" not in response["error"]


class TestDomainErrors:

    @pytest.mark.parametrize(
        ("error", "code", "status_code"),
        [
            (NotAuthenticatedError("Missing token"), "AUTH_REQUIRED", 401),
            (InvalidArgumentError("Bad value", field="days"), "VALIDATION_ERROR", 400),
            (InvalidStateError("Match is expired"), "INVALID_STATE", 409),
            (NotFoundError("Match not found"), "NOT_FOUND", 404),
            (DailyLimitExceededError(20), "DAILY_LIMIT_EXCEEDED", 429),
            (DownstreamUnavailableError("profile service"), "DOWNSTREAM_UNAVAILABLE", 503),
        ],
    )
    def test_error_codes_and_statuses(self, error: MatchingError, code: str, status_code: int) -> None:
        assert isinstance(error, MatchingError)
        assert error.code == code
        assert error.status_code == status_code

    def test_field_becomes_detail(self) -> None:
        error = InvalidArgumentError("Bad value", field="days")
        assert error.details == [{"field": "days", "message": "Bad value"}]

    def test_downstream_message_names_service(self) -> None:
        error = DownstreamUnavailableError("property service", "timeout")
        assert error.message == "property service is unavailable: timeout"
        assert error.service == "property service"
