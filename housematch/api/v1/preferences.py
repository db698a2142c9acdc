from typing import Any

from fastapi import APIRouter, Body
from pydantic import ValidationError

from housematch.api.deps import CurrentUserId, PreferenceServiceDep
from housematch.api.responses import create_success_response
from housematch.core.exceptions import InvalidArgumentError
from housematch.models.preferences import MatchPreferences
from housematch.schemas.preferences import (
    SECTION_SCHEMAS,
    DealBreakerRequest,
    PreferencesResponse,
    PreferencesUpdate,
    ToggleRequest,
)

router = APIRouter(prefix="/preferences", tags=["Preferences"])


def serialize_preferences(preferences: MatchPreferences) -> dict:
    return PreferencesResponse.model_validate(preferences).model_dump(mode="json")


@router.get("")
async def get_preferences(
    user_id: CurrentUserId,
    service: PreferenceServiceDep,
) -> dict:
    """Return the user's preferences, creating defaults on first access."""
    preferences = await service.get_or_create(user_id)
    return create_success_response(data=serialize_preferences(preferences))


@router.put("")
async def update_preferences(
    body: PreferencesUpdate,
    user_id: CurrentUserId,
    service: PreferenceServiceDep,
) -> dict:
    preferences = await service.update(user_id, body.to_update())
    return create_success_response(data=serialize_preferences(preferences))


@router.post("/toggle")
async def toggle_matching(
    body: ToggleRequest,
    user_id: CurrentUserId,
    service: PreferenceServiceDep,
) -> dict:
    preferences = await service.set_active(user_id, body.is_active)
    return create_success_response(data=serialize_preferences(preferences))


@router.post("/deal-breakers")
async def add_deal_breaker(
    body: DealBreakerRequest,
    user_id: CurrentUserId,
    service: PreferenceServiceDep,
) -> dict:
    preferences = await service.add_deal_breaker(user_id, body.deal_breaker)
    return create_success_response(data=serialize_preferences(preferences))


@router.delete("/deal-breakers")
async def remove_deal_breaker(
    body: DealBreakerRequest,
    user_id: CurrentUserId,
    service: PreferenceServiceDep,
) -> dict:
    preferences = await service.remove_deal_breaker(user_id, body.deal_breaker)
    return create_success_response(data=serialize_preferences(preferences))


@router.patch("/{section}")
async def update_section(
    section: str,
    user_id: CurrentUserId,
    service: PreferenceServiceDep,
    body: dict[str, Any] = Body(...),
) -> dict:
    """
    Merge new values into one preference section.

    Unknown sections and unknown or out-of-range options are rejected with
    a validation error before anything is written.
    """
    schema = SECTION_SCHEMAS.get(section)
    if schema is None:
        raise InvalidArgumentError(f"Unknown preference section: {section}", field="section")

    try:
        data = schema.model_validate(body).model_dump(exclude_none=True)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(loc) for loc in error["loc"])
        raise InvalidArgumentError(error["msg"], field=f"{section}.{field}")

    unknown = sorted(set(body) - set(schema.model_fields))
    if unknown:
        raise InvalidArgumentError(f"Unknown {section} option: {unknown[0]}", field=f"{section}.{unknown[0]}")

    preferences = await service.update_section(user_id, section, data)
    return create_success_response(data=serialize_preferences(preferences))
