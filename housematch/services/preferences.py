import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from housematch.core.database import utcnow
from housematch.core.exceptions import InvalidArgumentError, NotFoundError
from housematch.core.validators import (
    MAX_DEAL_BREAKERS,
    MAX_PREFERRED_AREAS,
    MAX_PREFERRED_CITIES,
    MAX_PREFERRED_STATES,
    validate_age_range,
    validate_budget_range,
    validate_deal_breaker,
    validate_location_list,
    validate_max_distance,
    validate_percentage,
)
from housematch.models.preferences import (
    PREFERENCE_SECTIONS,
    GenderPreferenceEnum,
    MatchPreferences,
)
from housematch.repositories.preferences import PreferencesRepository

logger = logging.getLogger(__name__)

LOCATION_LISTS = {
    "preferred_states": (MAX_PREFERRED_STATES, "states"),
    "preferred_cities": (MAX_PREFERRED_CITIES, "cities"),
    "preferred_areas": (MAX_PREFERRED_AREAS, "areas"),
}

SCALAR_FIELDS = {
    "is_active",
    "max_distance",
    "age_min",
    "age_max",
    "gender_preference",
    "budget_min",
    "budget_max",
    "budget_flexibility",
    "location_flexibility",
}

UPDATABLE_FIELDS = SCALAR_FIELDS | set(LOCATION_LISTS) | set(PREFERENCE_SECTIONS) | {"deal_breakers"}


class PreferenceService:
    """
    Reads and writes a user's matching preferences.

    Preferences are created with defaults the first time they are read.
    Updates are partial: only provided fields change, and a section update
    merges into the stored section rather than replacing it. Changes never
    touch pending matches; they only apply to future candidate selection.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repository = PreferencesRepository(session)

    async def get_or_create(self, user_id: uuid.UUID) -> MatchPreferences:
        preferences, created = await self.repository.get_or_create(user_id)
        if created:
            logger.info(f"Created default preferences for user {user_id}")
            await self.session.commit()
        return preferences

    async def update(self, user_id: uuid.UUID, data: dict[str, Any]) -> MatchPreferences:
        """
        Apply a partial update.

        Args:
            user_id: Owner of the preferences
            data: Field name to new value; ``None`` values are ignored

        Returns:
            The updated preferences

        Raises:
            InvalidArgumentError: On an unknown field or an invalid value
        """
        data = {key: value for key, value in data.items() if value is not None}
        unknown = sorted(set(data) - UPDATABLE_FIELDS)
        if unknown:
            raise InvalidArgumentError(f"Unknown preference field: {unknown[0]}", field=unknown[0])

        preferences, _ = await self.repository.get_or_create(user_id)
        values = self._validate(preferences, data)

        for section in PREFERENCE_SECTIONS:
            if section in data:
                values[section] = self._merge_section(preferences, section, data[section])

        values["last_active_at"] = utcnow()
        preferences = await self.repository.set_fields(preferences, values)
        await self.session.commit()

        logger.info(f"Updated preferences for user {user_id}: {sorted(data)}")
        return preferences

    async def update_section(
        self,
        user_id: uuid.UUID,
        section: str,
        data: dict[str, Any],
    ) -> MatchPreferences:
        if section not in PREFERENCE_SECTIONS:
            raise InvalidArgumentError(f"Unknown preference section: {section}", field="section")

        preferences, _ = await self.repository.get_or_create(user_id)
        merged = self._merge_section(preferences, section, data)
        preferences = await self.repository.set_fields(
            preferences,
            {section: merged, "last_active_at": utcnow()},
        )
        await self.session.commit()

        logger.info(f"Updated {section} preferences for user {user_id}")
        return preferences

    async def set_active(self, user_id: uuid.UUID, is_active: Any) -> MatchPreferences:

        if not isinstance(is_active, bool):
            raise InvalidArgumentError("is_active must be a boolean", field="is_active")

        preferences, _ = await self.repository.get_or_create(user_id)
        preferences = await self.repository.set_fields(
            preferences,
            {"is_active": is_active, "last_active_at": utcnow()},
        )
        await self.session.commit()

        logger.info(f"Matching {'activated' if is_active else 'paused'} for user {user_id}")
        return preferences

    async def add_deal_breaker(self, user_id: uuid.UUID, value: Any) -> MatchPreferences:

        result = validate_deal_breaker(value)
        if not result.is_valid:
            raise InvalidArgumentError(result.error_message, field="deal_breaker")

        preferences, _ = await self.repository.get_or_create(user_id)
        current = list(preferences.deal_breakers or [])
        if result.sanitized_value.lower() in (item.lower() for item in current):
            return preferences

        if len(current) >= MAX_DEAL_BREAKERS:
            raise InvalidArgumentError(
                f"At most {MAX_DEAL_BREAKERS} deal breakers can be set",
                field="deal_breaker",
            )

        preferences = await self.repository.set_fields(
            preferences,
            {"deal_breakers": current + [result.sanitized_value]},
        )
        await self.session.commit()
        return preferences

    async def remove_deal_breaker(self, user_id: uuid.UUID, value: Any) -> MatchPreferences:

        preferences = await self.repository.get_by_user_id(user_id)
        if preferences is None:
            raise NotFoundError("Preferences not found", field="user_id")

        result = validate_deal_breaker(value)
        if not result.is_valid:
            raise InvalidArgumentError(result.error_message, field="deal_breaker")

        needle = result.sanitized_value.lower()
        current = list(preferences.deal_breakers or [])
        remaining = [item for item in current if item.lower() != needle]
        if len(remaining) == len(current):
            return preferences

        preferences = await self.repository.set_fields(preferences, {"deal_breakers": remaining})
        await self.session.commit()
        return preferences

    def _validate(self, preferences: MatchPreferences, data: dict[str, Any]) -> dict[str, Any]:
        values: dict[str, Any] = {}

        if "is_active" in data:
            if not isinstance(data["is_active"], bool):
                raise InvalidArgumentError("is_active must be a boolean", field="is_active")
            values["is_active"] = data["is_active"]

        if "max_distance" in data:
            values["max_distance"] = self._check(validate_max_distance(data["max_distance"]), "max_distance")

        if "age_min" in data or "age_max" in data:
            age_min = data.get("age_min", preferences.age_min)
            age_max = data.get("age_max", preferences.age_max)
            values["age_min"], values["age_max"] = self._check(validate_age_range(age_min, age_max), "age_range")

        if "gender_preference" in data:
            try:
                values["gender_preference"] = GenderPreferenceEnum(data["gender_preference"])
            except ValueError:
                raise InvalidArgumentError(
                    "Gender preference must be male, female or any",
                    field="gender_preference",
                )

        if "budget_min" in data or "budget_max" in data:
            budget_min = data.get("budget_min", preferences.budget_min)
            budget_max = data.get("budget_max", preferences.budget_max)
            values["budget_min"], values["budget_max"] = self._check(
                validate_budget_range(budget_min, budget_max),
                "budget_range",
            )

        for name in ("budget_flexibility", "location_flexibility"):
            if name in data:
                label = name.replace("_", " ").capitalize()
                values[name] = self._check(validate_percentage(data[name], label), name)

        for name, (max_items, label) in LOCATION_LISTS.items():
            if name in data:
                values[name] = self._check(validate_location_list(data[name], max_items, label), name)

        if "deal_breakers" in data:
            cleaned: list[str] = []
            for item in data["deal_breakers"]:
                term = self._check(validate_deal_breaker(item), "deal_breakers")
                if term.lower() not in (existing.lower() for existing in cleaned):
                    cleaned.append(term)
            if len(cleaned) > MAX_DEAL_BREAKERS:
                raise InvalidArgumentError(
                    f"At most {MAX_DEAL_BREAKERS} deal breakers can be set",
                    field="deal_breakers",
                )
            values["deal_breakers"] = cleaned

        return values

    @staticmethod
    def _check(result, field: str) -> Any:
        if not result.is_valid:
            raise InvalidArgumentError(result.error_message, field=field)
        return result.sanitized_value

    @staticmethod
    def _merge_section(
        preferences: MatchPreferences,
        section: str,
        data: dict[str, Any],
    ) -> dict[str, Any]:

        if not isinstance(data, dict):
            raise InvalidArgumentError(f"{section} must be an object", field=section)

        allowed = PREFERENCE_SECTIONS[section]
        unknown = sorted(set(data) - set(allowed))
        if unknown:
            raise InvalidArgumentError(
                f"Unknown {section} option: {unknown[0]}",
                field=f"{section}.{unknown[0]}",
            )

        merged = {**allowed, **(getattr(preferences, section) or {})}
        merged.update({key: value for key, value in data.items() if value is not None})
        return merged
