"""
HTTP clients for the services the matching engine depends on.

Profiles and properties are owned elsewhere; the engine only reads them.
Notification and messaging services receive lifecycle events. Transport
failures surface as DownstreamUnavailableError so callers fail closed.
"""
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence

import httpx

from housematch.core.config import Settings
from housematch.core.exceptions import DownstreamUnavailableError
from housematch.models.match import TargetTypeEnum
from housematch.services.events import MATCH_MUTUAL, MatchEvent
from housematch.services.matching.profiles import ProfileData, PropertyData

logger = logging.getLogger(__name__)


@dataclass
class PropertySearch:
    """Coarse pre-filter sent to the property service."""
    exclude_owner_id: Optional[uuid.UUID] = None
    max_rent: Optional[Decimal] = None
    states: list[str] = field(default_factory=list)
    cities: list[str] = field(default_factory=list)
    only_available: bool = True

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"available": str(self.only_available).lower()}
        if self.exclude_owner_id is not None:
            params["exclude_owner"] = str(self.exclude_owner_id)
        if self.max_rent is not None:
            params["max_rent"] = str(self.max_rent)
        if self.states:
            params["state"] = self.states
        if self.cities:
            params["city"] = self.cities
        return params


class ProfileStore(Protocol):
    async def get_profile(self, user_id: uuid.UUID) -> Optional[ProfileData]: ...

    async def get_profiles(self, user_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, ProfileData]: ...


class PropertyStore(Protocol):
    async def get_property(self, property_id: uuid.UUID) -> Optional[PropertyData]: ...

    async def search_properties(self, search: PropertySearch, limit: int) -> list[PropertyData]: ...


class _ServiceClient:

    service_name = "service"

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        allow_not_found: bool = False,
        **kwargs: Any,
    ) -> Optional[httpx.Response]:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{self.service_name} request {method} {url} failed: {e}")
            raise DownstreamUnavailableError(self.service_name, str(e)) from e

        if allow_not_found and response.status_code == 404:
            return None

        if response.status_code >= 400:
            logger.error(f"{self.service_name} error: {response.status_code} - {response.text}")
            raise DownstreamUnavailableError(
                self.service_name,
                f"unexpected status {response.status_code}",
            )

        return response

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()


class HttpProfileStore(_ServiceClient):

    service_name = "profile service"

    async def get_profile(self, user_id: uuid.UUID) -> Optional[ProfileData]:
        response = await self._request("GET", f"/profiles/{user_id}", allow_not_found=True)
        if response is None:
            return None
        return ProfileData.from_payload(response.json())

    async def get_profiles(self, user_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, ProfileData]:
        if not user_ids:
            return {}

        response = await self._request(
            "POST",
            "/profiles/batch",
            json={"ids": [str(user_id) for user_id in user_ids]},
        )
        profiles = [ProfileData.from_payload(item) for item in response.json().get("profiles", [])]
        return {profile.user_id: profile for profile in profiles}


class HttpPropertyStore(_ServiceClient):

    service_name = "property service"

    async def get_property(self, property_id: uuid.UUID) -> Optional[PropertyData]:
        response = await self._request("GET", f"/properties/{property_id}", allow_not_found=True)
        if response is None:
            return None
        return PropertyData.from_payload(response.json())

    async def search_properties(self, search: PropertySearch, limit: int) -> list[PropertyData]:
        params = search.to_params()
        params["limit"] = limit

        response = await self._request("GET", "/properties/search", params=params)
        return [PropertyData.from_payload(item) for item in response.json().get("properties", [])]


class HttpNotificationClient(_ServiceClient):

    service_name = "notification service"

    async def notify(self, event: MatchEvent) -> None:
        await self._request(
            "POST",
            "/events",
            json=event.to_payload(),
            headers={"Idempotency-Key": event.idempotency_key},
        )


class HttpMessagingClient(_ServiceClient):

    service_name = "messaging service"

    async def request_conversation(
        self,
        event: MatchEvent,
        owner_id: Optional[uuid.UUID] = None,
    ) -> None:
        """
        Ask for a conversation between the two sides of a mutual match.

        For a housing match the second participant is the listing owner,
        passed as ``owner_id``; the listing itself goes in ``property_id``.
        """
        if event.event_type != MATCH_MUTUAL:
            return

        body: dict[str, Any] = {
            "target_type": event.target_type.value,
            "match_id": str(event.match_id),
        }
        if event.target_type == TargetTypeEnum.PROPERTY:
            if owner_id is None:
                raise ValueError(f"Conversation for match {event.match_id} needs the listing owner")
            body["participants"] = [str(event.user_id), str(owner_id)]
            body["property_id"] = str(event.target_id)
        else:
            body["participants"] = [str(event.user_id), str(event.target_id)]

        await self._request(
            "POST",
            "/conversations",
            json=body,
            headers={"Idempotency-Key": event.idempotency_key},
        )


def build_profile_store(settings: Settings) -> HttpProfileStore:
    return HttpProfileStore(settings.profile_service_url, settings.collaborator_timeout_seconds)


def build_property_store(settings: Settings) -> HttpPropertyStore:
    return HttpPropertyStore(settings.property_service_url, settings.collaborator_timeout_seconds)


def build_notification_client(settings: Settings) -> HttpNotificationClient:
    return HttpNotificationClient(settings.notification_service_url, settings.collaborator_timeout_seconds)


def build_messaging_client(settings: Settings) -> HttpMessagingClient:
    return HttpMessagingClient(settings.messaging_service_url, settings.collaborator_timeout_seconds)
