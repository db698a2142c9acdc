"""
Match lifecycle events.

Events are produced inside a unit of work and only handed to the publisher
after the surrounding transaction commits. Each event carries an
idempotency key so consumers can drop repeated deliveries.
"""
import logging
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Optional, Protocol

from arq import ArqRedis

from housematch.models.match import Match, TargetTypeEnum

logger = logging.getLogger(__name__)

MATCH_CREATED = "match.created"
MATCH_MUTUAL = "match.mutual"
MATCH_EXPIRED = "match.expired"
MATCH_EXPIRING = "match.expiring"

DELIVER_JOB_NAME = "deliver_match_event"


@dataclass(frozen=True)
class MatchEvent:
    event_type: str
    match_id: uuid.UUID
    user_id: uuid.UUID
    target_id: uuid.UUID
    target_type: TargetTypeEnum
    idempotency_key: str
    compatibility_score: Optional[int] = None

    @classmethod
    def for_match(cls, event_type: str, match: Match) -> "MatchEvent":

        if event_type == MATCH_MUTUAL:
            key = mutual_idempotency_key(match.user_id, match.target_id, match.target_type)
        else:
            key = f"{event_type}:{match.id}"

        return cls(
            event_type=event_type,
            match_id=match.id,
            user_id=match.user_id,
            target_id=match.target_id,
            target_type=match.target_type,
            idempotency_key=key,
            compatibility_score=match.compatibility_score,
        )

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        for key in ("match_id", "user_id", "target_id"):
            payload[key] = str(payload[key])
        payload["target_type"] = self.target_type.value
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "MatchEvent":
        return cls(
            event_type=payload["event_type"],
            match_id=uuid.UUID(payload["match_id"]),
            user_id=uuid.UUID(payload["user_id"]),
            target_id=uuid.UUID(payload["target_id"]),
            target_type=TargetTypeEnum(payload["target_type"]),
            idempotency_key=payload["idempotency_key"],
            compatibility_score=payload.get("compatibility_score"),
        )


def mutual_idempotency_key(
    user_id: uuid.UUID,
    target_id: uuid.UUID,
    target_type: TargetTypeEnum,
) -> str:
    """Same key for both directions of a pair."""
    low, high = sorted((str(user_id), str(target_id)))
    return f"mutual:{low}:{high}:{target_type.value}"


class EventPublisher(Protocol):
    async def publish(self, event: MatchEvent) -> None: ...


class ArqEventPublisher:
    """Hands events to the worker queue; the job id deduplicates repeats."""

    def __init__(self, redis: ArqRedis):
        self.redis = redis

    async def publish(self, event: MatchEvent) -> None:
        job = await self.redis.enqueue_job(
            DELIVER_JOB_NAME,
            event.to_payload(),
            _job_id=event.idempotency_key,
        )
        if job is None:
            logger.info(f"Event {event.idempotency_key} already queued, skipping")
        else:
            logger.debug(f"Queued {event.event_type} for match {event.match_id}")


async def publish_all(publisher: EventPublisher, events: list[MatchEvent]) -> int:

    for event in events:
        await publisher.publish(event)
    return len(events)
