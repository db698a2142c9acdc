import logging
from datetime import timedelta
from typing import Any

from arq import Retry

from housematch.core.config import get_settings
from housematch.core.database import utcnow
from housematch.core.exceptions import DownstreamUnavailableError
from housematch.models.match import TargetTypeEnum
from housematch.repositories.match import MatchRepository
from housematch.services.events import (
    MATCH_EXPIRING,
    MATCH_MUTUAL,
    ArqEventPublisher,
    MatchEvent,
    publish_all,
)
from housematch.services.matching.lifecycle import ExpirationResult, MatchLifecycleManager

logger = logging.getLogger(__name__)

settings = get_settings()

MAX_SWEEP_BATCHES = 20
REMINDER_VIEW_GRACE_HOURS = 2


async def expire_pending_matches(ctx: dict[str, Any]) -> dict[str, Any]:
    """Expire pending matches past their offer window, batch by batch."""
    logger.info("Expiring pending matches")

    session_factory = ctx.get("session_factory")
    if not session_factory:
        logger.error("No session factory in context")
        return {"processed": 0, "expired": 0, "extended": 0, "error": "No DB session"}

    total = ExpirationResult()

    async with session_factory() as db:
        try:
            lifecycle = MatchLifecycleManager(db, settings)
            now = utcnow()

            for _ in range(MAX_SWEEP_BATCHES):
                result = await lifecycle.expire_due(now)
                await db.commit()

                events = lifecycle.drain_events()
                if events and ctx.get("publisher"):
                    await publish_all(ctx["publisher"], events)

                total.processed += result.processed
                total.expired += result.expired
                total.extended += result.extended

                if result.processed < settings.expiry_sweep_batch_size:
                    break

        except Exception as e:
            logger.exception(f"Error expiring matches: {e}")
            await db.rollback()
            return {
                "processed": total.processed,
                "expired": total.expired,
                "extended": total.extended,
                "error": str(e),
            }

    logger.info(f"Expired {total.expired} matches, extended {total.extended}")
    return {"processed": total.processed, "expired": total.expired, "extended": total.extended}


async def send_expiration_reminders(ctx: dict[str, Any]) -> dict[str, Any]:
    logger.info("Sending expiration reminders")

    session_factory = ctx.get("session_factory")
    notifications = ctx.get("notifications")
    if not session_factory or not notifications:
        return {"checked": 0, "reminders_sent": 0, "error": "Worker not initialised"}

    now = utcnow()
    reminders_sent = 0

    async with session_factory() as db:
        try:
            repository = MatchRepository(db)
            matches = await repository.get_unviewed_expiring(
                now,
                now + timedelta(hours=settings.expiry_reminder_hours),
                now - timedelta(hours=REMINDER_VIEW_GRACE_HOURS),
            )
        except Exception as e:
            logger.exception(f"Error loading expiring matches: {e}")
            return {"checked": 0, "reminders_sent": 0, "error": str(e)}

    for match in matches:
        try:
            await notifications.notify(MatchEvent.for_match(MATCH_EXPIRING, match))
            reminders_sent += 1
        except DownstreamUnavailableError as e:
            logger.error(f"Failed to send expiration reminder for match {match.id}: {e}")

    return {"checked": len(matches), "reminders_sent": reminders_sent}


async def deliver_match_event(ctx: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    """
    Fan one lifecycle event out to the notification and messaging services.

    Both calls carry the event's idempotency key, so a retried delivery is
    harmless. An unreachable collaborator makes arq retry the job later.
    """
    event = MatchEvent.from_payload(payload)
    logger.info(f"Delivering {event.event_type} for match {event.match_id}")

    try:
        await ctx["notifications"].notify(event)

        if event.event_type == MATCH_MUTUAL:
            await _request_conversation(ctx, event)

    except DownstreamUnavailableError as e:
        attempt = ctx.get("job_try", 1)
        logger.warning(f"Delivery of {event.idempotency_key} failed (try {attempt}): {e}")
        raise Retry(defer=timedelta(seconds=30 * attempt)) from e

    return {"event": event.event_type, "match_id": str(event.match_id), "delivered": True}


async def _request_conversation(ctx: dict[str, Any], event: MatchEvent) -> None:

    owner_id = None
    if event.target_type == TargetTypeEnum.PROPERTY:
        listing = await ctx["properties"].get_property(event.target_id)
        if listing is None:
            logger.warning(f"Property {event.target_id} is gone, no conversation for match {event.match_id}")
            return
        owner_id = listing.owner_id

    await ctx["messaging"].request_conversation(event, owner_id)
    await _mark_conversation_requested(ctx, event)


async def _mark_conversation_requested(ctx: dict[str, Any], event: MatchEvent) -> None:

    async with ctx["session_factory"]() as db:
        repository = MatchRepository(db)
        match = await repository.get(event.match_id)
        if match is None:
            return

        ids = [match.id]
        mirror = await repository.get_mirror(match)
        if mirror is not None:
            ids.append(mirror.id)

        for match_id in ids:
            await repository.compare_and_set(match_id, {}, {"conversation_requested": True})
        await db.commit()


async def startup(ctx: dict[str, Any]) -> None:
    logger.info("Worker starting up...")

    from housematch.core.database import async_session_factory
    from housematch.services.collaborators import (
        build_messaging_client,
        build_notification_client,
        build_property_store,
    )

    ctx["session_factory"] = async_session_factory
    ctx["notifications"] = build_notification_client(settings)
    ctx["messaging"] = build_messaging_client(settings)
    ctx["properties"] = build_property_store(settings)
    ctx["publisher"] = ArqEventPublisher(ctx["redis"])

    logger.info("Worker started")


async def shutdown(ctx: dict[str, Any]) -> None:
    logger.info("Worker shutting down...")

    if ctx.get("notifications"):
        await ctx["notifications"].close()

    if ctx.get("messaging"):
        await ctx["messaging"].close()

    if ctx.get("properties"):
        await ctx["properties"].close()

    logger.info("Worker stopped")
