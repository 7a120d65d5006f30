"""Transport event trail — append-only audit rows for dispatch activity.

record_event() is fire-and-forget relative to the business operation that
triggers it: the insert runs inside its own SAVEPOINT, and a storage
failure is rolled back to that savepoint and logged on the
``waybill.events`` logger.  The caller's changes are never lost because an
audit row could not be written.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from waybill.database import utcnow
from waybill.models.references import EventReference
from waybill.models.status import ActorType
from waybill.models.transport_event import TransportEvent

logger = logging.getLogger("waybill.events")


async def record_event(
    db: AsyncSession,
    tenant_id: str,
    reference: EventReference,
    event_type: str,
    *,
    actor_type: ActorType | str = ActorType.SYSTEM,
    actor_id: str | None = None,
    stop_id: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    location_text: str | None = None,
    description: str | None = None,
    payload: dict | None = None,
    source: str = "internal",
) -> TransportEvent | None:
    """Append a TransportEvent; return None if it could not be written."""
    event = TransportEvent(
        tenant_id=tenant_id,
        reference_type=reference.reference_type.value,
        reference_id=reference.reference_id,
        event_type=event_type,
        event_time=utcnow(),
        stop_id=stop_id,
        latitude=latitude,
        longitude=longitude,
        location_text=location_text,
        actor_type=ActorType(actor_type).value,
        actor_id=actor_id,
        description=description,
        payload=payload or {},
        source=source,
    )
    # Flush the caller's pending work first so its errors are not swallowed below
    await db.flush()
    try:
        async with db.begin_nested():
            db.add(event)
            await db.flush()
    except SQLAlchemyError:
        logger.exception(
            "Failed to record %s event for %s %s",
            event_type, reference.reference_type.value, reference.reference_id,
            extra={"tenant_id": tenant_id, "event_type": event_type},
        )
        return None
    return event


async def list_events(
    db: AsyncSession,
    tenant_id: str,
    reference: EventReference,
    limit: int = 200,
) -> list[TransportEvent]:
    """Event trail for one manifest / shipment / trip, newest first."""
    result = await db.execute(
        select(TransportEvent)
        .where(
            TransportEvent.tenant_id == tenant_id,
            TransportEvent.reference_type == reference.reference_type.value,
            TransportEvent.reference_id == reference.reference_id,
        )
        .order_by(TransportEvent.event_time.desc(), TransportEvent.id)
        .limit(limit)
    )
    return list(result.scalars().all())
