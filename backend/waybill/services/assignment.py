"""Manifest ↔ shipment assignment and stop execution.

Every mutating function locks the manifest row first (SELECT … FOR UPDATE),
so assignment operations on one manifest are serialized, and ends with
recalculate() so the aggregate counters always match the stops.

Shipment exclusivity is enforced in storage: a ManifestShipment row holds
an *active claim* (is_active = true) on its shipment, and a partial unique
index allows one active claim per shipment.  add_shipments() checks for
foreign claims up front to give a readable error; the index catches the
race between two dispatchers.
"""

import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from waybill.database import utcnow
from waybill.middleware.exceptions import (
    ConcurrencyConflictError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from waybill.models.manifest import Manifest, ManifestShipment
from waybill.models.references import ManifestRef, ShipmentRef
from waybill.models.shipment import Shipment
from waybill.models.status import (
    ASSIGNABLE_SHIPMENT_STATUSES,
    TERMINAL_MANIFEST_STATUSES,
    ActorType,
    ManifestStatus,
    StopStatus,
    ensure_stop_transition,
    is_terminal,
)
from waybill.services.aggregates import recalculate
from waybill.services.events import record_event
from waybill.services.manifests import get_manifest

logger = logging.getLogger(__name__)


# ── Guards ───────────────────────────────────────────────────

async def lock_open_manifest(
    db: AsyncSession, tenant_id: str, manifest_id: str
) -> Manifest | None:
    """Lock the manifest row; reject completed / cancelled manifests."""
    manifest = await get_manifest(db, tenant_id, manifest_id, for_update=True)
    if manifest is None:
        return None
    if is_terminal(manifest.status):
        raise InvalidStateError(
            f"Manifest {manifest.manifest_number} is {manifest.status} and can no longer change",
            details={"status": manifest.status},
        )
    return manifest


def require_in_progress(manifest: Manifest) -> None:
    """Stop execution and delivery outcomes need a running manifest."""
    if manifest.status != ManifestStatus.IN_PROGRESS.value:
        raise InvalidStateError(
            f"Manifest {manifest.manifest_number} is {manifest.status}; start the run first",
            details={"status": manifest.status, "required": ManifestStatus.IN_PROGRESS.value},
        )


def find_stop(manifest: Manifest, shipment_id: str) -> ManifestShipment:
    """The stop for ``shipment_id`` on this manifest, or 404."""
    for stop in manifest.stops:
        if stop.shipment_id == shipment_id:
            return stop
    raise ResourceNotFoundError("Manifest stop", f"{manifest.manifest_number}/{shipment_id}")


# ── Membership ───────────────────────────────────────────────

async def add_shipments(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    shipment_ids: list[str],
    actor_id: str | None = None,
) -> Manifest | None:
    """Append shipments as pending stops after the current last stop.

    Raises:
        ResourceNotFoundError: a shipment does not exist for the tenant.
        ValidationFailedError: a shipment is not assignable or already on this manifest.
        ConcurrencyConflictError: a shipment is claimed by another active manifest.
    """
    manifest = await lock_open_manifest(db, tenant_id, manifest_id)
    if manifest is None:
        return None

    ids = list(dict.fromkeys(shipment_ids))
    if not ids:
        raise ValidationFailedError("No shipment ids given", details={"field": "shipment_ids"})

    result = await db.execute(
        select(Shipment)
        .where(Shipment.id.in_(ids), Shipment.tenant_id == tenant_id)
        .with_for_update()
    )
    shipments = {s.id: s for s in result.scalars().all()}

    missing = [sid for sid in ids if sid not in shipments]
    if missing:
        raise ResourceNotFoundError("Shipment", ", ".join(missing[:5]))

    ineligible = [sid for sid in ids if shipments[sid].status not in ASSIGNABLE_SHIPMENT_STATUSES]
    if ineligible:
        raise ValidationFailedError(
            "Shipments are not in an assignable status",
            details={
                "shipments": {sid: shipments[sid].status for sid in ineligible},
                "assignable": list(ASSIGNABLE_SHIPMENT_STATUSES),
            },
        )

    on_manifest = {stop.shipment_id for stop in manifest.stops}
    duplicates = [sid for sid in ids if sid in on_manifest]
    if duplicates:
        raise ValidationFailedError(
            "Shipments are already on this manifest",
            details={"shipment_ids": duplicates},
        )

    claims = await db.execute(
        select(ManifestShipment.shipment_id, Manifest.manifest_number)
        .join(Manifest, Manifest.id == ManifestShipment.manifest_id)
        .where(
            ManifestShipment.shipment_id.in_(ids),
            ManifestShipment.is_active == True,  # noqa: E712
            ManifestShipment.manifest_id != manifest.id,
        )
    )
    claimed = {sid: number for sid, number in claims.all()}
    if claimed:
        raise ConcurrencyConflictError(
            "Shipments are already assigned to another active manifest",
            details={"claims": claimed},
        )

    number = manifest.manifest_number
    next_sequence = max((stop.stop_sequence for stop in manifest.stops), default=0) + 1
    try:
        async with db.begin_nested():
            for offset, sid in enumerate(ids):
                manifest.stops.append(
                    ManifestShipment(
                        shipment_id=sid,
                        stop_sequence=next_sequence + offset,
                        status=StopStatus.PENDING.value,
                    )
                )
            await db.flush()
    except IntegrityError as e:
        logger.warning("Claim index rejected shipments for %s: %s", number, ids)
        raise ConcurrencyConflictError(
            "A shipment was claimed by another manifest concurrently",
            details={"shipment_ids": ids},
        ) from e

    await recalculate(db, manifest)
    await record_event(
        db, tenant_id, ManifestRef(manifest.id), "shipments_added",
        actor_type=ActorType.USER, actor_id=actor_id,
        description=f"{len(ids)} shipment(s) added to {manifest.manifest_number}",
        payload={"shipment_ids": ids},
    )
    return await get_manifest(db, tenant_id, manifest.id)


async def remove_shipments(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    shipment_ids: list[str],
    actor_id: str | None = None,
) -> int | None:
    """Delete the stops for ``shipment_ids``.  Returns how many were removed."""
    manifest = await lock_open_manifest(db, tenant_id, manifest_id)
    if manifest is None:
        return None

    wanted = set(shipment_ids)
    to_remove = [stop for stop in manifest.stops if stop.shipment_id in wanted]
    for stop in to_remove:
        manifest.stops.remove(stop)
    await db.flush()

    await recalculate(db, manifest)
    if to_remove:
        await record_event(
            db, tenant_id, ManifestRef(manifest.id), "shipments_removed",
            actor_type=ActorType.USER, actor_id=actor_id,
            description=f"{len(to_remove)} shipment(s) removed from {manifest.manifest_number}",
            payload={"shipment_ids": [stop.shipment_id for stop in to_remove]},
        )
    return len(to_remove)


async def reorder_shipments(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    ordered_ids: list[str],
    actor_id: str | None = None,
) -> Manifest | None:
    """Rewrite stop sequences as the 1-based position in ``ordered_ids``.

    The list must name every shipment on the manifest exactly once.
    """
    manifest = await lock_open_manifest(db, tenant_id, manifest_id)
    if manifest is None:
        return None

    stops = {stop.shipment_id: stop for stop in manifest.stops}
    unknown = [sid for sid in ordered_ids if sid not in stops]
    missing = [sid for sid in stops if sid not in set(ordered_ids)]
    if unknown or missing or len(ordered_ids) != len(set(ordered_ids)):
        raise ValidationFailedError(
            "Order must list every shipment on the manifest exactly once",
            details={"unknown": unknown, "missing": missing},
        )

    now = utcnow()
    for position, sid in enumerate(ordered_ids, start=1):
        stop = stops[sid]
        if stop.stop_sequence != position:
            stop.stop_sequence = position
            stop.updated_at = now
    await db.flush()

    await recalculate(db, manifest)
    await record_event(
        db, tenant_id, ManifestRef(manifest.id), "stops_reordered",
        actor_type=ActorType.USER, actor_id=actor_id,
        payload={"shipment_ids": list(ordered_ids)},
    )
    return await get_manifest(db, tenant_id, manifest.id)


async def get_available_shipments(
    db: AsyncSession,
    tenant_id: str,
    search: str | None = None,
    limit: int = 200,
) -> list[Shipment]:
    """Assignable shipments not linked to any open manifest, newest first."""
    open_links = (
        select(ManifestShipment.shipment_id)
        .join(Manifest, Manifest.id == ManifestShipment.manifest_id)
        .where(
            or_(
                Manifest.status.notin_([s.value for s in TERMINAL_MANIFEST_STATUSES]),
                ManifestShipment.is_active == True,  # noqa: E712
            )
        )
    )
    stmt = select(Shipment).where(
        Shipment.tenant_id == tenant_id,
        Shipment.status.in_(ASSIGNABLE_SHIPMENT_STATUSES),
        Shipment.id.notin_(open_links),
    )
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                Shipment.shipment_number.ilike(pattern),
                Shipment.tracking_number.ilike(pattern),
                Shipment.delivery_city.ilike(pattern),
            )
        )
    result = await db.execute(stmt.order_by(Shipment.created_at.desc()).limit(limit))
    return list(result.scalars().all())


# ── Single-stop patches ──────────────────────────────────────

async def update_stop_notes(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    shipment_id: str,
    driver_notes: str | None,
) -> ManifestShipment | None:
    manifest = await lock_open_manifest(db, tenant_id, manifest_id)
    if manifest is None:
        return None
    stop = find_stop(manifest, shipment_id)
    stop.driver_notes = driver_notes
    stop.updated_at = utcnow()
    await db.flush()
    return stop


async def update_stop_sequence(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    shipment_id: str,
    new_sequence: int,
) -> ManifestShipment | None:
    """Move one stop; the stop currently at ``new_sequence`` takes its old slot."""
    if new_sequence < 1:
        raise ValidationFailedError("stop_sequence must be >= 1", details={"field": "stop_sequence"})

    manifest = await lock_open_manifest(db, tenant_id, manifest_id)
    if manifest is None:
        return None
    stop = find_stop(manifest, shipment_id)
    if stop.stop_sequence == new_sequence:
        return stop

    now = utcnow()
    for other in manifest.stops:
        if other is not stop and other.stop_sequence == new_sequence:
            other.stop_sequence = stop.stop_sequence
            other.updated_at = now
    stop.stop_sequence = new_sequence
    stop.updated_at = now
    await db.flush()
    return stop


# ── Stop execution ───────────────────────────────────────────

async def _stop_status_change(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    shipment_id: str,
    target: StopStatus,
    event_type: str,
    *,
    actor_id: str | None,
    stamp_arrival: bool = False,
    description: str | None = None,
    payload: dict | None = None,
) -> ManifestShipment | None:
    manifest = await get_manifest(db, tenant_id, manifest_id, for_update=True)
    if manifest is None:
        return None
    require_in_progress(manifest)
    stop = find_stop(manifest, shipment_id)

    previous = stop.status
    if target.value != previous:
        stop.status = ensure_stop_transition(previous, target).value
    now = utcnow()
    if stamp_arrival:
        stop.arrived_at = now
    stop.updated_at = now
    await db.flush()

    await recalculate(db, manifest)
    await record_event(
        db, tenant_id, ShipmentRef(shipment_id), event_type,
        actor_type=ActorType.DRIVER, actor_id=actor_id or manifest.driver_id,
        stop_id=stop.id,
        description=description,
        payload={"manifest_id": manifest.id, "from": previous, "to": stop.status, **(payload or {})},
    )
    return stop


async def start_stop(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    shipment_id: str,
    actor_id: str | None = None,
) -> ManifestShipment | None:
    """Driver is heading to the stop: → in_transit."""
    return await _stop_status_change(
        db, tenant_id, manifest_id, shipment_id, StopStatus.IN_TRANSIT, "stop_started",
        actor_id=actor_id,
    )


async def arrive_at_stop(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    shipment_id: str,
    actor_id: str | None = None,
) -> ManifestShipment | None:
    """Stamp arrived_at; a pending or skipped stop moves to in_transit."""
    return await _stop_status_change(
        db, tenant_id, manifest_id, shipment_id, StopStatus.IN_TRANSIT, "stop_arrived",
        actor_id=actor_id, stamp_arrival=True,
    )


async def skip_stop(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    shipment_id: str,
    reason: str | None = None,
    actor_id: str | None = None,
) -> ManifestShipment | None:
    """Pass the stop for now: → skipped (counted as pending)."""
    return await _stop_status_change(
        db, tenant_id, manifest_id, shipment_id, StopStatus.SKIPPED, "stop_skipped",
        actor_id=actor_id,
        description=reason,
        payload={"reason": reason} if reason else None,
    )
