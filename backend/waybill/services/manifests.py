"""Manifest repository — CRUD, lifecycle and duplication of dispatch manifests.

Every function takes the tenant id explicitly and filters on it; a manifest
of another tenant is indistinguishable from a missing one.  Lookups return
None for "not found" and leave the 404 to the router.

Lifecycle changes go through ensure_manifest_transition(); entering a
terminal status (completed / cancelled) releases the shipment claims held
by the manifest so unfinished shipments can be planned again.
"""

import logging
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import lazyload

from waybill.database import utcnow
from waybill.middleware.exceptions import (
    ConcurrencyConflictError,
    InvalidStateError,
    ValidationFailedError,
)
from waybill.models.fleet import Carrier, Driver, TransportRoute, Vehicle
from waybill.models.manifest import Manifest, ManifestShipment
from waybill.models.references import ManifestRef
from waybill.models.shipment import Shipment
from waybill.models.status import (
    ActorType,
    ASSIGNABLE_SHIPMENT_STATUSES,
    ManifestStatus,
    StopStatus,
    TERMINAL_MANIFEST_STATUSES,
    ensure_manifest_transition,
)
from waybill.schemas.manifest import ManifestCreate, ManifestUpdate
from waybill.services.aggregates import recalculate
from waybill.services.events import record_event
from waybill.utils.locks import get_manifest_locks
from waybill.utils.numbering import generate_manifest_number

logger = logging.getLogger(__name__)

_REFERENCE_MODELS = {
    "carrier_id": Carrier,
    "vehicle_id": Vehicle,
    "driver_id": Driver,
    "route_id": TransportRoute,
}


async def _validate_references(db: AsyncSession, tenant_id: str, values: dict) -> None:
    """Reject carrier/vehicle/driver/route ids unknown to the tenant."""
    for field_name, model in _REFERENCE_MODELS.items():
        ref_id = values.get(field_name)
        if ref_id is None:
            continue
        found = (
            await db.execute(
                select(model.id).where(model.id == ref_id, model.tenant_id == tenant_id)
            )
        ).scalar_one_or_none()
        if not found:
            raise ValidationFailedError(
                f"Unknown {field_name.removesuffix('_id')}: {ref_id}",
                details={"field": field_name, "value": ref_id},
            )


def _enum_value(value):
    return value.value if hasattr(value, "value") else value


# ── Reads ────────────────────────────────────────────────────

async def list_manifests(
    db: AsyncSession,
    tenant_id: str,
    *,
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    carrier_id: str | None = None,
    vehicle_id: str | None = None,
    driver_id: str | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Manifest], int]:
    """Filtered page of manifests, newest manifest_date first.

    Returns:
        (items, total) where total counts every match, not just the page.
    """
    conditions = [Manifest.tenant_id == tenant_id]
    if status and status != "all":
        conditions.append(Manifest.status == status)
    if date_from:
        conditions.append(Manifest.manifest_date >= date_from)
    if date_to:
        conditions.append(Manifest.manifest_date <= date_to)
    if carrier_id:
        conditions.append(Manifest.carrier_id == carrier_id)
    if vehicle_id:
        conditions.append(Manifest.vehicle_id == vehicle_id)
    if driver_id:
        conditions.append(Manifest.driver_id == driver_id)
    if search:
        conditions.append(Manifest.manifest_number.ilike(f"%{search}%"))

    total = (
        await db.execute(select(func.count(Manifest.id)).where(*conditions))
    ).scalar() or 0

    result = await db.execute(
        select(Manifest)
        .where(*conditions)
        .options(lazyload(Manifest.stops))
        .order_by(Manifest.manifest_date.desc(), Manifest.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total


async def get_manifest(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    *,
    for_update: bool = False,
) -> Manifest | None:
    """Manifest with fleet joins and its stops (ordered, with shipments).

    ``for_update`` takes a row lock on the manifest for the rest of the
    transaction; assignment and outcome operations serialize on it.
    """
    stmt = (
        select(Manifest)
        .where(Manifest.id == manifest_id, Manifest.tenant_id == tenant_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update(of=Manifest)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def manifest_stats(
    db: AsyncSession,
    tenant_id: str,
    date_from: date | None = None,
    date_to: date | None = None,
) -> dict:
    """Dashboard summary: manifests per status plus summed stop counters."""
    conditions = [Manifest.tenant_id == tenant_id]
    if date_from:
        conditions.append(Manifest.manifest_date >= date_from)
    if date_to:
        conditions.append(Manifest.manifest_date <= date_to)

    by_status_rows = await db.execute(
        select(Manifest.status, func.count(Manifest.id))
        .where(*conditions)
        .group_by(Manifest.status)
    )
    by_status = {s.value: 0 for s in ManifestStatus}
    for status_value, count in by_status_rows.all():
        by_status[status_value] = count

    totals = (
        await db.execute(
            select(
                func.coalesce(func.sum(Manifest.total_shipments), 0),
                func.coalesce(func.sum(Manifest.delivered_count), 0),
                func.coalesce(func.sum(Manifest.failed_count), 0),
                func.coalesce(func.sum(Manifest.pending_count), 0),
                func.coalesce(func.sum(Manifest.total_cod_amount), 0),
            ).where(*conditions, Manifest.status != ManifestStatus.CANCELLED.value)
        )
    ).one()
    total_shipments, delivered, failed, pending, cod = totals
    attempted = int(delivered) + int(failed)

    return {
        "date_from": date_from,
        "date_to": date_to,
        "manifests_by_status": by_status,
        "total_manifests": sum(by_status.values()),
        "total_shipments": int(total_shipments),
        "delivered_count": int(delivered),
        "failed_count": int(failed),
        "pending_count": int(pending),
        "total_cod_amount": round(float(cod or 0), 2),
        "delivery_rate": round(int(delivered) / attempted * 100, 1) if attempted else 0.0,
    }


# ── Writes ───────────────────────────────────────────────────

async def create_manifest(
    db: AsyncSession,
    tenant_id: str,
    body: ManifestCreate,
    actor_id: str | None = None,
) -> Manifest:
    """Create a draft manifest with a fresh MAN-YYMMDD-XXXX number."""
    values = body.model_dump()
    if values.get("manifest_date") is None:
        raise ValidationFailedError("manifest_date is required", details={"field": "manifest_date"})
    await _validate_references(db, tenant_id, values)

    manifest = Manifest(
        tenant_id=tenant_id,
        manifest_number=generate_manifest_number(),
        manifest_date=body.manifest_date,
        manifest_type=_enum_value(body.manifest_type),
        branch_id=body.branch_id,
        carrier_id=body.carrier_id,
        vehicle_id=body.vehicle_id,
        driver_id=body.driver_id,
        route_id=body.route_id,
        planned_start=body.planned_start,
        planned_end=body.planned_end,
        notes=body.notes,
        driver_notes=body.driver_notes,
        status=ManifestStatus.DRAFT.value,
        created_by=actor_id,
    )
    db.add(manifest)
    await db.flush()

    await record_event(
        db, tenant_id, ManifestRef(manifest.id), "manifest_created",
        actor_type=ActorType.USER, actor_id=actor_id,
        description=f"Manifest {manifest.manifest_number} created",
        payload={"manifest_date": manifest.manifest_date.isoformat()},
    )
    return await get_manifest(db, tenant_id, manifest.id)


async def update_manifest(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    body: ManifestUpdate,
    actor_id: str | None = None,
) -> Manifest | None:
    """Patch the supplied fields.  Aggregates are never part of an update."""
    manifest = await get_manifest(db, tenant_id, manifest_id, for_update=True)
    if manifest is None:
        return None

    if body.version is not None and body.version != manifest.version:
        raise ConcurrencyConflictError(
            "Manifest was modified by someone else. Reload and retry.",
            details={"expected_version": body.version, "current_version": manifest.version},
        )

    updates = body.model_dump(exclude_unset=True, exclude={"version", "status"})
    lock = get_manifest_locks(manifest).check_update(set(updates))
    if lock:
        raise InvalidStateError(
            lock.reason,
            details={"field": lock.field, "unlock_hint": lock.unlock_hint},
        )
    await _validate_references(db, tenant_id, updates)

    planned_start = updates.get("planned_start", manifest.planned_start)
    planned_end = updates.get("planned_end", manifest.planned_end)
    if planned_start and planned_end and planned_end < planned_start:
        raise ValidationFailedError(
            "planned_end must not be before planned_start",
            details={"field": "planned_end"},
        )
    if "manifest_date" in updates and updates["manifest_date"] is None:
        raise ValidationFailedError("manifest_date is required", details={"field": "manifest_date"})

    for field_name, value in updates.items():
        setattr(manifest, field_name, _enum_value(value))
    manifest.updated_at = utcnow()
    await db.flush()

    if body.status is not None and body.status.value != manifest.status:
        return await change_status(db, tenant_id, manifest_id, body.status, actor_id=actor_id)

    return await get_manifest(db, tenant_id, manifest_id)


async def change_status(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    new_status: ManifestStatus | str,
    actor_id: str | None = None,
    actor_type: ActorType = ActorType.USER,
) -> Manifest | None:
    """Move the manifest through its lifecycle.

    Stamps started_at on in_progress and completed_at on completed; a
    terminal status releases every shipment claim held by the manifest.

    Raises:
        InvalidStateError: the transition is not allowed.
    """
    manifest = await get_manifest(db, tenant_id, manifest_id, for_update=True)
    if manifest is None:
        return None

    previous = manifest.status
    target = ensure_manifest_transition(previous, new_status)
    now = utcnow()

    manifest.status = target.value
    manifest.updated_at = now
    if target == ManifestStatus.IN_PROGRESS:
        manifest.started_at = now
    elif target == ManifestStatus.COMPLETED:
        manifest.completed_at = now

    if target in TERMINAL_MANIFEST_STATUSES:
        for stop in manifest.stops:
            if stop.is_active:
                stop.is_active = False
                stop.updated_at = now
    await db.flush()

    await record_event(
        db, tenant_id, ManifestRef(manifest.id), f"manifest_{target.value}",
        actor_type=actor_type, actor_id=actor_id,
        description=f"Manifest {manifest.manifest_number}: {previous} → {target.value}",
        payload={"from": previous, "to": target.value},
    )
    return await get_manifest(db, tenant_id, manifest_id)


async def delete_manifest(db: AsyncSession, tenant_id: str, manifest_id: str) -> bool:
    """Delete a draft manifest and its stops.

    Delivery attempts, proofs of delivery and events are shipment history
    and are left untouched.

    Returns:
        False when the manifest does not exist.

    Raises:
        InvalidStateError: the manifest is not a draft.
    """
    manifest = await get_manifest(db, tenant_id, manifest_id, for_update=True)
    if manifest is None:
        return False

    if manifest.status != ManifestStatus.DRAFT.value:
        raise InvalidStateError(
            f"Only draft manifests can be deleted (status: {manifest.status})",
            details={"status": manifest.status},
        )

    number = manifest.manifest_number
    await db.delete(manifest)
    await db.flush()
    logger.info("Deleted draft manifest %s (tenant %s)", number, tenant_id)
    return True


async def duplicate_manifest(
    db: AsyncSession,
    tenant_id: str,
    source_id: str,
    actor_id: str | None = None,
) -> Manifest | None:
    """Copy a manifest into a new draft dated today.

    Copies type, carrier, vehicle, driver, route and notes, then re-links
    the source's shipments in stop order as pending stops numbered 1..n.
    Shipments still claimed by an active manifest, or no longer in an
    assignable status (delivered, returned, ...), are skipped.
    """
    source = await get_manifest(db, tenant_id, source_id)
    if source is None:
        return None

    shipment_ids = [stop.shipment_id for stop in source.stops]
    claimed: set[str] = set()
    ineligible: set[str] = set()
    if shipment_ids:
        claimed_rows = await db.execute(
            select(ManifestShipment.shipment_id).where(
                ManifestShipment.shipment_id.in_(shipment_ids),
                ManifestShipment.is_active == True,  # noqa: E712
            )
        )
        claimed = {row[0] for row in claimed_rows.all()}
        status_rows = await db.execute(
            select(Shipment.id).where(
                Shipment.id.in_(shipment_ids),
                Shipment.tenant_id == tenant_id,
                Shipment.status.not_in(ASSIGNABLE_SHIPMENT_STATUSES),
            )
        )
        ineligible = {row[0] for row in status_rows.all()}
    if claimed:
        logger.warning(
            "Duplicating %s: skipped %d shipment(s) claimed by an active manifest",
            source.manifest_number, len(claimed),
        )
    if ineligible:
        logger.warning(
            "Duplicating %s: skipped %d shipment(s) not in an assignable status",
            source.manifest_number, len(ineligible),
        )

    skipped = claimed | ineligible
    relinked = [sid for sid in shipment_ids if sid not in skipped]

    new_manifest = Manifest(
        tenant_id=tenant_id,
        manifest_number=generate_manifest_number(),
        manifest_date=utcnow().date(),
        manifest_type=source.manifest_type,
        branch_id=source.branch_id,
        carrier_id=source.carrier_id,
        vehicle_id=source.vehicle_id,
        driver_id=source.driver_id,
        route_id=source.route_id,
        notes=source.notes,
        status=ManifestStatus.DRAFT.value,
        created_by=actor_id,
        stops=[
            ManifestShipment(
                shipment_id=shipment_id,
                stop_sequence=sequence,
                status=StopStatus.PENDING.value,
            )
            for sequence, shipment_id in enumerate(relinked, start=1)
        ],
    )
    db.add(new_manifest)
    await db.flush()
    await recalculate(db, new_manifest)

    await record_event(
        db, tenant_id, ManifestRef(new_manifest.id), "manifest_created",
        actor_type=ActorType.USER, actor_id=actor_id,
        description=f"Manifest {new_manifest.manifest_number} duplicated from {source.manifest_number}",
        payload={"source_manifest_id": source.id, "skipped_shipment_ids": sorted(skipped)},
    )
    return await get_manifest(db, tenant_id, new_manifest.id)
