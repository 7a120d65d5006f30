"""Delivery outcome recorder — deliver / fail a stop on a running manifest.

A delivery outcome touches five places: the stop, the shipment, the proof
of delivery, the attempt history and the manifest counters.  Those writes
run in one SAVEPOINT inside the request transaction, so they land
together or not at all:

    mark_delivered                      mark_failed
    ──────────────                      ───────────
    1. stop      → delivered            1. stop      → failed (+ reason)
    2. shipment  → delivered            2. (shipment untouched)
    3. proof of delivery upserted       3. (no proof of delivery)
    4. attempt N+1 appended             4. attempt N+1 appended
    5. aggregates recomputed            5. aggregates recomputed

A storage error in any step rolls the savepoint back and surfaces as one
DeliveryOutcomeError naming the step; unique-constraint and version
conflicts surface as ConcurrencyConflictError.  The transport event is
written afterwards, fire-and-forget.

Attempt numbers are allocated under a row lock on the shipment, so they
run 1, 2, 3 … per shipment across every manifest without gaps.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from waybill.database import utcnow
from waybill.middleware.exceptions import ConcurrencyConflictError, DeliveryOutcomeError
from waybill.models.delivery import DeliveryAttempt, ProofOfDelivery
from waybill.models.manifest import Manifest, ManifestShipment
from waybill.models.references import ShipmentRef
from waybill.models.shipment import Shipment
from waybill.models.status import ActorType, AttemptStatus, StopStatus, ensure_stop_transition
from waybill.schemas.delivery import DeliverRequest, FailRequest
from waybill.services.aggregates import ManifestTotals, recalculate
from waybill.services.assignment import find_stop, require_in_progress
from waybill.services.events import record_event
from waybill.services.manifests import get_manifest

logger = logging.getLogger(__name__)


@dataclass
class DeliveryOutcome:
    stop: ManifestShipment
    attempt: DeliveryAttempt
    proof_of_delivery: ProofOfDelivery | None
    totals: ManifestTotals


# ── Steps (private) ─────────────────────────────────────────

async def _apply_stop_outcome(
    db: AsyncSession,
    stop: ManifestShipment,
    status: StopStatus,
    now: datetime,
    *,
    failure_reason: str | None = None,
    driver_notes: str | None = None,
) -> None:
    stop.status = status.value
    stop.completed_at = now
    stop.failure_reason = failure_reason if status == StopStatus.FAILED else None
    if driver_notes is not None:
        stop.driver_notes = driver_notes
    stop.updated_at = now
    await db.flush()


async def _mark_shipment_delivered(
    db: AsyncSession,
    tenant_id: str,
    shipment_id: str,
    now: datetime,
) -> Shipment:
    shipment = (
        await db.execute(
            select(Shipment)
            .where(Shipment.id == shipment_id, Shipment.tenant_id == tenant_id)
            .with_for_update()
        )
    ).scalar_one_or_none()
    if shipment is None:
        raise DeliveryOutcomeError("shipment", f"Shipment not found: {shipment_id}")

    shipment.status = "delivered"
    shipment.delivered_at = now
    shipment.updated_at = now
    await db.flush()
    return shipment


async def _write_proof_of_delivery(
    db: AsyncSession,
    tenant_id: str,
    shipment_id: str,
    manifest_id: str,
    pod: DeliverRequest,
    driver_id: str | None,
    now: datetime,
) -> ProofOfDelivery:
    """Upsert the shipment's canonical proof of delivery (latest success wins)."""
    proof = (
        await db.execute(
            select(ProofOfDelivery).where(
                ProofOfDelivery.shipment_id == shipment_id,
                ProofOfDelivery.tenant_id == tenant_id,
            )
        )
    ).scalar_one_or_none()
    if proof is None:
        proof = ProofOfDelivery(tenant_id=tenant_id, shipment_id=shipment_id, created_at=now)
        db.add(proof)

    proof.manifest_id = manifest_id
    proof.delivered_at = now
    proof.recipient_name = pod.recipient_name
    proof.recipient_doc_type = pod.recipient_doc_type
    proof.recipient_doc_number = pod.recipient_doc_number
    proof.recipient_relationship = pod.recipient_relationship
    proof.signature_url = pod.signature_url
    proof.photo_urls = pod.photo_urls
    proof.latitude = pod.latitude
    proof.longitude = pod.longitude
    proof.delivery_location_type = pod.delivery_location_type
    proof.driver_id = driver_id
    proof.notes = pod.notes
    proof.updated_at = now
    await db.flush()
    return proof


async def _append_attempt(
    db: AsyncSession,
    tenant_id: str,
    shipment_id: str,
    manifest_id: str,
    status: AttemptStatus,
    now: datetime,
    **fields,
) -> DeliveryAttempt:
    """Insert attempt max+1 for the shipment, holding the shipment row lock."""
    await db.execute(
        select(Shipment.id).where(Shipment.id == shipment_id).with_for_update()
    )
    last_number = (
        await db.execute(
            select(func.max(DeliveryAttempt.attempt_number)).where(
                DeliveryAttempt.shipment_id == shipment_id
            )
        )
    ).scalar() or 0

    attempt = DeliveryAttempt(
        tenant_id=tenant_id,
        shipment_id=shipment_id,
        manifest_id=manifest_id,
        attempt_number=last_number + 1,
        attempted_at=now,
        status=status.value,
        **fields,
    )
    db.add(attempt)
    await db.flush()
    return attempt


# ── Shared precondition / error mapping ─────────────────────

async def _load_stop(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    shipment_id: str,
    target: StopStatus,
) -> tuple[Manifest, ManifestShipment] | None:
    manifest = await get_manifest(db, tenant_id, manifest_id, for_update=True)
    if manifest is None:
        return None
    require_in_progress(manifest)
    stop = find_stop(manifest, shipment_id)
    ensure_stop_transition(stop.status, target)
    return manifest, stop


def _outcome_error(step: str, exc: SQLAlchemyError, manifest_id: str, shipment_id: str):
    if isinstance(exc, (IntegrityError, StaleDataError)):
        logger.warning(
            "Concurrent write while recording outcome for %s on %s (step %s)",
            shipment_id, manifest_id, step,
        )
        return ConcurrencyConflictError(
            "The stop was updated concurrently. Reload and retry.",
            details={"step": step},
        )
    logger.error(
        "Delivery outcome for %s on %s failed at step %s",
        shipment_id, manifest_id, step, exc_info=exc,
    )
    return DeliveryOutcomeError(step, exc.__class__.__name__)


# ── Public API ──────────────────────────────────────────────

async def mark_delivered(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    shipment_id: str,
    pod: DeliverRequest,
    actor_id: str | None = None,
) -> DeliveryOutcome | None:
    """Record a successful delivery of ``shipment_id`` on ``manifest_id``.

    Returns None when the manifest does not exist for the tenant.

    Raises:
        InvalidStateError: manifest not in progress, or stop already delivered.
        ResourceNotFoundError: the shipment is not on this manifest.
        DeliveryOutcomeError / ConcurrencyConflictError: a step failed; nothing was written.
    """
    loaded = await _load_stop(db, tenant_id, manifest_id, shipment_id, StopStatus.DELIVERED)
    if loaded is None:
        return None
    manifest, stop = loaded

    now = utcnow()
    driver_id = pod.driver_id or manifest.driver_id
    step = "stop"
    try:
        async with db.begin_nested():
            step = "stop"
            await _apply_stop_outcome(db, stop, StopStatus.DELIVERED, now)
            step = "shipment"
            await _mark_shipment_delivered(db, tenant_id, shipment_id, now)
            step = "proof_of_delivery"
            proof = await _write_proof_of_delivery(
                db, tenant_id, shipment_id, manifest.id, pod, driver_id, now
            )
            step = "attempt"
            attempt = await _append_attempt(
                db, tenant_id, shipment_id, manifest.id, AttemptStatus.DELIVERED, now,
                latitude=pod.latitude,
                longitude=pod.longitude,
                driver_id=driver_id,
                driver_notes=pod.notes,
                photo_urls=pod.photo_urls,
            )
            step = "aggregates"
            totals = await recalculate(db, manifest)
    except SQLAlchemyError as e:
        raise _outcome_error(step, e, manifest_id, shipment_id) from e

    await record_event(
        db, tenant_id, ShipmentRef(shipment_id), "delivered",
        actor_type=ActorType.DRIVER, actor_id=actor_id or driver_id,
        stop_id=stop.id,
        latitude=pod.latitude,
        longitude=pod.longitude,
        location_text=pod.delivery_location_type,
        description=f"Delivered to {pod.recipient_name}",
        payload={
            "manifest_id": manifest.id,
            "attempt_number": attempt.attempt_number,
            "recipient_name": pod.recipient_name,
            "recipient_relationship": pod.recipient_relationship,
        },
    )
    logger.info(
        "Shipment %s delivered on %s (attempt %d)",
        shipment_id, manifest.manifest_number, attempt.attempt_number,
    )
    return DeliveryOutcome(stop=stop, attempt=attempt, proof_of_delivery=proof, totals=totals)


async def mark_failed(
    db: AsyncSession,
    tenant_id: str,
    manifest_id: str,
    shipment_id: str,
    failure: FailRequest,
    actor_id: str | None = None,
) -> DeliveryOutcome | None:
    """Record a failed delivery attempt.  No proof of delivery is written and
    the shipment's own status is left to the shipping module."""
    loaded = await _load_stop(db, tenant_id, manifest_id, shipment_id, StopStatus.FAILED)
    if loaded is None:
        return None
    manifest, stop = loaded

    now = utcnow()
    driver_id = failure.driver_id or manifest.driver_id
    reason = failure.failure_reason_text or failure.failure_reason_code
    step = "stop"
    try:
        async with db.begin_nested():
            step = "stop"
            await _apply_stop_outcome(
                db, stop, StopStatus.FAILED, now,
                failure_reason=reason, driver_notes=failure.driver_notes,
            )
            step = "attempt"
            attempt = await _append_attempt(
                db, tenant_id, shipment_id, manifest.id, AttemptStatus.FAILED, now,
                failure_reason_code=failure.failure_reason_code,
                failure_reason_text=failure.failure_reason_text,
                latitude=failure.latitude,
                longitude=failure.longitude,
                driver_id=driver_id,
                driver_notes=failure.driver_notes,
                reschedule_date=failure.reschedule_date,
                reschedule_notes=failure.reschedule_notes,
                photo_urls=failure.photo_urls,
            )
            step = "aggregates"
            totals = await recalculate(db, manifest)
    except SQLAlchemyError as e:
        raise _outcome_error(step, e, manifest_id, shipment_id) from e

    await record_event(
        db, tenant_id, ShipmentRef(shipment_id), "delivery_failed",
        actor_type=ActorType.DRIVER, actor_id=actor_id or driver_id,
        stop_id=stop.id,
        latitude=failure.latitude,
        longitude=failure.longitude,
        description=f"Delivery failed: {reason}",
        payload={
            "manifest_id": manifest.id,
            "attempt_number": attempt.attempt_number,
            "failure_reason_code": failure.failure_reason_code,
            "reschedule_date": failure.reschedule_date.isoformat() if failure.reschedule_date else None,
        },
    )
    logger.info(
        "Shipment %s failed on %s (attempt %d, %s)",
        shipment_id, manifest.manifest_number, attempt.attempt_number, failure.failure_reason_code,
    )
    return DeliveryOutcome(stop=stop, attempt=attempt, proof_of_delivery=None, totals=totals)


# ── History reads ───────────────────────────────────────────

async def list_attempts(
    db: AsyncSession, tenant_id: str, shipment_id: str
) -> list[DeliveryAttempt]:
    """Full attempt history for a shipment, oldest first."""
    result = await db.execute(
        select(DeliveryAttempt)
        .where(
            DeliveryAttempt.shipment_id == shipment_id,
            DeliveryAttempt.tenant_id == tenant_id,
        )
        .order_by(DeliveryAttempt.attempt_number)
    )
    return list(result.scalars().all())


async def get_proof_of_delivery(
    db: AsyncSession, tenant_id: str, shipment_id: str
) -> ProofOfDelivery | None:
    result = await db.execute(
        select(ProofOfDelivery).where(
            ProofOfDelivery.shipment_id == shipment_id,
            ProofOfDelivery.tenant_id == tenant_id,
        )
    )
    return result.scalar_one_or_none()
