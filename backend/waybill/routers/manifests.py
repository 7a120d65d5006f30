"""Dispatch manifest router.

Endpoints:
    GET    /api/manifests/                                   List manifests (with filters)
    GET    /api/manifests/stats                              Dashboard summary
    GET    /api/manifests/available-shipments                Shipments free to assign
    POST   /api/manifests/                                   Create draft manifest
    GET    /api/manifests/{manifest_id}                      Detail with stops
    PATCH  /api/manifests/{manifest_id}                      Partial update
    DELETE /api/manifests/{manifest_id}                      Delete (draft only)
    POST   /api/manifests/{manifest_id}/status               Lifecycle transition
    POST   /api/manifests/{manifest_id}/duplicate            Copy into a new draft
    POST   /api/manifests/{manifest_id}/shipments            Add shipments
    POST   /api/manifests/{manifest_id}/shipments/remove     Remove shipments
    PUT    /api/manifests/{manifest_id}/shipments/order      Reorder stops
    PATCH  /api/manifests/{manifest_id}/shipments/{sid}      Stop notes / sequence
    POST   /api/manifests/{manifest_id}/shipments/{sid}/start|arrive|skip
    POST   /api/manifests/{manifest_id}/shipments/{sid}/deliver
    POST   /api/manifests/{manifest_id}/shipments/{sid}/fail
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from waybill.auth.deps import Actor, get_tenant_id, require_permission
from waybill.database import get_db
from waybill.middleware.exceptions import ResourceNotFoundError
from waybill.models.status import ManifestStatus
from waybill.schemas.common import PaginatedResponse
from waybill.schemas.delivery import DeliverRequest, DeliveryOutcomeOut, FailRequest
from waybill.schemas.manifest import (
    ManifestCreate,
    ManifestDetail,
    ManifestStats,
    ManifestSummary,
    ManifestUpdate,
    RemoveResult,
    ShipmentIds,
    ShipmentSummary,
    SkipRequest,
    StatusChange,
    StopOut,
    StopUpdate,
)
from waybill.services import assignment, delivery, manifests

router = APIRouter()


def _found(value, resource: str, identifier: str):
    if value is None:
        raise ResourceNotFoundError(resource, identifier)
    return value


# ── GET /api/manifests/ ──────────────────────────────────────

@router.get("/", response_model=PaginatedResponse[ManifestSummary])
async def list_manifests(
    status: ManifestStatus | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    carrier_id: str | None = None,
    vehicle_id: str | None = None,
    driver_id: str | None = None,
    search: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _actor: Actor = Depends(require_permission("manifest.read")),
):
    items, total = await manifests.list_manifests(
        db, tenant_id,
        status=status.value if status else None,
        date_from=date_from,
        date_to=date_to,
        carrier_id=carrier_id,
        vehicle_id=vehicle_id,
        driver_id=driver_id,
        search=search,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        items=[ManifestSummary.model_validate(m) for m in items],
        total=total,
        limit=limit,
        offset=offset,
    )


# ── GET /api/manifests/stats ─────────────────────────────────

@router.get("/stats", response_model=ManifestStats)
async def manifest_stats(
    date_from: date | None = None,
    date_to: date | None = None,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _actor: Actor = Depends(require_permission("manifest.read")),
):
    return await manifests.manifest_stats(db, tenant_id, date_from, date_to)


# ── GET /api/manifests/available-shipments ───────────────────

@router.get("/available-shipments", response_model=list[ShipmentSummary])
async def available_shipments(
    search: str | None = None,
    limit: int = Query(200, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _actor: Actor = Depends(require_permission("manifest.read")),
):
    shipments = await assignment.get_available_shipments(db, tenant_id, search=search, limit=limit)
    return [ShipmentSummary.model_validate(s) for s in shipments]


# ── POST /api/manifests/ ─────────────────────────────────────

@router.post("/", response_model=ManifestDetail, status_code=201)
async def create_manifest(
    body: ManifestCreate,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_permission("manifest.write")),
):
    manifest = await manifests.create_manifest(db, tenant_id, body, actor_id=actor.id)
    return ManifestDetail.model_validate(manifest)


# ── GET / PATCH / DELETE /api/manifests/{manifest_id} ────────

@router.get("/{manifest_id}", response_model=ManifestDetail)
async def get_manifest(
    manifest_id: str,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _actor: Actor = Depends(require_permission("manifest.read")),
):
    manifest = _found(await manifests.get_manifest(db, tenant_id, manifest_id), "Manifest", manifest_id)
    return ManifestDetail.model_validate(manifest)


@router.patch("/{manifest_id}", response_model=ManifestDetail)
async def update_manifest(
    manifest_id: str,
    body: ManifestUpdate,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_permission("manifest.write")),
):
    manifest = await manifests.update_manifest(db, tenant_id, manifest_id, body, actor_id=actor.id)
    return ManifestDetail.model_validate(_found(manifest, "Manifest", manifest_id))


@router.delete("/{manifest_id}", status_code=204)
async def delete_manifest(
    manifest_id: str,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _actor: Actor = Depends(require_permission("manifest.write")),
):
    if not await manifests.delete_manifest(db, tenant_id, manifest_id):
        raise ResourceNotFoundError("Manifest", manifest_id)


# ── Lifecycle ────────────────────────────────────────────────

@router.post("/{manifest_id}/status", response_model=ManifestDetail)
async def change_status(
    manifest_id: str,
    body: StatusChange,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_permission("manifest.write")),
):
    manifest = await manifests.change_status(
        db, tenant_id, manifest_id, body.status, actor_id=actor.id
    )
    return ManifestDetail.model_validate(_found(manifest, "Manifest", manifest_id))


@router.post("/{manifest_id}/duplicate", response_model=ManifestDetail, status_code=201)
async def duplicate_manifest(
    manifest_id: str,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_permission("manifest.write")),
):
    manifest = await manifests.duplicate_manifest(db, tenant_id, manifest_id, actor_id=actor.id)
    return ManifestDetail.model_validate(_found(manifest, "Manifest", manifest_id))


# ── Assignment ───────────────────────────────────────────────

@router.post("/{manifest_id}/shipments", response_model=ManifestDetail)
async def add_shipments(
    manifest_id: str,
    body: ShipmentIds,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_permission("manifest.write")),
):
    manifest = await assignment.add_shipments(
        db, tenant_id, manifest_id, body.shipment_ids, actor_id=actor.id
    )
    return ManifestDetail.model_validate(_found(manifest, "Manifest", manifest_id))


@router.post("/{manifest_id}/shipments/remove", response_model=RemoveResult)
async def remove_shipments(
    manifest_id: str,
    body: ShipmentIds,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_permission("manifest.write")),
):
    removed = await assignment.remove_shipments(
        db, tenant_id, manifest_id, body.shipment_ids, actor_id=actor.id
    )
    _found(removed, "Manifest", manifest_id)
    manifest = await manifests.get_manifest(db, tenant_id, manifest_id)
    return RemoveResult(removed=removed, manifest=ManifestDetail.model_validate(manifest))


@router.put("/{manifest_id}/shipments/order", response_model=ManifestDetail)
async def reorder_shipments(
    manifest_id: str,
    body: ShipmentIds,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_permission("manifest.write")),
):
    manifest = await assignment.reorder_shipments(
        db, tenant_id, manifest_id, body.shipment_ids, actor_id=actor.id
    )
    return ManifestDetail.model_validate(_found(manifest, "Manifest", manifest_id))


@router.patch("/{manifest_id}/shipments/{shipment_id}", response_model=StopOut)
async def update_stop(
    manifest_id: str,
    shipment_id: str,
    body: StopUpdate,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _actor: Actor = Depends(require_permission("manifest.write")),
):
    stop = None
    if body.stop_sequence is not None:
        stop = await assignment.update_stop_sequence(
            db, tenant_id, manifest_id, shipment_id, body.stop_sequence
        )
    if body.driver_notes is not None:
        stop = await assignment.update_stop_notes(
            db, tenant_id, manifest_id, shipment_id, body.driver_notes
        )
    return StopOut.model_validate(_found(stop, "Manifest", manifest_id))


# ── Stop execution ───────────────────────────────────────────

@router.post("/{manifest_id}/shipments/{shipment_id}/start", response_model=StopOut)
async def start_stop(
    manifest_id: str,
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_permission("delivery.write")),
):
    stop = await assignment.start_stop(db, tenant_id, manifest_id, shipment_id, actor_id=actor.id)
    return StopOut.model_validate(_found(stop, "Manifest", manifest_id))


@router.post("/{manifest_id}/shipments/{shipment_id}/arrive", response_model=StopOut)
async def arrive_at_stop(
    manifest_id: str,
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_permission("delivery.write")),
):
    stop = await assignment.arrive_at_stop(db, tenant_id, manifest_id, shipment_id, actor_id=actor.id)
    return StopOut.model_validate(_found(stop, "Manifest", manifest_id))


@router.post("/{manifest_id}/shipments/{shipment_id}/skip", response_model=StopOut)
async def skip_stop(
    manifest_id: str,
    shipment_id: str,
    body: SkipRequest | None = None,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_permission("delivery.write")),
):
    stop = await assignment.skip_stop(
        db, tenant_id, manifest_id, shipment_id,
        reason=body.reason if body else None,
        actor_id=actor.id,
    )
    return StopOut.model_validate(_found(stop, "Manifest", manifest_id))


# ── Delivery outcomes ────────────────────────────────────────

@router.post("/{manifest_id}/shipments/{shipment_id}/deliver", response_model=DeliveryOutcomeOut)
async def mark_delivered(
    manifest_id: str,
    shipment_id: str,
    body: DeliverRequest,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_permission("delivery.write")),
):
    outcome = await delivery.mark_delivered(
        db, tenant_id, manifest_id, shipment_id, body, actor_id=actor.id
    )
    return DeliveryOutcomeOut.model_validate(_found(outcome, "Manifest", manifest_id))


@router.post("/{manifest_id}/shipments/{shipment_id}/fail", response_model=DeliveryOutcomeOut)
async def mark_failed(
    manifest_id: str,
    shipment_id: str,
    body: FailRequest,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_permission("delivery.write")),
):
    outcome = await delivery.mark_failed(
        db, tenant_id, manifest_id, shipment_id, body, actor_id=actor.id
    )
    return DeliveryOutcomeOut.model_validate(_found(outcome, "Manifest", manifest_id))
