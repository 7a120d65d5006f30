"""Shipment delivery history router.

Endpoints:
    GET /api/shipments/{shipment_id}/attempts            Attempt history, oldest first
    GET /api/shipments/{shipment_id}/proof-of-delivery   Proof of delivery
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from waybill.auth.deps import Actor, get_tenant_id, require_permission
from waybill.database import get_db
from waybill.middleware.exceptions import ResourceNotFoundError
from waybill.schemas.delivery import DeliveryAttemptOut, ProofOfDeliveryOut
from waybill.services.delivery import get_proof_of_delivery, list_attempts

router = APIRouter()


@router.get("/{shipment_id}/attempts", response_model=list[DeliveryAttemptOut])
async def shipment_attempts(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _actor: Actor = Depends(require_permission("manifest.read")),
):
    attempts = await list_attempts(db, tenant_id, shipment_id)
    return [DeliveryAttemptOut.model_validate(a) for a in attempts]


@router.get("/{shipment_id}/proof-of-delivery", response_model=ProofOfDeliveryOut)
async def shipment_proof_of_delivery(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _actor: Actor = Depends(require_permission("manifest.read")),
):
    proof = await get_proof_of_delivery(db, tenant_id, shipment_id)
    if proof is None:
        raise ResourceNotFoundError("Proof of delivery", shipment_id)
    return ProofOfDeliveryOut.model_validate(proof)
