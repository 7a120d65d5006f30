"""Transport event trail router.

Endpoints:
    GET /api/events/{reference_type}/{reference_id}   Events for a manifest, shipment or trip
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from waybill.auth.deps import Actor, get_tenant_id, require_permission
from waybill.database import get_db
from waybill.models.references import ReferenceType, make_reference
from waybill.schemas.event import TransportEventOut
from waybill.services.events import list_events

router = APIRouter()


@router.get("/{reference_type}/{reference_id}", response_model=list[TransportEventOut])
async def get_events(
    reference_type: ReferenceType,
    reference_id: str,
    limit: int = Query(200, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _actor: Actor = Depends(require_permission("manifest.read")),
):
    events = await list_events(
        db, tenant_id, make_reference(reference_type, reference_id), limit=limit
    )
    return [TransportEventOut.model_validate(e) for e in events]
