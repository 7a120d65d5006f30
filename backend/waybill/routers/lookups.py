"""Fleet lookup router for manifest forms.

Endpoints:
    GET /api/lookups/vehicles   Active vehicles
    GET /api/lookups/carriers   Active carriers
    GET /api/lookups/routes     Active routes
    GET /api/lookups/drivers    Active drivers
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from waybill.auth.deps import Actor, get_tenant_id, require_permission
from waybill.database import get_db
from waybill.schemas.lookup import CarrierOut, DriverOut, RouteOut, VehicleOut
from waybill.services import lookups

router = APIRouter()


@router.get("/vehicles", response_model=list[VehicleOut])
async def list_vehicles(
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _actor: Actor = Depends(require_permission("manifest.read")),
):
    return await lookups.list_vehicles(db, tenant_id=tenant_id)


@router.get("/carriers", response_model=list[CarrierOut])
async def list_carriers(
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _actor: Actor = Depends(require_permission("manifest.read")),
):
    return await lookups.list_carriers(db, tenant_id=tenant_id)


@router.get("/routes", response_model=list[RouteOut])
async def list_routes(
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _actor: Actor = Depends(require_permission("manifest.read")),
):
    return await lookups.list_routes(db, tenant_id=tenant_id)


@router.get("/drivers", response_model=list[DriverOut])
async def list_drivers(
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _actor: Actor = Depends(require_permission("manifest.read")),
):
    return await lookups.list_drivers(db, tenant_id=tenant_id)
