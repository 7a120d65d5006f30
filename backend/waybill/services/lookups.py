"""Fleet lookups for manifest forms: active vehicles, carriers, routes, drivers.

Master data changes rarely, so results are cached in Redis for ten minutes
under tenant-scoped keys.  Pass ``tenant_id`` as a keyword so it takes
part in the cache key.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from waybill.models.fleet import Carrier, Driver, TransportRoute, Vehicle
from waybill.schemas.lookup import CarrierOut, DriverOut, RouteOut, VehicleOut
from waybill.utils.cache import cached

LOOKUP_TTL = 600


@cached(ttl=LOOKUP_TTL, prefix="lookups")
async def list_vehicles(db: AsyncSession, *, tenant_id: str) -> list[VehicleOut]:
    result = await db.execute(
        select(Vehicle)
        .where(Vehicle.tenant_id == tenant_id, Vehicle.is_active == True)  # noqa: E712
        .order_by(Vehicle.plate)
    )
    return [VehicleOut.model_validate(v) for v in result.scalars().all()]


@cached(ttl=LOOKUP_TTL, prefix="lookups")
async def list_carriers(db: AsyncSession, *, tenant_id: str) -> list[CarrierOut]:
    result = await db.execute(
        select(Carrier)
        .where(Carrier.tenant_id == tenant_id, Carrier.is_active == True)  # noqa: E712
        .order_by(Carrier.name)
    )
    return [CarrierOut.model_validate(c) for c in result.scalars().all()]


@cached(ttl=LOOKUP_TTL, prefix="lookups")
async def list_routes(db: AsyncSession, *, tenant_id: str) -> list[RouteOut]:
    result = await db.execute(
        select(TransportRoute)
        .where(TransportRoute.tenant_id == tenant_id, TransportRoute.is_active == True)  # noqa: E712
        .order_by(TransportRoute.name)
    )
    return [RouteOut.model_validate(r) for r in result.scalars().all()]


@cached(ttl=LOOKUP_TTL, prefix="lookups")
async def list_drivers(db: AsyncSession, *, tenant_id: str) -> list[DriverOut]:
    result = await db.execute(
        select(Driver)
        .where(Driver.tenant_id == tenant_id, Driver.is_active == True)  # noqa: E712
        .order_by(Driver.full_name)
    )
    return [DriverOut.model_validate(d) for d in result.scalars().all()]
