"""Read-only views of fleet master data (vehicles, carriers, routes, drivers)."""

from pydantic import BaseModel


class VehicleOut(BaseModel):
    id: str
    plate: str
    vehicle_type: str
    brand: str | None = None
    model: str | None = None

    model_config = {"from_attributes": True}


class CarrierOut(BaseModel):
    id: str
    name: str
    code: str

    model_config = {"from_attributes": True}


class RouteOut(BaseModel):
    id: str
    name: str
    code: str

    model_config = {"from_attributes": True}


class DriverOut(BaseModel):
    id: str
    full_name: str
    license_number: str | None = None
    phone: str | None = None

    model_config = {"from_attributes": True}
