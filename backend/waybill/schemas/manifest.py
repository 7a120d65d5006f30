"""Pydantic schemas for manifests, their stops and shipment assignment."""

from datetime import date, datetime

from pydantic import BaseModel, Field, model_validator

from waybill.models.status import ManifestStatus, ManifestType
from waybill.schemas.lookup import CarrierOut, DriverOut, RouteOut, VehicleOut


# ── Create ───────────────────────────────────────────────────

class ManifestCreate(BaseModel):
    manifest_date: date
    manifest_type: ManifestType = ManifestType.DELIVERY

    # Optional assignment
    branch_id: str | None = None
    carrier_id: str | None = None
    vehicle_id: str | None = None
    driver_id: str | None = None
    route_id: str | None = None

    planned_start: datetime | None = None
    planned_end: datetime | None = None
    notes: str | None = None
    driver_notes: str | None = None

    @model_validator(mode="after")
    def planned_window_ordered(self):
        if self.planned_start and self.planned_end and self.planned_end < self.planned_start:
            raise ValueError("planned_end must not be before planned_start")
        return self


# ── Update (partial) ─────────────────────────────────────────

class ManifestUpdate(BaseModel):
    """PATCH body.  Aggregate counters are deliberately absent.

    ``version`` is optional; when sent it must match the stored version.
    ``status`` is routed through the status machine.
    """
    manifest_date: date | None = None
    manifest_type: ManifestType | None = None
    branch_id: str | None = None
    carrier_id: str | None = None
    vehicle_id: str | None = None
    driver_id: str | None = None
    route_id: str | None = None
    planned_start: datetime | None = None
    planned_end: datetime | None = None
    notes: str | None = None
    driver_notes: str | None = None
    status: ManifestStatus | None = None
    version: int | None = None


class StatusChange(BaseModel):
    status: ManifestStatus


# ── Assignment ───────────────────────────────────────────────

class ShipmentIds(BaseModel):
    shipment_ids: list[str] = Field(..., min_length=1)


class StopUpdate(BaseModel):
    driver_notes: str | None = None
    stop_sequence: int | None = Field(None, ge=1)

    @model_validator(mode="after")
    def at_least_one_field(self):
        if self.driver_notes is None and self.stop_sequence is None:
            raise ValueError("Provide driver_notes or stop_sequence")
        return self


class SkipRequest(BaseModel):
    reason: str | None = None


class RemoveResult(BaseModel):
    removed: int
    manifest: "ManifestDetail"


# ── Response ─────────────────────────────────────────────────

class ShipmentSummary(BaseModel):
    id: str
    shipment_number: str
    tracking_number: str | None
    delivery_address: str | None
    delivery_city: str | None
    delivery_contact_name: str | None
    delivery_contact_phone: str | None
    weight_kg: float | None
    package_count: int | None
    cod_amount: float | None
    status: str
    delivered_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class StopOut(BaseModel):
    id: str
    manifest_id: str
    shipment_id: str
    stop_sequence: int
    eta: datetime | None
    status: str
    arrived_at: datetime | None
    completed_at: datetime | None
    failure_reason: str | None
    driver_notes: str | None
    is_active: bool
    shipment: ShipmentSummary | None = None

    model_config = {"from_attributes": True}


class ManifestSummary(BaseModel):
    id: str
    manifest_number: str
    manifest_date: date
    manifest_type: str
    status: str
    carrier_id: str | None
    vehicle_id: str | None
    driver_id: str | None
    route_id: str | None
    total_shipments: int
    total_weight_kg: float
    total_packages: int
    total_cod_amount: float
    delivered_count: int
    failed_count: int
    pending_count: int
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ManifestDetail(ManifestSummary):
    branch_id: str | None
    planned_start: datetime | None
    planned_end: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    notes: str | None
    driver_notes: str | None
    created_by: str | None
    carrier: CarrierOut | None = None
    vehicle: VehicleOut | None = None
    driver: DriverOut | None = None
    route: RouteOut | None = None
    stops: list[StopOut] = []


class ManifestStats(BaseModel):
    """Dashboard summary over a date window."""
    date_from: date | None
    date_to: date | None
    manifests_by_status: dict[str, int]
    total_manifests: int
    total_shipments: int
    delivered_count: int
    failed_count: int
    pending_count: int
    total_cod_amount: float
    delivery_rate: float


RemoveResult.model_rebuild()
