"""Pydantic schemas for delivery outcomes, attempts and proof of delivery."""

from datetime import date, datetime

from pydantic import BaseModel, Field

from waybill.schemas.manifest import StopOut


# ── Outcome payloads ─────────────────────────────────────────

class DeliverRequest(BaseModel):
    """Payload for POST /api/manifests/{id}/shipments/{sid}/deliver."""
    recipient_name: str = Field(..., min_length=1, max_length=255)
    recipient_doc_type: str | None = None
    recipient_doc_number: str | None = None
    recipient_relationship: str | None = None
    signature_url: str | None = None
    photo_urls: list[str] | None = None
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    delivery_location_type: str | None = None
    notes: str | None = None
    # Defaults to the manifest's driver
    driver_id: str | None = None


class FailRequest(BaseModel):
    """Payload for POST /api/manifests/{id}/shipments/{sid}/fail."""
    failure_reason_code: str = Field(..., min_length=1, max_length=50)
    failure_reason_text: str | None = None
    driver_notes: str | None = None
    reschedule_date: date | None = None
    reschedule_notes: str | None = None
    photo_urls: list[str] | None = None
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    driver_id: str | None = None


# ── Response ─────────────────────────────────────────────────

class DeliveryAttemptOut(BaseModel):
    id: str
    shipment_id: str
    manifest_id: str | None
    attempt_number: int
    attempted_at: datetime
    status: str
    failure_reason_code: str | None
    failure_reason_text: str | None
    latitude: float | None
    longitude: float | None
    driver_id: str | None
    driver_notes: str | None
    reschedule_date: date | None
    reschedule_notes: str | None
    photo_urls: list[str] | None

    model_config = {"from_attributes": True}


class ProofOfDeliveryOut(BaseModel):
    id: str
    shipment_id: str
    manifest_id: str | None
    delivered_at: datetime
    recipient_name: str
    recipient_doc_type: str | None
    recipient_doc_number: str | None
    recipient_relationship: str | None
    signature_url: str | None
    photo_urls: list[str] | None
    latitude: float | None
    longitude: float | None
    delivery_location_type: str | None
    driver_id: str | None
    notes: str | None

    model_config = {"from_attributes": True}


class ManifestTotalsOut(BaseModel):
    total_shipments: int
    total_weight_kg: float
    total_packages: int
    total_cod_amount: float
    delivered_count: int
    failed_count: int
    pending_count: int

    model_config = {"from_attributes": True}


class DeliveryOutcomeOut(BaseModel):
    """Result of a deliver/fail call."""
    stop: StopOut
    attempt: DeliveryAttemptOut
    proof_of_delivery: ProofOfDeliveryOut | None = None
    totals: ManifestTotalsOut

    model_config = {"from_attributes": True}
