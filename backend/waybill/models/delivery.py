"""Delivery history — attempts and proof of delivery.

Both tables belong to the shipment's delivery history rather than to any
single manifest, so they survive manifest deletion and cancellation.

DeliveryAttempt is append-only: attempt_number runs 1, 2, 3 … per shipment
across every manifest the shipment has been on.

ProofOfDelivery holds one canonical row per shipment, rewritten by each
successful delivery (the latest success wins).
"""

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Date, DateTime, Float, ForeignKey, Integer, JSON, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from waybill.database import Base, utcnow


class DeliveryAttempt(Base):
    __tablename__ = "delivery_attempts"
    __table_args__ = (
        UniqueConstraint("shipment_id", "attempt_number", name="uq_delivery_attempts_shipment_number"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    shipment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shipments.id"), nullable=False, index=True
    )
    # Manifest the attempt was made on (informational; history outlives it)
    manifest_id: Mapped[str | None] = mapped_column(String(36))
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    attempted_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # delivered | failed | partial
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    failure_reason_code: Mapped[str | None] = mapped_column(String(50))
    failure_reason_text: Mapped[str | None] = mapped_column(Text)

    # ── Where / who ──────────────────────────────────────────
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    driver_id: Mapped[str | None] = mapped_column(String(36))
    driver_notes: Mapped[str | None] = mapped_column(Text)

    # ── Follow-up ────────────────────────────────────────────
    reschedule_date: Mapped[date | None] = mapped_column(Date)
    reschedule_notes: Mapped[str | None] = mapped_column(Text)
    # ["https://…/photo1.jpg", …]
    photo_urls: Mapped[list | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class ProofOfDelivery(Base):
    __tablename__ = "proof_of_delivery"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    shipment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shipments.id"), nullable=False, unique=True
    )
    manifest_id: Mapped[str | None] = mapped_column(String(36))
    delivered_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # ── Recipient ────────────────────────────────────────────
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_doc_type: Mapped[str | None] = mapped_column(String(30))
    recipient_doc_number: Mapped[str | None] = mapped_column(String(50))
    # self | family | neighbour | reception | ...
    recipient_relationship: Mapped[str | None] = mapped_column(String(50))

    # ── Evidence ─────────────────────────────────────────────
    signature_url: Mapped[str | None] = mapped_column(String(500))
    photo_urls: Mapped[list | None] = mapped_column(JSON)
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    # door | reception | locker | ...
    delivery_location_type: Mapped[str | None] = mapped_column(String(50))

    driver_id: Mapped[str | None] = mapped_column(String(36))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
