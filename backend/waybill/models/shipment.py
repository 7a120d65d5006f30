"""Shipment — a parcel/consignment owned by the shipping module.

The dispatch service treats this table as an external store: it reads
weight, package count, COD amount and status, and writes only `status`
and `delivered_at` when a delivery is confirmed.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Float, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from waybill.database import Base, utcnow


class Shipment(Base):
    __tablename__ = "shipments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    shipment_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    tracking_number: Mapped[str | None] = mapped_column(String(50), index=True)

    # ── Destination ──────────────────────────────────────────
    delivery_address: Mapped[str | None] = mapped_column(Text)
    delivery_city: Mapped[str | None] = mapped_column(String(100))
    delivery_contact_name: Mapped[str | None] = mapped_column(String(255))
    delivery_contact_phone: Mapped[str | None] = mapped_column(String(50))

    # ── Load ─────────────────────────────────────────────────
    weight_kg: Mapped[float | None] = mapped_column(Float)
    package_count: Mapped[int | None] = mapped_column(Integer)
    cod_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))

    # ── Status ───────────────────────────────────────────────
    # pending | received | processing | delivered | returned | ...
    status: Mapped[str] = mapped_column(String(30), default="pending", nullable=False, index=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
