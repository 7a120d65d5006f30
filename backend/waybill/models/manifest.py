"""Manifest — one dispatch run for a vehicle/driver on a given date.

Groups outbound shipments into an ordered list of stops (ManifestShipment)
and carries denormalized counters for the operations dashboard.  The
counters are written only by services.aggregates.recalculate().

Lifecycle:  draft → confirmed → in_progress → completed
            (any non-terminal state → cancelled)
"""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean, Date, DateTime, Float, ForeignKey, Index,
    Integer, Numeric, String, Text, UniqueConstraint, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from waybill.database import Base, utcnow


class Manifest(Base):
    __tablename__ = "dispatch_manifests"
    __table_args__ = (
        UniqueConstraint("tenant_id", "manifest_number", name="uq_dispatch_manifests_tenant_number"),
        Index("ix_dispatch_manifests_tenant_date", "tenant_id", "manifest_date"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    branch_id: Mapped[str | None] = mapped_column(String(36))
    manifest_number: Mapped[str] = mapped_column(String(30), nullable=False)

    # ── Run definition ───────────────────────────────────────
    manifest_date: Mapped[date] = mapped_column(Date, nullable=False)
    # delivery | pickup | transfer
    manifest_type: Mapped[str] = mapped_column(String(20), default="delivery", nullable=False)

    # ── Assignment (read-only master data) ───────────────────
    carrier_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("transport_carriers.id"), index=True
    )
    vehicle_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("vehicles.id"), index=True
    )
    driver_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("drivers.id"), index=True
    )
    route_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("transport_routes.id")
    )

    # ── Schedule ─────────────────────────────────────────────
    planned_start: Mapped[datetime | None] = mapped_column(DateTime)
    planned_end: Mapped[datetime | None] = mapped_column(DateTime)
    started_at: Mapped[datetime | None] = mapped_column(DateTime)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Aggregates (recomputed, never hand-edited) ───────────
    total_shipments: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_weight_kg: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_packages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_cod_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )
    delivered_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pending_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # ── Status ───────────────────────────────────────────────
    # draft | confirmed | in_progress | completed | cancelled
    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False, index=True)

    # ── Metadata ─────────────────────────────────────────────
    notes: Mapped[str | None] = mapped_column(Text)         # dispatcher
    driver_notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(36))
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # ── Relationships ────────────────────────────────────────
    carrier = relationship("Carrier", lazy="selectin")
    vehicle = relationship("Vehicle", lazy="selectin")
    driver = relationship("Driver", lazy="selectin")
    route = relationship("TransportRoute", lazy="selectin")
    stops = relationship(
        "ManifestShipment",
        back_populates="manifest",
        cascade="all, delete-orphan",
        order_by="ManifestShipment.stop_sequence",
        lazy="selectin",
    )


class ManifestShipment(Base):
    """One stop on a manifest: the link between a manifest and a shipment.

    `is_active` is the shipment's claim on this manifest.  It is cleared
    when the manifest reaches a terminal status, and the partial unique
    index guarantees a shipment holds at most one active claim.
    """
    __tablename__ = "manifest_shipments"
    __table_args__ = (
        Index(
            "uq_manifest_shipments_active_shipment",
            "shipment_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_manifest_shipments_manifest_seq", "manifest_id", "stop_sequence"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    manifest_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("dispatch_manifests.id", ondelete="CASCADE"), nullable=False
    )
    shipment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shipments.id"), nullable=False, index=True
    )

    # ── Routing ──────────────────────────────────────────────
    stop_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    eta: Mapped[datetime | None] = mapped_column(DateTime)
    distance_from_prev_km: Mapped[float | None] = mapped_column(Float)
    duration_from_prev_minutes: Mapped[int | None] = mapped_column(Integer)

    # ── Execution ────────────────────────────────────────────
    # pending | in_transit | delivered | failed | skipped
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    arrived_at: Mapped[datetime | None] = mapped_column(DateTime)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    driver_notes: Mapped[str | None] = mapped_column(Text)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # ── Relationships ────────────────────────────────────────
    manifest = relationship("Manifest", back_populates="stops")
    shipment = relationship("Shipment", lazy="selectin")
