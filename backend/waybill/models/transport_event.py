"""TransportEvent — immutable audit trail for dispatch activity.

Each row references a manifest, a shipment or a trip through the
(reference_type, reference_id) pair; build it from the typed refs in
models.references rather than by hand.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, Index, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from waybill.database import Base, utcnow


class TransportEvent(Base):
    __tablename__ = "transport_events"
    __table_args__ = (
        Index("ix_transport_events_reference", "reference_type", "reference_id", "event_time"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # ── Target ─────────────────────────────────────────────────
    # manifest | shipment | trip
    reference_type: Mapped[str] = mapped_column(String(20), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(36), nullable=False)

    # ── What / when / where ────────────────────────────────────
    # delivered | delivery_failed | stop_started | manifest_confirmed | ...
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    event_time: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    stop_id: Mapped[str | None] = mapped_column(String(36))
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    location_text: Mapped[str | None] = mapped_column(String(255))

    # ── Who ────────────────────────────────────────────────────
    # driver | system | user
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(36))

    # ── Context ────────────────────────────────────────────────
    description: Mapped[str | None] = mapped_column(Text)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    source: Mapped[str] = mapped_column(String(30), default="internal", nullable=False)
