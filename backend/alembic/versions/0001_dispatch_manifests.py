"""Initial dispatch schema — manifests, stops, delivery history, events.

Revision ID: 0001
Revises: (none)
Create Date: 2026-03-02

Fleet and shipment tables are owned by other modules; they are created
here only when absent so a standalone deployment has them.
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── External stores (read-mostly) ────────────────────────

    op.create_table(
        "transport_carriers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        if_not_exists=True,
    )
    op.create_index("ix_transport_carriers_tenant_id", "transport_carriers", ["tenant_id"], if_not_exists=True)

    op.create_table(
        "vehicles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("plate", sa.String(20), nullable=False),
        sa.Column("vehicle_type", sa.String(50), nullable=False),
        sa.Column("brand", sa.String(100)),
        sa.Column("model", sa.String(100)),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        if_not_exists=True,
    )
    op.create_index("ix_vehicles_tenant_id", "vehicles", ["tenant_id"], if_not_exists=True)

    op.create_table(
        "drivers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("license_number", sa.String(50)),
        sa.Column("phone", sa.String(50)),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        if_not_exists=True,
    )
    op.create_index("ix_drivers_tenant_id", "drivers", ["tenant_id"], if_not_exists=True)

    op.create_table(
        "transport_routes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        if_not_exists=True,
    )
    op.create_index("ix_transport_routes_tenant_id", "transport_routes", ["tenant_id"], if_not_exists=True)

    op.create_table(
        "shipments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("shipment_number", sa.String(50), nullable=False),
        sa.Column("tracking_number", sa.String(50)),
        sa.Column("delivery_address", sa.Text()),
        sa.Column("delivery_city", sa.String(100)),
        sa.Column("delivery_contact_name", sa.String(255)),
        sa.Column("delivery_contact_phone", sa.String(50)),
        sa.Column("weight_kg", sa.Float()),
        sa.Column("package_count", sa.Integer()),
        sa.Column("cod_amount", sa.Numeric(12, 2)),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending"),
        sa.Column("delivered_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        if_not_exists=True,
    )
    op.create_index("ix_shipments_tenant_id", "shipments", ["tenant_id"], if_not_exists=True)
    op.create_index("ix_shipments_shipment_number", "shipments", ["shipment_number"], if_not_exists=True)
    op.create_index("ix_shipments_tracking_number", "shipments", ["tracking_number"], if_not_exists=True)
    op.create_index("ix_shipments_status", "shipments", ["status"], if_not_exists=True)

    # ── Dispatch ─────────────────────────────────────────────

    op.create_table(
        "dispatch_manifests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("branch_id", sa.String(36)),
        sa.Column("manifest_number", sa.String(30), nullable=False),
        sa.Column("manifest_date", sa.Date(), nullable=False),
        sa.Column("manifest_type", sa.String(20), nullable=False, server_default="delivery"),
        sa.Column("carrier_id", sa.String(36), sa.ForeignKey("transport_carriers.id")),
        sa.Column("vehicle_id", sa.String(36), sa.ForeignKey("vehicles.id")),
        sa.Column("driver_id", sa.String(36), sa.ForeignKey("drivers.id")),
        sa.Column("route_id", sa.String(36), sa.ForeignKey("transport_routes.id")),
        sa.Column("planned_start", sa.DateTime()),
        sa.Column("planned_end", sa.DateTime()),
        sa.Column("started_at", sa.DateTime()),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("total_shipments", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_weight_kg", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_packages", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_cod_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("delivered_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("pending_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("notes", sa.Text()),
        sa.Column("driver_notes", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "manifest_number", name="uq_dispatch_manifests_tenant_number"),
    )
    op.create_index("ix_dispatch_manifests_tenant_id", "dispatch_manifests", ["tenant_id"])
    op.create_index("ix_dispatch_manifests_tenant_date", "dispatch_manifests", ["tenant_id", "manifest_date"])
    op.create_index("ix_dispatch_manifests_status", "dispatch_manifests", ["status"])
    op.create_index("ix_dispatch_manifests_carrier_id", "dispatch_manifests", ["carrier_id"])
    op.create_index("ix_dispatch_manifests_vehicle_id", "dispatch_manifests", ["vehicle_id"])
    op.create_index("ix_dispatch_manifests_driver_id", "dispatch_manifests", ["driver_id"])

    op.create_table(
        "manifest_shipments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "manifest_id", sa.String(36),
            sa.ForeignKey("dispatch_manifests.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("shipment_id", sa.String(36), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("stop_sequence", sa.Integer(), nullable=False),
        sa.Column("eta", sa.DateTime()),
        sa.Column("distance_from_prev_km", sa.Float()),
        sa.Column("duration_from_prev_minutes", sa.Integer()),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("arrived_at", sa.DateTime()),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("failure_reason", sa.Text()),
        sa.Column("driver_notes", sa.Text()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_manifest_shipments_shipment_id", "manifest_shipments", ["shipment_id"])
    op.create_index(
        "ix_manifest_shipments_manifest_seq", "manifest_shipments", ["manifest_id", "stop_sequence"]
    )
    # At most one active claim per shipment
    op.create_index(
        "uq_manifest_shipments_active_shipment",
        "manifest_shipments",
        ["shipment_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    # ── Delivery history ─────────────────────────────────────

    op.create_table(
        "delivery_attempts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("shipment_id", sa.String(36), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("manifest_id", sa.String(36)),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("attempted_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("failure_reason_code", sa.String(50)),
        sa.Column("failure_reason_text", sa.Text()),
        sa.Column("latitude", sa.Float()),
        sa.Column("longitude", sa.Float()),
        sa.Column("driver_id", sa.String(36)),
        sa.Column("driver_notes", sa.Text()),
        sa.Column("reschedule_date", sa.Date()),
        sa.Column("reschedule_notes", sa.Text()),
        sa.Column("photo_urls", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("shipment_id", "attempt_number", name="uq_delivery_attempts_shipment_number"),
    )
    op.create_index("ix_delivery_attempts_tenant_id", "delivery_attempts", ["tenant_id"])
    op.create_index("ix_delivery_attempts_shipment_id", "delivery_attempts", ["shipment_id"])

    op.create_table(
        "proof_of_delivery",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column(
            "shipment_id", sa.String(36), sa.ForeignKey("shipments.id"),
            nullable=False, unique=True,
        ),
        sa.Column("manifest_id", sa.String(36)),
        sa.Column("delivered_at", sa.DateTime(), nullable=False),
        sa.Column("recipient_name", sa.String(255), nullable=False),
        sa.Column("recipient_doc_type", sa.String(30)),
        sa.Column("recipient_doc_number", sa.String(50)),
        sa.Column("recipient_relationship", sa.String(50)),
        sa.Column("signature_url", sa.String(500)),
        sa.Column("photo_urls", sa.JSON()),
        sa.Column("latitude", sa.Float()),
        sa.Column("longitude", sa.Float()),
        sa.Column("delivery_location_type", sa.String(50)),
        sa.Column("driver_id", sa.String(36)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_proof_of_delivery_tenant_id", "proof_of_delivery", ["tenant_id"])

    # ── Audit trail ──────────────────────────────────────────

    op.create_table(
        "transport_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("reference_type", sa.String(20), nullable=False),
        sa.Column("reference_id", sa.String(36), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("event_time", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("stop_id", sa.String(36)),
        sa.Column("latitude", sa.Float()),
        sa.Column("longitude", sa.Float()),
        sa.Column("location_text", sa.String(255)),
        sa.Column("actor_type", sa.String(20), nullable=False),
        sa.Column("actor_id", sa.String(36)),
        sa.Column("description", sa.Text()),
        sa.Column("payload", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("source", sa.String(30), nullable=False, server_default="internal"),
    )
    op.create_index("ix_transport_events_tenant_id", "transport_events", ["tenant_id"])
    op.create_index("ix_transport_events_event_type", "transport_events", ["event_type"])
    op.create_index(
        "ix_transport_events_reference",
        "transport_events",
        ["reference_type", "reference_id", "event_time"],
    )


def downgrade() -> None:
    op.drop_table("transport_events")
    op.drop_table("proof_of_delivery")
    op.drop_table("delivery_attempts")
    op.drop_table("manifest_shipments")
    op.drop_table("dispatch_manifests")
    # Fleet and shipment tables belong to other modules; left in place.
