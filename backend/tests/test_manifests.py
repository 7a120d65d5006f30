"""Manifest repository tests: create, read, update, lifecycle, delete, duplicate."""

from datetime import date, datetime

import pytest
from sqlalchemy import select

from waybill.middleware.exceptions import (
    ConcurrencyConflictError,
    InvalidStateError,
    ValidationFailedError,
)
from waybill.models.manifest import ManifestShipment
from waybill.models.references import ManifestRef
from waybill.models.status import ManifestStatus
from waybill.schemas.delivery import DeliverRequest
from waybill.schemas.manifest import ManifestCreate, ManifestUpdate
from waybill.services import delivery
from waybill.services.events import list_events
from waybill.services.manifests import (
    change_status,
    create_manifest,
    delete_manifest,
    duplicate_manifest,
    get_manifest,
    list_manifests,
    manifest_stats,
    update_manifest,
)

from conftest import TENANT_A, TENANT_B


@pytest.mark.integration
@pytest.mark.asyncio
class TestCreateAndRead:

    async def test_create_starts_as_empty_draft(self, db, fleet):
        manifest = await create_manifest(
            db, TENANT_A,
            ManifestCreate(manifest_date=date(2026, 3, 2), vehicle_id=fleet.vehicle.id),
            actor_id="user-1",
        )

        assert manifest.status == "draft"
        assert manifest.manifest_number.startswith("MAN-")
        assert manifest.total_shipments == 0
        assert manifest.pending_count == 0
        assert manifest.version == 1
        assert manifest.created_by == "user-1"
        assert manifest.vehicle.plate == "ABC-123"
        assert manifest.stops == []

        events = await list_events(db, TENANT_A, ManifestRef(manifest.id))
        assert [e.event_type for e in events] == ["manifest_created"]

    async def test_unknown_reference_rejected(self, db, fleet):
        with pytest.raises(ValidationFailedError) as exc_info:
            await create_manifest(
                db, TENANT_A,
                ManifestCreate(manifest_date=date(2026, 3, 2), driver_id="no-such-driver"),
            )
        assert exc_info.value.details["field"] == "driver_id"

    async def test_other_tenants_fleet_rejected(self, db, fleet):
        with pytest.raises(ValidationFailedError):
            await create_manifest(
                db, TENANT_B,
                ManifestCreate(manifest_date=date(2026, 3, 2), vehicle_id=fleet.vehicle.id),
            )

    async def test_get_is_tenant_scoped(self, db, build_manifest):
        manifest = await build_manifest()
        assert await get_manifest(db, TENANT_A, manifest.id) is not None
        assert await get_manifest(db, TENANT_B, manifest.id) is None
        assert await get_manifest(db, TENANT_A, "missing") is None

    async def test_list_filters(self, db, fleet, build_manifest):
        first = await build_manifest()
        second = await build_manifest(status=ManifestStatus.CONFIRMED)
        await create_manifest(db, TENANT_B, ManifestCreate(manifest_date=date(2026, 3, 2)))

        items, total = await list_manifests(db, TENANT_A)
        assert total == 2
        assert {m.id for m in items} == {first.id, second.id}

        items, total = await list_manifests(db, TENANT_A, status="confirmed")
        assert total == 1
        assert items[0].id == second.id

        items, total = await list_manifests(db, TENANT_A, search=first.manifest_number[-4:])
        assert first.id in {m.id for m in items}

        items, total = await list_manifests(db, TENANT_A, date_from=date(2026, 3, 3))
        assert total == 0

        items, total = await list_manifests(db, TENANT_A, vehicle_id=fleet.vehicle.id, limit=1)
        assert total == 2
        assert len(items) == 1


@pytest.mark.integration
@pytest.mark.asyncio
class TestUpdate:

    async def test_patch_fields(self, db, fleet, build_manifest):
        manifest = await build_manifest()
        updated = await update_manifest(
            db, TENANT_A, manifest.id,
            ManifestUpdate(notes="Call ahead", route_id=fleet.route.id, version=manifest.version),
        )
        assert updated.notes == "Call ahead"
        assert updated.route.code == "NORTH-1"
        assert updated.version == 2

    async def test_stale_version_rejected(self, db, build_manifest):
        manifest = await build_manifest()
        with pytest.raises(ConcurrencyConflictError):
            await update_manifest(
                db, TENANT_A, manifest.id, ManifestUpdate(notes="x", version=manifest.version + 5)
            )

    async def test_dispatch_fields_locked_while_in_progress(self, db, fleet, shipments, build_manifest):
        manifest = await build_manifest([shipments[0].id], status=ManifestStatus.IN_PROGRESS)

        with pytest.raises(InvalidStateError) as exc_info:
            await update_manifest(
                db, TENANT_A, manifest.id, ManifestUpdate(vehicle_id=fleet.vehicle.id)
            )
        assert exc_info.value.details["field"] == "vehicle_id"

        updated = await update_manifest(
            db, TENANT_A, manifest.id, ManifestUpdate(driver_notes="Gate code 1234")
        )
        assert updated.driver_notes == "Gate code 1234"

    async def test_planned_window_checked_against_stored_value(self, db, build_manifest):
        manifest = await build_manifest()
        await update_manifest(
            db, TENANT_A, manifest.id, ManifestUpdate(planned_start=datetime(2026, 3, 2, 8, 0))
        )
        with pytest.raises(ValidationFailedError):
            await update_manifest(
                db, TENANT_A, manifest.id, ManifestUpdate(planned_end=datetime(2026, 3, 2, 7, 0))
            )

    async def test_status_in_patch_goes_through_state_machine(self, db, build_manifest):
        manifest = await build_manifest()
        with pytest.raises(InvalidStateError):
            await update_manifest(
                db, TENANT_A, manifest.id, ManifestUpdate(status=ManifestStatus.COMPLETED)
            )
        confirmed = await update_manifest(
            db, TENANT_A, manifest.id, ManifestUpdate(status=ManifestStatus.CONFIRMED)
        )
        assert confirmed.status == "confirmed"

    async def test_missing_returns_none(self, db, fleet):
        assert await update_manifest(db, TENANT_A, "missing", ManifestUpdate(notes="x")) is None


@pytest.mark.integration
@pytest.mark.asyncio
class TestLifecycle:

    async def test_run_stamps_timestamps_and_logs_events(self, db, shipments, build_manifest):
        manifest = await build_manifest([shipments[0].id], status=ManifestStatus.IN_PROGRESS)
        assert manifest.started_at is not None

        completed = await change_status(db, TENANT_A, manifest.id, ManifestStatus.COMPLETED)
        assert completed.completed_at is not None

        events = await list_events(db, TENANT_A, ManifestRef(manifest.id))
        types = {e.event_type for e in events}
        assert {"manifest_confirmed", "manifest_in_progress", "manifest_completed"} <= types
        completed_event = next(e for e in events if e.event_type == "manifest_completed")
        assert completed_event.payload == {"from": "in_progress", "to": "completed"}

    async def test_terminal_status_releases_claims(self, db, shipments, build_manifest):
        manifest = await build_manifest([s.id for s in shipments[:2]])
        assert all(stop.is_active for stop in manifest.stops)

        cancelled = await change_status(db, TENANT_A, manifest.id, "cancelled")
        assert cancelled.status == "cancelled"
        assert not any(stop.is_active for stop in cancelled.stops)

    async def test_illegal_transition(self, db, build_manifest):
        manifest = await build_manifest()
        with pytest.raises(InvalidStateError):
            await change_status(db, TENANT_A, manifest.id, ManifestStatus.IN_PROGRESS)

    async def test_missing_returns_none(self, db, fleet):
        assert await change_status(db, TENANT_A, "missing", ManifestStatus.CONFIRMED) is None


@pytest.mark.integration
@pytest.mark.asyncio
class TestDelete:

    async def test_draft_deleted_with_stops(self, db, shipments, build_manifest):
        manifest = await build_manifest([shipments[0].id])
        assert await delete_manifest(db, TENANT_A, manifest.id) is True
        assert await get_manifest(db, TENANT_A, manifest.id) is None

    async def test_delete_keeps_shipment_history(self, db, shipments, build_manifest):
        sid = shipments[0].id
        earlier = await build_manifest([sid], status=ManifestStatus.IN_PROGRESS)
        await delivery.mark_delivered(
            db, TENANT_A, earlier.id, sid, DeliverRequest(recipient_name="Jane Doe")
        )
        await change_status(db, TENANT_A, earlier.id, ManifestStatus.CANCELLED)

        shipments[0].status = "received"
        await db.flush()
        draft = await build_manifest([sid])
        assert await delete_manifest(db, TENANT_A, draft.id) is True

        stops = (
            await db.execute(select(ManifestShipment).where(ManifestShipment.manifest_id == draft.id))
        ).scalars().all()
        assert stops == []
        attempts = await delivery.list_attempts(db, TENANT_A, sid)
        assert [a.manifest_id for a in attempts] == [earlier.id]
        proof = await delivery.get_proof_of_delivery(db, TENANT_A, sid)
        assert proof.recipient_name == "Jane Doe"
        assert proof.manifest_id == earlier.id

    async def test_non_draft_rejected(self, db, build_manifest):
        manifest = await build_manifest(status=ManifestStatus.CONFIRMED)
        with pytest.raises(InvalidStateError):
            await delete_manifest(db, TENANT_A, manifest.id)

    async def test_missing(self, db, fleet):
        assert await delete_manifest(db, TENANT_A, "missing") is False


@pytest.mark.integration
@pytest.mark.asyncio
class TestDuplicate:

    async def test_copies_assignment_and_relinks_released_shipments(self, db, shipments, build_manifest):
        source = await build_manifest([shipments[1].id, shipments[0].id])
        await update_manifest(db, TENANT_A, source.id, ManifestUpdate(notes="Fragile"))
        await change_status(db, TENANT_A, source.id, ManifestStatus.CANCELLED)

        copy = await duplicate_manifest(db, TENANT_A, source.id, actor_id="user-2")

        assert copy.id != source.id
        assert copy.manifest_number != source.manifest_number
        assert copy.status == "draft"
        assert copy.vehicle_id == source.vehicle_id
        assert copy.driver_id == source.driver_id
        assert copy.notes == "Fragile"
        assert [(s.stop_sequence, s.shipment_id) for s in copy.stops] == [
            (1, shipments[1].id),
            (2, shipments[0].id),
        ]
        assert all(s.status == "pending" and s.is_active for s in copy.stops)
        assert copy.total_shipments == 2
        assert copy.pending_count == 2

    async def test_skips_already_delivered_shipments(self, db, shipments, build_manifest):
        delivered_id, open_id = shipments[0].id, shipments[1].id
        source = await build_manifest([delivered_id, open_id], status=ManifestStatus.IN_PROGRESS)
        await delivery.mark_delivered(
            db, TENANT_A, source.id, delivered_id, DeliverRequest(recipient_name="Jane Doe")
        )
        await change_status(db, TENANT_A, source.id, ManifestStatus.COMPLETED)

        copy = await duplicate_manifest(db, TENANT_A, source.id)

        assert [(s.stop_sequence, s.shipment_id) for s in copy.stops] == [(1, open_id)]
        assert copy.total_shipments == 1
        events = await list_events(db, TENANT_A, ManifestRef(copy.id))
        assert events[0].payload["skipped_shipment_ids"] == [delivered_id]
        assert len(await delivery.list_attempts(db, TENANT_A, delivered_id)) == 1

    async def test_skips_shipments_still_claimed(self, db, shipments, build_manifest):
        source = await build_manifest([shipments[0].id])

        copy = await duplicate_manifest(db, TENANT_A, source.id)

        assert copy.stops == []
        assert copy.total_shipments == 0
        events = await list_events(db, TENANT_A, ManifestRef(copy.id))
        assert events[0].payload["skipped_shipment_ids"] == [shipments[0].id]

    async def test_missing_source(self, db, fleet):
        assert await duplicate_manifest(db, TENANT_A, "missing") is None


@pytest.mark.integration
@pytest.mark.asyncio
class TestStats:

    async def test_counts_and_rates(self, db, shipments, build_manifest):
        await build_manifest([shipments[0].id, shipments[1].id])
        cancelled = await build_manifest([shipments[2].id])
        await change_status(db, TENANT_A, cancelled.id, ManifestStatus.CANCELLED)

        stats = await manifest_stats(db, TENANT_A)

        assert stats["manifests_by_status"]["draft"] == 1
        assert stats["manifests_by_status"]["cancelled"] == 1
        assert stats["total_manifests"] == 2
        assert stats["total_shipments"] == 2
        assert stats["pending_count"] == 2
        assert stats["total_cod_amount"] == 100.0
        assert stats["delivery_rate"] == 0.0

    async def test_other_tenant_sees_nothing(self, db, shipments, build_manifest):
        await build_manifest([shipments[0].id])
        stats = await manifest_stats(db, TENANT_B)
        assert stats["total_manifests"] == 0
        assert stats["total_shipments"] == 0
