"""Shipment assignment and stop execution tests."""

from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from waybill.middleware.exceptions import (
    ConcurrencyConflictError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from waybill.models.manifest import ManifestShipment
from waybill.models.references import ShipmentRef
from waybill.models.shipment import Shipment
from waybill.models.status import ManifestStatus
from waybill.schemas.manifest import ManifestCreate
from waybill.services.assignment import (
    add_shipments,
    arrive_at_stop,
    get_available_shipments,
    remove_shipments,
    reorder_shipments,
    skip_stop,
    start_stop,
    update_stop_notes,
    update_stop_sequence,
)
from waybill.services.events import list_events
from waybill.services.manifests import change_status, create_manifest, get_manifest

from conftest import TENANT_A, TENANT_B


@pytest.mark.integration
@pytest.mark.asyncio
class TestAddShipments:

    async def test_appends_pending_stops_and_recalculates(self, db, shipments, build_manifest):
        manifest = await build_manifest([shipments[0].id])

        manifest = await add_shipments(
            db, TENANT_A, manifest.id, [shipments[1].id, shipments[2].id, shipments[1].id]
        )

        assert [(s.stop_sequence, s.shipment_id) for s in manifest.stops] == [
            (1, shipments[0].id),
            (2, shipments[1].id),
            (3, shipments[2].id),
        ]
        assert all(s.status == "pending" for s in manifest.stops)
        assert manifest.total_shipments == 3
        assert manifest.pending_count == 3
        assert manifest.total_weight_kg == pytest.approx(14.75)
        assert manifest.total_packages == 3
        assert float(manifest.total_cod_amount) == pytest.approx(149.99)

    async def test_unknown_shipment(self, db, shipments, build_manifest):
        manifest = await build_manifest()
        with pytest.raises(ResourceNotFoundError):
            await add_shipments(db, TENANT_A, manifest.id, [shipments[0].id, "nope"])

    async def test_other_tenants_shipment_is_unknown(self, db, fleet):
        stranger = Shipment(tenant_id=TENANT_B, shipment_number="B-1", status="received")
        db.add(stranger)
        await db.flush()

        manifest = await create_manifest(db, TENANT_A, ManifestCreate(manifest_date=date(2026, 3, 2)))
        with pytest.raises(ResourceNotFoundError):
            await add_shipments(db, TENANT_A, manifest.id, [stranger.id])

    async def test_ineligible_status(self, db, shipments, build_manifest):
        shipments[0].status = "returned"
        await db.flush()
        manifest = await build_manifest()
        with pytest.raises(ValidationFailedError) as exc_info:
            await add_shipments(db, TENANT_A, manifest.id, [shipments[0].id])
        assert exc_info.value.details["shipments"] == {shipments[0].id: "returned"}

    async def test_already_on_this_manifest(self, db, shipments, build_manifest):
        manifest = await build_manifest([shipments[0].id])
        with pytest.raises(ValidationFailedError):
            await add_shipments(db, TENANT_A, manifest.id, [shipments[0].id])

    async def test_terminal_manifest_rejected(self, db, shipments, build_manifest):
        manifest = await build_manifest()
        await change_status(db, TENANT_A, manifest.id, ManifestStatus.CANCELLED)
        with pytest.raises(InvalidStateError):
            await add_shipments(db, TENANT_A, manifest.id, [shipments[0].id])

    async def test_missing_manifest(self, db, shipments):
        assert await add_shipments(db, TENANT_A, "missing", [shipments[0].id]) is None


@pytest.mark.integration
@pytest.mark.asyncio
class TestExclusivity:
    """A shipment is actively claimed by at most one manifest."""

    async def test_second_manifest_conflicts(self, db, shipments, build_manifest):
        first = await build_manifest([shipments[0].id])
        second = await build_manifest()

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await add_shipments(db, TENANT_A, second.id, [shipments[0].id])
        assert exc_info.value.details["claims"] == {shipments[0].id: first.manifest_number}

    async def test_claim_released_by_cancellation(self, db, shipments, build_manifest):
        first = await build_manifest([shipments[0].id])
        second = await build_manifest()
        await change_status(db, TENANT_A, first.id, ManifestStatus.CANCELLED)

        second = await add_shipments(db, TENANT_A, second.id, [shipments[0].id])
        assert [s.shipment_id for s in second.stops] == [shipments[0].id]

    async def test_storage_rejects_two_active_claims(self, db, shipments, build_manifest):
        await build_manifest([shipments[0].id])
        second = await build_manifest()

        db.add(ManifestShipment(
            manifest_id=second.id, shipment_id=shipments[0].id, stop_sequence=1,
        ))
        with pytest.raises(IntegrityError):
            await db.flush()
        await db.rollback()


@pytest.mark.integration
@pytest.mark.asyncio
class TestAvailability:

    async def test_excludes_shipments_on_open_manifests(self, db, shipments, build_manifest):
        await build_manifest([shipments[0].id])

        available = await get_available_shipments(db, TENANT_A)
        assert {s.id for s in available} == {shipments[1].id, shipments[2].id}

    async def test_cancelled_manifest_frees_shipments(self, db, shipments, build_manifest):
        manifest = await build_manifest([shipments[0].id])
        await change_status(db, TENANT_A, manifest.id, ManifestStatus.CANCELLED)

        available = await get_available_shipments(db, TENANT_A)
        assert shipments[0].id in {s.id for s in available}

    async def test_search_and_status_filter(self, db, shipments):
        shipments[1].status = "delivered"
        await db.flush()

        available = await get_available_shipments(db, TENANT_A, search="springfield")
        assert {s.id for s in available} == {shipments[0].id, shipments[2].id}

        available = await get_available_shipments(db, TENANT_A, search="TRK-0002")
        assert available == []

    async def test_tenant_scoped(self, db, shipments):
        assert await get_available_shipments(db, TENANT_B) == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestRemoveAndReorder:

    async def test_remove_recalculates(self, db, shipments, build_manifest):
        manifest = await build_manifest([s.id for s in shipments])

        removed = await remove_shipments(
            db, TENANT_A, manifest.id, [shipments[0].id, "not-on-manifest"]
        )
        assert removed == 1

        manifest = await get_manifest(db, TENANT_A, manifest.id)
        assert [s.shipment_id for s in manifest.stops] == [shipments[1].id, shipments[2].id]
        assert manifest.total_shipments == 2
        assert manifest.pending_count == 2
        assert float(manifest.total_cod_amount) == pytest.approx(49.99)

    async def test_removed_shipment_becomes_available(self, db, shipments, build_manifest):
        manifest = await build_manifest([shipments[0].id])
        await remove_shipments(db, TENANT_A, manifest.id, [shipments[0].id])

        available = await get_available_shipments(db, TENANT_A)
        assert shipments[0].id in {s.id for s in available}

    async def test_reorder_is_full_permutation(self, db, shipments, build_manifest):
        manifest = await build_manifest([s.id for s in shipments])
        order = [shipments[2].id, shipments[0].id, shipments[1].id]

        manifest = await reorder_shipments(db, TENANT_A, manifest.id, order)

        assert [(s.stop_sequence, s.shipment_id) for s in manifest.stops] == [
            (1, shipments[2].id),
            (2, shipments[0].id),
            (3, shipments[1].id),
        ]

    @pytest.mark.parametrize("pick", [
        lambda ids: ids[:2],                       # missing one
        lambda ids: ids + ["stranger"],            # unknown id
        lambda ids: [ids[0], ids[0], ids[1]],      # duplicate
    ])
    async def test_reorder_rejects_partial_lists(self, db, shipments, build_manifest, pick):
        ids = [s.id for s in shipments]
        manifest = await build_manifest(ids)
        with pytest.raises(ValidationFailedError):
            await reorder_shipments(db, TENANT_A, manifest.id, pick(ids))


@pytest.mark.integration
@pytest.mark.asyncio
class TestStopPatches:

    async def test_notes(self, db, shipments, build_manifest):
        manifest = await build_manifest([shipments[0].id])
        stop = await update_stop_notes(db, TENANT_A, manifest.id, shipments[0].id, "Back door")
        assert stop.driver_notes == "Back door"

    async def test_sequence_swaps_with_occupant(self, db, shipments, build_manifest):
        manifest = await build_manifest([s.id for s in shipments])

        await update_stop_sequence(db, TENANT_A, manifest.id, shipments[2].id, 1)

        manifest = await get_manifest(db, TENANT_A, manifest.id)
        assert {s.shipment_id: s.stop_sequence for s in manifest.stops} == {
            shipments[0].id: 3,
            shipments[1].id: 2,
            shipments[2].id: 1,
        }

    async def test_unknown_stop(self, db, shipments, build_manifest):
        manifest = await build_manifest([shipments[0].id])
        with pytest.raises(ResourceNotFoundError):
            await update_stop_notes(db, TENANT_A, manifest.id, shipments[1].id, "x")


@pytest.mark.integration
@pytest.mark.asyncio
class TestStopExecution:

    async def test_requires_running_manifest(self, db, shipments, build_manifest):
        manifest = await build_manifest([shipments[0].id], status=ManifestStatus.CONFIRMED)
        with pytest.raises(InvalidStateError):
            await start_stop(db, TENANT_A, manifest.id, shipments[0].id)

    async def test_start_arrive_skip(self, db, shipments, build_manifest):
        manifest = await build_manifest([shipments[0].id], status=ManifestStatus.IN_PROGRESS)
        sid = shipments[0].id

        stop = await start_stop(db, TENANT_A, manifest.id, sid, actor_id="driver-1")
        assert stop.status == "in_transit"
        assert stop.arrived_at is None

        stop = await arrive_at_stop(db, TENANT_A, manifest.id, sid)
        assert stop.status == "in_transit"
        assert stop.arrived_at is not None

        stop = await skip_stop(db, TENANT_A, manifest.id, sid, reason="Road closed")
        assert stop.status == "skipped"

        manifest = await get_manifest(db, TENANT_A, manifest.id)
        assert manifest.pending_count == 1

        events = await list_events(db, TENANT_A, ShipmentRef(sid))
        assert {e.event_type for e in events} == {"stop_started", "stop_arrived", "stop_skipped"}
        skipped = next(e for e in events if e.event_type == "stop_skipped")
        assert skipped.payload["reason"] == "Road closed"
        assert skipped.actor_type == "driver"
