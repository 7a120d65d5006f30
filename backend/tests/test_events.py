"""Transport event trail tests."""

import pytest
from sqlalchemy import text

from waybill.models.references import (
    ManifestRef,
    ReferenceType,
    ShipmentRef,
    TripRef,
    make_reference,
)
from waybill.services.events import list_events, record_event
from waybill.services.manifests import get_manifest

from conftest import TENANT_A, TENANT_B


@pytest.mark.unit
class TestReferences:

    def test_make_reference(self):
        ref = make_reference("shipment", "shp-1")
        assert ref == ShipmentRef("shp-1")
        assert ref.reference_type is ReferenceType.SHIPMENT
        assert ref.reference_id == "shp-1"
        assert make_reference(ReferenceType.TRIP, "t-1") == TripRef("t-1")

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            make_reference("invoice", "inv-1")


@pytest.mark.integration
@pytest.mark.asyncio
class TestRecordEvent:

    async def test_round_trip(self, db):
        event = await record_event(
            db, TENANT_A, TripRef("trip-1"), "checkpoint",
            actor_type="system",
            latitude=1.5, longitude=2.5, location_text="Depot",
            payload={"km": 12},
            source="gps",
        )
        assert event is not None

        events = await list_events(db, TENANT_A, TripRef("trip-1"))
        assert len(events) == 1
        assert events[0].reference_type == "trip"
        assert events[0].payload == {"km": 12}
        assert events[0].source == "gps"

        assert await list_events(db, TENANT_B, TripRef("trip-1")) == []
        assert await list_events(db, TENANT_A, ManifestRef("trip-1")) == []

    async def test_storage_failure_does_not_break_caller(self, db, build_manifest, caplog):
        await db.execute(text("DROP TABLE transport_events"))

        with caplog.at_level("ERROR", logger="waybill.events"):
            manifest = await build_manifest()

        assert manifest is not None
        assert await get_manifest(db, TENANT_A, manifest.id) is not None
        assert "Failed to record manifest_created event" in caplog.text

    async def test_failure_returns_none(self, db):
        await db.execute(text("DROP TABLE transport_events"))
        assert await record_event(db, TENANT_A, ShipmentRef("s-1"), "delivered") is None
