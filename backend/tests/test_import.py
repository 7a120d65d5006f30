"""Bulk manifest CSV import tests."""

import pytest

from waybill.services.manifest_import import build_resolvers, import_manifests
from waybill.services.manifests import list_manifests

from conftest import TENANT_A

HEADER = "manifest_date,manifest_type,vehicle_plate,carrier_code,route_code,planned_start,planned_end,notes\n"


@pytest.mark.integration
@pytest.mark.asyncio
class TestManifestImport:

    async def test_resolvers_skip_inactive_records(self, db, fleet):
        resolvers = await build_resolvers(db, TENANT_A)
        assert resolvers["vehicle_plate"] == {"ABC-123": fleet.vehicle.id}
        assert resolvers["carrier_code"] == {"OWN": fleet.carrier.id}
        assert resolvers["route_code"] == {"NORTH-1": fleet.route.id}

    async def test_good_rows_created_bad_rows_reported(self, db, fleet):
        csv_text = HEADER + (
            "2026-03-02,delivery,abc-123,own,NORTH-1,2026-03-02T07:00,2026-03-02T16:00,Morning\n"
            "not-a-date,delivery,ABC-123,,,,,\n"
            "2026-03-02,pickup,OLD-001,,,,,\n"
            "2026-03-02,,,,,2026-03-02T16:00,2026-03-02T07:00,\n"
            "2026-03-03,transfer,,,,,,\n"
        )

        summary = await import_manifests(db, TENANT_A, csv_text, actor_id="user-1")

        assert summary.total_rows == 5
        assert summary.created == 2
        assert summary.failed == 3
        assert [e.row for e in summary.errors] == [3, 4, 5]
        assert len(summary.manifest_numbers) == 2

        items, total = await list_manifests(db, TENANT_A)
        assert total == 2
        by_type = {m.manifest_type: m for m in items}
        assert by_type["delivery"].vehicle_id == fleet.vehicle.id
        assert by_type["delivery"].carrier_id == fleet.carrier.id
        assert by_type["delivery"].notes == "Morning"
        assert by_type["transfer"].status == "draft"

    async def test_empty_file(self, db, fleet):
        summary = await import_manifests(db, TENANT_A, HEADER)
        assert summary.total_rows == 0
        assert summary.created == 0
        assert summary.errors == []
