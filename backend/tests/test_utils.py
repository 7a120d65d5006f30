"""Tests for numbering, field locks, CSV parsing and scheduling helpers."""

import re
from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest

from waybill.services.manifest_import import MANIFEST_FIELDS, MANIFEST_SAMPLE
from waybill.services.scheduler import seconds_until_next_run
from waybill.utils.csv_import import (
    FieldDef,
    coerce_choice,
    coerce_int,
    generate_template_csv,
    parse_csv_text,
)
from waybill.utils.locks import MANIFEST_DISPATCH_FIELDS, get_manifest_locks
from waybill.utils.numbering import generate_manifest_number


@pytest.mark.unit
class TestManifestNumber:

    def test_format(self):
        number = generate_manifest_number(date(2026, 3, 1))
        assert re.fullmatch(r"MAN-260301-[0-9A-Z]{4}", number)

    def test_defaults_to_today(self):
        today = datetime.now(timezone.utc).date()
        assert generate_manifest_number().startswith(f"MAN-{today:%y%m%d}-")

    def test_suffixes_vary(self):
        numbers = {generate_manifest_number(date(2026, 3, 1)) for _ in range(50)}
        assert len(numbers) > 40


@pytest.mark.unit
class TestManifestLocks:

    def _manifest(self, status):
        return SimpleNamespace(status=status, manifest_number="MAN-260301-AAAA")

    def test_draft_has_no_locks(self):
        info = get_manifest_locks(self._manifest("draft"))
        assert not info.is_locked
        assert info.check_update({"vehicle_id", "notes"}) is None

    def test_in_progress_locks_dispatch_fields_only(self):
        info = get_manifest_locks(self._manifest("in_progress"))
        assert sorted(info.locked_field_names()) == sorted(MANIFEST_DISPATCH_FIELDS)
        assert info.check_update({"planned_end", "notes"}) is None

        lock = info.check_update({"notes", "vehicle_id"})
        assert lock.field == "vehicle_id"
        assert lock.blocker_type == "manifest_status"
        assert lock.blocker_ref == "MAN-260301-AAAA"

    def test_terminal_locks_schedule_too(self):
        info = get_manifest_locks(self._manifest("completed"))
        assert info.check_update({"planned_start"}) is not None
        assert info.check_update({"notes"}) is None


@pytest.mark.unit
class TestCsvParsing:

    FIELDS = [
        FieldDef(column="code", db_field="code", required=True),
        FieldDef(column="qty", db_field="qty", coerce=coerce_int),
        FieldDef(column="kind", db_field="kind", coerce=coerce_choice("a", "b")),
        FieldDef(column="plate", db_field="vehicle_id", resolver="plate"),
    ]

    def test_valid_and_invalid_rows(self):
        text = (
            "code,qty,kind,plate\n"
            "X1,3,A,abc-123\n"
            ",x,c,ZZZ\n"
            "X3,,,\n"
        )
        result = parse_csv_text(text, self.FIELDS, {"plate": {"ABC-123": "veh-1"}})

        assert result.total_rows == 3
        assert [r["_row"] for r in result.rows] == [2, 4]
        assert result.rows[0] == {"code": "X1", "qty": 3, "kind": "a", "vehicle_id": "veh-1", "_row": 2}
        assert result.rows[1]["qty"] is None

        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.row == 3
        assert len(error.errors) == 4

    def test_template_has_headers_and_sample(self):
        text = generate_template_csv(MANIFEST_FIELDS, MANIFEST_SAMPLE)
        lines = text.strip().splitlines()
        assert lines[0].split(",")[0] == "manifest_date"
        assert "ABC-123" in lines[1]


@pytest.mark.unit
class TestSchedule:

    def test_later_today(self):
        now = datetime(2026, 3, 1, 1, 0, tzinfo=timezone.utc)
        assert seconds_until_next_run(2, now) == 3600

    def test_rolls_over_month_end(self):
        now = datetime(2026, 1, 31, 3, 0, tzinfo=timezone.utc)
        assert seconds_until_next_run(2, now) == 23 * 3600

    def test_exact_hour_waits_a_day(self):
        now = datetime(2026, 3, 1, 2, 0, tzinfo=timezone.utc)
        assert seconds_until_next_run(2, now) == 24 * 3600
