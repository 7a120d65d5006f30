"""Bulk manifest import from CSV.

Each valid CSV row becomes one create_manifest() call inside its own
SAVEPOINT.  A bad row (parse error, unknown plate / code, business-rule
failure) is recorded as a RowError and the batch carries on.

Columns:
    manifest_date   required, ISO date
    manifest_type   delivery | pickup | transfer (default delivery)
    vehicle_plate   resolved to vehicle_id
    carrier_code    resolved to carrier_id
    route_code      resolved to route_id
    planned_start   ISO timestamp
    planned_end     ISO timestamp
    notes
"""

import logging
from dataclasses import dataclass, field

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from waybill.middleware.exceptions import WaybillException
from waybill.models.fleet import Carrier, TransportRoute, Vehicle
from waybill.models.status import ManifestType
from waybill.schemas.manifest import ManifestCreate
from waybill.services.manifests import create_manifest
from waybill.utils.csv_import import (
    FieldDef,
    RowError,
    coerce_choice,
    coerce_date,
    coerce_datetime,
    parse_csv_text,
)

logger = logging.getLogger(__name__)


# ── Field definitions ───────────────────────────────────────

MANIFEST_FIELDS = [
    FieldDef(column="manifest_date", db_field="manifest_date", required=True, coerce=coerce_date),
    FieldDef(
        column="manifest_type", db_field="manifest_type",
        coerce=coerce_choice(*(t.value for t in ManifestType)),
    ),
    FieldDef(column="vehicle_plate", db_field="vehicle_id", resolver="vehicle_plate"),
    FieldDef(column="carrier_code", db_field="carrier_id", resolver="carrier_code"),
    FieldDef(column="route_code", db_field="route_id", resolver="route_code"),
    FieldDef(column="planned_start", db_field="planned_start", coerce=coerce_datetime),
    FieldDef(column="planned_end", db_field="planned_end", coerce=coerce_datetime),
    FieldDef(column="notes", db_field="notes"),
]

MANIFEST_SAMPLE = {
    "manifest_date": "2026-03-02",
    "manifest_type": "delivery",
    "vehicle_plate": "ABC-123",
    "carrier_code": "OWN",
    "route_code": "NORTH-1",
    "planned_start": "2026-03-02T07:00:00",
    "planned_end": "2026-03-02T16:00:00",
    "notes": "Morning run",
}


@dataclass
class ImportSummary:
    total_rows: int = 0
    created: int = 0
    failed: int = 0
    errors: list[RowError] = field(default_factory=list)
    manifest_numbers: list[str] = field(default_factory=list)


async def build_resolvers(db: AsyncSession, tenant_id: str) -> dict[str, dict[str, str]]:
    """Map plates and codes (upper-cased) of active fleet records to ids."""
    resolvers: dict[str, dict[str, str]] = {}
    for name, model, column in (
        ("vehicle_plate", Vehicle, Vehicle.plate),
        ("carrier_code", Carrier, Carrier.code),
        ("route_code", TransportRoute, TransportRoute.code),
    ):
        result = await db.execute(
            select(column, model.id).where(
                model.tenant_id == tenant_id,
                model.is_active == True,  # noqa: E712
            )
        )
        resolvers[name] = {key.upper(): ref_id for key, ref_id in result.all()}
    return resolvers


async def import_manifests(
    db: AsyncSession,
    tenant_id: str,
    csv_text: str,
    actor_id: str | None = None,
) -> ImportSummary:
    """Create one manifest per valid CSV row; collect per-row errors."""
    resolvers = await build_resolvers(db, tenant_id)
    parsed = parse_csv_text(csv_text, MANIFEST_FIELDS, resolvers)

    summary = ImportSummary(total_rows=parsed.total_rows, errors=list(parsed.errors))

    for row in parsed.rows:
        row_num = row.pop("_row")
        values = {k: v for k, v in row.items() if v is not None}
        try:
            body = ManifestCreate(**values)
        except ValidationError as e:
            summary.errors.append(RowError(row=row_num, errors=[err["msg"] for err in e.errors()]))
            continue

        try:
            async with db.begin_nested():
                manifest = await create_manifest(db, tenant_id, body, actor_id=actor_id)
        except WaybillException as e:
            summary.errors.append(RowError(row=row_num, errors=[e.message]))
            continue
        except SQLAlchemyError:
            logger.exception("Manifest import: row %d could not be saved", row_num)
            summary.errors.append(RowError(row=row_num, errors=["Row could not be saved"]))
            continue

        summary.created += 1
        summary.manifest_numbers.append(manifest.manifest_number)

    summary.errors.sort(key=lambda e: e.row)
    summary.failed = len(summary.errors)
    logger.info(
        "Manifest import for tenant %s: %d rows, %d created, %d failed",
        tenant_id, summary.total_rows, summary.created, summary.failed,
    )
    return summary
