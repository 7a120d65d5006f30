"""Manifest aggregate counters.

_write_totals() is the only code path that writes the aggregate columns
of a manifest.  recalculate() re-reads every stop joined to its shipment
and rewrites all counters in one UPDATE, so any mutation followed by recalculate() leaves
the manifest consistent with its stops:

    total_shipments == number of stops
    delivered_count + failed_count + pending_count == total_shipments

``pending_count`` folds pending, in_transit and skipped stops together.

reconcile_aggregates() is the safety-net sweep run daily by the scheduler
and on demand from the CLI.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from waybill.database import utcnow
from waybill.models.manifest import Manifest, ManifestShipment
from waybill.models.shipment import Shipment
from waybill.models.status import StopStatus, TERMINAL_MANIFEST_STATUSES

logger = logging.getLogger(__name__)

AGGREGATE_FIELDS = (
    "total_shipments", "total_weight_kg", "total_packages", "total_cod_amount",
    "delivered_count", "failed_count", "pending_count",
)


@dataclass
class ManifestTotals:
    total_shipments: int = 0
    total_weight_kg: float = 0.0
    total_packages: int = 0
    total_cod_amount: Decimal = Decimal("0")
    delivered_count: int = 0
    failed_count: int = 0
    pending_count: int = 0

    def as_dict(self) -> dict:
        return {name: getattr(self, name) for name in AGGREGATE_FIELDS}

    def matches(self, manifest: Manifest) -> bool:
        """True when the stored counters already equal these totals."""
        for name in AGGREGATE_FIELDS:
            stored = getattr(manifest, name)
            if name == "total_weight_kg":
                if round(float(stored or 0), 3) != round(self.total_weight_kg, 3):
                    return False
            elif name == "total_cod_amount":
                if Decimal(str(stored or 0)).quantize(Decimal("0.01")) != self.total_cod_amount:
                    return False
            elif stored != getattr(self, name):
                return False
        return True


def compute_totals(rows: Iterable[tuple]) -> ManifestTotals:
    """Fold (stop_status, weight_kg, package_count, cod_amount) rows into totals.

    Null weights, package counts and COD amounts count as zero.
    """
    totals = ManifestTotals()
    for stop_status, weight_kg, package_count, cod_amount in rows:
        totals.total_shipments += 1
        totals.total_weight_kg += float(weight_kg or 0)
        totals.total_packages += int(package_count or 0)
        totals.total_cod_amount += Decimal(str(cod_amount)) if cod_amount is not None else Decimal("0")

        if stop_status == StopStatus.DELIVERED.value:
            totals.delivered_count += 1
        elif stop_status == StopStatus.FAILED.value:
            totals.failed_count += 1
        else:
            totals.pending_count += 1

    totals.total_weight_kg = round(totals.total_weight_kg, 3)
    totals.total_cod_amount = totals.total_cod_amount.quantize(Decimal("0.01"))
    return totals


async def _load_rows(db: AsyncSession, manifest_id: str) -> list[tuple]:
    result = await db.execute(
        select(
            ManifestShipment.status,
            Shipment.weight_kg,
            Shipment.package_count,
            Shipment.cod_amount,
        )
        .join(Shipment, Shipment.id == ManifestShipment.shipment_id)
        .where(ManifestShipment.manifest_id == manifest_id)
    )
    return [tuple(row) for row in result.all()]


def _write_totals(manifest: Manifest, totals: ManifestTotals) -> None:
    for name, value in totals.as_dict().items():
        setattr(manifest, name, value)
    manifest.updated_at = utcnow()


async def recalculate(db: AsyncSession, manifest: Manifest) -> ManifestTotals:
    """Recompute and persist every aggregate counter of ``manifest``."""
    await db.flush()
    totals = compute_totals(await _load_rows(db, manifest.id))
    _write_totals(manifest, totals)
    await db.flush()
    return totals


# ── Reconciliation sweep ────────────────────────────────────


@dataclass
class ReconciliationSummary:
    checked: int = 0
    corrected: int = 0
    corrected_numbers: list[str] = field(default_factory=list)


async def reconcile_aggregates(
    db: AsyncSession,
    tenant_id: str | None = None,
) -> ReconciliationSummary:
    """Recompute every non-terminal manifest and report drifted counters.

    Args:
        db: Session; the caller commits.
        tenant_id: Limit the sweep to one tenant (all tenants when None).
    """
    stmt = select(Manifest).where(
        Manifest.status.notin_([s.value for s in TERMINAL_MANIFEST_STATUSES])
    )
    if tenant_id:
        stmt = stmt.where(Manifest.tenant_id == tenant_id)

    summary = ReconciliationSummary()
    manifests = (await db.execute(stmt)).scalars().all()
    for manifest in manifests:
        summary.checked += 1
        totals = compute_totals(await _load_rows(db, manifest.id))
        if totals.matches(manifest):
            continue

        logger.warning(
            "Aggregate drift on manifest %s (tenant %s), rewriting counters",
            manifest.manifest_number, manifest.tenant_id,
        )
        _write_totals(manifest, totals)
        summary.corrected += 1
        summary.corrected_numbers.append(manifest.manifest_number)

    await db.flush()
    return summary
