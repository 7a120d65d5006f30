"""Management CLI for dispatch operations.

Usage:
    python -m waybill.cli reconcile                 # Recompute counters, all tenants
    python -m waybill.cli reconcile <tenant_id>     # ... one tenant only
"""

import asyncio
import sys

from waybill.database import async_session
from waybill.services.aggregates import reconcile_aggregates


async def _reconcile(tenant_id: str | None) -> int:
    async with async_session() as db:
        summary = await reconcile_aggregates(db, tenant_id=tenant_id)
        await db.commit()

    for number in summary.corrected_numbers:
        print(f"  Corrected {number}")
    print(f"\n{summary.checked} manifest(s) checked, {summary.corrected} corrected")
    return summary.corrected


def reconcile(tenant_id: str | None = None):
    """Recompute aggregate counters of every open manifest."""
    asyncio.run(_reconcile(tenant_id))


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "reconcile":
        reconcile(sys.argv[2] if len(sys.argv) > 2 else None)
    else:
        print("Usage: python -m waybill.cli reconcile [tenant_id]")
