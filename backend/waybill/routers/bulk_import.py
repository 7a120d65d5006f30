"""Bulk CSV import for dispatch manifests.

Endpoints:
    GET  /api/bulk-import/manifests/template   Download manifest CSV template
    POST /api/bulk-import/manifests/upload     Upload manifest CSV
"""

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from waybill.auth.deps import Actor, get_tenant_id, require_permission
from waybill.database import get_db
from waybill.schemas.bulk_import import BulkImportResult, RowErrorOut
from waybill.services.manifest_import import MANIFEST_FIELDS, MANIFEST_SAMPLE, import_manifests
from waybill.utils.csv_import import generate_template_csv, read_csv_upload

router = APIRouter()


def _csv_response(csv_text: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/manifests/template")
async def manifest_template(
    _actor: Actor = Depends(require_permission("import.write")),
):
    csv_text = generate_template_csv(MANIFEST_FIELDS, MANIFEST_SAMPLE)
    return _csv_response(csv_text, "manifests_template.csv")


@router.post("/manifests/upload", response_model=BulkImportResult)
async def upload_manifests(
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_permission("import.write")),
):
    csv_text = await read_csv_upload(file)
    summary = await import_manifests(db, tenant_id, csv_text, actor_id=actor.id)
    return BulkImportResult(
        total_rows=summary.total_rows,
        created=summary.created,
        failed=summary.failed,
        errors=[RowErrorOut(row=e.row, errors=e.errors) for e in summary.errors],
        manifest_numbers=summary.manifest_numbers,
    )
