"""Response schemas for bulk CSV imports."""

from pydantic import BaseModel


class RowErrorOut(BaseModel):
    row: int
    errors: list[str]


class BulkImportResult(BaseModel):
    total_rows: int
    created: int
    failed: int
    errors: list[RowErrorOut]
    manifest_numbers: list[str] = []
