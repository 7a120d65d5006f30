"""Generic CSV parsing + validation for bulk import.

Each column is described by a FieldDef.  parse_csv_text() walks the rows,
coerces values, resolves human-readable codes (plate, carrier code, ...)
to ids, and collects a RowError per bad line instead of aborting.
"""

import csv
import io
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable

from fastapi import UploadFile

from waybill.middleware.exceptions import ValidationFailedError


@dataclass
class FieldDef:
    """Definition for a single CSV column."""
    column: str
    db_field: str
    required: bool = False
    coerce: Callable[[str], Any] | None = None
    resolver: str | None = None


@dataclass
class RowError:
    row: int
    errors: list[str]


@dataclass
class ParseResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)
    total_rows: int = 0


# ── Coercers ────────────────────────────────────────────────

def coerce_int(val: str) -> int | None:
    if not val.strip():
        return None
    return int(val)


def coerce_date(val: str) -> date | None:
    """ISO date: '2026-03-01'."""
    if not val.strip():
        return None
    return date.fromisoformat(val.strip())


def coerce_datetime(val: str) -> datetime | None:
    """ISO timestamp: '2026-03-01T08:00' or '2026-03-01 08:00:00'."""
    if not val.strip():
        return None
    return datetime.fromisoformat(val.strip())


def coerce_choice(*choices: str) -> Callable[[str], str]:
    """Build a coercer that lower-cases and accepts only the given values."""
    def _coerce(val: str) -> str:
        normalized = val.strip().lower()
        if normalized not in choices:
            raise ValueError(normalized)
        return normalized
    return _coerce


# ── Parsing ─────────────────────────────────────────────────

def parse_csv_text(
    text: str,
    field_defs: list[FieldDef],
    resolvers: dict[str, dict[str, str]] | None = None,
) -> ParseResult:
    """Parse CSV text, validate, coerce types, resolve codes to ids."""
    resolvers = resolvers or {}
    reader = csv.DictReader(io.StringIO(text))

    result = ParseResult()

    for row_num, raw_row in enumerate(reader, start=2):  # row 1 = header
        result.total_rows += 1
        row_errors: list[str] = []
        parsed: dict[str, Any] = {}

        for fd in field_defs:
            raw_val = (raw_row.get(fd.column) or "").strip()

            if fd.required and not raw_val:
                row_errors.append(f"'{fd.column}' is required")
                continue

            if not raw_val:
                parsed[fd.db_field] = None
                continue

            if fd.resolver:
                resolver_map = resolvers.get(fd.resolver, {})
                resolved_id = resolver_map.get(raw_val) or resolver_map.get(raw_val.upper())
                if not resolved_id:
                    row_errors.append(f"'{fd.column}': '{raw_val}' not found")
                    continue
                parsed[fd.db_field] = resolved_id
                continue

            if fd.coerce:
                try:
                    parsed[fd.db_field] = fd.coerce(raw_val)
                except (ValueError, TypeError):
                    row_errors.append(f"'{fd.column}': invalid value '{raw_val}'")
                    continue
            else:
                parsed[fd.db_field] = raw_val

        if row_errors:
            result.errors.append(RowError(row=row_num, errors=row_errors))
        else:
            parsed["_row"] = row_num
            result.rows.append(parsed)

    return result


async def read_csv_upload(file: UploadFile) -> str:
    """Read an uploaded CSV as text."""
    content = await file.read()
    try:
        return content.decode("utf-8-sig")  # handle BOM from Excel
    except UnicodeDecodeError:
        raise ValidationFailedError(
            f"{file.filename or 'Upload'} is not valid UTF-8 text",
            details={"field": "file"},
        )


def generate_template_csv(
    field_defs: list[FieldDef],
    sample_row: dict[str, str] | None = None,
) -> str:
    """Generate CSV template string with headers and optional sample row."""
    output = io.StringIO()
    headers = [fd.column for fd in field_defs]
    writer = csv.writer(output)
    writer.writerow(headers)
    if sample_row:
        writer.writerow([sample_row.get(h, "") for h in headers])
    return output.getvalue()
