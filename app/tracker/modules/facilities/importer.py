from __future__ import annotations

import csv
import io
import logging
from typing import TYPE_CHECKING, Any

from app.tracker.audit import record_event

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tracker.models import Profile
    from app.tracker.modules.facilities.models import Facility

logger = logging.getLogger(__name__)


class ImportFileError(ValueError):
    pass


ALLOWED_EXTENSIONS = (".xlsx", ".csv")
PREVIEW_ROWS = 10

# Lower-cased header *contains* any keyword; the first matching header wins.
COLUMN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "facility_name": ("facility", "name"),
    "type": ("type",),
    "address": ("address",),
    "city": ("city",),
    "state": ("state",),
    "zip": ("zip", "postal"),
    "county": ("county",),
    "company": ("company",),
    "team": ("team",),
}
OPTIONAL_FIELDS = ("address", "city", "state", "zip", "county", "company", "team")


def find_column(headers: list[str], keywords: tuple[str, ...]) -> int | None:
    for i, h in enumerate(headers):
        if any(k in h for k in keywords):
            return i
    return None


def map_columns(headers: list[Any]) -> dict[str, int | None]:
    normalized = [str(h if h is not None else "").strip().lower() for h in headers]
    cols = {field: find_column(normalized, kws) for field, kws in COLUMN_KEYWORDS.items()}
    if cols["facility_name"] is None:
        raise ImportFileError('Missing "Facility Name" column')
    if cols["type"] is None:
        raise ImportFileError('Missing "Type" column')
    return cols


def _cell_text(value: Any) -> str | None:
    if value is None:
        return None
    # openpyxl hands back numeric zips as 97201 or 97201.0
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def rows_from_table(table: list[list[Any]]) -> list[dict[str, str | None]]:
    """First row is the header; rows with an empty facility name are skipped."""
    if len(table) < 2:
        raise ImportFileError("File must have a header row and at least one data row")
    cols = map_columns(list(table[0]))

    def get(row: list[Any], idx: int | None) -> str | None:
        if idx is None or idx >= len(row):
            return None
        return _cell_text(row[idx])

    out: list[dict[str, str | None]] = []
    for row in table[1:]:
        row = list(row or [])
        name = get(row, cols["facility_name"])
        if not name:
            continue
        item: dict[str, str | None] = {"facility_name": name, "type": get(row, cols["type"]) or ""}
        for field in OPTIONAL_FIELDS:
            item[field] = get(row, cols[field])
        out.append(item)
    return out


def _read_xlsx(data: bytes) -> list[list[Any]]:
    from openpyxl import load_workbook

    wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        return [list(r) for r in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def _read_csv(data: bytes) -> list[list[Any]]:
    text = data.decode("utf-8-sig", errors="replace")
    return [row for row in csv.reader(io.StringIO(text)) if any(c.strip() for c in row)]


def parse_facility_file(filename: str, data: bytes) -> list[dict[str, str | None]]:
    """
    Parse an uploaded .xlsx/.csv into facility dicts.
    Raises ImportFileError with a user-facing message.
    """
    lower = (filename or "").lower()
    if not lower.endswith(ALLOWED_EXTENSIONS):
        raise ImportFileError("Please select an Excel (.xlsx) or CSV file")
    try:
        table = _read_csv(data) if lower.endswith(".csv") else _read_xlsx(data)
    except ImportFileError:
        raise
    except Exception as e:
        logger.warning("Facility file parse failed (%s): %s", filename, e)
        raise ImportFileError("Failed to parse file") from e

    rows = rows_from_table(table)
    if not rows:
        raise ImportFileError("No valid data rows found")
    return rows


def clean_rows(raw: Any) -> list[dict[str, str | None]]:
    """Re-validate rows round-tripped through the preview form."""
    if not isinstance(raw, list):
        raise ImportFileError("Failed to parse file")
    out: list[dict[str, str | None]] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        name = _cell_text(item.get("facility_name"))
        if not name:
            continue
        row: dict[str, str | None] = {"facility_name": name, "type": _cell_text(item.get("type")) or ""}
        for field in OPTIONAL_FIELDS:
            row[field] = _cell_text(item.get(field))
        out.append(row)
    if not out:
        raise ImportFileError("No valid data rows found")
    return out


def insert_facilities(s: "Session", rows: list[dict[str, str | None]], user: "Profile") -> list["Facility"]:
    from app.tracker.modules.facilities.models import Facility

    created = [Facility(created_by_profile_id=user.id, **row) for row in rows]
    s.add_all(created)
    s.flush()
    record_event(
        s,
        actor=user,
        action="facility.import",
        entity_type="Facility",
        metadata={"count": len(created)},
    )
    return created
