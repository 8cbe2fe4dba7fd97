"""Loaders for the raw beneficiary, assignment, call and operator collections.

Collections are read from Supabase first; uploaded spreadsheets (xlsx or csv)
can stand in for a table that is empty or not configured.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from openpyxl import load_workbook

from ..config import settings
from ..db.supabase import get_supabase_client

PAGE_SIZE = 1000


@dataclass(frozen=True, slots=True)
class RawCollections:
    beneficiaries: tuple[dict, ...] = ()
    assignments: tuple[dict, ...] = ()
    calls: tuple[dict, ...] = ()
    operators: tuple[dict, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.beneficiaries or self.assignments or self.calls or self.operators)


def _fetch_table(client: Any, table: str) -> list[dict]:
    """Read every row of ``table``, paging through Supabase's row limit."""
    rows: list[dict] = []
    start = 0
    while True:
        try:
            response = client.table(table).select("*").range(start, start + PAGE_SIZE - 1).execute()
        except Exception as exc:
            raise ConnectionError(f"Failed to load '{table}' from Supabase: {exc}") from exc
        batch = list(response.data or [])
        rows.extend(batch)
        if len(batch) < PAGE_SIZE:
            break
        start += PAGE_SIZE
    logging.info(f"Loaded {len(rows)} rows from '{table}'")
    return rows


def load_collections() -> RawCollections:
    """Load all four collections from Supabase.

    Returns empty collections (with a warning) when Supabase is not
    configured. Query failures raise ``ConnectionError``.
    """
    client = get_supabase_client()
    if not client:
        logging.warning("Supabase not configured; returning empty collections")
        return RawCollections()

    return RawCollections(
        beneficiaries=tuple(_fetch_table(client, settings.beneficiaries_table)),
        assignments=tuple(_fetch_table(client, settings.assignments_table)),
        calls=tuple(_fetch_table(client, settings.calls_table)),
        operators=tuple(_fetch_table(client, settings.operators_table)),
    )


def _cell_value(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


def load_rows_from_workbook(path: Path, sheet_name: Optional[str] = None) -> list[dict[str, Any]]:
    """Read a spreadsheet into one mapping per row, keyed by the header row.

    Blank header cells are ignored and fully blank rows are skipped.
    """
    if not path.exists():
        raise FileNotFoundError(f"Workbook not found: {path}")

    wb = load_workbook(path, data_only=True, read_only=True)
    try:
        sheet = wb[sheet_name] if sheet_name else wb.active
        rows = sheet.iter_rows(min_row=1, values_only=True)
        header = next(rows, None)
        if header is None:
            raise ValueError(f"Workbook '{path}' is empty.")

        header_map = {
            idx: str(name).strip()
            for idx, name in enumerate(header)
            if name is not None and str(name).strip()
        }
        if not header_map:
            raise ValueError(f"Workbook '{path}' is missing a header row.")

        records: list[dict[str, Any]] = []
        for row in rows:
            record = {
                key: _cell_value(row[idx])
                for idx, key in header_map.items()
                if idx < len(row)
            }
            if all(value in (None, "") for value in record.values()):
                continue
            records.append(record)
    finally:
        wb.close()
    return records


def load_rows_from_csv(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {path}")
    with path.open(mode="r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            raise ValueError(f"CSV file '{path}' is missing a header row.")
        return [
            {key.strip(): _cell_value(value) for key, value in row.items() if key}
            for row in reader
            if any((value or "").strip() for value in row.values() if isinstance(value, str))
        ]


def load_rows_from_file(path: Path) -> list[dict[str, Any]]:
    """Dispatch on the file extension to the workbook or CSV reader."""
    suffix = path.suffix.lower()
    if suffix in (".xlsx", ".xlsm"):
        return load_rows_from_workbook(path)
    if suffix == ".csv":
        return load_rows_from_csv(path)
    raise ValueError(f"Unsupported upload format '{suffix}' (expected .xlsx or .csv)")

