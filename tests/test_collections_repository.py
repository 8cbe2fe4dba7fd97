from pathlib import Path

import pytest
from openpyxl import Workbook

from src.teleops.data import collections_repository
from src.teleops.data.collections_repository import (
    load_collections,
    load_rows_from_csv,
    load_rows_from_file,
    load_rows_from_workbook,
)


class _FakeResponse:
    def __init__(self, data):
        self.data = data


class _FakeQuery:
    def __init__(self, rows, fail=False):
        self.rows = rows
        self.fail = fail
        self.bounds = (0, len(rows))

    def select(self, *args, **kwargs):
        return self

    def range(self, start, end):
        self.bounds = (start, end)
        return self

    def execute(self):
        if self.fail:
            raise RuntimeError("network down")
        start, end = self.bounds
        return _FakeResponse(self.rows[start:end + 1])


class _FakeClient:
    def __init__(self, tables, failing=()):
        self.tables = tables
        self.failing = set(failing)

    def table(self, name):
        return _FakeQuery(self.tables.get(name, []), fail=name in self.failing)


def _write_workbook(path: Path, rows) -> Path:
    wb = Workbook()
    sheet = wb.active
    for row in rows:
        sheet.append(row)
    wb.save(path)
    return path


def test_load_rows_from_workbook_maps_header_to_keys(tmp_path: Path):
    path = _write_workbook(
        tmp_path / "beneficiarios.xlsx",
        [
            ["Nombre", "Fono", "App Sim", None],
            [" Juan Pérez ", 987654321, None, "ignored"],
            [None, None, None, None],
            ["Rosa Muñoz", "22 333 4444", "56911112222", None],
        ],
    )

    rows = load_rows_from_workbook(path)

    assert rows == [
        {"Nombre": "Juan Pérez", "Fono": 987654321, "App Sim": None},
        {"Nombre": "Rosa Muñoz", "Fono": "22 333 4444", "App Sim": "56911112222"},
    ]


def test_load_rows_from_workbook_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_rows_from_workbook(tmp_path / "missing.xlsx")


def test_load_rows_from_csv_skips_blank_rows(tmp_path: Path):
    path = tmp_path / "llamadas.csv"
    path.write_text("beneficiario,resultado\nJuan Perez,Exitoso\n,\nRosa Muñoz,No contesta\n", encoding="utf-8")

    rows = load_rows_from_csv(path)

    assert [row["beneficiario"] for row in rows] == ["Juan Perez", "Rosa Muñoz"]


def test_load_rows_from_file_rejects_unknown_formats(tmp_path: Path):
    path = tmp_path / "data.txt"
    path.write_text("x", encoding="utf-8")
    with pytest.raises(ValueError):
        load_rows_from_file(path)


def test_load_collections_without_store_returns_empty(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(collections_repository, "get_supabase_client", lambda: None)

    collections = load_collections()

    assert collections.is_empty


def test_load_collections_pages_through_tables(monkeypatch: pytest.MonkeyPatch):
    beneficiaries = [{"id": f"b{i}", "nombre": f"Persona {i}"} for i in range(5)]
    client = _FakeClient({"beneficiaries": beneficiaries, "operators": [{"id": "op-1"}]})
    monkeypatch.setattr(collections_repository, "get_supabase_client", lambda: client)
    monkeypatch.setattr(collections_repository, "PAGE_SIZE", 2)

    collections = load_collections()

    assert [row["id"] for row in collections.beneficiaries] == ["b0", "b1", "b2", "b3", "b4"]
    assert collections.operators == ({"id": "op-1"},)
    assert collections.calls == ()


def test_load_collections_raises_connection_error(monkeypatch: pytest.MonkeyPatch):
    client = _FakeClient({}, failing={"call_events"})
    monkeypatch.setattr(collections_repository, "get_supabase_client", lambda: client)

    with pytest.raises(ConnectionError):
        load_collections()
