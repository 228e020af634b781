"""Tests for spreadsheet facility import."""
import io
import json

import pytest
from openpyxl import Workbook

from app.tracker.db import session_scope
from app.tracker.models import AuditEvent
from app.tracker.modules.facilities.importer import (
    ImportFileError,
    clean_rows,
    map_columns,
    parse_facility_file,
    rows_from_table,
)
from app.tracker.modules.facilities.models import Facility


def _xlsx(rows):
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def test_headers_match_by_keyword_containment():
    cols = map_columns(["Facility Name", "Facility Type", "Street Address", "City", "ST/State", "Zip Code", "Company"])
    assert cols["facility_name"] == 0
    assert cols["type"] == 1
    assert cols["address"] == 2
    assert cols["state"] == 4
    assert cols["zip"] == 5
    assert cols["company"] == 6
    assert cols["county"] is None
    assert cols["team"] is None


def test_missing_required_columns():
    with pytest.raises(ImportFileError, match='Missing "Facility Name" column'):
        map_columns(["Kind", "City"])
    with pytest.raises(ImportFileError, match='Missing "Type" column'):
        map_columns(["Facility", "City"])


def test_rows_skip_blank_names_and_normalize_cells():
    rows = rows_from_table(
        [
            ["Facility Name", "Type", "Zip"],
            ["Rose Garden", "SNF", 97201.0],
            ["", "AL", "97202"],
            [None, "IL", None],
            ["  Maple  ", None],
        ]
    )
    assert [r["facility_name"] for r in rows] == ["Rose Garden", "Maple"]
    assert rows[0]["zip"] == "97201"
    assert rows[1]["type"] == ""
    assert rows[1]["zip"] is None


def test_header_only_table_is_rejected():
    with pytest.raises(ImportFileError, match="header row and at least one data row"):
        rows_from_table([["Facility Name", "Type"]])


def test_parse_csv():
    data = "\ufeffFacility Name,Type,City\r\nRose Garden,SNF,Portland\r\n,,\r\nMaple,AL,Salem\r\n".encode("utf-8")
    rows = parse_facility_file("facilities.CSV", data)
    assert [(r["facility_name"], r["type"], r["city"]) for r in rows] == [
        ("Rose Garden", "SNF", "Portland"),
        ("Maple", "AL", "Salem"),
    ]


def test_parse_xlsx():
    data = _xlsx([["Name", "Type", "Team"], ["Rose Garden", "SNF", "North"], ["Maple", "Hospice", None]])
    rows = parse_facility_file("f.xlsx", data)
    assert rows[0] == {
        "facility_name": "Rose Garden",
        "type": "SNF",
        "address": None,
        "city": None,
        "state": None,
        "zip": None,
        "county": None,
        "company": None,
        "team": "North",
    }
    assert rows[1]["team"] is None


def test_parse_rejects_other_extensions_and_garbage():
    with pytest.raises(ImportFileError, match="Please select an Excel"):
        parse_facility_file("f.xls", b"whatever")
    with pytest.raises(ImportFileError, match="Failed to parse file"):
        parse_facility_file("f.xlsx", b"not a zip")
    with pytest.raises(ImportFileError, match="No valid data rows found"):
        parse_facility_file("f.csv", b"Facility Name,Type\n,SNF\n")


def test_clean_rows_revalidates_preview_payload():
    rows = clean_rows([{"facility_name": " A ", "type": "SNF", "city": ""}, {"facility_name": ""}, "junk"])
    assert rows == [
        {
            "facility_name": "A",
            "type": "SNF",
            "address": None,
            "city": None,
            "state": None,
            "zip": None,
            "county": None,
            "company": None,
            "team": None,
        }
    ]
    with pytest.raises(ImportFileError):
        clean_rows({"not": "a list"})


def test_import_requires_admin(client, login):
    login("Tim Nelson")
    r = client.get("/admin/import-facilities", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")


def test_import_preview_then_commit(app, client, login, csrf):
    login("Ada Admin")
    token = csrf()
    data = _xlsx([["Facility Name", "Type", "City"], ["Rose Garden", "SNF", "Portland"], ["Maple", "AL", "Salem"]])

    r = client.post(
        "/admin/import-facilities",
        data={"file": (io.BytesIO(data), "facilities.xlsx"), "csrf_token": token},
        content_type="multipart/form-data",
    )
    assert r.status_code == 200
    assert b"Rose Garden" in r.data
    with session_scope(app) as s:
        assert s.query(Facility).count() == 0

    rows = parse_facility_file("facilities.xlsx", data)
    r = client.post("/admin/import-facilities/commit", data={"rows_json": json.dumps(rows), "csrf_token": token})
    assert r.status_code == 200

    with session_scope(app) as s:
        names = sorted(f.facility_name for f in s.query(Facility).all())
        assert names == ["Maple", "Rose Garden"]
        assert s.query(AuditEvent).filter(AuditEvent.action == "facility.import").count() == 1


def test_import_preview_reports_parse_errors(client, login, csrf):
    login("Ada Admin")
    r = client.post(
        "/admin/import-facilities",
        data={"file": (io.BytesIO(b"Kind,City\nx,y\n"), "f.csv"), "csrf_token": csrf()},
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert b"Missing &#34;Facility Name&#34; column" in r.data or b'Missing "Facility Name" column' in r.data
