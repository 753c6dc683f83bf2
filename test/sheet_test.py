import pytest
import requests
from datetime import datetime, timezone

from utils import sheet
from utils.sheet import (
    PrivateSheetError,
    SheetFetchError,
    build_endpoints,
    fetch_punches,
    parse_punches,
    parse_timestamp,
)

CSV_TEXT = (
    "Date,Time,Card,Name\n"
    "3/12/2025,08:00:00,8050134,\"Doe, John\"\n"
    "2/12/2025,11:21:12,0050133,มานี มีพะโล้\n"
    "3/12/2025,09:00:00,8050135,Extra,unused\n"
    "3/12/2025,09:30:00,8050136\n"
    "not-a-date,10:00,1,Nobody\n"
    "Date,Time,Card,Name\n"
)

ENDPOINTS = [("first", "https://example.test/first"), ("second", "https://example.test/second")]


class FakeResponse:
    def __init__(self, status_code=200, text=""):
        self.status_code = status_code
        self.text = text
        self.encoding = "utf-8"

    @property
    def ok(self):
        return self.status_code < 400


def fake_get(responses, calls):
    def _get(url, timeout=None):
        calls.append(url)
        result = responses[url]
        if isinstance(result, Exception):
            raise result
        return result
    return _get


def test_parse_timestamp_day_first_by_default():
    assert parse_timestamp("2/12/2025", "11:21:12") == datetime(2025, 12, 2, 11, 21, 12)

def test_parse_timestamp_unambiguous_day():
    assert parse_timestamp("13/02/2025", "08:00") == datetime(2025, 2, 13, 8, 0)
    assert parse_timestamp("02/13/2025", "08:00") == datetime(2025, 2, 13, 8, 0)

def test_parse_timestamp_buddhist_year():
    assert parse_timestamp("14/2/2568", "23:05:00") == datetime(2025, 2, 14, 23, 5)

def test_parse_timestamp_iso():
    assert parse_timestamp("2025-02-14", "08:05") == datetime(2025, 2, 14, 8, 5)
    assert parse_timestamp("2025-02-14T07:00:00", "") == datetime(2025, 2, 14, 7, 0)

def test_parse_timestamp_utc_suffix():
    expected = datetime(2025, 2, 14, 7, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
    assert parse_timestamp("2025-02-14T07:00:00Z", "") == expected

def test_parse_timestamp_dashed_day_first():
    assert parse_timestamp("14-02-2025", "06:30:15") == datetime(2025, 2, 14, 6, 30, 15)

def test_parse_timestamp_missing_time_is_midnight():
    assert parse_timestamp("14/02/2025", "") == datetime(2025, 2, 14)

def test_parse_timestamp_rejects_invalid():
    assert parse_timestamp("31/02/2025", "08:00") is None
    assert parse_timestamp("abc", "08:00") is None
    assert parse_timestamp("1/2025", "08:00") is None
    assert parse_timestamp("", "08:00") is None
    assert parse_timestamp("1/1/1970", "00:00:00") is None

def test_parse_punches():
    punches = parse_punches(CSV_TEXT)

    assert [p.person_name for p in punches] == ["Doe, John", "มานี มีพะโล้", "Extra"]
    assert punches[0].person_id == "8050134"
    assert punches[1].person_id == "0050133"
    assert punches[1].timestamp == datetime(2025, 12, 2, 11, 21, 12)
    assert punches[2].timestamp == datetime(2025, 12, 3, 9, 0)

def test_parse_punches_empty_text():
    assert parse_punches("") == []
    assert parse_punches("Date,Time,Card,Name\n") == []

def test_parse_punches_extra_column_on_first_row():
    text = (
        "Date,Time,Card,Name\n"
        "14/02/2025,08:00:00,8050133,Manee,late\n"
        "14/02/2025,16:05:00,8050133,Manee\n"
    )

    punches = parse_punches(text)

    assert [p.person_name for p in punches] == ["Manee", "Manee"]
    assert [p.timestamp for p in punches] == [datetime(2025, 2, 14, 8, 0), datetime(2025, 2, 14, 16, 5)]

def test_build_endpoints():
    endpoints = build_endpoints("sheet-id", "แสดงผล", cache_buster=42)

    assert [name for name, _ in endpoints] == ["Sheet Export", "Sheet Gviz"]
    export_url = endpoints[0][1]
    assert export_url.startswith("https://docs.google.com/spreadsheets/d/sheet-id/export?format=csv")
    assert "sheet=%E0%B9%81" in export_url
    assert export_url.endswith("&_t=42")
    assert "/gviz/tq?tqx=out:csv" in endpoints[1][1]

def test_fetch_falls_back_to_next_endpoint(monkeypatch):
    calls = []
    responses = {
        "https://example.test/first": FakeResponse(500),
        "https://example.test/second": FakeResponse(200, CSV_TEXT),
    }
    monkeypatch.setattr(sheet.requests, "get", fake_get(responses, calls))

    punches = fetch_punches(ENDPOINTS)

    assert len(calls) == 2
    assert [p.person_name for p in punches] == ["มานี มีพะโล้", "Doe, John", "Extra"]

def test_fetch_private_sheet_stops_immediately(monkeypatch):
    calls = []
    responses = {
        "https://example.test/first": FakeResponse(403),
        "https://example.test/second": FakeResponse(200, CSV_TEXT),
    }
    monkeypatch.setattr(sheet.requests, "get", fake_get(responses, calls))

    with pytest.raises(PrivateSheetError):
        fetch_punches(ENDPOINTS)
    assert len(calls) == 1

def test_fetch_login_page_is_private(monkeypatch):
    calls = []
    responses = {
        "https://example.test/first": FakeResponse(200, "<!DOCTYPE html><html>Sign in</html>"),
        "https://example.test/second": FakeResponse(200, CSV_TEXT),
    }
    monkeypatch.setattr(sheet.requests, "get", fake_get(responses, calls))

    with pytest.raises(PrivateSheetError):
        fetch_punches(ENDPOINTS)

def test_fetch_skips_endpoint_without_valid_punches(monkeypatch):
    calls = []
    responses = {
        "https://example.test/first": FakeResponse(200, "Date,Time,Card,Name\nbad,bad,bad,bad\n"),
        "https://example.test/second": FakeResponse(200, CSV_TEXT),
    }
    monkeypatch.setattr(sheet.requests, "get", fake_get(responses, calls))

    punches = fetch_punches(ENDPOINTS)

    assert len(calls) == 2
    assert len(punches) == 3

def test_fetch_all_endpoints_fail(monkeypatch):
    calls = []
    responses = {
        "https://example.test/first": requests.ConnectionError("offline"),
        "https://example.test/second": FakeResponse(502),
    }
    monkeypatch.setattr(sheet.requests, "get", fake_get(responses, calls))

    with pytest.raises(SheetFetchError) as excinfo:
        fetch_punches(ENDPOINTS)
    assert not isinstance(excinfo.value, PrivateSheetError)
    assert len(calls) == 2
