import dataclasses
import json

import pytest
import requests

from errors import PersistError
from records import FIELD_MAP, SHEET_HEADERS
from sheets import SpreadsheetEndpoint

URL = "https://sheets.example.test/exec"
SHEET_KEYS = [f[4] for f in FIELD_MAP]


class FakeResponse:
    def __init__(self, body=None, text=None, status_code=200):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else json.dumps(body)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        return json.loads(self.text)


class FakeSheet:
    """Behaves like the deployed sheet script: appends rows, returns them keyed by endpoint names."""

    def __init__(self):
        self.rows = []
        self.calls = []
        self.closed = False

    def request(self, method, url, timeout=None, params=None, data=None, headers=None):
        self.calls.append({"method": method, "url": url, "params": params, "data": data, "timeout": timeout})
        if method == "GET" and params == {"action": "test"}:
            return FakeResponse(text="Google Apps Script is working!")
        if method == "GET" and params == {"action": "getPatients"}:
            data = [dict(zip(SHEET_KEYS, row)) for row in self.rows]
            return FakeResponse({"status": "success", "data": data})

        body = json.loads(data)
        if body["action"] == "savePatient":
            self.rows.append([body["data"][k] for k in SHEET_KEYS])
            return FakeResponse({"status": "success", "message": "Patient record saved successfully",
                                 "rowNumber": len(self.rows) + 1})
        if body["action"] == "bulkSave":
            for item in body["data"]:
                self.rows.append([item[k] for k in SHEET_KEYS])
            return FakeResponse({"status": "success", "message": "saved", "count": len(body["data"])})
        return FakeResponse({"status": "error", "message": "Invalid action"})

    def close(self):
        self.closed = True


class StubSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc

    def request(self, method, url, **kwargs):
        if self.exc:
            raise self.exc
        return self.response

    def close(self):
        pass


@pytest.fixture
def sheet():
    return FakeSheet()


@pytest.fixture
def endpoint(sheet):
    return SpreadsheetEndpoint(URL, timeout=5, session=sheet)


def test_ping(endpoint, sheet):
    assert endpoint.ping() == "Google Apps Script is working!"
    assert sheet.calls[0]["params"] == {"action": "test"}
    assert sheet.calls[0]["timeout"] == 5


def test_save_posts_endpoint_payload(endpoint, sheet, record):
    receipt = endpoint.save(record)
    assert receipt.backend == "sheets"
    assert receipt.row_number == 2
    body = json.loads(sheet.calls[0]["data"])
    assert body["action"] == "savePatient"
    assert body["data"]["fullName"] == record.full_name
    assert body["data"]["diabetes"] == record.diabetes_status
    assert body["data"]["aiRecommendations"] == record.recommendation_text


def test_round_trip_through_sheet(endpoint, record):
    endpoint.save(record)
    assert endpoint.list_records() == [record]


def test_list_sorts_and_reads_header_keys(sheet):
    older = {"Full Name": "Old", "Created At": "2024-01-01T00:00:00.000Z", "BMI": "21.5"}
    newer = {"Full Name": "New", "Created At": "2024-05-01T00:00:00.000Z", "BMI": ""}
    session = StubSession(FakeResponse({"status": "success", "data": [older, newer]}))
    records = SpreadsheetEndpoint(URL, session=session).list_records()
    assert [r.full_name for r in records] == ["New", "Old"]
    assert records[1].bmi == 21.5
    assert records[0].bmi is None


def test_bulk_save(endpoint, sheet, record):
    batch = [dataclasses.replace(record, id=str(i)) for i in range(3)]
    result = endpoint.bulk_save(batch)
    assert result.count == 3
    assert result.ok
    assert json.loads(sheet.calls[0]["data"])["action"] == "bulkSave"
    assert len(endpoint.list_records()) == 3


def test_bulk_save_of_nothing_skips_the_call(endpoint, sheet):
    assert endpoint.bulk_save([]).count == 0
    assert sheet.calls == []


def test_error_status_becomes_persist_error(record):
    session = StubSession(FakeResponse({"status": "error", "message": "Failed to save patient: quota"}))
    with pytest.raises(PersistError, match="quota"):
        SpreadsheetEndpoint(URL, session=session).save(record)


def test_malformed_json_becomes_persist_error():
    session = StubSession(FakeResponse(text="<html>Sign in</html>"))
    with pytest.raises(PersistError, match="malformed"):
        SpreadsheetEndpoint(URL, session=session).list_records()


def test_http_error_becomes_persist_error():
    session = StubSession(FakeResponse({"status": "error"}, status_code=500))
    with pytest.raises(PersistError):
        SpreadsheetEndpoint(URL, session=session).list_records()


def test_network_failure_becomes_persist_error(record):
    session = StubSession(exc=requests.ConnectionError("no route to host"))
    with pytest.raises(PersistError) as exc_info:
        SpreadsheetEndpoint(URL, session=session).save(record)
    assert exc_info.value.backend == "sheets"
    assert isinstance(exc_info.value.__cause__, requests.ConnectionError)


def test_close_closes_session(endpoint, sheet):
    endpoint.close()
    assert sheet.closed


def test_url_is_required():
    with pytest.raises(ValueError):
        SpreadsheetEndpoint("")
