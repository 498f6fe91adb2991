# sheets.py
"""
Spreadsheet-backed HTTP endpoint.

Small JSON protocol in front of a "Patient Records" sheet:
  GET  ?action=test                         -> plain text liveness message
  GET  ?action=getPatients                  -> {status, data | message}
  POST {action: "savePatient", data: {...}} -> {status, message, rowNumber?}
  POST {action: "bulkSave", data: [...]}    -> {status, message, count}
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

from errors import PersistError
from records import PatientRecord, record_from_mapping, sort_records
from storage import BulkSaveResult, RecordStore, SaveReceipt

LOGGER = logging.getLogger(__name__)


class SpreadsheetEndpoint(RecordStore):
    name = "sheets"
    supports_bulk_save = True

    def __init__(self, url: str, timeout: float = 15.0, session: Optional[requests.Session] = None):
        if not url:
            raise ValueError("SpreadsheetEndpoint needs the deployed endpoint URL")
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    # -------------------------
    # HTTP helpers
    # -------------------------
    def _request(self, method: str, **kwargs) -> requests.Response:
        try:
            resp = self.session.request(method, self.url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
        except requests.RequestException as exc:
            LOGGER.warning("Spreadsheet endpoint %s request failed: %s", method, exc)
            raise PersistError(f"Spreadsheet endpoint unreachable: {exc}", backend=self.name) from exc
        return resp

    def _json(self, resp: requests.Response) -> Dict[str, Any]:
        try:
            body = resp.json()
        except ValueError as exc:
            raise PersistError("Spreadsheet endpoint returned malformed JSON", backend=self.name) from exc
        if not isinstance(body, dict):
            raise PersistError("Spreadsheet endpoint returned an unexpected payload", backend=self.name)
        if body.get("status") != "success":
            message = body.get("message") or "Spreadsheet endpoint reported an error"
            LOGGER.warning("Spreadsheet endpoint error: %s", message)
            raise PersistError(str(message), backend=self.name)
        return body

    def _post(self, action: str, data: Any) -> Dict[str, Any]:
        # Apps Script web apps skip the CORS preflight for text/plain bodies
        resp = self._request(
            "POST",
            data=json.dumps({"action": action, "data": data}),
            headers={"Content-Type": "text/plain;charset=utf-8"},
        )
        return self._json(resp)

    # -------------------------
    # RecordStore
    # -------------------------
    def close(self) -> None:
        self.session.close()

    def ping(self) -> str:
        resp = self._request("GET", params={"action": "test"})
        return resp.text

    def save(self, record: PatientRecord) -> SaveReceipt:
        record.ensure_identity()
        body = self._post("savePatient", record.to_sheet_payload())
        row_number = body.get("rowNumber")
        return SaveReceipt(
            backend=self.name,
            record_id=record.id,
            message=body.get("message", ""),
            row_number=int(row_number) if isinstance(row_number, (int, float)) else None,
        )

    def list_records(self) -> List[PatientRecord]:
        body = self._json(self._request("GET", params={"action": "getPatients"}))
        data = body.get("data") or []
        if not isinstance(data, list):
            raise PersistError("Spreadsheet endpoint returned non-list patient data", backend=self.name)
        return sort_records(record_from_mapping(item) for item in data if isinstance(item, dict))

    def bulk_save(self, records: Iterable[PatientRecord]) -> BulkSaveResult:
        """The sheet appends every row in one call, so success covers all of them."""
        records = [r.ensure_identity() for r in records]
        if not records:
            return BulkSaveResult(backend=self.name)
        body = self._post("bulkSave", [r.to_sheet_payload() for r in records])
        count = body.get("count")
        return BulkSaveResult(
            backend=self.name,
            count=int(count) if isinstance(count, (int, float)) else len(records),
        )
