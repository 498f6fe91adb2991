# service.py
"""
Application flow on top of the calculator core.

AppContext replaces the old module-level "current user" and client
handles: build it once per session with build_context(), pass it to every
operation, and close() it on logout.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import pandas as pd

from config import settings as load_settings
from errors import DuplicateRecordError, PersistError
from llm import RECOMMENDATION_UNAVAILABLE, generate_recommendations
from metrics import metrics_for
from records import FIELD_MAP, SHEET_HEADERS, PatientInput, PatientRecord, build_record
from sheets import SpreadsheetEndpoint
from storage import BulkSaveResult, LocalStore, RecordStore, RelationalStore, SaveReceipt
from triage import classify_risk

LOGGER = logging.getLogger(__name__)

BACKENDS = ("local", "relational", "sheets")


@dataclass
class AppContext:
    created_by: str
    store: RecordStore
    local: LocalStore
    cfg: Dict[str, str] = field(default_factory=dict)

    @property
    def has_fallback(self) -> bool:
        return self.store is not self.local

    def close(self) -> None:
        self.store.close()


@dataclass
class SaveOutcome:
    receipt: SaveReceipt
    fallback_used: bool = False
    error: str = ""


@dataclass
class LoadOutcome:
    records: List[PatientRecord]
    source: str
    error: str = ""
    # records saved to the session store during an outage, not yet on the primary
    pending: int = 0


def get_store(cfg: Dict[str, str], local: LocalStore) -> RecordStore:
    backend = (cfg.get("STORAGE_BACKEND") or "local").strip().lower()
    if backend == "local":
        return local
    if backend == "relational":
        return RelationalStore(cfg.get("DATABASE_URL", ""))
    if backend == "sheets":
        return SpreadsheetEndpoint(cfg.get("SHEETS_URL", ""), timeout=float(cfg.get("SHEETS_TIMEOUT") or 15))
    raise ValueError(f"Unknown STORAGE_BACKEND {backend!r}; expected one of {', '.join(BACKENDS)}")


def build_context(cfg: Optional[Dict[str, str]] = None, created_by: str = "") -> AppContext:
    cfg = cfg if cfg is not None else load_settings()
    local = LocalStore()
    store = get_store(cfg, local)
    LOGGER.info("Using %s record store", store.name)
    return AppContext(
        created_by=created_by or cfg.get("CREATED_BY", ""),
        store=store,
        local=local,
        cfg=cfg,
    )


# -------------------------
# Assessment
# -------------------------
def assess(ctx: AppContext, patient: PatientInput, with_recommendations: bool = True) -> PatientRecord:
    """Validate, compute, classify and (optionally) write advice. The record is not saved."""
    metrics = metrics_for(patient)
    risk = classify_risk(metrics.tyg_index)
    text = generate_recommendations(patient, metrics, risk, ctx.cfg) if with_recommendations else ""
    return build_record(patient, metrics, risk, created_by=ctx.created_by, recommendation_text=text)


# -------------------------
# Persistence with fallback
# -------------------------
def save_record(ctx: AppContext, record: PatientRecord) -> SaveOutcome:
    """
    Save on the primary store. When a networked primary fails, the record is
    written to the session store instead and the primary's error is kept on
    the outcome so the UI can show it.
    """
    if not record.recommendation_text:
        record.recommendation_text = RECOMMENDATION_UNAVAILABLE

    try:
        return SaveOutcome(receipt=ctx.store.save(record))
    except DuplicateRecordError:
        raise
    except PersistError as exc:
        if not ctx.has_fallback:
            raise
        LOGGER.warning("Save on %s failed, writing to local store: %s", ctx.store.name, exc)
        try:
            receipt = ctx.local.save(record)
        except PersistError as local_exc:
            raise PersistError(
                f"{exc}; local fallback also failed: {local_exc}", backend=ctx.store.name
            ) from local_exc
        return SaveOutcome(receipt=receipt, fallback_used=True, error=str(exc))


def load_records(ctx: AppContext) -> LoadOutcome:
    try:
        records = ctx.store.list_records()
    except PersistError as exc:
        if not ctx.has_fallback:
            raise
        LOGGER.warning("Loading from %s failed, showing local records: %s", ctx.store.name, exc)
        return LoadOutcome(records=ctx.local.list_records(), source=ctx.local.name, error=str(exc))

    pending = len(ctx.local) if ctx.has_fallback else 0
    if pending:
        LOGGER.warning("%d records saved during an outage are not on %s yet", pending, ctx.store.name)
    return LoadOutcome(records=records, source=ctx.store.name, pending=pending)


def bulk_save_records(store: RecordStore, records: Iterable[PatientRecord]) -> BulkSaveResult:
    """Use the store's bulk call when it has one, otherwise save one at a time and collect failures."""
    records = list(records)
    if store.supports_bulk_save:
        return store.bulk_save(records)

    LOGGER.info("%s has no bulk save; saving %d records one by one", store.name, len(records))
    result = BulkSaveResult(backend=store.name)
    for record in records:
        try:
            store.save(record)
        except PersistError as exc:
            result.failures.append((record.id, str(exc)))
            continue
        result.count += 1
    return result


def sync_records(ctx: AppContext, target: RecordStore) -> BulkSaveResult:
    """Copy every record of the primary store to another store (e.g. the spreadsheet)."""
    records = ctx.store.list_records()
    if not records:
        return BulkSaveResult(backend=target.name)
    return bulk_save_records(target, records)


def push_local_records(ctx: AppContext) -> BulkSaveResult:
    """
    Copy records written to the session store during an outage onto the
    primary store. Records the primary accepted, or already holds, leave the
    session store; anything else stays for the next attempt.
    """
    if not ctx.has_fallback or not len(ctx.local):
        return BulkSaveResult(backend=ctx.store.name)

    records = ctx.local.list_records()
    result = bulk_save_records(ctx.store, records)
    kept = {record_id for record_id, message in result.failures if "already exists" not in message}
    ctx.local.discard(r.id for r in records if r.id not in kept)
    return result


# -------------------------
# Listing helpers
# -------------------------
def filter_records(records: Iterable[PatientRecord], term: str) -> List[PatientRecord]:
    term = (term or "").strip().lower()
    if not term:
        return list(records)

    def haystack(r: PatientRecord) -> str:
        parts = [r.full_name, r.gender, r.risk_level, r.created_by, r.created_at, r.age, r.bmi, r.tyg_index]
        return " ".join("" if p is None else str(p) for p in parts).lower()

    return [r for r in records if term in haystack(r)]


def records_to_frame(records: Iterable[PatientRecord]) -> pd.DataFrame:
    rows = [[getattr(r, attr) for attr, *_ in FIELD_MAP] for r in records]
    return pd.DataFrame(rows, columns=SHEET_HEADERS)


def export_csv(records: Iterable[PatientRecord]) -> str:
    return records_to_frame(records).to_csv(index=False)
