# storage.py
"""
Record stores.

Every backend implements RecordStore so the app can pick one at startup
(see service.get_store) and fall back to the process-local store when a
networked backend fails:

- LocalStore: in-process, lives as long as the session
- RelationalStore: SQLAlchemy Core table, SQLite locally or any DATABASE_URL
- SpreadsheetEndpoint (sheets.py): HTTP JSON endpoint in front of a spreadsheet
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import (
    create_engine, MetaData, Table, Column,
    Integer, Float, String, Text
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import NullPool
from sqlalchemy.sql import select, insert

from errors import DuplicateRecordError, PersistError
from records import PatientRecord, record_from_mapping, sort_records

LOGGER = logging.getLogger(__name__)


@dataclass
class SaveReceipt:
    backend: str
    record_id: str
    message: str = ""
    row_number: Optional[int] = None


@dataclass
class BulkSaveResult:
    backend: str
    count: int = 0
    # (record id, error message) for each record that was not written
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class RecordStore(ABC):
    name = "store"
    supports_bulk_save = False

    @abstractmethod
    def save(self, record: PatientRecord) -> SaveReceipt:
        raise NotImplementedError

    @abstractmethod
    def list_records(self) -> List[PatientRecord]:
        """All records, most recent created_at first."""
        raise NotImplementedError

    def bulk_save(self, records: Iterable[PatientRecord]) -> BulkSaveResult:
        raise PersistError(f"{self.name} does not support bulk save", backend=self.name)

    def close(self) -> None:
        """Release connections; the store is not used afterwards."""


# -------------------------
# Local (session) store
# -------------------------
class LocalStore(RecordStore):
    """Keeps canonical camelCase dicts in memory, the way the browser demo used localStorage."""

    name = "local"

    def __init__(self):
        self._rows: List[Dict] = []

    def save(self, record: PatientRecord) -> SaveReceipt:
        record.ensure_identity()
        if any(row.get("id") == record.id for row in self._rows):
            raise DuplicateRecordError(f"Record {record.id} already exists", backend=self.name)
        self._rows.append(record.to_dict())
        return SaveReceipt(
            backend=self.name,
            record_id=record.id,
            message="Patient record saved successfully",
            row_number=len(self._rows),
        )

    def list_records(self) -> List[PatientRecord]:
        return sort_records(record_from_mapping(row) for row in self._rows)

    def discard(self, record_ids: Iterable[str]) -> int:
        """Drop the given ids (e.g. once they reached the primary store); returns how many went."""
        ids = set(record_ids)
        before = len(self._rows)
        self._rows = [row for row in self._rows if row.get("id") not in ids]
        return before - len(self._rows)

    def __len__(self) -> int:
        return len(self._rows)


# -------------------------
# Relational store
# -------------------------
metadata = MetaData()

patient_records = Table(
    "patient_records", metadata,
    Column("row_id", Integer, primary_key=True, autoincrement=True),
    Column("id", String(40), nullable=False, unique=True),
    Column("full_name", String(200), nullable=False),
    Column("age", Integer, nullable=True),
    Column("gender", String(30), nullable=True),
    Column("weight", Float, nullable=True),
    Column("height", Float, nullable=True),
    Column("glucose", Float, nullable=True),
    Column("triglycerides", Float, nullable=True),
    Column("hdl", Float, nullable=True),
    Column("hba1c", Float, nullable=True),
    Column("diabetes_status", String(60), nullable=True),
    Column("bmi", Float, nullable=True),
    Column("tyg_index", Float, nullable=True),
    Column("tg_hdl_ratio", Float, nullable=True),
    Column("risk_level", String(30), nullable=True),
    Column("risk_description", String(200), nullable=True),
    Column("ai_recommendations", Text, nullable=True),
    Column("created_at", String(40), nullable=False),
    Column("created_by", String(200), nullable=True),
)


def make_engine(db_url: str):
    if db_url.startswith("sqlite"):
        return create_engine(db_url, connect_args={"check_same_thread": False})
    return create_engine(db_url, pool_pre_ping=True, poolclass=NullPool)


class RelationalStore(RecordStore):
    name = "relational"
    supports_bulk_save = True

    def __init__(self, db_url: str = "", engine=None):
        if engine is None and not db_url:
            raise ValueError("RelationalStore needs a database URL or an engine")
        self.engine = engine if engine is not None else make_engine(db_url)
        self._initialized = False

    def init_db(self) -> None:
        if not self._initialized:
            metadata.create_all(self.engine)
            self._initialized = True

    def close(self) -> None:
        self.engine.dispose()

    def _fail(self, action: str, exc: Exception) -> PersistError:
        LOGGER.warning("Relational store could not %s: %s", action, exc)
        return PersistError(f"Database error while trying to {action}: {exc}", backend=self.name)

    def save(self, record: PatientRecord) -> SaveReceipt:
        record.ensure_identity()
        try:
            self.init_db()
            with self.engine.begin() as conn:
                result = conn.execute(insert(patient_records).values(**record.to_columns()))
                row_id = result.inserted_primary_key[0] if result.inserted_primary_key else None
        except IntegrityError as exc:
            raise DuplicateRecordError(f"Record {record.id} already exists", backend=self.name) from exc
        except SQLAlchemyError as exc:
            raise self._fail("save patient record", exc) from exc
        return SaveReceipt(
            backend=self.name,
            record_id=record.id,
            message="Patient record saved successfully",
            row_number=row_id,
        )

    def list_records(self) -> List[PatientRecord]:
        try:
            self.init_db()
            with self.engine.begin() as conn:
                rows = conn.execute(
                    select(patient_records).order_by(patient_records.c.row_id)
                ).fetchall()
        except SQLAlchemyError as exc:
            raise self._fail("load patient records", exc) from exc
        return sort_records(record_from_mapping(dict(r._mapping)) for r in rows)

    def bulk_save(self, records: Iterable[PatientRecord]) -> BulkSaveResult:
        """Each record commits on its own; duplicates are reported, not fatal."""
        result = BulkSaveResult(backend=self.name)
        try:
            self.init_db()
            with self.engine.connect() as conn:
                for record in records:
                    record.ensure_identity()
                    try:
                        with conn.begin():
                            conn.execute(insert(patient_records).values(**record.to_columns()))
                    except IntegrityError:
                        result.failures.append((record.id, f"Record {record.id} already exists"))
                        continue
                    result.count += 1
        except SQLAlchemyError as exc:
            raise self._fail("bulk save patient records", exc) from exc
        return result
