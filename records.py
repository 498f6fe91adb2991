# records.py
"""
Canonical patient record + field reconciliation.

One record shape is used everywhere in the app. Each backend names the same
19 fields differently:

- canonical dicts / local store: camelCase (fullName, tygIndex, ...)
- relational columns: snake_case (full_name, tyg_index, ...)
- spreadsheet rows: human-readable headers (Full Name, TyG Index, ...)
- spreadsheet JSON payload: the endpoint's own keys (diabetes, aiRecommendations)

record_from_mapping() reads any of those, even mixed within one dict.
"""

import math
import re
import threading
import time
from dataclasses import dataclass, fields as dc_fields
from datetime import datetime, timezone
from numbers import Real
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from errors import InvalidInputError

# attr, canonical key, column, sheet header, sheet payload key, kind
FIELD_MAP = [
    ("id", "id", "id", "ID", "id", "text"),
    ("full_name", "fullName", "full_name", "Full Name", "fullName", "text"),
    ("age", "age", "age", "Age", "age", "int"),
    ("gender", "gender", "gender", "Gender", "gender", "text"),
    ("weight", "weight", "weight", "Weight (kg)", "weight", "float"),
    ("height", "height", "height", "Height (m)", "height", "float"),
    ("glucose", "glucose", "glucose", "Glucose (mg/dL)", "glucose", "float"),
    ("triglycerides", "triglycerides", "triglycerides", "Triglycerides (mg/dL)", "triglycerides", "float"),
    ("hdl", "hdl", "hdl", "HDL (mg/dL)", "hdl", "float"),
    ("hba1c", "hba1c", "hba1c", "HbA1c (%)", "hba1c", "float"),
    ("diabetes_status", "diabetesStatus", "diabetes_status", "Diabetes Status", "diabetes", "text"),
    ("bmi", "bmi", "bmi", "BMI", "bmi", "float"),
    ("tyg_index", "tygIndex", "tyg_index", "TyG Index", "tygIndex", "float"),
    ("tg_hdl_ratio", "tgHdlRatio", "tg_hdl_ratio", "TG/HDL Ratio", "tgHdlRatio", "float"),
    ("risk_level", "riskLevel", "risk_level", "Risk Level", "riskLevel", "text"),
    ("risk_description", "riskDescription", "risk_description", "Risk Description", "riskDescription", "text"),
    ("recommendation_text", "recommendationText", "ai_recommendations", "AI Recommendations", "aiRecommendations", "text"),
    ("created_at", "createdAt", "created_at", "Created At", "createdAt", "text"),
    ("created_by", "createdBy", "created_by", "Created By", "createdBy", "text"),
]

SHEET_HEADERS = [f[3] for f in FIELD_MAP]
FIELD_KINDS = {f[0]: f[5] for f in FIELD_MAP}

# Older revisions of the app wrote these names too
_EXTRA_ALIASES = {
    "full_name": ["name"],
    "diabetes_status": ["diabetes"],
    "tyg_index": ["tyg"],
    "tg_hdl_ratio": ["tghdl"],
    "risk_level": ["risk"],
    "recommendation_text": ["recommendations", "ai_recommendations", "aiRecommendations"],
}


def _norm(key: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(key).lower())


_ALIASES: Dict[str, str] = {}
for _attr, _canon, _col, _header, _sheet_key, _kind in FIELD_MAP:
    for _name in (_attr, _canon, _col, _header, _sheet_key, *_EXTRA_ALIASES.get(_attr, [])):
        _ALIASES.setdefault(_norm(_name), _attr)


def canonical_attr(key: Any) -> Optional[str]:
    """Record attribute for a backend field name, or None when unknown."""
    return _ALIASES.get(_norm(key))


# -------------------------
# Value helpers
# -------------------------
def is_finite_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _to_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    if number is None:
        return None
    return int(number) if number.is_integer() else None


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # spreadsheets hand ids back as numbers
        return str(int(value))
    return str(value)


_COERCE = {"text": _to_text, "int": _to_int, "float": _to_float}


# -------------------------
# Timestamps + ids
# -------------------------
_id_lock = threading.Lock()
_last_id = 0


def new_record_id() -> str:
    """Milliseconds since the epoch, strictly increasing within this process."""
    global _last_id
    with _id_lock:
        _last_id = max(int(time.time() * 1000), _last_id + 1)
        return str(_last_id)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_created_at(value: Any) -> Optional[datetime]:
    if isinstance(value, pd.Timestamp):
        dt = value.to_pydatetime()
    elif isinstance(value, datetime):
        dt = value
    else:
        text = _to_text(value).strip()
        if not text:
            return None
        # accepts Z, +00 and +00:00 offsets and any fraction length
        stamp = pd.to_datetime(text, errors="coerce", utc=True)
        if pd.isna(stamp):
            return None
        dt = stamp.to_pydatetime()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def sort_records(records: Iterable["PatientRecord"]) -> List["PatientRecord"]:
    """Most recent first; equal or unparseable timestamps keep insertion order."""
    return sorted(
        records,
        key=lambda r: parse_created_at(r.created_at) or _OLDEST,
        reverse=True,
    )


# -------------------------
# Model
# -------------------------
@dataclass
class PatientInput:
    full_name: str
    age: int
    gender: str
    weight: float
    height: float
    glucose: float
    triglycerides: float
    hdl: float
    hba1c: float
    diabetes_status: str

    def validate(self) -> "PatientInput":
        bad: List[str] = []
        for name in ("full_name", "gender", "diabetes_status"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                bad.append(name)
        if not (is_finite_number(self.age) and float(self.age).is_integer() and self.age > 0):
            bad.append("age")
        for name in ("weight", "height", "glucose", "triglycerides", "hdl"):
            value = getattr(self, name)
            if not (is_finite_number(value) and value > 0):
                bad.append(name)
        if not (is_finite_number(self.hba1c) and self.hba1c >= 0):
            bad.append("hba1c")
        if bad:
            raise InvalidInputError("Please fill in all required fields: " + ", ".join(bad), fields=bad)
        return self


@dataclass(frozen=True)
class Metrics:
    bmi: float
    tyg_index: float
    tg_hdl_ratio: float


@dataclass(frozen=True)
class RiskCategory:
    level: str
    description: str
    color: str
    badge: str


@dataclass
class PatientRecord:
    id: str = ""
    full_name: str = ""
    age: Optional[int] = None
    gender: str = ""
    weight: Optional[float] = None
    height: Optional[float] = None
    glucose: Optional[float] = None
    triglycerides: Optional[float] = None
    hdl: Optional[float] = None
    hba1c: Optional[float] = None
    diabetes_status: str = ""
    bmi: Optional[float] = None
    tyg_index: Optional[float] = None
    tg_hdl_ratio: Optional[float] = None
    risk_level: str = ""
    risk_description: str = ""
    recommendation_text: str = ""
    created_at: str = ""
    created_by: str = ""

    def ensure_identity(self) -> "PatientRecord":
        """Fill in id and created_at when a backend receives a record without them."""
        if not self.id:
            self.id = new_record_id()
        if not self.created_at:
            self.created_at = utc_now_iso()
        return self

    @property
    def has_metrics(self) -> bool:
        return None not in (self.bmi, self.tyg_index, self.tg_hdl_ratio)

    def patient_input(self) -> PatientInput:
        return PatientInput(
            full_name=self.full_name,
            age=self.age,
            gender=self.gender,
            weight=self.weight,
            height=self.height,
            glucose=self.glucose,
            triglycerides=self.triglycerides,
            hdl=self.hdl,
            hba1c=self.hba1c,
            diabetes_status=self.diabetes_status,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {canon: getattr(self, attr) for attr, canon, *_ in FIELD_MAP}

    def to_columns(self) -> Dict[str, Any]:
        return {col: getattr(self, attr) for attr, _, col, *_ in FIELD_MAP}

    def to_sheet_payload(self) -> Dict[str, Any]:
        payload = {}
        for attr, _, _, _, key, _ in FIELD_MAP:
            value = getattr(self, attr)
            payload[key] = "" if value is None else value
        return payload

    def to_sheet_row(self) -> List[Any]:
        return list(self.to_sheet_payload().values())


def record_from_mapping(data: Mapping[str, Any]) -> PatientRecord:
    """
    Build a record from any backend's field names.

    Unknown keys are ignored. Missing text fields become "" and missing
    numeric fields stay None (not computed yet), never 0. When two aliases
    of one field are present the first non-empty value wins.
    """
    values: Dict[str, Any] = {}
    for key, raw in data.items():
        attr = canonical_attr(key)
        if attr is None:
            continue
        value = _COERCE[FIELD_KINDS[attr]](raw)
        if values.get(attr) in (None, "") and value not in (None, ""):
            values[attr] = value
    record = PatientRecord()
    for f in dc_fields(record):
        if f.name in values:
            setattr(record, f.name, values[f.name])
    return record


def record_from_sheet_row(headers: List[Any], row: List[Any]) -> PatientRecord:
    return record_from_mapping(dict(zip(headers, row)))


def build_record(
    patient: PatientInput,
    metrics: Metrics,
    risk: RiskCategory,
    created_by: str,
    recommendation_text: str = "",
    record_id: str = "",
    created_at: str = "",
) -> PatientRecord:
    return PatientRecord(
        id=record_id or new_record_id(),
        full_name=patient.full_name.strip(),
        age=int(patient.age),
        gender=patient.gender,
        weight=float(patient.weight),
        height=float(patient.height),
        glucose=float(patient.glucose),
        triglycerides=float(patient.triglycerides),
        hdl=float(patient.hdl),
        hba1c=float(patient.hba1c),
        diabetes_status=patient.diabetes_status,
        bmi=metrics.bmi,
        tyg_index=metrics.tyg_index,
        tg_hdl_ratio=metrics.tg_hdl_ratio,
        risk_level=risk.level,
        risk_description=risk.description,
        recommendation_text=recommendation_text or "",
        created_at=created_at or utc_now_iso(),
        created_by=created_by or "",
    )
