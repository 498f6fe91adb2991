import itertools
from datetime import datetime, timezone

import pytest

from errors import InvalidInputError
from records import (
    FIELD_MAP, SHEET_HEADERS, PatientRecord,
    new_record_id, parse_created_at, record_from_mapping,
    record_from_sheet_row, sort_records,
)


def test_nineteen_fixed_headers():
    assert SHEET_HEADERS == [
        "ID", "Full Name", "Age", "Gender", "Weight (kg)", "Height (m)",
        "Glucose (mg/dL)", "Triglycerides (mg/dL)", "HDL (mg/dL)", "HbA1c (%)",
        "Diabetes Status", "BMI", "TyG Index", "TG/HDL Ratio", "Risk Level",
        "Risk Description", "AI Recommendations", "Created At", "Created By",
    ]
    assert len(FIELD_MAP) == 19


def test_build_record_carries_metrics_and_risk(record):
    assert record.bmi == 24.7
    assert record.tyg_index == 9.1
    assert record.risk_level == "High Risk"
    assert record.created_by == "demo@healthcare.com"
    assert record.has_metrics


@pytest.mark.parametrize("serialize", ["to_dict", "to_columns", "to_sheet_payload"])
def test_round_trip_through_each_naming_scheme(record, serialize):
    data = getattr(record, serialize)()
    assert len(data) == 19
    assert record_from_mapping(data) == record


def test_round_trip_through_sheet_row(record):
    assert record_from_sheet_row(SHEET_HEADERS, record.to_sheet_row()) == record


def test_naming_schemes_differ(record):
    assert "fullName" in record.to_dict()
    assert "full_name" in record.to_columns()
    assert "ai_recommendations" in record.to_columns()
    payload = record.to_sheet_payload()
    assert payload["diabetes"] == "Prediabetes"
    assert payload["aiRecommendations"] == record.recommendation_text


def test_spreadsheet_values_are_coerced():
    r = record_from_mapping({"ID": 1700000000000.0, "Age": "45", "BMI": "22.9", "TyG Index": 8.82})
    assert r.id == "1700000000000"
    assert r.age == 45
    assert r.bmi == 22.9
    assert r.tyg_index == 8.82


def test_missing_fields_default_to_empty_text_and_absent_numbers():
    r = record_from_mapping({"fullName": "Ann", "bmi": "", "unknown": "x"})
    assert r.full_name == "Ann"
    assert r.gender == ""
    assert r.recommendation_text == ""
    assert r.bmi is None
    assert r.tyg_index is None
    assert r.age is None
    assert not r.has_metrics


def test_mixed_casing_from_different_revisions():
    r = record_from_mapping({
        "full_name": "Ann",
        "tygIndex": 8.4,
        "risk_level": "Moderate Risk",
        "Created At": "2024-01-01T00:00:00.000Z",
        "diabetes": "Type 2",
        "ai_recommendations": "Eat well",
        "fullname": "ignored, already set",
    })
    assert r.full_name == "Ann"
    assert r.tyg_index == 8.4
    assert r.risk_level == "Moderate Risk"
    assert r.created_at == "2024-01-01T00:00:00.000Z"
    assert r.diabetes_status == "Type 2"
    assert r.recommendation_text == "Eat well"


def test_first_non_empty_alias_wins():
    assert record_from_mapping({"fullName": "", "full_name": "Bob"}).full_name == "Bob"


def test_ensure_identity_fills_missing_id_and_timestamp():
    r = PatientRecord(full_name="Ann").ensure_identity()
    assert r.id.isdigit()
    assert r.created_at.endswith("Z")
    assert parse_created_at(r.created_at) is not None


def test_ids_are_strictly_increasing():
    ids = [int(new_record_id()) for _ in range(50)]
    assert ids == sorted(set(ids))


def test_parse_created_at_variants():
    assert parse_created_at("2024-03-01T10:00:00.000Z") == parse_created_at("2024-03-01T10:00:00+00:00")
    assert parse_created_at("2024-03-01T10:00:00").tzinfo is not None
    assert parse_created_at("not a date") is None
    assert parse_created_at("") is None


def test_parse_created_at_database_style_offsets():
    expected = datetime(2024, 3, 1, 10, 0, 0, 123450, tzinfo=timezone.utc)
    assert parse_created_at("2024-03-01 10:00:00.12345+00") == expected
    assert parse_created_at("2024-03-01T12:00:00.12345+02:00") == expected
    assert parse_created_at("2024-03-01T10:00:00.1Z") == expected.replace(microsecond=100000)


def test_sort_is_descending_for_every_insertion_order():
    stamps = ["2024-01-01T00:00:00.000Z", "2024-02-01T00:00:00.000Z", "2024-03-01T00:00:00.000Z"]
    for perm in itertools.permutations(stamps):
        records = [PatientRecord(id=str(i), created_at=s) for i, s in enumerate(perm)]
        assert [r.created_at for r in sort_records(records)] == list(reversed(stamps))


def test_sort_ties_keep_insertion_order_and_bad_dates_go_last():
    records = [
        PatientRecord(id="a", created_at="garbage"),
        PatientRecord(id="b", created_at="2024-01-01T00:00:00.000Z"),
        PatientRecord(id="c", created_at="2024-01-01T00:00:00.000Z"),
        PatientRecord(id="d", created_at="2024-05-01T00:00:00.000Z"),
    ]
    assert [r.id for r in sort_records(records)] == ["d", "b", "c", "a"]


def test_patient_input_validation_lists_every_bad_field(patient):
    patient.age = 0
    patient.hdl = -1.0
    patient.hba1c = float("nan")
    patient.gender = ""
    with pytest.raises(InvalidInputError) as exc_info:
        patient.validate()
    assert set(exc_info.value.fields) == {"age", "hdl", "hba1c", "gender"}


def test_zero_hba1c_is_allowed(patient):
    patient.hba1c = 0.0
    assert patient.validate() is patient


def test_record_back_to_patient_input(record, patient):
    assert record.patient_input() == patient
