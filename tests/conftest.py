import pytest

from metrics import compute_metrics
from records import PatientInput, build_record
from triage import classify_risk


@pytest.fixture
def patient():
    return PatientInput(
        full_name="Amina Yusuf",
        age=52,
        gender="Female",
        weight=80.0,
        height=1.8,
        glucose=100.0,
        triglycerides=180.0,
        hdl=40.0,
        hba1c=6.8,
        diabetes_status="Prediabetes",
    )


@pytest.fixture
def record(patient):
    metrics = compute_metrics(patient.weight, patient.height, patient.glucose, patient.triglycerides, patient.hdl)
    return build_record(
        patient,
        metrics,
        classify_risk(metrics.tyg_index),
        created_by="demo@healthcare.com",
        recommendation_text="**Follow-up**: Recheck in 3 months.",
        record_id="1700000000000",
        created_at="2024-03-01T10:00:00.000Z",
    )
