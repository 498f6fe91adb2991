import pytest

from errors import InvalidInputError
from triage import (
    HIGH_RISK, LOW_RISK, MODERATE_RISK, UNKNOWN_BADGE,
    classify_risk, gauge_zone, risk_badge, risk_for_level,
)


@pytest.mark.parametrize("tyg,expected", [
    (7.99, LOW_RISK),
    (8.0, MODERATE_RISK),
    (8.5, MODERATE_RISK),
    (8.51, HIGH_RISK),
    (9.1, HIGH_RISK),
])
def test_classify_boundaries(tyg, expected):
    assert classify_risk(tyg) == expected


def test_descriptions():
    assert classify_risk(7.0).description == "Low metabolic disorder risk"
    assert classify_risk(8.2).description == "Moderate metabolic disorder risk - monitoring recommended"
    assert classify_risk(9.0).description == "High metabolic disorder risk - immediate attention required"


@pytest.mark.parametrize("value", [float("nan"), float("inf"), None, "8.2"])
def test_non_finite_tyg_is_an_input_error(value):
    with pytest.raises(InvalidInputError):
        classify_risk(value)


@pytest.mark.parametrize("gauge,value,label", [
    ("bmi", 17.0, "Underweight"),
    ("bmi", 18.5, "Normal"),
    ("bmi", 27.0, "Overweight"),
    ("bmi", 45.0, "Obese"),
    ("tyg", 7.5, "Low Risk"),
    ("tyg", 8.5, "Moderate Risk"),
    ("tyg", 8.6, "High Risk"),
    ("tg_hdl", 2.9, "Ideal"),
    ("tg_hdl", 3.0, "Moderate"),
    ("tg_hdl", 4.5, "High Risk"),
])
def test_gauge_zone(gauge, value, label):
    assert gauge_zone(gauge, value) == label


def test_unknown_gauge():
    with pytest.raises(KeyError):
        gauge_zone("ldl", 100.0)


def test_risk_badge_and_lookup():
    assert risk_badge("High Risk") == HIGH_RISK.badge
    assert risk_badge("") == UNKNOWN_BADGE
    assert risk_for_level(" Low Risk ") is LOW_RISK
    assert risk_for_level("Severe") is None
