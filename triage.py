# triage.py
from typing import Optional

from config import GAUGES, RISK
from errors import InvalidInputError
from records import RiskCategory, is_finite_number

LOW_RISK = RiskCategory(
    level="Low Risk",
    description="Low metabolic disorder risk",
    color="success",
    badge="#d4edda",
)
MODERATE_RISK = RiskCategory(
    level="Moderate Risk",
    description="Moderate metabolic disorder risk - monitoring recommended",
    color="warning",
    badge="#fff3cd",
)
HIGH_RISK = RiskCategory(
    level="High Risk",
    description="High metabolic disorder risk - immediate attention required",
    color="danger",
    badge="#f8d7da",
)

UNKNOWN_BADGE = "#e5e7eb"

_BY_LEVEL = {r.level: r for r in (LOW_RISK, MODERATE_RISK, HIGH_RISK)}


def classify_risk(tyg_index: float) -> RiskCategory:
    """
    Returns the risk category for a TyG index:
      < 8.0 Low, 8.0 to 8.5 inclusive Moderate, > 8.5 High.
    """
    if not is_finite_number(tyg_index):
        raise InvalidInputError(f"TyG index must be a finite number, got {tyg_index!r}", fields=["tyg_index"])

    if tyg_index < RISK["tyg_low_max"]:
        return LOW_RISK
    if tyg_index <= RISK["tyg_moderate_max"]:
        return MODERATE_RISK
    return HIGH_RISK


def risk_for_level(level: str) -> Optional[RiskCategory]:
    return _BY_LEVEL.get((level or "").strip())


def risk_badge(level: str) -> str:
    """Badge colour for a stored risk level; grey when the level is unknown."""
    risk = risk_for_level(level)
    return risk.badge if risk else UNKNOWN_BADGE


def gauge_zone(gauge: str, value: float) -> str:
    """Label of the gauge zone a value falls in (e.g. gauge_zone("bmi", 27.0) -> "Overweight")."""
    if gauge not in GAUGES:
        raise KeyError(f"Unknown gauge: {gauge}")
    if not is_finite_number(value):
        raise InvalidInputError(f"Gauge value must be a finite number, got {value!r}", fields=[gauge])
    if gauge == "tyg":
        # the 8.5 boundary is inclusive for Moderate, same as the classifier
        return classify_risk(value).level

    zones = GAUGES[gauge]["zones"]
    label = zones[0][1]
    for lower, zone_label in zones:
        if value >= lower:
            label = zone_label
    return label
