# metrics.py
import math
from typing import List

from errors import InvalidInputError
from records import Metrics, PatientInput, is_finite_number


def round_half_away(value: float, places: int) -> float:
    """Round like a calculator does: 22.85 -> 22.9, -2.5 -> -3."""
    factor = 10 ** places
    shifted = abs(value) * factor
    if not math.isfinite(shifted):
        # already far past the last decimal place
        return value
    scaled = math.floor(shifted + 0.5) / factor
    return math.copysign(scaled, value)


def _is_positive_finite(value) -> bool:
    return is_finite_number(value) and value > 0


def _out_of_range(fields: List[str]) -> InvalidInputError:
    return InvalidInputError("Values are out of range: " + ", ".join(fields), fields=fields)


def compute_metrics(weight, height, glucose, triglycerides, hdl) -> Metrics:
    """
    BMI, TyG index and TG/HDL ratio from raw biometrics.

    Raises InvalidInputError when any argument is missing, non-numeric,
    non-finite, zero or negative, or when the values are so extreme that a
    metric underflows or overflows.
    """
    args = {
        "weight": weight,
        "height": height,
        "glucose": glucose,
        "triglycerides": triglycerides,
        "hdl": hdl,
    }
    bad: List[str] = [name for name, value in args.items() if not _is_positive_finite(value)]
    if bad:
        raise InvalidInputError(
            "Values must be finite numbers greater than zero: " + ", ".join(bad),
            fields=bad,
        )

    height_sq = height * height
    if height_sq == 0:
        raise _out_of_range(["height"])
    bmi = weight / height_sq
    if not math.isfinite(bmi):
        raise _out_of_range(["weight", "height"])

    half_product = (glucose * triglycerides) / 2
    if not math.isfinite(half_product) or half_product <= 0:
        raise _out_of_range(["glucose", "triglycerides"])
    tyg_index = math.log(half_product)

    tg_hdl_ratio = triglycerides / hdl
    if not math.isfinite(tg_hdl_ratio):
        raise _out_of_range(["triglycerides", "hdl"])

    return Metrics(
        bmi=round_half_away(bmi, 1),
        tyg_index=round_half_away(tyg_index, 2),
        tg_hdl_ratio=round_half_away(tg_hdl_ratio, 2),
    )


def metrics_for(patient: PatientInput) -> Metrics:
    patient.validate()
    return compute_metrics(
        patient.weight,
        patient.height,
        patient.glucose,
        patient.triglycerides,
        patient.hdl,
    )
