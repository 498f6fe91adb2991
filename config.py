# config.py
# Risk thresholds + settings (clinical teammates can tweak these easily)
import logging
import os
from typing import Dict

RISK = {
    # TyG index cut points: < low_max is Low, <= moderate_max is Moderate, above is High
    "tyg_low_max": 8.0,
    "tyg_moderate_max": 8.5,
}

RECOMMENDATION_RULES = {
    # Rule-based fallback recommendations fire strictly above these values
    "bmi_overweight": 25.0,
    "tyg_elevated": 8.0,
    "tg_hdl_high": 3.5,
    "hba1c_high": 6.5,
}

GAUGES = {
    # (lower bound, label); a value belongs to the last zone whose bound it reaches
    "bmi": {
        "max": 40.0,
        "zones": [(0.0, "Underweight"), (18.5, "Normal"), (25.0, "Overweight"), (30.0, "Obese")],
    },
    "tyg": {
        "max": 12.0,
        "zones": [(6.0, "Low Risk"), (8.0, "Moderate Risk"), (8.5, "High Risk")],
    },
    "tg_hdl": {
        "max": 10.0,
        "zones": [(0.0, "Ideal"), (3.0, "Moderate"), (4.5, "High Risk")],
    },
}

APP = {
    "title": "Metabolic Risk Calculator",
    "disclaimer": (
        "Educational support tool only. Not medical advice. "
        "Risk indices are surrogate markers and do not diagnose disease. "
        "Discuss results with a clinician."
    ),
}

DEFAULTS = {
    "STORAGE_BACKEND": "local",
    "DATABASE_URL": "sqlite:///patients.db",
    "SHEETS_URL": "",
    "SHEETS_TIMEOUT": "15",
    "CREATED_BY": "demo@healthcare.com",
    "GROQ_API_KEY": "",
    "GROQ_BASE_URL": "https://api.groq.com/openai/v1",
    "GROQ_MODEL": "llama-3.3-70b-versatile",
    "LOG_LEVEL": "INFO",
}


def _get_setting(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        try:
            import streamlit as st
            value = str(st.secrets.get(name, "")).strip()
        except Exception:
            pass
    return value or DEFAULTS.get(name, "")


def settings() -> Dict[str, str]:
    """Environment first, then Streamlit secrets, then DEFAULTS."""
    return {name: _get_setting(name) for name in DEFAULTS}


def configure_logging(level: str = "") -> None:
    logging.basicConfig(
        level=(level or _get_setting("LOG_LEVEL")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
