# llm.py
import logging
from typing import Dict, List, Optional

from openai import OpenAI, OpenAIError

from config import RECOMMENDATION_RULES, settings as load_settings
from errors import RecommendationError
from records import Metrics, PatientInput, RiskCategory

LOGGER = logging.getLogger(__name__)

RECOMMENDATION_UNAVAILABLE = "Recommendations unavailable. Please review results with a clinician."


def _client(cfg: Dict[str, str]) -> Optional[OpenAI]:
    api_key = cfg.get("GROQ_API_KEY", "")
    if not api_key:
        return None
    return OpenAI(api_key=api_key, base_url=cfg.get("GROQ_BASE_URL") or None)


def rule_based_recommendations(patient: PatientInput, metrics: Metrics, risk: RiskCategory) -> str:
    """Deterministic advice paragraphs, one bolded heading each; the follow-up paragraph is always present."""
    rules = RECOMMENDATION_RULES
    paragraphs: List[str] = []

    if metrics.bmi > rules["bmi_overweight"]:
        paragraphs.append(
            "**Weight Management**: Consider a structured weight loss program targeting 5-10% body weight "
            "reduction through caloric restriction and increased physical activity."
        )
    if metrics.tyg_index > rules["tyg_elevated"]:
        paragraphs.append(
            "**Metabolic Health**: Focus on low-glycemic index foods, reduce refined carbohydrates, "
            "and consider Mediterranean-style diet patterns."
        )
    if metrics.tg_hdl_ratio > rules["tg_hdl_high"]:
        paragraphs.append(
            "**Lipid Management**: Increase omega-3 fatty acids, reduce saturated fats, "
            "and consider aerobic exercise 150+ minutes per week."
        )
    if patient.hba1c > rules["hba1c_high"]:
        paragraphs.append(
            "**Glucose Control**: Monitor blood glucose regularly, consider continuous glucose monitoring, "
            "and maintain consistent meal timing."
        )
    paragraphs.append(
        "**Follow-up**: Schedule follow-up in 3-6 months to reassess metabolic markers "
        "and adjust treatment plan as needed."
    )
    return "\n\n".join(paragraphs)


def _prompt(patient: PatientInput, metrics: Metrics, risk: RiskCategory) -> str:
    return (
        "As a medical assistant, provide personalized health recommendations for a patient "
        "with the following profile:\n\n"
        f"Patient: {patient.age}-year-old {patient.gender}\n"
        f"BMI: {metrics.bmi}\n"
        f"TyG Index: {metrics.tyg_index}\n"
        f"TG/HDL Ratio: {metrics.tg_hdl_ratio}\n"
        f"HbA1c: {patient.hba1c}%\n"
        f"Diabetes Status: {patient.diabetes_status}\n"
        f"Risk Level: {risk.level}\n\n"
        "Give specific recommendations for:\n"
        "1. Dietary modifications\n"
        "2. Exercise recommendations\n"
        "3. Follow-up tests or monitoring\n"
        "4. Lifestyle changes\n\n"
        "Use a professional tone and bold each heading with **double asterisks**. "
        "No medication dosing. No diagnosis."
    )


def request_recommendations(
    client: OpenAI,
    model: str,
    patient: PatientInput,
    metrics: Metrics,
    risk: RiskCategory,
) -> str:
    try:
        resp = client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": _prompt(patient, metrics, risk)}],
            max_tokens=500,
            temperature=0.7,
        )
    except OpenAIError as exc:
        raise RecommendationError(f"Recommendation service failed: {exc}") from exc

    if not resp.choices:
        raise RecommendationError("Recommendation service returned no choices")
    content = (resp.choices[0].message.content or "").strip()
    if not content:
        raise RecommendationError("Recommendation service returned empty text")
    return content


def generate_recommendations(
    patient: PatientInput,
    metrics: Metrics,
    risk: RiskCategory,
    cfg: Optional[Dict[str, str]] = None,
    client: Optional[OpenAI] = None,
) -> str:
    """Remote text when configured; rule-based text when unconfigured or on any failure."""
    cfg = cfg if cfg is not None else load_settings()
    client = client or _client(cfg)
    if client is None:
        return rule_based_recommendations(patient, metrics, risk)

    try:
        return request_recommendations(client, cfg.get("GROQ_MODEL", ""), patient, metrics, risk)
    except RecommendationError as exc:
        LOGGER.info("Falling back to rule-based recommendations: %s", exc)
        return rule_based_recommendations(patient, metrics, risk)
