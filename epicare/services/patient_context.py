"""Builds the CDS patient context and the triage context from a follow-up form."""

import logging
from datetime import date
from typing import Any

from epicare.models.followup import FollowUpForm, Medication
from epicare.models.triage import TriageContext
from epicare.services.normalization import (
    adherence_code,
    compare_frequencies,
    compute_frequency_from_seizure_count,
    days_since,
    normalize_age,
    normalize_epilepsy_type,
    normalize_frequency_label,
    normalize_gender,
    normalize_weight,
    parse_medication_string,
)

logger = logging.getLogger(__name__)


def validate_follow_up(form: FollowUpForm) -> list[dict[str, Any]]:
    """Check the form before calling CDS. ``critical`` entries block the call."""
    warnings: list[dict[str, Any]] = []

    if not (form.patient_id or "").strip():
        warnings.append({
            "id": "validation_missing_patient_id",
            "severity": "critical",
            "text": "Patient ID is missing. Cannot process CDS evaluation.",
            "rationale": "Patient ID is required to retrieve patient history and context.",
            "nextSteps": ["Ensure patient is properly registered before creating follow-up"],
        })

    if normalize_weight(form.weight_kg) is None:
        warnings.append({
            "id": "validation_weight_missing",
            "severity": "critical",
            "text": (
                "Patient weight is missing or invalid. "
                "CDS cannot provide safe dosing recommendations."
            ),
            "rationale": "Weight-based dosing (mg/kg) is essential for epilepsy medications.",
            "nextSteps": [
                "Measure and record patient weight in kg",
                "Update patient demographics with current weight",
                "Re-submit follow-up after weight is recorded",
            ],
        })

    if form.age is None or form.age <= 0 or form.age > 120:
        warnings.append({
            "id": "validation_age_invalid",
            "severity": "high",
            "text": (
                "Patient age is missing or invalid. "
                "Some CDS recommendations may be inaccurate."
            ),
            "rationale": "Age-specific dosing and safety recommendations require valid patient age.",
            "nextSteps": ["Verify and update patient age in demographics"],
        })

    if not any(m.strip() for m in form.medications):
        warnings.append({
            "id": "validation_no_medications",
            "severity": "high",
            "text": (
                "No medications recorded. "
                "CDS cannot assess dose adequacy or drug interactions."
            ),
            "rationale": "Most epilepsy patients should be on at least one anti-seizure medication.",
            "nextSteps": [
                "Verify patient medication regimen",
                "Update patient record with current medications and doses",
                "If patient stopped medications, document reason",
            ],
        })
    return warnings


def has_blocking_errors(warnings: list[dict[str, Any]]) -> bool:
    return any(w.get("severity") == "critical" for w in warnings)


def parse_regimen(entries: list[str]) -> list[Medication]:
    medications = []
    for entry in entries:
        medications.extend(parse_medication_string(entry))
    return medications


def _side_effects_present(effects: list[str]) -> bool:
    return any(e.strip() and e.strip().lower() != "none" for e in effects)


def build_patient_context(form: FollowUpForm, as_of: date | None = None) -> dict[str, Any]:
    """Structured v1.2 patient context sent to the CDS backend."""
    as_of = as_of or date.today()
    medications = parse_regimen(form.medications)
    new_medications = parse_regimen(form.new_medications)

    days_since_last = days_since(form.last_visit_date, as_of)
    baseline = normalize_frequency_label(form.baseline_frequency)
    current = compute_frequency_from_seizure_count(form.seizures_since_last_visit, days_since_last)
    magnitude = compare_frequencies(current, baseline)

    context = {
        "patientId": form.patient_id,
        "demographics": {
            "age": normalize_age(form.age),
            "gender": normalize_gender(form.gender),
            "weightKg": normalize_weight(form.weight_kg),
            "pregnancyStatus": form.pregnancy_status,
            "reproductivePotential": form.reproductive_potential,
        },
        "epilepsy": {
            "epilepsyType": normalize_epilepsy_type(form.epilepsy_type),
            "baselineFrequency": form.baseline_frequency,
        },
        "regimen": {
            "medications": [m.model_dump(by_alias=True) for m in medications],
        },
        "clinicalFlags": {
            "renalFunction": form.renal_function,
            "hepaticFunction": form.hepatic_function,
            "adherencePattern": form.adherence,
            "catamenialPattern": form.catamenial_pattern,
        },
        "followUp": {
            "seizuresSinceLastVisit": form.seizures_since_last_visit or 0,
            "medicationChanged": form.medication_changed,
            "newMedications": [m.model_dump(by_alias=True) for m in new_medications],
            "adverseEffects": form.adverse_effects,
            "sideEffectsPresent": _side_effects_present(form.adverse_effects),
            "adherence": form.adherence,
            "daysSinceLastVisit": days_since_last,
            "step3": {
                "seizureCount": form.seizures_since_last_visit or 0,
                "lastFollowUpISO": form.last_visit_date.isoformat() if form.last_visit_date else None,
                "daysSinceLast": days_since_last,
                "currentFrequency": current or "UNKNOWN",
                "baselineFrequency": baseline or "UNKNOWN",
                "adherence": adherence_code(form.adherence) or "UNKNOWN",
                "worsening": bool(magnitude and magnitude > 0),
                "worseningMagnitude": magnitude,
            },
        },
    }
    logger.debug("Built patient context for %s (%d medications)", form.patient_id, len(medications))
    return context


def build_triage_context(
    form: FollowUpForm, user_role: str | None = None, as_of: date | None = None
) -> TriageContext:
    as_of = as_of or date.today()
    medications = parse_regimen(form.medications)
    return TriageContext(
        adherence=form.adherence,
        active_medications=[m.name for m in medications],
        epilepsy_type=normalize_epilepsy_type(form.epilepsy_type),
        medication_change_intent=form.medication_changed,
        seizures_since_last_visit=form.seizures_since_last_visit,
        baseline_frequency=form.baseline_frequency,
        days_since_last_visit=days_since(form.last_visit_date, as_of),
        weight_kg=normalize_weight(form.weight_kg),
        weight_recorded_at=form.weight_recorded_at,
        last_visit_date=form.last_visit_date,
        gender=normalize_gender(form.gender),
        age=normalize_age(form.age),
        pregnancy_status=form.pregnancy_status,
        catamenial_pattern=form.catamenial_pattern,
        side_effects_present=_side_effects_present(form.adverse_effects),
        user_role=user_role,
        as_of=as_of,
    )
