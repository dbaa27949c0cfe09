import re

from epicare.models.cds import DoseFinding
from epicare.models.triage import DosePlaybookEntry

_STRENGTH_RE = re.compile(r"\s+\d+(?:[./]\d+)?\s*(?:mg|g|mcg|ml)?\b.*$", re.I)


def clean_drug_name(drug: str) -> str:
    """Drop a trailing strength from a drug label ("Valproate 500" -> "Valproate")."""
    cleaned = _STRENGTH_RE.sub("", drug or "").strip()
    return cleaned or (drug or "").strip()


def target_daily_mg(finding: DoseFinding, weight_kg: float | None = None) -> float | None:
    """Recommended daily target, from the absolute target or mg/kg times body weight."""
    if finding.recommended_target_daily_mg:
        return finding.recommended_target_daily_mg
    weight = finding.weight_kg or weight_kg
    if finding.recommended_target_mg_per_kg and weight:
        return finding.recommended_target_mg_per_kg * weight
    return None


def format_mg(value: float) -> str:
    return str(int(round(value)))


def build_dose_playbook(
    findings: list[DoseFinding], weight_kg: float | None = None
) -> list[DosePlaybookEntry]:
    entries = []
    for finding in findings:
        if not finding.titration_instructions and not finding.taper_instructions:
            continue
        if finding.is_subtherapeutic:
            status = "subtherapeutic"
        elif finding.is_supratherapeutic:
            status = "supratherapeutic"
        else:
            status = "in_range"
        entries.append(DosePlaybookEntry(
            drug=clean_drug_name(finding.drug) or "Unnamed medication",
            status=status,
            current_daily_mg=finding.daily_mg,
            target_daily_mg=target_daily_mg(finding, weight_kg),
            max_daily_mg=finding.max_allowed_daily_mg,
            titration_steps=list(finding.titration_instructions),
            taper_steps=list(finding.taper_instructions),
        ))
    return entries
