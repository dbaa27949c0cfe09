"""Derivation of the one-line clinical plan shown in the summary badge."""

import re
from collections.abc import Iterable

from epicare.models.cds import DoseFinding, TreatmentPlan
from epicare.models.triage import Alert, PlanSummary, TrendInfo
from epicare.services.dose_playbook import clean_drug_name, format_mg, target_daily_mg
from epicare.services.scoring import prioritize_cds_alerts

ACTIONABLE_CATEGORIES = ("safety", "dose", "dosing", "treatment")
ACTIONABLE_STEP_RE = re.compile(r"\b(add|maintain|uptitrate|switch)\b", re.I)
MAX_ACTIONABLE_CHARS = 140

_BULLET_RE = re.compile(r"^\s*(?:[-*•·>]+|\(?\d+[.)]|[a-z][.)])\s+", re.I)


def _clean_step(step: str) -> str:
    return re.sub(r"\s+", " ", _BULLET_RE.sub("", step)).strip().rstrip(".;")


def _truncate(text: str, limit: int = MAX_ACTIONABLE_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def extract_actionable_text(alerts: Iterable[Alert]) -> str | None:
    """Pick the most specific "what to do" line from high-severity treatment alerts."""
    for alert in prioritize_cds_alerts(alerts):
        if alert.severity != "high":
            continue
        if not any(c in alert.category for c in ACTIONABLE_CATEGORIES):
            continue
        steps = [_clean_step(s) for s in alert.next_steps]
        steps = [s for s in steps if s and ACTIONABLE_STEP_RE.search(s)]
        if not steps:
            continue

        maintain = next((s for s in steps if re.search(r"\bmaintain\b", s, re.I)), None)
        add = next((s for s in steps if re.match(r"add\b", s, re.I)), None)
        if maintain and add:
            return _truncate(f"{maintain} + {add[0].lower()}{add[1:]}")
        return _truncate(steps[0])
    return None


def _dose_targets(findings: list[DoseFinding], weight_kg: float | None) -> list[str]:
    targets = []
    for finding in findings:
        target = target_daily_mg(finding, weight_kg)
        if target:
            targets.append(f"{clean_drug_name(finding.drug)} to {format_mg(target)} mg/day")
    return targets


def derive_plan_summary(
    *,
    adherence_barriers: bool,
    active_medication_count: int,
    dose_findings: list[DoseFinding],
    weight_kg: float | None,
    needs_referral: bool,
    plan: TreatmentPlan,
    actionable_text: str | None,
    trend: TrendInfo | None,
) -> PlanSummary:
    """First matching rule wins; adherence outranks dosing, dosing outranks referral."""
    if adherence_barriers and active_medication_count >= 2:
        return PlanSummary(
            text="Address adherence barriers before modifying multi-drug regimen.",
            tone="warning",
            source="adherence",
        )
    if adherence_barriers:
        return PlanSummary(
            text="Resolve adherence gaps before adjusting therapy.",
            tone="warning",
            source="adherence",
        )

    subtherapeutic = [f for f in dose_findings if f.is_subtherapeutic]
    if subtherapeutic:
        targets = _dose_targets(subtherapeutic, weight_kg)
        if targets:
            return PlanSummary(
                text=f"Increase {', '.join(targets)} before considering regimen changes.",
                tone="warning",
                source="dose",
            )
        return PlanSummary(
            text="Increase to target dose before considering regimen changes.",
            tone="warning",
            source="dose",
        )

    if needs_referral:
        referral = (plan.referral or "").strip()
        text = f"Refer to specialist: {referral}" if referral else "Refer to specialist for further evaluation."
        return PlanSummary(text=text, tone="danger", source="referral")

    if actionable_text:
        return PlanSummary(text=actionable_text, tone="warning", source="alert")
    if plan.addon_suggestion:
        return PlanSummary(text=f"Add: {plan.addon_suggestion}", tone="info", source="addon")
    if plan.monotherapy_suggestion:
        return PlanSummary(
            text=f"Consider: {plan.monotherapy_suggestion}", tone="info", source="monotherapy"
        )
    if trend is not None and trend.summary == "Worsening":
        return PlanSummary(
            text="Escalate seizure management; reassess regimen.", tone="warning", source="trend"
        )
    return PlanSummary(
        text="Continue current regimen and monitor closely.", tone="info", source="default"
    )
