"""Recommendation consolidation, synthetic alerts and status-badge extraction."""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from epicare.config import MAX_RECOMMENDATIONS
from epicare.models.triage import Alert, Badge, TrendInfo
from epicare.services.alert_adapter import build_alert, merge_alerts
from epicare.services.classification import (
    ADHERENCE,
    DOSE_ADEQUATE,
    ESCALATION,
    IMMEDIATE_SIDE_EFFECT_COUNSELING,
)
from epicare.services.scoring import filter_low_value_alerts, prioritize_cds_alerts

logger = logging.getLogger(__name__)

ADHERENCE_PRIORITY_ID = "synthetic_adherence_priority"
BREAKTHROUGH_ID = "synthetic_breakthrough_investigation"

CONFIRM_SEIZURES_STEP = (
    "Confirm the events are true epileptic seizures (review eyewitness account; "
    "consider non-epileptic events)."
)
TRIGGER_SCREEN_STEP = (
    "Screen for intercurrent triggers: fever, infection, alcohol, sleep deprivation, "
    "new interacting drugs."
)
SLEEP_HYGIENE_STEP = "Ask about sleep hygiene and sleep deprivation."
OPTIMIZE_STEP = "Doses confirmed as taken: proceed to dose and regimen optimization."
RESOLVE_ADHERENCE_STEP = "Resolve adherence first: confirm doses are taken as prescribed."


@dataclass
class RecommendationSet:
    recommendations: list[Alert] = field(default_factory=list)
    overflow_count: int = 0
    status_badges: list[Badge] = field(default_factory=list)


def _consolidation_key(alert: Alert) -> str:
    key = re.sub(r"[^a-z0-9]+", " ", alert.primary_text).strip()
    return key or alert.id.lower()


def consolidate_alerts(alerts: Iterable[Alert]) -> list[Alert]:
    """Merge alerts with the same normalized text. The first occurrence keeps its slot."""
    merged: dict[str, int] = {}
    result: list[Alert] = []
    for alert in alerts:
        key = _consolidation_key(alert)
        if not key:
            result.append(alert)
            continue
        if key in merged:
            idx = merged[key]
            result[idx] = merge_alerts(result[idx], alert)
            continue
        merged[key] = len(result)
        result.append(alert)
    return result


def build_adherence_priority_alert(medication_count: int) -> Alert:
    return build_alert(
        alert_id=ADHERENCE_PRIORITY_ID,
        severity="high",
        text="Address adherence barriers before regimen changes",
        rationale=(
            f"Patient on {medication_count} anti-seizure medications reports missed or "
            "stopped medicine; regimen changes cannot be judged until intake is reliable."
        ),
        next_steps=[
            "Explore reasons for non-adherence (cost, side effects, supply, beliefs).",
            "Agree on a simplified schedule or pill organiser.",
            "Recheck adherence at the next visit before changing therapy.",
        ],
        category="adherence",
    )


def build_breakthrough_alert(
    trend: TrendInfo, epilepsy_type: str | None, adherence_confirmed: bool
) -> Alert:
    steps = [CONFIRM_SEIZURES_STEP, TRIGGER_SCREEN_STEP]
    if epilepsy_type and "general" in epilepsy_type.lower():
        steps.append(SLEEP_HYGIENE_STEP)
    steps.append(OPTIMIZE_STEP if adherence_confirmed else RESOLVE_ADHERENCE_STEP)
    return build_alert(
        alert_id=BREAKTHROUGH_ID,
        severity="medium",
        title="Breakthrough seizures",
        text="Investigate breakthrough seizures before changing therapy",
        rationale=f"Seizure frequency is worsening ({trend.detail}).",
        next_steps=steps,
        category="investigation",
    )


def _keep(alert: Alert, *, medication_change_intent: bool, barriers: bool) -> bool:
    if alert.source == "synthetic":
        return True
    if IMMEDIATE_SIDE_EFFECT_COUNSELING in alert.tags and not medication_change_intent:
        return False
    if barriers and (DOSE_ADEQUATE in alert.tags or ESCALATION in alert.tags):
        return False
    return True


def extract_status_badges(alerts: Iterable[Alert]) -> tuple[list[Alert], list[Badge]]:
    remaining, badges = [], []
    for alert in alerts:
        if DOSE_ADEQUATE in alert.tags and alert.source != "synthetic":
            badges.append(Badge(kind="dose", label=alert.display_text, tone="success"))
        else:
            remaining.append(alert)
    return remaining, badges


def build_recommendations(
    pool: Iterable[Alert],
    *,
    critical_alerts: list[Alert],
    trend: TrendInfo | None,
    adherence_barriers: bool,
    adherence_confirmed: bool,
    active_medication_count: int,
    epilepsy_type: str | None,
    medication_change_intent: bool,
    limit: int = MAX_RECOMMENDATIONS,
) -> RecommendationSet:
    alerts = consolidate_alerts(filter_low_value_alerts(pool))

    has_critical_adherence = any(ADHERENCE in a.tags for a in critical_alerts)
    if adherence_barriers and active_medication_count >= 2 and not has_critical_adherence:
        alerts.insert(0, build_adherence_priority_alert(active_medication_count))

    if trend is not None and trend.summary == "Worsening":
        alerts.append(build_breakthrough_alert(trend, epilepsy_type, adherence_confirmed))

    alerts = [
        a for a in alerts
        if _keep(a, medication_change_intent=medication_change_intent, barriers=adherence_barriers)
    ]
    alerts, badges = extract_status_badges(alerts)

    ranked = prioritize_cds_alerts(alerts)
    overflow = max(0, len(ranked) - limit)
    if overflow:
        logger.debug("Suppressing %d lower-priority recommendations", overflow)
    return RecommendationSet(
        recommendations=ranked[:limit], overflow_count=overflow, status_badges=badges
    )
