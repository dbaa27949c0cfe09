from collections.abc import Iterable

from epicare.models.triage import Alert
from epicare.services.classification import (
    ADHERENCE,
    DOSE_SAFETY,
    LOW_VALUE_SIDE_EFFECT,
    MEDICATION_GAP,
    REFERRAL,
)

SEVERITY_BASE_SCORES = {"high": 900, "medium": 400, "low": 100}

# First matching tier wins. Each bonus exceeds the widest severity gap (900),
# so the clinical category always dominates the backend's severity label.
CATEGORY_BONUSES: tuple[tuple[frozenset[str], int], ...] = (
    (frozenset({ADHERENCE, MEDICATION_GAP}), 5000),
    (frozenset({DOSE_SAFETY}), 4000),
    (frozenset({REFERRAL}), 3500),
    (frozenset({LOW_VALUE_SIDE_EFFECT}), -500),
)

RECENCY_DIVISOR = 1e11


def compute_alert_priority_score(alert: Alert) -> float:
    score = float(SEVERITY_BASE_SCORES.get(alert.severity, 0))

    for tags, bonus in CATEGORY_BONUSES:
        if alert.tags & tags:
            score += bonus
            break

    if alert.created_at is not None:
        score += alert.created_at.timestamp() * 1000 / RECENCY_DIVISOR
    return score


def prioritize_cds_alerts(alerts: Iterable[Alert]) -> list[Alert]:
    """Highest priority first; alerts with equal scores keep their input order."""
    return sorted(alerts, key=compute_alert_priority_score, reverse=True)


def filter_low_value_alerts(alerts: Iterable[Alert]) -> list[Alert]:
    return [a for a in alerts if LOW_VALUE_SIDE_EFFECT not in a.tags]
