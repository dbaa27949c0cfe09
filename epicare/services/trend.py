import logging
from datetime import date

from epicare.models.triage import TrendInfo, TriageContext
from epicare.services.normalization import (
    FREQUENCY_LABELS,
    compare_frequencies,
    compute_frequency_from_seizure_count,
    days_since,
    normalize_frequency_label,
)

logger = logging.getLogger(__name__)


def resolve_days_since_last_visit(context: TriageContext) -> int | None:
    if context.days_since_last_visit is not None:
        return min(365, max(1, context.days_since_last_visit))
    return days_since(context.last_visit_date, context.as_of or date.today())


def resolve_current_frequency(context: TriageContext) -> str | None:
    """Current category: the explicit label if given, else the rate since the last visit."""
    current = normalize_frequency_label(context.current_frequency)
    if current:
        return current
    if context.seizures_since_last_visit is None:
        return None
    return compute_frequency_from_seizure_count(
        context.seizures_since_last_visit, resolve_days_since_last_visit(context)
    )


def compute_trend_info(context: TriageContext) -> TrendInfo | None:
    """Compare baseline and current seizure frequency.

    Returns None when either side is unknown or the category is unchanged.
    """
    baseline = normalize_frequency_label(context.baseline_frequency)
    current = resolve_current_frequency(context)
    delta = compare_frequencies(current, baseline)
    if not delta:
        return None

    detail = f"{FREQUENCY_LABELS[baseline]} → {FREQUENCY_LABELS[current]}"
    logger.debug("Seizure trend %s (delta %d)", detail, delta)
    if delta > 0:
        return TrendInfo(
            summary="Worsening", detail=detail, tone="danger", baseline=baseline, current=current
        )
    return TrendInfo(
        summary="Improving", detail=detail, tone="success", baseline=baseline, current=current
    )
