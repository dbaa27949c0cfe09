from datetime import date

from epicare.models.triage import TriageContext
from epicare.services.trend import (
    compute_trend_info,
    resolve_current_frequency,
    resolve_days_since_last_visit,
)


class TestComputeTrendInfo:
    def test_worsening(self):
        trend = compute_trend_info(TriageContext(baseline_frequency="Monthly", current_frequency="Weekly"))
        assert trend.summary == "Worsening"
        assert trend.detail == "Monthly → Weekly"
        assert trend.tone == "danger"

    def test_improving(self):
        trend = compute_trend_info(TriageContext(baseline_frequency="Daily", current_frequency="yearly"))
        assert trend.summary == "Improving"
        assert trend.tone == "success"
        assert trend.baseline == "DAILY"
        assert trend.current == "YEARLY"

    def test_unchanged_is_none(self, stable_context):
        assert compute_trend_info(stable_context) is None

    def test_unknown_baseline_is_none(self):
        assert compute_trend_info(TriageContext(current_frequency="Weekly")) is None

    def test_current_from_seizure_count(self):
        context = TriageContext(
            baseline_frequency="Yearly", seizures_since_last_visit=6, days_since_last_visit=30
        )
        trend = compute_trend_info(context)
        assert trend.summary == "Worsening"
        assert trend.detail == "Yearly → Weekly"


class TestResolveCurrentFrequency:
    def test_explicit_label_wins(self):
        context = TriageContext(current_frequency="Monthly", seizures_since_last_visit=40, days_since_last_visit=30)
        assert resolve_current_frequency(context) == "MONTHLY"

    def test_no_count_no_label(self):
        assert resolve_current_frequency(TriageContext()) is None

    def test_days_from_last_visit_date(self):
        context = TriageContext(
            seizures_since_last_visit=0,
            last_visit_date=date(2026, 9, 19),
            as_of=date(2026, 10, 19),
        )
        assert resolve_days_since_last_visit(context) == 30
        assert resolve_current_frequency(context) == "LESS_THAN_YEARLY"

    def test_explicit_days_clamped(self):
        assert resolve_days_since_last_visit(TriageContext(days_since_last_visit=0)) == 1
        assert resolve_days_since_last_visit(TriageContext(days_since_last_visit=900)) == 365
