"""End-to-end tests for the triage engine on whole CDS analyses."""

import pytest

import epicare.services.triage_engine as triage_engine
from epicare.models.cds import AnalysisResult
from epicare.services.recommendations import ADHERENCE_PRIORITY_ID, BREAKTHROUGH_ID
from epicare.services.triage_engine import FALLBACK_MESSAGE, safe_triage, triage


def _analysis(**data) -> AnalysisResult:
    return AnalysisResult.model_validate(data)


class TestTriage:
    def test_quiet_visit(self, empty_analysis, stable_context):
        plan = triage(empty_analysis, stable_context)
        assert plan.critical_alerts == []
        assert plan.recommendations == []
        assert plan.counseling_icons == []
        assert plan.trend is None
        assert plan.plan.text == "Continue current regimen and monitor closely."
        assert [b.label for b in plan.summary_badges] == [
            "Adherence: Always take",
            "Plan: Continue current regimen and monitor closely.",
        ]
        assert plan.summary_badges[0].tone == "success"

    def test_high_severity_becomes_critical(self, stable_context):
        analysis = _analysis(
            warnings=[
                {"text": "Liver enzymes raised", "severity": "high"},
                {"text": "Monitor sodium", "severity": "medium"},
                {"text": "Drowsiness common", "severity": "high"},
            ],
            alerts=[{"text": "Dose exceeds maximum", "severity": "critical"}],
        )
        plan = triage(analysis, stable_context)
        assert [a.text for a in plan.critical_alerts] == ["Dose exceeds maximum", "Liver enzymes raised"]
        assert [a.text for a in plan.recommendations] == ["Monitor sodium"]

    def test_adherence_first_on_polytherapy(self, stable_context):
        analysis = _analysis(
            prompts=[{"text": "Dose adequate for weight"}],
            doseFindings=[{"drug": "Valproate 500", "isSubtherapeutic": True, "targetMgPerKg": 20, "weightKg": 50}],
        )
        context = stable_context.model_copy(
            update={"adherence": "Frequently miss", "active_medications": ["sodium valproate", "clobazam"]}
        )
        plan = triage(analysis, context)
        assert plan.plan.text == "Address adherence barriers before modifying multi-drug regimen."
        assert plan.recommendations[0].id == ADHERENCE_PRIORITY_ID
        assert plan.status_badges == []
        assert not plan.referral_signal.should_auto
        assert plan.summary_badges[0].label == "Adherence: Frequently miss"
        assert plan.summary_badges[0].tone == "warning"
        assert "Adherence first" in [icon.label for icon in plan.counseling_icons]

    def test_subtherapeutic_dose_plan(self, stable_context):
        analysis = _analysis(
            doseFindings=[{"drug": "Valproate 500", "isSubtherapeutic": True, "targetMgPerKg": 20, "weightKg": 50}],
            plan={"referral": "Neurology"},
        )
        plan = triage(analysis, stable_context)
        assert "Valproate to 1000 mg/day" in plan.plan.text
        assert not plan.referral_signal.should_auto

    def test_worsening_on_monotherapy(self, empty_analysis, stable_context):
        context = stable_context.model_copy(update={"current_frequency": "Weekly"})
        plan = triage(empty_analysis, context)
        assert plan.trend.summary == "Worsening"
        assert plan.plan.text == "Escalate seizure management; reassess regimen."
        assert "Worsening: Monthly → Weekly" in [b.label for b in plan.summary_badges]
        assert [r.id for r in plan.recommendations] == [BREAKTHROUGH_ID]
        assert not plan.referral_signal.should_auto

    def test_worsening_on_polytherapy_auto_refers(self, empty_analysis, stable_context):
        context = stable_context.model_copy(
            update={"current_frequency": "Weekly", "active_medications": ["carbamazepine", "clobazam"]}
        )
        plan = triage(empty_analysis, context)
        assert plan.referral_signal.should_auto
        assert plan.referral_signal.rationale == "Seizures Monthly → Weekly despite 2+ ASMs."

    def test_dose_safety_outranks_breakthrough_when_adherent(self, stable_context):
        analysis = _analysis(
            prompts=[{"severity": "high", "text": "Carbamazepine dose exceeds maximum: toxicity risk"}]
        )
        context = stable_context.model_copy(update={"current_frequency": "Weekly"})
        plan = triage(analysis, context)
        assert len(plan.recommendations) == 2
        assert plan.recommendations[0].text == "Carbamazepine dose exceeds maximum: toxicity risk"
        assert plan.recommendations[1].id == BREAKTHROUGH_ID

    def test_duplicate_critical_alerts_merged(self, stable_context):
        warning = {"severity": "high", "text": "Dose exceeds maximum for weight"}
        analysis = _analysis(
            warnings=[warning, dict(warning, nextSteps=["Reduce dose"])],
            alerts=[warning],
        )
        plan = triage(analysis, stable_context)
        assert len(plan.critical_alerts) == 1
        assert plan.critical_alerts[0].next_steps == ("Reduce dose",)

    def test_partial_dose_finding_tolerated(self, stable_context):
        analysis = _analysis(
            doseFindings=[{"drug": None, "isSubtherapeutic": None, "isSupratherapeutic": None}]
        )
        plan = triage(analysis, stable_context)
        assert plan.plan.text == "Continue current regimen and monitor closely."
        assert plan.dose_playbook == []

    def test_addon_suggestion_badge(self, stable_context):
        plan = triage(_analysis(plan={"addonSuggestion": "Clobazam 10 mg"}), stable_context)
        assert plan.summary_badges[-1].label == "Add-on suggested: Clobazam 10 mg"
        assert plan.medication_signal.should_auto
        assert plan.plan.text == "Add: Clobazam 10 mg"

    def test_dose_playbook_and_special_considerations(self, stable_context):
        analysis = _analysis(
            doseFindings=[
                {
                    "drug": "Carbamazepine 200",
                    "dailyMg": 400,
                    "recommendedTargetDailyMg": 600,
                    "titrationInstructions": ["Increase by 100 mg weekly"],
                },
                {"drug": "Clobazam", "dailyMg": 10},
            ],
            specialConsiderations=[
                {"text": "Routine note", "severity": "low"},
                {"text": "Planning pregnancy", "severity": "high"},
            ],
            disclaimer="For clinical decision support only.",
        )
        plan = triage(analysis, stable_context)
        assert len(plan.dose_playbook) == 1
        entry = plan.dose_playbook[0]
        assert entry.drug == "Carbamazepine"
        assert entry.status == "in_range"
        assert entry.target_daily_mg == 600
        assert [a.text for a in plan.special_considerations] == ["Planning pregnancy", "Routine note"]
        assert plan.disclaimer == "For clinical decision support only."

    def test_recommendations_capped(self, stable_context):
        analysis = _analysis(prompts=[{"text": f"Item {i}", "severity": "low"} for i in range(6)])
        plan = triage(analysis, stable_context)
        assert len(plan.recommendations) == 4
        assert plan.overflow_count == 2


class TestSafeTriage:
    def test_returns_fallback_on_internal_error(self, monkeypatch, stable_context):
        def boom(analysis, context):
            raise RuntimeError("bad alert shape")

        monkeypatch.setattr(triage_engine, "triage", boom)
        plan = safe_triage(_analysis(disclaimer="Check clinically."), stable_context)
        assert plan.fallback_message == FALLBACK_MESSAGE
        assert plan.recommendations == []
        assert plan.disclaimer == "Check clinically."

    def test_passes_through_normally(self, empty_analysis, stable_context):
        plan = safe_triage(empty_analysis, stable_context)
        assert plan.fallback_message is None
        assert plan.plan is not None


@pytest.mark.parametrize("raw", [None, "plain string warning", {"message": "dict warning"}])
def test_tolerates_loose_alert_lists(raw, stable_context):
    plan = triage(_analysis(warnings=raw), stable_context)
    assert plan.plan is not None
