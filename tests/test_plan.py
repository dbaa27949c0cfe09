"""Tests for plan text derivation and actionable-step extraction."""

from epicare.models.cds import DoseFinding, TreatmentPlan
from epicare.models.triage import TrendInfo
from epicare.services.dose_playbook import clean_drug_name, target_daily_mg
from epicare.services.plan import derive_plan_summary, extract_actionable_text

WORSENING = TrendInfo(
    summary="Worsening", detail="Monthly → Weekly", tone="danger", baseline="MONTHLY", current="WEEKLY"
)


def _plan(**overrides):
    kwargs = dict(
        adherence_barriers=False,
        active_medication_count=1,
        dose_findings=[],
        weight_kg=None,
        needs_referral=False,
        plan=TreatmentPlan(),
        actionable_text=None,
        trend=None,
    )
    kwargs.update(overrides)
    return derive_plan_summary(**kwargs)


SUBTHERAPEUTIC_VALPROATE = DoseFinding.model_validate({
    "drug": "Valproate 500",
    "isSubtherapeutic": True,
    "targetMgPerKg": 20,
    "weightKg": 50,
})


class TestDerivePlanSummary:
    def test_adherence_on_polytherapy_wins_over_dose(self):
        summary = _plan(
            adherence_barriers=True,
            active_medication_count=2,
            dose_findings=[SUBTHERAPEUTIC_VALPROATE],
        )
        assert summary.text == "Address adherence barriers before modifying multi-drug regimen."
        assert summary.tone == "warning"

    def test_adherence_on_monotherapy(self):
        summary = _plan(adherence_barriers=True, dose_findings=[SUBTHERAPEUTIC_VALPROATE])
        assert summary.text == "Resolve adherence gaps before adjusting therapy."
        assert summary.tone == "warning"

    def test_subtherapeutic_target_from_mg_per_kg(self):
        summary = _plan(dose_findings=[SUBTHERAPEUTIC_VALPROATE])
        assert "Valproate to 1000 mg/day" in summary.text
        assert summary.text.endswith("before considering regimen changes.")
        assert summary.tone == "warning"

    def test_multiple_targets_joined(self):
        cbz = DoseFinding(drug="Carbamazepine", is_subtherapeutic=True, recommended_target_daily_mg=600)
        summary = _plan(dose_findings=[SUBTHERAPEUTIC_VALPROATE, cbz])
        assert summary.text == (
            "Increase Valproate to 1000 mg/day, Carbamazepine to 600 mg/day "
            "before considering regimen changes."
        )

    def test_context_weight_used_when_finding_has_none(self):
        finding = DoseFinding(drug="Levetiracetam", is_subtherapeutic=True, recommended_target_mg_per_kg=20)
        summary = _plan(dose_findings=[finding], weight_kg=40)
        assert "Levetiracetam to 800 mg/day" in summary.text

    def test_subtherapeutic_without_target(self):
        finding = DoseFinding(drug="Phenytoin", is_subtherapeutic=True)
        summary = _plan(dose_findings=[finding])
        assert summary.text == "Increase to target dose before considering regimen changes."

    def test_dose_outranks_referral(self):
        summary = _plan(dose_findings=[SUBTHERAPEUTIC_VALPROATE], needs_referral=True)
        assert summary.source == "dose"

    def test_referral_with_plan_text(self):
        summary = _plan(needs_referral=True, plan=TreatmentPlan(referral="Refractory focal epilepsy"))
        assert summary.text == "Refer to specialist: Refractory focal epilepsy"
        assert summary.tone == "danger"

    def test_referral_without_plan_text(self):
        summary = _plan(needs_referral=True)
        assert summary.text == "Refer to specialist for further evaluation."

    def test_actionable_text_before_addon(self):
        summary = _plan(
            actionable_text="Maintain carbamazepine + add clobazam",
            plan=TreatmentPlan(addon_suggestion="Clobazam"),
        )
        assert summary.text == "Maintain carbamazepine + add clobazam"

    def test_referral_overrides_actionable_text(self):
        summary = _plan(needs_referral=True, actionable_text="Maintain carbamazepine")
        assert summary.source == "referral"

    def test_addon_suggestion(self):
        summary = _plan(plan=TreatmentPlan(addon_suggestion="Clobazam 10 mg"))
        assert summary.text == "Add: Clobazam 10 mg"
        assert summary.tone == "info"

    def test_monotherapy_suggestion(self):
        summary = _plan(plan=TreatmentPlan(monotherapy_suggestion="Levetiracetam"))
        assert summary.text == "Consider: Levetiracetam"

    def test_worsening_trend(self):
        summary = _plan(trend=WORSENING)
        assert summary.text == "Escalate seizure management; reassess regimen."
        assert summary.tone == "warning"

    def test_default(self):
        summary = _plan()
        assert summary.text == "Continue current regimen and monitor closely."
        assert summary.tone == "info"


class TestExtractActionableText:
    def test_maintain_and_add_combined(self, make_alert):
        alert = make_alert(
            "warning",
            text="Seizures uncontrolled",
            severity="high",
            category="treatment",
            nextSteps=["1. Maintain carbamazepine 400 mg bd", "- Add clobazam 10 mg at night"],
        )
        assert extract_actionable_text([alert]) == (
            "Maintain carbamazepine 400 mg bd + add clobazam 10 mg at night"
        )

    def test_first_qualifying_step(self, make_alert):
        alert = make_alert(
            text="Dose review",
            severity="critical",
            category="dosing",
            nextSteps=["Check weight", "Uptitrate levetiracetam to 1000 mg bd", "Switch if no response"],
        )
        assert extract_actionable_text([alert]) == "Uptitrate levetiracetam to 1000 mg bd"

    def test_ignores_non_high_alerts(self, make_alert):
        alert = make_alert(text="x", severity="medium", category="treatment", nextSteps=["Add clobazam"])
        assert extract_actionable_text([alert]) is None

    def test_ignores_other_categories(self, make_alert):
        alert = make_alert(text="x", severity="high", category="education", nextSteps=["Add clobazam"])
        assert extract_actionable_text([alert]) is None

    def test_word_match_only(self, make_alert):
        alert = make_alert(
            text="x", severity="high", category="safety", nextSteps=["Address side effects"]
        )
        assert extract_actionable_text([alert]) is None

    def test_capped_at_140_chars(self, make_alert):
        long_step = "Add " + "very long instruction " * 10
        alert = make_alert(text="x", severity="high", category="treatment", nextSteps=[long_step])
        text = extract_actionable_text([alert])
        assert len(text) == 140
        assert text.endswith("…")


class TestDoseHelpers:
    def test_clean_drug_name(self):
        assert clean_drug_name("Valproate 500") == "Valproate"
        assert clean_drug_name("Sodium Valproate 200 mg bd") == "Sodium Valproate"
        assert clean_drug_name("Carbamazepine") == "Carbamazepine"

    def test_target_prefers_daily_mg(self):
        finding = DoseFinding(recommended_target_daily_mg=600, recommended_target_mg_per_kg=20, weight_kg=50)
        assert target_daily_mg(finding) == 600

    def test_target_none_without_weight(self):
        finding = DoseFinding(recommended_target_mg_per_kg=20)
        assert target_daily_mg(finding) is None
