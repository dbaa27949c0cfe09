"""Tests for follow-up sessions: debounce, stale results and smart defaults."""

from datetime import date

import httpx
import pytest

from epicare.models.followup import FollowUpForm
from epicare.models.triage import MedicationChangeSignal, ReferralSignal, RenderPlan
from epicare.services.cds_client import CdsClient
from epicare.services.followup import analyze_follow_up
from epicare.services.session import FollowUpSession, SessionRegistry

AS_OF = date(2026, 10, 19)

REFER = RenderPlan(
    referral_signal=ReferralSignal(should_auto=True, rationale="Refer"),
    medication_signal=MedicationChangeSignal(should_auto=True, suggestions=["Add-on suggested: x"]),
)


def _form(**overrides) -> FollowUpForm:
    data = {
        "patientId": "P-100",
        "age": 30,
        "gender": "M",
        "weightKg": 60,
        "epilepsyType": "Focal",
        "baselineFrequency": "Yearly",
        "seizuresSinceLastVisit": 6,
        "lastVisitDate": "2026-09-19",
        "medications": ["CBZ 200 mg bd", "Levetiracetam 500 mg bd"],
        "adherence": "Always take",
    }
    data.update(overrides)
    return FollowUpForm.model_validate(data)


class TestFollowUpSession:
    def test_debounce_window(self):
        session = FollowUpSession("P-1", debounce_seconds=1.0)
        assert session.begin_update(now=10.0) == 1
        assert session.begin_update(now=10.5) is None
        assert session.begin_update(now=11.2) == 2

    def test_stale_result_dropped(self):
        session = FollowUpSession("P-1", "phc_admin", debounce_seconds=0)
        first = session.begin_update(now=1.0)
        second = session.begin_update(now=2.0)
        assert session.complete_update(first, REFER) is None
        assert session.last_plan is None
        assert not session.referral.checked
        assert session.complete_update(second, REFER) == ["referral", "medication_changed"]
        assert session.last_plan is REFER

    def test_auto_apply_once_per_session(self):
        session = FollowUpSession("P-1", "phc_admin", debounce_seconds=0)
        session.complete_update(session.begin_update(now=1.0), REFER)
        session.set_control("referral", False)
        assert session.complete_update(session.begin_update(now=2.0), REFER) == []
        assert not session.referral.checked

    def test_manual_toggle_wins(self):
        session = FollowUpSession("P-1", "phc_admin", debounce_seconds=0)
        session.set_control("medication_changed", False)
        applied = session.complete_update(session.begin_update(now=1.0), REFER)
        assert applied == ["referral"]
        assert not session.medication_changed.checked
        assert session.medication_changed.user_touched

    def test_role_without_referral_rights(self):
        session = FollowUpSession("P-1", "viewer", debounce_seconds=0)
        applied = session.complete_update(session.begin_update(now=1.0), REFER)
        assert applied == ["medication_changed"]
        assert not session.referral.checked

    def test_unknown_control(self):
        with pytest.raises(ValueError):
            FollowUpSession("P-1").control("discharge")


class TestSessionRegistry:
    def test_open_get_close(self):
        registry = SessionRegistry()
        session = registry.open("P-1", "phc_admin")
        assert registry.get(session.id) is session
        assert len(registry) == 1
        registry.close(session.id)
        assert len(registry) == 0

    def test_missing_session(self):
        registry = SessionRegistry()
        with pytest.raises(ValueError):
            registry.get("nope")
        with pytest.raises(ValueError):
            registry.close("nope")


class TestAnalyzeFollowUp:
    @pytest.fixture
    def offline(self):
        return CdsClient(base_url="", dummy_mode=True)

    async def test_ok_applies_defaults(self, offline):
        session = FollowUpSession("P-100", "phc_admin", debounce_seconds=0)
        response = await analyze_follow_up(session, _form(), client=offline, as_of=AS_OF, now=1.0)
        assert response.status == "ok"
        assert response.render_plan.trend.summary == "Worsening"
        assert response.render_plan.referral_signal.should_auto
        assert "referral" in response.auto_applied
        assert response.session.referral.checked
        assert response.session.generation == 1

    async def test_blocked_by_validation(self, offline):
        session = FollowUpSession("P-100", debounce_seconds=0)
        response = await analyze_follow_up(
            session, _form(weightKg=None), client=offline, as_of=AS_OF, now=1.0
        )
        assert response.status == "blocked"
        assert response.render_plan is None
        assert response.validation_warnings[0]["id"] == "validation_weight_missing"

    async def test_debounced(self, offline):
        session = FollowUpSession("P-100", debounce_seconds=1.0)
        await analyze_follow_up(session, _form(), client=offline, as_of=AS_OF, now=1.0)
        response = await analyze_follow_up(session, _form(), client=offline, as_of=AS_OF, now=1.5)
        assert response.status == "debounced"
        assert response.render_plan is session.last_plan

    async def test_patient_id_taken_from_session(self, offline):
        session = FollowUpSession("P-100", debounce_seconds=0)
        response = await analyze_follow_up(
            session, _form(patientId=None), client=offline, as_of=AS_OF, now=1.0
        )
        assert response.status == "ok"

    async def test_unavailable_keeps_form_usable(self):
        client = CdsClient(
            "https://cds.test/exec",
            auth_token="",
            dummy_mode=False,
            retry_delay=0,
            transport=httpx.MockTransport(lambda r: httpx.Response(502, text="bad gateway")),
        )
        session = FollowUpSession("P-100", "phc_admin", debounce_seconds=0)
        response = await analyze_follow_up(session, _form(), client=client, as_of=AS_OF, now=1.0)
        assert response.status == "unavailable"
        assert response.error == "The CDS service is temporarily unavailable. Please try again later."
        assert response.render_plan is None
        assert not response.session.referral.checked

    async def test_superseded_request_is_stale(self, offline):
        session = FollowUpSession("P-100", debounce_seconds=0)

        class SlowClient:
            async def evaluate(self, patient_context, **kwargs):
                session.begin_update(now=5.0)
                return await offline.evaluate(patient_context)

        response = await analyze_follow_up(session, _form(), client=SlowClient(), as_of=AS_OF, now=1.0)
        assert response.status == "stale"
        assert session.last_plan is None
