import logging
import time
import uuid
from datetime import UTC, datetime

from epicare.config import DEBOUNCE_SECONDS
from epicare.models.followup import SessionState, SmartDefaultControl
from epicare.models.triage import RenderPlan
from epicare.services.smart_defaults import apply_medication_default, apply_referral_default

logger = logging.getLogger(__name__)

CONTROL_NAMES = ("referral", "medication_changed")


class FollowUpSession:
    """State owned by one open follow-up form.

    Holds the smart-default controls, the debounce clock and a generation
    counter. Every accepted analysis request bumps the generation; a result
    is only applied if no newer request was accepted while it was in flight.
    """

    def __init__(
        self,
        patient_id: str,
        user_role: str | None = None,
        debounce_seconds: float | None = None,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.patient_id = patient_id
        self.user_role = user_role
        self.created_at = datetime.now(UTC).isoformat()
        self.debounce_seconds = DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        self.referral = SmartDefaultControl(name="referral")
        self.medication_changed = SmartDefaultControl(name="medication_changed")
        self.generation = 0
        self.last_plan: RenderPlan | None = None
        self._last_update: float | None = None

    def control(self, name: str) -> SmartDefaultControl:
        if name == "referral":
            return self.referral
        if name == "medication_changed":
            return self.medication_changed
        raise ValueError(f"Unknown control {name}")

    def set_control(self, name: str, checked: bool) -> SmartDefaultControl:
        """Record a manual toggle. Auto-apply never overrides a touched control."""
        control = self.control(name)
        control.checked = checked
        control.user_touched = True
        return control

    def begin_update(self, now: float | None = None) -> int | None:
        """Start an analysis pass. Returns its generation, or None when debounced."""
        now = time.monotonic() if now is None else now
        if self._last_update is not None and now - self._last_update < self.debounce_seconds:
            logger.debug("Session %s: update debounced", self.id)
            return None
        self._last_update = now
        self.generation += 1
        return self.generation

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def complete_update(self, generation: int, plan: RenderPlan) -> list[str] | None:
        """Apply a finished render plan. Returns the auto-applied control names, or None if stale."""
        if not self.is_current(generation):
            logger.warning(
                "Session %s: dropping stale result (generation %d, current %d)",
                self.id, generation, self.generation,
            )
            return None

        self.last_plan = plan
        applied = []
        if apply_referral_default(self.referral, plan.referral_signal, self.user_role):
            applied.append("referral")
        if apply_medication_default(self.medication_changed, plan.medication_signal):
            applied.append("medication_changed")
        return applied

    def state(self) -> SessionState:
        return SessionState(
            id=self.id,
            patient_id=self.patient_id,
            user_role=self.user_role,
            created_at=self.created_at,
            generation=self.generation,
            referral=self.referral.model_copy(),
            medication_changed=self.medication_changed.model_copy(),
            last_plan=self.last_plan,
        )


class SessionRegistry:
    """In-memory registry of open follow-up sessions."""

    def __init__(self) -> None:
        self._sessions: dict[str, FollowUpSession] = {}

    def open(self, patient_id: str, user_role: str | None = None) -> FollowUpSession:
        session = FollowUpSession(patient_id, user_role)
        self._sessions[session.id] = session
        logger.info("Opened follow-up session %s for patient %s", session.id, patient_id)
        return session

    def get(self, session_id: str) -> FollowUpSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise ValueError(f"Session {session_id} not found")
        return session

    def close(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise ValueError(f"Session {session_id} not found")
        logger.info("Closed follow-up session %s", session_id)

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


sessions = SessionRegistry()
