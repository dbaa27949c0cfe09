from datetime import date
from typing import Any, Literal

from pydantic import AliasChoices, Field, field_validator

from epicare.models.cds import AnalysisResult, CamelModel
from epicare.models.triage import RenderPlan, TriageContext


class Medication(CamelModel):
    name: str
    original_name: str = ""
    dosage: str = ""
    frequency: str = ""
    daily_mg: float | None = None
    raw: str = ""


class FollowUpForm(CamelModel):
    """Field values captured by the follow-up form for one visit."""

    patient_id: str | None = Field(
        default=None, validation_alias=AliasChoices("patientId", "patient_id", "ID", "id")
    )
    age: int | None = None
    gender: str | None = None
    weight_kg: float | None = Field(
        default=None, validation_alias=AliasChoices("weightKg", "weight_kg", "weight")
    )
    weight_recorded_at: date | None = None
    pregnancy_status: str | None = None
    reproductive_potential: bool = False
    epilepsy_type: str | None = None
    baseline_frequency: str | None = None
    seizures_since_last_visit: int | None = None
    last_visit_date: date | None = None
    medications: list[str] = Field(default_factory=list)
    adherence: str | None = None
    medication_changed: bool = False
    new_medications: list[str] = Field(default_factory=list)
    adverse_effects: list[str] = Field(default_factory=list)
    catamenial_pattern: bool = False
    renal_function: str | None = None
    hepatic_function: str | None = None

    @field_validator("age", "weight_kg", "seizures_since_last_visit", mode="before")
    @classmethod
    def _blank_as_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("medications", "new_medications", "adverse_effects", mode="before")
    @classmethod
    def _split_text(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return value


class SmartDefaultControl(CamelModel):
    """State of one auto-checkable form control within a follow-up session."""

    name: str
    checked: bool = False
    user_touched: bool = False
    auto_applied: bool = False


class SessionCreate(CamelModel):
    patient_id: str
    user_role: str | None = None


class SessionState(CamelModel):
    id: str
    patient_id: str
    user_role: str | None = None
    created_at: str
    generation: int
    referral: SmartDefaultControl
    medication_changed: SmartDefaultControl
    last_plan: RenderPlan | None = None


class ControlUpdate(CamelModel):
    checked: bool


class TriageRequest(CamelModel):
    analysis: AnalysisResult
    context: TriageContext = Field(default_factory=TriageContext)


class AnalyzeResponse(CamelModel):
    status: Literal["ok", "unavailable", "blocked", "debounced", "stale"]
    session: SessionState
    render_plan: RenderPlan | None = None
    error: str | None = None
    validation_warnings: list[dict[str, Any]] = Field(default_factory=list)
    auto_applied: list[str] = Field(default_factory=list)
