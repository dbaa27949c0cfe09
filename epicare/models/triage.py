from datetime import date, datetime
from typing import Literal

from pydantic import ConfigDict, Field, computed_field, field_serializer

from epicare.models.cds import CamelModel

Severity = Literal["high", "medium", "low", "info"]
AlertSource = Literal[
    "warning", "prompt", "special_consideration", "recommendation", "alert", "synthetic"
]
Tone = Literal["success", "info", "warning", "danger"]


class Alert(CamelModel):
    """Canonical alert shape produced by the ingestion adapter."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    severity: Severity = "info"
    raw_severity: str | None = None
    title: str = ""
    text: str = ""
    rationale: str = ""
    next_steps: tuple[str, ...] = ()
    category: str = ""
    created_at: datetime | None = None
    source: AlertSource = "alert"
    search_text: str = Field(default="", exclude=True)
    tags: frozenset[str] = frozenset()

    @computed_field
    @property
    def severity_label(self) -> str:
        return self.severity.upper()

    @property
    def primary_text(self) -> str:
        return f"{self.title} {self.text}".strip().lower()

    @property
    def display_text(self) -> str:
        return self.text or self.title

    @field_serializer("tags")
    def _serialize_tags(self, tags: frozenset[str]) -> list[str]:
        return sorted(tags)


class TriageContext(CamelModel):
    adherence: str | None = None
    active_medications: list[str] = Field(default_factory=list)
    epilepsy_type: str | None = None
    medication_change_intent: bool = False
    seizures_since_last_visit: int | None = None
    baseline_frequency: str | None = None
    current_frequency: str | None = None
    days_since_last_visit: int | None = None
    weight_kg: float | None = None
    weight_recorded_at: date | None = None
    last_visit_date: date | None = None
    gender: str | None = None
    age: int | None = None
    pregnancy_status: str | None = None
    catamenial_pattern: bool = False
    side_effects_present: bool = False
    user_role: str | None = None
    as_of: date | None = None


class TrendInfo(CamelModel):
    summary: Literal["Improving", "Worsening"]
    detail: str
    tone: Tone
    baseline: str
    current: str


class Badge(CamelModel):
    kind: str
    label: str
    tone: Tone = "info"


class CounselingIcon(CamelModel):
    icon: str
    label: str
    severity: Tone
    tooltip: str


class DosePlaybookEntry(CamelModel):
    drug: str
    status: Literal["subtherapeutic", "supratherapeutic", "in_range"]
    current_daily_mg: float | None = None
    target_daily_mg: float | None = None
    max_daily_mg: float | None = None
    titration_steps: list[str] = Field(default_factory=list)
    taper_steps: list[str] = Field(default_factory=list)


class ReferralSignal(CamelModel):
    should_auto: bool = False
    rationale: str = ""


class MedicationChangeSignal(CamelModel):
    should_auto: bool = False
    suggestions: list[str] = Field(default_factory=list)
    banner_messages: list[str] = Field(default_factory=list)


class PlanSummary(CamelModel):
    text: str
    tone: Tone
    source: str


class TriageState(CamelModel):
    trend_info: TrendInfo | None = None
    adherence_status: str = "unknown"
    adherence_barriers_present: bool = False
    adherence_confirmed: bool = False
    active_medication_count: int = 0
    status_badges: list[Badge] = Field(default_factory=list)
    critical_alerts: list[Alert] = Field(default_factory=list)
    consolidated_recommendations: list[Alert] = Field(default_factory=list)
    suppressed_recommendation_count: int = 0
    needs_specialist_referral: bool = False


class RenderPlan(CamelModel):
    critical_alerts: list[Alert] = Field(default_factory=list)
    recommendations: list[Alert] = Field(default_factory=list)
    overflow_count: int = 0
    status_badges: list[Badge] = Field(default_factory=list)
    summary_badges: list[Badge] = Field(default_factory=list)
    counseling_icons: list[CounselingIcon] = Field(default_factory=list)
    dose_playbook: list[DosePlaybookEntry] = Field(default_factory=list)
    special_considerations: list[Alert] = Field(default_factory=list)
    referral_signal: ReferralSignal = Field(default_factory=ReferralSignal)
    medication_signal: MedicationChangeSignal = Field(default_factory=MedicationChangeSignal)
    plan: PlanSummary | None = None
    trend: TrendInfo | None = None
    disclaimer: str | None = None
    fallback_message: str | None = None
