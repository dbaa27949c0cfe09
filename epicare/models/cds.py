from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for models exchanged with the CDS backend and the form UI (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DoseFinding(CamelModel):
    drug: str = Field(
        default="",
        validation_alias=AliasChoices("drug", "drugName", "medication", "name"),
        serialization_alias="drug",
    )
    daily_mg: float | None = None
    mg_per_kg: float | None = None
    weight_kg: float | None = None
    is_subtherapeutic: bool = False
    is_supratherapeutic: bool = False
    recommended_target_daily_mg: float | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "recommendedTargetDailyMg", "targetDailyMg", "recommended_target_daily_mg"
        ),
        serialization_alias="recommendedTargetDailyMg",
    )
    recommended_target_mg_per_kg: float | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "recommendedTargetMgPerKg", "targetMgPerKg", "recommended_target_mg_per_kg"
        ),
        serialization_alias="recommendedTargetMgPerKg",
    )
    max_allowed_daily_mg: float | None = None
    titration_instructions: list[str] = Field(default_factory=list)
    taper_instructions: list[str] = Field(default_factory=list)

    @field_validator("titration_instructions", "taper_instructions", mode="before")
    @classmethod
    def _coerce_steps(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return [str(item) for item in value if item is not None and str(item).strip()]

    @field_validator("drug", mode="before")
    @classmethod
    def _null_drug(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("is_subtherapeutic", "is_supratherapeutic", mode="before")
    @classmethod
    def _null_flag(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator(
        "daily_mg",
        "mg_per_kg",
        "weight_kg",
        "recommended_target_daily_mg",
        "recommended_target_mg_per_kg",
        "max_allowed_daily_mg",
        mode="before",
    )
    @classmethod
    def _blank_number(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class TreatmentPlan(CamelModel):
    addon_suggestion: str | None = None
    monotherapy_suggestion: str | None = None
    referral: str | None = None
    taper_suggestion: str | None = None


class AnalysisResult(CamelModel):
    """Envelope returned by one CDS evaluation.

    Alert lists are kept raw: the backend is inconsistent about field names,
    so they are normalized by the alert adapter at ingestion.
    """

    success: bool = True
    error: str | None = None
    warnings: list[Any] = Field(default_factory=list)
    prompts: list[Any] = Field(default_factory=list)
    special_considerations: list[Any] = Field(default_factory=list)
    recommendations_list: list[Any] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "recommendationsList", "recommendations", "recommendations_list"
        ),
        serialization_alias="recommendationsList",
    )
    alerts: list[Any] = Field(default_factory=list)
    dose_findings: list[DoseFinding] = Field(default_factory=list)
    plan: TreatmentPlan = Field(default_factory=TreatmentPlan)
    disclaimer: str | None = None
    version: str | None = None

    @field_validator(
        "warnings",
        "prompts",
        "special_considerations",
        "recommendations_list",
        "alerts",
        "dose_findings",
        mode="before",
    )
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (dict, str)):
            return [value]
        return value

    @field_validator("plan", mode="before")
    @classmethod
    def _none_plan(cls, value: Any) -> Any:
        return {} if value is None else value
