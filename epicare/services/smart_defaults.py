"""Smart-default signals for the referral and medication-changed controls.

Signal computation is pure. Applying a signal to a session's control is a
separate step so that manual edits always win over CDS suggestions.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from epicare.config import AUTO_APPLY_ROLES
from epicare.models.cds import AnalysisResult, DoseFinding
from epicare.models.followup import SmartDefaultControl
from epicare.models.triage import Alert, MedicationChangeSignal, ReferralSignal, TrendInfo
from epicare.services.alert_adapter import AlertBundle
from epicare.services.classification import DOSE_SAFETY, ESCALATION, REFERRAL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferralRule:
    keywords: tuple[str, ...]
    rationale: str


REFERRAL_RULES: tuple[ReferralRule, ...] = (
    ReferralRule(
        ("drug-resistant", "drug resistant", "refractory", "pharmacoresistant"),
        "Possible drug-resistant epilepsy: seizures persist despite adequate trials of ASMs.",
    ),
    ReferralRule(
        ("status epilepticus", "life-threatening", "life threatening"),
        "History of status epilepticus or life-threatening seizures.",
    ),
    ReferralRule(
        ("progressive", "new neurological deficit", "focal deficit", "developmental regression"),
        "Progressive neurological deficit needs specialist evaluation.",
    ),
    ReferralRule(
        ("video-eeg", "video eeg", "surgical", "epilepsy surgery", "presurgical"),
        "Candidate for video-EEG or surgical work-up.",
    ),
)


@dataclass(frozen=True)
class AdjustmentRule:
    name: str
    keywords: tuple[str, ...]
    banner: str


ADJUSTMENT_RULES: tuple[AdjustmentRule, ...] = (
    AdjustmentRule(
        "dose_inadequate",
        ("subtherapeutic", "sub-therapeutic", "below target", "dose inadequate", "inadequate dose",
         "underdosed", "under-dosed", "uptitrate"),
        "Current dose appears below target: review titration.",
    ),
    AdjustmentRule(
        "dose_high",
        ("supratherapeutic", "above maximum", "exceeds maximum", "toxicity", "dose too high",
         "reduce dose", "over limit"),
        "Current dose may be too high: consider reduction.",
    ),
    AdjustmentRule(
        "switch",
        ("switch to", "switch medication", "change to", "replace with"),
        "Medication switch suggested.",
    ),
    AdjustmentRule(
        "add_on",
        ("add-on", "add on", "adjunct", "combination", "combine"),
        "Add-on therapy suggested.",
    ),
)


def _any_tag(alerts: Iterable[Alert], tag: str) -> bool:
    return any(tag in a.tags for a in alerts)


def needs_specialist_referral(
    *,
    adherence_barriers: bool,
    dose_findings: list[DoseFinding],
    analysis: AnalysisResult,
    bundle: AlertBundle,
) -> bool:
    """Referral only once the local fixes (adherence, dose) are exhausted."""
    if adherence_barriers:
        return False
    if any(f.is_subtherapeutic for f in dose_findings):
        return False
    if (analysis.plan.referral or "").strip():
        return True
    if _any_tag(bundle.special_considerations, REFERRAL):
        return True
    return _any_tag(bundle.warnings + bundle.recommendations + bundle.prompts, REFERRAL)


def derive_referral_signal(
    *,
    bundle: AlertBundle,
    trend: TrendInfo | None,
    adherence_barriers: bool,
    active_medication_count: int,
    needs_referral: bool,
    referral_plan: str | None = None,
) -> ReferralSignal:
    alerts = bundle.all()
    for rule in REFERRAL_RULES:
        if any(kw in a.search_text for a in alerts for kw in rule.keywords):
            return ReferralSignal(should_auto=True, rationale=rule.rationale)

    if (
        trend is not None
        and trend.summary == "Worsening"
        and not adherence_barriers
        and active_medication_count >= 2
    ):
        return ReferralSignal(
            should_auto=True,
            rationale=f"Seizures {trend.detail} despite {active_medication_count}+ ASMs.",
        )

    if needs_referral:
        rationale = (referral_plan or "").strip() or "Specialist referral recommended by CDS."
        return ReferralSignal(should_auto=True, rationale=rationale)
    return ReferralSignal()


def derive_medication_change_signal(
    *,
    analysis: AnalysisResult,
    bundle: AlertBundle,
    trend: TrendInfo | None,
    adherence_barriers: bool,
) -> MedicationChangeSignal:
    plan = analysis.plan
    suggestions = []
    if plan.addon_suggestion:
        suggestions.append(f"Add-on suggested: {plan.addon_suggestion}")
    if plan.monotherapy_suggestion:
        suggestions.append(f"Switch to monotherapy: {plan.monotherapy_suggestion}")

    scanned = bundle.warnings + bundle.recommendations + bundle.prompts
    banners = [
        rule.banner
        for rule in ADJUSTMENT_RULES
        if any(kw in a.search_text for a in scanned for kw in rule.keywords)
    ]

    dose_safety = _any_tag(bundle.all(), DOSE_SAFETY) or any(
        f.is_supratherapeutic for f in analysis.dose_findings
    )
    escalation = _any_tag(bundle.recommendations + bundle.prompts, ESCALATION)
    worsening = trend is not None and trend.summary == "Worsening"
    plan_change = bool(
        plan.addon_suggestion or plan.monotherapy_suggestion or plan.taper_suggestion
    )

    should_auto = (
        bool(suggestions or banners)
        and (not adherence_barriers or dose_safety)
        and (
            dose_safety
            or escalation
            or (worsening and not adherence_barriers)
            or plan_change
            or bool(banners)
        )
    )
    return MedicationChangeSignal(
        should_auto=should_auto, suggestions=suggestions, banner_messages=banners
    )


def apply_referral_default(
    control: SmartDefaultControl, signal: ReferralSignal, user_role: str | None
) -> bool:
    """Check the referral control once per session for roles allowed to refer."""
    if not signal.should_auto or control.user_touched or control.auto_applied:
        return False
    if (user_role or "") not in AUTO_APPLY_ROLES:
        logger.debug("Referral default not applied for role %s", user_role)
        return False
    control.checked = True
    control.auto_applied = True
    logger.info("Referral auto-checked: %s", signal.rationale)
    return True


def apply_medication_default(
    control: SmartDefaultControl, signal: MedicationChangeSignal
) -> bool:
    if not signal.should_auto or control.user_touched or control.auto_applied:
        return False
    control.checked = True
    control.auto_applied = True
    logger.info("Medication-changed auto-checked (%d suggestions)", len(signal.suggestions))
    return True
