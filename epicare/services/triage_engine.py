"""Alert triage engine.

Turns one CDS ``AnalysisResult`` plus the follow-up context into a
``RenderPlan``: prioritized critical alerts, at most a handful of
consolidated recommendations, summary badges, counseling icons, the dose
playbook and the two smart-default signals. Everything here is pure; the
caller decides what to do with the signals.
"""

import logging
from dataclasses import dataclass

from epicare.models.cds import AnalysisResult
from epicare.models.triage import (
    Badge,
    MedicationChangeSignal,
    PlanSummary,
    RenderPlan,
    TriageContext,
    TriageState,
)
from epicare.services.alert_adapter import AlertBundle, normalize_analysis_alerts
from epicare.services.counseling import build_counseling_facts, extract_counseling_icons
from epicare.services.dose_playbook import build_dose_playbook
from epicare.services.normalization import (
    canonicalize_adherence,
    has_adherence_barrier,
    is_adherence_confirmed,
)
from epicare.services.plan import derive_plan_summary, extract_actionable_text
from epicare.services.recommendations import build_recommendations, consolidate_alerts
from epicare.services.scoring import filter_low_value_alerts, prioritize_cds_alerts
from epicare.services.smart_defaults import (
    derive_medication_change_signal,
    derive_referral_signal,
    needs_specialist_referral,
)
from epicare.services.trend import compute_trend_info

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "No specific recommendations. Standard monitoring applies."
UNAVAILABLE_MESSAGE = "Clinical decision support unavailable."


@dataclass(frozen=True)
class TriageResult:
    state: TriageState
    bundle: AlertBundle


def build_triage_state(analysis: AnalysisResult, context: TriageContext) -> TriageResult:
    bundle = normalize_analysis_alerts(analysis)
    barriers = has_adherence_barrier(context.adherence)
    medication_count = len([m for m in context.active_medications if m and m.strip()])
    trend = compute_trend_info(context)

    high_warnings = [a for a in bundle.warnings + bundle.alerts if a.severity == "high"]
    critical_alerts = prioritize_cds_alerts(consolidate_alerts(filter_low_value_alerts(high_warnings)))
    pool = [
        *bundle.prompts,
        *bundle.recommendations,
        *(a for a in bundle.warnings + bundle.alerts if a.severity != "high"),
    ]
    recommendation_set = build_recommendations(
        pool,
        critical_alerts=critical_alerts,
        trend=trend,
        adherence_barriers=barriers,
        adherence_confirmed=is_adherence_confirmed(context.adherence),
        active_medication_count=medication_count,
        epilepsy_type=context.epilepsy_type,
        medication_change_intent=context.medication_change_intent,
    )

    state = TriageState(
        trend_info=trend,
        adherence_status=canonicalize_adherence(context.adherence),
        adherence_barriers_present=barriers,
        adherence_confirmed=is_adherence_confirmed(context.adherence),
        active_medication_count=medication_count,
        status_badges=recommendation_set.status_badges,
        critical_alerts=critical_alerts,
        consolidated_recommendations=recommendation_set.recommendations,
        suppressed_recommendation_count=recommendation_set.overflow_count,
        needs_specialist_referral=needs_specialist_referral(
            adherence_barriers=barriers,
            dose_findings=analysis.dose_findings,
            analysis=analysis,
            bundle=bundle,
        ),
    )
    return TriageResult(state=state, bundle=bundle)


def build_summary_badges(
    state: TriageState, plan: PlanSummary, medication_signal: MedicationChangeSignal
) -> list[Badge]:
    if state.adherence_barriers_present:
        adherence_tone = "warning"
    elif state.adherence_confirmed:
        adherence_tone = "success"
    else:
        adherence_tone = "info"
    badges = [
        Badge(kind="adherence", label=f"Adherence: {state.adherence_status}", tone=adherence_tone)
    ]
    if state.trend_info is not None:
        badges.append(Badge(
            kind="trend",
            label=f"{state.trend_info.summary}: {state.trend_info.detail}",
            tone=state.trend_info.tone,
        ))
    badges.append(Badge(kind="plan", label=f"Plan: {plan.text}", tone=plan.tone))
    if medication_signal.suggestions:
        badges.append(Badge(kind="suggestion", label=medication_signal.suggestions[0], tone="info"))
    return badges


def triage(analysis: AnalysisResult, context: TriageContext) -> RenderPlan:
    result = build_triage_state(analysis, context)
    state, bundle = result.state, result.bundle

    referral_signal = derive_referral_signal(
        bundle=bundle,
        trend=state.trend_info,
        adherence_barriers=state.adherence_barriers_present,
        active_medication_count=state.active_medication_count,
        needs_referral=state.needs_specialist_referral,
        referral_plan=analysis.plan.referral,
    )
    medication_signal = derive_medication_change_signal(
        analysis=analysis,
        bundle=bundle,
        trend=state.trend_info,
        adherence_barriers=state.adherence_barriers_present,
    )
    plan = derive_plan_summary(
        adherence_barriers=state.adherence_barriers_present,
        active_medication_count=state.active_medication_count,
        dose_findings=analysis.dose_findings,
        weight_kg=context.weight_kg,
        needs_referral=state.needs_specialist_referral,
        plan=analysis.plan,
        actionable_text=extract_actionable_text(bundle.all()),
        trend=state.trend_info,
    )
    icons = extract_counseling_icons(build_counseling_facts(
        analysis=analysis,
        bundle=bundle,
        context=context,
        adherence_barriers=state.adherence_barriers_present,
        needs_referral=state.needs_specialist_referral,
    ))

    return RenderPlan(
        critical_alerts=state.critical_alerts,
        recommendations=state.consolidated_recommendations,
        overflow_count=state.suppressed_recommendation_count,
        status_badges=state.status_badges,
        summary_badges=build_summary_badges(state, plan, medication_signal),
        counseling_icons=icons,
        dose_playbook=build_dose_playbook(analysis.dose_findings, context.weight_kg),
        special_considerations=prioritize_cds_alerts(bundle.special_considerations),
        referral_signal=referral_signal,
        medication_signal=medication_signal,
        plan=plan,
        trend=state.trend_info,
        disclaimer=analysis.disclaimer,
    )


def safe_triage(analysis: AnalysisResult, context: TriageContext) -> RenderPlan:
    """Run the engine, degrading to standard monitoring advice on any internal failure."""
    try:
        return triage(analysis, context)
    except Exception as e:
        logger.error("Alert triage failed: %s", e, exc_info=True)
        return RenderPlan(fallback_message=FALLBACK_MESSAGE, disclaimer=analysis.disclaimer)
