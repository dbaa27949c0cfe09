"""Counseling icons summarizing what to discuss with the patient at this visit."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from epicare.config import MAX_COUNSELING_ICONS, STALE_WEIGHT_DAYS
from epicare.models.cds import AnalysisResult
from epicare.models.triage import CounselingIcon, TriageContext
from epicare.services.alert_adapter import AlertBundle
from epicare.services.classification import ADHERENCE, ESCALATION, REFERRAL


@dataclass(frozen=True)
class CounselingFacts:
    corpus: str
    medications: str
    tags: frozenset[str]
    context: TriageContext
    analysis: AnalysisResult
    adherence_barriers: bool
    needs_referral: bool
    as_of: date

    def mentions(self, *keywords: str) -> bool:
        return any(kw in self.corpus for kw in keywords)


@dataclass(frozen=True)
class CounselingRule:
    icon: str
    label: str
    severity: str
    tooltip: str
    applies: Callable[[CounselingFacts], bool]


def _on_valproate(f: CounselingFacts) -> bool:
    return any(kw in f.medications for kw in ("valpro", "depakote", "divalproex"))


def _pregnancy_relevant(f: CounselingFacts) -> bool:
    status = (f.context.pregnancy_status or "").lower()
    return any(kw in status for kw in ("pregnant", "planning", "trying")) or f.mentions("pregnan")


def _stale_weight(f: CounselingFacts) -> bool:
    recorded = f.context.weight_recorded_at
    return (
        f.context.weight_kg is not None
        and recorded is not None
        and (f.as_of - recorded).days > STALE_WEIGHT_DAYS
    )


COUNSELING_RULES: tuple[CounselingRule, ...] = (
    CounselingRule(
        "arrow-up", "Dose increase", "warning",
        "Explain the new dose and titration schedule; warn about early side effects.",
        lambda f: any(d.is_subtherapeutic for d in f.analysis.dose_findings)
        or f.mentions("increase dose", "uptitrate", "titrate up", "subtherapeutic"),
    ),
    CounselingRule(
        "arrow-down", "Dose reduction", "warning",
        "Explain the reduced dose and taper steps; never stop abruptly.",
        lambda f: any(d.is_supratherapeutic for d in f.analysis.dose_findings)
        or bool(f.analysis.plan.taper_suggestion)
        or f.mentions("reduce dose", "dose reduction", "taper"),
    ),
    CounselingRule(
        "heart-pulse", "SUDEP risk", "danger",
        "Discuss sudden unexpected death in epilepsy and how seizure control lowers it.",
        lambda f: f.mentions("sudep", "sudden unexpected death"),
    ),
    CounselingRule(
        "rash", "Rash / SJS warning", "danger",
        "Stop and seek care immediately for rash, blisters or mouth ulcers.",
        lambda f: f.mentions("sjs", "stevens-johnson", "toxic epidermal", "severe rash"),
    ),
    CounselingRule(
        "liver", "Liver warning", "warning",
        "Report jaundice, dark urine or abdominal pain.",
        lambda f: f.mentions("hepat", "liver"),
    ),
    CounselingRule(
        "pancreas", "Pancreatitis warning", "warning",
        "Report severe abdominal pain or vomiting.",
        lambda f: f.mentions("pancrea"),
    ),
    CounselingRule(
        "scale", "Weight / PCOS", "info",
        "Monitor weight gain and menstrual irregularity.",
        lambda f: f.mentions("weight gain", "pcos", "polycystic"),
    ),
    CounselingRule(
        "pill", "Contraception interaction", "warning",
        "Enzyme-inducing ASMs reduce hormonal contraceptive efficacy.",
        lambda f: f.mentions("contracept"),
    ),
    CounselingRule(
        "leaf", "Folic acid", "info",
        "Daily folic acid for women of reproductive potential.",
        lambda f: f.mentions("folic", "folate"),
    ),
    CounselingRule(
        "baby", "Pregnancy risk", "danger",
        "Valproate carries a high risk of birth defects; review before or during pregnancy.",
        lambda f: f.mentions("teratogen") or (_on_valproate(f) and _pregnancy_relevant(f)),
    ),
    CounselingRule(
        "calendar", "Catamenial pattern", "info",
        "Track seizures against the menstrual cycle.",
        lambda f: f.context.catamenial_pattern or f.mentions("catamenial"),
    ),
    CounselingRule(
        "check-circle", "Adherence first", "warning",
        "Agree a routine for daily doses before any regimen change.",
        lambda f: f.adherence_barriers or ADHERENCE in f.tags,
    ),
    CounselingRule(
        "clipboard", "Side-effect review", "info",
        "Ask about reported side effects and whether they cause missed doses.",
        lambda f: f.context.side_effects_present or f.mentions("side effect", "adverse effect"),
    ),
    CounselingRule(
        "exchange", "Add / switch plan", "info",
        "Explain the planned add-on or switch and the cross-titration schedule.",
        lambda f: bool(f.analysis.plan.addon_suggestion or f.analysis.plan.monotherapy_suggestion)
        or ESCALATION in f.tags,
    ),
    CounselingRule(
        "hospital", "Specialist referral", "warning",
        "Explain why the referral is needed and where to go.",
        lambda f: f.needs_referral or REFERRAL in f.tags,
    ),
    CounselingRule(
        "vial", "Drug level monitoring", "info",
        "Arrange a serum drug level before the next visit.",
        lambda f: f.mentions("drug level", "serum level", "blood level", "therapeutic drug monitoring"),
    ),
    CounselingRule(
        "wave", "EEG", "info",
        "EEG requested; explain preparation (sleep, hair).",
        lambda f: f.mentions("eeg"),
    ),
    CounselingRule(
        "car", "Driving safety", "warning",
        "Advise against driving until seizure-free for the legally required period.",
        lambda f: f.mentions("driving", " drive"),
    ),
    CounselingRule(
        "moon", "Sleep hygiene", "info",
        "Regular sleep; avoid sleep deprivation.",
        lambda f: f.mentions("sleep"),
    ),
    CounselingRule(
        "bed", "Sedation", "info",
        "Drowsiness may occur; avoid heights and machinery.",
        lambda f: f.mentions("sedation", "sedating", "drowsi"),
    ),
    CounselingRule(
        "link", "Drug interaction", "warning",
        "Check every new medicine with the clinic.",
        lambda f: f.mentions("interaction", "interacts"),
    ),
    CounselingRule(
        "kidney", "Renal dose adjustment", "warning",
        "Dose depends on kidney function.",
        lambda f: f.mentions("renal", "kidney", "creatinine"),
    ),
    CounselingRule(
        "bone", "Bone health", "info",
        "Long-term enzyme inducers affect bone; consider vitamin D and calcium.",
        lambda f: f.mentions("bone", "vitamin d", "osteopor"),
    ),
    CounselingRule(
        "scale-missing", "Weight missing", "warning",
        "Record weight: dose checks are weight-based.",
        lambda f: f.context.weight_kg is None,
    ),
    CounselingRule(
        "scale-stale", "Weight outdated", "info",
        "Weight is older than six months; re-measure.",
        _stale_weight,
    ),
    CounselingRule(
        "calendar-missing", "Last visit date missing", "info",
        "Record the previous visit date so seizure trends can be computed.",
        lambda f: f.context.last_visit_date is None and f.context.days_since_last_visit is None,
    ),
)


def build_counseling_facts(
    *,
    analysis: AnalysisResult,
    bundle: AlertBundle,
    context: TriageContext,
    adherence_barriers: bool,
    needs_referral: bool,
) -> CounselingFacts:
    alerts = bundle.all()
    plan = analysis.plan
    plan_text = " ".join(
        p for p in (plan.addon_suggestion, plan.monotherapy_suggestion, plan.referral, plan.taper_suggestion) if p
    )
    findings_text = " ".join(
        " ".join([d.drug, *d.titration_instructions, *d.taper_instructions])
        for d in analysis.dose_findings
    )
    corpus = " ".join([*(a.search_text for a in alerts), plan_text.lower(), findings_text.lower()])
    medications = " ".join(
        [*(m.lower() for m in context.active_medications), *(d.drug.lower() for d in analysis.dose_findings)]
    )
    tags = frozenset(tag for a in alerts for tag in a.tags)
    return CounselingFacts(
        corpus=corpus,
        medications=medications,
        tags=tags,
        context=context,
        analysis=analysis,
        adherence_barriers=adherence_barriers,
        needs_referral=needs_referral,
        as_of=context.as_of or date.today(),
    )


def extract_counseling_icons(
    facts: CounselingFacts, limit: int = MAX_COUNSELING_ICONS
) -> list[CounselingIcon]:
    icons: list[CounselingIcon] = []
    seen: set[str] = set()
    for rule in COUNSELING_RULES:
        if len(icons) >= limit:
            break
        if rule.label in seen or not rule.applies(facts):
            continue
        seen.add(rule.label)
        icons.append(CounselingIcon(
            icon=rule.icon, label=rule.label, severity=rule.severity, tooltip=rule.tooltip
        ))
    return icons
