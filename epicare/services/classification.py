"""Keyword classification of CDS alerts.

The backend returns free-text alerts with no strict taxonomy, so alerts are
tagged by keyword matching. Every keyword list lives in ``KEYWORD_RULES``; the
adapter evaluates the table once per alert and the predicates below just read
the resulting tags.
"""

import re
from dataclasses import dataclass

from epicare.models.triage import Alert

ADHERENCE = "adherence"
MEDICATION_GAP = "medication_gap"
DOSE_SAFETY = "dose_safety"
REFERRAL = "referral"
LOW_VALUE_SIDE_EFFECT = "low_value_side_effect"
IMMEDIATE_SIDE_EFFECT_COUNSELING = "immediate_side_effect_counseling"
DOSE_ADEQUATE = "dose_adequate"
ESCALATION = "escalation"

Keyword = str | re.Pattern


@dataclass(frozen=True)
class KeywordRule:
    """Emit ``tag`` when every group has at least one keyword present in ``scope``.

    Scopes: ``search`` (searchable text), ``identity`` (id plus searchable
    text), ``primary`` (title plus text) and ``category`` (exact match on the
    category tag).
    """

    tag: str
    groups: tuple[tuple[Keyword, ...], ...]
    scope: str = "search"

    def matches(self, fields: dict[str, str]) -> bool:
        haystack = fields.get(self.scope, "")
        if not haystack:
            return False
        if self.scope == "category":
            return all(haystack in group for group in self.groups)
        return all(any(_contains(haystack, kw) for kw in group) for group in self.groups)


def _contains(haystack: str, keyword: Keyword) -> bool:
    if isinstance(keyword, re.Pattern):
        return keyword.search(haystack) is not None
    return keyword in haystack


KEYWORD_RULES: tuple[KeywordRule, ...] = (
    KeywordRule(ADHERENCE, (("adherence", "missed_dose"),), scope="identity"),
    KeywordRule(ADHERENCE, (("miss",), ("dose",))),
    KeywordRule(ADHERENCE, (("frequently miss",),)),
    KeywordRule(
        MEDICATION_GAP,
        (("ran out of medicine", "no stock", "medication gap", "missed refill"),),
    ),
    KeywordRule(
        DOSE_SAFETY,
        (
            (
                "dose",
                "dosing",
                "mg/kg",
                "therapeutic range",
                "toxicity",
                "over limit",
                "weight-based",
                "dose reduction",
            ),
            ("exceed", "above", "below", "reduce", "increase", "risk", "toxicity"),
        ),
    ),
    KeywordRule(REFERRAL, (("refer to", "refer ", "tertiary care", "specialist referral"),)),
    KeywordRule(
        LOW_VALUE_SIDE_EFFECT,
        (
            (
                "sedation",
                "sedating",
                "sedative",
                "drowsiness",
                "drowsy",
                "somnolence",
                "fall risk",
                "falls risk",
                "risk of falls",
                "fall-risk",
            ),
        ),
    ),
    KeywordRule(
        IMMEDIATE_SIDE_EFFECT_COUNSELING,
        (
            ("sjs", "stevens-johnson", "ten", "severe rash", "rash counseling", "infection risk"),
            ("carbamazepine", "cbz", "tegretol"),
        ),
    ),
    # "inadequate" must not read as a positive finding
    KeywordRule(DOSE_ADEQUATE, (("dose",), (re.compile(r"\badequate\b"),)), scope="primary"),
    KeywordRule(
        ESCALATION,
        (("escalation", "adjunct", "add-on", "combo", "polytherapy"),),
        scope="category",
    ),
    KeywordRule(
        ESCALATION,
        (
            (
                "add ",
                "add-on",
                "addon",
                "adjunct",
                "combine",
                "combination",
                "switch to",
                "escalat",
            ),
        ),
        scope="primary",
    ),
)


def compute_tags(
    *, alert_id: str, search_text: str, primary_text: str, category: str
) -> frozenset[str]:
    fields = {
        "search": search_text,
        "identity": f"{alert_id.lower()} {search_text}".strip(),
        "primary": primary_text,
        "category": category,
    }
    return frozenset(rule.tag for rule in KEYWORD_RULES if rule.matches(fields))


def is_adherence_alert(alert: Alert) -> bool:
    return ADHERENCE in alert.tags


def is_medication_gap_alert(alert: Alert) -> bool:
    return MEDICATION_GAP in alert.tags


def is_dose_safety_alert(alert: Alert) -> bool:
    return DOSE_SAFETY in alert.tags


def alert_mentions_referral(alert: Alert) -> bool:
    return REFERRAL in alert.tags


def is_low_value_side_effect_alert(alert: Alert) -> bool:
    return LOW_VALUE_SIDE_EFFECT in alert.tags


def is_immediate_side_effect_counseling(alert: Alert) -> bool:
    return IMMEDIATE_SIDE_EFFECT_COUNSELING in alert.tags


def is_dose_adequate_prompt(alert: Alert) -> bool:
    return DOSE_ADEQUATE in alert.tags


def is_escalation_prompt(alert: Alert) -> bool:
    return ESCALATION in alert.tags
