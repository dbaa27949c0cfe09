"""Ingestion adapter turning heterogeneous CDS alert records into ``Alert``."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from epicare.models.cds import AnalysisResult
from epicare.models.triage import Alert
from epicare.services.classification import compute_tags

logger = logging.getLogger(__name__)

SEVERITY_ALIASES = {
    "critical": "high",
    "severe": "high",
    "high": "high",
    "moderate": "medium",
    "medium": "medium",
    "low": "low",
    "info": "info",
}
SEVERITY_RANK = {"info": 0, "low": 1, "medium": 2, "high": 3}

_TEXT_FIELDS = ("title", "text", "rationale", "message", "description", "name")
_STEP_FIELDS = (("nextSteps", "next_steps"), ("actions",), ("recommendations",))


def _lookup(raw: dict, *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(_as_text(item) for item in value)
    return str(value).strip()


def _as_steps(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, dict):
        text = _as_text(_lookup(value, "text", "title", "message", "description"))
        return [text] if text else []
    if isinstance(value, (list, tuple)):
        steps = []
        for item in value:
            steps.extend(_as_steps(item))
        return steps
    return [str(value)]


def normalize_severity(value: Any) -> str:
    return SEVERITY_ALIASES.get(str(value or "").strip().lower(), "info")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO strings or epoch milliseconds. Unparseable values yield None."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    try:
        if isinstance(value, (int, float)) or str(value).strip().isdigit():
            return datetime.fromtimestamp(float(value) / 1000, tz=UTC)
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError):
        logger.debug("Ignoring unparseable alert timestamp %r", value)
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _search_text(raw: dict) -> str:
    parts = [_as_text(raw.get(field)) for field in _TEXT_FIELDS]
    for keys in _STEP_FIELDS:
        for key in keys:
            parts.extend(_as_steps(raw.get(key)))
    return " ".join(p for p in parts if p).lower()


def normalize_alert(raw: Any, source: str = "alert") -> Alert:
    """Build the canonical ``Alert`` for one raw record. Never rejects input."""
    if isinstance(raw, Alert):
        return raw
    if isinstance(raw, str):
        raw = {"text": raw}
    elif not isinstance(raw, dict):
        raw = {"text": _as_text(raw)} if raw is not None else {}

    alert_id = _as_text(_lookup(raw, "id", "ruleId", "rule_id"))
    title = _as_text(raw.get("title"))
    text = _as_text(_lookup(raw, "text", "message", "description", "name"))
    category = _as_text(raw.get("category")).lower()
    raw_severity = raw.get("severity")

    next_steps: list[str] = []
    for keys in _STEP_FIELDS:
        next_steps = _as_steps(_lookup(raw, *keys))
        if next_steps:
            break

    search_text = _search_text(raw)
    primary_text = f"{title} {text}".strip().lower()

    return Alert(
        id=alert_id,
        severity=normalize_severity(raw_severity),
        raw_severity=str(raw_severity) if raw_severity is not None else None,
        title=title,
        text=text,
        rationale=_as_text(raw.get("rationale")),
        next_steps=tuple(next_steps),
        category=category,
        created_at=parse_timestamp(_lookup(raw, "createdAt", "created_at", "timestamp")),
        source=source,
        search_text=search_text,
        tags=compute_tags(
            alert_id=alert_id,
            search_text=search_text,
            primary_text=primary_text,
            category=category,
        ),
    )


def build_alert(
    *,
    alert_id: str,
    text: str,
    severity: str = "medium",
    title: str = "",
    rationale: str = "",
    next_steps: list[str] | None = None,
    category: str = "",
    source: str = "synthetic",
) -> Alert:
    """Create an engine-generated alert with the same tagging as ingested ones."""
    return normalize_alert(
        {
            "id": alert_id,
            "title": title,
            "text": text,
            "severity": severity,
            "rationale": rationale,
            "nextSteps": next_steps or [],
            "category": category,
        },
        source=source,
    )


def merge_alerts(first: Alert, duplicate: Alert) -> Alert:
    """Fold ``duplicate`` into ``first``: highest severity, union of next steps."""
    severity = first.severity
    if SEVERITY_RANK[duplicate.severity] > SEVERITY_RANK[first.severity]:
        severity = duplicate.severity

    steps = list(first.next_steps)
    seen = {s.lower() for s in steps}
    for step in duplicate.next_steps:
        if step.lower() not in seen:
            steps.append(step)
            seen.add(step.lower())

    if severity == first.severity and len(steps) == len(first.next_steps):
        return first

    extra = " ".join(s.lower() for s in steps[len(first.next_steps):])
    search_text = f"{first.search_text} {extra}".strip()
    return first.model_copy(update={
        "severity": severity,
        "next_steps": tuple(steps),
        "search_text": search_text,
        "tags": compute_tags(
            alert_id=first.id,
            search_text=search_text,
            primary_text=first.primary_text,
            category=first.category,
        ),
    })


@dataclass(frozen=True)
class AlertBundle:
    """Normalized alerts of one analysis, grouped by where the backend put them."""

    warnings: tuple[Alert, ...] = ()
    prompts: tuple[Alert, ...] = ()
    special_considerations: tuple[Alert, ...] = ()
    recommendations: tuple[Alert, ...] = ()
    alerts: tuple[Alert, ...] = ()

    def all(self) -> tuple[Alert, ...]:
        return (
            self.recommendations
            + self.warnings
            + self.prompts
            + self.special_considerations
            + self.alerts
        )


def normalize_analysis_alerts(analysis: AnalysisResult) -> AlertBundle:
    return AlertBundle(
        warnings=tuple(normalize_alert(a, "warning") for a in analysis.warnings),
        prompts=tuple(normalize_alert(a, "prompt") for a in analysis.prompts),
        special_considerations=tuple(
            normalize_alert(a, "special_consideration") for a in analysis.special_considerations
        ),
        recommendations=tuple(
            normalize_alert(a, "recommendation") for a in analysis.recommendations_list
        ),
        alerts=tuple(normalize_alert(a, "alert") for a in analysis.alerts),
    )
